from datetime import date, datetime, time
from unittest.mock import patch

from django.contrib.auth import get_user_model
from django.core.cache import cache
from django.db import DatabaseError, IntegrityError
from django.test import TestCase
from rest_framework import status
from rest_framework.test import APITestCase

from attendance.exceptions import AlreadyMarkedPresent
from attendance.models import DailyAttendance, LessonAttendance, SecurityStatus
from attendance.services import lessons
from attendance.services.clock import local_timezone, normalize_scan_time, start_of_day
from attendance.services.daily import TRANSITION_ENTRY, TRANSITION_EXIT, record_gate_scan
from attendance.services.reporting import attendance_percentage, daily_report, lesson_report
from devices.models import Device
from school.models import Enrollment, Room, Student, Subject, Teacher
from timetable.models import DayOfWeek, ScheduleSlot


User = get_user_model()

MONDAY = date(2026, 3, 2)
SCAN_URL = '/api/attendance/scan/'


def local(hour, minute, second=0, day=MONDAY):
    return datetime(day.year, day.month, day.day, hour, minute, second, tzinfo=local_timezone())


class AttendanceFixtureMixin:
    def make_fixtures(self):
        cache.clear()
        self.lab1 = Room.objects.create(name='Lab 1', code='LAB1', capacity=30)
        self.lab2 = Room.objects.create(name='Lab 2', code='LAB2', capacity=30)
        self.teacher = Teacher.objects.create(name='Ms. Rahma', email='rahma@school.test')
        self.math = Subject.objects.create(name='Math', code='MTH', grade='10')
        self.physics = Subject.objects.create(name='Physics', code='PHY', grade='10')
        self.student = Student.objects.create(
            name='Budi', student_id='S-001', rfid_tag='AB12CD34', class_name='A', grade='10'
        )
        self.gate = Device.objects.create(
            device_id='RFID-GATE',
            location=Device.Location.ENTRANCE_GATE,
            status=Device.Status.NORMAL,
        )
        self.classroom = Device.objects.create(
            device_id='RFID-C1',
            location=Device.Location.CLASSROOM,
            room=self.lab1,
            status=Device.Status.NORMAL,
        )
        self.math_slot = self.make_slot(self.math, self.lab1, time(8, 0), time(9, 30))
        self.physics_slot = self.make_slot(self.physics, self.lab2, time(10, 0), time(11, 30))

    def make_slot(self, subject, room, start, end, class_name='A', day_of_week=DayOfWeek.MONDAY):
        return ScheduleSlot.objects.create(
            subject=subject,
            teacher=self.teacher,
            room=room,
            class_name=class_name,
            grade='10',
            day_of_week=day_of_week,
            start_time=start,
            end_time=end,
        )

    def scan(self, device_id, timestamp, rfid_tag='AB12CD34', **extra):
        payload = {'rfidTag': rfid_tag, 'deviceId': device_id, 'timestamp': timestamp}
        payload.update(extra)
        return self.client.post(SCAN_URL, payload, format='json')


class GateScanTests(AttendanceFixtureMixin, APITestCase):
    def setUp(self):
        self.make_fixtures()

    def test_first_gate_scan_records_entry_and_marks_lessons(self):
        # 00:45 UTC is 07:45 local.
        response = self.scan('RFID-GATE', '2026-03-02T00:45:00')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data['success'])
        self.assertEqual(response.data['data']['student']['studentId'], 'S-001')
        self.assertEqual(response.data['data']['student']['class'], 'A')
        self.assertEqual(response.data['data']['lessonsMarked'], 2)
        self.assertIn('marked present for all lessons', response.data['message'])

        record = DailyAttendance.objects.get(student=self.student)
        self.assertEqual(record.date, MONDAY)
        self.assertEqual(record.entry_time, local(7, 45))
        self.assertIsNone(record.exit_time)
        self.assertEqual(record.device, 'RFID-GATE')

        marked = LessonAttendance.objects.filter(student=self.student, date=MONDAY)
        self.assertEqual(set(marked.values_list('schedule_id', flat=True)), {self.math_slot.pk, self.physics_slot.pk})
        self.assertTrue(all(row.notes == lessons.AUTO_MARK_NOTE for row in marked))

    def test_second_scan_records_exit_and_third_is_rejected(self):
        self.scan('RFID-GATE', '2026-03-02T00:45:00')

        exit_response = self.scan('RFID-GATE', '2026-03-02T08:00:00')
        third = self.scan('RFID-GATE', '2026-03-02T09:00:00')

        self.assertEqual(exit_response.status_code, status.HTTP_200_OK)
        self.assertEqual(exit_response.data['message'], 'Exit time recorded')
        self.assertEqual(third.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(third.data['code'], 'ATTENDANCE_COMPLETE')
        self.assertFalse(third.data['success'])

        record = DailyAttendance.objects.get(student=self.student)
        self.assertEqual(record.exit_time, local(15, 0))
        self.assertEqual(DailyAttendance.objects.count(), 1)
        self.assertEqual(LessonAttendance.objects.count(), 2)

    def test_naive_timestamp_is_shifted_into_next_local_day(self):
        # 23:30 UTC on Monday is 06:30 local on Tuesday, which has no lessons.
        response = self.scan('RFID-GATE', '2026-03-02T23:30:00')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['data']['lessonsMarked'], 0)
        self.assertEqual(DailyAttendance.objects.get().date, date(2026, 3, 3))

    def test_tampered_status_is_recorded_and_logged(self):
        with self.assertLogs('attendance.services.scan', level='WARNING') as logs:
            response = self.scan('RFID-GATE', '2026-03-02T00:45:00', status='TAMPERED')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(DailyAttendance.objects.get().security_status, SecurityStatus.TAMPERED)
        self.assertTrue(any('tampered' in line for line in logs.output))

    def test_gate_scan_after_classroom_scan_only_fills_missing_lessons(self):
        self.scan('RFID-C1', '2026-03-02T01:15:00')

        response = self.scan('RFID-GATE', '2026-03-02T01:20:00')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['data']['lessonsMarked'], 1)
        self.assertEqual(LessonAttendance.objects.filter(schedule=self.math_slot).count(), 1)
        self.assertEqual(LessonAttendance.objects.filter(schedule=self.physics_slot).count(), 1)

    def test_fan_out_failure_does_not_fail_the_gate_scan(self):
        real_create = lessons._create_lesson_record

        def flaky_create(student, slot, *args, **kwargs):
            if slot.pk == self.math_slot.pk:
                raise DatabaseError('disk I/O error')
            return real_create(student, slot, *args, **kwargs)

        with patch('attendance.services.lessons._create_lesson_record', side_effect=flaky_create):
            with self.assertLogs('attendance.services.lessons', level='WARNING'):
                response = self.scan('RFID-GATE', '2026-03-02T00:45:00')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['data']['lessonsMarked'], 1)
        self.assertTrue(DailyAttendance.objects.filter(student=self.student).exists())
        self.assertEqual(
            list(LessonAttendance.objects.values_list('schedule_id', flat=True)),
            [self.physics_slot.pk],
        )

    def test_store_failure_is_reported_as_internal_error(self):
        with patch('attendance.services.scan.record_gate_scan', side_effect=DatabaseError('connection lost')):
            with self.assertLogs('attendance.services.scan', level='ERROR'):
                response = self.scan('RFID-GATE', '2026-03-02T00:45:00')

        self.assertEqual(response.status_code, status.HTTP_500_INTERNAL_SERVER_ERROR)
        self.assertEqual(response.data['code'], 'INTERNAL_ERROR')
        self.assertNotIn('connection lost', response.data['error'])


class ClassroomScanTests(AttendanceFixtureMixin, APITestCase):
    def setUp(self):
        self.make_fixtures()

    def test_scan_during_lesson_records_attendance(self):
        response = self.scan('RFID-C1', '2026-03-02T01:15:00')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['message'], 'Attendance recorded for Math lesson')
        self.assertEqual(response.data['data']['lesson']['subject'], 'Math')
        self.assertEqual(response.data['data']['lesson']['startTime'], '08:00')
        record = LessonAttendance.objects.get()
        self.assertEqual(record.schedule, self.math_slot)
        self.assertEqual(record.room, self.lab1)
        self.assertEqual(record.scan_time, local(8, 15))
        self.assertFalse(DailyAttendance.objects.exists())

    def test_repeat_scan_is_already_present(self):
        self.scan('RFID-C1', '2026-03-02T01:15:00')

        response = self.scan('RFID-C1', '2026-03-02T01:20:00')

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['code'], 'ALREADY_PRESENT')
        self.assertEqual(LessonAttendance.objects.count(), 1)

    def test_classroom_scan_after_gate_fan_out_is_already_present(self):
        self.scan('RFID-GATE', '2026-03-02T00:45:00')

        response = self.scan('RFID-C1', '2026-03-02T01:15:00')

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(LessonAttendance.objects.filter(schedule=self.math_slot).count(), 1)

    def test_window_boundaries_are_inclusive_at_minute_precision(self):
        # 01:00 UTC = 08:00 local (start minute), 02:30:45 UTC = 09:30:45 local (end minute).
        start = self.scan('RFID-C1', '2026-03-02T01:00:00')
        LessonAttendance.objects.all().delete()
        end = self.scan('RFID-C1', '2026-03-02T02:30:45')
        after = self.scan('RFID-C1', '2026-03-02T02:31:00')

        self.assertEqual(start.status_code, status.HTTP_200_OK)
        self.assertEqual(end.status_code, status.HTTP_200_OK)
        self.assertEqual(after.status_code, status.HTTP_422_UNPROCESSABLE_ENTITY)

    def test_no_active_lesson(self):
        response = self.scan('RFID-C1', '2026-03-02T05:00:00')

        self.assertEqual(response.status_code, status.HTTP_422_UNPROCESSABLE_ENTITY)
        self.assertEqual(response.data['code'], 'NO_ACTIVE_LESSON')
        self.assertFalse(LessonAttendance.objects.exists())

    def test_student_from_other_class_without_enrollment_is_unprocessable(self):
        Student.objects.create(name='Sari', student_id='S-002', rfid_tag='FF00FF00', class_name='B', grade='10')

        response = self.scan('RFID-C1', '2026-03-02T01:15:00', rfid_tag='FF00FF00')

        self.assertEqual(response.status_code, status.HTTP_422_UNPROCESSABLE_ENTITY)

    def test_enrolled_elective_wins_over_class_lesson(self):
        elective = Subject.objects.create(name='Robotics', code='ROB', grade='10')
        elective_slot = self.make_slot(elective, self.lab1, time(8, 0), time(9, 0), class_name='X')
        Enrollment.objects.create(student=self.student, subject=elective)

        response = self.scan('RFID-C1', '2026-03-02T01:15:00')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(LessonAttendance.objects.get().schedule, elective_slot)

    def test_classroom_device_without_room_is_inactive(self):
        Device.objects.filter(pk=self.classroom.pk).update(room=None)

        response = self.scan('RFID-C1', '2026-03-02T01:15:00')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['code'], 'DEVICE_INACTIVE')


class ScanRejectionTests(AttendanceFixtureMixin, APITestCase):
    def setUp(self):
        self.make_fixtures()

    def assertRejected(self, response, http_status, code):
        self.assertEqual(response.status_code, http_status)
        self.assertEqual(response.data, {'success': False, 'error': response.data['error'], 'code': code})

    def test_unknown_device(self):
        self.assertRejected(self.scan('RFID-NONE', '2026-03-02T00:45:00'), 404, 'DEVICE_NOT_FOUND')

    def test_offline_and_unregistered_devices_are_inactive(self):
        Device.objects.create(device_id='RFID-NEW', status=Device.Status.NORMAL)
        Device.objects.filter(pk=self.gate.pk).update(status=Device.Status.OFFLINE)

        self.assertRejected(self.scan('RFID-GATE', '2026-03-02T00:45:00'), 400, 'DEVICE_INACTIVE')
        self.assertRejected(self.scan('RFID-NEW', '2026-03-02T00:45:00'), 400, 'DEVICE_INACTIVE')

    def test_unknown_and_inactive_students(self):
        Student.objects.create(
            name='Gone', student_id='S-009', rfid_tag='DEADBEEF', class_name='A', grade='10', active=False
        )

        self.assertRejected(self.scan('RFID-GATE', '2026-03-02T00:45:00', rfid_tag='00000000'), 404, 'STUDENT_NOT_FOUND')
        self.assertRejected(self.scan('RFID-GATE', '2026-03-02T00:45:00', rfid_tag='DEADBEEF'), 400, 'STUDENT_INACTIVE')
        self.assertFalse(DailyAttendance.objects.exists())

    def test_payload_validation(self):
        bad_tag = self.scan('RFID-GATE', '2026-03-02T00:45:00', rfid_tag='AB-12')
        bad_time = self.scan('RFID-GATE', 'yesterday')
        bad_device = self.scan('x', '2026-03-02T00:45:00')

        self.assertEqual(bad_tag.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('rfidTag', bad_tag.data)
        self.assertEqual(bad_time.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('timestamp', bad_time.data)
        self.assertEqual(bad_device.status_code, status.HTTP_400_BAD_REQUEST)


class GateStateMachineTests(AttendanceFixtureMixin, TestCase):
    def setUp(self):
        self.make_fixtures()

    def test_transitions(self):
        entry = record_gate_scan(self.student, local(7, 0), 'RFID-GATE', SecurityStatus.SECURE)
        exit_ = record_gate_scan(self.student, local(15, 0), 'RFID-GATE', SecurityStatus.SECURE)

        self.assertEqual(entry.transition, TRANSITION_ENTRY)
        self.assertEqual(exit_.transition, TRANSITION_EXIT)
        self.assertEqual(entry.attendance.pk, exit_.attendance.pk)

    def test_lost_create_race_applies_scan_to_existing_record(self):
        DailyAttendance.objects.create(student=self.student, date=MONDAY, entry_time=local(7, 0))

        with patch('attendance.services.daily._find_daily', return_value=None):
            with self.assertLogs('attendance.services.daily', level='INFO'):
                outcome = record_gate_scan(self.student, local(15, 0), 'RFID-GATE', SecurityStatus.SECURE)

        self.assertEqual(outcome.transition, TRANSITION_EXIT)
        self.assertEqual(DailyAttendance.objects.count(), 1)
        self.assertEqual(DailyAttendance.objects.get().exit_time, local(15, 0))

    def test_manual_record_without_entry_gets_entry_and_fan_out(self):
        DailyAttendance.objects.create(
            student=self.student, date=MONDAY, status=DailyAttendance.STATUS_ABSENT, device='manual-entry'
        )

        outcome = record_gate_scan(self.student, local(7, 10), 'RFID-GATE', SecurityStatus.SECURE)

        self.assertEqual(outcome.transition, TRANSITION_ENTRY)
        self.assertEqual(outcome.attendance.entry_time, local(7, 10))
        self.assertEqual(len(outcome.fan_out), 2)


class FanOutTests(AttendanceFixtureMixin, TestCase):
    def setUp(self):
        self.make_fixtures()

    def test_fan_out_is_idempotent(self):
        first = lessons.mark_present_for_day(self.student, MONDAY, local(7, 0), 'RFID-GATE', SecurityStatus.SECURE)
        snapshot = set(LessonAttendance.objects.values_list('student_id', 'schedule_id', 'date'))
        second = lessons.mark_present_for_day(self.student, MONDAY, local(7, 5), 'RFID-GATE', SecurityStatus.SECURE)

        self.assertEqual([outcome.status for outcome in first], [lessons.OUTCOME_CREATED] * 2)
        self.assertEqual([outcome.status for outcome in second], [lessons.OUTCOME_SKIPPED] * 2)
        self.assertEqual(set(LessonAttendance.objects.values_list('student_id', 'schedule_id', 'date')), snapshot)

    def test_constraint_violation_during_fan_out_counts_as_skipped(self):
        with patch('attendance.services.lessons._create_lesson_record', side_effect=IntegrityError):
            outcomes = lessons.mark_present_for_day(
                self.student, MONDAY, local(7, 0), 'RFID-GATE', SecurityStatus.SECURE
            )

        self.assertEqual([outcome.status for outcome in outcomes], [lessons.OUTCOME_SKIPPED] * 2)

    def test_lost_lesson_race_reports_already_present(self):
        with patch('attendance.services.lessons._create_lesson_record', side_effect=IntegrityError):
            with self.assertRaises(AlreadyMarkedPresent):
                lessons.mark_lesson_present(
                    self.student, self.math_slot, MONDAY, local(8, 5), 'RFID-C1', SecurityStatus.SECURE
                )


class ClockTests(TestCase):
    def test_naive_timestamps_are_utc(self):
        self.assertEqual(normalize_scan_time('2026-03-02T01:00:00'), local(8, 0))

    def test_offset_timestamps_are_converted(self):
        self.assertEqual(normalize_scan_time('2026-03-02T08:00:00+07:00'), local(8, 0))
        self.assertEqual(normalize_scan_time('2026-03-02T01:00:00Z'), local(8, 0))

    def test_invalid_timestamp(self):
        with self.assertRaises(ValueError):
            normalize_scan_time('not-a-time')

    def test_start_of_day_is_local_midnight(self):
        self.assertEqual(start_of_day(MONDAY), local(0, 0))


class DailyAttendanceApiTests(AttendanceFixtureMixin, APITestCase):
    def setUp(self):
        self.make_fixtures()
        self.staff = User.objects.create_user(username='admin', password='pwd12345', is_staff=True)
        self.viewer = User.objects.create_user(username='viewer', password='pwd12345')
        self.client.force_authenticate(self.staff)

    def test_manual_entry_sets_start_of_day(self):
        response = self.client.post(
            '/api/attendance/',
            {'student': self.student.pk, 'date': '2026-03-02', 'status': 'present', 'notes': 'Forgot card'},
            format='json',
        )

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        record = DailyAttendance.objects.get()
        self.assertEqual(record.device, 'manual-entry')
        self.assertEqual(record.entry_time, start_of_day(MONDAY))
        self.assertEqual(record.created_by, self.staff)

    def test_manual_absent_has_no_entry_and_duplicate_is_rejected(self):
        payload = {'student': self.student.pk, 'date': '2026-03-02', 'status': 'absent'}

        first = self.client.post('/api/attendance/', payload, format='json')
        duplicate = self.client.post('/api/attendance/', payload, format='json')

        self.assertEqual(first.status_code, status.HTTP_201_CREATED)
        self.assertIsNone(DailyAttendance.objects.get().entry_time)
        self.assertEqual(duplicate.status_code, status.HTTP_400_BAD_REQUEST)

    def test_non_staff_cannot_write(self):
        self.client.force_authenticate(self.viewer)

        response = self.client.post(
            '/api/attendance/', {'student': self.student.pk, 'date': '2026-03-02'}, format='json'
        )

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_patch_status_and_notes(self):
        record = DailyAttendance.objects.create(student=self.student, date=MONDAY, entry_time=local(7, 0))

        response = self.client.patch(
            f'/api/attendance/{record.pk}/', {'status': 'late', 'notes': 'Bus delay'}, format='json'
        )

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        record.refresh_from_db()
        self.assertEqual(record.status, DailyAttendance.STATUS_LATE)
        self.assertEqual(record.notes, 'Bus delay')

    def test_list_filters(self):
        DailyAttendance.objects.create(student=self.student, date=MONDAY)
        DailyAttendance.objects.create(student=self.student, date=date(2026, 3, 3), status='late')

        by_date = self.client.get('/api/attendance/?date=2026-03-03')
        by_range = self.client.get('/api/attendance/?start_date=2026-03-01&end_date=2026-03-02')

        self.assertEqual([row['status'] for row in by_date.data['results']], ['late'])
        self.assertEqual(by_range.data['count'], 1)

    def test_lesson_list(self):
        self.scan('RFID-GATE', '2026-03-02T00:45:00')

        response = self.client.get(f'/api/attendance/lessons/?date=2026-03-02&subject={self.physics.pk}')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['count'], 1)
        self.assertEqual(response.data['results'][0]['subject_name'], 'Physics')

    def test_report_requires_range(self):
        response = self.client.get('/api/attendance/report/')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_report(self):
        DailyAttendance.objects.create(student=self.student, date=MONDAY)
        DailyAttendance.objects.create(student=self.student, date=date(2026, 3, 3), status='late')

        response = self.client.get('/api/attendance/report/?start_date=2026-03-02&end_date=2026-03-03&class_name=A')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['data']['total_days'], 2)
        row = response.data['data']['results'][0]
        self.assertEqual((row['present'], row['late']), (1, 1))
        self.assertEqual(row['attendance_percentage'], 87.5)

    def test_lesson_report(self):
        self.scan('RFID-GATE', '2026-03-02T00:45:00')

        response = self.client.get('/api/attendance/lessons/report/?start_date=2026-03-02&end_date=2026-03-02')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data['data']['results']), 2)
        self.assertEqual(response.data['data']['results'][0]['attendance_percentage'], 100.0)


class ReportingTests(AttendanceFixtureMixin, TestCase):
    def setUp(self):
        self.make_fixtures()

    def test_percentage_weights(self):
        self.assertEqual(attendance_percentage(2, 1, 1, 4), 81.25)
        self.assertEqual(attendance_percentage(1, 0, 0, 3), 33.33)
        self.assertEqual(attendance_percentage(0, 0, 0, 0), 0.0)

    def test_daily_report_counts_days_without_records_as_missing(self):
        DailyAttendance.objects.create(student=self.student, date=MONDAY, status='half-day')

        report = daily_report(MONDAY, date(2026, 3, 6))

        self.assertEqual(report['total_days'], 5)
        self.assertEqual(report['results'][0]['half_day'], 1)
        self.assertEqual(report['results'][0]['attendance_percentage'], 10.0)

    def test_lesson_report_uses_recorded_lessons_as_denominator(self):
        for day, status_ in ((MONDAY, 'present'), (date(2026, 3, 9), 'late'), (date(2026, 3, 16), 'absent')):
            LessonAttendance.objects.create(
                student=self.student,
                schedule=self.math_slot,
                subject=self.math,
                room=self.lab1,
                date=day,
                scan_time=local(8, 5, day=day),
                status=status_,
                device='RFID-C1',
            )

        report = lesson_report(MONDAY, date(2026, 3, 31), subject=self.math.pk)

        row = report['results'][0]
        self.assertEqual((row['present'], row['late'], row['absent'], row['total']), (1, 1, 1, 3))
        self.assertEqual(row['attendance_percentage'], 58.33)
        self.assertEqual(report['date_range'], {'start_date': '2026-03-02', 'end_date': '2026-03-31'})
