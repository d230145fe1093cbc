from datetime import datetime, time

from django.contrib.auth import get_user_model
from django.core.cache import cache
from rest_framework import status
from rest_framework.test import APITestCase

from attendance.services.clock import local_timezone
from school.models import Enrollment, Room, Student, Subject, Teacher
from timetable.models import DayOfWeek, ScheduleSlot
from timetable.services.lesson_matcher import match_lesson
from timetable.services.time_window import resolve_active_slots


User = get_user_model()

# 2026-03-02 is a Monday.
MONDAY = (2026, 3, 2)


def local(hour, minute, second=0):
    return datetime(*MONDAY, hour, minute, second, tzinfo=local_timezone())


class TimetableFixtureMixin:
    def make_fixtures(self):
        self.room = Room.objects.create(name='Lab 1', code='LAB1', capacity=30)
        self.other_room = Room.objects.create(name='Lab 2', code='LAB2', capacity=30)
        self.teacher = Teacher.objects.create(name='Ms. Rahma', email='rahma@school.test')
        self.other_teacher = Teacher.objects.create(name='Mr. Andi', email='andi@school.test')
        self.math = Subject.objects.create(name='Math', code='MTH', grade='10')
        self.physics = Subject.objects.create(name='Physics', code='PHY', grade='10')
        self.student = Student.objects.create(
            name='Budi', student_id='S-001', rfid_tag='AB12CD34', class_name='A', grade='10'
        )

    def make_slot(self, subject=None, room=None, teacher=None, start=time(8, 0), end=time(9, 30), **extra):
        values = {
            'subject': subject or self.math,
            'teacher': teacher or self.teacher,
            'room': room or self.room,
            'class_name': 'A',
            'grade': '10',
            'day_of_week': DayOfWeek.MONDAY,
            'start_time': start,
            'end_time': end,
        }
        values.update(extra)
        return ScheduleSlot.objects.create(**values)


class TimeWindowTests(TimetableFixtureMixin, APITestCase):
    def setUp(self):
        self.make_fixtures()
        self.slot = self.make_slot()

    def test_day_of_week_from_date(self):
        self.assertEqual(DayOfWeek.for_date(local(8, 0).date()), DayOfWeek.MONDAY)

    def test_start_and_end_minutes_are_inclusive(self):
        self.assertEqual(resolve_active_slots(self.room, local(8, 0)), [self.slot])
        self.assertEqual(resolve_active_slots(self.room, local(9, 30, 59)), [self.slot])

    def test_outside_window_matches_nothing(self):
        self.assertEqual(resolve_active_slots(self.room, local(7, 59, 59)), [])
        self.assertEqual(resolve_active_slots(self.room, local(9, 31)), [])

    def test_other_room_day_and_inactive_slots_are_ignored(self):
        self.make_slot(room=self.other_room)
        self.make_slot(day_of_week=DayOfWeek.TUESDAY)
        self.make_slot(is_active=False)

        self.assertEqual(resolve_active_slots(self.room, local(8, 15)), [self.slot])


class LessonMatcherTests(TimetableFixtureMixin, APITestCase):
    def setUp(self):
        self.make_fixtures()

    def test_enrollment_beats_class_match(self):
        class_slot = self.make_slot(subject=self.math)
        enrolled_slot = self.make_slot(subject=self.physics, class_name='B', teacher=self.other_teacher)
        Enrollment.objects.create(student=self.student, subject=self.physics)

        self.assertEqual(match_lesson([class_slot, enrolled_slot], self.student), enrolled_slot)

    def test_inactive_enrollment_is_ignored(self):
        class_slot = self.make_slot(subject=self.math)
        other_slot = self.make_slot(subject=self.physics, class_name='B', teacher=self.other_teacher)
        Enrollment.objects.create(student=self.student, subject=self.physics, active=False)

        self.assertEqual(match_lesson([other_slot, class_slot], self.student), class_slot)

    def test_no_match_returns_none(self):
        slot = self.make_slot(class_name='B')

        self.assertIsNone(match_lesson([slot], self.student))
        self.assertIsNone(match_lesson([], self.student))


class ScheduleApiTests(TimetableFixtureMixin, APITestCase):
    def setUp(self):
        cache.clear()
        self.make_fixtures()
        self.staff = User.objects.create_user(username='admin', password='pwd12345', is_staff=True)
        self.client.force_authenticate(self.staff)

    def payload(self, **overrides):
        values = {
            'subject': self.math.pk,
            'teacher': self.teacher.pk,
            'room': self.room.pk,
            'class_name': 'A',
            'grade': '10',
            'day_of_week': 'Monday',
            'start_time': '08:00',
            'end_time': '09:00',
        }
        values.update(overrides)
        return values

    def test_create_slot(self):
        response = self.client.post('/api/schedules/', self.payload(), format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['room_code'], 'LAB1')

    def test_start_must_precede_end(self):
        response = self.client.post(
            '/api/schedules/', self.payload(start_time='09:00', end_time='09:00'), format='json'
        )

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_room_teacher_and_class_overlaps_are_rejected(self):
        self.make_slot(start=time(8, 0), end=time(9, 0))

        room_clash = self.payload(teacher=self.other_teacher.pk, class_name='B', start_time='08:30', end_time='09:30')
        teacher_clash = self.payload(room=self.other_room.pk, class_name='B', start_time='08:30', end_time='09:30')
        class_clash = self.payload(room=self.other_room.pk, teacher=self.other_teacher.pk, start_time='08:30')

        for payload in (room_clash, teacher_clash, class_clash):
            response = self.client.post('/api/schedules/', payload, format='json')
            self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_back_to_back_slots_do_not_overlap(self):
        self.make_slot(start=time(8, 0), end=time(9, 0))

        response = self.client.post(
            '/api/schedules/', self.payload(start_time='09:00', end_time='10:00'), format='json'
        )

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)

    def test_update_excludes_itself_from_overlap_check(self):
        slot = self.make_slot(start=time(8, 0), end=time(9, 0))

        response = self.client.patch(f'/api/schedules/{slot.pk}/', {'end_time': '09:15'}, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)

    def test_by_class_and_by_room(self):
        self.make_slot()
        self.make_slot(class_name='B', room=self.other_room, teacher=self.other_teacher)

        by_class = self.client.get('/api/schedules/by-class/?class_name=A&grade=10&day_of_week=Monday')
        by_room = self.client.get(f'/api/schedules/by-room/{self.other_room.pk}/')
        missing = self.client.get('/api/schedules/by-class/?class_name=A')

        self.assertEqual(len(by_class.data['data']), 1)
        self.assertEqual(by_room.data['data'][0]['class_name'], 'B')
        self.assertEqual(missing.status_code, status.HTTP_400_BAD_REQUEST)
