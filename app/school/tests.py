from datetime import time

from django.contrib.auth import get_user_model
from django.core.cache import cache
from rest_framework import status
from rest_framework.test import APITestCase

from school.models import Enrollment, Room, Student, Subject, Teacher
from timetable.models import DayOfWeek, ScheduleSlot


User = get_user_model()


class SchoolApiTestCase(APITestCase):
    def setUp(self):
        cache.clear()
        self.staff = User.objects.create_user(username='admin', password='pwd12345', is_staff=True)
        self.user = User.objects.create_user(username='viewer', password='pwd12345')
        self.client.force_authenticate(self.staff)


class RoomApiTests(SchoolApiTestCase):
    def test_code_is_upper_cased_and_unique(self):
        response = self.client.post('/api/rooms/', {'name': 'Lab', 'code': 'lab1', 'capacity': 30}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['code'], 'LAB1')

        duplicate = self.client.post('/api/rooms/', {'name': 'Lab 2', 'code': 'LAB1', 'capacity': 30}, format='json')
        self.assertEqual(duplicate.status_code, status.HTTP_400_BAD_REQUEST)

    def test_capacity_must_be_positive(self):
        response = self.client.post('/api/rooms/', {'name': 'Lab', 'code': 'L0', 'capacity': 0}, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_delete_is_soft(self):
        room = Room.objects.create(name='Lab', code='L1', capacity=10)

        response = self.client.delete(f'/api/rooms/{room.pk}/')

        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        room.refresh_from_db()
        self.assertFalse(room.active)

    def test_reads_allowed_for_authenticated_users_only(self):
        Room.objects.create(name='Lab', code='L1', capacity=10)

        self.client.force_authenticate(self.user)
        self.assertEqual(self.client.get('/api/rooms/').data['count'], 1)
        denied = self.client.post('/api/rooms/', {'name': 'X', 'code': 'X1', 'capacity': 5}, format='json')
        self.assertEqual(denied.status_code, status.HTTP_403_FORBIDDEN)

        self.client.force_authenticate(None)
        self.assertEqual(self.client.get('/api/rooms/').status_code, status.HTTP_401_UNAUTHORIZED)

    def test_list_is_paginated_with_limit(self):
        for index in range(3):
            Room.objects.create(name=f'Room {index}', code=f'R{index}', capacity=10)

        response = self.client.get('/api/rooms/?limit=2')

        self.assertEqual(response.data['count'], 3)
        self.assertEqual(len(response.data['results']), 2)


class TeacherApiTests(SchoolApiTestCase):
    def setUp(self):
        super().setUp()
        self.teacher = Teacher.objects.create(name='Ms. Rahma', email='rahma@school.test')

    def test_cannot_delete_teacher_with_active_slots(self):
        ScheduleSlot.objects.create(
            subject=Subject.objects.create(name='Math', code='MTH', grade='10'),
            teacher=self.teacher,
            room=Room.objects.create(name='Lab', code='L1', capacity=10),
            class_name='A',
            grade='10',
            day_of_week=DayOfWeek.MONDAY,
            start_time=time(8, 0),
            end_time=time(9, 0),
        )

        response = self.client.delete(f'/api/teachers/{self.teacher.pk}/')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertTrue(Teacher.objects.filter(pk=self.teacher.pk).exists())

    def test_delete_teacher_without_slots(self):
        response = self.client.delete(f'/api/teachers/{self.teacher.pk}/')

        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse(Teacher.objects.exists())


class StudentApiTests(SchoolApiTestCase):
    def setUp(self):
        super().setUp()
        self.student = Student.objects.create(
            name='Budi', student_id='S-001', rfid_tag='AB12CD34', class_name='A', grade='10'
        )

    def test_rfid_tag_format_and_uniqueness(self):
        payload = {'name': 'Sari', 'student_id': 'S-002', 'class_name': 'A', 'grade': '10'}

        too_short = self.client.post('/api/students/', {**payload, 'rfid_tag': 'AB12'}, format='json')
        taken = self.client.post('/api/students/', {**payload, 'rfid_tag': 'AB12CD34'}, format='json')
        created = self.client.post('/api/students/', {**payload, 'rfid_tag': 'FF00FF00'}, format='json')

        self.assertEqual(too_short.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(taken.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(created.status_code, status.HTTP_201_CREATED)

    def test_lookup_by_rfid(self):
        response = self.client.get('/api/students/rfid/AB12CD34/')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['data']['student_id'], 'S-001')
        self.assertEqual(self.client.get('/api/students/rfid/00000000/').status_code, status.HTTP_404_NOT_FOUND)

    def test_filters(self):
        Student.objects.create(name='Sari', student_id='S-002', rfid_tag='FF00FF00', class_name='B', grade='10')

        response = self.client.get('/api/students/?class_name=B')
        self.assertEqual([row['name'] for row in response.data['results']], ['Sari'])

        response = self.client.get('/api/students/?search=ab12')
        self.assertEqual([row['name'] for row in response.data['results']], ['Budi'])

    def test_last_rfid_round_trip(self):
        self.assertEqual(self.client.get('/api/students/last-rfid/').status_code, status.HTTP_404_NOT_FOUND)

        stored = self.client.post(
            '/api/students/store-rfid/',
            {'rfidTag': 'AB12CD34', 'deviceId': 'RFID-1A2B'},
            format='json',
        )
        self.assertEqual(stored.status_code, status.HTTP_200_OK)
        self.client.post('/api/students/store-rfid/', {'rfidTag': '99998888', 'deviceId': 'RFID-1A2B'}, format='json')

        response = self.client.get('/api/students/last-rfid/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['data']['rfid_tag'], '99998888')
        self.assertFalse(response.data['data']['assigned'])


class EnrollmentApiTests(SchoolApiTestCase):
    def setUp(self):
        super().setUp()
        self.subject = Subject.objects.create(name='Physics', code='phy', grade='10')
        self.budi = Student.objects.create(
            name='Budi', student_id='S-001', rfid_tag='AB12CD34', class_name='A', grade='10'
        )
        self.sari = Student.objects.create(
            name='Sari', student_id='S-002', rfid_tag='FF00FF00', class_name='A', grade='10'
        )

    def test_assign_creates_and_reports_existing(self):
        Enrollment.objects.create(student=self.budi, subject=self.subject)

        response = self.client.post(
            f'/api/subjects/{self.subject.pk}/assign/',
            {'student_ids': [self.budi.pk, self.sari.pk]},
            format='json',
        )

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['data']['created'], 1)
        self.assertEqual(len(response.data['data']['messages']), 1)
        self.assertEqual(Enrollment.objects.filter(subject=self.subject, active=True).count(), 2)

    def test_assign_rejects_unknown_students(self):
        response = self.client.post(
            f'/api/subjects/{self.subject.pk}/assign/',
            {'student_ids': [self.budi.pk, 9999]},
            format='json',
        )

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertFalse(Enrollment.objects.exists())

    def test_unassign_is_soft_and_reassign_reactivates(self):
        enrollment = Enrollment.objects.create(student=self.budi, subject=self.subject)

        response = self.client.delete(f'/api/subjects/{self.subject.pk}/assign/{self.budi.pk}/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        enrollment.refresh_from_db()
        self.assertFalse(enrollment.active)

        again = self.client.delete(f'/api/subjects/{self.subject.pk}/assign/{self.budi.pk}/')
        self.assertEqual(again.status_code, status.HTTP_404_NOT_FOUND)

        response = self.client.post(
            f'/api/subjects/{self.subject.pk}/assign/',
            {'student_ids': [self.budi.pk]},
            format='json',
        )
        self.assertEqual(response.data['data']['reactivated'], 1)
        enrollment.refresh_from_db()
        self.assertTrue(enrollment.active)

    def test_students_and_subjects_listing(self):
        Enrollment.objects.create(student=self.budi, subject=self.subject)
        Enrollment.objects.create(student=self.sari, subject=self.subject, active=False)

        students = self.client.get(f'/api/subjects/{self.subject.pk}/students/')
        subjects = self.client.get(f'/api/students/{self.budi.pk}/subjects/')

        self.assertEqual([row['name'] for row in students.data['data']], ['Budi'])
        self.assertEqual([row['code'] for row in subjects.data['data']], ['PHY'])
