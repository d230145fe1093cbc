from datetime import timedelta
from io import StringIO

from django.contrib.auth import get_user_model
from django.core.cache import cache
from django.core.management import call_command
from django.test import override_settings
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APITestCase

from devices.models import Device
from devices.services.registry import hashed_id_from_mac, sweep_offline_devices
from school.models import Room


User = get_user_model()


class DeviceRegistrationTests(APITestCase):
    def setUp(self):
        cache.clear()
        self.staff = User.objects.create_user(username='admin', password='pwd12345', is_staff=True)
        self.user = User.objects.create_user(username='viewer', password='pwd12345')
        self.room = Room.objects.create(name='Lab 1', code='lab1', capacity=30)

    def test_register_creates_offline_device(self):
        self.client.force_authenticate(self.staff)
        payload = {'device_id': 'RFID-1A2B3C4D', 'location': 'CLASSROOM', 'room': self.room.pk}

        response = self.client.post('/api/devices/register/', payload, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        device = Device.objects.get(device_id='RFID-1A2B3C4D')
        self.assertEqual(device.status, Device.Status.OFFLINE)
        self.assertEqual(device.hashed_mac_id, '1A2B3C4D')
        self.assertEqual(device.room, self.room)

    def test_register_existing_device_updates_in_place(self):
        Device.objects.create(device_id='RFID-ABC', location=Device.Location.ENTRANCE_GATE, status=Device.Status.NORMAL)
        self.client.force_authenticate(self.staff)

        response = self.client.post(
            '/api/devices/register/',
            {'device_id': 'RFID-ABC', 'location': 'CLASSROOM', 'room': self.room.pk},
            format='json',
        )

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(Device.objects.count(), 1)
        device = Device.objects.get(device_id='RFID-ABC')
        self.assertEqual(device.location, Device.Location.CLASSROOM)
        self.assertEqual(device.status, Device.Status.NORMAL)

    def test_classroom_device_requires_room(self):
        self.client.force_authenticate(self.staff)

        response = self.client.post(
            '/api/devices/register/',
            {'device_id': 'RFID-1234', 'location': 'CLASSROOM'},
            format='json',
        )

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('room', response.data)

    def test_gate_device_drops_room(self):
        self.client.force_authenticate(self.staff)

        response = self.client.post(
            '/api/devices/register/',
            {'device_id': 'RFID-5678', 'location': 'ENTRANCE_GATE', 'room': self.room.pk},
            format='json',
        )

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertIsNone(Device.objects.get(device_id='RFID-5678').room)

    def test_device_id_format_is_enforced(self):
        self.client.force_authenticate(self.staff)

        response = self.client.post(
            '/api/devices/register/',
            {'device_id': 'gate-1', 'location': 'ENTRANCE_GATE'},
            format='json',
        )

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('device_id', response.data)

    def test_non_staff_cannot_register(self):
        self.client.force_authenticate(self.user)

        response = self.client.post(
            '/api/devices/register/',
            {'device_id': 'RFID-1234', 'location': 'ENTRANCE_GATE'},
            format='json',
        )

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertFalse(Device.objects.exists())

    def test_list_requires_staff_and_sweeps_stale_devices(self):
        stale = Device.objects.create(
            device_id='RFID-OLD',
            location=Device.Location.ENTRANCE_GATE,
            status=Device.Status.NORMAL,
        )
        Device.objects.filter(pk=stale.pk).update(last_heartbeat=timezone.now() - timedelta(minutes=10))

        self.client.force_authenticate(self.user)
        self.assertEqual(self.client.get('/api/devices/').status_code, status.HTTP_403_FORBIDDEN)

        self.client.force_authenticate(self.staff)
        response = self.client.get('/api/devices/')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['count'], 1)
        self.assertEqual(response.data['results'][0]['status'], Device.Status.OFFLINE)

    def test_update_device_by_device_id(self):
        Device.objects.create(device_id='RFID-AA', location=Device.Location.CLASSROOM, room=self.room)
        self.client.force_authenticate(self.staff)

        response = self.client.patch(
            '/api/devices/RFID-AA/',
            {'location': 'ENTRANCE_GATE', 'description': 'Main gate'},
            format='json',
        )

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        device = Device.objects.get(device_id='RFID-AA')
        self.assertEqual(device.location, Device.Location.ENTRANCE_GATE)
        self.assertIsNone(device.room)
        self.assertEqual(device.description, 'Main gate')


class DeviceConnectionTests(APITestCase):
    def setUp(self):
        cache.clear()

    def test_hash_is_rolling_31_over_clean_mac(self):
        self.assertEqual(hashed_id_from_mac('A'), '41')
        self.assertEqual(hashed_id_from_mac('a:b'), '821')
        self.assertLessEqual(len(hashed_id_from_mac('AA:BB:CC:DD:EE:FF')), 8)

    def test_connect_by_mac_creates_unassigned_device(self):
        response = self.client.post(
            '/api/devices/connect/',
            {'macAddress': 'aa:bb:cc:dd:ee:ff', 'ipAddress': '10.0.0.5', 'firmware': '1.2.0'},
            format='json',
        )

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        expected_id = f"RFID-{hashed_id_from_mac('AA:BB:CC:DD:EE:FF')}"
        device = Device.objects.get(device_id=expected_id)
        self.assertEqual(device.mac_address, 'AA:BB:CC:DD:EE:FF')
        self.assertEqual(device.status, Device.Status.NORMAL)
        self.assertEqual(device.location, '')
        self.assertEqual(device.ip_address, '10.0.0.5')
        self.assertEqual(response.data['data']['device_id'], expected_id)

    def test_reconnect_keeps_registration(self):
        Device.objects.create(device_id='RFID-BEEF', location=Device.Location.ENTRANCE_GATE)

        response = self.client.post('/api/devices/connect/', {'deviceId': 'RFID-BEEF'}, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        device = Device.objects.get(device_id='RFID-BEEF')
        self.assertEqual(device.location, Device.Location.ENTRANCE_GATE)
        self.assertEqual(device.status, Device.Status.NORMAL)

    def test_connect_requires_id_or_mac(self):
        response = self.client.post('/api/devices/connect/', {}, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_heartbeat_updates_status_and_network(self):
        Device.objects.create(device_id='RFID-CAFE', location=Device.Location.ENTRANCE_GATE)

        response = self.client.post(
            '/api/devices/heartbeat/',
            {'deviceId': 'RFID-CAFE', 'status': 'TAMPERED', 'wifiSignal': -60, 'uptime': 3600},
            format='json',
        )

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIn('serverTime', response.data)
        device = Device.objects.get(device_id='RFID-CAFE')
        self.assertEqual(device.status, Device.Status.TAMPERED)
        self.assertEqual(device.wifi_signal, -60)
        self.assertEqual(device.uptime, 3600)

    def test_heartbeat_alias_defaults_to_normal(self):
        Device.objects.create(device_id='RFID-CAFE', location=Device.Location.ENTRANCE_GATE)

        response = self.client.post('/api/attendance/device/heartbeat/', {'deviceId': 'RFID-CAFE'}, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(Device.objects.get(device_id='RFID-CAFE').status, Device.Status.NORMAL)

    def test_heartbeat_unknown_device_is_404(self):
        response = self.client.post('/api/devices/heartbeat/', {'deviceId': 'RFID-NOPE'}, format='json')

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertFalse(response.data['success'])

    def test_public_lookup(self):
        Device.objects.create(device_id='RFID-CAFE', location=Device.Location.ENTRANCE_GATE)

        response = self.client.get('/api/devices/device/RFID-CAFE/')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['data']['location'], Device.Location.ENTRANCE_GATE)

    @override_settings(ATTENDANCE_DEVICE_TOKEN='s3cret')
    def test_device_token_is_required_when_configured(self):
        Device.objects.create(device_id='RFID-CAFE', location=Device.Location.ENTRANCE_GATE)

        denied = self.client.post('/api/devices/heartbeat/', {'deviceId': 'RFID-CAFE'}, format='json')
        allowed = self.client.post(
            '/api/devices/heartbeat/',
            {'deviceId': 'RFID-CAFE'},
            format='json',
            HTTP_X_DEVICE_TOKEN='s3cret',
        )

        self.assertEqual(denied.status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(allowed.status_code, status.HTTP_200_OK)


class OfflineSweepTests(APITestCase):
    def test_sweep_marks_only_stale_devices(self):
        now = timezone.now()
        fresh = Device.objects.create(device_id='RFID-1', status=Device.Status.NORMAL)
        stale = Device.objects.create(device_id='RFID-2', status=Device.Status.TAMPERED)
        Device.objects.filter(pk=stale.pk).update(last_heartbeat=now - timedelta(seconds=121))

        self.assertEqual(sweep_offline_devices(now=now), 1)

        fresh.refresh_from_db()
        stale.refresh_from_db()
        self.assertEqual(fresh.status, Device.Status.NORMAL)
        self.assertEqual(stale.status, Device.Status.OFFLINE)

    def test_sweep_command_reports_count(self):
        stale = Device.objects.create(device_id='RFID-3', status=Device.Status.NORMAL)
        Device.objects.filter(pk=stale.pk).update(last_heartbeat=timezone.now() - timedelta(hours=1))
        out = StringIO()

        call_command('sweep_offline_devices', stdout=out)

        self.assertIn('Marked 1 devices offline', out.getvalue())
        self.assertEqual(Device.objects.get(pk=stale.pk).status, Device.Status.OFFLINE)
