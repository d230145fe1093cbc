from django.urls import path, include
from rest_framework.routers import DefaultRouter
from rest_framework_simplejwt.views import TokenObtainPairView, TokenRefreshView

from attendance.views import DailyAttendanceViewSet, ScanView
from devices.views import DeviceConnectView, DeviceHeartbeatView, DeviceLookupView, DeviceViewSet
from school.views import RoomViewSet, StudentViewSet, SubjectViewSet, TeacherViewSet
from timetable.views import ScheduleSlotViewSet

router = DefaultRouter()
router.register(r'rooms', RoomViewSet)
router.register(r'subjects', SubjectViewSet)
router.register(r'teachers', TeacherViewSet)
router.register(r'students', StudentViewSet)
router.register(r'schedules', ScheduleSlotViewSet)
router.register(r'devices', DeviceViewSet)
router.register(r'attendance', DailyAttendanceViewSet)

# Device-facing routes come before the router so they are not taken as detail lookups.
urlpatterns = [
    path('auth/token/', TokenObtainPairView.as_view(), name='token_obtain_pair'),
    path('auth/refresh/', TokenRefreshView.as_view(), name='token_refresh'),
    path('devices/connect/', DeviceConnectView.as_view(), name='device_connect'),
    path('devices/heartbeat/', DeviceHeartbeatView.as_view(), name='device_heartbeat'),
    path('devices/device/<str:device_id>/', DeviceLookupView.as_view(), name='device_lookup'),
    path('attendance/scan/', ScanView.as_view(), name='attendance_scan'),
    path('attendance/device/heartbeat/', DeviceHeartbeatView.as_view(), name='attendance_device_heartbeat'),
    path('', include(router.urls)),
]
