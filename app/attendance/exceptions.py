from __future__ import annotations

from enum import Enum


class ScanErrorKind(str, Enum):
    DEVICE_NOT_FOUND = "DEVICE_NOT_FOUND"
    DEVICE_INACTIVE = "DEVICE_INACTIVE"
    STUDENT_NOT_FOUND = "STUDENT_NOT_FOUND"
    STUDENT_INACTIVE = "STUDENT_INACTIVE"
    INVALID_DEVICE_LOCATION = "INVALID_DEVICE_LOCATION"
    ATTENDANCE_COMPLETE = "ATTENDANCE_COMPLETE"
    ALREADY_PRESENT = "ALREADY_PRESENT"
    NO_ACTIVE_LESSON = "NO_ACTIVE_LESSON"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class ScanRejected(Exception):
    kind: ScanErrorKind
    default_message = "Scan rejected"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class DeviceNotFound(ScanRejected):
    kind = ScanErrorKind.DEVICE_NOT_FOUND
    default_message = "Device not found or not registered"


class DeviceInactive(ScanRejected):
    kind = ScanErrorKind.DEVICE_INACTIVE
    default_message = "Device is not registered or inactive"


class StudentNotFound(ScanRejected):
    kind = ScanErrorKind.STUDENT_NOT_FOUND
    default_message = "Student not found with this RFID tag"


class StudentInactive(ScanRejected):
    kind = ScanErrorKind.STUDENT_INACTIVE
    default_message = "Student account is inactive"


class InvalidDeviceLocation(ScanRejected):
    kind = ScanErrorKind.INVALID_DEVICE_LOCATION
    default_message = "Invalid device location"


class AttendanceAlreadyComplete(ScanRejected):
    kind = ScanErrorKind.ATTENDANCE_COMPLETE
    default_message = "Student already has complete attendance record for today"


class AlreadyMarkedPresent(ScanRejected):
    kind = ScanErrorKind.ALREADY_PRESENT
    default_message = "Student already marked present for this lesson"


class NoActiveLesson(ScanRejected):
    kind = ScanErrorKind.NO_ACTIVE_LESSON
    default_message = (
        "No active lesson found for this room and time - "
        "student may be in wrong classroom or not assigned to this subject"
    )
