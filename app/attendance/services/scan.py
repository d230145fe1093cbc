from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime

from django.db import DatabaseError

from attendance.exceptions import (
    DeviceInactive,
    DeviceNotFound,
    InvalidDeviceLocation,
    NoActiveLesson,
    ScanErrorKind,
    ScanRejected,
    StudentInactive,
    StudentNotFound,
)
from attendance.models import DailyAttendance, LessonAttendance, SecurityStatus
from attendance.services.clock import local_day, normalize_scan_time
from attendance.services.daily import record_gate_scan
from attendance.services.lessons import FanOutOutcome, mark_lesson_present
from devices.models import Device
from school.models import Student
from timetable.models import ScheduleSlot
from timetable.services.lesson_matcher import match_lesson
from timetable.services.time_window import resolve_active_slots

logger = logging.getLogger(__name__)

INTERNAL_ERROR_MESSAGE = "Internal server error occurred while processing attendance"


@dataclass
class ScanEvent:
    rfid_tag: str
    device_id: str
    timestamp: str | None = None
    status: str | None = None
    location: str | None = None


@dataclass
class ScanResult:
    success: bool
    message: str
    student: Student | None = None
    attendance: DailyAttendance | None = None
    lesson_attendance: LessonAttendance | None = None
    lesson: ScheduleSlot | None = None
    fan_out: list[FanOutOutcome] = field(default_factory=list)
    error: ScanErrorKind | None = None

    @classmethod
    def rejected(cls, exc: ScanRejected) -> "ScanResult":
        return cls(success=False, message=exc.message, error=exc.kind)


@dataclass
class _ScanContext:
    student: Student
    device: Device
    scanned_at: datetime
    security_status: str


def _security_status(reported: str | None) -> str:
    if reported == SecurityStatus.TAMPERED:
        return SecurityStatus.TAMPERED
    return SecurityStatus.SECURE


def _resolve_device(device_id: str) -> Device:
    device = Device.objects.select_related("room").filter(device_id=device_id).first()
    if device is None:
        raise DeviceNotFound()
    if not device.location or device.status == Device.Status.OFFLINE:
        raise DeviceInactive()
    return device


def _resolve_student(rfid_tag: str) -> Student:
    student = Student.objects.filter(rfid_tag=rfid_tag).first()
    if student is None:
        raise StudentNotFound()
    if not student.active:
        raise StudentInactive()
    return student


def _handle_entrance_gate(ctx: _ScanContext) -> ScanResult:
    outcome = record_gate_scan(ctx.student, ctx.scanned_at, ctx.device.device_id, ctx.security_status)
    return ScanResult(
        success=True,
        message=outcome.message,
        student=ctx.student,
        attendance=outcome.attendance,
        fan_out=outcome.fan_out,
    )


def _handle_classroom(ctx: _ScanContext) -> ScanResult:
    if ctx.device.room is None:
        raise DeviceInactive("Classroom device has no assigned room")

    candidates = resolve_active_slots(ctx.device.room, ctx.scanned_at)
    lesson = match_lesson(candidates, ctx.student)
    if lesson is None:
        raise NoActiveLesson()

    lesson_attendance = mark_lesson_present(
        ctx.student,
        lesson,
        local_day(ctx.scanned_at),
        ctx.scanned_at,
        ctx.device.device_id,
        ctx.security_status,
    )
    return ScanResult(
        success=True,
        message=f"Attendance recorded for {lesson.subject.name} lesson",
        student=ctx.student,
        lesson_attendance=lesson_attendance,
        lesson=lesson,
    )


LOCATION_HANDLERS: dict[str, Callable[[_ScanContext], ScanResult]] = {
    Device.Location.ENTRANCE_GATE.value: _handle_entrance_gate,
    Device.Location.CLASSROOM.value: _handle_classroom,
}


def _dispatch(event: ScanEvent) -> ScanResult:
    scanned_at = normalize_scan_time(event.timestamp)
    security_status = _security_status(event.status)
    if security_status == SecurityStatus.TAMPERED:
        logger.warning("Device reported tampered status", extra={"device_id": event.device_id})

    device = _resolve_device(event.device_id)
    student = _resolve_student(event.rfid_tag)

    handler = LOCATION_HANDLERS.get(device.location)
    if handler is None:
        raise InvalidDeviceLocation()

    return handler(
        _ScanContext(
            student=student,
            device=device,
            scanned_at=scanned_at,
            security_status=security_status,
        )
    )


def process_scan(event: ScanEvent) -> ScanResult:
    """Apply one RFID scan and report the outcome.

    Domain rejections and store failures are returned as a failed result
    carrying the error kind; nothing is retried here.
    """
    logger.info(
        "RFID scan received",
        extra={
            "device_id": event.device_id,
            "rfid_tag": event.rfid_tag,
            "timestamp": event.timestamp,
            "location_hint": event.location,
        },
    )

    try:
        return _dispatch(event)
    except ScanRejected as exc:
        logger.info(
            "RFID scan rejected: %s",
            exc.kind.value,
            extra={"device_id": event.device_id, "rfid_tag": event.rfid_tag},
        )
        return ScanResult.rejected(exc)
    except DatabaseError:
        logger.exception("Attendance recording failed", extra={"device_id": event.device_id})
        return ScanResult(success=False, message=INTERNAL_ERROR_MESSAGE, error=ScanErrorKind.INTERNAL_ERROR)
