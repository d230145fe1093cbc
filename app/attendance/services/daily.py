from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime

from django.db import IntegrityError, transaction
from django.utils import timezone

from attendance.exceptions import AttendanceAlreadyComplete
from attendance.models import DailyAttendance
from attendance.services.clock import local_day
from attendance.services.lessons import FanOutOutcome, mark_present_for_day
from devices.models import Device
from school.models import Student

logger = logging.getLogger(__name__)

TRANSITION_ENTRY = "entry"
TRANSITION_EXIT = "exit"


@dataclass
class GateOutcome:
    attendance: DailyAttendance
    transition: str
    message: str
    fan_out: list[FanOutOutcome] = field(default_factory=list)


def _find_daily(student: Student, day: date) -> DailyAttendance | None:
    return DailyAttendance.objects.filter(student=student, date=day).first()


def _create_entry(
    student: Student,
    day: date,
    scanned_at: datetime,
    device_id: str,
    security_status: str,
) -> DailyAttendance | None:
    try:
        with transaction.atomic():
            return DailyAttendance.objects.create(
                student=student,
                date=day,
                entry_time=scanned_at,
                device=device_id,
                security_status=security_status,
                location=Device.Location.ENTRANCE_GATE,
            )
    except IntegrityError:
        logger.info(
            "Concurrent gate entry detected, applying scan to existing record",
            extra={"student_id": student.pk, "day": day.isoformat()},
        )
        return None


def _claim(attendance: DailyAttendance, unset_field: str, scanned_at: datetime, device_id: str, security_status: str) -> bool:
    # Conditional update: only one concurrent scan can fill an empty column.
    updated = DailyAttendance.objects.filter(pk=attendance.pk, **{f"{unset_field}__isnull": True}).update(
        **{unset_field: scanned_at},
        device=device_id,
        security_status=security_status,
        updated_at=timezone.now(),
    )
    if updated:
        attendance.refresh_from_db()
    return bool(updated)


def _entry_outcome(
    attendance: DailyAttendance,
    student: Student,
    scanned_at: datetime,
    device_id: str,
    security_status: str,
) -> GateOutcome:
    fan_out = mark_present_for_day(student, attendance.date, scanned_at, device_id, security_status)
    return GateOutcome(
        attendance=attendance,
        transition=TRANSITION_ENTRY,
        message="Entry recorded - student marked present for all lessons today",
        fan_out=fan_out,
    )


def record_gate_scan(
    student: Student,
    scanned_at: datetime,
    device_id: str,
    security_status: str,
) -> GateOutcome:
    """Apply one entrance-gate scan to the student's daily record.

    NoRecord -> EntryRecorded (creates the record and fans out to lessons),
    EntryRecorded -> Complete (sets the exit time), Complete -> rejected with
    ``AttendanceAlreadyComplete``. The (student, date) unique constraint and
    conditional updates make concurrent scans behave as if applied in turn.
    """
    day = local_day(scanned_at)

    attendance = _find_daily(student, day)
    if attendance is None:
        attendance = _create_entry(student, day, scanned_at, device_id, security_status)
        if attendance is not None:
            return _entry_outcome(attendance, student, scanned_at, device_id, security_status)
        attendance = DailyAttendance.objects.get(student=student, date=day)

    # Manual records (e.g. marked absent by staff) have no entry time yet.
    if attendance.entry_time is None:
        if _claim(attendance, "entry_time", scanned_at, device_id, security_status):
            return _entry_outcome(attendance, student, scanned_at, device_id, security_status)
        attendance.refresh_from_db()

    if attendance.exit_time is None and _claim(attendance, "exit_time", scanned_at, device_id, security_status):
        return GateOutcome(
            attendance=attendance,
            transition=TRANSITION_EXIT,
            message="Exit time recorded",
        )

    raise AttendanceAlreadyComplete()
