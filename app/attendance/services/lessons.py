from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime

from django.db import DatabaseError, IntegrityError, transaction

from attendance.exceptions import AlreadyMarkedPresent
from attendance.models import LessonAttendance
from school.models import Student
from timetable.models import DayOfWeek, ScheduleSlot
from timetable.services.time_window import slots_for_class_day

logger = logging.getLogger(__name__)

AUTO_MARK_NOTE = "Auto-marked from entrance gate"

OUTCOME_CREATED = "created"
OUTCOME_SKIPPED = "skipped"
OUTCOME_FAILED = "failed"


@dataclass
class FanOutOutcome:
    slot: ScheduleSlot
    status: str
    attendance: LessonAttendance | None = None
    error: str = ""


def _create_lesson_record(
    student: Student,
    slot: ScheduleSlot,
    day: date,
    scanned_at: datetime,
    device_id: str,
    security_status: str,
    notes: str = "",
) -> LessonAttendance:
    with transaction.atomic():
        return LessonAttendance.objects.create(
            student=student,
            schedule=slot,
            subject_id=slot.subject_id,
            room_id=slot.room_id,
            date=day,
            scan_time=scanned_at,
            status=LessonAttendance.STATUS_PRESENT,
            device=device_id,
            security_status=security_status,
            notes=notes,
        )


def mark_lesson_present(
    student: Student,
    slot: ScheduleSlot,
    day: date,
    scanned_at: datetime,
    device_id: str,
    security_status: str,
) -> LessonAttendance:
    """Create the single (student, slot, day) lesson record.

    Raises ``AlreadyMarkedPresent`` when the record exists, including when a
    concurrent scan or a gate fan-out wins the unique constraint.
    """
    if LessonAttendance.objects.filter(student=student, schedule=slot, date=day).exists():
        raise AlreadyMarkedPresent()

    try:
        return _create_lesson_record(student, slot, day, scanned_at, device_id, security_status)
    except IntegrityError:
        logger.info(
            "Concurrent lesson attendance create",
            extra={"student_id": student.pk, "slot_id": slot.pk, "day": day.isoformat()},
        )
        raise AlreadyMarkedPresent() from None


def mark_present_for_day(
    student: Student,
    day: date,
    scanned_at: datetime,
    device_id: str,
    security_status: str,
) -> list[FanOutOutcome]:
    """Mark every lesson of the student's class/grade on ``day`` as present.

    Idempotent: slots that already have a record are skipped. A failure on
    one slot is logged and reported in the outcome list, never raised.
    """
    slots = slots_for_class_day(student.class_name, student.grade, DayOfWeek.for_date(day))
    existing = set(
        LessonAttendance.objects.filter(student=student, date=day).values_list("schedule_id", flat=True)
    )

    outcomes: list[FanOutOutcome] = []
    for slot in slots:
        if slot.pk in existing:
            outcomes.append(FanOutOutcome(slot=slot, status=OUTCOME_SKIPPED))
            continue

        try:
            attendance = _create_lesson_record(
                student,
                slot,
                day,
                scanned_at,
                device_id,
                security_status,
                notes=AUTO_MARK_NOTE,
            )
        except IntegrityError:
            outcomes.append(FanOutOutcome(slot=slot, status=OUTCOME_SKIPPED))
        except DatabaseError as exc:
            logger.warning(
                "Unable to auto-mark lesson attendance",
                extra={"student_id": student.pk, "slot_id": slot.pk, "day": day.isoformat()},
                exc_info=True,
            )
            outcomes.append(FanOutOutcome(slot=slot, status=OUTCOME_FAILED, error=str(exc)))
        else:
            outcomes.append(FanOutOutcome(slot=slot, status=OUTCOME_CREATED, attendance=attendance))

    return outcomes
