from __future__ import annotations

from datetime import datetime, time

from django.db.models import QuerySet

from school.models import Room
from timetable.models import DayOfWeek, ScheduleSlot


def wall_clock_minute(at: datetime) -> time:
    return time(at.hour, at.minute)


def resolve_active_slots(room: Room, at: datetime) -> list[ScheduleSlot]:
    """Return the active slots running in ``room`` at local time ``at``.

    Slots are compared at minute precision and both ends are inclusive, so a
    scan during the start or the end minute belongs to the slot. Overlapping
    slots are all returned; choosing between them is the matcher's job.
    """
    current = wall_clock_minute(at)
    return list(
        ScheduleSlot.objects.select_related("subject", "room", "teacher").filter(
            room=room,
            day_of_week=DayOfWeek.for_date(at.date()),
            start_time__lte=current,
            end_time__gte=current,
            is_active=True,
        )
    )


def slots_for_class_day(class_name: str, grade: str, day_of_week: str) -> QuerySet[ScheduleSlot]:
    return ScheduleSlot.objects.select_related("subject", "room").filter(
        class_name=class_name,
        grade=grade,
        day_of_week=day_of_week,
        is_active=True,
    )
