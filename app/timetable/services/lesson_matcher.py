from __future__ import annotations

from collections.abc import Sequence

from school.models import Enrollment, Student
from timetable.models import ScheduleSlot


def match_lesson(candidates: Sequence[ScheduleSlot], student: Student) -> ScheduleSlot | None:
    """Pick the slot a scan should be credited to.

    An active enrollment in a candidate's subject wins over a class/grade
    match, because electives are not tied to the student's nominal class.
    Candidates are tried in the order given.
    """
    if not candidates:
        return None

    enrolled_subject_ids = set(
        Enrollment.objects.filter(
            student=student,
            subject_id__in=[slot.subject_id for slot in candidates],
            active=True,
        ).values_list("subject_id", flat=True)
    )
    for slot in candidates:
        if slot.subject_id in enrolled_subject_ids:
            return slot

    for slot in candidates:
        if slot.class_name == student.class_name and slot.grade == student.grade:
            return slot

    return None
