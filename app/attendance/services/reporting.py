from __future__ import annotations

from datetime import date

from attendance.models import DailyAttendance, LessonAttendance
from school.models import Student

PRESENT_WEIGHT = 1.0
LATE_WEIGHT = 0.75
HALF_DAY_WEIGHT = 0.5


def attendance_percentage(present: int, late: int, half_day: int, total: int) -> float:
    if total <= 0:
        return 0.0
    attended = present * PRESENT_WEIGHT + late * LATE_WEIGHT + half_day * HALF_DAY_WEIGHT
    return round(attended / total * 100, 2)


def _student_summary(student: Student) -> dict:
    return {
        "id": student.pk,
        "name": student.name,
        "student_id": student.student_id,
        "class_name": student.class_name,
        "grade": student.grade,
    }


def _filtered_students(class_name: str = "", grade: str = ""):
    students = Student.objects.all().order_by("name", "id")
    if class_name:
        students = students.filter(class_name=class_name)
    if grade:
        students = students.filter(grade=grade)
    return students


def daily_report(start: date, end: date, class_name: str = "", grade: str = "") -> dict:
    """Per-student daily attendance counts over the inclusive ``start``..``end``."""
    total_days = (end - start).days + 1
    students = list(_filtered_students(class_name, grade))

    rows = {
        student.pk: {
            "student": _student_summary(student),
            "present": 0,
            "absent": 0,
            "late": 0,
            "half_day": 0,
            "attendance_percentage": 0.0,
        }
        for student in students
    }

    counters = {
        DailyAttendance.STATUS_PRESENT: "present",
        DailyAttendance.STATUS_ABSENT: "absent",
        DailyAttendance.STATUS_LATE: "late",
        DailyAttendance.STATUS_HALF_DAY: "half_day",
    }
    records = DailyAttendance.objects.filter(date__gte=start, date__lte=end, student__in=students)
    for student_id, status in records.values_list("student_id", "status"):
        row = rows.get(student_id)
        if row is not None and status in counters:
            row[counters[status]] += 1

    for row in rows.values():
        row["attendance_percentage"] = attendance_percentage(
            row["present"], row["late"], row["half_day"], total_days
        )

    return {"total_days": total_days, "results": list(rows.values())}


def lesson_report(
    start: date,
    end: date,
    class_name: str = "",
    grade: str = "",
    subject: int | None = None,
    room: int | None = None,
) -> dict:
    """Per (student, subject) lesson attendance counts over the date range.

    The denominator is the number of lesson records for the pair in range.
    """
    records = LessonAttendance.objects.select_related("student", "subject").filter(
        date__gte=start, date__lte=end
    )
    if class_name:
        records = records.filter(student__class_name=class_name)
    if grade:
        records = records.filter(student__grade=grade)
    if subject:
        records = records.filter(subject_id=subject)
    if room:
        records = records.filter(room_id=room)

    rows: dict[tuple[int, int], dict] = {}
    for record in records.order_by("student__name", "subject__code", "date"):
        key = (record.student_id, record.subject_id)
        row = rows.get(key)
        if row is None:
            row = rows[key] = {
                "student": _student_summary(record.student),
                "subject": {"id": record.subject_id, "name": record.subject.name, "code": record.subject.code},
                "present": 0,
                "late": 0,
                "absent": 0,
                "total": 0,
                "attendance_percentage": 0.0,
            }
        row["total"] += 1
        if record.status in ("present", "late", "absent"):
            row[record.status] += 1

    for row in rows.values():
        row["attendance_percentage"] = attendance_percentage(row["present"], row["late"], 0, row["total"])

    return {
        "date_range": {"start_date": start.isoformat(), "end_date": end.isoformat()},
        "results": list(rows.values()),
    }
