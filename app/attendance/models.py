from django.conf import settings
from django.db import models

from school.models import Room, Student, Subject
from timetable.models import ScheduleSlot


class SecurityStatus(models.TextChoices):
    SECURE = "SECURE", "Secure"
    TAMPERED = "TAMPERED", "Tampered"


class DailyAttendance(models.Model):
    STATUS_PRESENT = "present"
    STATUS_ABSENT = "absent"
    STATUS_LATE = "late"
    STATUS_HALF_DAY = "half-day"
    STATUS_CHOICES = [
        (STATUS_PRESENT, "Present"),
        (STATUS_ABSENT, "Absent"),
        (STATUS_LATE, "Late"),
        (STATUS_HALF_DAY, "Half day"),
    ]

    student = models.ForeignKey(Student, on_delete=models.CASCADE, related_name="daily_attendance")
    date = models.DateField()
    entry_time = models.DateTimeField(null=True, blank=True)
    exit_time = models.DateTimeField(null=True, blank=True)
    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default=STATUS_PRESENT)
    security_status = models.CharField(max_length=16, choices=SecurityStatus.choices, default=SecurityStatus.SECURE)
    device = models.CharField(max_length=32, blank=True, default="")
    location = models.CharField(max_length=16, blank=True, default="ENTRANCE_GATE")
    notes = models.CharField(max_length=255, blank=True, default="")
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=["student", "date"], name="uq_daily_attendance_student_date"),
        ]
        indexes = [models.Index(fields=["date", "status"], name="att_daily_date_status")]

    @property
    def is_complete(self) -> bool:
        return self.entry_time is not None and self.exit_time is not None

    def __str__(self):
        return f"DailyAttendance<{self.student_id}:{self.date}>"


class LessonAttendance(models.Model):
    STATUS_PRESENT = "present"
    STATUS_LATE = "late"
    STATUS_ABSENT = "absent"
    STATUS_CHOICES = [
        (STATUS_PRESENT, "Present"),
        (STATUS_LATE, "Late"),
        (STATUS_ABSENT, "Absent"),
    ]

    student = models.ForeignKey(Student, on_delete=models.CASCADE, related_name="lesson_attendance")
    schedule = models.ForeignKey(ScheduleSlot, on_delete=models.CASCADE, related_name="attendance")
    subject = models.ForeignKey(Subject, on_delete=models.CASCADE, related_name="lesson_attendance")
    room = models.ForeignKey(Room, on_delete=models.CASCADE, related_name="lesson_attendance")
    date = models.DateField()
    scan_time = models.DateTimeField()
    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default=STATUS_PRESENT)
    device = models.CharField(max_length=32)
    security_status = models.CharField(max_length=16, choices=SecurityStatus.choices, default=SecurityStatus.SECURE)
    notes = models.CharField(max_length=255, blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["student", "schedule", "date"],
                name="uq_lesson_attendance_student_slot_date",
            ),
        ]
        indexes = [
            models.Index(fields=["date", "room"], name="att_lesson_date_room"),
            models.Index(fields=["student", "date"], name="att_lesson_student_date"),
        ]

    def __str__(self):
        return f"LessonAttendance<{self.student_id}:{self.schedule_id}:{self.date}>"
