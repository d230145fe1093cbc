from __future__ import annotations

from datetime import date

from django.db import models

from school.models import Room, Subject, Teacher


class DayOfWeek(models.TextChoices):
    MONDAY = "Monday", "Monday"
    TUESDAY = "Tuesday", "Tuesday"
    WEDNESDAY = "Wednesday", "Wednesday"
    THURSDAY = "Thursday", "Thursday"
    FRIDAY = "Friday", "Friday"
    SATURDAY = "Saturday", "Saturday"
    SUNDAY = "Sunday", "Sunday"

    @classmethod
    def for_date(cls, value: date) -> "DayOfWeek":
        # Locale independent: date.weekday() is 0 for Monday.
        return list(cls)[value.weekday()]


class ScheduleSlot(models.Model):
    subject = models.ForeignKey(Subject, on_delete=models.PROTECT, related_name="schedule_slots")
    teacher = models.ForeignKey(Teacher, on_delete=models.PROTECT, related_name="schedule_slots")
    room = models.ForeignKey(Room, on_delete=models.PROTECT, related_name="schedule_slots")
    class_name = models.CharField(max_length=20)
    grade = models.CharField(max_length=20)
    day_of_week = models.CharField(max_length=9, choices=DayOfWeek.choices)
    start_time = models.TimeField()
    end_time = models.TimeField()
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        indexes = [
            models.Index(fields=["room", "day_of_week", "start_time"], name="tt_slot_room_day_start"),
            models.Index(fields=["class_name", "grade", "day_of_week"], name="tt_slot_class_grade_day"),
        ]
        ordering = ["start_time", "id"]

    def __str__(self):
        return (
            f"{self.subject_id}@{self.room_id} {self.day_of_week} "
            f"{self.start_time:%H:%M}-{self.end_time:%H:%M} ({self.class_name}/{self.grade})"
        )
