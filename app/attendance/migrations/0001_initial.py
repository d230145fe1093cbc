from django.conf import settings
from django.db import migrations, models
import django.db.models.deletion


SECURITY_STATUS_CHOICES = [("SECURE", "Secure"), ("TAMPERED", "Tampered")]


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
        ("school", "0001_initial"),
        ("timetable", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="DailyAttendance",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("date", models.DateField()),
                ("entry_time", models.DateTimeField(blank=True, null=True)),
                ("exit_time", models.DateTimeField(blank=True, null=True)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("present", "Present"),
                            ("absent", "Absent"),
                            ("late", "Late"),
                            ("half-day", "Half day"),
                        ],
                        default="present",
                        max_length=16,
                    ),
                ),
                ("security_status", models.CharField(choices=SECURITY_STATUS_CHOICES, default="SECURE", max_length=16)),
                ("device", models.CharField(blank=True, default="", max_length=32)),
                ("location", models.CharField(blank=True, default="ENTRANCE_GATE", max_length=16)),
                ("notes", models.CharField(blank=True, default="", max_length=255)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "created_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="+",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "student",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="daily_attendance",
                        to="school.student",
                    ),
                ),
            ],
            options={
                "indexes": [models.Index(fields=["date", "status"], name="att_daily_date_status")],
            },
        ),
        migrations.AddConstraint(
            model_name="dailyattendance",
            constraint=models.UniqueConstraint(fields=("student", "date"), name="uq_daily_attendance_student_date"),
        ),
        migrations.CreateModel(
            name="LessonAttendance",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("date", models.DateField()),
                ("scan_time", models.DateTimeField()),
                (
                    "status",
                    models.CharField(
                        choices=[("present", "Present"), ("late", "Late"), ("absent", "Absent")],
                        default="present",
                        max_length=16,
                    ),
                ),
                ("device", models.CharField(max_length=32)),
                ("security_status", models.CharField(choices=SECURITY_STATUS_CHOICES, default="SECURE", max_length=16)),
                ("notes", models.CharField(blank=True, default="", max_length=255)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "room",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="lesson_attendance",
                        to="school.room",
                    ),
                ),
                (
                    "schedule",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="attendance",
                        to="timetable.scheduleslot",
                    ),
                ),
                (
                    "student",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="lesson_attendance",
                        to="school.student",
                    ),
                ),
                (
                    "subject",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="lesson_attendance",
                        to="school.subject",
                    ),
                ),
            ],
            options={
                "indexes": [
                    models.Index(fields=["date", "room"], name="att_lesson_date_room"),
                    models.Index(fields=["student", "date"], name="att_lesson_student_date"),
                ],
            },
        ),
        migrations.AddConstraint(
            model_name="lessonattendance",
            constraint=models.UniqueConstraint(
                fields=("student", "schedule", "date"),
                name="uq_lesson_attendance_student_slot_date",
            ),
        ),
    ]
