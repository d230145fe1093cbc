from django.db import migrations, models
import django.db.models.deletion
import django.utils.timezone


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("school", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="Device",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("device_id", models.CharField(max_length=32, unique=True)),
                ("mac_address", models.CharField(blank=True, max_length=17, null=True, unique=True)),
                ("hashed_mac_id", models.CharField(blank=True, default="", max_length=16)),
                (
                    "location",
                    models.CharField(
                        blank=True,
                        choices=[("CLASSROOM", "Classroom"), ("ENTRANCE_GATE", "Entrance gate")],
                        default="",
                        max_length=16,
                    ),
                ),
                ("description", models.CharField(blank=True, default="", max_length=255)),
                (
                    "status",
                    models.CharField(
                        choices=[("NORMAL", "Normal"), ("TAMPERED", "Tampered"), ("OFFLINE", "Offline")],
                        default="OFFLINE",
                        max_length=16,
                    ),
                ),
                ("ip_address", models.GenericIPAddressField(blank=True, null=True)),
                ("wifi_signal", models.IntegerField(blank=True, null=True)),
                ("uptime", models.PositiveIntegerField(default=0)),
                ("cache_size", models.PositiveIntegerField(default=0)),
                ("firmware", models.CharField(blank=True, default="", max_length=64)),
                ("last_heartbeat", models.DateTimeField(default=django.utils.timezone.now)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "room",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="devices",
                        to="school.room",
                    ),
                ),
            ],
            options={
                "indexes": [
                    models.Index(fields=["status"], name="devices_status_idx"),
                    models.Index(fields=["last_heartbeat"], name="devices_last_heartbeat_idx"),
                ],
            },
        ),
    ]
