from django.db import models
from django.utils import timezone

from school.models import Room


class Device(models.Model):
    class Location(models.TextChoices):
        CLASSROOM = "CLASSROOM", "Classroom"
        ENTRANCE_GATE = "ENTRANCE_GATE", "Entrance gate"

    class Status(models.TextChoices):
        NORMAL = "NORMAL", "Normal"
        TAMPERED = "TAMPERED", "Tampered"
        OFFLINE = "OFFLINE", "Offline"

    device_id = models.CharField(max_length=32, unique=True)
    mac_address = models.CharField(max_length=17, unique=True, null=True, blank=True)
    hashed_mac_id = models.CharField(max_length=16, blank=True, default="")

    # Empty until an administrator registers the device.
    location = models.CharField(max_length=16, choices=Location.choices, blank=True, default="")
    room = models.ForeignKey(Room, on_delete=models.SET_NULL, null=True, blank=True, related_name="devices")
    description = models.CharField(max_length=255, blank=True, default="")

    status = models.CharField(max_length=16, choices=Status.choices, default=Status.OFFLINE)
    ip_address = models.GenericIPAddressField(null=True, blank=True)
    wifi_signal = models.IntegerField(null=True, blank=True)
    uptime = models.PositiveIntegerField(default=0)
    cache_size = models.PositiveIntegerField(default=0)
    firmware = models.CharField(max_length=64, blank=True, default="")
    last_heartbeat = models.DateTimeField(default=timezone.now)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [
            models.Index(fields=["status"], name="devices_status_idx"),
            models.Index(fields=["last_heartbeat"], name="devices_last_heartbeat_idx"),
        ]

    def __str__(self):
        return self.device_id
