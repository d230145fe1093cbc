from django.core.validators import RegexValidator
from rest_framework import serializers

from devices.services.registry import hashed_id_from_device_id
from school.models import Room
from .models import Device


REGISTERED_DEVICE_ID = RegexValidator(
    r"^RFID-[0-9A-F]{1,8}$",
    "Invalid Device ID format. Expected format: RFID-XXXXXXXX",
)
DEVICE_ID_FORMAT = RegexValidator(
    r"^[A-Za-z0-9_-]{3,32}$",
    "Invalid device ID format. Use only letters, numbers, underscores, and hyphens (3-32 characters)",
)


class RoomSummarySerializer(serializers.ModelSerializer):
    class Meta:
        model = Room
        fields = ["id", "name", "code", "building", "floor"]


class DeviceSerializer(serializers.ModelSerializer):
    room_detail = RoomSummarySerializer(source="room", read_only=True)

    class Meta:
        model = Device
        fields = [
            "id",
            "device_id",
            "mac_address",
            "hashed_mac_id",
            "location",
            "room",
            "room_detail",
            "description",
            "status",
            "ip_address",
            "wifi_signal",
            "uptime",
            "cache_size",
            "firmware",
            "last_heartbeat",
            "created_at",
            "updated_at",
        ]
        read_only_fields = [
            "device_id",
            "mac_address",
            "hashed_mac_id",
            "status",
            "ip_address",
            "wifi_signal",
            "uptime",
            "cache_size",
            "firmware",
            "last_heartbeat",
            "created_at",
            "updated_at",
        ]

    def validate(self, attrs):
        location = attrs.get("location", getattr(self.instance, "location", ""))
        room = attrs.get("room", getattr(self.instance, "room", None))
        if location == Device.Location.CLASSROOM and room is None:
            raise serializers.ValidationError({"room": "Room is required for classroom devices"})
        if "location" in attrs and location != Device.Location.CLASSROOM:
            attrs["room"] = None
        return attrs


class DeviceRegisterSerializer(serializers.Serializer):
    device_id = serializers.CharField(max_length=32, validators=[REGISTERED_DEVICE_ID])
    location = serializers.ChoiceField(choices=Device.Location.choices)
    room = serializers.PrimaryKeyRelatedField(queryset=Room.objects.all(), required=False, allow_null=True)
    description = serializers.CharField(max_length=255, required=False, allow_blank=True)

    def validate(self, attrs):
        if attrs["location"] == Device.Location.CLASSROOM:
            if attrs.get("room") is None:
                raise serializers.ValidationError({"room": "Room is required for classroom devices"})
        else:
            attrs["room"] = None
        return attrs

    def save(self, **kwargs):
        data = self.validated_data
        device_id = data["device_id"]
        defaults = {
            "hashed_mac_id": hashed_id_from_device_id(device_id),
            "location": data["location"],
            "room": data["room"],
        }
        if "description" in data:
            defaults["description"] = data["description"]

        device = Device.objects.filter(device_id=device_id).first()
        if device is None:
            self.created = True
            return Device.objects.create(device_id=device_id, status=Device.Status.OFFLINE, **defaults)

        self.created = False
        for key, value in defaults.items():
            setattr(device, key, value)
        device.save()
        return device


class DeviceNetworkSerializer(serializers.Serializer):
    ipAddress = serializers.IPAddressField(required=False, allow_null=True)
    wifiSignal = serializers.IntegerField(required=False, allow_null=True)
    uptime = serializers.IntegerField(required=False, allow_null=True, min_value=0)
    cacheSize = serializers.IntegerField(required=False, allow_null=True, min_value=0)
    firmware = serializers.CharField(required=False, allow_blank=True, allow_null=True, max_length=64)

    def network(self) -> dict:
        data = self.validated_data
        return {
            "ip_address": data.get("ipAddress"),
            "wifi_signal": data.get("wifiSignal"),
            "uptime": data.get("uptime"),
            "cache_size": data.get("cacheSize"),
            "firmware": data.get("firmware"),
        }


class DeviceConnectSerializer(DeviceNetworkSerializer):
    deviceId = serializers.CharField(required=False, allow_blank=True, validators=[DEVICE_ID_FORMAT])
    macAddress = serializers.RegexField(
        r"^([0-9A-Fa-f]{2}:){5}[0-9A-Fa-f]{2}$",
        required=False,
        allow_blank=True,
    )

    def validate(self, attrs):
        if not attrs.get("deviceId") and not attrs.get("macAddress"):
            raise serializers.ValidationError("Either Device ID or MAC Address is required")
        return attrs


class DeviceHeartbeatSerializer(DeviceNetworkSerializer):
    deviceId = serializers.CharField(validators=[DEVICE_ID_FORMAT])
    status = serializers.ChoiceField(
        choices=[Device.Status.NORMAL, Device.Status.TAMPERED],
        required=False,
        allow_blank=True,
    )


class DevicePublicSerializer(serializers.ModelSerializer):
    room = RoomSummarySerializer(read_only=True)

    class Meta:
        model = Device
        fields = ["device_id", "hashed_mac_id", "location", "room", "status"]
