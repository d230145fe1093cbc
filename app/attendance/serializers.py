from rest_framework import serializers

from devices.serializers import DEVICE_ID_FORMAT
from school.models import Student
from school.serializers import RFID_TAG_FORMAT
from .models import DailyAttendance, LessonAttendance, SecurityStatus
from .services.clock import normalize_scan_time


class ScanEventSerializer(serializers.Serializer):
    rfidTag = serializers.CharField(validators=[RFID_TAG_FORMAT])
    deviceId = serializers.CharField(validators=[DEVICE_ID_FORMAT])
    timestamp = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    status = serializers.ChoiceField(choices=SecurityStatus.choices, required=False, allow_null=True)
    location = serializers.CharField(required=False, allow_blank=True, allow_null=True)

    def validate_timestamp(self, value):
        if value:
            try:
                normalize_scan_time(value)
            except ValueError:
                raise serializers.ValidationError("Invalid timestamp format. Use ISO 8601.")
        return value


class DailyAttendanceSerializer(serializers.ModelSerializer):
    student_detail = serializers.SerializerMethodField()

    class Meta:
        model = DailyAttendance
        fields = [
            "id",
            "student",
            "student_detail",
            "date",
            "entry_time",
            "exit_time",
            "status",
            "security_status",
            "device",
            "location",
            "notes",
            "created_at",
            "updated_at",
        ]
        read_only_fields = ["student", "date", "security_status", "device", "location", "created_at", "updated_at"]

    def get_student_detail(self, obj):
        return {
            "id": obj.student_id,
            "name": obj.student.name,
            "student_id": obj.student.student_id,
            "class_name": obj.student.class_name,
            "grade": obj.student.grade,
        }

    def validate(self, attrs):
        entry_time = attrs.get("entry_time", getattr(self.instance, "entry_time", None))
        exit_time = attrs.get("exit_time", getattr(self.instance, "exit_time", None))
        if entry_time and exit_time and exit_time < entry_time:
            raise serializers.ValidationError({"exit_time": "Exit time cannot be before entry time"})
        return attrs


class ManualAttendanceSerializer(serializers.ModelSerializer):
    student = serializers.PrimaryKeyRelatedField(queryset=Student.objects.filter(active=True))

    class Meta:
        model = DailyAttendance
        fields = ["student", "date", "status", "notes"]

    def validate(self, attrs):
        if DailyAttendance.objects.filter(student=attrs["student"], date=attrs["date"]).exists():
            raise serializers.ValidationError("Attendance record already exists for this student on this date")
        return attrs


class LessonAttendanceSerializer(serializers.ModelSerializer):
    student_name = serializers.CharField(source="student.name", read_only=True)
    subject_name = serializers.CharField(source="subject.name", read_only=True)
    room_code = serializers.CharField(source="room.code", read_only=True)

    class Meta:
        model = LessonAttendance
        fields = [
            "id",
            "student",
            "student_name",
            "schedule",
            "subject",
            "subject_name",
            "room",
            "room_code",
            "date",
            "scan_time",
            "status",
            "device",
            "security_status",
            "notes",
            "created_at",
        ]
        read_only_fields = fields


class LessonSummarySerializer(serializers.Serializer):
    id = serializers.IntegerField()
    subject = serializers.CharField(source="subject.name")
    subjectCode = serializers.CharField(source="subject.code")
    room = serializers.CharField(source="room.code")
    dayOfWeek = serializers.CharField(source="day_of_week")
    startTime = serializers.TimeField(source="start_time", format="%H:%M")
    endTime = serializers.TimeField(source="end_time", format="%H:%M")
