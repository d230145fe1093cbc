from rest_framework import serializers

from school.models import Room, Subject, Teacher
from .models import DayOfWeek, ScheduleSlot


class ScheduleSlotSerializer(serializers.ModelSerializer):
    subject = serializers.PrimaryKeyRelatedField(queryset=Subject.objects.filter(active=True))
    teacher = serializers.PrimaryKeyRelatedField(queryset=Teacher.objects.filter(active=True))
    room = serializers.PrimaryKeyRelatedField(queryset=Room.objects.filter(active=True))
    day_of_week = serializers.ChoiceField(choices=DayOfWeek.choices)
    subject_name = serializers.CharField(source="subject.name", read_only=True)
    teacher_name = serializers.CharField(source="teacher.name", read_only=True)
    room_code = serializers.CharField(source="room.code", read_only=True)

    class Meta:
        model = ScheduleSlot
        fields = [
            "id",
            "subject",
            "subject_name",
            "teacher",
            "teacher_name",
            "room",
            "room_code",
            "class_name",
            "grade",
            "day_of_week",
            "start_time",
            "end_time",
            "is_active",
            "created_at",
        ]
        read_only_fields = ["created_at"]

    def _merged(self, attrs, name):
        if name in attrs:
            return attrs[name]
        return getattr(self.instance, name, None)

    def validate(self, attrs):
        start_time = self._merged(attrs, "start_time")
        end_time = self._merged(attrs, "end_time")
        if start_time is not None and end_time is not None and start_time >= end_time:
            raise serializers.ValidationError({"end_time": "End time must be after start time"})

        if not attrs.get("is_active", getattr(self.instance, "is_active", True)):
            return attrs

        # Two slots overlap when each starts before the other ends.
        overlapping = ScheduleSlot.objects.filter(
            day_of_week=self._merged(attrs, "day_of_week"),
            start_time__lt=end_time,
            end_time__gt=start_time,
            is_active=True,
        )
        if self.instance is not None:
            overlapping = overlapping.exclude(pk=self.instance.pk)

        room = self._merged(attrs, "room")
        teacher = self._merged(attrs, "teacher")
        class_name = self._merged(attrs, "class_name")
        grade = self._merged(attrs, "grade")

        if overlapping.filter(room=room).exists():
            raise serializers.ValidationError("Room is already booked for this time slot")
        if overlapping.filter(teacher=teacher).exists():
            raise serializers.ValidationError("Teacher is already assigned to another lesson at this time")
        if overlapping.filter(class_name=class_name, grade=grade).exists():
            raise serializers.ValidationError("Class already has a lesson scheduled at this time")
        return attrs
