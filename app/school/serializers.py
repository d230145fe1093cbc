from django.core.validators import RegexValidator
from rest_framework import serializers

from .models import Enrollment, Room, Student, Subject, Teacher


RFID_TAG_FORMAT = RegexValidator(r"^[A-Za-z0-9]{8,16}$", "Invalid RFID tag format")


class RoomSerializer(serializers.ModelSerializer):
    capacity = serializers.IntegerField(min_value=1)

    class Meta:
        model = Room
        fields = [
            "id",
            "name",
            "code",
            "capacity",
            "floor",
            "building",
            "facilities",
            "active",
            "created_at",
            "updated_at",
        ]
        read_only_fields = ["created_at", "updated_at"]

    def validate_code(self, value):
        value = value.strip().upper()
        queryset = Room.objects.filter(code=value)
        if self.instance is not None:
            queryset = queryset.exclude(pk=self.instance.pk)
        if queryset.exists():
            raise serializers.ValidationError("Room with this code already exists")
        return value


class SubjectSerializer(serializers.ModelSerializer):
    class Meta:
        model = Subject
        fields = ["id", "name", "code", "description", "grade", "active", "created_at", "updated_at"]
        read_only_fields = ["created_at", "updated_at"]

    def validate_code(self, value):
        value = value.strip().upper()
        queryset = Subject.objects.filter(code=value)
        if self.instance is not None:
            queryset = queryset.exclude(pk=self.instance.pk)
        if queryset.exists():
            raise serializers.ValidationError("Subject with this code already exists")
        return value


class TeacherSerializer(serializers.ModelSerializer):
    class Meta:
        model = Teacher
        fields = ["id", "name", "email", "employee_id", "phone", "active", "created_at", "updated_at"]
        read_only_fields = ["created_at", "updated_at"]


class StudentSerializer(serializers.ModelSerializer):
    rfid_tag = serializers.CharField(validators=[RFID_TAG_FORMAT])

    class Meta:
        model = Student
        fields = [
            "id",
            "name",
            "student_id",
            "rfid_tag",
            "class_name",
            "grade",
            "active",
            "created_at",
            "updated_at",
        ]
        read_only_fields = ["created_at", "updated_at"]

    def validate_rfid_tag(self, value):
        queryset = Student.objects.filter(rfid_tag=value)
        if self.instance is not None:
            queryset = queryset.exclude(pk=self.instance.pk)
        if queryset.exists():
            raise serializers.ValidationError("This RFID tag is already assigned to another student")
        return value


class EnrolledStudentSerializer(serializers.ModelSerializer):
    id = serializers.IntegerField(source="student.id")
    name = serializers.CharField(source="student.name")
    student_id = serializers.CharField(source="student.student_id")
    class_name = serializers.CharField(source="student.class_name")
    grade = serializers.CharField(source="student.grade")
    rfid_tag = serializers.CharField(source="student.rfid_tag")

    class Meta:
        model = Enrollment
        fields = ["id", "name", "student_id", "class_name", "grade", "rfid_tag", "assigned_at", "assigned_by"]


class EnrolledSubjectSerializer(serializers.ModelSerializer):
    id = serializers.IntegerField(source="subject.id")
    name = serializers.CharField(source="subject.name")
    code = serializers.CharField(source="subject.code")
    grade = serializers.CharField(source="subject.grade")

    class Meta:
        model = Enrollment
        fields = ["id", "name", "code", "grade", "assigned_at", "assigned_by"]


class SubjectAssignSerializer(serializers.Serializer):
    student_ids = serializers.ListField(child=serializers.IntegerField(), allow_empty=False)

    def validate_student_ids(self, value):
        value = list(dict.fromkeys(value))
        found = Student.objects.filter(pk__in=value, active=True).count()
        if found != len(value):
            raise serializers.ValidationError("One or more students not found or inactive")
        return value


class StoreRfidSerializer(serializers.Serializer):
    rfidTag = serializers.CharField(validators=[RFID_TAG_FORMAT])
    deviceId = serializers.CharField(max_length=32)
