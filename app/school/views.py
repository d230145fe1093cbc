import logging

from django.db import transaction
from django.db.models import ProtectedError, Q
from django.shortcuts import get_object_or_404
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response
from rest_framework.throttling import ScopedRateThrottle

from config.permissions import IsStaffOrReadOnly, IsTrustedDevice
from .models import Enrollment, Room, Student, Subject, Teacher
from .serializers import (
    EnrolledStudentSerializer,
    EnrolledSubjectSerializer,
    RoomSerializer,
    StoreRfidSerializer,
    StudentSerializer,
    SubjectAssignSerializer,
    SubjectSerializer,
    TeacherSerializer,
)
from .services import rfid_cache

logger = logging.getLogger(__name__)


def _truthy(value: str) -> bool:
    return value.strip().lower() in {"1", "true", "yes", "on"}


class RoomViewSet(viewsets.ModelViewSet):
    queryset = Room.objects.none()
    serializer_class = RoomSerializer
    permission_classes = [IsStaffOrReadOnly]

    def get_queryset(self):
        queryset = Room.objects.order_by("code")
        params = self.request.query_params
        if params.get("active"):
            queryset = queryset.filter(active=_truthy(params["active"]))
        if params.get("building"):
            queryset = queryset.filter(building=params["building"])
        if params.get("search"):
            term = params["search"]
            queryset = queryset.filter(Q(name__icontains=term) | Q(code__icontains=term))
        return queryset

    def perform_destroy(self, instance):
        # Rooms are referenced by timetable slots and attendance history.
        instance.active = False
        instance.save(update_fields=["active", "updated_at"])


class TeacherViewSet(viewsets.ModelViewSet):
    queryset = Teacher.objects.none()
    serializer_class = TeacherSerializer
    permission_classes = [IsStaffOrReadOnly]

    def get_queryset(self):
        queryset = Teacher.objects.order_by("name")
        params = self.request.query_params
        if params.get("active"):
            queryset = queryset.filter(active=_truthy(params["active"]))
        if params.get("search"):
            term = params["search"]
            queryset = queryset.filter(Q(name__icontains=term) | Q(email__icontains=term))
        return queryset

    def destroy(self, request, *args, **kwargs):
        teacher = self.get_object()
        if teacher.schedule_slots.filter(is_active=True).exists():
            return Response(
                {"success": False, "message": "Cannot delete teacher with active schedules"},
                status=status.HTTP_400_BAD_REQUEST,
            )
        try:
            teacher.delete()
        except ProtectedError:
            return Response(
                {"success": False, "message": "Cannot delete teacher referenced by past schedules"},
                status=status.HTTP_400_BAD_REQUEST,
            )
        return Response(status=status.HTTP_204_NO_CONTENT)


class SubjectViewSet(viewsets.ModelViewSet):
    queryset = Subject.objects.none()
    serializer_class = SubjectSerializer
    permission_classes = [IsStaffOrReadOnly]

    def get_queryset(self):
        queryset = Subject.objects.order_by("code")
        params = self.request.query_params
        if params.get("grade"):
            queryset = queryset.filter(grade=params["grade"])
        if params.get("active"):
            queryset = queryset.filter(active=_truthy(params["active"]))
        if params.get("search"):
            term = params["search"]
            queryset = queryset.filter(Q(name__icontains=term) | Q(code__icontains=term))
        return queryset

    @action(detail=True, methods=["post"])
    def assign(self, request, pk=None):
        subject = self.get_object()
        serializer = SubjectAssignSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        assigned_by = request.user if request.user.is_authenticated else None
        created = reactivated = 0
        messages = []
        with transaction.atomic():
            for student_id in serializer.validated_data["student_ids"]:
                enrollment, was_created = Enrollment.objects.get_or_create(
                    student_id=student_id,
                    subject=subject,
                    defaults={"assigned_by": assigned_by},
                )
                if was_created:
                    created += 1
                elif enrollment.active:
                    messages.append(f"Student {student_id} is already assigned to {subject.code}")
                else:
                    enrollment.active = True
                    enrollment.assigned_by = assigned_by
                    enrollment.save(update_fields=["active", "assigned_by"])
                    reactivated += 1

        logger.info(
            "Students assigned to subject",
            extra={"subject": subject.code, "created_count": created, "reactivated_count": reactivated},
        )
        return Response(
            {
                "success": True,
                "message": "Students assigned successfully",
                "data": {"created": created, "reactivated": reactivated, "messages": messages},
            }
        )

    @action(detail=True, methods=["delete"], url_path=r"assign/(?P<student_id>\d+)")
    def unassign(self, request, pk=None, student_id=None):
        subject = self.get_object()
        updated = Enrollment.objects.filter(subject=subject, student_id=student_id, active=True).update(active=False)
        if not updated:
            return Response(
                {"success": False, "message": "Student is not enrolled in this subject"},
                status=status.HTTP_404_NOT_FOUND,
            )
        return Response({"success": True, "message": "Student removed from subject"})

    @action(detail=True, methods=["get"])
    def students(self, request, pk=None):
        subject = self.get_object()
        enrollments = (
            Enrollment.objects.filter(subject=subject, active=True, student__active=True)
            .select_related("student")
            .order_by("student__name")
        )
        return Response({"success": True, "data": EnrolledStudentSerializer(enrollments, many=True).data})


class StudentViewSet(viewsets.ModelViewSet):
    queryset = Student.objects.none()
    serializer_class = StudentSerializer
    permission_classes = [IsStaffOrReadOnly]

    def get_queryset(self):
        queryset = Student.objects.order_by("name")
        params = self.request.query_params
        if params.get("class_name"):
            queryset = queryset.filter(class_name=params["class_name"])
        if params.get("grade"):
            queryset = queryset.filter(grade=params["grade"])
        if params.get("active"):
            queryset = queryset.filter(active=_truthy(params["active"]))
        if params.get("search"):
            term = params["search"]
            queryset = queryset.filter(
                Q(name__icontains=term) | Q(student_id__icontains=term) | Q(rfid_tag__icontains=term)
            )
        return queryset

    @action(detail=False, methods=["get"], url_path=r"rfid/(?P<rfid_tag>[A-Za-z0-9]+)")
    def by_rfid(self, request, rfid_tag=None):
        student = get_object_or_404(Student, rfid_tag=rfid_tag)
        return Response({"success": True, "data": StudentSerializer(student).data})

    @action(detail=True, methods=["get"])
    def subjects(self, request, pk=None):
        student = self.get_object()
        enrollments = (
            Enrollment.objects.filter(student=student, active=True, subject__active=True)
            .select_related("subject")
            .order_by("subject__code")
        )
        return Response({"success": True, "data": EnrolledSubjectSerializer(enrollments, many=True).data})

    @action(detail=False, methods=["get"], url_path="last-rfid")
    def last_rfid(self, request):
        entry = rfid_cache.last_rfid()
        if entry is None:
            return Response(
                {"success": False, "message": "No RFID detected recently"},
                status=status.HTTP_404_NOT_FOUND,
            )

        student = Student.objects.filter(rfid_tag=entry["rfid_tag"]).first()
        data = dict(entry)
        data["assigned"] = student is not None
        if student is not None:
            data["student"] = {"id": student.id, "name": student.name, "student_id": student.student_id}
        return Response({"success": True, "data": data})

    @action(
        detail=False,
        methods=["post"],
        url_path="store-rfid",
        authentication_classes=[],
        permission_classes=[IsTrustedDevice],
        throttle_classes=[ScopedRateThrottle],
    )
    def store_rfid(self, request):
        serializer = StoreRfidSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        entry = rfid_cache.remember_last_rfid(serializer.validated_data["rfidTag"], serializer.validated_data["deviceId"])
        return Response({"success": True, "data": entry, "message": "RFID stored"})

    def get_throttles(self):
        if self.action == "store_rfid":
            self.throttle_scope = "rfid_scan"
        return super().get_throttles()
