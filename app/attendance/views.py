from datetime import date

from django.utils.dateparse import parse_date
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response
from rest_framework.throttling import ScopedRateThrottle
from rest_framework.views import APIView

from config.permissions import IsStaffOrReadOnly, IsTrustedDevice
from .exceptions import ScanErrorKind
from .models import DailyAttendance, LessonAttendance
from .serializers import (
    DailyAttendanceSerializer,
    LessonAttendanceSerializer,
    LessonSummarySerializer,
    ManualAttendanceSerializer,
    ScanEventSerializer,
)
from .services.clock import local_now, start_of_day
from .services.lessons import OUTCOME_CREATED
from .services.reporting import daily_report, lesson_report
from .services.scan import ScanEvent, process_scan

ERROR_STATUS = {
    ScanErrorKind.DEVICE_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ScanErrorKind.STUDENT_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ScanErrorKind.DEVICE_INACTIVE: status.HTTP_400_BAD_REQUEST,
    ScanErrorKind.STUDENT_INACTIVE: status.HTTP_400_BAD_REQUEST,
    ScanErrorKind.INVALID_DEVICE_LOCATION: status.HTTP_400_BAD_REQUEST,
    ScanErrorKind.ATTENDANCE_COMPLETE: status.HTTP_409_CONFLICT,
    ScanErrorKind.ALREADY_PRESENT: status.HTTP_409_CONFLICT,
    ScanErrorKind.NO_ACTIVE_LESSON: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ScanErrorKind.INTERNAL_ERROR: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def _student_summary(student) -> dict:
    return {
        "id": student.pk,
        "name": student.name,
        "studentId": student.student_id,
        "class": student.class_name,
        "grade": student.grade,
    }


def _parse_day(value):
    try:
        return parse_date(value)
    except ValueError:
        return None


def _date_range(params, required=False):
    """Parse ``start_date``/``end_date``; returns (start, end, error)."""
    raw_start, raw_end = params.get("start_date"), params.get("end_date")
    if not raw_start or not raw_end:
        if required:
            return None, None, "start_date and end_date are required"
        today = local_now().date()
        return today, today, None

    start, end = _parse_day(raw_start), _parse_day(raw_end)
    if start is None or end is None:
        return None, None, "Invalid date format. Use YYYY-MM-DD."
    if start > end:
        return None, None, "start_date must not be after end_date"
    return start, end, None


def _filter_by_day(queryset, params):
    if params.get("date"):
        day = _parse_day(params["date"])
        if day is not None:
            queryset = queryset.filter(date=day)
    elif params.get("start_date") and params.get("end_date"):
        start, end = _parse_day(params["start_date"]), _parse_day(params["end_date"])
        if start is not None and end is not None:
            queryset = queryset.filter(date__gte=start, date__lte=end)
    if params.get("student"):
        queryset = queryset.filter(student_id=params["student"])
    if params.get("status"):
        queryset = queryset.filter(status=params["status"])
    return queryset


class ScanView(APIView):
    authentication_classes = []
    permission_classes = [IsTrustedDevice]
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "rfid_scan"

    def post(self, request):
        serializer = ScanEventSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        result = process_scan(
            ScanEvent(
                rfid_tag=data["rfidTag"],
                device_id=data["deviceId"],
                timestamp=data.get("timestamp") or None,
                status=data.get("status"),
                location=data.get("location"),
            )
        )
        if not result.success:
            return Response(
                {"success": False, "error": result.message, "code": result.error.value},
                status=ERROR_STATUS.get(result.error, status.HTTP_400_BAD_REQUEST),
            )

        payload = {"student": _student_summary(result.student)}
        if result.attendance is not None:
            payload["attendance"] = DailyAttendanceSerializer(result.attendance).data
            payload["lessonsMarked"] = sum(1 for outcome in result.fan_out if outcome.status == OUTCOME_CREATED)
        else:
            payload["lessonAttendance"] = LessonAttendanceSerializer(result.lesson_attendance).data
            payload["lesson"] = LessonSummarySerializer(result.lesson).data
        return Response({"success": True, "data": payload, "message": result.message})


class DailyAttendanceViewSet(viewsets.ModelViewSet):
    queryset = DailyAttendance.objects.none()
    serializer_class = DailyAttendanceSerializer
    permission_classes = [IsStaffOrReadOnly]
    http_method_names = ["get", "post", "put", "patch", "head", "options"]

    def get_queryset(self):
        queryset = DailyAttendance.objects.select_related("student").order_by("-date", "student__name")
        return _filter_by_day(queryset, self.request.query_params)

    def create(self, request, *args, **kwargs):
        serializer = ManualAttendanceSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        day: date = serializer.validated_data["date"]
        entry_time = None
        if serializer.validated_data.get("status", DailyAttendance.STATUS_PRESENT) == DailyAttendance.STATUS_PRESENT:
            entry_time = start_of_day(day)

        attendance = serializer.save(
            entry_time=entry_time,
            device="manual-entry",
            created_by=request.user,
        )
        return Response(
            {"success": True, "data": DailyAttendanceSerializer(attendance).data},
            status=status.HTTP_201_CREATED,
        )

    @action(detail=False, methods=["get"])
    def report(self, request):
        start, end, error = _date_range(request.query_params, required=True)
        if error:
            return Response({"success": False, "message": error}, status=status.HTTP_400_BAD_REQUEST)

        params = request.query_params
        report = daily_report(start, end, class_name=params.get("class_name", ""), grade=params.get("grade", ""))
        return Response({"success": True, "data": report})

    @action(detail=False, methods=["get"])
    def lessons(self, request):
        queryset = LessonAttendance.objects.select_related("student", "subject", "room").order_by(
            "-date", "-scan_time"
        )
        params = request.query_params
        queryset = _filter_by_day(queryset, params)
        if params.get("subject"):
            queryset = queryset.filter(subject_id=params["subject"])
        if params.get("room"):
            queryset = queryset.filter(room_id=params["room"])

        page = self.paginate_queryset(queryset)
        if page is not None:
            return self.get_paginated_response(LessonAttendanceSerializer(page, many=True).data)
        return Response(LessonAttendanceSerializer(queryset, many=True).data)

    @action(detail=False, methods=["get"], url_path="lessons/report")
    def lessons_report(self, request):
        start, end, error = _date_range(request.query_params)
        if error:
            return Response({"success": False, "message": error}, status=status.HTTP_400_BAD_REQUEST)

        params = request.query_params
        report = lesson_report(
            start,
            end,
            class_name=params.get("class_name", ""),
            grade=params.get("grade", ""),
            subject=params.get("subject") or None,
            room=params.get("room") or None,
        )
        return Response({"success": True, "data": report})
