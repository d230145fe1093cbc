from django.shortcuts import get_object_or_404
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from config.permissions import IsStaffOrReadOnly
from school.models import Room
from .models import DayOfWeek, ScheduleSlot
from .serializers import ScheduleSlotSerializer
from .services.time_window import slots_for_class_day


class ScheduleSlotViewSet(viewsets.ModelViewSet):
    queryset = ScheduleSlot.objects.none()
    serializer_class = ScheduleSlotSerializer
    permission_classes = [IsStaffOrReadOnly]

    def get_queryset(self):
        queryset = ScheduleSlot.objects.select_related("subject", "teacher", "room").order_by(
            "day_of_week", "start_time", "id"
        )
        params = self.request.query_params
        for param, lookup in (
            ("day_of_week", "day_of_week"),
            ("class_name", "class_name"),
            ("grade", "grade"),
            ("room", "room_id"),
            ("teacher", "teacher_id"),
            ("subject", "subject_id"),
        ):
            if params.get(param):
                queryset = queryset.filter(**{lookup: params[param]})
        if params.get("is_active"):
            queryset = queryset.filter(is_active=params["is_active"].lower() in {"1", "true", "yes"})
        return queryset

    @action(detail=False, methods=["get"], url_path="by-class")
    def by_class(self, request):
        params = request.query_params
        class_name = params.get("class_name", "")
        grade = params.get("grade", "")
        day_of_week = params.get("day_of_week", "")
        if not (class_name and grade):
            return Response(
                {"success": False, "message": "class_name and grade are required"},
                status=status.HTTP_400_BAD_REQUEST,
            )
        if day_of_week and day_of_week not in DayOfWeek.values:
            return Response(
                {"success": False, "message": "Invalid day_of_week"},
                status=status.HTTP_400_BAD_REQUEST,
            )

        if day_of_week:
            slots = slots_for_class_day(class_name, grade, day_of_week)
        else:
            slots = ScheduleSlot.objects.select_related("subject", "room").filter(
                class_name=class_name, grade=grade, is_active=True
            )
        slots = slots.select_related("teacher").order_by("day_of_week", "start_time")
        return Response({"success": True, "data": ScheduleSlotSerializer(slots, many=True).data})

    @action(detail=False, methods=["get"], url_path=r"by-room/(?P<room_id>\d+)")
    def by_room(self, request, room_id=None):
        room = get_object_or_404(Room, pk=room_id)
        slots = ScheduleSlot.objects.select_related("subject", "teacher", "room").filter(room=room, is_active=True)
        day_of_week = request.query_params.get("day_of_week")
        if day_of_week:
            slots = slots.filter(day_of_week=day_of_week)
        return Response({"success": True, "data": ScheduleSlotSerializer(slots, many=True).data})
