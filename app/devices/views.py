from django.shortcuts import get_object_or_404
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAdminUser
from rest_framework.response import Response
from rest_framework.throttling import ScopedRateThrottle
from rest_framework.views import APIView

from attendance.services.clock import local_now
from config.permissions import IsStaffOrReadOnly, IsTrustedDevice
from devices.services.registry import connect_device, record_heartbeat, sweep_offline_devices
from .models import Device
from .serializers import (
    DeviceConnectSerializer,
    DeviceHeartbeatSerializer,
    DevicePublicSerializer,
    DeviceRegisterSerializer,
    DeviceSerializer,
)


class DeviceViewSet(viewsets.ModelViewSet):
    queryset = Device.objects.none()
    serializer_class = DeviceSerializer
    permission_classes = [IsStaffOrReadOnly]
    lookup_field = "device_id"
    http_method_names = ["get", "put", "patch", "delete", "post", "head", "options"]

    def get_permissions(self):
        if self.action in {"list", "retrieve"}:
            return [IsAdminUser()]
        return super().get_permissions()

    def get_queryset(self):
        queryset = Device.objects.select_related("room").order_by("-last_heartbeat", "-id")
        params = self.request.query_params
        if params.get("room"):
            queryset = queryset.filter(room_id=params["room"])
        if params.get("status"):
            queryset = queryset.filter(status=params["status"].upper())
        if params.get("location"):
            queryset = queryset.filter(location=params["location"].upper())
        return queryset

    def list(self, request, *args, **kwargs):
        sweep_offline_devices()
        return super().list(request, *args, **kwargs)

    def create(self, request, *args, **kwargs):
        return self.register(request)

    @action(detail=False, methods=["post"])
    def register(self, request):
        serializer = DeviceRegisterSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        device = serializer.save()
        return Response(
            {
                "success": True,
                "data": DeviceSerializer(device).data,
                "message": "Device registered successfully" if serializer.created else "Device registration updated successfully",
            },
            status=status.HTTP_201_CREATED if serializer.created else status.HTTP_200_OK,
        )


class DeviceEndpoint(APIView):
    """Base for endpoints called by the scanners themselves."""

    authentication_classes = []
    permission_classes = [IsTrustedDevice]
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "heartbeat"


class DeviceConnectView(DeviceEndpoint):
    def post(self, request):
        serializer = DeviceConnectSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        device = connect_device(
            device_id=serializer.validated_data.get("deviceId") or "",
            mac_address=serializer.validated_data.get("macAddress") or "",
            network=serializer.network(),
        )
        return Response(
            {
                "success": True,
                "data": DevicePublicSerializer(device).data,
                "message": "Device connected successfully",
            }
        )


class DeviceHeartbeatView(DeviceEndpoint):
    def post(self, request):
        serializer = DeviceHeartbeatSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        device = Device.objects.select_related("room").filter(device_id=serializer.validated_data["deviceId"]).first()
        if device is None:
            return Response(
                {"success": False, "message": "Device not found. Please ensure device is connected and registered."},
                status=status.HTTP_404_NOT_FOUND,
            )

        device = record_heartbeat(
            device,
            status=serializer.validated_data.get("status") or "",
            network=serializer.network(),
        )
        data = DevicePublicSerializer(device).data
        data["last_heartbeat"] = device.last_heartbeat
        return Response({"success": True, "data": data, "serverTime": local_now().isoformat()})


class DeviceLookupView(DeviceEndpoint):
    throttle_classes = []

    def get(self, request, device_id: str):
        device = get_object_or_404(Device.objects.select_related("room"), device_id=device_id)
        return Response({"success": True, "data": DevicePublicSerializer(device).data})
