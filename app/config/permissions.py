from __future__ import annotations

from django.conf import settings
from rest_framework.permissions import SAFE_METHODS, BasePermission


def client_ip(request) -> str:
    forwarded = request.META.get("HTTP_X_FORWARDED_FOR")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.META.get("REMOTE_ADDR", "")


class IsStaffOrReadOnly(BasePermission):
    """Authenticated users may read; only staff may write."""

    def has_permission(self, request, view):
        user = request.user
        if not (user and user.is_authenticated):
            return False
        if request.method in SAFE_METHODS:
            return True
        return bool(user.is_staff or user.is_superuser)


class IsTrustedDevice(BasePermission):
    message = "Unauthorized source"

    def has_permission(self, request, view):
        allowed = getattr(settings, "ATTENDANCE_ALLOWED_DEVICE_IPS", [])
        if allowed and client_ip(request) not in allowed:
            return False

        expected = getattr(settings, "ATTENDANCE_DEVICE_TOKEN", "")
        if not expected:
            return True
        return request.headers.get("X-Device-Token", "") == expected
