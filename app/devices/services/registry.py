from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any

from django.conf import settings
from django.utils import timezone

from devices.models import Device

logger = logging.getLogger(__name__)

DEVICE_ID_PREFIX = "RFID-"
HEARTBEAT_FIELDS = ("ip_address", "wifi_signal", "uptime", "cache_size", "firmware")


def hashed_id_from_mac(mac_address: str) -> str:
    clean = mac_address.replace(":", "").upper()
    value = 0
    for char in clean:
        value = (value * 31 + ord(char)) & 0xFFFFFFFF
    return f"{value:X}"[-8:]


def hashed_id_from_device_id(device_id: str) -> str:
    if device_id.startswith(DEVICE_ID_PREFIX):
        return device_id[len(DEVICE_ID_PREFIX):]
    return device_id


def connect_device(
    *,
    device_id: str = "",
    mac_address: str = "",
    network: dict[str, Any] | None = None,
) -> Device:
    """Upsert a device announcing itself on boot.

    Unknown devices are created without a location, so scans from them are
    rejected until an administrator registers them.
    """
    mac_address = mac_address.upper()
    if device_id:
        hashed_mac_id = hashed_id_from_device_id(device_id)
    else:
        hashed_mac_id = hashed_id_from_mac(mac_address)
        device_id = f"{DEVICE_ID_PREFIX}{hashed_mac_id}"

    device = Device.objects.filter(device_id=device_id).first()
    if device is None and mac_address:
        device = Device.objects.filter(mac_address=mac_address).first()

    if device is None:
        device = Device(device_id=device_id, description="Unregistered device")
        logger.info("New device connected", extra={"device_id": device_id})

    device.device_id = device_id
    device.hashed_mac_id = hashed_mac_id
    if mac_address:
        device.mac_address = mac_address
    for key, value in (network or {}).items():
        if key in HEARTBEAT_FIELDS and value is not None:
            setattr(device, key, value)
    device.status = Device.Status.NORMAL
    device.last_heartbeat = timezone.now()
    device.save()
    return device


def record_heartbeat(device: Device, status: str = "", network: dict[str, Any] | None = None) -> Device:
    device.status = status or Device.Status.NORMAL
    device.last_heartbeat = timezone.now()
    for key, value in (network or {}).items():
        if key in HEARTBEAT_FIELDS and value not in (None, ""):
            setattr(device, key, value)
    device.save()

    if device.status == Device.Status.TAMPERED:
        logger.warning("Device heartbeat reported tampering", extra={"device_id": device.device_id})
    return device


def sweep_offline_devices(now: datetime | None = None) -> int:
    """Mark devices OFFLINE when their last heartbeat is older than the threshold."""
    now = now or timezone.now()
    threshold = now - timedelta(seconds=getattr(settings, "DEVICE_OFFLINE_AFTER_SECONDS", 120))
    updated = (
        Device.objects.filter(last_heartbeat__lt=threshold)
        .exclude(status=Device.Status.OFFLINE)
        .update(status=Device.Status.OFFLINE, updated_at=now)
    )
    if updated:
        logger.info("Marked devices offline", extra={"count": updated})
    return updated
