# onlycat2mqtt/routers/cache.py
"""Read-only view of the reference cache used for enrichment."""

from fastapi import APIRouter, Depends
from onlycat2mqtt.services.bridge import OnlyCatBridge, get_bridge

router = APIRouter()


@router.get("/devices", summary="Cached devices (flaps)")
def list_devices(bridge: OnlyCatBridge = Depends(get_bridge)):
    return [
        {"deviceId": device_id, "description": device.description}
        for device_id, device in bridge.cache.devices().items()
    ]


@router.get("/rfids", summary="Cached RFID tag labels")
def list_rfids(bridge: OnlyCatBridge = Depends(get_bridge)):
    return [{"rfidCode": code, "label": label} for code, label in bridge.cache.tags().items()]
