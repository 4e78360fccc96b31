# onlycat2mqtt/routers/health.py
"""
Bridge health check endpoint.
Returns socket + MQTT connectivity and reference cache state.
"""

from datetime import datetime
from fastapi import APIRouter, Depends
from onlycat2mqtt.services.bridge import OnlyCatBridge, get_bridge

router = APIRouter()


@router.get("/health", summary="Bridge health check")
def health_check(bridge: OnlyCatBridge = Depends(get_bridge)):
    """
    Returns:
    - Socket.IO gateway connectivity
    - MQTT broker connectivity
    - Cached device / RFID tag counts and last refresh result
    """
    result = {"status": "ok", "timestamp": datetime.utcnow().isoformat()}
    result.update(bridge.status())

    if not (result["socket_connected"] and result["mqtt_connected"]):
        result["status"] = "degraded"
    if result["last_refresh_ok"] is False:
        result["status"] = "degraded"
    return result
