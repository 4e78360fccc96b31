# onlycat2mqtt/services/cache_refresh.py
"""
Rebuilds the reference cache from the gateway.

Runs once per socket connection (including reconnects):
  getDevices → getDevice → getLastSeenRfidCodesByDevice → getRfidProfile
for every device, plus transit policies and saved events, which are only logged.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from onlycat2mqtt.schemas.device import Device, RfidTag
from onlycat2mqtt.services.gateway import RpcGateway
from onlycat2mqtt.services.reference_cache import ReferenceCache
from onlycat2mqtt.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class RefreshResult:
    ok: bool
    devices: int = 0
    tags: int = 0
    error: Optional[str] = None


async def refresh_cache(gateway: RpcGateway, cache: ReferenceCache) -> RefreshResult:
    """
    Clear the cache and fill it again from the gateway.

    A failure while loading devices or tags aborts the run and is returned as
    ``RefreshResult(ok=False)``. The cache stays cleared or partly filled,
    never merged with the previous connection's data.
    """
    cache.clear()

    try:
        logger.info("Retrieving Devices (flaps) from API.")
        devices = await gateway.get_devices()
        logger.info(f"Found {len(devices)} Device(s) (flaps).")

        for device_element in devices:
            device_id = device_element["deviceId"]
            await _load_device(gateway, cache, device_id)
            await _load_rfid_tags(gateway, cache, device_id)
            await _log_device_extras(gateway, device_id)

    except Exception as e:
        logger.error(f"Cache refresh failed: {e}")
        return RefreshResult(ok=False, devices=len(cache.devices()), tags=len(cache.tags()), error=str(e))

    cache.last_refreshed = datetime.now()
    result = RefreshResult(ok=True, devices=len(cache.devices()), tags=len(cache.tags()))
    logger.info(f"Cache refreshed: {result.devices} device(s), {result.tags} RFID tag(s).")
    return result


async def _load_device(gateway: RpcGateway, cache: ReferenceCache, device_id: str):
    detail = await gateway.get_device(device_id)
    device = Device.model_validate({"deviceId": device_id, **detail})
    cache.put_device(device)
    logger.info(f"Added Device (flap) [{device_id}] with description [{device.description}] to saved Devices.")


async def _load_rfid_tags(gateway: RpcGateway, cache: ReferenceCache, device_id: str):
    logger.info(f"Retrieving RFID tags for Device [{device_id}] from API.")
    rfids = await gateway.get_rfid_codes(device_id)
    logger.info(f"Found {len(rfids)} RFID tags for Device [{device_id}].")

    for rfid_element in rfids:
        code = RfidTag.model_validate(rfid_element).rfid_code
        if cache.has_tag(code):
            logger.info(
                f"Skipped RFID tag [{code}] RFID tag already exists in saved RFID tags "
                f"(likely from another device)."
            )
            continue
        profile = await gateway.get_rfid_profile(code)
        label = (profile or {}).get("label")
        cache.add_tag(code, label)
        logger.info(f"Added RFID tag [{code}] with label [{label}] to saved RFID tags.")

    logger.debug(f"Saved RFID tags: {cache.tags()}")
    logger.info("Finished retrieving RFID tags from API.")


async def _log_device_extras(gateway: RpcGateway, device_id: str):
    """Transit policies and saved events. Not used for enrichment; failures only warn."""
    try:
        policies = await gateway.get_transit_policies(device_id)
        for policy_element in policies:
            policy = await gateway.get_transit_policy(policy_element["deviceTransitPolicyId"])
            logger.debug(f"Transit policy for [{device_id}]: {policy}")
        logger.info(f"Retrieved {len(policies)} transit policies from device [{device_id}].")

        device_events = await gateway.get_device_events(device_id)
        logger.info(f"Retrieved {len(device_events)} saved events from device [{device_id}].")
    except Exception as e:
        logger.warning(f"Could not retrieve transit policies / events for [{device_id}]: {e}")
