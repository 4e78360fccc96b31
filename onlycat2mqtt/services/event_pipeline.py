# onlycat2mqtt/services/event_pipeline.py
"""
Turns a device event notification into the canonical MQTT record.

Notification → getEvent detail → join with the reference cache → publish.
Events are best-effort: any failure drops the event, is logged, and is
returned as a failed EnrichmentOutcome. Nothing is retried.
"""

from dataclasses import dataclass
from datetime import datetime, tzinfo
from enum import IntEnum
from typing import Callable, Optional, Type

from onlycat2mqtt.schemas.event import EventDetail, EventNotification
from onlycat2mqtt.schemas.event_record import EventRecord, RfidCodeOut
from onlycat2mqtt.services.gateway import RpcGateway
from onlycat2mqtt.services.reference_cache import ReferenceCache
from onlycat2mqtt.utils.logger import get_logger

logger = get_logger(__name__)

CAPTURE_URL_BASE = "https://gateway.onlycat.com/sharing/video"

# Notification kinds handled by the pipeline
EVENT_KINDS = ("deviceEventUpdate", "eventUpdate")


class EventTriggerSource(IntEnum):
    MANUAL = 0
    REMOTE = 1
    INDOOR_MOTION = 2
    OUTDOOR_MOTION = 3


class EventClassification(IntEnum):
    UNKNOWN = 0
    CLEAR = 1
    SUSPICIOUS = 2
    CONTRABAND = 3
    HUMAN_ACTIVITY = 4
    REMOTE_UNLOCK = 10


@dataclass
class EnrichmentOutcome:
    published: bool
    record: Optional[EventRecord] = None
    error: Optional[str] = None


def resolve_label(enum_cls: Type[IntEnum], code) -> Optional[str]:
    """Enum name for a numeric code, or None for anything outside the table."""
    if isinstance(code, bool):
        return None
    if isinstance(code, str) and code.isdigit():
        code = int(code)
    elif isinstance(code, float) and code.is_integer():
        code = int(code)
    if not isinstance(code, int):
        return None
    try:
        return enum_cls(code).name
    except ValueError:
        return None


def capture_url(device_id, event_id, access_token) -> str:
    return f"{CAPTURE_URL_BASE}/{device_id}/{event_id}?t={access_token}"


def format_event_time(timestamp: datetime, tz: Optional[tzinfo] = None) -> str:
    """ISO-8601 with UTC offset, whole seconds, in ``tz`` (local zone if None)."""
    return timestamp.astimezone(tz).isoformat(timespec="seconds")


def build_event_record(notification: EventNotification, detail: EventDetail,
                       cache: ReferenceCache, tz: Optional[tzinfo] = None) -> EventRecord:
    """Join notification + detail + cache. Missing cache entries leave names unset."""
    device_id = detail.device_id or notification.device_id
    event_id = detail.event_id if detail.event_id is not None else notification.event_id

    device = cache.lookup_device(device_id)
    rfidcodes = [RfidCodeOut(tag=code, name=cache.lookup_tag(code)) for code in detail.rfid_codes]

    return EventRecord(
        eventtime=format_event_time(detail.timestamp, tz),
        eventid=notification.event_id,
        type=notification.type,
        deviceid=device_id,
        devicename=device.description if device else None,
        triggersource=resolve_label(EventTriggerSource, detail.event_trigger_source),
        classification=resolve_label(EventClassification, detail.event_classification),
        rfidcodes=rfidcodes,
        captureurl=capture_url(device_id, event_id, detail.access_token),
        framecount=detail.frame_count,
        accesstoken=detail.access_token,
    )


class EventPipeline:
    """
    Enriches and publishes one event per ``handle`` call.

    ``publish`` is ``publish(topic, payload_bytes)``; it should not block.
    Calls may run concurrently; they share the cache read-only.
    """

    def __init__(self, gateway: RpcGateway, cache: ReferenceCache,
                 publish: Callable[[str, bytes], None], topic: str,
                 tz: Optional[tzinfo] = None):
        self.gateway = gateway
        self.cache = cache
        self.publish = publish
        self.topic = topic
        self.tz = tz

    async def handle(self, kind: str, payload: dict) -> EnrichmentOutcome:
        try:
            notification = EventNotification.model_validate(payload)
            detail_raw = await self.gateway.get_event(notification.device_id, notification.event_id)
            detail = EventDetail.model_validate(detail_raw)
            record = build_event_record(notification, detail, self.cache, self.tz)

            logger.info(f"Received event. Event ID [{notification.event_id}] type [{kind}].")
            logger.debug(f"Event Data: {payload}")
            logger.debug(f"Event Details: {detail_raw}")

            message = record.to_payload()
            self.publish(self.topic, message)
            logger.debug(f"Sent MQTT Message: {message.decode('utf-8')}")
            return EnrichmentOutcome(published=True, record=record)

        except Exception as e:
            logger.warning(f"Dropped {kind} event {payload!r}: {e}")
            return EnrichmentOutcome(published=False, error=str(e))
