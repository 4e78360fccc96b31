# onlycat2mqtt/schemas/event.py
"""Inbound event payloads: push notifications and the fetched event detail."""

from datetime import datetime
from pydantic import BaseModel, Field
from typing import Any, List, Optional, Union


class EventNotification(BaseModel):
    """Minimal push payload of ``deviceEventUpdate`` / ``eventUpdate``."""

    device_id: str = Field(alias="deviceId")
    event_id: Union[int, str] = Field(alias="eventId")
    type: Optional[str] = None

    class Config:
        populate_by_name = True
        extra = "allow"


class EventDetail(BaseModel):
    """Full event record from ``getEvent``."""

    timestamp: datetime              # ISO string or epoch seconds / milliseconds
    device_id: Optional[str] = Field(default=None, alias="deviceId")
    event_id: Optional[Union[int, str]] = Field(default=None, alias="eventId")
    event_trigger_source: Optional[Any] = Field(default=None, alias="eventTriggerSource")
    event_classification: Optional[Any] = Field(default=None, alias="eventClassification")
    rfid_codes: List[str] = Field(default_factory=list, alias="rfidCodes")
    frame_count: Optional[int] = Field(default=None, alias="frameCount")
    access_token: Optional[str] = Field(default=None, alias="accessToken")

    class Config:
        populate_by_name = True
        extra = "allow"
