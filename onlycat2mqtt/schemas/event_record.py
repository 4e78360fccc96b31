# onlycat2mqtt/schemas/event_record.py
"""Canonical record published to MQTT. Absent values are omitted on the wire."""

from pydantic import BaseModel
from typing import List, Optional, Union


class RfidCodeOut(BaseModel):
    tag: str
    name: Optional[str] = None


class EventRecord(BaseModel):
    eventtime: str
    eventid: Union[int, str]
    type: Optional[str] = None
    deviceid: str
    devicename: Optional[str] = None
    triggersource: Optional[str] = None
    classification: Optional[str] = None
    rfidcodes: List[RfidCodeOut] = []
    captureurl: str
    framecount: Optional[int] = None
    accesstoken: Optional[str] = None

    def to_payload(self) -> bytes:
        """JSON bytes for the MQTT publish, with unset fields dropped."""
        return self.model_dump_json(exclude_none=True).encode("utf-8")
