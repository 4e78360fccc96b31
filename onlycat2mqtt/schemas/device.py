# onlycat2mqtt/schemas/device.py
"""Reference data returned by the gateway: devices (flaps) and RFID tags."""

from pydantic import BaseModel, Field
from typing import Optional


class Device(BaseModel):
    """Full device record from ``getDevice``. Unknown fields are kept."""

    device_id: str = Field(alias="deviceId")
    description: Optional[str] = None

    class Config:
        populate_by_name = True
        extra = "allow"


class RfidTag(BaseModel):
    rfid_code: str = Field(alias="rfidCode")
    label: Optional[str] = None

    class Config:
        populate_by_name = True
        extra = "allow"
