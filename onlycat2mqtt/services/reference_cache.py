# onlycat2mqtt/services/reference_cache.py
"""
In-memory reference data used to enrich events.
Filled by cache_refresh on every socket connection, read by the event pipeline.
"""

from datetime import datetime
from typing import Dict, Optional

from onlycat2mqtt.schemas.device import Device


class ReferenceCache:
    """Device-ID → Device and RFID-code → label. Rebuilt from scratch per connection."""

    def __init__(self):
        self._devices: Dict[str, Device] = {}
        self._tags: Dict[str, Optional[str]] = {}
        self.last_refreshed: Optional[datetime] = None

    def clear(self):
        self._devices.clear()
        self._tags.clear()

    def put_device(self, device: Device):
        self._devices[device.device_id] = device

    def add_tag(self, rfid_code: str, label: Optional[str]) -> bool:
        """Store a tag label. The first label seen for a code wins; returns False if skipped."""
        if rfid_code in self._tags:
            return False
        self._tags[rfid_code] = label
        return True

    def has_tag(self, rfid_code: str) -> bool:
        return rfid_code in self._tags

    def lookup_device(self, device_id: str) -> Optional[Device]:
        return self._devices.get(device_id)

    def lookup_tag(self, rfid_code: str) -> Optional[str]:
        return self._tags.get(rfid_code)

    def devices(self) -> Dict[str, Device]:
        return dict(self._devices)

    def tags(self) -> Dict[str, Optional[str]]:
        return dict(self._tags)
