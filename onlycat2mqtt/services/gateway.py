# onlycat2mqtt/services/gateway.py
"""
Remote procedure calls over the OnlyCat Socket.IO channel.

The gateway answers every request through the Socket.IO acknowledgement
callback of the emit that carried it, so each call owns exactly one future
and no request IDs are needed. A response that carries an ``error`` field
fails the call with GatewayError; silence past the timeout fails it with
GatewayTimeoutError.
"""

import asyncio
from typing import Any, Optional

from socketio.exceptions import BadNamespaceError

from onlycat2mqtt.exceptions import GatewayError, GatewayNotConnectedError, GatewayTimeoutError
from onlycat2mqtt.utils.logger import get_logger

logger = get_logger(__name__)


class RpcGateway:
    """
    Awaitable request/response calls on a shared event channel.

    ``channel`` is anything with ``async emit(event, data, callback=...)``,
    normally a ``socketio.AsyncClient``.
    """

    def __init__(self, channel, timeout: Optional[float] = 30.0):
        self._channel = channel
        self._timeout = timeout

    async def call(self, method: str, params: Optional[dict] = None) -> Any:
        loop = asyncio.get_running_loop()
        future = loop.create_future()

        def _on_response(*args):
            if future.done():
                return
            future.set_result(args[0] if args else None)

        logger.debug(f"→ {method} {params}")
        try:
            await self._channel.emit(method, params or {}, callback=_on_response)
        except BadNamespaceError:
            raise GatewayNotConnectedError(method) from None

        try:
            response = await asyncio.wait_for(future, timeout=self._timeout)
        except asyncio.TimeoutError:
            raise GatewayTimeoutError(method, self._timeout) from None

        if isinstance(response, dict) and response.get("error"):
            raise GatewayError(method, response["error"])
        return response

    # ── Typed calls ───────────────────────────────────────────────────────

    async def get_devices(self) -> list:
        return await self.call("getDevices", {"subscribe": True})

    async def get_device(self, device_id: str) -> dict:
        return await self.call("getDevice", {"subscribe": True, "deviceId": device_id})

    async def get_rfid_codes(self, device_id: str) -> list:
        """RFID codes last seen by a device (``getLastSeenRfidCodesByDevice``)."""
        return await self.call("getLastSeenRfidCodesByDevice", {"deviceId": device_id})

    async def get_rfid_profile(self, rfid_code: str) -> dict:
        return await self.call("getRfidProfile", {"rfidCode": rfid_code})

    async def get_transit_policies(self, device_id: str) -> list:
        return await self.call("getDeviceTransitPolicies", {"deviceId": device_id})

    async def get_transit_policy(self, policy_id) -> dict:
        return await self.call("getDeviceTransitPolicy", {"deviceTransitPolicyId": policy_id})

    async def get_events(self) -> list:
        return await self.call("getEvents", {"subscribe": True})

    async def get_device_events(self, device_id: str) -> list:
        return await self.call("getDeviceEvents", {"subscribe": True, "deviceId": device_id})

    async def get_event(self, device_id: str, event_id) -> dict:
        return await self.call(
            "getEvent", {"subscribe": True, "deviceId": device_id, "eventId": event_id}
        )
