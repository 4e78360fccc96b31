# onlycat2mqtt/services/bridge.py
"""
OnlyCat Socket.IO subscription.

Connects to the gateway, rebuilds the reference cache on every (re)connect and
spawns one enrichment task per device event notification. Reconnection after
an established session is left to python-socketio; only the very first
connect is retried here.
"""

import asyncio
from typing import Optional, Set
from urllib.parse import urlencode
from zoneinfo import ZoneInfo

import socketio
from fastapi import Request
from socketio.exceptions import ConnectionError as SocketConnectionError

from onlycat2mqtt.config import Settings
from onlycat2mqtt.services.cache_refresh import RefreshResult, refresh_cache
from onlycat2mqtt.services.event_pipeline import EVENT_KINDS, EventPipeline
from onlycat2mqtt.services.gateway import RpcGateway
from onlycat2mqtt.services.publisher import MqttPublisher
from onlycat2mqtt.services.reference_cache import ReferenceCache
from onlycat2mqtt.utils.logger import get_logger

logger = get_logger(__name__)


class OnlyCatBridge:
    def __init__(self, settings: Settings, publisher: MqttPublisher,
                 client: Optional[socketio.AsyncClient] = None):
        self.settings = settings
        self.publisher = publisher
        self.sio = client or socketio.AsyncClient(reconnection=True)
        self.cache = ReferenceCache()
        self.gateway = RpcGateway(self.sio, timeout=settings.RPC_TIMEOUT_SECONDS)
        tz = ZoneInfo(settings.TIMEZONE) if settings.TIMEZONE else None
        self.pipeline = EventPipeline(
            self.gateway, self.cache, publisher.publish, settings.MQTT_TOPIC, tz
        )

        self.last_refresh: Optional[RefreshResult] = None
        self._refresh_task: Optional[asyncio.Task] = None
        self._tasks: Set[asyncio.Task] = set()
        self._has_connected = False
        self._stopping = False

        self.sio.on("connect", self._on_connect)
        self.sio.on("disconnect", self._on_disconnect)
        self.sio.on("userUpdate", self._on_user_update)
        for name in ("userEventUpdate", "userDeviceUpdate", "deviceUpdate"):
            self.sio.on(name, self._debug_handler(name))
        for kind in EVENT_KINDS:
            self.sio.on(kind, self._event_handler(kind))

    @property
    def connected(self) -> bool:
        return bool(self.sio.connected)

    @property
    def session_open(self) -> bool:
        """True once the namespace is joined; already set inside the connect handler."""
        return bool(self.sio.namespaces)

    @property
    def url(self) -> str:
        query = urlencode({
            "platform": self.settings.GATEWAY_PLATFORM,
            "device": self.settings.GATEWAY_DEVICE,
        })
        return f"{self.settings.GATEWAY_URL}?{query}"

    # ── Lifecycle ─────────────────────────────────────────────────────────

    async def run(self):
        """Connect (retrying with backoff until the first success) and stay subscribed."""
        asyncio.get_running_loop().set_exception_handler(self._on_unhandled_exception)
        backoff = self.settings.CONNECT_MIN_BACKOFF

        while not self._stopping:
            logger.info(f"📡 Connecting to OnlyCat gateway: {self.settings.GATEWAY_URL}")
            try:
                await self.sio.connect(
                    self.url,
                    transports=["websocket"],
                    auth={"token": self.settings.TOKEN},
                )
                backoff = self.settings.CONNECT_MIN_BACKOFF
                await self.sio.wait()
            except SocketConnectionError as e:
                logger.warning(f"❌ Gateway connection failed: {e}. Retry in {backoff}s")
            except Exception as e:
                logger.error(f"❌ Gateway — unexpected error: {e}", exc_info=True)

            if self._stopping:
                break
            await asyncio.sleep(backoff)
            backoff = min(backoff * 2, self.settings.CONNECT_MAX_BACKOFF)

    async def stop(self):
        """Close the socket. In-flight enrichments are abandoned, not awaited."""
        self._stopping = True
        if self._refresh_task and not self._refresh_task.done():
            self._refresh_task.cancel()
        await self.sio.disconnect()

    def status(self) -> dict:
        refresh = self.last_refresh
        return {
            "socket_connected": self.connected,
            "mqtt_connected": self.publisher.connected,
            "devices": len(self.cache.devices()),
            "rfid_tags": len(self.cache.tags()),
            "last_refreshed": self.cache.last_refreshed.isoformat() if self.cache.last_refreshed else None,
            "last_refresh_ok": refresh.ok if refresh else None,
            "last_refresh_error": refresh.error if refresh else None,
            "events_in_flight": len(self._tasks),
        }

    # ── Socket handlers ───────────────────────────────────────────────────

    async def _on_connect(self):
        if self._has_connected:
            logger.info("Socket reconnected.")
        else:
            logger.info("Socket connected.")
        self._has_connected = True

        if self._refresh_task and not self._refresh_task.done():
            self._refresh_task.cancel()
        self._refresh_task = asyncio.create_task(self._refresh_until_ok(), name="cache-refresh")

    async def _on_disconnect(self, reason=None):
        logger.warning(f"Socket disconnected: {reason}")

    async def _on_user_update(self, event):
        logger.info(f"User [{event.get('name')}] with Id [{event.get('id')}] logged in.")
        logger.debug(f"UserUpdate: '{event}'")

    def _debug_handler(self, name: str):
        async def handler(event):
            logger.debug(f"{name}: '{event}'")
        return handler

    def _event_handler(self, kind: str):
        async def handler(event):
            self._spawn(self.pipeline.handle(kind, event), name=kind)
        return handler

    def _spawn(self, coro, name: str):
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _refresh_until_ok(self) -> RefreshResult:
        """Refresh the cache, retrying with backoff while the socket session stays open."""
        backoff = self.settings.CONNECT_MIN_BACKOFF
        while True:
            self.last_refresh = await refresh_cache(self.gateway, self.cache)
            if self.last_refresh.ok or not self.session_open:
                return self.last_refresh
            logger.warning(f"Retrying cache refresh in {backoff}s")
            await asyncio.sleep(backoff)
            backoff = min(backoff * 2, self.settings.CONNECT_MAX_BACKOFF)

    def _on_unhandled_exception(self, loop, context):
        error = context.get("exception") or context.get("message")
        logger.error(f"Unhandled Exception. Error: [{error}] - Cleaning up.")
        if self.sio.connected and not self._stopping:
            loop.create_task(self.stop())


def get_bridge(request: Request) -> OnlyCatBridge:
    """FastAPI dependency — the bridge created at startup."""
    return request.app.state.bridge
