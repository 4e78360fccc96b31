# onlycat2mqtt/main.py
"""
Application entry point.
Starts the MQTT publisher and the OnlyCat gateway subscription on startup,
and serves a small status API next to them.
"""

import asyncio
import time
from datetime import datetime

import uvicorn
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from onlycat2mqtt import __version__
from onlycat2mqtt.config import settings
from onlycat2mqtt.routers import cache, health
from onlycat2mqtt.services.bridge import OnlyCatBridge
from onlycat2mqtt.services.publisher import MqttPublisher
from onlycat2mqtt.utils.logger import get_logger

logger = get_logger(__name__)

app = FastAPI(
    title="OnlyCat to MQTT Bridge",
    description="Republishes enriched OnlyCat flap events to MQTT.",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
)


# ── Request Timing Middleware ────────────────────────────────────────────────
@app.middleware("http")
async def log_status_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    duration = round((time.perf_counter() - start) * 1000, 2)
    logger.debug(f"Status API {request.method} {request.url.path} → {response.status_code} ({duration}ms)")
    return response


# ── Global Exception Handler ─────────────────────────────────────────────────
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    bridge = getattr(request.app.state, "bridge", None)
    gateway = "connected" if bridge is not None and bridge.connected else "disconnected"
    logger.error(
        f"Status API error on {request.method} {request.url.path} (gateway {gateway}): {exc}",
        exc_info=True,
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error", "path": request.url.path, "gateway": gateway},
    )


# ── Routers ──────────────────────────────────────────────────────────────────
app.include_router(health.router, prefix="/api/v1", tags=["💚 Health"])
app.include_router(cache.router,  prefix="/api/v1", tags=["🐈 Reference Cache"])


# ── Startup ───────────────────────────────────────────────────────────────────
@app.on_event("startup")
async def startup():
    logger.info(f"🚀 Starting Onlycat Websocket to MQTT. Version: {__version__}")
    logger.info(f"🕒 Configured Timezone: {settings.TIMEZONE or datetime.now().astimezone().tzname()}")

    publisher = MqttPublisher(
        settings.MQTT_SERVER,
        username=settings.MQTT_USERNAME,
        password=settings.MQTT_PASSWORD,
        client_id=settings.MQTT_CLIENT_ID,
    )
    publisher.start()

    bridge = OnlyCatBridge(settings, publisher)
    app.state.bridge = bridge
    app.state.bridge_task = asyncio.create_task(bridge.run(), name="onlycat-bridge")
    logger.info(f"📤 Publishing events to topic {settings.MQTT_TOPIC}")


@app.on_event("shutdown")
async def shutdown():
    logger.info("🛑 Shutdown received. Cleaning up.")
    bridge = getattr(app.state, "bridge", None)
    if bridge is not None:
        await bridge.stop()
        app.state.bridge_task.cancel()
        bridge.publisher.stop()
    logger.info("Exited.")


def run():
    """Console-script entry point. uvicorn handles SIGINT/SIGTERM and calls shutdown()."""
    uvicorn.run(
        "onlycat2mqtt.main:app",
        host=settings.BACKEND_IP,
        port=settings.BACKEND_PORT,
        log_level=settings.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    run()
