# onlycat2mqtt/config.py
"""
Application configuration using Pydantic-Settings.
All settings can be overridden via environment variables or .env file.
"""

from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    # ── OnlyCat Gateway ───────────────────────────────────────────────────
    TOKEN: str = ""
    GATEWAY_URL: str = "https://gateway.onlycat.com"
    GATEWAY_PLATFORM: str = "onlycat2mqtt"
    GATEWAY_DEVICE: str = "ionic-app"
    RPC_TIMEOUT_SECONDS: float = 30.0      # Per-call timeout for request/response calls

    # Connect / refresh retry delay in seconds (doubles on each failure)
    CONNECT_MIN_BACKOFF: float = 3.0
    CONNECT_MAX_BACKOFF: float = 60.0

    # ── MQTT Broker ───────────────────────────────────────────────────────
    MQTT_SERVER: str = "mqtt://localhost:1883"   # mqtt:// or mqtts://
    MQTT_USERNAME: Optional[str] = None
    MQTT_PASSWORD: Optional[str] = None
    MQTT_CLIENT_ID: str = "onlycat2mqtt"
    MQTT_TOPIC: str = "onlycat2mqtt/event"

    # ── Event formatting ──────────────────────────────────────────────────
    TIMEZONE: Optional[str] = None   # IANA name, e.g. "Europe/London". Local zone if unset.

    # ── Status API ────────────────────────────────────────────────────────
    BACKEND_IP: str = "0.0.0.0"
    BACKEND_PORT: int = 8080

    # ── Logging ───────────────────────────────────────────────────────────
    LOG_LEVEL: str = "INFO"
    LOG_DIR: str = "log"

    class Config:
        env_file = ".env"
        extra = "ignore"


settings = Settings()
