# onlycat2mqtt/services/publisher.py
"""
MQTT publisher: fire-and-forget QoS 0 publishes through paho-mqtt.

paho runs its own network thread (loop_start), so publish() only queues the
message and never blocks the asyncio loop.
"""

from urllib.parse import urlparse
from typing import Optional

import paho.mqtt.client as mqtt

from onlycat2mqtt.exceptions import PublishError
from onlycat2mqtt.utils.logger import get_logger

logger = get_logger(__name__)

_DEFAULT_PORTS = {"mqtt": 1883, "tcp": 1883, "mqtts": 8883, "ssl": 8883}


def parse_server(server: str):
    """'mqtt://host:1883' → (host, port, use_tls). A bare hostname is accepted too."""
    if "://" not in server:
        server = f"mqtt://{server}"
    url = urlparse(server)
    scheme = url.scheme.lower()
    if scheme not in _DEFAULT_PORTS:
        raise ValueError(f"Unsupported MQTT scheme '{scheme}' in {server}")
    return url.hostname or "localhost", url.port or _DEFAULT_PORTS[scheme], scheme in ("mqtts", "ssl")


class MqttPublisher:
    def __init__(self, server: str, username: Optional[str] = None,
                 password: Optional[str] = None, client_id: str = "onlycat2mqtt"):
        self.host, self.port, self.tls = parse_server(server)
        self.connected = False

        self._client = mqtt.Client(
            callback_api_version=mqtt.CallbackAPIVersion.VERSION2, client_id=client_id
        )
        if username:
            self._client.username_pw_set(username, password)
        if self.tls:
            self._client.tls_set()
        self._client.on_connect = self._on_connect
        self._client.on_disconnect = self._on_disconnect

    def start(self):
        """Connect in the background; paho keeps reconnecting on its own."""
        logger.info(f"Connecting to MQTT broker {self.host}:{self.port}")
        self._client.connect_async(self.host, self.port)
        self._client.loop_start()

    def stop(self):
        self._client.disconnect()
        self._client.loop_stop()
        self.connected = False

    def publish(self, topic: str, payload: bytes):
        info = self._client.publish(topic, payload)
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            raise PublishError(f"MQTT publish to {topic} failed: {mqtt.error_string(info.rc)}")

    def _on_connect(self, client, userdata, flags, reason_code, properties):
        if reason_code.is_failure:
            logger.error(f"MQTT Client Error: connect refused ({reason_code})")
            return
        self.connected = True
        logger.info("Connected to MQTT broker.")

    def _on_disconnect(self, client, userdata, flags, reason_code, properties):
        self.connected = False
        logger.warning(f"MQTT broker disconnected ({reason_code})")
