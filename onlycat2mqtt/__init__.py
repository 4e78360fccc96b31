"""OnlyCat gateway to MQTT bridge."""

__version__ = "0.2.0"
