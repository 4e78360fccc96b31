# onlycat2mqtt/exceptions.py
"""Typed failures raised by the gateway client and the MQTT publisher."""


class BridgeError(Exception):
    """Base class for all bridge errors."""


class GatewayError(BridgeError):
    """A remote call answered with an ``error`` field."""

    def __init__(self, method: str, message):
        self.method = method
        self.message = str(message)
        super().__init__(f"{method} failed: {self.message}")


class GatewayTimeoutError(GatewayError):
    def __init__(self, method: str, timeout: float):
        self.timeout = timeout
        super().__init__(method, f"no response within {timeout}s")


class GatewayNotConnectedError(GatewayError):
    def __init__(self, method: str):
        super().__init__(method, "socket is not connected")


class PublishError(BridgeError):
    """The MQTT client refused to queue a message."""
