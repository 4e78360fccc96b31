# tests/test_bridge.py
"""Unit tests for the Socket.IO bridge: handler wiring, refresh and lifecycle."""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import asyncio
import pytest
import socketio
from aiohttp import web
from unittest.mock import MagicMock, AsyncMock
from socketio.exceptions import ConnectionError as SocketConnectionError
from onlycat2mqtt.config import Settings
from onlycat2mqtt.services.bridge import OnlyCatBridge
from fakes import FakeChannel, onlycat_responses

DETAIL = {
    "timestamp": "2024-01-01T00:00:00Z",
    "eventTriggerSource": 3,
    "eventClassification": 1,
    "rfidCodes": ["CCDD"],
    "frameCount": 12,
    "accessToken": "tok",
}


def make_settings(**overrides):
    values = dict(TOKEN="secret", CONNECT_MIN_BACKOFF=0, CONNECT_MAX_BACKOFF=0,
                  RPC_TIMEOUT_SECONDS=0.05)
    values.update(overrides)
    return Settings(**values)


def make_bridge(responses=None, connected=True, **settings):
    channel = FakeChannel(responses if responses is not None else onlycat_responses(getEvent=DETAIL))
    client = MagicMock()
    client.connected = connected
    client.namespaces = {"/": "sid"} if connected else {}
    client.emit = channel.emit
    client.connect = AsyncMock()
    client.wait = AsyncMock()
    client.disconnect = AsyncMock()
    publisher = MagicMock()
    publisher.connected = True
    bridge = OnlyCatBridge(make_settings(**settings), publisher, client=client)
    return bridge, client, publisher, channel


def handlers(client):
    return {c.args[0]: c.args[1] for c in client.on.call_args_list}


class TestHandlerWiring:
    def test_registers_every_channel_event(self):
        _, client, _, _ = make_bridge()
        assert set(handlers(client)) == {
            "connect", "disconnect", "userUpdate", "userEventUpdate",
            "userDeviceUpdate", "deviceUpdate", "deviceEventUpdate", "eventUpdate",
        }

    def test_url_carries_platform_and_device(self):
        bridge, _, _, _ = make_bridge()
        assert bridge.url == "https://gateway.onlycat.com?platform=onlycat2mqtt&device=ionic-app"

    @pytest.mark.asyncio
    async def test_informational_events_do_not_call_gateway(self):
        _, client, _, channel = make_bridge()
        on = handlers(client)

        await on["userUpdate"]({"id": 1, "name": "Jane"})
        await on["deviceUpdate"]({"deviceId": "D1"})
        await on["disconnect"]("transport close")

        assert channel.emitted == []


class TestEventNotifications:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("kind", ["deviceEventUpdate", "eventUpdate"])
    async def test_notification_is_enriched_and_published(self, kind):
        bridge, client, publisher, _ = make_bridge()
        await bridge._refresh_until_ok()

        await handlers(client)[kind]({"deviceId": "D2", "eventId": 5, "type": "motion"})
        await asyncio.gather(*list(bridge._tasks))

        publisher.publish.assert_called_once()
        topic, payload = publisher.publish.call_args[0]
        assert topic == "onlycat2mqtt/event"
        assert b'"devicename":"Back Door"' in payload
        assert b'{"tag":"CCDD","name":"Tom"}' in payload

    @pytest.mark.asyncio
    async def test_burst_of_notifications_runs_concurrently(self):
        bridge, client, publisher, _ = make_bridge()
        handler = handlers(client)["deviceEventUpdate"]

        for event_id in range(5):
            await handler({"deviceId": "D1", "eventId": event_id})
        tasks = list(bridge._tasks)
        assert len(tasks) == 5

        await asyncio.gather(*tasks)
        assert publisher.publish.call_count == 5
        assert bridge.status()["events_in_flight"] == 0


class TestConnectAndRefresh:
    @pytest.mark.asyncio
    async def test_connect_starts_refresh(self):
        bridge, client, _, _ = make_bridge()

        await handlers(client)["connect"]()
        result = await bridge._refresh_task

        assert result.ok
        assert bridge.cache.lookup_device("D1").description == "Front Door"
        assert bridge.status()["last_refresh_ok"] is True

    @pytest.mark.asyncio
    async def test_reconnect_cancels_running_refresh(self):
        bridge, client, _, _ = make_bridge()
        on_connect = handlers(client)["connect"]

        await on_connect()
        first = bridge._refresh_task
        await on_connect()
        second = bridge._refresh_task

        assert first is not second
        await asyncio.gather(first, return_exceptions=True)
        assert first.cancelled()
        assert (await second).ok

    @pytest.mark.asyncio
    async def test_failed_refresh_is_retried(self):
        attempts = []

        def devices(params):
            attempts.append(params)
            if len(attempts) < 3:
                return {"error": "Service unavailable"}
            return [{"deviceId": "D1"}]

        bridge, _, _, _ = make_bridge(onlycat_responses(getDevices=devices))

        result = await bridge._refresh_until_ok()

        assert result.ok
        assert len(attempts) == 3
        assert bridge.cache.lookup_device("D1") is not None

    @pytest.mark.asyncio
    async def test_refresh_stops_retrying_when_disconnected(self):
        bridge, _, _, _ = make_bridge(connected=False)
        bridge.gateway._channel = FakeChannel(onlycat_responses(getDevices={"error": "nope"}))

        result = await bridge._refresh_until_ok()

        assert not result.ok
        assert bridge.status()["last_refresh_error"] == "getDevices failed: nope"


    @pytest.mark.asyncio
    async def test_refresh_runs_before_connected_flag_is_set(self):
        # python-socketio joins the namespace, runs the connect handler, and only
        # then sets AsyncClient.connected
        bridge, client, _, _ = make_bridge()
        client.connected = False

        await handlers(client)["connect"]()
        result = await bridge._refresh_task

        assert result.ok
        assert bridge.cache.lookup_device("D1").description == "Front Door"
        assert bridge.cache.lookup_tag("AABB") == "Whiskers"


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_run_retries_initial_connect(self):
        bridge, client, _, _ = make_bridge()
        client.connect.side_effect = [SocketConnectionError("refused"), None]

        async def wait():
            bridge._stopping = True

        client.wait.side_effect = wait
        loop = asyncio.get_running_loop()
        try:
            await bridge.run()
        finally:
            loop.set_exception_handler(None)

        assert client.connect.await_count == 2
        args, kwargs = client.connect.call_args
        assert args[0] == bridge.url
        assert kwargs["transports"] == ["websocket"]
        assert kwargs["auth"] == {"token": "secret"}

    @pytest.mark.asyncio
    async def test_stop_disconnects(self):
        bridge, client, _, _ = make_bridge()
        await bridge.stop()
        client.disconnect.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_unhandled_exception_disconnects(self):
        bridge, client, _, _ = make_bridge()
        loop = asyncio.get_running_loop()

        bridge._on_unhandled_exception(loop, {"exception": RuntimeError("boom")})
        await asyncio.sleep(0)

        client.disconnect.assert_awaited_once()


async def start_gateway_server(responses):
    """Real Socket.IO server on a free local port answering like the OnlyCat gateway."""
    server = socketio.AsyncServer(async_mode="aiohttp")
    seen = {"calls": [], "auth": None, "query": None}

    async def on_connect(sid, environ, auth=None):
        seen["auth"] = auth
        seen["query"] = environ.get("QUERY_STRING")

    def answer(method, response):
        async def handler(sid, data):
            seen["calls"].append(method)
            return response(data) if callable(response) else response
        return handler

    server.on("connect", on_connect)
    for method, response in responses.items():
        server.on(method, answer(method, response))

    app = web.Application()
    server.attach(app)
    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, "127.0.0.1", 0)
    await site.start()
    port = runner.addresses[0][1]
    return server, runner, seen, f"http://127.0.0.1:{port}"


async def wait_for(condition, timeout=5.0):
    deadline = asyncio.get_running_loop().time() + timeout
    while not condition():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.02)


class TestAgainstSocketIOServer:
    @pytest.mark.asyncio
    async def test_connect_refreshes_cache_and_enriches_events(self):
        server, runner, seen, url = await start_gateway_server(onlycat_responses(getEvent=DETAIL))
        publisher = MagicMock()
        publisher.connected = True
        bridge = OnlyCatBridge(
            make_settings(GATEWAY_URL=url, RPC_TIMEOUT_SECONDS=2), publisher
        )
        loop = asyncio.get_running_loop()
        run_task = asyncio.create_task(bridge.run())
        try:
            await wait_for(lambda: bridge._refresh_task is not None and bridge._refresh_task.done())

            assert bridge.last_refresh.ok, bridge.last_refresh.error
            assert bridge.cache.lookup_device("D1").description == "Front Door"
            assert bridge.cache.tags() == {"AABB": "Whiskers", "CCDD": "Tom"}
            assert seen["calls"][0] == "getDevices"
            assert seen["auth"] == {"token": "secret"}
            assert "platform=onlycat2mqtt" in seen["query"]

            await server.emit("deviceEventUpdate", {"deviceId": "D2", "eventId": 5, "type": "motion"})
            await wait_for(lambda: publisher.publish.called)

            topic, payload = publisher.publish.call_args[0]
            assert topic == "onlycat2mqtt/event"
            assert b'"devicename":"Back Door"' in payload
            assert b'{"tag":"CCDD","name":"Tom"}' in payload
        finally:
            await bridge.stop()
            await asyncio.wait_for(run_task, timeout=5)
            loop.set_exception_handler(None)
            await runner.cleanup()
