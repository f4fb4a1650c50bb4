from __future__ import annotations

import asyncio

import pytest

from arm_controller import ArmController
from arm_errors import TransportError
from ble_session import BleSession
from ble_transport import BleTransport

SERVICE = "12345678-1234-5678-1234-56789abcdef0"
COMMAND = "12345678-1234-5678-1234-56789abcdef1"
STATUS = "12345678-1234-5678-1234-56789abcdef2"


class FakeChannel:
    def __init__(self, uuid: str, properties=("write-without-response",)):
        self.uuid = uuid
        self.properties = list(properties)

    def __repr__(self) -> str:
        return f"FakeChannel({self.uuid})"


class FakeTransport(BleTransport):
    """In-memory peripheral link; knobs on the instance simulate failures."""

    def __init__(self) -> None:
        self.available = True
        self.device: object | None = "SARM-ARM"
        self.fail_discovery = False
        self.fail_connect = False
        self.fail_subscribe = False
        self.fail_write = False
        self.hang_on: str | None = None  # name of a step that never completes
        self.gate: asyncio.Event | None = None
        self.channels = {
            COMMAND: FakeChannel(COMMAND),
            STATUS: FakeChannel(STATUS, properties=("notify", "read")),
        }
        self.read_value = b'{"joints":[90,90,90,90,90]}'

        self.calls: list[str] = []
        self.writes: list[bytes] = []
        self.notify_callback = None
        self.disconnect_callback = None
        self.link_open = False

    async def _maybe_hang(self, step: str) -> None:
        if self.hang_on == step:
            self.gate = asyncio.Event()
            await self.gate.wait()

    def release(self) -> None:
        """Let a step stuck on hang_on finish."""
        self.hang_on = None
        if self.gate is not None:
            self.gate.set()

    async def is_available(self) -> bool:
        self.calls.append("is_available")
        return self.available

    async def request_device(self, service_uuid):
        self.calls.append("request_device")
        await self._maybe_hang("discovery")
        if self.fail_discovery:
            raise TransportError("adapter busy")
        return self.device

    async def connect(self, device, on_disconnect) -> None:
        self.calls.append("connect")
        await self._maybe_hang("transport")
        if self.fail_connect:
            raise TransportError("gatt connect failed")
        self.disconnect_callback = on_disconnect
        self.link_open = True

    async def resolve_channel(self, service_uuid, channel_uuid):
        self.calls.append(f"resolve:{channel_uuid}")
        if service_uuid != SERVICE:
            return None
        return self.channels.get(channel_uuid)

    async def start_notify(self, channel, callback) -> None:
        self.calls.append("start_notify")
        if self.fail_subscribe:
            raise TransportError("cccd write rejected")
        self.notify_callback = callback

    async def stop_notify(self, channel) -> None:
        self.calls.append("stop_notify")

    async def write(self, channel, data: bytes) -> None:
        if self.fail_write:
            raise TransportError("write rejected")
        self.writes.append(bytes(data))

    async def read(self, channel) -> bytes:
        self.calls.append("read")
        return self.read_value

    async def disconnect(self) -> None:
        self.calls.append("disconnect")
        self.link_open = False

    # ---- peripheral side ----

    def notify(self, data: bytes) -> None:
        """Deliver a notification through whatever callback was registered last."""
        assert self.notify_callback is not None, "nobody subscribed"
        self.notify_callback(data)

    def drop_link(self) -> None:
        """Simulate the peripheral going away."""
        self.link_open = False
        assert self.disconnect_callback is not None, "never connected"
        self.disconnect_callback()


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def session(transport) -> BleSession:
    return BleSession(transport, SERVICE, COMMAND, STATUS, connect_timeout=0.5)


@pytest.fixture
def controller(session) -> ArmController:
    return ArmController(session)
