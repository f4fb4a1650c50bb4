# Author: Omi Shrestha

"""
BLE session for the SARM arm.

Owns the connection lifecycle (disconnected -> connecting -> connected),
the resolved command/status channels and the notification subscription.
Outbound commands are encoded and written to the command channel; inbound
status notifications are decoded and handed to the on_status callback.
"""

import asyncio
import logging
from enum import Enum
from typing import Callable, Optional

from arm_codec import Command, StatusReport, decode_status, encode_command
from arm_errors import (
    CapabilityUnavailable,
    ConnectError,
    ConnectTimeout,
    DecodeError,
    TransportError,
    WriteError,
)
from ble_transport import BleTransport

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class ConnectStep(str, Enum):
    DISCOVERY = "discovery"
    TRANSPORT = "transport"
    CHANNELS = "channels"
    SUBSCRIBE = "subscribe"


class BleSession:
    """Connection state machine over a BleTransport."""

    def __init__(
        self,
        transport: BleTransport,
        service_uuid: str,
        command_uuid: str,
        status_uuid: str,
        connect_timeout: float = 20.0,
        on_state_change: Optional[Callable[[SessionState], None]] = None,
        on_status: Optional[Callable[[StatusReport], None]] = None,
        on_decode_error: Optional[Callable[[bytes, DecodeError], None]] = None,
    ):
        self.transport = transport
        self.service_uuid = service_uuid
        self.command_uuid = command_uuid
        self.status_uuid = status_uuid
        self.connect_timeout = connect_timeout
        self.on_state_change = on_state_change
        self.on_status = on_status
        self.on_decode_error = on_decode_error

        self._state = SessionState.DISCONNECTED
        self._command_channel = None
        self._status_channel = None
        self._step: Optional[ConnectStep] = None
        # Bumped on every transition out of a connection; stale callbacks compare against it
        self._generation = 0
        self._connect_lock = asyncio.Lock()
        self._write_lock = asyncio.Lock()

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def connected(self) -> bool:
        return self._state is SessionState.CONNECTED

    @property
    def command_channel(self):
        return self._command_channel

    @property
    def status_channel(self):
        return self._status_channel

    def _set_state(self, state: SessionState) -> None:
        if state is self._state:
            return
        logger.info("Session %s -> %s", self._state.value, state.value)
        self._state = state
        if self.on_state_change:
            self.on_state_change(state)

    def _drop_link(self) -> None:
        """Clear channel references and move to disconnected in one step."""
        self._generation += 1
        self._command_channel = None
        self._status_channel = None
        self._step = None
        self._set_state(SessionState.DISCONNECTED)

    async def connect(self) -> None:
        """
        Run the full connect sequence: discovery, transport connect,
        channel resolution and notification subscription.

        Raises:
            CapabilityUnavailable: the platform has no BLE support
            ConnectError: a step failed (see .step)
            ConnectTimeout: the sequence exceeded connect_timeout
        """
        if self._connect_lock.locked() or self._state is not SessionState.DISCONNECTED:
            logger.warning("connect() ignored, session is %s", self._state.value)
            return

        async with self._connect_lock:
            if not await self.transport.is_available():
                raise CapabilityUnavailable("Bluetooth LE is not available on this system")

            self._set_state(SessionState.CONNECTING)
            generation = self._generation
            try:
                await asyncio.wait_for(self._establish(generation), timeout=self.connect_timeout)
            except asyncio.TimeoutError:
                step = self._step or ConnectStep.DISCOVERY
                await self._abort()
                raise ConnectTimeout(step.value, self.connect_timeout) from None
            except ConnectError:
                await self._abort()
                raise
            except asyncio.CancelledError:
                await self._abort()
                raise
            except Exception as e:
                step = self._step or ConnectStep.DISCOVERY
                logger.exception("Unexpected failure during %s", step.value)
                await self._abort()
                raise ConnectError(step.value, str(e) or type(e).__name__) from e

            if generation != self._generation:
                # disconnect() or a link drop landed while the sequence was suspended
                step = self._step or ConnectStep.SUBSCRIBE
                await self._abort()
                raise ConnectError(step.value, "link closed during connect")

            self._step = None
            self._set_state(SessionState.CONNECTED)

    async def _establish(self, generation: int) -> None:
        self._step = ConnectStep.DISCOVERY
        try:
            device = await self.transport.request_device(self.service_uuid)
        except TransportError as e:
            raise ConnectError(ConnectStep.DISCOVERY.value, str(e)) from e
        if device is None:
            raise ConnectError(ConnectStep.DISCOVERY.value, "no peripheral selected")

        self._step = ConnectStep.TRANSPORT
        try:
            await self.transport.connect(device, lambda: self._handle_disconnect(generation))
        except TransportError as e:
            raise ConnectError(ConnectStep.TRANSPORT.value, str(e)) from e

        self._step = ConnectStep.CHANNELS
        try:
            command = await self.transport.resolve_channel(self.service_uuid, self.command_uuid)
            status = await self.transport.resolve_channel(self.service_uuid, self.status_uuid)
        except TransportError as e:
            raise ConnectError(ConnectStep.CHANNELS.value, str(e)) from e
        if command is None:
            raise ConnectError(ConnectStep.CHANNELS.value, f"command channel {self.command_uuid} not found")
        if status is None:
            raise ConnectError(ConnectStep.CHANNELS.value, f"status channel {self.status_uuid} not found")
        self._command_channel = command
        self._status_channel = status

        self._step = ConnectStep.SUBSCRIBE
        try:
            await self.transport.start_notify(status, lambda data: self._handle_notify(generation, data))
        except TransportError as e:
            raise ConnectError(ConnectStep.SUBSCRIBE.value, str(e)) from e
        logger.info("[BLE] Subscribed to status notifications")

    async def _abort(self) -> None:
        self._drop_link()
        try:
            await self.transport.disconnect()
        except TransportError as e:
            logger.warning("Cleanup after failed connect: %s", e)

    def _handle_disconnect(self, generation: int) -> None:
        if generation != self._generation:
            return
        if self._state is SessionState.CONNECTED:
            logger.warning("Peripheral disconnected")
            self._drop_link()
        elif self._state is SessionState.CONNECTING:
            # connect() sees the bumped generation and aborts
            logger.warning("Peripheral disconnected during %s", (self._step or ConnectStep.TRANSPORT).value)
            self._generation += 1

    def _handle_notify(self, generation: int, data: bytes) -> None:
        if generation != self._generation or self._state is not SessionState.CONNECTED:
            logger.debug("Discarding late notification: %r", data)
            return
        logger.debug("[RX] %r", data)
        try:
            report = decode_status(data)
        except DecodeError as e:
            logger.warning("Dropping status notification: %s", e)
            if self.on_decode_error:
                self.on_decode_error(data, e)
            return
        if self.on_status:
            self.on_status(report)

    async def send_command(self, command: Command) -> bool:
        """
        Encode and write a command.

        Returns False (and logs) when the session is not connected.
        Raises WriteError when the transport rejects the write.
        """
        payload = encode_command(command)
        async with self._write_lock:
            channel = self._command_channel
            if self._state is not SessionState.CONNECTED or channel is None:
                logger.warning("Not connected, dropping command %s", payload.decode("utf-8"))
                return False
            try:
                await self.transport.write(channel, payload)
            except TransportError as e:
                raise WriteError(str(e)) from e
        logger.debug("[TX] %s", payload.decode("utf-8"))
        return True

    async def read_status(self) -> Optional[StatusReport]:
        """Read the status channel once. None when not connected."""
        channel = self._status_channel
        if self._state is not SessionState.CONNECTED or channel is None:
            logger.warning("Not connected, cannot read status")
            return None
        data = await self.transport.read(channel)
        return decode_status(data)

    async def disconnect(self) -> None:
        """Unsubscribe, clear channel references and release the link."""
        status = self._status_channel
        was_connected = self._state is SessionState.CONNECTED
        self._drop_link()
        if was_connected and status is not None:
            try:
                await self.transport.stop_notify(status)
            except TransportError as e:
                logger.warning("Unsubscribe failed: %s", e)
        try:
            await self.transport.disconnect()
        except TransportError as e:
            logger.warning("Disconnect failed: %s", e)
