# Author: Omi Shrestha

"""
BLE transport layer.

BleTransport is the capability interface the BLE session programs against:
availability check, device discovery, connect/disconnect, channel resolution,
notification subscription and read/write. BleakTransport implements it on top
of bleak; tests use an in-memory fake.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, List, Optional

from bleak import BleakClient, BleakScanner
from bleak.exc import BleakError

from arm_errors import TransportError

logger = logging.getLogger(__name__)

NotifyCallback = Callable[[bytes], None]
DisconnectCallback = Callable[[], None]
DeviceChooser = Callable[[List[Any]], Awaitable[Optional[Any]]]


class BleTransport(ABC):
    """Abstract platform BLE binding for a single peripheral link."""

    @abstractmethod
    async def is_available(self) -> bool:
        """Return False when the platform has no usable BLE support."""

    @abstractmethod
    async def request_device(self, service_uuid: str) -> Optional[Any]:
        """Find (and let the operator pick) a peripheral. None means cancelled / none found."""

    @abstractmethod
    async def connect(self, device: Any, on_disconnect: DisconnectCallback) -> None:
        """Open the link. on_disconnect fires when the peripheral drops it."""

    @abstractmethod
    async def resolve_channel(self, service_uuid: str, channel_uuid: str) -> Optional[Any]:
        """Look up a characteristic. None when the service or characteristic is absent."""

    @abstractmethod
    async def start_notify(self, channel: Any, callback: NotifyCallback) -> None:
        ...

    @abstractmethod
    async def stop_notify(self, channel: Any) -> None:
        ...

    @abstractmethod
    async def write(self, channel: Any, data: bytes) -> None:
        ...

    @abstractmethod
    async def read(self, channel: Any) -> bytes:
        ...

    @abstractmethod
    async def disconnect(self) -> None:
        ...


async def first_device(devices):
    """Default chooser: take the first discovered peripheral."""
    return devices[0] if devices else None


class BleakTransport(BleTransport):
    """BleTransport backed by bleak (BlueZ, CoreBluetooth, WinRT)."""

    def __init__(
        self,
        address: Optional[str] = None,
        name_prefix: Optional[str] = None,
        scan_timeout: float = 5.0,
        chooser: Optional[DeviceChooser] = None,
    ):
        self.address = address
        self.name_prefix = name_prefix
        self.scan_timeout = scan_timeout
        self.chooser = chooser or first_device
        self.client: Optional[BleakClient] = None

    async def is_available(self) -> bool:
        try:
            # Raises on platforms without a bleak backend
            BleakScanner()
        except (BleakError, OSError) as e:
            logger.error("BLE backend unavailable: %s", e)
            return False
        return True

    def _matches(self, device, adv, service_uuid: str) -> bool:
        if self.name_prefix:
            return bool(device.name and device.name.startswith(self.name_prefix))
        advertised = [uuid.lower() for uuid in adv.service_uuids]
        return service_uuid.lower() in advertised

    async def request_device(self, service_uuid: str):
        try:
            if self.address:
                logger.info("Looking for %s...", self.address)
                return await BleakScanner.find_device_by_address(
                    self.address, timeout=self.scan_timeout
                )

            logger.info("Scanning for BLE devices (%.1fs)...", self.scan_timeout)
            found = await BleakScanner.discover(timeout=self.scan_timeout, return_adv=True)
        except (BleakError, OSError) as e:
            raise TransportError(f"Scan failed: {e}") from e

        discovered = [
            device for device, adv in found.values()
            if self._matches(device, adv, service_uuid)
        ]
        logger.info("Found %d candidate device(s)", len(discovered))
        if not discovered:
            return None
        return await self.chooser(discovered)

    async def connect(self, device, on_disconnect: DisconnectCallback) -> None:
        def handle_disconnect(client):
            logger.info("Peripheral %s disconnected", client.address)
            on_disconnect()

        self.client = BleakClient(device, disconnected_callback=handle_disconnect)
        try:
            await self.client.connect()
        except (BleakError, OSError) as e:
            self.client = None
            raise TransportError(f"Connect failed: {e}") from e
        logger.info("[BLE] Connected to %s", getattr(device, "name", None) or device)

    async def resolve_channel(self, service_uuid: str, channel_uuid: str):
        if self.client is None:
            raise TransportError("Not connected")
        try:
            service = self.client.services.get_service(service_uuid)
            if service is None:
                return None
            return service.get_characteristic(channel_uuid)
        except (BleakError, OSError) as e:
            raise TransportError(f"Channel lookup failed: {e}") from e

    async def start_notify(self, channel, callback: NotifyCallback) -> None:
        if self.client is None:
            raise TransportError("Not connected")

        def handle_notify(sender, data: bytearray):
            callback(bytes(data))

        try:
            await self.client.start_notify(channel, handle_notify)
        except (BleakError, OSError) as e:
            raise TransportError(f"Subscribe failed: {e}") from e

    async def stop_notify(self, channel) -> None:
        if self.client is None or not self.client.is_connected:
            return
        try:
            await self.client.stop_notify(channel)
        except (BleakError, OSError) as e:
            raise TransportError(f"Unsubscribe failed: {e}") from e

    async def write(self, channel, data: bytes) -> None:
        if self.client is None:
            raise TransportError("Not connected")
        # Prefer write-without-response for lower latency
        response = "write-without-response" not in channel.properties
        try:
            await self.client.write_gatt_char(channel, data, response=response)
        except (BleakError, OSError) as e:
            raise TransportError(f"Write failed: {e}") from e

    async def read(self, channel) -> bytes:
        if self.client is None:
            raise TransportError("Not connected")
        try:
            return bytes(await self.client.read_gatt_char(channel))
        except (BleakError, OSError) as e:
            raise TransportError(f"Read failed: {e}") from e

    async def disconnect(self) -> None:
        client, self.client = self.client, None
        if client is None:
            return
        try:
            if client.is_connected:
                await client.disconnect()
                logger.info("Disconnected from %s.", client.address)
        except EOFError:
            # D-Bus connection already closed, ignore
            pass
        except (BleakError, OSError) as e:
            logger.warning("Disconnect error: %s", e)
