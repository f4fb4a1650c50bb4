from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

# BLE UUIDs (match ESP32 firmware)
SERVICE_UUID = "12345678-1234-5678-1234-56789abcdef0"
COMMAND_UUID = "12345678-1234-5678-1234-56789abcdef1"  # write - host sends commands
STATUS_UUID = "12345678-1234-5678-1234-56789abcdef2"   # notify - arm reports joints


@dataclass
class Config:
    """Runtime configuration for the arm link and the operator surfaces."""
    SERVICE_UUID: str = SERVICE_UUID
    COMMAND_UUID: str = COMMAND_UUID
    STATUS_UUID: str = STATUS_UUID
    DEVICE_ADDRESS: Optional[str] = None
    DEVICE_NAME_PREFIX: Optional[str] = None
    SCAN_TIMEOUT: float = 5.0
    CONNECT_TIMEOUT: float = 20.0
    HTTP_HOST: str = "127.0.0.1"
    HTTP_PORT: int = 5000
    LOG_LEVEL: str = "INFO"

    @classmethod
    def from_env(cls) -> "Config":
        return cls(
            SERVICE_UUID=os.getenv("SARM_SERVICE_UUID", SERVICE_UUID).lower(),
            COMMAND_UUID=os.getenv("SARM_COMMAND_UUID", COMMAND_UUID).lower(),
            STATUS_UUID=os.getenv("SARM_STATUS_UUID", STATUS_UUID).lower(),
            DEVICE_ADDRESS=os.getenv("SARM_DEVICE_ADDRESS") or None,
            DEVICE_NAME_PREFIX=os.getenv("SARM_DEVICE_NAME_PREFIX") or None,
            SCAN_TIMEOUT=float(os.getenv("SARM_SCAN_TIMEOUT", "5.0")),
            CONNECT_TIMEOUT=float(os.getenv("SARM_CONNECT_TIMEOUT", "20.0")),
            HTTP_HOST=os.getenv("SARM_HTTP_HOST", "127.0.0.1"),
            HTTP_PORT=int(os.getenv("SARM_HTTP_PORT", "5000")),
            LOG_LEVEL=os.getenv("SARM_LOG_LEVEL", "INFO").upper(),
        )


# Default instance for convenience
config = Config.from_env()
