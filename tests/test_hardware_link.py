"""
Smoke test against a real arm. Needs a powered SARM in range:

    SARM_HARDWARE_TEST=1 pytest -m integration
"""

import asyncio
import os

import pytest

from arm_config import Config
from arm_controller import ArmController

pytestmark = [
    pytest.mark.integration,
    pytest.mark.skipif(
        os.getenv("SARM_HARDWARE_TEST", "0") not in ("1", "true", "yes"),
        reason="set SARM_HARDWARE_TEST=1 to talk to a real arm",
    ),
]


@pytest.mark.asyncio
async def test_connect_home_and_receive_status():
    controller = ArmController.from_config(Config.from_env())
    try:
        assert await controller.connect(), controller.last_error

        assert await controller.go_home()
        # Wait for the firmware to report a pose
        for _ in range(50):
            if controller.get_notification_history(1):
                break
            await asyncio.sleep(0.1)

        history = controller.get_notification_history(5)
        assert history, "no status notification within 5s"
        assert any(entry.accepted for entry in history)
    finally:
        await controller.disconnect()
