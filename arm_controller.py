# Author: Omi Shrestha

"""
Arm Controller - the operator-facing facade.

Wraps a BleSession, owns the current pose and republishes every change
(connection state, pose, errors) to registered listeners. Operator actions
never raise session errors: failures are logged, kept in last_error and
reported as False. Invalid operator input (unknown joint id or key, a pose
that is not five angles) raises ValueError.
"""

import logging
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from arm_codec import Home, SetJoint, SetPose, StatusReport
from arm_config import Config
from arm_errors import ArmError, DecodeError
from ble_session import BleSession, SessionState
from ble_transport import BleakTransport, BleTransport
from joint_state import Pose, clamp, joint_id_of, validate_joint_id

logger = logging.getLogger(__name__)

HISTORY_LIMIT = 100


@dataclass(frozen=True)
class ControllerSnapshot:
    state: SessionState
    pose: Pose
    last_error: Optional[str] = None

    @property
    def connected(self) -> bool:
        return self.state is SessionState.CONNECTED

    def to_dict(self) -> Dict:
        return {
            "state": self.state.value,
            "connected": self.connected,
            "joints": list(self.pose.joints),
            "angles": self.pose.as_dict(),
            "last_error": self.last_error,
        }


@dataclass
class NotificationRecord:
    timestamp: str
    message: str
    accepted: bool
    error: Optional[str] = None
    received_at: float = field(default_factory=time.time)


Listener = Callable[[ControllerSnapshot], None]


class ArmController:
    """Session observer: connection state, current pose and the operator actions."""

    def __init__(self, session: BleSession, history_limit: int = HISTORY_LIMIT):
        self.session = session
        session.on_state_change = self._on_state_change
        session.on_status = self._on_status
        session.on_decode_error = self._on_decode_error

        self._pose = Pose()
        self.last_error: Optional[str] = None
        self.notification_history = deque(maxlen=history_limit)
        self._listeners: List[Listener] = []

    @classmethod
    def from_config(cls, config: Config, transport: Optional[BleTransport] = None, chooser=None):
        """Build a controller on a BleakTransport (or the given transport) from a Config."""
        if transport is None:
            transport = BleakTransport(
                address=config.DEVICE_ADDRESS,
                name_prefix=config.DEVICE_NAME_PREFIX,
                scan_timeout=config.SCAN_TIMEOUT,
                chooser=chooser,
            )
        session = BleSession(
            transport,
            service_uuid=config.SERVICE_UUID,
            command_uuid=config.COMMAND_UUID,
            status_uuid=config.STATUS_UUID,
            connect_timeout=config.CONNECT_TIMEOUT,
        )
        return cls(session)

    # ---- observables ----

    @property
    def connection_state(self) -> SessionState:
        return self.session.state

    @property
    def connected(self) -> bool:
        return self.session.connected

    @property
    def current_pose(self) -> Pose:
        return self._pose

    def snapshot(self) -> ControllerSnapshot:
        return ControllerSnapshot(self.connection_state, self._pose, self.last_error)

    def add_listener(self, listener: Listener) -> Callable[[], None]:
        """Register a change listener. Returns a function that removes it."""
        self._listeners.append(listener)

        def remove():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def _publish(self) -> None:
        snap = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(snap)
            except Exception:
                logger.exception("Listener %r failed", listener)

    # ---- session callbacks ----

    def _on_state_change(self, state: SessionState) -> None:
        if state is SessionState.CONNECTED:
            self.last_error = None
        self._publish()

    def _on_status(self, report: StatusReport) -> None:
        self._record(str(list(report.pose.joints)), accepted=True)
        self._pose = report.pose
        self._publish()

    def _on_decode_error(self, data: bytes, error: DecodeError) -> None:
        try:
            text = data.decode("utf-8").strip()
        except UnicodeDecodeError:
            text = data.hex()
        self._record(text, accepted=False, error=str(error))

    def _record(self, message: str, accepted: bool, error: Optional[str] = None) -> None:
        self.notification_history.append(NotificationRecord(
            timestamp=time.strftime("%H:%M:%S"),
            message=message,
            accepted=accepted,
            error=error,
        ))

    def get_notification_history(self, limit: int = 10) -> List[NotificationRecord]:
        """Most recent inbound status messages, oldest first."""
        if limit <= 0:
            return []
        return list(self.notification_history)[-limit:]

    def _fail(self, message: str) -> bool:
        self.last_error = message
        self._publish()
        return False

    # ---- operator actions ----

    async def connect(self) -> bool:
        if self.connected:
            return True
        try:
            await self.session.connect()
        except ArmError as e:
            logger.error("Connection failed: %s", e)
            return self._fail(str(e))
        return self.connected

    async def disconnect(self) -> None:
        await self.session.disconnect()

    async def _dispatch(self, command) -> bool:
        try:
            sent = await self.session.send_command(command)
        except ArmError as e:
            # Optimistic pose is kept: it reflects operator intent
            logger.error("BLE write error: %s", e)
            return self._fail(f"write failed: {e}")
        return sent

    async def set_joint(self, joint_id: int, angle) -> bool:
        """Move one joint. Updates the local pose before the write."""
        validate_joint_id(joint_id)
        angle = clamp(angle)
        self._pose = self._pose.with_joint(joint_id, angle)
        self._publish()
        return await self._dispatch(SetJoint(joint_id, angle))

    async def set_joint_by_key(self, key: str, angle) -> bool:
        return await self.set_joint(joint_id_of(key), angle)

    async def set_pose(self, pose) -> bool:
        """Move all joints. Accepts a Pose or any 5 numbers (clamped)."""
        if not isinstance(pose, Pose):
            pose = Pose.from_angles(pose)
        self._pose = pose
        self._publish()
        return await self._dispatch(SetPose(pose))

    async def send_full_pose(self) -> bool:
        """Resend the current local pose as a single set_pose command."""
        return await self._dispatch(SetPose(self._pose))

    async def go_home(self) -> bool:
        # No local update: the home pose arrives with the next status report
        return await self._dispatch(Home())

    async def refresh(self) -> bool:
        """Read the status channel once and apply it."""
        try:
            report = await self.session.read_status()
        except DecodeError as e:
            logger.warning("Ignoring unreadable status: %s", e)
            return False
        except ArmError as e:
            logger.error("Status read failed: %s", e)
            return self._fail(f"read failed: {e}")
        if report is None:
            return False
        self._on_status(report)
        return True
