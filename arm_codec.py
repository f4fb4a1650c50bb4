"""
Arm Command Codec
JSON wire format shared with the SARM arm firmware
"""

import json
import math
from dataclasses import dataclass
from typing import Union

from arm_errors import DecodeError
from joint_state import JOINT_COUNT, Pose, clamp, validate_joint_id


def _dump(payload: dict) -> bytes:
    # Compact separators keep writes inside a single BLE packet
    return json.dumps(payload, separators=(",", ":")).encode("utf-8")


@dataclass(frozen=True)
class SetJoint:
    """Move one joint"""
    joint_id: int
    angle: int

    def __post_init__(self):
        validate_joint_id(self.joint_id)
        object.__setattr__(self, "angle", clamp(self.angle))

    def to_wire(self) -> dict:
        return {"cmd": "set_joint", "jointId": self.joint_id, "angle": self.angle}


@dataclass(frozen=True)
class SetPose:
    """Move all five joints at once"""
    pose: Pose

    def __post_init__(self):
        if not isinstance(self.pose, Pose):
            object.__setattr__(self, "pose", Pose.from_angles(self.pose))

    def to_wire(self) -> dict:
        return {"cmd": "set_pose", "joints": list(self.pose.joints)}


@dataclass(frozen=True)
class Home:
    """Return the arm to its firmware-defined home position"""

    def to_wire(self) -> dict:
        return {"cmd": "home"}


Command = Union[SetJoint, SetPose, Home]


@dataclass(frozen=True)
class StatusReport:
    """Pose reported by the firmware over the status channel"""
    pose: Pose


def encode_command(command: Command) -> bytes:
    """Serialize a command to the UTF-8 JSON bytes written to the command channel."""
    if not isinstance(command, (SetJoint, SetPose, Home)):
        raise TypeError(f"Not an arm command: {command!r}")
    return _dump(command.to_wire())


def _decode_angle(index: int, value) -> int:
    # bool is an int subclass but never a valid angle
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise DecodeError(f"joints[{index}] is not a number: {value!r}")
    if isinstance(value, float) and not math.isfinite(value):
        raise DecodeError(f"joints[{index}] is not finite: {value!r}")
    return clamp(value)


def decode_status(data: bytes) -> StatusReport:
    """
    Decode a status notification payload.

    Args:
        data: Raw bytes received on the status channel

    Returns:
        StatusReport holding the decoded pose. Out-of-range angles are clamped.

    Raises:
        DecodeError: payload is not UTF-8, not JSON, not an object, or its
            "joints" field is missing, not a 5-element list, or non-numeric.
    """
    try:
        text = bytes(data).decode("utf-8").strip()
    except UnicodeDecodeError as e:
        raise DecodeError(f"Payload is not UTF-8: {bytes(data).hex()}") from e

    try:
        message = json.loads(text)
    except json.JSONDecodeError as e:
        raise DecodeError(f"Invalid JSON: {text!r}") from e

    if not isinstance(message, dict):
        raise DecodeError(f"Expected a JSON object, got {type(message).__name__}")

    joints = message.get("joints")
    if not isinstance(joints, list):
        raise DecodeError("Missing 'joints' list")
    if len(joints) != JOINT_COUNT:
        raise DecodeError(f"Expected {JOINT_COUNT} joints, got {len(joints)}")

    angles = tuple(_decode_angle(i, value) for i, value in enumerate(joints))
    return StatusReport(pose=Pose(angles))
