# Author: Omi Shrestha

import math
from dataclasses import dataclass
from typing import Dict, Iterable, Tuple

JOINT_COUNT = 5
MIN_ANGLE = 0
MAX_ANGLE = 180
DEFAULT_ANGLE = 90

# Human-facing labels, index == wire joint id
JOINT_KEYS = tuple(f"joint{i + 1}" for i in range(JOINT_COUNT))


def clamp(angle) -> int:
    """Constrain any number into the valid joint range [0, 180]."""
    if isinstance(angle, float) and math.isinf(angle):
        return MAX_ANGLE if angle > 0 else MIN_ANGLE
    value = int(round(angle))  # ValueError for NaN
    return max(MIN_ANGLE, min(MAX_ANGLE, value))


def validate_joint_id(joint_id) -> int:
    if isinstance(joint_id, bool) or not isinstance(joint_id, int):
        raise ValueError(f"Joint id must be an integer, got {joint_id!r}")
    if not 0 <= joint_id < JOINT_COUNT:
        raise ValueError(f"Joint id {joint_id} out of range 0-{JOINT_COUNT - 1}")
    return joint_id


def joint_id_of(key: str) -> int:
    """Map a label like 'joint3' to its zero-based wire id."""
    try:
        return JOINT_KEYS.index(key.strip().lower())
    except (AttributeError, ValueError):
        raise ValueError(f"Unknown joint key: {key!r}") from None


def key_of(joint_id: int) -> str:
    """Map a zero-based wire id to its label."""
    return JOINT_KEYS[validate_joint_id(joint_id)]


@dataclass(frozen=True)
class Pose:
    """Five joint angles in degrees. Index i is joint id i."""

    joints: Tuple[int, ...] = (DEFAULT_ANGLE,) * JOINT_COUNT

    def __post_init__(self):
        joints = tuple(self.joints)
        if len(joints) != JOINT_COUNT:
            raise ValueError(f"Pose needs exactly {JOINT_COUNT} joints, got {len(joints)}")
        for angle in joints:
            if isinstance(angle, bool) or not isinstance(angle, int) or not MIN_ANGLE <= angle <= MAX_ANGLE:
                raise ValueError(f"Invalid joint angle: {angle!r}")
        object.__setattr__(self, "joints", joints)

    @classmethod
    def from_angles(cls, angles: Iterable) -> "Pose":
        """Build a pose from arbitrary numbers, clamping each one."""
        return cls(tuple(clamp(a) for a in angles))

    def with_joint(self, joint_id: int, angle) -> "Pose":
        """Return a copy with one joint replaced (angle is clamped)."""
        validate_joint_id(joint_id)
        joints = list(self.joints)
        joints[joint_id] = clamp(angle)
        return Pose(tuple(joints))

    def as_dict(self) -> Dict[str, int]:
        return dict(zip(JOINT_KEYS, self.joints))

    def __getitem__(self, joint_id):
        return self.joints[joint_id]

    def __iter__(self):
        return iter(self.joints)

    def __len__(self):
        return JOINT_COUNT


DEFAULT_POSE = Pose()
