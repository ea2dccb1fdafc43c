"""Link and joint primitives of the kinematic tree.

A robot is a tree of ``Link`` objects connected by ``Joint`` objects. Each
joint owns the transform from its parent link's frame to its own frame; the
child link's frame coincides with the joint frame. ``MimicJoint`` is the
variant whose value is derived from another joint.
"""

import enum
import math
from dataclasses import dataclass, field
from typing import List, Optional

import numpy as np


class JointType(str, enum.Enum):
    """Joint kinds understood by the kinematic model."""

    REVOLUTE = "revolute"
    CONTINUOUS = "continuous"
    PRISMATIC = "prismatic"
    FIXED = "fixed"

    @property
    def is_movable(self) -> bool:
        return self is not JointType.FIXED

    @property
    def is_rotational(self) -> bool:
        return self in (JointType.REVOLUTE, JointType.CONTINUOUS)


@dataclass(frozen=True)
class JointLimit:
    """Declared joint range. ``None`` marks an unspecified side."""

    lower: Optional[float] = None
    upper: Optional[float] = None

    def clamp(self, value: float, fallback: float = math.pi) -> float:
        """Clamp ``value`` into the range, using ``±fallback`` for unspecified sides."""
        lower = -fallback if self.lower is None else self.lower
        upper = fallback if self.upper is None else self.upper
        return min(upper, max(lower, value))


@dataclass(eq=False)
class Link:
    name: str
    parent_joint: Optional["Joint"] = field(default=None, repr=False)
    child_joints: List["Joint"] = field(default_factory=list, repr=False)

    @property
    def is_root(self) -> bool:
        return self.parent_joint is None


@dataclass(eq=False)
class Joint:
    """A joint between two links.

    Attributes:
        name: Unique joint name.
        joint_type: One of the ``JointType`` members.
        parent: Link the joint hangs from.
        child: Link carried by the joint.
        origin: (4, 4) transform from the parent link frame to the joint frame
                at zero joint value.
        axis: Unit axis in the joint frame.
        limit: Declared range, or ``None`` when the description has none.
        value: Current joint position (radians or meters).
    """

    name: str
    joint_type: JointType
    parent: Link = field(repr=False)
    child: Link = field(repr=False)
    origin: np.ndarray = field(default_factory=lambda: np.eye(4), repr=False)
    axis: np.ndarray = field(default_factory=lambda: np.array([0.0, 0.0, 1.0]))
    limit: Optional[JointLimit] = None
    value: float = 0.0

    @property
    def is_movable(self) -> bool:
        return self.joint_type.is_movable

    @property
    def is_mimic(self) -> bool:
        return False

    def clamp(self, value: float) -> float:
        """Clamp ``value`` into the joint limits (``±pi`` where unspecified)."""
        limit = self.limit if self.limit is not None else JointLimit()
        return limit.clamp(value)


@dataclass(eq=False)
class MimicJoint(Joint):
    """Joint whose value follows ``multiplier * driver + offset``."""

    driver: str = ""
    multiplier: float = 1.0
    offset: float = 0.0

    @property
    def is_mimic(self) -> bool:
        return True

    def follow(self, driver_value: float) -> float:
        return self.multiplier * driver_value + self.offset


@dataclass(frozen=True)
class Pose:
    """World-frame position and (w, x, y, z) orientation quaternion."""

    position: np.ndarray
    orientation: np.ndarray
