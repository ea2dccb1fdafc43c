"""
Rotation and rigid-body transform math in JAX.

This module provides the pure functions the kinematic model is built on:
- SO(3) rotations, URDF roll/pitch/yaw and quaternions (so3 module)
- SE(3) homogeneous transforms and joint twists (se3 module)
"""

from . import so3
from . import se3

__all__ = [
    "so3",
    "se3",
]
