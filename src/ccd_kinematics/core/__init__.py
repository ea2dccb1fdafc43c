"""Core robot model data structures for CCD Kinematics.

This module provides the link/joint tree, mimic joint wiring, the mutable
``Robot`` state and its compiled, JAX-native ``RobotModel`` form.
"""

from .nodes import Joint, JointLimit, JointType, Link, MimicJoint, Pose
from .mimic import MimicResolver
from .robot_model import RobotModel
from .robot import Robot

__all__ = [
    "Joint",
    "JointLimit",
    "JointType",
    "Link",
    "MimicJoint",
    "MimicResolver",
    "Pose",
    "Robot",
    "RobotModel",
]
