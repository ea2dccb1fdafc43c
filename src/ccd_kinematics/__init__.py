"""
CCD Kinematics: URDF robot models and Cyclic Coordinate Descent IK.

This library loads URDF robot descriptions into kinematic trees with mimic
joint support, computes forward kinematics with JAX and solves inverse
kinematics with a damped, limit-aware CCD solver.
"""

import logging

import jax
jax.config.update("jax_enable_x64", True)

# Import core modules
from . import transforms
from . import core
from . import io
from .chain import Chain, build_chain, forward_kinematics
from .core import Joint, JointLimit, JointType, Link, MimicJoint, Pose, Robot
from .end_effector import END_EFFECTOR_NAMES, find_end_effector
from .errors import KinematicsError, ParseError, SolveInputError
from .io import load_urdf, parse_urdf
from .solvers import CCDConfig, CCDResult, CCDSolver, SolveRequest

logging.getLogger(__name__).addHandler(logging.NullHandler())

__version__ = "0.1.0"
__all__ = [
    "transforms",
    "core",
    "io",
    "Chain",
    "build_chain",
    "forward_kinematics",
    "Joint",
    "JointLimit",
    "JointType",
    "Link",
    "MimicJoint",
    "Pose",
    "Robot",
    "END_EFFECTOR_NAMES",
    "find_end_effector",
    "KinematicsError",
    "ParseError",
    "SolveInputError",
    "load_urdf",
    "parse_urdf",
    "CCDConfig",
    "CCDResult",
    "CCDSolver",
    "SolveRequest",
]
