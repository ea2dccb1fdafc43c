"""Inverse kinematics solvers.

This module provides the Cyclic Coordinate Descent solver and its settings,
request and result types.
"""

from .ccd import CCDConfig, CCDResult, CCDSolver, SolveRequest

__all__ = ["CCDConfig", "CCDResult", "CCDSolver", "SolveRequest"]
