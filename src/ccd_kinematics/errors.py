"""Exceptions raised by ccd_kinematics."""


class KinematicsError(Exception):
    """Base class for all errors raised by this package."""


class ParseError(KinematicsError, ValueError):
    """A robot description could not be turned into a valid kinematic tree.

    Raised for malformed XML, a missing ``<robot>`` root, joints naming
    undeclared links, broken tree structure and mimic reference cycles.
    """


class SolveInputError(KinematicsError, ValueError):
    """The solver was given nothing it can work on.

    ``CCDSolver.solve`` converts this into a ``None`` result.
    """
