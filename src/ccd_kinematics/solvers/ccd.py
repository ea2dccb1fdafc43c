"""Cyclic Coordinate Descent (CCD) inverse kinematics.

Each iteration sweeps the chain from the effector back to the base and turns
one joint at a time so the effector swings toward the target about that
joint's axis. Steps are damped and bounded, and joint limits are enforced
after every step.

The solver works on the live ``Robot`` (its joint values are the forward
kinematics input) but always restores the values it found on entry, so a
solve has no lasting side effect. Callers decide whether to apply or animate
toward the returned values.
"""

import dataclasses
import logging
import math
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

import numpy as np
from flax import struct

from ..chain import Chain, build_chain
from ..core import JointType, Link, Robot
from ..end_effector import find_end_effector
from ..errors import SolveInputError
from ..transforms import se3, so3

logger = logging.getLogger(__name__)

VectorLike = Union[Sequence[float], np.ndarray, Mapping[str, float]]

_COLLINEAR_EPS = 1e-9


@struct.dataclass
class CCDConfig:
    """Solver settings.

    The orientation blending constants (``orientation_scale``,
    ``orientation_threshold``, the two position weights and
    ``coarse_error_threshold``) are empirical defaults.

    Attributes:
        max_iterations: Number of sweeps before giving up.
        tolerance: Position error (world units) counted as converged.
        damping_factor: Fraction of each raw joint step that is applied.
        angle_limit: Largest step a joint may take in one sweep.
        orientation_weight: Strength of the orientation correction; 0 disables it.
        orientation_scale: Extra scale on the orientation correction.
        orientation_threshold: Orientation error (rad) below which no
            orientation correction is made.
        coarse_position_weight: Share of the position step while far from target.
        fine_position_weight: Share of the position step once close.
        coarse_error_threshold: Position error separating "far" from "close".
        orientation_tolerance_factor: Orientation converges below
            ``tolerance * orientation_tolerance_factor`` radians.
        min_vector_length: Joints closer than this to the effector or the
            target are skipped.
        dot_clamp: Bound on the cosine fed to ``acos``.
    """
    max_iterations: int = 10
    tolerance: float = 0.01
    damping_factor: float = 0.7
    angle_limit: float = 0.3
    orientation_weight: float = 0.1
    orientation_scale: float = 0.1
    orientation_threshold: float = 0.01
    coarse_position_weight: float = 0.8
    fine_position_weight: float = 0.3
    coarse_error_threshold: float = 0.1
    orientation_tolerance_factor: float = 2.0
    min_vector_length: float = 0.001
    dot_clamp: float = 0.999

    def __post_init__(self):
        if self.max_iterations < 0:
            raise ValueError(f"max_iterations must be >= 0, got {self.max_iterations}")
        for name in ("tolerance", "angle_limit", "min_vector_length"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be > 0, got {getattr(self, name)}")
        for name in ("damping_factor", "coarse_position_weight", "fine_position_weight", "dot_clamp"):
            if not 0.0 <= getattr(self, name) <= 1.0:
                raise ValueError(f"{name} must be within [0, 1], got {getattr(self, name)}")
        if self.orientation_weight < 0:
            raise ValueError(f"orientation_weight must be >= 0, got {self.orientation_weight}")

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any]) -> "CCDConfig":
        """Build a config from snake_case or camelCase keys (``maxIterations``)."""
        known = {f.name for f in dataclasses.fields(cls)}
        kwargs = {}
        for key, value in values.items():
            name = _snake_case(key)
            if name not in known:
                raise ValueError(f"Unknown CCD setting '{key}'")
            kwargs[name] = value
        return cls(**kwargs)


@dataclass(frozen=True)
class SolveRequest:
    """One IK query, everything in the world frame.

    Vectors may be sequences or ``{"x", "y", "z"}`` mappings.

    Attributes:
        target_position: Where the effector (plus any tool offset) should go.
        target_orientation: Optional (roll, pitch, yaw) in radians, applied as
            an X-Y-Z Euler sequence; also accepts a mapping with those keys.
        current_effector_position: Where the caller sees the effector now,
            e.g. the tip of a mounted tool. Its offset from the chain's
            effector link is held fixed during the solve.
        current_effector_orientation: Optional (w, x, y, z) quaternion of
            the tool; its rotation relative to the effector link is held
            fixed during the solve.
    """
    target_position: VectorLike
    target_orientation: Optional[VectorLike] = None
    current_effector_position: Optional[VectorLike] = None
    current_effector_orientation: Optional[VectorLike] = None

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any]) -> "SolveRequest":
        """Build a request from snake_case or camelCase keys (``targetPosition``)."""
        known = {f.name for f in dataclasses.fields(cls)}
        aliases = {"current_position": "current_effector_position",
                   "current_orientation": "current_effector_orientation"}
        kwargs = {}
        for key, value in values.items():
            name = _snake_case(key)
            name = aliases.get(name, name)
            if name not in known:
                raise ValueError(f"Unknown solve request field '{key}'")
            kwargs[name] = value
        return cls(**kwargs)


@dataclass
class CCDResult:
    """Outcome of ``CCDSolver.solve_detailed``.

    Attributes:
        angles: Final value for every chain joint.
        iterations: Number of sweeps performed.
        converged: Whether the final state meets the tolerances.
        position_error: Final distance between effector and target.
        orientation_error: Final orientation error in radians, or ``None``
            without a target orientation.
        steps: Per sweep, the step applied to each joint (after damping and
            the step bound, before the limit clamp). Only filled when
            requested.
    """
    angles: Dict[str, float]
    iterations: int
    converged: bool
    position_error: float
    orientation_error: Optional[float] = None
    steps: Optional[List[Dict[str, float]]] = None


@dataclass
class _Workspace:
    """Scratch vectors reused across the joints of one solve."""
    joint_position: np.ndarray = field(default_factory=lambda: np.zeros(3))
    axis: np.ndarray = field(default_factory=lambda: np.zeros(3))
    effector: np.ndarray = field(default_factory=lambda: np.zeros(3))
    to_effector: np.ndarray = field(default_factory=lambda: np.zeros(3))
    to_target: np.ndarray = field(default_factory=lambda: np.zeros(3))


@dataclass
class _Goal:
    position: np.ndarray
    quaternion: Optional[np.ndarray]
    offset: np.ndarray
    tool_rotation: np.ndarray


class CCDSolver:
    """Cyclic Coordinate Descent IK solver.

    Args:
        config: Base settings; defaults to ``CCDConfig()``.
        **overrides: Individual settings replacing those of ``config``.
    """

    name = "Cyclic Coordinate Descent"

    def __init__(self, config: Optional[CCDConfig] = None, **overrides):
        config = config if config is not None else CCDConfig()
        self._config = config.replace(**overrides) if overrides else config

    @property
    def config(self) -> CCDConfig:
        return self._config

    def get_config(self) -> Dict[str, Any]:
        return dataclasses.asdict(self._config)

    def configure(self, **overrides) -> None:
        """Replace individual settings; unknown names raise ``TypeError``."""
        self._config = self._config.replace(**overrides)

    def solve(
        self,
        robot: Robot,
        request: SolveRequest,
        effector: Union[str, Link, None] = None,
    ) -> Optional[Dict[str, float]]:
        """Compute joint values moving the effector toward the request's target.

        Args:
            robot: Robot in its current configuration; left unchanged.
            request: Target and current effector pose.
            effector: Effector link or name; located heuristically when omitted.

        Returns:
            Mapping of chain joint names to values, or ``None`` when there is
            no effector or no movable joint to work with.
        """
        result = self.solve_detailed(robot, request, effector)
        return None if result is None else result.angles

    def solve_detailed(
        self,
        robot: Robot,
        request: SolveRequest,
        effector: Union[str, Link, None] = None,
        record_steps: bool = False,
    ) -> Optional[CCDResult]:
        """Like ``solve`` but reports iterations, errors and optionally the steps."""
        try:
            chain = self._resolve_chain(robot, effector)
        except SolveInputError as exc:
            logger.warning("No IK solution: %s", exc)
            return None
        return self._run(robot, chain, request, record_steps)

    def _resolve_chain(self, robot: Robot, effector: Union[str, Link, None]) -> Chain:
        if effector is None:
            effector = find_end_effector(robot)
            if effector is None:
                raise SolveInputError(f"robot '{robot.name}' has no end effector link")
        else:
            # a Link from another robot (e.g. the original of a copy) is
            # re-bound by name so state is read from and restored to `robot`
            name = effector if isinstance(effector, str) else effector.name
            if name not in robot.links:
                raise SolveInputError(f"robot '{robot.name}' has no link named '{name}'")
            effector = robot.links[name]

        chain = build_chain(robot, effector)
        if not chain:
            raise SolveInputError(f"no movable joints between the base and '{effector.name}'")
        return chain

    def _run(self, robot: Robot, chain: Chain, request: SolveRequest, record_steps: bool) -> CCDResult:
        cfg = self._config
        starting = {joint.name: joint.value for joint in chain}
        working = dict(starting)

        robot.update_world_transforms()
        goal = self._goal(robot, chain, request)
        logger.debug(
            "Solving %d-joint chain to '%s', target %s", len(chain), chain.effector.name, goal.position
        )

        ws = _Workspace()
        steps: Optional[List[Dict[str, float]]] = [] if record_steps else None
        iterations = 0
        converged = False
        try:
            for iteration in range(cfg.max_iterations):
                robot.set_joint_values(working)
                robot.update_world_transforms()
                position_error, orientation_error = self._errors(robot, chain, goal)
                logger.debug(
                    "Iteration %d: position error %.4f, orientation error %s",
                    iteration, position_error, orientation_error,
                )
                if self._converged(position_error, orientation_error):
                    converged = True
                    logger.debug("Converged after %d iteration(s)", iteration)
                    break

                applied = self._sweep(robot, chain, goal, working, position_error, orientation_error, ws)
                iterations += 1
                if steps is not None:
                    steps.append(applied)
            else:
                robot.set_joint_values(working)
                robot.update_world_transforms()
                position_error, orientation_error = self._errors(robot, chain, goal)
                converged = self._converged(position_error, orientation_error)
        finally:
            robot.set_joint_values(starting)
            robot.update_world_transforms()

        if not converged:
            logger.debug(
                "No convergence after %d iteration(s), position error %.4f", iterations, position_error
            )
        return CCDResult(
            angles=working,
            iterations=iterations,
            converged=converged,
            position_error=position_error,
            orientation_error=orientation_error,
            steps=steps,
        )

    def _goal(self, robot: Robot, chain: Chain, request: SolveRequest) -> _Goal:
        frame = robot.world_transform(chain.effector.name)

        offset = np.zeros(3)
        if request.current_effector_position is not None:
            offset = _vector(request.current_effector_position, "current_effector_position") - frame[:3, 3]

        tool_rotation = np.eye(3)
        if request.current_effector_orientation is not None:
            current = np.asarray(so3.from_quaternion(_quaternion(request.current_effector_orientation)))
            tool_rotation = np.asarray(so3.inverse(se3.get_rotation(frame))) @ current

        quaternion = None
        if request.target_orientation is not None:
            rotation = so3.from_euler_xyz(_euler(request.target_orientation))
            quaternion = np.asarray(so3.to_quaternion(rotation))

        return _Goal(
            position=_vector(request.target_position, "target_position"),
            quaternion=quaternion,
            offset=offset,
            tool_rotation=tool_rotation,
        )

    def _errors(self, robot: Robot, chain: Chain, goal: _Goal):
        frame = robot.world_transform(chain.effector.name)
        position_error = float(np.linalg.norm(frame[:3, 3] + goal.offset - goal.position))
        if goal.quaternion is None:
            return position_error, None
        current = np.asarray(so3.to_quaternion(frame[:3, :3] @ goal.tool_rotation))
        return position_error, float(so3.quaternion_angle(current, goal.quaternion))

    def _converged(self, position_error: float, orientation_error: Optional[float]) -> bool:
        cfg = self._config
        if position_error >= cfg.tolerance:
            return False
        return orientation_error is None or orientation_error < cfg.tolerance * cfg.orientation_tolerance_factor

    def _sweep(
        self,
        robot: Robot,
        chain: Chain,
        goal: _Goal,
        working: Dict[str, float],
        position_error: float,
        orientation_error: Optional[float],
        ws: _Workspace,
    ) -> Dict[str, float]:
        """One effector-to-base pass; returns the step applied to each joint."""
        cfg = self._config
        applied = {}
        for index in reversed(range(len(chain))):
            joint = chain[index]
            frame = robot.world_transform(joint.name)
            ws.joint_position[:] = se3.get_position(frame)
            ws.axis[:] = so3.apply(se3.get_rotation(frame), joint.axis)
            ws.axis /= np.linalg.norm(ws.axis)
            ws.effector[:] = robot.world_transform(chain.effector.name)[:3, 3]
            ws.effector += goal.offset

            if joint.joint_type.is_rotational:
                raw = self._rotation_step(index, len(chain), goal, position_error, orientation_error, ws)
            elif joint.joint_type is JointType.PRISMATIC:
                raw = self._translation_step(goal, ws)
            else:
                raise ValueError(f"Joint '{joint.name}' of type {joint.joint_type.value} cannot be solved")
            if raw is None:
                continue

            step = min(cfg.angle_limit, max(-cfg.angle_limit, raw * cfg.damping_factor))
            applied[joint.name] = step
            working[joint.name] = joint.clamp(working[joint.name] + step)

            robot.set_joint_value(joint.name, working[joint.name])
            robot.update_world_transforms()
        return applied

    def _rotation_step(
        self,
        index: int,
        chain_length: int,
        goal: _Goal,
        position_error: float,
        orientation_error: Optional[float],
        ws: _Workspace,
    ) -> Optional[float]:
        cfg = self._config
        np.subtract(ws.effector, ws.joint_position, out=ws.to_effector)
        np.subtract(goal.position, ws.joint_position, out=ws.to_target)
        effector_distance = np.linalg.norm(ws.to_effector)
        target_distance = np.linalg.norm(ws.to_target)
        if effector_distance < cfg.min_vector_length or target_distance < cfg.min_vector_length:
            return None
        ws.to_effector /= effector_distance
        ws.to_target /= target_distance

        dot = float(np.dot(ws.to_effector, ws.to_target))
        cross = np.cross(ws.to_effector, ws.to_target)
        sin_angle = float(np.linalg.norm(cross))
        if dot > cfg.dot_clamp and sin_angle > _COLLINEAR_EPS:
            # exact angle: acos of the clamped cosine would overshoot
            position_angle = math.atan2(sin_angle, dot)
        else:
            # collinear vectors still get the clamped nudge off the singularity
            position_angle = math.acos(min(cfg.dot_clamp, max(dot, -cfg.dot_clamp)))
        if np.dot(cross, ws.axis) < 0:
            position_angle = -position_angle

        if goal.quaternion is None:
            return position_angle

        orientation_angle = 0.0
        if cfg.orientation_weight > 0 and orientation_error > cfg.orientation_threshold:
            weight = (chain_length - index) / chain_length
            orientation_angle = orientation_error * cfg.orientation_weight * weight * cfg.orientation_scale

        if position_error > cfg.coarse_error_threshold:
            position_weight = cfg.coarse_position_weight
        else:
            position_weight = cfg.fine_position_weight
        return position_angle * position_weight + orientation_angle * (1.0 - position_weight)

    def _translation_step(self, goal: _Goal, ws: _Workspace) -> Optional[float]:
        np.subtract(goal.position, ws.effector, out=ws.to_target)
        if np.linalg.norm(ws.to_target) < self._config.min_vector_length:
            return None
        return float(np.dot(ws.to_target, ws.axis))


def _snake_case(key: str) -> str:
    return re.sub(r'(?<!^)(?=[A-Z])', '_', key).lower()


def _vector(value: VectorLike, what: str) -> np.ndarray:
    if isinstance(value, Mapping):
        value = (value.get("x", 0.0), value.get("y", 0.0), value.get("z", 0.0))
    vector = np.asarray(value, dtype=float)
    if vector.shape != (3,):
        raise ValueError(f"{what} must have 3 components, got shape {vector.shape}")
    return vector


def _euler(value: VectorLike) -> np.ndarray:
    if isinstance(value, Mapping):
        value = (value.get("roll", 0.0), value.get("pitch", 0.0), value.get("yaw", 0.0))
    angles = np.asarray(value, dtype=float)
    if angles.shape != (3,):
        raise ValueError(f"target_orientation must have 3 angles, got shape {angles.shape}")
    return angles


def _quaternion(value: VectorLike) -> np.ndarray:
    if isinstance(value, Mapping):
        value = (value.get("w", 1.0), value.get("x", 0.0), value.get("y", 0.0), value.get("z", 0.0))
    q = np.asarray(value, dtype=float)
    if q.shape != (4,) or np.linalg.norm(q) < 1e-12:
        raise ValueError("current_effector_orientation must be a non-zero (w, x, y, z) quaternion")
    return q
