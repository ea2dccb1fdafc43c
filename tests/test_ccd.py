"""Tests for the Cyclic Coordinate Descent solver."""

import logging
import math
from pathlib import Path

import numpy as np
import pytest

from ccd_kinematics.io import load_urdf, parse_urdf
from ccd_kinematics.solvers import CCDConfig, CCDResult, CCDSolver, SolveRequest

FIXTURES = Path(__file__).parent / "fixtures"

# One revolute joint about z at the origin, tip one unit along x
SINGLE_JOINT = """<robot name="single">
  <link name="base"/><link name="arm"/><link name="tip"/>
  <joint name="turn" type="{joint_type}">
    <parent link="base"/><child link="arm"/><axis xyz="0 0 1"/>{limit}
  </joint>
  <joint name="arm_to_tip" type="fixed">
    <origin xyz="1 0 0"/><parent link="arm"/><child link="tip"/>
  </joint>
</robot>"""

SLIDER = """<robot name="slider">
  <link name="rail"/><link name="carriage"/>
  <joint name="slide" type="prismatic">
    <parent link="rail"/><child link="carriage"/><axis xyz="1 0 0"/>
    <limit lower="0" upper="0.5"/>
  </joint>
</robot>"""


def _single(joint_type="revolute", limit=""):
    return parse_urdf(SINGLE_JOINT.format(joint_type=joint_type, limit=limit))


def _planar():
    return load_urdf(FIXTURES / "planar_2link.urdf")


def _tip_after(robot, angles, link="tip"):
    clone = robot.copy()
    clone.set_joint_values(angles)
    return clone.world_transform(link)[:3, 3]


def test_single_joint_quarter_turn():
    """The joint swings the tip onto the target a quarter turn away."""
    robot = _single()
    result = CCDSolver().solve_detailed(robot, SolveRequest(target_position=(0.0, 1.0, 0.0)), "tip")
    assert isinstance(result, CCDResult)
    assert result.converged
    assert result.iterations <= 10
    assert result.position_error < 0.01
    assert result.orientation_error is None
    assert abs(result.angles["turn"] - math.pi / 2) < 0.01


def test_solve_returns_chain_angles():
    robot = _planar()
    angles = CCDSolver().solve(robot, SolveRequest(target_position=(1.0, 1.0, 0.0)))
    assert set(angles) == {"shoulder", "elbow"}


def test_two_link_converges_with_defaults():
    """From a bent pose a nearby reachable target converges within the default budget.

    The default step bound and damping only guarantee this close to the start
    pose; targets far from it need a larger max_iterations (see below).
    """
    robot = _planar()
    robot.set_joint_values({"shoulder": 0.0, "elbow": math.pi / 2})
    target = (1.0 + math.cos(1.3), math.sin(1.3), 0.0)

    result = CCDSolver().solve_detailed(robot, SolveRequest(target_position=target), "tip")
    assert result.converged
    assert result.iterations <= CCDSolver().config.max_iterations
    np.testing.assert_allclose(_tip_after(robot, result.angles), target, atol=0.01)


@pytest.mark.parametrize(
    "target",
    [
        (-1.2, 0.5, 0.0),
        (-0.6, 1.5, 0.0),
        (0.0, 1.5, 0.0),
        (0.6, -0.5, 0.0),
        (1.2, 1.5, 0.0),
        (1.8, 0.5, 0.0),
        (0.0, -0.5, 0.0),
        (1.0, 1.0, 0.0),
        (-1.0, -1.0, 0.0),
    ],
)
def test_two_link_reachable_targets(target):
    """Reachable targets off the straight arm converge given enough sweeps."""
    robot = _planar()
    result = CCDSolver(max_iterations=100).solve_detailed(robot, SolveRequest(target_position=target))
    assert result.converged
    assert result.position_error < 0.01
    assert np.linalg.norm(_tip_after(robot, result.angles) - np.asarray(target)) < 0.01


@pytest.mark.parametrize("target", [(1.5, 0.0, 0.0), (1.0, 0.0, 0.0)])
def test_straight_arm_leaves_collinear_start(target):
    """A target on the line of a fully straight arm still bends the arm onto it."""
    robot = _planar()
    result = CCDSolver(max_iterations=100).solve_detailed(robot, SolveRequest(target_position=target), "tip")
    assert result.converged
    assert result.angles["elbow"] != 0.0
    assert np.linalg.norm(_tip_after(robot, result.angles) - np.asarray(target)) < 0.01


def test_unreachable_target_uses_every_iteration():
    """Out-of-reach targets run the full budget and still return angles."""
    robot = _planar()
    result = CCDSolver().solve_detailed(
        robot, SolveRequest(target_position=(3.0, 0.5, 0.0)), record_steps=True
    )
    assert not result.converged
    assert result.iterations == 10
    assert set(result.angles) == {"shoulder", "elbow"}
    assert result.position_error > 1.0 - 1e-9
    assert len(result.steps) == 10


@pytest.mark.parametrize("target", [(3.0, 0.5, 0.0), (-1.5, 0.2, 0.0), (0.0, 1.5, 0.0)])
def test_steps_are_bounded(target):
    """No joint moves more than angle_limit in a single sweep."""
    robot = _planar()
    solver = CCDSolver(max_iterations=20)
    result = solver.solve_detailed(robot, SolveRequest(target_position=target), record_steps=True)
    assert result.steps
    for sweep in result.steps:
        for step in sweep.values():
            assert abs(step) <= solver.config.angle_limit + 1e-12


def test_solve_does_not_mutate_robot():
    """The robot's joint values and transforms are restored after solving."""
    robot = _planar()
    robot.set_joint_values({"shoulder": 0.2, "elbow": -0.3})
    values = robot.joint_values()
    tip = robot.world_transform("tip").copy()

    CCDSolver().solve(robot, SolveRequest(target_position=(0.5, 1.2, 0.0)))
    assert robot.joint_values() == values
    np.testing.assert_allclose(robot.world_transform("tip"), tip, atol=1e-12)


def test_starting_values_are_restored_on_error(monkeypatch):
    """Values are restored even when a sweep raises."""
    robot = _planar()
    robot.set_joint_values({"shoulder": 0.4, "elbow": 0.1})
    solver = CCDSolver()

    def explode(*args, **kwargs):
        robot.set_joint_value("shoulder", 2.0)
        raise RuntimeError("boom")

    monkeypatch.setattr(solver, "_sweep", explode)
    with pytest.raises(RuntimeError):
        solver.solve(robot, SolveRequest(target_position=(0.5, 1.2, 0.0)))
    assert robot.joints["shoulder"].value == 0.4
    assert robot.joints["elbow"].value == 0.1


def test_effector_link_from_another_robot():
    """A link taken from the original robot solves and restores the copy it is given."""
    robot = _planar()
    effector = robot.links["tip"]
    clone = robot.copy()
    clone.set_joint_value("shoulder", 1.0)

    result = CCDSolver(max_iterations=0).solve_detailed(
        clone, SolveRequest(target_position=(0.0, 1.0, 0.0)), effector
    )
    assert result.angles == {"shoulder": 1.0, "elbow": 0.0}
    CCDSolver().solve(clone, SolveRequest(target_position=(0.0, 1.0, 0.0)), effector)
    assert clone.joints["shoulder"].value == 1.0
    assert robot.joints["shoulder"].value == 0.0


def test_missing_effector_returns_none(caplog):
    robot = _planar()
    with caplog.at_level(logging.WARNING, logger="ccd_kinematics"):
        assert CCDSolver().solve(robot, SolveRequest(target_position=(1.0, 1.0, 0.0)), "gripper") is None
    assert "No IK solution" in caplog.text


def test_no_movable_joints_returns_none():
    robot = parse_urdf("""<robot name="rigid">
      <link name="base"/><link name="plate"/>
      <joint name="weld" type="fixed"><parent link="base"/><child link="plate"/></joint>
    </robot>""")
    assert CCDSolver().solve(robot, SolveRequest(target_position=(1.0, 0.0, 0.0))) is None
    assert CCDSolver().solve_detailed(robot, SolveRequest(target_position=(1.0, 0.0, 0.0))) is None


def test_empty_robot_returns_none():
    robot = parse_urdf('<robot name="empty"/>')
    assert CCDSolver().solve(robot, SolveRequest(target_position=(1.0, 0.0, 0.0))) is None


def test_tool_offset_is_held_fixed():
    """A tool tip ahead of the link is steered onto the target instead of the link."""
    robot = _single()
    request = SolveRequest(
        target_position=(0.5, 1.0, 0.0),
        current_effector_position=(1.5, 0.0, 0.0),
    )
    result = CCDSolver(max_iterations=30).solve_detailed(robot, request, "tip")
    assert result.converged
    assert result.position_error < 0.01
    assert abs(result.angles["turn"] - math.pi / 2) < 0.011


def test_orientation_already_satisfied():
    """Matching position and orientation converge without any sweep."""
    robot = _single()
    request = SolveRequest(target_position=(1.0, 0.0, 0.0), target_orientation=(0.0, 0.0, 0.0))
    result = CCDSolver().solve_detailed(robot, request, "tip")
    assert result.converged
    assert result.iterations == 0
    assert result.orientation_error == pytest.approx(0.0, abs=1e-6)
    assert result.angles == {"turn": 0.0}


def test_orientation_target_converges():
    """Position and yaw targets agree for a single z joint; both are met."""
    robot = _single()
    request = SolveRequest(
        target_position={"x": 0.0, "y": 1.0, "z": 0.0},
        target_orientation={"roll": 0.0, "pitch": 0.0, "yaw": math.pi / 2},
    )
    result = CCDSolver(max_iterations=100).solve_detailed(robot, request, "tip")
    assert result.converged
    assert result.orientation_error < 0.02
    assert abs(result.angles["turn"] - math.pi / 2) < 0.02


def test_orientation_error_reported_when_unmet():
    """An orientation the chain cannot reach keeps the solve from converging."""
    robot = _single()
    request = SolveRequest(target_position=(1.0, 0.0, 0.0), target_orientation=(math.pi / 2, 0.0, 0.0))
    result = CCDSolver().solve_detailed(robot, request, "tip")
    assert not result.converged
    assert result.orientation_error == pytest.approx(math.pi / 2, abs=0.05)


def test_tool_rotation_is_held_fixed():
    """A current orientation equal to the target means no orientation error."""
    robot = _single()
    s = math.sqrt(0.5)
    request = SolveRequest(
        target_position=(1.0, 0.0, 0.0),
        target_orientation=(math.pi / 2, 0.0, 0.0),
        current_effector_orientation=(s, s, 0.0, 0.0),
    )
    result = CCDSolver().solve_detailed(robot, request, "tip")
    assert result.converged
    assert result.iterations == 0
    assert result.orientation_error == pytest.approx(0.0, abs=1e-6)


def test_joint_limits_are_enforced():
    """The joint stops at its upper limit short of the target."""
    robot = _single(limit='<limit lower="-0.2" upper="0.5"/>')
    result = CCDSolver().solve_detailed(robot, SolveRequest(target_position=(0.0, 1.0, 0.0)), "tip")
    assert not result.converged
    assert result.angles["turn"] == pytest.approx(0.5)


def test_unlimited_joint_clamped_to_half_turn():
    """Joints without limits stay within [-pi, pi]."""
    robot = _single(joint_type="continuous")
    robot.set_joint_value("turn", 3.0)
    result = CCDSolver(max_iterations=50).solve_detailed(
        robot, SolveRequest(target_position=(-1.0, -0.5, 0.0)), "tip"
    )
    assert -math.pi <= result.angles["turn"] <= math.pi


def test_prismatic_joint():
    """Prismatic joints move by the projection of the remaining error onto their axis."""
    robot = parse_urdf(SLIDER)
    result = CCDSolver().solve_detailed(robot, SolveRequest(target_position=(0.2, 0.0, 0.0)), "carriage")
    assert result.converged
    assert result.iterations == 3
    assert result.angles["slide"] == pytest.approx(0.2, abs=0.01)


def test_zero_iterations():
    robot = _single()
    result = CCDSolver(max_iterations=0).solve_detailed(robot, SolveRequest(target_position=(0.0, 1.0, 0.0)))
    assert result.iterations == 0
    assert not result.converged
    assert result.angles == {"turn": 0.0}
    assert result.position_error == pytest.approx(math.sqrt(2.0))


def test_multiple_starts_on_copies():
    """Copies of a robot can be solved from different starting poses."""
    robot = _planar()
    solver = CCDSolver(max_iterations=100)
    request = SolveRequest(target_position=(1.0, 1.0, 0.0))
    for start in (-1.0, 0.0, 1.0):
        clone = robot.copy()
        clone.set_joint_value("shoulder", start)
        before = np.linalg.norm(clone.world_transform("tip")[:3, 3] - np.array([1.0, 1.0, 0.0]))
        result = solver.solve_detailed(clone, request, "tip")
        assert result.position_error < before
        assert clone.joints["shoulder"].value == start
    assert robot.joints["shoulder"].value == 0.0


def test_bad_target_shape():
    with pytest.raises(ValueError, match="3 components"):
        CCDSolver().solve(_single(), SolveRequest(target_position=(1.0, 2.0)), "tip")


def test_config_defaults():
    config = CCDSolver().get_config()
    assert config["max_iterations"] == 10
    assert config["tolerance"] == 0.01
    assert config["damping_factor"] == 0.7
    assert config["angle_limit"] == 0.3
    assert config["orientation_weight"] == 0.1


def test_configure():
    solver = CCDSolver()
    solver.configure(max_iterations=25, angle_limit=0.2)
    assert solver.config.max_iterations == 25
    assert solver.get_config()["angle_limit"] == 0.2
    with pytest.raises(TypeError):
        solver.configure(learning_rate=0.1)
    with pytest.raises(ValueError):
        solver.configure(damping_factor=1.5)


def test_config_overrides():
    solver = CCDSolver(CCDConfig(tolerance=0.001), max_iterations=50)
    assert solver.config.tolerance == 0.001
    assert solver.config.max_iterations == 50


@pytest.mark.parametrize(
    "kwargs",
    [
        {"max_iterations": -1},
        {"tolerance": 0.0},
        {"angle_limit": -0.1},
        {"damping_factor": -0.1},
        {"dot_clamp": 1.5},
        {"orientation_weight": -1.0},
    ],
)
def test_config_validation(kwargs):
    with pytest.raises(ValueError):
        CCDConfig(**kwargs)


def test_config_from_mapping():
    config = CCDConfig.from_mapping({"maxIterations": 20, "dampingFactor": 0.5, "tolerance": 0.02})
    assert config.max_iterations == 20
    assert config.damping_factor == 0.5
    assert config.tolerance == 0.02
    with pytest.raises(ValueError, match="Unknown"):
        CCDConfig.from_mapping({"stepSize": 1.0})


def test_request_from_mapping():
    request = SolveRequest.from_mapping({
        "targetPosition": {"x": 0.0, "y": 1.0, "z": 0.0},
        "currentPosition": {"x": 1.0, "y": 0.0, "z": 0.0},
    })
    assert request.current_effector_position == {"x": 1.0, "y": 0.0, "z": 0.0}
    assert request.target_orientation is None
    angles = CCDSolver().solve(_single(), request, "tip")
    assert abs(angles["turn"] - math.pi / 2) < 0.01
    with pytest.raises(ValueError, match="Unknown"):
        SolveRequest.from_mapping({"goal": (1, 2, 3)})
