"""Tests for mimic joint propagation."""

from pathlib import Path

import numpy as np
import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from ccd_kinematics.core import MimicResolver
from ccd_kinematics.io import load_urdf, parse_urdf

FIXTURES = Path(__file__).parent / "fixtures"

# a drives b, b drives c; d is an independent joint
CHAINED_MIMICS = """<?xml version="1.0"?>
<robot name="mimics">
  <link name="base"/><link name="la"/><link name="lb"/><link name="lc"/><link name="ld"/>
  <joint name="a" type="revolute"><parent link="base"/><child link="la"/>
    <limit lower="-1" upper="1"/></joint>
  <joint name="b" type="revolute"><parent link="base"/><child link="lb"/>
    <mimic joint="a" multiplier="2" offset="0.1"/></joint>
  <joint name="c" type="continuous"><parent link="base"/><child link="lc"/>
    <mimic joint="b" multiplier="-1"/></joint>
  <joint name="d" type="revolute"><parent link="base"/><child link="ld"/></joint>
</robot>
"""

values = st.floats(min_value=-10.0, max_value=10.0, allow_nan=False)


@pytest.fixture
def robot():
    return parse_urdf(CHAINED_MIMICS)


def test_driver_and_dependents(robot):
    """The resolver maps drivers to direct dependents and back."""
    assert len(robot.mimics) == 2
    assert robot.mimics.driver_of("b") == "a"
    assert robot.mimics.driver_of("c") == "b"
    assert robot.mimics.dependents_of("a") == ("b",)
    assert robot.mimics.dependents_of("b") == ("c",)
    assert robot.mimics.dependents_of("d") == ()


def test_propagates_through_chained_mimics(robot):
    """Setting a driver updates mimics of mimics."""
    robot.set_joint_value("a", 0.5)
    assert robot.joints["b"].value == pytest.approx(1.1)
    assert robot.joints["c"].value == pytest.approx(-1.1)
    assert robot.joints["d"].value == 0.0


@given(values)
@settings(deadline=None, max_examples=25)
def test_mimic_values_follow_driver(value):
    """Mimic values are always multiplier * driver + offset, even outside limits."""
    robot = parse_urdf(CHAINED_MIMICS)
    robot.set_joint_value("a", value)
    assert robot.joints["a"].value == value
    assert robot.joints["b"].value == pytest.approx(2.0 * value + 0.1)
    assert robot.joints["c"].value == pytest.approx(-(2.0 * value + 0.1))


def test_setting_mimic_directly_fails(robot):
    with pytest.raises(ValueError, match="mimics 'a'"):
        robot.set_joint_value("b", 0.3)


def test_unknown_joint(robot):
    with pytest.raises(KeyError):
        robot.set_joint_value("nope", 0.3)


def test_mimic_values_reported(robot):
    """joint_values includes mimic joints; movable_joints does not."""
    robot.set_joint_value("a", 0.25)
    values = robot.joint_values()
    assert set(values) == {"a", "b", "c", "d"}
    assert values["b"] == pytest.approx(0.6)
    assert [j.name for j in robot.movable_joints] == ["a", "d"]


def test_panda_fingers_move_together():
    """The mimic finger mirrors the driving finger in the world frame."""
    robot = load_urdf(FIXTURES / "panda_arm.urdf")
    hand = robot.world_transform("panda_hand")
    left0 = robot.world_transform("panda_leftfinger")[:3, 3].copy()
    right0 = robot.world_transform("panda_rightfinger")[:3, 3].copy()

    robot.set_joint_value("panda_finger_joint1", 0.03)
    assert robot.joints["panda_finger_joint2"].value == pytest.approx(0.03)

    left = robot.world_transform("panda_leftfinger")[:3, 3]
    right = robot.world_transform("panda_rightfinger")[:3, 3]
    hand_y = hand[:3, 1]
    np.testing.assert_allclose(left - left0, 0.03 * hand_y, atol=1e-9)
    np.testing.assert_allclose(right - right0, -0.03 * hand_y, atol=1e-9)


def test_resolver_on_plain_joints():
    """A resolver over joints without mimics is empty and propagation is a no-op."""
    robot = parse_urdf(CHAINED_MIMICS)
    resolver = MimicResolver([robot.joints["a"], robot.joints["d"]])
    assert len(resolver) == 0
    resolver.propagate("a")
    resolver.sync()
