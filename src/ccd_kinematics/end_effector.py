"""Heuristic choice of the link an IK request should drive."""

from typing import Optional

from .core import Link, Robot

# Conventional terminal-link names, tried in order.
END_EFFECTOR_NAMES = (
    "end_effector",
    "tool0",
    "ee_link",
    "gripper_link",
    "link_6",
    "link_7",
    "wrist_3_link",
    "tool_link",
    "flange",
    "tool_flange",
)


def find_end_effector(robot: Robot) -> Optional[Link]:
    """Pick the effector link of ``robot``.

    A link with one of ``END_EFFECTOR_NAMES`` wins; otherwise the deepest
    link of a depth-first walk from the root, the first one found on ties.

    Returns:
        The effector link, or ``None`` if the robot has no links.
    """
    for name in END_EFFECTOR_NAMES:
        link = robot.links.get(name)
        if link is not None:
            return link

    if robot.root is None:
        return None

    deepest, max_depth = robot.root, 0
    stack = [(robot.root, 0)]
    while stack:
        link, depth = stack.pop()
        if depth > max_depth:
            deepest, max_depth = link, depth
        # reversed so children are visited in declaration order
        for joint in reversed(link.child_joints):
            stack.append((joint.child, depth + 1))
    return deepest
