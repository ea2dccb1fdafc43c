"""Mutable robot state: the link/joint tree plus current joint values.

``Robot`` is the object the solver and any renderer share. Joint values are
the only state that changes after construction; world transforms are
recomputed from them on demand.
"""

import copy
import logging
from typing import Dict, List, Mapping, Optional, Sequence

import jax.numpy as jnp
import numpy as np

from ..chain import forward_kinematics_world
from ..transforms import so3
from .mimic import MimicResolver
from .nodes import Joint, Link, Pose
from .robot_model import RobotModel

logger = logging.getLogger(__name__)


class Robot:
    """A kinematic tree with joint state.

    Args:
        name: Robot name from the description.
        links: All links; exactly one of them may lack a parent joint.
        joints: All joints, mimic joints included, already wired to their
                parent and child links.

    Raises:
        ValueError: if the links do not form a single tree.
        ParseError: if mimic references are dangling or cyclic.
    """

    def __init__(self, name: str, links: Sequence[Link], joints: Sequence[Joint]):
        self.name = name
        self.links: Dict[str, Link] = {link.name: link for link in links}
        self.joints: Dict[str, Joint] = {joint.name: joint for joint in joints}

        roots = [link for link in links if link.parent_joint is None]
        if links and len(roots) != 1:
            raise ValueError(f"Expected exactly one root link, found: {[l.name for l in roots]}")
        self.root: Optional[Link] = roots[0] if roots else None

        self.mimics = MimicResolver(joints)
        self.mimics.sync()

        self.model = RobotModel.from_tree(self.root)
        if self.model.num_links != len(self.links):
            raise ValueError("Links are not all connected to the root link")
        self._link_index = {name: i for i, name in enumerate(self.model.link_names)}

        self._world: np.ndarray = np.zeros((0, 4, 4))
        self._stale = True
        self.update_world_transforms()
        logger.debug(
            "Built robot %r: %d links, %d joints (%d mimic)",
            name, len(self.links), len(self.joints), len(self.mimics),
        )

    def __repr__(self) -> str:
        return f"Robot(name={self.name!r}, links={len(self.links)}, joints={len(self.joints)})"

    @property
    def movable_joints(self) -> List[Joint]:
        """Independently settable joints (movable and not mimic), in declaration order."""
        return [j for j in self.joints.values() if j.is_movable and not j.is_mimic]

    def joint_values(self) -> Dict[str, float]:
        """Current value of every non-fixed joint, mimic joints included."""
        return {name: j.value for name, j in self.joints.items() if j.is_movable}

    def set_joint_value(self, name: str, value: float) -> None:
        """Set one joint and refresh the mimic joints that follow it.

        World transforms are marked stale and recomputed on the next query
        or ``update_world_transforms`` call.

        Raises:
            KeyError: unknown joint.
            ValueError: ``name`` is a mimic joint; its value is derived.
        """
        try:
            joint = self.joints[name]
        except KeyError:
            raise KeyError(f"Joint '{name}' not found in robot '{self.name}'")
        if joint.is_mimic:
            raise ValueError(
                f"Joint '{name}' mimics '{self.mimics.driver_of(name)}' and cannot be set directly"
            )
        joint.value = float(value)
        self.mimics.propagate(name)
        self._stale = True

    def set_joint_values(self, values: Mapping[str, float]) -> None:
        for name, value in values.items():
            self.set_joint_value(name, value)

    def update_world_transforms(self) -> np.ndarray:
        """Run forward kinematics for the current joint values.

        Returns:
            (num_links, 4, 4) world transforms in breadth-first link order
        """
        if self.model.num_links:
            link_values = np.array([
                0.0 if name is None else self.joints[name].value for name in self.model.joint_names
            ])
            self._world = np.asarray(forward_kinematics_world(self.model, jnp.asarray(link_values)))
        self._stale = False
        return self._world

    def world_transform(self, name: str) -> np.ndarray:
        """World transform of a link, or of a joint (the frame of its child link)."""
        if self._stale:
            self.update_world_transforms()
        if name in self._link_index:
            return self._world[self._link_index[name]]
        if name in self.joints:
            return self._world[self._link_index[self.joints[name].child.name]]
        raise KeyError(f"No link or joint named '{name}' in robot '{self.name}'")

    def link_pose(self, name: str) -> Pose:
        T = self.world_transform(name)
        return Pose(position=T[:3, 3].copy(), orientation=np.asarray(so3.to_quaternion(T[:3, :3])))

    def copy(self) -> "Robot":
        """Independent deep copy, e.g. for solving from several starting points."""
        return copy.deepcopy(self)
