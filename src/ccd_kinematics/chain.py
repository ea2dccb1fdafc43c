"""Forward kinematics and kinematic chains.

Forward kinematics runs over the compiled ``RobotModel`` as a JIT-compiled
scan. A ``Chain`` is the ordered list of solvable joints between the robot's
base and an effector link.
"""

from dataclasses import dataclass
from typing import Dict, Iterator, Tuple, Union

import jax
import jax.numpy as jnp
from jax import Array

from .core.nodes import Joint, Link
from .core.robot_model import RobotModel
from .transforms import se3


def forward_kinematics(model: RobotModel, link_values: Array) -> Dict[str, Array]:
    """Compute forward kinematics for all links in the robot.

    Args:
        model: RobotModel containing the robot's kinematic structure
        link_values: Array of shape (num_links,) holding, for every link, the
                     value of the joint whose child it is (ignored for the root)

    Returns:
        Dictionary mapping link names to their 4x4 SE(3) world poses
    """
    world_transforms = forward_kinematics_world(model, link_values)
    return {name: world_transforms[i] for i, name in enumerate(model.link_names)}


@jax.jit
def forward_kinematics_world(model: RobotModel, link_values: Array) -> Array:
    """Array form of ``forward_kinematics``.

    Returns:
        Array of shape (num_links, 4, 4) with world poses for all links
    """
    num_links = len(model.link_names)
    world_transforms = jnp.identity(4, dtype=model.joint_transforms.dtype)[None].repeat(num_links, axis=0)

    def scan_body(carry, i):
        """Poses link `i` from its parent's world pose held in `carry`."""
        T_world_parent = carry[model.parent_indices[i]]
        T_parent_child = model.joint_transforms[i] @ se3.exp(model.joint_axes[i] * link_values[i])
        return carry.at[i].set(T_world_parent @ T_parent_child), None

    # Link 0 is the root and stays at the identity.
    final_transforms, _ = jax.lax.scan(scan_body, world_transforms, jnp.arange(1, num_links))
    return final_transforms


@dataclass(frozen=True)
class Chain:
    """Movable joints from the base to ``effector``, base first.

    Mimic joints are not part of a chain: they follow their drivers.
    """
    joints: Tuple[Joint, ...]
    effector: Link

    def __len__(self) -> int:
        return len(self.joints)

    def __iter__(self) -> Iterator[Joint]:
        return iter(self.joints)

    def __getitem__(self, index: int) -> Joint:
        return self.joints[index]

    @property
    def joint_names(self) -> Tuple[str, ...]:
        return tuple(joint.name for joint in self.joints)


def build_chain(robot, effector: Union[str, Link]) -> Chain:
    """Walk parent links upward from ``effector`` and collect the solvable joints.

    Args:
        robot: Robot owning the effector link
        effector: Effector link or its name

    Returns:
        Chain ordered from base to effector (possibly empty)
    """
    if isinstance(effector, str):
        try:
            effector = robot.links[effector]
        except KeyError:
            raise ValueError(f"Link '{effector}' not found in robot model")

    joints = []
    link = effector
    while link.parent_joint is not None:
        joint = link.parent_joint
        if joint.is_movable and not joint.is_mimic:
            joints.append(joint)
        link = joint.parent
    joints.reverse()
    return Chain(joints=tuple(joints), effector=effector)
