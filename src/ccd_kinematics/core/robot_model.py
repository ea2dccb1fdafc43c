"""RobotModel PyTree: the array form of a kinematic tree.

The mutable ``Robot`` graph is compiled into this immutable structure once
per loaded description so forward kinematics can run as a single
JIT-compiled scan.
"""

from collections import deque
from typing import List, Optional, Tuple

import jax.numpy as jnp
from jax import Array
from flax import struct

from .nodes import Joint, JointType, Link


@struct.dataclass
class RobotModel:
    """Immutable PyTree representation of a robot's kinematic structure.

    Links are stored in breadth-first order from the root, so every parent
    precedes its children. Each non-root link is driven by exactly one joint.

    Attributes:
        link_names: Link names in breadth-first order. Static for JIT.
        joint_names: For each link, the name of the joint whose child it is
                     (``None`` for the root). Static for JIT.
        parent_indices: (num_links,) parent link index; the root parents itself.
        joint_transforms: (num_links, 4, 4) joint origin transforms, parent
                          link frame to joint frame.
        joint_axes: (num_links, 6) unit twists [vx,vy,vz,wx,wy,wz] scaled by
                    the joint value to obtain the joint motion.
    """
    link_names: Tuple[str, ...] = struct.field(pytree_node=False)
    joint_names: Tuple[Optional[str], ...] = struct.field(pytree_node=False)
    parent_indices: Array
    joint_transforms: Array
    joint_axes: Array

    @classmethod
    def from_tree(cls, root: Optional[Link]) -> "RobotModel":
        """Compile the tree hanging from ``root`` (``None`` for an empty robot)."""
        ordered: List[Link] = []
        queue = deque([root] if root is not None else [])
        while queue:
            link = queue.popleft()
            ordered.append(link)
            queue.extend(joint.child for joint in link.child_joints)

        index = {link.name: i for i, link in enumerate(ordered)}
        parents, transforms, axes, joint_names = [], [], [], []
        for i, link in enumerate(ordered):
            joint = link.parent_joint
            if joint is None:
                parents.append(i)
                transforms.append(jnp.eye(4))
                axes.append(jnp.zeros(6))
                joint_names.append(None)
            else:
                parents.append(index[joint.parent.name])
                transforms.append(jnp.asarray(joint.origin, dtype=float))
                axes.append(joint_twist(joint))
                joint_names.append(joint.name)

        if not ordered:
            return cls(
                link_names=(),
                joint_names=(),
                parent_indices=jnp.zeros((0,), dtype=jnp.int32),
                joint_transforms=jnp.zeros((0, 4, 4)),
                joint_axes=jnp.zeros((0, 6)),
            )

        return cls(
            link_names=tuple(link.name for link in ordered),
            joint_names=tuple(joint_names),
            parent_indices=jnp.array(parents, dtype=jnp.int32),
            joint_transforms=jnp.stack(transforms),
            joint_axes=jnp.stack(axes),
        )

    @property
    def num_links(self) -> int:
        return len(self.link_names)


def joint_twist(joint: Joint) -> Array:
    """Unit twist of ``joint``: angular for rotational joints, linear for prismatic."""
    axis = jnp.asarray(joint.axis, dtype=float)
    if joint.joint_type.is_rotational:
        return jnp.concatenate([jnp.zeros(3), axis])
    if joint.joint_type is JointType.PRISMATIC:
        return jnp.concatenate([axis, jnp.zeros(3)])
    if joint.joint_type is JointType.FIXED:
        return jnp.zeros(6)
    raise ValueError(f"Unsupported joint type: {joint.joint_type!r}")
