"""SE(3) rigid-body transforms as 4x4 homogeneous matrices in JAX.

Joint motion is expressed through the exponential map of a 6-D twist
[vx, vy, vz, wx, wy, wz]: a revolute joint contributes an angular twist, a
prismatic joint a linear one.
"""

import jax
import jax.numpy as jnp

from . import so3

Array = jax.Array


def from_position_and_rotation(p: Array, R: Array) -> Array:
    """
    Homogeneous transform from a translation and a rotation.

    Args:
        p: (..., 3) translation
        R: (..., 3, 3) rotation

    Returns:
        (..., 4, 4) transform
    """
    batch = jnp.broadcast_shapes(p.shape[:-1], R.shape[:-2])
    top = jnp.concatenate([
        jnp.broadcast_to(R, batch + (3, 3)),
        jnp.broadcast_to(p, batch + (3,))[..., None],
    ], axis=-1)
    bottom = jnp.broadcast_to(jnp.array([0.0, 0.0, 0.0, 1.0], dtype=top.dtype), batch + (1, 4))
    return jnp.concatenate([top, bottom], axis=-2)


def from_origin(xyz, rpy) -> Array:
    """Transform described by a URDF ``<origin xyz=... rpy=...>`` element."""
    return from_position_and_rotation(jnp.asarray(xyz, dtype=float), so3.from_rpy(rpy))


def exp(twist: Array) -> Array:
    """
    SE(3) exponential map of (..., 6) twists.

    Uses the closed-form left Jacobian V = I + A K + B K^2 with Taylor
    expansions of A and B near zero rotation.

    Returns:
        (..., 4, 4) transforms
    """
    v, w = twist[..., :3], twist[..., 3:]
    theta = jnp.linalg.norm(w, axis=-1, keepdims=True)
    theta_sq = theta * theta
    small = theta < 1e-6
    safe = jnp.where(small, 1.0, theta)

    # A = (1 - cos t) / t^2, B = (t - sin t) / t^3
    A = jnp.where(small, 0.5 - theta_sq / 24.0, (1.0 - jnp.cos(safe)) / (safe * safe))
    B = jnp.where(small, 1.0 / 6.0 - theta_sq / 120.0, (safe - jnp.sin(safe)) / (safe * safe * safe))

    K = so3.skew_symmetric(w)
    eye = jnp.broadcast_to(jnp.eye(3, dtype=twist.dtype), K.shape)
    V = eye + A[..., None] * K + B[..., None] * (K @ K)

    return from_position_and_rotation(jnp.einsum('...ij,...j->...i', V, v), so3.exp(w))


def get_position(T: Array) -> Array:
    return T[..., :3, 3]


def get_rotation(T: Array) -> Array:
    return T[..., :3, :3]
