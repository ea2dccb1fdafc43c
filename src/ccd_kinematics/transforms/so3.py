"""SO(3) rotation operations in JAX.

Rotations are represented as 3x3 matrices; quaternions use the (w, x, y, z)
layout throughout the package. Functions accept batched inputs with the
rotation dimensions last.
"""

import jax
import jax.numpy as jnp

Array = jax.Array


def exp(log_r: Array) -> Array:
    """
    Rodrigues' formula: axis-angle vector to rotation matrix.

    Args:
        log_r: (..., 3) axis-angle vectors (unit axis scaled by the angle)

    Returns:
        (..., 3, 3) rotation matrices
    """
    theta = jnp.linalg.norm(log_r, axis=-1, keepdims=True)
    tiny = theta < 1e-8

    # Second-order expansion keeps the small-angle branch finite
    sin_t = jnp.where(tiny, theta - theta**3 / 6.0, jnp.sin(theta))
    one_minus_cos = jnp.where(tiny, 0.5 * theta**2, 1.0 - jnp.cos(theta))

    unit = jnp.where(tiny, log_r, log_r / jnp.where(tiny, 1.0, theta))
    K = skew_symmetric(unit)

    eye = jnp.broadcast_to(jnp.eye(3, dtype=log_r.dtype), log_r.shape[:-1] + (3, 3))
    return eye + sin_t[..., None] * K + one_minus_cos[..., None] * (K @ K)


def skew_symmetric(v: Array) -> Array:
    """Cross-product matrix [v]x of (..., 3) vectors."""
    zero = jnp.zeros(v.shape[:-1], dtype=v.dtype)
    x, y, z = v[..., 0], v[..., 1], v[..., 2]
    return jnp.stack([
        jnp.stack([zero, -z, y], axis=-1),
        jnp.stack([z, zero, -x], axis=-1),
        jnp.stack([-y, x, zero], axis=-1),
    ], axis=-2)


def inverse(R: Array) -> Array:
    """Inverse of a rotation matrix (its transpose)."""
    return jnp.swapaxes(R, -1, -2)


def apply(R: Array, v: Array) -> Array:
    """Rotate (..., 3) vectors by (..., 3, 3) rotations."""
    return jnp.einsum('...ij,...j->...i', R, v)


def rot_x(angle) -> Array:
    c, s = jnp.cos(angle), jnp.sin(angle)
    return jnp.array([[1.0, 0.0, 0.0], [0.0, c, -s], [0.0, s, c]])


def rot_y(angle) -> Array:
    c, s = jnp.cos(angle), jnp.sin(angle)
    return jnp.array([[c, 0.0, s], [0.0, 1.0, 0.0], [-s, 0.0, c]])


def rot_z(angle) -> Array:
    c, s = jnp.cos(angle), jnp.sin(angle)
    return jnp.array([[c, -s, 0.0], [s, c, 0.0], [0.0, 0.0, 1.0]])


def from_rpy(rpy, base: Array = None) -> Array:
    """
    Rotation from URDF roll-pitch-yaw angles.

    The fixed-axis Z-Y-X composition ``Rz(yaw) @ Ry(pitch) @ Rx(roll)`` is
    left-multiplied onto ``base`` when one is given.

    Args:
        rpy: (roll, pitch, yaw) in radians
        base: optional (3, 3) pre-existing orientation

    Returns:
        (3, 3) rotation matrix
    """
    roll, pitch, yaw = rpy
    R = rot_z(yaw) @ rot_y(pitch) @ rot_x(roll)
    if base is not None:
        R = R @ base
    return R


def from_euler_xyz(angles) -> Array:
    """Rotation from an intrinsic X-Y-Z Euler sequence: ``Rx @ Ry @ Rz``."""
    a, b, c = angles
    return rot_x(a) @ rot_y(b) @ rot_z(c)


def from_quaternion(quaternions: Array) -> Array:
    """
    Quaternions (w, x, y, z) to rotation matrices.

    Args:
        quaternions: (..., 4) quaternions, normalized on the way in

    Returns:
        (..., 3, 3) rotation matrices
    """
    q = quaternions / jnp.linalg.norm(quaternions, axis=-1, keepdims=True)
    w, x, y, z = jnp.moveaxis(q, -1, 0)

    return jnp.stack([
        jnp.stack([1 - 2 * (y * y + z * z), 2 * (x * y - w * z), 2 * (x * z + w * y)], axis=-1),
        jnp.stack([2 * (x * y + w * z), 1 - 2 * (x * x + z * z), 2 * (y * z - w * x)], axis=-1),
        jnp.stack([2 * (x * z - w * y), 2 * (y * z + w * x), 1 - 2 * (x * x + y * y)], axis=-1),
    ], axis=-2)


def to_quaternion(matrix: Array) -> Array:
    """
    Rotation matrices to unit quaternions (w, x, y, z) with w >= 0.

    Picks, per rotation, the numerically largest of the four quaternion
    components as the pivot.

    Args:
        matrix: (..., 3, 3) rotation matrices

    Returns:
        (..., 4) quaternions
    """
    m = matrix
    trace = m[..., 0, 0] + m[..., 1, 1] + m[..., 2, 2]
    eps = jnp.finfo(m.dtype).eps

    pivots = jnp.stack([
        1.0 + trace,
        1.0 + m[..., 0, 0] - m[..., 1, 1] - m[..., 2, 2],
        1.0 - m[..., 0, 0] + m[..., 1, 1] - m[..., 2, 2],
        1.0 - m[..., 0, 0] - m[..., 1, 1] + m[..., 2, 2],
    ], axis=-1)

    candidates = jnp.stack([
        jnp.stack([pivots[..., 0], m[..., 2, 1] - m[..., 1, 2],
                   m[..., 0, 2] - m[..., 2, 0], m[..., 1, 0] - m[..., 0, 1]], axis=-1),
        jnp.stack([m[..., 2, 1] - m[..., 1, 2], pivots[..., 1],
                   m[..., 0, 1] + m[..., 1, 0], m[..., 0, 2] + m[..., 2, 0]], axis=-1),
        jnp.stack([m[..., 0, 2] - m[..., 2, 0], m[..., 0, 1] + m[..., 1, 0],
                   pivots[..., 2], m[..., 1, 2] + m[..., 2, 1]], axis=-1),
        jnp.stack([m[..., 1, 0] - m[..., 0, 1], m[..., 0, 2] + m[..., 2, 0],
                   m[..., 1, 2] + m[..., 2, 1], pivots[..., 3]], axis=-1),
    ], axis=-2)
    candidates = candidates / (2.0 * jnp.sqrt(jnp.maximum(pivots, eps)))[..., None]

    best = jnp.argmax(pivots, axis=-1)
    index = jnp.broadcast_to(best[..., None, None], best.shape + (1, 4))
    q = jnp.take_along_axis(candidates, index, axis=-2)[..., 0, :]

    q = jnp.where(q[..., 0:1] < 0, -q, q)
    return q / jnp.linalg.norm(q, axis=-1, keepdims=True)


def quaternion_angle(q1: Array, q2: Array) -> Array:
    """
    Angle of the relative rotation between two unit quaternions, in [0, pi].

    ``q`` and ``-q`` describe the same rotation, so the absolute dot product
    is used.
    """
    dot = jnp.abs(jnp.sum(q1 * q2, axis=-1))
    return 2.0 * jnp.arccos(jnp.clip(dot, -1.0, 1.0))
