"""
===============================================================================
LUNAR TRANSFER SIM - Vector and Frame Helpers
===============================================================================
The simulation integrates everything in a single inertial frame, but most
guidance quantities are body-relative: Earth-relative phase angles,
Moon-relative radial velocity, local prograde / radial / normal
directions.  This module provides the conversions between the two and
the zero-length guards that keep NaN out of the dynamics.

All functions operate on NumPy arrays of shape (3,) and return new arrays.
===============================================================================
"""

from typing import Optional

import numpy as np

# Below this length a vector is treated as zero and has no direction.
ZERO_LENGTH = 1e-9


def unit_vector(vec: np.ndarray) -> np.ndarray:
    """
    Normalise *vec*, returning the zero vector when it has no direction.

    Parameters
    ----------
    vec : np.ndarray
        Any 3-vector.

    Returns
    -------
    np.ndarray
        Unit vector along *vec*, or ``zeros(3)`` if ``|vec|`` is below
        :data:`ZERO_LENGTH`.
    """
    vec = np.asarray(vec, dtype=np.float64)
    norm = np.linalg.norm(vec)
    if norm < ZERO_LENGTH:
        return np.zeros(3)
    return vec / norm


def radial_velocity(r_rel: np.ndarray, v_rel: np.ndarray) -> Optional[float]:
    """
    Radial component of the relative velocity, vr = (r . v) / |r|.

    Positive while moving away from the body (outbound leg), negative
    while approaching.  Returns None when |r| is zero.
    """
    r_mag = np.linalg.norm(r_rel)
    if r_mag <= 0.0:
        return None
    return float(np.dot(r_rel, v_rel) / r_mag)


def signed_angle(
    from_vec: np.ndarray,
    to_vec: np.ndarray,
    normal: np.ndarray,
) -> float:
    """
    Signed angle from *from_vec* to *to_vec* about *normal*.

        theta = atan2((a x b) . n_hat, a . b)

    The result lies in (-pi, pi].  A positive angle means *to_vec* is
    ahead of *from_vec* when rotating right-handed about *normal*.
    Returns 0.0 for degenerate input.
    """
    n_hat = unit_vector(normal)
    a = np.asarray(from_vec, dtype=np.float64)
    b = np.asarray(to_vec, dtype=np.float64)
    if np.linalg.norm(a) < ZERO_LENGTH or np.linalg.norm(b) < ZERO_LENGTH:
        return 0.0

    sin_part = float(np.dot(np.cross(a, b), n_hat))
    cos_part = float(np.dot(a, b))
    angle = float(np.arctan2(sin_part, cos_part))
    # atan2 returns [-pi, pi]; fold -pi onto pi
    if angle <= -np.pi:
        angle = np.pi
    return angle


def barycenter(
    position_a: np.ndarray,
    mass_a: float,
    position_b: np.ndarray,
    mass_b: float,
) -> np.ndarray:
    """
    Mass-weighted barycenter of two point masses.

        r_B = (m_a r_a + m_b r_b) / (m_a + m_b)

    Falls back to the midpoint when the total mass is not positive.
    """
    total = mass_a + mass_b
    if total <= 0.0:
        return 0.5 * (np.asarray(position_a) + np.asarray(position_b))
    return (mass_a * np.asarray(position_a) + mass_b * np.asarray(position_b)) / total
