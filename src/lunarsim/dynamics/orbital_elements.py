"""
===============================================================================
LUNAR TRANSFER SIM - Orbital Elements Utility
===============================================================================
Two-body orbit geometry from a body-relative Cartesian state:

    h = r x v                           specific angular momentum
    e = (v x h) / mu - r / |r|          eccentricity vector
    eps = v^2 / 2 - mu / |r|            specific energy
    p = h^2 / mu                        semi-latus rectum
    r_p = p / (1 + e),  r_a = p / (1 - e)
    a = -mu / (2 eps),  T = 2 pi sqrt(a^3 / mu)

Quantities that are undefined for the given state (apoapsis and period of
an unbound orbit, everything for r = 0) are returned as None rather than
NaN or infinity.

Also provides the Laplace sphere-of-influence radius and display
formatters used by telemetry consumers.

References
----------
    [1] Curtis, "Orbital Mechanics for Engineering Students", 4th ed., Ch. 2.
    [2] Vallado, "Fundamentals of Astrodynamics and Applications", 4th ed.
===============================================================================
"""

from dataclasses import dataclass
from typing import Optional

import numpy as np

from lunarsim.core.constants import TWO_PI


@dataclass
class OrbitElements:
    """
    Two-body orbit description.

    Attributes
    ----------
    sma : float or None
        Semi-major axis (m); negative for hyperbolic orbits.
    ecc : float
        Eccentricity.
    rp, ra : float or None
        Periapsis / apoapsis radius (m).  ``ra`` is None when unbound.
    period : float or None
        Orbital period (s), elliptical orbits only.
    p : float or None
        Semi-latus rectum (m).
    energy : float
        Specific mechanical energy (J/kg).
    is_bound : bool
        True for elliptical orbits (e < 1 and negative energy).
    """
    sma: Optional[float]
    ecc: float
    rp: Optional[float]
    ra: Optional[float]
    period: Optional[float]
    p: Optional[float]
    energy: float = 0.0
    is_bound: bool = False


def compute_orbit_elements(r: np.ndarray, v: np.ndarray, mu: float) -> OrbitElements:
    """
    Orbit elements for a state relative to the central body.

    Parameters
    ----------
    r, v : np.ndarray
        Position (m) and velocity (m/s) relative to the central body.
    mu : float
        Gravitational parameter of the central body (m^3/s^2).

    Returns
    -------
    OrbitElements
    """
    r = np.asarray(r, dtype=np.float64)
    v = np.asarray(v, dtype=np.float64)
    r_mag = float(np.linalg.norm(r))
    v_mag = float(np.linalg.norm(v))

    if r_mag <= 0.0 or mu <= 0.0:
        return OrbitElements(None, 0.0, None, None, None, None, 0.0, False)

    h_vec = np.cross(r, v)
    h_mag = float(np.linalg.norm(h_vec))

    e_vec = np.cross(v, h_vec) / mu - r / r_mag
    ecc = float(np.linalg.norm(e_vec))

    energy = 0.5 * v_mag * v_mag - mu / r_mag

    p = h_mag * h_mag / mu if h_mag > 0.0 else None
    rp = p / (1.0 + ecc) if p is not None else None

    is_bound = ecc < 1.0 and energy < 0.0
    ra = p / (1.0 - ecc) if (p is not None and is_bound) else None

    sma = None
    if abs(energy) > 1e-16:
        sma = -mu / (2.0 * energy)
    elif is_bound and p is not None:
        # near-parabolic fallback
        sma = p / (1.0 - ecc * ecc)

    period = None
    if sma is not None and is_bound and sma > 0.0:
        period = TWO_PI * np.sqrt(sma ** 3 / mu)

    return OrbitElements(sma, ecc, rp, ra, period, p, float(energy), is_bound)


def vis_viva(r: float, a: float, mu: float) -> float:
    """
    Orbital speed from the vis-viva equation, v = sqrt(mu (2/r - 1/a)).

    Returns 0.0 where the radicand is negative (r beyond apoapsis).
    """
    if r <= 0.0 or a == 0.0:
        return 0.0
    radicand = mu * (2.0 / r - 1.0 / a)
    return float(np.sqrt(radicand)) if radicand > 0.0 else 0.0


def orbital_period(a: float, mu: float) -> Optional[float]:
    """Keplerian period 2 pi sqrt(a^3 / mu), None for a <= 0."""
    if a <= 0.0 or mu <= 0.0:
        return None
    return float(TWO_PI * np.sqrt(a ** 3 / mu))


def sphere_of_influence(r_body: float, m_body: float, m_central: float) -> float:
    """
    Laplace sphere-of-influence radius of a secondary body.

        r_SOI = r_body * (m_body / m_central)^(2/5)

    Parameters
    ----------
    r_body : float
        Distance between the secondary and the central body (m).
    m_body, m_central : float
        Masses (kg).

    Returns
    -------
    float
        SOI radius (m); 0.0 for a non-positive central mass.
    """
    if m_central <= 0.0 or m_body <= 0.0:
        return 0.0
    return r_body * (m_body / m_central) ** (2.0 / 5.0)


# =============================================================================
# DISPLAY FORMATTERS
# =============================================================================

def format_distance_km(meters: Optional[float]) -> str:
    if meters is None or not np.isfinite(meters):
        return "-"
    return f"{meters / 1000.0:.1f} km"


def format_period(seconds: Optional[float]) -> str:
    """Period as s / min / h / d depending on its size."""
    if seconds is None or not np.isfinite(seconds):
        return "-"
    if seconds < 60.0:
        return f"{seconds:.1f} s"
    minutes = seconds / 60.0
    if minutes < 60.0:
        return f"{minutes:.2f} min"
    hours = minutes / 60.0
    if hours < 24.0:
        return f"{hours:.3f} h"
    return f"{hours / 24.0:.3f} d"


def format_duration(seconds: float) -> str:
    """Duration as "4d 22h 10m", "3h 5m" or "12m"."""
    seconds = max(0.0, float(seconds))
    days = int(seconds // 86400)
    hours = int((seconds % 86400) // 3600)
    minutes = int((seconds % 3600) // 60)
    if days > 0:
        return f"{days}d {hours}h {minutes}m"
    if hours > 0:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"
