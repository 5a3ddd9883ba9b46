"""
===============================================================================
LUNAR TRANSFER SIM - Environment Models
===============================================================================
Atmosphere and aerodynamic drag for the spacecraft:

    - ExponentialAtmosphere     : Layered exponential density model
    - compute_drag_acceleration : Quadratic drag deceleration

Both are pure functions of state.  Vectors are inertial unless stated
otherwise; SI units throughout (m, s, kg).
===============================================================================
"""

import numpy as np
from numpy.typing import NDArray

from lunarsim.core.constants import (
    EARTH_SEA_LEVEL_DENSITY,
    EARTH_SCALE_HEIGHT,
    EARTH_ATMOSPHERE_BASE,
    EARTH_ATMOSPHERE_LIMIT,
    EARTH_RADIUS,
)

# Speeds below this are treated as at rest relative to the air.
_MIN_DRAG_SPEED = 1e-6


# ============================================================================
#  EXPONENTIAL ATMOSPHERE MODEL
# ============================================================================

class ExponentialAtmosphere:
    """
    Layered exponential atmosphere.

    The density profile has three layers:

        h <= h_base            : rho = rho_0                      (flat layer)
        h_base < h < h_cutoff  : rho = rho_0 * exp(-(h - h_base) / H)
        h >= h_cutoff          : rho = 0

    Altitudes below the surface fall in the flat layer, so density there is
    clamped to rho_0.  This is a near-surface ceiling, not a physical model
    of the interior.

    Parameters
    ----------
    rho_0 : float, optional
        Reference density at the base altitude in kg/m^3.
    scale_height : float, optional
        Atmospheric scale height in metres.
    base_altitude : float, optional
        Top of the flat near-surface layer (m).
    cutoff_altitude : float, optional
        Altitude at and above which density is zero (m).
    planet_radius : float, optional
        Mean radius of the body carrying the atmosphere (m).
    """

    def __init__(
        self,
        rho_0: float = EARTH_SEA_LEVEL_DENSITY,
        scale_height: float = EARTH_SCALE_HEIGHT,
        base_altitude: float = EARTH_ATMOSPHERE_BASE,
        cutoff_altitude: float = EARTH_ATMOSPHERE_LIMIT,
        planet_radius: float = EARTH_RADIUS,
    ) -> None:
        self.rho_0 = rho_0
        self.scale_height = scale_height
        self.base_altitude = base_altitude
        self.cutoff_altitude = cutoff_altitude
        self.planet_radius = planet_radius

    @classmethod
    def from_config(cls, config: dict, planet_radius: float = EARTH_RADIUS) -> "ExponentialAtmosphere":
        """Build from the ``atmosphere`` section of a scenario config."""
        return cls(
            rho_0=float(config.get("reference_density", EARTH_SEA_LEVEL_DENSITY)),
            scale_height=float(config.get("scale_height", EARTH_SCALE_HEIGHT)),
            base_altitude=float(config.get("base_altitude", EARTH_ATMOSPHERE_BASE)),
            cutoff_altitude=float(config.get("cutoff_altitude", EARTH_ATMOSPHERE_LIMIT)),
            planet_radius=planet_radius,
        )

    # ------------------------------------------------------------------ #
    def density_at_altitude(self, altitude: float) -> float:
        """
        Return atmospheric density at the given geometric altitude.

        Parameters
        ----------
        altitude : float
            Geometric altitude above the mean surface in metres.

        Returns
        -------
        float
            Atmospheric density in kg/m^3.
        """
        if altitude >= self.cutoff_altitude:
            return 0.0
        if altitude <= self.base_altitude:
            return float(self.rho_0)
        if self.scale_height <= 0.0:
            return 0.0

        density = self.rho_0 * np.exp(-(altitude - self.base_altitude) / self.scale_height)
        return float(density)

    # ------------------------------------------------------------------ #
    def altitude_from_position(self, position: NDArray, center: NDArray) -> float:
        """Altitude above the surface of a point, given the body center."""
        return float(np.linalg.norm(np.asarray(position) - center)) - self.planet_radius

    def density_at_position(self, position: NDArray, center: NDArray) -> float:
        """
        Convenience wrapper: altitude from an inertial position and the
        body's center, then density.
        """
        return self.density_at_altitude(self.altitude_from_position(position, center))

    def __repr__(self) -> str:
        return (
            f"ExponentialAtmosphere(rho_0={self.rho_0}, H={self.scale_height:.0f} m, "
            f"base={self.base_altitude:.0f} m, cutoff={self.cutoff_altitude:.0f} m)"
        )


# ============================================================================
#  DRAG
# ============================================================================

def compute_drag_acceleration(
    velocity: NDArray,
    density: float,
    cd: float,
    area: float,
    mass: float,
) -> NDArray:
    """
    Quadratic drag deceleration opposing the air-relative velocity.

        a_drag = -0.5 * (Cd * A / m) * rho * |v| * v

    Parameters
    ----------
    velocity : ndarray, shape (3,)
        Velocity relative to the atmosphere (m/s).
    density : float
        Local atmospheric density (kg/m^3).
    cd : float
        Drag coefficient.
    area : float
        Reference cross-section area (m^2).
    mass : float
        Vehicle mass (kg).

    Returns
    -------
    ndarray, shape (3,)
        Drag acceleration (m/s^2).  Zero when the density or mass is not
        positive or the speed is negligible.
    """
    if density <= 0.0 or mass <= 0.0:
        return np.zeros(3)

    v = np.asarray(velocity, dtype=np.float64)
    speed = np.linalg.norm(v)
    if speed < _MIN_DRAG_SPEED:
        return np.zeros(3)

    coeff = -0.5 * (cd * area / mass) * density * speed
    return coeff * v
