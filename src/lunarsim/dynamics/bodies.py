"""
===============================================================================
LUNAR TRANSFER SIM - Gravitating Bodies
===============================================================================
A single ``Body`` data type represents every massive primary (Earth, Moon).
How a body moves is carried as a tagged variant instead of a subclass:

    GravityIntegrated -- state is advanced by the N-body gravity engine
    KinematicOrbit    -- state follows a prescribed circular orbit about a
                         center body; the body still attracts others

Bodies hold state only.  Position, velocity and acceleration are mutated
exclusively by the gravity engine, once per tick.
===============================================================================
"""

from dataclasses import dataclass, field
from typing import Optional, Tuple, Union

import numpy as np

from lunarsim.core.constants import GRAVITATIONAL_CONSTANT, TWO_PI


# =============================================================================
# MOTION VARIANTS
# =============================================================================

@dataclass
class GravityIntegrated:
    """Marker variant: the body is advanced by mutual gravity."""


@dataclass
class KinematicOrbit:
    """
    Prescribed circular orbit about a center body.

    The orbit lies in the XY plane tilted about the X axis by
    *inclination*.  The angular position advances uniformly at
    2*pi / period.

    Attributes
    ----------
    center : Body
        Body being orbited.  Its current state is read every step so the
        orbit follows the center if the center itself moves.
    radius : float
        Orbit radius (m).
    period : float
        Orbit period (s).
    inclination : float
        Tilt of the orbit plane about +X (rad).
    angle : float
        Current angular position along the orbit (rad).
    """
    center: "Body"
    radius: float
    period: float
    inclination: float = 0.0
    angle: float = 0.0

    @property
    def angular_rate(self) -> float:
        """Mean motion (rad/s)."""
        if self.period <= 0.0:
            return 0.0
        return TWO_PI / self.period

    def advance(self, dt: float) -> None:
        """Move the angular position forward by *dt* seconds."""
        self.angle = (self.angle + self.angular_rate * dt) % TWO_PI

    def state(self) -> Tuple[np.ndarray, np.ndarray]:
        """Inertial (position, velocity) at the current angle."""
        c, s = np.cos(self.angle), np.sin(self.angle)
        ci, si = np.cos(self.inclination), np.sin(self.inclination)
        r_local = self.radius * np.array([c, s * ci, s * si])
        v_local = self.radius * self.angular_rate * np.array([-s, c * ci, c * si])
        return (
            self.center.position + r_local,
            self.center.velocity + v_local,
        )


Motion = Union[GravityIntegrated, KinematicOrbit]


# =============================================================================
# BODY
# =============================================================================

@dataclass
class Body:
    """
    A massive primary.

    Attributes
    ----------
    name : str
        Display / lookup name ("Earth", "Moon").
    mass : float
        Mass (kg).
    radius : float
        Mean radius (m).
    orbit_period : float
        Period of the body's orbit about its primary (s).  Used by the
        mission sequencer for transfer phasing.
    position, velocity, acceleration : np.ndarray
        Inertial state (m, m/s, m/s^2).  ``acceleration`` is the last value
        computed by the gravity engine.
    motion : GravityIntegrated or KinematicOrbit
        How the gravity engine advances this body.
    atmosphere : ExponentialAtmosphere, optional
        Atmosphere attached to the body; None for airless bodies.
    """
    name: str
    mass: float
    radius: float
    orbit_period: float = 0.0
    position: np.ndarray = field(default_factory=lambda: np.zeros(3))
    velocity: np.ndarray = field(default_factory=lambda: np.zeros(3))
    acceleration: np.ndarray = field(default_factory=lambda: np.zeros(3))
    motion: Motion = field(default_factory=GravityIntegrated)
    atmosphere: Optional[object] = None

    def __post_init__(self):
        self.position = np.asarray(self.position, dtype=np.float64).copy()
        self.velocity = np.asarray(self.velocity, dtype=np.float64).copy()
        self.acceleration = np.asarray(self.acceleration, dtype=np.float64).copy()

    @property
    def mu(self) -> float:
        """Gravitational parameter G*M (m^3/s^2)."""
        return GRAVITATIONAL_CONSTANT * self.mass

    @property
    def is_kinematic(self) -> bool:
        return isinstance(self.motion, KinematicOrbit)

    def set_state(self, position: np.ndarray, velocity: np.ndarray) -> None:
        """Overwrite the inertial state (scenario setup)."""
        self.position = np.asarray(position, dtype=np.float64).copy()
        self.velocity = np.asarray(velocity, dtype=np.float64).copy()

    def distance_to(self, point: np.ndarray) -> float:
        return float(np.linalg.norm(np.asarray(point) - self.position))

    def __repr__(self) -> str:
        kind = "kinematic" if self.is_kinematic else "integrated"
        return (
            f"Body({self.name}, mass={self.mass:.4e} kg, "
            f"radius={self.radius:.0f} m, {kind})"
        )
