"""
===============================================================================
LUNAR TRANSFER SIM - Spacecraft Model
===============================================================================
State and propulsion model of the vehicle:

    - Inertial position / velocity / last acceleration
    - Dry mass, remaining propellant, total mass
    - Engine: specific impulse, maximum thrust, throttle, on/off, thrust mode
    - Impulsive burns sized with the Tsiolkovsky rocket equation
    - Directional burn helpers (prograde, retrograde, radial, normal)

Invariant: ``fuel_mass >= 0``.  Whenever the propellant reaches zero the
engine is forced off and the throttle to zero.

Conventions
-----------
    - Directions are computed from a body-relative state (r_rel, v_rel);
      the angular momentum h = r_rel x v_rel defines the orbit normal.
    - SI units throughout (m, s, kg).

Usage
-----
    config = yaml.safe_load(open("config/scenario.yaml"))
    sc = Spacecraft(config)
    sc.burn_prograde(3100.0, reference=earth)
===============================================================================
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Tuple

import numpy as np
from numpy.typing import NDArray

from lunarsim.core.constants import (
    G0,
    SPACECRAFT_DRY_MASS,
    SPACECRAFT_FUEL_MASS,
    SPACECRAFT_ISP,
    SPACECRAFT_MAX_THRUST,
    SPACECRAFT_DRAG_CD,
    SPACECRAFT_DRAG_AREA,
)
from lunarsim.core.frames import ZERO_LENGTH, unit_vector
from lunarsim.dynamics.bodies import Body

logger = logging.getLogger(__name__)


# ============================================================================
#  THRUST MODE
# ============================================================================

class ThrustMode(str, Enum):
    """Closed set of thrust pointing modes."""
    PROGRADE = "prograde"
    RETROGRADE = "retrograde"
    RADIAL_OUT = "radial_out"
    RADIAL_IN = "radial_in"
    NORMAL_PLUS = "normal_plus"
    NORMAL_MINUS = "normal_minus"
    CUSTOM = "custom"


def direction_for(
    mode: ThrustMode,
    r: NDArray,
    v: NDArray,
    custom_dir: Optional[NDArray] = None,
) -> NDArray:
    """
    Unit thrust direction for a pointing mode.

    Parameters
    ----------
    mode : ThrustMode
        Pointing mode.
    r, v : ndarray, shape (3,)
        Position and velocity relative to the reference body.
    custom_dir : ndarray, optional
        World-frame direction used by ``ThrustMode.CUSTOM``.  When absent
        the custom mode falls back to prograde.

    Returns
    -------
    ndarray, shape (3,)
        Unit vector, or zeros if the direction is undefined (for example
        prograde at zero velocity).
    """
    mode = ThrustMode(mode)
    if mode is ThrustMode.PROGRADE:
        return unit_vector(v)
    if mode is ThrustMode.RETROGRADE:
        return -unit_vector(v)
    if mode is ThrustMode.RADIAL_OUT:
        return unit_vector(r)
    if mode is ThrustMode.RADIAL_IN:
        return -unit_vector(r)
    if mode is ThrustMode.NORMAL_PLUS:
        return unit_vector(np.cross(r, v))
    if mode is ThrustMode.NORMAL_MINUS:
        return -unit_vector(np.cross(r, v))
    # CUSTOM
    if custom_dir is not None and np.linalg.norm(custom_dir) > ZERO_LENGTH:
        return unit_vector(custom_dir)
    return unit_vector(v)


# ============================================================================
#  BURN RECORD
# ============================================================================

@dataclass
class BurnResult:
    """
    Outcome of an impulsive burn.

    Attributes
    ----------
    requested_dv : float
        Magnitude asked for (m/s).
    effective_dv : float
        Magnitude actually applied (m/s); lower than requested when the
        propellant ran out.
    propellant_used : float
        Propellant consumed (kg).
    direction : np.ndarray
        World-frame unit direction of the burn.
    fuel_limited : bool
        True when the burn was capped by available propellant.
    """
    requested_dv: float
    effective_dv: float
    propellant_used: float
    direction: np.ndarray
    fuel_limited: bool = False

    @property
    def applied(self) -> bool:
        return self.effective_dv > 0.0


def _no_burn(requested: float) -> BurnResult:
    return BurnResult(requested, 0.0, 0.0, np.zeros(3), False)


# ============================================================================
#  ROCKET EQUATION
# ============================================================================

def propellant_for_delta_v(dv: float, isp: float, m0: float) -> float:
    """
    Propellant needed to deliver *dv* starting from wet mass *m0*.

        dm = m0 (1 - exp(-dv / (Isp g0)))

    Raises
    ------
    ValueError
        If isp or m0 is not positive.
    """
    if isp <= 0.0:
        raise ValueError(f"Isp must be positive, got {isp}")
    if m0 <= 0.0:
        raise ValueError(f"Initial mass must be positive, got {m0}")
    if dv <= 0.0:
        return 0.0
    return float(m0 * (1.0 - np.exp(-dv / (isp * G0))))


def delta_v_for_propellant(dm: float, isp: float, m0: float) -> float:
    """
    Delta-V delivered by burning *dm* from wet mass *m0*.

        dv = Isp g0 ln(m0 / (m0 - dm))
    """
    if dm <= 0.0 or m0 <= 0.0 or dm >= m0:
        return 0.0
    return float(isp * G0 * np.log(m0 / (m0 - dm)))


# ============================================================================
#  SPACECRAFT CLASS
# ============================================================================

class Spacecraft:
    """
    Full translational and propulsion state of the vehicle.

    The constructor accepts a *config* dictionary (typically loaded from a
    YAML file) with the following expected keys::

        spacecraft:
            dry_mass: 13000.0        # kg
            fuel_mass: 120000.0      # kg
            isp: 320.0               # s
            max_thrust: 1.0e6        # N
            drag_cd: 2.2
            drag_area: 10.0          # m^2

    Missing keys fall back to sensible defaults.

    Parameters
    ----------
    config : dict, optional
        Configuration dictionary (see format above).

    Raises
    ------
    ValueError
        If a mass is negative or the specific impulse is not positive.
    """

    # ------------------------------------------------------------------ #
    #  Construction
    # ------------------------------------------------------------------ #
    def __init__(self, config: Optional[Dict[str, Any]] = None) -> None:
        config = config or {}
        sc = config.get("spacecraft", config)  # allow top-level or nested

        # --- Mass ---
        self.dry_mass: float = float(sc.get("dry_mass", SPACECRAFT_DRY_MASS))
        self.fuel_mass: float = float(sc.get("fuel_mass", SPACECRAFT_FUEL_MASS))
        if self.dry_mass < 0.0 or self.fuel_mass < 0.0:
            raise ValueError(
                f"Spacecraft masses must be non-negative "
                f"(dry={self.dry_mass}, fuel={self.fuel_mass})"
            )

        # --- Engine ---
        self.isp: float = float(sc.get("isp", SPACECRAFT_ISP))
        if self.isp <= 0.0:
            raise ValueError(f"Isp must be positive, got {self.isp}")
        self.max_thrust: float = float(sc.get("max_thrust", SPACECRAFT_MAX_THRUST))
        self.throttle: float = 0.0
        self.engine_on: bool = False
        self.thrust_mode: ThrustMode = ThrustMode(sc.get("thrust_mode", "prograde"))
        self.thrust_direction: Optional[NDArray] = None  # world frame, CUSTOM mode

        # --- Aerodynamics ---
        self.drag_cd: float = float(sc.get("drag_cd", SPACECRAFT_DRAG_CD))
        self.drag_area: float = float(sc.get("drag_area", SPACECRAFT_DRAG_AREA))

        # --- Inertial state (SI) ---
        self.position: NDArray = np.zeros(3)
        self.velocity: NDArray = np.zeros(3)
        self.acceleration: NDArray = np.zeros(3)  # telemetry only

        self.total_delta_v: float = 0.0

    # ================================================================== #
    #  State
    # ================================================================== #

    def set_state(self, position: NDArray, velocity: NDArray) -> None:
        """Set the inertial position (m) and velocity (m/s)."""
        self.position = np.asarray(position, dtype=np.float64).copy()
        self.velocity = np.asarray(velocity, dtype=np.float64).copy()

    def relative_to(self, body: Body) -> Tuple[NDArray, NDArray]:
        """(r_rel, v_rel) with respect to *body*."""
        return self.position - body.position, self.velocity - body.velocity

    # ================================================================== #
    #  Mass properties
    # ================================================================== #

    @property
    def mass(self) -> float:
        """Total spacecraft mass, dry + remaining propellant (kg)."""
        return self.dry_mass + self.fuel_mass

    # ------------------------------------------------------------------ #
    def consume_propellant(self, dm: float) -> float:
        """
        Remove *dm* kg of propellant.  Clamps to zero -- never goes negative.

        Parameters
        ----------
        dm : float
            Mass of propellant to consume (kg).  Must be >= 0.

        Returns
        -------
        float
            Actual mass consumed (may be less than *dm* if the tank runs dry).

        Raises
        ------
        ValueError
            If dm < 0.
        """
        if dm < 0.0:
            raise ValueError("dm must be non-negative.")

        actual = min(dm, self.fuel_mass)
        self.fuel_mass -= actual
        self.enforce_fuel_invariant()
        return actual

    def set_mass(self, mass: float) -> None:
        """
        Set total mass from an integrated value, flooring at the dry mass.
        Used by the propagator after each RK4 sub-step.
        """
        self.fuel_mass = max(0.0, float(mass) - self.dry_mass)
        self.enforce_fuel_invariant()

    def enforce_fuel_invariant(self) -> None:
        """Clamp propellant at zero and shut the engine down when empty."""
        if self.fuel_mass <= 0.0:
            if self.engine_on:
                logger.warning("Propellant exhausted: engine shut down.")
            self.fuel_mass = 0.0
            self.engine_on = False
            self.throttle = 0.0

    # ================================================================== #
    #  Engine controls
    # ================================================================== #

    def set_throttle(self, throttle: float) -> None:
        """Set throttle, clamped to [0, 1]."""
        self.throttle = float(min(1.0, max(0.0, throttle)))
        self.enforce_fuel_invariant()

    def set_engine(self, on: bool) -> None:
        """Switch the engine; it cannot be lit with an empty tank."""
        self.engine_on = bool(on)
        self.enforce_fuel_invariant()

    def set_thrust_mode(self, mode, direction: Optional[NDArray] = None) -> None:
        self.thrust_mode = ThrustMode(mode)
        if direction is not None:
            self.thrust_direction = np.asarray(direction, dtype=np.float64)

    @property
    def is_thrusting(self) -> bool:
        return (
            self.engine_on
            and self.throttle > 0.0
            and self.max_thrust > 0.0
            and self.fuel_mass > 0.0
        )

    def thrust_force(self, r_rel: NDArray, v_rel: NDArray) -> NDArray:
        """
        Thrust force vector in the world frame (N) for the current mode,
        given the state relative to the reference body.
        """
        if not self.is_thrusting:
            return np.zeros(3)
        direction = direction_for(self.thrust_mode, r_rel, v_rel, self.thrust_direction)
        return self.max_thrust * self.throttle * direction

    def mass_flow_rate(self) -> float:
        """Propellant mass flow dm/dt (kg/s, non-positive)."""
        if not self.is_thrusting or self.isp <= 0.0:
            return 0.0
        return -self.max_thrust * self.throttle / (self.isp * G0)

    # ================================================================== #
    #  Impulsive burns
    # ================================================================== #

    def apply_delta_v(self, dv_world: NDArray, isp_override: Optional[float] = None) -> BurnResult:
        """
        Apply an instantaneous velocity change in the world frame.

        The propellant needed follows from the Tsiolkovsky equation:

            dv = Isp g0 ln(m0 / m1)
            dm_needed = m0 (1 - exp(-dv / (Isp g0)))

        If the tank holds less than dm_needed the burn is capped at the
        remaining propellant and the achievable

            dv_eff = Isp g0 ln(m0 / (m0 - dm))

        is applied along the requested direction instead.  Nothing carries
        over to later ticks.

        Parameters
        ----------
        dv_world : ndarray, shape (3,)
            Requested velocity change (m/s).
        isp_override : float, optional
            Specific impulse to use instead of the engine's (s).

        Returns
        -------
        BurnResult
            What was actually applied.  A no-op result is returned for a
            zero request, zero mass or an empty tank.
        """
        dv_world = np.asarray(dv_world, dtype=np.float64)
        dv = float(np.linalg.norm(dv_world))
        if dv <= 0.0:
            return _no_burn(dv)

        isp = isp_override if isp_override is not None else self.isp
        m0 = self.mass
        if m0 <= 0.0 or self.fuel_mass <= 0.0 or isp <= 0.0:
            return _no_burn(dv)

        dm_needed = propellant_for_delta_v(dv, isp, m0)
        dm = min(self.fuel_mass, dm_needed)
        if dm <= 0.0:
            return _no_burn(dv)

        fuel_limited = dm < dm_needed
        if fuel_limited:
            dv_eff = delta_v_for_propellant(dm, isp, m0)
            logger.warning(
                "Fuel-limited burn: requested %.1f m/s, achievable %.1f m/s",
                dv, dv_eff,
            )
        else:
            dv_eff = dv

        direction = dv_world / dv
        self.velocity = self.velocity + direction * dv_eff
        self.fuel_mass -= dm
        self.total_delta_v += dv_eff
        self.enforce_fuel_invariant()

        logger.debug(
            "Impulsive burn: dv=%.2f m/s, propellant=%.1f kg, remaining=%.1f kg",
            dv_eff, dm, self.fuel_mass,
        )
        return BurnResult(dv, float(dv_eff), float(dm), direction, fuel_limited)

    # ------------------------------------------------------------------ #
    #  Directional helpers
    # ------------------------------------------------------------------ #
    def _relative_vectors(self, reference: Optional[Body]) -> Tuple[NDArray, NDArray]:
        if reference is None:
            return self.position, self.velocity
        return self.relative_to(reference)

    def burn(self, mode, dv: float, reference=None, custom_dir: Optional[NDArray] = None) -> BurnResult:
        """
        Impulsive burn of magnitude *dv* along a thrust mode direction.

        The direction is evaluated in the frame of *reference* (a Body);
        with no reference the inertial state is used.
        """
        if dv <= 0.0:
            return _no_burn(dv)
        r, v = self._relative_vectors(reference)
        direction = direction_for(mode, r, v, custom_dir)
        if np.linalg.norm(direction) < ZERO_LENGTH:
            logger.debug("Burn %s skipped: direction undefined", ThrustMode(mode).value)
            return _no_burn(dv)
        return self.apply_delta_v(direction * dv)

    def burn_prograde(self, dv: float, reference=None) -> BurnResult:
        """Burn along the (reference-relative) velocity by *dv* (m/s)."""
        return self.burn(ThrustMode.PROGRADE, dv, reference)

    def burn_retrograde(self, dv: float, reference=None) -> BurnResult:
        """Burn against the (reference-relative) velocity by *dv* (m/s)."""
        return self.burn(ThrustMode.RETROGRADE, dv, reference)

    def burn_radial_out(self, dv: float, reference=None) -> BurnResult:
        return self.burn(ThrustMode.RADIAL_OUT, dv, reference)

    def burn_radial_in(self, dv: float, reference=None) -> BurnResult:
        return self.burn(ThrustMode.RADIAL_IN, dv, reference)

    def burn_normal(self, dv: float, reference=None) -> BurnResult:
        return self.burn(ThrustMode.NORMAL_PLUS, dv, reference)

    def burn_anti_normal(self, dv: float, reference=None) -> BurnResult:
        return self.burn(ThrustMode.NORMAL_MINUS, dv, reference)

    # ================================================================== #
    #  Representation
    # ================================================================== #

    def __repr__(self) -> str:
        return (
            f"Spacecraft(mass={self.mass:.1f} kg, "
            f"fuel={self.fuel_mass:.1f} kg, "
            f"engine={'on' if self.engine_on else 'off'}, "
            f"throttle={self.throttle:.2f}, mode={self.thrust_mode.value})"
        )
