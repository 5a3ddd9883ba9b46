"""
===============================================================================
LUNAR TRANSFER SIM - RK4 Spacecraft Propagator
===============================================================================
Integrates one vehicle, massless relative to the primaries, under the
combined gravity of the primaries, atmospheric drag and engine thrust,
together with propellant depletion:

    dr/dt = v
    dv/dt = a(r, v, m) = a_grav + a_drag + T / m
    dm/dt = mdot(r, v, m) = -T / (Isp g0)   while thrusting, else 0

The coupled system is advanced with the classical 4th-order Runge-Kutta
method.  Primaries are held at their committed positions for the whole
tick (the gravity engine advances them first).

Mass is integrated explicitly and floored at the dry mass after every
sub-step; at engine cutoff this under-burns by at most one sub-step of
propellant.

Adaptive sub-stepping
---------------------
The sub-step count satisfies both

    dt / n <= max_dt              (hard ceiling)
    |a| dt / n <= dv_limit        (velocity change per sub-step)

where |a| is the non-gravitational (thrust plus drag) acceleration at
the start of the tick.  Burns and dense atmosphere get fine steps;
coasting keeps the ceiling.

References
----------
    [1] Montenbruck & Gill, "Satellite Orbits", Springer, 2000, Ch. 4.
===============================================================================
"""

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional

import numpy as np

from lunarsim.core.constants import PROPAGATOR_MAX_DT, PROPAGATOR_DV_LIMIT
from lunarsim.dynamics.bodies import Body
from lunarsim.dynamics.environment import compute_drag_acceleration
from lunarsim.dynamics.gravity_engine import gravity_acceleration_at_point
from lunarsim.dynamics.spacecraft import Spacecraft

logger = logging.getLogger(__name__)

AccelFunc = Callable[[np.ndarray, np.ndarray, float], np.ndarray]
MassDotFunc = Callable[[np.ndarray, np.ndarray, float], float]


# =============================================================================
# STATE AND RK4 STEP
# =============================================================================

@dataclass
class VehicleState:
    """Integrated vehicle state: position (m), velocity (m/s), mass (kg)."""
    r: np.ndarray
    v: np.ndarray
    m: float


def rk4_step(
    state: VehicleState,
    dt: float,
    accel_func: AccelFunc,
    mass_dot_func: MassDotFunc,
) -> VehicleState:
    """
    Advance (r, v, m) by one classical RK4 step.

        k1 = f(y_n)
        k2 = f(y_n + dt/2 * k1)
        k3 = f(y_n + dt/2 * k2)
        k4 = f(y_n + dt * k3)

        y_{n+1} = y_n + (dt/6) * (k1 + 2*k2 + 2*k3 + k4)

    Parameters
    ----------
    state : VehicleState
        Current state.
    dt : float
        Time step (s).
    accel_func : callable
        ``(r, v, m) -> acceleration`` (m/s^2).
    mass_dot_func : callable
        ``(r, v, m) -> dm/dt`` (kg/s).

    Returns
    -------
    VehicleState
        State at t + dt.
    """
    r, v, m = state.r, state.v, state.m

    # Stage 1
    kr1 = v
    kv1 = accel_func(r, v, m)
    km1 = mass_dot_func(r, v, m)

    # Stage 2
    r2 = r + 0.5 * dt * kr1
    v2 = v + 0.5 * dt * kv1
    m2 = m + 0.5 * dt * km1
    kr2 = v2
    kv2 = accel_func(r2, v2, m2)
    km2 = mass_dot_func(r2, v2, m2)

    # Stage 3
    r3 = r + 0.5 * dt * kr2
    v3 = v + 0.5 * dt * kv2
    m3 = m + 0.5 * dt * km2
    kr3 = v3
    kv3 = accel_func(r3, v3, m3)
    km3 = mass_dot_func(r3, v3, m3)

    # Stage 4
    r4 = r + dt * kr3
    v4 = v + dt * kv3
    m4 = m + dt * km3
    kr4 = v4
    kv4 = accel_func(r4, v4, m4)
    km4 = mass_dot_func(r4, v4, m4)

    # Weighted combination
    r_new = r + (dt / 6.0) * (kr1 + 2.0 * kr2 + 2.0 * kr3 + kr4)
    v_new = v + (dt / 6.0) * (kv1 + 2.0 * kv2 + 2.0 * kv3 + kv4)
    m_new = m + (dt / 6.0) * (km1 + 2.0 * km2 + 2.0 * km3 + km4)

    return VehicleState(r_new, v_new, float(m_new))


# =============================================================================
# SPACECRAFT PROPAGATOR
# =============================================================================

class SpacecraftPropagator:
    """
    RK4 propagator for a single spacecraft among fixed-per-tick primaries.

    Parameters
    ----------
    craft : Spacecraft
        Vehicle to advance (mutated in place).
    primaries : list of Body
        Attracting bodies.  Bodies carrying an ``atmosphere`` also produce
        drag on the vehicle.
    eps : float
        Gravity softening length (m).  Zero by default for the vehicle.
    max_dt : float
        Hard sub-step ceiling (s).
    dv_limit : float
        Maximum velocity change per sub-step (m/s).
    max_substeps : int
        Upper bound on sub-steps per call, bounding per-tick CPU cost.
    """

    def __init__(
        self,
        craft: Spacecraft,
        primaries: List[Body],
        eps: float = 0.0,
        max_dt: float = PROPAGATOR_MAX_DT,
        dv_limit: float = PROPAGATOR_DV_LIMIT,
        max_substeps: int = 20000,
    ) -> None:
        self.craft = craft
        self.primaries = list(primaries)
        self.eps = eps
        self.max_dt = max_dt
        self.dv_limit = dv_limit
        self.max_substeps = max_substeps
        self.last_substeps = 0

    # ------------------------------------------------------------------ #
    #  Force model
    # ------------------------------------------------------------------ #
    def dominant_body(self, position: Optional[np.ndarray] = None) -> Optional[Body]:
        """Primary with the largest gravitational pull at *position*."""
        if position is None:
            position = self.craft.position
        best, best_accel = None, -1.0
        for body in self.primaries:
            d2 = float(np.sum((body.position - position) ** 2)) + self.eps ** 2
            if d2 <= 0.0:
                continue
            accel = body.mu / d2
            if accel > best_accel:
                best, best_accel = body, accel
        return best

    def make_accel_func(self, reference: Optional[Body]) -> AccelFunc:
        """
        Build the total acceleration function a(r, v, m) for one tick.

        Thrust pointing is evaluated relative to *reference* so that
        prograde / radial / normal are meaningful in the local orbit.
        """
        craft = self.craft
        primaries = self.primaries
        eps = self.eps

        def accel(r: np.ndarray, v: np.ndarray, m: float) -> np.ndarray:
            a = gravity_acceleration_at_point(r, primaries, eps)

            for body in primaries:
                atmo = body.atmosphere
                if atmo is None:
                    continue
                rho = atmo.density_at_position(r, body.position)
                if rho > 0.0:
                    a = a + compute_drag_acceleration(
                        v - body.velocity, rho, craft.drag_cd, craft.drag_area, m
                    )

            if craft.is_thrusting and m > 0.0:
                if reference is not None:
                    r_rel, v_rel = r - reference.position, v - reference.velocity
                else:
                    r_rel, v_rel = r, v
                a = a + craft.thrust_force(r_rel, v_rel) / m

            return a

        return accel

    def make_mass_dot_func(self) -> MassDotFunc:
        craft = self.craft

        def mass_dot(r: np.ndarray, v: np.ndarray, m: float) -> float:
            if m <= craft.dry_mass:
                return 0.0
            return craft.mass_flow_rate()

        return mass_dot

    # ------------------------------------------------------------------ #
    #  Integration
    # ------------------------------------------------------------------ #
    def step(self, dt: float, reference: Optional[Body] = None) -> None:
        """Single RK4 step of *dt* seconds (no sub-stepping)."""
        if dt <= 0.0:
            return
        if reference is None:
            reference = self.dominant_body()
        accel = self.make_accel_func(reference)
        self._advance(dt, 1, accel, self.make_mass_dot_func())

    def substep_count(self, dt: float, accel_mag: float) -> int:
        """Sub-steps needed for *dt* given the current |a|."""
        if dt <= 0.0:
            return 0
        steps = 1
        if self.max_dt > 0.0:
            steps = max(steps, int(np.ceil(dt / self.max_dt)))
        if self.dv_limit > 0.0 and accel_mag > 0.0:
            steps = max(steps, int(np.ceil(accel_mag * dt / self.dv_limit)))
        return min(steps, self.max_substeps)

    def step_with_substeps(self, dt: float) -> int:
        """
        Advance the vehicle by *dt* with adaptive sub-stepping.

        Returns
        -------
        int
            Number of RK4 sub-steps taken.
        """
        if dt <= 0.0:
            return 0

        reference = self.dominant_body()
        accel = self.make_accel_func(reference)
        mass_dot = self.make_mass_dot_func()

        craft = self.craft
        a_now = accel(craft.position, craft.velocity, craft.mass)
        a_grav = gravity_acceleration_at_point(craft.position, self.primaries, self.eps)
        steps = self.substep_count(dt, float(np.linalg.norm(a_now - a_grav)))

        self._advance(dt, steps, accel, mass_dot)
        logger.debug("Propagator: dt=%.3f s in %d RK4 sub-steps", dt, steps)
        return steps

    def _advance(self, dt: float, steps: int, accel: AccelFunc, mass_dot: MassDotFunc) -> None:
        craft = self.craft
        h = dt / steps
        for _ in range(steps):
            state = VehicleState(craft.position, craft.velocity, craft.mass)
            nxt = rk4_step(state, h, accel, mass_dot)
            craft.set_state(nxt.r, nxt.v)
            if nxt.m != state.m:
                craft.set_mass(nxt.m)  # floors at dry mass, shuts engine when empty

        craft.acceleration = accel(craft.position, craft.velocity, craft.mass)
        self.last_substeps = steps
