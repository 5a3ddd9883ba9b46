"""
===============================================================================
LUNAR TRANSFER SIM - N-Body Gravity Engine
===============================================================================
Mutual gravity among a small fixed set of massive bodies (Earth, Moon),
integrated with Velocity Verlet:

    a0 = a(r0)
    r1 = r0 + v0 dt + 0.5 a0 dt^2
    a1 = a(r1)
    v1 = v0 + 0.5 (a0 + a1) dt

Pairwise accelerations use Plummer-softened Newtonian gravity

    a_i += G m_j (r_j - r_i) / (|r_j - r_i|^2 + eps^2)^(3/2)

with each unordered pair evaluated once and applied to both bodies with
opposite sign (Newton's third law), so total linear momentum is conserved
to round-off.

Bodies whose motion is a KinematicOrbit are moved along their prescribed
orbit instead; they still attract the integrated bodies.

The host loop may hand in large, variable dt (frame time multiplied by a
time-acceleration factor in the thousands), so ``step_with_substeps``
splits dt into equal sub-steps no longer than ``max_dt``.
===============================================================================
"""

import logging
from typing import List, Optional, Sequence

import numpy as np

from lunarsim.core.constants import (
    GRAVITATIONAL_CONSTANT,
    GRAVITY_SOFTENING,
    GRAVITY_MAX_DT,
)
from lunarsim.dynamics.bodies import Body, KinematicOrbit

logger = logging.getLogger(__name__)


# =============================================================================
# POINT GRAVITY
# =============================================================================

def gravity_acceleration_at_point(
    point: np.ndarray,
    primaries: Sequence[Body],
    eps: float = 0.0,
) -> np.ndarray:
    """
    Gravitational acceleration at an arbitrary point due to *primaries*.

        a = sum_k G m_k (r_k - r) / (|r_k - r|^2 + eps^2)^(3/2)

    Parameters
    ----------
    point : np.ndarray
        Inertial position (m).
    primaries : sequence of Body
        Attracting bodies (their committed positions are used).
    eps : float
        Softening length (m).  Zero reproduces point-mass gravity.

    Returns
    -------
    np.ndarray
        Acceleration (m/s^2).  Contributions with zero separation and no
        softening are skipped.
    """
    accel = np.zeros(3)
    for body in primaries:
        d = body.position - point
        r2 = float(np.dot(d, d)) + eps * eps
        if r2 <= 0.0:
            continue
        inv_r3 = r2 ** -1.5
        accel += GRAVITATIONAL_CONSTANT * body.mass * inv_r3 * d
    return accel


# =============================================================================
# GRAVITY ENGINE
# =============================================================================

class GravityEngine:
    """
    Velocity Verlet integrator for mutually gravitating bodies.

    Parameters
    ----------
    bodies : list of Body
        Bodies to advance.  Order is preserved in every returned list.
    eps : float
        Softening length (m).  Non-zero by default.
    """

    def __init__(self, bodies: List[Body], eps: float = GRAVITY_SOFTENING) -> None:
        self.bodies = list(bodies)
        self.eps = eps
        self.elapsed_time = 0.0

    # ------------------------------------------------------------------ #
    #  Accelerations
    # ------------------------------------------------------------------ #
    def compute_accelerations(self, positions: Sequence[np.ndarray]) -> List[np.ndarray]:
        """
        Pairwise softened accelerations at the given positions.

        Each unordered pair (i, j) is evaluated once; body i receives
        +G m_j f r_ij and body j receives -G m_i f r_ij.  The per-body
        results accumulate into private buffers so the bodies themselves
        are not touched.
        """
        n = len(self.bodies)
        accs = [np.zeros(3) for _ in range(n)]
        eps2 = self.eps * self.eps

        for i in range(n):
            for j in range(i + 1, n):
                r_ij = positions[j] - positions[i]
                dist2 = float(np.dot(r_ij, r_ij)) + eps2
                if dist2 <= 0.0:
                    continue
                inv_dist3 = dist2 ** -1.5
                factor = GRAVITATIONAL_CONSTANT * inv_dist3
                accs[i] += factor * self.bodies[j].mass * r_ij
                accs[j] -= factor * self.bodies[i].mass * r_ij

        return accs

    # ------------------------------------------------------------------ #
    #  Integration
    # ------------------------------------------------------------------ #
    def step(self, dt: float) -> None:
        """
        Advance all bodies by one Velocity Verlet step of *dt* seconds.

        Zero or negative dt is a no-op.
        """
        n = len(self.bodies)
        if n == 0 or dt <= 0.0:
            return

        pos0 = [b.position.copy() for b in self.bodies]
        a0 = self.compute_accelerations(pos0)

        # Predicted positions; kinematic bodies are placed after their centers
        pos1 = [None] * n
        for i, body in enumerate(self.bodies):
            if not body.is_kinematic:
                pos1[i] = pos0[i] + body.velocity * dt + 0.5 * a0[i] * dt * dt

        kinematic_vel = {}
        for i, body in enumerate(self.bodies):
            if body.is_kinematic:
                pos1[i], kinematic_vel[i] = self._kinematic_state(body, dt, pos1)

        a1 = self.compute_accelerations(pos1)

        for i, body in enumerate(self.bodies):
            if body.is_kinematic:
                orbit = body.motion
                offset = pos1[i] - self._center_position(orbit, pos1)
                body.velocity = kinematic_vel[i]
                body.acceleration = -(orbit.angular_rate ** 2) * offset
            else:
                body.velocity = body.velocity + 0.5 * (a0[i] + a1[i]) * dt
                body.acceleration = a1[i]
            body.position = pos1[i]

        self.elapsed_time += dt

    def step_with_substeps(self, dt: float, max_dt: float = GRAVITY_MAX_DT) -> int:
        """
        Advance by *dt* using ceil(dt / max_dt) equal sub-steps.

        Returns
        -------
        int
            Number of sub-steps taken (0 for dt <= 0).
        """
        if dt <= 0.0:
            return 0
        if max_dt <= 0.0:
            max_dt = dt
        steps = max(1, int(np.ceil(dt / max_dt)))
        small_dt = dt / steps
        for _ in range(steps):
            self.step(small_dt)
        logger.debug("Gravity engine: dt=%.3f s in %d sub-steps", dt, steps)
        return steps

    # ------------------------------------------------------------------ #
    #  Kinematic helpers
    # ------------------------------------------------------------------ #
    def _center_position(self, orbit: KinematicOrbit, pos1: List[Optional[np.ndarray]]) -> np.ndarray:
        for k, other in enumerate(self.bodies):
            if other is orbit.center and pos1[k] is not None:
                return pos1[k]
        return orbit.center.position

    def _kinematic_state(self, body: Body, dt: float, pos1: List[Optional[np.ndarray]]):
        orbit = body.motion
        orbit.advance(dt)
        r_orbit, v_orbit = orbit.state()
        # orbit.state() is relative to the committed center; re-anchor on the
        # center's predicted position when the center is integrated here
        center_now = self._center_position(orbit, pos1)
        r_new = r_orbit - orbit.center.position + center_now
        return r_new, v_orbit

    # ------------------------------------------------------------------ #
    #  Diagnostics
    # ------------------------------------------------------------------ #
    def total_momentum(self) -> np.ndarray:
        """Total linear momentum sum(m_i v_i) (kg m/s)."""
        p = np.zeros(3)
        for body in self.bodies:
            p += body.mass * body.velocity
        return p

    def total_energy(self) -> float:
        """Kinetic plus softened potential energy (J)."""
        kinetic = sum(0.5 * b.mass * float(np.dot(b.velocity, b.velocity)) for b in self.bodies)
        potential = 0.0
        n = len(self.bodies)
        for i in range(n):
            for j in range(i + 1, n):
                d = np.linalg.norm(self.bodies[j].position - self.bodies[i].position)
                potential -= (
                    GRAVITATIONAL_CONSTANT * self.bodies[i].mass * self.bodies[j].mass
                    / np.sqrt(d * d + self.eps * self.eps)
                )
        return kinetic + potential

    def __repr__(self) -> str:
        names = ", ".join(b.name for b in self.bodies)
        return f"GravityEngine(bodies=[{names}], eps={self.eps:.1f} m)"
