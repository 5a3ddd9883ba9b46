"""
===============================================================================
LUNAR TRANSFER SIM - Gravity Engine Test Suite
===============================================================================
Tests for the Velocity Verlet N-body engine: momentum conservation,
circular-orbit stability, sub-step convergence, the dt <= 0 no-op, point
gravity, and kinematically driven bodies.
===============================================================================
"""

import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

import numpy as np
import pytest
from numpy.testing import assert_allclose

from lunarsim.core.constants import (
    EARTH_MASS, EARTH_RADIUS, EARTH_MU, MOON_MASS, MOON_SMA, TWO_PI,
)
from lunarsim.dynamics.bodies import Body, KinematicOrbit
from lunarsim.dynamics.gravity_engine import GravityEngine, gravity_acceleration_at_point
from lunarsim.simulation.scenario import build_bodies


# =============================================================================
# Fixtures
# =============================================================================

R_LEO = EARTH_RADIUS + 500e3


@pytest.fixture
def earth_and_satellite():
    """Earth at rest with a 1000 kg body on a circular 500 km orbit."""
    earth = Body("Earth", EARTH_MASS, EARTH_RADIUS)
    v_circ = np.sqrt(EARTH_MU / R_LEO)
    sat = Body("Sat", 1000.0, 1.0, position=[R_LEO, 0.0, 0.0], velocity=[0.0, v_circ, 0.0])
    return earth, sat


@pytest.fixture
def earth_moon():
    return build_bodies({})


# =============================================================================
# Conservation and stability
# =============================================================================

class TestMomentumConservation:
    """Symmetric pair forces conserve total linear momentum."""

    def test_earth_moon_momentum(self, earth_moon):
        earth, moon = earth_moon
        engine = GravityEngine([earth, moon])
        p0 = engine.total_momentum()
        scale = MOON_MASS * np.linalg.norm(moon.velocity)

        for _ in range(5):
            engine.step_with_substeps(86400.0, 60.0)

        assert_allclose(engine.total_momentum(), p0, atol=1e-9 * scale)

    def test_three_bodies_momentum(self, earth_moon, earth_and_satellite):
        earth, moon = earth_moon
        _, sat = earth_and_satellite
        sat.position = earth.position + sat.position
        sat.velocity = earth.velocity + sat.velocity
        engine = GravityEngine([earth, moon, sat])
        p0 = engine.total_momentum()
        scale = MOON_MASS * np.linalg.norm(moon.velocity)

        engine.step_with_substeps(20000.0, 10.0)

        assert_allclose(engine.total_momentum(), p0, atol=1e-9 * scale)

    def test_energy_drift_is_small(self, earth_moon):
        earth, moon = earth_moon
        engine = GravityEngine([earth, moon])
        e0 = engine.total_energy()
        engine.step_with_substeps(10 * 86400.0, 60.0)
        assert abs(engine.total_energy() - e0) < 1e-6 * abs(e0)


class TestCircularOrbitStability:
    """A body at v = sqrt(mu / r0) stays within +/-0.1% of r0."""

    def test_one_full_period(self, earth_and_satellite):
        earth, sat = earth_and_satellite
        engine = GravityEngine([earth, sat], eps=0.0)
        period = TWO_PI * np.sqrt(R_LEO ** 3 / EARTH_MU)

        n = 600
        radii = []
        for _ in range(n):
            engine.step(period / n)
            radii.append(np.linalg.norm(sat.position - earth.position))

        radii = np.array(radii)
        assert np.max(np.abs(radii / R_LEO - 1.0)) < 1e-3
        # Back near the start after one period
        assert np.linalg.norm(sat.position - earth.position - [R_LEO, 0.0, 0.0]) < 0.01 * R_LEO

    def test_softening_barely_changes_orbit(self, earth_and_satellite):
        earth, sat = earth_and_satellite
        engine = GravityEngine([earth, sat], eps=1000.0)
        engine.step_with_substeps(3000.0, 10.0)
        r = np.linalg.norm(sat.position - earth.position)
        assert r == pytest.approx(R_LEO, rel=1e-3)


class TestSubstepping:

    def test_substep_count(self, earth_and_satellite):
        engine = GravityEngine(list(earth_and_satellite))
        assert engine.step_with_substeps(60.0, 60.0) == 1
        assert engine.step_with_substeps(61.0, 60.0) == 2
        assert engine.step_with_substeps(600.0, 60.0) == 10

    def test_convergence_with_fine_substeps(self):
        def run(max_dt):
            earth = Body("Earth", EARTH_MASS, EARTH_RADIUS)
            v_circ = np.sqrt(EARTH_MU / R_LEO)
            sat = Body("Sat", 1000.0, 1.0, position=[R_LEO, 0.0, 0.0], velocity=[0.0, v_circ, 0.0])
            engine = GravityEngine([earth, sat], eps=0.0)
            steps = engine.step_with_substeps(60.0, max_dt)
            return sat.position.copy(), sat.velocity.copy(), steps

        pos_coarse, vel_coarse, n_coarse = run(60.0)
        pos_fine, vel_fine, n_fine = run(0.06)

        assert n_coarse == 1
        assert n_fine == 1000
        assert_allclose(pos_coarse, pos_fine, atol=1e3)
        assert_allclose(vel_coarse, vel_fine, atol=1.0)

    @pytest.mark.parametrize("dt", [0.0, -10.0])
    def test_non_positive_dt_is_noop(self, earth_and_satellite, dt):
        earth, sat = earth_and_satellite
        engine = GravityEngine([earth, sat])
        pos0 = sat.position.copy()
        vel0 = sat.velocity.copy()

        engine.step(dt)
        assert engine.step_with_substeps(dt) == 0

        assert_allclose(sat.position, pos0)
        assert_allclose(sat.velocity, vel0)
        assert engine.elapsed_time == 0.0

    def test_elapsed_time_accumulates(self, earth_and_satellite):
        engine = GravityEngine(list(earth_and_satellite))
        engine.step_with_substeps(125.0, 60.0)
        assert engine.elapsed_time == pytest.approx(125.0)


# =============================================================================
# Point gravity and kinematic bodies
# =============================================================================

class TestPointGravity:

    def test_magnitude_and_direction(self):
        earth = Body("Earth", EARTH_MASS, EARTH_RADIUS)
        a = gravity_acceleration_at_point(np.array([R_LEO, 0.0, 0.0]), [earth])
        assert_allclose(a, [-EARTH_MU / R_LEO ** 2, 0.0, 0.0], rtol=1e-12)

    def test_coincident_point_without_softening(self):
        earth = Body("Earth", EARTH_MASS, EARTH_RADIUS)
        a = gravity_acceleration_at_point(np.zeros(3), [earth])
        assert_allclose(a, np.zeros(3))

    def test_superposition(self, earth_moon):
        earth, moon = earth_moon
        point = np.array([0.0, 1e8, 0.0])
        both = gravity_acceleration_at_point(point, [earth, moon])
        separate = (
            gravity_acceleration_at_point(point, [earth])
            + gravity_acceleration_at_point(point, [moon])
        )
        assert_allclose(both, separate, rtol=1e-12)


class TestKinematicOrbit:

    def test_moon_follows_prescribed_circle(self):
        earth, moon = build_bodies({"moon": {"kinematic": True}})
        assert moon.is_kinematic
        engine = GravityEngine([earth, moon])
        period = moon.motion.period

        engine.step_with_substeps(period / 4.0, 60.0)

        rel = moon.position - earth.position
        assert np.linalg.norm(rel) == pytest.approx(MOON_SMA, rel=1e-9)
        assert_allclose(rel, [0.0, MOON_SMA, 0.0], atol=1e-6 * MOON_SMA)

    def test_kinematic_body_still_attracts(self):
        earth, moon = build_bodies({"moon": {"kinematic": True}})
        engine = GravityEngine([earth, moon])
        engine.step(60.0)
        # Earth is pulled toward the Moon (+X at t=0)
        assert earth.velocity[0] > 0.0

    def test_orbit_state_velocity(self):
        center = Body("Center", EARTH_MASS, EARTH_RADIUS)
        orbit = KinematicOrbit(center=center, radius=1e8, period=1e6)
        r, v = orbit.state()
        assert_allclose(r, [1e8, 0.0, 0.0])
        assert_allclose(v, [0.0, 1e8 * TWO_PI / 1e6, 0.0])
