"""
===============================================================================
LUNAR TRANSFER SIM - Orbital Elements Test Suite
===============================================================================
Tests for state-to-elements conversion (circular, elliptical, hyperbolic
and degenerate states), vis-viva, Keplerian period, sphere of influence,
and the display formatters.
===============================================================================
"""

import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

import numpy as np
import pytest

from lunarsim.core.constants import EARTH_MU, EARTH_MASS, MOON_MASS, MOON_SMA, TWO_PI
from lunarsim.dynamics.orbital_elements import (
    compute_orbit_elements,
    vis_viva,
    orbital_period,
    sphere_of_influence,
    format_distance_km,
    format_period,
    format_duration,
)


class TestComputeOrbitElements:

    def test_circular(self):
        r0 = 7.0e6
        el = compute_orbit_elements(np.array([r0, 0.0, 0.0]),
                                    np.array([0.0, np.sqrt(EARTH_MU / r0), 0.0]), EARTH_MU)
        assert el.is_bound
        assert el.ecc == pytest.approx(0.0, abs=1e-12)
        assert el.sma == pytest.approx(r0, rel=1e-9)
        assert el.rp == pytest.approx(r0, rel=1e-9)
        assert el.ra == pytest.approx(r0, rel=1e-9)
        assert el.period == pytest.approx(TWO_PI * np.sqrt(r0 ** 3 / EARTH_MU), rel=1e-9)
        assert el.energy == pytest.approx(-EARTH_MU / (2.0 * r0), rel=1e-9)

    def test_ellipse_from_periapsis(self):
        rp, ra = 7.0e6, 4.2e7
        a = 0.5 * (rp + ra)
        vp = vis_viva(rp, a, EARTH_MU)
        el = compute_orbit_elements(np.array([0.0, rp, 0.0]), np.array([-vp, 0.0, 0.0]), EARTH_MU)

        assert el.is_bound
        assert el.ecc == pytest.approx((ra - rp) / (ra + rp), rel=1e-9)
        assert el.rp == pytest.approx(rp, rel=1e-9)
        assert el.ra == pytest.approx(ra, rel=1e-9)
        assert el.sma == pytest.approx(a, rel=1e-9)
        assert el.p == pytest.approx(a * (1.0 - el.ecc ** 2), rel=1e-9)

    def test_hyperbolic(self):
        r0 = 7.0e6
        v_esc = np.sqrt(2.0 * EARTH_MU / r0)
        el = compute_orbit_elements(np.array([r0, 0.0, 0.0]),
                                    np.array([0.0, 1.5 * v_esc, 0.0]), EARTH_MU)
        assert not el.is_bound
        assert el.ecc > 1.0
        assert el.sma < 0.0
        assert el.ra is None
        assert el.period is None
        assert el.rp == pytest.approx(r0, rel=1e-9)

    def test_zero_radius(self):
        el = compute_orbit_elements(np.zeros(3), np.array([1.0, 0.0, 0.0]), EARTH_MU)
        assert el.sma is None
        assert el.rp is None
        assert el.period is None
        assert not el.is_bound

    def test_radial_trajectory(self):
        el = compute_orbit_elements(np.array([7e6, 0.0, 0.0]), np.array([100.0, 0.0, 0.0]), EARTH_MU)
        assert el.p is None
        assert el.rp is None


class TestHelpers:

    def test_vis_viva_circular(self):
        assert vis_viva(7e6, 7e6, EARTH_MU) == pytest.approx(np.sqrt(EARTH_MU / 7e6))

    def test_vis_viva_beyond_apoapsis(self):
        # r > 2a has a negative radicand
        assert vis_viva(3e7, 1e7, EARTH_MU) == 0.0

    def test_orbital_period(self):
        assert orbital_period(7e6, EARTH_MU) == pytest.approx(TWO_PI * np.sqrt(7e6 ** 3 / EARTH_MU))
        assert orbital_period(-7e6, EARTH_MU) is None

    def test_lunar_sphere_of_influence(self):
        soi = sphere_of_influence(MOON_SMA, MOON_MASS, EARTH_MASS)
        assert soi == pytest.approx(6.62e7, rel=1e-2)

    def test_sphere_of_influence_guard(self):
        assert sphere_of_influence(MOON_SMA, MOON_MASS, 0.0) == 0.0


class TestFormatters:

    @pytest.mark.parametrize("seconds,expected", [
        (4 * 86400 + 22 * 3600 + 10 * 60 + 30, "4d 22h 10m"),
        (3 * 3600 + 5 * 60, "3h 5m"),
        (720.0, "12m"),
        (-50.0, "0m"),
    ])
    def test_format_duration(self, seconds, expected):
        assert format_duration(seconds) == expected

    @pytest.mark.parametrize("seconds,expected", [
        (30.0, "30.0 s"),
        (5400.0, "90.00 min"),
        (7200.0, "2.000 h"),
        (2 * 86400.0, "2.000 d"),
        (None, "-"),
    ])
    def test_format_period(self, seconds, expected):
        assert format_period(seconds) == expected

    def test_format_distance(self):
        assert format_distance_km(1234567.0) == "1234.6 km"
        assert format_distance_km(None) == "-"
        assert format_distance_km(float("inf")) == "-"
