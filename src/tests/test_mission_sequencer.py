"""
===============================================================================
LUNAR TRANSFER SIM - Mission Sequencer Test Suite
===============================================================================
Tests for the transfer FSM: start command, phase-angle window, periselene
and apolune detection with their gates, circularization, manual triggers,
phase monotonicity, the optional window timeout, and configuration.

Bodies are held static and the vehicle state is set directly, so each
window condition is exercised in isolation.
===============================================================================
"""

import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

import numpy as np
import pytest

from lunarsim.core.constants import (
    EARTH_MASS, EARTH_MU, EARTH_RADIUS, MOON_MASS, MOON_RADIUS, MOON_SMA, MOON_MU,
    MOON_ORBITAL_PERIOD, PARKING_RADIUS, PARKING_VELOCITY,
)
from lunarsim.dynamics.bodies import Body
from lunarsim.dynamics.spacecraft import Spacecraft, ThrustMode
from lunarsim.guidance.maneuver_planner import ManeuverPlanner
from lunarsim.guidance.mission_sequencer import (
    ApoluneGate,
    MissionPhase,
    MissionSequencer,
    PeriseleneGate,
    SequencerConfig,
)


# =============================================================================
# Fixtures and helpers
# =============================================================================

@pytest.fixture
def earth():
    return Body("Earth", EARTH_MASS, EARTH_RADIUS)


@pytest.fixture
def moon():
    return Body("Moon", MOON_MASS, MOON_RADIUS, orbit_period=MOON_ORBITAL_PERIOD,
                position=[MOON_SMA, 0.0, 0.0])


@pytest.fixture
def craft():
    sc = Spacecraft()
    sc.set_state([PARKING_RADIUS, 0.0, 0.0], [0.0, PARKING_VELOCITY, 0.0])
    return sc


@pytest.fixture
def sequencer(earth, moon, craft):
    return MissionSequencer(earth, moon, craft)


def place_in_parking_orbit(craft, angle):
    """Circular counter-clockwise parking orbit at polar *angle*."""
    c, s = np.cos(angle), np.sin(angle)
    craft.set_state(PARKING_RADIUS * np.array([c, s, 0.0]),
                    PARKING_VELOCITY * np.array([-s, c, 0.0]))


def place_near_moon(craft, moon, radius, vr, vt):
    """Moon-relative position +X at *radius*, radial speed vr, tangential vt."""
    craft.set_state(moon.position + np.array([radius, 0.0, 0.0]),
                    moon.velocity + np.array([vr, vt, 0.0]))


def required_phase_angle():
    sol = ManeuverPlanner().trans_lunar_injection(
        PARKING_RADIUS, PARKING_VELOCITY, MOON_SMA, MOON_RADIUS, 250e3,
        EARTH_MU, MOON_ORBITAL_PERIOD,
    )
    return sol.phase_angle


def to_transferring(seq):
    seq.start_mission()
    seq.trigger_first_burn()
    seq.update(5.0)
    assert seq.phase == MissionPhase.TRANSFERRING


# =============================================================================
# Start and idle behaviour
# =============================================================================

class TestStart:

    def test_initial_state(self, sequencer):
        assert sequencer.phase == MissionPhase.IDLE
        assert sequencer.burns == []
        assert sequencer.soi_radius == pytest.approx(6.62e7, rel=1e-2)

    def test_idle_previews_injection(self, sequencer):
        sequencer.update(5.0)
        assert sequencer.phase == MissionPhase.IDLE
        assert 3050.0 < sequencer.delta_v1 < 3200.0
        assert sequencer.required_phase_angle == pytest.approx(2.005, abs=0.01)
        assert sequencer.format_transfer_time().startswith("4d")

    def test_start_mission(self, sequencer):
        assert sequencer.start_mission()
        assert sequencer.phase == MissionPhase.WAITING_PHASE_ANGLE
        assert not sequencer.start_mission()
        assert sequencer.phase == MissionPhase.WAITING_PHASE_ANGLE

    def test_update_never_starts_mission(self, sequencer):
        for _ in range(10):
            sequencer.update(60.0)
        assert sequencer.phase == MissionPhase.IDLE
        assert sequencer.mission_elapsed_time == pytest.approx(600.0)


# =============================================================================
# Burn 1: phase angle window
# =============================================================================

class TestPhaseAngleWindow:

    def test_fires_inside_window(self, sequencer, craft):
        theta = required_phase_angle()
        place_in_parking_orbit(craft, -theta)
        sequencer.start_mission()

        sequencer.update(5.0)

        assert sequencer.phase == MissionPhase.FIRST_BURN_DONE
        assert sequencer.current_phase_angle == pytest.approx(theta, abs=1e-6)
        assert len(sequencer.burns) == 1
        burn = sequencer.burns[0]
        assert burn.mode is ThrustMode.PROGRADE
        assert not burn.manual
        assert np.linalg.norm(craft.velocity) == pytest.approx(
            PARKING_VELOCITY + sequencer.delta_v1, rel=1e-9)

    def test_holds_outside_window(self, sequencer, craft):
        theta = required_phase_angle()
        place_in_parking_orbit(craft, -(theta + 0.05))
        sequencer.start_mission()

        sequencer.update(5.0)

        assert sequencer.phase == MissionPhase.WAITING_PHASE_ANGLE
        assert sequencer.burns == []

    def test_first_burn_done_is_held_one_tick(self, sequencer, craft):
        theta = required_phase_angle()
        place_in_parking_orbit(craft, -theta)
        sequencer.start_mission()
        sequencer.update(5.0)
        assert sequencer.phase == MissionPhase.FIRST_BURN_DONE
        sequencer.update(5.0)
        assert sequencer.phase == MissionPhase.TRANSFERRING
        assert len(sequencer.burns) == 1


# =============================================================================
# Burn 2: periselene inside the SOI gate
# =============================================================================

class TestCaptureWindow:

    def test_fires_on_radial_velocity_flip(self, sequencer, craft, moon):
        to_transferring(sequencer)
        r = MOON_RADIUS + 100e3

        place_near_moon(craft, moon, r, -10.0, 2300.0)
        sequencer.update(5.0)
        assert sequencer.phase == MissionPhase.TRANSFERRING

        place_near_moon(craft, moon, r, 1.0, 2300.0)
        sequencer.update(5.0)

        assert sequencer.phase == MissionPhase.CAPTURE_BURN_DONE
        assert sequencer.burns[-1].number == 2
        assert sequencer.burns[-1].mode is ThrustMode.RETROGRADE
        _, v_rel = craft.relative_to(moon)
        assert np.linalg.norm(v_rel) < np.hypot(1.0, 2300.0)
        assert isinstance(sequencer.gate, ApoluneGate)

    def test_no_fire_outside_soi_gate(self, sequencer, craft, moon):
        to_transferring(sequencer)
        far = 1.3 * sequencer.soi_radius

        place_near_moon(craft, moon, far, -10.0, 500.0)
        sequencer.update(5.0)
        place_near_moon(craft, moon, far, 1.0, 500.0)
        sequencer.update(5.0)

        assert sequencer.phase == MissionPhase.TRANSFERRING

    def test_no_fire_without_flip(self, sequencer, craft, moon):
        to_transferring(sequencer)
        r = MOON_RADIUS + 100e3
        for vr in (-30.0, -20.0, -10.0):
            place_near_moon(craft, moon, r, vr, 2300.0)
            sequencer.update(5.0)
        assert sequencer.phase == MissionPhase.TRANSFERRING


# =============================================================================
# Burns 3 and 4: apolune trim and circularization
# =============================================================================

class TestLunarOrbitWindows:

    @pytest.fixture
    def captured(self, sequencer, craft, moon):
        """Sequencer right after a manual capture burn at 100 km periselene."""
        sequencer.start_mission()
        place_near_moon(craft, moon, MOON_RADIUS + 100e3, 0.0, 2500.0)
        sequencer.trigger_capture_burn()
        assert sequencer.phase == MissionPhase.CAPTURE_BURN_DONE
        return sequencer

    def test_capture_ellipse_sets_min_wait(self, captured):
        gate = captured.gate
        assert isinstance(gate, ApoluneGate)
        rp = MOON_RADIUS + 100e3
        a = 0.5 * (rp + MOON_RADIUS + 600e3)
        period = 2.0 * np.pi * np.sqrt(a ** 3 / MOON_MU)
        assert gate.min_wait == pytest.approx(0.2 * period, rel=1e-3)
        assert gate.min_radius == pytest.approx(rp)

    def test_apolune_hysteresis(self, captured, craft, moon):
        r_apo = MOON_RADIUS + 600e3

        # Outbound then a flip before the minimum wait: held
        place_near_moon(craft, moon, r_apo, 5.0, 1100.0)
        captured.update(100.0)
        place_near_moon(craft, moon, r_apo, -5.0, 1100.0)
        captured.update(100.0)
        assert captured.phase == MissionPhase.CAPTURE_BURN_DONE
        assert captured.gate.seen_outbound

        # Wait elapsed but no +/- flip: held
        place_near_moon(craft, moon, r_apo, 5.0, 1100.0)
        captured.update(2000.0)
        assert captured.phase == MissionPhase.CAPTURE_BURN_DONE

        # Flip after the wait: fires
        place_near_moon(craft, moon, r_apo, -5.0, 1100.0)
        captured.update(10.0)
        assert captured.phase == MissionPhase.APOLUNE_TWEAK_DONE

        burn = captured.burns[-1]
        assert burn.number == 3
        assert burn.mode is ThrustMode.PROGRADE
        assert isinstance(captured.gate, PeriseleneGate)

    def test_apolune_requires_radius_growth(self, captured, craft, moon):
        r_low = MOON_RADIUS + 120e3
        place_near_moon(craft, moon, r_low, 5.0, 1100.0)
        captured.update(5000.0)
        place_near_moon(craft, moon, r_low, 0.0, 1100.0)
        captured.update(10.0)
        assert captured.phase == MissionPhase.CAPTURE_BURN_DONE

    def test_capture_above_target_apolune(self, sequencer, craft, moon):
        # Capture burn point lies above the target apolune, so it becomes
        # the ellipse's apolune and the radius falls before it grows again
        r_burn = MOON_RADIUS + 900e3
        sequencer.start_mission()
        place_near_moon(craft, moon, r_burn, 0.0, 2500.0)
        sequencer.trigger_capture_burn()
        assert sequencer.phase == MissionPhase.CAPTURE_BURN_DONE

        place_near_moon(craft, moon, MOON_RADIUS + 200e3, -5.0, 1700.0)
        sequencer.update(1000.0)
        place_near_moon(craft, moon, MOON_RADIUS + 500e3, 5.0, 1300.0)
        sequencer.update(5000.0)
        assert sequencer.gate.min_radius == pytest.approx(MOON_RADIUS + 200e3)
        assert sequencer.phase == MissionPhase.CAPTURE_BURN_DONE

        place_near_moon(craft, moon, r_burn - 1e3, -5.0, 1000.0)
        sequencer.update(10.0)
        assert sequencer.phase == MissionPhase.APOLUNE_TWEAK_DONE
        assert sequencer.burns[-1].number == 3

    def test_near_zero_radial_velocity_fires(self, captured, craft, moon):
        r_apo = MOON_RADIUS + 600e3
        place_near_moon(craft, moon, r_apo, 5.0, 1100.0)
        captured.update(5000.0)
        place_near_moon(craft, moon, r_apo, 0.2, 1100.0)
        captured.update(10.0)
        assert captured.phase == MissionPhase.APOLUNE_TWEAK_DONE

    def test_circularization_and_completion(self, captured, craft, moon):
        captured.trigger_apolune_burn()
        assert captured.phase == MissionPhase.APOLUNE_TWEAK_DONE

        r = MOON_RADIUS + 250e3
        place_near_moon(craft, moon, r, -3.0, 1700.0)
        captured.update(5.0)
        assert captured.phase == MissionPhase.APOLUNE_TWEAK_DONE

        place_near_moon(craft, moon, r, 3.0, 1700.0)
        captured.update(5.0)
        assert captured.phase == MissionPhase.CIRCULARIZATION_DONE

        _, v_rel = craft.relative_to(moon)
        assert np.linalg.norm(v_rel) == pytest.approx(np.sqrt(MOON_MU / r), rel=1e-3)

        captured.update(5.0)
        assert captured.phase == MissionPhase.COMPLETE
        assert captured.is_complete

        captured.update(5.0)
        assert captured.phase == MissionPhase.COMPLETE


# =============================================================================
# Manual triggers and monotonicity
# =============================================================================

class TestManualTriggers:

    def test_manual_first_burn(self, sequencer, craft):
        sequencer.start_mission()
        record = sequencer.trigger_first_burn()
        assert record is not None
        assert record.manual
        assert sequencer.phase == MissionPhase.FIRST_BURN_DONE
        assert np.linalg.norm(craft.velocity) > PARKING_VELOCITY + 3000.0

    def test_repeat_trigger_ignored(self, sequencer):
        sequencer.start_mission()
        sequencer.trigger_first_burn()
        fuel = sequencer.craft.fuel_mass
        assert sequencer.trigger_first_burn() is None
        assert sequencer.craft.fuel_mass == fuel
        assert len(sequencer.burns) == 1

    def test_backward_trigger_ignored(self, sequencer, craft, moon):
        sequencer.start_mission()
        place_near_moon(craft, moon, MOON_RADIUS + 100e3, 0.0, 2500.0)
        sequencer.trigger_capture_burn()
        assert sequencer.trigger_first_burn() is None
        assert sequencer.phase == MissionPhase.CAPTURE_BURN_DONE

    def test_timeline_is_monotonic(self, sequencer, craft, moon):
        sequencer.start_mission()
        sequencer.trigger_first_burn()
        sequencer.update(5.0)
        place_near_moon(craft, moon, MOON_RADIUS + 100e3, 0.0, 2500.0)
        sequencer.trigger_capture_burn()
        sequencer.trigger_apolune_burn()
        sequencer.trigger_circularization_burn()
        sequencer.update(5.0)

        phases = [phase for _, phase, _ in sequencer.timeline]
        assert phases == sorted(phases)
        assert len(set(phases)) == len(phases)
        assert phases[-1] == MissionPhase.COMPLETE
        assert [b.number for b in sequencer.burns] == [1, 2, 3, 4]


# =============================================================================
# Timeout and configuration
# =============================================================================

class TestTimeoutAndConfig:

    def test_window_timeout_flags_stall(self, earth, moon, craft):
        seq = MissionSequencer(earth, moon, craft, SequencerConfig(window_timeout=100.0))
        seq.start_mission()
        seq.update(60.0)
        assert not seq.stalled
        seq.update(60.0)
        assert seq.stalled
        assert seq.phase == MissionPhase.WAITING_PHASE_ANGLE

    def test_no_timeout_by_default(self, sequencer):
        sequencer.start_mission()
        for _ in range(50):
            sequencer.update(60.0)
        assert not sequencer.stalled

    def test_from_dict(self):
        cfg = SequencerConfig.from_dict({
            "phase_angle_tolerance": 0.02,
            "soi_leniency": 1.5,
            "window_timeout": None,
            "unknown_key": 3,
        })
        assert cfg.phase_angle_tolerance == 0.02
        assert cfg.soi_leniency == 1.5
        assert cfg.window_timeout is None
        assert cfg.apolune_vr_tolerance == 0.5

    def test_defaults(self):
        cfg = SequencerConfig.from_dict(None)
        assert cfg.phase_angle_tolerance == 0.01
        assert cfg.soi_leniency == 1.2
        assert cfg.target_llo_altitude == 250e3
        assert cfg.capture_apolune_altitude == 600e3

    def test_telemetry_snapshot(self, sequencer):
        sequencer.update(5.0)
        snap = sequencer.telemetry()
        assert snap["phase"] == 0
        assert snap["phase_name"] == "IDLE"
        assert snap["delta_v1"] == pytest.approx(sequencer.delta_v1)
        assert {"delta_v2", "delta_v3", "delta_v4", "distance_to_moon", "stalled"} <= set(snap)
