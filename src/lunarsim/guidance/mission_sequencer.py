"""
===============================================================================
LUNAR TRANSFER SIM - Mission Sequencer (Finite State Machine)
===============================================================================
Drives the vehicle from a circular Earth parking orbit into a low lunar
orbit with four impulsive burns, each fired autonomously when its window
is detected on the live dynamical state.

The mission profile:
    0. IDLE                  Parking orbit, waiting for start_mission()
    1. WAITING_PHASE_ANGLE   Burn 1 (TLI) when the Moon leads by theta
    2. FIRST_BURN_DONE       Injection complete
    3. TRANSFERRING          Burn 2 (LOI) at periselene inside the SOI gate
    4. CAPTURE_BURN_DONE     Burn 3 (apolune trim) at apolune, with hysteresis
    5. APOLUNE_TWEAK_DONE    Burn 4 (circularization) at perilune
    6. CIRCULARIZATION_DONE  Final orbit reached
    7. COMPLETE              Terminal

Phases only move forward, and each tick evaluates the handler of the
current phase alone, so at most one burn and one phase transition happen
per tick.  FIRST_BURN_DONE and CIRCULARIZATION_DONE are held for exactly
one tick before promotion.

Each window keeps its own gating memory (last radial velocity, time since
the capture burn, lowest radius since the burn, outbound leg seen) as the payload of
the active gate object, which is replaced on every transition.

A window that never opens holds its phase indefinitely.  With
``window_timeout`` configured the sequencer flags the stall and logs it,
but it never skips or aborts a burn.
===============================================================================
"""

import logging
from dataclasses import dataclass, fields
from enum import IntEnum
from typing import Any, Dict, List, Optional, Tuple, Union

import numpy as np

from lunarsim.core.constants import (
    TARGET_LLO_ALTITUDE,
    CAPTURE_APOLUNE_ALTITUDE,
)
from lunarsim.core.frames import radial_velocity, signed_angle
from lunarsim.dynamics.bodies import Body
from lunarsim.dynamics.orbital_elements import (
    compute_orbit_elements,
    sphere_of_influence,
    format_duration,
)
from lunarsim.dynamics.spacecraft import BurnResult, Spacecraft, ThrustMode
from lunarsim.guidance.maneuver_planner import ManeuverPlanner, TransferSolution

logger = logging.getLogger(__name__)


# =============================================================================
# MISSION PHASE ENUMERATION
# =============================================================================

class MissionPhase(IntEnum):
    """
    Mission phases in chronological order.  The integer values give the
    ordering the FSM advances through; a phase is never revisited.
    """
    IDLE = 0
    WAITING_PHASE_ANGLE = 1
    FIRST_BURN_DONE = 2
    TRANSFERRING = 3
    CAPTURE_BURN_DONE = 4
    APOLUNE_TWEAK_DONE = 5
    CIRCULARIZATION_DONE = 6
    COMPLETE = 7


# Phase entered by each burn
BURN_TARGET_PHASE: Dict[int, MissionPhase] = {
    1: MissionPhase.FIRST_BURN_DONE,
    2: MissionPhase.CAPTURE_BURN_DONE,
    3: MissionPhase.APOLUNE_TWEAK_DONE,
    4: MissionPhase.CIRCULARIZATION_DONE,
}


# =============================================================================
# CONFIGURATION
# =============================================================================

@dataclass
class SequencerConfig:
    """
    Targets and window tolerances.

    Attributes:
        target_llo_altitude:       Final circular orbit altitude (m).
        capture_apolune_altitude:  Apolune altitude of the capture ellipse (m).
        phase_angle_tolerance:     TLI window half-width (rad).
        soi_leniency:              Multiple of the Laplace SOI used as gate.
        apolune_min_wait_fraction: Minimum wait after LOI, as a fraction of
                                   the capture ellipse period.
        apolune_fallback_wait:     Minimum wait when the ellipse period is
                                   undefined (s).
        apolune_radius_margin:     Radius growth required since LOI (m).
        apolune_vr_tolerance:      Near-zero radial speed floor (m/s).
        apolune_vr_fraction:       Near-zero radial speed as a fraction of
                                   the Moon-relative speed.
        window_timeout:            Optional stall deadline per phase (s).
    """
    target_llo_altitude: float = TARGET_LLO_ALTITUDE
    capture_apolune_altitude: float = CAPTURE_APOLUNE_ALTITUDE
    phase_angle_tolerance: float = 0.01
    soi_leniency: float = 1.2
    apolune_min_wait_fraction: float = 0.2
    apolune_fallback_wait: float = 600.0
    apolune_radius_margin: float = 50000.0
    apolune_vr_tolerance: float = 0.5
    apolune_vr_fraction: float = 1e-3
    window_timeout: Optional[float] = None

    @classmethod
    def from_dict(cls, config: Optional[Dict[str, Any]]) -> "SequencerConfig":
        """Build from the ``mission`` section of a scenario config."""
        config = config or {}
        known = {f.name for f in fields(cls)}
        kwargs = {}
        for key, value in config.items():
            if key not in known:
                logger.debug("Ignoring unknown mission key '%s'", key)
                continue
            kwargs[key] = None if value is None else float(value)
        return cls(**kwargs)


# =============================================================================
# GATING MEMORY (one variant per watched window)
# =============================================================================

@dataclass
class PhaseAngleGate:
    """Waiting for the TLI phase angle."""


@dataclass
class PeriseleneGate:
    """Waiting for a negative -> non-negative radial velocity flip."""
    last_vr: Optional[float] = None


@dataclass
class ApoluneGate:
    """
    Waiting for apolune after the capture burn.

    Attributes:
        time_since_burn: Elapsed time since the capture burn (s).
        min_radius:      Lowest Moon-relative radius since the capture burn (m).
        min_wait:        Time that must elapse before the window opens (s).
        seen_outbound:   An outbound leg (vr > tolerance) has been observed.
        last_vr:         Radial velocity at the previous tick (m/s).
    """
    time_since_burn: float = 0.0
    min_radius: float = 0.0
    min_wait: float = 0.0
    seen_outbound: bool = False
    last_vr: Optional[float] = None


@dataclass
class NoGate:
    """No window is being watched."""


Gate = Union[PhaseAngleGate, PeriseleneGate, ApoluneGate, NoGate]


@dataclass
class BurnRecord:
    """One fired burn, for the mission timeline and telemetry."""
    number: int
    time: float
    phase: MissionPhase
    mode: ThrustMode
    requested_dv: float
    effective_dv: float
    propellant_used: float
    manual: bool = False


# =============================================================================
# MISSION SEQUENCER FSM
# =============================================================================

class MissionSequencer:
    """
    Finite State Machine for the autonomous lunar transfer.

    The sequencer inspects the committed state of Earth, Moon and vehicle
    after each tick, recomputes the pending burn (so its delta-V is
    published before the window opens), and fires it through the vehicle
    when the window condition holds.

    Attributes:
        phase:                  Current mission phase.
        delta_v1..delta_v4:     Latest magnitude of each burn (m/s); the
                                 pending burn is refreshed every tick.
        transfer_time_estimate: Hohmann transfer time (s).
        required_phase_angle:   TLI lead angle theta (rad).
        current_phase_angle:    Signed Earth-vehicle / Earth-Moon angle (rad).
        distance_to_moon:       Vehicle-Moon distance (m).
        soi_radius:             Current lunar SOI radius (m).
        mission_elapsed_time:   Time accumulated through update() (s).
        timeline:               Ordered (time, phase, reason) tuples.
        burns:                  Fired burns in order.
        stalled:                True once a configured window timeout expired.
    """

    def __init__(
        self,
        earth: Body,
        moon: Body,
        craft: Spacecraft,
        config: Optional[SequencerConfig] = None,
    ) -> None:
        self.earth = earth
        self.moon = moon
        self.craft = craft
        self.config = config or SequencerConfig()
        self.planner = ManeuverPlanner()

        self.phase: MissionPhase = MissionPhase.IDLE
        self.gate: Gate = NoGate()

        # Telemetry
        self.delta_v1: float = 0.0
        self.delta_v2: float = 0.0
        self.delta_v3: float = 0.0
        self.delta_v4: float = 0.0
        self.transfer_time_estimate: float = 0.0
        self.required_phase_angle: float = 0.0
        self.current_phase_angle: float = 0.0
        self.moon_radial_velocity: float = 0.0
        self.distance_to_moon: float = 0.0
        self.soi_radius: float = 0.0

        self.mission_elapsed_time: float = 0.0
        self.phase_start_time: float = 0.0
        self.stalled: bool = False

        self.timeline: List[Tuple[float, MissionPhase, str]] = [
            (0.0, MissionPhase.IDLE, "mission_initialized"),
        ]
        self.burns: List[BurnRecord] = []

        self._refresh_geometry()
        logger.info("MissionSequencer initialized. Starting phase: %s", self.phase.name)

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    @property
    def is_complete(self) -> bool:
        return self.phase == MissionPhase.COMPLETE

    @property
    def target_llo_radius(self) -> float:
        return self.moon.radius + self.config.target_llo_altitude

    @property
    def total_delta_v(self) -> float:
        return sum(b.effective_dv for b in self.burns)

    def get_phase_elapsed_time(self) -> float:
        return self.mission_elapsed_time - self.phase_start_time

    def inside_soi_gate(self) -> bool:
        """Vehicle within soi_leniency x the lunar sphere of influence."""
        return self.distance_to_moon < self.config.soi_leniency * self.soi_radius

    def format_transfer_time(self) -> str:
        return format_duration(self.transfer_time_estimate)

    # -------------------------------------------------------------------------
    # Commands
    # -------------------------------------------------------------------------

    def start_mission(self) -> bool:
        """
        Arm the TLI window (IDLE -> WAITING_PHASE_ANGLE).

        Returns:
            True if the mission was started, False if it already was.
        """
        if self.phase != MissionPhase.IDLE:
            logger.warning("start_mission ignored: phase is already %s", self.phase.name)
            return False
        self._advance_to(MissionPhase.WAITING_PHASE_ANGLE, "start_mission command")
        self.gate = PhaseAngleGate()
        return True

    def trigger_first_burn(self) -> Optional[BurnRecord]:
        """Fire burn 1 (TLI) now, regardless of the phase angle."""
        if not self._manual_allowed(1):
            return None
        solution = self._transfer_solution()
        dv = solution.delta_v if solution is not None else 0.0
        return self._fire_first_burn(dv, manual=True)

    def trigger_capture_burn(self) -> Optional[BurnRecord]:
        """Fire burn 2 (LOI) now, regardless of periselene / SOI gating."""
        if not self._manual_allowed(2):
            return None
        r, speed, _ = self._moon_relative()
        return self._fire_capture_burn(r, speed, manual=True)

    def trigger_apolune_burn(self) -> Optional[BurnRecord]:
        """Fire burn 3 (apolune trim) now, regardless of apolune detection."""
        if not self._manual_allowed(3):
            return None
        r, speed, _ = self._moon_relative()
        return self._fire_apolune_burn(r, speed, manual=True)

    def trigger_circularization_burn(self) -> Optional[BurnRecord]:
        """Fire burn 4 (circularization) now, regardless of perilune."""
        if not self._manual_allowed(4):
            return None
        r, speed, _ = self._moon_relative()
        return self._fire_circularization_burn(r, speed, manual=True)

    # -------------------------------------------------------------------------
    # Main update
    # -------------------------------------------------------------------------

    def update(self, dt: float = 0.0) -> MissionPhase:
        """
        Evaluate the current phase's window once and fire its burn if open.

        This is the primary interface called every simulation tick, after
        the gravity engine and propagator have committed the new state.

        Args:
            dt: Simulation time covered by the tick (s).

        Returns:
            The current (possibly updated) mission phase.
        """
        if dt > 0.0:
            self.mission_elapsed_time += dt
        self._refresh_geometry()

        phase = self.phase
        if phase == MissionPhase.IDLE:
            self._preview_first_burn()
        elif phase == MissionPhase.WAITING_PHASE_ANGLE:
            self._update_waiting()
        elif phase == MissionPhase.FIRST_BURN_DONE:
            self._advance_to(MissionPhase.TRANSFERRING, "translunar coast")
            self.gate = PeriseleneGate()
        elif phase == MissionPhase.TRANSFERRING:
            self._update_transferring()
        elif phase == MissionPhase.CAPTURE_BURN_DONE:
            self._update_capture_ellipse(dt)
        elif phase == MissionPhase.APOLUNE_TWEAK_DONE:
            self._update_final_approach()
        elif phase == MissionPhase.CIRCULARIZATION_DONE:
            self._advance_to(MissionPhase.COMPLETE, "low lunar orbit achieved")
            self.gate = NoGate()

        self._check_timeout()
        return self.phase

    # -------------------------------------------------------------------------
    # Phase handlers
    # -------------------------------------------------------------------------

    def _preview_first_burn(self) -> Optional[TransferSolution]:
        solution = self._transfer_solution()
        if solution is not None:
            self.delta_v1 = solution.delta_v
            self.transfer_time_estimate = solution.transfer_time
            self.required_phase_angle = solution.phase_angle
        return solution

    def _update_waiting(self) -> None:
        solution = self._preview_first_burn()
        if solution is None:
            return

        r_sc = self.craft.position - self.earth.position
        v_sc = self.craft.velocity - self.earth.velocity
        r_moon = self.moon.position - self.earth.position
        angle = signed_angle(r_sc, r_moon, np.cross(r_sc, v_sc))
        self.current_phase_angle = angle

        if abs(angle - solution.phase_angle) < self.config.phase_angle_tolerance:
            logger.debug(
                "TLI window open: angle=%.4f rad, theta=%.4f rad",
                angle, solution.phase_angle,
            )
            self._fire_first_burn(solution.delta_v, manual=False)

    def _update_transferring(self) -> None:
        r, speed, vr = self._moon_relative()
        if vr is None:
            return
        self.delta_v2 = self.planner.capture_burn(
            r, speed, self.moon.mu, self.moon.radius,
            self.config.capture_apolune_altitude,
        )

        gate = self.gate
        if not isinstance(gate, PeriseleneGate):
            gate = self.gate = PeriseleneGate()

        crossed = gate.last_vr is not None and gate.last_vr < 0.0 and vr >= 0.0
        gate.last_vr = vr

        if crossed and self.inside_soi_gate():
            logger.debug("Periselene detected at r=%.0f m, vr=%.3f m/s", r, vr)
            self._fire_capture_burn(r, speed, manual=False)

    def _update_capture_ellipse(self, dt: float) -> None:
        r, speed, vr = self._moon_relative()
        if vr is None:
            return
        target_rp = self.target_llo_radius
        self.delta_v3 = abs(self.planner.apolune_trim(r, speed, self.moon.mu, target_rp))

        gate = self.gate
        if not isinstance(gate, ApoluneGate):
            gate = self.gate = self._apolune_gate(r)

        if dt > 0.0:
            gate.time_since_burn += dt
        gate.min_radius = min(gate.min_radius, r)

        vr_tol = max(self.config.apolune_vr_tolerance, self.config.apolune_vr_fraction * speed)
        if vr > vr_tol:
            gate.seen_outbound = True

        crossed = gate.last_vr is not None and gate.last_vr > 0.0 and vr <= 0.0
        near_zero = abs(vr) <= vr_tol
        gate.last_vr = vr

        waited = gate.time_since_burn >= gate.min_wait
        grown = r >= gate.min_radius + self.config.apolune_radius_margin

        if (
            self.inside_soi_gate()
            and waited
            and gate.seen_outbound
            and grown
            and (crossed or near_zero)
        ):
            logger.debug(
                "Apolune detected at r=%.0f m, vr=%.3f m/s, %.0f s after LOI",
                r, vr, gate.time_since_burn,
            )
            self._fire_apolune_burn(r, speed, manual=False)

    def _update_final_approach(self) -> None:
        r, speed, vr = self._moon_relative()
        if vr is None:
            return
        self.delta_v4 = self.planner.circularization(r, speed, self.moon.mu)

        gate = self.gate
        if not isinstance(gate, PeriseleneGate):
            gate = self.gate = PeriseleneGate()

        crossed = gate.last_vr is not None and gate.last_vr < 0.0 and vr >= 0.0
        gate.last_vr = vr

        if crossed and self.inside_soi_gate():
            logger.debug("Perilune detected at r=%.0f m", r)
            self._fire_circularization_burn(r, speed, manual=False)

    # -------------------------------------------------------------------------
    # Burns
    # -------------------------------------------------------------------------

    def _fire_first_burn(self, dv: float, manual: bool) -> BurnRecord:
        self.delta_v1 = dv
        result = self.craft.burn(ThrustMode.PROGRADE, max(0.0, dv), reference=self.earth)
        record = self._record_burn(1, ThrustMode.PROGRADE, dv, result, manual)
        self._advance_to(MissionPhase.FIRST_BURN_DONE, "trans-lunar injection")
        self.gate = NoGate()
        return record

    def _fire_capture_burn(self, r: float, speed: float, manual: bool) -> BurnRecord:
        dv = self.planner.capture_burn(
            r, speed, self.moon.mu, self.moon.radius,
            self.config.capture_apolune_altitude,
        )
        self.delta_v2 = dv
        result = self.craft.burn(ThrustMode.RETROGRADE, dv, reference=self.moon)
        record = self._record_burn(2, ThrustMode.RETROGRADE, dv, result, manual)
        self._advance_to(MissionPhase.CAPTURE_BURN_DONE, "lunar orbit insertion")
        self.gate = self._apolune_gate(r)
        return record

    def _fire_apolune_burn(self, r: float, speed: float, manual: bool) -> BurnRecord:
        signed_dv = self.planner.apolune_trim(r, speed, self.moon.mu, self.target_llo_radius)
        mode = ThrustMode.PROGRADE if signed_dv >= 0.0 else ThrustMode.RETROGRADE
        dv = abs(signed_dv)
        self.delta_v3 = dv
        result = self.craft.burn(mode, dv, reference=self.moon)
        record = self._record_burn(3, mode, dv, result, manual)
        self._advance_to(MissionPhase.APOLUNE_TWEAK_DONE, "apolune trim")

        _, _, vr = self._moon_relative()
        self.gate = PeriseleneGate(last_vr=vr)
        return record

    def _fire_circularization_burn(self, r: float, speed: float, manual: bool) -> BurnRecord:
        dv = self.planner.circularization(r, speed, self.moon.mu)
        self.delta_v4 = dv
        result = self.craft.burn(ThrustMode.RETROGRADE, dv, reference=self.moon)
        record = self._record_burn(4, ThrustMode.RETROGRADE, dv, result, manual)
        self._advance_to(MissionPhase.CIRCULARIZATION_DONE, "circularization")
        self.gate = NoGate()
        return record

    def _record_burn(
        self,
        number: int,
        mode: ThrustMode,
        requested: float,
        result: BurnResult,
        manual: bool,
    ) -> BurnRecord:
        record = BurnRecord(
            number=number,
            time=self.mission_elapsed_time,
            phase=self.phase,
            mode=mode,
            requested_dv=float(requested),
            effective_dv=result.effective_dv,
            propellant_used=result.propellant_used,
            manual=manual,
        )
        self.burns.append(record)
        logger.info(
            "Burn %d (%s%s) at MET=%.1f s: requested %.2f m/s, applied %.2f m/s, "
            "propellant %.1f kg, remaining %.1f kg",
            number, mode.value, ", manual" if manual else "",
            self.mission_elapsed_time, requested, result.effective_dv,
            result.propellant_used, self.craft.fuel_mass,
        )
        return record

    # -------------------------------------------------------------------------
    # Transition logic
    # -------------------------------------------------------------------------

    def _manual_allowed(self, burn_number: int) -> bool:
        target = BURN_TARGET_PHASE[burn_number]
        if target <= self.phase:
            logger.warning(
                "Manual burn %d ignored: phase %s is already at or past %s",
                burn_number, self.phase.name, target.name,
            )
            return False
        return True

    def _advance_to(self, new_phase: MissionPhase, reason: str) -> bool:
        """
        Move the FSM forward to *new_phase* and log the transition.

        Returns:
            False (and no change) if *new_phase* is not ahead of the
            current phase.
        """
        old_phase = self.phase
        if new_phase <= old_phase:
            logger.warning(
                "Refusing backward transition %s -> %s", old_phase.name, new_phase.name,
            )
            return False

        self.timeline.append((self.mission_elapsed_time, new_phase, reason))
        self.phase = new_phase
        self.phase_start_time = self.mission_elapsed_time
        self.stalled = False

        logger.info(
            "Phase transition: %s -> %s at MET=%.1f s. Reason: %s",
            old_phase.name, new_phase.name, self.mission_elapsed_time, reason,
        )
        return True

    def _check_timeout(self) -> None:
        timeout = self.config.window_timeout
        if timeout is None or self.stalled:
            return
        if self.phase in (MissionPhase.IDLE, MissionPhase.COMPLETE):
            return
        if self.get_phase_elapsed_time() > timeout:
            self.stalled = True
            logger.warning(
                "Window for phase %s still closed after %.0f s; holding phase",
                self.phase.name, self.get_phase_elapsed_time(),
            )

    # -------------------------------------------------------------------------
    # Internal helpers
    # -------------------------------------------------------------------------

    def _refresh_geometry(self) -> None:
        self.distance_to_moon = self.moon.distance_to(self.craft.position)
        earth_moon = float(np.linalg.norm(self.moon.position - self.earth.position))
        self.soi_radius = sphere_of_influence(earth_moon, self.moon.mass, self.earth.mass)

    def _transfer_solution(self) -> Optional[TransferSolution]:
        r_sc = self.craft.position - self.earth.position
        v_sc = self.craft.velocity - self.earth.velocity
        earth_moon = float(np.linalg.norm(self.moon.position - self.earth.position))
        return self.planner.trans_lunar_injection(
            r1=float(np.linalg.norm(r_sc)),
            v1=float(np.linalg.norm(v_sc)),
            earth_moon_distance=earth_moon,
            moon_radius=self.moon.radius,
            target_altitude=self.config.target_llo_altitude,
            mu_earth=self.earth.mu,
            moon_period=self.moon.orbit_period,
        )

    def _moon_relative(self) -> Tuple[float, float, Optional[float]]:
        """(|r_rel|, |v_rel|, radial velocity) with respect to the Moon."""
        r_rel, v_rel = self.craft.relative_to(self.moon)
        vr = radial_velocity(r_rel, v_rel)
        if vr is not None:
            self.moon_radial_velocity = vr
        return float(np.linalg.norm(r_rel)), float(np.linalg.norm(v_rel)), vr

    def _apolune_gate(self, radius: float) -> ApoluneGate:
        r_rel, v_rel = self.craft.relative_to(self.moon)
        elements = compute_orbit_elements(r_rel, v_rel, self.moon.mu)
        if elements.period is not None:
            min_wait = self.config.apolune_min_wait_fraction * elements.period
        else:
            min_wait = self.config.apolune_fallback_wait
        return ApoluneGate(
            time_since_burn=0.0,
            min_radius=radius,
            min_wait=min_wait,
            seen_outbound=False,
            last_vr=radial_velocity(r_rel, v_rel),
        )

    # -------------------------------------------------------------------------
    # Summary and Display
    # -------------------------------------------------------------------------

    def telemetry(self) -> Dict[str, Any]:
        """Flat snapshot of the sequencer outputs for the telemetry log."""
        return {
            "phase": int(self.phase),
            "phase_name": self.phase.name,
            "delta_v1": self.delta_v1,
            "delta_v2": self.delta_v2,
            "delta_v3": self.delta_v3,
            "delta_v4": self.delta_v4,
            "transfer_time": self.transfer_time_estimate,
            "phase_angle": self.current_phase_angle,
            "required_phase_angle": self.required_phase_angle,
            "distance_to_moon": self.distance_to_moon,
            "moon_radial_velocity": self.moon_radial_velocity,
            "stalled": self.stalled,
        }

    def __repr__(self) -> str:
        return (
            f"MissionSequencer(phase={self.phase.name}, "
            f"MET={self.mission_elapsed_time:.1f}s)"
        )
