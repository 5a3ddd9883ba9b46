"""
===============================================================================
LUNAR TRANSFER SIM - Simulation Engine
===============================================================================
Central orchestrator for the Earth-Moon transfer.  Ties together the
gravity engine, the vehicle propagator and the mission sequencer in a
time-stepped loop, and logs telemetry to a pandas DataFrame for post-run
analysis.

Each tick executes, in order:

    1. PRIMARIES  -- Velocity Verlet sub-steps advance Earth and Moon.
    2. VEHICLE    -- RK4 sub-steps advance the vehicle against the
                     committed primary positions.
    3. GUIDANCE   -- The sequencer inspects the new state and fires at
                     most one burn.
    4. LOGGING    -- Record a telemetry snapshot.

An adaptive tick scheduler selects a fine dt while a burn window is being
watched (phase-angle wait, inside the lunar SOI gate) and a coarse dt
during the translunar coast.
===============================================================================
"""

import logging
import time
from typing import Any, Dict, List, Optional

import numpy as np
import pandas as pd

from lunarsim.core.frames import barycenter
from lunarsim.dynamics.orbital_elements import compute_orbit_elements, format_duration
from lunarsim.guidance.mission_sequencer import MissionPhase
from lunarsim.simulation.scenario import Scenario, build_scenario
from lunarsim.simulation.time_controller import TimeController

logger = logging.getLogger(__name__)


class SimulationEngine:
    """
    Time-stepped loop over one scenario.

    Parameters
    ----------
    scenario : Scenario, optional
        Pre-built scenario.  Built from *config* when omitted.
    config : dict, optional
        Scenario configuration (see ``lunarsim.simulation.scenario``).
    time_controller : TimeController, optional
        Frame-time to simulation-time conversion used by ``run``.

    Attributes
    ----------
    current_time : float
        Simulation elapsed time (s).
    telemetry : list of dict
        Raw telemetry records, converted to DataFrame on request.
    """

    # Phases whose window is watched at fine resolution everywhere
    _FINE_DT_PHASES = {
        MissionPhase.WAITING_PHASE_ANGLE,
        MissionPhase.FIRST_BURN_DONE,
        MissionPhase.CIRCULARIZATION_DONE,
    }
    # Phases watched at fine resolution only inside the SOI gate
    _LUNAR_PHASES = {
        MissionPhase.TRANSFERRING,
        MissionPhase.CAPTURE_BURN_DONE,
        MissionPhase.APOLUNE_TWEAK_DONE,
    }

    def __init__(
        self,
        scenario: Optional[Scenario] = None,
        config: Optional[Dict[str, Any]] = None,
        time_controller: Optional[TimeController] = None,
    ) -> None:
        self.scenario = scenario if scenario is not None else build_scenario(config)
        self.time_controller = time_controller or TimeController()

        settings = self.scenario.settings
        self._dt_fine: float = settings.dt_fine
        self._dt_coarse: float = settings.dt_coarse
        self._max_time: float = settings.max_time

        self.current_time: float = 0.0
        self.tick_count: int = 0
        self.telemetry: List[Dict[str, Any]] = []

        self._initial_fuel: float = self.scenario.craft.fuel_mass
        self._time_limit_hit: bool = False

        logger.info(
            "SimulationEngine created.  dt_fine=%.1f s, dt_coarse=%.1f s",
            self._dt_fine, self._dt_coarse,
        )

    # Shorthand accessors
    @property
    def earth(self):
        return self.scenario.earth

    @property
    def moon(self):
        return self.scenario.moon

    @property
    def craft(self):
        return self.scenario.craft

    @property
    def sequencer(self):
        return self.scenario.sequencer

    # =========================================================================
    # CORE SIMULATION STEP
    # =========================================================================

    def start_mission(self) -> bool:
        return self.sequencer.start_mission()

    def tick(self, dt: Optional[float] = None) -> MissionPhase:
        """
        Advance the whole system by one tick.

        Parameters
        ----------
        dt : float, optional
            Tick length (s).  If None, uses the adaptive scheduler.  A
            non-positive dt leaves every state untouched.

        Returns
        -------
        MissionPhase
            Phase after the sequencer has run.
        """
        if dt is None:
            dt = self._get_adaptive_dt()
        if dt <= 0.0:
            return self.sequencer.phase

        settings = self.scenario.settings
        gravity_steps = self.scenario.gravity.step_with_substeps(dt, settings.gravity_max_dt)
        rk4_steps = self.scenario.propagator.step_with_substeps(dt)
        phase = self.sequencer.update(dt)

        self.current_time += dt
        self.tick_count += 1
        logger.debug(
            "Tick %d: t=%.1f s dt=%.2f s gravity=%d rk4=%d phase=%s",
            self.tick_count, self.current_time, dt, gravity_steps, rk4_steps, phase.name,
        )
        self._log_telemetry(dt)
        return phase

    def advance_frame(self, frame_dt: float) -> float:
        """
        Advance by the simulation time of one wall-clock frame.

        The frame's simulation time is split into ticks no longer than the
        adaptive dt, so time acceleration never coarsens burn detection.

        Returns
        -------
        float
            Simulation time advanced (s).
        """
        remaining = self.time_controller.apply(frame_dt)
        advanced = 0.0
        while remaining > 1e-9 and not self._is_mission_complete():
            dt = min(self._get_adaptive_dt(), remaining)
            self.tick(dt)
            remaining -= dt
            advanced += dt
        return advanced

    # =========================================================================
    # ADAPTIVE TIME STEP
    # =========================================================================

    def _get_adaptive_dt(self) -> float:
        """
        Select the tick length from the mission phase and lunar distance.

        Returns
        -------
        float
            Time step in seconds.
        """
        phase = self.sequencer.phase
        if phase in self._FINE_DT_PHASES:
            return self._dt_fine
        if phase in self._LUNAR_PHASES and self.sequencer.inside_soi_gate():
            return self._dt_fine
        return self._dt_coarse

    # =========================================================================
    # MISSION COMPLETION CHECK
    # =========================================================================

    def _is_mission_complete(self) -> bool:
        if self.sequencer.is_complete:
            return True
        if self.current_time >= self._max_time:
            if not self._time_limit_hit:
                self._time_limit_hit = True
                logger.warning(
                    "Simulation time limit reached: %.1f s in phase %s",
                    self._max_time, self.sequencer.phase.name,
                )
            return True
        return False

    # =========================================================================
    # FULL SIMULATION RUN
    # =========================================================================

    def run(self, max_time: Optional[float] = None, frame_dt: Optional[float] = None) -> pd.DataFrame:
        """
        Start the mission and run frames until it completes or max_time
        is reached.

        Parameters
        ----------
        max_time : float, optional
            Override the maximum simulation time from config.
        frame_dt : float, optional
            Wall-clock frame length fed to the time controller.

        Returns
        -------
        pd.DataFrame
            Complete telemetry record for the run.
        """
        if max_time is not None:
            self._max_time = max_time
        if frame_dt is None:
            frame_dt = self.scenario.settings.frame_dt
        if self.time_controller.paused:
            raise ValueError("Cannot run with a paused time controller (scale 0)")

        if self.sequencer.phase == MissionPhase.IDLE:
            self.start_mission()

        wall_start = time.time()
        logger.info("Simulation run started.  Max time: %s", format_duration(self._max_time))

        frames = 0
        while not self._is_mission_complete():
            self.advance_frame(frame_dt)
            frames += 1
            if frames % 10000 == 0:
                logger.info(
                    "Frame %d  t=%s  phase=%s  distance to Moon=%.0f km",
                    frames, format_duration(self.current_time),
                    self.sequencer.phase.name,
                    self.sequencer.distance_to_moon / 1000.0,
                )

        logger.info(
            "Simulation finished.  %d ticks in %.2f s wall time.  Sim time: %s",
            self.tick_count, time.time() - wall_start, format_duration(self.current_time),
        )
        return self.get_telemetry()

    # =========================================================================
    # TELEMETRY
    # =========================================================================

    def _log_telemetry(self, dt: float) -> None:
        craft = self.craft
        earth = self.earth
        moon = self.moon
        bary = barycenter(earth.position, earth.mass, moon.position, moon.mass)

        record = {
            "time": self.current_time,
            "dt": dt,
            "pos_x": craft.position[0],
            "pos_y": craft.position[1],
            "pos_z": craft.position[2],
            "vel_x": craft.velocity[0],
            "vel_y": craft.velocity[1],
            "vel_z": craft.velocity[2],
            "mass": craft.mass,
            "fuel": craft.fuel_mass,
            "altitude_earth": earth.distance_to(craft.position) - earth.radius,
            "altitude_moon": moon.distance_to(craft.position) - moon.radius,
            "earth_moon_distance": float(np.linalg.norm(moon.position - earth.position)),
            "earth_barycenter_distance": earth.distance_to(bary),
            "moon_barycenter_distance": moon.distance_to(bary),
            "substeps": self.scenario.propagator.last_substeps,
        }
        record.update(self.sequencer.telemetry())
        self.telemetry.append(record)

    def get_telemetry(self) -> pd.DataFrame:
        """
        Convert the telemetry record list to a pandas DataFrame indexed
        by time.
        """
        if not self.telemetry:
            logger.warning("No telemetry recorded.")
            return pd.DataFrame()

        df = pd.DataFrame(self.telemetry)
        df.set_index("time", inplace=True)
        return df

    def save_telemetry(self, filepath: str) -> None:
        """Save the telemetry DataFrame to a CSV file."""
        df = self.get_telemetry()
        df.to_csv(filepath)
        logger.info("Telemetry saved to %s  (%d records)", filepath, len(df))

    # =========================================================================
    # MISSION SUMMARY
    # =========================================================================

    def get_mission_summary(self) -> Dict[str, Any]:
        """
        Compile a summary of the completed (or current) mission.

        Returns
        -------
        dict
            final_phase, phases_completed, burns, delta_v1..delta_v4,
            total_delta_v, fuel_consumed, final_mass, total_time,
            transfer_time_estimate, final_orbit (periselene / aposelene
            altitudes and eccentricity about the Moon), stalled.
        """
        seq = self.sequencer
        r_rel, v_rel = self.craft.relative_to(self.moon)
        elements = compute_orbit_elements(r_rel, v_rel, self.moon.mu)

        final_orbit = {
            "periselene_altitude": (
                elements.rp - self.moon.radius if elements.rp is not None else None
            ),
            "aposelene_altitude": (
                elements.ra - self.moon.radius if elements.ra is not None else None
            ),
            "eccentricity": elements.ecc,
            "period": elements.period,
        }

        summary = {
            "final_phase": seq.phase.name,
            "phases_completed": [phase.name for _, phase, _ in seq.timeline],
            "burns": [
                {
                    "number": b.number,
                    "time": b.time,
                    "mode": b.mode.value,
                    "requested_dv": b.requested_dv,
                    "effective_dv": b.effective_dv,
                    "propellant_used": b.propellant_used,
                    "manual": b.manual,
                }
                for b in seq.burns
            ],
            "delta_v1": seq.delta_v1,
            "delta_v2": seq.delta_v2,
            "delta_v3": seq.delta_v3,
            "delta_v4": seq.delta_v4,
            "total_delta_v": seq.total_delta_v,
            "fuel_consumed": self._initial_fuel - self.craft.fuel_mass,
            "final_mass": self.craft.mass,
            "total_time": self.current_time,
            "transfer_time_estimate": seq.transfer_time_estimate,
            "final_orbit": final_orbit,
            "stalled": seq.stalled,
        }

        logger.info(
            "Mission summary: phase=%s  total dV=%.1f m/s  fuel used=%.0f kg  time=%s",
            summary["final_phase"], summary["total_delta_v"],
            summary["fuel_consumed"], format_duration(self.current_time),
        )
        return summary

    def __repr__(self) -> str:
        return (
            f"SimulationEngine(t={self.current_time:.1f}s, "
            f"phase={self.sequencer.phase.name}, ticks={self.tick_count})"
        )
