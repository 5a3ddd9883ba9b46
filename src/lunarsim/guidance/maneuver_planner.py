"""
===============================================================================
LUNAR TRANSFER SIM - Maneuver Planner
===============================================================================
Delta-V computation for the four burns of the lunar transfer.

    Burn 1  Trans-lunar injection   (prograde, Earth-relative)
    Burn 2  Lunar orbit insertion   (retrograde at periselene, Moon-relative)
    Burn 3  Apolune trim            (pro/retrograde at apolune)
    Burn 4  Circularization         (retrograde at perilune)

Every formula is a pure function of the current state, so the sequencer
can evaluate them every tick and publish the values as telemetry before
the corresponding window opens.

Sign conventions and units:
    - All distances in meters
    - All velocities in m/s
    - All angles in radians
    - Gravitational parameters (mu) in m^3/s^2
===============================================================================
"""

import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np

from lunarsim.core.constants import PI, TWO_PI
from lunarsim.dynamics.orbital_elements import vis_viva

logger = logging.getLogger(__name__)


@dataclass
class TransferSolution:
    """
    Hohmann-style Earth-Moon transfer computed from the live state.

    Attributes:
        r1:             Vehicle-Earth distance at departure (m).
        r2:             Target apogee radius (m).
        a_transfer:     Transfer ellipse semi-major axis (m).
        v_departure:    Current Earth-relative speed (m/s).
        delta_v:        Injection burn magnitude (m/s).
        transfer_time:  Half-period of the transfer ellipse (s).
        phase_angle:    Required Moon lead angle at departure (rad).
    """
    r1: float
    r2: float
    a_transfer: float
    v_departure: float
    delta_v: float
    transfer_time: float
    phase_angle: float


class ManeuverPlanner:
    """
    Computes delta-V requirements for the transfer burns.

    The planner is stateless: all inputs are passed as arguments and
    results are returned directly.

    Typical usage:
        planner = ManeuverPlanner()
        tli = planner.trans_lunar_injection(r1, v1, d_em, R_moon, 250e3, mu_e, T_moon)
    """

    # -------------------------------------------------------------------------
    # Burn 1: Trans-lunar injection
    # -------------------------------------------------------------------------

    def trans_lunar_injection(
        self,
        r1: float,
        v1: float,
        earth_moon_distance: float,
        moon_radius: float,
        target_altitude: float,
        mu_earth: float,
        moon_period: float,
    ) -> Optional[TransferSolution]:
        """
        Size the injection burn and the phase angle that times it.

        Equations:
            Target apogee radius:
                r2 = d_EM - R_moon - h_LLO

            Transfer semi-major axis:
                a_t = (r1 + r2) / 2

            Injection burn:
                dv1 = sqrt(mu_E (2/r1 - 1/a_t)) - v1

            Transfer time (half an ellipse):
                T = pi sqrt(a_t^3 / mu_E)

            Required Moon lead angle:
                theta = pi - 2 pi T / P_moon

        Args:
            r1:                  Current vehicle-Earth distance (m).
            v1:                  Current Earth-relative speed (m/s).
            earth_moon_distance: Current Earth-Moon distance (m).
            moon_radius:         Moon mean radius (m).
            target_altitude:     Target low lunar orbit altitude (m).
            mu_earth:            Earth gravitational parameter (m^3/s^2).
            moon_period:         Moon orbital period (s).

        Returns:
            TransferSolution, or None if the geometry is degenerate.
        """
        r2 = earth_moon_distance - moon_radius - target_altitude
        if r1 <= 0.0 or r2 <= 0.0 or mu_earth <= 0.0:
            return None

        a_transfer = 0.5 * (r1 + r2)
        v_periapsis = vis_viva(r1, a_transfer, mu_earth)
        delta_v = v_periapsis - v1

        transfer_time = PI * np.sqrt(a_transfer ** 3 / mu_earth)
        if moon_period > 0.0:
            phase_angle = PI - TWO_PI * transfer_time / moon_period
        else:
            phase_angle = PI

        return TransferSolution(
            r1=float(r1),
            r2=float(r2),
            a_transfer=float(a_transfer),
            v_departure=float(v1),
            delta_v=float(delta_v),
            transfer_time=float(transfer_time),
            phase_angle=float(phase_angle),
        )

    # -------------------------------------------------------------------------
    # Burn 2: Lunar orbit insertion
    # -------------------------------------------------------------------------

    def capture_burn(
        self,
        r: float,
        speed: float,
        mu_moon: float,
        moon_radius: float,
        apolune_altitude: float,
    ) -> float:
        """
        Retrograde burn at periselene into a capture ellipse.

        The current radius becomes periselene of an ellipse whose apolune
        sits *apolune_altitude* above the surface:

            r_a = R_moon + h_apo
            a_t = (r + r_a) / 2
            v_target = sqrt(mu_M (2/r - 1/a_t))
            dv2 = max(0, |v| - v_target)

        Args:
            r:                Moon-relative radius (m).
            speed:            Moon-relative speed (m/s).
            mu_moon:          Moon gravitational parameter (m^3/s^2).
            moon_radius:      Moon mean radius (m).
            apolune_altitude: Capture ellipse apolune altitude (m).

        Returns:
            Retrograde delta-V magnitude (m/s).
        """
        if r <= 0.0:
            return 0.0
        ra_target = moon_radius + apolune_altitude
        a_target = 0.5 * (r + ra_target)
        v_target = vis_viva(r, a_target, mu_moon)
        return max(0.0, speed - v_target)

    # -------------------------------------------------------------------------
    # Burn 3: Apolune trim
    # -------------------------------------------------------------------------

    def apolune_trim(
        self,
        r: float,
        speed: float,
        mu_moon: float,
        target_periapsis: float,
    ) -> float:
        """
        Burn at apolune that places periselene at *target_periapsis*.

            a = (r + r_p) / 2
            v_needed = sqrt(mu_M (2/r - 1/a))
            dv3 = v_needed - |v|

        Args:
            r:                Moon-relative radius at apolune (m).
            speed:            Moon-relative speed (m/s).
            mu_moon:          Moon gravitational parameter (m^3/s^2).
            target_periapsis: Desired periselene radius (m).

        Returns:
            Signed delta-V (m/s): positive means prograde, negative
            retrograde.
        """
        if r <= 0.0 or target_periapsis <= 0.0:
            return 0.0
        a = 0.5 * (r + target_periapsis)
        v_needed = vis_viva(r, a, mu_moon)
        return v_needed - speed

    # -------------------------------------------------------------------------
    # Burn 4: Circularization
    # -------------------------------------------------------------------------

    def circularization(self, r: float, speed: float, mu_moon: float) -> float:
        """
        Retrograde burn down to circular speed at the current radius.

            dv4 = max(0, |v| - sqrt(mu_M / r))
        """
        if r <= 0.0:
            return 0.0
        return max(0.0, speed - np.sqrt(mu_moon / r))
