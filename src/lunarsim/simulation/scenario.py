"""
===============================================================================
LUNAR TRANSFER SIM - Scenario Builder
===============================================================================
Loads a scenario configuration from YAML and assembles every subsystem
the tick loop needs:

    - Earth and Moon placed about their barycenter on circular velocities
      (or the Moon on a prescribed kinematic orbit)
    - An exponential atmosphere attached to Earth
    - The vehicle on a circular parking orbit about Earth
    - Gravity engine, RK4 propagator and mission sequencer

Configuration sections (all optional, missing keys use the defaults in
``lunarsim.core.constants``)::

    simulation:  dt_fine, dt_coarse, frame_dt, gravity_max_dt,
                 gravity_softening, propagator_max_dt, dv_limit, max_time
    earth:       mass, radius
    moon:        mass, radius, orbit_period, orbit_radius, kinematic,
                 inclination
    atmosphere:  reference_density, scale_height, base_altitude,
                 cutoff_altitude
    spacecraft:  dry_mass, fuel_mass, isp, max_thrust, drag_cd, drag_area,
                 parking_altitude
    mission:     see SequencerConfig
===============================================================================
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Union

import numpy as np
import yaml

from lunarsim.core.constants import (
    EARTH_MASS,
    EARTH_RADIUS,
    MOON_MASS,
    MOON_RADIUS,
    MOON_SMA,
    MOON_ORBITAL_PERIOD,
    GRAVITATIONAL_CONSTANT,
    GRAVITY_SOFTENING,
    GRAVITY_MAX_DT,
    PROPAGATOR_MAX_DT,
    PROPAGATOR_DV_LIMIT,
    PARKING_ALTITUDE,
)
from lunarsim.dynamics.bodies import Body, KinematicOrbit
from lunarsim.dynamics.environment import ExponentialAtmosphere
from lunarsim.dynamics.gravity_engine import GravityEngine
from lunarsim.dynamics.propagator import SpacecraftPropagator
from lunarsim.dynamics.spacecraft import Spacecraft
from lunarsim.guidance.mission_sequencer import MissionSequencer, SequencerConfig

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path(__file__).resolve().parents[3] / "config" / "scenario.yaml"


@dataclass
class SimulationSettings:
    """Tick sizes and integration limits from the ``simulation`` section."""
    dt_fine: float = 5.0
    dt_coarse: float = 60.0
    frame_dt: float = 1.0 / 60.0
    gravity_max_dt: float = GRAVITY_MAX_DT
    gravity_softening: float = GRAVITY_SOFTENING
    propagator_max_dt: float = PROPAGATOR_MAX_DT
    dv_limit: float = PROPAGATOR_DV_LIMIT
    max_time: float = 10.0 * 86400.0

    @classmethod
    def from_dict(cls, config: Optional[Dict[str, Any]]) -> "SimulationSettings":
        config = config or {}
        defaults = cls()
        settings = cls(**{
            name: float(config.get(name, getattr(defaults, name)))
            for name in defaults.__dataclass_fields__
        })
        if settings.dt_fine <= 0.0 or settings.dt_coarse <= 0.0:
            raise ValueError(
                f"Tick sizes must be positive (dt_fine={settings.dt_fine}, "
                f"dt_coarse={settings.dt_coarse})"
            )
        return settings


@dataclass
class Scenario:
    """Every object the simulation engine drives."""
    earth: Body
    moon: Body
    craft: Spacecraft
    gravity: GravityEngine
    propagator: SpacecraftPropagator
    sequencer: MissionSequencer
    settings: SimulationSettings
    config: Dict[str, Any] = field(default_factory=dict)


# =============================================================================
# CONFIGURATION
# =============================================================================

def load_config(config_path: Optional[Union[str, Path]] = None) -> Dict[str, Any]:
    """
    Load a scenario configuration from a YAML file.

    Args:
        config_path: Path to YAML config. Defaults to config/scenario.yaml

    Returns:
        Dictionary of scenario configuration parameters
    """
    if config_path is None:
        config_path = DEFAULT_CONFIG_PATH

    logger.info("Loading configuration from: %s", config_path)
    with open(config_path, "r") as f:
        config = yaml.safe_load(f) or {}
    if not isinstance(config, dict):
        raise ValueError(f"Scenario file {config_path} must contain a mapping")
    return config


def _positive(section: Dict[str, Any], key: str, default: float, label: str) -> float:
    value = float(section.get(key, default))
    if value <= 0.0:
        raise ValueError(f"{label} '{key}' must be positive, got {value}")
    return value


# =============================================================================
# SCENARIO CONSTRUCTION
# =============================================================================

def build_bodies(config: Dict[str, Any]):
    """
    Create Earth and Moon on a circular mutual orbit about the origin.

    Both bodies start on the +/-X axis with the barycenter at rest at the
    origin.  The Moon moves along +Y with v = sqrt(G m_E / d); Earth carries
    the opposite momentum.

    Returns:
        (earth, moon)
    """
    earth_cfg = config.get("earth", {}) or {}
    moon_cfg = config.get("moon", {}) or {}
    atm_cfg = config.get("atmosphere", {}) or {}

    m_e = _positive(earth_cfg, "mass", EARTH_MASS, "earth")
    r_e = _positive(earth_cfg, "radius", EARTH_RADIUS, "earth")
    m_m = _positive(moon_cfg, "mass", MOON_MASS, "moon")
    r_m = _positive(moon_cfg, "radius", MOON_RADIUS, "moon")
    d = _positive(moon_cfg, "orbit_radius", MOON_SMA, "moon")
    period = _positive(moon_cfg, "orbit_period", MOON_ORBITAL_PERIOD, "moon")

    total = m_e + m_m
    v_moon = np.sqrt(GRAVITATIONAL_CONSTANT * m_e / d)

    earth = Body(
        name="Earth",
        mass=m_e,
        radius=r_e,
        position=np.array([-m_m / total * d, 0.0, 0.0]),
        velocity=np.array([0.0, -v_moon * m_m / m_e, 0.0]),
        atmosphere=ExponentialAtmosphere.from_config(atm_cfg, planet_radius=r_e),
    )
    moon = Body(
        name="Moon",
        mass=m_m,
        radius=r_m,
        orbit_period=period,
        position=np.array([m_e / total * d, 0.0, 0.0]),
        velocity=np.array([0.0, v_moon, 0.0]),
    )

    if moon_cfg.get("kinematic", False):
        moon.motion = KinematicOrbit(
            center=earth,
            radius=d,
            period=period,
            inclination=float(moon_cfg.get("inclination", 0.0)),
        )
        # Earth is the fixed center of a prescribed orbit
        earth.position = np.zeros(3)
        earth.velocity = np.zeros(3)
        moon.set_state(*moon.motion.state())

    return earth, moon


def build_spacecraft(config: Dict[str, Any], earth: Body) -> Spacecraft:
    """Vehicle on a circular prograde parking orbit about *earth*."""
    sc_cfg = config.get("spacecraft", {}) or {}
    craft = Spacecraft(sc_cfg)

    altitude = float(sc_cfg.get("parking_altitude", PARKING_ALTITUDE))
    if altitude < 0.0:
        raise ValueError(f"Parking altitude must be non-negative, got {altitude}")
    r0 = earth.radius + altitude
    v_circ = np.sqrt(earth.mu / r0)

    craft.set_state(
        earth.position + np.array([r0, 0.0, 0.0]),
        earth.velocity + np.array([0.0, v_circ, 0.0]),
    )
    return craft


def build_scenario(config: Optional[Dict[str, Any]] = None) -> Scenario:
    """
    Assemble a complete scenario from a configuration dictionary.

    Raises:
        ValueError: for non-positive masses, radii or periods, negative
            spacecraft masses, or a non-positive Isp.
    """
    config = config or {}
    settings = SimulationSettings.from_dict(config.get("simulation"))

    earth, moon = build_bodies(config)
    craft = build_spacecraft(config, earth)

    gravity = GravityEngine([earth, moon], eps=settings.gravity_softening)
    propagator = SpacecraftPropagator(
        craft,
        [earth, moon],
        max_dt=settings.propagator_max_dt,
        dv_limit=settings.dv_limit,
    )
    sequencer = MissionSequencer(
        earth, moon, craft, SequencerConfig.from_dict(config.get("mission")),
    )

    logger.info(
        "Scenario built: %s, %s, vehicle %.0f kg (%.0f kg propellant) at %.0f km",
        earth, moon, craft.mass, craft.fuel_mass,
        (earth.distance_to(craft.position) - earth.radius) / 1000.0,
    )
    return Scenario(
        earth=earth,
        moon=moon,
        craft=craft,
        gravity=gravity,
        propagator=propagator,
        sequencer=sequencer,
        settings=settings,
        config=config,
    )
