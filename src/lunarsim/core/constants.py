"""
===============================================================================
LUNAR TRANSFER SIM - Physical and Scenario Constants
===============================================================================
Central repository for the constants used throughout the simulation.
SI units throughout (meters, seconds, kilograms, radians).

Body parameters are the scenario defaults; every one of them can be
overridden from the scenario configuration.
===============================================================================
"""

import numpy as np


# =============================================================================
# MATHEMATICAL CONSTANTS
# =============================================================================
PI = np.pi
TWO_PI = 2.0 * np.pi

# =============================================================================
# FUNDAMENTAL PHYSICAL CONSTANTS
# =============================================================================
GRAVITATIONAL_CONSTANT = 6.6743e-11    # m^3 / (kg * s^2)
G0 = 9.80665                           # Standard gravity (m/s^2)
SECONDS_PER_DAY = 86400.0

# =============================================================================
# EARTH PARAMETERS
# =============================================================================
EARTH_MASS = 5.972e24                  # kg
EARTH_RADIUS = 6371000.0               # Mean radius (m)
EARTH_MU = GRAVITATIONAL_CONSTANT * EARTH_MASS

# Exponential atmosphere layer
EARTH_SEA_LEVEL_DENSITY = 1.225        # kg/m^3
EARTH_SCALE_HEIGHT = 8500.0            # m
EARTH_ATMOSPHERE_BASE = 0.0            # m, top of the flat near-surface layer
EARTH_ATMOSPHERE_LIMIT = 1000000.0     # m, density is zero above this

# =============================================================================
# MOON PARAMETERS
# =============================================================================
MOON_MASS = 7.34767309e22              # kg
MOON_RADIUS = 1737400.0                # Mean radius (m)
MOON_MU = GRAVITATIONAL_CONSTANT * MOON_MASS
MOON_SMA = 384400000.0                 # Mean Earth-Moon distance (m)
MOON_ORBITAL_PERIOD = 27.32 * SECONDS_PER_DAY

# =============================================================================
# SPACECRAFT DEFAULTS (Saturn V third stage class vehicle)
# =============================================================================
SPACECRAFT_DRY_MASS = 13000.0          # kg
SPACECRAFT_FUEL_MASS = 120000.0        # kg
SPACECRAFT_ISP = 320.0                 # s
SPACECRAFT_MAX_THRUST = 1.0e6          # N
SPACECRAFT_DRAG_CD = 2.2
SPACECRAFT_DRAG_AREA = 10.0            # m^2

# =============================================================================
# NUMERICAL DEFAULTS
# =============================================================================
GRAVITY_SOFTENING = 1000.0             # m, N-body softening length
GRAVITY_MAX_DT = 60.0                  # s, gravity engine sub-step ceiling
PROPAGATOR_MAX_DT = 30.0               # s, RK4 sub-step ceiling
PROPAGATOR_DV_LIMIT = 5.0              # m/s, velocity change per RK4 sub-step

# =============================================================================
# MISSION DEFAULTS
# =============================================================================
PARKING_ALTITUDE = 300000.0            # m, circular LEO
TARGET_LLO_ALTITUDE = 250000.0         # m, final low lunar orbit
CAPTURE_APOLUNE_ALTITUDE = 600000.0    # m, intermediate capture ellipse

# =============================================================================
# USEFUL DERIVED QUANTITIES
# =============================================================================
PARKING_RADIUS = EARTH_RADIUS + PARKING_ALTITUDE
PARKING_VELOCITY = np.sqrt(EARTH_MU / PARKING_RADIUS)
