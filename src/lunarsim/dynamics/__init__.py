"""
===============================================================================
LUNAR TRANSFER SIM - Dynamics Package
===============================================================================
Models for the physical dynamics of the primaries, the spacecraft and
their environment.

Submodules:
    bodies             -- Gravitating body data type and its motion variants
    environment        -- Layered exponential atmosphere and drag
    gravity_engine     -- Velocity Verlet N-body integrator for the primaries
    spacecraft         -- Vehicle mass / engine model and impulsive burns
    propagator         -- RK4 spacecraft propagator with adaptive sub-steps
    orbital_elements   -- Two-body elements, SOI radius, display formatters
===============================================================================
"""
