"""
===============================================================================
LUNAR TRANSFER SIM
===============================================================================
Earth-Moon-spacecraft orbital mechanics simulation with an autonomous
multi-burn lunar transfer (trans-lunar injection, lunar orbit insertion,
apolune trim and circularization).

Packages:
    core       -- Physical constants and vector / frame helpers
    dynamics   -- Bodies, atmosphere and drag, N-body gravity engine,
                  spacecraft model, RK4 propagator, orbital elements
    guidance   -- Maneuver planner and mission sequencer (finite state machine)
    simulation -- Time controller, scenario builder and simulation engine
===============================================================================
"""

__version__ = "0.3.0"
