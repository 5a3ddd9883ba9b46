"""
===============================================================================
LUNAR TRANSFER SIM - Guidance Package
===============================================================================
Burn sizing and autonomous sequencing of the lunar transfer.

Modules:
    maneuver_planner  : Delta-V formulas for each burn and rocket equation
    mission_sequencer : Phase-gated finite state machine that detects burn
                        windows on the live dynamical state and fires burns
===============================================================================
"""
