"""
Simulation orchestration: scenario construction from configuration, the
time-acceleration controller, and the tick loop with telemetry.
"""
