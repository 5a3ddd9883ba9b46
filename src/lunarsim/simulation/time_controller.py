"""
===============================================================================
LUNAR TRANSFER SIM - Time Controller
===============================================================================
Holds the time-acceleration factor and converts elapsed wall-clock frame
time into simulation time.

    sim_dt = frame_dt * scale

A scale of 0 pauses the simulation.
===============================================================================
"""

import logging

logger = logging.getLogger(__name__)

DEFAULT_TIME_SCALE = 3600.0


class TimeController:
    """
    Time acceleration for frame-driven runs.

    Parameters
    ----------
    scale : float
        Simulated seconds per wall-clock second.  Must be non-negative.
    """

    def __init__(self, scale: float = DEFAULT_TIME_SCALE) -> None:
        self.scale = 0.0
        self.set_scale(scale)

    def set_scale(self, scale: float) -> None:
        scale = float(scale)
        if scale < 0.0:
            raise ValueError(f"Time scale must be non-negative, got {scale}")
        if scale != self.scale:
            logger.debug("Time scale set to %.1fx", scale)
        self.scale = scale

    @property
    def paused(self) -> bool:
        return self.scale == 0.0

    def apply(self, frame_dt: float) -> float:
        """Simulation seconds covered by a frame of *frame_dt* wall seconds."""
        if frame_dt <= 0.0:
            return 0.0
        return frame_dt * self.scale

    def __repr__(self) -> str:
        return f"TimeController(scale={self.scale:.1f}x)"
