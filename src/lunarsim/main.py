#!/usr/bin/env python3
"""
===============================================================================
LUNAR TRANSFER SIM - MAIN ENTRY POINT
===============================================================================
Earth parking orbit -> TLI -> lunar capture -> 250 km low lunar orbit

Runs a scenario headless until the mission completes or the time limit is
reached, then prints the mission summary.

USAGE:
    python -m lunarsim.main                          # Default scenario
    python -m lunarsim.main --config my.yaml         # Custom scenario
    python -m lunarsim.main --max-days 8             # Longer time limit
    python -m lunarsim.main --time-scale 7200        # Coarser frames
    python -m lunarsim.main --csv telemetry.csv      # Save telemetry

DEPENDENCIES:
    numpy, pandas, pyyaml
===============================================================================
"""

import argparse
import logging
import sys
import time
from datetime import datetime

from lunarsim.core.constants import SECONDS_PER_DAY
from lunarsim.dynamics.orbital_elements import format_distance_km, format_duration
from lunarsim.simulation.scenario import build_scenario, load_config
from lunarsim.simulation.sim_engine import SimulationEngine
from lunarsim.simulation.time_controller import TimeController

logger = logging.getLogger("LUNARSIM_MAIN")


def print_summary(summary: dict) -> None:
    """Print the mission summary in a fixed-width table."""
    print("\n" + "=" * 70)
    print("  MISSION SUMMARY")
    print("=" * 70)
    print(f"  Final phase:        {summary['final_phase']}")
    print(f"  Elapsed time:       {format_duration(summary['total_time'])}")
    print(f"  Transfer estimate:  {format_duration(summary['transfer_time_estimate'])}")
    for i in range(1, 5):
        print(f"  Delta-V {i}:          {summary[f'delta_v{i}']:10.2f} m/s")
    print(f"  Total Delta-V:      {summary['total_delta_v']:10.2f} m/s")
    print(f"  Fuel consumed:      {summary['fuel_consumed']:10.1f} kg")
    print(f"  Final mass:         {summary['final_mass']:10.1f} kg")

    orbit = summary["final_orbit"]
    print(f"  Periselene alt:     {format_distance_km(orbit['periselene_altitude'])}")
    print(f"  Aposelene alt:      {format_distance_km(orbit['aposelene_altitude'])}")
    print(f"  Eccentricity:       {orbit['eccentricity']:.4f}")
    if summary["stalled"]:
        print("  WARNING: a burn window timed out")
    print("=" * 70)


def main(argv=None) -> int:
    """
    Main entry point. Parses command line arguments and runs the scenario.

    Returns:
        Process exit code (0 when the mission completed).
    """
    parser = argparse.ArgumentParser(
        description="Earth-Moon transfer simulation (headless)",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--config", type=str, default=None,
                        help="Path to scenario config YAML")
    parser.add_argument("--max-days", type=float, default=None,
                        help="Simulation time limit in days (overrides config)")
    parser.add_argument("--time-scale", type=float, default=None,
                        help="Simulated seconds per wall-clock second")
    parser.add_argument("--csv", type=str, default=None,
                        help="Write telemetry to this CSV file")
    parser.add_argument("--verbose", "-v", action="store_true",
                        help="Enable DEBUG logging")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )

    print("=" * 70)
    print("  LUNAR TRANSFER SIMULATION")
    print(f"  Start time: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    print("=" * 70)

    try:
        config = load_config(args.config)
        scenario = build_scenario(config)
        controller = TimeController() if args.time_scale is None else TimeController(args.time_scale)
    except (OSError, ValueError) as exc:
        logger.error("Scenario setup failed: %s", exc)
        return 2

    engine = SimulationEngine(scenario, time_controller=controller)
    max_time = args.max_days * SECONDS_PER_DAY if args.max_days is not None else None

    wall_start = time.time()
    try:
        engine.run(max_time=max_time)
    except ValueError as exc:
        logger.error("Simulation run failed: %s", exc)
        return 2
    logger.info("Run finished in %.1f s wall time", time.time() - wall_start)

    if args.csv:
        engine.save_telemetry(args.csv)

    summary = engine.get_mission_summary()
    print_summary(summary)
    return 0 if engine.sequencer.is_complete else 1


if __name__ == "__main__":
    sys.exit(main())
