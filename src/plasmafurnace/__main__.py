"""
Command-line interface.

Runs one furnace simulation headless and logs a summary.

Usage:
    $ python -m plasmafurnace [--config run.json] [--log-level DEBUG] [--log-file run.log]
"""
import argparse
import json
import logging
import sys
from typing import List, Optional

from plasmafurnace.config import APP_VERSION
from plasmafurnace.controller.simulation import Simulation, SimulationStatus
from plasmafurnace.errors import SimulationError
from plasmafurnace.logging_config import setup_logging
from plasmafurnace.model.config import SimulationConfig

logger = logging.getLogger("plasmafurnace.cli")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="plasmafurnace",
        description="Transient heat conduction in a plasma-heated cylindrical furnace.",
    )
    parser.add_argument("--config", help="JSON file with a simulation configuration record")
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)",
    )
    parser.add_argument("--log-file", help="Optional path to also write the log to")
    parser.add_argument("--version", action="version", version=f"%(prog)s {APP_VERSION}")
    return parser


def load_config(path: Optional[str]) -> SimulationConfig:
    if path is None:
        return SimulationConfig()
    with open(path, encoding="utf-8") as f:
        return SimulationConfig.from_dict(json.load(f))


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(level=args.log_level, log_file=args.log_file)

    try:
        config = load_config(args.config)
    except SimulationError as e:
        logger.error(f"Simulation failed: {e}")
        return 1
    except (OSError, ValueError, KeyError, TypeError) as e:
        # JSONDecodeError and unknown enum values are ValueErrors, missing fields KeyErrors
        logger.error(f"Could not read configuration: {e!r}")
        return 2

    try:
        simulation = Simulation(config)
        results = simulation.run()
    except SimulationError as e:
        logger.error(f"Simulation failed: {e}")
        return 1

    meta = results.metadata
    logger.info(
        f"Finished {meta.total_steps} steps ({meta.total_time:.4g} s simulated) "
        f"in {meta.simulation_duration:.2f} s"
    )
    logger.info(f"Temperature range: {meta.min_temperature:.2f} K - {meta.max_temperature:.2f} K")
    logger.info(f"Energy conservation error: {results.energy['conservation_error']:.3e}")
    return 0 if simulation.status == SimulationStatus.COMPLETED else 1


if __name__ == "__main__":
    sys.exit(main())
