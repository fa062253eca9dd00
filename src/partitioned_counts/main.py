"""Visits-per-hour scenario.

Reads a day of restaurant visits, counts how many visitors entered in each
opening hour, and writes both the raw counts and the differentially-private
counts. Each visitor is bounded to one hour, so one Laplace draw per hour
with scale ``1/epsilon`` protects every visitor.
"""

from __future__ import annotations

import argparse
import dataclasses
import logging
import sys
from typing import TYPE_CHECKING

from partitioned_counts.config import Config
from partitioned_counts.engine import AggregationEngine
from partitioned_counts.errors import PartitionedCountsError
from partitioned_counts.events import (
    events_from_visits,
    read_visits_from_csv,
    write_results_to_csv,
)
from partitioned_counts.utils import (
    calculate_l1_dist,
    calculate_mse,
    generate_simulated_visits,
)

if TYPE_CHECKING:
    from collections.abc import Sequence

logger = logging.getLogger("partitioned_counts")


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        prog="partitioned-counts",
        description="Count visits per hour with and without differential privacy.",
    )
    parser.add_argument("-c", "--config", help="YAML configuration file")
    parser.add_argument("-i", "--input", help="Visits CSV (overrides io.input_path)")
    parser.add_argument("--non-private-output", help="Where to write raw counts")
    parser.add_argument("--private-output", help="Where to write private counts")
    parser.add_argument("-e", "--epsilon", type=float, help="Privacy budget per hour")
    parser.add_argument("--max-partitions", type=int, help="Hours one visitor may contribute to")
    parser.add_argument("--day", type=int, help="Only count visits from this day")
    parser.add_argument(
        "--simulate", type=int, metavar="N",
        help="Use N simulated visitors instead of reading the input file",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Log progress at INFO level")
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> Config:
    """Load the YAML config (if any) and apply command-line overrides."""
    cfg = Config.from_yaml(args.config) if args.config else Config()

    privacy_overrides = {}
    if args.epsilon is not None:
        privacy_overrides["epsilon"] = args.epsilon
    if args.max_partitions is not None:
        privacy_overrides["max_partitions_per_entity"] = args.max_partitions

    io_overrides = {}
    if args.input is not None:
        io_overrides["input_path"] = args.input
    if args.non_private_output is not None:
        io_overrides["non_private_output"] = args.non_private_output
    if args.private_output is not None:
        io_overrides["private_output"] = args.private_output
    if args.day is not None:
        io_overrides["day"] = args.day

    return dataclasses.replace(
        cfg,
        privacy=dataclasses.replace(cfg.privacy, **privacy_overrides),
        io=dataclasses.replace(cfg.io, **io_overrides),
        verbose=cfg.verbose or args.verbose,
    )


def run(cfg: Config, *, simulate: int | None = None) -> AggregationEngine:
    """Run the scenario end to end and return the finalized engine."""
    if simulate is not None:
        visits = generate_simulated_visits(
            simulate, cfg.domain.opening_hour, cfg.domain.closing_hour,
            day=cfg.io.day if cfg.io.day is not None else 1,
        )
        logger.info("Simulated %d visits", len(visits))
    else:
        visits = read_visits_from_csv(cfg.io.input_path)

    engine = AggregationEngine.from_config(cfg)
    try:
        summary = engine.ingest_all(events_from_visits(visits, day=cfg.io.day))
    except Exception:
        engine.abort()
        raise
    if summary.out_of_domain:
        logger.warning("%d visits fell outside the opening hours and were skipped", summary.out_of_domain)

    raw = engine.raw_counts()
    private = engine.private_counts()
    write_results_to_csv(raw, cfg.io.non_private_output)
    write_results_to_csv(private, cfg.io.private_output)

    if summary.accepted:
        logger.info("MSE between raw and private densities: %.6e", calculate_mse(raw, private))
        logger.info("L1 dist between raw and private densities: %.6f", calculate_l1_dist(raw, private))
    return engine


def main(argv: Sequence[str] | None = None) -> int:
    args = parse_args(argv)
    try:
        cfg = build_config(args)
        logging.basicConfig(
            level=logging.INFO if cfg.verbose else logging.WARNING,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )
        logger.debug("Configuration:\n%s", cfg.to_yaml())
        run(cfg, simulate=args.simulate)
    except (PartitionedCountsError, OSError) as exc:
        print(f"partitioned-counts: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
