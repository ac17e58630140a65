#!/usr/bin/env python3
"""
AddonForge Command Line Entry Point

Responsibility:
- Load a scenario file
- Run the root config, or every dependency permutation, through the matrix runner
- Print the batch report and optionally export the analysis as YAML
- Exit non-zero when any run failed

This is the interactive entry point for the system.
"""

import argparse
import asyncio
import sys
from typing import Optional

from addonforge.config import settings
from addonforge.errors import AddonForgeError
from addonforge.logging import configure_logging, get_logger
from addonforge.matrix_runner import MatrixRunner
from addonforge.permutation_report import aggregate
from addonforge.permutations import generate_permutations
from addonforge.report_renderer import render_analysis_yaml, render_dependency_tree, render_report
from addonforge.scenario import Scenario, load_scenario

logger = get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="addonforge",
        description="Validate addon deployments against their catalog dependency graph.",
    )
    parser.add_argument("scenario", help="Path to a scenario YAML file")
    parser.add_argument(
        "--permutations",
        action="store_true",
        help="Run every enable/disable combination of the root's direct dependencies",
    )
    parser.add_argument("--yaml-out", metavar="PATH", help="Write the analysis as YAML to PATH")
    parser.add_argument("--stagger-delay", type=float, metavar="S", help="Seconds between batches")
    parser.add_argument("--batch-size", type=int, metavar="N", help="Runs per batch (0 = linear staggering)")
    parser.add_argument("--within-batch-delay", type=float, metavar="S", help="Seconds between runs in a batch")
    parser.add_argument("--show-tree", action="store_true", help="Print the expected dependency tree first")
    return parser


def _pick(cli_value, scenario_value):
    return cli_value if cli_value is not None else scenario_value


async def run_scenario(scenario: Scenario, args: argparse.Namespace) -> int:
    runner_spec = scenario.runner
    runner = MatrixRunner(
        scenario.catalog,
        scenario.root,
        stagger_delay=_pick(args.stagger_delay, runner_spec.stagger_delay),
        batch_size=_pick(args.batch_size, runner_spec.batch_size),
        within_batch_delay=_pick(args.within_batch_delay, runner_spec.within_batch_delay),
        teardown=scenario.catalog.delete_project,
    )

    if args.show_tree:
        graph = await runner.builder.build(
            scenario.root.catalog_id,
            scenario.root.offering_id,
            scenario.root.version_locator,
            scenario.root.offering_flavor,
            scenario.root,
        )
        print(render_dependency_tree(graph.edges, graph.expected_list))
        print()

    if args.permutations or runner_spec.permutations:
        cases = generate_permutations(
            scenario.root.offering_name,
            scenario.direct_dependencies(),
            runner_spec.prefix,
            skip=scenario.skip_sets,
        )
        results = await runner.run(cases)
    else:
        results = [await runner.run_single(runner_spec.prefix)]

    analysis = aggregate(results)
    print(render_report(analysis))

    if args.yaml_out:
        with open(args.yaml_out, "w", encoding="utf-8") as f:
            f.write(render_analysis_yaml(analysis))
        logger.info("Wrote analysis", path=args.yaml_out)

    return 0 if analysis.summary.failed_runs == 0 else 1


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(settings.LOG_LEVEL, settings.LOG_FORMAT)

    try:
        scenario = load_scenario(args.scenario)
        return asyncio.run(run_scenario(scenario, args))
    except AddonForgeError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2
    except KeyboardInterrupt:
        print("\n\nExiting...")
        return 130


if __name__ == "__main__":
    sys.exit(main())
