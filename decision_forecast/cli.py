"""
CLI entry point for Decision Forecast.
"""

import argparse
import json
import logging
import sys


def main(argv=None):
    parser = argparse.ArgumentParser(
        description="Decision Forecast - Monte Carlo forecasts and decision comparison"
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Simulate command
    sim_parser = subparsers.add_parser("simulate", help="Run a Monte Carlo forecast")
    sim_parser.add_argument("config", help="Scenario config JSON file")
    sim_parser.add_argument(
        "-n", "--runs",
        type=int,
        default=None,
        help="Override the number of runs in the config"
    )
    sim_parser.add_argument(
        "-w", "--workers",
        type=int,
        default=None,
        help="Run worlds in a thread pool with this many workers"
    )
    _add_output_arguments(sim_parser)

    # Sensitivity command
    sens_parser = subparsers.add_parser("sensitivity", help="Rank configuration levers")
    sens_parser.add_argument("config", help="Scenario config JSON file")
    sens_parser.add_argument(
        "-n", "--runs",
        type=int,
        default=None,
        help="Runs per lever variant (default: 1200)"
    )
    _add_output_arguments(sens_parser)

    # Decide command
    decide_parser = subparsers.add_parser("decide", help="Compare decision branches")
    decide_parser.add_argument("request", help="Decision request JSON file")
    _add_output_arguments(decide_parser)

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )

    if args.command == "simulate":
        return run_simulation(args)

    elif args.command == "sensitivity":
        return run_sensitivity(args)

    elif args.command == "decide":
        return run_decision(args)

    else:
        parser.print_help()
        return 1


def _add_output_arguments(subparser):
    subparser.add_argument(
        "--format",
        choices=["text", "json", "markdown"],
        default=None,
        help="Output format (default: text, or inferred from the -o extension)"
    )
    subparser.add_argument(
        "-o", "--output",
        help="Output file for report (format inferred from extension)"
    )


def _load_json(path):
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def _emit(subject, args):
    from decision_forecast.output.reporter import Reporter, ReportFormat

    reporter = Reporter(subject)
    report_format = ReportFormat.parse(args.format) if args.format else None
    if args.output:
        reporter.save(args.output, report_format)
        print(f"Report saved to: {args.output}")
    else:
        print(reporter.generate(report_format or ReportFormat.TEXT))
    return 0


def run_simulation(args):
    """Run a forecast from CLI."""
    from decision_forecast.engine.monte_carlo import run_monte_carlo
    from decision_forecast.engine.scenario import ScenarioConfig
    from decision_forecast.output.reporter import SimulationSummary
    from decision_forecast.swarm.executor import SwarmConfig, run_swarm

    config = ScenarioConfig.from_dict(_load_json(args.config))
    if args.runs is not None:
        config = config.evolve(runs=args.runs)

    if args.format in (None, "text") and not args.output:
        print(f"Simulating {config.runs} worlds over {config.horizon_months:g} months...")

    mc_config = config.to_monte_carlo_config()
    if args.workers:
        result = run_swarm(mc_config, SwarmConfig(max_workers=args.workers))
    else:
        result = run_monte_carlo(mc_config)

    return _emit(SimulationSummary(result), args)


def run_sensitivity(args):
    """Rank levers from CLI."""
    from decision_forecast.engine.scenario import ScenarioConfig
    from decision_forecast.metrics.sensitivity import SENSITIVITY_RUNS, rank_levers
    from decision_forecast.output.reporter import LeverReport

    config = ScenarioConfig.from_dict(_load_json(args.config))
    levers = rank_levers(config, runs=SENSITIVITY_RUNS if args.runs is None else args.runs)
    return _emit(LeverReport(levers), args)


def run_decision(args):
    """Compare decision branches from CLI."""
    from decision_forecast.decision.builder import DecisionRequest, evaluate_branches
    from decision_forecast.decision.tree import BranchMappingError
    from decision_forecast.output.reporter import DecisionReport

    request = DecisionRequest.from_dict(_load_json(args.request))
    try:
        reports = evaluate_branches(request)
    except BranchMappingError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2
    return _emit(DecisionReport(reports), args)


if __name__ == "__main__":
    sys.exit(main())
