"""
Run both workloads in-process without the ``locust`` CLI.

Builds a Locust ``Environment`` from the run plan, performs setup
(configuration checks, identifier file loading, shared token exchange)
before any user spawns, starts every pool at once, and stops after the
longest pool duration.  Locust's summary tables are printed at the end.

Exit codes:

- ``0``: run completed without failed requests
- ``1``: run completed, at least one request or task failed
- ``2``: setup failed (configuration or authentication)

Usage::

    python -m tas_perf.runner --mode sign-verify --sign-vus 10 --verify-vus 40 --duration 10m
"""

from __future__ import annotations

import argparse
import logging
import sys
from typing import Any

import gevent
from locust.env import Environment
from locust.stats import print_error_report, print_percentile_stats, print_stats, stats_printer

from tas_perf.config import RUN_MODES, Config, get_config
from tas_perf.errors import TasPerfError
from tas_perf.scheduler import apply_plans, plan_workloads, prepare_run, publish_shared_token

logger = logging.getLogger(__name__)

EXIT_PASS = 0
EXIT_FAILURES = 1
EXIT_SETUP_FAILURE = 2


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse CLI arguments; every option overrides the matching setting."""
    parser = argparse.ArgumentParser(
        description="Drive concurrent signing and verification load against the pipeline."
    )
    parser.add_argument("--env", default=None, help="Configuration environment (development, testing, production)")
    parser.add_argument("--mode", choices=RUN_MODES, default=None, help="Workloads to run")
    parser.add_argument("--sign-vus", type=int, default=None, help="Signing pool size")
    parser.add_argument("--verify-vus", type=int, default=None, help="Verification pool size")
    parser.add_argument("--duration", default=None, help="Run duration for both pools, e.g. 90s or 10m")
    parser.add_argument("--uuid-file", default=None, help="Identifier file for standalone verification")
    parser.add_argument("--uuid-output", default=None, help="File to record created entry UUIDs to")
    parser.add_argument("--live-stats", action="store_true", help="Print statistics periodically during the run")
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> type[Config]:
    """Layer CLI overrides on top of the environment's configuration class."""
    base = get_config(args.env)
    overrides: dict[str, Any] = {}
    if args.mode:
        overrides["RUN_MODE"] = args.mode
    if args.sign_vus is not None:
        overrides["SIGN_VUS"] = args.sign_vus
    if args.verify_vus is not None:
        overrides["VERIFY_VUS"] = args.verify_vus
    if args.duration:
        overrides.update(TEST_DURATION=args.duration, SIGN_DURATION="", VERIFY_DURATION="")
    if args.uuid_file:
        overrides["REKOR_UUID_FILE"] = args.uuid_file
    if args.uuid_output:
        overrides["UUID_OUTPUT_FILE"] = args.uuid_output
    if not overrides:
        return base
    return type(f"Cli{base.__name__}", (base,), overrides)


def run(cfg: type[Config], *, live_stats: bool = False) -> tuple[int, Environment]:
    """
    Execute one run and return ``(exit_code, environment)``.

    Raises:
        ConfigurationError: Invalid settings or unreadable identifier file.
        AuthenticationError: The shared token exchange failed.
    """
    mode = cfg.RUN_MODE
    context = prepare_run(cfg, mode)
    plans = plan_workloads(cfg, mode)
    apply_plans(plans, cfg)

    environment = Environment(
        user_classes=[plan.user_class for plan in plans],
        stop_timeout=cfg.STOP_TIMEOUT,
    )
    context.attach(environment)
    publish_shared_token(context)

    runner = environment.create_local_runner()
    total_users = sum(plan.vus for plan in plans)
    run_seconds = max(plan.duration for plan in plans)
    for plan in plans:
        logger.info("%s: %d users for %ds", plan.name, plan.vus, plan.duration)

    if live_stats:
        gevent.spawn(stats_printer(environment.stats))

    runner.start(total_users, spawn_rate=total_users)
    gevent.spawn_later(run_seconds, runner.quit)
    runner.greenlet.join()
    context.close()

    logger.info("Shared entry pool holds %d entries", len(context.entries))
    return run_exit_code(environment), environment


def run_exit_code(environment: Environment) -> int:
    """``EXIT_FAILURES`` if any request failed or any task raised."""
    task_errors = sum(error["count"] for error in environment.runner.exceptions.values())
    if task_errors:
        logger.error("%d task iterations raised an exception", task_errors)
    if environment.stats.total.num_failures or task_errors:
        return EXIT_FAILURES
    return EXIT_PASS


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    cfg = build_config(args)
    logging.basicConfig(
        level=cfg.LOG_LEVEL.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    try:
        exit_code, environment = run(cfg, live_stats=args.live_stats)
    except TasPerfError as exc:
        logger.error("Run aborted during setup: %s", exc)
        return EXIT_SETUP_FAILURE

    print_stats(environment.stats, current=False)
    print_percentile_stats(environment.stats)
    print_error_report(environment.stats)
    return exit_code


if __name__ == "__main__":
    sys.exit(main())
