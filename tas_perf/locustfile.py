"""
Locust entrypoint for the signing-pipeline load harness.

This is the file the ``locust`` CLI discovers and loads.  It exposes
both user classes and wires up event listeners that:

- add a ``--run-mode`` option (``sign``, ``verify`` or ``sign-verify``);
- in ``init``, validate configuration, size each pool and narrow
  ``environment.user_classes`` to the pools the mode needs;
- in ``test_start``, fetch the shared OIDC token once, before any
  signing user iterates;
- in ``test_stop``, close the identifier recorder.

Usage examples::

    # Signers and verifiers together, 10 + 40 users for 10 minutes:
    locust -f tas_perf/locustfile.py --headless -u 50 -r 50 -t 10m --stop-timeout 30

    # Signing only, recording UUIDs for a later verification run:
    UUID_OUTPUT_FILE=rekor_uuids.txt locust -f tas_perf/locustfile.py \\
        --headless --run-mode sign -u 10 -r 10 -t 5m

    # Standalone verification over a recorded file:
    REKOR_UUID_FILE=rekor_uuids.txt locust -f tas_perf/locustfile.py \\
        --headless --run-mode verify -u 40 -r 40 -t 5m

``-u`` should equal the sum of the pool sizes (``SIGN_VUS`` +
``VERIFY_VUS``); ``python -m tas_perf.runner`` computes it for you.
"""

from __future__ import annotations

import logging

import gevent
from locust import events

from tas_perf.config import RUN_MODES, get_config
from tas_perf.context import RunContext
from tas_perf.errors import TasPerfError
from tas_perf.scenarios.signing import SigningUser
from tas_perf.scenarios.verification import VerificationUser
from tas_perf.scheduler import apply_plans, plan_workloads, prepare_run, publish_shared_token

__all__ = ["SigningUser", "VerificationUser"]

logger = logging.getLogger(__name__)

# Exit code for runs aborted during setup (bad settings, rejected credentials).
EXIT_SETUP_FAILURE = 2


@events.init_command_line_parser.add_listener
def _add_run_mode_argument(parser):
    parser.add_argument(
        "--run-mode",
        type=str,
        choices=RUN_MODES,
        env_var="RUN_MODE",
        default=get_config().RUN_MODE,
        help="Which workloads to run: sign, verify, or sign-verify",
    )


@events.init.add_listener
def _configure_workloads(environment, **_kwargs):
    """
    Plan the pools and attach the run context.

    Skipped when a context is already attached, which is how
    :mod:`tas_perf.runner` drives the same user classes in-process.
    """
    if RunContext.is_attached(environment):
        return

    cfg = get_config()
    mode = getattr(environment.parsed_options, "run_mode", None) or cfg.RUN_MODE
    try:
        context = prepare_run(cfg, mode)
        plans = plan_workloads(cfg, mode)
    except TasPerfError as exc:
        logger.error("Invalid configuration: %s", exc)
        raise SystemExit(EXIT_SETUP_FAILURE) from exc

    apply_plans(plans, cfg)
    environment.user_classes = [plan.user_class for plan in plans]
    context.attach(environment)
    for plan in plans:
        logger.info("%s: %d users for %ds", plan.name, plan.vus, plan.duration)


@events.test_start.add_listener
def _publish_token(environment, **_kwargs):
    """Fetch the shared token; abort the whole run if the exchange fails."""
    context = RunContext.of(environment)
    try:
        publish_shared_token(context)
    except TasPerfError as exc:
        logger.error("Aborting run: %s", exc)
        environment.process_exit_code = EXIT_SETUP_FAILURE
        if environment.runner is not None:
            gevent.spawn(environment.runner.quit)


@events.test_stop.add_listener
def _close_recorder(environment, **_kwargs):
    if RunContext.is_attached(environment):
        context = RunContext.of(environment)
        context.close()
        logger.info("Shared entry pool holds %d entries", len(context.entries))
