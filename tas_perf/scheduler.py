"""
Dual-workload scheduler.

Turns configuration into a declarative run plan (one
:class:`WorkloadPlan` per virtual-user pool), prepares the shared
:class:`~tas_perf.context.RunContext`, and performs the one-time token
exchange before any signing user starts.  The two pools share nothing
but the identifier source; the scheduler does not wait for
entries to exist before verifiers start.

Both entrypoints use this module: :mod:`tas_perf.locustfile` from Locust
event hooks, :mod:`tas_perf.runner` directly.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass

from locust import constant

from tas_perf.config import (
    RUN_MODE_SIGN,
    RUN_MODE_SIGN_VERIFY,
    RUN_MODE_VERIFY,
    TOKEN_MODE_ONCE,
    Config,
    sign_duration,
    validate_for_mode,
    verify_duration,
)
from tas_perf.context import RunContext
from tas_perf.entry_pool import EntryRecorder, SharedEntryPool, load_entry_file
from tas_perf.errors import TasPerfError
from tas_perf.identity import OidcCredentials, fetch_token, warn_if_token_expires_early
from tas_perf.scenarios.base import PipelineUser
from tas_perf.scenarios.signing import SigningUser
from tas_perf.scenarios.verification import VerificationUser

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WorkloadPlan:
    """One pool: which user class, how many of them, for how long."""

    name: str
    user_class: type[PipelineUser]
    vus: int
    duration: int


def signs(mode: str) -> bool:
    return mode in (RUN_MODE_SIGN, RUN_MODE_SIGN_VERIFY)


def verifies(mode: str) -> bool:
    return mode in (RUN_MODE_VERIFY, RUN_MODE_SIGN_VERIFY)


def plan_workloads(cfg: type[Config], mode: str) -> list[WorkloadPlan]:
    """
    Build the pool plan for *mode*.

    Raises:
        ConfigurationError: On invalid settings for the mode.
    """
    validate_for_mode(cfg, mode)
    plans = []
    if signs(mode):
        plans.append(WorkloadPlan("signing_workload", SigningUser, cfg.SIGN_VUS, sign_duration(cfg)))
    if verifies(mode):
        plans.append(
            WorkloadPlan("verification_workload", VerificationUser, cfg.VERIFY_VUS, verify_duration(cfg))
        )
    return plans


def apply_plans(plans: list[WorkloadPlan], cfg: type[Config]) -> None:
    """Configure each plan's user class for Locust to spawn."""
    for plan in plans:
        plan.user_class.fixed_count = plan.vus
        plan.user_class.duration = plan.duration
        plan.user_class.wait_time = constant(cfg.THINK_TIME)
        # Every request uses an absolute URL; Locust still requires a host.
        plan.user_class.host = cfg.REKOR_URL or cfg.HELPER_URL


def prepare_run(cfg: type[Config], mode: str) -> RunContext:
    """
    Build the shared state for a run.

    A combined or signing run gets an empty live pool; a standalone
    verification run loads its identifiers from ``REKOR_UUID_FILE``.

    Raises:
        ConfigurationError: On missing settings or an unreadable UUID file.
    """
    validate_for_mode(cfg, mode)

    if mode == RUN_MODE_VERIFY:
        entries = load_entry_file(cfg.REKOR_UUID_FILE)
    else:
        entries = SharedEntryPool()

    recorder = None
    if signs(mode) and cfg.UUID_OUTPUT_FILE:
        recorder = EntryRecorder(cfg.UUID_OUTPUT_FILE)

    credentials = OidcCredentials.from_config(cfg) if signs(mode) else None
    return RunContext(
        config=cfg,
        mode=mode,
        entries=entries,
        credentials=credentials,
        recorder=recorder,
    )


def publish_shared_token(
    context: RunContext,
    *,
    fetch: Callable[..., str] | None = None,
) -> str | None:
    """
    Fetch the run's bearer token once and publish it to signing users.

    Skipped (returns ``None``) when the run does not sign, when the token
    mode is per-iteration, or when a token is already published.  On
    failure the handle is failed too, so any waiting user is released.

    Raises:
        AuthenticationError: The identity provider rejected the exchange.
    """
    cfg = context.config
    if context.credentials is None or cfg.TOKEN_MODE != TOKEN_MODE_ONCE or context.token.is_set:
        return None

    logger.info("Fetching a single OIDC token for the entire test run...")
    try:
        token = (fetch or fetch_token)(context.credentials, timeout=cfg.REQUEST_TIMEOUT)
    except TasPerfError as exc:
        context.token.fail(exc)
        raise

    warn_if_token_expires_early(token, sign_duration(cfg))
    context.token.publish(token)
    logger.info("OIDC token successfully retrieved. Starting VU iterations.")
    return token
