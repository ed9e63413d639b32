"""
Harness configuration.

Defines environment-specific configuration classes for the load harness.
Each class captures the base URLs of the services under test (identity
provider, certificate authority, transparency log, timestamping
authority and the local crypto helper) together with the sizing of the
two virtual-user pools.  The ``get_config`` factory selects the right
class based on the ``TAS_PERF_ENV`` environment variable (or an explicit
key).

Key Concepts Demonstrated:
- Class-based configuration with inheritance for DRY defaults
- Environment-variable overrides so the same locustfile runs locally,
  in CI and against a staging cluster
- Fail-fast validation of required settings before any network call
"""

from __future__ import annotations

import os

from locust.util.timespan import parse_timespan

from tas_perf.errors import ConfigurationError

RUN_MODE_SIGN = "sign"
RUN_MODE_VERIFY = "verify"
RUN_MODE_SIGN_VERIFY = "sign-verify"
RUN_MODES = (RUN_MODE_SIGN, RUN_MODE_VERIFY, RUN_MODE_SIGN_VERIFY)

TOKEN_MODE_ONCE = "once"
TOKEN_MODE_PER_ITERATION = "per-iteration"
TOKEN_MODES = (TOKEN_MODE_ONCE, TOKEN_MODE_PER_ITERATION)


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None or value.strip() == "":
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    """
    Base (shared) configuration for the harness.

    All environment-specific classes inherit from ``Config`` so that
    common defaults only need to be stated once.  Every setting can be
    overridden by an environment variable of the same name.
    """

    # Identity provider (password grant).  All four are required whenever
    # a signing workload runs.
    OIDC_ISSUER_URL: str = os.environ.get("OIDC_ISSUER_URL", "")
    OIDC_USER: str = os.environ.get("OIDC_USER", "")
    OIDC_PASSWORD: str = os.environ.get("OIDC_PASSWORD", "")
    OIDC_CLIENT_ID: str = os.environ.get("OIDC_CLIENT_ID", "")

    # Services under test.
    FULCIO_URL: str = os.environ.get("FULCIO_URL", "")
    REKOR_URL: str = os.environ.get("REKOR_URL", "")
    TSA_URL: str = os.environ.get("TSA_URL", "")

    # Local helper that fabricates keys/signatures and proxies timestamp
    # requests.
    HELPER_URL: str = os.environ.get("HELPER_URL", "http://localhost:8080")
    PAYLOAD_SIZE: str = os.environ.get("PAYLOAD_SIZE", "")

    RUN_MODE: str = os.environ.get("RUN_MODE", RUN_MODE_SIGN_VERIFY)
    TOKEN_MODE: str = os.environ.get("TOKEN_MODE", TOKEN_MODE_ONCE)

    # Pool sizing.  Durations use Locust timespan syntax ("90s", "10m").
    SIGN_VUS: int = int(os.environ.get("SIGN_VUS") or "10")
    VERIFY_VUS: int = int(os.environ.get("VERIFY_VUS") or "40")
    TEST_DURATION: str = os.environ.get("TEST_DURATION", "10m")
    SIGN_DURATION: str = os.environ.get("SIGN_DURATION", "")
    VERIFY_DURATION: str = os.environ.get("VERIFY_DURATION", "")
    THINK_TIME: float = float(os.environ.get("THINK_TIME") or "0")

    # Identifier files: input of the standalone verifier, output of signers.
    REKOR_UUID_FILE: str = os.environ.get("REKOR_UUID_FILE", "")
    UUID_OUTPUT_FILE: str = os.environ.get("UUID_OUTPUT_FILE", "")

    INCLUDE_TIMESTAMP_ENTRIES: bool = _env_bool("INCLUDE_TIMESTAMP_ENTRIES", True)

    # Seconds.  REQUEST_TIMEOUT bounds every outbound call; TOKEN_WAIT_TIMEOUT
    # bounds how long a signing VU waits for the shared token.
    REQUEST_TIMEOUT: float = float(os.environ.get("REQUEST_TIMEOUT") or "30")
    TOKEN_WAIT_TIMEOUT: float = float(os.environ.get("TOKEN_WAIT_TIMEOUT") or "60")
    # Grace period for in-flight iterations once the run is stopped.
    STOP_TIMEOUT: float = float(os.environ.get("STOP_TIMEOUT") or "30")

    LOG_LEVEL: str = os.environ.get("LOG_LEVEL", "INFO")


class DevelopmentConfig(Config):
    """
    Local-stack overrides.

    Points every service at the ports used by a locally deployed
    pipeline so a bare ``locust -f`` works without exporting URLs.
    """

    FULCIO_URL: str = os.environ.get("FULCIO_URL", "http://localhost:5555")
    REKOR_URL: str = os.environ.get("REKOR_URL", "http://localhost:3000")
    TSA_URL: str = os.environ.get("TSA_URL", "http://localhost:3004/api/v1/timestamp")


class TestingConfig(Config):
    """
    Test-suite overrides.

    Points service URLs at non-routable test hosts so that unit tests
    never accidentally hit real services, and shrinks pools, durations
    and timeouts so in-process runs complete quickly.
    """

    OIDC_ISSUER_URL: str = os.environ.get("TEST_OIDC_ISSUER_URL", "http://oidc.test/realms/test")
    OIDC_USER: str = os.environ.get("TEST_OIDC_USER", "jdoe")
    OIDC_PASSWORD: str = os.environ.get("TEST_OIDC_PASSWORD", "secure")
    OIDC_CLIENT_ID: str = os.environ.get("TEST_OIDC_CLIENT_ID", "trusted-artifact-signer")
    FULCIO_URL: str = os.environ.get("TEST_FULCIO_URL", "http://fulcio.test")
    REKOR_URL: str = os.environ.get("TEST_REKOR_URL", "http://rekor.test")
    TSA_URL: str = os.environ.get("TEST_TSA_URL", "http://tsa.test")
    HELPER_URL: str = os.environ.get("TEST_HELPER_URL", "http://helper.test")
    SIGN_VUS: int = 2
    VERIFY_VUS: int = 2
    TEST_DURATION: str = "2s"
    REQUEST_TIMEOUT: float = 2.0
    TOKEN_WAIT_TIMEOUT: float = 2.0
    STOP_TIMEOUT: float = 5.0


class ProductionConfig(Config):
    """
    Cluster overrides.

    Every service URL is expected to come from the environment set by
    the CI job or operator; nothing is defaulted.
    """


# Lookup table mapping environment name strings to their config classes.
config = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
    "default": DevelopmentConfig,
}


def get_config(env: str | None = None) -> type[Config]:
    """
    Return the configuration class for the given environment.

    Args:
        env: One of ``"development"``, ``"testing"``, or
            ``"production"``.  When *None*, the ``TAS_PERF_ENV``
            environment variable is consulted, falling back to
            ``"development"`` if unset.

    Returns:
        The ``Config`` subclass matching the requested environment,
        or ``DevelopmentConfig`` if the key is unrecognised.
    """
    if env is None:
        env = os.environ.get("TAS_PERF_ENV", "development")
    return config.get(env, config["default"])


def duration_seconds(value: str, setting: str) -> int:
    """
    Convert a Locust timespan string to whole seconds.

    Raises:
        ConfigurationError: If *value* is empty, malformed or not positive.
    """
    if not value or not value.strip():
        raise ConfigurationError(f"{setting} must be set")
    try:
        seconds = parse_timespan(value.strip())
    except ValueError as exc:
        raise ConfigurationError(f"{setting} is not a valid duration: {value!r}") from exc
    if seconds <= 0:
        raise ConfigurationError(f"{setting} must be greater than zero")
    return seconds


def sign_duration(cfg: type[Config]) -> int:
    """Duration of the signing pool in seconds (falls back to TEST_DURATION)."""
    if cfg.SIGN_DURATION:
        return duration_seconds(cfg.SIGN_DURATION, "SIGN_DURATION")
    return duration_seconds(cfg.TEST_DURATION, "TEST_DURATION")


def verify_duration(cfg: type[Config]) -> int:
    """Duration of the verification pool in seconds (falls back to TEST_DURATION)."""
    if cfg.VERIFY_DURATION:
        return duration_seconds(cfg.VERIFY_DURATION, "VERIFY_DURATION")
    return duration_seconds(cfg.TEST_DURATION, "TEST_DURATION")


def _missing(cfg: type[Config], names: tuple[str, ...]) -> list[str]:
    return [name for name in names if not str(getattr(cfg, name, "") or "").strip()]


def validate_for_mode(cfg: type[Config], mode: str) -> None:
    """
    Check that every setting *mode* depends on is present.

    All missing settings are reported together so an operator can fix
    the environment in one pass.

    Raises:
        ConfigurationError: On an unknown mode or token mode, or when any
            required setting is empty.
    """
    if mode not in RUN_MODES:
        raise ConfigurationError(
            f"Unknown run mode {mode!r}; expected one of {', '.join(RUN_MODES)}"
        )
    if cfg.TOKEN_MODE not in TOKEN_MODES:
        raise ConfigurationError(
            f"Unknown token mode {cfg.TOKEN_MODE!r}; expected one of {', '.join(TOKEN_MODES)}"
        )

    required: tuple[str, ...] = ()
    if mode in (RUN_MODE_SIGN, RUN_MODE_SIGN_VERIFY):
        required += (
            "OIDC_ISSUER_URL",
            "OIDC_USER",
            "OIDC_PASSWORD",
            "OIDC_CLIENT_ID",
            "FULCIO_URL",
            "REKOR_URL",
            "HELPER_URL",
        )
    if mode == RUN_MODE_VERIFY:
        required += ("REKOR_URL", "REKOR_UUID_FILE")

    missing = _missing(cfg, required)
    if missing:
        raise ConfigurationError(f"Missing required settings: {', '.join(missing)}")

    if mode in (RUN_MODE_SIGN, RUN_MODE_SIGN_VERIFY) and cfg.SIGN_VUS <= 0:
        raise ConfigurationError("SIGN_VUS must be greater than zero")
    if mode in (RUN_MODE_VERIFY, RUN_MODE_SIGN_VERIFY) and cfg.VERIFY_VUS <= 0:
        raise ConfigurationError("VERIFY_VUS must be greater than zero")
