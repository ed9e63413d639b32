"""
Shared pytest fixtures for the harness test suite.

Provides configuration factories, canned service responses and fake
sessions so unit tests can drive every workflow stage without a network.

Key Concepts Demonstrated:
- Environment variable overrides applied before the package is imported
- Factory fixtures for configuration variants
- Canned responses matching the documented service contracts
"""

from __future__ import annotations

import os
from typing import Any

import pytest

os.environ["TAS_PERF_ENV"] = "testing"

# Locust applies gevent monkey-patching on import; it must precede any
# module that opens sockets or starts threads.
import locust  # noqa: E402,F401

from tas_perf.config import TestingConfig  # noqa: E402
from tas_perf.scenarios.signing import SigningUser  # noqa: E402
from tas_perf.scenarios.verification import VerificationUser  # noqa: E402
from tas_perf.workflows import (  # noqa: E402
    STAGE_CERTCHAIN,
    STAGE_CERTIFICATE,
    STAGE_CRYPTO,
    STAGE_GET_ENTRY,
    STAGE_HASHED_ENTRY,
    STAGE_TIMESTAMP,
    STAGE_TIMESTAMP_ENTRY,
)
from tests.fakes import FakeResponse, FakeSession  # noqa: E402

LEAF_PEM = (
    "-----BEGIN CERTIFICATE-----\n"
    "MIIBdzCCAR2gAwIBAgIUQmFzZTY0TGVhZkNlcnRpZmljYXRlMAoGCCqGSM49BAMC\n"
    "-----END CERTIFICATE-----"
)
ROOT_PEM = (
    "-----BEGIN CERTIFICATE-----\n"
    "MIIBgDCCASegAwIBAgIUUm9vdENlcnRpZmljYXRlQmFzZTY0MAoGCCqGSM49BAMC\n"
    "-----END CERTIFICATE-----"
)

# Bundle from the documented "happy path" example.
SCENARIO_BUNDLE = {
    "publicKeyBase64": "QQ==",
    "signedEmailAddress": "Zm9v",
    "artifactSignature": "YmFy",
    "artifactHash": "deadbeef",
}


@pytest.fixture
def make_config():
    """
    Factory fixture building ``TestingConfig`` subclasses with overrides.

    Example:
        def test_something(make_config):
            cfg = make_config(TSA_URL="")
    """

    def _make(**overrides: Any) -> type[TestingConfig]:
        return type("OverriddenConfig", (TestingConfig,), overrides)

    return _make


@pytest.fixture
def cfg(make_config):
    """Default testing configuration."""
    return make_config()


@pytest.fixture
def restore_user_classes(monkeypatch):
    """Undo the class attributes the scheduler sets on both user classes."""
    for user_class in (SigningUser, VerificationUser):
        for attribute in ("fixed_count", "duration", "wait_time", "host"):
            monkeypatch.setattr(user_class, attribute, getattr(user_class, attribute))


@pytest.fixture
def signing_routes() -> dict[str, Any]:
    """
    Successful responses for every signing stage.

    Tests replace individual entries to simulate a failing service.
    """
    return {
        STAGE_CRYPTO: FakeResponse(200, json_body=dict(SCENARIO_BUNDLE)),
        STAGE_CERTIFICATE: FakeResponse(201, text=f"{LEAF_PEM}\n{ROOT_PEM}\n"),
        STAGE_HASHED_ENTRY: FakeResponse(
            201,
            json_body={},
            headers={"Location": "/api/v1/log/entries/1234-uuid"},
        ),
        STAGE_TIMESTAMP: FakeResponse(200, content=b"\x30\x82\x01\x0atsr"),
        STAGE_TIMESTAMP_ENTRY: FakeResponse(201, json_body={}),
    }


@pytest.fixture
def signing_session(signing_routes) -> FakeSession:
    return FakeSession(signing_routes)


def entry_response(entry_uuid: str, body: str) -> FakeResponse:
    """A ``GET /api/v1/log/entries/{uuid}`` response carrying *body*."""
    return FakeResponse(200, json_body={entry_uuid: {"body": body, "logIndex": 7}})


@pytest.fixture
def verification_routes() -> dict[str, Any]:
    return {
        STAGE_GET_ENTRY: FakeResponse(404, json_body={"message": "not found"}),
        STAGE_CERTCHAIN: FakeResponse(200, text=ROOT_PEM),
    }
