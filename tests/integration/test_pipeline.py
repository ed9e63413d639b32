"""
End-to-end tests against the fake service stack.

Workflows run through a real Locust ``HttpSession`` over HTTP, and short
in-process runs exercise the scheduler, both user classes and the UUID
file hand-off between a signing run and a standalone verification run.

Key SDET Concepts Demonstrated:
- Live local server fixtures instead of mocks
- Asserting on Locust request events rather than log output
- Chaining runs through a file artifact
"""

import base64
import json

import pytest
from locust.env import Environment

from tas_perf import runner
from tas_perf.config import RUN_MODE_SIGN, RUN_MODE_SIGN_VERIFY, RUN_MODE_VERIFY
from tas_perf.context import RunContext
from tas_perf.entry_pool import SharedEntryPool, load_entry_file
from tas_perf.errors import AuthenticationError
from tas_perf.identity import OidcCredentials, fetch_token, token_expiry
from tas_perf.scenarios.signing import SigningUser
from tas_perf.scenarios.verification import VerificationUser
from tas_perf.scheduler import prepare_run
from tas_perf.workflows import (
    STAGE_CERTIFICATE,
    STAGE_GET_ENTRY,
    STAGE_HASHED_ENTRY,
    run_signing_workflow,
    run_verification_workflow,
)

pytestmark = pytest.mark.integration


@pytest.fixture
def stack_token(stack_config):
    return fetch_token(OidcCredentials.from_config(stack_config), timeout=5)


class TestIdentityProvider:
    """Token exchange against the fake OIDC endpoint."""

    def test_password_grant_returns_jwt(self, stack_token):
        assert token_expiry(stack_token) is not None

    def test_wrong_password_rejected(self, make_config, stack_config):
        cfg = make_config(OIDC_ISSUER_URL=stack_config.OIDC_ISSUER_URL, OIDC_PASSWORD="wrong")

        with pytest.raises(AuthenticationError) as exc_info:
            fetch_token(OidcCredentials.from_config(cfg), timeout=5)

        assert exc_info.value.status == 401


class TestWorkflowsOverHttp:
    """One signing iteration followed by verification of its entry."""

    def test_signed_entry_verifies(self, http_session, stack_config, stack_token, stack_state, request_log):
        # Arrange
        pool = SharedEntryPool()

        # Act
        signing = run_signing_workflow(http_session, stack_config, stack_token)
        pool.append(signing.entry_uuid)
        verification = run_verification_workflow(http_session, stack_config, pool)

        # Assert
        assert not signing.failed
        assert signing.timestamp_entry_created
        assert stack_state.uuids_of_kind("hashedrekord") == [signing.entry_uuid]
        assert len(stack_state.uuids_of_kind("rfc3161")) == 1
        assert verification.passed
        assert all(event["exception"] is None for event in request_log)

    def test_hashedrekord_entry_embeds_issued_certificate(self, http_session, stack_config, stack_token, stack_state):
        signing = run_signing_workflow(http_session, stack_config, stack_token, include_timestamp=False)

        stored = stack_state.entries[signing.entry_uuid]
        document = json.loads(base64.b64decode(stored["body"]))
        embedded = base64.b64decode(document["spec"]["signature"]["publicKey"]["content"]).decode()
        assert embedded == signing.certificate
        assert document["spec"]["data"]["hash"]["value"] == stack_state.artifact_hash.hex()

    def test_certificate_outage(self, stack_app, http_session, stack_config, stack_token, stack_state, request_log):
        # Arrange
        stack_app.config["FAIL_CERTIFICATES"] = True

        # Act
        signing = run_signing_workflow(http_session, stack_config, stack_token)

        # Assert
        assert signing.entry_uuid is None
        assert stack_state.uuids_of_kind("hashedrekord") == []
        assert signing.timestamp_entry_created
        failed = [event["name"] for event in request_log if event["exception"] is not None]
        assert failed == [STAGE_CERTIFICATE]

    def test_created_entry_without_location(self, stack_app, http_session, stack_config, stack_token, stack_state):
        stack_app.config["OMIT_LOCATION"] = True

        signing = run_signing_workflow(http_session, stack_config, stack_token, include_timestamp=False)

        assert signing.hashed_entry_created
        assert signing.entry_uuid is None
        assert len(stack_state.uuids_of_kind("hashedrekord")) == 1

    def test_unknown_entry_fails_verification(self, http_session, stack_config, request_log):
        outcome = run_verification_workflow(http_session, stack_config, SharedEntryPool(["0" * 64]))

        assert not outcome.passed
        failed = [event["name"] for event in request_log if event["exception"] is not None]
        assert failed == [STAGE_GET_ENTRY]


class TestUsersOverHttp:
    """Locust users driving their own ``HttpSession`` against the stack."""

    def test_signer_feeds_verifier(self, stack_config, stack_token, stack_state, restore_user_classes, live_stack):
        # Arrange
        context = prepare_run(stack_config, RUN_MODE_SIGN_VERIFY)
        context.token.publish(stack_token)
        environment = Environment(user_classes=[SigningUser, VerificationUser])
        context.attach(environment)
        fired = []
        environment.events.request.add_listener(lambda **kwargs: fired.append(kwargs))
        SigningUser.host = live_stack
        VerificationUser.host = live_stack
        signer = SigningUser(environment)
        verifier = VerificationUser(environment)

        # Act
        signer.on_start()
        signer.sign()
        verifier.on_start()
        verifier.verify()

        # Assert
        assert context.entries.snapshot() == stack_state.uuids_of_kind("hashedrekord")
        assert len(context.entries) == 1
        assert STAGE_GET_ENTRY in [event["name"] for event in fired]
        assert all(event["exception"] is None for event in fired)


class TestInProcessRuns:
    """Short runs through ``tas_perf.runner.run``."""

    def test_combined_run(self, make_config, stack_config, stack_state, restore_user_classes, tmp_path):
        # Arrange
        output = tmp_path / "rekor_uuids.txt"
        cfg = make_config(
            **_settings(stack_config),
            RUN_MODE=RUN_MODE_SIGN_VERIFY,
            UUID_OUTPUT_FILE=str(output),
        )

        # Act
        exit_code, environment = runner.run(cfg)

        # Assert
        assert exit_code == runner.EXIT_PASS
        assert environment.stats.total.num_requests > 0
        assert environment.stats.get(STAGE_HASHED_ENTRY, "POST").num_requests > 0
        assert environment.stats.get(STAGE_GET_ENTRY, "GET").num_failures == 0
        recorded = output.read_text(encoding="utf-8").splitlines()
        assert sorted(recorded) == sorted(stack_state.uuids_of_kind("hashedrekord"))

    def test_signing_run_feeds_standalone_verification(
        self, make_config, stack_config, stack_state, restore_user_classes, tmp_path
    ):
        # Arrange
        output = tmp_path / "rekor_uuids.txt"
        signing_cfg = make_config(**_settings(stack_config), RUN_MODE=RUN_MODE_SIGN, UUID_OUTPUT_FILE=str(output))
        verify_cfg = make_config(**_settings(stack_config), RUN_MODE=RUN_MODE_VERIFY, REKOR_UUID_FILE=str(output))

        # Act
        signing_exit, _ = runner.run(signing_cfg)
        verify_exit, environment = runner.run(verify_cfg)

        # Assert
        assert signing_exit == runner.EXIT_PASS
        assert len(load_entry_file(output)) > 0
        assert verify_exit == runner.EXIT_PASS
        assert environment.stats.get(STAGE_GET_ENTRY, "GET").num_requests > 0
        assert environment.stats.get(STAGE_HASHED_ENTRY, "POST").num_requests == 0

    def test_rejected_credentials_abort_before_load(
        self, make_config, stack_config, stack_state, restore_user_classes
    ):
        cfg = make_config(**_settings(stack_config), RUN_MODE=RUN_MODE_SIGN, OIDC_PASSWORD="wrong")

        with pytest.raises(AuthenticationError):
            runner.run(cfg)

        assert stack_state.entries == {}


def _settings(cfg):
    """Service settings of *cfg* as overrides for another configuration."""
    names = (
        "OIDC_ISSUER_URL",
        "FULCIO_URL",
        "REKOR_URL",
        "HELPER_URL",
        "TSA_URL",
        "REQUEST_TIMEOUT",
        "TOKEN_WAIT_TIMEOUT",
    )
    return {name: getattr(cfg, name) for name in names}
