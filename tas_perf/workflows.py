"""
Signing and verification workflows.

Each workflow is a fixed sequence of HTTP stages executed through a
Locust ``HttpSession`` (or anything with the same ``get``/``post`` and
``catch_response`` protocol).  Stages validate their own responses,
mark the Locust request as failed with a readable message, and raise a
:class:`~tas_perf.errors.TasPerfError` subclass.  The workflow function
catches those at the stage boundary, so a failure skips only the
remaining stages of the current iteration and is reported back in the
returned outcome object, never as an exception.

Key Concepts Demonstrated:
- ``catch_response=True`` for in-band response validation
- Stage gating: each stage runs only if its inputs exist
- Typed outcomes returned to the caller instead of log-line signalling
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field
from typing import Any

from tas_perf.config import Config
from tas_perf.entry_pool import EntrySource
from tas_perf.errors import DependencyError, TasPerfError, ValidationError, body_preview
from tas_perf.helpers import BINARY_HEADERS, JSON_HEADERS, bearer_headers, safe_json, service_url
from tas_perf.payloads import (
    CryptoBundle,
    decode_entry_body,
    decode_signature,
    entry_uuid_from_location,
    extract_certificate,
    has_signature_block,
    hashedrekord_entry,
    rfc3161_entry,
    signing_cert_request,
)

logger = logging.getLogger(__name__)

# Request names as they appear in Locust statistics.
STAGE_CRYPTO = "Helper: Get Crypto Material"
STAGE_CERTIFICATE = "Fulcio: Request Certificate"
STAGE_HASHED_ENTRY = "Rekor: Create HashedRekord Entry"
STAGE_TIMESTAMP = "TSA: Request Timestamp"
STAGE_TIMESTAMP_ENTRY = "Rekor: Create RFC3161 Entry"
STAGE_GET_ENTRY = "Rekor: Get Log Entry by UUID"
STAGE_CERTCHAIN = "TSA: Get Certificate Chain"

CHECK_ENTRY_STATUS = "Rekor GET returned HTTP 200"
CHECK_ENTRY_UUID = "Rekor response contains the correct entry UUID"
CHECK_ENTRY_JSON = "Rekor response body was valid JSON"
CHECK_ENTRY_SIGNATURE = "Rekor entry body contains a signature block"
CHECK_CERTCHAIN_STATUS = "TSA GET certchain returned HTTP 200"

ENTRIES_PATH = "/api/v1/log/entries"


@dataclass
class SigningOutcome:
    """What one signing iteration achieved."""

    bundle: CryptoBundle | None = None
    certificate: str | None = None
    hashed_entry_created: bool = False
    entry_uuid: str | None = None
    timestamp_entry_created: bool = False
    errors: list[TasPerfError] = field(default_factory=list)

    @property
    def failed(self) -> bool:
        return bool(self.errors)


@dataclass
class VerificationOutcome:
    """Check results of one verification iteration, keyed by check name."""

    entry_uuid: str
    checks: dict[str, bool] = field(default_factory=dict)

    @property
    def passed(self) -> bool:
        return all(self.checks.values())


def _expect_status(response: Any, expected: int, stage: str) -> None:
    """Fail the Locust request and raise unless *response* has *expected* status."""
    if response.status_code != expected:
        response.failure(f"Expected {expected}, got {response.status_code}")
        raise DependencyError(stage, status=response.status_code, body=response.text)


# ---------------------------------------------------------------------------
# Signing stages
# ---------------------------------------------------------------------------


def fetch_crypto_bundle(client: Any, cfg: type[Config]) -> CryptoBundle:
    """GET fresh signing material from the crypto helper."""
    params = {"payload": cfg.PAYLOAD_SIZE} if cfg.PAYLOAD_SIZE else None
    with client.get(
        service_url(cfg.HELPER_URL, "/generate-payloads"),
        params=params,
        name=STAGE_CRYPTO,
        timeout=cfg.REQUEST_TIMEOUT,
        catch_response=True,
    ) as response:
        _expect_status(response, 200, STAGE_CRYPTO)
        try:
            bundle = CryptoBundle.from_json(safe_json(response))
        except ValidationError as exc:
            response.failure(str(exc))
            raise
        response.success()
    return bundle


def request_certificate(client: Any, cfg: type[Config], token: str, bundle: CryptoBundle) -> str:
    """
    Ask the certificate authority for a signing certificate.

    Returns:
        The first PEM certificate in the response body.

    Raises:
        DependencyError: Status other than 201.
        ValidationError: 201 without a PEM certificate block.
    """
    with client.post(
        service_url(cfg.FULCIO_URL, "/api/v1/signingCert"),
        json=signing_cert_request(bundle),
        headers=bearer_headers(token),
        name=STAGE_CERTIFICATE,
        timeout=cfg.REQUEST_TIMEOUT,
        catch_response=True,
    ) as response:
        _expect_status(response, 201, STAGE_CERTIFICATE)
        certificate = extract_certificate(response.text)
        if certificate is None:
            response.failure("Fulcio response contains no PEM certificate")
            raise ValidationError("Fulcio response contains no PEM certificate")
        response.success()
    return certificate


def append_hashed_entry(
    client: Any, cfg: type[Config], bundle: CryptoBundle, certificate: str
) -> str | None:
    """
    Create a ``hashedrekord`` entry for the bundle's artifact.

    Returns:
        The new entry UUID, or ``None`` if the 201 response carried no
        usable ``Location`` header (the entry exists but is unknown to
        the harness).
    """
    with client.post(
        service_url(cfg.REKOR_URL, ENTRIES_PATH),
        json=hashedrekord_entry(bundle, certificate),
        headers=JSON_HEADERS,
        name=STAGE_HASHED_ENTRY,
        timeout=cfg.REQUEST_TIMEOUT,
        catch_response=True,
    ) as response:
        _expect_status(response, 201, STAGE_HASHED_ENTRY)
        location = response.headers.get("Location")
        response.success()

    entry_uuid = entry_uuid_from_location(location)
    if entry_uuid is None:
        logger.warning("Rekor created an entry without a usable Location header: %r", location)
    return entry_uuid


def request_timestamp(client: Any, cfg: type[Config], signature_b64: str) -> bytes:
    """POST the raw artifact signature to the helper and return the timestamp response."""
    signature = decode_signature(signature_b64)
    with client.post(
        service_url(cfg.HELPER_URL, "/get-timestamp"),
        data=signature,
        headers=BINARY_HEADERS,
        name=STAGE_TIMESTAMP,
        timeout=cfg.REQUEST_TIMEOUT,
        catch_response=True,
    ) as response:
        _expect_status(response, 200, STAGE_TIMESTAMP)
        timestamp_response = response.content or b""
        if not timestamp_response:
            response.failure("TSA helper returned an empty timestamp response")
            raise ValidationError("TSA helper returned an empty timestamp response")
        response.success()
    return timestamp_response


def append_timestamp_entry(client: Any, cfg: type[Config], timestamp_response: bytes) -> None:
    """Create an ``rfc3161`` entry wrapping *timestamp_response*."""
    with client.post(
        service_url(cfg.REKOR_URL, ENTRIES_PATH),
        json=rfc3161_entry(timestamp_response),
        headers=JSON_HEADERS,
        name=STAGE_TIMESTAMP_ENTRY,
        timeout=cfg.REQUEST_TIMEOUT,
        catch_response=True,
    ) as response:
        _expect_status(response, 201, STAGE_TIMESTAMP_ENTRY)
        response.success()


def run_signing_workflow(
    client: Any,
    cfg: type[Config],
    token: str,
    *,
    include_timestamp: bool = True,
) -> SigningOutcome:
    """
    Run one signing iteration.

    Workflow A (certificate, then hashedrekord entry) and Workflow B
    (timestamp, then rfc3161 entry) share only the crypto bundle: a
    failed certificate request does not prevent the timestamp branch.
    A failure to obtain the bundle ends the iteration.

    Returns:
        The outcome; ``outcome.entry_uuid`` is set only when the
        hashedrekord entry was created and its UUID is known.
    """
    outcome = SigningOutcome()

    try:
        outcome.bundle = fetch_crypto_bundle(client, cfg)
    except TasPerfError as exc:
        logger.error("Failed to get crypto components from helper: %s", exc)
        outcome.errors.append(exc)
        return outcome
    bundle = outcome.bundle

    try:
        outcome.certificate = request_certificate(client, cfg, token, bundle)
    except TasPerfError as exc:
        logger.error("%s", exc)
        outcome.errors.append(exc)

    if outcome.certificate is not None:
        try:
            outcome.entry_uuid = append_hashed_entry(client, cfg, bundle, outcome.certificate)
            outcome.hashed_entry_created = True
        except TasPerfError as exc:
            logger.error("%s", exc)
            outcome.errors.append(exc)

    if include_timestamp:
        if not bundle.artifact_signature:
            error = ValidationError("Helper returned no artifact signature, skipping timestamp entry")
            logger.error("%s", error)
            outcome.errors.append(error)
        else:
            try:
                timestamp_response = request_timestamp(client, cfg, bundle.artifact_signature)
                append_timestamp_entry(client, cfg, timestamp_response)
                outcome.timestamp_entry_created = True
            except TasPerfError as exc:
                logger.error("%s", exc)
                outcome.errors.append(exc)

    return outcome


# ---------------------------------------------------------------------------
# Verification stages
# ---------------------------------------------------------------------------


def verify_entry(client: Any, cfg: type[Config], entry_uuid: str) -> dict[str, bool]:
    """
    Fetch one log entry and validate its structure.

    The response must be keyed by the queried UUID, and the entry's
    ``body`` must be base64-encoded JSON holding ``spec.signature``.
    A response without the queried UUID also fails the JSON check, since
    there is no body to decode.  Later checks are not evaluated after a
    failure.

    Returns:
        Check name to pass/fail.
    """
    checks: dict[str, bool] = {}
    with client.get(
        service_url(cfg.REKOR_URL, f"{ENTRIES_PATH}/{entry_uuid}"),
        name=STAGE_GET_ENTRY,
        timeout=cfg.REQUEST_TIMEOUT,
        catch_response=True,
    ) as response:
        checks[CHECK_ENTRY_STATUS] = response.status_code == 200
        if not checks[CHECK_ENTRY_STATUS]:
            response.failure(f"Expected 200, got {response.status_code}")
            logger.error(
                "Rekor GET %s failed: Status=%s, Body=%s",
                entry_uuid,
                response.status_code,
                body_preview(response.text),
            )
            return checks

        entries = safe_json(response)
        checks[CHECK_ENTRY_UUID] = entry_uuid in entries
        if not checks[CHECK_ENTRY_UUID]:
            checks[CHECK_ENTRY_JSON] = False
            response.failure("Rekor response does not contain the queried entry UUID")
            return checks

        try:
            document = decode_entry_body(entries[entry_uuid])
        except ValidationError as exc:
            checks[CHECK_ENTRY_JSON] = False
            response.failure(str(exc))
            return checks
        checks[CHECK_ENTRY_JSON] = True

        checks[CHECK_ENTRY_SIGNATURE] = has_signature_block(document)
        if not checks[CHECK_ENTRY_SIGNATURE]:
            response.failure("Rekor entry body has no signature block")
            return checks

        response.success()
    return checks


def fetch_certificate_chain(client: Any, cfg: type[Config]) -> bool:
    """GET the TSA certificate chain; only the status is checked."""
    with client.get(
        service_url(cfg.TSA_URL, "/certchain"),
        name=STAGE_CERTCHAIN,
        timeout=cfg.REQUEST_TIMEOUT,
        catch_response=True,
    ) as response:
        if response.status_code != 200:
            response.failure(f"Expected 200, got {response.status_code}")
            return False
        response.success()
    return True


def run_verification_workflow(
    client: Any,
    cfg: type[Config],
    source: EntrySource,
    *,
    rng: random.Random | None = None,
) -> VerificationOutcome | None:
    """
    Run one verification iteration against a randomly drawn entry.

    Returns:
        ``None`` without issuing any request when *source* is empty
        (signers have not produced anything yet); otherwise the outcome.
    """
    entry_uuid = source.sample_random(rng)
    if entry_uuid is None:
        return None

    outcome = VerificationOutcome(entry_uuid=entry_uuid)
    outcome.checks.update(verify_entry(client, cfg, entry_uuid))
    if cfg.TSA_URL:
        outcome.checks[CHECK_CERTCHAIN_STATUS] = fetch_certificate_chain(client, cfg)
    return outcome
