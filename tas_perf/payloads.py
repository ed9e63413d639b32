"""
Request builders and response parsers for the signing pipeline.

Everything in this module is pure: no I/O, no Locust objects.  The
workflows call these functions to shape outgoing JSON and to pull the
few structural facts the harness cares about (a PEM certificate, an
entry UUID, a decoded log-entry body) out of responses.
"""

from __future__ import annotations

import base64
import binascii
import json
import re
from dataclasses import dataclass
from typing import Any

from tas_perf.errors import ValidationError

API_VERSION = "0.0.1"
KIND_HASHEDREKORD = "hashedrekord"
KIND_RFC3161 = "rfc3161"

PEM_BEGIN = "-----BEGIN CERTIFICATE-----"
PEM_END = "-----END CERTIFICATE-----"

# First BEGIN...END block, non-greedy so a chain yields only the leaf.
_CERTIFICATE_RE = re.compile(
    re.escape(PEM_BEGIN) + r".+?" + re.escape(PEM_END),
    re.DOTALL,
)


@dataclass(frozen=True)
class CryptoBundle:
    """Signing material returned by the crypto helper for one attempt."""

    public_key_base64: str
    signed_email_address: str
    artifact_signature: str
    artifact_hash: str

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> CryptoBundle:
        """
        Build a bundle from the helper's JSON response.

        ``artifactSignature`` may be empty (the timestamp branch is then
        skipped); the other three fields are required.

        Raises:
            ValidationError: If a required field is missing or not a string.
        """
        fields = {
            "publicKeyBase64": data.get("publicKeyBase64"),
            "signedEmailAddress": data.get("signedEmailAddress"),
            "artifactHash": data.get("artifactHash"),
        }
        missing = [name for name, value in fields.items() if not isinstance(value, str) or not value]
        if missing:
            raise ValidationError(f"Helper response missing {', '.join(missing)}")

        signature = data.get("artifactSignature") or ""
        if not isinstance(signature, str):
            raise ValidationError("Helper response artifactSignature is not a string")

        return cls(
            public_key_base64=fields["publicKeyBase64"],
            signed_email_address=fields["signedEmailAddress"],
            artifact_signature=signature,
            artifact_hash=fields["artifactHash"],
        )


def extract_certificate(body: str | None) -> str | None:
    """
    Return the first PEM certificate block found in *body*.

    The match is inclusive of the BEGIN/END markers.  When the body holds
    a chain, only the first (leaf) certificate is returned.

    Returns:
        The PEM text, or ``None`` if no complete block exists.
    """
    if not body:
        return None
    match = _CERTIFICATE_RE.search(body)
    if match is None:
        return None
    return match.group(0)


def entry_uuid_from_location(location: str | None) -> str | None:
    """
    Return the final ``/``-delimited segment of a ``Location`` header.

    Returns:
        The entry UUID, or ``None`` when the header is absent or ends in
        a slash (empty final segment).
    """
    if not location:
        return None
    uuid = location.rsplit("/", 1)[-1]
    return uuid or None


def b64encode_text(value: str | bytes) -> str:
    """Standard base64 of *value* (UTF-8 encoded when given text)."""
    if isinstance(value, str):
        value = value.encode("utf-8")
    return base64.b64encode(value).decode("ascii")


def decode_signature(signature_b64: str) -> bytes:
    """
    Decode a base64 artifact signature to raw bytes.

    Raises:
        ValidationError: If *signature_b64* is not valid standard base64.
    """
    try:
        return base64.b64decode(signature_b64, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValidationError("Artifact signature is not valid base64") from exc


def signing_cert_request(bundle: CryptoBundle) -> dict[str, Any]:
    """Body for ``POST /api/v1/signingCert``."""
    return {
        "publicKey": {"content": bundle.public_key_base64},
        "signedEmailAddress": bundle.signed_email_address,
    }


def hashedrekord_entry(bundle: CryptoBundle, certificate_pem: str) -> dict[str, Any]:
    """
    Body for a ``hashedrekord`` log entry.

    The certificate is embedded as the base64 of its PEM text, which is
    the form the log service expects for ``publicKey.content``.
    """
    return {
        "apiVersion": API_VERSION,
        "kind": KIND_HASHEDREKORD,
        "spec": {
            "signature": {
                "content": bundle.artifact_signature,
                "publicKey": {"content": b64encode_text(certificate_pem)},
            },
            "data": {
                "hash": {"algorithm": "sha256", "value": bundle.artifact_hash},
            },
        },
    }


def rfc3161_entry(timestamp_response: bytes) -> dict[str, Any]:
    """Body for an ``rfc3161`` log entry wrapping a raw timestamp response."""
    return {
        "apiVersion": API_VERSION,
        "kind": KIND_RFC3161,
        "spec": {
            "tsr": {"content": b64encode_text(timestamp_response)},
        },
    }


def decode_entry_body(entry: Any) -> dict[str, Any]:
    """
    Decode the ``body`` field of one log entry.

    Args:
        entry: The value stored under the entry UUID in a
            ``GET /api/v1/log/entries/{uuid}`` response.

    Returns:
        The canonical entry document (``apiVersion``/``kind``/``spec``).

    Raises:
        ValidationError: If the entry has no ``body`` string, or the body
            is not base64-encoded JSON object.
    """
    if not isinstance(entry, dict) or not isinstance(entry.get("body"), str):
        raise ValidationError("Rekor entry has no body")
    try:
        decoded = json.loads(base64.b64decode(entry["body"], validate=True))
    except (binascii.Error, ValueError) as exc:
        # json.JSONDecodeError and UnicodeDecodeError are both ValueErrors.
        raise ValidationError("Rekor response body was not valid JSON") from exc
    if not isinstance(decoded, dict):
        raise ValidationError("Rekor response body was not valid JSON")
    return decoded


def has_signature_block(document: dict[str, Any]) -> bool:
    """True when ``spec.signature`` is present and non-empty."""
    spec = document.get("spec")
    return isinstance(spec, dict) and bool(spec.get("signature"))
