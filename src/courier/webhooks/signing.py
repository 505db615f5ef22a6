"""HMAC signing for outbound webhooks and verification of inbound ones.

Outbound bodies are signed with the outgoing secret over the exact string
that goes on the wire. Inbound requests are checked by a Verifier, either
header HMAC over the raw body or a shared secret embedded in the body.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any, Protocol

from courier.exceptions import ConfigurationError, SerializationError

if TYPE_CHECKING:
    from courier.config import Settings

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-Signature"
EVENT_TYPE_HEADER = "X-Event-Type"
DISPATCH_ID_HEADER = "X-Dispatch-Id"

# Field less capable senders put the shared secret in
BODY_SECRET_FIELD = "WEBHOOK_SECRET"

_SIGNATURE_PREFIX = "sha256="


def _to_bytes(value: str | bytes) -> bytes:
    return value if isinstance(value, bytes) else value.encode("utf-8")


def compute_signature(payload: str | bytes, secret: str) -> str:
    """Compute the HMAC-SHA256 hex digest of a webhook body.

    Args:
        payload: Exact body that is (or was) transmitted.
        secret: Shared secret for HMAC.

    Returns:
        Lowercase hex digest.
    """
    return hmac.new(
        key=secret.encode("utf-8"),
        msg=_to_bytes(payload),
        digestmod=hashlib.sha256,
    ).hexdigest()


def verify_signature(payload: str | bytes, secret: str, signature: str) -> bool:
    """Verify an HMAC-SHA256 hex digest in constant time.

    A ``sha256=`` prefix on ``signature`` is accepted.
    """
    if signature.startswith(_SIGNATURE_PREFIX):
        signature = signature[len(_SIGNATURE_PREFIX) :]
    expected = compute_signature(payload, secret)
    # bytes: compare_digest rejects non-ASCII str input
    return hmac.compare_digest(expected.encode("ascii"), signature.strip().lower().encode("utf-8"))


def _check_keys(value: Any) -> None:
    # json.dumps would silently turn 1 into "1", so the body would not match the payload
    if isinstance(value, Mapping):
        for key, item in value.items():
            if not isinstance(key, str):
                raise TypeError(f"keys must be strings, got {type(key).__name__} {key!r}")
            _check_keys(item)
    elif isinstance(value, list | tuple):
        for item in value:
            _check_keys(item)


def serialize_payload(payload: Mapping[str, Any]) -> str:
    """Serialize a payload to the compact JSON string that is signed and sent.

    Key order is preserved so the body matches what the caller built.

    Raises:
        SerializationError: If the payload is not a mapping or holds keys or
            values JSON cannot represent faithfully (non-string keys, circular
            references, NaN, datetimes).
    """
    if not isinstance(payload, Mapping):
        raise SerializationError("payload", f"must be a mapping, got {type(payload).__name__}")
    try:
        _check_keys(payload)
        return json.dumps(
            dict(payload),
            separators=(",", ":"),
            ensure_ascii=False,
            allow_nan=False,
        )
    except (TypeError, ValueError, RecursionError) as e:
        raise SerializationError("payload", f"not JSON-serializable: {e}") from e


class Signer:
    """Signs outbound webhook bodies and verifies inbound ones.

    Pure: results depend only on the body and the configured secrets.

    Example:
        ```python
        signer = Signer(outgoing_secret="out", incoming_secret="in")
        body = serialize_payload({"orderId": "O1"})
        signature = signer.sign_outgoing(body)
        ```
    """

    def __init__(
        self,
        outgoing_secret: str | None,
        incoming_secret: str | None = None,
    ) -> None:
        self._outgoing_secret = outgoing_secret or None
        self._incoming_secret = incoming_secret or None

    @classmethod
    def from_settings(cls, settings: Settings) -> Signer:
        """Build a signer from the webhook secrets in settings."""
        return cls(
            outgoing_secret=settings.webhook_outgoing_secret,
            incoming_secret=settings.webhook_incoming_secret,
        )

    @property
    def can_sign(self) -> bool:
        """Whether an outgoing secret is configured."""
        return self._outgoing_secret is not None

    def sign_outgoing(self, payload_json: str) -> str:
        """Sign an outbound body with the outgoing secret.

        Raises:
            ConfigurationError: If no outgoing secret is configured.
        """
        if self._outgoing_secret is None:
            raise ConfigurationError("webhook outgoing secret is not configured")
        return compute_signature(payload_json, self._outgoing_secret)

    def verify_incoming(self, raw_body: str | bytes, signature_header: str | None) -> bool:
        """Check an inbound body against its signature header.

        Fails closed when the header or the incoming secret is missing.
        """
        if not signature_header or self._incoming_secret is None:
            return False
        return verify_signature(raw_body, self._incoming_secret, signature_header)


class Verifier(Protocol):
    """Authenticates an inbound webhook request."""

    def verify(
        self,
        raw_body: str | bytes,
        headers: Mapping[str, str],
        payload: Mapping[str, Any],
    ) -> bool: ...


class HmacHeaderVerifier:
    """Accepts requests whose header carries a valid HMAC of the raw body."""

    def __init__(self, signer: Signer, header_name: str = SIGNATURE_HEADER) -> None:
        self._signer = signer
        self._header_name = header_name.lower()

    def verify(
        self,
        raw_body: str | bytes,
        headers: Mapping[str, str],
        payload: Mapping[str, Any],
    ) -> bool:
        signature = next(
            (v for k, v in headers.items() if k.lower() == self._header_name),
            None,
        )
        return self._signer.verify_incoming(raw_body, signature)


class BodySecretVerifier:
    """Accepts requests that embed the shared secret as a body field."""

    def __init__(self, secret: str | None, field: str = BODY_SECRET_FIELD) -> None:
        self._secret = secret or None
        self._field = field

    def verify(
        self,
        raw_body: str | bytes,
        headers: Mapping[str, str],
        payload: Mapping[str, Any],
    ) -> bool:
        provided = payload.get(self._field)
        if self._secret is None or not isinstance(provided, str) or not provided:
            return False
        return hmac.compare_digest(provided.encode("utf-8"), self._secret.encode("utf-8"))


class AnyOfVerifier:
    """Accepts a request if any of the wrapped strategies accepts it."""

    def __init__(self, *verifiers: Verifier) -> None:
        if not verifiers:
            raise ValueError("AnyOfVerifier needs at least one verifier")
        self._verifiers = verifiers

    def verify(
        self,
        raw_body: str | bytes,
        headers: Mapping[str, str],
        payload: Mapping[str, Any],
    ) -> bool:
        return any(v.verify(raw_body, headers, payload) for v in self._verifiers)


def build_verifier(settings: Settings, signer: Signer) -> Verifier:
    """Select the inbound verification strategy configured in settings."""
    mode = settings.webhook_incoming_auth
    if mode == "hmac":
        return HmacHeaderVerifier(signer)
    if mode == "body_secret":
        return BodySecretVerifier(settings.webhook_incoming_secret)
    return AnyOfVerifier(
        HmacHeaderVerifier(signer),
        BodySecretVerifier(settings.webhook_incoming_secret),
    )
