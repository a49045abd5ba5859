"""Exception hierarchy for ucan-identity.

Every fallible public operation raises a subclass of :class:`UcanError`.
All of them are terminal for the operation that raised them: retrying a
cryptographic, structural, or temporal failure cannot change the outcome.
"""
from __future__ import annotations


class UcanError(Exception):
    """Base class for all ucan-identity errors."""


# ---------------------------------------------------------------------------
# Key and DID errors
# ---------------------------------------------------------------------------


class UnsupportedKeyTypeError(UcanError):
    """Raised when a key type tag, alias, or key representation is not recognised."""

    def __init__(self, key_type: str, kind: str = "key type") -> None:
        self.key_type = key_type
        self.kind = kind
        super().__init__(f'unsupported {kind}: "{key_type}"')


class NotSigningCapableError(UcanError):
    """Raised when a sign operation is requested for a non-signing key type."""

    def __init__(self, key_type: str) -> None:
        self.key_type = key_type
        super().__init__(f"{key_type} keys cannot produce signatures")


class InvalidDidError(UcanError, ValueError):
    """Raised when a DID (or raw public key) is structurally invalid."""

    def __init__(self, did: str, reason: str) -> None:
        self.did = did
        self.reason = reason
        super().__init__(f"Invalid DID {did!r}: {reason}")


class KeyMismatchError(UcanError):
    """Raised when restored key material disagrees with the descriptor."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Key mismatch: {reason}")


# ---------------------------------------------------------------------------
# Token errors
# ---------------------------------------------------------------------------


class MalformedTokenError(UcanError):
    """Raised when a token or token input is structurally invalid."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Malformed token: {reason}")


class TokenExpiredError(UcanError):
    """Raised when ``now`` is past a token's ``exp``."""

    def __init__(self, issuer: str, expired_at: int, now: int) -> None:
        self.issuer = issuer
        self.expired_at = expired_at
        self.now = now
        super().__init__(f"Token issued by {issuer} expired at {expired_at} (now {now})")


class TokenNotYetValidError(UcanError):
    """Raised when ``now`` is before a token's ``nbf``."""

    def __init__(self, issuer: str, not_before: int, now: int) -> None:
        self.issuer = issuer
        self.not_before = not_before
        self.now = now
        super().__init__(
            f"Token issued by {issuer} is not valid before {not_before} (now {now})"
        )


class AudienceMismatchError(UcanError):
    """Raised when a token's ``aud`` is not the expected identity."""

    def __init__(self, expected: str, actual: str) -> None:
        self.expected = expected
        self.actual = actual
        super().__init__(f"Invalid audience: expected {expected}, got {actual}")


class InvalidSignatureError(UcanError):
    """Raised when a token signature does not verify against its issuer."""

    def __init__(self, issuer: str, reason: str = "signature verification failed") -> None:
        self.issuer = issuer
        self.reason = reason
        super().__init__(f"Invalid signature for issuer {issuer}: {reason}")


# ---------------------------------------------------------------------------
# Chain errors
# ---------------------------------------------------------------------------


class MissingProofError(UcanError):
    """Raised when a proof reference cannot be resolved."""

    def __init__(self, reference: str) -> None:
        self.reference = reference
        super().__init__(f"Proof not found: {reference}")


class RootIssuerMismatchError(UcanError):
    """Raised when a chain terminates at an issuer other than the trusted root."""

    def __init__(self, expected: str, actual: str) -> None:
        self.expected = expected
        self.actual = actual
        super().__init__(f"Proof chain root {actual} is not the trusted root {expected}")


class CapabilityDeniedError(UcanError):
    """Raised when a required capability is not granted by the chain."""

    def __init__(self, resource: str, ability: str) -> None:
        self.resource = resource
        self.ability = ability
        super().__init__(f'no capability "{resource} {ability}"')


class FactMismatchError(UcanError):
    """Raised when a required fact is absent or has a different value."""

    def __init__(self, fact: str, reason: str) -> None:
        self.fact = fact
        self.reason = reason
        super().__init__(f'invalid fact "{fact}": {reason}')


__all__ = [
    "AudienceMismatchError",
    "CapabilityDeniedError",
    "FactMismatchError",
    "InvalidDidError",
    "InvalidSignatureError",
    "KeyMismatchError",
    "MalformedTokenError",
    "MissingProofError",
    "NotSigningCapableError",
    "RootIssuerMismatchError",
    "TokenExpiredError",
    "TokenNotYetValidError",
    "UcanError",
    "UnsupportedKeyTypeError",
]
