"""UCAN token codec — canonical encoding, decoding, and content identifiers.

Token format
------------
The token is a dot-separated string::

    base64url(header).base64url(payload).base64url(signature)

- header: ``{"alg": "<EdDSA|ES256|ES256K>", "typ": "JWT"}``
- payload: ``ucv``, ``iss``, ``aud``, ``exp``, ``cap`` and the optional
  ``nbf``, ``nnc``, ``fct``, ``prf`` members
- signature: the issuer's signature over ``header.payload`` (ASCII bytes)

The JSON is canonical: keys sorted, no insignificant whitespace, no
duplicate keys, optional members omitted rather than ``null``. Base64url is
unpadded. :func:`decode` rejects anything else, so every accepted token
re-encodes to exactly the same string and therefore the same CID.

Content identifier
------------------
CIDv1, ``raw`` codec (0x55), blake3-256 multihash (0x1e) over the encoded
token string, rendered as multibase base32 lower-case (``b`` prefix).
"""
from __future__ import annotations

import base64
import json
import re
from dataclasses import dataclass
from functools import cached_property
from typing import Any, Optional

from blake3 import blake3

from ucan_identity.capabilities.capability import Capabilities
from ucan_identity.capabilities.values import JsonObject, is_json_value
from ucan_identity.errors import MalformedTokenError

# ---------------------------------------------------------------------------
# Protocol constants
# ---------------------------------------------------------------------------

UCAN_VERSION: str = "0.10.0-canary"
TOKEN_TYPE: str = "JWT"

# Largest integer a JSON number can carry without precision loss.
MAX_TIMESTAMP: int = 2**53 - 1

CID_VERSION: int = 1
RAW_CODEC: int = 0x55
BLAKE3_256: int = 0x1E
_CID_PREFIX: bytes = bytes([CID_VERSION, RAW_CODEC, BLAKE3_256, 32])
MULTIBASE_BASE32: str = "b"

_PAYLOAD_KEYS = frozenset({"ucv", "iss", "aud", "exp", "nbf", "nnc", "fct", "cap", "prf"})
_REQUIRED_PAYLOAD_KEYS = ("ucv", "iss", "aud", "exp", "cap")
_B64URL_PATTERN = re.compile(r"^[A-Za-z0-9_-]*$")


# ---------------------------------------------------------------------------
# Header / payload
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class UcanHeader:
    """The JWT header of a UCAN."""

    alg: str
    typ: str = TOKEN_TYPE

    def to_dict(self) -> dict[str, str]:
        return {"alg": self.alg, "typ": self.typ}

    @classmethod
    def from_dict(cls, data: Any) -> "UcanHeader":
        """Validate and build a header.

        Raises
        ------
        MalformedTokenError
            If the header is not an object with exactly ``alg`` and ``typ``.
        """
        if not isinstance(data, dict):
            raise MalformedTokenError("header must be a JSON object")
        if set(data) != {"alg", "typ"}:
            raise MalformedTokenError(
                f"header must contain exactly 'alg' and 'typ', got {sorted(data)}"
            )
        if not isinstance(data["alg"], str) or not data["alg"]:
            raise MalformedTokenError("header 'alg' must be a non-empty string")
        if data["typ"] != TOKEN_TYPE:
            raise MalformedTokenError(f"header 'typ' must be {TOKEN_TYPE!r}")
        return cls(alg=data["alg"], typ=data["typ"])


@dataclass(frozen=True, eq=False)
class UcanPayload:
    """The claims of a UCAN.

    Parameters
    ----------
    iss:
        DID of the issuer (the signer).
    aud:
        DID of the audience (the identity receiving the grant).
    exp:
        Expiration, Unix seconds.
    capabilities:
        The claimed capabilities (``cap`` on the wire).
    nbf:
        Optional not-before time, Unix seconds.
    facts:
        Optional facts (``fct``).
    proofs:
        Optional proof references (``prf``): CIDs or inline tokens.
    nonce:
        Optional nonce (``nnc``).
    version:
        UCAN protocol version (``ucv``).
    """

    iss: str
    aud: str
    exp: int
    capabilities: Capabilities
    nbf: Optional[int] = None
    facts: Optional[JsonObject] = None
    proofs: Optional[tuple[str, ...]] = None
    nonce: Optional[str] = None
    version: str = UCAN_VERSION

    def to_dict(self) -> dict[str, Any]:
        """Serialize using the wire member names; absent members are omitted."""
        data: dict[str, Any] = {
            "ucv": self.version,
            "iss": self.iss,
            "aud": self.aud,
            "exp": self.exp,
            "cap": self.capabilities.to_dict(),
        }
        if self.nbf is not None:
            data["nbf"] = self.nbf
        if self.nonce is not None:
            data["nnc"] = self.nonce
        if self.facts is not None:
            data["fct"] = self.facts
        if self.proofs is not None:
            data["prf"] = list(self.proofs)
        return data

    @classmethod
    def from_dict(cls, data: Any) -> "UcanPayload":
        """Validate and build a payload from its wire form.

        Raises
        ------
        MalformedTokenError
            On missing, unknown, mistyped, or out-of-range members.
        """
        if not isinstance(data, dict):
            raise MalformedTokenError("payload must be a JSON object")
        unknown = set(data) - _PAYLOAD_KEYS
        if unknown:
            raise MalformedTokenError(f"unknown payload members {sorted(unknown)}")
        for key in _REQUIRED_PAYLOAD_KEYS:
            if key not in data:
                raise MalformedTokenError(f"payload is missing '{key}'")

        for key in ("ucv", "iss", "aud"):
            if not isinstance(data[key], str) or not data[key]:
                raise MalformedTokenError(f"payload '{key}' must be a non-empty string")

        exp = _timestamp(data, "exp")
        nbf = _timestamp(data, "nbf") if "nbf" in data else None
        if nbf is not None and nbf > exp:
            raise MalformedTokenError(f"'nbf' ({nbf}) is after 'exp' ({exp})")

        nonce = data.get("nnc")
        if "nnc" in data and not isinstance(nonce, str):
            raise MalformedTokenError("payload 'nnc' must be a string")

        facts = data.get("fct")
        if "fct" in data and (not isinstance(facts, dict) or not is_json_value(facts)):
            raise MalformedTokenError("payload 'fct' must be a JSON object")

        proofs = data.get("prf")
        if "prf" in data:
            if not isinstance(proofs, list) or not all(
                isinstance(p, str) and p for p in proofs
            ):
                raise MalformedTokenError("payload 'prf' must be a list of strings")
            proofs = tuple(proofs)

        try:
            capabilities = Capabilities.from_dict(data["cap"])
        except ValueError as exc:
            raise MalformedTokenError(f"invalid capabilities: {exc}") from exc

        return cls(
            iss=data["iss"],
            aud=data["aud"],
            exp=exp,
            capabilities=capabilities,
            nbf=nbf,
            facts=facts,
            proofs=proofs,
            nonce=nonce,
            version=data["ucv"],
        )


def _timestamp(data: dict[str, Any], key: str) -> int:
    value = data[key]
    if isinstance(value, bool) or not isinstance(value, int):
        raise MalformedTokenError(f"payload '{key}' must be an integer Unix timestamp")
    if not 0 <= value <= MAX_TIMESTAMP:
        raise MalformedTokenError(f"payload '{key}' ({value}) is out of range")
    return value


# ---------------------------------------------------------------------------
# Ucan
# ---------------------------------------------------------------------------


@dataclass(frozen=True, eq=False)
class Ucan:
    """A signed (but not necessarily verified) UCAN."""

    header: UcanHeader
    payload: UcanPayload
    signature: bytes

    @property
    def issuer(self) -> str:
        return self.payload.iss

    @property
    def audience(self) -> str:
        return self.payload.aud

    @property
    def expires_at(self) -> int:
        return self.payload.exp

    @property
    def not_before(self) -> Optional[int]:
        return self.payload.nbf

    @property
    def capabilities(self) -> Capabilities:
        return self.payload.capabilities

    @property
    def facts(self) -> JsonObject:
        return self.payload.facts or {}

    @property
    def proofs(self) -> tuple[str, ...]:
        return self.payload.proofs or ()

    def is_expired(self, now: int) -> bool:
        return now > self.payload.exp

    def is_too_early(self, now: int) -> bool:
        return self.payload.nbf is not None and now < self.payload.nbf

    def signing_input(self) -> bytes:
        """The bytes covered by the signature: ``header.payload`` in ASCII."""
        return signing_input(self.header, self.payload)

    def encode(self) -> str:
        """Return the transmissible token string."""
        return encode(self.header, self.payload, self.signature)

    @cached_property
    def cid(self) -> str:
        return cid_for_token(self.encode())

    def to_dict(self) -> dict[str, Any]:
        """Serialize header, payload, signature, and CID to a plain dictionary."""
        return {
            "header": self.header.to_dict(),
            "payload": self.payload.to_dict(),
            "signature": _b64url_encode(self.signature),
            "cid": self.cid,
        }


# ---------------------------------------------------------------------------
# Encoding
# ---------------------------------------------------------------------------


def canonical_json(value: Any) -> bytes:
    """Serialize *value* as sorted-key, compact UTF-8 JSON."""
    return json.dumps(
        value, sort_keys=True, separators=(",", ":"), ensure_ascii=False, allow_nan=False
    ).encode("utf-8")


def signing_input(header: UcanHeader, payload: UcanPayload) -> bytes:
    header_b64 = _b64url_encode(canonical_json(header.to_dict()))
    payload_b64 = _b64url_encode(canonical_json(payload.to_dict()))
    return f"{header_b64}.{payload_b64}".encode("ascii")


def encode(header: UcanHeader, payload: UcanPayload, signature: bytes) -> str:
    """Produce the transmissible token string."""
    return f"{signing_input(header, payload).decode('ascii')}.{_b64url_encode(signature)}"


def decode(token: str) -> Ucan:
    """Parse a token string without verifying its signature.

    Raises
    ------
    MalformedTokenError
        If the token is not three canonical base64url segments of canonical
        JSON, or the header/payload fail structural validation.
    """
    if not isinstance(token, str):
        raise MalformedTokenError("token must be a string")
    parts = token.split(".")
    if len(parts) != 3:
        raise MalformedTokenError(f"expected 3 dot-separated parts, got {len(parts)}")
    header_b64, payload_b64, signature_b64 = parts

    header_data = _decode_json_segment(header_b64, "header")
    payload_data = _decode_json_segment(payload_b64, "payload")
    signature = _b64url_decode(signature_b64, "signature")
    if not signature:
        raise MalformedTokenError("signature is empty")

    return Ucan(
        header=UcanHeader.from_dict(header_data),
        payload=UcanPayload.from_dict(payload_data),
        signature=signature,
    )


def compute_cid(header: UcanHeader, payload: UcanPayload, signature: bytes) -> str:
    """Return the CID of the token made of *header*, *payload*, and *signature*."""
    return cid_for_token(encode(header, payload, signature))


def cid_for_token(token: str) -> str:
    """Return the CID of an already-encoded token string."""
    digest = blake3(token.encode("utf-8")).digest()
    encoded = base64.b32encode(_CID_PREFIX + digest).decode("ascii").rstrip("=").lower()
    return MULTIBASE_BASE32 + encoded


# ---------------------------------------------------------------------------
# Internal
# ---------------------------------------------------------------------------


def _b64url_encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def _b64url_decode(segment: str, what: str) -> bytes:
    if not _B64URL_PATTERN.match(segment) or len(segment) % 4 == 1:
        raise MalformedTokenError(f"{what} is not unpadded base64url")
    raw = base64.urlsafe_b64decode(segment + "=" * (-len(segment) % 4))
    if _b64url_encode(raw) != segment:
        raise MalformedTokenError(f"{what} base64url encoding is not canonical")
    return raw


def _reject_duplicates(pairs: list[tuple[str, Any]]) -> dict[str, Any]:
    result: dict[str, Any] = {}
    for key, value in pairs:
        if key in result:
            raise MalformedTokenError(f"duplicate JSON member {key!r}")
        result[key] = value
    return result


def _reject_constant(name: str) -> Any:
    raise MalformedTokenError(f"non-finite number {name} is not valid JSON")


def _decode_json_segment(segment: str, what: str) -> Any:
    raw = _b64url_decode(segment, what)
    try:
        value = json.loads(
            raw.decode("utf-8"),
            object_pairs_hook=_reject_duplicates,
            parse_constant=_reject_constant,
        )
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise MalformedTokenError(f"could not decode {what}: {exc}") from exc
    if _b64url_encode(canonical_json(value)) != segment:
        raise MalformedTokenError(f"{what} is not canonically encoded")
    return value


__all__ = [
    "MAX_TIMESTAMP",
    "TOKEN_TYPE",
    "UCAN_VERSION",
    "Ucan",
    "UcanHeader",
    "UcanPayload",
    "canonical_json",
    "cid_for_token",
    "compute_cid",
    "decode",
    "encode",
    "signing_input",
]
