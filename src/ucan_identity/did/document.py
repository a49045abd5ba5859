"""DID documents for ``did:key`` identities.

A ``did:key`` document is fully derived from the key it encodes, so this
module never stores anything: :func:`create_did` and :func:`restore_did`
produce a *secret* document (private key material included in the
verification method) that is the caller's sole responsibility to protect,
and :func:`resolve_did` produces the public document for any DID.

Two representations are supported, selected with :class:`DIDFormat`:

``jsonld``
    Algorithm-specific verification method types with ``publicKeyBase58`` /
    ``privateKeyBase58``.
``jose``
    ``JsonWebKey2020`` verification methods with ``publicKeyJwk`` /
    ``privateKeyJwk``.

Specification reference
-----------------------
https://w3c-ccg.github.io/did-method-key/#document-creation-algorithm
"""
from __future__ import annotations

import base64
import binascii
import json
from enum import Enum
from typing import Any, Optional

import base58
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.serialization import Encoding, PublicFormat
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ucan_identity.did.did_key import decode_did, encode_did, multibase_fingerprint
from ucan_identity.did.key_manager import (
    KeyPair,
    KeyType,
    generate_keypair,
    keypair_from_private,
    sign,
    verify_signature,
)
from ucan_identity.errors import KeyMismatchError, UnsupportedKeyTypeError

# ------------------------------------------------------------------
# Constants
# ------------------------------------------------------------------

DID_CONTEXT: str = "https://www.w3.org/ns/did/v1"
JWS_2020_CONTEXT: str = "https://w3id.org/security/suites/jws-2020/v1"
JSON_WEB_KEY_2020: str = "JsonWebKey2020"

_LD_VERIFICATION_TYPES: dict[KeyType, str] = {
    KeyType.ED25519: "Ed25519VerificationKey2018",
    KeyType.X25519: "X25519KeyAgreementKey2019",
    KeyType.P256: "EcdsaSecp256r1VerificationKey2019",
    KeyType.SECP256K1: "EcdsaSecp256k1VerificationKey2019",
    KeyType.BLS12381_G2: "Bls12381G2Key2020",
}

_JWK_CURVES: dict[KeyType, tuple[str, str]] = {
    KeyType.ED25519: ("OKP", "Ed25519"),
    KeyType.X25519: ("OKP", "X25519"),
    KeyType.P256: ("EC", "P-256"),
    KeyType.SECP256K1: ("EC", "secp256k1"),
    KeyType.BLS12381_G2: ("EC", "BLS12381_G2"),
}

_EC_CURVES: dict[KeyType, ec.EllipticCurve] = {
    KeyType.P256: ec.SECP256R1(),
    KeyType.SECP256K1: ec.SECP256K1(),
}


class DIDFormat(str, Enum):
    """Key representation used inside a DID document."""

    JSON_LD = "jsonld"
    JOSE = "jose"


# ------------------------------------------------------------------
# Models
# ------------------------------------------------------------------


class JsonWebKey(BaseModel):
    """A JWK as used by ``JsonWebKey2020`` verification methods."""

    model_config = ConfigDict(extra="ignore")

    kty: str
    crv: str
    x: str
    y: Optional[str] = None
    d: Optional[str] = None


class VerificationMethod(BaseModel):
    """A verification method; the secret variant also carries the private key.

    Accepts both the W3C camelCase names and the Python attribute names.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str = ""
    type: str
    controller: str = ""
    public_key_base58: Optional[str] = Field(default=None, alias="publicKeyBase58")
    private_key_base58: Optional[str] = Field(default=None, alias="privateKeyBase58")
    public_key_jwk: Optional[JsonWebKey] = Field(default=None, alias="publicKeyJwk")
    private_key_jwk: Optional[JsonWebKey] = Field(default=None, alias="privateKeyJwk")

    @property
    def is_secret(self) -> bool:
        return self.private_key_base58 is not None or self.private_key_jwk is not None

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a W3C-compatible plain dictionary."""
        return self.model_dump(by_alias=True, exclude_none=True)


class DIDDocument(BaseModel):
    """A ``did:key`` DID document (public or secret)."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    context: list[str] = Field(default_factory=lambda: [DID_CONTEXT], alias="@context")
    id: str
    verification_method: list[VerificationMethod] = Field(alias="verificationMethod")
    authentication: Optional[list[str]] = None
    assertion_method: Optional[list[str]] = Field(default=None, alias="assertionMethod")
    capability_delegation: Optional[list[str]] = Field(
        default=None, alias="capabilityDelegation"
    )
    capability_invocation: Optional[list[str]] = Field(
        default=None, alias="capabilityInvocation"
    )
    key_agreement: Optional[list[str]] = Field(default=None, alias="keyAgreement")

    @property
    def is_secret(self) -> bool:
        return any(vm.is_secret for vm in self.verification_method)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a W3C-compatible plain dictionary."""
        return self.model_dump(by_alias=True, exclude_none=True)

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2)


# ------------------------------------------------------------------
# Public operations
# ------------------------------------------------------------------


def create_did(
    key_type: "str | KeyType" = KeyType.ED25519,
    format: "str | DIDFormat" = DIDFormat.JSON_LD,
) -> DIDDocument:
    """Generate a new key and return its secret DID document.

    Raises
    ------
    UnsupportedKeyTypeError
        If *key_type* is not a supported tag or alias, or *format* is not
        ``jsonld`` or ``jose``.
    """
    if key_type == JSON_WEB_KEY_2020:
        key_type = KeyType.ED25519
    return build_document(generate_keypair(key_type), _parse_format(format))


def resolve_did(did: str, format: "str | DIDFormat" = DIDFormat.JSON_LD) -> DIDDocument:
    """Return the public DID document for *did*.

    Raises
    ------
    InvalidDidError
        If *did* cannot be decoded.
    UnsupportedKeyTypeError
        If *format* is not ``jsonld`` or ``jose``.
    """
    return build_document(decode_did(did), _parse_format(format))


def restore_did(
    descriptor: "VerificationMethod | dict[str, Any]",
    format: "str | DIDFormat" = DIDFormat.JSON_LD,
) -> DIDDocument:
    """Rebuild a secret DID document from an exported verification method.

    The public key is re-derived from the private key; any public key,
    ``id``, or ``controller`` present in *descriptor* must agree with it.

    Raises
    ------
    UnsupportedKeyTypeError
        If the descriptor's type (or JWK curve) is unknown, or *format* is not
        ``jsonld`` or ``jose``.
    KeyMismatchError
        If the private key is missing or unusable, the descriptor is not a
        verification method, or the derived identity disagrees with it.
    """
    keypair = keypair_from_verification_method(descriptor)
    return build_document(keypair, _parse_format(format))


def keypair_from_verification_method(
    descriptor: "VerificationMethod | dict[str, Any]",
) -> KeyPair:
    """Extract a full :class:`KeyPair` from a secret verification method.

    See :func:`restore_did` for the checks performed.
    """
    method = _as_verification_method(descriptor)
    key_type = _verification_method_key_type(method)

    private_bytes = _private_key_bytes(method, key_type)
    if private_bytes is None:
        raise KeyMismatchError("the verification method carries no private key")
    public_bytes = _public_key_bytes(method, key_type)

    keypair = keypair_from_private(key_type, private_bytes, public_bytes)
    did = encode_did(keypair)
    if method.controller and method.controller != did:
        raise KeyMismatchError(f"controller {method.controller} does not match derived DID {did}")
    if method.id and method.id.split("#", 1)[0] != did:
        raise KeyMismatchError(f"id {method.id} does not match derived DID {did}")
    return keypair


def sign_message(
    descriptor: "VerificationMethod | dict[str, Any]",
    message: "str | bytes",
) -> str:
    """Sign *message* with a secret verification method.

    Returns
    -------
    str
        The base64url (unpadded) signature.
    """
    keypair = keypair_from_verification_method(descriptor)
    data = message.encode("utf-8") if isinstance(message, str) else message
    return _b64url_encode(sign(keypair, data))


def verify_message(did: str, message: "str | bytes", signature: str) -> bool:
    """Verify a base64url signature produced by :func:`sign_message`.

    Raises
    ------
    InvalidDidError
        If *did* cannot be decoded.
    """
    keypair = decode_did(did)
    try:
        raw_signature = _b64url_decode(signature)
    except (binascii.Error, ValueError):
        return False
    data = message.encode("utf-8") if isinstance(message, str) else message
    return verify_signature(keypair, data, raw_signature)


# ------------------------------------------------------------------
# Document construction
# ------------------------------------------------------------------


def build_document(keypair: KeyPair, format: DIDFormat) -> DIDDocument:
    """Wrap *keypair* in a DID document (secret if it has a private key)."""
    did = encode_did(keypair)
    method_id = f"{did}#{multibase_fingerprint(keypair)}"

    if format is DIDFormat.JOSE:
        method = VerificationMethod(
            id=method_id,
            type=JSON_WEB_KEY_2020,
            controller=did,
            public_key_jwk=_to_jwk(keypair, include_private=False),
            private_key_jwk=(
                _to_jwk(keypair, include_private=True) if keypair.has_private_key else None
            ),
        )
        context = [DID_CONTEXT, JWS_2020_CONTEXT]
    else:
        method = VerificationMethod(
            id=method_id,
            type=_LD_VERIFICATION_TYPES[keypair.key_type],
            controller=did,
            public_key_base58=base58.b58encode(keypair.public_key).decode("ascii"),
            private_key_base58=(
                base58.b58encode(keypair.private_key).decode("ascii")
                if keypair.private_key is not None
                else None
            ),
        )
        context = [DID_CONTEXT]

    if keypair.key_type is KeyType.X25519:
        return DIDDocument(
            context=context,
            id=did,
            verification_method=[method],
            key_agreement=[method_id],
        )
    return DIDDocument(
        context=context,
        id=did,
        verification_method=[method],
        authentication=[method_id],
        assertion_method=[method_id],
        capability_delegation=[method_id],
        capability_invocation=[method_id],
    )


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------


def _as_verification_method(
    descriptor: "VerificationMethod | dict[str, Any]",
) -> VerificationMethod:
    if isinstance(descriptor, VerificationMethod):
        return descriptor
    try:
        return VerificationMethod.model_validate(descriptor)
    except ValidationError as exc:
        raise KeyMismatchError(f"invalid verification method: {exc}") from exc


def _parse_format(format: "str | DIDFormat") -> DIDFormat:
    try:
        return DIDFormat(format)
    except ValueError:
        raise UnsupportedKeyTypeError(str(format), kind="DID document format") from None


def _verification_method_key_type(method: VerificationMethod) -> KeyType:
    if method.type == JSON_WEB_KEY_2020:
        jwk = method.private_key_jwk or method.public_key_jwk
        if jwk is None:
            raise KeyMismatchError("JsonWebKey2020 verification method carries no JWK")
        return KeyType.parse(jwk.crv)
    return KeyType.parse(method.type)


def _private_key_bytes(method: VerificationMethod, key_type: KeyType) -> bytes | None:
    try:
        if method.private_key_base58 is not None:
            return base58.b58decode(method.private_key_base58)
        if method.private_key_jwk is not None:
            if method.private_key_jwk.d is None:
                raise KeyMismatchError("privateKeyJwk has no 'd' member")
            return _b64url_decode(method.private_key_jwk.d)
    except (binascii.Error, ValueError) as exc:
        raise KeyMismatchError(f"undecodable {key_type.value} private key: {exc}") from exc
    return None


def _public_key_bytes(method: VerificationMethod, key_type: KeyType) -> bytes | None:
    try:
        if method.public_key_base58 is not None:
            return base58.b58decode(method.public_key_base58)
        jwk = method.public_key_jwk or method.private_key_jwk
        if jwk is not None:
            return _from_jwk_public(jwk, key_type)
    except (binascii.Error, ValueError) as exc:
        raise KeyMismatchError(f"undecodable {key_type.value} public key: {exc}") from exc
    return None


def _to_jwk(keypair: KeyPair, include_private: bool) -> JsonWebKey:
    kty, crv = _JWK_CURVES[keypair.key_type]
    d = (
        _b64url_encode(keypair.private_key)
        if include_private and keypair.private_key is not None
        else None
    )
    curve = _EC_CURVES.get(keypair.key_type)
    if curve is None:
        return JsonWebKey(kty=kty, crv=crv, x=_b64url_encode(keypair.public_key), d=d)

    numbers = ec.EllipticCurvePublicKey.from_encoded_point(
        curve, keypair.public_key
    ).public_numbers()
    return JsonWebKey(
        kty=kty,
        crv=crv,
        x=_b64url_encode(numbers.x.to_bytes(32, "big")),
        y=_b64url_encode(numbers.y.to_bytes(32, "big")),
        d=d,
    )


def _from_jwk_public(jwk: JsonWebKey, key_type: KeyType) -> bytes:
    if KeyType.parse(jwk.crv) is not key_type:
        raise UnsupportedKeyTypeError(jwk.crv)
    curve = _EC_CURVES.get(key_type)
    if curve is None:
        return _b64url_decode(jwk.x)
    if jwk.y is None:
        raise ValueError(f"{jwk.crv} JWK has no 'y' coordinate")
    numbers = ec.EllipticCurvePublicNumbers(
        int.from_bytes(_b64url_decode(jwk.x), "big"),
        int.from_bytes(_b64url_decode(jwk.y), "big"),
        curve,
    )
    return numbers.public_key().public_bytes(Encoding.X962, PublicFormat.CompressedPoint)


def _b64url_encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def _b64url_decode(value: str) -> bytes:
    return base64.urlsafe_b64decode(value + "=" * (-len(value) % 4))


__all__ = [
    "DIDDocument",
    "DIDFormat",
    "JsonWebKey",
    "VerificationMethod",
    "build_document",
    "create_did",
    "keypair_from_verification_method",
    "resolve_did",
    "restore_did",
    "sign_message",
    "verify_message",
]
