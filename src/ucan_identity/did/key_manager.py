"""Key engine — key generation, raw signing, and verification for did:key types.

This module wraps the ``cryptography`` package (Ed25519, ECDSA over P-256 and
secp256k1, X25519) and ``py_ecc`` (BLS12-381 G2) behind a single tagged
:class:`KeyPair` value. All key material is handled as raw bytes so callers
can store or transmit keys without depending on this module's internal types:

=============  ==================  ==================  =========
Key type       Public key          Private key         Signing
=============  ==================  ==================  =========
Ed25519        32 bytes            32-byte seed        EdDSA
P-256          33 bytes (SEC1 c.)  32-byte scalar      ES256
secp256k1      33 bytes (SEC1 c.)  32-byte scalar      ES256K
X25519         32 bytes            32 bytes            no
BLS12-381 G2   96 bytes (comp.)    32-byte scalar      no
=============  ==================  ==================  =========

ECDSA signatures use the fixed-width ``r || s`` JOSE form (64 bytes).
"""
from __future__ import annotations

import secrets
from dataclasses import dataclass
from enum import Enum

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey,
    Ed25519PublicKey,
)
from cryptography.hazmat.primitives.asymmetric.utils import (
    decode_dss_signature,
    encode_dss_signature,
)
from cryptography.hazmat.primitives.asymmetric.x25519 import (
    X25519PrivateKey,
    X25519PublicKey,
)
from cryptography.hazmat.primitives.serialization import (
    Encoding,
    NoEncryption,
    PrivateFormat,
    PublicFormat,
)
from py_ecc.bls import G2ProofOfPossession
from py_ecc.bls.g2_primitives import G2_to_signature, signature_to_G2
from py_ecc.optimized_bls12_381 import G2, curve_order, multiply

from ucan_identity.errors import (
    InvalidDidError,
    KeyMismatchError,
    NotSigningCapableError,
    UnsupportedKeyTypeError,
)

# ---------------------------------------------------------------------------
# Key types
# ---------------------------------------------------------------------------


class KeyType(str, Enum):
    """The five key types addressable through ``did:key``."""

    ED25519 = "Ed25519"
    P256 = "P-256"
    SECP256K1 = "secp256k1"
    X25519 = "X25519"
    BLS12381_G2 = "Bls12381G2"

    @property
    def signing_capable(self) -> bool:
        """Return True for key types that can produce signatures."""
        return self in _SIGNING_KEY_TYPES

    @property
    def jwt_algorithm(self) -> str:
        """Return the JWT ``alg`` name for a signing key type.

        Raises
        ------
        NotSigningCapableError
            For X25519 and BLS12-381 G2.
        """
        try:
            return _JWT_ALGORITHMS[self]
        except KeyError:
            raise NotSigningCapableError(self.value) from None

    @classmethod
    def parse(cls, name: "str | KeyType") -> "KeyType":
        """Resolve a key type tag or any of its known aliases.

        Parameters
        ----------
        name:
            A :class:`KeyType`, its value, or an alias such as
            ``"Ed25519VerificationKey2018"`` or ``"BLS12381_G2"``.

        Raises
        ------
        UnsupportedKeyTypeError
            If *name* is not recognised.
        """
        if isinstance(name, KeyType):
            return name
        key_type = _KEY_TYPE_ALIASES.get(name)
        if key_type is None:
            raise UnsupportedKeyTypeError(str(name))
        return key_type


_SIGNING_KEY_TYPES = frozenset({KeyType.ED25519, KeyType.P256, KeyType.SECP256K1})

_JWT_ALGORITHMS: dict[KeyType, str] = {
    KeyType.ED25519: "EdDSA",
    KeyType.P256: "ES256",
    KeyType.SECP256K1: "ES256K",
}

_KEY_TYPE_ALIASES: dict[str, KeyType] = {
    "Ed25519": KeyType.ED25519,
    "Ed25519VerificationKey2018": KeyType.ED25519,
    "Ed25519VerificationKey2020": KeyType.ED25519,
    "X25519": KeyType.X25519,
    "X25519KeyAgreementKey2019": KeyType.X25519,
    "P256": KeyType.P256,
    "P-256": KeyType.P256,
    "UnsupportedVerificationMethod2020": KeyType.P256,
    "EcdsaSecp256r1VerificationKey2019": KeyType.P256,
    "Secp256k1": KeyType.SECP256K1,
    "secp256k1": KeyType.SECP256K1,
    "EcdsaSecp256k1VerificationKey2019": KeyType.SECP256K1,
    "Bls12381": KeyType.BLS12381_G2,
    "Bls12381G2": KeyType.BLS12381_G2,
    "Bls12381G2Key2020": KeyType.BLS12381_G2,
    "BLS12381_G2": KeyType.BLS12381_G2,
}


def key_type_for_algorithm(alg: str) -> KeyType | None:
    """Return the signing key type for a JWT ``alg`` name, or None."""
    for key_type, name in _JWT_ALGORITHMS.items():
        if name == alg:
            return key_type
    return None


# ---------------------------------------------------------------------------
# KeyPair
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class KeyPair:
    """A tagged key pair (or public key alone when ``private_key`` is None).

    Parameters
    ----------
    key_type:
        Which of the five supported algorithms the key belongs to.
    public_key:
        Raw public key bytes in the layout listed in the module docstring.
    private_key:
        Raw private key bytes, or ``None`` for public-only keys.
    """

    key_type: KeyType
    public_key: bytes
    private_key: bytes | None = None

    @property
    def has_private_key(self) -> bool:
        return self.private_key is not None

    def public_only(self) -> "KeyPair":
        """Return a copy of this key with the private part removed."""
        return KeyPair(key_type=self.key_type, public_key=self.public_key)

    def __repr__(self) -> str:
        # Never leak private key bytes through repr().
        return (
            f"KeyPair(key_type={self.key_type.value!r}, "
            f"public_key={self.public_key.hex()!r}, "
            f"has_private_key={self.has_private_key})"
        )


# ---------------------------------------------------------------------------
# Backends
# ---------------------------------------------------------------------------


class _KeyBackend:
    """Per-algorithm primitives operating on raw bytes."""

    public_key_length: int

    def generate(self) -> tuple[bytes, bytes]:
        raise NotImplementedError

    def public_from_private(self, private_bytes: bytes) -> bytes:
        raise NotImplementedError

    def validate_public(self, public_bytes: bytes) -> None:
        """Raise :class:`ValueError` if *public_bytes* is not a valid point."""
        raise NotImplementedError

    def sign(self, private_bytes: bytes, message: bytes) -> bytes:
        raise NotImplementedError

    def verify(self, public_bytes: bytes, message: bytes, signature: bytes) -> bool:
        raise NotImplementedError


class _Ed25519Backend(_KeyBackend):
    public_key_length = 32

    def generate(self) -> tuple[bytes, bytes]:
        private_key = Ed25519PrivateKey.generate()
        private_bytes = private_key.private_bytes(
            Encoding.Raw, PrivateFormat.Raw, NoEncryption()
        )
        public_bytes = private_key.public_key().public_bytes(Encoding.Raw, PublicFormat.Raw)
        return private_bytes, public_bytes

    def _load_private(self, private_bytes: bytes) -> Ed25519PrivateKey:
        # Some exporters emit the 64-byte seed || public form.
        if len(private_bytes) == 64:
            private_bytes = private_bytes[:32]
        return Ed25519PrivateKey.from_private_bytes(private_bytes)

    def public_from_private(self, private_bytes: bytes) -> bytes:
        private_key = self._load_private(private_bytes)
        return private_key.public_key().public_bytes(Encoding.Raw, PublicFormat.Raw)

    def validate_public(self, public_bytes: bytes) -> None:
        Ed25519PublicKey.from_public_bytes(public_bytes)

    def sign(self, private_bytes: bytes, message: bytes) -> bytes:
        return self._load_private(private_bytes).sign(message)

    def verify(self, public_bytes: bytes, message: bytes, signature: bytes) -> bool:
        public_key = Ed25519PublicKey.from_public_bytes(public_bytes)
        try:
            public_key.verify(signature, message)
            return True
        except (InvalidSignature, ValueError):
            return False


class _EcdsaBackend(_KeyBackend):
    public_key_length = 33

    def __init__(self, curve: ec.EllipticCurve, low_s: bool = False) -> None:
        self._curve = curve
        self._low_s = low_s
        self._order = _CURVE_ORDERS[curve.name]

    def generate(self) -> tuple[bytes, bytes]:
        private_key = ec.generate_private_key(self._curve)
        return self._private_to_bytes(private_key), self._public_to_bytes(private_key)

    def _private_to_bytes(self, private_key: ec.EllipticCurvePrivateKey) -> bytes:
        return private_key.private_numbers().private_value.to_bytes(32, "big")

    def _public_to_bytes(self, private_key: ec.EllipticCurvePrivateKey) -> bytes:
        return private_key.public_key().public_bytes(Encoding.X962, PublicFormat.CompressedPoint)

    def _load_private(self, private_bytes: bytes) -> ec.EllipticCurvePrivateKey:
        if len(private_bytes) != 32:
            raise ValueError(f"expected a 32-byte private scalar, got {len(private_bytes)} bytes")
        return ec.derive_private_key(int.from_bytes(private_bytes, "big"), self._curve)

    def public_from_private(self, private_bytes: bytes) -> bytes:
        return self._public_to_bytes(self._load_private(private_bytes))

    def validate_public(self, public_bytes: bytes) -> None:
        ec.EllipticCurvePublicKey.from_encoded_point(self._curve, public_bytes)

    def sign(self, private_bytes: bytes, message: bytes) -> bytes:
        der = self._load_private(private_bytes).sign(message, ec.ECDSA(hashes.SHA256()))
        r, s = decode_dss_signature(der)
        if self._low_s and s > self._order // 2:
            s = self._order - s
        return r.to_bytes(32, "big") + s.to_bytes(32, "big")

    def verify(self, public_bytes: bytes, message: bytes, signature: bytes) -> bool:
        public_key = ec.EllipticCurvePublicKey.from_encoded_point(self._curve, public_bytes)
        if len(signature) != 64:
            return False
        r = int.from_bytes(signature[:32], "big")
        s = int.from_bytes(signature[32:], "big")
        try:
            public_key.verify(encode_dss_signature(r, s), message, ec.ECDSA(hashes.SHA256()))
            return True
        except (InvalidSignature, ValueError):
            return False


class _X25519Backend(_KeyBackend):
    public_key_length = 32

    def generate(self) -> tuple[bytes, bytes]:
        private_key = X25519PrivateKey.generate()
        private_bytes = private_key.private_bytes(
            Encoding.Raw, PrivateFormat.Raw, NoEncryption()
        )
        public_bytes = private_key.public_key().public_bytes(Encoding.Raw, PublicFormat.Raw)
        return private_bytes, public_bytes

    def public_from_private(self, private_bytes: bytes) -> bytes:
        private_key = X25519PrivateKey.from_private_bytes(private_bytes)
        return private_key.public_key().public_bytes(Encoding.Raw, PublicFormat.Raw)

    def validate_public(self, public_bytes: bytes) -> None:
        X25519PublicKey.from_public_bytes(public_bytes)


class _Bls12381G2Backend(_KeyBackend):
    public_key_length = 96

    def generate(self) -> tuple[bytes, bytes]:
        scalar = G2ProofOfPossession.KeyGen(secrets.token_bytes(32))
        private_bytes = scalar.to_bytes(32, "big")
        return private_bytes, self.public_from_private(private_bytes)

    def public_from_private(self, private_bytes: bytes) -> bytes:
        if len(private_bytes) != 32:
            raise ValueError(f"expected a 32-byte private scalar, got {len(private_bytes)} bytes")
        scalar = int.from_bytes(private_bytes, "big")
        if not 0 < scalar < curve_order:
            raise ValueError("BLS12-381 private scalar is out of range")
        return bytes(G2_to_signature(multiply(G2, scalar)))

    def validate_public(self, public_bytes: bytes) -> None:
        signature_to_G2(public_bytes)


_CURVE_ORDERS: dict[str, int] = {
    "secp256r1": 0xFFFFFFFF00000000FFFFFFFFFFFFFFFFBCE6FAADA7179E84F3B9CAC2FC632551,
    "secp256k1": 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141,
}

_BACKENDS: dict[KeyType, _KeyBackend] = {
    KeyType.ED25519: _Ed25519Backend(),
    KeyType.P256: _EcdsaBackend(ec.SECP256R1()),
    KeyType.SECP256K1: _EcdsaBackend(ec.SECP256K1(), low_s=True),
    KeyType.X25519: _X25519Backend(),
    KeyType.BLS12381_G2: _Bls12381G2Backend(),
}


def public_key_length(key_type: KeyType) -> int:
    """Return the raw public key length for *key_type*."""
    return _BACKENDS[key_type].public_key_length


# ---------------------------------------------------------------------------
# Public operations
# ---------------------------------------------------------------------------


def generate_keypair(key_type: "str | KeyType" = KeyType.ED25519) -> KeyPair:
    """Generate a new key pair using the platform's secure random source.

    Raises
    ------
    UnsupportedKeyTypeError
        If *key_type* is not one of the supported tags or aliases.
    """
    resolved = KeyType.parse(key_type)
    private_bytes, public_bytes = _BACKENDS[resolved].generate()
    return KeyPair(key_type=resolved, public_key=public_bytes, private_key=private_bytes)


def keypair_from_private(
    key_type: "str | KeyType",
    private_key: bytes,
    public_key: bytes | None = None,
) -> KeyPair:
    """Rebuild a key pair from exported private key bytes.

    The public key is always re-derived from the private key. When
    *public_key* is supplied it must equal the derived one.

    Raises
    ------
    UnsupportedKeyTypeError
        For unknown key types.
    KeyMismatchError
        If the private key is unusable or disagrees with *public_key*.
    """
    resolved = KeyType.parse(key_type)
    try:
        derived = _BACKENDS[resolved].public_from_private(private_key)
    except ValueError as exc:
        raise KeyMismatchError(f"invalid {resolved.value} private key: {exc}") from exc
    if public_key is not None and public_key != derived:
        raise KeyMismatchError(
            f"public key does not match the {resolved.value} private key"
        )
    if resolved is KeyType.ED25519 and len(private_key) == 64:
        private_key = private_key[:32]
    return KeyPair(key_type=resolved, public_key=derived, private_key=private_key)


def validate_public_key(key_type: KeyType, public_key: bytes, source: str = "") -> None:
    """Raise :class:`InvalidDidError` unless *public_key* is a valid key.

    Parameters
    ----------
    source:
        The DID (or other label) reported in the error message.
    """
    backend = _BACKENDS[key_type]
    label = source or public_key.hex()
    if len(public_key) != backend.public_key_length:
        raise InvalidDidError(
            label,
            f"{key_type.value} public key must be {backend.public_key_length} bytes, "
            f"got {len(public_key)}",
        )
    try:
        backend.validate_public(public_key)
    except ValueError as exc:
        raise InvalidDidError(label, f"invalid {key_type.value} public key: {exc}") from exc


def sign(keypair: KeyPair, message: bytes) -> bytes:
    """Sign *message* with the private half of *keypair*.

    Returns
    -------
    bytes
        The raw signature (64 bytes for every signing-capable type).

    Raises
    ------
    NotSigningCapableError
        For X25519 and BLS12-381 G2 keys.
    KeyMismatchError
        If *keypair* carries no private key.
    """
    if not keypair.key_type.signing_capable:
        raise NotSigningCapableError(keypair.key_type.value)
    if keypair.private_key is None:
        raise KeyMismatchError("a private key is required for signing")
    return _BACKENDS[keypair.key_type].sign(keypair.private_key, message)


def verify_signature(keypair: KeyPair, message: bytes, signature: bytes) -> bool:
    """Verify a raw signature against the public half of *keypair*.

    A malformed or wrong signature yields ``False``. Only a structurally
    invalid public key raises.

    Raises
    ------
    InvalidDidError
        If the public key is not a valid point for its key type.
    """
    if not keypair.key_type.signing_capable:
        return False
    validate_public_key(keypair.key_type, keypair.public_key)
    return _BACKENDS[keypair.key_type].verify(keypair.public_key, message, signature)


__all__ = [
    "KeyPair",
    "KeyType",
    "generate_keypair",
    "key_type_for_algorithm",
    "keypair_from_private",
    "public_key_length",
    "sign",
    "validate_public_key",
    "verify_signature",
]
