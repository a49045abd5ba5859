"""W3C ``did:key`` method — encode and decode public keys as DIDs.

Implements the ``did:key`` DID method as specified in:
https://w3c-ccg.github.io/did-method-key/

did:key encoding
----------------
1. Take the raw public key bytes for the key type.
2. Prepend the key type's varint-encoded multicodec prefix.
3. Encode the result with base58btc.
4. Prefix the encoded string with ``z`` (the multibase indicator for base58btc).
5. Assemble: ``did:key:z<base58btc-encoded>``.

The multicodec table entries used here:

==============  =========  ================
Key type        Codec      Varint prefix
==============  =========  ================
Ed25519         0xed       ``ed 01``
X25519          0xec       ``ec 01``
secp256k1       0xe7       ``e7 01``
P-256           0x1200     ``80 24``
BLS12-381 G2    0xeb       ``eb 01``
==============  =========  ================
"""
from __future__ import annotations

import base58

from ucan_identity.did.key_manager import (
    KeyPair,
    KeyType,
    public_key_length,
    validate_public_key,
)
from ucan_identity.errors import InvalidDidError

DID_KEY_PREFIX: str = "did:key:"

# Multibase indicator for base58btc
MULTIBASE_BASE58BTC: str = "z"

_MULTICODEC_PREFIXES: dict[KeyType, bytes] = {
    KeyType.ED25519: b"\xed\x01",
    KeyType.X25519: b"\xec\x01",
    KeyType.SECP256K1: b"\xe7\x01",
    KeyType.P256: b"\x80\x24",
    KeyType.BLS12381_G2: b"\xeb\x01",
}


def multibase_fingerprint(keypair: KeyPair) -> str:
    """Return the ``z``-prefixed multibase fingerprint of a public key."""
    multicodec_bytes = _MULTICODEC_PREFIXES[keypair.key_type] + keypair.public_key
    return MULTIBASE_BASE58BTC + base58.b58encode(multicodec_bytes).decode("ascii")


def encode_did(keypair: KeyPair) -> str:
    """Encode the public half of *keypair* as a ``did:key`` DID.

    Parameters
    ----------
    keypair:
        Any key pair; the private key, if present, is ignored.

    Returns
    -------
    str
        A ``did:key:z<base58btc>`` string.
    """
    return DID_KEY_PREFIX + multibase_fingerprint(keypair)


def decode_did(did: str) -> KeyPair:
    """Decode a ``did:key`` DID back to a public-only :class:`KeyPair`.

    A ``#fragment`` suffix (as found in verification method ids) is ignored.

    Raises
    ------
    InvalidDidError
        If the method prefix, multibase indicator, base58 payload, multicodec
        prefix, or public key length is wrong, or the key is not a valid point.
    """
    if not isinstance(did, str) or not did.startswith(DID_KEY_PREFIX):
        raise InvalidDidError(
            str(did), "expected format did:key:z<base58btc-encoded-public-key>"
        )
    fingerprint = did[len(DID_KEY_PREFIX):].split("#", 1)[0]
    if not fingerprint.startswith(MULTIBASE_BASE58BTC):
        raise InvalidDidError(did, "only base58btc (z) multibase encoding is supported")
    encoded = fingerprint[len(MULTIBASE_BASE58BTC):]
    if not encoded:
        raise InvalidDidError(did, "the encoded key portion is empty")
    try:
        decoded = base58.b58decode(encoded)
    except ValueError as exc:
        raise InvalidDidError(did, f"invalid base58btc encoding: {exc}") from exc

    for key_type, prefix in _MULTICODEC_PREFIXES.items():
        if decoded.startswith(prefix):
            public_bytes = decoded[len(prefix):]
            expected = public_key_length(key_type)
            if len(public_bytes) != expected:
                raise InvalidDidError(
                    did,
                    f"{key_type.value} public key must be {expected} bytes, "
                    f"got {len(public_bytes)}",
                )
            validate_public_key(key_type, public_bytes, source=did)
            return KeyPair(key_type=key_type, public_key=public_bytes)

    prefix_hex = decoded[:2].hex()
    raise InvalidDidError(did, f"unsupported multicodec prefix 0x{prefix_hex}")


__all__ = [
    "DID_KEY_PREFIX",
    "decode_did",
    "encode_did",
    "multibase_fingerprint",
]
