"""ucan_identity.did — key engine and ``did:key`` documents.

Submodules
----------
key_manager
    KeyType, KeyPair, key generation, raw sign/verify for all five key types.
did_key
    ``did:key`` encoding and decoding.
document
    DIDDocument / VerificationMethod models, create/resolve/restore.

Quick start
-----------
::

    from ucan_identity.did import create_did, resolve_did, sign_message, verify_message

    secret_document = create_did()
    signature = sign_message(secret_document.verification_method[0], "hello")
    assert verify_message(secret_document.id, "hello", signature)
    public_document = resolve_did(secret_document.id)
"""
from __future__ import annotations

from ucan_identity.did.did_key import decode_did, encode_did, multibase_fingerprint
from ucan_identity.did.document import (
    DIDDocument,
    DIDFormat,
    JsonWebKey,
    VerificationMethod,
    create_did,
    keypair_from_verification_method,
    resolve_did,
    restore_did,
    sign_message,
    verify_message,
)
from ucan_identity.did.key_manager import (
    KeyPair,
    KeyType,
    generate_keypair,
    keypair_from_private,
    sign,
    verify_signature,
)

__all__ = [
    # key_manager
    "KeyPair",
    "KeyType",
    "generate_keypair",
    "keypair_from_private",
    "sign",
    "verify_signature",
    # did_key
    "decode_did",
    "encode_did",
    "multibase_fingerprint",
    # document
    "DIDDocument",
    "DIDFormat",
    "JsonWebKey",
    "VerificationMethod",
    "create_did",
    "keypair_from_verification_method",
    "resolve_did",
    "restore_did",
    "sign_message",
    "verify_message",
]
