"""ucan-identity — UCAN issuance and verification with did:key identities.

Public API
----------
The stable public surface is everything exported from this module.
Anything inside submodules not re-exported here is considered private
and may change without notice.

Example
-------
>>> import ucan_identity
>>> ucan_identity.__version__
'0.1.0'

Quick start
-----------
::

    from ucan_identity import (
        # Keys and DIDs
        generate_keypair, create_did, resolve_did, restore_did,
        sign, verify_signature, sign_message, verify_message,
        # Tokens
        invoke, build_token, decode_token, verify, verify_token,
        # Capabilities
        Capabilities, Capability,
    )
"""
from __future__ import annotations

__version__: str = "0.1.0"

# ------------------------------------------------------------------
# Errors
# ------------------------------------------------------------------
from ucan_identity.errors import (
    AudienceMismatchError,
    CapabilityDeniedError,
    FactMismatchError,
    InvalidDidError,
    InvalidSignatureError,
    KeyMismatchError,
    MalformedTokenError,
    MissingProofError,
    NotSigningCapableError,
    RootIssuerMismatchError,
    TokenExpiredError,
    TokenNotYetValidError,
    UcanError,
    UnsupportedKeyTypeError,
)

# ------------------------------------------------------------------
# Key engine and DID documents
# ------------------------------------------------------------------
from ucan_identity.did.did_key import decode_did, encode_did
from ucan_identity.did.document import (
    DIDDocument,
    DIDFormat,
    VerificationMethod,
    create_did,
    resolve_did,
    restore_did,
    sign_message,
    verify_message,
)
from ucan_identity.did.key_manager import (
    KeyPair,
    KeyType,
    generate_keypair,
    sign,
    verify_signature,
)

# ------------------------------------------------------------------
# Capabilities
# ------------------------------------------------------------------
from ucan_identity.capabilities.capability import Capabilities, Capability

# ------------------------------------------------------------------
# Tokens
# ------------------------------------------------------------------
from ucan_identity.ucan.builder import InvokeOptions, UcanBuilder, build_token, invoke
from ucan_identity.ucan.codec import UCAN_VERSION, Ucan, compute_cid
from ucan_identity.ucan.codec import decode as decode_token

# ------------------------------------------------------------------
# Verification
# ------------------------------------------------------------------
from ucan_identity.delegation.verifier import VerifyOptions, VerifyResult, verify, verify_token

__all__ = [
    # version
    "__version__",
    "UCAN_VERSION",
    # errors
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
    # keys and DIDs
    "DIDDocument",
    "DIDFormat",
    "KeyPair",
    "KeyType",
    "VerificationMethod",
    "create_did",
    "decode_did",
    "encode_did",
    "generate_keypair",
    "resolve_did",
    "restore_did",
    "sign",
    "sign_message",
    "verify_message",
    "verify_signature",
    # capabilities
    "Capabilities",
    "Capability",
    # tokens
    "InvokeOptions",
    "Ucan",
    "UcanBuilder",
    "build_token",
    "compute_cid",
    "decode_token",
    "invoke",
    # verification
    "VerifyOptions",
    "VerifyResult",
    "verify",
    "verify_token",
]
