"""ucan_identity.ucan — token codec and builder.

Submodules
----------
codec
    Ucan / UcanHeader / UcanPayload, canonical encode/decode, CIDs.
builder
    UcanBuilder, InvokeOptions, build_token, invoke.
"""
from __future__ import annotations

from ucan_identity.ucan.builder import InvokeOptions, UcanBuilder, build_token, invoke
from ucan_identity.ucan.codec import (
    MAX_TIMESTAMP,
    UCAN_VERSION,
    Ucan,
    UcanHeader,
    UcanPayload,
    canonical_json,
    cid_for_token,
    compute_cid,
    decode,
    encode,
)

__all__ = [
    # codec
    "MAX_TIMESTAMP",
    "UCAN_VERSION",
    "Ucan",
    "UcanHeader",
    "UcanPayload",
    "canonical_json",
    "cid_for_token",
    "compute_cid",
    "decode",
    "encode",
    # builder
    "InvokeOptions",
    "UcanBuilder",
    "build_token",
    "invoke",
]
