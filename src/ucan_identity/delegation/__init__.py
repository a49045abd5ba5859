"""ucan_identity.delegation — proof chains and verification.

Submodules
----------
chain
    ProofChain, ProofChainResolver: per-hop checks, narrowing, redelegation.
verifier
    VerifyOptions, VerifyResult, verify / verify_token.
"""
from __future__ import annotations

from ucan_identity.delegation.chain import DEFAULT_MAX_DEPTH, ProofChain, ProofChainResolver
from ucan_identity.delegation.verifier import (
    VerifyOptions,
    VerifyResult,
    check_required_facts,
    merge_facts,
    render_template,
    verify,
    verify_token,
)

__all__ = [
    # chain
    "DEFAULT_MAX_DEPTH",
    "ProofChain",
    "ProofChainResolver",
    # verifier
    "VerifyOptions",
    "VerifyResult",
    "check_required_facts",
    "merge_facts",
    "render_template",
    "verify",
    "verify_token",
]
