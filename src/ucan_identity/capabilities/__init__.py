"""Capability model: resource/ability/caveat matching and proof redelegation."""
from __future__ import annotations

from ucan_identity.capabilities.capability import (
    WILDCARD,
    Capabilities,
    Capability,
    Resource,
    ability_includes,
    caveat_enables,
    resource_includes,
)
from ucan_identity.capabilities.proof import (
    PROOF_DELEGATION_ABILITY,
    ProofSelection,
    ProofSelectionKind,
    is_proof_capability,
    parse_proof_delegation,
    proof_delegation,
)
from ucan_identity.capabilities.values import JsonObject, JsonValue, is_submapping, json_equal

__all__ = [
    "Capabilities",
    "Capability",
    "JsonObject",
    "JsonValue",
    "PROOF_DELEGATION_ABILITY",
    "ProofSelection",
    "ProofSelectionKind",
    "Resource",
    "WILDCARD",
    "ability_includes",
    "caveat_enables",
    "is_proof_capability",
    "is_submapping",
    "json_equal",
    "parse_proof_delegation",
    "proof_delegation",
    "resource_includes",
]
