"""Proof redelegation capabilities (``ucan:`` resources).

A capability whose resource uses the ``ucan`` scheme and whose ability is
``ucan/*`` does not name an application resource. It re-grants the complete
effective capability set of some of the token's own proofs:

=========================  ==============================================
Resource                   Redelegates
=========================  ==============================================
``ucan:*``                 every proof
``ucan:./*``               every proof
``ucan://<did>/*``         proofs issued by ``<did>``
``ucan://<did>/<scheme>``  proofs issued by ``<did>``, ``<scheme>`` only
``ucan:<cid>``             the proof with that CID
=========================  ==============================================
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from ucan_identity.capabilities.capability import Capability

PROOF_RESOURCE_SCHEME: str = "ucan"
PROOF_DELEGATION_ABILITY: str = "ucan/*"

_CID_PATTERN = re.compile(r"^b[a-z2-7]+$")


class ProofSelectionKind(str, Enum):
    ALL = "all"
    THESE_PROOFS = "these_proofs"
    DID = "did"
    DID_SCHEME = "did_scheme"
    CID = "cid"


@dataclass(frozen=True)
class ProofSelection:
    """Which proofs a ``ucan:`` capability redelegates."""

    kind: ProofSelectionKind
    did: Optional[str] = None
    scheme: Optional[str] = None
    cid: Optional[str] = None

    @classmethod
    def parse(cls, resource: str) -> "ProofSelection":
        """Parse a ``ucan:`` resource string.

        Raises
        ------
        ValueError
            If *resource* is not a recognised delegation URI.
        """
        if resource == "ucan:*":
            return cls(kind=ProofSelectionKind.ALL)
        if resource == "ucan:./*":
            return cls(kind=ProofSelectionKind.THESE_PROOFS)
        if resource.startswith("ucan://"):
            parts = resource[len("ucan://"):].split("/")
            if len(parts) != 2 or not parts[0] or not parts[1]:
                raise ValueError(f"Invalid delegation URI {resource!r}")
            did, selector = parts
            if selector == "*":
                return cls(kind=ProofSelectionKind.DID, did=did)
            return cls(kind=ProofSelectionKind.DID_SCHEME, did=did, scheme=selector.lower())
        if resource.startswith("ucan:"):
            cid = resource[len("ucan:"):]
            if not _CID_PATTERN.match(cid):
                raise ValueError(f"Invalid proof CID in delegation URI {resource!r}")
            return cls(kind=ProofSelectionKind.CID, cid=cid)
        raise ValueError(f"Unrecognized delegation URI {resource!r}")

    def __str__(self) -> str:
        if self.kind is ProofSelectionKind.ALL:
            return "ucan:*"
        if self.kind is ProofSelectionKind.THESE_PROOFS:
            return "ucan:./*"
        if self.kind is ProofSelectionKind.DID:
            return f"ucan://{self.did}/*"
        if self.kind is ProofSelectionKind.DID_SCHEME:
            return f"ucan://{self.did}/{self.scheme}"
        return f"ucan:{self.cid}"


def is_proof_capability(capability: Capability) -> bool:
    """Return True for capabilities on the ``ucan`` scheme."""
    return capability.resource.lower().startswith(PROOF_RESOURCE_SCHEME + ":")


def parse_proof_delegation(capability: Capability) -> Optional[ProofSelection]:
    """Return the selection of a ``ucan:`` / ``ucan/*`` capability, or None.

    Raises
    ------
    ValueError
        If the capability uses the delegation ability with a malformed resource.
    """
    if not is_proof_capability(capability) or capability.ability != PROOF_DELEGATION_ABILITY:
        return None
    return ProofSelection.parse(capability.resource)


def proof_delegation(selection: ProofSelection) -> Capability:
    """Build the capability that redelegates *selection*."""
    return Capability(resource=str(selection), ability=PROOF_DELEGATION_ABILITY)


__all__ = [
    "PROOF_DELEGATION_ABILITY",
    "PROOF_RESOURCE_SCHEME",
    "ProofSelection",
    "ProofSelectionKind",
    "is_proof_capability",
    "parse_proof_delegation",
    "proof_delegation",
]
