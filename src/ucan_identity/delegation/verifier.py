"""Verification engine — decide whether a UCAN grants the required capabilities.

:func:`verify` runs the proof-chain checks of
:class:`~ucan_identity.delegation.chain.ProofChainResolver`, then:

- merges facts across the chain (the leaf wins, ancestors fill gaps) and
  checks ``required_facts``; ``"*"`` as an expected value means "present
  with any value", while ``"*"`` as a stored value is never accepted
- renders ``{name}`` / ``{a.b}`` placeholders in the required resources,
  abilities, and string caveat values from the merged facts
- checks every required capability against the leaf's effective set

Any failure raises the first error encountered; there are no partial
grants.
"""
from __future__ import annotations

import json
import logging
import re
import time
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ucan_identity.capabilities.capability import Capabilities, Capability, Resource
from ucan_identity.capabilities.values import JsonObject, json_equal
from ucan_identity.delegation.chain import (
    DEFAULT_MAX_DEPTH,
    EMBEDDED_PROOFS_FACT,
    ProofChain,
    ProofChainResolver,
)
from ucan_identity.errors import CapabilityDeniedError, FactMismatchError, MalformedTokenError

logger = logging.getLogger(__name__)

ANY_VALUE: str = "*"

_PLACEHOLDER_PATTERN = re.compile(r"\{\s*([A-Za-z_][A-Za-z0-9_]*(?:\.[A-Za-z0-9_]+)*)\s*\}")


# ---------------------------------------------------------------------------
# Options and result
# ---------------------------------------------------------------------------


class VerifyOptions(BaseModel):
    """Inputs for :func:`verify`; accepts Python or camelCase field names."""

    model_config = ConfigDict(populate_by_name=True)

    root_issuer: str = Field(alias="rootIssuer")
    audience: str
    required_capabilities: dict[str, Any] = Field(alias="requiredCapabilities")
    required_facts: Optional[dict[str, Any]] = Field(default=None, alias="requiredFacts")
    known_tokens: list[str] = Field(default_factory=list, alias="knownTokens")
    max_depth: int = Field(default=DEFAULT_MAX_DEPTH, alias="maxDepth", ge=0)


@dataclass
class VerifyResult:
    """Outcome of a successful verification.

    Parameters
    ----------
    capabilities:
        The required capabilities, after placeholder rendering.
    facts:
        Facts merged across the chain, or None when there are none.
    cids:
        CIDs of every token in the chain, leaf first, for revocation checks.
    """

    capabilities: Capabilities
    facts: Optional[JsonObject]
    cids: list[str]

    def to_dict(self) -> dict[str, Any]:
        return {
            "capabilities": self.capabilities.to_dict(),
            "facts": self.facts,
            "cids": list(self.cids),
        }


# ---------------------------------------------------------------------------
# Public operations
# ---------------------------------------------------------------------------


def verify_token(
    token: str,
    options: "VerifyOptions | Mapping[str, Any]",
    *,
    now: Optional[int] = None,
) -> VerifyResult:
    """Verify *token* synchronously; see :func:`verify`."""
    if not isinstance(options, VerifyOptions):
        try:
            options = VerifyOptions.model_validate(options)
        except ValidationError as exc:
            raise MalformedTokenError(f"invalid verify options: {exc}") from exc
    required = _required_triples(options.required_capabilities)
    now = int(time.time()) if now is None else now

    resolver = ProofChainResolver(
        root_issuer=options.root_issuer,
        now=now,
        known_tokens=options.known_tokens,
        max_depth=options.max_depth,
    )
    chain = resolver.resolve(token, options.audience)

    facts = merge_facts(chain)
    check_required_facts(facts, options.required_facts or {})

    granted = Capabilities()
    for resource, ability, caveat in required:
        capability = Capability(
            resource=render_template(resource, facts),
            ability=render_template(ability, facts),
            caveat=_render_caveat(caveat, facts),
        )
        try:
            Resource.parse(capability.resource)
        except ValueError as exc:
            raise CapabilityDeniedError(capability.resource, capability.ability) from exc
        if not chain.capabilities.enables(capability):
            raise CapabilityDeniedError(capability.resource, capability.ability)
        granted.add(capability)

    cids = chain.cids()
    logger.info(
        "Granted %d capabilities to %s via %s (%d tokens)",
        len(granted),
        chain.ucan.audience,
        chain.cid,
        len(cids),
    )
    return VerifyResult(capabilities=granted, facts=facts or None, cids=cids)


async def verify(
    token: str,
    options: "VerifyOptions | Mapping[str, Any]",
    *,
    now: Optional[int] = None,
) -> VerifyResult:
    """Verify *token* and its proof chain against *options*.

    Parameters
    ----------
    token:
        The encoded token presented by the caller.
    options:
        :class:`VerifyOptions` or an equivalent mapping.
    now:
        Reference time in Unix seconds; defaults to the wall clock.

    Returns
    -------
    VerifyResult

    Raises
    ------
    UcanError
        The first failed check: ``MalformedTokenError``,
        ``TokenExpiredError``, ``TokenNotYetValidError``,
        ``AudienceMismatchError``, ``InvalidSignatureError``,
        ``MissingProofError``, ``RootIssuerMismatchError``,
        ``FactMismatchError``, or ``CapabilityDeniedError``.
        ``MalformedTokenError`` also reports invalid *options*, before the
        token is inspected; its reason then starts with ``invalid verify
        options``.
    """
    return verify_token(token, options, now=now)


# ---------------------------------------------------------------------------
# Facts
# ---------------------------------------------------------------------------


def merge_facts(chain: ProofChain) -> JsonObject:
    """Merge facts leaf first; the embedded-proof fact is removed."""
    facts: JsonObject = {}
    for node in chain.walk():
        for key, value in node.ucan.facts.items():
            facts.setdefault(key, value)
    facts.pop(EMBEDDED_PROOFS_FACT, None)
    return facts


def check_required_facts(facts: JsonObject, required: Mapping[str, Any]) -> None:
    """Raise :class:`FactMismatchError` for the first unmet required fact."""
    for name, expected in required.items():
        if name not in facts:
            raise FactMismatchError(name, "fact is missing")
        actual = facts[name]
        if actual == ANY_VALUE:
            raise FactMismatchError(name, "a wildcard fact value is not allowed")
        if expected == ANY_VALUE:
            continue
        if not json_equal(actual, expected):
            raise FactMismatchError(name, f"expected {expected!r}, got {actual!r}")


def render_template(template: str, facts: JsonObject) -> str:
    """Substitute ``{name}`` / ``{a.b}`` placeholders from *facts*.

    Raises
    ------
    FactMismatchError
        If a placeholder names a fact that does not exist.
    """

    def substitute(match: "re.Match[str]") -> str:
        path = match.group(1)
        value: Any = facts
        for part in path.split("."):
            if not isinstance(value, dict) or part not in value:
                raise FactMismatchError(path, "no fact for template placeholder")
            value = value[part]
        return value if isinstance(value, str) else json.dumps(value, separators=(",", ":"))

    return _PLACEHOLDER_PATTERN.sub(substitute, template)


def _render_caveat(caveat: JsonObject, facts: JsonObject) -> JsonObject:
    return {
        key: render_template(value, facts) if isinstance(value, str) else value
        for key, value in caveat.items()
    }


def _required_triples(required: Mapping[str, Any]) -> list[tuple[str, str, JsonObject]]:
    triples: list[tuple[str, str, JsonObject]] = []
    for resource, abilities in required.items():
        if not isinstance(abilities, dict) or not abilities:
            raise MalformedTokenError(
                f"invalid verify options: required resource {resource!r} "
                "must map to a non-empty mapping of abilities"
            )
        for ability, caveats in abilities.items():
            if not isinstance(caveats, list) or not caveats:
                raise MalformedTokenError(
                    f"invalid verify options: required ability {ability!r} of {resource!r} "
                    "must have at least one caveat"
                )
            for caveat in caveats:
                if not isinstance(caveat, dict):
                    raise MalformedTokenError(
                        f"invalid verify options: caveats of required {resource!r} {ability!r} "
                        "must be objects"
                    )
                triples.append((resource, ability, caveat))
    return triples


__all__ = [
    "VerifyOptions",
    "VerifyResult",
    "check_required_facts",
    "merge_facts",
    "render_template",
    "verify",
    "verify_token",
]
