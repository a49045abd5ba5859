"""UcanBuilder — construct and sign UCAN tokens.

Tokens are assembled with a fluent builder and signed with the issuer's
key pair. The payload is round-tripped through
:meth:`~ucan_identity.ucan.codec.UcanPayload.from_dict` before signing, so a
token that builds successfully always decodes.

Usage
-----
::

    ucan = (
        UcanBuilder()
        .issued_by(alice)
        .for_audience(bob_did)
        .with_lifetime(3600)
        .claiming_capability(Capability("api:app/x", "book/view"))
        .witnessed_by(root_to_alice)
        .build()
    )
    token = ucan.encode()
"""
from __future__ import annotations

import base64
import logging
import secrets
import time
from typing import Any, Iterable, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ucan_identity.capabilities.capability import Capabilities, Capability
from ucan_identity.capabilities.proof import ProofSelection, ProofSelectionKind, proof_delegation
from ucan_identity.capabilities.values import JsonObject, is_json_value
from ucan_identity.did.did_key import encode_did
from ucan_identity.did.document import VerificationMethod, keypair_from_verification_method
from ucan_identity.did.key_manager import KeyPair, sign
from ucan_identity.errors import MalformedTokenError
from ucan_identity.ucan.codec import Ucan, UcanHeader, UcanPayload, decode, signing_input

logger = logging.getLogger(__name__)

NONCE_BYTES: int = 32
PROOF_FACTS_KEY: str = "prf"


class UcanBuilder:
    """Fluent builder for signed UCAN tokens.

    Every ``with_*`` / ``claiming_*`` method mutates the builder and returns
    it. :meth:`build` may be called more than once; each call signs a fresh
    token.
    """

    def __init__(self) -> None:
        self._issuer: Optional[KeyPair] = None
        self._audience: Optional[str] = None
        self._lifetime: Optional[int] = None
        self._expiration: Optional[int] = None
        self._not_before: Optional[int] = None
        self._facts: JsonObject = {}
        self._add_nonce = False
        self._add_proof_facts = True
        self._proofs: list[Ucan] = []
        self._capabilities = Capabilities()

    # ------------------------------------------------------------------
    # Identity and time
    # ------------------------------------------------------------------

    def issued_by(self, issuer: KeyPair) -> "UcanBuilder":
        """Set the signing key pair; its DID becomes ``iss``."""
        self._issuer = issuer
        return self

    def for_audience(self, audience: str) -> "UcanBuilder":
        self._audience = audience
        return self

    def with_lifetime(self, seconds: int) -> "UcanBuilder":
        """Expire *seconds* after build time. Overridden by :meth:`with_expiration`."""
        self._lifetime = seconds
        return self

    def with_expiration(self, timestamp: int) -> "UcanBuilder":
        self._expiration = timestamp
        return self

    def not_before(self, timestamp: int) -> "UcanBuilder":
        self._not_before = timestamp
        return self

    # ------------------------------------------------------------------
    # Facts and nonce
    # ------------------------------------------------------------------

    def with_fact(self, key: str, value: Any) -> "UcanBuilder":
        """Add a single fact. Values that are not JSON are skipped with a warning."""
        if not isinstance(key, str) or not is_json_value(value):
            logger.warning("Could not add fact %r to UCAN: value is not JSON-representable", key)
            return self
        self._facts[key] = value
        return self

    def with_facts(self, facts: Mapping[str, Any]) -> "UcanBuilder":
        for key, value in facts.items():
            self.with_fact(key, value)
        return self

    def with_nonce(self) -> "UcanBuilder":
        self._add_nonce = True
        return self

    def with_add_proof_facts(self, enabled: bool = True) -> "UcanBuilder":
        """Embed each proof's token in ``fct.prf`` keyed by CID (default on)."""
        self._add_proof_facts = enabled
        return self

    # ------------------------------------------------------------------
    # Proofs and capabilities
    # ------------------------------------------------------------------

    def witnessed_by(self, authority: Ucan) -> "UcanBuilder":
        """Include *authority* as a proof of this token."""
        if all(proof.cid != authority.cid for proof in self._proofs):
            self._proofs.append(authority)
        return self

    def with_proofs(self, proofs: Iterable[Ucan]) -> "UcanBuilder":
        for proof in proofs:
            self.witnessed_by(proof)
        return self

    def claiming_capability(self, capability: Capability) -> "UcanBuilder":
        self._capabilities.add(capability)
        return self

    def claiming_capabilities(
        self, capabilities: "Capabilities | Iterable[Capability] | Mapping[str, Any]"
    ) -> "UcanBuilder":
        """Claim several capabilities at once.

        Raises
        ------
        MalformedTokenError
            If a nested-mapping argument is not a valid capability set.
        """
        if isinstance(capabilities, Mapping):
            try:
                capabilities = Capabilities.from_dict(dict(capabilities))
            except ValueError as exc:
                raise MalformedTokenError(f"invalid capabilities: {exc}") from exc
        for capability in capabilities:
            self.claiming_capability(capability)
        return self

    def delegating_from(self, authority: Ucan) -> "UcanBuilder":
        """Redelegate everything *authority* grants (``ucan:<cid>`` / ``ucan/*``)."""
        self.witnessed_by(authority)
        selection = ProofSelection(kind=ProofSelectionKind.CID, cid=authority.cid)
        return self.claiming_capability(proof_delegation(selection))

    # ------------------------------------------------------------------
    # Build
    # ------------------------------------------------------------------

    def build(self, now: Optional[int] = None) -> Ucan:
        """Sign and return the token.

        Parameters
        ----------
        now:
            Reference time for :meth:`with_lifetime`; defaults to the wall clock.

        Raises
        ------
        MalformedTokenError
            If issuer, audience, or expiration is missing, or the payload is
            structurally invalid.
        NotSigningCapableError
            If the issuer key type cannot sign.
        KeyMismatchError
            If the issuer key pair has no private key.
        """
        if self._issuer is None:
            raise MalformedTokenError("an issuer is required")
        if self._audience is None:
            raise MalformedTokenError("an audience is required")

        if self._expiration is not None:
            expiration = self._expiration
        elif self._lifetime is not None:
            expiration = (int(time.time()) if now is None else now) + self._lifetime
        else:
            raise MalformedTokenError("an expiration or lifetime is required")

        algorithm = self._issuer.key_type.jwt_algorithm
        payload = UcanPayload.from_dict(
            self._payload_dict(encode_did(self._issuer), self._audience, expiration)
        )
        header = UcanHeader(alg=algorithm)
        signature = sign(self._issuer, signing_input(header, payload))
        return Ucan(header=header, payload=payload, signature=signature)

    def _payload_dict(self, issuer: str, audience: str, expiration: int) -> dict[str, Any]:
        payload = UcanPayload(
            iss=issuer,
            aud=audience,
            exp=expiration,
            capabilities=self._capabilities,
            nbf=self._not_before,
        ).to_dict()

        facts = dict(self._facts)
        if self._add_proof_facts and self._proofs:
            facts[PROOF_FACTS_KEY] = {proof.cid: proof.encode() for proof in self._proofs}
        if facts:
            payload["fct"] = facts
        if self._proofs:
            payload["prf"] = [proof.cid for proof in self._proofs]
        if self._add_nonce:
            payload["nnc"] = _generate_nonce()
        return payload


def _generate_nonce() -> str:
    return base64.urlsafe_b64encode(secrets.token_bytes(NONCE_BYTES)).rstrip(b"=").decode("ascii")


# ---------------------------------------------------------------------------
# Invoke
# ---------------------------------------------------------------------------


class InvokeOptions(BaseModel):
    """Inputs for :func:`invoke`; accepts Python or camelCase field names."""

    model_config = ConfigDict(populate_by_name=True)

    issuer: VerificationMethod
    audience: str
    expiration: int
    not_before: Optional[int] = Field(default=None, alias="notBefore")
    capabilities: dict[str, Any]
    facts: Optional[dict[str, Any]] = None
    proofs: Optional[list[str]] = None
    add_nonce: bool = Field(default=False, alias="addNonce")
    add_proof_facts: bool = Field(default=True, alias="addProofFacts")


def build_token(options: "InvokeOptions | Mapping[str, Any]") -> Ucan:
    """Build and sign a token from :class:`InvokeOptions`.

    Raises
    ------
    MalformedTokenError
        If the options, capabilities, or any proof token are invalid.
    KeyMismatchError
        If the issuer verification method carries no usable private key.
    NotSigningCapableError
        If the issuer key type cannot sign.
    """
    if not isinstance(options, InvokeOptions):
        try:
            options = InvokeOptions.model_validate(options)
        except ValidationError as exc:
            raise MalformedTokenError(f"invalid invoke options: {exc}") from exc

    builder = (
        UcanBuilder()
        .issued_by(keypair_from_verification_method(options.issuer))
        .for_audience(options.audience)
        .with_expiration(options.expiration)
        .claiming_capabilities(options.capabilities)
        .with_add_proof_facts(options.add_proof_facts)
    )
    if options.not_before is not None:
        builder.not_before(options.not_before)
    if options.facts:
        builder.with_facts(options.facts)
    for token in options.proofs or ():
        builder.witnessed_by(decode(token))
    if options.add_nonce:
        builder.with_nonce()
    return builder.build()


async def invoke(options: "InvokeOptions | Mapping[str, Any]") -> str:
    """Build, sign, and encode a token; see :func:`build_token`."""
    return build_token(options).encode()


__all__ = ["InvokeOptions", "UcanBuilder", "build_token", "invoke"]
