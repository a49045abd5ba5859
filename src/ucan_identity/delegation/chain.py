"""ProofChain — resolve, validate, and reduce a UCAN's proof ancestry.

A proof chain starts at the presented (leaf) token and follows each ``prf``
reference to a parent token, up to root tokens that carry no proofs. Every
hop is checked in order:

1. decode (canonical form)
2. temporal bounds: ``nbf <= now <= exp``
3. audience: a parent's ``aud`` must be the child's ``iss``, and its
   ``nbf``..``exp`` window must cover the child's
4. signature against the issuer's ``did:key``
5. proof resolution: inline token, then ``fct.prf`` (hash-checked), then
   the caller's known tokens

Root tokens must be issued by the trusted root issuer. Resolved tokens are
kept in an arena keyed by CID so a proof referenced twice is verified once.

The effective capabilities of each node are its claims narrowed by the
effective capabilities of its proofs. Claims no proof enables are dropped,
not rejected; ``ucan:`` / ``ucan/*`` claims pull in the whole effective set
of the selected proofs.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, Iterator, Optional

from ucan_identity.capabilities.capability import Capabilities, Capability, Resource
from ucan_identity.capabilities.proof import (
    ProofSelection,
    ProofSelectionKind,
    parse_proof_delegation,
)
from ucan_identity.did.did_key import decode_did
from ucan_identity.did.key_manager import key_type_for_algorithm, verify_signature
from ucan_identity.errors import (
    AudienceMismatchError,
    InvalidDidError,
    InvalidSignatureError,
    MalformedTokenError,
    MissingProofError,
    RootIssuerMismatchError,
    TokenExpiredError,
    TokenNotYetValidError,
)
from ucan_identity.ucan.codec import Ucan, cid_for_token, decode

logger = logging.getLogger(__name__)

DEFAULT_MAX_DEPTH: int = 32
EMBEDDED_PROOFS_FACT: str = "prf"


@dataclass(eq=False)
class ProofChain:
    """A verified token together with its verified proofs.

    Parameters
    ----------
    ucan:
        The token at this node.
    proofs:
        Verified parent chains, in ``prf`` order.
    redelegations:
        The proof selections this token's ``ucan:`` claims resolved to.
    capabilities:
        Effective capabilities after narrowing against ``proofs``.
    """

    ucan: Ucan
    proofs: list["ProofChain"] = field(default_factory=list)
    redelegations: list[ProofSelection] = field(default_factory=list)
    capabilities: Capabilities = field(default_factory=Capabilities)

    @property
    def cid(self) -> str:
        return self.ucan.cid

    def walk(self) -> Iterator["ProofChain"]:
        """Yield nodes depth-first, this node before its proofs."""
        yield self
        for proof in self.proofs:
            yield from proof.walk()

    def cids(self) -> list[str]:
        """Return every CID in the chain, leaf first, without duplicates."""
        result: list[str] = []
        for node in self.walk():
            if node.cid not in result:
                result.append(node.cid)
        return result


class ProofChainResolver:
    """Build :class:`ProofChain` trees for one verification call.

    Parameters
    ----------
    root_issuer:
        DID every root token must be issued by.
    now:
        Reference time, Unix seconds.
    known_tokens:
        Encoded tokens that ``prf`` CIDs may refer to.
    max_depth:
        Maximum number of proof hops below the presented token.
    """

    def __init__(
        self,
        root_issuer: str,
        now: int,
        known_tokens: Iterable[str] = (),
        max_depth: int = DEFAULT_MAX_DEPTH,
    ) -> None:
        self._root_issuer = root_issuer
        self._now = now
        self._max_depth = max_depth
        self._known_tokens: dict[str, str] = {cid_for_token(t): t for t in known_tokens}
        self._arena: dict[str, ProofChain] = {}

    def resolve(self, token: str, audience: str) -> ProofChain:
        """Verify *token* addressed to *audience* and its whole ancestry.

        Raises
        ------
        MalformedTokenError
            On a structurally invalid token, a tampered embedded proof, an
            unparseable ``ucan:`` claim, a token outliving one of its
            proofs, or a chain deeper than ``max_depth``.
        TokenExpiredError, TokenNotYetValidError
            If any token is outside its validity window.
        AudienceMismatchError
            If a token is not addressed to the expected identity.
        InvalidSignatureError
            If any signature does not verify against its issuer.
        MissingProofError
            If a proof reference or redelegated proof cannot be found.
        RootIssuerMismatchError
            If a root token was not issued by the trusted root issuer.
        """
        return self._resolve(token, audience, depth=0)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _resolve(self, token: str, audience: str, depth: int) -> ProofChain:
        if depth > self._max_depth:
            raise MalformedTokenError(
                f"proof chain exceeds the maximum depth of {self._max_depth}"
            )

        cached = self._arena.get(cid_for_token(token))
        if cached is not None:
            _check_audience(cached.ucan, audience)
            return cached

        ucan = decode(token)
        _check_time_bounds(ucan, self._now)
        _check_audience(ucan, audience)
        _check_signature(ucan)

        chain = ProofChain(ucan=ucan)
        if not ucan.proofs and ucan.issuer != self._root_issuer:
            raise RootIssuerMismatchError(expected=self._root_issuer, actual=ucan.issuer)
        for reference in ucan.proofs:
            parent_token = self._lookup_proof(ucan, reference)
            parent = self._resolve(parent_token, ucan.issuer, depth + 1)
            _check_lifetime_encompasses(parent.ucan, ucan)
            chain.proofs.append(parent)

        chain.capabilities = self._reduce_capabilities(chain)
        self._arena[ucan.cid] = chain
        return chain

    def _lookup_proof(self, ucan: Ucan, reference: str) -> str:
        if "." in reference:
            logger.debug("Proof of %s resolved inline", ucan.cid)
            return reference

        embedded = ucan.facts.get(EMBEDDED_PROOFS_FACT)
        if isinstance(embedded, dict) and isinstance(embedded.get(reference), str):
            token = embedded[reference]
            if cid_for_token(token) != reference:
                raise MalformedTokenError(f"embedded proof does not hash to {reference}")
            logger.debug("Proof %s of %s resolved from facts", reference, ucan.cid)
            return token

        known = self._known_tokens.get(reference)
        if known is not None:
            logger.debug("Proof %s of %s resolved from known tokens", reference, ucan.cid)
            return known
        raise MissingProofError(reference)

    def _reduce_capabilities(self, chain: ProofChain) -> Capabilities:
        is_root = not chain.proofs
        effective = Capabilities()
        for capability in chain.ucan.capabilities:
            try:
                selection = parse_proof_delegation(capability)
            except ValueError as exc:
                raise MalformedTokenError(str(exc)) from exc

            if selection is not None:
                chain.redelegations.append(selection)
                for granted in _redelegated(chain, selection):
                    effective.add(granted)
            elif is_root or any(proof.capabilities.enables(capability) for proof in chain.proofs):
                effective.add(capability)
            else:
                logger.debug(
                    "Dropping capability %s claimed by %s: no proof delegates it",
                    capability,
                    chain.cid,
                )
        return effective


def _redelegated(chain: ProofChain, selection: ProofSelection) -> list[Capability]:
    kind = selection.kind
    if kind in (ProofSelectionKind.ALL, ProofSelectionKind.THESE_PROOFS):
        selected = chain.proofs
    else:
        if kind is ProofSelectionKind.CID:
            selected = [proof for proof in chain.proofs if proof.cid == selection.cid]
        else:
            selected = [proof for proof in chain.proofs if proof.ucan.issuer == selection.did]
        if not selected:
            raise MissingProofError(str(selection))

    granted: list[Capability] = []
    for proof in selected:
        for capability in proof.capabilities:
            if kind is ProofSelectionKind.DID_SCHEME and not _has_scheme(
                capability, selection.scheme
            ):
                continue
            granted.append(capability)
    return granted


def _has_scheme(capability: Capability, scheme: Optional[str]) -> bool:
    try:
        return Resource.parse(capability.resource).scheme == scheme
    except ValueError:
        return False


def _check_time_bounds(ucan: Ucan, now: int) -> None:
    if ucan.is_expired(now):
        raise TokenExpiredError(issuer=ucan.issuer, expired_at=ucan.expires_at, now=now)
    if ucan.is_too_early(now):
        raise TokenNotYetValidError(
            issuer=ucan.issuer, not_before=ucan.not_before or 0, now=now
        )


def _check_audience(ucan: Ucan, audience: str) -> None:
    if ucan.audience != audience:
        raise AudienceMismatchError(expected=audience, actual=ucan.audience)


def _check_lifetime_encompasses(proof: Ucan, ucan: Ucan) -> None:
    begins_before = proof.not_before is None or (
        ucan.not_before is not None and proof.not_before <= ucan.not_before
    )
    if not begins_before or proof.expires_at < ucan.expires_at:
        raise MalformedTokenError(
            f"lifetime of {ucan.cid} exceeds that of its proof {proof.cid}"
        )


def _check_signature(ucan: Ucan) -> None:
    try:
        keypair = decode_did(ucan.issuer)
    except InvalidDidError as exc:
        raise InvalidSignatureError(ucan.issuer, exc.reason) from exc

    key_type = keypair.key_type
    if key_type_for_algorithm(ucan.header.alg) is not key_type:
        raise InvalidSignatureError(
            ucan.issuer,
            f"algorithm {ucan.header.alg} does not match {key_type.value} issuer key",
        )
    if not verify_signature(keypair, ucan.signing_input(), ucan.signature):
        raise InvalidSignatureError(ucan.issuer)


__all__ = ["DEFAULT_MAX_DEPTH", "ProofChain", "ProofChainResolver"]
