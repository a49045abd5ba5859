"""Tests for ucan_identity.ucan.builder — UcanBuilder and invoke."""
from __future__ import annotations

import logging
import time

import pytest

from ucan_identity.capabilities.capability import Capability
from ucan_identity.did.did_key import encode_did
from ucan_identity.did.document import DIDDocument, create_did
from ucan_identity.did.key_manager import KeyPair, KeyType, generate_keypair, verify_signature
from ucan_identity.errors import KeyMismatchError, MalformedTokenError, NotSigningCapableError
from ucan_identity.ucan.builder import InvokeOptions, UcanBuilder, build_token, invoke
from ucan_identity.ucan.codec import Ucan, decode

CAPABILITIES = {
    "mailto:username@example.com": {
        "msg/receive": [{}],
        "msg/send": [{"draft": True}, {"publish": True, "topic": ["foo"]}],
    }
}


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def issuer() -> KeyPair:
    return generate_keypair()


@pytest.fixture()
def audience() -> str:
    return encode_did(generate_keypair())


@pytest.fixture()
def issuer_document() -> DIDDocument:
    return create_did()


def make_builder(issuer: KeyPair, audience: str) -> UcanBuilder:
    return (
        UcanBuilder()
        .issued_by(issuer)
        .for_audience(audience)
        .with_expiration(2000000000)
        .claiming_capability(Capability("api:app/x", "book/view"))
    )


# ---------------------------------------------------------------------------
# UcanBuilder
# ---------------------------------------------------------------------------


class TestUcanBuilder:
    @pytest.mark.parametrize("key_type", [KeyType.ED25519, KeyType.P256, KeyType.SECP256K1])
    def test_build_signs_token(self, key_type: KeyType, audience: str) -> None:
        issuer = generate_keypair(key_type)
        ucan = make_builder(issuer, audience).build()
        assert ucan.header.alg == key_type.jwt_algorithm
        assert ucan.issuer == encode_did(issuer)
        assert ucan.audience == audience
        assert verify_signature(issuer, ucan.signing_input(), ucan.signature)

    def test_built_token_decodes_identically(self, issuer: KeyPair, audience: str) -> None:
        ucan = make_builder(issuer, audience).with_fact("a", "b").with_nonce().build()
        token = ucan.encode()
        decoded = decode(token)
        assert decoded.encode() == token
        assert decoded.cid == ucan.cid

    def test_lifetime_is_relative_to_now(self, issuer: KeyPair, audience: str) -> None:
        ucan = (
            UcanBuilder()
            .issued_by(issuer)
            .for_audience(audience)
            .with_lifetime(60)
            .build(now=1000)
        )
        assert ucan.expires_at == 1060

    def test_lifetime_defaults_to_wall_clock(self, issuer: KeyPair, audience: str) -> None:
        before = int(time.time())
        ucan = UcanBuilder().issued_by(issuer).for_audience(audience).with_lifetime(60).build()
        assert before + 60 <= ucan.expires_at <= int(time.time()) + 60

    def test_expiration_wins_over_lifetime(self, issuer: KeyPair, audience: str) -> None:
        ucan = make_builder(issuer, audience).with_lifetime(60).build(now=0)
        assert ucan.expires_at == 2000000000

    def test_not_before(self, issuer: KeyPair, audience: str) -> None:
        assert make_builder(issuer, audience).not_before(100).build().not_before == 100

    def test_nonce_is_random(self, issuer: KeyPair, audience: str) -> None:
        builder = make_builder(issuer, audience).with_nonce()
        first, second = builder.build(), builder.build()
        assert first.payload.nonce and second.payload.nonce
        assert first.payload.nonce != second.payload.nonce
        assert len(first.payload.nonce) == 43

    def test_no_nonce_by_default(self, issuer: KeyPair, audience: str) -> None:
        assert make_builder(issuer, audience).build().payload.nonce is None

    def test_non_json_fact_is_skipped(
        self, issuer: KeyPair, audience: str, caplog: pytest.LogCaptureFixture
    ) -> None:
        with caplog.at_level(logging.WARNING, logger="ucan_identity.ucan.builder"):
            ucan = make_builder(issuer, audience).with_facts({"ok": 1, "bad": object()}).build()
        assert ucan.facts == {"ok": 1}
        assert "bad" in caplog.text

    def test_claiming_capabilities_from_mapping(self, issuer: KeyPair, audience: str) -> None:
        ucan = (
            UcanBuilder()
            .issued_by(issuer)
            .for_audience(audience)
            .with_expiration(2000000000)
            .claiming_capabilities(CAPABILITIES)
            .build()
        )
        assert ucan.capabilities == CAPABILITIES

    def test_claiming_malformed_mapping_raises(self) -> None:
        with pytest.raises(MalformedTokenError):
            UcanBuilder().claiming_capabilities({"api:x": {"a/b": []}})

    def test_claiming_malformed_capability_fails_at_build(
        self, issuer: KeyPair, audience: str
    ) -> None:
        builder = make_builder(issuer, audience).claiming_capability(Capability("bad", "a/b"))
        with pytest.raises(MalformedTokenError):
            builder.build()


class TestUcanBuilderProofs:
    def test_witnessed_by_embeds_proof_facts(self, issuer: KeyPair, audience: str) -> None:
        parent = make_builder(generate_keypair(), encode_did(issuer)).build()
        child = make_builder(issuer, audience).witnessed_by(parent).build()
        assert child.proofs == (parent.cid,)
        assert child.facts["prf"] == {parent.cid: parent.encode()}

    def test_proof_facts_can_be_disabled(self, issuer: KeyPair, audience: str) -> None:
        parent = make_builder(generate_keypair(), encode_did(issuer)).build()
        child = (
            make_builder(issuer, audience)
            .witnessed_by(parent)
            .with_add_proof_facts(False)
            .build()
        )
        assert child.proofs == (parent.cid,)
        assert child.payload.facts is None

    def test_duplicate_proofs_are_ignored(self, issuer: KeyPair, audience: str) -> None:
        parent = make_builder(generate_keypair(), encode_did(issuer)).build()
        child = make_builder(issuer, audience).with_proofs([parent, parent]).build()
        assert child.proofs == (parent.cid,)

    def test_delegating_from_claims_redelegation(self, issuer: KeyPair, audience: str) -> None:
        parent = make_builder(generate_keypair(), encode_did(issuer)).build()
        child = make_builder(issuer, audience).delegating_from(parent).build()
        assert Capability(f"ucan:{parent.cid}", "ucan/*") in list(child.capabilities)
        assert child.proofs == (parent.cid,)


class TestUcanBuilderErrors:
    def test_missing_issuer(self, audience: str) -> None:
        with pytest.raises(MalformedTokenError, match="issuer"):
            UcanBuilder().for_audience(audience).with_expiration(1).build()

    def test_missing_audience(self, issuer: KeyPair) -> None:
        with pytest.raises(MalformedTokenError, match="audience"):
            UcanBuilder().issued_by(issuer).with_expiration(1).build()

    def test_missing_expiration(self, issuer: KeyPair, audience: str) -> None:
        with pytest.raises(MalformedTokenError, match="expiration"):
            UcanBuilder().issued_by(issuer).for_audience(audience).build()

    def test_not_before_after_expiration(self, issuer: KeyPair, audience: str) -> None:
        with pytest.raises(MalformedTokenError):
            make_builder(issuer, audience).not_before(2000000001).build()

    @pytest.mark.parametrize("key_type", [KeyType.X25519, KeyType.BLS12381_G2])
    def test_non_signing_issuer(self, key_type: KeyType, audience: str) -> None:
        with pytest.raises(NotSigningCapableError):
            make_builder(generate_keypair(key_type), audience).build()

    def test_public_only_issuer(self, issuer: KeyPair, audience: str) -> None:
        with pytest.raises(KeyMismatchError):
            make_builder(issuer.public_only(), audience).build()


# ---------------------------------------------------------------------------
# invoke
# ---------------------------------------------------------------------------


class TestInvoke:
    @pytest.mark.asyncio
    async def test_invoke_with_camel_case_options(self, issuer_document: DIDDocument) -> None:
        token = await invoke(
            {
                "issuer": issuer_document.verification_method[0].to_dict(),
                "audience": "did:key:zabcde...",
                "expiration": 2000000000,
                "notBefore": 10,
                "capabilities": CAPABILITIES,
                "facts": {"a": "b"},
                "addNonce": True,
            }
        )
        ucan = decode(token)
        assert ucan.issuer == issuer_document.id
        assert ucan.audience == "did:key:zabcde..."
        assert ucan.not_before == 10
        assert ucan.facts == {"a": "b"}
        assert ucan.payload.nonce is not None
        assert ucan.capabilities == CAPABILITIES

    @pytest.mark.asyncio
    async def test_invoke_with_proofs(self, issuer_document: DIDDocument) -> None:
        root = create_did()
        parent = build_token(
            InvokeOptions(
                issuer=root.verification_method[0],
                audience=issuer_document.id,
                expiration=2000000000,
                capabilities=CAPABILITIES,
            )
        )
        token = await invoke(
            InvokeOptions(
                issuer=issuer_document.verification_method[0],
                audience="did:key:zabcde...",
                expiration=2000000000,
                capabilities=CAPABILITIES,
                proofs=[parent.encode()],
                add_proof_facts=False,
            )
        )
        ucan = decode(token)
        assert ucan.proofs == (parent.cid,)
        assert ucan.payload.facts is None

    def test_build_token_returns_ucan(self, issuer_document: DIDDocument) -> None:
        ucan = build_token(
            {
                "issuer": issuer_document.verification_method[0],
                "audience": "did:key:zabcde...",
                "expiration": 2000000000,
                "capabilities": {},
            }
        )
        assert isinstance(ucan, Ucan)
        assert len(ucan.capabilities) == 0

    def test_invalid_options_raise(self) -> None:
        with pytest.raises(MalformedTokenError, match="invoke options"):
            build_token({"audience": "did:key:x"})

    def test_malformed_proof_raises(self, issuer_document: DIDDocument) -> None:
        with pytest.raises(MalformedTokenError):
            build_token(
                {
                    "issuer": issuer_document.verification_method[0],
                    "audience": "did:key:x",
                    "expiration": 2000000000,
                    "capabilities": {},
                    "proofs": ["not-a-token"],
                }
            )

    def test_public_issuer_raises(self) -> None:
        from ucan_identity.did.document import resolve_did

        public = resolve_did(create_did().id).verification_method[0]
        with pytest.raises(KeyMismatchError):
            build_token(
                {
                    "issuer": public,
                    "audience": "did:key:x",
                    "expiration": 2000000000,
                    "capabilities": {},
                }
            )
