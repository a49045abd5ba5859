"""Tests for ucan_identity.ucan.codec — token encoding, decoding, and CIDs."""
from __future__ import annotations

import base64
import json

import pytest

from ucan_identity.capabilities.capability import Capabilities
from ucan_identity.delegation.verifier import verify_token
from ucan_identity.did.did_key import encode_did
from ucan_identity.did.key_manager import KeyPair, generate_keypair, sign
from ucan_identity.errors import MalformedTokenError
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
    signing_input,
)

SAMPLE_TOKEN = (
    "eyJhbGciOiJFZERTQSIsInR5cCI6IkpXVCJ9."
    "eyJhdWQiOiJkaWQ6a2V5OnphYmNkZS4uLiIsImNhcCI6eyJtYWlsdG86dXNlcm5hbWVAZXhhbXBsZS5jb20iOnsibXNnL3JlY2VpdmUiOlt7fV0sIm1zZy9zZW5kIjpbeyJkcmFmdCI6dHJ1ZX0seyJwdWJsaXNoIjp0cnVlLCJ0b3BpYyI6WyJmb28iXX1dfX0sImV4cCI6MTcyMTAzMjcyNSwiZmN0Ijp7ImEiOiJiIn0sImlzcyI6ImRpZDprZXk6ejZNa3JNMUhqdVJ4amRWNVU2czR3UnJOV2RaR1V5aU02RUZ3SjhYUm1xOG4ybng3Iiwibm5jIjoic2pCYnB2OXlNS2JJMlhWaDduREhsRUZ0U1I2TS0zTVU0QVdGSmhXWDlyWSIsInVjdiI6IjAuMTAuMC1jYW5hcnkifQ."
    "0b8kVA0NfsYPdSRT6YM-5u6KgcjWsu2rtQKwsdi2_N3S0Coo5qPGajD1T8-lkcJ9ls8jj_6ipPYbtlq2IQkXAQ"
)
SAMPLE_ISSUER = "did:key:z6MkrM1HjuRxjdV5U6s4wRrNWdZGUyiM6EFwJ8XRmq8n2nx7"


def b64(data: object) -> str:
    raw = data if isinstance(data, bytes) else json.dumps(data).encode("utf-8")
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def canonical_b64(data: object) -> str:
    return base64.urlsafe_b64encode(canonical_json(data)).rstrip(b"=").decode("ascii")


def payload_dict(**overrides: object) -> dict[str, object]:
    payload: dict[str, object] = {
        "ucv": UCAN_VERSION,
        "iss": "did:key:issuer",
        "aud": "did:key:audience",
        "exp": 2000000000,
        "cap": {"api:app/x": {"book/view": [{}]}},
    }
    payload.update(overrides)
    return {key: value for key, value in payload.items() if value is not None}


def token_from(payload: dict[str, object], header: object = None) -> str:
    header = header if header is not None else {"alg": "EdDSA", "typ": "JWT"}
    return f"{canonical_b64(header)}.{canonical_b64(payload)}.{b64(b'signature')}"


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def sample() -> Ucan:
    return decode(SAMPLE_TOKEN)


# ---------------------------------------------------------------------------
# Decoding
# ---------------------------------------------------------------------------


class TestDecode:
    def test_sample_header(self, sample: Ucan) -> None:
        assert sample.header == UcanHeader(alg="EdDSA", typ="JWT")

    def test_sample_payload(self, sample: Ucan) -> None:
        assert sample.issuer == SAMPLE_ISSUER
        assert sample.audience == "did:key:zabcde..."
        assert sample.expires_at == 1721032725
        assert sample.not_before is None
        assert sample.facts == {"a": "b"}
        assert sample.proofs == ()
        assert sample.payload.nonce == "sjBbpv9yMKbI2XVh7nDHlEFtSR6M-3MU4AWFJhWX9rY"
        assert sample.payload.version == UCAN_VERSION
        assert sample.capabilities == {
            "mailto:username@example.com": {
                "msg/receive": [{}],
                "msg/send": [{"draft": True}, {"publish": True, "topic": ["foo"]}],
            }
        }
        assert len(sample.signature) == 64

    def test_reencodes_identically(self, sample: Ucan) -> None:
        assert sample.encode() == SAMPLE_TOKEN

    def test_cid_format(self, sample: Ucan) -> None:
        assert sample.cid.startswith("bafkr4i")
        assert sample.cid == cid_for_token(SAMPLE_TOKEN)
        assert sample.cid == compute_cid(sample.header, sample.payload, sample.signature)

    def test_to_dict(self, sample: Ucan) -> None:
        data = sample.to_dict()
        assert data["cid"] == sample.cid
        assert data["payload"]["cap"] == sample.capabilities.to_dict()
        assert data["header"] == {"alg": "EdDSA", "typ": "JWT"}

    def test_time_predicates(self, sample: Ucan) -> None:
        assert sample.is_expired(1721032726)
        assert not sample.is_expired(1721032725)
        assert not sample.is_too_early(0)

    def test_minimal_payload(self) -> None:
        ucan = decode(token_from(payload_dict()))
        assert ucan.payload.facts is None
        assert ucan.payload.proofs is None
        assert ucan.payload.nonce is None

    def test_optional_members(self) -> None:
        payload = payload_dict(nbf=100, nnc="n", fct={"k": [1]}, prf=["bafkr4iabc"])
        ucan = decode(token_from(payload))
        assert ucan.not_before == 100
        assert ucan.proofs == ("bafkr4iabc",)
        assert ucan.payload.to_dict() == payload


class TestDecodeRejects:
    @pytest.mark.parametrize(
        "token",
        ["", "a.b", "a.b.c.d", "!!!.???.***"],
    )
    def test_structure(self, token: str) -> None:
        with pytest.raises(MalformedTokenError):
            decode(token)

    def test_non_string(self) -> None:
        with pytest.raises(MalformedTokenError):
            decode(42)  # type: ignore[arg-type]

    def test_padded_base64(self) -> None:
        header, payload, signature = SAMPLE_TOKEN.split(".")
        with pytest.raises(MalformedTokenError):
            decode(f"{header}=.{payload}.{signature}")

    def test_non_canonical_json_whitespace(self) -> None:
        header = b64(b'{"alg": "EdDSA", "typ": "JWT"}')
        _, payload, signature = SAMPLE_TOKEN.split(".")
        with pytest.raises(MalformedTokenError, match="canonical"):
            decode(f"{header}.{payload}.{signature}")

    def test_non_canonical_key_order(self) -> None:
        header = b64(b'{"typ":"JWT","alg":"EdDSA"}')
        _, payload, signature = SAMPLE_TOKEN.split(".")
        with pytest.raises(MalformedTokenError, match="canonical"):
            decode(f"{header}.{payload}.{signature}")

    def test_duplicate_keys(self) -> None:
        header = b64(b'{"alg":"EdDSA","alg":"EdDSA","typ":"JWT"}')
        _, payload, signature = SAMPLE_TOKEN.split(".")
        with pytest.raises(MalformedTokenError, match="duplicate"):
            decode(f"{header}.{payload}.{signature}")

    def test_empty_signature(self) -> None:
        header, payload, _ = SAMPLE_TOKEN.split(".")
        with pytest.raises(MalformedTokenError):
            decode(f"{header}.{payload}.")

    def test_wrong_typ(self) -> None:
        with pytest.raises(MalformedTokenError):
            decode(token_from(payload_dict(), header={"alg": "EdDSA", "typ": "JOSE"}))

    @pytest.mark.parametrize("missing", ["ucv", "iss", "aud", "exp", "cap"])
    def test_missing_member(self, missing: str) -> None:
        payload = payload_dict()
        del payload[missing]
        with pytest.raises(MalformedTokenError, match=missing):
            decode(token_from(payload))

    def test_unknown_member(self) -> None:
        with pytest.raises(MalformedTokenError, match="unknown"):
            decode(token_from(payload_dict(att={})))

    def test_explicit_null(self) -> None:
        payload = payload_dict()
        payload["nbf"] = None
        with pytest.raises(MalformedTokenError):
            decode(token_from(payload))

    @pytest.mark.parametrize("exp", [-1, MAX_TIMESTAMP + 1, 1.5, "2000000000", True])
    def test_bad_expiration(self, exp: object) -> None:
        with pytest.raises(MalformedTokenError):
            decode(token_from(payload_dict(exp=exp)))

    def test_not_before_after_expiration(self) -> None:
        with pytest.raises(MalformedTokenError, match="nbf"):
            decode(token_from(payload_dict(nbf=3000000000)))

    def test_bad_capabilities(self) -> None:
        with pytest.raises(MalformedTokenError, match="capabilities"):
            decode(token_from(payload_dict(cap={"api:x": {"a/b": []}})))

    def test_bad_proofs(self) -> None:
        with pytest.raises(MalformedTokenError):
            decode(token_from(payload_dict(prf="bafkr4iabc")))

    def test_bad_facts(self) -> None:
        with pytest.raises(MalformedTokenError):
            decode(token_from(payload_dict(fct=["not", "an", "object"])))


# ---------------------------------------------------------------------------
# Encoding and CIDs
# ---------------------------------------------------------------------------


class TestEncode:
    def test_encode_then_decode(self) -> None:
        header = UcanHeader(alg="ES256")
        payload = UcanPayload(
            iss="did:key:issuer",
            aud="did:key:audience",
            exp=2000000000,
            capabilities=Capabilities.from_dict({"api:app/x": {"book/view": [{}]}}),
            facts={"ünïcode": "✓"},
        )
        token = encode(header, payload, b"\x01" * 64)
        decoded = decode(token)
        assert decoded.encode() == token
        assert decoded.cid == compute_cid(header, payload, b"\x01" * 64)

    def test_canonical_json_is_sorted_and_compact(self) -> None:
        assert canonical_json({"b": 1, "a": [1, 2]}) == b'{"a":[1,2],"b":1}'

    def test_cid_is_deterministic_and_content_sensitive(self) -> None:
        assert cid_for_token("a.b.c") == cid_for_token("a.b.c")
        assert cid_for_token("a.b.c") != cid_for_token("a.b.d")

    def test_cid_bytes(self) -> None:
        cid = cid_for_token(SAMPLE_TOKEN)
        encoded = cid[1:].upper()
        raw = base64.b32decode(encoded + "=" * (-len(encoded) % 8))
        assert raw[:4] == bytes([0x01, 0x55, 0x1E, 0x20])
        assert len(raw) == 36


class TestRepeatedCaveats:
    CAPABILITIES = {"api:doc/1": {"doc/read": [{}, {}]}}

    def signed_token(self, issuer: KeyPair) -> str:
        header = UcanHeader(alg=issuer.key_type.jwt_algorithm)
        payload = UcanPayload.from_dict(
            payload_dict(iss=encode_did(issuer), aud=encode_did(issuer), cap=self.CAPABILITIES)
        )
        return encode(header, payload, sign(issuer, signing_input(header, payload)))

    def test_decode_preserves_repeated_caveats(self) -> None:
        token = self.signed_token(generate_keypair())
        decoded = decode(token)
        assert decoded.capabilities.to_dict() == self.CAPABILITIES
        assert decoded.encode() == token
        assert decoded.cid == cid_for_token(token)

    def test_repeated_caveats_verify(self) -> None:
        issuer = generate_keypair()
        token = self.signed_token(issuer)
        result = verify_token(
            token,
            {
                "rootIssuer": encode_did(issuer),
                "audience": encode_did(issuer),
                "requiredCapabilities": {"api:doc/1": {"doc/read": [{}]}},
            },
            now=1_700_000_000,
        )
        assert result.cids == [cid_for_token(token)]
