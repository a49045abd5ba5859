#!/usr/bin/env python3
"""Example: Quickstart

Demonstrates creating a did:key identity, signing a message with it, and
issuing and decoding a UCAN.

Usage:
    python examples/01_quickstart.py

Requirements:
    pip install ucan-identity
"""
from __future__ import annotations

import asyncio
import time

import ucan_identity
from ucan_identity import create_did, decode_token, invoke, sign_message, verify_message


def main() -> None:
    print(f"ucan-identity version: {ucan_identity.__version__}")

    # Step 1: Create a secret DID document
    document = create_did("Ed25519")
    method = document.verification_method[0]
    print(f"DID created: {document.id[:40]}...")

    # Step 2: Sign and verify a message
    signature = sign_message(method, "hello")
    print(f"Signature valid: {verify_message(document.id, 'hello', signature)}")

    # Step 3: Issue a token to another identity
    audience = create_did("P-256")
    token = asyncio.run(
        invoke(
            {
                "issuer": method,
                "audience": audience.id,
                "expiration": int(time.time()) + 3600,
                "capabilities": {"api:app/x": {"book/view": [{}]}},
                "addNonce": True,
            }
        )
    )
    print(f"Token: {token[:40]}...")

    # Step 4: Decode it again
    ucan = decode_token(token)
    print(f"Token CID: {ucan.cid}")
    print(f"Capabilities: {ucan.capabilities.to_dict()}")

    print("\nQuickstart complete.")


if __name__ == "__main__":
    main()
