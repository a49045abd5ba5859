#!/usr/bin/env python3
"""Example: Delegation

A server grants Alice access to an app, Alice delegates part of it to Bob,
and Bob presents his token back to the server. The server verifies the
whole chain and resolves ``{app_id}`` / ``{user_id}`` from token facts.

Usage:
    python examples/02_delegation.py

Requirements:
    pip install ucan-identity
"""
from __future__ import annotations

import asyncio
import json
import time

from ucan_identity import CapabilityDeniedError, create_did, invoke, verify


async def run() -> None:
    server = create_did()
    alice = create_did()
    bob = create_did()
    expiration = int(time.time()) + 3600

    # Step 1: The server grants Alice everything on app "xxx"
    alice_token = await invoke(
        {
            "issuer": server.verification_method[0],
            "audience": alice.id,
            "expiration": expiration,
            "capabilities": {
                "api:app/xxx": {
                    "book/view": [{}],
                    "book/edit": [{}],
                    "user/is": [{"user_id": "111"}],
                }
            },
            "facts": {"app_id": "xxx", "user_id": "111"},
        }
    )

    # Step 2: Alice delegates read access to Bob
    viewer = {"api:app/xxx": {"book/view": [{}], "user/is": [{"user_id": "111"}]}}
    bob_token = await invoke(
        {
            "issuer": alice.verification_method[0],
            "audience": bob.id,
            "expiration": expiration,
            "capabilities": viewer,
            "proofs": [alice_token],
        }
    )

    # Step 3: Bob invokes the server
    request = await invoke(
        {
            "issuer": bob.verification_method[0],
            "audience": server.id,
            "expiration": expiration,
            "capabilities": viewer,
            "proofs": [bob_token],
        }
    )

    # Step 4: The server verifies the chain
    options = {
        "rootIssuer": server.id,
        "audience": server.id,
        "requiredCapabilities": {
            "api:app/{app_id}": {
                "book/view": [{}],
                "user/is": [{"user_id": "{user_id}"}],
            }
        },
        "requiredFacts": {"app_id": "*", "user_id": "*"},
    }
    result = await verify(request, options)
    print(json.dumps(result.to_dict(), indent=2))

    # Step 5: Bob never received book/edit
    options["requiredCapabilities"] = {"api:app/{app_id}": {"book/edit": [{}]}}
    try:
        await verify(request, options)
    except CapabilityDeniedError as exc:
        print(f"Denied as expected: {exc}")


def main() -> None:
    asyncio.run(run())


if __name__ == "__main__":
    main()
