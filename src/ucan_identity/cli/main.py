"""CLI entry point for ucan-identity.

Invoked as::

    ucan-identity [OPTIONS] COMMAND [ARGS]...

or, during development::

    python -m ucan_identity.cli.main

Commands
--------
did create      Generate a new secret DID document
did resolve     Resolve a did:key to its public document
did restore     Rebuild a secret DID document from an exported key
did sign        Sign a message with an exported key
did verify      Verify a message signature against a DID
token invoke    Build and sign a UCAN from a JSON options file
token decode    Decode a UCAN without verifying it
token verify    Verify a UCAN and its proof chain
"""
from __future__ import annotations

import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, NoReturn, Optional

import click
from rich.console import Console
from rich.markup import escape

from ucan_identity.errors import UcanError

console = Console()

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


# ------------------------------------------------------------------
# Root group
# ------------------------------------------------------------------


@click.group()
@click.version_option(package_name="ucan-identity")
@click.option(
    "--log-level",
    type=click.Choice(_LOG_LEVELS, case_sensitive=False),
    default="WARNING",
    show_default=True,
    help="Logging verbosity.",
)
def cli(log_level: str) -> None:
    """UCAN issuance and verification with did:key identities"""
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@cli.command(name="version")
def version_command() -> None:
    """Show detailed version information."""
    from ucan_identity import UCAN_VERSION, __version__

    console.print(f"[bold]ucan-identity[/bold] v{__version__} (UCAN {UCAN_VERSION})")


# ------------------------------------------------------------------
# did command group
# ------------------------------------------------------------------


@cli.group(name="did")
def did_group() -> None:
    """Create, resolve, and use did:key identities."""


@did_group.command(name="create")
@click.option(
    "--key-type",
    "-k",
    default="Ed25519",
    show_default=True,
    help="Key type or alias (Ed25519, P-256, secp256k1, X25519, Bls12381G2).",
)
@click.option("--jose", is_flag=True, default=False, help="Emit a JsonWebKey2020 document.")
def create_command(key_type: str, jose: bool) -> None:
    """Generate a key pair and print its secret DID document."""
    from ucan_identity.did import create_did

    try:
        document = create_did(key_type, _format(jose))
    except UcanError as exc:
        _fail(exc)
    click.echo(document.to_json())


@did_group.command(name="resolve")
@click.argument("did")
@click.option("--jose", is_flag=True, default=False, help="Emit a JsonWebKey2020 document.")
def resolve_command(did: str, jose: bool) -> None:
    """Print the public DID document for DID."""
    from ucan_identity.did import resolve_did

    try:
        document = resolve_did(did, _format(jose))
    except UcanError as exc:
        _fail(exc)
    click.echo(document.to_json())


@did_group.command(name="restore")
@click.argument("key_file", type=click.Path(exists=True))
@click.option("--jose", is_flag=True, default=False, help="Emit a JsonWebKey2020 document.")
def restore_command(key_file: str, jose: bool) -> None:
    """Rebuild a secret DID document from the verification method in KEY_FILE."""
    from ucan_identity.did import restore_did

    descriptor = _load_json(key_file)
    try:
        document = restore_did(descriptor, _format(jose))
    except UcanError as exc:
        _fail(exc)
    click.echo(document.to_json())


@did_group.command(name="sign")
@click.argument("key_file", type=click.Path(exists=True))
@click.argument("message")
def sign_command(key_file: str, message: str) -> None:
    """Sign MESSAGE with the verification method in KEY_FILE."""
    from ucan_identity.did import sign_message

    descriptor = _load_json(key_file)
    try:
        signature = sign_message(descriptor, message)
    except UcanError as exc:
        _fail(exc)
    click.echo(signature)


@did_group.command(name="verify")
@click.argument("did")
@click.argument("message")
@click.argument("signature")
def verify_message_command(did: str, message: str, signature: str) -> None:
    """Check that SIGNATURE over MESSAGE was made by DID."""
    from ucan_identity.did import verify_message

    try:
        valid = verify_message(did, message, signature)
    except UcanError as exc:
        _fail(exc)
    if not valid:
        console.print("[red]Signature is invalid.[/red]")
        sys.exit(1)
    console.print("[green]Signature is valid.[/green]")


# ------------------------------------------------------------------
# token command group
# ------------------------------------------------------------------


@cli.group(name="token")
def token_group() -> None:
    """Build, decode, and verify UCAN tokens."""


@token_group.command(name="invoke")
@click.argument("options_file", type=click.Path(exists=True))
def invoke_command(options_file: str) -> None:
    """Build and sign a token from the invoke options in OPTIONS_FILE."""
    from ucan_identity.ucan import invoke

    options = _load_json(options_file)
    try:
        token = asyncio.run(invoke(options))
    except UcanError as exc:
        _fail(exc)
    click.echo(token)


@token_group.command(name="decode")
@click.argument("token")
def decode_command(token: str) -> None:
    """Decode TOKEN without verifying its signature."""
    from ucan_identity.ucan import decode

    try:
        ucan = decode(token.strip())
    except UcanError as exc:
        _fail(exc)
    click.echo(json.dumps(ucan.to_dict(), indent=2))


@token_group.command(name="verify")
@click.argument("token")
@click.argument("options_file", type=click.Path(exists=True))
@click.option(
    "--now",
    type=int,
    default=None,
    help="Reference time in Unix seconds (defaults to the current time).",
)
def verify_token_command(token: str, options_file: str, now: Optional[int]) -> None:
    """Verify TOKEN against the verify options in OPTIONS_FILE."""
    from ucan_identity.delegation import verify

    options = _load_json(options_file)
    try:
        result = asyncio.run(verify(token.strip(), options, now=now))
    except UcanError as exc:
        _fail(exc)
    click.echo(json.dumps(result.to_dict(), indent=2))


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------


def _format(jose: bool) -> str:
    return "jose" if jose else "jsonld"


def _fail(exc: Exception) -> NoReturn:
    console.print(f"[red]Error:[/red] {escape(str(exc))}")
    sys.exit(1)


def _load_json(path: str) -> Any:
    try:
        return json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        console.print(f"[red]Error:[/red] could not read {escape(path)}: {escape(str(exc))}")
        sys.exit(1)


if __name__ == "__main__":
    cli()
