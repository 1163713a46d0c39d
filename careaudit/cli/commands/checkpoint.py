"""
Checkpoint commands: create, verify
"""

import asyncio
import os
from typing import Optional

import typer

from careaudit.checkpoint import (
    CheckpointStore,
    SigningKey,
    VerifyingKey,
    create_checkpoint,
    ensure_keypair,
    get_default_key_path,
    verify_checkpoint,
)
from careaudit.cli._runtime import console, emit_json, fail, load_settings, open_service
from careaudit.core.errors import IntegrityError

app = typer.Typer()


@app.command()
def create(
    log_path: Optional[str] = typer.Option(None, "--log", "-l", help="Path to audit log file"),
    key_path: Optional[str] = typer.Option(
        None,
        "--key",
        "-k",
        help="Path to signing key (Ed25519 private key PEM; generated if missing)",
    ),
    out_dir: Optional[str] = typer.Option(None, "--out-dir", "-o", help="Checkpoint directory"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """
    Create a signed checkpoint of the current chain tip.

    The chain is verified from genesis first; a broken chain is never
    signed (exit code 1).

    Examples:
        careaudit checkpoint create
        careaudit checkpoint create --key /etc/careaudit/checkpoint_ed25519
    """
    try:
        settings = load_settings(log_path)
        service = open_service(log_path)
        private_path, public_path = ensure_keypair(key_path or settings.key_path)
        signing_key = SigningKey.load_from_file(private_path)
        checkpoint = asyncio.run(create_checkpoint(service.store, service.hasher, signing_key))
        checkpoint_path = CheckpointStore(out_dir or settings.checkpoint_dir).save(checkpoint)
    except IntegrityError as e:
        if json_output:
            emit_json({"success": False, "error": str(e)})
        else:
            console.print(f"[red]✗ {e}[/red]")
        raise typer.Exit(1)
    except Exception as e:
        fail(e, json_output)

    if json_output:
        emit_json(
            {
                "success": True,
                "checkpoint_path": checkpoint_path,
                "public_key_path": public_path,
                "entry_count": checkpoint.entry_count,
                "tip_hash": checkpoint.tip_hash,
                "tip_entry_id": checkpoint.tip_entry_id,
                "pubkey_id": checkpoint.pubkey_id,
            }
        )
    else:
        console.print("[green]✓ Checkpoint created successfully[/green]")
        console.print(f"  File: [cyan]{checkpoint_path}[/cyan]")
        console.print(f"  Entries: {checkpoint.entry_count}")
        console.print(f"  Tip hash: {checkpoint.tip_hash[:16] or '<genesis>'}")
        console.print(f"  Public key ID: {checkpoint.pubkey_id}")


@app.command()
def verify(
    checkpoint_path: Optional[str] = typer.Argument(
        None, help="Checkpoint file (default: latest in checkpoint directory)"
    ),
    log_path: Optional[str] = typer.Option(None, "--log", "-l", help="Path to audit log file"),
    pubkey_path: Optional[str] = typer.Option(
        None,
        "--pubkey",
        "-p",
        help="Path to public key (Ed25519 PEM; default: <key path>.pub)",
    ),
    mode: str = typer.Option("full", "--mode", "-m", help="Verification mode: signature or full"),
    out_dir: Optional[str] = typer.Option(None, "--out-dir", "-o", help="Checkpoint directory"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """
    Verify a checkpoint's signature and (in full mode) the live chain.

    Examples:
        careaudit checkpoint verify
        careaudit checkpoint verify checkpoints/cp_0000000042_ab12cd34.json --mode signature
    """
    try:
        settings = load_settings(log_path)
        store = CheckpointStore(out_dir or settings.checkpoint_dir)
        if checkpoint_path is None:
            checkpoint_path = store.find_latest()
            if checkpoint_path is None:
                raise FileNotFoundError(f"No checkpoints in {store.directory}")
        checkpoint = store.load(checkpoint_path)

        if pubkey_path is None:
            private_path = settings.key_path or str(get_default_key_path())
            pubkey_path = private_path + ".pub"
        verifying_key = VerifyingKey.load_from_file(pubkey_path)

        service = open_service(log_path)
        result = asyncio.run(
            verify_checkpoint(checkpoint, verifying_key, service.store, service.hasher, mode=mode)
        )
    except Exception as e:
        fail(e, json_output)

    if json_output:
        emit_json(
            {
                "valid": result.valid,
                "mode": mode,
                "checkpoint_path": checkpoint_path,
                "signature_valid": result.signature_valid,
                "tip_valid": result.tip_valid,
                "chain_valid": result.chain_valid,
                "error": result.error,
            }
        )
    elif result.valid:
        console.print(f"[green]✓ Checkpoint valid[/green] ({mode})")
        console.print(f"  File: [cyan]{os.path.basename(checkpoint_path)}[/cyan]")
        console.print(f"  Entries: {checkpoint.entry_count}")
    else:
        console.print(f"[red]✗ Checkpoint INVALID[/red] ({mode}): {result.error}")

    raise typer.Exit(0 if result.valid else 1)