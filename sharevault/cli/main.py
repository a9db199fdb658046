# sharevault/cli/main.py
"""
CLI for uploading, sharing, downloading and auditing encrypted files.
"""

import json
import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from sharevault.config import BlobProvider, VaultConfig, parse_log_level
from sharevault.crypto.signing import LedgerKeyPair
from sharevault.errors import AuthorizationError, NotReadyError, ShareVaultError
from sharevault.orchestrator import DistributionOrchestrator
from sharevault.runtime import build_orchestrator, close_orchestrator
from sharevault.storage import SQLiteStorage
from sharevault.verify.verifier import LedgerVerifier

app = typer.Typer(
    name="sharevault",
    help="Encrypted file sharing backed by a tamper-evident access ledger",
    add_completion=False,
    no_args_is_help=True,
)

console = Console()

EXIT_DENIED = 2


def fmt_ts(ts: int) -> str:
    if not ts:
        return "never"
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat(timespec="seconds")


@app.callback()
def main(
    ctx: typer.Context,
    db: Optional[Path] = typer.Option(None, "--db", help="Ledger SQLite database (overrides SHAREVAULT_LEDGER_DB)"),
    key_file: Optional[Path] = typer.Option(None, "--key-file", help="Ledger signing key (overrides SHAREVAULT_LEDGER_KEY)"),
    blob_provider: Optional[str] = typer.Option(None, "--blob-provider", help="memory | filesystem | ipfs | pinata"),
    blob_root: Optional[Path] = typer.Option(None, "--blob-root", help="Directory for the filesystem blob store"),
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Logging level (overrides SHAREVAULT_LOG_LEVEL)"),
):
    """Manage encrypted files and their access ledger."""
    try:
        config = VaultConfig.from_env()
        if db:
            config.ledger.storage_uri = f"sqlite://{db.expanduser().resolve()}"
        if key_file:
            config.ledger.key_path = key_file
        if blob_provider:
            config.blob_store.provider = BlobProvider.parse(blob_provider)
        if blob_root:
            config.blob_store.root = blob_root
        if log_level:
            config.log_level = parse_log_level(log_level)
    except ShareVaultError as e:
        console.print(f"[red]Invalid configuration: {e}[/]")
        raise typer.Exit(1)

    logging.basicConfig(
        level=config.log_level,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )
    ctx.obj = config


@contextmanager
def open_vault(ctx: typer.Context) -> Iterator[DistributionOrchestrator]:
    """Build the orchestrator from the resolved config; report domain errors and exit."""
    config: VaultConfig = ctx.obj
    try:
        orchestrator = build_orchestrator(config)
    except ShareVaultError as e:
        console.print(f"[red]Failed to open vault: {e}[/]")
        raise typer.Exit(1)

    try:
        readiness = orchestrator.readiness()
        if not readiness:
            raise NotReadyError(readiness)
        yield orchestrator
    except AuthorizationError as e:
        console.print(f"[red]Access denied: {e}[/]")
        if e.audit is not None and not e.audit.recorded:
            console.print(f"[yellow]Warning: the attempt could not be audited ({e.audit.error})[/]")
        raise typer.Exit(EXIT_DENIED)
    except ShareVaultError as e:
        console.print(f"[red]{type(e).__name__}: {e}[/]")
        raise typer.Exit(1)
    finally:
        close_orchestrator(orchestrator)


@app.command()
def upload(
    ctx: typer.Context,
    path: Path = typer.Argument(..., exists=True, dir_okay=False, readable=True, help="File to encrypt and upload"),
    owner: str = typer.Option(..., "--owner", help="Identity that will own the file"),
):
    """Encrypt a file, store it and register it on the ledger."""
    data = path.read_bytes()
    with open_vault(ctx) as vault:
        result = vault.upload(owner, data)

    console.print(f"[green]✓ Uploaded {path.name} as file {result.file_id}[/]")
    console.print(f"  Content address: {result.content_address}", soft_wrap=True)
    console.print(f"  Confirmation:    {result.confirmation}", soft_wrap=True)
    console.print("  Key:")
    console.print(result.key, style="bold", soft_wrap=True)
    console.print("[yellow]Keep this key safe: it is shown only once and is not stored anywhere.[/]")


@app.command()
def download(
    ctx: typer.Context,
    file_id: int = typer.Argument(..., help="File ID to download"),
    user: str = typer.Option(..., "--user", help="Requesting identity"),
    key: str = typer.Option(..., "--key", help="Hex key returned at upload time"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Output file (default: file-<id>)"),
):
    """Check access, fetch and decrypt a file."""
    with open_vault(ctx) as vault:
        result = vault.download(file_id, user, key)

    out_path = output or Path(f"file-{file_id}")
    out_path.write_bytes(result.plaintext)
    console.print(f"[green]✓ Wrote {len(result.plaintext)} bytes to {out_path}[/]")
    if not result.audit.recorded:
        console.print(f"[yellow]Warning: access was not audited ({result.audit.error})[/]")


@app.command()
def grant(
    ctx: typer.Context,
    file_id: int = typer.Argument(..., help="File ID"),
    grantee: str = typer.Argument(..., help="Identity to grant access to"),
    owner: str = typer.Option(..., "--owner", help="Owner of the file"),
    days: Optional[int] = typer.Option(None, "--days", help="Expire after N days (0 = never)"),
    expires_at: Optional[int] = typer.Option(None, "--expires-at", help="Expire at this unix timestamp"),
):
    """Grant (or replace) access for an identity."""
    if days is not None and expires_at is not None:
        console.print("[red]Use either --days or --expires-at, not both[/]")
        raise typer.Exit(1)

    with open_vault(ctx) as vault:
        if days is not None:
            confirmation = vault.grant_for_days(owner, file_id, grantee, days)
        else:
            confirmation = vault.grant(owner, file_id, grantee, expires_at or 0)
        current = vault.ledger.get_grant(file_id, grantee)

    console.print(f"[green]✓ Granted {grantee} access to file {file_id}[/]")
    console.print(f"  Expires:      {fmt_ts(current.expires_at)}")
    console.print(f"  Confirmation: {confirmation}", soft_wrap=True)


@app.command()
def revoke(
    ctx: typer.Context,
    file_id: int = typer.Argument(..., help="File ID"),
    grantee: str = typer.Argument(..., help="Identity to revoke"),
    owner: str = typer.Option(..., "--owner", help="Owner of the file"),
):
    """Revoke access for an identity."""
    with open_vault(ctx) as vault:
        confirmation = vault.revoke(owner, file_id, grantee)

    console.print(f"[green]✓ Revoked {grantee} on file {file_id}[/]")
    console.print(f"  Confirmation: {confirmation}", soft_wrap=True)


@app.command()
def check(
    ctx: typer.Context,
    file_id: int = typer.Argument(..., help="File ID"),
    user: str = typer.Argument(..., help="Identity to check"),
):
    """Check (and audit) whether an identity may read a file."""
    with open_vault(ctx) as vault:
        result = vault.check_access(file_id, user)

    if result.granted:
        console.print(f"[green]✓ {user} has access to file {file_id}[/]")
    else:
        console.print(f"[red]✗ {user} has no access to file {file_id}[/]")


@app.command()
def files(
    ctx: typer.Context,
    owner: str = typer.Argument(..., help="Owner identity"),
):
    """List files owned by an identity."""
    with open_vault(ctx) as vault:
        records = vault.list_files(owner)

    if not records:
        console.print(f"[yellow]No files found for '{owner}'[/]")
        return

    table = Table(title=f"Files owned by {owner}")
    table.add_column("File ID")
    table.add_column("Content Address")
    table.add_column("Key Commitment")
    table.add_column("Created")
    for record in records:
        table.add_row(str(record.id), record.content_address,
                      record.key_commitment[:16] + "…", fmt_ts(record.created_at))
    console.print(table)


@app.command()
def grants(
    ctx: typer.Context,
    file_id: int = typer.Argument(..., help="File ID"),
):
    """Show the current grant state of every grantee of a file."""
    with open_vault(ctx) as vault:
        current = vault.ledger.list_grants(file_id)
        now = int(vault.ledger.clock())

    if not current:
        console.print(f"[yellow]No grants recorded for file {file_id}[/]")
        return

    table = Table(title=f"Grants on file {file_id}")
    table.add_column("Grantee")
    table.add_column("Expires")
    table.add_column("State")
    for g in current:
        state = "revoked" if g.revoked else ("active" if g.is_active(now) else "expired")
        table.add_row(g.grantee, fmt_ts(g.expires_at), state)
    console.print(table)


@app.command()
def audit(
    ctx: typer.Context,
    file_id: int = typer.Argument(..., help="File ID"),
    from_sequence: int = typer.Option(0, "--from", help="First audit sequence number to show"),
):
    """Show the audit trail of a file."""
    with open_vault(ctx) as vault:
        events = vault.audit_trail(file_id, from_sequence)

    if not events:
        console.print(f"[yellow]No audit events for file {file_id}[/]")
        return

    table = Table(title=f"Audit trail for file {file_id}")
    table.add_column("Seq")
    table.add_column("Time")
    table.add_column("User")
    table.add_column("Outcome")
    table.add_column("Confirmation")
    for event in events:
        outcome = "[green]granted[/]" if event.granted else "[red]denied[/]"
        table.add_row(str(event.sequence), fmt_ts(event.timestamp), event.user,
                      outcome, event.confirmation[:18] + "…")
    console.print(table)


@app.command()
def entries(
    ctx: typer.Context,
    kind: Optional[str] = typer.Option(None, "--kind", help="Only entries of this kind (e.g. access_granted)"),
    limit: int = typer.Option(20, "--limit", "-n", help="Number of recent entries to show"),
):
    """Show the most recent raw ledger entries."""
    config: VaultConfig = ctx.obj
    db_path = _sqlite_path(config)

    try:
        with SQLiteStorage(db_path) as storage:
            total = storage.get_entry_count()
            recent = storage.query_entries(kind=kind, limit=limit)
    except ShareVaultError as e:
        console.print(f"[red]Failed to read ledger: {e}[/]")
        raise typer.Exit(1)

    if not recent:
        console.print("[yellow]No matching ledger entries[/]")
        return

    console.print(f"Showing {len(recent)} of {total} entries")
    for entry in recent:
        console.print(f"[bold cyan]{entry.index:4d} | {fmt_ts(entry.timestamp)} | {entry.kind:15} | {entry.sender}[/]")
        console.print(f"  {json.dumps(entry.payload, sort_keys=True)}", markup=False, soft_wrap=True)


@app.command()
def verify(ctx: typer.Context):
    """Verify the ledger's hash chain, signatures and audit sequences."""
    config: VaultConfig = ctx.obj
    db_path = _sqlite_path(config)

    key_path = config.ledger.key_path.expanduser()
    if not key_path.exists():
        console.print(f"[red]Ledger signing key not found: {key_path}[/]")
        raise typer.Exit(1)

    try:
        trusted = LedgerKeyPair.from_private_b64url(key_path.read_text(encoding="utf-8")).public_key_b64url()
        storage = SQLiteStorage(db_path)
    except ShareVaultError as e:
        console.print(f"[red]Failed to open ledger: {e}[/]")
        raise typer.Exit(1)

    with storage:
        result = LedgerVerifier(trusted).verify_from_storage(storage)

    if result.is_valid:
        console.print("[green]✓ Ledger is valid[/]")
        console.print(f"  {result.message} ({result.entries} entries)")
    else:
        console.print("[red]✗ Ledger verification failed[/]")
        for failure in result.failures:
            console.print(f"  • [{failure.index}] {failure.category}: {failure.message}")
        raise typer.Exit(1)


@app.command()
def export(
    ctx: typer.Context,
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Output file (default: ledger.jsonl)"),
):
    """Export the ledger as JSONL (one signed entry per line)."""
    config: VaultConfig = ctx.obj
    db_path = _sqlite_path(config)

    try:
        with SQLiteStorage(db_path) as storage:
            entries = storage.load_entries()
    except ShareVaultError as e:
        console.print(f"[red]Failed to load ledger: {e}[/]")
        raise typer.Exit(1)

    if not entries:
        console.print("[yellow]Ledger is empty[/]")
        raise typer.Exit(0)

    out_path = output or Path("ledger.jsonl")
    with open(out_path, "w", encoding="utf-8") as f:
        for entry in entries:
            json.dump(entry.to_dict(), f, separators=(",", ":"))
            f.write("\n")

    console.print(f"[green]Exported {len(entries)} entries to {out_path}[/]")


def _sqlite_path(config: VaultConfig) -> Path:
    uri = config.ledger.storage_uri
    if not uri.startswith("sqlite://"):
        console.print(f"[red]Command needs a SQLite ledger, got {uri}[/]")
        raise typer.Exit(1)
    path = Path(uri[len("sqlite://"):])
    if not path.exists():
        console.print(f"[red]Ledger database not found: {path}[/]")
        console.print("[yellow]To get started:[/]")
        console.print("  • Upload a file first: sharevault upload <path> --owner <you>")
        console.print("  • Or point at an existing ledger: --db /path/to/ledger.db")
        raise typer.Exit(1)
    return path


if __name__ == "__main__":
    app()
