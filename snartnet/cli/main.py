# snartnet/cli/main.py
"""
CLI for managing the local identity and producing signed posts and messages.
"""

import json
import logging
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from snartnet.config import Config, get_db_path
from snartnet.core.canon import loads
from snartnet.core.errors import SnartnetError
from snartnet.core.signed import SignedEntity, verify_profile
from snartnet.core.types import Message, Post, Profile
from snartnet.logging_utils import setup_logger
from snartnet.session.identity import IdentitySession
from snartnet.storage import SQLiteStorage

app = typer.Typer(
    name="snartnet",
    help="Manage a local signed identity and sign posts and messages",
    add_completion=False,
    no_args_is_help=True,
)

console = Console()
err_console = Console(stderr=True)

DB_OPTION = typer.Option(None, "--db", help="Path to SQLite database (overrides SNARTNET_DB_PATH env var)")


def open_session(db: Optional[Path]) -> IdentitySession:
    db_path = get_db_path(db)
    try:
        session = IdentitySession(storage=SQLiteStorage(db_path))
    except SnartnetError as e:
        console.print(f"[red]Failed to open database: {escape(str(e))}[/]")
        raise typer.Exit(1)

    report = session.init()
    for key, problem in report.problems.items():
        console.print(f"[yellow]Warning: ignored corrupt '{key}': {escape(problem)}[/]")
    return session


def print_json(data: dict) -> None:
    console.print_json(json.dumps(data))


@app.callback()
def main():
    """Manage a local signed identity."""
    setup_logger(
        logging.getLogger("snartnet"),
        Config().LOG_LEVEL,
        RichHandler(console=err_console, show_path=False),
    )


@app.command()
def whoami(db: Optional[Path] = DB_OPTION):
    """Show the local identity and profile."""
    session = open_session(db)
    try:
        if session.keypair is None:
            console.print("[yellow]No identity yet.[/]")
            console.print("  Run: snartnet create-profile <username>")
            raise typer.Exit(1)

        table = Table(title="Local Identity")
        table.add_column("Field", no_wrap=True)
        table.add_column("Value", overflow="fold")
        table.add_row("Fingerprint", session.get_fingerprint())
        table.add_row("Public key", session.get_public_key())

        profile = session.get_current_profile()
        if profile is None:
            table.add_row("Profile", "—")
        else:
            table.add_row("Username", profile.username)
            table.add_row("Display name", profile.display_name or "—")
            table.add_row("Bio", profile.bio or "—")
            table.add_row("Version", str(profile.version))
            table.add_row("Updated", profile.to_dict()["updatedAt"])
            table.add_row("Magnet", session.magnet_uri)
        console.print(table)
    finally:
        session.close()


@app.command("create-profile")
def create_profile(
    username: str = typer.Argument(..., help="Username for the new profile"),
    display_name: Optional[str] = typer.Option(None, "--display-name"),
    bio: Optional[str] = typer.Option(None, "--bio"),
    db: Optional[Path] = DB_OPTION,
):
    """Create the local profile (generates a keypair on first use)."""
    session = open_session(db)
    try:
        magnet_uri = session.create_profile(username, display_name, bio)
    except SnartnetError as e:
        console.print(f"[red]Failed to create profile: {escape(str(e))}[/]")
        raise typer.Exit(1)
    finally:
        session.close()
    console.print(f"[green]Profile '{username}' created[/]")
    console.print(f"  {magnet_uri}")


@app.command("update-profile")
def update_profile(
    display_name: Optional[str] = typer.Option(None, "--display-name"),
    bio: Optional[str] = typer.Option(None, "--bio"),
    avatar_hash: Optional[str] = typer.Option(None, "--avatar-hash"),
    db: Optional[Path] = DB_OPTION,
):
    """Update and re-sign the local profile."""
    session = open_session(db)
    try:
        magnet_uri = session.update_profile(display_name, bio, avatar_hash)
        version = session.get_current_profile().version
    except SnartnetError as e:
        console.print(f"[red]Failed to update profile: {escape(str(e))}[/]")
        raise typer.Exit(1)
    finally:
        session.close()
    console.print(f"[green]Profile updated to version {version}[/]")
    console.print(f"  {magnet_uri}")


@app.command()
def post(
    content: str = typer.Argument(..., help="Post text"),
    tag: List[str] = typer.Option([], "--tag", "-t", help="Tag (repeatable)"),
    reply_to: Optional[str] = typer.Option(None, "--reply-to"),
    attachment: List[str] = typer.Option([], "--attachment", "-a", help="Attachment content hash (repeatable)"),
    db: Optional[Path] = DB_OPTION,
):
    """Create a signed post and print it as JSON."""
    session = open_session(db)
    try:
        signed = session.create_post(content, list(tag), reply_to, list(attachment))
    except SnartnetError as e:
        console.print(f"[red]Failed to create post: {escape(str(e))}[/]")
        raise typer.Exit(1)
    finally:
        session.close()
    print_json(signed.to_dict())


@app.command()
def message(
    recipient: str = typer.Argument(..., help="Recipient fingerprint"),
    content: str = typer.Argument(..., help="Message text"),
    group: Optional[str] = typer.Option(None, "--group", help="Group id for a group message"),
    db: Optional[Path] = DB_OPTION,
):
    """Create a signed message and print it as JSON."""
    session = open_session(db)
    try:
        signed = session.create_message(recipient, content, group)
    except SnartnetError as e:
        console.print(f"[red]Failed to create message: {escape(str(e))}[/]")
        raise typer.Exit(1)
    finally:
        session.close()
    print_json(signed.to_dict())


@app.command()
def verify(
    file: Path = typer.Argument(..., help="JSON file holding a signed profile, post or message"),
    public_key: Optional[str] = typer.Option(
        None, "--public-key", "-k", help="Signer's base64 public key (profiles carry their own)"
    ),
):
    """Verify a signed entity file."""
    if not file.exists():
        console.print(f"[red]File not found: {file}[/]")
        raise typer.Exit(1)

    try:
        data = loads(file.read_text(encoding="utf-8"), "signed entity")
        if isinstance(data, dict) and "profile" in data:
            signed = SignedEntity.from_dict(data, Profile)
            valid = verify_profile(signed) if public_key is None else (
                signed.payload.public_key == public_key and verify_profile(signed)
            )
        else:
            kind = Post if isinstance(data, dict) and "post" in data else Message
            signed = SignedEntity.from_dict(data, kind)
            if public_key is None:
                console.print("[red]--public-key is required for posts and messages[/]")
                raise typer.Exit(1)
            valid = signed.verify(public_key)
    except SnartnetError as e:
        console.print(f"[red]Cannot read signed entity: {escape(str(e))}[/]")
        raise typer.Exit(1)

    if valid:
        console.print(f"[green]✓ Valid {signed.payload.WIRE_NAME} {signed.payload.id}[/]")
    else:
        console.print(f"[red]✗ Signature is NOT valid for {signed.payload.WIRE_NAME} {signed.payload.id}[/]")
        raise typer.Exit(1)


@app.command()
def capabilities():
    """Show which versioned JSON entry points this build supports."""
    print_json(IdentitySession().capabilities().model_dump(by_alias=True))


@app.command("export-backup")
def export_backup(
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Output file (default: <username>.snartnet-backup)"),
    db: Optional[Path] = DB_OPTION,
):
    """Export keypair and signed profile. The file contains your secret key."""
    session = open_session(db)
    try:
        backup = session.export_backup()
        username = session.get_current_profile().username
    except SnartnetError as e:
        console.print(f"[red]Failed to export backup: {escape(str(e))}[/]")
        raise typer.Exit(1)
    finally:
        session.close()

    out_path = output or Path(f"{username}.snartnet-backup")
    with open(out_path, "w", encoding="utf-8") as f:
        json.dump(backup, f, indent=2)
    console.print(f"[green]Backup written to {out_path}[/]")
    console.print("[yellow]Keep this file private: it contains your secret key.[/]")


@app.command("restore-backup")
def restore_backup(
    file: Path = typer.Argument(..., help="Backup file produced by export-backup"),
    db: Optional[Path] = DB_OPTION,
):
    """Replace the local identity with one from a backup file."""
    if not file.exists():
        console.print(f"[red]File not found: {file}[/]")
        raise typer.Exit(1)

    session = open_session(db)
    try:
        magnet_uri = session.restore_backup(file.read_text(encoding="utf-8"))
        fp = session.get_fingerprint()
    except SnartnetError as e:
        console.print(f"[red]Failed to restore backup: {escape(str(e))}[/]")
        raise typer.Exit(1)
    finally:
        session.close()
    console.print(f"[green]Restored identity {fp}[/]")
    console.print(f"  {magnet_uri}")


if __name__ == "__main__":
    app()
