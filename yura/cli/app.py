"""CLI application — Click-based command group for Yura.

  yura            run the bot (same as ``yura run``)
  yura run        run the bot until interrupted
  yura config     show the resolved configuration
  yura reset-keys clear a group's sender keys without the bot running
"""

from __future__ import annotations

from typing import Any

import click
from rich.console import Console
from rich.table import Table

_SECRET_FIELDS = {"api_key", "bridge_token"}


def _mask(name: str, value: Any) -> str:
    if name in _SECRET_FIELDS and value:
        text = str(value)
        return f"{text[:4]}…" if len(text) > 8 else "****"
    return str(value)


@click.group(invoke_without_command=True)
@click.pass_context
def cli(ctx: click.Context) -> None:
    """Yura - WhatsApp chat companion powered by Claude."""
    if ctx.invoked_subcommand is None:
        ctx.invoke(run_cmd)


@cli.command("run")
def run_cmd() -> None:
    """Connect to the WhatsApp bridge and start answering."""
    from yura.main import run

    run()


@cli.command("config")
def config_cmd() -> None:
    """Print the resolved configuration (secrets masked)."""
    from yura.main import load_config

    config = load_config()
    table = Table(title="Yura configuration")
    table.add_column("Section")
    table.add_column("Setting")
    table.add_column("Value")
    for section in ("generative", "ocr", "context", "whatsapp", "logging"):
        settings = getattr(config, section)
        for name, value in settings.model_dump().items():
            table.add_row(section, name, _mask(name, value))
    Console().print(table)


@cli.command("reset-keys")
@click.argument("group_jid")
@click.option(
    "--auth-dir",
    type=click.Path(file_okay=False),
    default=None,
    help="Session directory (defaults to YURA_AUTH_DIR).",
)
def reset_keys_cmd(group_jid: str, auth_dir: str | None) -> None:
    """Delete the sender-key files of GROUP_JID (e.g. 1203630xxxx@g.us)."""
    from yura.channels.maintenance import reset_sender_keys

    if auth_dir is None:
        from yura.config import WhatsAppConfig, resolve_project_path

        auth_dir = str(resolve_project_path(WhatsAppConfig().auth_dir))
    removed = reset_sender_keys(auth_dir, group_jid)
    if removed:
        click.echo(f"Removed {removed} sender-key file(s) for {group_jid}.")
    else:
        click.echo(f"No sender-key files found for {group_jid}.")
