"""Main CLI entry point for MRBM.

Invoked without arguments, MRBM shows an interactive menu for registering
servers, scheduling backups and checking their status. ``mrbm --all`` backs up
every registered server non-interactively, which is what the installed cron
job runs. The same operations are also available as subcommands.
"""

import logging
import os
import shlex
import shutil
import sys
from typing import Optional

import click

from mrbm import __version__
from mrbm.backup import BackupOrchestrator, BackupScheduler, BackupStorage
from mrbm.backup.scheduler import INTERVALS
from mrbm.config import ConfigStore
from mrbm.monitoring import StatusReporter
from mrbm.secrets import SecretManager
from mrbm.servers import ServerRecord, ServerRegistry
from mrbm.utils.errors import DuplicateServerError, ErrorHandler, MRBMError
from mrbm.utils.logging import setup_logging

logger = logging.getLogger(__name__)


def build_schedule_command(
    config_path: str,
    backup_dir: str,
    log_file: str,
    retention_days: int,
    key_file: str,
) -> str:
    """Build the cron command for a batch run with absolute paths."""
    program = shutil.which("mrbm")
    if program:
        invocation = shlex.quote(program)
    else:
        invocation = f"{shlex.quote(sys.executable)} -m mrbm"

    args = [
        "--config", os.path.abspath(config_path),
        "--backup-dir", os.path.abspath(backup_dir),
        "--log-file", os.path.abspath(log_file),
        "--key-file", os.path.abspath(key_file),
        "--retention-days", str(retention_days),
    ]
    command = f"{invocation} {' '.join(shlex.quote(arg) for arg in args)} --all"
    return command


@click.group(invoke_without_command=True, context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(version=__version__)
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
@click.option(
    "--config",
    "config_path",
    default="config.yml",
    envvar="MRBM_CONFIG",
    show_default=True,
    help="Server configuration file",
)
@click.option(
    "--backup-dir",
    default="backups",
    envvar="MRBM_BACKUP_DIR",
    show_default=True,
    help="Directory for downloaded archives",
)
@click.option(
    "--log-file",
    default="backup.log",
    envvar="MRBM_LOG_FILE",
    show_default=True,
    help="Append log messages to this file",
)
@click.option(
    "--retention-days",
    default=7,
    type=click.IntRange(min=0),
    envvar="MRBM_RETENTION_DAYS",
    show_default=True,
    help="Delete local archives older than this many days",
)
@click.option(
    "--key-file",
    default="secret.key",
    envvar="MRBM_KEY_FILE",
    show_default=True,
    help="Encryption key for secrets in the configuration file",
)
@click.option("--all", "run_all", is_flag=True, help="Back up all servers and exit")
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    config_path: str,
    backup_dir: str,
    log_file: str,
    retention_days: int,
    key_file: str,
    run_all: bool,
) -> None:
    """MRBM - Remote Backup Manager.

    Archives an application directory and a MySQL/MariaDB dump from each
    registered server over SSH, keeps the archives locally and sends them to
    a Telegram chat.

    Run without a command for the interactive menu.
    """
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["log_file"] = log_file
    ctx.obj["error_handler"] = ErrorHandler(verbose=verbose)

    setup_logging(verbose=verbose, log_file=log_file)

    secret_manager = SecretManager(key_path=key_file, verbose=verbose)
    store = ConfigStore(config_path, secret_manager=secret_manager, verbose=verbose)
    storage = BackupStorage(backup_dir=backup_dir, retention_days=retention_days, verbose=verbose)
    command = build_schedule_command(config_path, backup_dir, log_file, retention_days, key_file)

    ctx.obj["secret_manager"] = secret_manager
    ctx.obj["store"] = store
    ctx.obj["storage"] = storage
    ctx.obj["registry"] = ServerRegistry(store, verbose=verbose)
    ctx.obj["orchestrator"] = BackupOrchestrator(store, storage=storage, verbose=verbose)
    ctx.obj["scheduler"] = BackupScheduler(command, verbose=verbose)

    if run_all:
        run_batch(ctx)
    elif ctx.invoked_subcommand is None:
        interactive_menu(ctx)


def run_batch(ctx: click.Context) -> None:
    """Back up every server; exit 1 only when no servers are configured."""
    try:
        names = ctx.obj["registry"].list_servers()
    except MRBMError as e:
        ctx.obj["error_handler"].exit_with_error(e, "Loading configuration")

    if not names:
        logger.error("No servers configured. Exiting.")
        click.echo("No servers configured. Exiting.", err=True)
        ctx.exit(1)

    results = ctx.obj["orchestrator"].backup_all()
    failed = [name for name, result in results.items() if not result.success]
    if failed:
        logger.error(f"Backup failed for: {', '.join(failed)}")
        click.echo(f"✗ Backup failed for: {', '.join(failed)}", err=True)
    ctx.exit(0)


def interactive_menu(ctx: click.Context) -> None:
    """Show the main menu until the user exits."""
    actions = {
        "1": prompt_add_server,
        "2": manage_servers,
        "3": setup_schedule,
        "4": show_status,
    }

    while True:
        click.clear()
        click.echo("--- Remote Backup Manager (MRBM) ---")
        click.echo("1. Add a new server")
        click.echo("2. Manage existing servers")
        click.echo("3. Setup backup schedule (Cron Job)")
        click.echo("4. View backup status")
        click.echo("5. Exit")
        click.echo("---")
        choice = click.prompt("Enter your choice", default="", show_default=False).strip()

        if choice == "5":
            click.echo("Exiting. Goodbye!")
            return

        action = actions.get(choice)
        if action is None:
            click.echo("Invalid option. Please try again.")
        else:
            try:
                action(ctx)
            except (click.Abort, click.exceptions.Exit):
                raise
            except Exception as e:
                ctx.obj["error_handler"].handle_error(e)

        click.prompt("Press Enter to continue", default="", show_default=False)


def prompt_server_record(ctx: click.Context) -> ServerRecord:
    """Ask for the details of a new server."""
    registry = ctx.obj["registry"]

    name = click.prompt("Enter a unique server name").strip()
    if name in registry.list_servers():
        raise DuplicateServerError(f"A server named '{name}' already exists")

    click.echo("--- Server Details ---")
    host = click.prompt("IP or domain").strip()
    port = click.prompt("SSH Port", default=22, type=click.IntRange(1, 65535))
    user = click.prompt("SSH Username", default="root")

    click.echo("Warning: Using a password is not secure. Use an SSH key if possible.")
    password = click.prompt(
        "SSH Password (leave blank for key)", default="", hide_input=True, show_default=False
    )
    key_path = ""
    if not password:
        key_path = click.prompt("Path to SSH key", default="", show_default=False).strip()

    app_path = click.prompt("Application installation path (e.g., /opt/marzban)").strip()
    db_container = click.prompt("MySQL/MariaDB container name").strip()
    db_password = click.prompt("MySQL root password", default="", hide_input=True, show_default=False)

    click.echo("--- Telegram Details ---")
    bot_token = click.prompt("Telegram Bot Token", default="", show_default=False).strip()
    chat_id = click.prompt("Telegram Chat ID", default="", show_default=False).strip()

    return ServerRecord(
        name=name,
        host=host,
        port=port,
        user=user,
        password=password or None,
        key_path=key_path or None,
        app_path=app_path,
        db_container=db_container,
        db_password=db_password,
        bot_token=bot_token,
        chat_id=chat_id,
    )


def prompt_add_server(ctx: click.Context) -> None:
    record = prompt_server_record(ctx)
    ctx.obj["registry"].add_server(record)
    click.echo(f"✓ Server '{record.name}' added successfully.")


def print_servers(ctx: click.Context) -> bool:
    """Print the numbered server list; return False if it is empty."""
    store = ctx.obj["store"]
    servers = store.load().servers
    if not servers:
        click.echo("No servers registered.")
        return False

    click.echo("Registered Servers:")
    for i, (name, record) in enumerate(servers.items(), 1):
        click.echo(f"  {i}. {name} ({record.target}:{record.port})")
    return True


def manage_servers(ctx: click.Context, choice: Optional[str] = None, assume_yes: bool = False) -> None:
    """List servers and delete the selected one after confirmation."""
    if not print_servers(ctx):
        return

    click.echo("---")
    if choice is None:
        choice = click.prompt("Enter the number of the server to delete, or 'q' to go back")

    def confirm(name: str) -> bool:
        if assume_yes:
            return True
        return click.confirm(f"Are you sure you want to delete '{name}'?", default=False)

    deleted = ctx.obj["registry"].delete_server(choice, confirm)
    if deleted:
        click.echo(f"✓ Server '{deleted}' deleted.")
    elif str(choice).strip().lower() not in ("q", "back"):
        click.echo("Deletion canceled.")


def setup_schedule(ctx: click.Context, choice: Optional[str] = None) -> None:
    """Install the cron job for all servers at the chosen interval."""
    if choice is None:
        click.echo("Select backup interval:")
        for key, (label, _) in INTERVALS.items():
            click.echo(f"{key}. {label}")
        choice = click.prompt("Choose an option")

    cron_line = ctx.obj["scheduler"].set_schedule(choice)
    click.echo("✓ Cron job scheduled for all servers.")
    click.echo(f"Command: {cron_line}")


def show_status(ctx: click.Context) -> None:
    reporter = StatusReporter(ctx.obj["store"], storage=ctx.obj["storage"], log_file=ctx.obj["log_file"])
    for line in reporter.render_status():
        click.echo(line)


@cli.command()
@click.pass_context
def add(ctx: click.Context) -> None:
    """Register a new server interactively."""
    try:
        prompt_add_server(ctx)
    except MRBMError as e:
        ctx.obj["error_handler"].exit_with_error(e, "Adding server")


@cli.command(name="list")
@click.pass_context
def list_servers(ctx: click.Context) -> None:
    """List registered servers."""
    try:
        print_servers(ctx)
    except MRBMError as e:
        ctx.obj["error_handler"].exit_with_error(e, "Listing servers")


@cli.command()
@click.argument("choice", required=False)
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
def delete(ctx: click.Context, choice: Optional[str], yes: bool) -> None:
    """Delete a server by its number in 'mrbm list'."""
    try:
        manage_servers(ctx, choice=choice, assume_yes=yes)
    except MRBMError as e:
        ctx.obj["error_handler"].exit_with_error(e, "Deleting server")


@cli.command()
@click.argument("name")
@click.pass_context
def backup(ctx: click.Context, name: str) -> None:
    """Back up a single server now."""
    try:
        result = ctx.obj["orchestrator"].backup_server(name)
    except MRBMError as e:
        ctx.obj["error_handler"].exit_with_error(e, f"Backup of '{name}'")

    click.echo(f"✓ Backup written to {result.archive_path}")
    if not result.notified:
        click.echo("⚠ The archive was not delivered to Telegram")


@cli.command()
@click.argument("choice", required=False, type=click.Choice(list(INTERVALS)))
@click.pass_context
def schedule(ctx: click.Context, choice: Optional[str]) -> None:
    """Install or replace the cron job that backs up all servers.

    CHOICE is 1 (30 minutes), 2 (1 hour), 3 (6 hours), 4 (12 hours) or 5 (24 hours).
    """
    try:
        setup_schedule(ctx, choice)
    except MRBMError as e:
        ctx.obj["error_handler"].exit_with_error(e, "Schedule setup")


@cli.command()
@click.pass_context
def unschedule(ctx: click.Context) -> None:
    """Remove the backup cron job."""
    try:
        removed = ctx.obj["scheduler"].remove_schedule()
    except MRBMError as e:
        ctx.obj["error_handler"].exit_with_error(e, "Schedule removal")

    if removed:
        click.echo("✓ Cron job removed.")
    else:
        click.echo("No cron job installed.")


@cli.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show the last backup of every server."""
    try:
        show_status(ctx)
    except MRBMError as e:
        ctx.obj["error_handler"].exit_with_error(e, "Status check")


@cli.command(name="init-key")
@click.pass_context
def init_key(ctx: click.Context) -> None:
    """Create an encryption key and re-save secrets encrypted."""
    try:
        key_path = ctx.obj["secret_manager"].generate_key()
        store = ctx.obj["store"]
        if os.path.exists(store.path):
            # rewrite so existing plaintext secrets get encrypted
            with store.transaction():
                pass
    except MRBMError as e:
        ctx.obj["error_handler"].exit_with_error(e, "Key generation")

    click.echo(f"✓ Created encryption key: {key_path}")
    click.echo("Keep this file safe: encrypted secrets cannot be read without it.")


@cli.command(name="import-legacy")
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
@click.pass_context
def import_legacy(ctx: click.Context, path: str) -> None:
    """Import servers from a config.env file of the shell version."""
    try:
        imported = ctx.obj["store"].import_legacy(path)
    except MRBMError as e:
        ctx.obj["error_handler"].exit_with_error(e, "Legacy import")

    if imported:
        click.echo(f"✓ Imported {len(imported)} server(s): {', '.join(imported)}")
    else:
        click.echo("No new servers found.")


def main() -> None:
    cli(obj={}, prog_name="mrbm")


if __name__ == "__main__":
    main()
