"""Status command: dashboard, bug counts and deployment readiness."""

import click

from cli_agent_fleet.cli.context import load_command_config
from cli_agent_fleet.clients.coordination import CoordinationStore
from cli_agent_fleet.config import ConfigError
from cli_agent_fleet.constants import (
    FILES_LOCK_FILE,
    HISTORY_LOG_FILE,
    STATUS_DASHBOARD_FILE,
    TEST_QUEUE_FILE,
)
from cli_agent_fleet.models.bug import Severity
from cli_agent_fleet.services.status_service import collect_status
from cli_agent_fleet.utils.console import print_success, print_warning


@click.command()
@click.option("--all", "show_all", is_flag=True, help="Also report medium and low bugs and list every entry")
@click.pass_context
def status(ctx, show_all):
    """Show the coordination state of the project."""
    try:
        config = load_command_config(ctx)
    except ConfigError as e:
        raise click.ClickException(str(e))

    store = CoordinationStore(config.project_dir)
    if not store.root.is_dir():
        raise click.ClickException(f"No coordination directory at {store.root}")

    dashboard = store.read_document(STATUS_DASHBOARD_FILE)
    click.secho("Fleet Status:", fg="yellow")
    click.echo(dashboard.rstrip() if dashboard else "Status: unknown")

    claims = store.read_document(FILES_LOCK_FILE)
    if claims and claims.strip():
        click.echo()
        click.secho("Claimed files:", fg="yellow")
        click.echo(claims.rstrip())

    fleet_status = collect_status(store)
    shown = [s for s in Severity if show_all or s.surfaced_automatically]

    click.echo()
    click.secho("Open bugs:", fg="yellow")
    for severity in shown:
        click.echo(f"  {severity.marker:<12} {fleet_status.bug_counts[severity]}")
    click.secho("Open next actions:", fg="yellow")
    for severity in shown:
        click.echo(f"  {severity.marker:<12} {fleet_status.next_action_counts[severity]}")

    if show_all:
        entries = [b for b in fleet_status.bugs + fleet_status.next_actions if b.severity in shown]
        if entries:
            click.echo()
            for bug in sorted(entries, key=lambda b: b.severity.rank):
                click.echo(f"  {bug.summary()}")

    queue = store.read_document(TEST_QUEUE_FILE) or ""
    pending = sum(1 for line in queue.splitlines() if line.lstrip().startswith("- [ ]"))
    if pending:
        click.echo(f"Queued manual tests: {pending}")

    click.echo()
    history = store.read_document(HISTORY_LOG_FILE)
    if history and history.strip():
        click.echo(f"Last test run: {history.strip().splitlines()[-1]}")
    if fleet_status.deployment_succeeded is True:
        print_success("Last deployment successful")
    elif fleet_status.deployment_succeeded is False:
        print_warning("Last deployment incomplete")

    if fleet_status.ready:
        print_success("Deployment readiness: READY")
    else:
        print_warning("Deployment readiness: NOT READY")
