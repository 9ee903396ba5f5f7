"""Watch command: run the background test & fix loop in the foreground."""

import logging
import signal
import threading

import click

from cli_agent_fleet.cli.context import build_runtime, load_command_config
from cli_agent_fleet.config import ConfigError
from cli_agent_fleet.constants import STATUS_DASHBOARD_FILE
from cli_agent_fleet.providers.base import ProviderError
from cli_agent_fleet.services.phase_service import SkillNotFoundError
from cli_agent_fleet.services.watch_service import PollLoop

logger = logging.getLogger(__name__)


@click.command()
@click.option("--poll-interval", type=click.FloatRange(min=0, min_open=True), help="Seconds between build log checks")
@click.pass_context
def watch(ctx, poll_interval):
    """Re-test on every build log change until interrupted."""
    try:
        config = load_command_config(ctx, poll_interval=poll_interval)
        store, provider = build_runtime(config)
    except (ConfigError, ProviderError) as e:
        raise click.ClickException(str(e))

    store.init_background_files()
    store.write_document(STATUS_DASHBOARD_FILE, "Status: Idle\n")

    stop_event = threading.Event()

    def _signal_handler(signum, _frame):
        logger.info(f"Caught {signal.Signals(signum).name}, stopping poll loop...")
        stop_event.set()

    previous = {sig: signal.signal(sig, _signal_handler) for sig in (signal.SIGINT, signal.SIGTERM)}

    poll_loop = PollLoop(
        store,
        provider,
        config.skills_dir,
        poll_interval=config.poll_interval,
        phase_timeout=config.phase_timeout,
    )
    click.echo(f"Watching {store.relative(poll_loop.watched)} (Ctrl-C to stop)")
    try:
        poll_loop.run(stop_event)
    except (ProviderError, SkillNotFoundError) as e:
        raise click.ClickException(str(e))
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)
