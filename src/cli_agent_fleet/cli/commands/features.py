"""Features command: interactive feature rounds with background test & fix."""

import click

from cli_agent_fleet.cli.context import build_runtime, load_command_config
from cli_agent_fleet.config import ConfigError
from cli_agent_fleet.providers.base import ProviderError
from cli_agent_fleet.services.feature_service import FeatureLoop, FleetAbort
from cli_agent_fleet.services.phase_service import SkillNotFoundError
from cli_agent_fleet.services.watch_service import PollLoop


@click.command()
@click.option(
    "--max-rounds", type=click.IntRange(min=1), help="Feature rounds before the loop stops (default: 20)"
)
@click.option("--poll-interval", type=click.FloatRange(min=0, min_open=True), help="Seconds between build log checks")
@click.pass_context
def features(ctx, max_rounds, poll_interval):
    """Architect, bootstrap, then build features while tests run in the background."""
    try:
        config = load_command_config(ctx, max_feature_rounds=max_rounds, poll_interval=poll_interval)
        store, provider = build_runtime(config)
        poll_loop = PollLoop(
            store,
            provider,
            config.skills_dir,
            poll_interval=config.poll_interval,
            phase_timeout=config.phase_timeout,
        )
        loop = FeatureLoop(
            store,
            provider,
            config.skills_dir,
            poll_loop,
            max_rounds=config.max_feature_rounds,
            critical_wait_seconds=config.critical_wait_seconds,
            phase_timeout=config.phase_timeout,
        )
        loop.run()
    except (ConfigError, ProviderError, SkillNotFoundError, FleetAbort) as e:
        raise click.ClickException(str(e))
