"""
Main CLI interface for waylyric

This module provides the command-line interface of the lyrics daemon. The
``run`` command watches MPRIS players on the session bus and prints one
Waybar JSON object per line on stdout; everything else (logs, errors,
diagnostics) goes to stderr so Waybar never sees it.

The CLI is built using Click framework and provides structured command groups for:
- Running the daemon (run)
- Lyrics inspection (show, sources)
- Configuration management (show, save)
"""

import sys
import asyncio
import click
import functools
import yaml

from . import __version__
from .config.settings import KNOWN_PROVIDERS, get_settings, reload_settings
from .exceptions import ConfigError
from .lyrics.lrc import LyricsDocument, TimeTag
from .lyrics.processor import get_lyrics_processor, reset_lyrics_processor
from .mpris.client import MprisClient
from .output.waybar import WaybarRenderer
from .sync.event_loop import run_event_loop
from .sync.synchronizer import LyricsScheduler
from .sync.tracker import PlayerRegistry
from .utils.helpers import format_duration
from .utils.logger import configure_from_settings, get_logger, get_current_log_file


# Initialize logging system from configuration settings
configure_from_settings()
logger = get_logger(__name__)

LOG_LEVELS = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']


def print_banner():
    """Print application banner to console"""
    banner = """
╔═══════════════════════════════════════════════════════════════╗
║                           waylyric                            ║
║                                                               ║
║        Synced lyrics from MPRIS players for Waybar            ║
║                                                               ║
╚═══════════════════════════════════════════════════════════════╝
    """
    click.echo(click.style(banner, fg='green', bold=True))


def handle_error(func):
    """
    Decorator to handle common CLI errors gracefully

    Wraps CLI command functions to provide consistent error handling across
    all commands. Messages go to stderr since stdout may belong to Waybar.

    Args:
        func: The CLI command function to wrap

    Returns:
        Wrapped function with error handling
    """
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except KeyboardInterrupt:
            click.echo(click.style("\n\nOperation cancelled by user", fg='yellow'), err=True)
            sys.exit(130)  # Standard exit code for SIGINT
        except Exception as e:
            logger.error(f"Command failed: {e}")
            click.echo(click.style(f"Error: {e}", fg='red'), err=True)
            sys.exit(1)
    return wrapper


# Main CLI group - root command that all subcommands attach to
@click.group(invoke_without_command=True)
@click.option('--version', is_flag=True, help='Show version information')
@click.option('--verbose', '-v', is_flag=True, help='Enable debug logging')
@click.option('--config', type=click.Path(), help='Path to config file')
@click.pass_context
def cli(ctx, version, verbose, config):
    """
    waylyric - Synced lyrics for the currently playing MPRIS track

    Watches media players on the D-Bus session bus, finds lyrics for the
    current track and prints Waybar custom module updates as playback moves
    from line to line.
    """
    ctx.ensure_object(dict)

    if version:
        click.echo(f"waylyric v{__version__}")
        return

    if config:
        reload_settings(config)
        reset_lyrics_processor()
        configure_from_settings()
        logger.debug(f"Loaded config: {config}")

    ctx.obj['verbose'] = verbose
    if verbose:
        configure_from_settings(level='DEBUG')
        logger.debug("Verbose mode enabled")

    if ctx.invoked_subcommand is None:
        print_banner()
        click.echo(ctx.get_help())


async def run_daemon(settings) -> None:
    """
    Connect to the session bus and drive the display until the bus goes away

    Raises:
        MembershipError: If the session bus is unreachable or disconnects
    """
    processor = get_lyrics_processor()
    scheduler = LyricsScheduler(
        PlayerRegistry(),
        processor,
        WaybarRenderer(),
        skip_metadata=settings.player.skip_metadata,
    )

    client = await MprisClient(settings.player.refresh_interval).connect()
    logger.info(f"Watching players: {', '.join(settings.player.allowed_players)}, "
                f"lyrics sources: {', '.join(processor.source_names())}")
    try:
        await run_event_loop(
            scheduler,
            client.membership(),
            client.connect_player,
            allowed_players=settings.player.allowed_players,
            loop_check_interval=settings.player.loop_check_interval,
        )
    finally:
        client.disconnect()


@cli.command()
@click.option('--player', '-p', multiple=True, help='Player to follow (short or full bus name, "all" for any)')
@click.option('--refresh-every', type=float, help='Maximum seconds between position polls')
@click.option('--skip-metadata', multiple=True, help='Metadata key to leave out of the tooltip')
@click.option('--external-lrc-provider', multiple=True, type=click.Choice(KNOWN_PROVIDERS),
              help='Web lyrics provider, tried in the given order')
@click.option('--navidrome-server-url', help='Navidrome server URL')
@click.option('--navidrome-username', help='Navidrome username')
@click.option('--navidrome-password', help='Navidrome password')
@click.option('--log-file', type=click.Path(), help='Write logs to this file')
@click.option('--log-level', type=click.Choice(LOG_LEVELS, case_sensitive=False), help='Logging level')
@click.pass_context
@handle_error
def run(ctx, player, refresh_every, skip_metadata, external_lrc_provider, navidrome_server_url,
        navidrome_username, navidrome_password, log_file, log_level):
    """
    Print Waybar updates for the lyrics of the playing track

    Each display change is written to stdout as one JSON object; an empty
    object clears the module. Use as the exec of a Waybar custom module
    with "return-type": "json".
    """
    settings = get_settings()

    # Command line options override configuration values
    if player:
        settings.player.allowed_players = list(player)
    if refresh_every is not None:
        settings.player.refresh_interval = refresh_every
    if skip_metadata:
        settings.player.skip_metadata = list(skip_metadata)
    if external_lrc_provider:
        settings.lyrics.external_providers = list(external_lrc_provider)
    if navidrome_server_url:
        settings.navidrome.server_url = navidrome_server_url
    if navidrome_username:
        settings.navidrome.username = navidrome_username
    if navidrome_password:
        settings.navidrome.password = navidrome_password

    level = log_level.upper() if log_level else ('DEBUG' if ctx.obj.get('verbose') else None)
    if level or log_file:
        configure_from_settings(level=level, log_file=log_file)

    problems = settings.validate()
    if problems:
        raise ConfigError("Invalid configuration: " + "; ".join(problems), details={'errors': problems})

    # Providers are built from the overridden settings
    reset_lyrics_processor()

    log_path = get_current_log_file()
    if log_path:
        logger.info(f"Logging to {log_path}")

    asyncio.run(run_daemon(settings))


# Lyrics commands group
@cli.group()
def lyrics():
    """Lyrics inspection commands"""
    pass


@lyrics.command()
@click.argument('file', type=click.Path(exists=True, dir_okay=False))
@click.option('--at', 'at_seconds', type=click.FloatRange(min=0), help='Show the lines active at this many seconds')
@handle_error
def show(file, at_seconds):
    """
    Parse an LRC file and print what would be displayed

    Without --at every version is listed line by line. With --at only the
    lines active at that instant and the next boundary are printed.
    """
    document = LyricsDocument.from_path(file)

    if document.is_empty():
        click.echo(click.style(f"No timed lyrics found in {file}", fg='yellow'))
        return

    if at_seconds is not None:
        position = TimeTag.from_seconds(at_seconds)
        query = document.get(position)
        click.echo(f"At {position}: {query.text or '(nothing yet)'}")
        if query.next_boundary is None:
            click.echo("Next line: none (lyrics ended)")
        else:
            click.echo(f"Next line: {query.next_boundary} "
                       f"(in {query.next_boundary.distance_from(position):.2f}s)")
        return

    versions = document.versions
    click.echo(f"{file}: {len(versions)} version(s)")
    for index, version in enumerate(versions, 1):
        click.echo(f"\nVersion {index} ({len(version)} lines, last at {format_duration(max(version).seconds)}):")
        for tag in sorted(version):
            click.echo(f"   [{tag}] {version[tag]}")


@lyrics.command()
@handle_error
def sources():
    """
    List the lyrics resolution chain

    Local sources are always tried first; web providers follow in the
    configured order. Providers missing required configuration are flagged.
    """
    settings = get_settings()
    lyrics_processor = get_lyrics_processor()

    click.echo("Lyrics resolution order:")
    for position, source in enumerate(lyrics_processor.source_names(), 1):
        click.echo(f"   {position}. {source}")

    click.echo("\nWeb providers:")
    for name in KNOWN_PROVIDERS:
        if name in lyrics_processor.providers:
            status_icon, status_text = "[OK]", "Enabled"
        elif name in settings.lyrics.external_providers:
            status_icon, status_text = "[FAIL]", "Selected but not configured"
        else:
            status_icon, status_text = "[--]", "Disabled"
        click.echo(f"   {status_icon} {name}: {status_text}")


# Configuration commands group
@cli.group()
def config():
    """Configuration management commands"""
    pass


@config.command(name='show')
@handle_error
def show_config():
    """
    Show current configuration

    Prints the effective settings as YAML with the Navidrome password
    masked, followed by any validation problems.
    """
    settings = get_settings()

    source = settings.loaded_from or "defaults"
    click.echo(f"Current Configuration (from {source}):\n")
    click.echo(yaml.safe_dump(settings.to_dict(), default_flow_style=False, sort_keys=False).rstrip())

    problems = settings.validate()
    if problems:
        click.echo(click.style("\nProblems:", fg='yellow'))
        for problem in problems:
            click.echo(f"   - {problem}")


@config.command(name='save')
@click.option('--path', type=click.Path(dir_okay=False), help='Destination file (default: user config directory)')
@handle_error
def save_config(path):
    """Write the effective configuration to a YAML file (password excluded)"""
    target = get_settings().save_config(path)
    click.echo(click.style(f"Configuration saved to {target}", fg='green'))


if __name__ == '__main__':
    cli()
