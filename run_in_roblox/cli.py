"""run-in-roblox CLI - run a script inside Roblox Studio from the terminal."""

import secrets
import sys
import threading
from pathlib import Path
from typing import Any, Optional

import click

from . import __version__
from .channel import OutputChannel
from .config import RunnerConfig, find_config_path, load_config
from .errors import RunnerError
from .log import get_logger, set_level
from .message_receiver import find_free_port
from .messages import OutputLevel, RobloxMessage
from .place_runner import PlaceRunner
from .plugin import PluginFormatError, read_plugin
from .studio import RobloxStudio

log = get_logger("cli")

LEVEL_COLORS = {
    OutputLevel.PRINT: None,
    OutputLevel.INFO: "cyan",
    OutputLevel.WARNING: "yellow",
    OutputLevel.ERROR: "red",
}


def load_merged_config(config_path: Optional[str] = None) -> RunnerConfig:
    """Load config, exiting with a message if the file is broken."""
    try:
        return load_config(config_path)
    except Exception as e:
        click.echo(f"Error loading config: {e}", err=True)
        sys.exit(1)


def new_server_id() -> str:
    """Unguessable per-run token (128 bits)."""
    return secrets.token_hex(16)


def print_message(message: RobloxMessage, color: bool = True) -> None:
    fg = LEVEL_COLORS.get(message.level) if color else None
    click.secho(message.body, fg=fg)


def join_runner(worker: threading.Thread, runner: PlaceRunner) -> bool:
    """Wait for the runner thread to finish, cancelling it on Ctrl-C.

    The thread is always joined, so Studio is killed and the plugin
    removed before the process exits. Returns True if interrupted.
    """
    interrupted = False
    while True:
        try:
            worker.join()
            return interrupted
        except KeyboardInterrupt:
            if not interrupted:
                click.echo("\nCancelling, waiting for cleanup...", err=True)
            interrupted = True
            runner.cancel()


@click.group()
@click.version_option(version=__version__, prog_name="run-in-roblox")
def cli():
    """run-in-roblox - run Lua scripts inside Roblox Studio."""
    pass


@cli.command()
@click.option(
    "--place",
    "-p",
    required=True,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Place file to open in Studio",
)
@click.option(
    "--script",
    "-s",
    required=True,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Lua script to run",
)
@click.option("--port", type=int, help="Relay port (default: a free port)")
@click.option("--debug", "-d", is_flag=True, help="Show Studio output and debug logs")
@click.option("--config", "-c", "config_path", type=click.Path(exists=True), help="Config file path")
@click.option("--no-color", is_flag=True, help="Disable colored output")
def run(
    place: Path,
    script: Path,
    port: Optional[int],
    debug: bool,
    config_path: Optional[str],
    no_color: bool,
):
    """Open PLACE in Studio, run SCRIPT and print its output.

    Exits with status 1 if the run fails or the script reports an error.
    """
    cfg = load_merged_config(config_path)
    debug = debug or cfg.debug
    try:
        set_level("debug" if debug else cfg.log_level)
    except ValueError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    runner = PlaceRunner(
        port=port or cfg.port or find_free_port(),
        place_path=place.resolve(),
        server_id=new_server_id(),
        lua_script=script.read_text(encoding="utf-8"),
        debug=debug,
        config=cfg,
    )
    color = cfg.color and not no_color

    channel = OutputChannel()
    failures: list[Exception] = []

    def work():
        try:
            runner.run(channel)
        except Exception as e:
            failures.append(e)
        finally:
            channel.hang_up()

    worker = threading.Thread(target=work, name="place-runner", daemon=True)
    worker.start()

    saw_error = False
    interrupted = False
    try:
        for message in channel:
            print_message(message, color)
            if message.level == OutputLevel.ERROR:
                saw_error = True
    except KeyboardInterrupt:
        interrupted = True
        click.echo("\nInterrupted, shutting Studio down...", err=True)
        channel.close()
        runner.cancel()

    if join_runner(worker, runner) or interrupted:
        sys.exit(130)

    if failures:
        error = failures[0]
        if not isinstance(error, RunnerError):
            log.error(f"Unexpected failure: {error!r}")
        click.echo(f"Error: {error}", err=True)
        sys.exit(1)
    if saw_error:
        sys.exit(1)


@cli.command()
@click.option("--config", "-c", "config_path", type=click.Path(exists=True), help="Config file path")
def studio(config_path: Optional[str]):
    """Show the Roblox Studio installation that would be used."""
    cfg = load_merged_config(config_path)
    try:
        install = RobloxStudio.locate(cfg)
    except RunnerError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    click.echo(f"Studio:   {install.application_path}")
    click.echo(f"Plugins:  {install.plugins_path}")
    if install.is_vinegar:
        click.echo("Launcher: vinegar")


def _mask(value: str) -> str:
    if len(value) > 4:
        return f"***{value[-4:]}"
    return value


@cli.command("inspect-plugin")
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--reveal", is_flag=True, help="Show the server id unmasked")
def inspect_plugin(path: Path, reveal: bool):
    """Show the session values baked into a plugin file."""
    try:
        plugin = read_plugin(path)
    except (PluginFormatError, OSError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    click.echo(f"Port:      {plugin.port}")
    click.echo(f"Server id: {plugin.server_id if reveal else _mask(plugin.server_id)}")
    click.echo("Script:")
    click.echo(plugin.lua_script)


# --- Config Commands ---


@cli.group()
def config():
    """Configuration commands."""
    pass


def _parse_value(value: str) -> Any:
    """Interpret a CLI value as bool, int, float or string."""
    if value.lower() == "true":
        return True
    if value.lower() == "false":
        return False
    if value.isdigit():
        return int(value)
    try:
        return float(value)
    except ValueError:
        return value


@config.command("show")
@click.option("--config", "-c", "config_path", type=click.Path(exists=True), help="Config file path")
def config_show(config_path: Optional[str]):
    """Show current configuration."""
    import yaml

    path = find_config_path(config_path)
    cfg = load_merged_config(config_path)

    if cfg._raw:
        click.echo(f"# {path}")
        click.echo(yaml.dump(cfg._raw, default_flow_style=False, sort_keys=False))
    else:
        click.echo("# No configuration loaded")
        click.echo("# Create ~/.run-in-roblox/config.yml or ./run-in-roblox.yml")


@config.command("set")
@click.argument("key")
@click.argument("value")
@click.option("--config", "-c", "config_path", type=click.Path(), help="Config file to edit")
def config_set(key: str, value: str, config_path: Optional[str]):
    """Write VALUE under KEY in the config file.

    Nested keys are dotted. Values true/false and numbers are typed.

    \b
    Examples:
      run-in-roblox config set studio.path "C:/Program Files/Roblox/RobloxStudioBeta.exe"
      run-in-roblox config set studio.plugins_dir ~/Documents/Roblox/Plugins
      run-in-roblox config set logger.level debug
      run-in-roblox config set port 50312
    """
    import yaml

    path = find_config_path(config_path)
    data = _read_config_file(path) if path.exists() else {}

    *sections, name = key.split(".")
    section = data
    for part in sections:
        section = section.setdefault(part, {})
        if not isinstance(section, dict):
            click.echo(f"Error: {part} holds a value, not a section of settings", err=True)
            sys.exit(1)

    previous = section.get(name)
    section[name] = _parse_value(value)

    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False)

    if previous is None:
        click.echo(f"Set {key} = {section[name]}")
    else:
        click.echo(f"Updated {key}: {previous} → {section[name]}")


@config.command("get")
@click.argument("key")
@click.option("--config", "-c", "config_path", type=click.Path(), help="Config file to read")
def config_get(key: str, config_path: Optional[str]):
    """Print the value stored under KEY, e.g. studio.path or port.

    Reads the file as written; ${VAR} references are shown unexpanded.
    """
    path = find_config_path(config_path)
    if not path.exists():
        click.echo(f"Config file not found: {path}", err=True)
        sys.exit(1)

    value: Any = _read_config_file(path)
    for part in key.split("."):
        if not isinstance(value, dict) or part not in value:
            click.echo(f"{key} is not set in {path}", err=True)
            sys.exit(1)
        value = value[part]

    click.echo(value)


def _read_config_file(path: Path) -> dict:
    import yaml

    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        click.echo(f"Error: {path} does not hold a mapping of settings", err=True)
        sys.exit(1)
    return data


def main():
    """Entry point."""
    cli()


if __name__ == "__main__":
    main()
