from __future__ import annotations

from pathlib import Path

import anyio
import typer

from . import __version__
from .botmaid import create_botmaid
from .config import ConfigError
from .logging import get_logger, setup_logging
from .settings import BotMaidSettings, load_settings

logger = get_logger(__name__)


def _print_version_and_exit() -> None:
    typer.echo(__version__)
    raise typer.Exit()


def _version_callback(value: bool) -> None:
    if value:
        _print_version_and_exit()


async def _run_main_loop(settings: BotMaidSettings) -> None:
    bm = await create_botmaid(settings)
    try:
        await bm.start()
    finally:
        with anyio.CancelScope(shield=True):
            await bm.close()


def run(
    version: bool = typer.Option(
        False,
        "--version",
        help="Show the version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
    config: Path | None = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to botmaid.toml (defaults to ~/.botmaid/botmaid.toml).",
    ),
    debug: bool = typer.Option(
        False,
        "--debug/--no-debug",
        help="Log every request, update and dispatch decision.",
    ),
) -> None:
    setup_logging(debug=debug)
    try:
        settings, config_path = load_settings(config)
    except ConfigError as e:
        typer.echo(str(e), err=True)
        raise typer.Exit(code=1)
    logger.info("botmaid.starting", config=str(config_path), bots=list(settings.bots))
    try:
        anyio.run(_run_main_loop, settings)
    except ConfigError as e:
        typer.echo(str(e), err=True)
        raise typer.Exit(code=1)
    except KeyboardInterrupt:
        logger.info("botmaid.stopped")


def main() -> None:
    typer.run(run)


if __name__ == "__main__":
    main()
