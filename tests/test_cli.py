from pathlib import Path

import typer
from typer.testing import CliRunner

from botmaid import __version__
from botmaid.cli import run


def _app() -> typer.Typer:
    app = typer.Typer()
    app.command()(run)
    return app


def test_version_flag() -> None:
    result = CliRunner().invoke(_app(), ["--version"])

    assert result.exit_code == 0
    assert __version__ in result.output


def test_missing_config_exits_with_error(tmp_path: Path) -> None:
    result = CliRunner().invoke(_app(), ["--config", str(tmp_path / "nope.toml")])

    assert result.exit_code == 1
    assert "Missing config file" in result.output
