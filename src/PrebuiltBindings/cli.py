# === NAVMAP v1 ===
# {
#   "module": "PrebuiltBindings.cli",
#   "purpose": "Typer CLI for installing, building, cleaning and packing bindings.",
#   "sections": [
#     {"id": "clicontext", "name": "CliContext", "anchor": "class-clicontext", "kind": "class"},
#     {"id": "callback", "name": "main_callback", "anchor": "function-main-callback", "kind": "function"},
#     {"id": "commands", "name": "Commands", "anchor": "CMD", "kind": "api"},
#     {"id": "main", "name": "main", "anchor": "function-main", "kind": "function"}
#   ]
# }
# === /NAVMAP ===

"""Typer CLI for installing, building, cleaning and packing bindings.

Commands chain and run in the order given; with no command, ``install`` runs::

    prebuilt-bindings                     # install
    prebuilt-bindings clean install       # force a fresh download
    prebuilt-bindings --project ./pkg config
    prebuilt-bindings build pack          # rebuild, then archive for release

Command output (``config`` JSON, ``pack`` archive names) goes to stdout; logs
and errors go to stderr. Fatal errors print the usage line and the message,
then exit with status 1.
"""

import asyncio
import logging
from pathlib import Path
from typing import NoReturn, Optional

import typer
from pydantic import ValidationError
from rich.console import Console

from PrebuiltBindings import __version__
from PrebuiltBindings.acquire import acquire
from PrebuiltBindings.build import run_build
from PrebuiltBindings.config import ResolvedConfig, load_project_config
from PrebuiltBindings.errors import PrebuiltBindingsError
from PrebuiltBindings.io.filesystem import clean_bindings, pack_bindings
from PrebuiltBindings.logging_config import setup_logging
from PrebuiltBindings.settings import Settings, load_settings

LOGGER = logging.getLogger(__name__)

PROG_NAME = "prebuilt-bindings"

_err_console = Console(stderr=True)


class CliContext:
    """Shared state for one invocation.

    The project configuration is loaded on first use, so ``help`` and
    ``--version`` work outside a project.
    """

    def __init__(self, project: Path, config_file: Optional[Path], settings: Settings):
        self.project = project
        self.config_file = config_file
        self.settings = settings
        self._config: Optional[ResolvedConfig] = None

    @property
    def config(self) -> ResolvedConfig:
        if self._config is None:
            self._config = load_project_config(self.project, self.config_file)
        return self._config


app = typer.Typer(
    name=PROG_NAME,
    help="Install prebuilt native bindings, falling back to a source build.",
    chain=True,
    add_completion=False,
)


def get_context(ctx: typer.Context) -> CliContext:
    """Return the :class:`CliContext` stored on the root click context."""
    state = ctx.find_root().obj
    if not isinstance(state, CliContext):
        raise RuntimeError("CLI context not initialized")
    return state


def _fail(ctx: typer.Context, exc: BaseException) -> NoReturn:
    _err_console.print(ctx.find_root().get_usage(), markup=False, highlight=False, soft_wrap=True)
    _err_console.print(f"Error: {exc}", markup=False, highlight=False, soft_wrap=True)
    raise typer.Exit(1)


def _install(ctx: typer.Context) -> None:
    state = get_context(ctx)
    try:
        config = state.config
        asyncio.run(acquire(config.bindings, settings=state.settings, context=config.context))
    except PrebuiltBindingsError as exc:
        _fail(ctx, exc)
    except Exception as exc:
        LOGGER.debug("install failed", exc_info=True)
        _fail(ctx, exc)


@app.callback(invoke_without_command=True)
def main_callback(
    ctx: typer.Context,
    project: Path = typer.Option(
        Path("."),
        "--project",
        "-p",
        help="Project root containing pyproject.toml",
    ),
    config: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="Binding configuration file (YAML or TOML) replacing [tool.prebuilt-bindings]",
    ),
    log_level: Optional[str] = typer.Option(
        None,
        "--log-level",
        help="Logging level: DEBUG, INFO, WARNING, ERROR",
    ),
    json_logs: Optional[bool] = typer.Option(
        None,
        "--json-logs/--no-json-logs",
        help="Emit JSON log lines on stderr",
    ),
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        help="Show version and exit",
    ),
) -> None:
    """Install prebuilt native bindings, falling back to a source build.

    Commands run in the order given; ``install`` runs when none is given.
    """
    if version:
        typer.echo(f"{PROG_NAME} {__version__}")
        raise typer.Exit(0)

    try:
        settings = load_settings(log_level=log_level, json_logs=json_logs)
    except ValidationError as exc:
        _fail(ctx, exc)
    setup_logging(settings.logging)
    ctx.obj = CliContext(project=project, config_file=config, settings=settings)

    if ctx.invoked_subcommand is None:
        _install(ctx)


# --- Commands -----------------------------------------------------------------


@app.command()
def install(ctx: typer.Context) -> None:
    """Download and verify every binding, building from source if needed."""
    _install(ctx)


@app.command()
def build(ctx: typer.Context) -> None:
    """Run the native build toolchain in the project root."""
    state = get_context(ctx)
    try:
        asyncio.run(run_build(state.settings.builder, cwd=state.project.resolve()))
    except PrebuiltBindingsError as exc:
        _fail(ctx, exc)
    except Exception as exc:
        LOGGER.debug("build failed", exc_info=True)
        _fail(ctx, exc)


@app.command()
def clean(ctx: typer.Context) -> None:
    """Remove every binding's local artifact."""
    state = get_context(ctx)
    try:
        clean_bindings(state.config.bindings)
    except (PrebuiltBindingsError, OSError) as exc:
        _fail(ctx, exc)


@app.command("config")
def show_config(ctx: typer.Context) -> None:
    """Print the expanded configuration as JSON."""
    state = get_context(ctx)
    try:
        typer.echo(state.config.to_json())
    except PrebuiltBindingsError as exc:
        _fail(ctx, exc)


@app.command()
def pack(ctx: typer.Context) -> None:
    """Gzip every verified binding into the current directory for release upload."""
    state = get_context(ctx)
    try:
        archives = pack_bindings(state.config.bindings)
    except (PrebuiltBindingsError, OSError) as exc:
        _fail(ctx, exc)
    for archive in archives:
        typer.echo(archive.name)


@app.command("help")
def show_help(ctx: typer.Context) -> None:
    """Show this message."""
    typer.echo(ctx.find_root().get_help())


def main() -> None:
    """Console-script entry point."""
    app(prog_name=PROG_NAME)


__all__ = ["CliContext", "app", "get_context", "main"]
