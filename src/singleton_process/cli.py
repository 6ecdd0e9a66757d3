"""CLI root — entry point for all singleton subcommands.

Entry points:
  singleton
  python -m singleton_process

Command surface:
  singleton status NAME          is NAME held right now?   (exit 0 yes, 1 no)
  singleton pid NAME             print the holder's PID     (exit 1 if none)
  singleton run NAME -- CMD...   run CMD while holding NAME (exit 1 if taken)
  singleton config show          print resolved configuration
"""

import subprocess
from pathlib import Path

import typer

from singleton_process import __version__
from singleton_process.logging import bind_slot, get_logger

app = typer.Typer(
    name="singleton",
    help="Keep at most one copy of a named process running on this host.",
    no_args_is_help=True,
)

_log = get_logger(__name__)

_ROOT_PATH_OPTION = typer.Option(
    None,
    "--root-path",
    "-r",
    help="Base directory for tmp/pids.  Defaults to paths.root_path from config.",
)


def _handle(name: str, root_path: Path | None):
    from singleton_process.config import get_settings
    from singleton_process.lock import SingletonProcess

    try:
        handle = SingletonProcess(name, root_path, settings=get_settings())
    except ValueError as exc:
        raise typer.BadParameter(str(exc), param_hint="NAME") from exc
    bind_slot(handle.name)
    return handle


# ---------------------------------------------------------------------------
# Global callback — runs before every subcommand
# ---------------------------------------------------------------------------


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"singleton {__version__}")
        raise typer.Exit()


@app.callback()
def _main(
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        callback=_version_callback,
        is_eager=True,
        help="Print version and exit.",
    ),
) -> None:
    """Keep at most one copy of a named process running on this host."""
    # --version exits before this body, so logging is only set up for subcommands.
    from singleton_process.logging import configure_logging

    configure_logging()


# ---------------------------------------------------------------------------
# status / pid
# ---------------------------------------------------------------------------


@app.command("status")
def status(
    name: str = typer.Argument(..., help="Process name (pid file stem)."),
    root_path: Path | None = _ROOT_PATH_OPTION,
) -> None:
    """Report whether NAME is currently held.

    A pid file left behind by a crashed holder reports "not running": only
    a live lock counts.  Exit code 0 if running, 1 if not.
    """
    from singleton_process.lock import LockIOError

    handle = _handle(name, root_path)
    try:
        running = handle.running()
        pid = handle.pid() if running else None
    except LockIOError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(2) from exc

    if not running:
        typer.echo(f"{name}: not running")
        raise typer.Exit(1)
    holder = f"pid {pid}" if pid is not None else "pid unknown"
    typer.echo(f"{name}: running ({holder})")


@app.command("pid")
def pid(
    name: str = typer.Argument(..., help="Process name (pid file stem)."),
    root_path: Path | None = _ROOT_PATH_OPTION,
) -> None:
    """Print the PID of the process holding NAME.  Exit code 1 if none."""
    from singleton_process.lock import LockIOError

    handle = _handle(name, root_path)
    try:
        holder = handle.pid()
    except LockIOError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(2) from exc

    if holder is None:
        raise typer.Exit(1)
    typer.echo(str(holder))


# ---------------------------------------------------------------------------
# run
# ---------------------------------------------------------------------------


def _run_command(command: list[str]) -> int:
    _log.info("command started", command=command)
    returncode = subprocess.run(command, check=False).returncode
    _log.info("command finished", returncode=returncode)
    # Killed by signal N → conventional shell status 128 + N.
    return returncode if returncode >= 0 else 128 - returncode


@app.command("run")
def run(
    name: str = typer.Argument(..., help="Process name (pid file stem)."),
    command: list[str] = typer.Argument(..., help="Command to run; put it after --."),
    root_path: Path | None = _ROOT_PATH_OPTION,
) -> None:
    """Run COMMAND while holding NAME, releasing it when COMMAND exits.

    Refuses to start (exit 1) if another process already holds NAME.
    Otherwise exits with COMMAND's own exit status.

    Example:  singleton run nightly-report -- python report.py --full
    """
    from singleton_process.lock import AlreadyRunningError, LockIOError

    handle = _handle(name, root_path)
    try:
        returncode = handle.run(_run_command, command)
    except AlreadyRunningError as exc:
        _log.error("already running", holder_pid=exc.pid, detail=str(exc))
        raise typer.Exit(1) from exc
    except LockIOError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(2) from exc
    except FileNotFoundError as exc:
        typer.echo(f"Error: command not found: {command[0]}", err=True)
        raise typer.Exit(127) from exc

    if returncode:
        raise typer.Exit(returncode)


# ---------------------------------------------------------------------------
# config subcommands
# ---------------------------------------------------------------------------

_config_app = typer.Typer(help="Inspect resolved configuration.")
app.add_typer(_config_app, name="config")


@_config_app.command("show")
def config_show() -> None:
    """Print the fully-resolved configuration and exit.

    Shows which config file was loaded and the final value of every setting
    after SINGLETON_* environment overrides are applied.
    """
    from singleton_process.config import _config_file, get_settings

    settings = get_settings()

    typer.echo(f"\n  config : {_config_file()}\n")

    for section_name, section in settings.model_dump().items():
        typer.echo(f"  [{section_name}]")
        width = max(len(k) for k in section)
        for key, val in section.items():
            typer.echo(f"  {key.ljust(width)} = {val}")
        typer.echo()
