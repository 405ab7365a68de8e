"""CLI entry point for termhub."""

from __future__ import annotations

import asyncio
import atexit
import json
import logging
import os
import shutil
import signal
import sys
import uuid
from typing import TYPE_CHECKING

import typer
from rich.console import Console
from rich.table import Table

from termhub.config import TermhubConfig

if TYPE_CHECKING:
    from termhub.executor import CommandExecutor
    from termhub.pty.manager import PTYManager

app = typer.Typer(
    name="termhub",
    help="Live PTY sessions and one-shot command execution with history.",
    no_args_is_help=True,
)

console = Console()


def setup_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def _build_executor(config: TermhubConfig) -> CommandExecutor:
    from termhub.executor import CommandExecutor
    from termhub.history import JsonHistoryStore
    from termhub.telemetry import FileTelemetrySource

    return CommandExecutor(
        config=config.executor,
        telemetry=FileTelemetrySource(config.telemetry_path),
        history=JsonHistoryStore(config.history_path),
    )


@app.command("exec")
def exec_command(
    command: str = typer.Argument(help="Shell command to run."),
    cwd: str | None = typer.Option(
        None, "--cwd", "-C", help="Working directory relative to the root dir."
    ),
    as_json: bool = typer.Option(False, "--json", help="Print the result as JSON."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
    config_file: str | None = typer.Option(None, "--config", "-c", help="Config file path."),
) -> None:
    """Run one command to completion (or timeout) and record it in history."""
    from termhub.errors import HistoryPersistError, TermhubError
    from termhub.executor import CommandRequest

    setup_logging(verbose)
    config = TermhubConfig.load(config_file)
    executor = _build_executor(config)

    outcome = asyncio.run(executor.run_request(CommandRequest(command=command, cwd=cwd)))

    try:
        outcome.raise_for_error()
    except HistoryPersistError as e:
        typer.echo(f"Warning: {e.message}", err=True)
    except TermhubError as e:
        typer.echo(f"Error [{e.code}]: {e.message}", err=True)
        raise typer.Exit(2)

    entry = outcome.entry
    assert entry is not None
    if as_json:
        typer.echo(json.dumps(entry.to_wire(), indent=2, ensure_ascii=False))
    else:
        if entry.stdout:
            typer.echo(entry.stdout, nl=not entry.stdout.endswith("\n"))
        if entry.stderr:
            typer.echo(entry.stderr, err=True, nl=not entry.stderr.endswith("\n"))
        if entry.error:
            typer.echo(f"[{entry.error}]", err=True)

    if entry.has_real_exit_code:
        raise typer.Exit(entry.exit_code)
    raise typer.Exit(1)


@app.command()
def history(
    limit: int = typer.Option(20, "--limit", "-n", help="Show the newest N entries."),
    clear: bool = typer.Option(False, "--clear", help="Delete all history entries."),
    as_json: bool = typer.Option(False, "--json", help="Print entries as JSON."),
    config_file: str | None = typer.Option(None, "--config", "-c", help="Config file path."),
) -> None:
    """Show or clear the command history log."""
    from termhub.errors import TermhubError
    from termhub.executor.truncation import strip_ansi
    from termhub.history import JsonHistoryStore
    from termhub.telemetry import split_header

    setup_logging()
    config = TermhubConfig.load(config_file)
    store = JsonHistoryStore(config.history_path)

    if clear:
        asyncio.run(store.clear())
        typer.echo("History cleared.")
        return

    try:
        entries = asyncio.run(store.read())
    except TermhubError as e:
        typer.echo(f"Error [{e.code}]: {e.message}", err=True)
        raise typer.Exit(1)
    shown = entries[-limit:] if limit > 0 else entries

    if as_json:
        typer.echo(json.dumps(shown, indent=2, ensure_ascii=False))
        return

    if not shown:
        typer.echo("No history.")
        return

    table = Table(title=f"Command history ({len(shown)} of {len(entries)})")
    table.add_column("Ran at", style="dim")
    table.add_column("Cwd")
    table.add_column("Command", style="bold")
    table.add_column("Exit", justify="right")
    table.add_column("Time", justify="right")
    table.add_column("Output")

    for e in shown:
        _, body = split_header(e.get("stdout", ""))
        first_line = strip_ansi(body).strip().split("\n")[0][:60]
        exit_code = e.get("exitCode")
        if e.get("timedOut"):
            exit_label = "[red]timeout[/red]"
        elif exit_code == 0:
            exit_label = "[green]0[/green]"
        else:
            exit_label = f"[red]{exit_code}[/red]"
        table.add_row(
            str(e.get("ranAt", ""))[:19],
            str(e.get("cwd", ".")),
            str(e.get("command", "")),
            exit_label,
            f"{e.get('durationMs', 0)}ms",
            first_line,
        )
    console.print(table)


@app.command()
def status(
    config_file: str | None = typer.Option(None, "--config", "-c", help="Config file path."),
) -> None:
    """Show the current context telemetry status."""
    from termhub.telemetry import FileTelemetrySource, context_status, render_header

    setup_logging()
    config = TermhubConfig.load(config_file)
    snapshot = FileTelemetrySource(config.telemetry_path).snapshot()
    typer.echo(render_header(snapshot))
    payload = context_status(snapshot)
    if payload["warning"]:
        typer.echo(payload["warning"], err=True)


@app.command()
def shell(
    cwd: str | None = typer.Option(None, "--cwd", "-C", help="Starting directory."),
    cols: int | None = typer.Option(None, "--cols", help="Terminal width."),
    rows: int | None = typer.Option(None, "--rows", help="Terminal height."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
    config_file: str | None = typer.Option(None, "--config", "-c", help="Config file path."),
) -> None:
    """Open an interactive PTY session attached to this terminal."""
    from termhub.errors import TermhubError
    from termhub.pty.manager import PTYManager

    setup_logging(verbose)
    config = TermhubConfig.load(config_file)
    manager = PTYManager(config.terminal)
    atexit.register(manager.cleanup_sync)

    try:
        code = asyncio.run(_run_shell(manager, cwd, cols, rows))
    except TermhubError as e:
        typer.echo(f"Error: {e.message}", err=True)
        raise typer.Exit(2)
    raise typer.Exit(code)


async def _run_shell(
    manager: PTYManager, cwd: str | None, cols: int | None, rows: int | None
) -> int:
    """Bridge the local terminal to one PTY session until it exits."""
    from termhub.errors import SessionNotFound
    from termhub.pty.sink import StreamSink

    loop = asyncio.get_running_loop()
    size = shutil.get_terminal_size()
    sink = StreamSink(sys.stdout)
    session_id = f"term-{uuid.uuid4().hex[:8]}"

    await manager.create(
        session_id,
        sink,
        cwd=cwd,
        cols=cols or size.columns,
        rows=rows or size.lines,
    )

    stdin_fd = sys.stdin.fileno()
    saved_attrs = None
    if os.isatty(stdin_fd):
        import termios
        import tty

        saved_attrs = termios.tcgetattr(stdin_fd)
        tty.setraw(stdin_fd)

    def _on_stdin() -> None:
        data = os.read(stdin_fd, 4096)
        if not data:
            loop.remove_reader(stdin_fd)
            return
        try:
            manager.write(session_id, data)
        except SessionNotFound:
            loop.remove_reader(stdin_fd)
        except TimeoutError:
            pass

    def _on_winch() -> None:
        if cols is None and rows is None:
            new_size = shutil.get_terminal_size()
            manager.resize(session_id, new_size.columns, new_size.lines)

    def _on_terminate() -> None:
        asyncio.ensure_future(manager.cleanup())

    loop.add_reader(stdin_fd, _on_stdin)
    loop.add_signal_handler(signal.SIGWINCH, _on_winch)
    loop.add_signal_handler(signal.SIGTERM, _on_terminate)
    loop.add_signal_handler(signal.SIGHUP, _on_terminate)

    try:
        await sink.exited.wait()
    finally:
        loop.remove_reader(stdin_fd)
        for sig in (signal.SIGWINCH, signal.SIGTERM, signal.SIGHUP):
            loop.remove_signal_handler(sig)
        if saved_attrs is not None:
            import termios

            termios.tcsetattr(stdin_fd, termios.TCSADRAIN, saved_attrs)
        await manager.cleanup()

    info = sink.exit_info or {}
    exit_code = info.get("exitCode")
    return exit_code if isinstance(exit_code, int) else 1


def main() -> None:
    app()


if __name__ == "__main__":
    main()
