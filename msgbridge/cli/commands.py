"""CLI commands for msgbridge.

`rpc` serves JSON-RPC on stdio and `watch` streams messages to the terminal;
the remaining commands drive the helper peer directly.
"""

import asyncio
import subprocess
import time
from pathlib import Path
from typing import Any

import typer
from loguru import logger
from rich.console import Console

from msgbridge import __logo__, __version__
from msgbridge.cli.shared.logging_utils import configure_stderr_logging, ensure_rotating_log_file, log_dir
from msgbridge.utils.exceptions import MsgBridgeError

app = typer.Typer(
    name="msgbridge",
    help=f"{__logo__} msgbridge - JSON-RPC bridge for Messages",
    no_args_is_help=True,
)

console = Console()


def version_callback(value: bool):
    if value:
        console.print(f"{__logo__} msgbridge v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None, "--version", "-v", callback=version_callback, is_eager=True
    ),
):
    """msgbridge - JSON-RPC bridge for Messages."""
    pass


def _load(config_path: Path | None, db: str | None = None):
    from msgbridge.config.loader import load_config

    try:
        config = load_config(config_path)
    except ValueError as e:
        console.print(f"[red]✗[/red] {e}")
        raise typer.Exit(1) from e
    if db:
        config.store.db_path = db
    return config


def _print_json(payload: dict[str, Any]) -> None:
    console.print_json(data=payload)


def _print_line(line: str) -> None:
    console.print(line, markup=False, highlight=False, emoji=False, soft_wrap=True)


def _make_bridge(config, helper: str | None = None):
    from msgbridge.bridge.client import PeerBridge

    bridge = PeerBridge.from_config(config)
    if helper:
        bridge.launcher.helper_path = Path(helper).expanduser()
    return bridge


def _fail(as_json: bool, message: str, **extra: Any) -> None:
    if as_json:
        _print_json({"success": False, "error": message, **extra})
    else:
        console.print(f"[red]✗[/red] {message}")
    raise typer.Exit(1)


# ============================================================================
# JSON-RPC server
# ============================================================================


@app.command()
def rpc(
    db: str = typer.Option(None, "--db", help="Path to chat.db (defaults to ~/Library/Messages/chat.db)"),
    no_auto_read: bool = typer.Option(False, "--no-auto-read", help="Disable read receipts for incoming watched messages"),
    no_auto_typing: bool = typer.Option(False, "--no-auto-typing", help="Disable typing indicator before sends"),
    verbose: bool = typer.Option(False, "--verbose", help="Debug logging on stderr"),
    config_path: Path = typer.Option(None, "--config", "-c", help="Config file path"),
):
    """Serve JSON-RPC 2.0 over stdin/stdout (one JSON object per line)."""
    from msgbridge.api.server import RpcServer

    config = _load(config_path, db)
    level = "DEBUG" if verbose else config.logging.level
    configure_stderr_logging(level)
    if config.logging.file_enabled:
        ensure_rotating_log_file("rpc", level=config.logging.file_level)

    server = RpcServer.from_config(
        config,
        auto_read=False if no_auto_read else None,
        auto_typing=False if no_auto_typing else None,
    )
    try:
        asyncio.run(server.run())
    except KeyboardInterrupt:
        logger.info("Interrupted")


@app.command()
def watch(
    chat_id: int = typer.Option(None, "--chat-id", help="Limit to chat rowid"),
    since_rowid: int = typer.Option(None, "--since-rowid", help="Start watching after this rowid"),
    debounce: str = typer.Option("250ms", "--debounce", help="Debounce interval for filesystem events (e.g. 250ms)"),
    participants: list[str] | None = typer.Option(
        None, "--participants", help="Filter by participant handle (repeatable or comma-separated)"
    ),
    start: str = typer.Option(None, "--start", help="ISO8601 start (inclusive)"),
    end: str = typer.Option(None, "--end", help="ISO8601 end (exclusive)"),
    attachments: bool = typer.Option(False, "--attachments", help="Include attachment metadata"),
    include_typing: bool = typer.Option(False, "--typing", help="Include typing events (requires the helper peer)"),
    as_json: bool = typer.Option(False, "--json", help="Output JSON lines"),
    db: str = typer.Option(None, "--db", help="Path to chat.db (defaults to ~/Library/Messages/chat.db)"),
    config_path: Path = typer.Option(None, "--config", "-c", help="Config file path"),
):
    """Stream incoming messages."""
    from msgbridge.cli.services.watch_service import WatchService
    from msgbridge.storage.chat_store import ChatStore
    from msgbridge.storage.models import MessageFilter
    from msgbridge.storage.watcher import MessageWatcher
    from msgbridge.utils.helpers import parse_duration

    try:
        debounce_seconds = parse_duration(debounce)
    except ValueError:
        debounce_seconds = -1.0
    if debounce_seconds < 0:
        _fail(as_json, f"invalid --debounce: {debounce}")
    handles = [h.strip() for raw in participants or [] for h in raw.split(",") if h.strip()]
    try:
        message_filter = MessageFilter.from_iso(handles, start, end)
    except MsgBridgeError as e:
        _fail(as_json, e.message)

    config = _load(config_path, db)
    configure_stderr_logging(config.logging.level)
    store = ChatStore(config.db_path)
    watcher = MessageWatcher(
        store,
        debounce_ms=int(debounce_seconds * 1000),
        batch_limit=config.store.watch_batch_limit,
        fallback_poll_ms=config.store.watch_fallback_poll_ms,
    )
    service = WatchService(
        store=store,
        watcher=watcher,
        bridge=_make_bridge(config) if include_typing else None,
        write=_print_line,
        as_json=as_json,
        show_attachments=attachments,
        typing_poll_interval=config.rpc.typing_poll_interval_seconds,
    )
    try:
        asyncio.run(
            service.run(
                chat_id=chat_id,
                since_rowid=since_rowid,
                message_filter=message_filter,
                include_typing=include_typing,
            )
        )
    except KeyboardInterrupt:
        logger.info("Interrupted")
    except MsgBridgeError as e:
        _fail(as_json, e.message)


# ============================================================================
# Peer commands
# ============================================================================


@app.command()
def status(
    as_json: bool = typer.Option(False, "--json", help="Output machine-readable JSON"),
    config_path: Path = typer.Option(None, "--config", "-c", help="Config file path"),
):
    """Show helper availability and readiness."""
    config = _load(config_path)
    configure_stderr_logging(config.logging.level)
    bridge = _make_bridge(config)
    helper = bridge.launcher.helper_path
    ready = asyncio.run(bridge.launcher.is_ready()) if bridge.is_available else False
    payload = {
        "available": bridge.is_available,
        "ready": ready,
        "helper": str(helper) if helper else None,
        "container": str(config.container_path),
        "db": str(config.db_path),
        "capabilities": bridge.capabilities,
    }
    if as_json:
        _print_json(payload)
        return
    console.print(f"{__logo__} msgbridge Status\n")
    console.print(f"Database: {config.db_path} {'[green]✓[/green]' if config.db_path.exists() else '[red]✗[/red]'}")
    console.print(f"Helper: {helper or '[dim]not found[/dim]'} {'[green]✓[/green]' if helper else '[red]✗[/red]'}")
    console.print(f"Peer ready: {'[green]yes[/green]' if ready else '[yellow]no[/yellow]'}")
    if not bridge.is_available:
        console.print("\n[dim]Typing, read receipts and reactions need the helper library injected into Messages.[/dim]")


@app.command()
def launch(
    helper: str = typer.Option(None, "--dylib", help="Custom path to the helper library"),
    kill_only: bool = typer.Option(False, "--kill-only", help="Only terminate Messages, don't relaunch"),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Suppress non-essential output"),
    as_json: bool = typer.Option(False, "--json", help="Output machine-readable JSON"),
    config_path: Path = typer.Option(None, "--config", "-c", help="Config file path"),
):
    """Relaunch Messages with the helper library injected."""
    config = _load(config_path)
    configure_stderr_logging(config.logging.level)
    bridge = _make_bridge(config, helper)
    launcher = bridge.launcher

    if kill_only:
        asyncio.run(launcher.terminate())
        if as_json:
            _print_json({"success": True, "action": "kill", "message": "Messages terminated"})
        elif not quiet:
            console.print("[green]✓[/green] Messages terminated")
        return

    if launcher.helper_path is None or not launcher.helper_path.exists():
        _fail(as_json, "helper library not found; build it or pass --dylib <path>", action="launch")
    if not quiet and not as_json:
        console.print(f"Using helper: {launcher.helper_path}")
        console.print("Launching Messages with injection...")
    try:
        asyncio.run(launcher.restart(config.mailbox.ready_timeout_seconds))
    except MsgBridgeError as e:
        _fail(as_json, e.message, action="launch", dylib=str(launcher.helper_path))
    if as_json:
        _print_json({"success": True, "action": "launch", "dylib": str(launcher.helper_path)})
    elif not quiet:
        console.print("[green]✓[/green] Messages launched with helper injection")


@app.command()
def typing(
    handle: str = typer.Option(..., "--handle", help="Phone number, email, or chat identifier"),
    state: str = typer.Option(..., "--state", help="on or off"),
    as_json: bool = typer.Option(False, "--json", help="Output machine-readable JSON"),
    config_path: Path = typer.Option(None, "--config", "-c", help="Config file path"),
):
    """Show or hide the typing indicator in a conversation."""
    if state not in ("on", "off"):
        _fail(as_json, "state must be 'on' or 'off'")
    config = _load(config_path)
    configure_stderr_logging(config.logging.level)
    bridge = _make_bridge(config)
    if not bridge.is_available:
        _fail(as_json, "helper library not available", handle=handle)
    try:
        asyncio.run(bridge.set_typing(handle, state == "on"))
    except MsgBridgeError as e:
        _fail(as_json, e.message, handle=handle)
    if as_json:
        from msgbridge.utils.helpers import iso_now

        _print_json({"success": True, "handle": handle, "typing": state == "on", "timestamp": iso_now()})
    else:
        console.print(f"[green]✓[/green] Typing indicator {'enabled' if state == 'on' else 'disabled'} for {handle}")


@app.command()
def react(
    handle: str = typer.Option(..., "--handle", help="Phone number, email, or chat identifier"),
    guid: str = typer.Option(..., "--guid", help="GUID of the message to react to"),
    reaction: str = typer.Option(..., "--type", help="love, thumbsup, thumbsdown, haha, emphasis, question"),
    remove: bool = typer.Option(False, "--remove", help="Remove the reaction instead of adding it"),
    as_json: bool = typer.Option(False, "--json", help="Output machine-readable JSON"),
    config_path: Path = typer.Option(None, "--config", "-c", help="Config file path"),
):
    """Send or remove a tapback reaction."""
    from msgbridge.bridge.types import TapbackType

    try:
        tapback = TapbackType.from_string(reaction)
    except MsgBridgeError as e:
        _fail(as_json, e.message)
    config = _load(config_path)
    configure_stderr_logging(config.logging.level)
    bridge = _make_bridge(config)
    if not bridge.is_available:
        _fail(as_json, "helper library not available", handle=handle)
    try:
        asyncio.run(bridge.send_tapback(handle, guid, tapback, remove=remove))
    except MsgBridgeError as e:
        _fail(as_json, e.message, handle=handle, guid=guid)
    action = "removed" if remove else "added"
    if as_json:
        _print_json({"success": True, "handle": handle, "guid": guid, "reaction": tapback.display_name, "action": action})
    else:
        console.print(f"[green]✓[/green] Reaction {action}: {tapback.display_name} on message {guid}")


@app.command()
def read(
    handle: str = typer.Option(..., "--handle", help="Phone number, email, or chat identifier"),
    as_json: bool = typer.Option(False, "--json", help="Output machine-readable JSON"),
    config_path: Path = typer.Option(None, "--config", "-c", help="Config file path"),
):
    """Mark every message in a conversation as read."""
    config = _load(config_path)
    configure_stderr_logging(config.logging.level)
    bridge = _make_bridge(config)
    if not bridge.is_available:
        _fail(as_json, "helper library not available", handle=handle)
    try:
        asyncio.run(bridge.mark_as_read(handle))
    except MsgBridgeError as e:
        _fail(as_json, e.message, handle=handle)
    if as_json:
        _print_json({"success": True, "handle": handle, "marked_as_read": True})
    else:
        console.print(f"[green]✓[/green] Marked messages as read for {handle}")


# ============================================================================
# Watchdog
# ============================================================================


@app.command()
def watchdog(
    status_only: bool = typer.Option(False, "--status", help="Just show status, don't install or start"),
    uninstall: bool = typer.Option(False, "--uninstall", help="Stop and uninstall the watchdog"),
    run_loop: bool = typer.Option(False, "--run", help="Run the watchdog in the foreground (used by the LaunchAgent)"),
    logs: bool = typer.Option(False, "--logs", help="Tail the watchdog log"),
    as_json: bool = typer.Option(False, "--json", help="Output machine-readable JSON"),
    config_path: Path = typer.Option(None, "--config", "-c", help="Config file path"),
):
    """Monitor imagent and relaunch Messages with the helper on sync failures."""
    from msgbridge.cli.services.watchdog_service import WatchdogAgent, WatchdogMonitor

    config = _load(config_path)
    configure_stderr_logging(config.logging.level)
    log_path = log_dir() / "watchdog.log"
    agent = WatchdogAgent(config.watchdog, log_path=log_path)

    if logs:
        if not log_path.exists():
            console.print(f"No log file found at: {log_path}")
            return
        try:
            subprocess.run(["tail", "-f", str(log_path)], check=False)
        except KeyboardInterrupt:
            pass
        return

    if run_loop:
        ensure_rotating_log_file("watchdog", level="INFO")
        monitor = WatchdogMonitor(
            _make_bridge(config).launcher,
            config.watchdog,
            ready_timeout=config.mailbox.ready_timeout_seconds,
        )
        try:
            asyncio.run(monitor.run())
        except KeyboardInterrupt:
            logger.info("Interrupted")
        return

    if uninstall:
        agent.uninstall()
        if as_json:
            _print_json({"success": True, "action": "uninstalled", "message": "Watchdog uninstalled"})
        else:
            console.print("[green]✓[/green] Watchdog uninstalled")
        return

    if status_only:
        payload = agent.status()
        if as_json:
            _print_json(payload)
            return
        console.print(f"{__logo__} msgbridge Watchdog Status\n")
        console.print(f"LaunchAgent: {'[green]installed[/green]' if payload['installed'] else '[red]not installed[/red]'}")
        running = f"[green]running (pid {payload['pid']})[/green]" if payload["running"] else "[red]not running[/red]"
        console.print(f"Process: {running}")
        console.print(f"\nLaunchAgent path: {payload['launch_agent_path']}")
        console.print(f"Log file: {payload['log_path']}")
        if payload.get("last_incident"):
            console.print(f"\nLast incident: {payload['last_incident']}")
        return

    installed = agent.is_installed()
    pid = agent.running_pid()
    if installed and pid is not None:
        action, message = "none", "Watchdog already running"
    else:
        if not installed:
            agent.install()
        agent.start()
        time.sleep(1.0)
        pid = agent.running_pid()
        action = "started" if installed else "installed_and_started"
        message = "Watchdog is now running" if pid is not None else "Watchdog may have failed to start"
    if as_json:
        _print_json({"success": pid is not None, "action": action, "message": message, "pid": pid or 0})
        if pid is None:
            raise typer.Exit(1)
        return
    if pid is None:
        console.print(f"[yellow]![/yellow] {message}. Check: launchctl list | grep {agent.label}")
        raise typer.Exit(1)
    console.print(f"[green]✓[/green] {message} (pid {pid})")
    console.print("Monitoring imagent for sync failures; Messages is relaunched when errors are detected.")
    console.print(f"Log: {log_path}")


if __name__ == "__main__":
    app()
