"""Watchdog that relaunches the helper peer when imagent reports sync failures.

The watchdog runs as a LaunchAgent (`msgbridge watchdog --run`). It tails the
unified log for the imagent process and, on a matching error line, restarts
Messages with the helper injected, at most once per cooldown window.
"""

from __future__ import annotations

import asyncio
import plistlib
import re
import subprocess
import sys
import time
from pathlib import Path
from typing import Any, AsyncIterator, Callable

from loguru import logger

from msgbridge.config.schema import WatchdogConfig
from msgbridge.utils.exceptions import MsgBridgeError

RunCommand = Callable[[list[str]], subprocess.CompletedProcess]

INCIDENT_MARKERS = ("RESTARTED:", "ERROR DETECTED:")


def _run_command(args: list[str]) -> subprocess.CompletedProcess:
    return subprocess.run(args, capture_output=True, text=True, check=False)


def compile_patterns(patterns: list[str]) -> list[re.Pattern[str]]:
    return [re.compile(p, re.IGNORECASE) for p in patterns]


def find_agent_pid(launchctl_list: str, label: str) -> int | None:
    """Pid column of `launchctl list` for the label, when the agent is running."""
    for line in launchctl_list.splitlines():
        parts = line.split("\t")
        if len(parts) < 3 or parts[2].strip() != label:
            continue
        try:
            pid = int(parts[0])
        except ValueError:
            return None
        return pid if pid > 0 else None
    return None


class WatchdogAgent:
    """Install, inspect and remove the watchdog LaunchAgent."""

    def __init__(
        self,
        config: WatchdogConfig,
        *,
        log_path: Path,
        program: list[str] | None = None,
        run_command: RunCommand = _run_command,
    ):
        self.label = config.label
        self.plist_path = Path(config.launch_agents_dir).expanduser() / f"{config.label}.plist"
        self.log_path = log_path
        self.program = program or [sys.executable, "-m", "msgbridge", "watchdog", "--run"]
        self._run = run_command

    def is_installed(self) -> bool:
        return self.plist_path.exists()

    def running_pid(self) -> int | None:
        try:
            proc = self._run(["launchctl", "list"])
        except FileNotFoundError:
            return None
        return find_agent_pid(proc.stdout or "", self.label)

    def last_incident(self) -> str | None:
        if not self.log_path.exists():
            return None
        lines = self.log_path.read_text(encoding="utf-8", errors="replace").splitlines()
        for line in reversed(lines):
            if any(marker in line for marker in INCIDENT_MARKERS):
                return line.strip()
        return None

    def status(self) -> dict[str, Any]:
        pid = self.running_pid()
        payload: dict[str, Any] = {
            "installed": self.is_installed(),
            "running": pid is not None,
            "launch_agent_path": str(self.plist_path),
            "log_path": str(self.log_path),
        }
        if pid is not None:
            payload["pid"] = pid
        incident = self.last_incident()
        if incident:
            payload["last_incident"] = incident
        return payload

    def plist(self) -> dict[str, Any]:
        return {
            "Label": self.label,
            "ProgramArguments": list(self.program),
            "RunAtLoad": True,
            "KeepAlive": True,
            "StandardOutPath": str(self.log_path.with_suffix(".out.log")),
            "StandardErrorPath": str(self.log_path.with_suffix(".out.log")),
            "ThrottleInterval": 10,
        }

    def install(self) -> None:
        self.plist_path.parent.mkdir(parents=True, exist_ok=True)
        self.log_path.parent.mkdir(parents=True, exist_ok=True)
        with self.plist_path.open("wb") as f:
            plistlib.dump(self.plist(), f, sort_keys=False)
        logger.info("Installed LaunchAgent {}", self.plist_path)

    def start(self) -> None:
        self._run(["launchctl", "load", str(self.plist_path)])

    def stop(self) -> None:
        self._run(["launchctl", "unload", str(self.plist_path)])

    def uninstall(self) -> None:
        if self.running_pid() is not None:
            self.stop()
        if self.plist_path.exists():
            self.plist_path.unlink()
            logger.info("Removed LaunchAgent {}", self.plist_path)


async def imagent_log_lines(predicate: str) -> AsyncIterator[str]:
    """Lines of `log stream` for the predicate until the stream ends."""
    proc = await asyncio.create_subprocess_exec(
        "/usr/bin/log",
        "stream",
        "--predicate",
        predicate,
        "--style",
        "compact",
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.DEVNULL,
    )
    assert proc.stdout is not None
    try:
        while True:
            raw = await proc.stdout.readline()
            if not raw:
                break
            yield raw.decode("utf-8", errors="replace")
    finally:
        if proc.returncode is None:
            proc.kill()
            await proc.wait()


class WatchdogMonitor:
    """Restarts the peer on matching log lines, honouring a cooldown."""

    def __init__(
        self,
        launcher: Any,
        config: WatchdogConfig,
        *,
        ready_timeout: float = 15.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.launcher = launcher
        self.patterns = compile_patterns(config.error_patterns)
        self.cooldown = config.cooldown_seconds
        self.predicate = config.log_predicate
        self.ready_timeout = ready_timeout
        self._clock = clock
        self._last_restart: float | None = None
        self.restarts = 0

    def matches(self, line: str) -> bool:
        return any(pattern.search(line) for pattern in self.patterns)

    async def handle_line(self, line: str) -> bool:
        """Process one log line; returns True when a restart was attempted."""
        if not self.matches(line):
            return False
        logger.warning("ERROR DETECTED: {}", line.strip())
        now = self._clock()
        if self._last_restart is not None and now - self._last_restart < self.cooldown:
            logger.info("SKIP: cooldown active ({}s since last restart)", int(now - self._last_restart))
            return False
        logger.warning("RESTARTING: relaunching Messages with the helper")
        self._last_restart = now
        self.restarts += 1
        try:
            await self.launcher.restart(self.ready_timeout)
        except MsgBridgeError as e:
            logger.error("Relaunch failed: {}", e.message)
            return True
        logger.info("RESTARTED: Messages relaunched with the helper")
        return True

    async def run(self, lines: AsyncIterator[str] | None = None) -> None:
        logger.info("Watchdog starting; patterns: {}", ", ".join(p.pattern for p in self.patterns))
        source = lines if lines is not None else imagent_log_lines(self.predicate)
        async for line in source:
            await self.handle_line(line)
        logger.info("Watchdog exiting (log stream ended)")
