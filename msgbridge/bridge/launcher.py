"""Lifecycle of the host app that carries the injected helper peer."""

from __future__ import annotations

import asyncio
import os
import subprocess
import time
from pathlib import Path
from typing import Any, Awaitable, Callable

from loguru import logger

from msgbridge.bridge.mailbox import MailboxPaths, MailboxTransport
from msgbridge.utils.exceptions import PeerProtocolError, PeerTimeoutError, PeerUnavailableError


def pid_alive(pid: int) -> bool:
    """Whether a process with this pid exists (signal 0 check)."""
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    return True


class PeerLauncher:
    """Starts, checks and stops the helper peer."""

    def __init__(
        self,
        paths: MailboxPaths,
        transport: MailboxTransport,
        *,
        helper_path: Path | None,
        host_app_path: str,
        host_process_name: str = "Messages",
        restart_settle: float = 1.0,
        ready_poll_interval: float = 0.5,
        ping_timeout: float = 2.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
        is_pid_alive: Callable[[int], bool] = pid_alive,
    ):
        self.paths = paths
        self.transport = transport
        self.helper_path = helper_path
        self.host_app_path = host_app_path
        self.host_process_name = host_process_name
        self.restart_settle = restart_settle
        self.ready_poll_interval = ready_poll_interval
        self.ping_timeout = ping_timeout
        self._sleep = sleep
        self._clock = clock
        self._is_pid_alive = is_pid_alive
        self._start_lock = asyncio.Lock()

    @classmethod
    def from_config(cls, config: Any, transport: MailboxTransport) -> "PeerLauncher":
        return cls(
            transport.paths,
            transport,
            helper_path=config.resolve_helper_path(),
            host_app_path=config.peer.host_app_path,
            host_process_name=config.peer.host_process_name,
            restart_settle=config.peer.restart_settle_seconds,
            ping_timeout=config.mailbox.ping_timeout_seconds,
        )

    def marker_present(self) -> bool:
        """Readiness marker exists and, when it records a pid, that pid is alive."""
        if not self.paths.ready.exists():
            return False
        pid = self.paths.read_marker_pid()
        return pid is None or self._is_pid_alive(pid)

    async def is_ready(self) -> bool:
        if not self.marker_present():
            return False
        try:
            response = await self.transport.request("ping", timeout=self.ping_timeout)
        except (PeerTimeoutError, PeerProtocolError, OSError) as exc:
            logger.debug("Peer ping failed: {}", exc)
            return False
        return response.success

    async def ensure_ready(self, timeout: float = 15.0) -> None:
        """Start the peer unless it already answers pings."""
        async with self._start_lock:
            if await self.is_ready():
                return
            await self._restart(timeout)

    async def restart(self, timeout: float = 15.0) -> None:
        """Relaunch the host with the helper even when the peer still answers."""
        async with self._start_lock:
            await self._restart(timeout)

    async def _restart(self, timeout: float) -> None:
        helper = self.helper_path
        if helper is None or not helper.exists():
            raise PeerUnavailableError(
                "helper library not found; build it or set peer.helperPaths in the config"
            )
        logger.info("Starting {} with helper {}", self.host_process_name, helper)
        await self._kill_host()
        await self._sleep(self.restart_settle)
        self.paths.remove_all()
        await self._launch(helper.resolve())
        await self._wait_for_marker(timeout)
        logger.info("Peer ready")

    async def terminate(self) -> None:
        await self._kill_host()
        self.paths.remove_all()

    async def _kill_host(self) -> None:
        try:
            await asyncio.to_thread(
                subprocess.run,
                ["killall", self.host_process_name],
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                check=False,
            )
        except FileNotFoundError:
            logger.debug("killall not available; skipping host shutdown")

    async def _launch(self, helper: Path) -> None:
        env = os.environ.copy()
        env["DYLD_INSERT_LIBRARIES"] = str(helper)
        try:
            await asyncio.to_thread(
                subprocess.Popen,
                [self.host_app_path],
                env=env,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                start_new_session=True,
            )
        except OSError as exc:
            raise PeerUnavailableError(f"failed to launch {self.host_app_path}: {exc}") from exc

    async def _wait_for_marker(self, timeout: float) -> None:
        deadline = self._clock() + timeout
        while self._clock() < deadline:
            if self.paths.ready.exists():
                # marker appears before the helper finishes initializing
                await self._sleep(self.ready_poll_interval)
                return
            await self._sleep(self.ready_poll_interval)
        raise PeerUnavailableError(
            f"timed out after {timeout}s waiting for {self.host_process_name} to initialize"
        )
