"""SSH session manager for Windows nodes.

Uses the scrapli GenericDriver (paramiko transport) run inside a thread-pool
executor so the FastAPI event loop is never blocked.  One session is kept per
node address; commands against the same node are serialised by a per-address
lock, different nodes may run concurrently.
"""

from __future__ import annotations

import asyncio
from concurrent.futures import ThreadPoolExecutor
from typing import Optional

from scrapli.driver import GenericDriver
from scrapli.exceptions import ScrapliException
from scrapli.response import Response

from proxyverify.config import Settings, settings
from proxyverify.errors import TransportError
from proxyverify.models.commands import CommandResult
from proxyverify.utils.logging import get_logger

log = get_logger(__name__)

# cmd.exe ("C:\Users\Administrator>") or PowerShell ("PS C:\Users\Administrator>")
_PROMPT_PATTERN = r"^(PS )?\S{0,64}[>#$]\s*$"


def powershell_command(script: str) -> str:
    """Wrap *script* so it runs under PowerShell from the default SSH shell."""
    escaped = script.replace('"', '\\"')
    return f'powershell.exe -NonInteractive -Command "{escaped}"'


class SSHSessionManager:
    """Keeps one SSH session per node address."""

    def __init__(self, cfg: Settings | None = None, max_workers: int = 8) -> None:
        self._cfg = cfg or settings
        self._drivers: dict[str, GenericDriver] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="ssh",
        )

    # ── connection lifecycle ──────────────────────────────────────────

    def _build_driver(self, address: str) -> GenericDriver:
        auth_kwargs: dict = dict(
            host=address,
            port=self._cfg.node_ssh_port,
            auth_username=self._cfg.node_ssh_username,
            auth_password=self._cfg.node_ssh_password,
            auth_strict_key=False,
            transport="paramiko",
            comms_prompt_pattern=_PROMPT_PATTERN,
            timeout_socket=15,
            timeout_transport=15,
            timeout_ops=self._cfg.node_ssh_timeout_seconds,
        )
        if self._cfg.node_ssh_key_path:
            auth_kwargs["auth_private_key"] = self._cfg.node_ssh_key_path
        return GenericDriver(**auth_kwargs)

    def _open_sync(self, address: str) -> GenericDriver:
        log.info("ssh.connecting", address=address)
        driver = self._build_driver(address)
        driver.open()
        log.info("ssh.connected", address=address)
        return driver

    def _close_sync(self, address: str) -> None:
        driver = self._drivers.pop(address, None)
        if driver is None:
            return
        try:
            driver.close()
        except ScrapliException as exc:
            log.warning("ssh.close_failed", address=address, error=str(exc))
        log.info("ssh.closed", address=address)

    def _lock_for(self, address: str) -> asyncio.Lock:
        lock = self._locks.get(address)
        if lock is None:
            lock = self._locks[address] = asyncio.Lock()
        return lock

    async def _ensure(self, address: str) -> GenericDriver:
        driver = self._drivers.get(address)
        if driver is not None:
            if driver.isalive():
                return driver
            await self._run(self._close_sync, address)
        try:
            driver = await self._run(self._open_sync, address)
        except (ScrapliException, OSError) as exc:
            raise TransportError(f"unable to connect to {address}: {exc}") from exc
        self._drivers[address] = driver
        return driver

    # ── helpers ───────────────────────────────────────────────────────

    async def _run(self, fn, *args):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, fn, *args)

    # ── public ────────────────────────────────────────────────────────

    async def send_command(self, address: str, command: str) -> CommandResult:
        """Run *command* on the node and return its captured output.

        Raises ``TransportError`` if the session cannot be used or the
        command is reported as failed.
        """
        async with self._lock_for(address):
            driver = await self._ensure(address)
            try:
                resp: Response = await self._run(
                    _send_command_wrapper, driver, command,
                    self._cfg.node_ssh_timeout_seconds,
                )
            except (ScrapliException, OSError) as exc:
                await self._run(self._close_sync, address)
                raise TransportError(
                    f"command failed on {address}: {exc}",
                ) from exc

        result = CommandResult(
            address=address,
            command=command,
            output=resp.result,
            failed=resp.failed,
            elapsed_time=resp.elapsed_time,
        )
        if result.failed:
            raise TransportError(f"command reported failure on {address}: {command}")
        return result

    async def run_powershell(self, address: str, script: str) -> CommandResult:
        return await self.send_command(address, powershell_command(script))

    async def close(self) -> None:
        for address in list(self._drivers):
            async with self._lock_for(address):
                await self._run(self._close_sync, address)

    def is_connected(self, address: str) -> bool:
        driver: Optional[GenericDriver] = self._drivers.get(address)
        if driver is None:
            return False
        try:
            return driver.isalive()
        except ScrapliException:
            return False


# ── module-level sync wrappers (executor-friendly) ────────────────────────

def _send_command_wrapper(
    driver: GenericDriver, command: str, timeout_ops: float,
) -> Response:
    return driver.send_command(command, timeout_ops=timeout_ops)


# ── Singleton instance ────────────────────────────────────────────────────

ssh_manager = SSHSessionManager()
