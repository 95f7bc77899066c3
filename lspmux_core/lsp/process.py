"""Language server subprocess lifecycle.

The ProcessSupervisor owns one subprocess together with the scratch directory
allocated for it. Both are acquired in ``start`` and released together in
``stop``, whichever way the process ends.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import shutil
import tempfile
import uuid
from collections.abc import Awaitable, Callable, Sequence
from pathlib import Path

from lspmux_core.lsp.exceptions import SessionClosedError, SpawnFailedError, StartupTimeoutError

logger = logging.getLogger(__name__)

READ_CHUNK_SIZE = 65536


class ProcessSupervisor:
    """Spawns the language server and pumps its standard streams.

    Stdout chunks are handed to ``on_data`` as they arrive. When the process
    terminates without ``stop`` having been called, ``on_exit`` is awaited
    with the return code.
    """

    def __init__(
        self,
        on_data: Callable[[bytes], None],
        on_exit: Callable[[int | None], Awaitable[None]] | None = None,
        spawn_timeout: float = 5.0,
        scratch_prefix: str = "typescript-lsp-",
    ):
        self._on_data = on_data
        self._on_exit = on_exit
        self._spawn_timeout = spawn_timeout
        self._scratch_prefix = scratch_prefix
        self._process: asyncio.subprocess.Process | None = None
        self._scratch_dir: Path | None = None
        self._tasks: list[asyncio.Task[None]] = []
        self._stopping = False

    @property
    def pid(self) -> int | None:
        return self._process.pid if self._process else None

    @property
    def returncode(self) -> int | None:
        return self._process.returncode if self._process else None

    @property
    def scratch_dir(self) -> Path | None:
        """Temporary directory allocated for the server's own use."""
        return self._scratch_dir

    @property
    def is_running(self) -> bool:
        return self._process is not None and self._process.returncode is None

    async def start(
        self,
        command: str,
        args: Sequence[str],
        cwd: str | Path,
        env: dict[str, str] | None = None,
    ) -> None:
        """Spawn the subprocess.

        Args:
            command: Executable to run
            args: Arguments passed after the executable
            cwd: Working directory (the workspace root)
            env: Extra environment variables layered over the inherited ones

        Raises:
            SpawnFailedError: If the process could not be created
            StartupTimeoutError: If spawning did not finish within the timeout
            SessionClosedError: If stop() was called before the spawn completed
        """
        if self._process is not None:
            raise SpawnFailedError(f"{command} already started")

        self._scratch_dir = Path(tempfile.gettempdir()) / f"{self._scratch_prefix}{uuid.uuid4()}"
        self._scratch_dir.mkdir(parents=True, exist_ok=True)

        full_env = {**os.environ, **(env or {})}
        try:
            process = await asyncio.wait_for(
                asyncio.create_subprocess_exec(
                    command,
                    *args,
                    stdin=asyncio.subprocess.PIPE,
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.PIPE,
                    cwd=str(cwd),
                    env=full_env,
                ),
                timeout=self._spawn_timeout,
            )
        except TimeoutError as e:
            self._remove_scratch_dir()
            raise StartupTimeoutError(f"{command} startup timeout") from e
        except OSError as e:
            self._remove_scratch_dir()
            raise SpawnFailedError(f"Failed to start {command}: {e}", cause=e) from e

        # stop() ran while the spawn was in flight and had nothing to kill
        if self._stopping:
            with contextlib.suppress(ProcessLookupError):
                process.kill()
            await process.wait()
            self._remove_scratch_dir()
            raise SessionClosedError(f"{command} was stopped during startup")

        self._process = process

        self._tasks = [
            asyncio.create_task(self._pump_stdout(), name=f"lsp-stdout-{self._process.pid}"),
            asyncio.create_task(self._drain_stderr(), name=f"lsp-stderr-{self._process.pid}"),
            asyncio.create_task(self._watch(), name=f"lsp-watch-{self._process.pid}"),
        ]
        logger.debug("Spawned %s (pid %s) in %s", command, self._process.pid, cwd)

    def write(self, data: bytes) -> None:
        """Queue framed bytes on the server's stdin, preserving call order."""
        if not self.is_running or self._process is None or self._process.stdin is None:
            raise SessionClosedError("Language server not running")
        if self._process.stdin.is_closing():
            raise SessionClosedError("Language server stdin is closed")
        self._process.stdin.write(data)

    async def drain(self) -> None:
        """Wait until queued stdin data has been flushed."""
        if self._process is not None and self._process.stdin is not None:
            with contextlib.suppress(ConnectionError):
                await self._process.stdin.drain()

    async def stop(self, timeout: float = 2.0) -> None:
        """Kill the subprocess and release the scratch directory.

        Always runs to completion; errors along the way are logged.
        """
        self._stopping = True
        process = self._process

        if process is not None:
            if process.stdin is not None and not process.stdin.is_closing():
                with contextlib.suppress(Exception):
                    process.stdin.close()
            if process.returncode is None:
                with contextlib.suppress(ProcessLookupError):
                    process.kill()
            try:
                await asyncio.wait_for(process.wait(), timeout=timeout)
            except TimeoutError:
                logger.warning("Language server (pid %s) did not exit after kill", process.pid)

        current = asyncio.current_task()
        for task in self._tasks:
            if task is not current and not task.done():
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task
        self._tasks = []

        self._remove_scratch_dir()

    async def _pump_stdout(self) -> None:
        assert self._process is not None and self._process.stdout is not None
        stdout = self._process.stdout
        while True:
            chunk = await stdout.read(READ_CHUNK_SIZE)
            if not chunk:
                return
            self._on_data(chunk)

    async def _drain_stderr(self) -> None:
        assert self._process is not None and self._process.stderr is not None
        stderr = self._process.stderr
        while True:
            line = await stderr.readline()
            if not line:
                return
            logger.debug("lsp stderr: %s", line.decode("utf-8", errors="replace").rstrip())

    async def _watch(self) -> None:
        assert self._process is not None
        returncode = await self._process.wait()
        if self._stopping or self._on_exit is None:
            return
        # Let responses written just before exit reach on_data first
        pump = self._tasks[0] if self._tasks else None
        if pump is not None and not pump.done():
            await asyncio.wait({pump}, timeout=1.0)
        if self._stopping:
            return
        logger.warning("Language server (pid %s) exited with code %s", self._process.pid, returncode)
        await self._on_exit(returncode)

    def _remove_scratch_dir(self) -> None:
        if self._scratch_dir is None:
            return
        try:
            shutil.rmtree(self._scratch_dir)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning("Failed to remove scratch directory %s: %s", self._scratch_dir, e)
        self._scratch_dir = None


async def check_server_available(command: str, timeout: float = 3.0) -> bool:
    """Check whether a language server binary can be launched.

    Runs ``<command> --help`` and treats a clean exit, or usage text on
    stderr, as available.

    Args:
        command: Executable name or path
        timeout: Seconds to wait before giving up

    Returns:
        True if the server appears usable
    """
    try:
        process = await asyncio.create_subprocess_exec(
            command,
            "--help",
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError:
        return False

    try:
        _, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
    except TimeoutError:
        with contextlib.suppress(ProcessLookupError):
            process.kill()
        await process.wait()
        return False

    return process.returncode == 0 or b"Usage:" in (stderr or b"")
