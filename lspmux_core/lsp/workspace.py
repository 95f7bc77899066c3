"""Workspace registry: one language server session per workspace key.

The WorkspaceRegistry handles:
- Lazy creation and initialization of sessions on first lookup
- Reuse of the session registered under a key
- Isolation-tagged keys so unrelated clients of one root get their own server
- Teardown of single sessions, idle sessions, or all of them at once
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from pathlib import Path
from typing import TYPE_CHECKING

from lspmux_core.lsp.exceptions import SessionClosedError
from lspmux_core.lsp.languages import find_project_root
from lspmux_core.lsp.session import Session, SessionConfig

if TYPE_CHECKING:
    from lspmux_core.settings import Settings

logger = logging.getLogger(__name__)

DEFAULT_WORKSPACE_TAG = "typescript-lsp"
DEFAULT_DELIMITER = "#"


def make_workspace_key(
    root: str | Path,
    tag: str | None = DEFAULT_WORKSPACE_TAG,
    delimiter: str = DEFAULT_DELIMITER,
) -> str:
    """Build the registry key for a workspace root.

    Args:
        root: Workspace root directory
        tag: Isolation tag; None or empty produces an untagged key
        delimiter: Separator between the path and the tag

    Returns:
        Normalized absolute path, suffixed with the tag when given
    """
    normalized = str(Path(root).resolve())
    if not tag:
        return normalized
    return f"{normalized}{delimiter}{tag}"


def workspace_root_from_key(
    key: str,
    tag: str | None = DEFAULT_WORKSPACE_TAG,
    delimiter: str = DEFAULT_DELIMITER,
) -> Path:
    """Strip the isolation tag from a workspace key.

    Only a trailing ``<delimiter><tag>`` is removed, so roots that contain
    the delimiter themselves (``/src/issue#42``) survive untouched.
    """
    suffix = f"{delimiter}{tag}" if tag else ""
    if suffix and key.endswith(suffix):
        return Path(key[: -len(suffix)])
    return Path(key)


@dataclass
class RegisteredSession:
    """A session owned by the registry."""

    session: Session
    registered_at: datetime = field(default_factory=datetime.now)
    last_used: datetime = field(default_factory=datetime.now)

    def touch(self) -> None:
        """Update last used time."""
        self.last_used = datetime.now()


@dataclass
class StartingSession:
    """A session whose initialization is in flight; ``ready`` resolves when it ends."""

    session: Session
    ready: asyncio.Future[Session]


class WorkspaceRegistry:
    """Owns every live session, keyed by workspace key.

    A key is registered only after its session completed initialization, so
    a failed start leaves no entry behind. Sessions found CLOSED (for example
    after their server died) are replaced on the next lookup.
    """

    def __init__(
        self,
        config: SessionConfig | None = None,
        tag: str | None = DEFAULT_WORKSPACE_TAG,
        delimiter: str = DEFAULT_DELIMITER,
        idle_timeout_seconds: float = 0.0,
        session_factory: Callable[[Path, SessionConfig, str], Session] | None = None,
    ):
        """Initialize the registry.

        Args:
            config: Session configuration shared by all sessions
            tag: Isolation tag applied by ``get_for_root``
            delimiter: Separator between root and tag in keys
            idle_timeout_seconds: Stop sessions unused for this long; 0 disables
            session_factory: Builds sessions; defaults to ``Session``
        """
        self._config = config or SessionConfig()
        self._tag = tag
        self._delimiter = delimiter
        self._idle_timeout = timedelta(seconds=idle_timeout_seconds) if idle_timeout_seconds > 0 else None
        self._session_factory = session_factory or (
            lambda root, cfg, key: Session(root, cfg, key=key)
        )
        self._sessions: dict[str, RegisteredSession] = {}
        self._starting: dict[str, StartingSession] = {}
        self._lock = asyncio.Lock()
        self._cleanup_task: asyncio.Task[None] | None = None

    @classmethod
    def from_settings(cls, settings: Settings) -> WorkspaceRegistry:
        """Build a registry from application settings."""
        return cls(
            config=SessionConfig.from_settings(settings),
            tag=settings.lsp_workspace_tag,
            delimiter=settings.lsp_workspace_delimiter,
            idle_timeout_seconds=settings.lsp_idle_timeout_seconds,
        )

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, key: object) -> bool:
        return key in self._sessions

    def keys(self) -> list[str]:
        return list(self._sessions)

    def get(self, key: str) -> Session | None:
        """Return the session registered under ``key`` without creating one."""
        entry = self._sessions.get(key)
        return entry.session if entry else None

    def key_for_root(self, root: str | Path) -> str:
        return make_workspace_key(root, self._tag, self._delimiter)

    async def get_or_create(self, key: str, root: str | Path | None = None) -> Session:
        """Return the session for ``key``, starting one if needed.

        Sessions for different keys start concurrently. Callers asking for a
        key that is already starting wait for that start instead of spawning
        a second server.

        Args:
            key: Workspace key (see ``make_workspace_key``)
            root: Workspace root; derived from ``key`` when omitted

        Returns:
            An initialized Session

        Raises:
            LspError: If the session could not be initialized; nothing is registered
        """
        async with self._lock:
            entry = self._sessions.get(key)
            if entry is not None:
                if not entry.session.is_closed:
                    entry.touch()
                    return entry.session
                logger.info("Replacing closed session for %s", key)
                del self._sessions[key]

            starting = self._starting.get(key)
            owner = starting is None
            if starting is None:
                if root is None:
                    root = workspace_root_from_key(key, self._tag, self._delimiter)
                starting = StartingSession(
                    session=self._session_factory(Path(root), self._config, key),
                    ready=asyncio.get_running_loop().create_future(),
                )
                self._starting[key] = starting

        if not owner:
            return await asyncio.shield(starting.ready)

        session = starting.session
        try:
            await session.initialize()
            async with self._lock:
                if session.is_closed:
                    raise SessionClosedError(f"Session for {key} was closed during startup")
                self._sessions[key] = RegisteredSession(session=session)
                self._ensure_cleanup_task()
        except BaseException as e:
            self._starting.pop(key, None)
            if not isinstance(e, Exception):
                e = SessionClosedError(f"Startup of {key} was interrupted")
            starting.ready.set_exception(e)
            # Retrieved here so an unawaited failure is not reported by asyncio
            starting.ready.exception()
            raise

        self._starting.pop(key, None)
        starting.ready.set_result(session)
        logger.info("Registered workspace session %s", key)
        return session

    async def get_for_root(self, root: str | Path) -> Session:
        """Get the session for a workspace root, isolated with the registry's tag."""
        return await self.get_or_create(self.key_for_root(root), root=Path(root).resolve())

    async def get_for_file(self, file_path: str | Path) -> Session:
        """Get the session for the project containing ``file_path``."""
        return await self.get_for_root(find_project_root(file_path))

    async def close(self, key: str) -> None:
        """Shut down and forget the session for ``key``; unknown keys are ignored.

        A session still starting under ``key`` is shut down too, which fails
        its start.
        """
        async with self._lock:
            entry = self._sessions.pop(key, None)
            starting = self._starting.get(key)
        if entry is not None:
            session = entry.session
        elif starting is not None:
            session = starting.session
        else:
            return
        await session.shutdown()
        logger.info("Closed workspace session %s", key)

    async def close_all(self) -> None:
        """Shut down every session, including ones still starting, and empty the registry."""
        if self._cleanup_task and not self._cleanup_task.done():
            self._cleanup_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._cleanup_task
        self._cleanup_task = None

        async with self._lock:
            sessions = [(key, entry.session) for key, entry in self._sessions.items()]
            sessions += [(key, starting.session) for key, starting in self._starting.items()]
            self._sessions.clear()

        results = await asyncio.gather(
            *(session.shutdown() for _, session in sessions),
            return_exceptions=True,
        )
        for (key, _), result in zip(sessions, results):
            if isinstance(result, BaseException):
                logger.warning("Error closing session %s: %s", key, result)

        logger.info("Workspace registry closed %d session(s)", len(sessions))

    def _ensure_cleanup_task(self) -> None:
        """Ensure the idle reaper is running when an idle timeout is set."""
        if self._idle_timeout is None:
            return
        if self._cleanup_task is None or self._cleanup_task.done():
            self._cleanup_task = asyncio.get_running_loop().create_task(self._cleanup_loop())

    async def _cleanup_loop(self) -> None:
        """Periodically close idle sessions."""
        assert self._idle_timeout is not None
        interval = min(60.0, self._idle_timeout.total_seconds())
        while True:
            await asyncio.sleep(interval)
            await self.close_idle()

    async def close_idle(self) -> list[str]:
        """Close sessions idle past the timeout, and drop closed ones.

        Returns:
            Keys that were removed
        """
        now = datetime.now()
        async with self._lock:
            stale = [
                key
                for key, entry in self._sessions.items()
                if entry.session.is_closed
                or (self._idle_timeout is not None and now - entry.last_used > self._idle_timeout)
            ]
            entries = [self._sessions.pop(key) for key in stale]

        for key, entry in zip(stale, entries):
            try:
                await entry.session.shutdown()
                logger.info("Stopped idle session %s", key)
            except Exception as e:
                logger.warning("Error stopping session %s: %s", key, e)
        return stale


def install_signal_handlers(
    registry: WorkspaceRegistry,
    signals: tuple[signal.Signals, ...] = (signal.SIGINT, signal.SIGTERM),
    on_closed: Callable[[], None] | None = None,
) -> None:
    """Close every session when the process receives a termination signal.

    Must be called from within the running event loop (Unix only).

    Args:
        registry: Registry to tear down
        signals: Signals to handle
        on_closed: Called after teardown, e.g. to stop the loop
    """
    loop = asyncio.get_running_loop()
    # The loop keeps only weak references to tasks
    teardowns: set[asyncio.Task[None]] = set()

    async def _teardown(sig: signal.Signals) -> None:
        logger.info("Received %s, closing all workspace sessions", sig.name)
        await registry.close_all()
        if on_closed is not None:
            on_closed()

    def _finished(task: asyncio.Task[None]) -> None:
        teardowns.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Workspace teardown failed: %s", task.exception())

    def _handle(sig: signal.Signals) -> None:
        task = loop.create_task(_teardown(sig))
        teardowns.add(task)
        task.add_done_callback(_finished)

    for sig in signals:
        loop.add_signal_handler(sig, _handle, sig)
