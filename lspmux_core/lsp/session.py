"""One live language server connection for one workspace root.

A Session composes the framing, request correlation, notification routing,
process supervision and document tracking for a single subprocess, and owns
the initialize/initialized handshake:

    UNINITIALIZED -> INITIALIZING -> INITIALIZED -> SHUTTING_DOWN -> CLOSED

CLOSED is terminal. Every path into it kills the subprocess, removes its
scratch directory and clears request and document state.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any

from lspmux_core.lsp.documents import DocumentTracker, OpenDocument
from lspmux_core.lsp.exceptions import (
    HandshakeTimeoutError,
    LspError,
    RequestTimeoutError,
    SessionClosedError,
    SessionNotReadyError,
    UnexpectedExitError,
)
from lspmux_core.lsp.framing import MessageFramer, encode_message
from lspmux_core.lsp.notifications import NotificationRouter
from lspmux_core.lsp.process import ProcessSupervisor
from lspmux_core.lsp.protocol import (
    MessageKind,
    build_initialize_params,
    classify_message,
    make_notification,
    make_response,
)
from lspmux_core.lsp.requests import RequestRegistry
from lspmux_core.telemetry import trace_lsp_request

if TYPE_CHECKING:
    from lspmux_core.settings import Settings

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    """Handshake lifecycle of a session."""

    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    INITIALIZED = "initialized"
    SHUTTING_DOWN = "shutting_down"
    CLOSED = "closed"


@dataclass
class SessionConfig:
    """How to launch and talk to the language server."""

    command: str = "typescript-language-server"
    args: list[str] = field(default_factory=lambda: ["--stdio"])
    env: dict[str, str] = field(default_factory=lambda: {"TYPESCRIPT_LSP_LOG_LEVEL": "2"})
    client_name: str = "lspmux"
    client_version: str = "0.1.0"
    log_verbosity: str = "off"
    spawn_timeout: float = 5.0
    initialize_timeout: float = 10.0
    request_timeout: float = 10.0
    shutdown_timeout: float = 2.0
    scratch_prefix: str = "typescript-lsp-"

    @classmethod
    def from_settings(cls, settings: Settings) -> SessionConfig:
        """Build a config from application settings."""
        return cls(
            command=settings.lsp_server_command,
            args=list(settings.lsp_server_args),
            env={settings.lsp_log_level_env: settings.lsp_log_level},
            client_name=settings.lsp_client_name,
            client_version=settings.lsp_client_version,
            log_verbosity=settings.lsp_log_verbosity,
            spawn_timeout=settings.lsp_spawn_timeout_seconds,
            initialize_timeout=settings.lsp_initialize_timeout_seconds,
            request_timeout=settings.lsp_request_timeout_seconds,
            shutdown_timeout=settings.lsp_shutdown_timeout_seconds,
            scratch_prefix=f"{settings.lsp_workspace_tag}-",
        )


class Session:
    """A language server subprocess bound to one workspace root.

    Usage:
        async with Session("/path/to/project") as session:
            await session.ensure_document_open("/path/to/project/src/app.ts")
            result = await session.request("textDocument/hover", params)
    """

    def __init__(
        self,
        workspace_root: str | Path,
        config: SessionConfig | None = None,
        key: str | None = None,
    ):
        """Initialize the session without starting the server.

        Args:
            workspace_root: Directory the server analyzes (its working directory)
            config: Launch and timeout configuration
            key: Registry key this session is stored under, for logging
        """
        self._root = Path(workspace_root).resolve()
        self._config = config or SessionConfig()
        self._key = key or str(self._root)
        self._state = SessionState.UNINITIALIZED
        self._server_capabilities: dict[str, Any] = {}

        self._framer = MessageFramer()
        self._notifications = NotificationRouter()
        self._requests = RequestRegistry(self._write, self._config.request_timeout)
        self._documents = DocumentTracker(self._send_notification)
        self._supervisor = ProcessSupervisor(
            on_data=self._handle_data,
            on_exit=self._handle_exit,
            spawn_timeout=self._config.spawn_timeout,
            scratch_prefix=self._config.scratch_prefix,
        )

        self._init_lock = asyncio.Lock()
        self._cleanup_lock = asyncio.Lock()

    def __repr__(self) -> str:
        return f"Session(key={self._key!r}, state={self._state.value})"

    async def __aenter__(self) -> Session:
        await self.initialize()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.shutdown()

    @property
    def workspace_root(self) -> Path:
        return self._root

    @property
    def key(self) -> str:
        return self._key

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_initialized(self) -> bool:
        return self._state is SessionState.INITIALIZED

    @property
    def is_closed(self) -> bool:
        return self._state is SessionState.CLOSED

    @property
    def pid(self) -> int | None:
        return self._supervisor.pid

    @property
    def scratch_dir(self) -> Path | None:
        return self._supervisor.scratch_dir

    @property
    def server_capabilities(self) -> dict[str, Any]:
        """Capabilities the server announced in its initialize response."""
        return self._server_capabilities

    @property
    def open_documents(self) -> list[str]:
        """URIs currently announced as open."""
        return self._documents.uris

    @property
    def pending_requests(self) -> int:
        return len(self._requests)

    # Handshake

    async def initialize(self) -> None:
        """Start the server and complete the initialize/initialized exchange.

        Calling this on an initialized session returns immediately. On any
        failure the session is torn down and left CLOSED.

        Raises:
            SpawnFailedError: If the server could not be started
            StartupTimeoutError: If the server did not spawn in time
            HandshakeTimeoutError: If initialize was not answered in time
            SessionClosedError: If the session was already shut down
        """
        async with self._init_lock:
            if self._state is SessionState.INITIALIZED:
                return
            if self._state is not SessionState.UNINITIALIZED:
                raise SessionClosedError(f"Session for {self._key} is {self._state.value}")

            self._state = SessionState.INITIALIZING
            try:
                await self._supervisor.start(
                    self._config.command,
                    self._config.args,
                    cwd=self._root,
                    env=self._config.env,
                )
                params = build_initialize_params(
                    self._root,
                    client_name=self._config.client_name,
                    client_version=self._config.client_version,
                    log_verbosity=self._config.log_verbosity,
                )
                try:
                    result = await self._send_request(
                        "initialize", params, timeout=self._config.initialize_timeout
                    )
                except RequestTimeoutError as e:
                    raise HandshakeTimeoutError("LSP initialize request timeout") from e

                if self._state is not SessionState.INITIALIZING:
                    raise SessionClosedError(f"Session for {self._key} closed during initialize")

                if isinstance(result, dict):
                    self._server_capabilities = result.get("capabilities") or {}
                self._send_notification("initialized", {})
            except BaseException:
                await self._cleanup()
                raise

            self._state = SessionState.INITIALIZED
            logger.info("Language server ready for %s (pid %s)", self._key, self.pid)

    async def shutdown(self) -> None:
        """Shut the server down and release everything the session holds.

        The shutdown request and exit notification are best-effort; the
        subprocess is killed and state cleared regardless.
        """
        if self._state is SessionState.CLOSED:
            return

        graceful = self._state is SessionState.INITIALIZED
        self._state = SessionState.SHUTTING_DOWN
        if graceful:
            try:
                await self._send_request("shutdown", None, timeout=self._config.shutdown_timeout)
                self._send_notification("exit", None)
            except LspError as e:
                logger.debug("Ignoring error during graceful shutdown of %s: %s", self._key, e)

        await self._cleanup()
        logger.info("Language server stopped for %s", self._key)

    # Requests and notifications

    async def request(self, method: str, params: Any = None) -> Any:
        """Send a request and wait for its result.

        Raises:
            SessionNotReadyError: If the handshake has not completed
            ProtocolError: If the server answered with an error object
            RequestTimeoutError: If no answer arrived within the request timeout
            UnexpectedExitError: If the server died while the request was pending
        """
        self._require_initialized()
        return await self._send_request(method, params)

    def notify(self, method: str, params: Any = None) -> None:
        """Send a notification; no response is expected."""
        self._require_initialized()
        self._send_notification(method, params)

    async def execute_command(self, command: str, arguments: list[Any] | None = None) -> Any:
        """Run a server-side command through workspace/executeCommand."""
        return await self.request(
            "workspace/executeCommand",
            {"command": command, "arguments": arguments or []},
        )

    def on_notification(self, method: str, listener: Callable[[Any], None]) -> Callable[[], None]:
        """Subscribe to server notifications (and server requests) by method.

        Returns:
            A callable that removes the subscription
        """
        return self._notifications.on(method, listener)

    # Documents

    async def ensure_document_open(self, path: str | Path) -> OpenDocument:
        """Announce ``path`` to the server once per session.

        Raises:
            SessionNotReadyError: If the handshake has not completed
            DocumentReadError: If the file exists but cannot be read
        """
        self._require_initialized()
        return await self._documents.ensure_open(path)

    async def close_document(self, path: str | Path) -> bool:
        """Close ``path`` if open. No-op on unopened documents or inactive sessions."""
        if self._state is not SessionState.INITIALIZED:
            return False
        return await self._documents.close(path)

    # Internals

    def _require_initialized(self) -> None:
        if self._state is SessionState.INITIALIZED:
            return
        if self._state in (SessionState.SHUTTING_DOWN, SessionState.CLOSED):
            raise SessionClosedError(f"Session for {self._key} is {self._state.value}")
        raise SessionNotReadyError(f"Session for {self._key} is not initialized")

    def _write(self, message: dict[str, Any]) -> None:
        self._supervisor.write(encode_message(message))

    def _send_notification(self, method: str, params: Any) -> None:
        self._write(make_notification(method, params))

    async def _send_request(self, method: str, params: Any, timeout: float | None = None) -> Any:
        async with trace_lsp_request(method, str(self._root)):
            future = self._requests.send(method, params, timeout)
            try:
                await self._supervisor.drain()
                return await future
            finally:
                # Caller cancelled; stop tracking the request
                if not future.done():
                    future.cancel()

    def _handle_data(self, data: bytes) -> None:
        for message in self._framer.feed(data):
            self._dispatch(message)

    def _dispatch(self, message: Any) -> None:
        kind = classify_message(message)
        if kind is MessageKind.RESPONSE:
            self._requests.complete(message["id"], message.get("result"), message.get("error"))
        elif kind is MessageKind.NOTIFICATION:
            self._notifications.dispatch(message["method"], message.get("params"))
        elif kind is MessageKind.REQUEST:
            self._notifications.dispatch(message["method"], message.get("params"))
            self._answer_server_request(message)
        else:
            logger.debug("Ignoring message without id or method from %s", self._key)

    def _answer_server_request(self, message: dict[str, Any]) -> None:
        result: Any = None
        params = message.get("params")
        if message["method"] == "workspace/configuration" and isinstance(params, dict):
            result = [None] * len(params.get("items") or [])
        try:
            self._write(make_response(message["id"], result))
        except LspError as e:
            logger.debug("Could not answer %s from %s: %s", message["method"], self._key, e)

    async def _handle_exit(self, returncode: int | None) -> None:
        if self._state in (SessionState.SHUTTING_DOWN, SessionState.CLOSED):
            return
        logger.warning(
            "Language server for %s exited unexpectedly (code %s); %d request(s) pending",
            self._key,
            returncode,
            len(self._requests),
        )
        await self._cleanup(lambda: UnexpectedExitError(returncode))

    async def _cleanup(self, make_error: Callable[[], LspError] | None = None) -> None:
        """Tear everything down, then reject whatever is still pending.

        Waiters are released only once the session is CLOSED.
        """
        async with self._cleanup_lock:
            if self._state is SessionState.CLOSED:
                if self._supervisor.is_running:
                    await self._supervisor.stop(self._config.shutdown_timeout)
                return
            try:
                await self._documents.close_all()
                await self._supervisor.stop(self._config.shutdown_timeout)
            finally:
                self._framer.reset()
                self._state = SessionState.CLOSED
                self._requests.fail_all(
                    make_error or (lambda: SessionClosedError(f"Session for {self._key} closed"))
                )
