"""LSP-specific exceptions."""

from __future__ import annotations

from typing import Any


class LspError(Exception):
    """Base class for LSP errors."""

    pass


class LspNotAvailableError(LspError):
    """Raised when LSP is not available for a workspace or file.

    This can happen when:
    - The file type is not supported
    - The language server binary is not installed
    """

    pass


class SpawnFailedError(LspError):
    """Raised when the language server subprocess could not be started."""

    def __init__(self, message: str, cause: BaseException | None = None):
        super().__init__(message)
        self.cause = cause


class LspTimeoutError(LspError):
    """Raised when an LSP operation times out."""

    pass


class StartupTimeoutError(LspTimeoutError):
    """Raised when the subprocess does not report a successful spawn in time."""

    pass


class HandshakeTimeoutError(LspTimeoutError):
    """Raised when the initialize request is not answered in time."""

    pass


class RequestTimeoutError(LspTimeoutError):
    """Raised when a request is not answered within its deadline."""

    def __init__(self, method: str, timeout: float):
        super().__init__(f"Request timeout: {method} ({timeout:g}s)")
        self.method = method
        self.timeout = timeout


class ProtocolError(LspError):
    """Raised when the language server answers with a JSON-RPC error object.

    The server's message is kept verbatim as the exception message.
    """

    def __init__(self, message: str, code: int | None = None, data: Any = None):
        super().__init__(message)
        self.code = code
        self.data = data

    @classmethod
    def from_error(cls, error: dict[str, Any]) -> ProtocolError:
        """Build from a JSON-RPC error object."""
        return cls(
            str(error.get("message", "Unknown error")),
            code=error.get("code"),
            data=error.get("data"),
        )


# Older name kept for callers that catch server-side failures generically
LspServerError = ProtocolError


class DocumentReadError(LspError):
    """Raised when a document exists but cannot be read."""

    def __init__(self, path: str, cause: BaseException):
        super().__init__(f"Failed to open document {path}: {cause}")
        self.path = path
        self.cause = cause


class UnexpectedExitError(LspError):
    """Raised for requests pending when the subprocess terminated on its own."""

    def __init__(self, returncode: int | None):
        super().__init__(f"Language server exited unexpectedly (code {returncode})")
        self.returncode = returncode


class SessionClosedError(LspError):
    """Raised when using a session that has been shut down."""

    pass


class SessionNotReadyError(LspError):
    """Raised when a request is issued before the handshake completed."""

    pass
