"""LSP (Language Server Protocol) client and workspace multiplexing.

This module runs language servers as stdio subprocesses, one per workspace
key, and exposes their code-intelligence operations: symbol search,
navigation, hover, diagnostics and refactoring code actions.
"""

from lspmux_core.lsp.client import (
    CallHierarchyCall,
    CodeAction,
    Diagnostic,
    HierarchyItem,
    HoverInfo,
    InlayHint,
    Location,
    LspClient,
    SignatureHelp,
    SignatureInfo,
    SymbolInfo,
)
from lspmux_core.lsp.documents import DocumentTracker, OpenDocument
from lspmux_core.lsp.exceptions import (
    DocumentReadError,
    HandshakeTimeoutError,
    LspError,
    LspNotAvailableError,
    LspServerError,
    LspTimeoutError,
    ProtocolError,
    RequestTimeoutError,
    SessionClosedError,
    SessionNotReadyError,
    SpawnFailedError,
    StartupTimeoutError,
    UnexpectedExitError,
)
from lspmux_core.lsp.framing import MessageFramer, encode_message
from lspmux_core.lsp.languages import (
    EXTENSION_TO_LANGUAGE_ID,
    PROJECT_ROOT_MARKERS,
    LanguageId,
    ProjectType,
    detect_language_id,
    detect_project_type,
    find_project_root,
)
from lspmux_core.lsp.notifications import NotificationRouter
from lspmux_core.lsp.process import ProcessSupervisor, check_server_available
from lspmux_core.lsp.requests import PendingRequest, RequestRegistry
from lspmux_core.lsp.session import Session, SessionConfig, SessionState
from lspmux_core.lsp.workspace import (
    WorkspaceRegistry,
    install_signal_handlers,
    make_workspace_key,
    workspace_root_from_key,
)

__all__ = [
    # Client
    "CallHierarchyCall",
    "CodeAction",
    "Diagnostic",
    "HierarchyItem",
    "HoverInfo",
    "InlayHint",
    "Location",
    "LspClient",
    "SignatureHelp",
    "SignatureInfo",
    "SymbolInfo",
    # Documents
    "DocumentTracker",
    "OpenDocument",
    # Exceptions
    "DocumentReadError",
    "HandshakeTimeoutError",
    "LspError",
    "LspNotAvailableError",
    "LspServerError",
    "LspTimeoutError",
    "ProtocolError",
    "RequestTimeoutError",
    "SessionClosedError",
    "SessionNotReadyError",
    "SpawnFailedError",
    "StartupTimeoutError",
    "UnexpectedExitError",
    # Wire
    "MessageFramer",
    "encode_message",
    "NotificationRouter",
    "PendingRequest",
    "RequestRegistry",
    # Languages
    "EXTENSION_TO_LANGUAGE_ID",
    "PROJECT_ROOT_MARKERS",
    "LanguageId",
    "ProjectType",
    "detect_language_id",
    "detect_project_type",
    "find_project_root",
    # Process
    "ProcessSupervisor",
    "check_server_available",
    # Session
    "Session",
    "SessionConfig",
    "SessionState",
    # Workspace
    "WorkspaceRegistry",
    "install_signal_handlers",
    "make_workspace_key",
    "workspace_root_from_key",
]
