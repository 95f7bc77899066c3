"""lspmux: language server sessions multiplexed per workspace."""

from lspmux_core.lsp import LspClient, Session, SessionConfig, WorkspaceRegistry
from lspmux_core.settings import Settings, get_settings

__all__ = [
    "LspClient",
    "Session",
    "SessionConfig",
    "Settings",
    "WorkspaceRegistry",
    "get_settings",
]
