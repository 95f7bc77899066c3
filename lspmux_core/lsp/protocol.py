"""JSON-RPC 2.0 message helpers and the client side of the LSP handshake."""

from __future__ import annotations

import os
from enum import Enum
from pathlib import Path
from typing import Any
from urllib.parse import unquote, urlparse

JSONRPC_VERSION = "2.0"

# Code action kinds advertised to the server
CODE_ACTION_KINDS: list[str] = [
    "source.organizeImports.ts",
    "source.removeUnused.ts",
    "source.addMissingImports.ts",
    "source.fixAll.ts",
]


class MessageKind(str, Enum):
    """Shape of an incoming JSON-RPC message."""

    REQUEST = "request"
    RESPONSE = "response"
    NOTIFICATION = "notification"
    INVALID = "invalid"


def make_request(request_id: int, method: str, params: Any) -> dict[str, Any]:
    """Build a request message."""
    return {"jsonrpc": JSONRPC_VERSION, "id": request_id, "method": method, "params": params}


def make_notification(method: str, params: Any) -> dict[str, Any]:
    """Build a notification message (no id, never answered)."""
    return {"jsonrpc": JSONRPC_VERSION, "method": method, "params": params}


def make_response(request_id: int | str, result: Any) -> dict[str, Any]:
    """Build a successful response to a server-initiated request."""
    return {"jsonrpc": JSONRPC_VERSION, "id": request_id, "result": result}


def classify_message(message: Any) -> MessageKind:
    """Tell requests, responses and notifications apart.

    A message with an id and a result or error is a response. A message with a
    method is a request when it also has an id, otherwise a notification.
    """
    if not isinstance(message, dict):
        return MessageKind.INVALID
    has_id = message.get("id") is not None
    if has_id and ("result" in message or "error" in message):
        return MessageKind.RESPONSE
    if isinstance(message.get("method"), str):
        return MessageKind.REQUEST if has_id else MessageKind.NOTIFICATION
    return MessageKind.INVALID


def path_to_uri(path: str | Path) -> str:
    """Convert a filesystem path to a ``file://`` URI."""
    return Path(path).absolute().as_uri()


def uri_to_path(uri: str) -> str:
    """Convert a ``file://`` URI back to a filesystem path."""
    if not uri.startswith("file://"):
        return uri
    return unquote(urlparse(uri).path)


def build_client_capabilities() -> dict[str, Any]:
    """Capabilities for the document and workspace features this client consumes."""
    static = {"dynamicRegistration": False}
    return {
        "workspace": {
            "symbol": dict(static),
            "didChangeConfiguration": dict(static),
            "executeCommand": dict(static),
            "workspaceFolders": True,
            "configuration": True,
        },
        "textDocument": {
            "synchronization": {
                "dynamicRegistration": False,
                "willSave": False,
                "willSaveWaitUntil": False,
                "didSave": False,
            },
            "definition": {**static, "linkSupport": True},
            "typeDefinition": {**static, "linkSupport": True},
            "implementation": {**static, "linkSupport": True},
            "references": dict(static),
            "hover": {**static, "contentFormat": ["markdown", "plaintext"]},
            "documentSymbol": {**static, "hierarchicalDocumentSymbolSupport": True},
            "completion": {**static, "completionItem": {"snippetSupport": True}},
            "signatureHelp": dict(static),
            "codeAction": {
                **static,
                "codeActionLiteralSupport": {
                    "codeActionKind": {"valueSet": list(CODE_ACTION_KINDS)},
                },
            },
            "publishDiagnostics": {"relatedInformation": True},
            "callHierarchy": dict(static),
            "typeHierarchy": dict(static),
            "inlayHint": dict(static),
        },
    }


def build_initialize_params(
    workspace_root: str | Path,
    client_name: str,
    client_version: str,
    log_verbosity: str = "off",
) -> dict[str, Any]:
    """Build the ``initialize`` request payload for a workspace root."""
    root = str(workspace_root)
    root_uri = path_to_uri(root)
    return {
        "processId": os.getpid(),
        "clientInfo": {"name": client_name, "version": client_version},
        "locale": "en",
        "rootPath": root,
        "rootUri": root_uri,
        "capabilities": build_client_capabilities(),
        "initializationOptions": {
            "preferences": {
                "includeInlayParameterNameHints": "all",
                "includeInlayParameterNameHintsWhenArgumentMatchesName": False,
                "includeInlayFunctionParameterTypeHints": True,
                "includeInlayVariableTypeHints": True,
                "includeInlayVariableTypeHintsWhenTypeMatchesName": False,
                "includeInlayPropertyDeclarationTypeHints": True,
                "includeInlayFunctionLikeReturnTypeHints": True,
                "includeInlayEnumMemberValueHints": True,
            },
            "tsserver": {"logVerbosity": log_verbosity},
        },
        "workspaceFolders": [{"uri": root_uri, "name": "workspace"}],
    }
