"""Tests for JSON-RPC message helpers and the initialize payload."""

import os
from pathlib import Path

from lspmux_core.lsp.protocol import (
    CODE_ACTION_KINDS,
    MessageKind,
    build_initialize_params,
    classify_message,
    path_to_uri,
    uri_to_path,
)


def test_classify_message() -> None:
    assert classify_message({"jsonrpc": "2.0", "id": 1, "result": None}) is MessageKind.RESPONSE
    assert classify_message({"jsonrpc": "2.0", "id": 1, "error": {}}) is MessageKind.RESPONSE
    assert classify_message({"jsonrpc": "2.0", "method": "x"}) is MessageKind.NOTIFICATION
    assert classify_message({"jsonrpc": "2.0", "id": "a", "method": "x"}) is MessageKind.REQUEST
    assert classify_message({"jsonrpc": "2.0"}) is MessageKind.INVALID
    assert classify_message([1, 2]) is MessageKind.INVALID


def test_uri_round_trip(tmp_path: Path) -> None:
    path = tmp_path / "dir with space" / "file.ts"
    uri = path_to_uri(path)
    assert uri.startswith("file://")
    assert "%20" in uri
    assert uri_to_path(uri) == str(path)


def test_initialize_params(tmp_path: Path) -> None:
    params = build_initialize_params(tmp_path, "lspmux", "1.2.3", log_verbosity="off")

    assert params["processId"] == os.getpid()
    assert params["clientInfo"] == {"name": "lspmux", "version": "1.2.3"}
    assert params["rootPath"] == str(tmp_path)
    assert params["rootUri"] == tmp_path.as_uri()
    assert params["workspaceFolders"] == [{"uri": tmp_path.as_uri(), "name": "workspace"}]
    assert params["initializationOptions"]["tsserver"] == {"logVerbosity": "off"}
    assert params["initializationOptions"]["preferences"]["includeInlayParameterNameHints"] == "all"

    text_document = params["capabilities"]["textDocument"]
    assert text_document["definition"]["linkSupport"] is True
    assert text_document["hover"]["contentFormat"] == ["markdown", "plaintext"]
    assert text_document["documentSymbol"]["hierarchicalDocumentSymbolSupport"] is True
    assert text_document["completion"]["completionItem"]["snippetSupport"] is True
    assert text_document["publishDiagnostics"]["relatedInformation"] is True
    value_set = text_document["codeAction"]["codeActionLiteralSupport"]["codeActionKind"]["valueSet"]
    assert value_set == CODE_ACTION_KINDS
    assert len(value_set) == 4
    for feature in ("callHierarchy", "typeHierarchy", "inlayHint", "signatureHelp", "references"):
        assert feature in text_document
    assert "symbol" in params["capabilities"]["workspace"]
