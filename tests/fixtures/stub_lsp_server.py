"""Scripted stand-in for a language server, speaking LSP over stdio.

Behaviour is selected per method so tests can provoke timeouts, errors,
out-of-order replies, malformed frames and crashes. ``STUB_LSP_MODE`` changes
how ``initialize`` is handled.
"""

from __future__ import annotations

import json
import os
import sys
import time

MODE = os.environ.get("STUB_LSP_MODE", "")


def _encode(obj: dict) -> bytes:
    body = json.dumps(obj, ensure_ascii=False).encode("utf-8")
    header = f"Content-Length: {len(body)}\r\n\r\n".encode("ascii")
    return header + body


def _read_message() -> dict:
    headers: dict[str, str] = {}
    while True:
        line = sys.stdin.buffer.readline()
        if not line:
            raise EOFError
        if line in (b"\r\n", b"\n"):
            break
        try:
            k, v = line.decode("utf-8", errors="replace").split(":", 1)
            headers[k.strip().lower()] = v.strip()
        except ValueError:
            continue
    n = int(headers.get("content-length", "0") or "0")
    body = sys.stdin.buffer.read(n)
    return json.loads(body.decode("utf-8"))


def _send(obj: dict) -> None:
    sys.stdout.buffer.write(_encode(obj))
    sys.stdout.buffer.flush()


def _result(rid: object, result: object) -> None:
    _send({"jsonrpc": "2.0", "id": rid, "result": result})


def _range(line: int, start: int, end: int) -> dict:
    return {
        "start": {"line": line, "character": start},
        "end": {"line": line, "character": end},
    }


def main() -> int:
    opened: list[str] = []
    closed: list[str] = []
    deferred: list[tuple[object, object]] = []
    initialize_params: dict = {}
    notifications: list[str] = []

    while True:
        try:
            msg = _read_message()
        except EOFError:
            return 0

        method = msg.get("method")
        rid = msg.get("id")
        params = msg.get("params")

        if method is None:
            # Response to a server-initiated request outside test/serverRequest
            continue

        if rid is None:
            notifications.append(method)
            if method == "exit":
                return 0
            if method == "textDocument/didOpen":
                uri = params["textDocument"]["uri"]
                opened.append(uri)
                if "broken" in uri:
                    _send(
                        {
                            "jsonrpc": "2.0",
                            "method": "textDocument/publishDiagnostics",
                            "params": {
                                "uri": uri,
                                "diagnostics": [
                                    {
                                        "range": _range(1, 4, 9),
                                        "severity": 1,
                                        "code": 2322,
                                        "source": "typescript",
                                        "message": "Type 'string' is not assignable to type 'number'.",
                                    }
                                ],
                            },
                        }
                    )
            elif method == "textDocument/didClose":
                closed.append(params["textDocument"]["uri"])
            continue

        if method == "initialize":
            if MODE == "silent-initialize":
                continue
            if MODE == "crash-on-initialize":
                return 2
            initialize_params = params
            _result(
                rid,
                {
                    "capabilities": {"hoverProvider": True, "definitionProvider": True},
                    "serverInfo": {"name": "stub-lsp", "version": "0.0.1"},
                },
            )
        elif method == "shutdown":
            _result(rid, None)
        elif method == "test/echo":
            _result(rid, params)
        elif method == "test/error":
            _send(
                {
                    "jsonrpc": "2.0",
                    "id": rid,
                    "error": {"code": -32603, "message": "Debug Failure. False expression."},
                }
            )
        elif method == "test/silent":
            pass
        elif method == "test/delayed":
            time.sleep(params["delay"])
            _result(rid, params)
        elif method == "test/deferred":
            deferred.append((rid, params))
            if len(deferred) >= params["batch"]:
                for pending_id, pending_params in reversed(deferred):
                    _result(pending_id, pending_params)
                deferred.clear()
        elif method == "test/notify":
            _send({"jsonrpc": "2.0", "method": "custom/event", "params": params})
            _result(rid, "ok")
        elif method == "test/garbage":
            sys.stdout.buffer.write(b"Content-Length: 9\r\n\r\n{not json")
            sys.stdout.buffer.flush()
            _result(rid, "after-garbage")
        elif method == "test/serverRequest":
            _send(
                {
                    "jsonrpc": "2.0",
                    "id": "srv-1",
                    "method": "workspace/configuration",
                    "params": {"items": [{"section": "typescript"}, {"section": "javascript"}]},
                }
            )
            while True:
                reply = _read_message()
                if reply.get("id") == "srv-1" and "method" not in reply:
                    break
            _result(rid, reply.get("result"))
        elif method == "test/crash":
            return 3
        elif method == "test/documents":
            _result(rid, {"opened": opened, "closed": closed})
        elif method == "test/initializeParams":
            _result(rid, initialize_params)
        elif method == "test/environment":
            _result(
                rid,
                {
                    "cwd": os.getcwd(),
                    "logLevel": os.environ.get("TYPESCRIPT_LSP_LOG_LEVEL"),
                    "args": sys.argv[1:],
                    "notifications": notifications,
                },
            )
        elif method == "textDocument/definition":
            uri = params["textDocument"]["uri"]
            _result(
                rid,
                [
                    {
                        "targetUri": uri,
                        "targetRange": _range(0, 0, 20),
                        "targetSelectionRange": _range(0, 13, 17),
                    }
                ],
            )
        elif method == "textDocument/references":
            uri = params["textDocument"]["uri"]
            refs = [{"uri": uri, "range": _range(4, 2, 6)}]
            if params["context"]["includeDeclaration"]:
                refs.insert(0, {"uri": uri, "range": _range(0, 13, 17)})
            _result(rid, refs)
        elif method == "textDocument/hover":
            _result(
                rid,
                {
                    "contents": {"kind": "markdown", "value": "```typescript\nfunction greet(name: string): string\n```"},
                    "range": _range(params["position"]["line"], 9, 14),
                },
            )
        elif method == "workspace/symbol":
            _result(
                rid,
                [
                    {
                        "name": "UserService",
                        "kind": 5,
                        "location": {"uri": "file:///project/src/user.ts", "range": _range(6, 0, 30)},
                        "containerName": "user",
                    }
                ]
                if params["query"]
                else [],
            )
        elif method == "textDocument/documentSymbol":
            _result(
                rid,
                [
                    {
                        "name": "UserService",
                        "kind": 5,
                        "range": _range(6, 0, 30),
                        "selectionRange": _range(6, 13, 24),
                        "children": [
                            {
                                "name": "getUser",
                                "kind": 6,
                                "detail": "(id: number) => User",
                                "range": _range(7, 2, 40),
                                "selectionRange": _range(7, 2, 9),
                            }
                        ],
                    }
                ],
            )
        elif method == "textDocument/prepareCallHierarchy":
            uri = params["textDocument"]["uri"]
            _result(
                rid,
                [
                    {
                        "name": "greet",
                        "kind": 12,
                        "uri": uri,
                        "range": _range(0, 0, 40),
                        "selectionRange": _range(0, 16, 21),
                    }
                ],
            )
        elif method == "callHierarchy/incomingCalls":
            caller_uri = params["item"]["uri"].replace("simple.ts", "main.ts")
            _result(
                rid,
                [
                    {
                        "from": {
                            "name": "main",
                            "kind": 12,
                            "uri": caller_uri,
                            "range": _range(2, 0, 30),
                            "selectionRange": _range(2, 9, 13),
                        },
                        "fromRanges": [_range(3, 2, 7)],
                    }
                ],
            )
        elif method == "textDocument/signatureHelp":
            _result(
                rid,
                {
                    "signatures": [
                        {
                            "label": "greet(name: string): string",
                            "documentation": "Say hello.",
                            "parameters": [{"label": "name: string"}],
                        }
                    ],
                    "activeSignature": 0,
                    "activeParameter": 0,
                },
            )
        elif method == "textDocument/codeAction":
            _result(
                rid,
                [
                    {
                        "title": "Organize Imports",
                        "kind": "source.organizeImports.ts",
                        "edit": {"changes": {}},
                    },
                    {
                        "title": f"Fix {len(params['context']['diagnostics'])} problem(s)",
                        "kind": "quickfix",
                    },
                ],
            )
        else:
            _send(
                {
                    "jsonrpc": "2.0",
                    "id": rid,
                    "error": {"code": -32601, "message": f"Unhandled method {method}"},
                }
            )


if __name__ == "__main__":
    raise SystemExit(main())
