"""Typed LSP requests over a workspace session.

This module turns raw protocol responses into small dataclasses for the
common code-intelligence operations. Lines are 1-indexed and columns
0-indexed throughout the public API; conversion to the wire format happens
here.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

from lspmux_core.lsp.exceptions import LspError
from lspmux_core.lsp.protocol import path_to_uri, uri_to_path

if TYPE_CHECKING:
    from lspmux_core.lsp.session import Session

logger = logging.getLogger(__name__)


# LSP SymbolKind values
SYMBOL_KINDS: dict[int, str] = {
    1: "file",
    2: "module",
    3: "namespace",
    4: "package",
    5: "class",
    6: "method",
    7: "property",
    8: "field",
    9: "constructor",
    10: "enum",
    11: "interface",
    12: "function",
    13: "variable",
    14: "constant",
    15: "string",
    16: "number",
    17: "boolean",
    18: "array",
    19: "object",
    20: "key",
    21: "null",
    22: "enum_member",
    23: "struct",
    24: "event",
    25: "operator",
    26: "type_parameter",
}

# Severity mapping from LSP codes to human-readable strings
SEVERITY_MAP = {
    1: "error",
    2: "warning",
    3: "info",
    4: "hint",
}


def symbol_kind_name(kind: int) -> str:
    return SYMBOL_KINDS.get(kind, f"unknown({kind})")


@dataclass
class Location:
    """A location in source code."""

    file_path: str
    start_line: int  # 1-indexed
    start_column: int  # 0-indexed
    end_line: int  # 1-indexed
    end_column: int  # 0-indexed

    @classmethod
    def from_range(cls, uri: str, range_obj: dict[str, Any]) -> Location:
        start = range_obj.get("start", {})
        end = range_obj.get("end", {})
        return cls(
            file_path=uri_to_path(uri),
            start_line=start.get("line", 0) + 1,
            start_column=start.get("character", 0),
            end_line=end.get("line", 0) + 1,
            end_column=end.get("character", 0),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "file_path": self.file_path,
            "start_line": self.start_line,
            "start_column": self.start_column,
            "end_line": self.end_line,
            "end_column": self.end_column,
        }


@dataclass
class SymbolInfo:
    """A symbol found by workspace search or listed in a document."""

    name: str
    kind: str
    location: Location
    container_name: str | None = None
    detail: str | None = None
    children: list[SymbolInfo] = field(default_factory=list)


@dataclass
class HoverInfo:
    """Type and documentation text shown for a position."""

    contents: str
    location: Location | None = None


@dataclass
class Diagnostic:
    """A diagnostic message from the language server."""

    file_path: str
    line: int  # 1-indexed
    column: int  # 0-indexed
    end_line: int  # 1-indexed
    end_column: int  # 0-indexed
    message: str
    severity: str  # "error", "warning", "info", "hint"
    code: str | None
    source: str | None
    related: list[tuple[Location, str]] = field(default_factory=list)


@dataclass
class SignatureInfo:
    """One candidate signature from signature help."""

    label: str
    documentation: str | None
    parameters: list[str]


@dataclass
class SignatureHelp:
    signatures: list[SignatureInfo]
    active_signature: int = 0
    active_parameter: int = 0


@dataclass
class CodeAction:
    title: str
    kind: str | None
    edit: dict[str, Any] | None = None
    command: dict[str, Any] | None = None


@dataclass
class HierarchyItem:
    """An entry of a call or type hierarchy.

    ``raw`` keeps the server's item so it can be passed back in follow-up
    hierarchy requests.
    """

    name: str
    kind: str
    location: Location
    detail: str | None = None
    raw: dict[str, Any] = field(default_factory=dict, repr=False)


@dataclass
class CallHierarchyCall:
    item: HierarchyItem
    from_ranges: list[Location]


@dataclass
class InlayHint:
    line: int  # 1-indexed
    column: int  # 0-indexed
    label: str
    kind: str | None = None


def _text_of(value: Any) -> str:
    """Flatten MarkupContent, MarkedString or lists of them into text."""
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, dict):
        return str(value.get("value", ""))
    if isinstance(value, list):
        return "\n".join(part for part in (_text_of(item) for item in value) if part)
    return str(value)


class LspClient:
    """Typed operations on top of a Session.

    Provides async methods for common LSP operations:
    - get_definition / get_type_definition / get_implementations
    - get_references, get_hover, get_signature_help
    - get_document_symbols / get_workspace_symbols
    - get_code_actions / organize_imports
    - get_call_hierarchy / get_type_hierarchy / get_inlay_hints
    - get_diagnostics (from publishDiagnostics notifications)
    """

    def __init__(self, session: Session):
        """Initialize the client.

        Args:
            session: An initialized session
        """
        self._session = session
        self._diagnostics: dict[str, list[Diagnostic]] = {}
        self._published: dict[str, list[dict[str, Any]]] = {}
        self._diagnostic_events: dict[str, asyncio.Event] = {}
        self._unsubscribe = session.on_notification(
            "textDocument/publishDiagnostics", self._on_diagnostics
        )

    @property
    def session(self) -> Session:
        return self._session

    @property
    def project_root(self) -> Path:
        return self._session.workspace_root

    def close(self) -> None:
        """Stop collecting diagnostics."""
        self._unsubscribe()

    def _resolve_path(self, file_path: str | Path) -> str:
        """Resolve a file path relative to the workspace root."""
        path = Path(file_path)
        if not path.is_absolute():
            path = self.project_root / path
        return str(path.resolve())

    async def _open(self, file_path: str | Path) -> str:
        resolved = self._resolve_path(file_path)
        await self._session.ensure_document_open(resolved)
        return resolved

    async def _position_request(
        self,
        method: str,
        file_path: str | Path,
        line: int,
        column: int,
        **extra: Any,
    ) -> Any:
        resolved = await self._open(file_path)
        params = {
            "textDocument": {"uri": path_to_uri(resolved)},
            "position": {"line": line - 1, "character": column},
            **extra,
        }
        return await self._request(method, params)

    async def _request(self, method: str, params: Any) -> Any:
        try:
            return await self._session.request(method, params)
        except LspError as e:
            logger.error("LSP %s request failed: %s", method, e)
            raise

    # Navigation

    async def get_definition(self, file_path: str | Path, line: int, column: int) -> list[Location]:
        """Get definition location(s) for symbol at position."""
        result = await self._position_request("textDocument/definition", file_path, line, column)
        return self._parse_locations(result)

    async def get_type_definition(
        self, file_path: str | Path, line: int, column: int
    ) -> list[Location]:
        """Get the definition of the type of the symbol at position."""
        result = await self._position_request(
            "textDocument/typeDefinition", file_path, line, column
        )
        return self._parse_locations(result)

    async def get_implementations(
        self, file_path: str | Path, line: int, column: int
    ) -> list[Location]:
        """Get implementations of the interface or abstract member at position."""
        result = await self._position_request(
            "textDocument/implementation", file_path, line, column
        )
        return self._parse_locations(result)

    async def get_source_definition(
        self, file_path: str | Path, line: int, column: int
    ) -> list[Location]:
        """Get the source (not declaration file) definition via a server command."""
        resolved = await self._open(file_path)
        result = await self._session.execute_command(
            "_typescript.goToSourceDefinition",
            [path_to_uri(resolved), {"line": line - 1, "character": column}],
        )
        return self._parse_locations(result)

    async def get_references(
        self,
        file_path: str | Path,
        line: int,
        column: int,
        include_declaration: bool = True,
    ) -> list[Location]:
        """Get all references to symbol at position."""
        result = await self._position_request(
            "textDocument/references",
            file_path,
            line,
            column,
            context={"includeDeclaration": include_declaration},
        )
        return self._parse_locations(result)

    # Information

    async def get_hover(self, file_path: str | Path, line: int, column: int) -> HoverInfo | None:
        """Get hover information for symbol at position."""
        result = await self._position_request("textDocument/hover", file_path, line, column)
        if not isinstance(result, dict):
            return None
        contents = _text_of(result.get("contents")).strip()
        if not contents:
            return None
        location = None
        if isinstance(result.get("range"), dict):
            location = Location.from_range(path_to_uri(self._resolve_path(file_path)), result["range"])
        return HoverInfo(contents=contents, location=location)

    async def get_signature_help(
        self, file_path: str | Path, line: int, column: int
    ) -> SignatureHelp | None:
        """Get signatures of the call surrounding the position."""
        result = await self._position_request(
            "textDocument/signatureHelp", file_path, line, column
        )
        if not isinstance(result, dict) or not result.get("signatures"):
            return None
        signatures = [
            SignatureInfo(
                label=sig.get("label", ""),
                documentation=_text_of(sig.get("documentation")) or None,
                parameters=[_text_of(p.get("label")) for p in sig.get("parameters") or []],
            )
            for sig in result["signatures"]
        ]
        return SignatureHelp(
            signatures=signatures,
            active_signature=result.get("activeSignature") or 0,
            active_parameter=result.get("activeParameter") or 0,
        )

    async def get_inlay_hints(
        self, file_path: str | Path, start_line: int, end_line: int
    ) -> list[InlayHint]:
        """Get inlay hints for a line range (inclusive, 1-indexed)."""
        resolved = await self._open(file_path)
        result = await self._request(
            "textDocument/inlayHint",
            {
                "textDocument": {"uri": path_to_uri(resolved)},
                "range": {
                    "start": {"line": start_line - 1, "character": 0},
                    "end": {"line": end_line, "character": 0},
                },
            },
        )
        hints = []
        for item in result or []:
            position = item.get("position", {})
            label = item.get("label", "")
            if isinstance(label, list):
                label = "".join(part.get("value", "") for part in label)
            hints.append(
                InlayHint(
                    line=position.get("line", 0) + 1,
                    column=position.get("character", 0),
                    label=label,
                    kind={1: "type", 2: "parameter"}.get(item.get("kind")),
                )
            )
        return hints

    # Symbols

    async def get_workspace_symbols(self, query: str) -> list[SymbolInfo]:
        """Search symbols by name across the workspace."""
        result = await self._request("workspace/symbol", {"query": query})
        symbols = []
        for item in result or []:
            location = item.get("location") or {}
            if "uri" not in location:
                continue
            symbols.append(
                SymbolInfo(
                    name=item.get("name", ""),
                    kind=symbol_kind_name(item.get("kind", 0)),
                    location=Location.from_range(location["uri"], location.get("range", {})),
                    container_name=item.get("containerName"),
                )
            )
        return symbols

    async def get_document_symbols(self, file_path: str | Path) -> list[SymbolInfo]:
        """Get the symbol tree of a document."""
        resolved = await self._open(file_path)
        uri = path_to_uri(resolved)
        result = await self._request("textDocument/documentSymbol", {"textDocument": {"uri": uri}})
        return [self._parse_document_symbol(uri, item) for item in result or []]

    def _parse_document_symbol(self, uri: str, item: dict[str, Any]) -> SymbolInfo:
        # SymbolInformation carries its own location, DocumentSymbol a range
        if "location" in item:
            location = item["location"]
            return SymbolInfo(
                name=item.get("name", ""),
                kind=symbol_kind_name(item.get("kind", 0)),
                location=Location.from_range(location.get("uri", uri), location.get("range", {})),
                container_name=item.get("containerName"),
            )
        return SymbolInfo(
            name=item.get("name", ""),
            kind=symbol_kind_name(item.get("kind", 0)),
            location=Location.from_range(uri, item.get("range", {})),
            detail=item.get("detail"),
            children=[self._parse_document_symbol(uri, child) for child in item.get("children") or []],
        )

    # Refactoring

    async def get_code_actions(
        self,
        file_path: str | Path,
        start_line: int,
        end_line: int | None = None,
        only: list[str] | None = None,
    ) -> list[CodeAction]:
        """Get code actions available for a line range."""
        resolved = await self._open(file_path)
        uri = path_to_uri(resolved)
        end_line = start_line if end_line is None else end_line
        context: dict[str, Any] = {
            "diagnostics": [
                item
                for item in self._published.get(uri, [])
                if start_line - 1
                <= item.get("range", {}).get("start", {}).get("line", -1)
                <= end_line - 1
            ]
        }
        if only:
            context["only"] = only
        result = await self._request(
            "textDocument/codeAction",
            {
                "textDocument": {"uri": uri},
                "range": {
                    "start": {"line": start_line - 1, "character": 0},
                    "end": {"line": end_line - 1, "character": 0},
                },
                "context": context,
            },
        )
        actions = []
        for item in result or []:
            if "title" not in item:
                continue
            command = item.get("command")
            actions.append(
                CodeAction(
                    title=item["title"],
                    kind=item.get("kind"),
                    edit=item.get("edit"),
                    command=command if isinstance(command, dict) else None,
                )
            )
        return actions

    async def organize_imports(
        self,
        file_path: str | Path,
        skip_destructive_actions: bool | None = None,
    ) -> Any:
        """Ask the server to sort and prune the imports of a file."""
        resolved = await self._open(file_path)
        arguments: list[Any] = [resolved]
        if skip_destructive_actions is not None:
            arguments.append({"skipDestructiveCodeActions": skip_destructive_actions})
        return await self._session.execute_command("_typescript.organizeImports", arguments)

    # Hierarchies

    async def get_call_hierarchy(
        self,
        file_path: str | Path,
        line: int,
        column: int,
        direction: str = "incoming",
    ) -> list[CallHierarchyCall]:
        """Get callers ("incoming") or callees ("outgoing") of the function at position."""
        if direction not in ("incoming", "outgoing"):
            raise ValueError(f"Unknown call hierarchy direction: {direction}")
        items = await self._position_request(
            "textDocument/prepareCallHierarchy", file_path, line, column
        )
        if not items:
            return []

        key = "from" if direction == "incoming" else "to"
        calls: list[CallHierarchyCall] = []
        for item in items:
            result = await self._request(f"callHierarchy/{direction}Calls", {"item": item})
            for call in result or []:
                target = self._parse_hierarchy_item(call[key])
                # fromRanges are relative to the caller's document
                ranges_uri = call[key]["uri"] if direction == "incoming" else item["uri"]
                calls.append(
                    CallHierarchyCall(
                        item=target,
                        from_ranges=[
                            Location.from_range(ranges_uri, r) for r in call.get("fromRanges") or []
                        ],
                    )
                )
        return calls

    async def get_type_hierarchy(
        self,
        file_path: str | Path,
        line: int,
        column: int,
        direction: str = "supertypes",
    ) -> list[HierarchyItem]:
        """Get supertypes or subtypes of the type at position."""
        if direction not in ("supertypes", "subtypes"):
            raise ValueError(f"Unknown type hierarchy direction: {direction}")
        items = await self._position_request(
            "textDocument/prepareTypeHierarchy", file_path, line, column
        )
        related: list[HierarchyItem] = []
        for item in items or []:
            result = await self._request(f"typeHierarchy/{direction}", {"item": item})
            related.extend(self._parse_hierarchy_item(entry) for entry in result or [])
        return related

    def _parse_hierarchy_item(self, item: dict[str, Any]) -> HierarchyItem:
        return HierarchyItem(
            name=item.get("name", ""),
            kind=symbol_kind_name(item.get("kind", 0)),
            location=Location.from_range(item.get("uri", ""), item.get("range", {})),
            detail=item.get("detail"),
            raw=item,
        )

    # Diagnostics

    def get_diagnostics(self, file_path: str | Path) -> list[Diagnostic]:
        """Diagnostics last published for a file (empty if none yet)."""
        return list(self._diagnostics.get(path_to_uri(self._resolve_path(file_path)), []))

    async def wait_for_diagnostics(
        self, file_path: str | Path, timeout: float = 5.0
    ) -> list[Diagnostic]:
        """Open a file and wait until the server publishes diagnostics for it.

        Returns whatever has been published when the timeout expires.
        """
        resolved = await self._open(file_path)
        uri = path_to_uri(resolved)
        event = self._diagnostic_events.setdefault(uri, asyncio.Event())
        try:
            await asyncio.wait_for(event.wait(), timeout=timeout)
        except TimeoutError:
            logger.debug("No diagnostics published for %s within %ss", resolved, timeout)
        return self.get_diagnostics(resolved)

    def _on_diagnostics(self, params: Any) -> None:
        if not isinstance(params, dict) or "uri" not in params:
            return
        uri = params["uri"]
        raw_items = params.get("diagnostics") or []
        self._published[uri] = raw_items
        self._diagnostics[uri] = [self._parse_diagnostic(uri, item) for item in raw_items]
        self._diagnostic_events.setdefault(uri, asyncio.Event()).set()

    def _parse_diagnostic(self, uri: str, item: dict[str, Any]) -> Diagnostic:
        location = Location.from_range(uri, item.get("range", {}))
        code = item.get("code")
        related = []
        for info in item.get("relatedInformation") or []:
            loc = info.get("location", {})
            related.append(
                (Location.from_range(loc.get("uri", uri), loc.get("range", {})), info.get("message", ""))
            )
        return Diagnostic(
            file_path=location.file_path,
            line=location.start_line,
            column=location.start_column,
            end_line=location.end_line,
            end_column=location.end_column,
            message=item.get("message", ""),
            severity=SEVERITY_MAP.get(item.get("severity", 1), "error"),
            code=str(code) if code is not None else None,
            source=item.get("source"),
            related=related,
        )

    def _parse_locations(self, result: Any) -> list[Location]:
        """Parse Location, LocationLink, or lists of either into Location objects."""
        if not result:
            return []
        if isinstance(result, dict):
            result = [result]

        locations = []
        for item in result:
            if not isinstance(item, dict):
                continue
            if "targetUri" in item:
                # LocationLink format
                uri = item["targetUri"]
                range_obj = item.get("targetSelectionRange") or item.get("targetRange", {})
            elif "uri" in item:
                uri = item["uri"]
                range_obj = item.get("range", {})
            else:
                logger.warning("Failed to parse location: %s", item)
                continue
            locations.append(Location.from_range(uri, range_obj))
        return locations
