"""Tests for the typed LSP client."""

from pathlib import Path

import pytest
from lspmux_core.lsp import (
    LspClient,
    ProtocolError,
    Session,
    SessionConfig,
)
from lspmux_core.lsp.client import Location


class TestLocationParsing:
    """Tests for converting wire ranges into locations."""

    def test_from_range_is_one_indexed(self) -> None:
        location = Location.from_range(
            "file:///project/src/a.ts",
            {"start": {"line": 0, "character": 4}, "end": {"line": 2, "character": 1}},
        )
        assert location.file_path == "/project/src/a.ts"
        assert (location.start_line, location.start_column) == (1, 4)
        assert (location.end_line, location.end_column) == (3, 1)
        assert location.to_dict()["end_line"] == 3


class TestLspClient:
    """Tests for LspClient against the stub server."""

    @pytest.mark.anyio
    async def test_get_definition(self, stub_config: SessionConfig, project: Path) -> None:
        source = project / "src" / "simple.ts"
        async with Session(project, stub_config) as session:
            client = LspClient(session)
            locations = await client.get_definition(source, line=1, column=17)

        assert len(locations) == 1
        assert locations[0].file_path == str(source.resolve())
        assert locations[0].start_line == 1
        assert locations[0].start_column == 13

    @pytest.mark.anyio
    async def test_relative_paths_resolve_against_root(
        self, stub_config: SessionConfig, project: Path
    ) -> None:
        async with Session(project, stub_config) as session:
            client = LspClient(session)
            await client.get_definition("src/simple.ts", line=1, column=17)
            assert session.open_documents == [(project / "src" / "simple.ts").resolve().as_uri()]

    @pytest.mark.anyio
    async def test_get_references(self, stub_config: SessionConfig, project: Path) -> None:
        source = project / "src" / "simple.ts"
        async with Session(project, stub_config) as session:
            client = LspClient(session)
            with_declaration = await client.get_references(source, 1, 17)
            without_declaration = await client.get_references(
                source, 1, 17, include_declaration=False
            )

        assert [loc.start_line for loc in with_declaration] == [1, 5]
        assert [loc.start_line for loc in without_declaration] == [5]

    @pytest.mark.anyio
    async def test_get_hover(self, stub_config: SessionConfig, project: Path) -> None:
        async with Session(project, stub_config) as session:
            client = LspClient(session)
            hover = await client.get_hover(project / "src" / "simple.ts", 1, 17)

        assert hover is not None
        assert "function greet(name: string): string" in hover.contents
        assert hover.location is not None
        assert hover.location.start_line == 1

    @pytest.mark.anyio
    async def test_get_signature_help(self, stub_config: SessionConfig, project: Path) -> None:
        async with Session(project, stub_config) as session:
            client = LspClient(session)
            help_ = await client.get_signature_help(project / "src" / "simple.ts", 2, 20)

        assert help_ is not None
        assert help_.signatures[0].label == "greet(name: string): string"
        assert help_.signatures[0].documentation == "Say hello."
        assert help_.signatures[0].parameters == ["name: string"]

    @pytest.mark.anyio
    async def test_get_workspace_symbols(self, stub_config: SessionConfig, project: Path) -> None:
        async with Session(project, stub_config) as session:
            client = LspClient(session)
            symbols = await client.get_workspace_symbols("UserService")
            nothing = await client.get_workspace_symbols("")

        assert nothing == []
        assert len(symbols) == 1
        assert symbols[0].name == "UserService"
        assert symbols[0].kind == "class"
        assert symbols[0].container_name == "user"
        assert symbols[0].location.file_path == "/project/src/user.ts"
        assert symbols[0].location.start_line == 7

    @pytest.mark.anyio
    async def test_get_document_symbols(self, stub_config: SessionConfig, project: Path) -> None:
        async with Session(project, stub_config) as session:
            client = LspClient(session)
            symbols = await client.get_document_symbols(project / "src" / "simple.ts")

        assert [s.name for s in symbols] == ["UserService"]
        child = symbols[0].children[0]
        assert child.name == "getUser"
        assert child.kind == "method"
        assert child.detail == "(id: number) => User"
        assert child.location.start_line == 8

    @pytest.mark.anyio
    async def test_wait_for_diagnostics(self, stub_config: SessionConfig, project: Path) -> None:
        broken = project / "src" / "broken.ts"
        async with Session(project, stub_config) as session:
            client = LspClient(session)
            diagnostics = await client.wait_for_diagnostics(broken, timeout=5.0)
            clean = await client.wait_for_diagnostics(project / "src" / "simple.ts", timeout=0.2)

        assert clean == []
        assert len(diagnostics) == 1
        diagnostic = diagnostics[0]
        assert diagnostic.severity == "error"
        assert diagnostic.code == "2322"
        assert diagnostic.source == "typescript"
        assert (diagnostic.line, diagnostic.column) == (2, 4)
        assert "not assignable" in diagnostic.message
        assert client.get_diagnostics(broken) == diagnostics

    @pytest.mark.anyio
    async def test_code_actions_receive_published_diagnostics(
        self, stub_config: SessionConfig, project: Path
    ) -> None:
        broken = project / "src" / "broken.ts"
        async with Session(project, stub_config) as session:
            client = LspClient(session)
            await client.wait_for_diagnostics(broken)
            on_error_line = await client.get_code_actions(broken, start_line=2)
            elsewhere = await client.get_code_actions(broken, start_line=1)

        assert [a.title for a in on_error_line] == ["Organize Imports", "Fix 1 problem(s)"]
        assert on_error_line[0].kind == "source.organizeImports.ts"
        assert on_error_line[0].edit == {"changes": {}}
        assert elsewhere[1].title == "Fix 0 problem(s)"

    @pytest.mark.anyio
    async def test_incoming_calls(self, stub_config: SessionConfig, project: Path) -> None:
        source = project / "src" / "simple.ts"
        async with Session(project, stub_config) as session:
            client = LspClient(session)
            calls = await client.get_call_hierarchy(source, 1, 17, direction="incoming")

        assert len(calls) == 1
        assert calls[0].item.name == "main"
        assert calls[0].item.kind == "function"
        caller_path = str(source.resolve()).replace("simple.ts", "main.ts")
        assert calls[0].item.location.file_path == caller_path
        assert calls[0].from_ranges[0].file_path == caller_path
        assert calls[0].from_ranges[0].start_line == 4

    @pytest.mark.anyio
    async def test_call_hierarchy_rejects_unknown_direction(
        self, stub_config: SessionConfig, project: Path
    ) -> None:
        async with Session(project, stub_config) as session:
            client = LspClient(session)
            with pytest.raises(ValueError):
                await client.get_call_hierarchy(project / "src" / "simple.ts", 1, 1, "sideways")

    @pytest.mark.anyio
    async def test_server_error_propagates(self, stub_config: SessionConfig, project: Path) -> None:
        """A method the server does not handle surfaces as ProtocolError."""
        async with Session(project, stub_config) as session:
            client = LspClient(session)
            with pytest.raises(ProtocolError) as exc_info:
                await client.get_type_hierarchy(project / "src" / "simple.ts", 1, 17)

        assert exc_info.value.code == -32601
        assert "prepareTypeHierarchy" in str(exc_info.value)

    @pytest.mark.anyio
    async def test_close_stops_collecting_diagnostics(
        self, stub_config: SessionConfig, project: Path
    ) -> None:
        broken = project / "src" / "broken.ts"
        async with Session(project, stub_config) as session:
            client = LspClient(session)
            client.close()
            await session.ensure_document_open(broken)
            await session.request("test/echo", None)

        assert client.get_diagnostics(broken) == []
