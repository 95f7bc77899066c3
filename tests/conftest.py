"""Pytest configuration and fixtures."""

import sys
from pathlib import Path

import pytest
from lspmux_core.lsp import SessionConfig

STUB_SERVER = Path(__file__).parent / "fixtures" / "stub_lsp_server.py"


@pytest.fixture
def anyio_backend() -> str:
    """Use asyncio as the async backend."""
    return "asyncio"


@pytest.fixture
def stub_config() -> SessionConfig:
    """Session config that launches the scripted stub server."""
    return SessionConfig(
        command=sys.executable,
        args=[str(STUB_SERVER), "--stdio"],
        spawn_timeout=5.0,
        initialize_timeout=5.0,
        request_timeout=5.0,
        shutdown_timeout=1.0,
    )


@pytest.fixture
def project(tmp_path: Path) -> Path:
    """A minimal TypeScript project on disk."""
    root = tmp_path / "project"
    (root / "src").mkdir(parents=True)
    (root / "tsconfig.json").write_text('{"compilerOptions": {"strict": true}}')
    (root / "src" / "simple.ts").write_text(
        "export function greet(name: string): string {\n"
        "  return `Hello, ${name}`;\n"
        "}\n"
    )
    (root / "src" / "broken.ts").write_text("const x: number = 1;\nlet y: number = 'oops';\n")
    return root
