"""Open-document bookkeeping for a session."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from lspmux_core.lsp.exceptions import DocumentReadError
from lspmux_core.lsp.languages import LanguageId, detect_language_id
from lspmux_core.lsp.protocol import path_to_uri

logger = logging.getLogger(__name__)

# Content sent for documents that do not exist on disk
PLACEHOLDER_TEXT = "// File not found\n"


@dataclass(frozen=True)
class OpenDocument:
    """A document announced to the server with didOpen."""

    uri: str
    language_id: LanguageId
    version: int = 1
    placeholder: bool = False


class DocumentTracker:
    """Tracks which documents the server has been told are open.

    Opening is idempotent per URI: a tracked document is never announced
    twice. Missing files are opened with placeholder content so requests
    that reference them still reach the server.
    """

    def __init__(self, notify: Callable[[str, Any], None]):
        """Initialize the tracker.

        Args:
            notify: Callable that sends a notification to the server
        """
        self._notify = notify
        self._documents: dict[str, OpenDocument] = {}

    def __len__(self) -> int:
        return len(self._documents)

    def __contains__(self, path: object) -> bool:
        if not isinstance(path, (str, Path)):
            return False
        return path_to_uri(path) in self._documents

    @property
    def uris(self) -> list[str]:
        return list(self._documents)

    def get(self, path: str | Path) -> OpenDocument | None:
        return self._documents.get(path_to_uri(path))

    async def ensure_open(self, path: str | Path) -> OpenDocument:
        """Open ``path`` on the server unless it is already open.

        Raises:
            DocumentReadError: If the file exists but cannot be read
        """
        uri = path_to_uri(path)
        existing = self._documents.get(uri)
        if existing is not None:
            return existing

        language_id = detect_language_id(path)
        placeholder = False
        try:
            text = await asyncio.to_thread(Path(path).read_text, encoding="utf-8")
        except FileNotFoundError:
            logger.debug("Opening placeholder for missing file %s", path)
            text = PLACEHOLDER_TEXT
            placeholder = True
        except (OSError, UnicodeDecodeError) as e:
            raise DocumentReadError(str(path), e) from e

        # Another caller may have opened it while the file was being read
        existing = self._documents.get(uri)
        if existing is not None:
            return existing

        document = OpenDocument(uri=uri, language_id=language_id, placeholder=placeholder)
        self._notify(
            "textDocument/didOpen",
            {
                "textDocument": {
                    "uri": uri,
                    "languageId": language_id.value,
                    "version": document.version,
                    "text": text,
                }
            },
        )
        self._documents[uri] = document
        return document

    async def close(self, path: str | Path) -> bool:
        """Close ``path`` if it is open.

        Returns:
            True if a didClose was sent
        """
        uri = path_to_uri(path)
        if uri not in self._documents:
            return False
        self._notify("textDocument/didClose", {"textDocument": {"uri": uri}})
        del self._documents[uri]
        return True

    async def close_all(self) -> None:
        """Close every tracked document, ignoring send failures, then forget them."""
        for uri in list(self._documents):
            try:
                self._notify("textDocument/didClose", {"textDocument": {"uri": uri}})
            except Exception as e:
                logger.debug("Ignoring didClose failure for %s: %s", uri, e)
        self._documents.clear()
