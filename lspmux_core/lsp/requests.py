"""Request id allocation and response correlation."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from lspmux_core.lsp.exceptions import LspError, ProtocolError, RequestTimeoutError
from lspmux_core.lsp.protocol import make_request

logger = logging.getLogger(__name__)


@dataclass
class PendingRequest:
    """A request that has been written but not yet answered."""

    id: int
    method: str
    future: asyncio.Future[Any]
    deadline: float
    created_at: float = field(default_factory=time.monotonic)
    timer: asyncio.TimerHandle | None = None

    def cancel_timer(self) -> None:
        """Stop the timeout callback."""
        if self.timer is not None:
            self.timer.cancel()
            self.timer = None


class RequestRegistry:
    """Tracks in-flight requests by id.

    Ids come from a monotonic counter and are never reused. Every pending
    request ends exactly once: on its response, on its timeout, when its
    future is cancelled, or when the registry is failed as a whole. Whichever
    happens first removes the entry, so later arrivals for the same id are
    ignored.
    """

    def __init__(
        self,
        write: Callable[[dict[str, Any]], None],
        default_timeout: float = 10.0,
    ):
        """Initialize the registry.

        Args:
            write: Callable that frames and writes a message to the server
            default_timeout: Seconds before an unanswered request is rejected
        """
        self._write = write
        self._default_timeout = default_timeout
        self._next_id = 0
        self._pending: dict[int, PendingRequest] = {}

    def __len__(self) -> int:
        return len(self._pending)

    def __contains__(self, request_id: object) -> bool:
        return request_id in self._pending

    @property
    def last_id(self) -> int:
        """The most recently allocated id (0 before the first request)."""
        return self._next_id

    def send(self, method: str, params: Any, timeout: float | None = None) -> asyncio.Future[Any]:
        """Issue a request and return a future for its result.

        Must be called with a running event loop.

        Args:
            method: LSP method name
            params: Request parameters
            timeout: Override for the default timeout (used by the handshake)

        Returns:
            Future resolved with the result, or failed with ProtocolError or
            RequestTimeoutError
        """
        loop = asyncio.get_running_loop()
        self._next_id += 1
        request_id = self._next_id
        timeout = self._default_timeout if timeout is None else timeout

        pending = PendingRequest(
            id=request_id,
            method=method,
            future=loop.create_future(),
            deadline=loop.time() + timeout,
        )
        self._pending[request_id] = pending

        try:
            self._write(make_request(request_id, method, params))
        except BaseException:
            del self._pending[request_id]
            raise

        pending.timer = loop.call_at(pending.deadline, self._expire, request_id, timeout)
        pending.future.add_done_callback(lambda future: self._forget_cancelled(request_id, future))
        logger.debug("Sent request %d: %s", request_id, method)
        return pending.future

    def complete(
        self,
        request_id: Any,
        result: Any = None,
        error: dict[str, Any] | None = None,
    ) -> bool:
        """Resolve or reject the request matching ``request_id``.

        Returns:
            True if a pending request was completed, False if the id was unknown
        """
        pending = self._pending.pop(request_id, None)
        if pending is None:
            logger.debug("Ignoring response for unknown request id %r", request_id)
            return False

        pending.cancel_timer()
        if pending.future.done():
            return False
        if error is not None:
            pending.future.set_exception(ProtocolError.from_error(error))
        else:
            pending.future.set_result(result)
        return True

    def fail_all(self, make_error: Callable[[], LspError]) -> int:
        """Reject every pending request and clear the table.

        Args:
            make_error: Factory giving each waiter its own exception instance

        Returns:
            Number of requests rejected
        """
        pending = list(self._pending.values())
        self._pending.clear()
        for entry in pending:
            entry.cancel_timer()
            if not entry.future.done():
                entry.future.set_exception(make_error())
        return len(pending)

    def _forget_cancelled(self, request_id: int, future: asyncio.Future[Any]) -> None:
        if not future.cancelled():
            return
        pending = self._pending.pop(request_id, None)
        if pending is not None:
            pending.cancel_timer()
            logger.debug("Request %d (%s) cancelled by caller", request_id, pending.method)

    def _expire(self, request_id: int, timeout: float) -> None:
        pending = self._pending.pop(request_id, None)
        if pending is None:
            return
        pending.timer = None
        logger.debug("Request %d (%s) timed out after %ss", request_id, pending.method, timeout)
        if not pending.future.done():
            pending.future.set_exception(RequestTimeoutError(pending.method, timeout))
