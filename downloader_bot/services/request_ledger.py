# downloader_bot/services/request_ledger.py

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from typing import Callable

from ..config import DEFAULT_REQUEST_MAX_AGE_HOURS, logger
from .media_data import Metadata
from ..utils import random_string


@dataclass(frozen=True)
class PendingRequest:
    """A resolved link waiting for the user to pick a format."""

    chat_id: int
    origin_message_id: int
    canonical_url: str
    adapter_id: str
    metadata: Metadata
    created_at: float = field(default_factory=time.monotonic)


class RequestLedger:
    """
    In-memory map of request id -> PendingRequest. Each id can be consumed
    exactly once; entries older than `max_age` seconds count as expired.
    """

    def __init__(
        self,
        *,
        max_age: float = DEFAULT_REQUEST_MAX_AGE_HOURS * 60 * 60,
        clock: Callable[[], float] | None = None,
    ) -> None:
        self.max_age = max_age
        self._clock = clock or time.monotonic
        self._requests: dict[str, PendingRequest] = {}
        self._lock = threading.Lock()

    def create(
        self,
        chat_id: int,
        origin_message_id: int,
        final_url: str,
        adapter_id: str,
        metadata: Metadata,
    ) -> str:
        request = PendingRequest(
            chat_id=chat_id,
            origin_message_id=origin_message_id,
            canonical_url=final_url,
            adapter_id=adapter_id,
            metadata=metadata,
            created_at=self._clock(),
        )
        with self._lock:
            request_id = random_string()
            while request_id in self._requests:
                request_id = random_string()
            self._requests[request_id] = request
        logger.info(
            f"[LEDGER] Request {request_id} created for chat {chat_id} "
            f"(message {origin_message_id}): {final_url}"
        )
        return request_id

    def consume(self, request_id: str) -> PendingRequest | None:
        """Removes and returns the request; None if unknown, consumed or expired."""
        with self._lock:
            request = self._requests.pop(request_id, None)
        if request is None:
            return None
        if self._clock() - request.created_at > self.max_age:
            logger.info(f"[LEDGER] Request {request_id} expired before use.")
            return None
        return request

    def purge_expired(self) -> int:
        now = self._clock()
        with self._lock:
            expired = [
                request_id
                for request_id, request in self._requests.items()
                if now - request.created_at > self.max_age
            ]
            for request_id in expired:
                del self._requests[request_id]
        if expired:
            logger.info(f"[LEDGER] Purged {len(expired)} expired request(s).")
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._requests)
