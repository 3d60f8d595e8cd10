"""Blob transfer primitive — one opaque blob to/from one node, with retries."""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Awaitable, Callable, Iterable, TypeVar

from blobrelay.config import settings
from blobrelay.exceptions import (
    BackendUnavailableError,
    BlobRelayError,
    TransportError,
    UnknownNodeError,
)
from blobrelay.services.node_registry import NodeRegistry
from blobrelay.services.node_selector import NodeSelector
from blobrelay.services.telegram_backend import BlobBackend

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    max_retries: int = 5  # attempts beyond the first
    initial_delay: float = 1.0
    multiplier: float = 2.0
    max_delay: float = 10.0
    jitter: float = 0.1

    @classmethod
    def from_settings(cls) -> RetryPolicy:
        return cls(
            max_retries=settings.max_retries,
            initial_delay=settings.retry_initial_delay_seconds,
            multiplier=settings.retry_backoff_multiplier,
            max_delay=settings.retry_max_delay_seconds,
            jitter=settings.retry_jitter,
        )

    def backoff(self, attempt: int, rand: Callable[[], float] = random.random) -> float:
        """Delay before retrying after the given 0-based attempt, jittered by ±jitter."""
        base = min(self.initial_delay * self.multiplier**attempt, self.max_delay)
        return base * (1 + self.jitter * (2 * rand() - 1))


@dataclass(frozen=True)
class BlobRef:
    node_id: str
    blob_id: str


class BlobTransfer:
    """The only layer that retries backend calls.

    Upload picks a node per attempt through the selector and feeds the
    outcome back into its health accounting. Download is pinned to the node
    that holds the blob and leaves node health untouched.
    """

    def __init__(
        self,
        registry: NodeRegistry,
        selector: NodeSelector,
        backend: BlobBackend,
        retry: RetryPolicy | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        call_timeout: float | None = None,
    ):
        self._registry = registry
        self._selector = selector
        self._backend = backend
        self._retry = retry or RetryPolicy()
        self._sleep = sleep
        self._call_timeout = call_timeout

    @property
    def registry(self) -> NodeRegistry:
        return self._registry

    def is_available(self) -> bool:
        return self._registry.is_available()

    async def _bounded(self, call: Awaitable[T]) -> T:
        # A hung backend call must fail into the retry loop, not block forever
        if self._call_timeout is None:
            return await call
        return await asyncio.wait_for(call, self._call_timeout)

    async def upload(self, data: bytes, name: str) -> BlobRef:
        if not self._registry.is_available():
            raise BackendUnavailableError()

        attempts = self._retry.max_retries + 1
        last_error: Exception | None = None

        for attempt in range(attempts):
            node = self._selector.select_node()
            if node is None:
                raise BackendUnavailableError()

            try:
                blob_id = await self._bounded(self._backend.upload(node, data, name))
            except (BlobRelayError, OSError, asyncio.TimeoutError) as e:
                last_error = e
                self._selector.record_failure(node, e)
                if attempt < attempts - 1:
                    delay = self._retry.backoff(attempt)
                    logger.info(
                        "Upload attempt %d/%d of %s (%d bytes) failed on %s, retrying in %.1fs",
                        attempt + 1, attempts, name, len(data), node.id, delay,
                    )
                    await self._sleep(delay)
                continue

            self._selector.record_success(node)
            logger.debug("Stored %s (%d bytes) on %s", name, len(data), node.id)
            return BlobRef(node_id=node.id, blob_id=blob_id)

        logger.error("Upload of %s gave up after %d attempts: %s", name, attempts, last_error)
        raise TransportError("upload", attempts, last_error)

    async def download(self, node_id: str, blob_id: str) -> bytes:
        node = self._registry.get(node_id)
        if node is None:
            raise UnknownNodeError(node_id)

        attempts = self._retry.max_retries + 1
        last_error: Exception | None = None

        for attempt in range(attempts):
            try:
                return await self._bounded(self._backend.download(node, blob_id))
            except (BlobRelayError, OSError, asyncio.TimeoutError) as e:
                last_error = e
                if attempt < attempts - 1:
                    delay = self._retry.backoff(attempt)
                    logger.info(
                        "Download attempt %d/%d from %s failed, retrying in %.1fs: %s",
                        attempt + 1, attempts, node_id, delay, e,
                    )
                    await self._sleep(delay)

        logger.error("Download from %s gave up after %d attempts: %s", node_id, attempts, last_error)
        raise TransportError("download", attempts, last_error)

    async def delete(self, node_id: str, blob_id: str) -> None:
        """The sink has no delete call; the reference is only logged."""
        log_orphaned_blobs([BlobRef(node_id=node_id, blob_id=blob_id)], "delete requested")


def log_orphaned_blobs(refs: Iterable[BlobRef], reason: str) -> None:
    """The blob sink cannot delete; record unreferenced blobs for offline reconciliation."""
    refs = list(refs)
    if not refs:
        return
    logger.warning(
        "Orphaned %d blob(s) (%s): %s",
        len(refs), reason, ", ".join(f"{r.node_id}:{r.blob_id}" for r in refs),
    )
