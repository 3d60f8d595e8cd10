"""Backend node registry — the pool of blob-sink channels and their health."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable

logger = logging.getLogger(__name__)

DEFAULT_FAILURE_LIMIT = 5


@dataclass(eq=False)
class BackendNode:
    """One credentialed channel to the blob sink.

    Health fields are process-local telemetry: mutated in place by every
    transfer attempt, never persisted, and not synchronized between
    concurrent requests.
    """

    id: str
    credential: str
    display_name: str
    active: bool = True
    consecutive_failures: int = 0
    total_failures: int = 0  # lifetime, never reset
    last_failure_at: float = 0.0  # epoch seconds, 0 = never failed
    last_failure_reason: str | None = None
    rate_limit_hits: int = 0

    def __repr__(self) -> str:
        # Keep the credential out of logs
        return (
            f"<BackendNode(id={self.id}, active={self.active}, "
            f"consecutive_failures={self.consecutive_failures})>"
        )


class NodeRegistry:
    """Holds the configured nodes for the lifetime of one process."""

    def __init__(
        self,
        credentials: Iterable[str],
        failure_limit: int = DEFAULT_FAILURE_LIMIT,
        name_prefix: str = "blobrelay bot",
    ):
        self.failure_limit = failure_limit
        self._nodes: list[BackendNode] = []
        for position, credential in enumerate(credentials, start=1):
            if not credential:
                continue
            self._nodes.append(
                BackendNode(
                    id=f"bot_{position}",
                    credential=credential,
                    display_name=f"{name_prefix} {position}",
                )
            )
        self._by_id = {node.id: node for node in self._nodes}

        if not self._nodes:
            logger.warning(
                "No backend nodes configured (BLOBRELAY_BOT_TOKENS) — uploads will fail"
            )
        else:
            logger.info("%d backend node(s) loaded", len(self._nodes))

    @property
    def nodes(self) -> list[BackendNode]:
        return self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    def get(self, node_id: str) -> BackendNode | None:
        return self._by_id.get(node_id)

    def is_available(self) -> bool:
        """True if at least one node is theoretically usable."""
        return any(
            node.active or node.consecutive_failures < self.failure_limit
            for node in self._nodes
        )

    def status(self) -> list[dict]:
        """Health snapshot for monitoring; never includes credentials."""
        return [
            {
                "id": node.id,
                "name": node.display_name,
                "active": node.active,
                "consecutive_failures": node.consecutive_failures,
                "total_failures": node.total_failures,
                "rate_limit_hits": node.rate_limit_hits,
                "last_failure_at": (
                    datetime.fromtimestamp(node.last_failure_at, tz=timezone.utc)
                    if node.last_failure_at
                    else None
                ),
                "last_failure_reason": node.last_failure_reason,
            }
            for node in self._nodes
        ]
