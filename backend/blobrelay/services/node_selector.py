"""Backend node selection — round-robin over healthy nodes with failure backoff."""

from __future__ import annotations

import itertools
import logging
import time
from typing import Callable

from blobrelay.exceptions import RateLimitedError
from blobrelay.services.node_registry import BackendNode, NodeRegistry

logger = logging.getLogger(__name__)


class NodeSelector:
    """Picks a node per attempt and keeps the per-node failure accounting.

    A node with a failure streak of N is skipped until N * recovery_seconds
    have passed since its last failure; once it passes that check its streak
    is reset and the next attempt decides. After failure_limit consecutive
    failures the node is retired for the rest of the process lifetime.
    """

    def __init__(
        self,
        registry: NodeRegistry,
        recovery_seconds: float = 60.0,
        clock: Callable[[], float] = time.time,
    ):
        self._registry = registry
        self._recovery_seconds = recovery_seconds
        self._clock = clock
        # Shared by concurrent requests
        self._counter = itertools.count()

    def _is_eligible(self, node: BackendNode, now: float) -> bool:
        if not node.active:
            return False
        if node.consecutive_failures > 0:
            quiet_for = now - node.last_failure_at
            if quiet_for < self._recovery_seconds * node.consecutive_failures:
                return False
            logger.info(
                "Node %s recovered after %.0fs quiet (streak was %d)",
                node.id, quiet_for, node.consecutive_failures,
            )
            node.consecutive_failures = 0
        return True

    def select_node(self) -> BackendNode | None:
        """Return the next node to try, or None if no usable node exists."""
        nodes = self._registry.nodes
        if not nodes:
            return None

        now = self._clock()
        eligible = [node for node in nodes if self._is_eligible(node, now)]
        tick = next(self._counter)

        if eligible:
            return eligible[tick % len(eligible)]

        # Nothing healthy: retry a node still in backoff rather than fail outright.
        # Retired nodes stay out for good.
        fallback = [node for node in nodes if node.active]
        if not fallback:
            return None
        node = fallback[tick % len(fallback)]
        logger.debug("No eligible nodes, falling back to %s", node.id)
        return node

    def record_failure(self, node: BackendNode, error: Exception | None = None) -> None:
        node.consecutive_failures += 1
        node.total_failures += 1
        node.last_failure_at = self._clock()
        node.last_failure_reason = str(error) if error else None
        if isinstance(error, RateLimitedError):
            node.rate_limit_hits += 1

        logger.warning(
            "Node %s failed (%d in a row, %d total): %s",
            node.id, node.consecutive_failures, node.total_failures, error,
        )

        if node.active and node.consecutive_failures >= self._registry.failure_limit:
            node.active = False
            logger.error(
                "Node %s retired after %d consecutive failures",
                node.id, node.consecutive_failures,
            )

    def record_success(self, node: BackendNode) -> None:
        # Does not resurrect a retired node
        node.consecutive_failures = 0
