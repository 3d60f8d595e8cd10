"""Tests for the backend node registry."""

from blobrelay.services.node_registry import NodeRegistry


def test_nodes_get_positional_ids():
    registry = NodeRegistry(["a", "", "c"])
    assert [n.id for n in registry.nodes] == ["bot_1", "bot_3"]
    assert registry.get("bot_3").credential == "c"
    assert registry.get("bot_2") is None


def test_empty_registry_is_unavailable():
    registry = NodeRegistry([])
    assert len(registry) == 0
    assert registry.is_available() is False


def test_available_until_every_node_retired():
    registry = NodeRegistry(["a", "b"], failure_limit=5)
    first, second = registry.nodes
    first.active = False
    first.consecutive_failures = 5
    assert registry.is_available() is True

    second.active = False
    second.consecutive_failures = 5
    assert registry.is_available() is False


def test_status_never_exposes_credentials():
    registry = NodeRegistry(["secret-token"])
    node = registry.nodes[0]
    node.last_failure_at = 1_700_000_000.0
    node.last_failure_reason = "boom"

    entry = registry.status()[0]
    assert "secret-token" not in str(entry)
    assert "secret-token" not in repr(node)
    assert entry["id"] == "bot_1"
    assert entry["last_failure_at"].year == 2023
    assert entry["last_failure_reason"] == "boom"
