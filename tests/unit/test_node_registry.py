"""Unit tests for the node registry."""

import pytest

from livedash.core.events import NodeDown, NodeUp
from livedash.core.node_registry import NodeRegistry

pytestmark = pytest.mark.unit


def test_current_nodes_lists_local_first_and_dedups_peers():
    registry = NodeRegistry("a@host", ["b@host", "a@host", "b@host", "c@host"])

    assert registry.current_nodes() == ("a@host", "b@host", "c@host")


def test_empty_local_node_is_rejected():
    with pytest.raises(ValueError):
        NodeRegistry("")


def test_find_matches_exact_names_only():
    registry = NodeRegistry("a@host", ["b@host"])

    assert registry.find("b@host") == "b@host"
    assert registry.find("B@host") is None
    assert registry.find(None) is None
    assert registry.find(42) is None


def test_node_up_and_down_notify_subscribers():
    registry = NodeRegistry("a@host")
    events = []
    registry.subscribe(events.append)

    registry.node_up("b@host")
    registry.node_up("b@host")
    registry.node_down("b@host")

    assert events == [NodeUp("b@host"), NodeUp("b@host"), NodeDown("b@host")]
    assert registry.current_nodes() == ("a@host",)


def test_local_node_never_goes_down():
    registry = NodeRegistry("a@host")
    events = []
    registry.subscribe(events.append)

    registry.node_down("a@host")

    assert events == []
    assert registry.is_reachable("a@host")


def test_snapshot_is_not_affected_by_later_changes():
    registry = NodeRegistry("a@host", ["b@host"])
    snapshot = registry.current_nodes()

    registry.node_down("b@host")

    assert snapshot == ("a@host", "b@host")


def test_cancelled_subscription_stops_delivery():
    registry = NodeRegistry("a@host")
    events = []
    subscription = registry.subscribe(events.append)

    subscription.cancel()
    subscription.cancel()
    registry.node_up("b@host")

    assert events == []
    assert registry.subscriber_count() == 0
    assert subscription.active is False


def test_failing_listener_does_not_block_others():
    registry = NodeRegistry("a@host")
    events = []

    def broken(event):
        raise RuntimeError("boom")

    registry.subscribe(broken)
    registry.subscribe(events.append)

    registry.node_up("b@host")

    assert events == [NodeUp("b@host")]
