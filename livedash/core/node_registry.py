"""Registry of reachable cluster nodes.

The registry always contains the local node. Peers join and leave through
`node_up` / `node_down`, which broadcast `NodeUp` / `NodeDown` to every
subscriber. Sessions read `current_nodes()` snapshots and never mutate them.
"""

from __future__ import annotations

import logging
from typing import Callable, Iterable, Optional

from livedash.core.events import NodeDown, NodeEvent, NodeUp

logger = logging.getLogger(__name__)

NodeListener = Callable[[NodeEvent], None]


class Subscription:
    """Handle returned by `NodeRegistry.subscribe`; cancel it to stop delivery."""

    def __init__(self, registry: "NodeRegistry", listener: NodeListener) -> None:
        self._registry = registry
        self.listener = listener
        self.active = True

    def cancel(self) -> None:
        """Stop delivering node events to this listener. Safe to call twice."""
        if not self.active:
            return
        self.active = False
        self._registry._unsubscribe(self)


class NodeRegistry:
    """In-memory set of reachable nodes with join/leave notifications."""

    def __init__(self, local_node: str, peers: Iterable[str] = ()) -> None:
        if not local_node:
            raise ValueError("local node name must not be empty")
        self.local_node = local_node
        self._peers: list[str] = []
        for peer in peers:
            if peer != local_node and peer not in self._peers:
                self._peers.append(peer)
        self._subscriptions: list[Subscription] = []

    def current_nodes(self) -> tuple[str, ...]:
        """Snapshot of reachable nodes, local node first."""
        return (self.local_node, *self._peers)

    def find(self, name: object) -> Optional[str]:
        """Return the node whose name equals `name`, or None when unknown."""
        if not isinstance(name, str):
            return None
        for node in self.current_nodes():
            if node == name:
                return node
        return None

    def is_reachable(self, node: str) -> bool:
        return self.find(node) is not None

    def subscribe(self, listener: NodeListener) -> Subscription:
        """Register a listener for node join/leave events."""
        subscription = Subscription(self, listener)
        self._subscriptions.append(subscription)
        logger.debug("Node subscription added (total: %d)", len(self._subscriptions))
        return subscription

    def _unsubscribe(self, subscription: Subscription) -> None:
        try:
            self._subscriptions.remove(subscription)
        except ValueError:
            return
        logger.debug("Node subscription removed (total: %d)", len(self._subscriptions))

    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    def node_up(self, node: str) -> None:
        """Record that `node` joined the cluster and notify subscribers."""
        if node == self.local_node:
            return
        if node not in self._peers:
            self._peers.append(node)
            logger.info("Node up: %s", node)
        self._broadcast(NodeUp(node))

    def node_down(self, node: str) -> None:
        """Record that `node` left the cluster and notify subscribers."""
        if node == self.local_node:
            logger.warning("Ignoring nodedown for the local node %s", node)
            return
        if node in self._peers:
            self._peers.remove(node)
            logger.info("Node down: %s", node)
        self._broadcast(NodeDown(node))

    def _broadcast(self, event: NodeEvent) -> None:
        for subscription in list(self._subscriptions):
            if not subscription.active:
                continue
            try:
                subscription.listener(event)
            except Exception as e:  # pylint: disable=broad-exception-caught
                logger.error("Node listener failed for %s: %s", event, e, exc_info=True)
