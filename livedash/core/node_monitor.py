"""Peer liveness via periodic health checks.

Each peer with a known base URL is polled at `GET <url>/health`. A peer that
answers is brought up in the `NodeRegistry`; a peer that misses
`offline_threshold` consecutive polls is taken down. The registry broadcasts
the change to every live session as `NodeUp` / `NodeDown`.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Mapping, Optional

import httpx

from livedash.constants import PEER_HEALTH_TIMEOUT_S, PEER_HEARTBEAT_INTERVAL_S, PEER_OFFLINE_THRESHOLD
from livedash.core.node_registry import NodeRegistry

logger = logging.getLogger(__name__)


class NodeMonitor:
    """Keeps the registry's peer set in line with which peers answer."""

    def __init__(
        self,
        registry: NodeRegistry,
        peer_urls: Mapping[str, str],
        *,
        interval: float = PEER_HEARTBEAT_INTERVAL_S,
        timeout: float = PEER_HEALTH_TIMEOUT_S,
        offline_threshold: int = PEER_OFFLINE_THRESHOLD,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.registry = registry
        self.peer_urls = {node: url.rstrip("/") for node, url in peer_urls.items() if node != registry.local_node}
        self.interval = interval
        self.timeout = timeout
        self.offline_threshold = offline_threshold
        self._client = client
        self._owns_client = client is None
        self._failures: dict[str, int] = {node: 0 for node in self.peer_urls}
        self._task: Optional[asyncio.Task[None]] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        """Start the heartbeat loop in a background task."""
        if self.running:
            logger.warning("Node monitor already running; skipping start")
            return
        self._task = asyncio.create_task(self._heartbeat_loop(), name="livedash-node-monitor")
        logger.info("Node monitor started for %d peers (every %.1fs)", len(self.peer_urls), self.interval)

    async def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            await asyncio.gather(self._task, return_exceptions=True)
            self._task = None
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def _heartbeat_loop(self) -> None:
        while True:
            try:
                await self.check_once()
            except Exception as e:  # pylint: disable=broad-exception-caught
                logger.error("Peer health check failed: %s", e, exc_info=True)
            await asyncio.sleep(self.interval)

    async def check_once(self) -> None:
        """Poll every peer once and apply the results to the registry."""
        if not self.peer_urls:
            return
        nodes = list(self.peer_urls)
        results = await asyncio.gather(*(self._ping(self.peer_urls[node]) for node in nodes))
        for node, alive in zip(nodes, results):
            self._apply(node, alive)

    def _apply(self, node: str, alive: bool) -> None:
        if alive:
            self._failures[node] = 0
            if not self.registry.is_reachable(node):
                logger.info("Peer %s answered its health check", node)
                self.registry.node_up(node)
            return

        self._failures[node] = self._failures.get(node, 0) + 1
        if self._failures[node] >= self.offline_threshold and self.registry.is_reachable(node):
            logger.warning("Peer %s missed %d health checks; marking down", node, self._failures[node])
            self.registry.node_down(node)

    async def _ping(self, url: str) -> bool:
        client = self._get_client()
        try:
            response = await client.get(f"{url}/health")
        except httpx.HTTPError as e:
            logger.debug("Health check %s failed: %s", url, e)
            return False
        return response.status_code == 200

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client
