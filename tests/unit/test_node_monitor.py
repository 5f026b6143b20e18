"""Unit tests for peer health checks feeding the node registry."""

from __future__ import annotations

import asyncio
from typing import Any

import httpx
import pytest

from livedash.api_server import APIServer
from livedash.config.schema import LiveDashConfig
from livedash.core.events import NodeDown, NodeUp
from livedash.core.node_monitor import NodeMonitor
from livedash.core.node_registry import NodeRegistry
from livedash.core.session_runner import SessionRunner
from tests.conftest import LOCAL, PEER, wait_for_frames

pytestmark = pytest.mark.unit

PEER_URL = "http://n1.internal:4000"


class FlakyPeer:
    """Health endpoint whose status the test flips."""

    def __init__(self) -> None:
        self.status = 200
        self.requests: list[str] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(str(request.url))
        if self.status is None:
            raise httpx.ConnectError("connection refused", request=request)
        return httpx.Response(self.status, json={"status": "ok", "node": PEER})


def _monitor(registry: NodeRegistry, peer: FlakyPeer, threshold: int = 1) -> NodeMonitor:
    client = httpx.AsyncClient(transport=httpx.MockTransport(peer))
    return NodeMonitor(registry, {PEER: PEER_URL + "/"}, offline_threshold=threshold, client=client)


@pytest.mark.asyncio
async def test_healthy_peer_stays_up(registry):
    peer = FlakyPeer()
    events = []
    registry.subscribe(events.append)
    monitor = _monitor(registry, peer)

    await monitor.check_once()

    assert peer.requests == [f"{PEER_URL}/health"]
    assert registry.current_nodes() == (LOCAL, PEER)
    assert events == []


@pytest.mark.asyncio
async def test_peer_goes_down_after_threshold(registry):
    peer = FlakyPeer()
    peer.status = 503
    events = []
    registry.subscribe(events.append)
    monitor = _monitor(registry, peer, threshold=2)

    await monitor.check_once()
    assert registry.current_nodes() == (LOCAL, PEER)

    await monitor.check_once()
    assert registry.current_nodes() == (LOCAL,)
    assert events == [NodeDown(PEER)]

    await monitor.check_once()
    assert events == [NodeDown(PEER)]


@pytest.mark.asyncio
async def test_unreachable_peer_comes_back(registry):
    peer = FlakyPeer()
    peer.status = None
    events = []
    registry.subscribe(events.append)
    monitor = _monitor(registry, peer)

    await monitor.check_once()
    peer.status = 200
    await monitor.check_once()

    assert events == [NodeDown(PEER), NodeUp(PEER)]
    assert registry.current_nodes() == (LOCAL, PEER)


@pytest.mark.asyncio
async def test_failed_poll_redirects_live_session(registry, catalog, probe, settings):
    frames: list[dict[str, Any]] = []

    async def push(frame: dict[str, Any]) -> None:
        frames.append(frame)

    runner = SessionRunner(registry, catalog, probe=probe, push=push, settings=settings)
    task = runner.start({"page": "home", "node": PEER})
    await wait_for_frames(frames, 1)

    peer = FlakyPeer()
    peer.status = None
    await _monitor(registry, peer).check_once()
    await asyncio.wait_for(task, 0.5)

    assert frames[-1] == {
        "type": "redirect",
        "to": f"/dashboard/{LOCAL}/home",
        "flash": {"error": f"Node {PEER} disconnected."},
    }
    assert registry.subscriber_count() == 0


@pytest.mark.asyncio
async def test_start_and_stop_run_the_heartbeat_loop(registry):
    peer = FlakyPeer()
    client = httpx.AsyncClient(transport=httpx.MockTransport(peer))
    monitor = NodeMonitor(registry, {PEER: PEER_URL}, interval=0.01, client=client)

    await monitor.start()
    await asyncio.sleep(0.05)
    await monitor.stop()

    assert len(peer.requests) >= 2
    assert not monitor.running
    await client.aclose()


def test_api_server_builds_monitor_from_config(registry, catalog, probe):
    config = LiveDashConfig.model_validate(
        {"node": {"name": LOCAL, "peer_urls": {PEER: PEER_URL}, "offline_threshold": 3}}
    )

    server = APIServer(registry, catalog, probe=probe, config=config)
    bare = APIServer(registry, catalog, probe=probe, config=LiveDashConfig())

    assert server.monitor is not None
    assert server.monitor.peer_urls == {PEER: PEER_URL}
    assert server.monitor.offline_threshold == 3
    assert bare.monitor is None
