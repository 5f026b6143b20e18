"""In-process tests for the HTTP and WebSocket surface."""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from livedash.api_server import APIServer
from livedash.config.schema import LiveDashConfig
from livedash.core.capabilities import Capabilities, StaticProbe
from livedash.core.node_registry import NodeRegistry
from livedash.core.pages import PageCatalog
from tests.conftest import LOCAL, PEER, HomeModule, MetricsModule

pytestmark = pytest.mark.integration


@pytest.fixture
def server() -> APIServer:
    registry = NodeRegistry(LOCAL, [PEER])
    catalog = PageCatalog([("home", HomeModule(), None), ("metrics", MetricsModule(), None)])
    probe = StaticProbe({LOCAL: Capabilities(dashboard_running=True), PEER: Capabilities(dashboard_running=True)})
    return APIServer(registry, catalog, probe=probe, config=LiveDashConfig())


@pytest.fixture
def client(server: APIServer) -> TestClient:
    return TestClient(server.app)


def test_health(client: TestClient) -> None:
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "node": LOCAL}


def test_dashboard_root_redirects_to_local_home(client: TestClient) -> None:
    response = client.get("/dashboard", follow_redirects=False)

    assert response.status_code == 307
    assert response.headers["location"] == f"/dashboard/{LOCAL}/home"


def test_one_shot_render(client: TestClient, server: APIServer) -> None:
    response = client.get(f"/dashboard/{PEER}/metrics", params={"sort": "memory"})

    assert response.status_code == 200
    body = response.json()
    assert body["page"]["route"] == "metrics"
    assert body["page"]["params"]["sort"] == "memory"
    assert body["menu"]["refresher"] is False
    assert body["menu"]["links"] == [
        {"state": "enabled", "label": "Home", "route": "home", "info_url": None},
        {"state": "current", "label": "Metrics", "route": "metrics", "info_url": None},
    ]
    assert server.registry.subscriber_count() == 0


def test_one_shot_render_with_overlay(client: TestClient) -> None:
    response = client.get(f"/dashboard/{PEER}/home", params={"info": "PID<0.123.0>"})

    assert response.status_code == 200
    assert response.json()["info"]["kind"] == "process"
    assert response.json()["info"]["target"] == "0.123.0"


def test_unknown_node_redirects(client: TestClient) -> None:
    response = client.get("/dashboard/n9@host/home", follow_redirects=False)

    assert response.status_code == 307
    assert response.headers["location"] == f"/dashboard/{LOCAL}/home"


def test_unknown_page_is_404(client: TestClient) -> None:
    response = client.get(f"/dashboard/{LOCAL}/nope")

    assert response.status_code == 404


def test_live_session_events(client: TestClient) -> None:
    with client.websocket_connect("/live") as ws:
        ws.send_json({"type": "mount", "node": PEER, "page": "home"})
        mounted = ws.receive_json()
        assert mounted["type"] == "render"
        assert mounted["assigns"]["menu"]["refresh"] == 15

        ws.send_json({"type": "event", "name": "select_refresh", "payload": {"refresh": "7"}})
        assert ws.receive_json()["assigns"]["menu"]["refresh"] == 7

        ws.send_json({"type": "event", "name": "select_refresh", "payload": {"refresh": "abc"}})
        assert ws.receive_json()["assigns"]["menu"]["refresh"] == 7

        ws.send_json({"type": "event", "name": "show_info", "payload": {"info": "Port<0.6>"}})
        assert ws.receive_json()["type"] == "patch"
        rendered = ws.receive_json()
        assert rendered["assigns"]["info"]["kind"] == "port"

        ws.send_json({"type": "event", "name": "select_node", "payload": {"node": LOCAL}})
        redirect = ws.receive_json()
        assert redirect["type"] == "redirect"
        assert redirect["to"].startswith(f"/dashboard/{LOCAL}/home?info=")


def test_live_session_for_unknown_node(client: TestClient) -> None:
    with client.websocket_connect("/live") as ws:
        ws.send_json({"type": "mount", "node": "n9@host", "page": "home"})
        frame = ws.receive_json()

    assert frame == {"type": "redirect", "to": f"/dashboard/{LOCAL}/home", "flash": {}}


def test_live_session_requires_mount_frame(client: TestClient) -> None:
    with client.websocket_connect("/live") as ws:
        ws.send_json({"type": "event", "name": "select_refresh"})
        frame = ws.receive_json()

    assert frame["type"] == "error"
    assert frame["status"] == 400


def test_live_session_releases_subscription_on_close(client: TestClient, server: APIServer) -> None:
    with client.websocket_connect("/live") as ws:
        ws.send_json({"type": "mount", "node": PEER, "page": "metrics"})
        ws.receive_json()
        assert server.registry.subscriber_count() == 1
        assert server.runner_count() == 1

    # Leaving the context waits for the endpoint to return
    assert server.registry.subscriber_count() == 0
    assert server.runner_count() == 0
