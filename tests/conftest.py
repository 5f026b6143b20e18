"""Pytest configuration and shared fakes for livedash tests."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Mapping, Optional

import pytest

from livedash.config.schema import DashboardConfig
from livedash.core.capabilities import Capabilities, StaticProbe
from livedash.core.controller import PageController
from livedash.core.node_registry import NodeRegistry
from livedash.core.pages import LinkDisabled, LinkOk, LinkSkip, MenuLinkDecision, PageCatalog, PageModule
from livedash.core.session import Session

LOCAL = "local@host"
PEER = "n1@host"

logging.getLogger("livedash").handlers.clear()


def pytest_collection_modifyitems(config, items):
    """Set per-marker timeouts: unit=1s, integration=5s."""
    for item in items:
        if "unit" in item.keywords:
            item.add_marker(pytest.mark.timeout(1))
        elif "integration" in item.keywords:
            item.add_marker(pytest.mark.timeout(5))


# ── Page modules ──────────────────────────────────────────────────────


class HomeModule(PageModule):
    """Refreshable page with mount/params/refresh hooks but no event handler."""

    title = "Home"
    refresher = True
    default_refresh = 15

    def __init__(self) -> None:
        self.calls: list[tuple[object, ...]] = []

    def render_page(self, assigns: Mapping[str, Any]) -> tuple[str, dict[str, Any]]:
        return "home_component", {"tick": assigns["page"]["tick"]}

    def mount(self, params: Mapping[str, str], page_session: Mapping[str, Any], session: Session) -> Session:
        self.calls.append(("mount", dict(params), dict(page_session)))
        session.assigns["mounted"] = True
        return session

    def handle_params(self, params: Mapping[str, str], url: Optional[str], session: Session) -> Session:
        self.calls.append(("handle_params", dict(params), url))
        return session

    def handle_refresh(self, session: Session) -> Session:
        self.calls.append(("handle_refresh", session.tick))
        return session


class MetricsModule(PageModule):
    """Non-refreshable page that handles its own events asynchronously."""

    title = "Metrics"
    refresher = False

    def __init__(self) -> None:
        self.events: list[tuple[str, dict[str, Any]]] = []
        self.infos: list[object] = []

    def render_page(self, assigns: Mapping[str, Any]) -> tuple[str, dict[str, Any]]:
        return "metrics_component", {}

    async def handle_event(self, name: str, payload: Mapping[str, Any], session: Session) -> Session:
        self.events.append((name, dict(payload)))
        session.assigns["last_event"] = name
        return session

    def handle_info(self, message: object, session: Session) -> None:
        self.infos.append(message)


class OsMonModule(PageModule):
    """Only linkable where the os_mon application is available."""

    title = "OS Data"
    refresher = True

    def menu_link(self, page_session: Mapping[str, Any], capabilities: Capabilities) -> MenuLinkDecision:
        if "os_mon" in capabilities.applications:
            return LinkOk(self.title)
        return LinkDisabled(self.title, "https://example.com/docs/os_mon")

    def render_page(self, assigns: Mapping[str, Any]) -> tuple[str, dict[str, Any]]:
        return "os_component", {}


class HiddenModule(PageModule):
    title = "Hidden"
    refresher = False

    def menu_link(self, page_session: Mapping[str, Any], capabilities: Capabilities) -> MenuLinkDecision:
        return LinkSkip()

    def render_page(self, assigns: Mapping[str, Any]) -> tuple[str, dict[str, Any]]:
        return "hidden_component", {}


class FakeScheduler:
    """Records arm calls instead of touching the event loop."""

    def __init__(self) -> None:
        self.arms: list[int] = []
        self.handle: Optional[object] = None
        self.closed = False

    @property
    def armed(self) -> bool:
        return self.handle is not None

    def arm(self, seconds: int) -> object:
        if self.closed:
            raise RuntimeError("refresh scheduler is closed")
        self.arms.append(seconds)
        self.handle = object()
        return self.handle

    def cancel(self) -> None:
        self.handle = None

    def close(self) -> None:
        self.handle = None
        self.closed = True


async def wait_for_frames(frames: list[dict[str, Any]], count: int, timeout: float = 0.5) -> list[dict[str, Any]]:
    """Poll until `frames` holds at least `count` entries."""
    deadline = asyncio.get_running_loop().time() + timeout
    while len(frames) < count:
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError(f"expected {count} frames, got {len(frames)}: {frames}")
        await asyncio.sleep(0.005)
    return frames


# ── Fixtures ──────────────────────────────────────────────────────────


@pytest.fixture
def registry() -> NodeRegistry:
    return NodeRegistry(LOCAL, [PEER])


@pytest.fixture
def probe() -> StaticProbe:
    return StaticProbe(
        {
            LOCAL: Capabilities(dashboard_running=True),
            PEER: Capabilities(applications=frozenset({"os_mon"}), dashboard_running=True),
        }
    )


@pytest.fixture
def home() -> HomeModule:
    return HomeModule()


@pytest.fixture
def metrics() -> MetricsModule:
    return MetricsModule()


@pytest.fixture
def catalog(home: HomeModule, metrics: MetricsModule) -> PageCatalog:
    return PageCatalog([("home", home, {"label": "Home"}), ("metrics", metrics, None)])


@pytest.fixture
def settings() -> DashboardConfig:
    return DashboardConfig(negotiation_timeout_s=0.2)


@pytest.fixture
def make_controller(registry: NodeRegistry, catalog: PageCatalog, probe: StaticProbe, settings: DashboardConfig):
    """Factory for controllers sharing the registry, catalog and probe fixtures."""

    def _make(
        *,
        connected: bool = False,
        scheduler: Optional[FakeScheduler] = None,
        node_listener: Any = None,
        catalog_override: Optional[PageCatalog] = None,
    ) -> PageController:
        return PageController(
            registry,
            catalog_override or catalog,
            probe=probe,
            settings=settings,
            connected=connected,
            scheduler=scheduler,  # type: ignore[arg-type]
            node_listener=node_listener,
        )

    return _make
