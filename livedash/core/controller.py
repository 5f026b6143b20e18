"""Page/session controller.

One `PageController` drives one dashboard session through its lifecycle:

    unbound --mount--> bound --disconnect--> terminated
       \\--mount redirects--> terminated

Every transition mutates `self.session` in place. Expected failures (a node
that vanished, a bad node selection, capabilities that no longer support the
active page) never raise; they leave a `Redirect` in `session.navigation`.
Only an unknown route (`PageNotFound`) and a page module missing a hook the
session needs (`PageContractError`) escape.

The controller itself is not thread-safe and not reentrant. `SessionRunner`
guarantees that at most one transition runs at a time.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Mapping, Optional, Sequence

from livedash.config.schema import DashboardConfig
from livedash.constants import (
    INFO_PARAM,
    MAX_REFRESH_DIGITS,
    MAX_REFRESH_SECONDS,
    MIN_REFRESH_SECONDS,
    NODE_PARAM,
    PAGE_PARAM,
)
from livedash.core.capabilities import NodeProbe, Requirement, node_capabilities
from livedash.core.detail import parse_detail
from livedash.core.errors import PageContractError, PageNotFound
from livedash.core.events import BUILTIN_EVENTS, LiveDashEvents
from livedash.core.menu import build_menu_links
from livedash.core.navigation import dashboard_path, navigate_to, redirect_to
from livedash.core.node_registry import NodeListener, NodeRegistry, Subscription
from livedash.core.pages import PageCatalog
from livedash.core.refresh import RefreshScheduler
from livedash.core.session import Session, SessionPhase
from livedash.utils import maybe_await

logger = logging.getLogger(__name__)

_REFRESH_RE = re.compile(r"\d{1,%d}" % MAX_REFRESH_DIGITS)


class PageController:
    """Owns one session: node binding, menu, refresh timer and page delegation."""

    def __init__(
        self,
        registry: NodeRegistry,
        catalog: PageCatalog,
        *,
        probe: NodeProbe,
        requirements: Sequence[Requirement] = (),
        settings: Optional[DashboardConfig] = None,
        connected: bool = False,
        scheduler: Optional[RefreshScheduler] = None,
        node_listener: Optional[NodeListener] = None,
    ) -> None:
        self.registry = registry
        self.catalog = catalog
        self.probe = probe
        self.requirements = tuple(requirements)
        self.settings = settings or DashboardConfig()
        self.scheduler = scheduler
        self._node_listener = node_listener
        self._subscription: Optional[Subscription] = None
        self.session = Session(connected=connected, path_prefix=self.settings.path_prefix)
        self.session.menu.refresh = self.settings.default_refresh
        self.session.menu.refresh_options = tuple(self.settings.refresh_options)

    @property
    def subscribed(self) -> bool:
        return self._subscription is not None and self._subscription.active

    # === Lifecycle ===

    async def mount(self, params: Mapping[str, str]) -> Session:
        """Bind the session to the page and node named in `params`.

        Raises:
            PageNotFound: `params["page"]` is not in the catalog.
        """
        session = self.session
        if session.phase is not SessionPhase.UNBOUND:
            raise RuntimeError(f"session already {session.phase.value}")
        session.navigation = None
        params = {str(k): str(v) for k, v in params.items()}

        if NODE_PARAM not in params or PAGE_PARAM not in params:
            self._redirect_to_current_node()
            return self._abort_mount()

        entry = self.catalog.get(params[PAGE_PARAM])
        if entry is None:
            raise PageNotFound(f"unknown page {params[PAGE_PARAM]!r}")
        session.page = entry

        self._assign_params(params)
        if not self._assign_node(params[NODE_PARAM]):
            return self._abort_mount()
        self._assign_refresh()
        await self._assign_menu_links()
        if session.redirected:
            return self._abort_mount()

        session.phase = SessionPhase.BOUND
        self._init_schedule_refresh()
        logger.debug("Mounted %s on %s (connected=%s)", session.route, session.node, session.connected)
        return await self._apply_hook("mount", params, entry.session)

    def disconnect(self) -> None:
        """Release the timer and node subscription. Safe in any phase, idempotent."""
        if self._subscription is not None:
            self._subscription.cancel()
            self._subscription = None
        if self.scheduler is not None:
            self.scheduler.close()
        self.session.menu.timer = None
        if self.session.phase is not SessionPhase.TERMINATED:
            logger.debug("Session %s@%s terminated", self.session.route, self.session.node)
        self.session.phase = SessionPhase.TERMINATED

    def _abort_mount(self) -> Session:
        self.disconnect()
        return self.session

    # === Transitions ===

    async def handle_params(self, params: Mapping[str, str], url: Optional[str] = None) -> Session:
        """Re-derive route and detail overlay from new params."""
        session = self._require_bound()
        session.navigation = None
        params = {str(k): str(v) for k, v in params.items()}
        route = params.get(PAGE_PARAM, session.route)
        params.setdefault(NODE_PARAM, session.node or "")
        params[PAGE_PARAM] = route or ""

        if route != session.route:
            entry = self.catalog.get(route)
            if entry is None:
                raise PageNotFound(f"unknown page {route!r}")
            if entry.module is not session.page_module:
                # A different page module needs a fresh session
                redirect_to(session, entry.route, session.node or self.registry.local_node, params)
                return session

        self._assign_params(params)
        current = session.menu.current_link()
        if current is None or current.route != route:
            await self._assign_menu_links()
            if session.redirected:
                return session
        return await self._apply_hook("handle_params", params, url)

    def handle_node_up(self, node: str) -> Session:
        session = self.session
        session.menu.nodes = self.registry.current_nodes()
        logger.debug("Session on %s saw nodeup %s", session.node, node)
        return session

    def handle_node_down(self, node: str) -> Session:
        session = self.session
        nodes = self.registry.current_nodes()
        if session.phase is SessionPhase.BOUND and (node == session.node or session.node not in nodes):
            lost = session.node
            logger.info("Bound node %s disconnected; redirecting to %s", lost, self.registry.local_node)
            session.put_flash("error", f"Node {lost} disconnected.")
            self._redirect_to_current_node()
            return session
        session.menu.nodes = nodes
        return session

    async def handle_timer_fired(self) -> Session:
        session = self.session
        if session.phase is not SessionPhase.BOUND:
            logger.debug("Ignoring refresh for %s session", session.phase.value)
            return session
        session.navigation = None
        session.tick += 1
        self._schedule_refresh()
        return await self._apply_hook("handle_refresh")

    async def handle_info(self, message: object) -> Session:
        self._require_bound()
        self.session.navigation = None
        return await self._apply_hook("handle_info", message)

    async def handle_event(self, name: str, payload: Mapping[str, Any]) -> Session:
        """Handle a client event; unknown names go to the page's `handle_event`.

        Raises:
            PageContractError: the event is not built in and the page has no
                `handle_event` hook.
        """
        session = self._require_bound()
        session.navigation = None

        if name in BUILTIN_EVENTS:
            if name == LiveDashEvents.SELECT_NODE:
                return self._select_node(payload.get("node"))
            if name == LiveDashEvents.SELECT_REFRESH:
                return self._select_refresh(payload.get("refresh"))
            return self._show_info(payload.get("info"))

        assert session.page is not None
        if session.page.hooks.handle_event is None:
            raise PageContractError(session.page_module, "handle_event", f"event {name!r}")
        return await self._apply_hook("handle_event", name, payload)

    # === Built-in events ===

    def _select_node(self, param_node: object) -> Session:
        session = self.session
        node = self.registry.find(param_node)
        if node is None:
            logger.debug("select_node: unknown node %r", param_node)
            self._redirect_to_current_node()
        elif node != session.node:
            redirect_to(session, session.route or self.settings.home_route, node, session.params)
        return session

    def _select_refresh(self, raw: object) -> Session:
        session = self.session
        if isinstance(raw, bool) or not isinstance(raw, (str, int)):
            logger.debug("select_refresh: ignoring %r", raw)
            return session
        if isinstance(raw, str):
            if not _REFRESH_RE.fullmatch(raw):
                logger.debug("select_refresh: ignoring %.40r", raw)
                return session
            value = int(raw)
        elif raw < 0:
            logger.debug("select_refresh: ignoring negative interval")
            return session
        else:
            value = raw
        session.menu.refresh = min(max(value, MIN_REFRESH_SECONDS), MAX_REFRESH_SECONDS)
        return session

    def _show_info(self, info: object) -> Session:
        session = self.session
        if not isinstance(info, str) or not info:
            logger.debug("show_info: ignoring %r", info)
            return session
        params = {**session.params, "info": info}
        navigate_to(session, session.route or self.settings.home_route, params)
        return session

    # === Rendering ===

    def render(self) -> dict[str, Any]:
        """Assigns for the hosting shell: page, menu, flash, overlay and page content."""
        session = self._require_bound()
        assert session.page is not None
        page = {
            "route": session.route,
            "node": session.node,
            "params": dict(session.params),
            "tick": session.tick,
            "capabilities": session.capabilities.to_dict(),
        }
        assigns: dict[str, Any] = {**session.assigns, "page": page, "menu": session.menu.to_dict()}
        module = session.page_module
        if getattr(module, "builtin", False):
            content = module.render(assigns)
        else:
            component, component_assigns = module.render_page(assigns)
            content = {"component": component, "assigns": {"page": page, **dict(component_assigns)}}
        return {
            "page": page,
            "menu": session.menu.to_dict(),
            "flash": dict(session.flash),
            "info": self._render_info(),
            "content": content,
        }

    def _render_info(self) -> Optional[dict[str, Any]]:
        session = self.session
        detail = session.detail
        if detail is None or not detail.visible:
            return None
        return_to = self._page_path(detail.params)
        return {
            "id": detail.title,
            "kind": detail.kind.value,
            "target": detail.id,
            "title": detail.title,
            "node": session.node,
            "return_to": return_to,
            # Clients substitute the url-encoded info value for `{info}`
            "path_template": f"{return_to}{'&' if '?' in return_to else '?'}{INFO_PARAM}={{info}}",
        }

    def info_path(self, info: str, params: Optional[Mapping[str, str]] = None) -> str:
        """Path opening the `info` overlay over the current page.

        `params` are merged over the page's own params; `info` wins over both.
        """
        session = self.session
        base = session.detail.params if session.detail is not None else session.params
        return self._page_path({**base, **(params or {}), INFO_PARAM: info})

    def _page_path(self, params: Mapping[str, str]) -> str:
        session = self.session
        return dashboard_path(
            session.route or self.settings.home_route,
            session.node or self.registry.local_node,
            params,
            prefix=session.path_prefix,
        )

    # === Helpers ===

    def _require_bound(self) -> Session:
        if self.session.phase is not SessionPhase.BOUND:
            raise RuntimeError(f"session is {self.session.phase.value}, expected bound")
        return self.session

    def _assign_params(self, params: dict[str, str]) -> None:
        session = self.session
        session.params = params
        session.route = params[PAGE_PARAM]
        session.detail = parse_detail(params)

    def _assign_node(self, param_node: str) -> bool:
        session = self.session
        node = self.registry.find(param_node)
        if node is None:
            logger.info("Node %s not reachable; redirecting to %s", param_node, self.registry.local_node)
            self._redirect_to_current_node()
            return False
        if session.connected and self._node_listener is not None and self._subscription is None:
            self._subscription = self.registry.subscribe(self._node_listener)
        session.node = node
        session.menu.nodes = self.registry.current_nodes()
        return True

    def _assign_refresh(self) -> None:
        session = self.session
        module = session.page_module
        session.menu.refresher = bool(module.is_refresher())
        page_default = getattr(module, "default_refresh", None)
        if isinstance(page_default, int) and not isinstance(page_default, bool) and page_default >= MIN_REFRESH_SECONDS:
            session.menu.refresh = page_default

    async def _assign_menu_links(self) -> None:
        session = self.session
        assert session.node is not None
        capabilities = await node_capabilities(
            session.node,
            self.requirements,
            self.probe,
            timeout=self.settings.negotiation_timeout_s,
        )
        session.capabilities = capabilities
        build = build_menu_links(self.catalog, session.route, capabilities)
        if not build.consistent:
            self._redirect_to_current_node()
        session.menu.links = list(build.links)

    def _init_schedule_refresh(self) -> None:
        if self.session.connected and self.session.menu.refresher:
            self._schedule_refresh()

    def _schedule_refresh(self) -> None:
        menu = self.session.menu
        if self.scheduler is None or not menu.refresher:
            menu.timer = None
            return
        menu.timer = self.scheduler.arm(menu.refresh)

    def _redirect_to_current_node(self) -> None:
        redirect_to(self.session, self.settings.home_route, self.registry.local_node)

    async def _apply_hook(self, name: str, *args: Any) -> Session:
        session = self.session
        assert session.page is not None
        hook = getattr(session.page.hooks, name)
        if hook is None:
            return session
        result = await maybe_await(hook(*args, session))
        if result is not None and result is not session:
            raise PageContractError(session.page_module, name, "hooks must return the session or None")
        return session
