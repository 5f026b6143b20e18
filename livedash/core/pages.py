"""Page module contract and the route catalog.

A page module is any object exposing the required hooks `menu_link`,
`is_refresher` and `render_page` (or `render` for built-in pages). The optional
hooks `mount`, `handle_params`, `handle_refresh`, `handle_info` and
`handle_event` are looked up once, when the page is registered in a
`PageCatalog`, and stored as a `PageHooks` record. The controller never probes
the module again.

Hook signatures (sync or async, each returns the session or None):

    mount(params, page_session, session)
    handle_params(params, url, session)
    handle_refresh(session)
    handle_info(message, session)
    handle_event(name, payload, session)
"""

from __future__ import annotations

import importlib
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, ClassVar, Iterable, Iterator, Mapping, Optional, Union

from livedash.core.errors import PageContractError

if TYPE_CHECKING:
    from livedash.core.capabilities import Capabilities

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LinkOk:
    label: str


@dataclass(frozen=True)
class LinkSkip:
    pass


@dataclass(frozen=True)
class LinkDisabled:
    label: str
    info_url: Optional[str] = None


MenuLinkDecision = Union[LinkOk, LinkSkip, LinkDisabled]

OPTIONAL_HOOKS = ("mount", "handle_params", "handle_refresh", "handle_info", "handle_event")


class PageModule:
    """Convenience base class for dashboard pages.

    Subclasses set `title`, `refresher` and optionally `default_refresh`, and
    define whichever optional hooks they need. The base class
    defines none of the optional hooks.
    """

    title: ClassVar[str] = ""
    refresher: ClassVar[bool] = True
    default_refresh: ClassVar[Optional[int]] = None
    # Built-in pages render their whole body through `render(assigns)`.
    builtin: ClassVar[bool] = False

    def menu_link(self, page_session: Mapping[str, Any], capabilities: "Capabilities") -> MenuLinkDecision:
        return LinkOk(self.title or type(self).__name__)

    def is_refresher(self) -> bool:
        return self.refresher

    def render_page(self, assigns: Mapping[str, Any]) -> tuple[str, dict[str, Any]]:
        raise NotImplementedError


@dataclass(frozen=True)
class PageHooks:
    mount: Optional[Callable[..., Any]] = None
    handle_params: Optional[Callable[..., Any]] = None
    handle_refresh: Optional[Callable[..., Any]] = None
    handle_info: Optional[Callable[..., Any]] = None
    handle_event: Optional[Callable[..., Any]] = None


def resolve_hooks(module: object) -> PageHooks:
    """Collect the optional hooks a page module implements."""
    found: dict[str, Callable[..., Any]] = {}
    for name in OPTIONAL_HOOKS:
        hook = getattr(module, name, None)
        if callable(hook):
            found[name] = hook
    return PageHooks(**found)


def _check_required(module: object) -> None:
    for name in ("menu_link", "is_refresher"):
        if not callable(getattr(module, name, None)):
            raise PageContractError(module, name)
    render_hook = "render" if getattr(module, "builtin", False) else "render_page"
    if not callable(getattr(module, render_hook, None)):
        raise PageContractError(module, render_hook)


@dataclass(frozen=True)
class PageEntry:
    route: str
    module: Any
    session: Mapping[str, Any] = field(default_factory=dict)
    hooks: PageHooks = field(default_factory=PageHooks)


class PageCatalog:
    """Ordered route -> (page module, page session) registry."""

    def __init__(self, entries: Iterable[tuple[str, object, Optional[Mapping[str, Any]]]] = ()) -> None:
        self._entries: dict[str, PageEntry] = {}
        for route, module, page_session in entries:
            self.register(route, module, page_session)

    def register(self, route: str, module: object, page_session: Optional[Mapping[str, Any]] = None) -> PageEntry:
        """Add a page; the route must be new and the module must satisfy the contract."""
        if not route:
            raise ValueError("page route must not be empty")
        if route in self._entries:
            raise ValueError(f"duplicate page route: {route}")
        _check_required(module)
        entry = PageEntry(route=route, module=module, session=dict(page_session or {}), hooks=resolve_hooks(module))
        self._entries[route] = entry
        logger.debug("Registered page %s -> %s", route, type(module).__name__)
        return entry

    def get(self, route: object) -> Optional[PageEntry]:
        if not isinstance(route, str):
            return None
        return self._entries.get(route)

    def routes(self) -> list[str]:
        return list(self._entries)

    def __iter__(self) -> Iterator[PageEntry]:
        return iter(list(self._entries.values()))

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, route: object) -> bool:
        return isinstance(route, str) and route in self._entries


def import_page_module(target: str) -> object:
    """Instantiate a page module from a `package.module:ClassName` reference."""
    module_path, sep, attr = target.partition(":")
    if not sep or not module_path or not attr:
        raise ValueError(f"Invalid page module reference: {target}. Expected format: package.module:ClassName")
    module = importlib.import_module(module_path)
    try:
        page_cls = getattr(module, attr)
    except AttributeError:
        raise ValueError(f"{module_path} has no attribute {attr}") from None
    return page_cls() if isinstance(page_cls, type) else page_cls
