"""Navigation commands issued by controller transitions.

`Redirect` is a full navigation: the client drops the live session and mounts
a fresh one at the target. `Patch` is an in-place navigation: the same session
stays mounted and the new params round-trip through `handle_params`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Mapping, Optional, Union
from urllib.parse import quote, urlencode

from livedash.constants import DASHBOARD_PATH_PREFIX, NODE_PARAM, PAGE_PARAM

if TYPE_CHECKING:
    from livedash.core.session import Session


@dataclass(frozen=True)
class Redirect:
    to: str
    route: str
    node: str
    params: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class Patch:
    to: str
    route: str
    params: Mapping[str, str] = field(default_factory=dict)


Navigation = Union[Redirect, Patch]


def dashboard_path(
    route: str,
    node: str,
    params: Optional[Mapping[str, str]] = None,
    prefix: str = DASHBOARD_PATH_PREFIX,
) -> str:
    """Build `<prefix>/<node>/<route>?<query>`; node/page keys never go in the query."""
    path = f"{prefix}/{quote(node, safe='@')}/{quote(route, safe='')}"
    query = {k: v for k, v in (params or {}).items() if k not in (NODE_PARAM, PAGE_PARAM)}
    if query:
        path = f"{path}?{urlencode(query)}"
    return path


def route_params(route: str, node: str, params: Optional[Mapping[str, str]] = None) -> dict[str, str]:
    """Params as a mounted session sees them: query params plus node and page."""
    merged = {k: v for k, v in (params or {}).items() if k not in (NODE_PARAM, PAGE_PARAM)}
    merged[NODE_PARAM] = node
    merged[PAGE_PARAM] = route
    return merged


def redirect_to(
    session: "Session",
    route: str,
    node: str,
    params: Optional[Mapping[str, str]] = None,
) -> "Session":
    """Schedule a full navigation to `route` on `node`."""
    session.navigation = Redirect(
        to=dashboard_path(route, node, params, prefix=session.path_prefix),
        route=route,
        node=node,
        params=route_params(route, node, params),
    )
    return session


def navigate_to(session: "Session", route: str, params: Optional[Mapping[str, str]] = None) -> "Session":
    """Schedule an in-place navigation on the session's current node."""
    node = session.node or ""
    session.navigation = Patch(
        to=dashboard_path(route, node, params, prefix=session.path_prefix),
        route=route,
        params=route_params(route, node, params),
    )
    return session
