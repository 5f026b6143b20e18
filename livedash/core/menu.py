"""Menu model and link negotiation.

Every catalog page is asked, in catalog order, whether it belongs in the
navigation for the negotiated capabilities. The active page must answer
`LinkOk`; any other answer marks the menu inconsistent and the controller
sends the session back to the local node's home route.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from livedash.constants import DEFAULT_REFRESH_SECONDS, REFRESH_OPTIONS
from livedash.core.capabilities import Capabilities
from livedash.core.errors import PageContractError
from livedash.core.pages import LinkDisabled, LinkOk, LinkSkip, PageCatalog

logger = logging.getLogger(__name__)


class LinkState(str, Enum):
    CURRENT = "current"
    ENABLED = "enabled"
    DISABLED = "disabled"


@dataclass(frozen=True)
class MenuLink:
    state: LinkState
    label: str
    route: Optional[str] = None
    info_url: Optional[str] = None

    def to_dict(self) -> dict[str, object]:
        return {"state": self.state.value, "label": self.label, "route": self.route, "info_url": self.info_url}


@dataclass
class MenuModel:
    nodes: tuple[str, ...] = ()
    refresher: bool = False
    refresh: int = DEFAULT_REFRESH_SECONDS
    refresh_options: tuple[int, ...] = REFRESH_OPTIONS
    timer: Optional[object] = None
    links: list[MenuLink] = field(default_factory=list)

    def current_link(self) -> Optional[MenuLink]:
        for link in self.links:
            if link.state is LinkState.CURRENT:
                return link
        return None

    def to_dict(self) -> dict[str, object]:
        return {
            "nodes": list(self.nodes),
            "refresher": self.refresher,
            "refresh": self.refresh,
            "refresh_options": list(self.refresh_options),
            "links": [link.to_dict() for link in self.links],
        }


@dataclass(frozen=True)
class MenuBuild:
    links: tuple[MenuLink, ...]
    consistent: bool


def build_menu_links(catalog: PageCatalog, current_route: Optional[str], capabilities: Capabilities) -> MenuBuild:
    """Ask every page for its link decision and resolve it against the current route."""
    links: list[MenuLink] = []
    consistent = True

    for entry in catalog:
        decision = entry.module.menu_link(entry.session, capabilities)
        current = entry.route == current_route

        if current:
            if isinstance(decision, LinkOk):
                links.append(MenuLink(LinkState.CURRENT, decision.label, entry.route))
            else:
                logger.warning("Current page %s is not linkable on this node (%s)", entry.route, decision)
                consistent = False
        elif isinstance(decision, LinkOk):
            links.append(MenuLink(LinkState.ENABLED, decision.label, entry.route))
        elif isinstance(decision, LinkDisabled):
            links.append(MenuLink(LinkState.DISABLED, decision.label, None, decision.info_url))
        elif isinstance(decision, LinkSkip):
            continue
        else:
            raise PageContractError(entry.module, "menu_link", f"unexpected decision {decision!r}")

    return MenuBuild(links=tuple(links), consistent=consistent)
