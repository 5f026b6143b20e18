"""Built-in home page: node summary and negotiated capabilities."""

from __future__ import annotations

from typing import Any, Mapping

from livedash.core.capabilities import Capabilities
from livedash.core.pages import LinkOk, MenuLinkDecision, PageModule


class HomePage(PageModule):
    title = "Home"
    refresher = True
    builtin = True

    def menu_link(self, page_session: Mapping[str, Any], capabilities: Capabilities) -> MenuLinkDecision:
        return LinkOk(page_session.get("label", self.title))

    def render(self, assigns: Mapping[str, Any]) -> dict[str, Any]:
        page = assigns["page"]
        menu = assigns["menu"]
        return {
            "title": self.title,
            "node": page["node"],
            "nodes": menu["nodes"],
            "capabilities": page["capabilities"],
            "updated_tick": page["tick"],
        }
