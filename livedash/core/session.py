"""Per-client dashboard session state."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from livedash.constants import DASHBOARD_PATH_PREFIX
from livedash.core.capabilities import Capabilities
from livedash.core.detail import DetailRequest
from livedash.core.menu import MenuModel
from livedash.core.navigation import Navigation, Redirect
from livedash.core.pages import PageEntry


class SessionPhase(str, Enum):
    UNBOUND = "unbound"
    BOUND = "bound"
    TERMINATED = "terminated"


@dataclass
class Session:  # pylint: disable=too-many-instance-attributes  # Session mirrors the page assigns
    """State of one dashboard page instance.

    `page` is set once at mount and never replaced; a route that needs another
    page module is reached through a full navigation instead.
    """

    connected: bool = False
    route: Optional[str] = None
    node: Optional[str] = None
    params: dict[str, str] = field(default_factory=dict)
    detail: Optional[DetailRequest] = None
    tick: int = 0
    page: Optional[PageEntry] = None
    phase: SessionPhase = SessionPhase.UNBOUND
    menu: MenuModel = field(default_factory=MenuModel)
    capabilities: Capabilities = field(default_factory=Capabilities.empty)
    flash: dict[str, str] = field(default_factory=dict)
    navigation: Optional[Navigation] = None
    path_prefix: str = DASHBOARD_PATH_PREFIX
    # Free-form state owned by the page module
    assigns: dict[str, Any] = field(default_factory=dict)

    @property
    def page_module(self) -> Any:
        return self.page.module if self.page else None

    @property
    def redirected(self) -> bool:
        return isinstance(self.navigation, Redirect)

    def put_flash(self, level: str, message: str) -> None:
        self.flash[level] = message

    def take_navigation(self) -> Optional[Navigation]:
        navigation, self.navigation = self.navigation, None
        return navigation
