"""Typed events consumed by a session's serialized event loop.

Node topology changes, refresh timer firings, client events and page messages
all arrive as one of the dataclasses below and are processed strictly in
arrival order by `SessionRunner`.
"""

from dataclasses import dataclass, field
from typing import Literal, Mapping, Optional, Union


class LiveDashEvents:
    """Client event names handled by the controller itself.

    Any other event name is forwarded to the bound page module.
    """

    SELECT_NODE: Literal["select_node"] = "select_node"
    SELECT_REFRESH: Literal["select_refresh"] = "select_refresh"
    SHOW_INFO: Literal["show_info"] = "show_info"


BUILTIN_EVENTS = frozenset(
    {
        LiveDashEvents.SELECT_NODE,
        LiveDashEvents.SELECT_REFRESH,
        LiveDashEvents.SHOW_INFO,
    }
)


@dataclass(frozen=True)
class NodeUp:
    node: str


@dataclass(frozen=True)
class NodeDown:
    node: str


@dataclass(frozen=True)
class TimerFired:
    pass


@dataclass(frozen=True)
class UserEvent:
    """Client-originated event (button click, form change)."""

    name: str
    payload: Mapping[str, object] = field(default_factory=dict)


@dataclass(frozen=True)
class ParamsChanged:
    params: Mapping[str, str]
    url: Optional[str] = None


@dataclass(frozen=True)
class InfoMessage:
    """Arbitrary message addressed to the page module."""

    message: object


@dataclass(frozen=True)
class Disconnect:
    pass


NodeEvent = Union[NodeUp, NodeDown]
SessionEvent = Union[NodeUp, NodeDown, TimerFired, UserEvent, ParamsChanged, InfoMessage, Disconnect]
