"""Detail overlay addressing.

The `info` query parameter (or its `detail` alias) selects an overlay by the
shape of its value: `PID<0.123.0>` opens the process overlay for `0.123.0`,
`ETS<users>` the table overlay, and so on. Unknown shapes resolve to
`DetailKind.NONE` and render no overlay.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Mapping, Optional

from livedash.constants import DETAIL_PARAM, INFO_PARAM


class DetailKind(str, Enum):
    PROCESS = "process"
    PORT = "port"
    SOCKET = "socket"
    ETS = "ets"
    APP = "app"
    NONE = "none"


_PREFIXES: tuple[tuple[str, DetailKind], ...] = (
    ("PID<", DetailKind.PROCESS),
    ("Port<", DetailKind.PORT),
    ("Socket<", DetailKind.SOCKET),
    ("ETS<", DetailKind.ETS),
    ("App<", DetailKind.APP),
)


@dataclass(frozen=True)
class DetailRequest:
    kind: DetailKind
    id: str
    title: str
    # Remaining params, used to build links back to the page under the overlay
    params: Mapping[str, str] = field(default_factory=dict)

    @property
    def visible(self) -> bool:
        return self.kind is not DetailKind.NONE


def classify_detail(value: str) -> tuple[DetailKind, str]:
    """Map an info value to its overlay kind and the identifier inside `<...>`."""
    for prefix, kind in _PREFIXES:
        if value.startswith(prefix):
            ident = value[len(prefix) :]
            if ident.endswith(">"):
                ident = ident[:-1]
            return kind, ident
    return DetailKind.NONE, value


def parse_detail(params: Mapping[str, str]) -> Optional[DetailRequest]:
    """Build the detail request carried by `params`, or None when absent."""
    value = params.get(INFO_PARAM)
    if value is None:
        value = params.get(DETAIL_PARAM)
    if value is None:
        return None
    kind, ident = classify_detail(str(value))
    rest = {k: v for k, v in params.items() if k not in (INFO_PARAM, DETAIL_PARAM)}
    return DetailRequest(kind=kind, id=ident, title=str(value), params=rest)
