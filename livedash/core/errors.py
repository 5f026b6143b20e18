"""Exceptions raised by the dashboard controller.

Expected failures (stale node, bad selection, inconsistent capabilities) never
surface as exceptions; they turn into redirects. Only the conditions below end
a mount attempt or a session abnormally.
"""


class LiveDashError(Exception):
    """Base class for livedash errors."""


class PageNotFound(LiveDashError):
    """Raised when a request names a route that is not in the page catalog."""

    status_code = 404


class PageContractError(LiveDashError):
    """Raised when a page module lacks a hook the session needs."""

    def __init__(self, module: object, hook: str, detail: str | None = None) -> None:
        self.module_name = type(module).__name__
        self.hook = hook
        message = f"page {self.module_name} does not implement {hook}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class NavigationLoopError(LiveDashError):
    """Raised when a page keeps patching its own params without settling."""
