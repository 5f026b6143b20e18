"""Page catalog assembly from configuration."""

from __future__ import annotations

from typing import Sequence

from livedash.config.schema import PageConfig
from livedash.core.pages import PageCatalog, import_page_module
from livedash.pages.home import HomePage


def default_catalog(home_route: str) -> PageCatalog:
    """Catalog holding only the built-in home page."""
    return PageCatalog([(home_route, HomePage(), None)])


def build_catalog(pages: Sequence[PageConfig], home_route: str) -> PageCatalog:
    """Instantiate configured pages in order; fall back to the built-in home page."""
    if not pages:
        return default_catalog(home_route)
    catalog = PageCatalog()
    for page in pages:
        catalog.register(page.route, import_page_module(page.module), page.session)
    if home_route not in catalog:
        raise ValueError(f"Home route {home_route!r} is not among the configured pages")
    return catalog


__all__ = ["HomePage", "build_catalog", "default_catalog"]
