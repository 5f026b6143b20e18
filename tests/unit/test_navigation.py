"""Unit tests for navigation helpers."""

import pytest

from livedash.core.navigation import Patch, Redirect, dashboard_path, navigate_to, redirect_to, route_params
from livedash.core.session import Session

pytestmark = pytest.mark.unit


def test_dashboard_path_without_query():
    assert dashboard_path("home", "a@host") == "/dashboard/a@host/home"


def test_dashboard_path_drops_node_and_page_from_query():
    path = dashboard_path("ets", "a@host", {"node": "a@host", "page": "ets", "sort": "size", "q": "a b"})

    assert path == "/dashboard/a@host/ets?sort=size&q=a+b"


def test_dashboard_path_honours_prefix():
    assert dashboard_path("home", "a", prefix="/ops") == "/ops/a/home"


def test_route_params_override_node_and_page():
    assert route_params("home", "b", {"node": "a", "page": "x", "sort": "size"}) == {
        "node": "b",
        "page": "home",
        "sort": "size",
    }


def test_redirect_to_sets_full_navigation():
    session = Session(node="a")

    redirect_to(session, "metrics", "b", {"sort": "size"})

    assert session.navigation == Redirect(
        to="/dashboard/b/metrics?sort=size",
        route="metrics",
        node="b",
        params={"sort": "size", "node": "b", "page": "metrics"},
    )
    assert session.redirected


def test_navigate_to_stays_on_current_node():
    session = Session(node="a", path_prefix="/ops")

    navigate_to(session, "home", {"info": "PID<0.1.0>"})

    assert isinstance(session.navigation, Patch)
    assert session.navigation.to == "/ops/a/home?info=PID%3C0.1.0%3E"
    assert session.navigation.params["node"] == "a"
    assert not session.redirected
    assert session.take_navigation() is not None
    assert session.navigation is None
