import os
from typing import Any, Dict, List, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from livedash.constants import (
    API_TCP_HOST,
    API_TCP_PORT,
    DASHBOARD_PATH_PREFIX,
    DEFAULT_LOCAL_NODE,
    DEFAULT_REFRESH_SECONDS,
    HOME_ROUTE,
    NEGOTIATION_TIMEOUT_S,
    PEER_HEALTH_TIMEOUT_S,
    PEER_HEARTBEAT_INTERVAL_S,
    PEER_OFFLINE_THRESHOLD,
    REFRESH_OPTIONS,
)


class AdvertisedCapabilities(BaseModel):
    """Capabilities a peer node is known to offer."""

    model_config = ConfigDict(extra="allow")
    applications: List[str] = []
    modules: List[str] = []
    processes: List[str] = []
    dashboard_running: bool = True


class NodeConfig(BaseModel):
    model_config = ConfigDict(extra="allow")
    name: str = Field(default_factory=lambda: os.getenv("LIVEDASH_NODE") or DEFAULT_LOCAL_NODE, min_length=1)
    peers: List[str] = []
    capabilities: Dict[str, AdvertisedCapabilities] = {}
    # Base URL of each peer's livedash API; peers listed here are health-checked
    peer_urls: Dict[str, str] = {}
    heartbeat_interval_s: float = Field(default=PEER_HEARTBEAT_INTERVAL_S, gt=0)
    health_timeout_s: float = Field(default=PEER_HEALTH_TIMEOUT_S, gt=0)
    offline_threshold: int = Field(default=PEER_OFFLINE_THRESHOLD, ge=1)

    @field_validator("peer_urls")
    @classmethod
    def validate_peer_urls(cls, v: Dict[str, str]) -> Dict[str, str]:
        for node, url in v.items():
            if not url.startswith(("http://", "https://")):
                raise ValueError(f"Invalid URL for peer {node}: {url}. Expected http:// or https://")
        return {node: url.rstrip("/") for node, url in v.items()}

    @model_validator(mode="after")
    def drop_self_from_peers(self) -> "NodeConfig":
        self.peers = [peer for peer in dict.fromkeys([*self.peers, *self.peer_urls]) if peer and peer != self.name]
        self.peer_urls = {node: url for node, url in self.peer_urls.items() if node != self.name}
        return self


class DashboardConfig(BaseModel):
    model_config = ConfigDict(extra="allow")
    default_refresh: int = Field(default=DEFAULT_REFRESH_SECONDS, ge=1)
    refresh_options: List[int] = list(REFRESH_OPTIONS)
    negotiation_timeout_s: float = Field(default=NEGOTIATION_TIMEOUT_S, gt=0)
    home_route: str = Field(default=HOME_ROUTE, min_length=1)
    path_prefix: str = DASHBOARD_PATH_PREFIX

    @field_validator("refresh_options")
    @classmethod
    def validate_refresh_options(cls, v: List[int]) -> List[int]:
        """Refresh options must be positive; duplicates are dropped, order kept."""
        if any(option < 1 for option in v):
            raise ValueError(f"Refresh options must be at least 1 second, got: {v}")
        return list(dict.fromkeys(v))

    @field_validator("path_prefix")
    @classmethod
    def validate_path_prefix(cls, v: str) -> str:
        if not v.startswith("/"):
            raise ValueError(f"Invalid path prefix: {v}. Expected an absolute path (e.g., '/dashboard')")
        return v.rstrip("/") or "/dashboard"


class PageConfig(BaseModel):
    model_config = ConfigDict(extra="allow")
    route: str = Field(min_length=1)
    module: str
    session: Dict[str, Any] = {}

    @field_validator("module")
    @classmethod
    def validate_module_ref(cls, v: str) -> str:
        import re

        if not re.match(r"^[A-Za-z_][\w.]*:[A-Za-z_]\w*$", v):
            raise ValueError(f"Invalid page module reference: {v}. Expected format: package.module:ClassName")
        return v


class RequirementConfig(BaseModel):
    model_config = ConfigDict(extra="allow")
    kind: Literal["application", "module", "process"]
    name: str = Field(min_length=1)


class ApiConfig(BaseModel):
    model_config = ConfigDict(extra="allow")
    host: str = API_TCP_HOST
    port: int = Field(default=API_TCP_PORT, ge=1, le=65535)


class LiveDashConfig(BaseModel):
    model_config = ConfigDict(extra="allow")
    node: NodeConfig = NodeConfig()
    dashboard: DashboardConfig = DashboardConfig()
    pages: List[PageConfig] = []
    requirements: List[RequirementConfig] = []
    api: ApiConfig = ApiConfig()

    @model_validator(mode="after")
    def validate_unique_routes(self) -> "LiveDashConfig":
        seen: set[str] = set()
        for page in self.pages:
            if page.route in seen:
                raise ValueError(f"Duplicate page route: {page.route}")
            seen.add(page.route)
        return self
