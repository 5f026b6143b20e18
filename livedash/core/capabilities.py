"""Per-node capability negotiation.

A requirement names something a dashboard page needs on the inspected node:
an installed application (distribution), an importable module, or a running
process. `node_capabilities` asks a probe which requirements the node
satisfies. Unreachable or slow nodes resolve to empty capabilities within the
negotiation timeout; the controller's redirect path handles them uniformly.
"""

from __future__ import annotations

import asyncio
import importlib.util
import logging
import threading
from dataclasses import dataclass, field
from importlib.metadata import PackageNotFoundError, distribution
from typing import Iterable, Literal, Mapping, Optional, Protocol, Sequence, runtime_checkable

from livedash.constants import NEGOTIATION_TIMEOUT_S

logger = logging.getLogger(__name__)

RequirementKind = Literal["application", "module", "process"]


@dataclass(frozen=True)
class Requirement:
    kind: RequirementKind
    name: str


@dataclass(frozen=True)
class Capabilities:
    """Requirements satisfied on one node."""

    applications: frozenset[str] = field(default_factory=frozenset)
    modules: frozenset[str] = field(default_factory=frozenset)
    processes: frozenset[str] = field(default_factory=frozenset)
    dashboard_running: bool = False

    @classmethod
    def empty(cls) -> "Capabilities":
        return cls()

    def has(self, requirement: Requirement) -> bool:
        if requirement.kind == "application":
            return requirement.name in self.applications
        if requirement.kind == "module":
            return requirement.name in self.modules
        return requirement.name in self.processes

    def restrict_to(self, requirements: Iterable[Requirement]) -> "Capabilities":
        """Drop anything a probe reported that was not asked for."""
        wanted = list(requirements)
        return Capabilities(
            applications=frozenset(r.name for r in wanted if r.kind == "application" and self.has(r)),
            modules=frozenset(r.name for r in wanted if r.kind == "module" and self.has(r)),
            processes=frozenset(r.name for r in wanted if r.kind == "process" and self.has(r)),
            dashboard_running=self.dashboard_running,
        )

    def to_dict(self) -> dict[str, object]:
        return {
            "applications": sorted(self.applications),
            "modules": sorted(self.modules),
            "processes": sorted(self.processes),
            "dashboard_running": self.dashboard_running,
        }


@runtime_checkable
class NodeProbe(Protocol):
    """Remote introspection of a node.

    Implementations raise (any exception) when the node cannot be reached.
    """

    async def probe(self, node: str, requirements: Sequence[Requirement]) -> Capabilities:
        ...


class StaticProbe:
    """Probe answering from capabilities advertised ahead of time (config, tests)."""

    def __init__(self, advertised: Mapping[str, Capabilities]) -> None:
        self._advertised = dict(advertised)

    async def probe(self, node: str, requirements: Sequence[Requirement]) -> Capabilities:
        try:
            return self._advertised[node]
        except KeyError:
            raise ConnectionError(f"node {node} is not reachable") from None


class LocalProbe:
    """Introspects the running interpreter for the local node.

    Other nodes are delegated to `fallback` when given, otherwise they are
    reported unreachable.
    """

    def __init__(self, local_node: str, fallback: Optional[NodeProbe] = None) -> None:
        self.local_node = local_node
        self.fallback = fallback

    async def probe(self, node: str, requirements: Sequence[Requirement]) -> Capabilities:
        if node != self.local_node:
            if self.fallback is None:
                raise ConnectionError(f"node {node} is not reachable")
            return await self.fallback.probe(node, requirements)

        # Task names must be read on the loop; metadata and import lookups hit the filesystem
        running = _running_process_names()
        return await asyncio.to_thread(self._probe_local, tuple(requirements), running)

    @staticmethod
    def _probe_local(requirements: Sequence[Requirement], running: set[str]) -> Capabilities:
        applications = set()
        modules = set()
        processes = set()
        for requirement in requirements:
            if requirement.kind == "application" and _has_distribution(requirement.name):
                applications.add(requirement.name)
            elif requirement.kind == "module" and _has_module(requirement.name):
                modules.add(requirement.name)
            elif requirement.kind == "process" and requirement.name in running:
                processes.add(requirement.name)
        return Capabilities(
            applications=frozenset(applications),
            modules=frozenset(modules),
            processes=frozenset(processes),
            dashboard_running=True,
        )


def _has_distribution(name: str) -> bool:
    try:
        distribution(name)
    except PackageNotFoundError:
        return False
    return True


def _has_module(name: str) -> bool:
    try:
        return importlib.util.find_spec(name) is not None
    except (ImportError, ValueError):
        return False


def _running_process_names() -> set[str]:
    """Named threads plus named asyncio tasks of the current loop."""
    names = {thread.name for thread in threading.enumerate()}
    try:
        tasks = asyncio.all_tasks()
    except RuntimeError:
        return names
    names.update(task.get_name() for task in tasks)
    return names


async def node_capabilities(
    node: str,
    requirements: Sequence[Requirement],
    probe: NodeProbe,
    timeout: float = NEGOTIATION_TIMEOUT_S,
) -> Capabilities:
    """Return the subset of `requirements` satisfied on `node`.

    Never raises: a failed or timed-out probe yields empty capabilities.
    """
    try:
        reported = await asyncio.wait_for(probe.probe(node, requirements), timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning("Capability probe for %s timed out after %.1fs", node, timeout)
        return Capabilities.empty()
    except Exception as e:  # pylint: disable=broad-exception-caught
        logger.warning("Capability probe for %s failed: %s", node, e)
        return Capabilities.empty()
    return reported.restrict_to(requirements)
