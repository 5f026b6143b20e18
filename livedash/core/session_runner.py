"""Serialized per-session event loop.

Each live client gets one `SessionRunner`: a single asyncio task that mounts
the page and then drains an event queue. Node topology changes and refresh
timer firings are enqueued, never handled from their callbacks, so no two
controller transitions for a session ever overlap.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Mapping, Optional, Sequence

from livedash.config.schema import DashboardConfig
from livedash.constants import RUNNER_STOP_TIMEOUT_S
from livedash.core.capabilities import NodeProbe, Requirement
from livedash.core.controller import PageController
from livedash.core.errors import LiveDashError, NavigationLoopError, PageNotFound
from livedash.core.events import (
    Disconnect,
    InfoMessage,
    NodeDown,
    NodeEvent,
    NodeUp,
    ParamsChanged,
    SessionEvent,
    TimerFired,
    UserEvent,
)
from livedash.core.navigation import Patch, Redirect
from livedash.core.node_registry import NodeRegistry
from livedash.core.pages import PageCatalog
from livedash.core.refresh import RefreshScheduler
from livedash.core.session import Session, SessionPhase

logger = logging.getLogger(__name__)

PushFn = Callable[[dict[str, Any]], Awaitable[None]]

# A page whose handle_params keeps patching would otherwise spin forever
_MAX_PATCH_HOPS = 8


class SessionRunner:
    """Runs one live dashboard session until disconnect or redirect."""

    def __init__(
        self,
        registry: NodeRegistry,
        catalog: PageCatalog,
        *,
        probe: NodeProbe,
        push: PushFn,
        requirements: Sequence[Requirement] = (),
        settings: Optional[DashboardConfig] = None,
        time_unit: float = 1.0,
    ) -> None:
        self._queue: asyncio.Queue[SessionEvent] = asyncio.Queue()
        self._push = push
        self.scheduler = RefreshScheduler(self._on_timer, time_unit=time_unit)
        self.controller = PageController(
            registry,
            catalog,
            probe=probe,
            requirements=requirements,
            settings=settings,
            connected=True,
            scheduler=self.scheduler,
            node_listener=self._on_node_event,
        )
        self._task: Optional[asyncio.Task[None]] = None

    @property
    def session(self) -> Session:
        return self.controller.session

    @property
    def task(self) -> Optional[asyncio.Task[None]]:
        return self._task

    def start(self, params: Mapping[str, str]) -> asyncio.Task[None]:
        """Spawn the session task; it mounts with `params` before reading events."""
        if self._task is not None:
            raise RuntimeError("session runner already started")
        name = f"livedash-session-{params.get('page', '?')}@{params.get('node', '?')}"
        self._task = asyncio.create_task(self._run(dict(params)), name=name)
        self._task.add_done_callback(self._on_task_done)
        return self._task

    def submit(self, event: SessionEvent) -> None:
        """Enqueue an event for in-order processing."""
        self._queue.put_nowait(event)

    async def stop(self, timeout: float = RUNNER_STOP_TIMEOUT_S) -> None:
        """Ask the loop to exit and wait for it; resources are released either way."""
        task = self._task
        if task is None:
            self.controller.disconnect()
            return
        if not task.done():
            self.submit(Disconnect())
            done, _ = await asyncio.wait({task}, timeout=timeout)
            if not done:
                logger.warning("Session task %s did not stop within %.1fs; cancelling", task.get_name(), timeout)
                task.cancel()
                await asyncio.gather(task, return_exceptions=True)
        self.controller.disconnect()

    def _on_timer(self) -> None:
        self.submit(TimerFired())

    def _on_node_event(self, event: NodeEvent) -> None:
        self.submit(event)

    def _on_task_done(self, task: asyncio.Task[None]) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Session task %s failed: %s", task.get_name(), exc, exc_info=exc)

    async def _run(self, params: dict[str, str]) -> None:
        try:
            try:
                await self.controller.mount(params)
            except PageNotFound as e:
                await self._push({"type": "error", "status": e.status_code, "detail": str(e)})
                return
            if not await self._flush():
                return

            while True:
                event = await self._queue.get()
                if isinstance(event, Disconnect):
                    logger.debug("Session %s disconnected", self.session.route)
                    return
                await self._dispatch(event)
                if not await self._flush():
                    return
        except LiveDashError as e:
            logger.error("Session %s@%s failed: %s", self.session.route, self.session.node, e)
            await self._push({"type": "error", "status": 500, "detail": str(e)})
            raise
        finally:
            self.controller.disconnect()

    async def _dispatch(self, event: SessionEvent) -> None:
        controller = self.controller
        if isinstance(event, TimerFired):
            await controller.handle_timer_fired()
        elif isinstance(event, NodeUp):
            controller.handle_node_up(event.node)
        elif isinstance(event, NodeDown):
            controller.handle_node_down(event.node)
        elif isinstance(event, UserEvent):
            await controller.handle_event(event.name, event.payload)
        elif isinstance(event, ParamsChanged):
            await controller.handle_params(event.params, event.url)
        elif isinstance(event, InfoMessage):
            await controller.handle_info(event.message)
        else:
            logger.warning("Unknown session event: %r", event)

    async def _flush(self) -> bool:
        """Push the outcome of the last transition. Returns False when the session ended."""
        session = self.session
        hops = 0
        navigation = session.take_navigation()
        while isinstance(navigation, Patch) and session.phase is SessionPhase.BOUND:
            hops += 1
            if hops > _MAX_PATCH_HOPS:
                raise NavigationLoopError(f"navigation loop while patching {navigation.to}")
            await self._push({"type": "patch", "to": navigation.to})
            await self.controller.handle_params(navigation.params, navigation.to)
            navigation = session.take_navigation()

        if isinstance(navigation, Redirect):
            await self._push({"type": "redirect", "to": navigation.to, "flash": dict(session.flash)})
            self.controller.disconnect()
            return False
        if session.phase is not SessionPhase.BOUND:
            return False
        await self._push({"type": "render", "assigns": self.controller.render()})
        return True
