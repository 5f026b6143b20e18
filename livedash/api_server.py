"""HTTP and WebSocket surface of the dashboard.

- `GET <prefix>/{node}/{page}` renders a page once, without a live session.
- `WS /live` hosts a live session: the first client frame mounts the page,
  later frames carry client events and params changes. The server pushes
  `render`, `patch`, `redirect` and `error` frames.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Any, Optional

import uvicorn
from fastapi import FastAPI, HTTPException, Request, WebSocket, WebSocketDisconnect
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse, RedirectResponse

from livedash.config.schema import LiveDashConfig
from livedash.constants import API_TIMEOUT_KEEP_ALIVE_S, API_WS_PING_INTERVAL_S, API_WS_PING_TIMEOUT_S
from livedash.core.capabilities import NodeProbe, Requirement
from livedash.core.controller import PageController
from livedash.core.errors import PageNotFound
from livedash.core.events import ParamsChanged, UserEvent
from livedash.core.navigation import Redirect, dashboard_path
from livedash.core.node_monitor import NodeMonitor
from livedash.core.node_registry import NodeRegistry
from livedash.core.pages import PageCatalog
from livedash.core.session_runner import SessionRunner

logger = logging.getLogger(__name__)


class APIServer:
    """FastAPI app hosting one-shot renders and live dashboard sessions."""

    def __init__(
        self,
        registry: NodeRegistry,
        catalog: PageCatalog,
        *,
        probe: NodeProbe,
        config: Optional[LiveDashConfig] = None,
        time_unit: float = 1.0,
        monitor: Optional[NodeMonitor] = None,
    ) -> None:
        self.registry = registry
        self.catalog = catalog
        self.probe = probe
        self.config = config or LiveDashConfig()
        self.settings = self.config.dashboard
        self.requirements = [Requirement(r.kind, r.name) for r in self.config.requirements]
        self._time_unit = time_unit
        self._runners: set[SessionRunner] = set()
        self.server: uvicorn.Server | None = None
        self.server_task: asyncio.Task[object] | None = None
        self.monitor = monitor if monitor is not None else self._build_monitor()

        self.app = FastAPI(title="livedash")
        self._setup_routes()

    def runner_count(self) -> int:
        return len(self._runners)

    def _build_monitor(self) -> Optional[NodeMonitor]:
        node = self.config.node
        if not node.peer_urls:
            return None
        return NodeMonitor(
            self.registry,
            node.peer_urls,
            interval=node.heartbeat_interval_s,
            timeout=node.health_timeout_s,
            offline_threshold=node.offline_threshold,
        )

    def _setup_routes(self) -> None:
        prefix = self.settings.path_prefix

        @self.app.get("/health")
        async def health() -> dict[str, str]:  # pyright: ignore
            return {"status": "ok", "node": self.registry.local_node}

        @self.app.get(prefix)
        async def dashboard_root() -> RedirectResponse:  # pyright: ignore
            """Send bare dashboard requests to the local node's home page."""
            return RedirectResponse(self._home_path(), status_code=307)

        @self.app.get(prefix + "/{node}/{page}")
        async def dashboard_page(node: str, page: str, request: Request) -> Any:  # pyright: ignore
            """One-shot render; no node subscription, no refresh timer."""
            params = dict(request.query_params)
            params.update(node=node, page=page)
            controller = self._controller()
            try:
                session = await controller.mount(params)
                if isinstance(session.navigation, Redirect):
                    return RedirectResponse(session.navigation.to, status_code=307)
                return JSONResponse(jsonable_encoder(controller.render()))
            except PageNotFound as e:
                raise HTTPException(status_code=e.status_code, detail=str(e)) from e
            finally:
                controller.disconnect()

        @self.app.websocket("/live")
        async def live_endpoint(websocket: WebSocket) -> None:  # pyright: ignore
            """WebSocket endpoint for live sessions."""
            await self._handle_websocket(websocket)

    def _home_path(self) -> str:
        return dashboard_path(self.settings.home_route, self.registry.local_node, prefix=self.settings.path_prefix)

    def _controller(self) -> PageController:
        return PageController(
            self.registry,
            self.catalog,
            probe=self.probe,
            requirements=self.requirements,
            settings=self.settings,
        )

    def _runner(self, websocket: WebSocket) -> SessionRunner:
        async def push(frame: dict[str, Any]) -> None:
            await websocket.send_json(jsonable_encoder(frame))

        return SessionRunner(
            self.registry,
            self.catalog,
            probe=self.probe,
            push=push,
            requirements=self.requirements,
            settings=self.settings,
            time_unit=self._time_unit,
        )

    async def _handle_websocket(self, websocket: WebSocket) -> None:
        """Mount a live session from the first frame and pump client frames into it."""
        await websocket.accept()
        runner: SessionRunner | None = None
        reader: asyncio.Task[None] | None = None
        try:
            first: object = await websocket.receive_json()
            if not isinstance(first, dict) or first.get("type") != "mount":
                logger.warning("WebSocket opened without a mount frame: %r", first)
                await websocket.send_json({"type": "error", "status": 400, "detail": "expected mount frame"})
                return

            params = _frame_params(first)
            runner = self._runner(websocket)
            self._runners.add(runner)
            session_task = runner.start(params)
            logger.info("Live session started for %s@%s", params.get("page"), params.get("node"))

            reader = asyncio.create_task(self._read_client(websocket, runner), name="livedash-ws-reader")
            await asyncio.wait({session_task, reader}, return_when=asyncio.FIRST_COMPLETED)
        except WebSocketDisconnect:
            logger.info("WebSocket client disconnected")
        except Exception as e:  # pylint: disable=broad-exception-caught
            logger.error("WebSocket error: %s", e, exc_info=True)
        finally:
            if reader is not None and not reader.done():
                reader.cancel()
                await asyncio.gather(reader, return_exceptions=True)
            if runner is not None:
                await runner.stop()
                self._runners.discard(runner)
            with contextlib.suppress(Exception):
                await websocket.close()

    async def _read_client(self, websocket: WebSocket, runner: SessionRunner) -> None:
        while True:
            try:
                data_raw: object = await websocket.receive_json()
            except WebSocketDisconnect:
                logger.info("WebSocket client disconnected")
                return

            if not isinstance(data_raw, dict):
                logger.warning("WebSocket received non-dict message: %s", type(data_raw))
                continue

            frame_type = data_raw.get("type")
            if frame_type == "event":
                name = data_raw.get("name")
                payload = data_raw.get("payload") or {}
                if not isinstance(name, str) or not isinstance(payload, dict):
                    logger.warning("Malformed event frame: %r", data_raw)
                    continue
                runner.submit(UserEvent(name, payload))
            elif frame_type == "params":
                url = data_raw.get("url")
                runner.submit(ParamsChanged(_frame_params(data_raw), url if isinstance(url, str) else None))
            else:
                logger.warning("Unknown WebSocket frame type: %r", frame_type)

    # === Server lifecycle ===

    async def start(self) -> None:
        """Start uvicorn in a background task."""
        if self.server_task and not self.server_task.done():
            logger.warning("API server already running; skipping start")
            return

        config = uvicorn.Config(
            self.app,
            host=self.config.api.host,
            port=self.config.api.port,
            log_level="warning",
            ws_ping_interval=API_WS_PING_INTERVAL_S,
            ws_ping_timeout=API_WS_PING_TIMEOUT_S,
            timeout_keep_alive=API_TIMEOUT_KEEP_ALIVE_S,
        )
        self.server = uvicorn.Server(config)
        self.server_task = asyncio.create_task(self.server.serve(), name="livedash-api")
        if self.monitor is not None:
            await self.monitor.start()
        logger.info("API server listening on %s:%d", self.config.api.host, self.config.api.port)

    async def stop(self) -> None:
        """Stop peer monitoring and live sessions, then uvicorn."""
        if self.monitor is not None:
            await self.monitor.stop()
        runners = list(self._runners)
        if runners:
            await asyncio.gather(*(runner.stop() for runner in runners), return_exceptions=True)
        self._runners.clear()
        if self.server is not None:
            self.server.should_exit = True
        if self.server_task is not None:
            await asyncio.gather(self.server_task, return_exceptions=True)
        logger.info("API server stopped (%d live sessions closed)", len(runners))


def _frame_params(frame: dict[str, Any]) -> dict[str, str]:
    raw = frame.get("params")
    params = {str(k): str(v) for k, v in raw.items()} if isinstance(raw, dict) else {}
    for key in ("node", "page"):
        value = frame.get(key)
        if isinstance(value, str):
            params[key] = value
    return params
