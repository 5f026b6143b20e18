"""livedash daemon entry point.

Builds the node registry, page catalog and capability probe from config and
serves the dashboard until interrupted.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
from pathlib import Path
from typing import Optional, Sequence

from livedash.api_server import APIServer
from livedash.config import get_config
from livedash.config.schema import LiveDashConfig
from livedash.core.capabilities import Capabilities, LocalProbe, StaticProbe
from livedash.core.node_registry import NodeRegistry
from livedash.logging_config import setup_logging
from livedash.pages import build_catalog

logger = logging.getLogger(__name__)


def build_server(config: LiveDashConfig) -> APIServer:
    """Wire registry, catalog and probe for `config`."""
    registry = NodeRegistry(config.node.name, config.node.peers)
    catalog = build_catalog(config.pages, config.dashboard.home_route)
    advertised = {
        node: Capabilities(
            applications=frozenset(caps.applications),
            modules=frozenset(caps.modules),
            processes=frozenset(caps.processes),
            dashboard_running=caps.dashboard_running,
        )
        for node, caps in config.node.capabilities.items()
    }
    probe = LocalProbe(config.node.name, fallback=StaticProbe(advertised))
    return APIServer(registry, catalog, probe=probe, config=config)


async def _serve(server: APIServer) -> None:
    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            pass

    await server.start()
    try:
        stopper = asyncio.create_task(stop_event.wait(), name="livedash-stop")
        assert server.server_task is not None
        await asyncio.wait({stopper, server.server_task}, return_when=asyncio.FIRST_COMPLETED)
        stopper.cancel()
    finally:
        await server.stop()


def main(argv: Optional[Sequence[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="Serve the livedash dashboard")
    parser.add_argument("--config", type=Path, help="Path to livedash.yml")
    parser.add_argument("--host", help="Override api.host")
    parser.add_argument("--port", type=int, help="Override api.port")
    parser.add_argument("--log-level", help="Override LIVEDASH_LOG_LEVEL")
    args = parser.parse_args(argv)

    setup_logging(args.log_level)
    config = get_config(args.config)
    if args.host:
        config.api.host = args.host
    if args.port:
        config.api.port = args.port

    server = build_server(config)
    logger.info(
        "Starting livedash on node %s (%d pages, %d peers)",
        config.node.name,
        len(server.catalog),
        len(config.node.peers),
    )
    asyncio.run(_serve(server))


if __name__ == "__main__":
    main()
