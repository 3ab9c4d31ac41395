#!/usr/bin/env python3
"""
cosmic_genesis.py

Launcher for the live universe viewer. Connects to the simulation server's
push channel and opens the pygame window.

Usage:
    python cosmic_genesis.py
    python cosmic_genesis.py --ws-url ws://sim.local:8001/ws --api-url http://sim.local:8001

Endpoints default to COSMIC_WS_URL / COSMIC_API_URL (see viewer_config.py).
"""
import argparse
import asyncio
import logging
from dataclasses import replace

from cell_inspector import CellDetailFetcher, CellInspector
from snapshot_store import SnapshotStore
from universe_transport import TransportManager
from universe_viewer import UniverseViewer
from viewer_config import ViewerConfig

logger = logging.getLogger(__name__)


def setup_logging(level_name: str) -> None:
    level = getattr(logging, level_name.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s - %(message)s",
    )


def parse_args(argv=None) -> ViewerConfig:
    config = ViewerConfig.from_env()
    parser = argparse.ArgumentParser(description="Live viewer for the Cosmic Genesis universe")
    parser.add_argument("--ws-url", default=config.ws_url, help="Push channel endpoint.")
    parser.add_argument("--api-url", default=config.api_url, help="Base URL for cell details.")
    parser.add_argument("--width", type=int, default=config.width)
    parser.add_argument("--height", type=int, default=config.height)
    parser.add_argument("--fps", type=int, default=config.fps)
    parser.add_argument("--log-level", default=config.log_level)
    args = parser.parse_args(argv)
    return replace(
        config,
        ws_url=args.ws_url,
        api_url=args.api_url,
        width=args.width,
        height=args.height,
        fps=args.fps,
        log_level=args.log_level,
    )


async def run_viewer(config: ViewerConfig) -> None:
    store = SnapshotStore()
    transport = TransportManager(store, config.ws_url)
    inspector = CellInspector(CellDetailFetcher(config.api_url))
    viewer = UniverseViewer(store, transport, inspector, config.width, config.height, config.fps)
    transport.connect()
    await viewer.run()


def main(argv=None):
    config = parse_args(argv)
    setup_logging(config.log_level)
    logger.info("Channel %s, details %s", config.ws_url, config.api_url)
    try:
        asyncio.run(run_viewer(config))
    except KeyboardInterrupt:
        pass


if __name__ == '__main__':
    main()
