"""Entry point for serving the visualizer engine over HTTP.

Wires an `ExecutionEngine` to the asyncio-backed `LoopScheduler` and serves
the FastAPI app from `evloop.runtime.http_api` with uvicorn.

Environment variables (see `evloop.config`):
- EVLOOP_HOST / EVLOOP_PORT: bind address (default 0.0.0.0:8000)
- EVLOOP_SOURCE_FILE: program to load at startup (default: built-in demo)
- EVLOOP_LOG_LEVEL: logging level
- EVLOOP_SPEED and friends: playback cadence
"""

import logging
from pathlib import Path

import uvicorn

from evloop.config import ServerConfig, configure_logging
from evloop.demo import DEFAULT_DEMO_CODE
from evloop.engine import ExecutionEngine
from evloop.runtime.http_api import create_app
from evloop.runtime.loop_scheduler import LoopScheduler

logger = logging.getLogger(__name__)


def load_source(cfg: ServerConfig) -> str:
    """Read the startup program, falling back to the demo."""
    if cfg.source_file is None:
        return DEFAULT_DEMO_CODE
    return Path(cfg.source_file).read_text(encoding="utf-8")


def main():
    """Boot an engine, attach the loop timer, and run the HTTP server."""
    cfg = ServerConfig.from_env()
    configure_logging(cfg.log_level)
    engine = ExecutionEngine.from_source(load_source(cfg), LoopScheduler(), cfg.playback)
    logger.info("serving %d steps on %s:%d", engine.total_steps, cfg.host, cfg.port)
    app = create_app(engine)
    uvicorn.run(app, host=cfg.host, port=cfg.port, log_level=cfg.log_level.lower())


if __name__ == "__main__":
    main()
