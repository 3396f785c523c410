"""HTTP surface for driving an engine from a dashboard or another process.

Endpoints (FastAPI):
- GET  /state:   playback status plus the current queue snapshot.
- GET  /steps:   the compiled trace.
- GET  /queues:  lane names and descriptions in priority order.
- POST /control: {"action": "play" | "pause" | "step" | "reset"}
- POST /source:  {"source": "<program text>"}; recompiles and resets.
- POST /speed:   {"speed": <int>}; clamped to the configured range.

Every POST answers with the same body as GET /state. Bad bodies get a 400.
"""

import logging
from typing import Any, Dict

from fastapi import FastAPI, HTTPException

from evloop.engine import ExecutionEngine
from evloop.queue_types import QUEUE_INFO

logger = logging.getLogger(__name__)


def _field(body: Dict[str, Any], name: str) -> Any:
    if name not in body:
        raise HTTPException(status_code=400, detail=f"missing field {name!r}")
    return body[name]


def create_app(engine: ExecutionEngine) -> FastAPI:
    """Build a FastAPI app that exposes `engine`.

    The engine is shared by all requests; handlers run on the event loop, so
    they never race with the engine's own timer callbacks.
    """
    app = FastAPI(title="evloop")
    app.state.engine = engine

    @app.get("/state")
    async def state():
        return engine.brief_state()

    @app.get("/steps")
    async def steps():
        return [s.to_dict() for s in engine.steps]

    @app.get("/queues")
    async def queues():
        return [
            {"queueType": info.queue_class.value, "label": info.label, "description": info.description}
            for info in QUEUE_INFO
        ]

    @app.post("/control")
    async def control(body: Dict[str, Any]):
        action = _field(body, "action")
        logger.info("control %s", action)
        try:
            engine.control(str(action))
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        return engine.brief_state()

    @app.post("/source")
    async def source(body: Dict[str, Any]):
        text = _field(body, "source")
        if not isinstance(text, str):
            raise HTTPException(status_code=400, detail="'source' must be a string")
        engine.load_source(text)
        return engine.brief_state()

    @app.post("/speed")
    async def speed(body: Dict[str, Any]):
        try:
            engine.set_speed(_field(body, "speed"))
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        return engine.brief_state()

    return app
