"""
pointkeeper.api.main — FastAPI application entry point
=======================================================

Run with::

    pointkeeper-api                     # port from config.yaml

or::

    uvicorn pointkeeper.api.main:app --reload --port 8000
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

load_dotenv()

from pointkeeper.api.deps import get_config, get_engine  # noqa: E402
from pointkeeper.api.routes.honors import router as honors_router  # noqa: E402
from pointkeeper.api.routes.points import router as points_router  # noqa: E402
from pointkeeper.errors import PointkeeperError  # noqa: E402

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle — warm the DB engine."""
    engine = get_engine()
    cfg = get_config()
    logger.info(
        "%s API started — engine ready (%s), max batch %d",
        cfg.platform_name, engine.url.database, cfg.max_batch_size,
    )
    yield
    logger.info("Pointkeeper API shutting down")


app = FastAPI(
    title="Pointkeeper API",
    version="1.0.0",
    lifespan=lifespan,
)


@app.exception_handler(PointkeeperError)
async def pointkeeper_error_handler(request: Request, exc: PointkeeperError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "message": exc.message},
    )


# Mount routers
app.include_router(points_router, prefix="/api")
app.include_router(honors_router, prefix="/api")


@app.get("/api/health")
def health():
    return {"status": "ok"}


def run() -> None:
    """Console entry point: serve the API on the configured port."""
    import uvicorn

    uvicorn.run("pointkeeper.api.main:app", host="0.0.0.0", port=get_config().api_port)
