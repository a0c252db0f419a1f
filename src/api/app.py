"""
FastAPI application factory.

* Registers routes for sign-in, trips, device feeds, reports and admin.
* Builds the agent runtime (trip service client, tracker, state machine)
  on startup and stops background tracking on shutdown.
* Applies rate-limiting middleware.
* Swagger / OpenAPI UI available at ``/docs``.
"""

from contextlib import asynccontextmanager
import logging
from typing import Optional

from fastapi import FastAPI
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from src.api.dependencies import AgentRuntime, build_runtime
from src.api.middleware import limiter
from src.api.routes import admin, auth, device, reports, trips
from src.infrastructure.database import init_models
from src.infrastructure.redis_client import close_pool, get_redis

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the runtime on startup unless one was injected; tear it down on shutdown."""
    runtime: Optional[AgentRuntime] = getattr(app.state, "runtime", None)
    owned = runtime is None
    if owned:
        await init_models()
        runtime = build_runtime(await get_redis())
        app.state.runtime = runtime
        logger.info("Tanker agent runtime ready")
    yield
    if owned:
        await runtime.aclose()
        await close_pool()
    else:
        await runtime.tracker.stop()


def create_app(runtime: Optional[AgentRuntime] = None) -> FastAPI:
    app = FastAPI(
        title="Water Tanker Trip Agent API",
        description=(
            "Drives a water-tanker delivery trip from booking acceptance "
            "to verified completion.  Geofences hydrant and destination "
            "proofs, tracks distance while in transit, and gates "
            "completion on a one-time customer code."
        ),
        version="1.0.0",
        lifespan=lifespan,
    )
    if runtime is not None:
        app.state.runtime = runtime

    # Rate limiter
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    # Routers
    app.include_router(auth.router, prefix="/api/v1")
    app.include_router(trips.router, prefix="/api/v1")
    app.include_router(device.router, prefix="/api/v1")
    app.include_router(reports.router, prefix="/api/v1")
    app.include_router(admin.router, prefix="/api/v1")

    return app
