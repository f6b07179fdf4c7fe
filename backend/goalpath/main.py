"""Main FastAPI application for the GoalPath backend."""
from fastapi import FastAPI, Request

from goalpath.api.routes.goals import router as goals_router
from goalpath.api.routes.okr import router as okr_router
from goalpath.api.routes.plan import router as plan_router
from goalpath.core.config import settings
from goalpath.core.logging import configure_logging
from goalpath.core.middleware import RequestIDMiddleware
from goalpath.observability.client import init_opik
from goalpath.observability.tracing import trace

configure_logging(log_level=settings.log_level)

app = FastAPI(title=settings.app_name, version="0.1.0")
app.add_middleware(RequestIDMiddleware)
app.include_router(goals_router)
app.include_router(plan_router)
app.include_router(okr_router)


@app.on_event("startup")
async def startup_observability() -> None:
    """Initialize observability backends after the event loop starts."""
    init_opik()


@app.get("/health", tags=["health"], summary="Readiness probe")
async def health_check(request: Request) -> dict[str, str]:
    """Return a simple status payload so automation can probe the API."""
    with trace("http.health_check", metadata={"route": "/health"}, request_id=request.state.request_id):
        return {"status": "ok"}
