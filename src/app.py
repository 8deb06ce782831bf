"""Delivery service FastAPI application.

Serves the delivery API synchronously over HTTP: dispatch, courier webhooks,
admin status changes, reassignment and customer tracking. Every request under
``/deliveries`` runs inside the delivery domain context.

Usage:
    uvicorn app:app --app-dir src --host 0.0.0.0 --port 8000 --reload
"""

# ---------------------------------------------------------------------------
# Domain initialization
# ---------------------------------------------------------------------------
# The domain is initialized at module level so uvicorn workers share it.
# PROTEAN_ENV controls which config overlay is applied:
#   - "test"       → event_processing = "sync"  (projectors fire in UoW)
#   - "production" → event_processing = "async" (projectors fire via Engine)
from contextlib import asynccontextmanager

from delivery.domain import delivery  # noqa: E402
from delivery.utils.logging import bind_delivery_context, clear_delivery_context, configure_logging
from delivery.wiring import get_orchestrator, reset_orchestrator
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

configure_logging()
delivery.init()


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    reset_orchestrator()


# ---------------------------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------------------------
app = FastAPI(
    title="Delivery API",
    description="Marketplace delivery orchestration: courier dispatch and tracking",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def domain_context_middleware(request: Request, call_next):
    """Push the delivery domain context for delivery routes."""
    if request.url.path.startswith("/deliveries"):
        clear_delivery_context()
        bind_delivery_context(method=request.method, path=request.url.path)
        try:
            with delivery.domain_context():
                return await call_next(request)
        finally:
            clear_delivery_context()
    # Health check, docs, etc.
    return await call_next(request)


# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------
from delivery.api.routes import delivery_router  # noqa: E402

app.include_router(delivery_router)


# ---------------------------------------------------------------------------
# Health / root
# ---------------------------------------------------------------------------
@app.get("/health")
async def health():
    return JSONResponse(
        content={
            "status": "ok",
            "domain": delivery.name,
            "providers": get_orchestrator().registry.provider_ids(),
        }
    )
