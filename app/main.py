"""
Invoicer API - Main application entry point.

Invoice submission with background PDF generation and live status events.
"""

import logging
from contextlib import asynccontextmanager
from functools import partial

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.core.config import get_settings
from app.core.database import Database
from app.core.middleware import MaxBodySizeMiddleware
from app.core.storage import get_artifact_storage
from app.auth.views import router as auth_router
from app.events.hub import NotificationHub
from app.events.views import router as events_router
from app.invoices.renderer import render_invoice_pdf
from app.invoices.runner import InvoiceJobRunner
from app.invoices.views import router as invoices_router

settings = get_settings()
API_PREFIX = "/api"

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


def start_services(app: FastAPI) -> None:
    """Create the process-wide hub, storage and job runner on app.state."""
    app.state.notification_hub = NotificationHub(max_queue=settings.SSE_QUEUE_SIZE)
    app.state.artifact_storage = get_artifact_storage()
    app.state.job_runner = InvoiceJobRunner(
        hub=app.state.notification_hub,
        storage=app.state.artifact_storage,
        renderer=partial(render_invoice_pdf, currency=settings.INVOICE_CURRENCY_SYMBOL),
        max_workers=settings.JOB_WORKERS,
    )


async def stop_services(app: FastAPI) -> None:
    # In-flight jobs finish before subscribers are closed.
    await app.state.job_runner.shutdown(timeout=settings.JOB_SHUTDOWN_TIMEOUT_SECONDS)
    await app.state.notification_hub.close()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan - startup and shutdown events."""
    # Startup
    await Database.connect()
    start_services(app)
    yield
    # Shutdown
    await stop_services(app)
    await Database.disconnect()


# Create FastAPI app
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="""
## Invoicer API

Create invoices and download them as PDFs.

- 🔐 **Auth**: register / login with email and password (JWT bearer tokens)
- 🧾 **Invoices**: submit an invoice, it is rendered to PDF in the background
- 📡 **Events**: `GET /api/events?authorization=<token>` streams `job_ready` / `job_failed`
- ⏱️ **Rate limit**: 5 invoice submissions per minute per user
    """,
    lifespan=lifespan,
    docs_url=f"{API_PREFIX}/docs",
    redoc_url=f"{API_PREFIX}/redoc",
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Protect against oversized payloads
app.add_middleware(MaxBodySizeMiddleware)

# Include routers
routers = [
    auth_router,
    invoices_router,
    events_router,
]

for router in routers:
    app.include_router(router, prefix=API_PREFIX)


@app.get("/", tags=["Health"])
async def root():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "app": settings.APP_NAME,
        "version": settings.APP_VERSION,
    }


@app.get("/health", tags=["Health"])
async def health_check():
    """Detailed health check."""
    hub = getattr(app.state, "notification_hub", None)
    runner = getattr(app.state, "job_runner", None)
    return {
        "status": "healthy",
        "database": "connected" if Database.client else "disconnected",
        "event_subscribers": len(hub) if hub is not None else 0,
        "jobs_in_flight": runner.pending if runner is not None else 0,
        "version": settings.APP_VERSION,
    }
