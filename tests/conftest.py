"""Shared fixtures: in-memory MongoDB, hub, storage and a wired-up app."""

from __future__ import annotations

import os

# Settings are cached on first import; pin the ones tests rely on.
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")
os.environ.setdefault("INVOICE_RATE_LIMIT", "5")
os.environ.setdefault("INVOICE_RATE_WINDOW_SECONDS", "60")
os.environ.setdefault("SSE_KEEPALIVE_SECONDS", "5")

from typing import Dict, Optional  # noqa: E402

import pytest  # noqa: E402
from bson import ObjectId  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from mongomock_motor import AsyncMongoMockClient  # noqa: E402

from app.auth.service import AuthService  # noqa: E402
from app.core.database import Database  # noqa: E402
from app.core.storage import ArtifactNotFound, ArtifactStorage  # noqa: E402
from app.events.hub import NotificationHub  # noqa: E402
from app.invoices.renderer import render_invoice_pdf  # noqa: E402
from app.invoices.runner import InvoiceJobRunner  # noqa: E402
from app.main import app  # noqa: E402


SAMPLE_INVOICE = {
    "client_name": "Acme",
    "line_items": [{"description": "Widget", "quantity": 2, "rate": 10.0, "amount": 20.0}],
    "subtotal": 20.0,
    "tax": 2.0,
    "total": 22.0,
}


class InMemoryArtifactStorage(ArtifactStorage):
    def __init__(self) -> None:
        self.blobs: Dict[str, bytes] = {}

    def save(self, key: str, data: bytes, content_type: str = "application/pdf") -> str:
        self.blobs[key] = data
        return key

    def load(self, key: str) -> bytes:
        if key not in self.blobs:
            raise ArtifactNotFound(key)
        return self.blobs[key]


def auth_headers(user_id: Optional[str] = None, email: str = "user@example.com") -> dict:
    token = AuthService.create_access_token(user_id or str(ObjectId()), email)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def anyio_backend():
    # The app is asyncio-only (motor, asyncio queues/tasks).
    return "asyncio"


@pytest.fixture
async def mongo_db():
    client = AsyncMongoMockClient()
    Database.client = client
    Database.db = client["invoicer_test"]
    await Database._create_indexes()
    yield Database.db
    Database.client = None
    Database.db = None


@pytest.fixture
def storage():
    return InMemoryArtifactStorage()


@pytest.fixture
def hub():
    return NotificationHub(max_queue=10)


@pytest.fixture
async def runner(hub, storage):
    job_runner = InvoiceJobRunner(hub=hub, storage=storage, renderer=render_invoice_pdf, max_workers=2)
    yield job_runner
    await job_runner.shutdown(timeout=10)


@pytest.fixture
async def async_client(mongo_db, hub, storage, runner):
    app.state.notification_hub = hub
    app.state.artifact_storage = storage
    app.state.job_runner = runner
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
