"""End-to-end invoice flows through the HTTP API."""

import asyncio

import pytest
from bson import ObjectId

from app.invoices.renderer import RenderError

from tests.conftest import SAMPLE_INVOICE, auth_headers


@pytest.mark.anyio
async def test_create_then_download_after_generation(async_client, hub, runner):
    user_id = str(ObjectId())
    headers = auth_headers(user_id)
    handle = await hub.subscribe(user_id)

    r = await async_client.post("/api/invoices", json=SAMPLE_INVOICE, headers=headers)
    assert r.status_code == 201
    created = r.json()
    assert created["status"] == "processing"
    assert created["download_available"] is False

    assert await runner.join(timeout=10) == 0

    r = await async_client.get(f"/api/invoices/{created['id']}", headers=headers)
    assert r.json()["status"] == "ready"
    assert r.json()["download_available"] is True

    r = await async_client.get(f"/api/invoices/{created['id']}/download", headers=headers)
    assert r.status_code == 200
    assert r.headers["content-type"] == "application/pdf"
    assert r.headers["content-disposition"] == (
        f'attachment; filename="invoice-{created["invoice_number"]}.pdf"'
    )
    assert r.content.startswith(b"%PDF")

    handle.close()
    events = [event async for event in handle.events()]
    assert events == [{"type": "job_ready", "job_id": created["id"], "status": "ready"}]


@pytest.mark.anyio
async def test_sixth_submission_within_window_is_rate_limited(async_client, runner):
    headers = auth_headers()

    statuses = []
    for _ in range(6):
        r = await async_client.post("/api/invoices", json=SAMPLE_INVOICE, headers=headers)
        statuses.append(r.status_code)

    assert statuses == [201] * 5 + [429]
    retry_after = int(r.headers["retry-after"])
    assert 0 < retry_after <= 60
    assert f"{retry_after} seconds" in r.json()["detail"]

    await runner.join(timeout=10)
    r = await async_client.get("/api/invoices", headers=headers)
    assert len(r.json()) == 5


@pytest.mark.anyio
async def test_other_users_cannot_see_or_download_a_job(async_client, runner):
    owner = auth_headers()
    intruder = auth_headers()

    r = await async_client.post("/api/invoices", json=SAMPLE_INVOICE, headers=owner)
    job_id = r.json()["id"]
    await runner.join(timeout=10)

    foreign = await async_client.get(f"/api/invoices/{job_id}/download", headers=intruder)
    missing = await async_client.get(f"/api/invoices/{ObjectId()}/download", headers=intruder)
    assert foreign.status_code == missing.status_code == 404
    assert foreign.json() == missing.json()

    r = await async_client.get(f"/api/invoices/{job_id}", headers=intruder)
    assert r.status_code == 404
    r = await async_client.get("/api/invoices", headers=intruder)
    assert r.json() == []


@pytest.mark.anyio
async def test_render_failure_ends_failed_without_download(async_client, hub, runner):
    def broken_renderer(invoice):
        raise RenderError("font missing")

    runner.renderer = broken_renderer
    user_id = str(ObjectId())
    headers = auth_headers(user_id)
    handle = await hub.subscribe(user_id)

    r = await async_client.post("/api/invoices", json=SAMPLE_INVOICE, headers=headers)
    assert r.status_code == 201
    job_id = r.json()["id"]
    await runner.join(timeout=10)

    r = await async_client.get(f"/api/invoices/{job_id}", headers=headers)
    body = r.json()
    assert body["status"] == "failed"
    assert body["download_available"] is False

    r = await async_client.get(f"/api/invoices/{job_id}/download", headers=headers)
    assert r.status_code == 409

    handle.close()
    events = [event async for event in handle.events()]
    assert events == [{"type": "job_failed", "job_id": job_id, "status": "failed"}]


@pytest.mark.anyio
async def test_download_before_ready_is_not_ready(async_client, runner):
    release = asyncio.Event()

    async def hold(*args, **kwargs):
        await release.wait()
        return False

    headers = auth_headers()
    runner.store = type("HeldStore", (), {"mark_ready": staticmethod(hold), "mark_failed": staticmethod(hold)})

    r = await async_client.post("/api/invoices", json=SAMPLE_INVOICE, headers=headers)
    job_id = r.json()["id"]

    r = await async_client.get(f"/api/invoices/{job_id}/download", headers=headers)
    assert r.status_code == 409
    assert r.json()["detail"] == "PDF not ready for download"

    release.set()
    await runner.join(timeout=10)


@pytest.mark.anyio
async def test_list_is_newest_first(async_client, runner):
    headers = auth_headers()
    ids = []
    for number in ("INV-1", "INV-2", "INV-3"):
        r = await async_client.post(
            "/api/invoices", json={**SAMPLE_INVOICE, "invoice_number": number}, headers=headers
        )
        ids.append(r.json()["id"])
        await asyncio.sleep(0.01)
    await runner.join(timeout=10)

    r = await async_client.get("/api/invoices", headers=headers)
    assert [item["id"] for item in r.json()] == list(reversed(ids))


@pytest.mark.anyio
async def test_invalid_payload_is_rejected_without_consuming_a_job(async_client):
    headers = auth_headers()
    r = await async_client.post(
        "/api/invoices", json={**SAMPLE_INVOICE, "line_items": []}, headers=headers
    )
    assert r.status_code == 422

    r = await async_client.get("/api/invoices", headers=headers)
    assert r.json() == []


@pytest.mark.anyio
async def test_health(async_client):
    r = await async_client.get("/health")
    assert r.status_code == 200
    assert r.json()["database"] == "connected"


@pytest.mark.anyio
async def test_oversized_body_is_rejected(async_client, monkeypatch):
    from app.core.config import get_settings

    monkeypatch.setattr(get_settings(), "MAX_REQUEST_BODY_BYTES", 100)
    payload = {**SAMPLE_INVOICE, "notes": "x" * 500}

    r = await async_client.post("/api/invoices", json=payload, headers=auth_headers())
    assert r.status_code == 413
