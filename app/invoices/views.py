"""Invoice API routes."""

import logging
import re
from typing import List

from fastapi import APIRouter, Depends, Path, Request, status
from fastapi.responses import Response
from starlette.concurrency import run_in_threadpool

from app.core.config import get_settings
from app.core.dependencies import get_current_user
from app.core.exceptions import NotFoundException, NotReadyException
from app.core.rate_limit import enforce_invoice_rate_limit
from app.core.storage import ArtifactNotFound, ArtifactStorage
from app.invoices.models import InvoiceCreate, InvoiceResponse, JobStatus
from app.invoices.runner import InvoiceJobRunner
from app.invoices.service import InvoiceJobService

router = APIRouter(prefix="/invoices", tags=["Invoices"])
settings = get_settings()
logger = logging.getLogger(__name__)


def get_job_runner(request: Request) -> InvoiceJobRunner:
    return request.app.state.job_runner


def get_storage(request: Request) -> ArtifactStorage:
    return request.app.state.artifact_storage


def _download_filename(invoice_number: str) -> str:
    safe = re.sub(r"[^A-Za-z0-9._-]+", "_", invoice_number or "").strip("._") or "invoice"
    return f"invoice-{safe}.pdf"


@router.post("", response_model=InvoiceResponse, status_code=status.HTTP_201_CREATED)
async def create_invoice(
    body: InvoiceCreate,
    current_user: dict = Depends(get_current_user),
    runner: InvoiceJobRunner = Depends(get_job_runner),
):
    """
    Submit an invoice for PDF generation.

    Returns immediately with status `processing`; a `job_ready` or `job_failed`
    event follows on the event stream.
    """
    await enforce_invoice_rate_limit(current_user["id"])
    job = await InvoiceJobService.create_job(current_user["id"], body)
    runner.dispatch(job)
    return InvoiceJobService.to_response(job)


@router.get("", response_model=List[InvoiceResponse])
async def list_invoices(current_user: dict = Depends(get_current_user)):
    """
    List the caller's invoices, newest first.

    Returns at most `INVOICE_LIST_LIMIT` (default 200) of the most recent jobs.
    """
    docs = await InvoiceJobService.list_jobs_for_user(
        current_user["id"], limit=settings.INVOICE_LIST_LIMIT
    )
    return [InvoiceJobService.to_response(doc) for doc in docs]


@router.get("/{invoice_id}", response_model=InvoiceResponse)
async def get_invoice(
    invoice_id: str = Path(..., description="Invoice ID"),
    current_user: dict = Depends(get_current_user),
):
    doc = await InvoiceJobService.get_job_for_user(invoice_id, current_user["id"])
    return InvoiceJobService.to_response(doc)


@router.get(
    "/{invoice_id}/download",
    response_class=Response,
    responses={200: {"content": {"application/pdf": {}}}},
)
async def download_invoice(
    invoice_id: str = Path(..., description="Invoice ID"),
    current_user: dict = Depends(get_current_user),
    storage: ArtifactStorage = Depends(get_storage),
):
    """Download the generated PDF. Only available once the invoice is ready."""
    doc = await InvoiceJobService.get_job_for_user(invoice_id, current_user["id"])

    if doc["status"] != JobStatus.ready.value or not doc.get("artifact_ref"):
        raise NotReadyException("PDF not ready for download")

    try:
        data = await run_in_threadpool(storage.load, doc["artifact_ref"])
    except ArtifactNotFound:
        logger.error(f"Artifact {doc['artifact_ref']} missing for ready invoice {invoice_id}")
        raise NotFoundException("PDF file not found")

    filename = _download_filename(doc["invoice"].get("invoice_number"))
    return Response(
        content=data,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
