"""Invoice job store - creation, owner-scoped reads and terminal transitions."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import List, Optional

from bson import ObjectId
from pymongo import DESCENDING

from app.core.database import Database
from app.core.exceptions import NotFoundException
from app.invoices.models import InvoiceCreate, InvoiceResponse, JobStatus

logger = logging.getLogger(__name__)

MAX_ERROR_CHARS = 1200


def _now() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class InvoiceJobService:
    """
    Every invoice is a generation job: it starts in `processing` and moves
    exactly once to `ready` (with an artifact) or `failed`.
    """

    @staticmethod
    def _collection():
        return Database.get_collection("invoices")

    @staticmethod
    def _object_id(job_id: str) -> Optional[ObjectId]:
        if not isinstance(job_id, str) or not ObjectId.is_valid(job_id):
            return None
        return ObjectId(job_id)

    @classmethod
    async def create_job(cls, user_id: str, payload: InvoiceCreate) -> dict:
        now = _now()
        doc = {
            "user_id": user_id,
            "status": JobStatus.processing.value,
            "invoice": payload.to_document(),
            "artifact_ref": None,
            "error": None,
            "created_at": now,
            "updated_at": now,
            "finished_at": None,
        }
        result = await cls._collection().insert_one(doc)
        doc["_id"] = result.inserted_id
        logger.info(f"Created invoice job {result.inserted_id} for user {user_id}")
        return doc

    @classmethod
    async def get_job_for_user(cls, job_id: str, user_id: str) -> dict:
        """Missing, malformed and foreign ids are indistinguishable to the caller."""
        oid = cls._object_id(job_id)
        doc = None
        if oid is not None:
            doc = await cls._collection().find_one({"_id": oid, "user_id": user_id})
        if not doc:
            raise NotFoundException("Invoice not found")
        return doc

    @classmethod
    async def list_jobs_for_user(cls, user_id: str, limit: int = 200) -> List[dict]:
        """The `limit` most recent jobs of the user, newest first."""
        cursor = (
            cls._collection()
            .find({"user_id": user_id})
            .sort("created_at", DESCENDING)
            .limit(int(limit))
        )
        return await cursor.to_list(length=int(limit))

    @classmethod
    async def _finish(cls, job_id: str, target: JobStatus, fields: dict) -> bool:
        if not JobStatus.processing.can_transition_to(target):
            raise ValueError(f"Cannot finish a job as {target.value}")
        now = _now()
        result = await cls._collection().update_one(
            {"_id": ObjectId(job_id), "status": JobStatus.processing.value},
            {"$set": {"status": target.value, "updated_at": now, "finished_at": now, **fields}},
        )
        if result.modified_count == 0:
            logger.info(f"Invoice job {job_id} already finished; ignoring {target.value}")
            return False
        return True

    @classmethod
    async def mark_ready(cls, job_id: str, artifact_ref: str) -> bool:
        """processing -> ready. Returns False when the job was already terminal."""
        if not artifact_ref:
            raise ValueError("artifact_ref is required to mark a job ready")
        return await cls._finish(job_id, JobStatus.ready, {"artifact_ref": artifact_ref, "error": None})

    @classmethod
    async def mark_failed(cls, job_id: str, error: Optional[str] = None) -> bool:
        """processing -> failed. Returns False when the job was already terminal."""
        err = (error or "Invoice generation failed")
        if len(err) > MAX_ERROR_CHARS:
            err = err[:MAX_ERROR_CHARS] + "…"
        return await cls._finish(job_id, JobStatus.failed, {"artifact_ref": None, "error": err})

    @staticmethod
    def to_response(doc: dict) -> InvoiceResponse:
        invoice = doc.get("invoice") or {}
        status = JobStatus(doc["status"])

        def as_date(value):
            return value.date() if isinstance(value, datetime) else value

        return InvoiceResponse(
            id=str(doc["_id"]),
            status=status,
            client_name=invoice["client_name"],
            client_email=invoice.get("client_email"),
            invoice_number=invoice["invoice_number"],
            issue_date=as_date(invoice.get("issue_date")),
            due_date=as_date(invoice.get("due_date")),
            line_items=invoice.get("line_items") or [],
            subtotal=invoice["subtotal"],
            tax=invoice.get("tax", 0.0),
            total=invoice["total"],
            notes=invoice.get("notes"),
            download_available=status is JobStatus.ready and bool(doc.get("artifact_ref")),
            error=doc.get("error"),
            created_at=doc["created_at"],
            updated_at=doc["updated_at"],
            finished_at=doc.get("finished_at"),
        )
