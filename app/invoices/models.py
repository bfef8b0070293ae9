"""Invoice job models and schemas."""

from __future__ import annotations

import time
from datetime import date, datetime
from enum import Enum
from typing import FrozenSet, List, Optional

from pydantic import BaseModel, EmailStr, Field, model_validator


class JobStatus(str, Enum):
    processing = "processing"
    ready = "ready"
    failed = "failed"

    @property
    def is_terminal(self) -> bool:
        return not _TRANSITIONS[self]

    def can_transition_to(self, target: "JobStatus") -> bool:
        return target in _TRANSITIONS[self]


_TRANSITIONS = {
    JobStatus.processing: frozenset({JobStatus.ready, JobStatus.failed}),
    JobStatus.ready: frozenset(),
    JobStatus.failed: frozenset(),
}
if set(_TRANSITIONS) != set(JobStatus):
    raise RuntimeError("every job status needs a transition entry")

TERMINAL_STATUSES: FrozenSet[JobStatus] = frozenset(s for s in JobStatus if s.is_terminal)


def _default_invoice_number() -> str:
    return f"INV-{int(time.time() * 1000)}"


class LineItem(BaseModel):
    description: str = Field(..., min_length=1, max_length=500)
    quantity: float = Field(..., gt=0)
    rate: float = Field(..., ge=0)
    amount: float = Field(..., ge=0)


class InvoiceCreate(BaseModel):
    """Invoice content submitted by the client. Immutable once stored."""
    client_name: str = Field(..., min_length=1, max_length=200)
    client_email: Optional[EmailStr] = None
    invoice_number: str = Field(default_factory=_default_invoice_number, min_length=1, max_length=64)
    issue_date: Optional[date] = None
    due_date: Optional[date] = None
    line_items: List[LineItem] = Field(..., min_length=1, max_length=100)
    subtotal: float = Field(..., ge=0)
    tax: float = Field(0.0, ge=0)
    total: float = Field(..., ge=0)
    notes: Optional[str] = Field(None, max_length=2000)

    @model_validator(mode="after")
    def _check_dates(self) -> "InvoiceCreate":
        if self.issue_date and self.due_date and self.due_date < self.issue_date:
            raise ValueError("due_date must not be before issue_date")
        return self

    def to_document(self) -> dict:
        """Mongo-friendly dict (BSON has no date type, only datetime)."""
        doc = self.model_dump(mode="json")
        for key in ("issue_date", "due_date"):
            value = getattr(self, key)
            doc[key] = datetime(value.year, value.month, value.day) if value else None
        return doc


class InvoiceResponse(BaseModel):
    id: str
    status: JobStatus
    client_name: str
    client_email: Optional[str] = None
    invoice_number: str
    issue_date: Optional[date] = None
    due_date: Optional[date] = None
    line_items: List[LineItem]
    subtotal: float
    tax: float
    total: float
    notes: Optional[str] = None
    download_available: bool = False
    error: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    finished_at: Optional[datetime] = None
