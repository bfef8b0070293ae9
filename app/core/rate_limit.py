"""Mongo-based fixed-window rate limiting for invoice submissions."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from app.core.config import get_settings
from app.core.database import Database
from app.core.exceptions import AppException

logger = logging.getLogger(__name__)


class RateLimitExceeded(AppException):
    def __init__(self, retry_after_seconds: int):
        self.retry_after_seconds = retry_after_seconds
        super().__init__(
            detail=f"Rate limit exceeded. Try again in {retry_after_seconds} seconds.",
            status_code=429,
            headers={"Retry-After": str(retry_after_seconds)},
        )


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    count: int
    limit: int
    retry_after_seconds: int = 0


class RateLimitService:
    """
    One counter document per user: {user_id, count, window_reset_at}.

    Every step is a single-document conditional update, so two concurrent
    requests can never both take the last slot of a window.
    """

    @staticmethod
    def _collection():
        return Database.get_collection("rate_limits")

    @staticmethod
    def _now() -> datetime:
        # Naive UTC, matching what pymongo hands back from the database.
        return datetime.now(timezone.utc).replace(tzinfo=None)

    @classmethod
    async def _ensure_counter(cls, user_id: str, now: datetime, window: timedelta) -> None:
        try:
            await cls._collection().update_one(
                {"user_id": user_id},
                {
                    "$setOnInsert": {
                        "user_id": user_id,
                        "count": 0,
                        "window_reset_at": now + window,
                        "created_at": now,
                    }
                },
                upsert=True,
            )
        except DuplicateKeyError:
            # A concurrent request inserted the counter first.
            pass

    @classmethod
    async def check_and_consume(
        cls,
        user_id: str,
        *,
        limit: int,
        window_seconds: int,
        now: Optional[datetime] = None,
    ) -> RateLimitDecision:
        now = now or cls._now()
        window = timedelta(seconds=window_seconds)

        await cls._ensure_counter(user_id, now, window)

        # Window expired: start a new one.
        await cls._collection().update_one(
            {"user_id": user_id, "window_reset_at": {"$lte": now}},
            {"$set": {"count": 0, "window_reset_at": now + window}},
        )

        doc = await cls._collection().find_one_and_update(
            {
                "user_id": user_id,
                "count": {"$lt": int(limit)},
                "window_reset_at": {"$gt": now},
            },
            {"$inc": {"count": 1}},
            return_document=ReturnDocument.AFTER,
        )
        if doc is not None:
            return RateLimitDecision(allowed=True, count=int(doc["count"]), limit=int(limit))

        doc = await cls._collection().find_one({"user_id": user_id}) or {}
        reset_at = doc.get("window_reset_at") or (now + window)
        retry_after = max(1, math.ceil((reset_at - now).total_seconds()))
        return RateLimitDecision(
            allowed=False,
            count=int(doc.get("count", limit)),
            limit=int(limit),
            retry_after_seconds=retry_after,
        )


async def enforce_invoice_rate_limit(user_id: str) -> RateLimitDecision:
    """Consume one invoice submission slot for the user or raise RateLimitExceeded."""
    settings = get_settings()
    decision = await RateLimitService.check_and_consume(
        user_id,
        limit=int(settings.INVOICE_RATE_LIMIT),
        window_seconds=int(settings.INVOICE_RATE_WINDOW_SECONDS),
    )
    if not decision.allowed:
        logger.info(f"Rate limit hit for user {user_id}; retry in {decision.retry_after_seconds}s")
        raise RateLimitExceeded(decision.retry_after_seconds)
    return decision
