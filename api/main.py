"""
Admin API for inspecting the notification outbox.

This application provides:
1. A health check (/health)
2. A paged, filterable outbox listing (/admin/notifications/outbox)
3. Full detail of one outbox record (/admin/notifications/outbox/{id})

The API is read-only: it never sends, retries or edits notifications.
Authentication is expected to sit in front of it.

Run with:
    uvicorn api.main:app --reload

Then visit http://localhost:8000/docs for interactive API documentation.
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Literal, Optional

from fastapi import Depends, FastAPI, HTTPException, Query
from pydantic import BaseModel

from notifications.config import NotificationSettings
from notifications.models import OutboxRecord
from notifications.outbox_store import OutboxStore, get_outbox_store

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(name)-24s | %(levelname)-5s | %(message)s",
    datefmt="%H:%M:%S",
)

logger = logging.getLogger("api")

MAX_PAGE_SIZE = 50


# Response models
class OutboxListItem(BaseModel):
    """Summary row of one outbox record."""
    id: str
    event_type: str
    status: str
    channels: list[str]
    to: Optional[str] = None
    subject: Optional[str] = None
    retries: int = 0
    created_at: datetime
    sent_at: Optional[datetime] = None
    error: Optional[str] = None
    application_id: Optional[str] = None
    order_id: Optional[str] = None

    @classmethod
    def from_record(cls, record: OutboxRecord) -> "OutboxListItem":
        return cls(
            id=record.id,
            event_type=record.event_type,
            status=record.status,
            channels=list(record.channels),
            to=record.recipient(),
            subject=record.subject(),
            retries=record.retries,
            created_at=record.created_at,
            sent_at=record.sent_at,
            error=record.error,
            application_id=record.application_id,
            order_id=record.order_id,
        )


class OutboxCounts(BaseModel):
    queued: int = 0
    failed: int = 0
    sent: int = 0


class OutboxListResponse(BaseModel):
    items: list[OutboxListItem]
    total: int
    counts: OutboxCounts


# Module-level store (would use proper DI in production)
_store: Optional[OutboxStore] = None


def get_store() -> OutboxStore:
    """Get the outbox store, configured from the environment on first use."""
    global _store
    if _store is None:
        _store = get_outbox_store(NotificationSettings.from_env().outbox_url)
    return _store


def reset_api_state(store: Optional[OutboxStore] = None) -> None:
    """Reset API state (for testing)."""
    global _store
    _store = store


# Application lifespan
@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown."""
    logger.info("Starting notification outbox admin API")
    yield
    logger.info("Shutting down")


app = FastAPI(
    title="Stringing Notifications Admin",
    description="Read-only inspection of the stringing-service notification outbox.",
    version="1.0.0",
    lifespan=lifespan,
)


# =============================================================================
# Health Check
# =============================================================================

@app.get("/health", tags=["Health"])
def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "service": "stringing-notifications"}


# =============================================================================
# Outbox Inspection
# =============================================================================

@app.get("/admin/notifications/outbox", response_model=OutboxListResponse, tags=["Outbox"])
def list_outbox(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=MAX_PAGE_SIZE),
    status: Literal["all", "queued", "failed", "sent"] = "all",
    q: str = "",
    store: OutboxStore = Depends(get_store),
) -> OutboxListResponse:
    """
    List outbox records, newest first.

    `counts` are per status for the keyword filter alone, so they stay the
    same when switching between status tabs.
    """
    result = store.list_records(status=status, query=q.strip(), page=page, limit=limit)
    return OutboxListResponse(
        items=[OutboxListItem.from_record(r) for r in result.items],
        total=result.total,
        counts=OutboxCounts(**result.counts),
    )


@app.get("/admin/notifications/outbox/{record_id}", response_model=OutboxRecord, tags=["Outbox"])
def get_outbox_record(record_id: str, store: OutboxStore = Depends(get_store)) -> OutboxRecord:
    """Full outbox record, including the context snapshot and rendered payloads."""
    record = store.get(record_id)
    if record is None:
        raise HTTPException(status_code=404, detail=f"Outbox record not found: {record_id}")
    return record
