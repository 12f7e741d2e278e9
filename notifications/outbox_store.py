"""
SQL-backed outbox store.

Every dispatch attempt is persisted here before any channel is called.
Records are keyed by id and, when present, by a unique dedupe key.

Design decisions:
- One `notification_outbox` table through SQLAlchemy. A plain file path
  means SQLite; any SQLAlchemy URL works; no target is in-memory SQLite
- The unique constraint on dedupe_key decides who creates a record: the
  loser of a concurrent insert gets IntegrityError and re-selects the
  winner's row, whether the race is between threads or processes
- Nothing is cached in the store object; every read goes to the database,
  so the workflow and the admin API see the same rows
- Records are never deleted here; retention belongs to another process
"""

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator, Optional, Union

from pydantic import ValidationError
from sqlalchemy import JSON, DateTime, Index, Integer, String, Text, and_, create_engine, func, select, true
from sqlalchemy.engine import URL, make_url
from sqlalchemy.exc import ArgumentError, IntegrityError, SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker
from sqlalchemy.pool import StaticPool

from notifications.errors import PersistenceError
from notifications.models import OutboxRecord, OutboxStatus, utcnow

logger = logging.getLogger("notifications.outbox_store")

StoreTarget = Union[str, Path, None]


# =============================================================================
# Table
# =============================================================================

class Base(DeclarativeBase):
    pass


class OutboxRow(Base):
    __tablename__ = "notification_outbox"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    event_type: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    channels: Mapped[list] = mapped_column(JSON, default=list, nullable=False)
    payload: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)
    rendered: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, index=True)
    retries: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    dedupe_key: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, unique=True)

    # Lower-cased recipients, subject, texts and ids for the admin keyword filter
    search_text: Mapped[str] = mapped_column(Text, default="", nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    sent_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)


Index("ix_notification_outbox_newest", OutboxRow.created_at, OutboxRow.id)


def database_url(target: StoreTarget) -> URL:
    """
    SQLAlchemy URL for a store target.

    None is a private in-memory database, a string containing "://" is
    taken as a URL, anything else is a SQLite file path.
    """
    if target is None:
        return make_url("sqlite://")
    text = str(target)
    if "://" in text:
        return make_url(text)
    return URL.create("sqlite", database=str(Path(text)))


def _is_memory_sqlite(url: URL) -> bool:
    return url.get_backend_name() == "sqlite" and url.database in (None, "", ":memory:")


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes; everything stored is UTC
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _search_text(record: OutboxRecord) -> str:
    rendered = record.rendered
    user = record.payload.get("user") or {}
    haystack = [
        record.event_type,
        rendered.email.to if rendered.email else None,
        rendered.email.subject if rendered.email else None,
        rendered.sms.to if rendered.sms else None,
        rendered.sms.text if rendered.sms else None,
        rendered.slack.text if rendered.slack else None,
        user.get("email"),
        user.get("name"),
        record.application_id,
        record.order_id,
    ]
    return "\n".join(str(value).lower() for value in haystack if value)


def _to_row(record: OutboxRecord) -> OutboxRow:
    data = record.model_dump(mode="json")
    return OutboxRow(
        id=record.id,
        event_type=record.event_type,
        channels=data["channels"],
        payload=data["payload"],
        rendered=data["rendered"],
        status=record.status,
        retries=record.retries,
        error=record.error,
        dedupe_key=record.dedupe_key,
        search_text=_search_text(record),
        created_at=record.created_at,
        sent_at=record.sent_at,
    )


def _to_record(row: OutboxRow) -> OutboxRecord:
    try:
        return OutboxRecord(
            id=row.id,
            event_type=row.event_type,
            channels=row.channels,
            payload=row.payload,
            rendered=row.rendered,
            status=row.status,
            retries=row.retries,
            error=row.error,
            dedupe_key=row.dedupe_key,
            created_at=_as_utc(row.created_at),
            sent_at=_as_utc(row.sent_at),
        )
    except ValidationError as e:
        raise PersistenceError(f"Unreadable outbox record {row.id}: {e}") from e


@dataclass
class OutboxPage:
    """One page of records plus the status counts for the same filter."""
    items: list[OutboxRecord]
    total: int
    counts: dict[str, int] = field(default_factory=dict)


# =============================================================================
# Store
# =============================================================================

class OutboxStore:
    """
    Durable, idempotent persistence of OutboxRecords.

    Example:
        store = OutboxStore("var/outbox.db")
        record, created = store.create_or_reuse(OutboxRecord(...))
        store.mark_sent(record.id)
    """

    def __init__(self, target: StoreTarget = None):
        """
        Initialize the store.

        Args:
            target: SQLite file path or SQLAlchemy URL. None keeps records
                    in a private in-memory database.
        """
        try:
            self.url = database_url(target)
        except ArgumentError as e:
            raise PersistenceError(f"Invalid outbox database {target!r}: {e}") from e

        if _is_memory_sqlite(self.url):
            # One shared connection, otherwise every session sees an empty database
            self._engine = create_engine(
                self.url, poolclass=StaticPool, connect_args={"check_same_thread": False}
            )
        elif self.url.get_backend_name() == "sqlite":
            Path(self.url.database).parent.mkdir(parents=True, exist_ok=True)
            self._engine = create_engine(self.url, connect_args={"check_same_thread": False})
        else:
            self._engine = create_engine(self.url, pool_pre_ping=True)

        self._sessions = sessionmaker(bind=self._engine, expire_on_commit=False)
        self._lock = threading.RLock()

        # Created lazily
        self._schema_ready = False

    # =========================================================================
    # Sessions
    # =========================================================================

    def _ensure_schema(self) -> None:
        if self._schema_ready:
            return
        try:
            Base.metadata.create_all(self._engine)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Cannot open outbox at {self.url!r}: {e}") from e
        self._schema_ready = True

    @contextmanager
    def _session(self) -> Iterator[Session]:
        """A session whose database errors surface as PersistenceError."""
        with self._lock:
            self._ensure_schema()
            session = self._sessions()
            try:
                yield session
            except SQLAlchemyError as e:
                session.rollback()
                raise PersistenceError(f"Outbox database error: {e}") from e
            finally:
                session.close()

    @staticmethod
    def _require(session: Session, record_id: str) -> OutboxRow:
        row = session.get(OutboxRow, record_id)
        if row is None:
            raise PersistenceError(f"Outbox record not found: {record_id}")
        return row

    def close(self) -> None:
        """Release pooled connections."""
        self._engine.dispose()

    # =========================================================================
    # Write Operations
    # =========================================================================

    def create_or_reuse(self, record: OutboxRecord) -> tuple[OutboxRecord, bool]:
        """
        Insert a record, or return the existing one for its dedupe key.

        An existing record is returned exactly as stored: its rendering,
        status and timestamps are never overwritten.

        Returns:
            (stored record, created) where created is False on reuse

        Raises:
            PersistenceError: If the record cannot be written or read back
        """
        fresh = record.model_copy(
            update={
                "status": OutboxStatus.QUEUED.value,
                "retries": 0,
                "error": None,
                "sent_at": None,
                "created_at": utcnow(),
            },
            deep=True,
        )

        with self._session() as session:
            session.add(_to_row(fresh))
            try:
                session.commit()
                conflict = None
            except IntegrityError as e:
                session.rollback()
                conflict = e

            if conflict is not None:
                existing = None
                if fresh.dedupe_key:
                    existing = session.scalars(
                        select(OutboxRow).where(OutboxRow.dedupe_key == fresh.dedupe_key)
                    ).one_or_none()
                if existing is None:
                    raise PersistenceError(f"Cannot insert outbox record {fresh.id}: {conflict}") from conflict
                logger.info(f"Outbox reuse: dedupe_key={fresh.dedupe_key} id={existing.id}")
                return _to_record(existing), False

            stored = session.get(OutboxRow, fresh.id, populate_existing=True)
            if stored is None:
                raise PersistenceError(f"Outbox record {fresh.id} missing right after insert")
            logger.info(f"Outbox created: id={stored.id} event={stored.event_type} dedupe_key={stored.dedupe_key}")
            return _to_record(stored), True

    def mark_sent(self, record_id: str) -> OutboxRecord:
        """
        Mark a record as delivered.

        Idempotent: a record that is already sent is left untouched.
        """
        with self._session() as session:
            row = self._require(session, record_id)
            if row.status == OutboxStatus.SENT.value:
                return _to_record(row)
            row.status = OutboxStatus.SENT.value
            row.sent_at = utcnow()
            row.error = None
            session.commit()
            return _to_record(row)

    def mark_failed(self, record_id: str, error_message: str) -> OutboxRecord:
        """
        Mark a record as failed with the last error message.

        `retries` is not incremented; that belongs to a retry sweeper.
        A sent record is final and is returned unchanged.
        """
        with self._session() as session:
            row = self._require(session, record_id)
            if row.status == OutboxStatus.SENT.value:
                logger.warning(f"Ignoring failure for already-sent outbox record {record_id}")
                return _to_record(row)
            row.status = OutboxStatus.FAILED.value
            row.error = error_message
            session.commit()
            return _to_record(row)

    # =========================================================================
    # Read Operations
    # =========================================================================

    def get(self, record_id: str) -> Optional[OutboxRecord]:
        """Get a record by id (a copy; mutate through mark_* only)."""
        with self._session() as session:
            row = session.get(OutboxRow, record_id)
            return _to_record(row) if row else None

    def get_by_dedupe_key(self, dedupe_key: str) -> Optional[OutboxRecord]:
        with self._session() as session:
            row = session.scalars(select(OutboxRow).where(OutboxRow.dedupe_key == dedupe_key)).one_or_none()
            return _to_record(row) if row else None

    def count(self) -> int:
        with self._session() as session:
            return session.scalar(select(func.count()).select_from(OutboxRow))

    def list_records(
        self,
        status: Optional[str] = None,
        query: str = "",
        page: int = 1,
        limit: int = 10,
    ) -> OutboxPage:
        """
        Page through records, newest first.

        Args:
            status: "queued", "sent", "failed", or None/"all" for everything
            query: Case-insensitive keyword matched against event type,
                   recipients, subject, message text, user and application ids
            page: 1-based page number
            limit: Page size

        Returns:
            OutboxPage whose counts are per status for the keyword filter
            alone (so the status tabs stay meaningful while filtering)
        """
        if status == "all":
            status = None
        if status is not None:
            status = OutboxStatus(status).value
        page = max(page, 1)
        limit = max(limit, 1)

        keyword = true()
        needle = query.strip().lower()
        if needle:
            keyword = OutboxRow.search_text.contains(needle, autoescape=True)
        filters = and_(keyword, OutboxRow.status == status) if status else keyword

        with self._session() as session:
            counts = {s.value: 0 for s in OutboxStatus}
            rows = session.execute(
                select(OutboxRow.status, func.count()).where(keyword).group_by(OutboxRow.status)
            )
            for row_status, n in rows:
                counts[row_status] = n

            total = session.scalar(select(func.count()).select_from(OutboxRow).where(filters))
            items = session.scalars(
                select(OutboxRow)
                .where(filters)
                .order_by(OutboxRow.created_at.desc(), OutboxRow.id.desc())
                .offset((page - 1) * limit)
                .limit(limit)
            ).all()
            return OutboxPage(items=[_to_record(r) for r in items], total=total, counts=counts)


# Module-level singleton for convenience
# In tests, create a new OutboxStore instance (optionally on tmp_path)
_default_store: Optional[OutboxStore] = None


def get_outbox_store(target: StoreTarget = None) -> OutboxStore:
    """Get the default outbox store singleton."""
    global _default_store
    if _default_store is None:
        _default_store = OutboxStore(target)
    return _default_store


def reset_outbox_store(target: StoreTarget = None) -> OutboxStore:
    """Replace the default outbox store (useful for testing)."""
    global _default_store
    _default_store = OutboxStore(target)
    return _default_store
