"""Lead sinks: append-only stores that also back duplicate detection."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from threading import Lock
from typing import Any, Protocol

from sqlalchemy import func
from sqlalchemy.engine import Engine
from sqlalchemy.engine.url import URL, make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, SQLModel, create_engine, select

from app.config import settings
from app.models.lead import LeadRecord
from app.models.lead_record import LeadRow
from app.observability.metrics import metrics
from app.services.leads.errors import SinkUnavailableError

logger = logging.getLogger(__name__)


class LeadSink(Protocol):
    """Persistence contract for accepted leads."""

    def append_lead(self, record: LeadRecord) -> None:
        ...

    def list_all_leads(self) -> list[LeadRecord]:
        ...

    def next_unprocessed_offset(self) -> int:
        ...


class InMemoryLeadSink(LeadSink):
    """Thread-safe sink used for local runs and tests."""

    def __init__(self, records: list[LeadRecord] | None = None) -> None:
        self._records: list[LeadRecord] = list(records or [])
        self._lock = Lock()

    def append_lead(self, record: LeadRecord) -> None:
        with self._lock:
            self._records.append(record)
        metrics.increment("leads.sink.appended", tags={"sink": "memory"})
        logger.info(
            "leads.sink.appended",
            extra={"company_name": record.company_name, "backend": "memory"},
        )

    def list_all_leads(self) -> list[LeadRecord]:
        with self._lock:
            return list(self._records)

    def next_unprocessed_offset(self) -> int:
        with self._lock:
            return len(self._records)


class SqlLeadSink(LeadSink):
    """SQLModel-backed sink that appends leads to Postgres or SQLite."""

    def __init__(self, database_url: str, *, auto_create_schema: bool = False) -> None:
        if not database_url:
            raise ValueError("DATABASE_URL is required for SqlLeadSink.")

        parsed_url = make_url(database_url)
        sync_url, connect_args, drivername = _coerce_sync_database_url(parsed_url)
        is_sqlite = drivername.startswith("sqlite")
        engine_kwargs: dict[str, Any] = {
            "echo": False,
            "connect_args": connect_args,
            "pool_pre_ping": not is_sqlite,
        }
        self._engine: Engine = create_engine(sync_url, **engine_kwargs)
        if auto_create_schema:
            SQLModel.metadata.create_all(self._engine, tables=[LeadRow.__table__])
        self._metrics_tags = {"sink": "sqlite" if is_sqlite else "postgres"}

    def dispose(self) -> None:
        """Close the underlying SQLAlchemy engine."""
        self._engine.dispose()

    def append_lead(self, record: LeadRecord) -> None:
        row = LeadRow.from_lead(record)
        try:
            with self._session() as session:
                session.add(row)
                session.commit()
        except SQLAlchemyError as exc:
            logger.exception(
                "leads.sink.error",
                extra={"company_name": record.company_name, "backend": self._metrics_tags["sink"]},
            )
            raise SinkUnavailableError("Failed to append lead.") from exc
        metrics.increment("leads.sink.appended", tags=self._metrics_tags)
        logger.info(
            "leads.sink.appended",
            extra={"company_name": record.company_name, "backend": self._metrics_tags["sink"]},
        )

    def list_all_leads(self) -> list[LeadRecord]:
        try:
            with self._session() as session:
                statement = select(LeadRow).order_by(LeadRow.captured_at)
                return [row.to_lead() for row in session.exec(statement).all()]
        except SQLAlchemyError as exc:
            logger.exception("leads.sink.error", extra={"backend": self._metrics_tags["sink"]})
            raise SinkUnavailableError("Failed to list leads.") from exc

    def next_unprocessed_offset(self) -> int:
        try:
            with self._session() as session:
                count = session.exec(select(func.count()).select_from(LeadRow)).one()
        except SQLAlchemyError as exc:
            logger.exception("leads.sink.error", extra={"backend": self._metrics_tags["sink"]})
            raise SinkUnavailableError("Failed to count leads.") from exc
        return int(count)

    @contextmanager
    def _session(self) -> Iterator[Session]:
        with Session(self._engine) as session:
            yield session


def _coerce_sync_database_url(url: URL) -> tuple[str, dict[str, Any], str]:
    """Convert async connection strings into sync SQLAlchemy URLs."""
    drivername = url.drivername
    connect_args: dict[str, Any] = {}
    if drivername.endswith("+asyncpg"):
        drivername = drivername.replace("+asyncpg", "+psycopg2")
    elif drivername.endswith("+aiosqlite"):
        drivername = "sqlite"
    sync_url = url.set(drivername=drivername)
    if drivername.startswith("sqlite"):
        connect_args.setdefault("check_same_thread", False)
    return sync_url.render_as_string(hide_password=False), connect_args, drivername


def build_lead_sink(database_url: str | None = None) -> LeadSink:
    """Instantiate a LeadSink using DATABASE_URL when available."""
    resolved_url = database_url or settings.database_url
    if not resolved_url:
        logger.info("leads.sink.initialized", extra={"backend": "memory"})
        return InMemoryLeadSink()
    sink = SqlLeadSink(resolved_url, auto_create_schema=settings.lead_table_auto_create)
    logger.info("leads.sink.initialized", extra={"backend": "database"})
    return sink
