"""SQLModel mapping for persisted leads."""
# ruff: noqa: UP017

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any
from uuid import UUID, uuid4

import sqlalchemy as sa
from sqlalchemy import Column, DateTime, Integer, String, Uuid
from sqlalchemy.dialects.postgresql import JSONB
from sqlmodel import Field, SQLModel

from app.models.lead import LeadRecord


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


JSON_BACKING_TYPE = sa.JSON().with_variant(JSONB(astext_type=sa.Text()), "postgresql")


class LeadRow(SQLModel, table=True):
    """ORM model for rows appended by SqlLeadSink."""

    __tablename__ = "leads"
    __table_args__ = (
        sa.Index("ix_leads_company_name", "company_name"),
        sa.Index("ix_leads_captured_at", "captured_at"),
    )

    id: UUID = Field(
        default_factory=uuid4,
        sa_column=Column(Uuid(as_uuid=True), primary_key=True, nullable=False),
    )
    company_name: str = Field(sa_column=Column(String(length=255), nullable=False))
    location: str = Field(
        default="",
        sa_column=Column(String(length=255), nullable=False, server_default=""),
    )
    address: str = Field(default="", sa_column=Column(String(length=512), nullable=False))
    phone: str | None = Field(default=None, sa_column=Column(String(length=64), nullable=True))
    website: str | None = Field(default=None, sa_column=Column(String(length=512), nullable=True))
    email: str | None = Field(default=None, sa_column=Column(String(length=255), nullable=True))
    confidence: int = Field(default=0, sa_column=Column(Integer, nullable=False))
    search_condition: str = Field(sa_column=Column(String(length=255), nullable=False))
    region: str | None = Field(default=None, sa_column=Column(String(length=32), nullable=True))
    source_urls: list[Any] = Field(
        default_factory=list,
        sa_column=Column(JSON_BACKING_TYPE, nullable=False),
    )
    captured_at: datetime = Field(
        default_factory=_utcnow,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )

    @classmethod
    def from_lead(cls, lead: LeadRecord) -> LeadRow:
        return cls(
            company_name=lead.company_name,
            location=lead.location,
            address=lead.address,
            phone=lead.phone,
            website=lead.website,
            email=lead.email,
            confidence=lead.confidence,
            search_condition=lead.search_condition,
            region=lead.region,
            source_urls=list(lead.source_urls),
            captured_at=lead.captured_at,
        )

    def to_lead(self) -> LeadRecord:
        return LeadRecord(
            company_name=self.company_name,
            location=self.location or "",
            address=self.address,
            phone=self.phone,
            website=self.website,
            email=self.email,
            confidence=self.confidence,
            search_condition=self.search_condition,
            region=self.region,
            source_urls=list(self.source_urls or []),
            captured_at=self.captured_at,
        )
