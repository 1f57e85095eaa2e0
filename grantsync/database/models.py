"""SQLAlchemy models for the grant catalog."""

from datetime import datetime, date
from enum import Enum as PyEnum
from typing import Optional

from sqlalchemy import (
    String,
    Text,
    Integer,
    BigInteger,
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Enum,
    JSON,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.dialects.postgresql import JSONB


# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")


def _enum(enum_cls):
    """Enum column storing member values rather than names."""
    return Enum(
        enum_cls,
        values_callable=lambda members: [m.value for m in members],
        native_enum=False,
        length=20,
    )


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


class GrantStatus(PyEnum):
    """Grant lifecycle status."""
    ACTIVE = "active"
    EXPIRED = "expired"
    PENDING_REVIEW = "pending_review"


class SourceStatus(PyEnum):
    """Grant source health."""
    ACTIVE = "active"
    UPDATING = "updating"
    ERROR = "error"


class UpdateType(PyEnum):
    """Scheduler update cadence."""
    FULL = "full"
    QUICK = "quick"


class Grant(Base):
    """A funding opportunity pulled from an external source."""
    __tablename__ = "grants"

    id: Mapped[int] = mapped_column(primary_key=True)
    external_id: Mapped[str] = mapped_column(String(200))
    source: Mapped[str] = mapped_column(String(50), index=True)
    title: Mapped[str] = mapped_column(String(500))
    description: Mapped[Optional[str]] = mapped_column(Text)
    summary: Mapped[Optional[str]] = mapped_column(String(255))
    agency: Mapped[Optional[str]] = mapped_column(String(255), index=True)
    category: Mapped[Optional[str]] = mapped_column(String(100), index=True)
    grant_type: Mapped[Optional[str]] = mapped_column(
        String(50), comment="sbir, sba, research, innovation, ..."
    )
    award_min: Mapped[Optional[int]] = mapped_column(BigInteger)
    award_max: Mapped[Optional[int]] = mapped_column(BigInteger)
    open_date: Mapped[Optional[date]] = mapped_column(Date)
    close_date: Mapped[Optional[date]] = mapped_column(Date)
    application_deadline: Mapped[Optional[datetime]] = mapped_column(DateTime, index=True)
    eligible_applicants: Mapped[list] = mapped_column(JSONType, default=list)
    industry_focus: Mapped[list] = mapped_column(JSONType, default=list)
    tags: Mapped[list] = mapped_column(JSONType, default=list)
    requirements: Mapped[list] = mapped_column(JSONType, default=list)
    application_url: Mapped[Optional[str]] = mapped_column(String(1000))
    status: Mapped[GrantStatus] = mapped_column(
        _enum(GrantStatus), default=GrantStatus.ACTIVE, index=True
    )
    last_synced_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), onupdate=func.now()
    )

    # Relationships
    tag_rows: Mapped[list["GrantTag"]] = relationship(
        back_populates="grant", cascade="all, delete-orphan"
    )

    __table_args__ = (
        UniqueConstraint("source", "external_id", name="uq_grants_source_external_id"),
        Index("ix_grants_status_deadline", "status", "application_deadline"),
    )

    def __repr__(self) -> str:
        return f"<Grant {self.source}:{self.external_id}>"


class GrantTag(Base):
    """One tag of a grant, for tag-overlap search."""
    __tablename__ = "grant_tags"

    grant_id: Mapped[int] = mapped_column(
        ForeignKey("grants.id", ondelete="CASCADE"), primary_key=True
    )
    tag: Mapped[str] = mapped_column(String(100), primary_key=True, index=True)

    grant: Mapped["Grant"] = relationship(back_populates="tag_rows")

    def __repr__(self) -> str:
        return f"<GrantTag {self.grant_id}: {self.tag}>"


class GrantSource(Base):
    """A configured external grant data provider."""
    __tablename__ = "grant_sources"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(100), unique=True, index=True)
    display_name: Mapped[Optional[str]] = mapped_column(String(255))
    base_url: Mapped[Optional[str]] = mapped_column(String(500))
    kind: Mapped[str] = mapped_column(String(20), comment="api or scraper")
    enabled: Mapped[bool] = mapped_column(Boolean, default=True)
    quick: Mapped[bool] = mapped_column(
        Boolean, default=False, comment="Included in quick updates"
    )
    rate_limit: Mapped[Optional[int]] = mapped_column(
        Integer, comment="Requests per hour"
    )
    status: Mapped[SourceStatus] = mapped_column(
        _enum(SourceStatus), default=SourceStatus.ACTIVE
    )
    error_message: Mapped[Optional[str]] = mapped_column(Text)
    last_updated: Mapped[Optional[datetime]] = mapped_column(DateTime)
    total_grants: Mapped[int] = mapped_column(Integer, default=0)

    def __repr__(self) -> str:
        return f"<GrantSource {self.name}: {self.status.value}>"


class UpdateRun(Base):
    """One historical scheduler run."""
    __tablename__ = "update_history"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    update_type: Mapped[UpdateType] = mapped_column(_enum(UpdateType))
    started_at: Mapped[datetime] = mapped_column(DateTime, index=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    success: Mapped[bool] = mapped_column(Boolean, default=False)
    total_saved: Mapped[int] = mapped_column(Integer, default=0)
    results: Mapped[list] = mapped_column(
        JSONType, default=list, comment="Per-source fetched/saved/error"
    )

    def __repr__(self) -> str:
        return f"<UpdateRun {self.id}: {self.update_type.value}>"
