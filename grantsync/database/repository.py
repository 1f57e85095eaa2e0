"""Grant persistence: idempotent upsert, expiry and filtered search."""

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable

from sqlalchemy import case, func, or_, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from grantsync.errors import InvalidFilterError, RepositoryWriteError
from .connection import get_session
from .models import Grant, GrantStatus, GrantTag

logger = logging.getLogger(__name__)

# Rows per INSERT ... ON CONFLICT statement
UPSERT_CHUNK_SIZE = 40

MAX_PAGE_SIZE = 100

SORT_FIELDS = {
    "created_at": Grant.created_at,
    "updated_at": Grant.updated_at,
    "application_deadline": Grant.application_deadline,
    "title": Grant.title,
    "award_min": Grant.award_min,
    "award_max": Grant.award_max,
}

# Columns copied from a record on insert and overwritten on conflict
_RECORD_COLUMNS = (
    "title", "description", "summary", "agency", "category", "grant_type",
    "award_min", "award_max", "open_date", "close_date", "application_deadline",
    "eligible_applicants", "industry_focus", "tags", "requirements",
    "application_url", "status", "last_synced_at",
)

_DIALECT_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


@dataclass
class GrantFilters:
    """Search parameters for GrantRepository.search."""
    query: str | None = None
    category: str | None = None
    agency: str | None = None
    min_amount: int | None = None
    max_amount: int | None = None
    tags: list[str] = field(default_factory=list)
    deadline_after: datetime | None = None
    status: str | None = GrantStatus.ACTIVE.value
    sort_by: str = "created_at"
    sort_order: str = "desc"
    page: int = 1
    page_size: int = 20

    def validate(self) -> None:
        """Raise InvalidFilterError for unusable parameters."""
        if not isinstance(self.page, int) or self.page < 1:
            raise InvalidFilterError(f"page must be a positive integer, got {self.page!r}")
        if not isinstance(self.page_size, int) or not 1 <= self.page_size <= MAX_PAGE_SIZE:
            raise InvalidFilterError(
                f"page_size must be between 1 and {MAX_PAGE_SIZE}, got {self.page_size!r}"
            )
        for name in ("min_amount", "max_amount"):
            value = getattr(self, name)
            if value is not None and value < 0:
                raise InvalidFilterError(f"{name} must not be negative, got {value!r}")
        if (
            self.min_amount is not None
            and self.max_amount is not None
            and self.min_amount > self.max_amount
        ):
            raise InvalidFilterError("min_amount must not exceed max_amount")
        if self.sort_by not in SORT_FIELDS:
            raise InvalidFilterError(
                f"sort_by must be one of {', '.join(sorted(SORT_FIELDS))}, got {self.sort_by!r}"
            )
        if self.sort_order not in ("asc", "desc"):
            raise InvalidFilterError(f"sort_order must be 'asc' or 'desc', got {self.sort_order!r}")
        if self.status is not None and self.status not in {s.value for s in GrantStatus}:
            raise InvalidFilterError(f"unknown status {self.status!r}")


@dataclass
class SearchPage:
    """One page of search results."""
    grants: list[Grant]
    total: int
    page: int
    page_size: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.page_size) if self.total else 0


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class GrantRepository:
    """Grant storage keyed by (source, external_id).

    Each public method runs in its own session and transaction.
    """

    def __init__(self, session_factory: sessionmaker | None = None):
        self.session_factory = session_factory

    def _session(self):
        return get_session(self.session_factory)

    # Write path

    def upsert(self, records: Iterable, now: datetime | None = None) -> int:
        """Insert or overwrite grant records, returning the number saved.

        Records repeated in the batch collapse to their last occurrence.
        A record whose deadline has passed is written as expired, and a row
        that is already expired is never moved back to another status.
        """
        now = now or datetime.now()
        batch: dict[tuple[str, str], dict] = {}
        for record in records:
            batch[record.key] = self._row(record, now)

        if not batch:
            return 0

        rows = list(batch.values())
        try:
            with self._session() as session:
                insert = _DIALECT_INSERTS.get(session.get_bind().dialect.name)
                if insert is None:
                    raise RepositoryWriteError(
                        f"unsupported database dialect {session.get_bind().dialect.name!r}"
                    )
                for start in range(0, len(rows), UPSERT_CHUNK_SIZE):
                    chunk = rows[start:start + UPSERT_CHUNK_SIZE]
                    self._upsert_chunk(session, insert, chunk)
                    self._replace_tags(session, chunk)
        except SQLAlchemyError as e:
            raise RepositoryWriteError(f"upsert of {len(rows)} grants failed: {e}") from e

        logger.debug("Upserted %d grants", len(rows))
        return len(rows)

    def _row(self, record, now: datetime) -> dict:
        row = {
            "source": record.source,
            "external_id": record.external_id,
        }
        for column in _RECORD_COLUMNS:
            row[column] = getattr(record, column, None)
        for column in ("eligible_applicants", "industry_focus", "tags", "requirements"):
            row[column] = list(row[column] or [])
        if row["summary"]:
            row["summary"] = row["summary"][:255]

        deadline = row["application_deadline"]
        if deadline is not None and deadline < now:
            row["status"] = GrantStatus.EXPIRED
        row["status"] = row["status"] or GrantStatus.ACTIVE
        row["last_synced_at"] = row["last_synced_at"] or now
        return row

    def _upsert_chunk(self, session, insert, chunk: list[dict]) -> None:
        table = Grant.__table__
        stmt = insert(table).values(chunk)
        update = {column: stmt.excluded[column] for column in _RECORD_COLUMNS}
        update["status"] = case(
            (table.c.status == GrantStatus.EXPIRED, table.c.status),
            else_=stmt.excluded.status,
        )
        update["updated_at"] = func.now()
        stmt = stmt.on_conflict_do_update(
            index_elements=[table.c.source, table.c.external_id],
            set_=update,
        )
        session.execute(stmt)

    def _replace_tags(self, session, chunk: list[dict]) -> None:
        """Rewrite grant_tags for the grants in ``chunk``."""
        by_source: dict[str, dict[str, list[str]]] = {}
        for row in chunk:
            by_source.setdefault(row["source"], {})[row["external_id"]] = row["tags"]

        tag_rows = []
        grant_ids = []
        for source, tags_by_id in by_source.items():
            found = session.query(Grant.id, Grant.external_id).filter(
                Grant.source == source,
                Grant.external_id.in_(list(tags_by_id)),
            ).all()
            for grant_id, external_id in found:
                grant_ids.append(grant_id)
                for tag in dict.fromkeys(t[:100].lower() for t in tags_by_id[external_id] if t):
                    tag_rows.append({"grant_id": grant_id, "tag": tag})

        if grant_ids:
            session.query(GrantTag).filter(
                GrantTag.grant_id.in_(grant_ids)
            ).delete(synchronize_session=False)
        if tag_rows:
            session.execute(GrantTag.__table__.insert(), tag_rows)

    def expire_older_than(self, now: datetime | None = None) -> int:
        """Mark active grants whose deadline precedes ``now`` as expired."""
        now = now or datetime.now()
        try:
            with self._session() as session:
                count = session.query(Grant).filter(
                    Grant.status == GrantStatus.ACTIVE,
                    Grant.application_deadline.is_not(None),
                    Grant.application_deadline < now,
                ).update(
                    {Grant.status: GrantStatus.EXPIRED, Grant.updated_at: func.now()},
                    synchronize_session=False,
                )
        except SQLAlchemyError as e:
            raise RepositoryWriteError(f"expiring grants failed: {e}") from e

        if count:
            logger.info("Expired %d grants with deadlines before %s", count, now.isoformat())
        return count

    # Read path

    def search(self, filters: GrantFilters | None = None) -> SearchPage:
        """Filtered, sorted, paginated grant search."""
        filters = filters or GrantFilters()
        filters.validate()

        with self._session() as session:
            query = session.query(Grant)

            if filters.status is not None:
                query = query.filter(Grant.status == GrantStatus(filters.status))
            if filters.query:
                pattern = f"%{_escape_like(filters.query)}%"
                query = query.filter(or_(
                    Grant.title.ilike(pattern, escape="\\"),
                    Grant.description.ilike(pattern, escape="\\"),
                    Grant.agency.ilike(pattern, escape="\\"),
                ))
            if filters.category:
                query = query.filter(Grant.category == filters.category)
            if filters.agency:
                query = query.filter(Grant.agency == filters.agency)
            if filters.min_amount is not None:
                query = query.filter(Grant.award_min >= filters.min_amount)
            if filters.max_amount is not None:
                query = query.filter(Grant.award_max <= filters.max_amount)
            if filters.deadline_after is not None:
                query = query.filter(Grant.application_deadline >= filters.deadline_after)
            if filters.tags:
                wanted = [t.lower() for t in filters.tags]
                tagged = select(GrantTag.grant_id).where(GrantTag.tag.in_(wanted))
                query = query.filter(Grant.id.in_(tagged))

            total = query.count()

            column = SORT_FIELDS[filters.sort_by]
            if filters.sort_order == "desc":
                query = query.order_by(column.desc(), Grant.id.desc())
            else:
                query = query.order_by(column.asc(), Grant.id.asc())

            grants = query.offset((filters.page - 1) * filters.page_size).limit(
                filters.page_size
            ).all()

        return SearchPage(
            grants=grants,
            total=total,
            page=filters.page,
            page_size=filters.page_size,
        )

    def get(self, source: str, external_id: str) -> Grant | None:
        with self._session() as session:
            return session.query(Grant).filter(
                Grant.source == source,
                Grant.external_id == external_id,
            ).first()

    def get_by_id(self, grant_id: int) -> Grant | None:
        with self._session() as session:
            return session.get(Grant, grant_id)

    def active(self, limit: int | None = None) -> list[Grant]:
        """Active grants, soonest deadline first."""
        with self._session() as session:
            query = session.query(Grant).filter(
                Grant.status == GrantStatus.ACTIVE
            ).order_by(Grant.application_deadline.asc(), Grant.id.asc())
            if limit:
                query = query.limit(limit)
            return query.all()

    def count(self, status: GrantStatus | None = None) -> int:
        with self._session() as session:
            query = session.query(func.count(Grant.id))
            if status is not None:
                query = query.filter(Grant.status == status)
            return query.scalar() or 0

    def agency_counts(self) -> dict[str, int]:
        """Active grants per agency, largest first."""
        with self._session() as session:
            rows = session.query(
                Grant.agency, func.count(Grant.id).label("total")
            ).filter(
                Grant.status == GrantStatus.ACTIVE,
                Grant.agency.is_not(None),
            ).group_by(Grant.agency).order_by(func.count(Grant.id).desc()).all()
        return {agency: total for agency, total in rows}

    def source_counts(self) -> dict[str, int]:
        """Active grants per source."""
        with self._session() as session:
            rows = session.query(
                Grant.source, func.count(Grant.id)
            ).filter(
                Grant.status == GrantStatus.ACTIVE
            ).group_by(Grant.source).all()
        return {source: total for source, total in rows}
