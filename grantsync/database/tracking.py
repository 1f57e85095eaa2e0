"""Bookkeeping for grant sources and scheduler update history."""

from dataclasses import asdict, dataclass, field
from datetime import datetime

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from grantsync.errors import RepositoryWriteError
from .connection import get_session
from .models import GrantSource, SourceStatus, UpdateRun, UpdateType


@dataclass
class SourceOutcome:
    """What happened to one source during an update run."""
    source: str
    fetched: int = 0
    saved: int = 0
    error: str | None = None

    @property
    def failed(self) -> bool:
        return self.error is not None


@dataclass
class UpdateRecord:
    """One full or quick update run."""
    id: str
    update_type: UpdateType
    started_at: datetime
    completed_at: datetime | None = None
    results: list[SourceOutcome] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not any(r.failed for r in self.results)

    @property
    def total_saved(self) -> int:
        return sum(r.saved for r in self.results)

    def outcome(self, source: str) -> SourceOutcome | None:
        for result in self.results:
            if result.source == source:
                return result
        return None


class SourceStore:
    """Persistent status of each configured grant source."""

    def __init__(self, session_factory: sessionmaker | None = None):
        self.session_factory = session_factory

    def ensure(self, source_config) -> None:
        """Create or refresh the row for a source, keeping its status."""
        with get_session(self.session_factory) as session:
            source = session.query(GrantSource).filter(
                GrantSource.name == source_config.name
            ).first()
            if source is None:
                source = GrantSource(name=source_config.name, status=SourceStatus.ACTIVE)
                session.add(source)
            source.display_name = source_config.display_name
            source.base_url = source_config.base_url
            source.kind = source_config.kind
            source.enabled = source_config.enabled
            source.quick = source_config.quick
            source.rate_limit = source_config.rate_limit

    def mark(
        self,
        name: str,
        status: SourceStatus,
        error: str | None = None,
        now: datetime | None = None,
    ) -> None:
        """Record a status transition.

        ``error`` sets the error message; ``active`` clears it and stamps
        last_updated; ``updating`` leaves the previous message visible.
        """
        try:
            with get_session(self.session_factory) as session:
                source = session.query(GrantSource).filter(GrantSource.name == name).first()
                if source is None:
                    return
                source.status = status
                if status == SourceStatus.ERROR:
                    source.error_message = error
                elif status == SourceStatus.ACTIVE:
                    source.error_message = None
                    source.last_updated = now or datetime.now()
        except SQLAlchemyError as e:
            raise RepositoryWriteError(f"updating source {name} failed: {e}") from e

    def set_totals(self, counts: dict[str, int]) -> None:
        """Store active-grant totals per source; sources absent from ``counts`` get 0."""
        with get_session(self.session_factory) as session:
            for source in session.query(GrantSource).all():
                source.total_grants = counts.get(source.name, 0)

    def all(self) -> list[GrantSource]:
        with get_session(self.session_factory) as session:
            return session.query(GrantSource).order_by(GrantSource.id).all()

    def get(self, name: str) -> GrantSource | None:
        with get_session(self.session_factory) as session:
            return session.query(GrantSource).filter(GrantSource.name == name).first()


class UpdateHistoryStore:
    """Append-only log of update runs."""

    def __init__(self, session_factory: sessionmaker | None = None):
        self.session_factory = session_factory

    def append(self, record: UpdateRecord) -> None:
        try:
            with get_session(self.session_factory) as session:
                session.add(UpdateRun(
                    id=record.id,
                    update_type=record.update_type,
                    started_at=record.started_at,
                    completed_at=record.completed_at,
                    success=record.success,
                    total_saved=record.total_saved,
                    results=[asdict(r) for r in record.results],
                ))
        except SQLAlchemyError as e:
            raise RepositoryWriteError(f"saving update {record.id} failed: {e}") from e

    def recent(self, limit: int = 10) -> list[UpdateRecord]:
        """Latest runs, newest first."""
        with get_session(self.session_factory) as session:
            runs = session.query(UpdateRun).order_by(
                UpdateRun.started_at.desc()
            ).limit(limit).all()
            return [self._to_record(run) for run in runs]

    def prune_older_than(self, cutoff: datetime) -> int:
        """Delete runs started before ``cutoff``, returning how many were removed."""
        try:
            with get_session(self.session_factory) as session:
                return session.query(UpdateRun).filter(
                    UpdateRun.started_at < cutoff
                ).delete(synchronize_session=False)
        except SQLAlchemyError as e:
            raise RepositoryWriteError(f"pruning update history failed: {e}") from e

    @staticmethod
    def _to_record(run: UpdateRun) -> UpdateRecord:
        return UpdateRecord(
            id=run.id,
            update_type=run.update_type,
            started_at=run.started_at,
            completed_at=run.completed_at,
            results=[SourceOutcome(**r) for r in (run.results or [])],
        )
