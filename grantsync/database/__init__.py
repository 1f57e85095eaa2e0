"""Database models, connection management and stores."""

from .models import (
    Base,
    Grant,
    GrantTag,
    GrantSource,
    UpdateRun,
    GrantStatus,
    SourceStatus,
    UpdateType,
)
from .connection import get_engine, get_session, get_session_factory, init_db, drop_db
from .repository import GrantRepository, GrantFilters, SearchPage
from .tracking import SourceStore, UpdateHistoryStore, UpdateRecord, SourceOutcome

__all__ = [
    "Base",
    "Grant",
    "GrantTag",
    "GrantSource",
    "UpdateRun",
    "GrantStatus",
    "SourceStatus",
    "UpdateType",
    "get_engine",
    "get_session",
    "get_session_factory",
    "init_db",
    "drop_db",
    "GrantRepository",
    "GrantFilters",
    "SearchPage",
    "SourceStore",
    "UpdateHistoryStore",
    "UpdateRecord",
    "SourceOutcome",
]
