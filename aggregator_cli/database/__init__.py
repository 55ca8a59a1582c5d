"""Database layer: SQLAlchemy models, connection handling and repositories."""

from aggregator_cli.database.connection import create_tables, get_db_session
from aggregator_cli.database.models import Base, Content, Source
from aggregator_cli.database.repositories import (
    ContentRepository,
    SourceRecord,
    SourceRepository,
)

__all__ = [
    "Base",
    "Content",
    "ContentRepository",
    "Source",
    "SourceRecord",
    "SourceRepository",
    "create_tables",
    "get_db_session",
]
