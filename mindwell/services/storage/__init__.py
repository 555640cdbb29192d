"""
Storage module - Database access for jobs and journal entries.
"""

from mindwell.services.storage.database import (
    Base,
    build_engine,
    close_db,
    get_engine,
    get_session,
    init_db,
    reset_engine,
    use_engine,
)
from mindwell.services.storage.models_db import JournalEntry, ProcessingJob
from mindwell.services.storage.repository import JournalRepository

__all__ = [
    "Base",
    "JournalEntry",
    "JournalRepository",
    "ProcessingJob",
    "build_engine",
    "close_db",
    "get_engine",
    "get_session",
    "init_db",
    "reset_engine",
    "use_engine",
]
