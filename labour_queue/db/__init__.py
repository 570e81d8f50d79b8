"""
Database module.
Contains database connection, models, and repository implementations.
"""

from labour_queue.db.connection import (
    close_engine,
    create_engine,
    create_session_factory,
    create_tables,
)
from labour_queue.db.models import Base, Labour
from labour_queue.db.repository import LabourRepository

__all__ = [
    "create_engine",
    "create_session_factory",
    "create_tables",
    "close_engine",
    "Labour",
    "LabourRepository",
    "Base",
]
