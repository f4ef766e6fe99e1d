"""
Base repository for local database operations.

Provides the shared connection handle, an operation-logging decorator that
maps driver errors to ``DatabaseException``, and (de)serialization helpers
for the TEXT columns used to store timestamps, decimals and JSON.
"""

import functools
import json
import logging
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any, Callable, Optional

from sqlalchemy.exc import SQLAlchemyError

from agentos.db.connection import ConnDB
from agentos.utils.error_handler import DatabaseException

logger = logging.getLogger(__name__)


def log_operation(operation_name: Optional[str] = None) -> Callable:
    """
    Decorator for logging repository operations.

    SQLAlchemy errors are re-raised as ``DatabaseException``; application
    exceptions pass through untouched.
    """

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        async def wrapper(self, *args, **kwargs):
            op_name = operation_name or f"{self.__class__.__name__}.{func.__name__}"
            logger.debug(f"Starting operation: {op_name}")
            try:
                result = await func(self, *args, **kwargs)
            except SQLAlchemyError as e:
                logger.error(f"Operation failed: {op_name} - {e}")
                raise DatabaseException(message=f"{op_name} failed: {str(e)}", operation=op_name) from e
            logger.debug(f"Operation successful: {op_name}")
            return result

        return wrapper

    return decorator


def to_iso(value: Optional[datetime]) -> Optional[str]:
    """Serialize a datetime as a UTC ISO-8601 string (naive values are taken as UTC)."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat(timespec="microseconds")


def from_iso(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def to_decimal(value: Any) -> Optional[Decimal]:
    if value is None:
        return None
    return Decimal(str(value))


def dump_json(value: Any) -> Optional[str]:
    if value is None:
        return None
    return json.dumps(value, ensure_ascii=False)


def load_json(value: Optional[str], default: Any = None) -> Any:
    if not value:
        return default
    return json.loads(value)


class BaseRepository:
    """
    Common base for repositories.

    Args:
        conn_db: Initialized database connection
    """

    def __init__(self, conn_db: ConnDB):
        self.conn_db = conn_db

    def session(self):
        return self.conn_db.session()
