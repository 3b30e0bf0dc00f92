"""
Database compatibility layer.

GUID works on both SQLite (tests, local dev) and PostgreSQL (prod):
UUID on PostgreSQL, CHAR(36) on SQLite.
"""

import uuid
from typing import Optional

from sqlalchemy import String, TypeDecorator
from sqlalchemy.dialects import postgresql


class GUID(TypeDecorator):
    """Platform-independent UUID type."""

    impl = String(36)
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            return dialect.type_descriptor(postgresql.UUID(as_uuid=True))
        return dialect.type_descriptor(String(36))

    def process_bind_param(self, value, dialect):
        if value is None:
            return value
        if dialect.name == "postgresql":
            return value if isinstance(value, uuid.UUID) else uuid.UUID(str(value))
        return str(value)

    def process_result_value(self, value, dialect):
        if value is None:
            return value
        if not isinstance(value, uuid.UUID):
            return uuid.UUID(str(value))
        return value


def parse_uuid(value: str) -> Optional[uuid.UUID]:
    """UUID from an external identifier; None if it is not one."""
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return None
