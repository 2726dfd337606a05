"""
UUID helpers. Row identifiers are time-ordered UUIDv7 values so that newest-first
listings can fall back to primary key ordering.
"""

from uuid import UUID as UUID

from uuid_extensions import uuid7 as uuid7

__all__ = ["UUID", "uuid7"]
