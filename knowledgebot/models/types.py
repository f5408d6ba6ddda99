"""Column types shared by the ORM models.

JSON columns are JSONB on PostgreSQL and plain JSON elsewhere so the same
models work against the SQLite databases used in tests.
"""

from sqlalchemy import JSON
from sqlalchemy.dialects.postgresql import JSONB

JSONType = JSON().with_variant(JSONB(), "postgresql")
