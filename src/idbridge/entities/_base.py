import uuid
from datetime import UTC, datetime
from typing import Any

import sqlalchemy as sa
from pydantic import BaseModel
from pydantic import Field as PydanticField
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError
from sqlmodel import Field, Session, SQLModel


def utc_now() -> datetime:
    """Return current UTC datetime."""
    return datetime.now(UTC)


class Entity(BaseModel):
    """Base entity class with auto-generated UUID identifier."""

    id: str = PydanticField(
        default_factory=lambda: str(uuid.uuid4()),
        description="Unique identifier for the entity",
    )

    created_at: datetime = PydanticField(default_factory=utc_now)
    updated_at: datetime = PydanticField(default_factory=utc_now)


class EntityTable(SQLModel, table=False):
    """Base table class with auto-generated UUID identifier."""

    id: str = Field(
        primary_key=True,
        default_factory=lambda: str(uuid.uuid4()),
        description="Unique identifier for the entity",
    )

    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(
        default_factory=utc_now,
        nullable=False,
        sa_column_kwargs={
            "server_default": sa.func.now(),
            "onupdate": sa.func.now(),
        },
    )


_CONFLICT_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def insert_if_absent(
    session: Session,
    table: type[SQLModel],
    values: dict[str, Any],
    conflict_columns: list[str],
) -> bool:
    """Insert a row unless one already holds the same unique key.

    Uses ``INSERT ... ON CONFLICT DO NOTHING`` where the dialect supports it and
    a savepoint-guarded insert elsewhere.

    Returns:
        True when this call inserted the row, False when it already existed
    """
    dialect = session.get_bind().dialect.name
    insert = _CONFLICT_INSERTS.get(dialect)

    if insert is not None:
        statement = (
            insert(table)
            .values(**values)
            .on_conflict_do_nothing(index_elements=conflict_columns)
        )
        result = session.connection().execute(statement)
        return result.rowcount == 1

    try:
        with session.begin_nested():
            session.add(table(**values))
            session.flush()
    except IntegrityError:
        return False
    return True
