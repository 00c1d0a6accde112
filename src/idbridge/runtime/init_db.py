"""Database initialization script."""

from src.idbridge.core.services.database.db_session import DbSessionService


def init_db() -> None:
    """Create all database tables."""
    DbSessionService().create_all()


if __name__ == "__main__":
    init_db()
