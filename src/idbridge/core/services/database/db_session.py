"""Database engine and session factory used across the application."""

from collections.abc import Iterator
from contextlib import contextmanager

from loguru import logger
from sqlalchemy import Engine, text
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, SQLModel, create_engine

from src.idbridge.runtime.config.config_data import ConfigData
from src.idbridge.runtime.context import get_config


class DbSessionService:
    def __init__(self, engine: Engine | None = None):
        """Initialize the shared database engine and session factory.

        Args:
            engine: Pre-built engine; one is created from configuration when omitted
        """
        self._engine = engine or self._create_engine(get_config())

    def _create_engine(self, main_config: ConfigData) -> Engine:
        db_config = main_config.database
        logger.info(
            "Configuring database engine for environment: {}",
            main_config.app.environment,
        )

        engine_kwargs = {
            "pool_pre_ping": True,
            "echo": False,
            "connect_args": self._get_connect_args(main_config),
        }
        # SQLite uses a single-file pool without sizing options
        if not db_config.url.startswith("sqlite"):
            engine_kwargs.update(
                {
                    "pool_size": db_config.pool_size,
                    "max_overflow": db_config.max_overflow,
                    "pool_timeout": db_config.pool_timeout,
                    "pool_recycle": db_config.pool_recycle,
                }
            )

        return create_engine(db_config.url, **engine_kwargs)

    def _get_connect_args(self, config: ConfigData) -> dict:
        """Get database-specific connection arguments."""
        connect_args = {}

        if "postgresql" in config.database.url:
            connect_args.update(
                {
                    "application_name": f"idbridge_{config.app.environment}",
                    "connect_timeout": 30,
                }
            )

        elif "sqlite" in config.database.url:
            connect_args.update(
                {
                    "check_same_thread": False,  # sessions run in the threadpool
                    "timeout": 20,  # Lock timeout
                }
            )

            if config.app.environment == "production":
                logger.warning(
                    "SQLite is not recommended for production use. "
                    "Consider PostgreSQL for better performance and reliability."
                )

        return connect_args

    @property
    def engine(self) -> Engine:
        return self._engine

    def create_all(self) -> None:
        """Create all database tables."""
        import src.idbridge.entities  # noqa: F401  registers tables

        SQLModel.metadata.create_all(self._engine)
        logger.info("Database initialized with tables.")

    @contextmanager
    def session_scope(self) -> Iterator[Session]:
        """Run a unit of work, committing on success and rolling back on error."""
        db = Session(self._engine, expire_on_commit=False, autoflush=True)
        try:
            yield db
            db.commit()
        except Exception as e:
            db.rollback()
            logger.error(
                "Database transaction failed: {}: {}", type(e).__name__, e
            )
            raise
        finally:
            db.close()

    def health_check(self) -> bool:
        """Perform a health check on the database connection."""
        try:
            with self._engine.connect() as connection:
                connection.execute(text("SELECT 1"))
                return True
        except SQLAlchemyError as e:
            logger.error("Database health check failed: {}: {}", type(e).__name__, e)
            return False
