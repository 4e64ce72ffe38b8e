import argparse
import asyncio
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from event_ingest import models  # noqa: F401
from event_ingest.config import Settings, settings
from event_ingest.models.base import Base
from event_ingest.utils.logger import setup_logger

logger = setup_logger("db")


def normalize_database_url(url: str) -> str:
    """Force the asyncpg driver onto a postgres URL."""
    if url.startswith("postgresql+asyncpg://"):
        return url
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+asyncpg://", 1)
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql+asyncpg://", 1)
    raise ValueError(f"Unsupported database URL prefix: {url}")


class Database:
    """
    Connection handle for the application database.

    Constructed once at process start and passed to every component that
    needs it; nothing connects at import time.
    """

    def __init__(
        self,
        url: str,
        schema_name: str,
        pool_size: int = 5,
        max_overflow: int = 10,
    ):
        self.url = normalize_database_url(url)
        self.schema_name = schema_name
        self.engine: AsyncEngine = create_async_engine(
            self.url,
            pool_pre_ping=True,
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_timeout=60,
            pool_recycle=300,
            echo=False,
            connect_args={"timeout": 30},
        )
        self.session_factory = async_sessionmaker(
            autocommit=False,
            autoflush=False,
            bind=self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )
        logger.debug(f"Database handle created for schema '{schema_name}'")

    @classmethod
    def from_settings(cls, app_settings: Settings) -> "Database | None":
        if not app_settings.app_database_url:
            logger.warning("No database URL configured; running without persistence.")
            return None
        return cls(
            app_settings.app_database_url,
            app_settings.schema_name,
            pool_size=app_settings.db_pool_size,
            max_overflow=app_settings.db_max_overflow,
        )

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        async with self.session_factory() as session:
            await session.execute(text(f"SET search_path TO {self.schema_name}, public"))
            yield session

    async def init_db(self):
        """Create the schema and every registered table if missing."""
        if not Base.metadata.tables:
            logger.warning("Base.metadata.tables is EMPTY! No tables will be created.")
        else:
            logger.debug(f"Tables registered in Base.metadata: {list(Base.metadata.tables.keys())}")

        async with self.engine.begin() as conn:
            await conn.execute(text("SET search_path TO public"))
            await conn.execute(text(f"CREATE SCHEMA IF NOT EXISTS {self.schema_name}"))
            await conn.execute(text(f"SET search_path TO {self.schema_name}, public"))
            await conn.run_sync(Base.metadata.create_all)

        logger.info(f"Database schema '{self.schema_name}' initialized.")

    async def reset_db(self):
        logger.warning(
            f"Resetting database schema '{self.schema_name}'. THIS IS A DESTRUCTIVE OPERATION."
        )
        async with self.engine.begin() as conn:
            await conn.execute(text("SET search_path TO public"))
            await conn.execute(text(f"DROP SCHEMA IF EXISTS {self.schema_name} CASCADE"))
            logger.info(f"Schema '{self.schema_name}' dropped.")
        await self.init_db()

    async def list_tables(self, schema_name: str | None = None) -> list[str]:
        schema_name = schema_name or self.schema_name
        async with self.engine.connect() as conn:
            result = await conn.execute(
                text(
                    "SELECT table_name FROM information_schema.tables "
                    "WHERE table_schema = :schema_name ORDER BY table_name"
                ),
                {"schema_name": schema_name},
            )
            table_names = [row[0] for row in result.fetchall()]

        if not table_names:
            logger.debug(f"No tables found in schema '{schema_name}' or schema does not exist.")
        return table_names

    async def ping(self) -> bool:
        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            return True
        except Exception as e:
            logger.warning(f"Database connectivity check failed: {type(e).__name__}: {e}")
            return False

    async def close(self):
        logger.info("Closing database connections.")
        await self.engine.dispose()


async def _run_action(action: str, schema_name: str):
    database = Database.from_settings(settings)
    if database is None:
        raise SystemExit("EVENT_INGEST_DATABASE_URL is not set.")
    try:
        if action == "init":
            await database.init_db()
        elif action == "reset":
            await database.reset_db()
        elif action == "list-tables":
            tables = await database.list_tables(schema_name)
            if tables:
                print(f"Tables in schema '{schema_name}':")
                for table in tables:
                    print(f"  - {table}")
            else:
                print(f"No tables found in schema '{schema_name}'.")
    finally:
        await database.close()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(
        description=f"Application Database ({settings.schema_name}) Initialization Utility"
    )
    parser.add_argument(
        "action",
        choices=["init", "reset", "list-tables"],
        help=f"'init' to create/update tables in schema '{settings.schema_name}', "
        f"'reset' to drop schema '{settings.schema_name}' and recreate tables, "
        f"'list-tables' to show tables in the schema.",
    )
    parser.add_argument(
        "--schema",
        type=str,
        default=settings.schema_name,
        help=f"Schema to act upon for list-tables. Defaults to '{settings.schema_name}'.",
    )
    args = parser.parse_args()

    if args.action == "reset":
        confirm = input(
            f"WARNING: This will delete all data in schema '{settings.schema_name}'. Are you sure? (yes/no): "
        )
        if confirm.lower() != "yes":
            logger.info("Database reset cancelled by user.")
            raise SystemExit(0)

    asyncio.run(_run_action(args.action, args.schema))
