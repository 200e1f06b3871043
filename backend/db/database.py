from collections.abc import AsyncGenerator
from sqlalchemy import event
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase

from core.config import settings

DATABASE_URL = settings.database_url


class Base(DeclarativeBase):
    pass


engine = create_async_engine(DATABASE_URL, echo=settings.database_echo)
async_session_maker = async_sessionmaker(engine, expire_on_commit=False)


if make_url(DATABASE_URL).get_backend_name() == "sqlite":
    # SQLite ignores FOR UPDATE; taking the write lock up front serializes
    # transactions the same way the row locks do on Postgres.
    @event.listens_for(engine.sync_engine, "connect")
    def _sqlite_disable_implicit_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _sqlite_begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


async def create_db_and_tables():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    async with async_session_maker() as session:
        yield session


# Register models on Base.metadata and re-export them for routers/services.
from .recipe import Recipe  # noqa: E402
from .containing import Containing  # noqa: E402
from .beer import Beer, BeerStock  # noqa: E402
from .reservation import Reservation  # noqa: E402
from .order import Order, OrderItem  # noqa: E402
