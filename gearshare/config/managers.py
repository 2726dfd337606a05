"""
Database engines and session factories.
"""

from sqlalchemy import URL, Engine
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import sessionmaker
from sqlmodel import SQLModel, create_engine


def _register_tables():
    # Table classes must be imported before metadata operations can see them.
    from gearshare.database import meta  # noqa: F401


class SyncSessionManager:
    """
    A manager for synchronous sessions, mostly used for schema management:

    manager = SyncSessionManager(conn_url)
    manager.create_all()
    """

    connection_url: str | URL
    engine: Engine
    session: sessionmaker

    def __init__(self, connection_url: str | URL, echo: bool = False):
        self.connection_url = connection_url
        self.engine = create_engine(self.connection_url, echo=echo)
        self.session = sessionmaker(self.engine)

    def create_all(self):
        """
        Run the `SQLModel.metadata.create_all` migration tool. Required
        to set up the table schema.
        """
        _register_tables()

        with self.engine.begin() as conn:
            SQLModel.metadata.create_all(conn)

    def drop_all(self):
        """
        Run the `SQLModel.metadata.drop_all` deletion method. WARNING: this
        will delete all data in your database; you probably don't want to do this
        unless you are writing a test.
        """
        _register_tables()

        with self.engine.begin() as conn:
            SQLModel.metadata.drop_all(conn)


class AsyncSessionManager:
    """
    A manager for asynchronous sessions. Expected usage of this class to interact:

    manager = AsyncSessionManager(conn_url)

    async with manager.session() as conn:
        async with conn.begin():
            resource = await resource_service.read_by_id(resource_id=..., conn=conn)
    """

    connection_url: str | URL
    engine: AsyncEngine
    session: async_sessionmaker

    def __init__(self, connection_url: str | URL, echo: bool = False):
        self.connection_url = connection_url
        self.engine = create_async_engine(self.connection_url, echo=echo)
        # Objects are handed back to the API layer after commit, so they must
        # keep their loaded state.
        self.session = async_sessionmaker(self.engine, expire_on_commit=False)

    async def create_all(self):
        """
        Run the `SQLModel.metadata.create_all` migration tool. Required
        to set up the table schema.
        """
        _register_tables()

        async with self.engine.begin() as conn:
            await conn.run_sync(SQLModel.metadata.create_all)

    async def drop_all(self):
        """
        Run the `SQLModel.metadata.drop_all` deletion method. WARNING: this
        will delete all data in your database; you probably don't want to do this
        unless you are writing a test.
        """
        _register_tables()

        async with self.engine.begin() as conn:
            await conn.run_sync(SQLModel.metadata.drop_all)
