"""
Database engines and session factories for the group and ban tables.
"""

from sqlalchemy import Engine
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import sessionmaker
from sqlmodel import SQLModel, create_engine


class SyncSessionManager:
    """
    Blocking sessions, used only to lay out the schema before the service or
    the test suite starts:

    Settings().sync_manager().create_all()
    """

    connection_url: str
    engine: Engine
    session: sessionmaker

    def __init__(self, connection_url: str, echo: bool = False):
        self.connection_url = connection_url
        self.engine = create_engine(self.connection_url, echo=echo)
        self.session = sessionmaker(self.engine)

    def create_all(self):
        """
        Create the `group` and `ban` tables if they do not exist yet.
        """
        with self.engine.begin() as conn:
            SQLModel.metadata.create_all(conn)


class AsyncSessionManager:
    """
    Async sessions backing `groupmod.service.store.EntityStore`. Rows stay
    readable after their transaction commits, so services can return them:

    async with manager.session() as conn:
        async with conn.begin():
            group = await groups_service.read_by_id(group_id=group_id, conn=conn, log=log)

    group.to_core()
    """

    connection_url: str
    engine: AsyncEngine
    session: async_sessionmaker

    def __init__(self, connection_url: str, echo: bool = False):
        self.connection_url = connection_url
        self.engine = create_async_engine(self.connection_url, echo=echo)
        self.session = async_sessionmaker(self.engine, expire_on_commit=False)

    async def create_all(self):
        """
        Create the `group` and `ban` tables if they do not exist yet. Run from
        the app lifespan when `Settings.create_tables` is set.
        """
        async with self.engine.begin() as conn:
            await conn.run_sync(SQLModel.metadata.create_all)
