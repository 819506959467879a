"""
Configuration variables and fixtures for the service layer tests.
"""

from uuid import uuid4

import pytest
import pytest_asyncio
import structlog

from groupmod.config.settings import Settings
from groupmod.core.group import LastAdminRule
from groupmod.service import groups as groups_service
from groupmod.service.directory import StaticUserDirectory
from groupmod.service.reports import ReportAggregate
from groupmod.service.store import EntityStore


@pytest_asyncio.fixture(scope="session")
def session_manager(server_settings: Settings, database):
    yield server_settings.async_manager()


@pytest_asyncio.fixture(scope="session")
def store(session_manager):
    yield EntityStore(session_manager)


@pytest_asyncio.fixture(scope="session")
def logger():
    yield structlog.get_logger()


@pytest.fixture
def directory():
    return StaticUserDirectory()


@pytest.fixture
def new_user(directory):
    """
    Register a fresh user id. Ids are unique per test so that bans issued in
    one test never leak into another.
    """

    def make(name: str) -> str:
        user_id = f"{name}-{uuid4().hex[:8]}"
        directory.add(user_id)
        return user_id

    return make


@pytest.fixture
def reports():
    return ReportAggregate(threshold=3)


@pytest.fixture
def make_group(store, logger, new_user):
    """
    Create a group, returning its id and its creator.
    """

    async def make(
        rule: LastAdminRule = LastAdminRule.PROMOTE,
        creator: str | None = None,
        member_ids: list[str] | None = None,
        admin_ids: list[str] | None = None,
    ):
        creator = creator or new_user("creator")

        async with store.transaction() as conn:
            group = await groups_service.create(
                group_name="test group",
                created_by_user_id=creator,
                member_ids=member_ids,
                admin_ids=admin_ids,
                last_admin_rule=rule,
                conn=conn,
                log=logger,
            )

        return group.group_id, creator

    return make
