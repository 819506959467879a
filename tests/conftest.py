"""
Core configuration
"""

import os

import pytest_asyncio

from groupmod.config.settings import Settings
from groupmod.database.meta import ALL_TABLES  # noqa: F401


@pytest_asyncio.fixture(scope="session")
def database_container(tmp_path_factory):
    """
    A temporary sqlite database, or a throwaway postgres container when
    GROUPMOD_TEST_POSTGRES is set.
    """
    if os.environ.get("GROUPMOD_TEST_POSTGRES"):
        from testcontainers.postgres import PostgresContainer

        with PostgresContainer() as container:
            yield {
                "database_type": "postgres",
                "database_user": container.username,
                "database_password": container.password,
                "database_port": container.get_exposed_port(container.port),
                "database_host": "localhost",
                "database_db": container.dbname,
                "database_echo": True,
            }

        return

    yield {
        "database_type": "sqlite",
        "database_db": str(tmp_path_factory.mktemp("database") / "groupmod.db"),
    }


@pytest_asyncio.fixture(scope="session")
def server_settings(database_container):
    yield Settings(**database_container, report_threshold=3)


@pytest_asyncio.fixture(scope="session")
def database(server_settings: Settings):
    server_settings.sync_manager().create_all()
