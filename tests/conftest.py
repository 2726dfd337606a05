"""
Core configuration.

Tests run against SQLite in a temporary directory by default. Set
`GEARSHARE_TEST_POSTGRES=1` to run them against a throwaway PostgreSQL instead.
"""

import os

import pytest_asyncio

from gearshare.config.settings import Settings


@pytest_asyncio.fixture(scope="session")
def database_config(tmp_path_factory):
    if not os.environ.get("GEARSHARE_TEST_POSTGRES"):
        yield {
            "database_type": "sqlite",
            "database_db": str(tmp_path_factory.mktemp("db") / "gearshare.db"),
        }
        return

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


@pytest_asyncio.fixture(scope="session")
def server_settings(database_config):
    yield Settings(**database_config)


@pytest_asyncio.fixture(scope="session")
def database(server_settings: Settings):
    server_settings.sync_manager().create_all()
