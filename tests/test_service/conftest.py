"""
Configuration variables and fixtures for the service layer tests.
"""

import pytest_asyncio
import structlog

from gearshare.config.settings import Settings
from gearshare.core.uuid import uuid7
from gearshare.service import groups as groups_service
from gearshare.service import resources as resource_service
from gearshare.service import user as user_service


@pytest_asyncio.fixture(scope="session")
def session_manager(server_settings: Settings, database):
    yield server_settings.async_manager()


@pytest_asyncio.fixture(scope="session")
def logger():
    yield structlog.get_logger()


@pytest_asyncio.fixture(scope="session")
def make_user(session_manager, logger):
    """
    Register a fresh user, returning their ID. Each call gets a unique uid and
    email so that tests sharing the session database do not collide.
    """

    async def make(name: str = "Test User") -> str:
        tag = uuid7().hex
        async with session_manager.session() as conn:
            async with conn.begin():
                user = await user_service.register(
                    user_id=f"uid-{tag}",
                    email=f"{tag}@example.com",
                    name=name,
                    photo_url=None,
                    conn=conn,
                    log=logger,
                )
                return user.user_id

    yield make


@pytest_asyncio.fixture(scope="session")
def make_resource(session_manager, logger):
    async def make(owner_id: str, title: str = "Tent"):
        async with session_manager.session() as conn:
            async with conn.begin():
                resource = await resource_service.create(
                    owner_id=owner_id,
                    title=title,
                    description="Two person tent, lightly used",
                    image=None,
                    conn=conn,
                    log=logger,
                )
                return resource.resource_id

    yield make


@pytest_asyncio.fixture(scope="session")
def make_group(session_manager, logger):
    """
    Create a group owned by `owner_id`, optionally inviting `members` (user IDs)
    as plain members.
    """

    async def make(owner_id: str, members=(), name: str = "Climbers"):
        async with session_manager.session() as conn:
            async with conn.begin():
                group = await groups_service.create(
                    name=name,
                    created_by_id=owner_id,
                    description=None,
                    avatar=None,
                    conn=conn,
                    log=logger,
                )
                group_id = group.group_id

                for member_id in members:
                    member = await user_service.read_by_id(user_id=member_id, conn=conn)
                    await groups_service.invite(
                        group_id=group_id,
                        invited_by_id=owner_id,
                        email=member.email,
                        conn=conn,
                        log=logger,
                    )

                return group_id

    yield make
