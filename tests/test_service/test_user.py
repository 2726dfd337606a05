"""
Tests the user registry.
"""

import pytest

from gearshare.core import errors
from gearshare.core.uuid import uuid7
from gearshare.service import groups as groups_service
from gearshare.service import user as user_service


@pytest.mark.asyncio(loop_scope="session")
async def test_register_and_read(session_manager, logger):
    tag = uuid7().hex
    uid = f"uid-{tag}"

    async with session_manager.session() as conn:
        async with conn.begin():
            user = await user_service.register(
                user_id=uid,
                email=f"  {tag}@Example.COM ",
                name="Ada",
                photo_url=None,
                conn=conn,
                log=logger,
            )

            assert user.email == f"{tag}@example.com"
            assert user.created_at is not None

    async with session_manager.session() as conn:
        async with conn.begin():
            user = await user_service.read_by_id(user_id=uid, conn=conn)
            assert user.name == "Ada"

            user = await user_service.read_by_email(
                email=f"{tag.upper()}@example.com", conn=conn
            )
            assert user.user_id == uid


@pytest.mark.asyncio(loop_scope="session")
async def test_register_is_an_upsert(session_manager, logger):
    tag = uuid7().hex
    uid = f"uid-{tag}"

    for name in ["First", "Second"]:
        async with session_manager.session() as conn:
            async with conn.begin():
                await user_service.register(
                    user_id=uid,
                    email=f"{tag}@example.com",
                    name=name,
                    photo_url="https://example.com/me.png",
                    conn=conn,
                    log=logger,
                )

    async with session_manager.session() as conn:
        async with conn.begin():
            user = await user_service.read_by_id(user_id=uid, conn=conn)
            assert user.name == "Second"
            assert user.photo_url == "https://example.com/me.png"


@pytest.mark.asyncio(loop_scope="session")
async def test_register_email_in_use(session_manager, logger, make_user):
    existing = await make_user()

    async with session_manager.session() as conn:
        async with conn.begin():
            other = await user_service.read_by_id(user_id=existing, conn=conn)
            email = other.email

    with pytest.raises(user_service.EmailInUse):
        async with session_manager.session() as conn:
            async with conn.begin():
                await user_service.register(
                    user_id=f"uid-{uuid7().hex}",
                    email=email,
                    name=None,
                    photo_url=None,
                    conn=conn,
                    log=logger,
                )


@pytest.mark.asyncio(loop_scope="session")
async def test_register_requires_uid_and_email(session_manager, logger):
    with pytest.raises(errors.ValidationError):
        async with session_manager.session() as conn:
            async with conn.begin():
                await user_service.register(
                    user_id="uid-blank-email",
                    email="   ",
                    name=None,
                    photo_url=None,
                    conn=conn,
                    log=logger,
                )


@pytest.mark.asyncio(loop_scope="session")
async def test_missing_user(session_manager):
    async with session_manager.session() as conn:
        async with conn.begin():
            with pytest.raises(user_service.UserNotFound):
                await user_service.read_by_id(user_id="uid-nobody", conn=conn)

            with pytest.raises(user_service.UserNotFound):
                await user_service.read_by_email(email="nobody@example.com", conn=conn)


@pytest.mark.asyncio(loop_scope="session")
async def test_groups_for_user(session_manager, logger, make_user, make_group):
    owner = await make_user()
    member = await make_user()

    first = await make_group(owner, members=[member], name="First")
    second = await make_group(owner, name="Second")

    async with session_manager.session() as conn:
        async with conn.begin():
            owner_groups = await groups_service.get_group_list(
                for_user=owner, conn=conn, log=logger
            )
            member_groups = await groups_service.get_group_list(
                for_user=member, conn=conn, log=logger
            )

    # Newest first.
    assert [g.group_id for g in owner_groups] == [second, first]
    assert [g.group_id for g in member_groups] == [first]
    assert member_groups[0].role == "member"
    assert owner_groups[1].member_count == 2
