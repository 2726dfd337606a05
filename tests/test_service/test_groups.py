"""
Tests the group service layer: membership, roles and permissions.
"""

from datetime import date, timedelta

import pytest

from gearshare.core import errors
from gearshare.core.borrow import BorrowStatus
from gearshare.core.group import GroupRole
from gearshare.service import borrow as borrow_service
from gearshare.service import groups as groups_service
from gearshare.service import sharing as sharing_service
from gearshare.service import user as user_service


async def _email(session_manager, user_id: str) -> str:
    async with session_manager.session() as conn:
        async with conn.begin():
            user = await user_service.read_by_id(user_id=user_id, conn=conn)
            return user.email


@pytest.mark.asyncio(loop_scope="session")
async def test_create_group(session_manager, logger, make_user):
    owner = await make_user()

    async with session_manager.session() as conn:
        async with conn.begin():
            group = await groups_service.create(
                name="  Paddlers ",
                created_by_id=owner,
                description="Kayaks and canoes",
                avatar=None,
                conn=conn,
                log=logger,
            )
            GROUP_ID = group.group_id

    async with session_manager.session() as conn:
        async with conn.begin():
            details = await groups_service.read_details(
                group_id=GROUP_ID, user_id=owner, conn=conn, log=logger
            )

    assert details.name == "Paddlers"
    assert details.role == GroupRole.OWNER
    assert details.member_count == 1
    assert details.members[0].user_id == owner
    assert details.user_permissions.can_delete

    with pytest.raises(errors.ValidationError):
        async with session_manager.session() as conn:
            async with conn.begin():
                await groups_service.create(
                    name="   ",
                    created_by_id=owner,
                    description=None,
                    avatar=None,
                    conn=conn,
                    log=logger,
                )


@pytest.mark.asyncio(loop_scope="session")
async def test_details_members_only(session_manager, logger, make_user, make_group):
    owner = await make_user()
    outsider = await make_user()
    group_id = await make_group(owner)

    with pytest.raises(groups_service.NotGroupMember):
        async with session_manager.session() as conn:
            async with conn.begin():
                await groups_service.read_details(
                    group_id=group_id, user_id=outsider, conn=conn, log=logger
                )


@pytest.mark.asyncio(loop_scope="session")
async def test_invite(session_manager, logger, make_user, make_group):
    owner = await make_user()
    member = await make_user()
    invitee = await make_user()
    group_id = await make_group(owner, members=[member])

    # Plain members cannot invite.
    with pytest.raises(groups_service.InsufficientRole):
        async with session_manager.session() as conn:
            async with conn.begin():
                await groups_service.invite(
                    group_id=group_id,
                    invited_by_id=member,
                    email=await _email(session_manager, invitee),
                    conn=conn,
                    log=logger,
                )

    with pytest.raises(user_service.UserNotFound) as e:
        async with session_manager.session() as conn:
            async with conn.begin():
                await groups_service.invite(
                    group_id=group_id,
                    invited_by_id=owner,
                    email="nobody-at-all@example.com",
                    conn=conn,
                    log=logger,
                )
    assert e.value.kind == "user_not_found"

    with pytest.raises(groups_service.AlreadyMember) as e:
        async with session_manager.session() as conn:
            async with conn.begin():
                await groups_service.invite(
                    group_id=group_id,
                    invited_by_id=owner,
                    email=await _email(session_manager, member),
                    conn=conn,
                    log=logger,
                )
    assert e.value.kind == "already_member"
    assert e.value.status_code == 409

    async with session_manager.session() as conn:
        async with conn.begin():
            membership = await groups_service.invite(
                group_id=group_id,
                invited_by_id=owner,
                email=await _email(session_manager, invitee),
                conn=conn,
                log=logger,
            )
            assert membership.role == GroupRole.MEMBER

    async with session_manager.session() as conn:
        async with conn.begin():
            members = await groups_service.get_members(
                group_id=group_id, conn=conn, log=logger
            )

    assert [m.user_id for m in members][0] == owner
    assert {m.user_id for m in members} == {owner, member, invitee}


@pytest.mark.asyncio(loop_scope="session")
async def test_roles_and_removal(session_manager, logger, make_user, make_group):
    owner = await make_user()
    admin = await make_user()
    member = await make_user()
    other = await make_user()
    group_id = await make_group(owner, members=[admin, member, other])

    async with session_manager.session() as conn:
        async with conn.begin():
            await groups_service.update_role(
                group_id=group_id,
                acting_user_id=owner,
                target_user_id=admin,
                role=GroupRole.ADMIN,
                conn=conn,
                log=logger,
            )

    # Only the owner changes roles, and never to owner.
    with pytest.raises(groups_service.InsufficientRole):
        async with session_manager.session() as conn:
            async with conn.begin():
                await groups_service.update_role(
                    group_id=group_id,
                    acting_user_id=admin,
                    target_user_id=member,
                    role=GroupRole.ADMIN,
                    conn=conn,
                    log=logger,
                )

    with pytest.raises(groups_service.InvalidRole):
        async with session_manager.session() as conn:
            async with conn.begin():
                await groups_service.update_role(
                    group_id=group_id,
                    acting_user_id=owner,
                    target_user_id=member,
                    role=GroupRole.OWNER,
                    conn=conn,
                    log=logger,
                )

    # Admins cannot remove the owner...
    with pytest.raises(groups_service.InsufficientRole):
        async with session_manager.session() as conn:
            async with conn.begin():
                await groups_service.remove_member(
                    group_id=group_id,
                    acting_user_id=admin,
                    target_user_id=owner,
                    conn=conn,
                    log=logger,
                )

    # ...plain members cannot remove anyone...
    with pytest.raises(groups_service.InsufficientRole):
        async with session_manager.session() as conn:
            async with conn.begin():
                await groups_service.remove_member(
                    group_id=group_id,
                    acting_user_id=member,
                    target_user_id=other,
                    conn=conn,
                    log=logger,
                )

    # ...but admins can remove members.
    async with session_manager.session() as conn:
        async with conn.begin():
            await groups_service.remove_member(
                group_id=group_id,
                acting_user_id=admin,
                target_user_id=other,
                conn=conn,
                log=logger,
            )

    with pytest.raises(groups_service.MemberNotFound):
        async with session_manager.session() as conn:
            async with conn.begin():
                await groups_service.remove_member(
                    group_id=group_id,
                    acting_user_id=owner,
                    target_user_id=other,
                    conn=conn,
                    log=logger,
                )

    # The owner can remove an admin.
    async with session_manager.session() as conn:
        async with conn.begin():
            await groups_service.remove_member(
                group_id=group_id,
                acting_user_id=owner,
                target_user_id=admin,
                conn=conn,
                log=logger,
            )

    async with session_manager.session() as conn:
        async with conn.begin():
            assert await groups_service.member_ids(group_id, conn) == {owner, member}


@pytest.mark.asyncio(loop_scope="session")
async def test_admin_cannot_remove_admin(session_manager, logger, make_user, make_group):
    owner = await make_user()
    first = await make_user()
    second = await make_user()
    group_id = await make_group(owner, members=[first, second])

    async with session_manager.session() as conn:
        async with conn.begin():
            for user_id in [first, second]:
                await groups_service.update_role(
                    group_id=group_id,
                    acting_user_id=owner,
                    target_user_id=user_id,
                    role=GroupRole.ADMIN,
                    conn=conn,
                    log=logger,
                )

    with pytest.raises(groups_service.InsufficientRole):
        async with session_manager.session() as conn:
            async with conn.begin():
                await groups_service.remove_member(
                    group_id=group_id,
                    acting_user_id=first,
                    target_user_id=second,
                    conn=conn,
                    log=logger,
                )


@pytest.mark.asyncio(loop_scope="session")
async def test_leave(session_manager, logger, make_user, make_group, make_resource):
    owner = await make_user()
    member = await make_user()
    group_id = await make_group(owner, members=[member])
    resource_id = await make_resource(member)

    async with session_manager.session() as conn:
        async with conn.begin():
            await sharing_service.share(
                resource_id=resource_id,
                group_id=group_id,
                user_id=member,
                conn=conn,
                log=logger,
            )

    with pytest.raises(groups_service.OwnerCannotLeave):
        async with session_manager.session() as conn:
            async with conn.begin():
                await groups_service.leave(
                    group_id=group_id, user_id=owner, conn=conn, log=logger
                )

    async with session_manager.session() as conn:
        async with conn.begin():
            await groups_service.leave(
                group_id=group_id, user_id=member, conn=conn, log=logger
            )

    # The departing member's resources leave with them.
    async with session_manager.session() as conn:
        async with conn.begin():
            assert not await sharing_service.is_shared(
                resource_id=resource_id, group_id=group_id, conn=conn
            )
            assert await groups_service.member_ids(group_id, conn) == {owner}


@pytest.mark.asyncio(loop_scope="session")
async def test_update_group(session_manager, logger, make_user, make_group):
    owner = await make_user()
    member = await make_user()
    group_id = await make_group(owner, members=[member])

    with pytest.raises(groups_service.InsufficientRole):
        async with session_manager.session() as conn:
            async with conn.begin():
                await groups_service.update_group(
                    group_id=group_id,
                    user_id=member,
                    name="Renamed",
                    description=None,
                    avatar=None,
                    conn=conn,
                    log=logger,
                )

    async with session_manager.session() as conn:
        async with conn.begin():
            group = await groups_service.update_group(
                group_id=group_id,
                user_id=owner,
                name="Renamed",
                description="New description",
                avatar=None,
                conn=conn,
                log=logger,
            )
            assert group.name == "Renamed"
            assert group.description == "New description"


@pytest.mark.asyncio(loop_scope="session")
async def test_delete_group(
    session_manager, logger, make_user, make_group, make_resource
):
    owner = await make_user()
    member = await make_user()
    group_id = await make_group(owner, members=[member])
    resource_id = await make_resource(owner)

    async with session_manager.session() as conn:
        async with conn.begin():
            await sharing_service.share(
                resource_id=resource_id,
                group_id=group_id,
                user_id=owner,
                conn=conn,
                log=logger,
            )
            request = await borrow_service.create(
                resource_id=resource_id,
                borrower_id=member,
                start_date=date.today() + timedelta(days=1),
                end_date=date.today() + timedelta(days=3),
                message=None,
                group_id=group_id,
                conn=conn,
                log=logger,
            )
            REQUEST_ID = request.request_id

    with pytest.raises(groups_service.InsufficientRole):
        async with session_manager.session() as conn:
            async with conn.begin():
                await groups_service.delete_group(
                    group_id=group_id, user_id=member, conn=conn, log=logger
                )

    async with session_manager.session() as conn:
        async with conn.begin():
            await groups_service.delete_group(
                group_id=group_id, user_id=owner, conn=conn, log=logger
            )

    async with session_manager.session() as conn:
        async with conn.begin():
            with pytest.raises(groups_service.GroupNotFound):
                await groups_service.read_by_id(
                    group_id=group_id, conn=conn, log=logger
                )

            assert not await sharing_service.is_shared(
                resource_id=resource_id, group_id=group_id, conn=conn
            )
            assert await groups_service.member_ids(group_id, conn) == set()

            request = await borrow_service.read_by_id(
                request_id=REQUEST_ID, conn=conn, log=logger
            )
            assert request.status == BorrowStatus.CANCELLED
            assert request.group_id is None


@pytest.mark.asyncio(loop_scope="session")
async def test_delete_group_without_requests(
    session_manager, logger, make_user, make_group
):
    owner = await make_user()
    group_id = await make_group(owner)

    async with session_manager.session() as conn:
        async with conn.begin():
            await groups_service.update_group(
                group_id=group_id,
                user_id=owner,
                name="Short lived",
                description=None,
                avatar=None,
                conn=conn,
                log=logger,
            )
            await groups_service.delete_group(
                group_id=group_id, user_id=owner, conn=conn, log=logger
            )

    async with session_manager.session() as conn:
        with pytest.raises(groups_service.GroupNotFound):
            await groups_service.read_by_id(group_id=group_id, conn=conn, log=logger)
