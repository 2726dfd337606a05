"""
Service layer for groups, their members and member roles.
"""

from datetime import datetime, timezone

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from structlog.typing import FilteringBoundLogger

from gearshare.core import errors, events
from gearshare.core.borrow import BorrowStatus
from gearshare.core.group import (
    GroupData,
    GroupDetailData,
    GroupPermissions,
    GroupRole,
    permissions_for,
)
from gearshare.core.uuid import UUID
from gearshare.database.borrow import BorrowRequest
from gearshare.database.group import Group, GroupMembership
from gearshare.database.resource import Resource, ResourceGroupShare

from . import user as user_service


class GroupNotFound(errors.NotFoundError):
    kind = "group_not_found"


class NotGroupMember(errors.PermissionDenied):
    kind = "not_group_member"


class InsufficientRole(errors.PermissionDenied):
    kind = "insufficient_role"


class MemberNotFound(errors.NotFoundError):
    kind = "member_not_found"


class AlreadyMember(errors.ConflictError):
    kind = "already_member"


class OwnerCannotLeave(errors.ConflictError):
    kind = "owner_cannot_leave"


class InvalidRole(errors.ValidationError):
    kind = "invalid_role"


async def create(
    name: str,
    created_by_id: str,
    description: str | None,
    avatar: str | None,
    conn: AsyncSession,
    log: FilteringBoundLogger,
) -> Group:
    """
    Create a new group. The creator becomes its (only) owner.

    Parameters
    ----------
    name: str
        The name of the new group.
    created_by_id: str
        The user creating the group.
    description: str | None
        Optional free text shown on the group page.
    avatar: str | None
        Optional avatar image (data URL).

    Raises
    ------
    errors.ValidationError
        If the name is blank.
    user_service.UserNotFound
        If the creating user is not registered.
    """
    name = name.strip()

    log = log.bind(group_name=name, user_id=created_by_id)

    if not name:
        await log.ainfo("group.create.no_name")
        raise errors.ValidationError("Group name is required")

    created_by = await user_service.read_by_id(user_id=created_by_id, conn=conn)

    current_time = datetime.now(timezone.utc)

    group = Group(
        name=name,
        description=description,
        avatar=avatar,
        created_by_id=created_by.user_id,
        created_by=created_by,
        created_at=current_time,
    )

    membership = GroupMembership(
        user_id=created_by.user_id,
        group_id=group.group_id,
        role=GroupRole.OWNER,
        joined_at=current_time,
        user=created_by,
    )

    conn.add_all([group, membership])
    await conn.flush()

    events.queue(
        conn,
        events.GroupChanged(group_id=group.group_id, audience={created_by.user_id}),
    )

    await log.ainfo("group.created", group_id=group.group_id)

    return group


async def read_by_id(
    group_id: UUID,
    conn: AsyncSession,
    log: FilteringBoundLogger,
) -> Group:
    """
    Read a group by its ID.

    Raises
    ------
    GroupNotFound
        If the group does not exist.
    """
    log = log.bind(group_id=group_id)
    result = await conn.execute(select(Group).where(Group.group_id == group_id))
    group = result.unique().scalar_one_or_none()
    if not group:
        await log.ainfo("group.not_found")
        raise GroupNotFound(f"Group with id {group_id} not found")
    await log.adebug("group.found")
    return group


async def read_membership(
    group_id: UUID, user_id: str, conn: AsyncSession
) -> GroupMembership | None:
    result = await conn.execute(
        select(GroupMembership).where(
            GroupMembership.group_id == group_id, GroupMembership.user_id == user_id
        )
    )
    return result.unique().scalar_one_or_none()


async def member_ids(group_id: UUID, conn: AsyncSession) -> set[str]:
    result = await conn.execute(
        select(GroupMembership.user_id).where(GroupMembership.group_id == group_id)
    )
    return set(result.scalars().all())


async def require_member(
    group_id: UUID,
    user_id: str,
    conn: AsyncSession,
    log: FilteringBoundLogger,
) -> GroupMembership:
    """
    Return `user_id`'s membership of the group.

    Raises
    ------
    GroupNotFound
        If the group does not exist.
    NotGroupMember
        If the user is not a member.
    """
    await read_by_id(group_id=group_id, conn=conn, log=log)

    membership = await read_membership(group_id=group_id, user_id=user_id, conn=conn)

    if membership is None:
        await log.awarn("group.access_denied", group_id=group_id, user_id=user_id)
        raise NotGroupMember("You are not a member of this group")

    return membership


async def require_permission(
    group_id: UUID,
    user_id: str,
    permission: str,
    conn: AsyncSession,
    log: FilteringBoundLogger,
) -> GroupMembership:
    """
    Return `user_id`'s membership of the group, checking that their role grants
    `permission` (one of the `GroupPermissions` fields).
    """
    membership = await require_member(
        group_id=group_id, user_id=user_id, conn=conn, log=log
    )

    if not getattr(permissions_for(membership.role), permission):
        await log.awarn(
            "group.permission_denied",
            group_id=group_id,
            user_id=user_id,
            role=membership.role,
            permission=permission,
        )
        raise InsufficientRole(
            f"Your role ({membership.role.value}) does not allow this action"
        )

    return membership


async def permissions(
    group_id: UUID, user_id: str, conn: AsyncSession
) -> GroupPermissions:
    membership = await read_membership(group_id=group_id, user_id=user_id, conn=conn)
    return permissions_for(membership.role if membership else None)


async def group_counts(
    group_ids: list[UUID], conn: AsyncSession
) -> tuple[dict[UUID, int], dict[UUID, int]]:
    if not group_ids:
        return {}, {}

    members = await conn.execute(
        select(GroupMembership.group_id, func.count())
        .where(GroupMembership.group_id.in_(group_ids))
        .group_by(GroupMembership.group_id)
    )
    shares = await conn.execute(
        select(ResourceGroupShare.group_id, func.count())
        .where(ResourceGroupShare.group_id.in_(group_ids))
        .group_by(ResourceGroupShare.group_id)
    )

    return dict(members.all()), dict(shares.all())


async def get_group_list(
    for_user: str,
    conn: AsyncSession,
    log: FilteringBoundLogger,
) -> list[GroupData]:
    """
    Get the groups that `for_user` is a member of, newest first, along with
    their member and shared resource counts and the user's role.
    """
    log = log.bind(for_user=for_user)

    result = await conn.execute(
        select(Group, GroupMembership.role)
        .join(GroupMembership, GroupMembership.group_id == Group.group_id)
        .where(GroupMembership.user_id == for_user)
        .order_by(Group.group_id.desc())
    )
    rows = result.unique().all()

    member_counts, share_counts = await group_counts(
        [g.group_id for g, _ in rows], conn
    )

    await log.adebug("group.listed", number_of_groups=len(rows))

    return [
        group.to_core(
            member_count=member_counts.get(group.group_id, 0),
            shared_resources_count=share_counts.get(group.group_id, 0),
            role=role,
        )
        for group, role in rows
    ]


async def get_members(
    group_id: UUID,
    conn: AsyncSession,
    log: FilteringBoundLogger,
) -> list[GroupMembership]:
    """
    Members of a group, owner first, then admins, then members.
    """
    await read_by_id(group_id=group_id, conn=conn, log=log)

    result = await conn.execute(
        select(GroupMembership)
        .where(GroupMembership.group_id == group_id)
        .order_by(GroupMembership.joined_at)
    )
    memberships = list(result.unique().scalars().all())

    return sorted(memberships, key=lambda m: m.role.rank, reverse=True)


async def read_details(
    group_id: UUID,
    user_id: str,
    conn: AsyncSession,
    log: FilteringBoundLogger,
) -> GroupDetailData:
    """
    The full group page: members, shared resources, counts and the caller's
    permissions. Only available to members.

    Raises
    ------
    GroupNotFound
        If the group does not exist.
    NotGroupMember
        If `user_id` is not a member.
    """
    log = log.bind(group_id=group_id, user_id=user_id)

    membership = await require_member(
        group_id=group_id, user_id=user_id, conn=conn, log=log
    )
    group = await read_by_id(group_id=group_id, conn=conn, log=log)
    members = await get_members(group_id=group_id, conn=conn, log=log)

    result = await conn.execute(
        select(Resource)
        .join(ResourceGroupShare, ResourceGroupShare.resource_id == Resource.resource_id)
        .where(ResourceGroupShare.group_id == group_id)
        .order_by(ResourceGroupShare.shared_at.desc())
    )
    resources = result.unique().scalars().all()

    core = group.to_core(
        member_count=len(members),
        shared_resources_count=len(resources),
        role=membership.role,
    )

    await log.adebug("group.details", number_of_resources=len(resources))

    return GroupDetailData(
        **core.model_dump(),
        members=[m.to_core() for m in members],
        resources=[r.to_core() for r in resources],
        user_permissions=permissions_for(membership.role),
    )


async def update_group(
    group_id: UUID,
    user_id: str,
    name: str | None,
    description: str | None,
    avatar: str | None,
    conn: AsyncSession,
    log: FilteringBoundLogger,
) -> Group:
    """
    Update the group's profile. Fields left as `None` are unchanged. Requires
    `can_edit`.
    """
    log = log.bind(group_id=group_id, user_id=user_id)

    await require_permission(
        group_id=group_id, user_id=user_id, permission="can_edit", conn=conn, log=log
    )
    group = await read_by_id(group_id=group_id, conn=conn, log=log)

    if name is not None:
        if not name.strip():
            raise errors.ValidationError("Group name cannot be blank")
        group.name = name.strip()

    if description is not None:
        group.description = description

    if avatar is not None:
        group.avatar = avatar

    await conn.flush()

    events.queue(
        conn,
        events.GroupChanged(
            group_id=group_id, audience=await member_ids(group_id, conn)
        ),
    )

    await log.ainfo("group.updated")

    return group


async def delete_group(
    group_id: UUID,
    user_id: str,
    conn: AsyncSession,
    log: FilteringBoundLogger,
) -> None:
    """
    Delete a group. Requires `can_delete` (i.e. the owner).

    Shares and memberships go with the group. Pending borrow requests made
    through the group are cancelled, and every request that referenced the group
    is detached from it.
    """
    log = log.bind(group_id=group_id, user_id=user_id)

    await require_permission(
        group_id=group_id, user_id=user_id, permission="can_delete", conn=conn, log=log
    )

    audience = await member_ids(group_id, conn)
    current_time = datetime.now(timezone.utc)

    pending = (
        (
            await conn.execute(
                select(BorrowRequest).where(
                    BorrowRequest.group_id == group_id,
                    BorrowRequest.status == BorrowStatus.PENDING,
                )
            )
        )
        .unique()
        .scalars()
        .all()
    )

    await conn.execute(
        update(BorrowRequest)
        .where(
            BorrowRequest.group_id == group_id,
            BorrowRequest.status == BorrowStatus.PENDING,
        )
        .values(status=BorrowStatus.CANCELLED, updated_at=current_time)
        .execution_options(synchronize_session=False)
    )
    await conn.execute(
        update(BorrowRequest)
        .where(BorrowRequest.group_id == group_id)
        .values(group_id=None)
        .execution_options(synchronize_session=False)
    )

    for request in pending:
        events.queue(
            conn,
            events.BorrowRequestChanged(
                request_id=request.request_id,
                resource_id=request.resource_id,
                status=BorrowStatus.CANCELLED,
                audience={request.borrower_id, request.owner_id},
            ),
        )

    await conn.execute(
        delete(ResourceGroupShare).where(ResourceGroupShare.group_id == group_id)
    )
    await conn.execute(
        delete(GroupMembership).where(GroupMembership.group_id == group_id)
    )
    await conn.execute(delete(Group).where(Group.group_id == group_id))

    events.queue(conn, events.GroupDeleted(group_id=group_id, audience=audience))

    await log.ainfo("group.deleted", cancelled_requests=len(pending))


async def invite(
    group_id: UUID,
    invited_by_id: str,
    email: str,
    conn: AsyncSession,
    log: FilteringBoundLogger,
) -> GroupMembership:
    """
    Add an already registered user, found by email, to the group as a member.
    Requires `can_invite`.

    Raises
    ------
    user_service.UserNotFound
        If nobody is registered with that email.
    AlreadyMember
        If the user is already in the group.
    """
    log = log.bind(group_id=group_id, invited_by_id=invited_by_id)

    await require_permission(
        group_id=group_id,
        user_id=invited_by_id,
        permission="can_invite",
        conn=conn,
        log=log,
    )

    try:
        invitee = await user_service.read_by_email(email=email, conn=conn)
    except user_service.UserNotFound as e:
        await log.ainfo("group.invite.user_not_found")
        raise e

    log = log.bind(user_id=invitee.user_id)

    if await read_membership(group_id=group_id, user_id=invitee.user_id, conn=conn):
        await log.ainfo("group.invite.already_member")
        raise AlreadyMember(f"{invitee.email} is already a member of this group")

    membership = GroupMembership(
        user_id=invitee.user_id,
        group_id=group_id,
        role=GroupRole.MEMBER,
        joined_at=datetime.now(timezone.utc),
        user=invitee,
    )
    conn.add(membership)
    await conn.flush()

    events.queue(
        conn,
        events.MembershipChanged(
            group_id=group_id,
            user_id=invitee.user_id,
            role=GroupRole.MEMBER.value,
            audience=await member_ids(group_id, conn),
        ),
    )

    await log.ainfo("group.user_added")

    return membership


async def _drop_membership(
    membership: GroupMembership,
    conn: AsyncSession,
    log: FilteringBoundLogger,
):
    """
    Remove a membership, detaching the departing user's resources from the
    group as they are no longer visible there.
    """
    group_id = membership.group_id
    user_id = membership.user_id

    audience = await member_ids(group_id, conn)

    detached = await conn.execute(
        delete(ResourceGroupShare).where(
            ResourceGroupShare.group_id == group_id,
            ResourceGroupShare.resource_id.in_(
                select(Resource.resource_id).where(Resource.owner_id == user_id)
            ),
        )
    )

    await conn.delete(membership)
    await conn.flush()

    events.queue(
        conn,
        events.MembershipChanged(
            group_id=group_id, user_id=user_id, role=None, audience=audience
        ),
    )

    await log.ainfo("group.user_removed", shares_detached=detached.rowcount)


async def remove_member(
    group_id: UUID,
    acting_user_id: str,
    target_user_id: str,
    conn: AsyncSession,
    log: FilteringBoundLogger,
) -> None:
    """
    Remove `target_user_id` from the group. Requires `can_remove_members`, and
    the acting user must outrank the target: the owner can never be removed, and
    admins can only remove plain members.
    """
    log = log.bind(
        group_id=group_id, user_id=acting_user_id, target_user_id=target_user_id
    )

    acting = await require_permission(
        group_id=group_id,
        user_id=acting_user_id,
        permission="can_remove_members",
        conn=conn,
        log=log,
    )

    target = await read_membership(
        group_id=group_id, user_id=target_user_id, conn=conn
    )

    if target is None:
        await log.ainfo("group.user_not_member")
        raise MemberNotFound("That user is not a member of this group")

    if target.role == GroupRole.OWNER:
        await log.awarn("group.remove_owner_denied")
        raise InsufficientRole("The group owner cannot be removed")

    if not acting.role.outranks(target.role):
        await log.awarn("group.remove_member_denied", target_role=target.role)
        raise InsufficientRole(
            f"A group {acting.role.value} cannot remove a group {target.role.value}"
        )

    await _drop_membership(target, conn=conn, log=log)


async def leave(
    group_id: UUID,
    user_id: str,
    conn: AsyncSession,
    log: FilteringBoundLogger,
) -> None:
    """
    Leave a group. The owner cannot leave their own group; they can delete it.
    """
    log = log.bind(group_id=group_id, user_id=user_id)

    membership = await require_member(
        group_id=group_id, user_id=user_id, conn=conn, log=log
    )

    if membership.role == GroupRole.OWNER:
        await log.ainfo("group.leave.owner")
        raise OwnerCannotLeave(
            "The group owner cannot leave the group; delete it instead"
        )

    await _drop_membership(membership, conn=conn, log=log)


async def update_role(
    group_id: UUID,
    acting_user_id: str,
    target_user_id: str,
    role: GroupRole,
    conn: AsyncSession,
    log: FilteringBoundLogger,
) -> GroupMembership:
    """
    Promote or demote a member between `admin` and `member`. Only the owner may
    change roles; ownership itself cannot be handed over this way.
    """
    log = log.bind(
        group_id=group_id,
        user_id=acting_user_id,
        target_user_id=target_user_id,
        role=role,
    )

    acting = await require_member(
        group_id=group_id, user_id=acting_user_id, conn=conn, log=log
    )

    if acting.role != GroupRole.OWNER:
        await log.awarn("group.role.access_denied")
        raise InsufficientRole("Only the group owner can change member roles")

    match role:
        case GroupRole.ADMIN | GroupRole.MEMBER:
            pass
        case GroupRole.OWNER:
            raise InvalidRole("Ownership cannot be assigned through a role change")

    target = await read_membership(
        group_id=group_id, user_id=target_user_id, conn=conn
    )

    if target is None:
        raise MemberNotFound("That user is not a member of this group")

    if target.role == GroupRole.OWNER:
        raise InsufficientRole("The owner's role cannot be changed")

    target.role = role
    await conn.flush()

    events.queue(
        conn,
        events.MembershipChanged(
            group_id=group_id,
            user_id=target_user_id,
            role=role.value,
            audience=await member_ids(group_id, conn),
        ),
    )

    await log.ainfo("group.role_updated")

    return target
