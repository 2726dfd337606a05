"""
Sharing resources with groups. Sharing and unsharing are both idempotent.
"""

from datetime import datetime, timezone

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession
from structlog.typing import FilteringBoundLogger

from gearshare.core import events
from gearshare.core.uuid import UUID
from gearshare.database.group import Group, GroupMembership
from gearshare.database.resource import ResourceGroupShare

from . import groups as group_service
from . import resources as resource_service


async def is_shared(resource_id: UUID, group_id: UUID, conn: AsyncSession) -> bool:
    result = await conn.execute(
        select(ResourceGroupShare.resource_id).where(
            ResourceGroupShare.resource_id == resource_id,
            ResourceGroupShare.group_id == group_id,
        )
    )
    return result.first() is not None


async def share(
    resource_id: UUID,
    group_id: UUID,
    user_id: str,
    conn: AsyncSession,
    log: FilteringBoundLogger,
) -> bool:
    """
    Make a resource visible to a group. Only the resource's owner may share it,
    and only with groups they are a member of.

    Returns
    -------
    bool
        True if a new share was created, False if it already existed.

    Raises
    ------
    resource_service.NotResourceOwner
        If `user_id` does not own the resource.
    group_service.NotGroupMember
        If `user_id` is not in the group.
    """
    log = log.bind(resource_id=resource_id, group_id=group_id, user_id=user_id)

    resource = await resource_service.require_owner(
        resource_id=resource_id, user_id=user_id, conn=conn, log=log
    )
    await group_service.require_member(
        group_id=group_id, user_id=user_id, conn=conn, log=log
    )

    if await is_shared(resource_id=resource_id, group_id=group_id, conn=conn):
        await log.adebug("share.already_shared")
        return False

    conn.add(
        ResourceGroupShare(
            resource_id=resource_id,
            group_id=group_id,
            shared_at=datetime.now(timezone.utc),
        )
    )
    await conn.flush()

    events.queue(
        conn,
        events.ShareChanged(
            resource_id=resource_id,
            group_id=group_id,
            shared=True,
            audience=await resource_service.audience(resource, conn),
        ),
    )

    await log.ainfo("share.created")

    return True


async def unshare(
    resource_id: UUID,
    group_id: UUID,
    user_id: str,
    conn: AsyncSession,
    log: FilteringBoundLogger,
) -> bool:
    """
    Stop sharing a resource with a group. Only the resource's owner may do this.

    Returns
    -------
    bool
        True if a share was removed, False if there was none.
    """
    log = log.bind(resource_id=resource_id, group_id=group_id, user_id=user_id)

    resource = await resource_service.require_owner(
        resource_id=resource_id, user_id=user_id, conn=conn, log=log
    )

    if not await is_shared(resource_id=resource_id, group_id=group_id, conn=conn):
        await log.adebug("share.not_shared")
        return False

    # Members of the group lose sight of the resource, so notify them first.
    watchers = await resource_service.audience(resource, conn)

    await conn.execute(
        delete(ResourceGroupShare).where(
            ResourceGroupShare.resource_id == resource_id,
            ResourceGroupShare.group_id == group_id,
        )
    )
    events.queue(
        conn,
        events.ShareChanged(
            resource_id=resource_id, group_id=group_id, shared=False, audience=watchers
        ),
    )

    await log.ainfo("share.removed")

    return True


async def groups_for_resource(
    resource_id: UUID,
    user_id: str,
    conn: AsyncSession,
    log: FilteringBoundLogger,
) -> list[Group]:
    """
    The groups a resource is shared with. The owner sees every share target;
    anyone else only sees the share targets they are a member of.
    """
    log = log.bind(resource_id=resource_id, user_id=user_id)

    resource = await resource_service.read_visible(
        resource_id=resource_id, user_id=user_id, conn=conn, log=log
    )

    query = (
        select(Group)
        .join(ResourceGroupShare, ResourceGroupShare.group_id == Group.group_id)
        .where(ResourceGroupShare.resource_id == resource_id)
    )

    if resource.owner_id != user_id:
        query = query.join(
            GroupMembership, GroupMembership.group_id == Group.group_id
        ).where(GroupMembership.user_id == user_id)

    result = await conn.execute(query.order_by(ResourceGroupShare.shared_at))
    groups = result.unique().scalars().all()

    await log.adebug("share.listed", number_of_groups=len(groups))

    return list(groups)
