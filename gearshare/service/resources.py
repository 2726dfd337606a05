"""
Service layer for resources (gear).
"""

from datetime import datetime, timezone

from sqlalchemy import delete, exists, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from structlog.typing import FilteringBoundLogger

from gearshare.core import errors, events
from gearshare.core.borrow import BorrowStatus, LoanStatus
from gearshare.core.uuid import UUID
from gearshare.database.borrow import BorrowRequest, Loan
from gearshare.database.group import GroupMembership
from gearshare.database.resource import Resource, ResourceGroupShare

from . import user as user_service


class ResourceNotFound(errors.NotFoundError):
    kind = "resource_not_found"


class NotResourceOwner(errors.PermissionDenied):
    kind = "not_resource_owner"


class ResourceNotVisible(errors.PermissionDenied):
    kind = "resource_not_visible"


class ResourceOnLoan(errors.ConflictError):
    kind = "resource_on_loan"


def _visible_to(user_id: str):
    """
    The visibility rule as a SQL clause: owners see their own resources, and
    everyone else sees resources shared with a group they belong to.
    """
    shared_with_user = (
        select(ResourceGroupShare.resource_id)
        .join(
            GroupMembership,
            GroupMembership.group_id == ResourceGroupShare.group_id,
        )
        .where(GroupMembership.user_id == user_id)
    )

    return or_(Resource.owner_id == user_id, Resource.resource_id.in_(shared_with_user))


async def audience(resource: Resource, conn: AsyncSession) -> set[str]:
    """
    Everyone who can currently see `resource`.
    """
    result = await conn.execute(
        select(GroupMembership.user_id)
        .join(
            ResourceGroupShare,
            ResourceGroupShare.group_id == GroupMembership.group_id,
        )
        .where(ResourceGroupShare.resource_id == resource.resource_id)
    )
    return {resource.owner_id, *result.scalars().all()}


async def create(
    owner_id: str,
    title: str,
    description: str,
    image: str | None,
    conn: AsyncSession,
    log: FilteringBoundLogger,
) -> Resource:
    """
    Post a new resource.

    Raises
    ------
    errors.ValidationError
        If the title or description are missing.
    user_service.UserNotFound
        If the owner is not registered.
    """
    title = (title or "").strip()
    description = (description or "").strip()

    log = log.bind(owner_id=owner_id, title=title)

    if not title or not description:
        await log.ainfo("resource.create.missing_fields")
        raise errors.ValidationError("Title and description are required.")

    owner = await user_service.read_by_id(user_id=owner_id, conn=conn)

    resource = Resource(
        title=title,
        description=description,
        image=image,
        owner_id=owner.user_id,
        owner=owner,
        created_at=datetime.now(timezone.utc),
    )

    conn.add(resource)
    await conn.flush()

    events.queue(
        conn,
        events.ResourceChanged(
            resource_id=resource.resource_id, audience={owner.user_id}
        ),
    )

    await log.ainfo("resource.created", resource_id=resource.resource_id)

    return resource


async def read_by_id(
    resource_id: UUID,
    conn: AsyncSession,
    log: FilteringBoundLogger,
) -> Resource:
    """
    Read a resource regardless of who is asking.

    Raises
    ------
    ResourceNotFound
        If the resource does not exist.
    """
    result = await conn.execute(
        select(Resource).where(Resource.resource_id == resource_id)
    )
    resource = result.unique().scalar_one_or_none()

    if resource is None:
        await log.ainfo("resource.not_found", resource_id=resource_id)
        raise ResourceNotFound(f"Resource with id {resource_id} not found")

    return resource


async def is_visible(resource_id: UUID, user_id: str, conn: AsyncSession) -> bool:
    result = await conn.execute(
        select(
            exists().where(Resource.resource_id == resource_id, _visible_to(user_id))
        )
    )
    return bool(result.scalar())


async def read_visible(
    resource_id: UUID,
    user_id: str,
    conn: AsyncSession,
    log: FilteringBoundLogger,
) -> Resource:
    """
    Read a resource on behalf of `user_id`.

    Raises
    ------
    ResourceNotFound
        If the resource does not exist.
    ResourceNotVisible
        If the user neither owns the resource nor shares a group it is
        shared with.
    """
    log = log.bind(resource_id=resource_id, user_id=user_id)

    resource = await read_by_id(resource_id=resource_id, conn=conn, log=log)

    if not await is_visible(resource_id=resource_id, user_id=user_id, conn=conn):
        await log.awarn("resource.access_denied")
        raise ResourceNotVisible("You do not have access to this resource")

    return resource


async def get_resource_list(
    user_id: str,
    conn: AsyncSession,
    log: FilteringBoundLogger,
    owner_id: str | None = None,
) -> list[Resource]:
    """
    Resources visible to `user_id`, newest first, optionally restricted to
    those owned by `owner_id`.
    """
    log = log.bind(user_id=user_id, owner_id=owner_id)

    query = select(Resource).where(_visible_to(user_id))

    if owner_id is not None:
        query = query.where(Resource.owner_id == owner_id)

    result = await conn.execute(query.order_by(Resource.resource_id.desc()))
    resources = result.unique().scalars().all()

    await log.adebug("resource.listed", number_of_resources=len(resources))

    return list(resources)


async def require_owner(
    resource_id: UUID,
    user_id: str,
    conn: AsyncSession,
    log: FilteringBoundLogger,
) -> Resource:
    resource = await read_by_id(resource_id=resource_id, conn=conn, log=log)

    if resource.owner_id != user_id:
        await log.awarn(
            "resource.not_owner", resource_id=resource_id, user_id=user_id
        )
        raise NotResourceOwner("Only the owner can change this resource")

    return resource


async def update(
    resource_id: UUID,
    user_id: str,
    title: str | None,
    description: str | None,
    image: str | None,
    conn: AsyncSession,
    log: FilteringBoundLogger,
) -> Resource:
    """
    Edit a resource. Fields left as `None` are unchanged. Owner only.
    """
    log = log.bind(resource_id=resource_id, user_id=user_id)

    resource = await require_owner(
        resource_id=resource_id, user_id=user_id, conn=conn, log=log
    )

    if title is not None:
        if not title.strip():
            raise errors.ValidationError("Title cannot be blank")
        resource.title = title.strip()

    if description is not None:
        if not description.strip():
            raise errors.ValidationError("Description cannot be blank")
        resource.description = description.strip()

    if image is not None:
        resource.image = image

    resource.updated_at = datetime.now(timezone.utc)
    await conn.flush()

    events.queue(
        conn,
        events.ResourceChanged(
            resource_id=resource_id, audience=await audience(resource, conn)
        ),
    )

    await log.ainfo("resource.updated")

    return resource


async def delete_resource(
    resource_id: UUID,
    user_id: str,
    conn: AsyncSession,
    log: FilteringBoundLogger,
) -> None:
    """
    Delete a resource. Owner only.

    A resource that is currently lent out cannot be deleted. Otherwise its group
    shares are detached, pending requests for it are cancelled (and their
    parties notified), and its request and loan history is removed with it.

    Raises
    ------
    ResourceOnLoan
        If the resource has an active loan.
    """
    log = log.bind(resource_id=resource_id, user_id=user_id)

    resource = await require_owner(
        resource_id=resource_id, user_id=user_id, conn=conn, log=log
    )

    active_loan = await conn.execute(
        select(
            exists().where(
                Loan.request_id == BorrowRequest.request_id,
                BorrowRequest.resource_id == resource_id,
                Loan.status == LoanStatus.ACTIVE,
            )
        )
    )

    if active_loan.scalar():
        await log.ainfo("resource.delete.on_loan")
        raise ResourceOnLoan("This item is currently lent out and cannot be deleted")

    watchers = await audience(resource, conn)

    requests = (
        (
            await conn.execute(
                select(BorrowRequest).where(BorrowRequest.resource_id == resource_id)
            )
        )
        .unique()
        .scalars()
        .all()
    )

    pending = [r for r in requests if r.status == BorrowStatus.PENDING]

    for request in pending:
        events.queue(
            conn,
            events.BorrowRequestChanged(
                request_id=request.request_id,
                resource_id=resource_id,
                status=BorrowStatus.CANCELLED,
                audience={request.borrower_id, request.owner_id},
            ),
        )

    request_ids = [r.request_id for r in requests]

    if request_ids:
        await conn.execute(delete(Loan).where(Loan.request_id.in_(request_ids)))
        await conn.execute(
            delete(BorrowRequest).where(BorrowRequest.request_id.in_(request_ids))
        )

    await conn.execute(
        delete(ResourceGroupShare).where(ResourceGroupShare.resource_id == resource_id)
    )
    await conn.execute(delete(Resource).where(Resource.resource_id == resource_id))

    events.queue(
        conn, events.ResourceDeleted(resource_id=resource_id, audience=watchers)
    )

    await log.ainfo(
        "resource.deleted",
        cancelled_requests=len(pending),
        removed_requests=len(request_ids),
    )
