"""
Service layer for the borrow request lifecycle.

A request starts out PENDING and moves, exactly once, to APPROVED, REJECTED or
CANCELLED. Approval creates an ACTIVE loan, which the owner later marks RETURNED.

State changes are made with conditional updates (`... WHERE status = 'PENDING'`)
so that two concurrent attempts on the same request (e.g. an accept racing a
cancel) cannot both succeed; the loser sees an `InvalidTransition`.
"""

from datetime import date, datetime, timezone

from sqlalchemy import exists, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from structlog.typing import FilteringBoundLogger

from gearshare.core import errors, events
from gearshare.core.borrow import (
    DELETABLE_STATUSES,
    BorrowStatus,
    LoanStatus,
    RequestRole,
    ranges_overlap,
    today,
    validate_dates,
)
from gearshare.core.resource import ResourceStatus
from gearshare.core.uuid import UUID
from gearshare.database.borrow import BorrowRequest, Loan
from gearshare.database.resource import Resource

from . import groups as group_service
from . import resources as resource_service
from . import sharing as sharing_service
from . import user as user_service


class BorrowRequestNotFound(errors.NotFoundError):
    kind = "borrow_request_not_found"


class NotRequestParty(errors.PermissionDenied):
    kind = "not_request_party"


class InvalidTransition(errors.ConflictError):
    kind = "invalid_transition"


class OverlappingRequest(errors.ConflictError):
    kind = "overlapping_request"


class OwnResource(errors.ValidationError):
    kind = "own_resource"


def _changed(request: BorrowRequest, loan: Loan | None = None) -> events.ChangeEvent:
    return events.BorrowRequestChanged(
        request_id=request.request_id,
        resource_id=request.resource_id,
        status=request.status,
        loan_status=loan.status if loan else None,
        audience={request.borrower_id, request.owner_id},
    )


async def read_by_id(
    request_id: UUID,
    conn: AsyncSession,
    log: FilteringBoundLogger,
    refresh: bool = False,
) -> BorrowRequest:
    """
    Read a borrow request, with its resource, parties, group and loan.

    Parameters
    ----------
    refresh: bool
        Re-read all attributes from the database even if the request is already
        in the session (needed after conditional updates).

    Raises
    ------
    BorrowRequestNotFound
        If the request does not exist.
    """
    query = select(BorrowRequest).where(BorrowRequest.request_id == request_id)

    if refresh:
        query = query.execution_options(populate_existing=True)

    result = await conn.execute(query)
    request = result.unique().scalar_one_or_none()

    if request is None:
        await log.ainfo("borrow.not_found", request_id=request_id)
        raise BorrowRequestNotFound(f"Borrow request {request_id} not found")

    return request


async def read_for_party(
    request_id: UUID,
    user_id: str,
    conn: AsyncSession,
    log: FilteringBoundLogger,
) -> BorrowRequest:
    """
    Read a request on behalf of either its borrower or the resource owner.
    """
    request = await read_by_id(request_id=request_id, conn=conn, log=log)

    if user_id not in (request.borrower_id, request.owner_id):
        await log.awarn("borrow.access_denied", request_id=request_id, user_id=user_id)
        raise NotRequestParty("You are not a party to this borrow request")

    return request


async def _check_conflicts(
    resource_id: UUID,
    borrower_id: str,
    start_date: date,
    end_date: date,
    conn: AsyncSession,
    log: FilteringBoundLogger,
    exclude_request_id: UUID | None = None,
):
    """
    A new window conflicts with the borrower's own pending or approved requests
    for the resource, and with anybody's request whose loan is still active.
    """
    query = (
        select(BorrowRequest)
        .outerjoin(Loan, Loan.request_id == BorrowRequest.request_id)
        .where(BorrowRequest.resource_id == resource_id)
        .where(BorrowRequest.start_date < end_date)
        .where(BorrowRequest.end_date > start_date)
        .where(
            or_(
                (BorrowRequest.borrower_id == borrower_id)
                & BorrowRequest.status.in_(
                    [BorrowStatus.PENDING, BorrowStatus.APPROVED]
                ),
                (BorrowRequest.status == BorrowStatus.APPROVED)
                & (Loan.status == LoanStatus.ACTIVE),
            )
        )
    )

    if exclude_request_id is not None:
        query = query.where(BorrowRequest.request_id != exclude_request_id)

    result = await conn.execute(query)
    candidates = result.unique().scalars().all()

    # The date filter above is the same overlap test; re-check in Python so the
    # rule lives in one place.
    conflicting = [
        other
        for other in candidates
        if ranges_overlap(start_date, end_date, other.start_date, other.end_date)
    ]

    if not conflicting:
        return

    other = conflicting[0]

    await log.ainfo(
        "borrow.conflict",
        conflicting_request_id=other.request_id,
        conflicting_status=other.status,
    )

    if other.borrower_id == borrower_id:
        raise OverlappingRequest(
            "You already have a request for this item that overlaps these dates"
        )

    raise OverlappingRequest(
        f"This item is already lent out from {other.start_date} to {other.end_date}"
    )


async def create(
    resource_id: UUID,
    borrower_id: str,
    start_date: date,
    end_date: date,
    message: str | None,
    group_id: UUID | None,
    conn: AsyncSession,
    log: FilteringBoundLogger,
) -> BorrowRequest:
    """
    Ask to borrow a resource for `[start_date, end_date)`.

    Parameters
    ----------
    resource_id: UUID
        The resource to borrow.
    borrower_id: str
        The user asking to borrow it.
    start_date: date
        First day of the loan; may not be in the past.
    end_date: date
        The day the resource is due back; must be after `start_date`.
    message: str | None
        An optional note to the owner.
    group_id: UUID | None
        The group through which the borrower found the resource, if any.

    Raises
    ------
    errors.ValidationError
        If the dates are invalid.
    OwnResource
        If the borrower owns the resource.
    resource_service.ResourceNotVisible
        If the borrower cannot see the resource.
    group_service.NotGroupMember
        If `group_id` is given and the borrower is not a member.
    errors.PermissionDenied
        If `group_id` is given and the resource is not shared with it.
    OverlappingRequest
        If the window conflicts with an existing request.
    """
    log = log.bind(
        resource_id=resource_id,
        borrower_id=borrower_id,
        group_id=group_id,
        start_date=start_date,
        end_date=end_date,
    )

    validate_dates(start_date, end_date)

    borrower = await user_service.read_by_id(user_id=borrower_id, conn=conn)
    resource = await resource_service.read_by_id(
        resource_id=resource_id, conn=conn, log=log
    )

    if resource.owner_id == borrower.user_id:
        await log.ainfo("borrow.create.own_resource")
        raise OwnResource("You cannot borrow your own item")

    if group_id is not None:
        await group_service.require_member(
            group_id=group_id, user_id=borrower.user_id, conn=conn, log=log
        )

        if not await sharing_service.is_shared(
            resource_id=resource_id, group_id=group_id, conn=conn
        ):
            await log.awarn("borrow.create.not_shared_with_group")
            raise errors.PermissionDenied("This item is not shared with that group")
    else:
        await resource_service.read_visible(
            resource_id=resource_id, user_id=borrower.user_id, conn=conn, log=log
        )

    await _check_conflicts(
        resource_id=resource_id,
        borrower_id=borrower.user_id,
        start_date=start_date,
        end_date=end_date,
        conn=conn,
        log=log,
    )

    message = message.strip() if message else None

    request = BorrowRequest(
        resource_id=resource.resource_id,
        resource=resource,
        borrower_id=borrower.user_id,
        borrower=borrower,
        owner_id=resource.owner_id,
        owner=resource.owner,
        group_id=group_id,
        status=BorrowStatus.PENDING,
        start_date=start_date,
        end_date=end_date,
        message=message or None,
        created_at=datetime.now(timezone.utc),
    )

    conn.add(request)
    await conn.flush()

    events.queue(conn, _changed(request))

    await log.ainfo("borrow.created", request_id=request.request_id)

    return await read_by_id(
        request_id=request.request_id, conn=conn, log=log, refresh=True
    )


async def get_request_list(
    user_id: str,
    role: RequestRole,
    conn: AsyncSession,
    log: FilteringBoundLogger,
    status: BorrowStatus | None = None,
) -> list[BorrowRequest]:
    """
    Incoming (`role=owner`) or outgoing (`role=borrower`) requests for a user,
    newest first.
    """
    log = log.bind(user_id=user_id, role=role, status=status)

    match role:
        case RequestRole.OWNER:
            query = select(BorrowRequest).where(BorrowRequest.owner_id == user_id)
        case RequestRole.BORROWER:
            query = select(BorrowRequest).where(BorrowRequest.borrower_id == user_id)

    if status is not None:
        query = query.where(BorrowRequest.status == status)

    result = await conn.execute(query.order_by(BorrowRequest.request_id.desc()))
    requests = result.unique().scalars().all()

    await log.adebug("borrow.listed", number_of_requests=len(requests))

    return list(requests)


async def _transition(
    request: BorrowRequest,
    to_status: BorrowStatus,
    conn: AsyncSession,
    log: FilteringBoundLogger,
    **values,
):
    """
    Move a PENDING request to `to_status`, failing if somebody else got there
    first.
    """
    result = await conn.execute(
        update(BorrowRequest)
        .where(BorrowRequest.request_id == request.request_id)
        .where(BorrowRequest.status == BorrowStatus.PENDING)
        .values(status=to_status, updated_at=datetime.now(timezone.utc), **values)
        .execution_options(synchronize_session=False)
    )

    if result.rowcount != 1:
        await log.ainfo("borrow.transition.lost_race", to_status=to_status)
        raise InvalidTransition("This request is no longer pending")


def _require_pending(request: BorrowRequest, action: str):
    if request.status != BorrowStatus.PENDING:
        raise InvalidTransition(
            f"Cannot {action} a request that is {request.status.value.lower()}"
        )


async def _require_owner(
    request: BorrowRequest, user_id: str, action: str, log: FilteringBoundLogger
):
    if request.owner_id != user_id:
        await log.awarn(f"borrow.{action}.not_owner")
        raise NotRequestParty(f"Only the item's owner can {action} this request")


async def _require_borrower(
    request: BorrowRequest, user_id: str, action: str, log: FilteringBoundLogger
):
    if request.borrower_id != user_id:
        await log.awarn(f"borrow.{action}.not_borrower")
        raise NotRequestParty(f"Only the borrower can {action} this request")


async def accept(
    request_id: UUID,
    user_id: str,
    conn: AsyncSession,
    log: FilteringBoundLogger,
) -> BorrowRequest:
    """
    Approve a pending request, lending the resource out. Owner only.

    Raises
    ------
    NotRequestParty
        If `user_id` is not the resource owner.
    InvalidTransition
        If the request is not pending.
    OverlappingRequest
        If the resource has meanwhile been lent out for an overlapping window.
    """
    log = log.bind(request_id=request_id, user_id=user_id)

    request = await read_by_id(request_id=request_id, conn=conn, log=log)

    await _require_owner(request, user_id, "accept", log)
    _require_pending(request, "accept")

    active = await conn.execute(
        select(BorrowRequest)
        .join(Loan, Loan.request_id == BorrowRequest.request_id)
        .where(BorrowRequest.resource_id == request.resource_id)
        .where(Loan.status == LoanStatus.ACTIVE)
    )

    for other in active.unique().scalars().all():
        if ranges_overlap(
            request.start_date, request.end_date, other.start_date, other.end_date
        ):
            await log.ainfo("borrow.accept.overlaps", other_request_id=other.request_id)
            raise OverlappingRequest(
                f"This item is already lent out from {other.start_date} to "
                f"{other.end_date}"
            )

    await _transition(request, BorrowStatus.APPROVED, conn=conn, log=log)

    loan = Loan(
        request_id=request.request_id,
        status=LoanStatus.ACTIVE,
        start_date=request.start_date,
        end_date=request.end_date,
    )
    conn.add(loan)

    await conn.execute(
        update(Resource)
        .where(Resource.resource_id == request.resource_id)
        .values(status=ResourceStatus.ON_LOAN, updated_at=datetime.now(timezone.utc))
        .execution_options(synchronize_session=False)
    )
    await conn.flush()

    request = await read_by_id(
        request_id=request_id, conn=conn, log=log, refresh=True
    )

    events.queue(conn, _changed(request, loan))
    events.queue(
        conn,
        events.ResourceChanged(
            resource_id=request.resource_id,
            audience=await resource_service.audience(request.resource, conn),
        ),
    )

    await log.ainfo("borrow.accepted", loan_id=loan.loan_id)

    return request


async def decline(
    request_id: UUID,
    user_id: str,
    conn: AsyncSession,
    log: FilteringBoundLogger,
) -> BorrowRequest:
    """
    Reject a pending request. Owner only.
    """
    log = log.bind(request_id=request_id, user_id=user_id)

    request = await read_by_id(request_id=request_id, conn=conn, log=log)

    await _require_owner(request, user_id, "decline", log)
    _require_pending(request, "decline")

    await _transition(request, BorrowStatus.REJECTED, conn=conn, log=log)

    request = await read_by_id(
        request_id=request_id, conn=conn, log=log, refresh=True
    )
    events.queue(conn, _changed(request))

    await log.ainfo("borrow.declined")

    return request


async def cancel(
    request_id: UUID,
    user_id: str,
    conn: AsyncSession,
    log: FilteringBoundLogger,
) -> BorrowRequest:
    """
    Withdraw a pending request. Borrower only.
    """
    log = log.bind(request_id=request_id, user_id=user_id)

    request = await read_by_id(request_id=request_id, conn=conn, log=log)

    await _require_borrower(request, user_id, "cancel", log)
    _require_pending(request, "cancel")

    await _transition(request, BorrowStatus.CANCELLED, conn=conn, log=log)

    request = await read_by_id(
        request_id=request_id, conn=conn, log=log, refresh=True
    )
    events.queue(conn, _changed(request))

    await log.ainfo("borrow.cancelled")

    return request


async def update_request(
    request_id: UUID,
    user_id: str,
    start_date: date | None,
    end_date: date | None,
    message: str | None,
    conn: AsyncSession,
    log: FilteringBoundLogger,
) -> BorrowRequest:
    """
    Edit a pending request's dates or message. Borrower only. Fields left as
    `None` are unchanged; the resulting window is validated as on creation.
    """
    log = log.bind(request_id=request_id, user_id=user_id)

    request = await read_by_id(request_id=request_id, conn=conn, log=log)

    await _require_borrower(request, user_id, "edit", log)
    _require_pending(request, "edit")

    new_start = start_date or request.start_date
    new_end = end_date or request.end_date

    # A message-only edit leaves the window alone, even if it has since started.
    if start_date is not None or end_date is not None:
        validate_dates(new_start, new_end)

        await _check_conflicts(
            resource_id=request.resource_id,
            borrower_id=request.borrower_id,
            start_date=new_start,
            end_date=new_end,
            conn=conn,
            log=log,
            exclude_request_id=request.request_id,
        )

    new_message = request.message

    if message is not None:
        new_message = message.strip() or None

    # Still a conditional update: editing must not resurrect a request that was
    # accepted or cancelled in the meantime.
    result = await conn.execute(
        update(BorrowRequest)
        .where(BorrowRequest.request_id == request.request_id)
        .where(BorrowRequest.status == BorrowStatus.PENDING)
        .values(
            start_date=new_start,
            end_date=new_end,
            message=new_message,
            updated_at=datetime.now(timezone.utc),
        )
        .execution_options(synchronize_session=False)
    )

    if result.rowcount != 1:
        raise InvalidTransition("This request is no longer pending")

    request = await read_by_id(
        request_id=request_id, conn=conn, log=log, refresh=True
    )
    events.queue(conn, _changed(request))

    await log.ainfo("borrow.updated", start_date=new_start, end_date=new_end)

    return request


async def delete_request(
    request_id: UUID,
    user_id: str,
    conn: AsyncSession,
    log: FilteringBoundLogger,
) -> None:
    """
    Remove a finished request (rejected or cancelled) from either party's
    history.
    """
    log = log.bind(request_id=request_id, user_id=user_id)

    request = await read_for_party(
        request_id=request_id, user_id=user_id, conn=conn, log=log
    )

    if request.status not in DELETABLE_STATUSES:
        await log.ainfo("borrow.delete.wrong_state", status=request.status)
        raise InvalidTransition(
            f"Only rejected or cancelled requests can be deleted, this one is "
            f"{request.status.value.lower()}"
        )

    event = events.BorrowRequestChanged(
        request_id=request.request_id,
        resource_id=request.resource_id,
        status=request.status,
        audience={request.borrower_id, request.owner_id},
    )

    await conn.delete(request)
    await conn.flush()

    events.queue(conn, event)

    await log.ainfo("borrow.deleted")


async def mark_returned(
    request_id: UUID,
    user_id: str,
    conn: AsyncSession,
    log: FilteringBoundLogger,
) -> BorrowRequest:
    """
    Close an active loan. The resource becomes available again once no other
    loan on it is active. Owner only.

    Raises
    ------
    NotRequestParty
        If `user_id` is not the resource owner.
    InvalidTransition
        If there is no active loan, or the loan has not started yet.
    """
    log = log.bind(request_id=request_id, user_id=user_id)

    request = await read_by_id(request_id=request_id, conn=conn, log=log)

    await _require_owner(request, user_id, "mark as returned", log)

    loan = request.loan

    if request.status != BorrowStatus.APPROVED or loan is None:
        raise InvalidTransition("This request has no loan to return")

    if loan.status != LoanStatus.ACTIVE:
        raise InvalidTransition("This loan has already been returned")

    returned_on = today()

    if returned_on < loan.start_date:
        await log.ainfo("borrow.return.not_started", start_date=loan.start_date)
        raise InvalidTransition(
            f"This loan only starts on {loan.start_date} and cannot be returned yet"
        )

    result = await conn.execute(
        update(Loan)
        .where(Loan.loan_id == loan.loan_id)
        .where(Loan.status == LoanStatus.ACTIVE)
        .values(status=LoanStatus.RETURNED, returned_date=returned_on)
        .execution_options(synchronize_session=False)
    )

    if result.rowcount != 1:
        await log.ainfo("borrow.return.lost_race")
        raise InvalidTransition("This loan has already been returned")

    await conn.execute(
        update(Resource)
        .where(Resource.resource_id == request.resource_id)
        .where(
            ~exists().where(
                Loan.request_id == BorrowRequest.request_id,
                BorrowRequest.resource_id == request.resource_id,
                Loan.status == LoanStatus.ACTIVE,
            )
        )
        .values(status=ResourceStatus.AVAILABLE, updated_at=datetime.now(timezone.utc))
        .execution_options(synchronize_session=False)
    )

    request = await read_by_id(
        request_id=request_id, conn=conn, log=log, refresh=True
    )

    events.queue(conn, _changed(request, request.loan))
    events.queue(
        conn,
        events.ResourceChanged(
            resource_id=request.resource_id,
            audience=await resource_service.audience(request.resource, conn),
        ),
    )

    await log.ainfo("borrow.returned", loan_id=loan.loan_id, returned_date=returned_on)

    return request
