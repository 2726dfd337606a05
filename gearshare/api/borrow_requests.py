"""
Borrow requests and the loans they turn into.
"""

from fastapi import APIRouter, status

from gearshare.core.borrow import BorrowRequestData, BorrowStatus, RequestRole
from gearshare.core.models import (
    ActingUserRequest,
    CreateBorrowRequest,
    UpdateBorrowRequest,
)
from gearshare.core.uuid import UUID
from gearshare.service import borrow as borrow_service

from .dependencies import DatabaseDependency, LoggerDependency

borrow_app = APIRouter(tags=["Borrow Requests"])


@borrow_app.get(
    "",
    summary="List borrow requests",
    description=(
        "Incoming requests for resources `user_id` owns (`role=owner`), or "
        "outgoing requests they made (`role=borrower`), optionally filtered by "
        "status. Newest first."
    ),
)
async def list_requests(
    user_id: str,
    role: RequestRole,
    conn: DatabaseDependency,
    log: LoggerDependency,
    status: BorrowStatus | None = None,
) -> list[BorrowRequestData]:
    requests = await borrow_service.get_request_list(
        user_id=user_id, role=role, status=status, conn=conn, log=log
    )
    return [r.to_core() for r in requests]


@borrow_app.post(
    "",
    status_code=status.HTTP_201_CREATED,
    summary="Request to borrow a resource",
    responses={
        201: {"description": "The new, pending, request."},
        400: {"description": "Invalid dates, or borrowing your own resource."},
        403: {"description": "The resource is not visible to the borrower."},
        404: {"description": "Resource or borrower not found."},
        409: {"description": "Overlaps an existing request or loan."},
    },
)
async def create_request(
    content: CreateBorrowRequest,
    conn: DatabaseDependency,
    log: LoggerDependency,
) -> BorrowRequestData:
    request = await borrow_service.create(
        resource_id=content.resource_id,
        borrower_id=content.borrower_id,
        start_date=content.start_date,
        end_date=content.end_date,
        message=content.message,
        group_id=content.group_id,
        conn=conn,
        log=log,
    )
    return request.to_core()


@borrow_app.get(
    "/{request_id}",
    summary="Get a borrow request",
    description="Only the borrower and the owner can see a request.",
    responses={
        403: {"description": "Not a party to this request."},
        404: {"description": "Request not found."},
    },
)
async def read_request(
    request_id: UUID,
    user_id: str,
    conn: DatabaseDependency,
    log: LoggerDependency,
) -> BorrowRequestData:
    request = await borrow_service.read_for_party(
        request_id=request_id, user_id=user_id, conn=conn, log=log
    )
    return request.to_core()


@borrow_app.put(
    "/{request_id}",
    summary="Edit a pending request",
    description="The borrower can change the dates or message while it is pending.",
    responses={
        400: {"description": "Invalid dates."},
        403: {"description": "Only the borrower can edit a request."},
        409: {"description": "The request is no longer pending, or overlaps."},
    },
)
async def update_request(
    request_id: UUID,
    content: UpdateBorrowRequest,
    conn: DatabaseDependency,
    log: LoggerDependency,
) -> BorrowRequestData:
    request = await borrow_service.update_request(
        request_id=request_id,
        user_id=content.user_id,
        start_date=content.start_date,
        end_date=content.end_date,
        message=content.message,
        conn=conn,
        log=log,
    )
    return request.to_core()


@borrow_app.delete(
    "/{request_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a finished request",
    description="Either party can delete a rejected or cancelled request.",
    responses={
        403: {"description": "Not a party to this request."},
        409: {"description": "Only rejected or cancelled requests can be deleted."},
    },
)
async def delete_request(
    request_id: UUID,
    user_id: str,
    conn: DatabaseDependency,
    log: LoggerDependency,
) -> None:
    await borrow_service.delete_request(
        request_id=request_id, user_id=user_id, conn=conn, log=log
    )


@borrow_app.post(
    "/{request_id}/accept",
    summary="Accept a request",
    description="Owner only. Approves the request and starts the loan.",
    responses={
        403: {"description": "Only the owner can accept."},
        409: {"description": "The request is no longer pending, or the dates clash."},
    },
)
async def accept_request(
    request_id: UUID,
    content: ActingUserRequest,
    conn: DatabaseDependency,
    log: LoggerDependency,
) -> BorrowRequestData:
    request = await borrow_service.accept(
        request_id=request_id, user_id=content.user_id, conn=conn, log=log
    )
    return request.to_core()


@borrow_app.post(
    "/{request_id}/decline",
    summary="Decline a request",
    responses={
        403: {"description": "Only the owner can decline."},
        409: {"description": "The request is no longer pending."},
    },
)
async def decline_request(
    request_id: UUID,
    content: ActingUserRequest,
    conn: DatabaseDependency,
    log: LoggerDependency,
) -> BorrowRequestData:
    request = await borrow_service.decline(
        request_id=request_id, user_id=content.user_id, conn=conn, log=log
    )
    return request.to_core()


@borrow_app.post(
    "/{request_id}/cancel",
    summary="Cancel a request",
    responses={
        403: {"description": "Only the borrower can cancel."},
        409: {"description": "The request is no longer pending."},
    },
)
async def cancel_request(
    request_id: UUID,
    content: ActingUserRequest,
    conn: DatabaseDependency,
    log: LoggerDependency,
) -> BorrowRequestData:
    request = await borrow_service.cancel(
        request_id=request_id, user_id=content.user_id, conn=conn, log=log
    )
    return request.to_core()


@borrow_app.post(
    "/{request_id}/mark-returned",
    summary="Mark the loan as returned",
    description="Owner only. Ends the active loan and frees up the resource.",
    responses={
        403: {"description": "Only the owner can mark a loan returned."},
        409: {"description": "There is no active loan, or it has not started yet."},
    },
)
async def mark_returned(
    request_id: UUID,
    content: ActingUserRequest,
    conn: DatabaseDependency,
    log: LoggerDependency,
) -> BorrowRequestData:
    request = await borrow_service.mark_returned(
        request_id=request_id, user_id=content.user_id, conn=conn, log=log
    )
    return request.to_core()
