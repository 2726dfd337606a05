"""
Core borrow request and loan models, along with the pure rules of the
request lifecycle (date validation, overlap detection).
"""

import enum
from datetime import date, datetime

from pydantic import BaseModel

from gearshare.core import errors
from gearshare.core.uuid import UUID

from .group import GroupSummaryData
from .resource import ResourceData
from .user import UserData


class BorrowStatus(str, enum.Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"


class LoanStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    RETURNED = "RETURNED"


class RequestRole(str, enum.Enum):
    """
    Which side of a request a listing is for: `owner` lists incoming requests,
    `borrower` lists outgoing ones.
    """

    OWNER = "owner"
    BORROWER = "borrower"


# Requests in these states may be removed from the record entirely.
DELETABLE_STATUSES = frozenset({BorrowStatus.REJECTED, BorrowStatus.CANCELLED})


class LoanData(BaseModel):
    loan_id: UUID
    request_id: UUID
    status: LoanStatus
    start_date: date
    end_date: date
    returned_date: date | None = None


class BorrowRequestData(BaseModel):
    request_id: UUID
    resource_id: UUID
    borrower_id: str
    owner_id: str
    group_id: UUID | None = None
    status: BorrowStatus
    start_date: date
    end_date: date
    message: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    resource: ResourceData | None = None
    borrower: UserData | None = None
    owner: UserData | None = None
    group: GroupSummaryData | None = None
    loan: LoanData | None = None


def today() -> date:
    return date.today()


def validate_dates(start_date: date, end_date: date, current: date | None = None):
    """
    Check a requested borrowing window.

    Raises
    ------
    errors.ValidationError
        If the window starts in the past or does not end after it starts.
    """
    current = current or today()

    if start_date < current:
        raise errors.ValidationError("Start date cannot be in the past")

    if end_date <= start_date:
        raise errors.ValidationError("End date must be after start date")


def ranges_overlap(
    start_1: date, end_1: date, start_2: date, end_2: date
) -> bool:
    """
    Half-open interval overlap: a request ending on the day another starts
    does not conflict with it.
    """
    return start_1 < end_2 and start_2 < end_1
