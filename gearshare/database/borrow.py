"""
Borrow requests and the loans they turn into.
"""

from datetime import date, datetime
from typing import TYPE_CHECKING, Optional

from sqlalchemy import Column, DateTime
from sqlmodel import Field, Relationship, SQLModel

from gearshare.core.borrow import BorrowRequestData, BorrowStatus, LoanData, LoanStatus
from gearshare.core.uuid import UUID, uuid7

if TYPE_CHECKING:
    from .group import Group
    from .resource import Resource
    from .user import User


class Loan(SQLModel, table=True):
    loan_id: UUID = Field(primary_key=True, default_factory=uuid7)

    # One loan per approved request.
    request_id: UUID = Field(
        foreign_key="borrow_request.request_id", unique=True, ondelete="CASCADE"
    )

    status: LoanStatus = Field(default=LoanStatus.ACTIVE)
    start_date: date
    end_date: date
    returned_date: date | None = None

    def to_core(self) -> LoanData:
        return LoanData(
            loan_id=self.loan_id,
            request_id=self.request_id,
            status=self.status,
            start_date=self.start_date,
            end_date=self.end_date,
            returned_date=self.returned_date,
        )


class BorrowRequest(SQLModel, table=True):
    __tablename__ = "borrow_request"

    request_id: UUID = Field(primary_key=True, default_factory=uuid7)

    resource_id: UUID = Field(foreign_key="resource.resource_id", index=True)
    resource: "Resource" = Relationship(sa_relationship_kwargs=dict(lazy="joined"))

    borrower_id: str = Field(foreign_key="user.user_id", index=True)
    borrower: "User" = Relationship(
        sa_relationship_kwargs=dict(
            lazy="joined", foreign_keys="[BorrowRequest.borrower_id]"
        )
    )

    # Copied from the resource when the request is made.
    owner_id: str = Field(foreign_key="user.user_id", index=True)
    owner: "User" = Relationship(
        sa_relationship_kwargs=dict(
            lazy="joined", foreign_keys="[BorrowRequest.owner_id]"
        )
    )

    group_id: UUID | None = Field(
        foreign_key="group.group_id", default=None, ondelete="SET NULL"
    )
    group: Optional["Group"] = Relationship(sa_relationship_kwargs=dict(lazy="joined"))

    status: BorrowStatus = Field(default=BorrowStatus.PENDING)
    start_date: date
    end_date: date
    message: str | None = None

    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True)))
    updated_at: datetime | None = Field(
        sa_column=Column(DateTime(timezone=True)), default=None
    )

    loan: Optional["Loan"] = Relationship(
        sa_relationship_kwargs=dict(lazy="joined", uselist=False)
    )

    def to_core(self) -> BorrowRequestData:
        return BorrowRequestData(
            request_id=self.request_id,
            resource_id=self.resource_id,
            borrower_id=self.borrower_id,
            owner_id=self.owner_id,
            group_id=self.group_id,
            status=self.status,
            start_date=self.start_date,
            end_date=self.end_date,
            message=self.message,
            created_at=self.created_at,
            updated_at=self.updated_at,
            resource=self.resource.to_core(include_owner=False)
            if self.resource
            else None,
            borrower=self.borrower.to_core() if self.borrower else None,
            owner=self.owner.to_core() if self.owner else None,
            group=self.group.to_summary() if self.group else None,
            loan=self.loan.to_core() if self.loan else None,
        )
