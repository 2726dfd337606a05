"""
Group ORM
"""

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import Column, DateTime, Text
from sqlmodel import Field, Relationship, SQLModel

from gearshare.core.group import (
    GroupData,
    GroupMemberData,
    GroupRole,
    GroupSummaryData,
)
from gearshare.core.uuid import UUID, uuid7

if TYPE_CHECKING:
    from .user import User


class GroupMembership(SQLModel, table=True):
    """
    A record of a user's group membership, and their role within the group.
    There is at most one of these per (user, group).
    """

    __tablename__ = "group_membership"

    user_id: str = Field(
        primary_key=True, foreign_key="user.user_id", ondelete="CASCADE"
    )
    group_id: UUID = Field(
        primary_key=True, foreign_key="group.group_id", ondelete="CASCADE"
    )
    role: GroupRole = Field(default=GroupRole.MEMBER)
    joined_at: datetime = Field(sa_column=Column(DateTime(timezone=True)))

    user: "User" = Relationship(sa_relationship_kwargs=dict(lazy="joined"))

    def to_core(self) -> GroupMemberData:
        return GroupMemberData(
            user_id=self.user_id,
            role=self.role,
            joined_at=self.joined_at,
            user=self.user.to_core(),
        )


class Group(SQLModel, table=True):
    group_id: UUID = Field(primary_key=True, default_factory=uuid7)

    name: str
    description: str | None = None
    avatar: str | None = Field(sa_column=Column(Text), default=None)

    created_by_id: str = Field(foreign_key="user.user_id")
    created_by: "User" = Relationship(sa_relationship_kwargs=dict(lazy="joined"))
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True)))

    def to_summary(self) -> GroupSummaryData:
        return GroupSummaryData(group_id=self.group_id, name=self.name)

    def to_core(
        self,
        member_count: int = 0,
        shared_resources_count: int = 0,
        role: GroupRole | None = None,
    ) -> GroupData:
        """
        Convert this Group ORM object to a GroupData core object. Counts are
        computed by the service layer, as the group does not carry its
        memberships.
        """
        return GroupData(
            group_id=self.group_id,
            name=self.name,
            description=self.description,
            avatar=self.avatar,
            created_by_id=self.created_by_id,
            created_at=self.created_at,
            member_count=member_count,
            shared_resources_count=shared_resources_count,
            role=role,
        )
