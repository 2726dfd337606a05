"""
Resource (gear) ORM.
"""

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import Column, DateTime, Text
from sqlmodel import Field, Relationship, SQLModel

from gearshare.core.resource import ResourceData, ResourceStatus
from gearshare.core.uuid import UUID, uuid7

if TYPE_CHECKING:
    from .user import User


class ResourceGroupShare(SQLModel, table=True):
    """
    A record of a resource being visible to (and borrowable by) a group.
    """

    __tablename__ = "resource_group_share"

    resource_id: UUID = Field(
        primary_key=True, foreign_key="resource.resource_id", ondelete="CASCADE"
    )
    group_id: UUID = Field(
        primary_key=True, foreign_key="group.group_id", ondelete="CASCADE"
    )
    shared_at: datetime = Field(sa_column=Column(DateTime(timezone=True)))


class Resource(SQLModel, table=True):
    resource_id: UUID = Field(primary_key=True, default_factory=uuid7)

    title: str
    description: str = Field(sa_column=Column(Text, nullable=False))
    # Images arrive pre-resized from the client as data URLs.
    image: str | None = Field(sa_column=Column(Text), default=None)

    owner_id: str = Field(foreign_key="user.user_id", index=True)
    owner: "User" = Relationship(sa_relationship_kwargs=dict(lazy="joined"))

    status: ResourceStatus = Field(default=ResourceStatus.AVAILABLE)

    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True)))
    updated_at: datetime | None = Field(
        sa_column=Column(DateTime(timezone=True)), default=None
    )

    def to_core(self, include_owner: bool = True) -> ResourceData:
        return ResourceData(
            resource_id=self.resource_id,
            title=self.title,
            description=self.description,
            image=self.image,
            owner_id=self.owner_id,
            owner=self.owner.to_core() if include_owner and self.owner else None,
            status=self.status,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )
