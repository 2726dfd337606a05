"""
Core group data models, roles and the permissions derived from them.
"""

import enum
from datetime import datetime

from pydantic import BaseModel

from gearshare.core.uuid import UUID

from .resource import ResourceData
from .user import UserData


class GroupRole(str, enum.Enum):
    """
    A member's role within a single group. Roles are ordered
    `member < admin < owner`.
    """

    OWNER = "owner"
    ADMIN = "admin"
    MEMBER = "member"

    @property
    def rank(self) -> int:
        match self:
            case GroupRole.OWNER:
                return 2
            case GroupRole.ADMIN:
                return 1
            case GroupRole.MEMBER:
                return 0

    def outranks(self, other: "GroupRole") -> bool:
        return self.rank > other.rank


class GroupPermissions(BaseModel):
    can_edit: bool = False
    can_delete: bool = False
    can_invite: bool = False
    can_remove_members: bool = False
    can_transfer_ownership: bool = False


def permissions_for(role: GroupRole | None) -> GroupPermissions:
    """
    Compute the permission set for a role. Non-members (`role=None`) get
    nothing.
    """
    match role:
        case GroupRole.OWNER:
            return GroupPermissions(
                can_edit=True,
                can_delete=True,
                can_invite=True,
                can_remove_members=True,
                can_transfer_ownership=True,
            )
        case GroupRole.ADMIN:
            return GroupPermissions(
                can_edit=True,
                can_invite=True,
                can_remove_members=True,
            )
        case GroupRole.MEMBER | None:
            return GroupPermissions()


class GroupMemberData(BaseModel):
    user_id: str
    role: GroupRole
    joined_at: datetime | None = None
    user: UserData


class GroupSummaryData(BaseModel):
    group_id: UUID
    name: str


class GroupData(BaseModel):
    group_id: UUID
    name: str
    description: str | None = None
    avatar: str | None = None
    created_by_id: str
    created_at: datetime | None = None
    member_count: int = 0
    shared_resources_count: int = 0
    # The role of the user the data was fetched for, if any.
    role: GroupRole | None = None


class GroupDetailData(GroupData):
    members: list[GroupMemberData]
    resources: list[ResourceData]
    user_permissions: GroupPermissions
