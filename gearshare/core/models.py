"""
Pydantic models for request/responses to APIs.

The acting user is identified by a plain `user_id` field, as supplied by the
client after signing in with the identity provider.
"""

from datetime import date

from pydantic import BaseModel, Field

from gearshare.core.group import GroupRole
from gearshare.core.uuid import UUID


class RegisterUserRequest(BaseModel):
    uid: str
    email: str
    name: str | None = None
    photo_url: str | None = None


class CreateResourceRequest(BaseModel):
    user_id: str
    title: str
    description: str
    image: str | None = None


class UpdateResourceRequest(BaseModel):
    user_id: str
    title: str | None = None
    description: str | None = None
    image: str | None = None


class ActingUserRequest(BaseModel):
    user_id: str


class ShareStatusResponse(BaseModel):
    resource_id: UUID
    group_id: UUID
    shared: bool
    # False when the call was a no-op (already shared / not shared).
    changed: bool = False


class CreateGroupRequest(BaseModel):
    user_id: str
    name: str
    description: str | None = None
    avatar: str | None = None


class UpdateGroupRequest(BaseModel):
    user_id: str
    name: str | None = None
    description: str | None = None
    avatar: str | None = None


class InviteRequest(BaseModel):
    user_id: str = Field(description="The member sending the invitation.")
    email: str


class UpdateRoleRequest(BaseModel):
    user_id: str
    role: GroupRole


class CreateBorrowRequest(BaseModel):
    resource_id: UUID
    borrower_id: str
    start_date: date
    end_date: date
    message: str | None = None
    group_id: UUID | None = None


class UpdateBorrowRequest(BaseModel):
    user_id: str
    start_date: date | None = None
    end_date: date | None = None
    message: str | None = None


class ErrorResponse(BaseModel):
    error: str
    message: str
