"""
Group management.
"""

from fastapi import APIRouter, status

from gearshare.core.group import GroupData, GroupDetailData, GroupMemberData, GroupRole
from gearshare.core.models import (
    CreateGroupRequest,
    InviteRequest,
    UpdateGroupRequest,
    UpdateRoleRequest,
)
from gearshare.core.uuid import UUID
from gearshare.service import groups as groups_service

from .dependencies import DatabaseDependency, LoggerDependency

group_app = APIRouter(tags=["Group Management"])


def _without_details(details: GroupDetailData) -> GroupData:
    return GroupData.model_validate(
        details.model_dump(include=set(GroupData.model_fields))
    )


@group_app.get(
    "",
    summary="List groups",
    description="The groups `user_id` is a member of, newest first.",
    responses={
        200: {"description": "List of groups."},
    },
)
async def list_groups(
    user_id: str,
    conn: DatabaseDependency,
    log: LoggerDependency,
) -> list[GroupData]:
    log = log.bind(user_id=user_id)
    groups = await groups_service.get_group_list(for_user=user_id, conn=conn, log=log)
    await log.adebug("group.list_all")

    return groups


@group_app.post(
    "",
    status_code=status.HTTP_201_CREATED,
    summary="Create a group",
    description="Create a new group; the creator becomes its owner.",
    responses={
        201: {"description": "The new group."},
        400: {"description": "Group name is required."},
        404: {"description": "User not found."},
    },
)
async def create_group(
    content: CreateGroupRequest,
    conn: DatabaseDependency,
    log: LoggerDependency,
) -> GroupData:
    group = await groups_service.create(
        name=content.name,
        created_by_id=content.user_id,
        description=content.description,
        avatar=content.avatar,
        conn=conn,
        log=log,
    )

    return group.to_core(member_count=1, role=GroupRole.OWNER)


@group_app.get(
    "/{group_id}",
    summary="Get group by ID",
    description="Retrieve a group by its ID. Only available to members.",
    responses={
        200: {"description": "The group."},
        403: {"description": "Not a member of the group."},
        404: {"description": "Group not found."},
    },
)
async def get_group_by_id(
    group_id: UUID,
    user_id: str,
    conn: DatabaseDependency,
    log: LoggerDependency,
) -> GroupData:
    details = await groups_service.read_details(
        group_id=group_id, user_id=user_id, conn=conn, log=log
    )

    return _without_details(details)


@group_app.get(
    "/{group_id}/details",
    summary="Get the full group page",
    description=(
        "The group with its members, shared resources and the caller's "
        "permissions. Only available to members."
    ),
    responses={
        200: {"description": "Group details."},
        403: {"description": "Not a member of the group."},
        404: {"description": "Group not found."},
    },
)
async def get_group_details(
    group_id: UUID,
    user_id: str,
    conn: DatabaseDependency,
    log: LoggerDependency,
) -> GroupDetailData:
    return await groups_service.read_details(
        group_id=group_id, user_id=user_id, conn=conn, log=log
    )


@group_app.get(
    "/{group_id}/members",
    summary="List group members",
    description="Owner first, then admins, then members. Only available to members.",
    responses={
        403: {"description": "Not a member of the group."},
        404: {"description": "Group not found."},
    },
)
async def get_group_members(
    group_id: UUID,
    user_id: str,
    conn: DatabaseDependency,
    log: LoggerDependency,
) -> list[GroupMemberData]:
    await groups_service.require_member(
        group_id=group_id, user_id=user_id, conn=conn, log=log
    )
    members = await groups_service.get_members(group_id=group_id, conn=conn, log=log)

    return [m.to_core() for m in members]


@group_app.put(
    "/{group_id}",
    summary="Update a group",
    description="Update the group's name, description or avatar. Owner and admins.",
    responses={
        200: {"description": "The updated group."},
        403: {"description": "Insufficient role."},
        404: {"description": "Group not found."},
    },
)
async def update_group(
    group_id: UUID,
    content: UpdateGroupRequest,
    conn: DatabaseDependency,
    log: LoggerDependency,
) -> GroupData:
    await groups_service.update_group(
        group_id=group_id,
        user_id=content.user_id,
        name=content.name,
        description=content.description,
        avatar=content.avatar,
        conn=conn,
        log=log,
    )
    details = await groups_service.read_details(
        group_id=group_id, user_id=content.user_id, conn=conn, log=log
    )

    return _without_details(details)


@group_app.delete(
    "/{group_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a group",
    description=(
        "Delete the group, its memberships and its shares. Pending borrow requests "
        "made through the group are cancelled. Owner only."
    ),
    responses={
        204: {"description": "Group deleted."},
        403: {"description": "Only the owner can delete a group."},
        404: {"description": "Group not found."},
    },
)
async def delete_group(
    group_id: UUID,
    user_id: str,
    conn: DatabaseDependency,
    log: LoggerDependency,
) -> None:
    await groups_service.delete_group(
        group_id=group_id, user_id=user_id, conn=conn, log=log
    )


@group_app.post(
    "/{group_id}/invite",
    status_code=status.HTTP_201_CREATED,
    summary="Invite a user by email",
    description="Add a registered user to the group as a member. Owner and admins.",
    responses={
        201: {"description": "The new membership."},
        403: {"description": "Insufficient role."},
        404: {"description": "No user registered with that email (`user_not_found`)."},
        409: {"description": "The user is already a member (`already_member`)."},
    },
)
async def invite_member(
    group_id: UUID,
    content: InviteRequest,
    conn: DatabaseDependency,
    log: LoggerDependency,
) -> GroupMemberData:
    membership = await groups_service.invite(
        group_id=group_id,
        invited_by_id=content.user_id,
        email=content.email,
        conn=conn,
        log=log,
    )

    return membership.to_core()


@group_app.delete(
    "/{group_id}/remove-member",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Remove a member",
    description=(
        "Remove `target_user_id` from the group. The owner can remove anyone but "
        "themselves; admins can only remove plain members."
    ),
    responses={
        204: {"description": "Member removed."},
        403: {"description": "Insufficient role."},
        404: {"description": "Group or member not found."},
    },
)
async def remove_member(
    group_id: UUID,
    user_id: str,
    target_user_id: str,
    conn: DatabaseDependency,
    log: LoggerDependency,
) -> None:
    await groups_service.remove_member(
        group_id=group_id,
        acting_user_id=user_id,
        target_user_id=target_user_id,
        conn=conn,
        log=log,
    )


@group_app.delete(
    "/{group_id}/members/{user_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Leave a group",
    description="The owner cannot leave their own group.",
    responses={
        204: {"description": "Left the group."},
        403: {"description": "Not a member of the group."},
        409: {"description": "The owner cannot leave."},
    },
)
async def leave_group(
    group_id: UUID,
    user_id: str,
    conn: DatabaseDependency,
    log: LoggerDependency,
) -> None:
    await groups_service.leave(group_id=group_id, user_id=user_id, conn=conn, log=log)


@group_app.put(
    "/{group_id}/members/{member_id}/role",
    summary="Change a member's role",
    description="Switch a member between `admin` and `member`. Owner only.",
    responses={
        200: {"description": "The updated membership."},
        400: {"description": "Role must be `admin` or `member`."},
        403: {"description": "Only the owner can change roles."},
        404: {"description": "Group or member not found."},
    },
)
async def update_member_role(
    group_id: UUID,
    member_id: str,
    content: UpdateRoleRequest,
    conn: DatabaseDependency,
    log: LoggerDependency,
) -> GroupMemberData:
    membership = await groups_service.update_role(
        group_id=group_id,
        acting_user_id=content.user_id,
        target_user_id=member_id,
        role=content.role,
        conn=conn,
        log=log,
    )

    return membership.to_core()
