"""
Resource (gear) endpoints, including sharing resources with groups.
"""

from fastapi import APIRouter, status

from gearshare.core.group import GroupData
from gearshare.core.models import (
    ActingUserRequest,
    CreateResourceRequest,
    ShareStatusResponse,
    UpdateResourceRequest,
)
from gearshare.core.resource import ResourceData
from gearshare.core.uuid import UUID
from gearshare.service import groups as groups_service
from gearshare.service import resources as resource_service
from gearshare.service import sharing as sharing_service

from .dependencies import DatabaseDependency, LoggerDependency

resource_app = APIRouter(tags=["Resources"])


@resource_app.get(
    "",
    summary="List resources",
    description=(
        "Resources visible to `user_id`: their own, plus those shared with any "
        "group they belong to. Optionally filtered by `owner_id`."
    ),
)
async def list_resources(
    user_id: str,
    conn: DatabaseDependency,
    log: LoggerDependency,
    owner_id: str | None = None,
) -> list[ResourceData]:
    resources = await resource_service.get_resource_list(
        user_id=user_id, owner_id=owner_id, conn=conn, log=log
    )
    return [r.to_core() for r in resources]


@resource_app.post(
    "",
    status_code=status.HTTP_201_CREATED,
    summary="Post a resource",
    responses={
        201: {"description": "Resource created."},
        400: {"description": "Title and description are required."},
        404: {"description": "User not found."},
    },
)
async def create_resource(
    content: CreateResourceRequest,
    conn: DatabaseDependency,
    log: LoggerDependency,
) -> ResourceData:
    resource = await resource_service.create(
        owner_id=content.user_id,
        title=content.title,
        description=content.description,
        image=content.image,
        conn=conn,
        log=log,
    )
    return resource.to_core()


@resource_app.get(
    "/{resource_id}",
    summary="Get a resource",
    responses={
        403: {"description": "The resource is not visible to this user."},
        404: {"description": "Resource not found."},
    },
)
async def read_resource(
    resource_id: UUID,
    user_id: str,
    conn: DatabaseDependency,
    log: LoggerDependency,
) -> ResourceData:
    resource = await resource_service.read_visible(
        resource_id=resource_id, user_id=user_id, conn=conn, log=log
    )
    return resource.to_core()


@resource_app.put(
    "/{resource_id}",
    summary="Edit a resource",
    responses={
        403: {"description": "Only the owner can edit a resource."},
        404: {"description": "Resource not found."},
    },
)
async def update_resource(
    resource_id: UUID,
    content: UpdateResourceRequest,
    conn: DatabaseDependency,
    log: LoggerDependency,
) -> ResourceData:
    resource = await resource_service.update(
        resource_id=resource_id,
        user_id=content.user_id,
        title=content.title,
        description=content.description,
        image=content.image,
        conn=conn,
        log=log,
    )
    return resource.to_core()


@resource_app.delete(
    "/{resource_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a resource",
    description=(
        "Deletes the resource, detaching it from all groups and cancelling pending "
        "borrow requests for it. Refused while the resource is lent out."
    ),
    responses={
        403: {"description": "Only the owner can delete a resource."},
        404: {"description": "Resource not found."},
        409: {"description": "The resource is currently lent out."},
    },
)
async def delete_resource(
    resource_id: UUID,
    user_id: str,
    conn: DatabaseDependency,
    log: LoggerDependency,
) -> None:
    await resource_service.delete_resource(
        resource_id=resource_id, user_id=user_id, conn=conn, log=log
    )


@resource_app.get(
    "/{resource_id}/groups",
    summary="List the groups a resource is shared with",
)
async def resource_groups(
    resource_id: UUID,
    user_id: str,
    conn: DatabaseDependency,
    log: LoggerDependency,
) -> list[GroupData]:
    groups = await sharing_service.groups_for_resource(
        resource_id=resource_id, user_id=user_id, conn=conn, log=log
    )
    member_counts, share_counts = await groups_service.group_counts(
        [g.group_id for g in groups], conn
    )
    return [
        g.to_core(
            member_count=member_counts.get(g.group_id, 0),
            shared_resources_count=share_counts.get(g.group_id, 0),
        )
        for g in groups
    ]


@resource_app.get(
    "/{resource_id}/groups/{group_id}",
    summary="Check whether a resource is shared with a group",
)
async def share_status(
    resource_id: UUID,
    group_id: UUID,
    user_id: str,
    conn: DatabaseDependency,
    log: LoggerDependency,
) -> ShareStatusResponse:
    await resource_service.read_visible(
        resource_id=resource_id, user_id=user_id, conn=conn, log=log
    )
    shared = await sharing_service.is_shared(
        resource_id=resource_id, group_id=group_id, conn=conn
    )
    return ShareStatusResponse(resource_id=resource_id, group_id=group_id, shared=shared)


@resource_app.post(
    "/{resource_id}/groups/{group_id}",
    summary="Share a resource with a group",
    description="Idempotent: sharing an already shared resource changes nothing.",
    responses={
        403: {"description": "Not the owner, or not a member of the group."},
        404: {"description": "Resource or group not found."},
    },
)
async def share_resource(
    resource_id: UUID,
    group_id: UUID,
    content: ActingUserRequest,
    conn: DatabaseDependency,
    log: LoggerDependency,
) -> ShareStatusResponse:
    changed = await sharing_service.share(
        resource_id=resource_id,
        group_id=group_id,
        user_id=content.user_id,
        conn=conn,
        log=log,
    )
    return ShareStatusResponse(
        resource_id=resource_id, group_id=group_id, shared=True, changed=changed
    )


@resource_app.delete(
    "/{resource_id}/groups/{group_id}",
    summary="Stop sharing a resource with a group",
    description="Idempotent: unsharing a resource that is not shared changes nothing.",
    responses={
        403: {"description": "Only the owner can unshare a resource."},
        404: {"description": "Resource not found."},
    },
)
async def unshare_resource(
    resource_id: UUID,
    group_id: UUID,
    user_id: str,
    conn: DatabaseDependency,
    log: LoggerDependency,
) -> ShareStatusResponse:
    changed = await sharing_service.unshare(
        resource_id=resource_id,
        group_id=group_id,
        user_id=user_id,
        conn=conn,
        log=log,
    )
    return ShareStatusResponse(
        resource_id=resource_id, group_id=group_id, shared=False, changed=changed
    )
