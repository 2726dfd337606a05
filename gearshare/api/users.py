"""
User registration and lookup.
"""

from fastapi import APIRouter

from gearshare.core.group import GroupData
from gearshare.core.models import RegisterUserRequest
from gearshare.core.user import UserData
from gearshare.service import groups as groups_service
from gearshare.service import user as user_service

from .dependencies import DatabaseDependency, LoggerDependency

user_app = APIRouter(tags=["Users"])


@user_app.post(
    "/auth/register",
    summary="Register a signed-in user",
    description=(
        "Called by the client after every sign-in with the identity provider. "
        "Creates the user on first sign-in, and refreshes their profile after that."
    ),
    responses={
        200: {"description": "The registered user."},
        400: {"description": "Missing uid or email."},
        409: {"description": "Email already registered to another account."},
    },
)
async def register(
    content: RegisterUserRequest,
    conn: DatabaseDependency,
    log: LoggerDependency,
) -> UserData:
    user = await user_service.register(
        user_id=content.uid,
        email=content.email,
        name=content.name,
        photo_url=content.photo_url,
        conn=conn,
        log=log,
    )

    return user.to_core()


@user_app.get(
    "/users/{user_id}",
    summary="Get a user",
    responses={404: {"description": "User not found."}},
)
async def read_user(user_id: str, conn: DatabaseDependency) -> UserData:
    user = await user_service.read_by_id(user_id=user_id, conn=conn)
    return user.to_core()


@user_app.get(
    "/users/{user_id}/groups",
    summary="List a user's groups",
    description="The groups the user is a member of, with their role in each.",
)
async def user_groups(
    user_id: str,
    conn: DatabaseDependency,
    log: LoggerDependency,
) -> list[GroupData]:
    await user_service.read_by_id(user_id=user_id, conn=conn)
    return await groups_service.get_group_list(for_user=user_id, conn=conn, log=log)
