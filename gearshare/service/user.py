"""
Service layer for users
"""

from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from structlog.typing import FilteringBoundLogger

from gearshare.core import errors
from gearshare.database.user import User


class UserNotFound(errors.NotFoundError):
    kind = "user_not_found"


class EmailInUse(errors.ConflictError):
    kind = "email_in_use"


def normalize_email(email: str) -> str:
    return email.strip().lower()


async def register(
    user_id: str,
    email: str,
    name: str | None,
    photo_url: str | None,
    conn: AsyncSession,
    log: FilteringBoundLogger,
) -> User:
    """
    Register a user on sign-in. New users are created; for existing users the
    profile fields are refreshed from the identity provider.

    Raises
    ------
    errors.ValidationError
        If the uid or email are blank.
    EmailInUse
        If the email address already belongs to a different uid.
    """
    user_id = user_id.strip()
    email = normalize_email(email)

    if not user_id or not email:
        raise errors.ValidationError("Both uid and email are required")

    log = log.bind(user_id=user_id, email=email)

    current_time = datetime.now(timezone.utc)

    by_email = (
        (await conn.execute(select(User).where(User.email == email)))
        .unique()
        .scalar_one_or_none()
    )

    if by_email is not None and by_email.user_id != user_id:
        await log.ainfo("user.register.email_in_use", other_user_id=by_email.user_id)
        raise EmailInUse(f"Email {email} is already registered to another account")

    user = await conn.get(User, user_id)

    if user is None:
        user = User(
            user_id=user_id,
            email=email,
            name=name,
            photo_url=photo_url,
            created_at=current_time,
            last_seen_at=current_time,
        )
        conn.add(user)
        await conn.flush()
        await log.ainfo("user.created")
        return user

    user.email = email
    user.name = name or user.name
    user.photo_url = photo_url or user.photo_url
    user.last_seen_at = current_time
    await conn.flush()

    await log.ainfo("user.refreshed")

    return user


async def read_by_id(user_id: str, conn: AsyncSession) -> User:
    res = await conn.get(User, user_id)

    if res is None:
        raise UserNotFound(f"User with ID {user_id} not found")

    return res


async def read_by_email(email: str, conn: AsyncSession) -> User:
    email = normalize_email(email)

    query = select(User).where(User.email == email)
    res = (await conn.execute(query)).unique().scalar_one_or_none()

    if res is None:
        raise UserNotFound(f"No registered user with email {email}")

    return res
