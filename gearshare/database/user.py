"""
ORM for user information.
"""

from datetime import datetime

from sqlalchemy import Column, DateTime
from sqlmodel import Field, SQLModel

from gearshare.core.user import UserData


class User(SQLModel, table=True):
    # Users are created upstream by the identity provider; we key on its uid.
    user_id: str = Field(primary_key=True)

    email: str = Field(unique=True, index=True)
    name: str | None = None
    photo_url: str | None = None

    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True)))
    last_seen_at: datetime | None = Field(
        sa_column=Column(DateTime(timezone=True)), default=None
    )

    def to_core(self) -> UserData:
        return UserData(
            user_id=self.user_id,
            email=self.email,
            name=self.name,
            photo_url=self.photo_url,
            created_at=self.created_at,
            last_seen_at=self.last_seen_at,
        )
