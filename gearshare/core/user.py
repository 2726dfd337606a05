"""
A shared user object that is serialized.
"""

from datetime import datetime

from pydantic import BaseModel


class UserData(BaseModel):
    # The identity provider's uid; we never mint our own user ids.
    user_id: str
    email: str
    name: str | None = None
    photo_url: str | None = None
    created_at: datetime | None = None
    last_seen_at: datetime | None = None
