"""
Core resource (gear) data models.
"""

import enum
from datetime import datetime

from pydantic import BaseModel

from gearshare.core.uuid import UUID

from .user import UserData


class ResourceStatus(str, enum.Enum):
    AVAILABLE = "AVAILABLE"
    ON_LOAN = "ON_LOAN"


class ResourceData(BaseModel):
    resource_id: UUID
    title: str
    description: str
    image: str | None = None
    owner_id: str
    owner: UserData | None = None
    status: ResourceStatus
    created_at: datetime | None = None
    updated_at: datetime | None = None
