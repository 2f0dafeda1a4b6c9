"""
GenBI Deploy - Schemas.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from genbi.adaptors.schemas import DeployStatus


class Deployment(BaseModel):
    """One deployment attempt of a manifest, identified by the manifest hash."""

    id: int
    project_id: int
    hash: str
    manifest: dict[str, Any] = Field(default_factory=dict)
    status: DeployStatus
    error: str | None = None

    created_at: datetime | None = None
    updated_at: datetime | None = None


class DeployRequest(BaseModel):
    force: bool = Field(default=False, description="Deploy even if the manifest hash is unchanged")


class DeployResponse(BaseModel):
    status: DeployStatus
    hash: str
    error: str | None = None
