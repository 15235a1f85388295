"""Bookable resource model (venues and chalets)."""

import datetime as dt

from pydantic import BaseModel, ConfigDict, Field

from .enums import ResourceKind, ResourceStatus


class Resource(BaseModel):
    """A finite-capacity resource that reservations are made against.

    ``version`` increases every time the resource's reservation set or
    status changes; reservation inserts are conditioned on it.
    """

    model_config = ConfigDict(strict=True, frozen=True)

    resource_id: str = Field(..., description="Canonical UUID")
    name: str = Field(..., min_length=1)
    kind: ResourceKind
    capacity: int = Field(..., ge=1, description="Maximum occupancy")
    status: ResourceStatus = ResourceStatus.AVAILABLE
    version: int = Field(default=0, ge=0)
    archived_at: dt.datetime | None = None

    @property
    def is_offerable(self) -> bool:
        return self.status == ResourceStatus.AVAILABLE and self.archived_at is None
