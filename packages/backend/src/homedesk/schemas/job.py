"""Pydantic schemas for jobs."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, model_validator

from homedesk.db.models import JOB_STATUSES

_JOB_STATUS = "^(" + "|".join(JOB_STATUSES) + ")$"


class JobCreate(BaseModel):
    contact_id: int
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    start_time: datetime
    end_time: datetime
    status: str = Field(default="scheduled", pattern=_JOB_STATUS)
    notes: Optional[str] = None
    price: Optional[str] = None

    @model_validator(mode="after")
    def check_window(self):
        if self.end_time < self.start_time:
            raise ValueError("end_time must not be before start_time")
        return self


class JobUpdate(BaseModel):
    """Partial update. Only fields that are set get applied."""
    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    status: Optional[str] = Field(default=None, pattern=_JOB_STATUS)
    notes: Optional[str] = None
    price: Optional[str] = None


class JobRead(BaseModel):
    id: int
    business_id: int
    contact_id: int
    title: str
    description: Optional[str] = None
    start_time: datetime
    end_time: datetime
    status: str
    notes: Optional[str] = None
    price: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}
