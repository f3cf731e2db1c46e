"""Pydantic schemas for automation rules.

Learn: A rule must carry at least one action when created. Updates are
partial, but if they replace the action list it must still be non-empty.
"""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field

from homedesk.events.types import TRIGGERS

_TRIGGERS = "^(" + "|".join(TRIGGERS) + ")$"


class ActionSpec(BaseModel):
    type: str = Field(..., min_length=1, max_length=50)
    params: dict[str, Any] = Field(default_factory=dict)


class AutomationCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    trigger: str = Field(..., pattern=_TRIGGERS)
    conditions: dict[str, Any] = Field(default_factory=dict)
    actions: list[ActionSpec] = Field(..., min_length=1)
    is_active: bool = True


class AutomationUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = None
    trigger: Optional[str] = Field(default=None, pattern=_TRIGGERS)
    conditions: Optional[dict[str, Any]] = None
    actions: Optional[list[ActionSpec]] = Field(default=None, min_length=1)
    is_active: Optional[bool] = None


class AutomationRead(BaseModel):
    id: int
    business_id: int
    name: str
    description: Optional[str] = None
    trigger: str
    conditions: dict[str, Any]
    actions: list[ActionSpec]
    is_active: bool
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}
