"""Pydantic schemas for businesses, contacts, reviews, and stats.

Learn: Pydantic v2 models validate request/response data. Separate
"Create" schemas (input) from "Read" schemas (output) for clean APIs.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from homedesk.db.models import BUSINESS_VERTICALS

_VERTICALS = "^(" + "|".join(BUSINESS_VERTICALS) + ")$"


# ─── Businesses ─────────────────────────────────────────

class BusinessCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    slug: str = Field(..., min_length=1, max_length=200, pattern=r"^[a-z0-9-]+$")
    vertical: str = Field(default="general", pattern=_VERTICALS)
    description: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    website: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    settings: dict = Field(default_factory=dict)


class BusinessRead(BaseModel):
    id: int
    name: str
    slug: str
    vertical: str
    description: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    website: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    settings: dict
    created_at: datetime

    model_config = {"from_attributes": True}


# ─── Contacts ───────────────────────────────────────────

class ContactCreate(BaseModel):
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    notes: Optional[str] = None


class ContactRead(BaseModel):
    id: int
    business_id: int
    first_name: str
    last_name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime

    model_config = {"from_attributes": True}


# ─── Reviews ────────────────────────────────────────────

class ReviewCreate(BaseModel):
    platform: str = Field(..., min_length=1, max_length=50)
    rating: int = Field(..., ge=1, le=5)
    content: Optional[str] = None
    reviewer_name: Optional[str] = None
    review_date: datetime
    url: Optional[str] = None


class ReviewRead(BaseModel):
    id: int
    business_id: int
    platform: str
    rating: int
    content: Optional[str] = None
    reviewer_name: Optional[str] = None
    review_date: datetime
    url: Optional[str] = None
    is_responded: bool
    created_at: datetime

    model_config = {"from_attributes": True}


# ─── Stats ──────────────────────────────────────────────

class BusinessStats(BaseModel):
    """Dashboard counters. Field names match the INITIAL_STATS frame."""
    activeCustomers: int
    scheduledJobs: int
    newMessages: int
    avgReview: float
