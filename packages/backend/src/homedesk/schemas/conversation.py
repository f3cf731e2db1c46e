"""Pydantic schemas for conversations and chat messages."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class ConversationCreate(BaseModel):
    contact_id: Optional[int] = None


class ConversationRead(BaseModel):
    id: int
    business_id: int
    contact_id: Optional[int] = None
    last_message: Optional[str] = None
    last_message_at: datetime
    unread_count: int
    created_at: datetime

    model_config = {"from_attributes": True}


class MessageCreate(BaseModel):
    content: str = Field(..., min_length=1)
    is_from_business: bool = False


class MessageRead(BaseModel):
    id: int
    conversation_id: int
    content: str
    is_from_business: bool
    status: str
    created_at: datetime

    model_config = {"from_attributes": True}
