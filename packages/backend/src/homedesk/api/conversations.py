"""Conversation and chat Message API routes.

Learn: The chat widget and the dashboard both write messages here. The
WebSocket only carries the resulting NEW_CHAT_MESSAGE / MESSAGE_READ
frames back out.
"""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from homedesk.api.deps import get_publisher
from homedesk.db.engine import get_db
from homedesk.events.publisher import EventPublisher
from homedesk.schemas.conversation import (
    ConversationCreate,
    ConversationRead,
    MessageCreate,
    MessageRead,
)
from homedesk.services.business_service import BusinessNotFoundError
from homedesk.services.conversation_service import (
    ConversationNotFoundError,
    ConversationService,
)
from homedesk.services.job_service import ContactNotFoundError

router = APIRouter()


def _svc(db: AsyncSession = Depends(get_db)) -> ConversationService:
    return ConversationService(db)


@router.post(
    "/businesses/{business_id}/conversations",
    response_model=ConversationRead,
    status_code=201,
)
async def create_conversation(
    business_id: int,
    body: ConversationCreate,
    svc: ConversationService = Depends(_svc),
):
    try:
        return await svc.create_conversation(business_id, contact_id=body.contact_id)
    except (BusinessNotFoundError, ContactNotFoundError) as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.get("/businesses/{business_id}/conversations", response_model=list[ConversationRead])
async def list_conversations(business_id: int, svc: ConversationService = Depends(_svc)):
    return await svc.list_conversations(business_id)


@router.get("/conversations/{conversation_id}/messages", response_model=list[MessageRead])
async def list_messages(conversation_id: int, svc: ConversationService = Depends(_svc)):
    try:
        return await svc.list_messages(conversation_id)
    except ConversationNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.post(
    "/conversations/{conversation_id}/messages",
    response_model=MessageRead,
    status_code=201,
)
async def send_message(
    conversation_id: int,
    body: MessageCreate,
    svc: ConversationService = Depends(_svc),
    publisher: EventPublisher = Depends(get_publisher),
):
    """Post a chat message. Customer messages also fire new_message."""
    try:
        message = await svc.send_message(
            conversation_id,
            content=body.content,
            is_from_business=body.is_from_business,
        )
    except ConversationNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    await publisher.publish(svc.outbox)
    return message


@router.post("/conversations/{conversation_id}/read", response_model=ConversationRead)
async def mark_read(
    conversation_id: int,
    svc: ConversationService = Depends(_svc),
    publisher: EventPublisher = Depends(get_publisher),
):
    try:
        conversation = await svc.mark_read(conversation_id)
    except ConversationNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    await publisher.publish(svc.outbox)
    return conversation
