"""Conversation service — the shared inbox between a business and its customers.

Learn: Messages are written through REST, then fanned out over WebSocket:

- send_message → OutboundEvent(NEW_CHAT_MESSAGE) → the business's dashboards
                                                  and chat-widget visitors
               → DomainEvent(new_message)        → automations (customer
                                                  messages only, so an
                                                  auto-reply can't loop)
- mark_read    → OutboundEvent(MESSAGE_READ)      → dashboards clear badges

Conversation.unread_count counts customer messages the business hasn't
read yet. A business reply implies the thread was read, so it resets to 0.
"""

from typing import Any, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from homedesk.db.models import Business, Contact, Conversation, Message, utcnow
from homedesk.events.models import DomainEvent, OutboundEvent
from homedesk.events.publisher import Outbox
from homedesk.events.types import MESSAGE_READ, NEW_CHAT_MESSAGE, NEW_MESSAGE
from homedesk.schemas.conversation import MessageRead
from homedesk.services.business_service import BusinessNotFoundError, contact_context
from homedesk.services.job_service import ContactNotFoundError


class ConversationNotFoundError(Exception):
    pass


class ConversationService:
    """Business logic for conversations and chat messages."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.outbox = Outbox()

    # ─── Conversations ───────────────────────────────────

    async def create_conversation(
        self, business_id: int, contact_id: Optional[int] = None
    ) -> Conversation:
        if not await self.db.get(Business, business_id):
            raise BusinessNotFoundError(f"Business {business_id} not found")

        if contact_id is not None:
            contact = await self.db.get(Contact, contact_id)
            if not contact or contact.business_id != business_id:
                raise ContactNotFoundError(
                    f"Contact {contact_id} not found in business {business_id}"
                )

        conversation = Conversation(business_id=business_id, contact_id=contact_id)
        self.db.add(conversation)
        await self.db.commit()
        return conversation

    async def get_conversation(self, conversation_id: int) -> Optional[Conversation]:
        return await self.db.get(Conversation, conversation_id)

    async def list_conversations(self, business_id: int) -> list[Conversation]:
        """Inbox order: most recently active first."""
        result = await self.db.execute(
            select(Conversation)
            .where(Conversation.business_id == business_id)
            .order_by(Conversation.last_message_at.desc(), Conversation.id.desc())
        )
        return list(result.scalars().all())

    async def _require_conversation(self, conversation_id: int) -> Conversation:
        conversation = await self.get_conversation(conversation_id)
        if not conversation:
            raise ConversationNotFoundError(f"Conversation {conversation_id} not found")
        return conversation

    # ─── Messages ────────────────────────────────────────

    async def list_messages(self, conversation_id: int) -> list[Message]:
        await self._require_conversation(conversation_id)
        result = await self.db.execute(
            select(Message)
            .where(Message.conversation_id == conversation_id)
            .order_by(Message.created_at, Message.id)
        )
        return list(result.scalars().all())

    async def send_message(
        self, conversation_id: int, content: str, is_from_business: bool = False
    ) -> Message:
        conversation = await self._require_conversation(conversation_id)

        message = Message(
            conversation_id=conversation_id,
            content=content,
            is_from_business=is_from_business,
            status="replied" if is_from_business else "unread",
        )
        self.db.add(message)

        conversation.last_message = content
        conversation.last_message_at = utcnow()
        if is_from_business:
            conversation.unread_count = 0
        else:
            conversation.unread_count = (conversation.unread_count or 0) + 1

        await self.db.commit()

        message_data = MessageRead.model_validate(message).model_dump(mode="json")
        self.outbox.record(
            OutboundEvent(
                type=NEW_CHAT_MESSAGE,
                payload={
                    "businessId": conversation.business_id,
                    "conversationId": conversation_id,
                    "message": message_data,
                },
            )
        )

        if not is_from_business:
            await self._record_new_message(conversation, message)
        return message

    async def _record_new_message(self, conversation: Conversation, message: Message) -> None:
        context: dict[str, Any] = {
            "conversationId": conversation.id,
            "messageId": message.id,
            "contactId": conversation.contact_id,
            "content": message.content,
            "isFromBusiness": message.is_from_business,
        }
        if conversation.contact_id is not None:
            contact = await self.db.get(Contact, conversation.contact_id)
            context["contact"] = contact_context(contact)

        self.outbox.record(
            DomainEvent(trigger=NEW_MESSAGE, tenant_id=conversation.business_id, context=context)
        )

    async def mark_read(self, conversation_id: int) -> Conversation:
        """Mark every unread customer message as read and clear the badge."""
        conversation = await self._require_conversation(conversation_id)

        await self.db.execute(
            update(Message)
            .where(
                Message.conversation_id == conversation_id,
                Message.is_from_business.is_(False),
                Message.status == "unread",
            )
            .values(status="read")
        )
        conversation.unread_count = 0
        await self.db.commit()

        self.outbox.record(
            OutboundEvent(
                type=MESSAGE_READ,
                payload={
                    "businessId": conversation.business_id,
                    "conversationId": conversation_id,
                },
            )
        )
        return conversation
