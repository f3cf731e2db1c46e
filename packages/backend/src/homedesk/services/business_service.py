"""Business service — tenants, their contacts, and their reviews.

Learn: Every mutation records the events it causes in self.outbox instead
of broadcasting directly. The route publishes the outbox after commit, so
subscribers never hear about a write that later rolled back.

- create_contact → DomainEvent(new_customer)    → automations
- create_review  → OutboundEvent(NEW_REVIEW)    → dashboards
"""

from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from homedesk.db.models import Business, Contact, Review
from homedesk.events.models import DomainEvent, OutboundEvent
from homedesk.events.publisher import Outbox
from homedesk.events.types import NEW_CUSTOMER, NEW_REVIEW
from homedesk.schemas.business import ReviewRead


class BusinessNotFoundError(Exception):
    pass


def contact_context(contact: Optional[Contact]) -> dict[str, Any]:
    """Contact fields exposed to automation templates ({{contact.phone}})."""
    if contact is None:
        return {}
    return {
        "id": contact.id,
        "first_name": contact.first_name,
        "last_name": contact.last_name,
        "name": f"{contact.first_name} {contact.last_name}",
        "phone": contact.phone,
        "email": contact.email,
    }


def business_context(business: Optional[Business]) -> dict[str, Any]:
    if business is None:
        return {}
    return {
        "id": business.id,
        "name": business.name,
        "phone": business.phone,
        "email": business.email,
        "website": business.website,
    }


class BusinessService:
    """Business logic for tenants, contacts, and reviews."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.outbox = Outbox()

    # ─── Businesses ──────────────────────────────────────

    async def create_business(self, **fields: Any) -> Business:
        business = Business(**fields)
        self.db.add(business)
        await self.db.commit()
        return business

    async def get_business(self, business_id: int) -> Optional[Business]:
        return await self.db.get(Business, business_id)

    async def list_businesses(self) -> list[Business]:
        result = await self.db.execute(select(Business).order_by(Business.id))
        return list(result.scalars().all())

    async def _require_business(self, business_id: int) -> Business:
        business = await self.get_business(business_id)
        if not business:
            raise BusinessNotFoundError(f"Business {business_id} not found")
        return business

    # ─── Contacts ────────────────────────────────────────

    async def create_contact(self, business_id: int, **fields: Any) -> Contact:
        """Create a contact and fire the new_customer trigger."""
        business = await self._require_business(business_id)

        contact = Contact(business_id=business_id, **fields)
        self.db.add(contact)
        await self.db.commit()

        self.outbox.record(
            DomainEvent(
                trigger=NEW_CUSTOMER,
                tenant_id=business_id,
                context={
                    "contactId": contact.id,
                    "contact": contact_context(contact),
                    "business": business_context(business),
                },
            )
        )
        return contact

    async def get_contact(self, contact_id: int) -> Optional[Contact]:
        return await self.db.get(Contact, contact_id)

    async def list_contacts(self, business_id: int) -> list[Contact]:
        result = await self.db.execute(
            select(Contact)
            .where(Contact.business_id == business_id)
            .order_by(Contact.id)
        )
        return list(result.scalars().all())

    # ─── Reviews ─────────────────────────────────────────

    async def create_review(self, business_id: int, **fields: Any) -> Review:
        """Store a review and push NEW_REVIEW to the business's dashboards."""
        await self._require_business(business_id)

        review = Review(business_id=business_id, **fields)
        self.db.add(review)
        await self.db.commit()

        self.outbox.record(
            OutboundEvent(
                type=NEW_REVIEW,
                payload={
                    "businessId": business_id,
                    "review": ReviewRead.model_validate(review).model_dump(mode="json"),
                },
            )
        )
        return review

    async def list_reviews(self, business_id: int) -> list[Review]:
        result = await self.db.execute(
            select(Review)
            .where(Review.business_id == business_id)
            .order_by(Review.review_date.desc())
        )
        return list(result.scalars().all())

