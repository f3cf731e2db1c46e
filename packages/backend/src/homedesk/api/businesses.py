"""Business, Contact, Review, and Stats API routes.

Learn: Routes translate HTTP to service calls, then publish whatever the
service recorded in its outbox. Publishing happens after the service has
committed, so a 4xx/5xx never leaks a realtime frame or fires a rule.
"""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from homedesk.api.deps import get_publisher
from homedesk.db.engine import get_db
from homedesk.events.publisher import EventPublisher
from homedesk.schemas.business import (
    BusinessCreate,
    BusinessRead,
    BusinessStats,
    ContactCreate,
    ContactRead,
    ReviewCreate,
    ReviewRead,
)
from homedesk.services.business_service import BusinessNotFoundError, BusinessService
from homedesk.services.stats_service import StatsService

router = APIRouter()


def _svc(db: AsyncSession = Depends(get_db)) -> BusinessService:
    return BusinessService(db)


# ═══════════════════════════════════════════════════════════
# Businesses
# ═══════════════════════════════════════════════════════════


@router.post("/businesses", response_model=BusinessRead, status_code=201)
async def create_business(body: BusinessCreate, svc: BusinessService = Depends(_svc)):
    try:
        return await svc.create_business(**body.model_dump())
    except IntegrityError:
        await svc.db.rollback()
        raise HTTPException(status_code=409, detail=f"Slug '{body.slug}' already exists")


@router.get("/businesses", response_model=list[BusinessRead])
async def list_businesses(svc: BusinessService = Depends(_svc)):
    return await svc.list_businesses()


@router.get("/businesses/{business_id}", response_model=BusinessRead)
async def get_business(business_id: int, svc: BusinessService = Depends(_svc)):
    business = await svc.get_business(business_id)
    if not business:
        raise HTTPException(status_code=404, detail="Business not found")
    return business


@router.get("/businesses/{business_id}/stats", response_model=BusinessStats)
async def get_business_stats(business_id: int, db: AsyncSession = Depends(get_db)):
    """Same counters a dashboard receives as INITIAL_STATS."""
    if not await BusinessService(db).get_business(business_id):
        raise HTTPException(status_code=404, detail="Business not found")
    return await StatsService(db).business_stats(business_id)


# ═══════════════════════════════════════════════════════════
# Contacts
# ═══════════════════════════════════════════════════════════


@router.post("/businesses/{business_id}/contacts", response_model=ContactRead, status_code=201)
async def create_contact(
    business_id: int,
    body: ContactCreate,
    svc: BusinessService = Depends(_svc),
    publisher: EventPublisher = Depends(get_publisher),
):
    """Create a contact. Fires the new_customer trigger."""
    try:
        contact = await svc.create_contact(business_id, **body.model_dump())
    except BusinessNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    await publisher.publish(svc.outbox)
    return contact


@router.get("/businesses/{business_id}/contacts", response_model=list[ContactRead])
async def list_contacts(business_id: int, svc: BusinessService = Depends(_svc)):
    return await svc.list_contacts(business_id)


# ═══════════════════════════════════════════════════════════
# Reviews
# ═══════════════════════════════════════════════════════════


@router.post("/businesses/{business_id}/reviews", response_model=ReviewRead, status_code=201)
async def create_review(
    business_id: int,
    body: ReviewCreate,
    svc: BusinessService = Depends(_svc),
    publisher: EventPublisher = Depends(get_publisher),
):
    """Record a review. Broadcasts NEW_REVIEW to the business's dashboards."""
    try:
        review = await svc.create_review(business_id, **body.model_dump())
    except BusinessNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    await publisher.publish(svc.outbox)
    return review


@router.get("/businesses/{business_id}/reviews", response_model=list[ReviewRead])
async def list_reviews(business_id: int, svc: BusinessService = Depends(_svc)):
    return await svc.list_reviews(business_id)
