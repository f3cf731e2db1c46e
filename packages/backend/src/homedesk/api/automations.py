"""Automation rule API routes.

Learn: Rule edits take effect on the next trigger. The engine reloads a
business's rules on every evaluation, so there's no cache to invalidate.
"""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from homedesk.db.engine import get_db
from homedesk.schemas.automation import AutomationCreate, AutomationRead, AutomationUpdate
from homedesk.services.automation_service import AutomationNotFoundError, AutomationService
from homedesk.services.business_service import BusinessNotFoundError

router = APIRouter()


def _svc(db: AsyncSession = Depends(get_db)) -> AutomationService:
    return AutomationService(db)


@router.get("/businesses/{business_id}/automations", response_model=list[AutomationRead])
async def list_automations(business_id: int, svc: AutomationService = Depends(_svc)):
    return await svc.list_automations(business_id)


@router.post(
    "/businesses/{business_id}/automations",
    response_model=AutomationRead,
    status_code=201,
)
async def create_automation(
    business_id: int,
    body: AutomationCreate,
    svc: AutomationService = Depends(_svc),
):
    try:
        return await svc.create_automation(
            business_id=business_id,
            name=body.name,
            description=body.description,
            trigger=body.trigger,
            conditions=body.conditions,
            actions=body.actions,
            is_active=body.is_active,
        )
    except BusinessNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.get("/automations/{automation_id}", response_model=AutomationRead)
async def get_automation(automation_id: int, svc: AutomationService = Depends(_svc)):
    automation = await svc.get_automation(automation_id)
    if not automation:
        raise HTTPException(status_code=404, detail="Automation not found")
    return automation


@router.put("/automations/{automation_id}", response_model=AutomationRead)
async def update_automation(
    automation_id: int,
    body: AutomationUpdate,
    svc: AutomationService = Depends(_svc),
):
    """Partial update, e.g. {"is_active": false} to pause a rule."""
    try:
        return await svc.update_automation(
            automation_id,
            **body.model_dump(exclude_unset=True),
        )
    except AutomationNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
