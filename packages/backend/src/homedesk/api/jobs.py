"""Job API routes.

Learn: PUT /jobs/{id} is the route that drives most automations. When it
moves a job into "completed" the response only returns after the
business's job_completed rules have run, so a client that refetches right
after sees every side effect.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from homedesk.api.deps import get_publisher
from homedesk.db.engine import get_db
from homedesk.events.publisher import EventPublisher
from homedesk.schemas.job import JobCreate, JobRead, JobUpdate
from homedesk.services.business_service import BusinessNotFoundError
from homedesk.services.job_service import (
    ContactNotFoundError,
    InvalidScheduleError,
    JobNotFoundError,
    JobService,
)

router = APIRouter()


def _svc(db: AsyncSession = Depends(get_db)) -> JobService:
    return JobService(db)


@router.post("/businesses/{business_id}/jobs", response_model=JobRead, status_code=201)
async def create_job(
    business_id: int,
    body: JobCreate,
    svc: JobService = Depends(_svc),
    publisher: EventPublisher = Depends(get_publisher),
):
    """Schedule a job. Fires the appointment_scheduled trigger."""
    try:
        job = await svc.create_job(business_id, **body.model_dump())
    except (BusinessNotFoundError, ContactNotFoundError) as e:
        raise HTTPException(status_code=404, detail=str(e))
    await publisher.publish(svc.outbox)
    return job


@router.get("/businesses/{business_id}/jobs", response_model=list[JobRead])
async def list_jobs(
    business_id: int,
    status: Optional[str] = Query(None, description="Filter by status"),
    svc: JobService = Depends(_svc),
):
    return await svc.list_jobs(business_id, status=status)


@router.get("/jobs/{job_id}", response_model=JobRead)
async def get_job(job_id: int, svc: JobService = Depends(_svc)):
    job = await svc.get_job(job_id)
    if not job:
        raise HTTPException(status_code=404, detail="Job not found")
    return job


@router.put("/jobs/{job_id}", response_model=JobRead)
async def update_job(
    job_id: int,
    body: JobUpdate,
    svc: JobService = Depends(_svc),
    publisher: EventPublisher = Depends(get_publisher),
):
    """Update a job. Broadcasts JOB_STATUS_CHANGE; completing it fires job_completed."""
    try:
        job = await svc.update_job(job_id, **body.model_dump(exclude_unset=True))
    except JobNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidScheduleError as e:
        raise HTTPException(status_code=422, detail=str(e))
    await publisher.publish(svc.outbox)
    return job
