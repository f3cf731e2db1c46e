"""Job service — scheduling and the job status lifecycle.

Learn: A job moves through scheduled → in_progress → completed (or
cancelled). Status is free to move in any direction; the only transition
with side effects beyond the dashboard frame is the one INTO completed:

    update_job(status="completed")
        → OutboundEvent(JOB_STATUS_CHANGE)   dashboards refresh the job card
        → DomainEvent(job_completed)         "thank you" SMS, review request...

Saving an already-completed job again (to fix a typo in the notes) does
not re-fire job_completed. Both events are recorded in that order, so the
dashboard sees the status change before any AUTOMATION_TRIGGERED frames.
"""

from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from homedesk.db.models import Business, Contact, Job
from homedesk.events.models import DomainEvent, OutboundEvent
from homedesk.events.publisher import Outbox
from homedesk.events.types import APPOINTMENT_SCHEDULED, JOB_COMPLETED, JOB_STATUS_CHANGE
from homedesk.schemas.job import JobRead
from homedesk.services.business_service import (
    BusinessNotFoundError,
    business_context,
    contact_context,
)

# Columns that can't be set back to NULL through a partial update.
_REQUIRED_FIELDS = {"title", "start_time", "end_time", "status"}


class JobNotFoundError(Exception):
    pass


class ContactNotFoundError(Exception):
    pass


class InvalidScheduleError(Exception):
    pass


def job_payload(job: Job) -> dict[str, Any]:
    return JobRead.model_validate(job).model_dump(mode="json")


class JobService:
    """Business logic for job CRUD and status changes."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.outbox = Outbox()

    # ─── Create ──────────────────────────────────────────

    async def create_job(self, business_id: int, contact_id: int, **fields: Any) -> Job:
        """Schedule a job for one of the business's contacts.

        Raises:
            BusinessNotFoundError: unknown business
            ContactNotFoundError: contact missing or owned by another business
        """
        business = await self.db.get(Business, business_id)
        if not business:
            raise BusinessNotFoundError(f"Business {business_id} not found")

        contact = await self.db.get(Contact, contact_id)
        if not contact or contact.business_id != business_id:
            raise ContactNotFoundError(
                f"Contact {contact_id} not found in business {business_id}"
            )

        job = Job(business_id=business_id, contact_id=contact_id, **fields)
        self.db.add(job)
        await self.db.commit()

        self.outbox.record(
            DomainEvent(
                trigger=APPOINTMENT_SCHEDULED,
                tenant_id=business_id,
                context={
                    "jobId": job.id,
                    "contactId": contact_id,
                    "status": job.status,
                    "job": job_payload(job),
                    "contact": contact_context(contact),
                    "business": business_context(business),
                },
            )
        )
        return job

    # ─── Read ────────────────────────────────────────────

    async def get_job(self, job_id: int) -> Optional[Job]:
        return await self.db.get(Job, job_id)

    async def list_jobs(self, business_id: int, status: Optional[str] = None) -> list[Job]:
        query = select(Job).where(Job.business_id == business_id)
        if status:
            query = query.where(Job.status == status)
        result = await self.db.execute(query.order_by(Job.start_time))
        return list(result.scalars().all())

    # ─── Update ──────────────────────────────────────────

    async def update_job(self, job_id: int, **changes: Any) -> Job:
        """Apply a partial update and record the resulting events.

        Raises:
            JobNotFoundError: unknown job
            InvalidScheduleError: the update would end the job before it starts
        """
        job = await self.get_job(job_id)
        if not job:
            raise JobNotFoundError(f"Job {job_id} not found")

        previous_status = job.status
        for key, value in changes.items():
            if value is None and key in _REQUIRED_FIELDS:
                continue
            setattr(job, key, value)

        if _as_naive(job.end_time) < _as_naive(job.start_time):
            await self.db.rollback()
            raise InvalidScheduleError("end_time must not be before start_time")

        await self.db.commit()

        self.outbox.record(
            OutboundEvent(
                type=JOB_STATUS_CHANGE,
                payload={"businessId": job.business_id, "job": job_payload(job)},
            )
        )

        if job.status == "completed" and previous_status != "completed":
            await self._record_completion(job)
        return job

    async def _record_completion(self, job: Job) -> None:
        contact = await self.db.get(Contact, job.contact_id)
        business = await self.db.get(Business, job.business_id)
        self.outbox.record(
            DomainEvent(
                trigger=JOB_COMPLETED,
                tenant_id=job.business_id,
                context={
                    "jobId": job.id,
                    "contactId": job.contact_id,
                    "status": job.status,
                    "job": job_payload(job),
                    "contact": contact_context(contact),
                    "business": business_context(business),
                },
            )
        )


def _as_naive(value: datetime) -> datetime:
    # Stored values are naive UTC on SQLite; request bodies may carry any offset.
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)
