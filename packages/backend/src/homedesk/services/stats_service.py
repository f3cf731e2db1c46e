"""Dashboard counters for one business.

Learn: These four numbers are what an operator sees first. They're served
twice: over REST (GET /businesses/{id}/stats) and pushed once as the
INITIAL_STATS frame when a dashboard socket opens.

- activeCustomers: distinct contacts with at least one job
- scheduledJobs:   jobs still in "scheduled"
- newMessages:     unread customer messages across all conversations
- avgReview:       mean rating, one decimal, 0.0 with no reviews
"""

from typing import Any

from sqlalchemy import distinct, func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from homedesk.db.models import Conversation, Job, Review


class StatsService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def business_stats(self, business_id: int) -> dict[str, Any]:
        active_customers = await self.db.scalar(
            select(func.count(distinct(Job.contact_id))).where(Job.business_id == business_id)
        )
        scheduled_jobs = await self.db.scalar(
            select(func.count(Job.id)).where(
                Job.business_id == business_id, Job.status == "scheduled"
            )
        )
        new_messages = await self.db.scalar(
            select(func.coalesce(func.sum(Conversation.unread_count), 0)).where(
                Conversation.business_id == business_id
            )
        )
        avg_review = await self.db.scalar(
            select(func.avg(Review.rating)).where(Review.business_id == business_id)
        )

        return {
            "activeCustomers": int(active_customers or 0),
            "scheduledJobs": int(scheduled_jobs or 0),
            "newMessages": int(new_messages or 0),
            "avgReview": round(float(avg_review), 1) if avg_review is not None else 0.0,
        }


def stats_snapshot(session_factory: async_sessionmaker):
    """Stats loader for the realtime gateway (it has no request session)."""

    async def snapshot(business_id: int) -> dict[str, Any]:
        async with session_factory() as session:
            return await StatsService(session).business_stats(business_id)

    return snapshot
