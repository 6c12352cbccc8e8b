"""
Job History
Dispatched job list persisted in the local store, merged with the seed jobs,
plus the per-job tracking data written at dispatch time.
"""

import json
import random
from datetime import UTC, date, datetime, timedelta

from pydantic import ValidationError

from app.infrastructure.observability.logging import get_logger
from app.models.domain.mail_domain import Job, MailGroup, MailGroupStatus, TrackingEvent
from app.services.kv_store import KeyValueStore

logger = get_logger(__name__)

JOBS_STORAGE_KEY = "outmail:jobs"


def job_groups_key(job_id: str) -> str:
    return f"{JOBS_STORAGE_KEY}:{job_id}:groups"


def job_timeline_key(job_id: str) -> str:
    return f"{JOBS_STORAGE_KEY}:{job_id}:timeline"


def parse_job_date(value: str | None) -> float:
    """Epoch seconds for a job date; missing or unparseable dates sort as 0."""
    if not value:
        return 0
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return 0
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed.timestamp()


def merge_jobs_by_id(base: list[Job], extras: list[Job]) -> list[Job]:
    """Union by id; entries in ``extras`` replace same-id entries in ``base``."""
    merged: dict[str, Job] = {}
    for job in [*base, *extras]:
        merged[job.id] = job
    return list(merged.values())


def sort_jobs_by_date(jobs: list[Job]) -> list[Job]:
    return sorted(jobs, key=lambda job: parse_job_date(job.sent_date), reverse=True)


def _format_timeline_timestamp(moment: datetime) -> str:
    return moment.astimezone(UTC).strftime("%Y-%m-%d %H:%M")


def build_timeline_for_job(sent_on: datetime) -> list[TrackingEvent]:
    """Fixed four-step synthetic timeline around the dispatch time."""
    steps = [
        (-4, "Label Created", "Outbound Processing Facility"),
        (-2, "Picked Up", "Outbound Processing Facility"),
        (0, "In Transit", "Regional Sorting Center"),
        (18, "Out for Delivery", "Destination Post Office"),
    ]
    return [
        TrackingEvent(
            timestamp=_format_timeline_timestamp(sent_on + timedelta(hours=offset)),
            event=event,
            location=location,
        )
        for offset, event, location in steps
    ]


def refresh_group_statuses(groups: list[MailGroup], now: datetime, rng: random.Random) -> list[MailGroup]:
    """
    Move in-transit groups to delivered on a coin flip each, stamping the
    delivered date. Returns the groups that changed.
    """
    delivered = []
    for group in groups:
        if group.status != MailGroupStatus.IN_TRANSIT.value:
            continue
        if rng.random() > 0.5:
            group.status = MailGroupStatus.DELIVERED.value
            group.delivered_date = _format_timeline_timestamp(now)
            delivered.append(group)
    return delivered


def calculate_dashboard_kpis(jobs: list[Job], today: date | None = None) -> dict:
    """Active jobs, items in transit, delivered today (or latest delivered job), exceptions."""
    today_str = (today or datetime.now(UTC).date()).isoformat()
    active_jobs = sum(1 for job in jobs if job.status != MailGroupStatus.DELIVERED.value)
    items_in_transit = sum(job.in_transit for job in jobs)
    exceptions = sum(job.exceptions for job in jobs)

    delivered_today = sum(job.delivered for job in jobs if job.sent_date == today_str and job.delivered)
    if not delivered_today:
        delivered_jobs = sort_jobs_by_date(
            [job for job in jobs if job.status == MailGroupStatus.DELIVERED.value and job.delivered]
        )
        if delivered_jobs:
            delivered_today = delivered_jobs[0].delivered

    return {
        "active_jobs": active_jobs,
        "items_in_transit": items_in_transit,
        "delivered_today": delivered_today,
        "exceptions": exceptions,
    }


class JobHistoryStore:
    """Reads and writes job history in the local store."""

    def __init__(self, store: KeyValueStore):
        self.store = store

    async def load(self) -> list[Job]:
        """Stored jobs; invalid entries are dropped and read failures yield []."""
        try:
            raw = await self.store.get(JOBS_STORAGE_KEY)
            if not raw:
                return []
            parsed = json.loads(raw)
        except Exception as e:
            logger.warning("Failed to load stored job history", error=str(e))
            return []

        if not isinstance(parsed, list):
            return []

        jobs = []
        for entry in parsed:
            try:
                jobs.append(Job.model_validate(entry))
            except ValidationError:
                logger.debug("Dropping invalid stored job entry")
        return jobs

    async def persist(self, jobs: list[Job]) -> bool:
        try:
            return await self.store.set(JOBS_STORAGE_KEY, json.dumps([job.to_storage() for job in jobs]))
        except Exception as e:
            logger.warning("Failed to persist job history", error=str(e))
            return False

    async def merged_with(self, seed_jobs: list[Job]) -> list[Job]:
        """Seed jobs overridden by stored jobs with the same id, newest first."""
        return sort_jobs_by_date(merge_jobs_by_id(seed_jobs, await self.load()))

    async def save_dispatch(self, job_id: str, groups: list[MailGroup], timeline: list[TrackingEvent]) -> None:
        try:
            await self.store.set(job_groups_key(job_id), json.dumps([group.to_storage() for group in groups]))
            await self.store.set(job_timeline_key(job_id), json.dumps([event.to_storage() for event in timeline]))
        except Exception as e:
            logger.warning("Failed to persist dispatch tracking data", job_id=job_id, error=str(e))

    async def load_dispatch(self, job_id: str) -> tuple[list[MailGroup], list[TrackingEvent]]:
        try:
            raw_groups = await self.store.get(job_groups_key(job_id))
            raw_timeline = await self.store.get(job_timeline_key(job_id))
            groups = [MailGroup.model_validate(entry) for entry in json.loads(raw_groups or "[]")]
            timeline = [TrackingEvent.model_validate(entry) for entry in json.loads(raw_timeline or "[]")]
        except Exception as e:
            logger.warning("Failed to load dispatch tracking data", job_id=job_id, error=str(e))
            return [], []
        return groups, timeline

    async def refresh_status(
        self,
        job: Job,
        groups: list[MailGroup],
        timeline: list[TrackingEvent],
        now: datetime,
        rng: random.Random,
    ) -> Job:
        """
        Refresh the delivery status of a job's groups and store the result.

        The job's counters follow the groups that moved; it is marked delivered
        once none of its groups is still in transit.
        """
        delivered = refresh_group_statuses(groups, now, rng)
        if not delivered:
            return job

        job = job.model_copy(
            update={
                "delivered": job.delivered + len(delivered),
                "in_transit": max(job.in_transit - len(delivered), 0),
            }
        )
        if not any(group.status == MailGroupStatus.IN_TRANSIT.value for group in groups):
            job.status = MailGroupStatus.DELIVERED.value

        await self.save_dispatch(job.id, groups, timeline)
        stored = await self.load()
        await self.persist(sort_jobs_by_date(merge_jobs_by_id(stored, [job])))
        logger.info("Job status refreshed", job_id=job.id, delivered=len(delivered), status=job.status)
        return job
