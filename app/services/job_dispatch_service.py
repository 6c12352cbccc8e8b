"""
Job Dispatch Finalizer
Turns the current mail tasks into a dispatched Job, records it in the job
history and resets the wizard.
"""

import re
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime

from app.infrastructure.observability.logging import get_logger
from app.models.domain.mail_domain import (
    Job,
    MailGroup,
    MailGroupFilters,
    MailGroupStatus,
    TrackingEvent,
    ValidationState,
    WizardJobData,
    WorkspaceState,
)
from app.services.job_history import JobHistoryStore, build_timeline_for_job, merge_jobs_by_id, sort_jobs_by_date
from app.services.wizard_draft_store import WizardDraftStore
from app.services.workspace_errors import WorkspaceValidationError
from app.utils.id_helpers import to_base36

logger = get_logger(__name__)

NO_TASKS_TO_DISPATCH = "No mail tasks ready to dispatch. Add documents before completing the job."

_NON_ALNUM = re.compile(r"[^a-zA-Z0-9]")


@dataclass(slots=True)
class DispatchResult:
    job: Job
    jobs: list[Job]
    dispatched_groups: list[MailGroup] = field(default_factory=list)
    timeline: list[TrackingEvent] = field(default_factory=list)

    @property
    def redirect_to(self) -> str:
        return f"/track-mail/{self.job.id}"


def build_job_id(job_name: str, now: datetime) -> tuple[str, str]:
    """Return (job id, base36 suffix) for a job dispatched at ``now``."""
    name_segment = _NON_ALNUM.sub("", job_name)[:6].upper() or "JOB"
    suffix = to_base36(int(now.timestamp() * 1000))
    return f"JOB-{name_segment}-{suffix}", suffix


def build_tracking_number(suffix: str, index: int) -> str:
    return f"TRK-{suffix}-{index + 1:04d}"


def reset_wizard(state: WorkspaceState) -> None:
    state.job_data = WizardJobData()
    state.filters = MailGroupFilters()
    state.validation = ValidationState()
    state.wizard_step = 1


class JobDispatchFinalizer:
    """Dispatches the mail tasks of a workspace state."""

    def __init__(
        self,
        history: JobHistoryStore,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
    ):
        self.history = history
        self.clock = clock

    async def dispatch(
        self,
        state: WorkspaceState,
        seed_jobs: list[Job],
        draft: WizardDraftStore | None = None,
    ) -> DispatchResult:
        """
        Stamp every mail task with the new job id and a tracking number.

        Raises WorkspaceValidationError, leaving ``state`` untouched, when
        there is nothing to dispatch.
        """
        if not state.mail_task_groups:
            raise WorkspaceValidationError(NO_TASKS_TO_DISPATCH)

        now = self.clock()
        sent_date = now.date().isoformat()
        job_id, suffix = build_job_id(state.job_data.job_name, now)
        job_name = state.job_data.job_name.strip() or f"Mail Job {sent_date}"

        dispatched = []
        for index, group in enumerate(state.mail_groups):
            if not group.is_mail_task:
                continue
            group.job_id = job_id
            group.status = MailGroupStatus.IN_TRANSIT.value
            group.delivered_date = None
            group.tracking_number = group.tracking_number or build_tracking_number(suffix, index)
            dispatched.append(group)

        job = Job(
            id=job_id,
            name=job_name,
            status=MailGroupStatus.IN_TRANSIT.value,
            sent_date=sent_date,
            items=len(dispatched),
            delivered=0,
            in_transit=len(dispatched),
            exceptions=len(state.validation.address_exceptions),
            priority=state.job_data.priority,
        )

        jobs = sort_jobs_by_date(merge_jobs_by_id(await self.history.merged_with(seed_jobs), [job]))
        await self.history.persist(jobs)

        timeline = build_timeline_for_job(now)
        await self.history.save_dispatch(job_id, dispatched, timeline)

        reset_wizard(state)
        if draft is not None:
            await draft.clear()

        logger.info("Job dispatched", job_id=job_id, items=job.items, exceptions=job.exceptions)
        return DispatchResult(job=job, jobs=jobs, dispatched_groups=dispatched, timeline=timeline)
