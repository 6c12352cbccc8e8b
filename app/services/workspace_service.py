"""
Workspace Service
Coordinates the wizard for one workspace session: builds the state from the
seed data and the stored draft, applies an operation, and saves the draft
back. Job history queries (tracking, archive, reports) live here too since
they share the seed.
"""

import asyncio
import random
from collections.abc import Awaitable, Callable
from datetime import UTC, date, datetime
from typing import Any

from app.infrastructure.observability.logging import get_logger
from app.models.domain.mail_domain import (
    Job,
    MailGroup,
    MailGroupFilters,
    StructuredAddress,
    TrackingEvent,
    WorkspaceState,
)
from app.services import participant_editor
from app.services.document_tracker import DocumentAttachmentTracker, UploadedPdf
from app.services.job_dispatch_service import DispatchResult, JobDispatchFinalizer
from app.services.job_history import (
    JobHistoryStore,
    build_timeline_for_job,
    calculate_dashboard_kpis,
)
from app.services.kv_store import KeyValueStore, SessionStore
from app.services.mail_group_search import filter_mail_groups
from app.services.mail_group_synthesizer import (
    derive_job_documents,
    sync_job_selections,
    synthesize_mail_groups,
)
from app.services.pdf_cache import PdfBlobCache
from app.services.report_service import (
    build_report,
    build_wizard_summary,
    calculate_report_summary,
    filter_archive,
)
from app.services.seed_loader import SEED_ERROR_MESSAGE, SeedData, SeedLoader, SeedLoadError
from app.services.validation_simulator import (
    ValidationSimulator,
    apply_validation_results,
    fix_exception,
    skip_exception,
)
from app.services.wizard_draft_store import MailDetailSnapshot, WizardDraftStore
from app.services.workspace_errors import JobNotFoundError, MailGroupNotFoundError, WorkspaceValidationError

logger = get_logger(__name__)

LAST_STEP = 4

SELECT_SENDER_MESSAGE = "Please select at least one sender organization before continuing."
SELECT_RECIPIENT_MESSAGE = "Please select at least one recipient organization before continuing."
UPLOAD_DOCUMENTS_MESSAGE = "Upload documents to at least one sender & recipient group before proceeding."
MISSING_ADDRESS_MESSAGE = "Please provide a recipient address for every sender & recipient group."
NOTHING_TO_VALIDATE_MESSAGE = "No sender & recipient groups available to validate."

JOB_DETAIL_FIELDS = ("job_name", "due_date", "priority", "notes")


def parse_sent_date(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)


def merge_groups_by_id(primary: list[MailGroup], extras: list[MailGroup]) -> list[MailGroup]:
    """``primary`` in order, followed by the groups of ``extras`` it does not already have."""
    known = {group.id for group in primary}
    return [*primary, *(group for group in extras if group.id not in known)]


def check_step(state: WorkspaceState) -> None:
    """Raise WorkspaceValidationError if the current step may not be left yet."""
    step = state.wizard_step
    if step == 1:
        if not state.job_data.sender_organization_ids:
            raise WorkspaceValidationError(SELECT_SENDER_MESSAGE)
        if not state.job_data.recipient_organization_ids:
            raise WorkspaceValidationError(SELECT_RECIPIENT_MESSAGE)
    elif step == 2:
        tasks = state.mail_task_groups
        if not tasks:
            raise WorkspaceValidationError(UPLOAD_DOCUMENTS_MESSAGE)
        if any(not group.address.strip() for group in tasks):
            raise WorkspaceValidationError(MISSING_ADDRESS_MESSAGE)
    elif step == 3:
        if not state.mail_task_groups:
            raise WorkspaceValidationError(NOTHING_TO_VALIDATE_MESSAGE)


class WorkspaceService:
    """Entry point used by the workspace and job routes."""

    def __init__(
        self,
        seed_loader: SeedLoader,
        local_store: KeyValueStore,
        session_backend: KeyValueStore,
        cache: PdfBlobCache,
        tracker: DocumentAttachmentTracker | None = None,
        finalizer: JobDispatchFinalizer | None = None,
        session_ttl_s: int | None = None,
        validation_step_percent: int = 10,
        validation_interval_s: float = 0.15,
        validation_sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
        rng: random.Random | None = None,
    ):
        self.seed_loader = seed_loader
        self.local_store = local_store
        self.session_backend = session_backend
        self.cache = cache
        self.history = JobHistoryStore(local_store)
        self.tracker = tracker or DocumentAttachmentTracker(cache)
        self.finalizer = finalizer or JobDispatchFinalizer(self.history)
        self.session_ttl_s = session_ttl_s
        self.validation_step_percent = validation_step_percent
        self.validation_interval_s = validation_interval_s
        self.validation_sleep = validation_sleep
        self.clock = clock
        self.rng = rng or random.Random()
        self._seed: SeedData | None = None

    # ------------------------------------------------------------------
    # Seed and state
    # ------------------------------------------------------------------

    def load_seed(self) -> SeedData:
        """Seed collections, read once and kept for the process lifetime."""
        if self._seed is None:
            self._seed = self.seed_loader.load()
        return self._seed

    def reload_seed(self) -> SeedData:
        self._seed = None
        return self.load_seed()

    def _fresh_state(self) -> WorkspaceState:
        try:
            seed = self.load_seed()
        except SeedLoadError as e:
            logger.error("Seed data unavailable", path=str(e.path), reason=e.reason)
            return WorkspaceState(data_error=SEED_ERROR_MESSAGE)

        for group in seed.mail_groups:
            for document in group.documents:
                self.cache.ensure(document.cache_key, document.file_url)

        return WorkspaceState(
            enterprises=[enterprise.model_copy(deep=True) for enterprise in seed.enterprises],
            organizations=[org.model_copy(deep=True) for org in seed.organizations],
            uploaded_files=[document.model_copy() for document in seed.uploaded_files],
            mail_groups=[group.model_copy(deep=True) for group in seed.mail_groups],
        )

    def draft_store(self, session_id: str) -> WizardDraftStore:
        return WizardDraftStore(SessionStore(self.session_backend, session_id, self.session_ttl_s), self.cache)

    async def open(self, session_id: str) -> tuple[WorkspaceState, WizardDraftStore]:
        """Seed state overlaid with whatever draft the session has stored."""
        state = self._fresh_state()
        draft_store = self.draft_store(session_id)
        draft = await draft_store.load()

        if draft.mail_groups is not None:
            state.mail_groups = draft.mail_groups
        if draft.job_data is not None:
            state.job_data = draft.job_data
        if draft.validation is not None:
            state.validation = draft.validation
        if draft.filters is not None:
            state.filters = draft.filters
        if draft.uploaded_files is not None:
            state.uploaded_files = draft.uploaded_files
        if draft.organizations:
            state.organizations = draft.organizations
        if draft.wizard_step:
            state.wizard_step = min(max(int(draft.wizard_step), 1), LAST_STEP)

        state.job_data.documents = derive_job_documents(state.mail_groups)
        return state, draft_store

    async def _commit(self, state: WorkspaceState, draft_store: WizardDraftStore) -> WorkspaceState:
        state.job_data.documents = derive_job_documents(state.mail_groups)
        await draft_store.save(state)
        return state

    async def get_state(self, session_id: str) -> WorkspaceState:
        state, _ = await self.open(session_id)
        return state

    async def reset(self, session_id: str) -> WorkspaceState:
        state, draft_store = await self.open(session_id)
        self.tracker.release(state.mail_groups)
        await draft_store.clear()
        logger.info("Workspace draft reset", session_id=session_id)
        return self._fresh_state()

    # ------------------------------------------------------------------
    # Job details and navigation
    # ------------------------------------------------------------------

    async def update_job_details(self, session_id: str, changes: dict[str, Any]) -> WorkspaceState:
        """Apply job detail edits; selection changes re-synthesize the mail groups."""
        state, draft_store = await self.open(session_id)

        for field_name in JOB_DETAIL_FIELDS:
            if changes.get(field_name) is not None:
                setattr(state.job_data, field_name, changes[field_name])

        senders = changes.get("sender_organization_ids")
        recipients = changes.get("recipient_organization_ids")
        if senders is not None or recipients is not None:
            if senders is not None:
                state.job_data.sender_organization_ids = list(dict.fromkeys(senders))
            if recipients is not None:
                state.job_data.recipient_organization_ids = list(dict.fromkeys(recipients))
            state.mail_groups = synthesize_mail_groups(
                state.mail_groups,
                state.job_data.sender_organization_ids,
                state.job_data.recipient_organization_ids,
                state.organizations,
                state.enterprises,
            )

        return await self._commit(state, draft_store)

    async def advance_step(self, session_id: str) -> WorkspaceState | DispatchResult:
        """Move to the next wizard step; leaving the last step dispatches the job."""
        state, draft_store = await self.open(session_id)
        if state.wizard_step >= LAST_STEP:
            return await self.dispatch(session_id)

        check_step(state)
        state.wizard_step += 1
        logger.info("Wizard step advanced", session_id=session_id, step=state.wizard_step)
        return await self._commit(state, draft_store)

    async def go_back(self, session_id: str, step: int | None = None) -> WorkspaceState:
        state, draft_store = await self.open(session_id)
        target = state.wizard_step - 1 if step is None else step
        if target < 1 or target > state.wizard_step:
            raise WorkspaceValidationError(f"Cannot go back to step {target}")
        state.wizard_step = target
        return await self._commit(state, draft_store)

    # ------------------------------------------------------------------
    # Group edits
    # ------------------------------------------------------------------

    async def edit_group(self, session_id: str, operation: Callable[[WorkspaceState], Any]) -> WorkspaceState:
        """Run a participant editor operation, then write selections back to the job data."""
        state, draft_store = await self.open(session_id)
        operation(state)
        sync_job_selections(state.job_data, state.mail_groups)
        return await self._commit(state, draft_store)

    async def change_organization(self, session_id: str, group_id: str, role: str, organization_id: str):
        return await self.edit_group(
            session_id,
            lambda state: participant_editor.change_organization(state, group_id, role, organization_id),
        )

    async def update_participant(self, session_id: str, group_id: str, role: str, changes: dict[str, Any]):
        return await self.edit_group(
            session_id, lambda state: participant_editor.update_participant(state, group_id, role, changes)
        )

    async def swap_participants(self, session_id: str, group_id: str):
        return await self.edit_group(session_id, lambda state: participant_editor.swap_participants(state, group_id))

    async def toggle_mail_option(self, session_id: str, group_id: str, option: str):
        return await self.edit_group(
            session_id, lambda state: participant_editor.toggle_mail_option(state, group_id, option)
        )

    async def set_delivery_type(self, session_id: str, group_id: str, delivery_type: str):
        return await self.edit_group(
            session_id, lambda state: participant_editor.set_delivery_type(state, group_id, delivery_type)
        )

    async def set_send_mode(self, session_id: str, group_id: str, send_mode: str):
        return await self.edit_group(
            session_id, lambda state: participant_editor.set_send_mode(state, group_id, send_mode)
        )

    async def save_address_to_organization(self, session_id: str, group_id: str, role: str):
        return await self.edit_group(
            session_id, lambda state: participant_editor.save_address_to_organization(state, group_id, role)
        )

    async def add_address(self, session_id: str, group_id: str, role: str):
        return await self.edit_group(
            session_id, lambda state: participant_editor.add_address(state, group_id, role)
        )

    async def remove_address(self, session_id: str, group_id: str, role: str, address_id: str):
        return await self.edit_group(
            session_id, lambda state: participant_editor.remove_address(state, group_id, role, address_id)
        )

    async def attach_documents(self, session_id: str, group_id: str, files: list[UploadedPdf]) -> WorkspaceState:
        state, draft_store = await self.open(session_id)
        await self.tracker.attach(state, group_id, files)
        return await self._commit(state, draft_store)

    async def detach_document(self, session_id: str, group_id: str, document_id: str) -> WorkspaceState:
        state, draft_store = await self.open(session_id)
        await self.tracker.detach(state, group_id, document_id)
        return await self._commit(state, draft_store)

    # ------------------------------------------------------------------
    # Validation and dispatch
    # ------------------------------------------------------------------

    async def run_validation(self, session_id: str) -> WorkspaceState:
        state, draft_store = await self.open(session_id)
        simulator = ValidationSimulator(
            step_percent=self.validation_step_percent,
            interval_s=self.validation_interval_s,
            sleep=self.validation_sleep,
        )
        results, exceptions = await simulator.run(state.mail_task_groups)
        apply_validation_results(state, results, exceptions)
        return await self._commit(state, draft_store)

    async def fix_exception(
        self, session_id: str, group_id: str, address: str | StructuredAddress | dict
    ) -> WorkspaceState:
        state, draft_store = await self.open(session_id)
        fix_exception(state, group_id, address)
        return await self._commit(state, draft_store)

    async def skip_exception(self, session_id: str, group_id: str) -> WorkspaceState:
        state, draft_store = await self.open(session_id)
        skip_exception(state, group_id)
        return await self._commit(state, draft_store)

    async def dispatch(self, session_id: str) -> DispatchResult:
        state, draft_store = await self.open(session_id)
        result = await self.finalizer.dispatch(state, self._seed_or_empty().jobs, draft_store)
        self.tracker.release(result.dispatched_groups)
        return result

    # ------------------------------------------------------------------
    # Search, summary, detail hand-off
    # ------------------------------------------------------------------

    async def search(self, session_id: str, filters: MailGroupFilters) -> list[MailGroup]:
        state, draft_store = await self.open(session_id)
        state.filters = filters
        await self._commit(state, draft_store)
        return filter_mail_groups(state.mail_groups, filters, state.enterprises, state.organizations)

    async def summary(self, session_id: str) -> dict:
        state, _ = await self.open(session_id)
        return build_wizard_summary(state)

    async def open_mail_detail(self, session_id: str, group_id: str, return_path: str | None = None) -> MailGroup:
        state, draft_store = await self.open(session_id)
        group = state.find_group(group_id)
        if group is None:
            raise MailGroupNotFoundError(group_id)
        await draft_store.save_mail_detail(group, state.enterprises, state.organizations, return_path)
        return group

    async def load_mail_detail(self, session_id: str) -> MailDetailSnapshot:
        return await self.draft_store(session_id).load_mail_detail()

    # ------------------------------------------------------------------
    # Job history
    # ------------------------------------------------------------------

    def _seed_or_empty(self) -> SeedData:
        try:
            return self.load_seed()
        except SeedLoadError as e:
            logger.error("Seed data unavailable", path=str(e.path), reason=e.reason)
            return SeedData()

    async def list_jobs(self) -> list[Job]:
        return await self.history.merged_with(self._seed_or_empty().jobs)

    async def dashboard_kpis(self, today: date | None = None) -> dict:
        return calculate_dashboard_kpis(await self.list_jobs(), today)

    async def search_archive(self, query: str = "", status: str = "all", sent_date: str | None = None) -> list[Job]:
        return filter_archive(await self.list_jobs(), query, status, sent_date)

    async def report_summary(self) -> dict:
        return calculate_report_summary(await self.list_jobs())

    async def all_mail_groups(self, jobs: list[Job]) -> list[MailGroup]:
        """Seed groups plus every group recorded at dispatch time."""
        groups = list(self._seed_or_empty().mail_groups)
        for job in jobs:
            dispatched, _ = await self.history.load_dispatch(job.id)
            groups = merge_groups_by_id(groups, dispatched)
        return groups

    async def report(self, report_type: str) -> dict:
        jobs = await self.list_jobs()
        return build_report(report_type, jobs, await self.all_mail_groups(jobs))

    async def tracking(self, job_id: str) -> tuple[Job, list[MailGroup], list[TrackingEvent]]:
        """Job, its mail groups and its timeline for the tracking view."""
        job = next((job for job in await self.list_jobs() if job.id == job_id), None)
        if job is None:
            raise JobNotFoundError(job_id)

        groups, timeline = await self.history.load_dispatch(job_id)
        seed = self._seed_or_empty()
        if not groups:
            groups = [group for group in seed.mail_groups if group.job_id == job_id]
        if not timeline:
            timeline = list(seed.tracking_events)
        if not timeline and job.sent_date:
            try:
                timeline = build_timeline_for_job(parse_sent_date(job.sent_date))
            except ValueError:
                logger.warning("Job has an unparseable sent date", job_id=job_id, sent_date=job.sent_date)
        return job, groups, timeline

    async def refresh_tracking(self, job_id: str) -> tuple[Job, list[MailGroup], list[TrackingEvent]]:
        """Re-check delivery status of the job's in-transit groups."""
        job, groups, timeline = await self.tracking(job_id)
        job = await self.history.refresh_status(job, groups, timeline, self.clock(), self.rng)
        return job, groups, timeline
