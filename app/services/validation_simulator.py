"""
Validation Simulator
Simulated address validation for mail tasks.

There is no address verification service behind this: progress advances in
fixed steps and, on completion, every third mail task (index 0, 3, 6, ...) is
flagged as an address exception. Everything else is marked valid.

The simulator is an explicit async task. ``tick()`` advances one step
synchronously so tests can drive it without a clock; ``run()`` awaits an
injected ``sleep`` between ticks.
"""

import asyncio
from collections.abc import Awaitable, Callable

from app.infrastructure.observability.logging import get_logger
from app.models.domain.mail_domain import (
    AddressException,
    MailGroup,
    MailGroupStatus,
    StructuredAddress,
    ValidationPhase,
    ValidationState,
    WorkspaceState,
)
from app.services.workspace_errors import MailGroupNotFoundError, WorkspaceValidationError
from app.utils.address_helpers import format_structured_address, normalize_structured_address

logger = get_logger(__name__)

EXCEPTION_INTERVAL = 3
EXCEPTION_REASON = "Validation exception"
EXCEPTION_ISSUE = "Suite number missing - Business address requires suite/unit number"
MANUAL_REVIEW_REASON = "Marked for manual review"
NO_TASKS_MESSAGE = (
    "Upload documents to at least one sender & recipient group before running address validation."
)


def suggest_fix(address: str) -> str:
    return address if "Suite" in address else f"{address}, Suite 100"


def classify_groups(groups: list[MailGroup]) -> tuple[list[MailGroup], list[AddressException]]:
    """Return updated copies of ``groups`` and the exceptions raised for them."""
    updated = []
    exceptions = []
    for index, group in enumerate(groups):
        is_exception = index % EXCEPTION_INTERVAL == 0
        result = group.model_copy(
            update={
                "status": MailGroupStatus.EXCEPTION.value if is_exception else MailGroupStatus.VALID.value,
                "exception_reason": EXCEPTION_REASON if is_exception else None,
            },
            deep=True,
        )
        updated.append(result)
        if is_exception:
            exceptions.append(
                AddressException(
                    group_id=result.id,
                    name=result.name,
                    address=result.address,
                    issue=EXCEPTION_ISSUE,
                    suggested_fix=suggest_fix(result.address),
                )
            )
    return updated, exceptions


class ValidationSimulator:
    """idle -> running (progress += step every interval) -> complete."""

    def __init__(
        self,
        step_percent: int = 10,
        interval_s: float = 0.15,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if step_percent <= 0:
            raise ValueError("step_percent must be positive")
        self.step_percent = step_percent
        self.interval_s = interval_s
        self.sleep = sleep
        self.phase = ValidationPhase.IDLE
        self.progress = 0
        self._snapshot: list[MailGroup] = []
        self.results: list[MailGroup] = []
        self.exceptions: list[AddressException] = []

    def start(self, groups: list[MailGroup]) -> None:
        """Begin a run over a snapshot of ``groups`` (the current mail tasks)."""
        if not groups:
            raise WorkspaceValidationError(NO_TASKS_MESSAGE)
        self._snapshot = [group.model_copy(deep=True) for group in groups]
        self.results = []
        self.exceptions = []
        self.progress = 0
        self.phase = ValidationPhase.RUNNING
        logger.info("Address validation started", groups=len(groups))

    def tick(self) -> bool:
        """Advance one step. Returns True once the run is complete."""
        if self.phase is ValidationPhase.COMPLETE:
            return True
        if self.phase is not ValidationPhase.RUNNING:
            raise RuntimeError("validation has not been started")

        self.progress = min(self.progress + self.step_percent, 100)
        if self.progress >= 100:
            self.results, self.exceptions = classify_groups(self._snapshot)
            self.phase = ValidationPhase.COMPLETE
            logger.info(
                "Address validation complete",
                groups=len(self.results),
                exceptions=len(self.exceptions),
            )
            return True
        return False

    async def run(
        self,
        groups: list[MailGroup],
        on_progress: Callable[[int], None] | None = None,
    ) -> tuple[list[MailGroup], list[AddressException]]:
        self.start(groups)
        while True:
            await self.sleep(self.interval_s)
            done = self.tick()
            if on_progress is not None:
                on_progress(self.progress)
            if done:
                return self.results, self.exceptions


def apply_validation_results(
    state: WorkspaceState, results: list[MailGroup], exceptions: list[AddressException]
) -> None:
    """Merge classified groups back into the state by id."""
    by_id = {group.id: group for group in results}
    state.mail_groups = [by_id.get(group.id, group) for group in state.mail_groups]
    state.validation = ValidationState(
        phase=ValidationPhase.COMPLETE,
        progress=100,
        address_exceptions=exceptions,
    )


def _open_exception_group(state: WorkspaceState, group_id: str) -> MailGroup:
    group = state.find_group(group_id)
    if group is None:
        raise MailGroupNotFoundError(group_id)
    if group.is_dispatched:
        raise WorkspaceValidationError(f"Mail group '{group_id}' was already dispatched and can no longer be edited.")
    if not any(exception.group_id == group_id for exception in state.validation.address_exceptions):
        raise WorkspaceValidationError(f"Mail group '{group_id}' has no open address exception.")
    return group


def _close_exception(state: WorkspaceState, group_id: str) -> None:
    state.validation.address_exceptions = [
        exception for exception in state.validation.address_exceptions if exception.group_id != group_id
    ]


def skip_exception(state: WorkspaceState, group_id: str) -> MailGroup:
    """Send a flagged group to manual review; its address is left as is."""
    group = _open_exception_group(state, group_id)
    group.status = MailGroupStatus.MANUAL_REVIEW.value
    group.exception_reason = MANUAL_REVIEW_REASON
    _close_exception(state, group_id)
    logger.info("Address exception skipped", group_id=group_id)
    return group


def fix_exception(
    state: WorkspaceState, group_id: str, new_address: str | StructuredAddress | dict
) -> MailGroup:
    """Apply a corrected address (freeform or structured) and mark the group valid."""
    group = _open_exception_group(state, group_id)

    if isinstance(new_address, str):
        group.address = new_address
    else:
        structured = normalize_structured_address(new_address)
        group.address = format_structured_address(structured)
        group.recipient.address = structured
        group.recipient.address_id = structured.id or group.recipient.address_id

    group.status = MailGroupStatus.VALID.value
    group.exception_reason = None
    _close_exception(state, group_id)
    logger.info("Address exception fixed", group_id=group_id)
    return group
