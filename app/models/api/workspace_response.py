# app/models/api/workspace_response.py
"""
Workspace and job API response models.
Used by routes for output formatting; serialized with camelCase keys.
"""

from app.models.domain.mail_domain import (
    CamelModel,
    Document,
    Enterprise,
    Job,
    MailGroup,
    Organization,
    TrackingEvent,
    WorkspaceState,
)


class WorkspaceResponse(WorkspaceState):
    """Full wizard state plus the derived mail task count."""

    mail_task_count: int = 0

    @classmethod
    def from_state(cls, state: WorkspaceState) -> "WorkspaceResponse":
        return cls(**dict(state), mail_task_count=len(state.mail_task_groups))


class DispatchResponse(CamelModel):
    job: Job
    redirect_to: str
    dispatched_groups: list[MailGroup]
    timeline: list[TrackingEvent]


class AdvanceStepResponse(CamelModel):
    """Either the new wizard state or, after the last step, the dispatch result."""

    state: WorkspaceResponse | None = None
    dispatch: DispatchResponse | None = None


class MailGroupListResponse(CamelModel):
    groups: list[MailGroup]
    total: int


class RecipientStats(CamelModel):
    total: int
    valid_count: int
    exceptions: int
    corrected: int


class WizardSummaryResponse(CamelModel):
    mail_tasks: int
    total_documents: int
    estimated_cost: str
    delivery_mix: str
    recipient_stats: RecipientStats


class MailDetailResponse(CamelModel):
    group: MailGroup | None = None
    enterprises: list[Enterprise]
    organizations: list[Organization]
    documents: list[Document]
    return_path: str | None = None


class JobListResponse(CamelModel):
    jobs: list[Job]
    total: int


class DashboardKpisResponse(CamelModel):
    active_jobs: int
    items_in_transit: int
    delivered_today: int
    exceptions: int


class ReportSummaryResponse(CamelModel):
    total_mail_sent: int
    delivered_items: int
    delivery_rate: str
    average_delivery_time: str
    estimated_spend: float


class TrackingResponse(CamelModel):
    job: Job
    mail_groups: list[MailGroup]
    timeline: list[TrackingEvent]
