"""
Reports & Archive
Read-only projections over the job history and the wizard state: report
summaries, the delivery and exception report payloads, archive filtering and
the approval-step summary.
"""

from app.config import settings
from app.models.domain.mail_domain import Job, MailGroup, MailGroupStatus, WorkspaceState
from app.services.workspace_errors import WorkspaceValidationError

REPORT_TYPES = ("delivery", "exception")
REVIEW_STATUSES = (MailGroupStatus.EXCEPTION.value, MailGroupStatus.MANUAL_REVIEW.value)


class UnknownReportError(WorkspaceValidationError):
    def __init__(self, report_type: str):
        super().__init__(f"Unknown report type '{report_type}'")
        self.report_type = report_type


def _percent(numerator: int, denominator: int) -> int:
    return round(numerator / denominator * 100) if denominator else 0


def calculate_report_summary(jobs: list[Job], cost_per_item: float | None = None) -> dict:
    cost = settings.COST_PER_ITEM if cost_per_item is None else cost_per_item
    total = sum(job.items for job in jobs)
    delivered = sum(job.delivered for job in jobs)
    exceptions = sum(job.exceptions for job in jobs)

    delivery_rate = f"{delivered / total * 100:.1f}" if total else "0.0"
    average_delivery_time = 3 + min(exceptions / max(total, 1), 2)

    return {
        "total_mail_sent": total,
        "delivered_items": delivered,
        "delivery_rate": delivery_rate,
        "average_delivery_time": f"{average_delivery_time:.1f}",
        "estimated_spend": round(total * cost, 2),
    }


def build_delivery_report(jobs: list[Job]) -> dict:
    active_jobs = sum(1 for job in jobs if job.status != MailGroupStatus.DELIVERED.value)
    delivered = sum(job.delivered for job in jobs)
    items = sum(job.items for job in jobs)
    return {
        "type": "delivery",
        "title": "Delivery Performance Report",
        "metrics": [
            {"label": "Active Jobs", "value": str(active_jobs)},
            {"label": "Items Delivered", "value": str(delivered)},
            {"label": "Average Delivery Rate", "value": f"{_percent(delivered, items)}%"},
        ],
        "columns": ["Job ID", "Job Name", "Delivered", "Items", "Delivery Rate"],
        "rows": [
            {
                "id": job.id,
                "name": job.name,
                "delivered": job.delivered,
                "items": job.items,
                "rate": f"{_percent(job.delivered, job.items)}%",
            }
            for job in jobs
        ],
    }


def build_exception_report(jobs: list[Job], groups: list[MailGroup]) -> dict:
    flagged = [group for group in groups if group.status in REVIEW_STATUSES]
    return {
        "type": "exception",
        "title": "Exception Summary Report",
        "metrics": [
            {"label": "Open Exceptions", "value": str(sum(job.exceptions for job in jobs))},
            {"label": "Mail Groups Requiring Review", "value": str(len(flagged))},
            {"label": "Jobs With Exceptions", "value": str(sum(1 for job in jobs if job.exceptions > 0))},
        ],
        "columns": ["Recipient", "Address", "Status", "Documents"],
        "rows": [
            {
                "recipient": group.recipient_name or group.name,
                "address": group.address,
                "status": group.status,
                "documents": ", ".join(doc.label for doc in group.documents) or "N/A",
            }
            for group in flagged
        ],
    }


def build_report(report_type: str, jobs: list[Job], groups: list[MailGroup]) -> dict:
    if report_type == "delivery":
        return build_delivery_report(jobs)
    if report_type == "exception":
        return build_exception_report(jobs, groups)
    raise UnknownReportError(report_type)


def filter_archive(jobs: list[Job], query: str = "", status: str = "all", sent_date: str | None = None) -> list[Job]:
    """Jobs whose id or name contains ``query``, with optional status and exact date filters."""
    needle = query.strip().lower()
    return [
        job
        for job in jobs
        if (not needle or needle in job.id.lower() or needle in job.name.lower())
        and (status == "all" or job.status == status)
        and (not sent_date or job.sent_date == sent_date)
    ]


def build_wizard_summary(state: WorkspaceState, cost_per_item: float | None = None) -> dict:
    """Approval-step totals for the current mail tasks."""
    cost = settings.COST_PER_ITEM if cost_per_item is None else cost_per_item
    tasks = state.mail_task_groups
    delivery_types = list(dict.fromkeys(group.delivery_type for group in tasks if group.delivery_type))
    total = len(tasks)
    exceptions = len(state.validation.address_exceptions)
    valid_count = max(total - exceptions, 0)

    return {
        "mail_tasks": total,
        "total_documents": sum(len(group.documents) for group in tasks),
        "estimated_cost": f"{total * cost:.2f}" if total else "0.00",
        "delivery_mix": ", ".join(delivery_types) or "Not defined",
        "recipient_stats": {
            "total": total,
            "valid_count": valid_count,
            "exceptions": exceptions,
            "corrected": min(round(total * 0.1), valid_count),
        },
    }
