import pytest

from app.models.domain.mail_domain import AddressException, Document, MailGroupFilters
from app.services.mail_group_search import filter_mail_groups
from app.services.mail_group_synthesizer import synthesize_mail_groups
from app.services.report_service import (
    UnknownReportError,
    build_delivery_report,
    build_exception_report,
    build_report,
    build_wizard_summary,
    calculate_report_summary,
    filter_archive,
)


@pytest.fixture
def wizard_state(state):
    state.mail_groups = synthesize_mail_groups(
        state.mail_groups, ["ORG-A"], ["ORG-B", "ORG-C"], state.organizations, state.enterprises
    )
    return state


def _search(state, **filters):
    groups = filter_mail_groups(state.mail_groups, MailGroupFilters(**filters), state.enterprises, state.organizations)
    return [group.id for group in groups]


def test_search_excludes_dispatched_groups(wizard_state):
    assert _search(wizard_state) == ["MAIL-ORGA-ORGB", "MAIL-ORGA-ORGC"]


def test_search_by_text(wizard_state):
    assert _search(wizard_state, query="charlie") == ["MAIL-ORGA-ORGC"]
    assert _search(wizard_state, query="  PEORIA ") == ["MAIL-ORGA-ORGB"]
    assert _search(wizard_state, query="acme") == ["MAIL-ORGA-ORGB", "MAIL-ORGA-ORGC"]
    assert _search(wizard_state, query="nothing matches") == []


def test_search_by_document_name(wizard_state):
    wizard_state.find_group("MAIL-ORGA-ORGC").documents.append(
        Document(id="D1", name="invoice.pdf", display_name="Q3 Invoice")
    )

    assert _search(wizard_state, query="q3 invoice") == ["MAIL-ORGA-ORGC"]


def test_search_by_client_and_organization(wizard_state):
    assert _search(wizard_state, client="ENT-1", organization="ORG-B") == ["MAIL-ORGA-ORGB"]
    assert _search(wizard_state, client="ENT-9") == []


def test_report_summary(seed_data):
    summary = calculate_report_summary(seed_data.jobs, cost_per_item=7.95)

    assert summary == {
        "total_mail_sent": 15,
        "delivered_items": 10,
        "delivery_rate": "66.7",
        "average_delivery_time": "3.1",
        "estimated_spend": 119.25,
    }


def test_report_summary_without_jobs():
    summary = calculate_report_summary([], cost_per_item=7.95)

    assert summary["delivery_rate"] == "0.0"
    assert summary["average_delivery_time"] == "3.0"
    assert summary["estimated_spend"] == 0


def test_delivery_report(seed_data):
    report = build_delivery_report(seed_data.jobs)

    assert report["type"] == "delivery"
    assert report["metrics"] == [
        {"label": "Active Jobs", "value": "1"},
        {"label": "Items Delivered", "value": "10"},
        {"label": "Average Delivery Rate", "value": "67%"},
    ]
    assert [row["rate"] for row in report["rows"]] == ["90%", "20%"]


def test_exception_report_lists_flagged_groups(seed_data, wizard_state):
    group = wizard_state.find_group("MAIL-ORGA-ORGB")
    group.status = "manual-review"
    group.documents.append(Document(id="D1", name="a.pdf"))

    report = build_exception_report(seed_data.jobs, wizard_state.mail_groups)

    assert report["metrics"][0] == {"label": "Open Exceptions", "value": "1"}
    assert report["rows"] == [
        {"recipient": "Bravo Corp", "address": group.address, "status": "manual-review", "documents": "a.pdf"}
    ]


def test_unknown_report_type(seed_data):
    with pytest.raises(UnknownReportError):
        build_report("weekly", seed_data.jobs, [])


def test_filter_archive(seed_data):
    jobs = seed_data.jobs

    assert [job.id for job in filter_archive(jobs, query="spring")] == ["JOB-SEED-2"]
    assert [job.id for job in filter_archive(jobs, query="seed-1")] == ["JOB-SEED-1"]
    assert [job.id for job in filter_archive(jobs, status="delivered")] == ["JOB-SEED-1"]
    assert [job.id for job in filter_archive(jobs, sent_date="2024-02-20")] == ["JOB-SEED-2"]
    assert len(filter_archive(jobs)) == 2


def test_wizard_summary(wizard_state):
    wizard_state.find_group("MAIL-ORGA-ORGB").documents.extend(
        [Document(id="D1", name="a.pdf"), Document(id="D2", name="b.pdf")]
    )
    wizard_state.validation.address_exceptions = [
        AddressException(group_id="MAIL-ORGA-ORGB", issue="x", suggested_fix="y")
    ]

    summary = build_wizard_summary(wizard_state, cost_per_item=7.95)

    assert summary["mail_tasks"] == 1
    assert summary["total_documents"] == 2
    assert summary["estimated_cost"] == "7.95"
    assert summary["delivery_mix"] == "Certified Mail"
    assert summary["recipient_stats"] == {"total": 1, "valid_count": 0, "exceptions": 1, "corrected": 0}


def test_wizard_summary_without_tasks(wizard_state):
    summary = build_wizard_summary(wizard_state, cost_per_item=7.95)

    assert summary["estimated_cost"] == "0.00"
    assert summary["delivery_mix"] == "Not defined"
