"""
End-to-end wizard flow through the HTTP API, plus the job history endpoints.
"""

import json
from datetime import UTC, datetime

import pytest

from app.services.validation_simulator import NO_TASKS_MESSAGE
from app.services.workspace_service import SELECT_SENDER_MESSAGE, UPLOAD_DOCUMENTS_MESSAGE

PDF_BYTES = b"%PDF-1.4\n%test document\n"
SESSION = {"X-Workspace-Session": "flow-1"}


def _pdf(name: str = "letter.pdf"):
    return ("files", (name, PDF_BYTES, "application/pdf"))


def _group(state: dict, group_id: str) -> dict:
    return next(group for group in state["mailGroups"] if group["id"] == group_id)


@pytest.fixture
def selected(client):
    """Session with ORG-A sending to ORG-B and ORG-C."""
    response = client.patch(
        "/api/workspace/job",
        json={
            "jobName": "Spring Notices",
            "senderOrganizationIds": ["ORG-A"],
            "recipientOrganizationIds": ["ORG-B", "ORG-C"],
        },
        headers=SESSION,
    )
    assert response.status_code == 200
    return response.json()


def test_initial_workspace_from_seed(client):
    response = client.get("/api/workspace", headers=SESSION)

    assert response.status_code == 200
    state = response.json()
    assert state["wizardStep"] == 1
    assert [group["id"] for group in state["mailGroups"]] == ["MAIL-SEED-1"]
    assert state["mailTaskCount"] == 0
    assert [org["id"] for org in state["organizations"]] == ["ORG-A", "ORG-B", "ORG-C", "ORG-D"]


def test_selection_synthesizes_groups(selected):
    assert [group["id"] for group in selected["mailGroups"]] == ["MAIL-SEED-1", "MAIL-ORGA-ORGB", "MAIL-ORGA-ORGC"]
    assert selected["jobData"]["jobName"] == "Spring Notices"
    assert _group(selected, "MAIL-ORGA-ORGB")["taskId"] == ""


def test_step_one_requires_selections(client):
    response = client.post("/api/workspace/steps/next", headers=SESSION)

    assert response.status_code == 400
    assert response.json() == {"message": SELECT_SENDER_MESSAGE}


def test_step_two_requires_documents(client, selected):
    assert client.post("/api/workspace/steps/next", headers=SESSION).json()["state"]["wizardStep"] == 2

    response = client.post("/api/workspace/steps/next", headers=SESSION)

    assert response.status_code == 400
    assert response.json() == {"message": UPLOAD_DOCUMENTS_MESSAGE}


def test_full_wizard_flow(client, selected):
    client.post("/api/workspace/steps/next", headers=SESSION)

    for group_id in ("MAIL-ORGA-ORGB", "MAIL-ORGA-ORGC"):
        response = client.post(f"/api/workspace/groups/{group_id}/documents", files=[_pdf()], headers=SESSION)
        assert response.status_code == 200

    state = response.json()
    assert state["mailTaskCount"] == 2
    assert _group(state, "MAIL-ORGA-ORGC")["taskId"] == "TASK-ORGA-ORGC"
    assert state["jobData"]["documents"] == ["letter.pdf"]

    state = client.post("/api/workspace/steps/next", headers=SESSION).json()["state"]
    assert state["wizardStep"] == 3

    state = client.post("/api/workspace/validation", headers=SESSION).json()
    assert state["validation"]["phase"] == "complete"
    assert state["validation"]["progress"] == 100
    assert [exc["groupId"] for exc in state["validation"]["addressExceptions"]] == ["MAIL-ORGA-ORGB"]
    assert _group(state, "MAIL-ORGA-ORGB")["status"] == "exception"
    assert _group(state, "MAIL-ORGA-ORGC")["status"] == "valid"

    state = client.post(
        "/api/workspace/validation/exceptions/MAIL-ORGA-ORGB/fix",
        json={"address": "22 Bravo Blvd, Suite 100"},
        headers=SESSION,
    ).json()
    assert _group(state, "MAIL-ORGA-ORGB")["address"] == "22 Bravo Blvd, Suite 100"
    assert state["validation"]["addressExceptions"] == []

    state = client.post("/api/workspace/steps/next", headers=SESSION).json()["state"]
    assert state["wizardStep"] == 4

    summary = client.get("/api/workspace/summary", headers=SESSION).json()
    assert summary["mailTasks"] == 2
    assert summary["estimatedCost"] == "15.90"
    assert summary["recipientStats"]["total"] == 2

    response = client.post("/api/workspace/steps/next", headers=SESSION)
    assert response.status_code == 200
    dispatch = response.json()["dispatch"]
    job_id = dispatch["job"]["id"]
    assert job_id.startswith("JOB-SPRING-")
    assert dispatch["redirectTo"] == f"/track-mail/{job_id}"
    assert dispatch["job"]["items"] == 2
    assert dispatch["job"]["exceptions"] == 0
    assert {group["trackingNumber"] for group in dispatch["dispatchedGroups"]} == {
        f"TRK-{job_id.rsplit('-', 1)[1]}-0002",
        f"TRK-{job_id.rsplit('-', 1)[1]}-0003",
    }

    state = client.get("/api/workspace", headers=SESSION).json()
    assert state["wizardStep"] == 1
    assert state["jobData"]["jobName"] == ""
    assert [group["id"] for group in state["mailGroups"]] == ["MAIL-SEED-1"]

    jobs = client.get("/api/jobs").json()
    assert jobs["total"] == 3
    assert jobs["jobs"][0]["id"] == job_id

    tracking = client.get(f"/api/jobs/{job_id}/tracking").json()
    assert [group["id"] for group in tracking["mailGroups"]] == ["MAIL-ORGA-ORGB", "MAIL-ORGA-ORGC"]
    assert all(group["status"] == "in-transit" for group in tracking["mailGroups"])
    assert [event["event"] for event in tracking["timeline"]] == [
        "Label Created",
        "Picked Up",
        "In Transit",
        "Out for Delivery",
    ]


def test_skip_exception_sends_group_to_manual_review(client, selected):
    client.post("/api/workspace/groups/MAIL-ORGA-ORGB/documents", files=[_pdf()], headers=SESSION)
    client.post("/api/workspace/validation", headers=SESSION)

    state = client.post("/api/workspace/validation/exceptions/MAIL-ORGA-ORGB/skip", headers=SESSION).json()

    assert _group(state, "MAIL-ORGA-ORGB")["status"] == "manual-review"
    assert state["validation"]["addressExceptions"] == []


def test_validation_without_tasks(client, selected):
    response = client.post("/api/workspace/validation", headers=SESSION)

    assert response.status_code == 400
    assert response.json() == {"message": NO_TASKS_MESSAGE}


def test_dispatch_without_tasks(client, selected):
    response = client.post("/api/workspace/dispatch", headers=SESSION)

    assert response.status_code == 400
    assert client.get("/api/jobs").json()["total"] == 2


def test_non_pdf_uploads_are_ignored(client, selected):
    state = client.post(
        "/api/workspace/groups/MAIL-ORGA-ORGB/documents",
        files=[("files", ("notes.txt", b"hello", "text/plain"))],
        headers=SESSION,
    ).json()

    assert _group(state, "MAIL-ORGA-ORGB")["documents"] == []


def test_detach_document(client, selected):
    state = client.post(
        "/api/workspace/groups/MAIL-ORGA-ORGB/documents", files=[_pdf()], headers=SESSION
    ).json()
    document_id = _group(state, "MAIL-ORGA-ORGB")["documents"][0]["id"]

    state = client.delete(
        f"/api/workspace/groups/MAIL-ORGA-ORGB/documents/{document_id}", headers=SESSION
    ).json()

    group = _group(state, "MAIL-ORGA-ORGB")
    assert group["documents"] == []
    assert group["taskId"] == ""

    response = client.delete(f"/api/workspace/groups/MAIL-ORGA-ORGB/documents/{document_id}", headers=SESSION)
    assert response.status_code == 404


def test_group_edits(client, selected):
    base = "/api/workspace/groups/MAIL-ORGA-ORGB"

    state = client.put(
        f"{base}/organization", json={"role": "recipient", "organizationId": "ORG-C"}, headers=SESSION
    ).json()
    assert _group(state, "MAIL-ORGA-ORGB")["name"] == "Charlie LLC"
    assert state["jobData"]["recipientOrganizationIds"] == ["ORG-C"]

    state = client.patch(
        f"{base}/participant", json={"role": "recipient", "contactName": "Dana Cruz"}, headers=SESSION
    ).json()
    assert _group(state, "MAIL-ORGA-ORGB")["recipientName"] == "Dana Cruz"

    state = client.post(f"{base}/options/toggle", json={"option": "coverLetter"}, headers=SESSION).json()
    assert _group(state, "MAIL-ORGA-ORGB")["mailOptions"]["coverLetter"] is True

    state = client.put(f"{base}/delivery-type", json={"deliveryType": "Overnight"}, headers=SESSION).json()
    assert _group(state, "MAIL-ORGA-ORGB")["deliveryType"] == "Overnight"

    state = client.put(f"{base}/send-mode", json={"sendMode": "individual"}, headers=SESSION).json()
    assert _group(state, "MAIL-ORGA-ORGB")["sendMode"] == "individual"

    state = client.post(f"{base}/swap", headers=SESSION).json()
    assert _group(state, "MAIL-ORGA-ORGB")["sender"]["organizationId"] == "ORG-C"


def test_save_address_to_organization(client, selected):
    base = "/api/workspace/groups/MAIL-ORGA-ORGB"
    client.patch(
        f"{base}/participant", json={"role": "recipient", "streetAddress": "30 Bravo Blvd"}, headers=SESSION
    )

    response = client.post(f"{base}/save-address", json={"role": "recipient"}, headers=SESSION)

    assert response.status_code == 200
    organization = response.json()
    assert organization["id"] == "ORG-B"
    assert [address["streetAddress"] for address in organization["addresses"]] == ["20 Bravo Blvd", "30 Bravo Blvd"]

    state = client.get("/api/workspace", headers=SESSION).json()
    saved = next(org for org in state["organizations"] if org["id"] == "ORG-B")
    assert saved["addresses"][1]["streetAddress"] == "30 Bravo Blvd"


def test_invalid_edit_payloads(client, selected):
    base = "/api/workspace/groups/MAIL-ORGA-ORGB"

    assert client.post(f"{base}/options/toggle", json={"option": "giftWrap"}, headers=SESSION).status_code == 422
    assert client.put(f"{base}/send-mode", json={"sendMode": "bulk"}, headers=SESSION).status_code == 422
    assert client.post(f"{base}/swap", headers=SESSION).status_code == 200


def test_dispatched_group_is_read_only(client):
    response = client.post("/api/workspace/groups/MAIL-SEED-1/swap", headers=SESSION)

    assert response.status_code == 400


def test_unknown_group_returns_404(client, selected):
    response = client.put(
        "/api/workspace/groups/MAIL-404/delivery-type", json={"deliveryType": "Overnight"}, headers=SESSION
    )

    assert response.status_code == 404
    assert response.json() == {"message": "Mail group 'MAIL-404' not found"}


def test_go_back(client, selected):
    client.post("/api/workspace/steps/next", headers=SESSION)

    state = client.post("/api/workspace/steps/back", json={}, headers=SESSION).json()
    assert state["wizardStep"] == 1

    response = client.post("/api/workspace/steps/back", json={"step": 3}, headers=SESSION)
    assert response.status_code == 400


def test_search_mail_groups(client, selected):
    response = client.post("/api/workspace/search", json={"query": "charlie"}, headers=SESSION)

    assert response.status_code == 200
    assert [group["id"] for group in response.json()["groups"]] == ["MAIL-ORGA-ORGC"]
    assert client.get("/api/workspace", headers=SESSION).json()["filters"]["query"] == "charlie"


def test_mail_detail_handoff(client, selected):
    response = client.post(
        "/api/workspace/groups/MAIL-ORGA-ORGB/detail", json={"returnPath": "/mail-groups"}, headers=SESSION
    )
    assert response.status_code == 200

    detail = client.get("/api/workspace/detail", headers=SESSION).json()

    assert detail["group"]["id"] == "MAIL-ORGA-ORGB"
    assert detail["returnPath"] == "/mail-groups"
    assert [enterprise["id"] for enterprise in detail["enterprises"]] == ["ENT-1"]


def test_reset_workspace(client, selected):
    state = client.delete("/api/workspace", headers=SESSION).json()

    assert state["jobData"]["jobName"] == ""
    assert client.get("/api/workspace", headers=SESSION).json()["jobData"]["jobName"] == ""


def test_sessions_are_isolated(client, selected):
    other = client.get("/api/workspace", headers={"X-Workspace-Session": "flow-2"}).json()

    assert other["jobData"]["jobName"] == ""
    assert [group["id"] for group in other["mailGroups"]] == ["MAIL-SEED-1"]


def test_invalid_session_header(client):
    response = client.get("/api/workspace", headers={"X-Workspace-Session": "not valid!"})

    assert response.status_code == 400


def test_missing_seed_reports_data_error(client, seed_path):
    seed_path.unlink()

    state = client.get("/api/workspace", headers=SESSION).json()

    assert state["dataError"]
    assert state["mailGroups"] == []


def test_job_list_kpis_and_archive(client):
    jobs = client.get("/api/jobs").json()
    assert [job["id"] for job in jobs["jobs"]] == ["JOB-SEED-2", "JOB-SEED-1"]

    kpis = client.get("/api/jobs/kpis", params={"today": "2024-02-20"}).json()
    assert kpis == {"activeJobs": 1, "itemsInTransit": 4, "deliveredToday": 1, "exceptions": 1}

    archive = client.get("/api/jobs/archive", params={"q": "spring"}).json()
    assert [job["id"] for job in archive["jobs"]] == ["JOB-SEED-2"]

    archive = client.get("/api/jobs/archive", params={"status": "delivered", "date": "2024-01-10"}).json()
    assert [job["id"] for job in archive["jobs"]] == ["JOB-SEED-1"]


def test_reports(client):
    summary = client.get("/api/jobs/reports/summary").json()
    assert summary["totalMailSent"] == 15
    assert summary["deliveryRate"] == "66.7"
    assert summary["estimatedSpend"] == 119.25

    delivery = client.get("/api/jobs/reports/delivery").json()
    assert delivery["title"] == "Delivery Performance Report"

    exception = client.get("/api/jobs/reports/exception").json()
    assert exception["type"] == "exception"

    response = client.get("/api/jobs/reports/weekly")
    assert response.status_code == 400
    assert response.json() == {"message": "Unknown report type 'weekly'"}


def test_seed_job_tracking(client):
    tracking = client.get("/api/jobs/JOB-SEED-1/tracking").json()

    assert tracking["job"]["id"] == "JOB-SEED-1"
    assert [group["id"] for group in tracking["mailGroups"]] == ["MAIL-SEED-1"]
    assert tracking["timeline"][0]["timestamp"] == "2024-01-09 20:00"


def test_unknown_job_tracking(client):
    response = client.get("/api/jobs/JOB-NOPE/tracking")

    assert response.status_code == 404
    assert response.json() == {"message": "Job 'JOB-NOPE' not found"}


class AlwaysDelivers:
    def random(self):
        return 0.9


def _dispatch_one(client) -> str:
    client.post("/api/workspace/groups/MAIL-ORGA-ORGB/documents", files=[_pdf()], headers=SESSION)
    response = client.post("/api/workspace/dispatch", headers=SESSION)
    assert response.status_code == 200
    return response.json()["job"]["id"]


def test_deselected_seed_group_stays_removed(client, seed_payload, seed_path):
    seed_payload["recipients"].append(
        {
            "id": "MAIL-SEED-2",
            "name": "Bravo Corp",
            "recipientName": "Bravo Corp",
            "status": "pending",
            "senderEnterpriseId": "ENT-1",
            "senderOrganizationId": "ORG-A",
            "recipientEnterpriseId": "ENT-1",
            "recipientOrganizationId": "ORG-B",
            "address": "20 Bravo Blvd, Peoria, IL, 61602 • Peoria • USA",
        }
    )
    seed_path.write_text(json.dumps(seed_payload), encoding="utf-8")
    assert [group["id"] for group in client.get("/api/workspace", headers=SESSION).json()["mailGroups"]] == [
        "MAIL-SEED-1",
        "MAIL-SEED-2",
    ]

    client.patch(
        "/api/workspace/job",
        json={"senderOrganizationIds": ["ORG-A"], "recipientOrganizationIds": ["ORG-C"]},
        headers=SESSION,
    )

    state = client.get("/api/workspace", headers=SESSION).json()
    assert [group["id"] for group in state["mailGroups"]] == ["MAIL-SEED-1", "MAIL-ORGA-ORGC"]


def test_exception_actions_require_open_exception(client, selected):
    client.post("/api/workspace/groups/MAIL-ORGA-ORGC/documents", files=[_pdf()], headers=SESSION)

    response = client.post(
        "/api/workspace/validation/exceptions/MAIL-ORGA-ORGC/fix", json={"address": "1 Main St"}, headers=SESSION
    )
    assert response.status_code == 400

    response = client.post("/api/workspace/validation/exceptions/MAIL-SEED-1/skip", headers=SESSION)
    assert response.status_code == 400
    assert _group(client.get("/api/workspace", headers=SESSION).json(), "MAIL-SEED-1")["status"] == "delivered"


def test_add_and_remove_organization_address(client, selected):
    base = "/api/workspace/groups/MAIL-ORGA-ORGB"

    response = client.post(f"{base}/addresses", json={"role": "recipient"}, headers=SESSION)

    assert response.status_code == 200
    organization = response.json()
    assert organization["id"] == "ORG-B"
    new_address = organization["addresses"][-1]
    assert new_address["label"] == "New Address"
    state = client.get("/api/workspace", headers=SESSION).json()
    assert _group(state, "MAIL-ORGA-ORGB")["recipient"]["addressId"] == new_address["id"]

    response = client.delete(
        f"{base}/addresses/{new_address['id']}", params={"role": "recipient"}, headers=SESSION
    )

    assert response.status_code == 200
    assert [address["id"] for address in response.json()["addresses"]] == ["ADDR-B1", "ADDR-B2"]
    state = client.get("/api/workspace", headers=SESSION).json()
    assert _group(state, "MAIL-ORGA-ORGB")["recipient"]["addressId"] is None

    response = client.delete(f"{base}/addresses/ADDR-404", params={"role": "recipient"}, headers=SESSION)
    assert response.status_code == 400


def test_upload_passes_last_modified_through(client, selected):
    state = client.post(
        "/api/workspace/groups/MAIL-ORGA-ORGB/documents",
        files=[_pdf("a.pdf"), _pdf("b.pdf")],
        data={"lastModified": ["42", "77"]},
        headers=SESSION,
    ).json()

    cache_keys = [document["cacheKey"] for document in _group(state, "MAIL-ORGA-ORGB")["documents"]]
    assert cache_keys[0].startswith("a.pdf-") and cache_keys[0].endswith("-0-42")
    assert cache_keys[1].startswith("b.pdf-") and cache_keys[1].endswith("-1-77")


def test_dispatch_releases_fallback_documents(client, selected, workspace_service, monkeypatch):
    async def failing_store(*args, **kwargs):
        raise RuntimeError("cache unavailable")

    monkeypatch.setattr(workspace_service.tracker.cache, "store", failing_store)
    client.post("/api/workspace/groups/MAIL-ORGA-ORGB/documents", files=[_pdf()], headers=SESSION)
    assert len(workspace_service.tracker.object_urls) == 1

    assert client.post("/api/workspace/dispatch", headers=SESSION).status_code == 200

    assert workspace_service.tracker.object_urls == {}


def test_refresh_tracking_marks_groups_delivered(client, selected, workspace_service):
    job_id = _dispatch_one(client)
    workspace_service.rng = AlwaysDelivers()
    workspace_service.clock = lambda: datetime(2024, 6, 1, 9, 30, tzinfo=UTC)

    response = client.post(f"/api/jobs/{job_id}/refresh")

    assert response.status_code == 200
    tracking = response.json()
    assert tracking["job"]["status"] == "delivered"
    assert (tracking["job"]["delivered"], tracking["job"]["inTransit"]) == (1, 0)
    assert [(group["status"], group["deliveredDate"]) for group in tracking["mailGroups"]] == [
        ("delivered", "2024-06-01 09:30")
    ]

    stored = client.get(f"/api/jobs/{job_id}/tracking").json()
    assert stored["mailGroups"][0]["status"] == "delivered"
    assert next(job for job in client.get("/api/jobs").json()["jobs"] if job["id"] == job_id)["status"] == "delivered"


def test_refresh_unknown_job(client):
    response = client.post("/api/jobs/JOB-NOPE/refresh")

    assert response.status_code == 404
