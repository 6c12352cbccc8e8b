import copy
import json

import pytest
from fastapi.testclient import TestClient

from app.config import Settings
from app.main import create_app
from app.models.domain.mail_domain import WorkspaceState
from app.services.kv_store import MemoryKeyValueStore
from app.services.pdf_cache import PdfBlobCache
from app.services.seed_loader import normalize_seed

SEED = {
    "enterprises": [
        {
            "id": "ENT-1",
            "name": "Acme Holdings",
            "contact": "Pat Lee",
            "email": "pat@acme.example",
            "phone": "555-0100",
            "senderOrganizations": ["ORG-A"],
            "recipientOrganizations": ["ORG-B", "ORG-C"],
        }
    ],
    "organizations": [
        {
            "id": "ORG-A",
            "name": "Alpha Sender",
            "addresses": [
                {
                    "id": "ADDR-A1",
                    "streetAddress": "1 Alpha Way",
                    "city": "Springfield",
                    "state": "IL",
                    "county": "Sangamon",
                    "country": "USA",
                    "postalCode": "62701",
                }
            ],
        },
        {
            "id": "ORG-B",
            "name": "Bravo Corp",
            "addresses": [
                {
                    "id": "ADDR-B1",
                    "streetAddress": "20 Bravo Blvd",
                    "city": "Peoria",
                    "state": "IL",
                    "county": "Peoria",
                    "country": "USA",
                    "postalCode": "61602",
                },
                {
                    "id": "ADDR-B2",
                    "streetAddress": "22 Bravo Blvd",
                    "city": "Peoria",
                    "state": "IL",
                    "county": "Peoria",
                    "country": "USA",
                    "postalCode": "61602",
                    "default": True,
                },
            ],
        },
        {
            "id": "ORG-C",
            "name": "Charlie LLC",
            "addresses": [
                {
                    "id": "ADDR-C1",
                    "streetAddress": "9 Charlie Rd Suite 5",
                    "city": "Chicago",
                    "state": "IL",
                    "county": "Cook",
                    "country": "USA",
                    "postalCode": "60601",
                }
            ],
        },
        {"id": "ORG-D", "name": "Delta Without Address", "addresses": []},
    ],
    "existingRecipients": [],
    "uploadedFiles": [
        {"id": "UP-1", "fileName": "notice.pdf", "displayName": "Notice", "pages": 3, "size": "0.1 MB"}
    ],
    "recipients": [
        {
            "id": "MAIL-SEED-1",
            "taskId": "TASK-SEED-1",
            "name": "Bravo Corp",
            "recipientName": "Bravo Corp",
            "status": "delivered",
            "documents": ["notice.pdf"],
            "senderEnterpriseId": "ENT-1",
            "senderOrganizationId": "ORG-A",
            "recipientEnterpriseId": "ENT-1",
            "recipientOrganizationId": "ORG-B",
            "address": "22 Bravo Blvd, Peoria, IL, 61602 • Peoria • USA",
            "trackingNumber": "TRK-SEED-0001",
            "jobId": "JOB-SEED-1",
        }
    ],
    "jobs": [
        {
            "id": "JOB-SEED-1",
            "name": "Seed Job",
            "status": "delivered",
            "sentDate": "2024-01-10",
            "items": 10,
            "delivered": 9,
            "inTransit": 0,
            "exceptions": 1,
            "priority": "high",
        },
        {
            "id": "JOB-SEED-2",
            "name": "Spring Notices",
            "status": "in-transit",
            "sentDate": "2024-02-20",
            "items": 5,
            "delivered": 1,
            "inTransit": 4,
            "exceptions": 0,
            "priority": "standard",
        },
    ],
    "trackingEvents": [],
}

PDF_BYTES = b"%PDF-1.4\n%test document\n"


class FakeRedis:
    def __init__(self):
        self.store: dict[str, str] = {}
        self.ttls: dict[str, int | None] = {}
        self.closed = False

    async def set_with_ttl(self, key: str, value: str, ttl_s: int | None = None) -> bool:
        self.store[key] = value
        self.ttls[key] = ttl_s
        return True

    async def get(self, key: str) -> str | None:
        return self.store.get(key)

    async def delete(self, key: str) -> bool:
        return self.store.pop(key, None) is not None

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        self.closed = True


async def no_sleep(_seconds: float) -> None:
    return None


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def seed_payload():
    return copy.deepcopy(SEED)


@pytest.fixture
def seed_path(tmp_path, seed_payload):
    path = tmp_path / "db.json"
    path.write_text(json.dumps(seed_payload), encoding="utf-8")
    return path


@pytest.fixture
def pdf_dir(tmp_path):
    directory = tmp_path / "pdfs"
    directory.mkdir()
    (directory / "sample.pdf").write_bytes(PDF_BYTES)
    return directory


@pytest.fixture
def test_settings(seed_path, pdf_dir):
    return Settings(
        DATA_PATH=seed_path,
        PDF_BASE_PATH=pdf_dir,
        STORAGE_BACKEND="memory",
        VALIDATION_INTERVAL_MS=0,
    )


@pytest.fixture
def local_store():
    return MemoryKeyValueStore()


@pytest.fixture
def session_backend():
    return MemoryKeyValueStore()


@pytest.fixture
def app(test_settings, local_store, session_backend):
    return create_app(test_settings, local_store, session_backend, validation_sleep=no_sleep)


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def workspace_service(app):
    return app.state.workspace_service


@pytest.fixture
def seed_data(seed_payload):
    return normalize_seed(seed_payload)


@pytest.fixture
def pdf_cache(local_store):
    return PdfBlobCache(local_store)


@pytest.fixture
def state(seed_data):
    """Fresh workspace state built from the test seed."""
    return WorkspaceState(
        enterprises=seed_data.enterprises,
        organizations=seed_data.organizations,
        uploaded_files=seed_data.uploaded_files,
        mail_groups=seed_data.mail_groups,
    )
