"""
Seed Loader
Reads the static JSON seed document and normalizes it into domain models.
"""

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any
from urllib.parse import quote

from pydantic import ValidationError

from app.infrastructure.observability.logging import get_logger
from app.models.domain.mail_domain import (
    DEFAULT_DELIVERY_TYPE,
    Document,
    Enterprise,
    Job,
    MailGroup,
    MailGroupStatus,
    MailOptions,
    Organization,
    Participant,
    TrackingEvent,
)
from app.utils.address_helpers import format_structured_address, normalize_structured_address

logger = get_logger(__name__)

SEED_ERROR_MESSAGE = "Failed to load seed data. Please check data/db.json"


class SeedLoadError(Exception):
    """Raised when the seed file cannot be read or parsed."""

    def __init__(self, path: Path, reason: str):
        super().__init__(f"Failed to load seed data from {path}: {reason}")
        self.path = path
        self.reason = reason


@dataclass(slots=True)
class SeedData:
    """Normalized seed collections."""

    enterprises: list[Enterprise] = field(default_factory=list)
    organizations: list[Organization] = field(default_factory=list)
    existing_recipients: list[dict[str, Any]] = field(default_factory=list)
    uploaded_files: list[Document] = field(default_factory=list)
    mail_groups: list[MailGroup] = field(default_factory=list)
    jobs: list[Job] = field(default_factory=list)
    tracking_events: list[TrackingEvent] = field(default_factory=list)


def pdf_url(file_name: str) -> str:
    return f"/api/pdfs/{quote(file_name, safe='')}"


def read_seed_payload(path: Path) -> dict[str, Any]:
    """Read the raw seed document; any read or parse failure is a SeedLoadError."""
    try:
        payload = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise SeedLoadError(path, str(e)) from e

    if not isinstance(payload, dict):
        raise SeedLoadError(path, "seed document must be a JSON object")
    return payload


def _normalize_uploaded_files(entries: list[Any]) -> list[Document]:
    uploaded = []
    for index, entry in enumerate(entries):
        file_name = entry.get("fileName") or entry.get("name")
        display_name = entry.get("displayName") or file_name
        uploaded.append(
            Document(
                id=entry.get("id") or f"UP-{index}",
                name=display_name or "",
                display_name=display_name,
                pages=entry.get("pages"),
                size=entry.get("size"),
                file_name=file_name,
                reference_key=file_name or display_name,
                file_url=pdf_url(file_name) if file_name else None,
                source="seed",
            )
        )
    return uploaded


def _build_lookup(uploaded: list[Document]) -> dict[str, Document]:
    lookup: dict[str, Document] = {}
    for document in uploaded:
        for key in (document.id, document.file_name, document.name, document.display_name, document.reference_key):
            if key:
                lookup[str(key)] = document
    return lookup


def _document_from_seed(
    raw: Any, group_id: str, index: int, lookup: dict[str, Document]
) -> Document | None:
    if not raw:
        return None

    if isinstance(raw, str):
        base_id = f"{group_id}-DOC-{index}"
        matched = lookup.get(raw)
        if matched:
            return matched.model_copy(update={"id": base_id, "source": "seed"})
        return Document(
            id=base_id,
            name=raw,
            display_name=raw,
            file_name=raw,
            reference_key=raw,
            source="seed",
        )

    base_id = raw.get("id") or f"{group_id}-DOC-{index}"
    reference_key = raw.get("referenceKey") or raw.get("fileName") or raw.get("name")
    matched = lookup.get(reference_key) if reference_key else None
    file_name = raw.get("fileName") or (matched.file_name if matched else None) or reference_key
    display_name = (
        raw.get("displayName")
        or raw.get("name")
        or (matched.display_name if matched else None)
        or file_name
        or f"Document {index + 1}"
    )
    file_url = raw.get("fileUrl") or (pdf_url(file_name) if file_name else (matched.file_url if matched else None))
    return Document(
        id=base_id,
        name=display_name,
        display_name=display_name,
        pages=raw.get("pages") or (matched.pages if matched else None),
        size=raw.get("size") or (matched.size if matched else None),
        file_name=file_name,
        reference_key=reference_key or display_name,
        file_url=file_url,
        source="seed",
        cache_key=raw.get("cacheKey"),
    )


def _participant_from_seed(raw: dict | None, defaults: dict[str, Any]) -> Participant:
    raw = raw or {}

    def pick(key: str) -> Any:
        value = raw.get(key)
        return value if value is not None else defaults.get(key)

    raw_address = raw.get("address") or defaults.get("address")
    return Participant(
        enterprise_id=pick("enterpriseId"),
        organization_id=pick("organizationId"),
        organization_name=pick("organizationName") or "",
        contact_name=pick("contactName") or "",
        email=pick("email") or "",
        phone=pick("phone") or "",
        address_id=raw.get("addressId") or (raw.get("address") or {}).get("id") or defaults.get("addressId"),
        address=normalize_structured_address(raw_address) if raw_address else None,
    )


def _address_dict(value: Any) -> dict | None:
    return value if isinstance(value, dict) else None


def _mail_group_from_seed(entry: dict, index: int, lookup: dict[str, Document]) -> MailGroup:
    group_id = entry.get("id") or f"REC-{index}"
    sender_address = _address_dict(entry.get("senderAddress"))
    recipient_address = _address_dict(entry.get("recipientAddress"))

    sender_defaults = {
        "enterpriseId": entry.get("senderEnterpriseId"),
        "organizationId": entry.get("senderOrganizationId"),
        "organizationName": entry.get("senderName", ""),
        "contactName": entry.get("senderContact", ""),
        "email": entry.get("senderEmail", ""),
        "phone": entry.get("senderPhone", ""),
        "addressId": (sender_address or {}).get("id") or entry.get("senderAddressId"),
        "address": sender_address,
    }
    recipient_defaults = {
        "enterpriseId": entry.get("recipientEnterpriseId"),
        "organizationId": entry.get("recipientOrganizationId") or entry.get("organizationId"),
        "organizationName": entry.get("recipientOrganizationName")
        or entry.get("recipientName")
        or entry.get("name", ""),
        "contactName": entry.get("recipientContact") or entry.get("recipientName") or entry.get("name", ""),
        "email": entry.get("email", ""),
        "phone": entry.get("phone", ""),
        "addressId": (recipient_address or {}).get("id") or entry.get("recipientAddressId"),
        "address": recipient_address,
    }
    sender = _participant_from_seed(entry.get("sender"), sender_defaults)
    recipient = _participant_from_seed(entry.get("recipient"), recipient_defaults)

    documents = [
        document
        for doc_index, raw in enumerate(entry.get("documents") or [])
        if (document := _document_from_seed(raw, group_id, doc_index, lookup)) is not None
    ]

    address = entry.get("address")
    if not isinstance(address, str) or not address:
        address = format_structured_address(recipient.address)

    return MailGroup(
        id=group_id,
        task_id=entry.get("taskId") or "",
        name=entry.get("name") or entry.get("recipientName") or "",
        recipient_name=entry.get("recipientName") or entry.get("name") or "",
        status=entry.get("status") or MailGroupStatus.IN_TRANSIT.value,
        delivery_type=entry.get("deliveryType") or DEFAULT_DELIVERY_TYPE,
        send_mode=entry.get("sendMode") or "grouped",
        documents=documents,
        mail_options=MailOptions.model_validate(entry.get("mailOptions") or {}),
        sender=sender,
        recipient=recipient,
        address=address,
        tracking_number=entry.get("trackingNumber"),
        delivered_date=entry.get("deliveredDate"),
        exception_reason=entry.get("exceptionReason"),
        job_id=entry.get("jobId"),
        notes=entry.get("notes") or "",
    )


def _valid_records(model, entries: list[Any], kind: str) -> list:
    records = []
    for entry in entries:
        try:
            records.append(model.model_validate(entry))
        except ValidationError as e:
            logger.warning("Skipping invalid seed record", kind=kind, error=str(e))
    return records


def normalize_seed(payload: dict[str, Any]) -> SeedData:
    """Turn the raw seed document into SeedData."""
    organizations = []
    for raw in payload.get("organizations") or []:
        organizations.append(
            Organization(
                id=raw["id"],
                name=raw.get("name", ""),
                addresses=[normalize_structured_address(addr) for addr in raw.get("addresses") or []],
            )
        )

    uploaded = _normalize_uploaded_files(payload.get("uploadedFiles") or [])
    lookup = _build_lookup(uploaded)
    mail_groups = [
        _mail_group_from_seed(entry, index, lookup)
        for index, entry in enumerate(payload.get("recipients") or [])
    ]

    return SeedData(
        enterprises=_valid_records(Enterprise, payload.get("enterprises") or [], "enterprise"),
        organizations=organizations,
        existing_recipients=list(payload.get("existingRecipients") or []),
        uploaded_files=uploaded,
        mail_groups=mail_groups,
        jobs=_valid_records(Job, payload.get("jobs") or [], "job"),
        tracking_events=_valid_records(TrackingEvent, payload.get("trackingEvents") or [], "tracking_event"),
    )


class SeedLoader:
    """Loads the seed file from disk on demand."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def read_payload(self) -> dict[str, Any]:
        return read_seed_payload(self.path)

    def load(self) -> SeedData:
        try:
            seed = normalize_seed(self.read_payload())
        except SeedLoadError:
            raise
        except (KeyError, TypeError, AttributeError, ValidationError) as e:
            raise SeedLoadError(self.path, f"malformed seed document: {e}") from e

        logger.info(
            "Seed data loaded",
            enterprises=len(seed.enterprises),
            organizations=len(seed.organizations),
            mail_groups=len(seed.mail_groups),
            jobs=len(seed.jobs),
        )
        return seed
