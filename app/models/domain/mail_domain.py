# app/models/domain/mail_domain.py
"""
Mail Workspace Domain Models
Records shared by the seed loader, the wizard services and the API layer.

Field names are snake_case in Python and camelCase on the wire so the seed
file and the persisted session/local storage blobs keep their original shape.
"""

from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

ParticipantRole = Literal["sender", "recipient"]
SendMode = Literal["grouped", "individual"]

DEFAULT_DELIVERY_TYPE = "Certified Mail"
DEFAULT_PRIORITY = "standard"


class MailGroupStatus(str, Enum):
    """Lifecycle states of a mail group."""

    PENDING = "pending"
    VALID = "valid"
    EXCEPTION = "exception"
    MANUAL_REVIEW = "manual-review"
    IN_TRANSIT = "in-transit"
    DELIVERED = "delivered"


class CamelModel(BaseModel):
    """Base model serialising to camelCase keys."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    def to_storage(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class StructuredAddress(CamelModel):
    id: str | None = None
    label: str | None = None
    street_address: str = ""
    city: str = ""
    state: str = ""
    county: str = ""
    country: str = ""
    postal_code: str = ""
    default: bool | None = None


class Organization(CamelModel):
    id: str
    name: str = ""
    addresses: list[StructuredAddress] = Field(default_factory=list)

    def primary_address(self) -> StructuredAddress | None:
        """Default address if flagged, otherwise the first one on file."""
        for address in self.addresses:
            if address.default:
                return address
        return self.addresses[0] if self.addresses else None


class Enterprise(CamelModel):
    id: str
    name: str = ""
    contact: str = ""
    email: str = ""
    phone: str = ""
    sender_organizations: list[str] = Field(default_factory=list)
    recipient_organizations: list[str] = Field(default_factory=list)


class Participant(CamelModel):
    enterprise_id: str | None = None
    organization_id: str | None = None
    organization_name: str = ""
    contact_name: str = ""
    email: str = ""
    phone: str = ""
    address_id: str | None = None
    address: StructuredAddress | None = None


class Document(CamelModel):
    id: str
    name: str = ""
    display_name: str | None = None
    pages: int | None = None
    size: str | None = None
    uploaded_at: str | None = None
    file_name: str | None = None
    file_url: str | None = None
    reference_key: str | None = None
    source: Literal["seed", "upload"] | None = None
    cache_key: str | None = None

    @property
    def label(self) -> str:
        return self.display_name or self.name

    @property
    def reference(self) -> str | None:
        return self.reference_key or self.file_name or self.name or None


class MailOptions(CamelModel):
    certified_receipt: bool = True
    return_envelope: bool = False
    delivery_confirmation: bool = True
    cover_letter: bool = False


class MailGroup(CamelModel):
    id: str
    task_id: str = ""
    name: str = ""
    recipient_name: str = ""
    status: str = MailGroupStatus.PENDING.value
    delivery_type: str = DEFAULT_DELIVERY_TYPE
    send_mode: SendMode = "grouped"
    documents: list[Document] = Field(default_factory=list)
    mail_options: MailOptions = Field(default_factory=MailOptions)
    sender: Participant = Field(default_factory=Participant)
    recipient: Participant = Field(default_factory=Participant)
    address: str = ""
    tracking_number: str | None = None
    delivered_date: str | None = None
    exception_reason: str | None = None
    job_id: str | None = None
    notes: str = ""

    @property
    def is_dispatched(self) -> bool:
        return bool(self.job_id)

    @property
    def is_mail_task(self) -> bool:
        """Editable group with at least one attached document."""
        return not self.job_id and len(self.documents) > 0

    @property
    def sender_org_id(self) -> str | None:
        return self.sender.organization_id or None

    @property
    def recipient_org_id(self) -> str | None:
        return self.recipient.organization_id or None


class Job(CamelModel):
    id: str
    name: str
    status: str
    sent_date: str | None = None
    items: int = 0
    delivered: int = 0
    in_transit: int = 0
    exceptions: int = 0
    priority: str = DEFAULT_PRIORITY


class TrackingEvent(CamelModel):
    timestamp: str
    event: str
    location: str = ""
    signature: str | None = None


class AddressException(CamelModel):
    group_id: str
    name: str = ""
    address: str = ""
    issue: str
    suggested_fix: str


class WizardJobData(CamelModel):
    job_name: str = ""
    due_date: str = ""
    priority: str = DEFAULT_PRIORITY
    notes: str = ""
    sender_organization_ids: list[str] = Field(default_factory=list)
    recipient_organization_ids: list[str] = Field(default_factory=list)
    documents: list[str] = Field(default_factory=list)


class ValidationPhase(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETE = "complete"


class ValidationState(CamelModel):
    phase: ValidationPhase = ValidationPhase.IDLE
    progress: int = 0
    address_exceptions: list[AddressException] = Field(default_factory=list)


class MailGroupFilters(CamelModel):
    query: str = ""
    client: str = "all"
    organization: str = "all"


class WorkspaceState(CamelModel):
    """Everything the wizard needs for one workspace session."""

    job_data: WizardJobData = Field(default_factory=WizardJobData)
    mail_groups: list[MailGroup] = Field(default_factory=list)
    validation: ValidationState = Field(default_factory=ValidationState)
    filters: MailGroupFilters = Field(default_factory=MailGroupFilters)
    wizard_step: int = 1
    enterprises: list[Enterprise] = Field(default_factory=list)
    organizations: list[Organization] = Field(default_factory=list)
    uploaded_files: list[Document] = Field(default_factory=list)
    data_error: str | None = None

    @property
    def editable_groups(self) -> list[MailGroup]:
        return [group for group in self.mail_groups if not group.is_dispatched]

    @property
    def mail_task_groups(self) -> list[MailGroup]:
        return [group for group in self.mail_groups if group.is_mail_task]

    def find_group(self, group_id: str) -> MailGroup | None:
        return next((group for group in self.mail_groups if group.id == group_id), None)

    def find_organization(self, organization_id: str | None) -> Organization | None:
        if not organization_id:
            return None
        return next((org for org in self.organizations if org.id == organization_id), None)
