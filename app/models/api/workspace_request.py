# app/models/api/workspace_request.py
"""
Workspace API request models.
Used by routes for input validation. Keys are accepted in camelCase or
snake_case.
"""

from typing import Literal

from pydantic import Field, field_validator
from pydantic.alias_generators import to_snake

from app.models.domain.mail_domain import CamelModel, MailOptions, StructuredAddress

Role = Literal["sender", "recipient"]


class JobDetailsRequest(CamelModel):
    """Partial update of the job details step."""

    job_name: str | None = Field(default=None, max_length=200, description="Job name")
    due_date: str | None = Field(default=None, description="Due date (YYYY-MM-DD)")
    priority: str | None = Field(default=None, description="Priority label")
    notes: str | None = Field(default=None, max_length=2000, description="Free-form notes")
    sender_organization_ids: list[str] | None = Field(default=None, description="Selected sender orgs")
    recipient_organization_ids: list[str] | None = Field(default=None, description="Selected recipient orgs")


class GoBackRequest(CamelModel):
    step: int | None = Field(default=None, ge=1, le=4, description="Target step (default: previous)")


class OrganizationChangeRequest(CamelModel):
    role: Role
    organization_id: str = Field(..., min_length=1)


class ParticipantUpdateRequest(CamelModel):
    """Participant field edits. Address fields update the participant's address copy."""

    role: Role
    contact_name: str | None = None
    organization_name: str | None = None
    email: str | None = None
    phone: str | None = None
    address_id: str | None = None
    street_address: str | None = None
    city: str | None = None
    state: str | None = None
    county: str | None = None
    country: str | None = None
    postal_code: str | None = None

    def changes(self) -> dict:
        return self.model_dump(exclude={"role"}, exclude_none=True)


class RoleRequest(CamelModel):
    role: Role


class MailOptionToggleRequest(CamelModel):
    option: str = Field(..., description="Mail option name, e.g. certifiedReceipt")

    @field_validator("option")
    @classmethod
    def validate_option(cls, v: str) -> str:
        option = to_snake(v)
        if option not in MailOptions.model_fields:
            raise ValueError(f"Unknown mail option '{v}'")
        return option


class DeliveryTypeRequest(CamelModel):
    delivery_type: str = Field(..., min_length=1, max_length=100)


class SendModeRequest(CamelModel):
    send_mode: Literal["grouped", "individual"]


class FixExceptionRequest(CamelModel):
    address: str | StructuredAddress = Field(..., description="Corrected address, freeform or structured")

    @field_validator("address")
    @classmethod
    def validate_address(cls, v):
        if isinstance(v, str) and not v.strip():
            raise ValueError("Address cannot be empty")
        return v


class MailDetailRequest(CamelModel):
    return_path: str | None = Field(default=None, description="Where the detail view navigates back to")
