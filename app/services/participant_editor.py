"""
Participant Editor
Per-group edits made from the mail group grid: organization changes,
participant fields, sender/recipient swap, mail options, delivery settings,
saving an edited address back to its organization and adding or removing
organization addresses.
"""

import time
from typing import Any

from app.infrastructure.observability.logging import get_logger
from app.models.domain.mail_domain import (
    MailGroup,
    MailOptions,
    Organization,
    Participant,
    ParticipantRole,
    SendMode,
    StructuredAddress,
    WorkspaceState,
)
from app.services.document_tracker import refresh_task_id
from app.services.workspace_errors import MailGroupNotFoundError, WorkspaceValidationError
from app.utils.address_helpers import empty_address, format_structured_address, normalize_structured_address

logger = get_logger(__name__)

PARTICIPANT_TEXT_FIELDS = {"contact_name", "email", "phone", "organization_name", "enterprise_id"}
ADDRESS_FIELDS = set(StructuredAddress.model_fields) - {"id", "label", "default"}
SEND_MODES = ("grouped", "individual")


def _editable_group(state: WorkspaceState, group_id: str) -> MailGroup:
    group = state.find_group(group_id)
    if group is None:
        raise MailGroupNotFoundError(group_id)
    if group.is_dispatched:
        raise WorkspaceValidationError(f"Mail group '{group_id}' was already dispatched and can no longer be edited.")
    return group


def _participant(group: MailGroup, role: ParticipantRole) -> Participant:
    if role not in ("sender", "recipient"):
        raise WorkspaceValidationError(f"Unknown participant role '{role}'")
    return group.sender if role == "sender" else group.recipient


def _sync_recipient_fields(group: MailGroup, display_name: str | None = None) -> None:
    """Keep the group's display name and address line in step with its recipient."""
    recipient = group.recipient
    display_name = display_name or recipient.contact_name or recipient.organization_name
    if display_name:
        group.name = display_name
        group.recipient_name = display_name
    group.address = format_structured_address(recipient.address)


def change_organization(
    state: WorkspaceState, group_id: str, role: ParticipantRole, organization_id: str
) -> MailGroup:
    """Point one side of a group at another organization, copying its primary address."""
    group = _editable_group(state, group_id)
    participant = _participant(group, role)
    organization = state.find_organization(organization_id)
    if organization is None:
        raise WorkspaceValidationError(f"Organization '{organization_id}' not found")

    primary = organization.primary_address()
    participant.organization_id = organization.id
    participant.organization_name = organization.name
    participant.address_id = primary.id if primary else None
    participant.address = normalize_structured_address(primary) if primary else None

    if role == "recipient":
        if not participant.contact_name:
            participant.contact_name = organization.name or group.recipient_name
        _sync_recipient_fields(group, organization.name)

    refresh_task_id(group, rebuild=True)
    logger.info("Participant organization changed", group_id=group_id, role=role, organization_id=organization_id)
    return group


def update_participant(
    state: WorkspaceState, group_id: str, role: ParticipantRole, changes: dict[str, Any]
) -> MailGroup:
    """
    Apply field edits to one participant.

    ``changes`` may hold contact fields, structured address fields, or an
    ``address_id`` selecting one of the organization's saved addresses.
    """
    group = _editable_group(state, group_id)
    participant = _participant(group, role)

    address_id = changes.get("address_id")
    if address_id:
        organization = state.find_organization(participant.organization_id)
        selected = next((addr for addr in organization.addresses if addr.id == address_id), None) if organization else None
        if selected is None:
            raise WorkspaceValidationError(f"Address '{address_id}' not found for this organization")
        participant.address_id = selected.id
        participant.address = normalize_structured_address(selected)

    for field_name in PARTICIPANT_TEXT_FIELDS:
        if field_name in changes and changes[field_name] is not None:
            setattr(participant, field_name, changes[field_name])

    address_changes = {key: value for key, value in changes.items() if key in ADDRESS_FIELDS and value is not None}
    if address_changes:
        address = participant.address or StructuredAddress(id=participant.address_id)
        participant.address = address.model_copy(update=address_changes)

    if role == "recipient":
        _sync_recipient_fields(group)
    return group


def swap_participants(state: WorkspaceState, group_id: str) -> MailGroup:
    group = _editable_group(state, group_id)
    sender, recipient = group.recipient, group.sender
    sender.contact_name = sender.contact_name or sender.organization_name
    recipient.contact_name = recipient.contact_name or recipient.organization_name
    group.sender, group.recipient = sender, recipient

    _sync_recipient_fields(group)
    refresh_task_id(group, rebuild=True)
    logger.info("Participants swapped", group_id=group_id, task_id=group.task_id)
    return group


def toggle_mail_option(state: WorkspaceState, group_id: str, option: str) -> MailGroup:
    group = _editable_group(state, group_id)
    if option not in MailOptions.model_fields:
        raise WorkspaceValidationError(f"Unknown mail option '{option}'")
    setattr(group.mail_options, option, not getattr(group.mail_options, option))
    return group


def set_delivery_type(state: WorkspaceState, group_id: str, delivery_type: str) -> MailGroup:
    group = _editable_group(state, group_id)
    if not delivery_type.strip():
        raise WorkspaceValidationError("Delivery type cannot be empty")
    group.delivery_type = delivery_type
    return group


def set_send_mode(state: WorkspaceState, group_id: str, send_mode: SendMode) -> MailGroup:
    group = _editable_group(state, group_id)
    if send_mode not in SEND_MODES:
        raise WorkspaceValidationError(f"Unknown send mode '{send_mode}'")
    group.send_mode = send_mode
    return group


def save_address_to_organization(
    state: WorkspaceState,
    group_id: str,
    role: ParticipantRole,
    clock=time.time,
) -> Organization:
    """Store the participant's current address on its organization, replacing by id."""
    group = _editable_group(state, group_id)
    participant = _participant(group, role)
    organization = state.find_organization(participant.organization_id)
    if organization is None:
        raise WorkspaceValidationError("Select an organization before saving its address.")
    if participant.address is None:
        raise WorkspaceValidationError("There is no address to save for this participant.")

    address_id = participant.address_id or participant.address.id or f"ADDR-{int(clock() * 1000)}"
    saved = participant.address.model_copy(update={"id": address_id})
    participant.address_id = address_id
    participant.address = saved.model_copy()

    for index, existing in enumerate(organization.addresses):
        if existing.id == address_id:
            organization.addresses[index] = saved
            break
    else:
        organization.addresses.append(saved)

    logger.info("Participant address saved to organization", organization_id=organization.id, address_id=address_id)
    return organization


def _participant_organization(state: WorkspaceState, participant: Participant, action: str) -> Organization:
    organization = state.find_organization(participant.organization_id)
    if organization is None:
        raise WorkspaceValidationError(f"Select an organization before {action} addresses.")
    return organization


def add_address(state: WorkspaceState, group_id: str, role: ParticipantRole, clock=time.time) -> Organization:
    """Add a blank address to the participant's organization and select it."""
    group = _editable_group(state, group_id)
    participant = _participant(group, role)
    organization = _participant_organization(state, participant, "adding")

    new_address = StructuredAddress(id=f"ADDR-{int(clock() * 1000)}", label="New Address")
    organization.addresses.append(new_address)
    participant.address_id = new_address.id
    participant.address = new_address.model_copy()

    if role == "recipient":
        _sync_recipient_fields(group)
    logger.info("Organization address added", organization_id=organization.id, address_id=new_address.id)
    return organization


def remove_address(state: WorkspaceState, group_id: str, role: ParticipantRole, address_id: str) -> Organization:
    """Delete one of the organization's addresses, clearing it from the participant if selected."""
    group = _editable_group(state, group_id)
    participant = _participant(group, role)
    organization = _participant_organization(state, participant, "removing")
    if not any(address.id == address_id for address in organization.addresses):
        raise WorkspaceValidationError(f"Address '{address_id}' not found for this organization")

    organization.addresses = [address for address in organization.addresses if address.id != address_id]
    selected_id = participant.address_id or (participant.address.id if participant.address else None)
    if selected_id == address_id:
        participant.address_id = None
        participant.address = empty_address()
        if role == "recipient":
            _sync_recipient_fields(group)

    logger.info("Organization address removed", organization_id=organization.id, address_id=address_id)
    return organization
