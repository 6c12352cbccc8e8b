"""
Mail Group Synthesizer
Projects the job-detail organization selections onto the list of mail groups.

Every (sender org, recipient org) pair of the current selection maps to one
editable mail group. Existing editable groups are reused by their org pair so
attached documents survive re-synthesis; groups whose pair left the selection
are dropped. Dispatched groups (job_id set) are never touched.

The reverse direction (groups -> selections) is a separate explicit step,
``sync_job_selections``, used after per-group organization edits.
"""

from collections.abc import Iterable

from app.infrastructure.observability.logging import get_logger
from app.models.domain.mail_domain import (
    DEFAULT_DELIVERY_TYPE,
    Enterprise,
    MailGroup,
    MailGroupStatus,
    MailOptions,
    Organization,
    Participant,
    WizardJobData,
)
from app.utils.address_helpers import format_structured_address, normalize_structured_address
from app.utils.id_helpers import build_group_key, build_mail_group_id, build_task_id, ensure_unique_value

logger = get_logger(__name__)


def _unique(values: Iterable[str | None]) -> list[str]:
    seen: dict[str, None] = {}
    for value in values:
        if value and value not in seen:
            seen[value] = None
    return list(seen)


def find_enterprise_for_organizations(
    enterprises: list[Enterprise],
    sender_org_id: str | None,
    recipient_org_id: str | None,
) -> Enterprise | None:
    """
    Pick the enterprise owning an org pairing.

    Preference: allowed for both roles, then sender only, then recipient only,
    then the first enterprise.
    """
    if not enterprises:
        return None

    for enterprise in enterprises:
        sender_match = sender_org_id in enterprise.sender_organizations if sender_org_id else True
        recipient_match = recipient_org_id in enterprise.recipient_organizations if recipient_org_id else True
        if sender_match and recipient_match:
            return enterprise

    if sender_org_id:
        for enterprise in enterprises:
            if sender_org_id in enterprise.sender_organizations:
                return enterprise

    if recipient_org_id:
        for enterprise in enterprises:
            if recipient_org_id in enterprise.recipient_organizations:
                return enterprise

    return enterprises[0]


def _find_org(organizations: list[Organization], org_id: str | None) -> Organization | None:
    return next((org for org in organizations if org.id == org_id), None) if org_id else None


def create_mail_group_draft(
    sender_org_id: str,
    recipient_org_id: str,
    organizations: list[Organization],
    enterprises: list[Enterprise],
) -> MailGroup:
    """New pending group with contact and address defaults copied from seed records."""
    sender_org = _find_org(organizations, sender_org_id)
    recipient_org = _find_org(organizations, recipient_org_id)
    enterprise = find_enterprise_for_organizations(
        enterprises,
        sender_org.id if sender_org else None,
        recipient_org.id if recipient_org else None,
    )
    enterprise_id = enterprise.id if enterprise else None
    enterprise_name = enterprise.name if enterprise else ""

    sender_address = sender_org.primary_address() if sender_org else None
    recipient_address = recipient_org.primary_address() if recipient_org else None
    recipient_name = (recipient_org.name if recipient_org else "") or enterprise_name

    sender = Participant(
        enterprise_id=enterprise_id,
        organization_id=sender_org.id if sender_org else None,
        organization_name=(sender_org.name if sender_org else "") or enterprise_name,
        contact_name=(enterprise.contact if enterprise else "") or (sender_org.name if sender_org else ""),
        email=enterprise.email if enterprise else "",
        phone=enterprise.phone if enterprise else "",
        address_id=sender_address.id if sender_address else None,
        address=normalize_structured_address(sender_address) if sender_address else None,
    )
    recipient = Participant(
        enterprise_id=enterprise_id,
        organization_id=recipient_org.id if recipient_org else None,
        organization_name=recipient_org.name if recipient_org else "",
        contact_name=recipient_org.name if recipient_org else "",
        address_id=recipient_address.id if recipient_address else None,
        address=normalize_structured_address(recipient_address) if recipient_address else None,
    )

    return MailGroup(
        id=build_mail_group_id(sender_org_id, recipient_org_id),
        task_id="",
        name=recipient_name,
        recipient_name=recipient_name,
        status=MailGroupStatus.PENDING.value,
        delivery_type=DEFAULT_DELIVERY_TYPE,
        send_mode="grouped",
        documents=[],
        mail_options=MailOptions(),
        sender=sender,
        recipient=recipient,
        address=format_structured_address(recipient_address),
    )


def synthesize_mail_groups(
    groups: list[MailGroup],
    sender_ids: list[str],
    recipient_ids: list[str],
    organizations: list[Organization],
    enterprises: list[Enterprise],
) -> list[MailGroup]:
    """
    Reconcile ``groups`` with the selected sender x recipient cross product.

    Returns a new list: dispatched groups first, then one editable group per
    pair in sender-major order. Inputs are not mutated.
    """
    if not organizations:
        return list(groups)

    dispatched = [group for group in groups if group.is_dispatched]
    working = [group for group in groups if not group.is_dispatched]
    sender_ids = _unique(sender_ids)
    recipient_ids = _unique(recipient_ids)

    if not sender_ids or not recipient_ids:
        return dispatched

    existing: dict[str, MailGroup] = {}
    for group in working:
        existing.setdefault(build_group_key(group.sender_org_id, group.recipient_org_id), group)

    used_ids = {group.id for group in dispatched}
    used_task_ids = {group.task_id for group in dispatched if group.task_id}
    created = 0
    result = list(dispatched)

    for sender_id in sender_ids:
        for recipient_id in recipient_ids:
            group = existing.get(build_group_key(sender_id, recipient_id))
            if group is None:
                group = create_mail_group_draft(sender_id, recipient_id, organizations, enterprises)
                created += 1

            group_id = ensure_unique_value(group.id, used_ids, "MAIL")
            task_id = ""
            if group.documents:
                proposed = group.task_id or build_task_id(group.sender_org_id, group.recipient_org_id)
                task_id = ensure_unique_value(proposed, used_task_ids, "TASK")

            result.append(group.model_copy(update={"id": group_id, "task_id": task_id}, deep=True))

    logger.debug(
        "Mail groups synthesized",
        senders=len(sender_ids),
        recipients=len(recipient_ids),
        created=created,
        dispatched=len(dispatched),
    )
    return result


def derive_selections(groups: list[MailGroup]) -> tuple[list[str], list[str]]:
    """Ordered unique sender and recipient org ids of the editable groups."""
    editable = [group for group in groups if not group.is_dispatched]
    return (
        _unique(group.sender_org_id for group in editable),
        _unique(group.recipient_org_id for group in editable),
    )


def sync_job_selections(job_data: WizardJobData, groups: list[MailGroup]) -> bool:
    """
    Write the org selections implied by ``groups`` back into ``job_data``.

    Only runs when editable groups exist, so clearing a selection is never
    undone by a stale group list. Returns True when job_data changed.
    """
    if not any(not group.is_dispatched for group in groups):
        return False

    senders, recipients = derive_selections(groups)
    changed = False
    if job_data.sender_organization_ids != senders:
        job_data.sender_organization_ids = senders
        changed = True
    if job_data.recipient_organization_ids != recipients:
        job_data.recipient_organization_ids = recipients
        changed = True
    return changed


def derive_job_documents(groups: list[MailGroup]) -> list[str]:
    """Unique document references across editable groups, first-seen order."""
    return _unique(
        document.reference
        for group in groups
        if not group.is_dispatched
        for document in group.documents
    )
