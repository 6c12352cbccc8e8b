"""Free-text and enterprise/organization filtering of the editable mail groups."""

from app.models.domain.mail_domain import Enterprise, MailGroup, MailGroupFilters, Organization
from app.utils.address_helpers import format_structured_address


def _search_haystack(
    group: MailGroup,
    enterprises: dict[str, Enterprise],
    organizations: dict[str, Organization],
) -> str:
    values = [
        group.id,
        group.task_id,
        group.name,
        group.recipient_name,
        group.address,
        group.delivery_type,
        group.status,
    ]
    for participant in (group.sender, group.recipient):
        enterprise = enterprises.get(participant.enterprise_id or "")
        organization = organizations.get(participant.organization_id or "")
        values.extend(
            [
                participant.contact_name,
                participant.organization_name,
                participant.email,
                participant.phone,
                format_structured_address(participant.address),
                enterprise.name if enterprise else "",
                organization.name if organization else "",
            ]
        )
    values.extend(document.label for document in group.documents)
    return " ".join(value for value in values if value).lower()


def filter_mail_groups(
    groups: list[MailGroup],
    filters: MailGroupFilters,
    enterprises: list[Enterprise],
    organizations: list[Organization],
) -> list[MailGroup]:
    """Editable groups matching the query, client and organization filters."""
    enterprise_map = {enterprise.id: enterprise for enterprise in enterprises}
    organization_map = {org.id: org for org in organizations}
    query = filters.query.strip().lower()

    matches = []
    for group in groups:
        if group.is_dispatched:
            continue
        if filters.client != "all" and filters.client not in (
            group.sender.enterprise_id,
            group.recipient.enterprise_id,
        ):
            continue
        if filters.organization != "all" and filters.organization not in (
            group.sender_org_id,
            group.recipient_org_id,
        ):
            continue
        if query and query not in _search_haystack(group, enterprise_map, organization_map):
            continue
        matches.append(group)
    return matches
