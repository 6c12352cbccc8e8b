"""
Address Helper Utilities - formatting and normalisation of structured addresses.

Usage:
    from app.utils.address_helpers import format_structured_address

    label = format_structured_address(organization.primary_address())
    # "100 Main St, Springfield, IL, 62701 • Sangamon • USA"
"""

from app.models.domain.mail_domain import StructuredAddress


def empty_address() -> StructuredAddress:
    return StructuredAddress()


def clone_address(address: StructuredAddress | None) -> StructuredAddress | None:
    return address.model_copy(deep=True) if address else None


def normalize_structured_address(
    source: StructuredAddress | dict | None,
    fallback: StructuredAddress | dict | None = None,
) -> StructuredAddress:
    """Build a complete address from a partial one, blank fields become ""."""
    raw = source or fallback or {}
    if isinstance(raw, StructuredAddress):
        return raw.model_copy(deep=True)
    return StructuredAddress.model_validate({key: value for key, value in raw.items() if value is not None})


def format_structured_address(address: StructuredAddress | None) -> str:
    """Single-line label: street, city, state, postal code • county • country."""
    if not address:
        return ""

    segments = [
        address.street_address,
        f"{address.city}, {address.state}".strip() if address.city else "",
        address.postal_code,
    ]
    base = ", ".join(segment for segment in segments if segment)
    return " • ".join(part for part in (base, address.county, address.country) if part)
