from app.models.domain.mail_domain import StructuredAddress
from app.utils.address_helpers import format_structured_address, normalize_structured_address
from app.utils.id_helpers import (
    build_group_key,
    build_mail_group_id,
    build_task_id,
    ensure_unique_value,
    sanitize_id_segment,
    to_base36,
)


def test_sanitize_id_segment_strips_and_uppercases():
    assert sanitize_id_segment("org-a_1") == "ORGA1"
    assert sanitize_id_segment("") == "NONE"
    assert sanitize_id_segment(None) == "NONE"
    assert sanitize_id_segment("--") == "NONE"


def test_group_and_task_ids_from_org_pair():
    assert build_mail_group_id("ORG-A", "ORG-B") == "MAIL-ORGA-ORGB"
    assert build_task_id("ORG-A", "ORG-B") == "TASK-ORGA-ORGB"
    assert build_task_id(None, "ORG-B") == "TASK-NONE-ORGB"
    assert build_group_key("ORG-A", None) == "ORG-A::none"


def test_to_base36():
    assert to_base36(0) == "0"
    assert to_base36(35) == "Z"
    assert to_base36(36) == "10"
    assert to_base36(1295) == "ZZ"


def test_ensure_unique_value_appends_counter():
    existing = {"MAIL-A", "MAIL-A-1"}

    assert ensure_unique_value("MAIL-A", existing, "MAIL") == "MAIL-A-2"
    assert ensure_unique_value("MAIL-B", existing, "MAIL") == "MAIL-B"
    assert {"MAIL-A-2", "MAIL-B"} <= existing


def test_ensure_unique_value_blank_candidate_uses_prefix():
    existing = {"X"}
    assert ensure_unique_value("  ", existing, "TASK") == "TASK-2"


def test_format_structured_address():
    address = StructuredAddress(
        street_address="1 Alpha Way",
        city="Springfield",
        state="IL",
        postal_code="62701",
        county="Sangamon",
        country="USA",
    )
    assert format_structured_address(address) == "1 Alpha Way, Springfield, IL, 62701 • Sangamon • USA"
    assert format_structured_address(None) == ""


def test_format_structured_address_skips_blank_parts():
    address = StructuredAddress(street_address="5 Main St", postal_code="10001")
    assert format_structured_address(address) == "5 Main St, 10001"


def test_normalize_structured_address_from_partial_dict():
    address = normalize_structured_address({"streetAddress": "5 Main St", "city": None})

    assert address.street_address == "5 Main St"
    assert address.city == ""
    assert address.country == ""


def test_normalize_structured_address_uses_fallback_and_copies():
    original = StructuredAddress(id="ADDR-1", street_address="5 Main St")

    copied = normalize_structured_address(None, original)
    copied.street_address = "changed"

    assert original.street_address == "5 Main St"
    assert copied.id == "ADDR-1"
