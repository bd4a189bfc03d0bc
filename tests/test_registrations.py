"""Tests for the registration aggregate manager against a real workbook."""

from __future__ import annotations

from dataclasses import replace
from decimal import Decimal

import pytest

from expo_ledger import constants, core_logic, data_manager, registrations
from expo_ledger.errors import NotFoundError, StoreError, ValidationError
from expo_ledger.models import (
    FreeTextLocation,
    InventoryItem,
    Organization,
    Participant,
    Sponsorship,
    StructuredLocation,
)

COLLECTION = constants.CollectionName.REGISTRATIONS.value


def _stored_count(context) -> int:
    return len(list(data_manager.iter_documents(context.workbook, COLLECTION)))


# ---------------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------------


def test_create_and_get_round_trip(runtime_context, registration_factory):
    registration = registration_factory()

    registration_id = registrations.create(runtime_context, registration)

    assert registrations.get(runtime_context, registration_id) == replace(registration, id=registration_id)


def test_create_rejects_unknown_category_without_writing(runtime_context, registration_factory):
    registration = registration_factory(inventory=(InventoryItem("Jewellery", "Ring", quantity=1),))

    with pytest.raises(ValidationError) as excinfo:
        registrations.create(runtime_context, registration)

    assert excinfo.value.field == "inventory[0].productCategory"
    assert _stored_count(runtime_context) == 0


def test_create_rejects_product_outside_its_category(runtime_context, registration_factory):
    registration = registration_factory(
        inventory=(
            InventoryItem("Handloom", "Saree", quantity=1),
            InventoryItem("Handloom", "Dhokra", quantity=1),
        )
    )

    with pytest.raises(ValidationError) as excinfo:
        registrations.create(runtime_context, registration)

    assert excinfo.value.field == "inventory[1].productName"


def test_create_rejects_negative_inventory_quantity(runtime_context, registration_factory):
    registration = registration_factory(inventory=(InventoryItem("Handloom", "Saree", quantity=-2),))
    with pytest.raises(ValidationError, match=r"inventory\[0\].quantity"):
        registrations.create(runtime_context, registration)


@pytest.mark.parametrize(
    "item, field",
    [
        (InventoryItem("Handloom", "Saree", quantity=2.5), "inventory[0].quantity"),
        (InventoryItem("Handloom", "Saree", quantity=True), "inventory[0].quantity"),
        (InventoryItem("Handloom", "Saree", quantity=1, value=Decimal("Infinity")), "inventory[0].value"),
        (InventoryItem("Handloom", "Saree", quantity=1, value=Decimal("NaN")), "inventory[0].value"),
    ],
)
def test_create_rejects_malformed_inventory_numbers(runtime_context, registration_factory, item, field):
    with pytest.raises(ValidationError) as excinfo:
        registrations.create(runtime_context, registration_factory(inventory=(item,)))

    assert excinfo.value.field == field
    assert _stored_count(runtime_context) == 0
    assert registrations.list_by_exhibition(runtime_context, registration_factory().exhibition_id) == []


@pytest.mark.parametrize(
    "location, field",
    [
        (StructuredLocation(district="Puri", block="Banspal", local_unit="Gonasika"), "location.district"),
        (StructuredLocation(district="Kendujhar", block="Jatni", local_unit="Janla"), "location.block"),
        (StructuredLocation(district="Kendujhar", block="Banspal", local_unit="Janla"), "location.localUnit"),
        (FreeTextLocation(other_state="", district="Ranchi", block="Kanke"), "location.otherState"),
    ],
)
def test_create_rejects_bad_locations(runtime_context, registration_factory, location, field):
    with pytest.raises(ValidationError) as excinfo:
        registrations.create(runtime_context, registration_factory(location=location))
    assert excinfo.value.field == field


def test_create_accepts_free_text_location(runtime_context, registration_factory):
    location = FreeTextLocation(other_state="Jharkhand", district="Ranchi", block="Kanke")
    registration_id = registrations.create(runtime_context, registration_factory(location=location))

    stored = data_manager.get_document(runtime_context.workbook, COLLECTION, registration_id)

    assert stored["location"] == {
        "state": "Other",
        "otherState": "Jharkhand",
        "district": "Ranchi",
        "block": "Kanke",
    }


def test_others_organization_requires_a_name(runtime_context, registration_factory):
    registration = registration_factory(organization=Organization(constants.OrganizationType.OTHERS))
    with pytest.raises(ValidationError) as excinfo:
        registrations.create(runtime_context, registration)
    assert excinfo.value.field == "otherOrganization"


def test_other_names_only_survive_on_others_kind(runtime_context, registration_factory):
    registration = registration_factory(
        organization=Organization(constants.OrganizationType.SHG, other_name="ignored"),
        sponsor=Sponsorship(constants.Sponsor.OTHERS, other_name="Tata Trust"),
    )
    registration_id = registrations.create(runtime_context, registration)

    stored = data_manager.get_document(runtime_context.workbook, COLLECTION, registration_id)

    assert "otherOrganization" not in stored
    assert stored["otherSponsor"] == "Tata Trust"


def test_create_requires_participant_phone(runtime_context, registration_factory):
    registration = registration_factory(participants=(Participant("Sabitri Naik", " "),))
    with pytest.raises(ValidationError, match=r"participants\[0\].phone"):
        registrations.create(runtime_context, registration)


def test_create_for_unknown_exhibition(runtime_context, registration_factory):
    with pytest.raises(NotFoundError):
        registrations.create(runtime_context, registration_factory(exhibition_id="missing"))


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


def test_list_by_exhibition_filters(runtime_context, registration_factory):
    other = core_logic.add_exhibition(runtime_context, "Another Fair")
    mine = registrations.create(runtime_context, registration_factory(stall_number="A-1"))
    registrations.create(runtime_context, registration_factory(stall_number="A-2", exhibition_id=other.id))

    listed = registrations.list_by_exhibition(runtime_context, registration_factory().exhibition_id)

    assert [registration.id for registration in listed] == [mine]


def test_get_unknown_registration(runtime_context):
    with pytest.raises(NotFoundError):
        registrations.get(runtime_context, "nope")


def test_malformed_stored_registration_raises_store_error(runtime_context):
    data_manager.put_document(runtime_context.workbook, COLLECTION, "broken", {"exhibitionId": "e"})
    with pytest.raises(StoreError, match="malformed"):
        registrations.get(runtime_context, "broken")


def test_product_availability_lists_stall_offers(runtime_context, registration_factory):
    exhibition_id = registration_factory().exhibition_id
    registrations.create(runtime_context, registration_factory(stall_number="B-2"))
    registrations.create(
        runtime_context,
        registration_factory(
            stall_number="A-1",
            inventory=(InventoryItem("Handloom", "Stole", quantity=5, value=Decimal("1500")),),
        ),
    )

    listings = registrations.product_availability(runtime_context, exhibition_id, category=" Handloom")

    assert [(listing.stall_number, listing.product_name) for listing in listings] == [
        ("A-1", "Stole"),
        ("B-2", "Saree"),
        ("B-2", "Dupatta"),
    ]


# ---------------------------------------------------------------------------
# Updates
# ---------------------------------------------------------------------------


def test_update_ignores_stall_number(runtime_context, stall_id):
    updated = registrations.update(runtime_context, stall_id, {"stallNumber": "Z-99", "stallName": "Renamed"})

    assert updated.stall_number == "A-1"
    assert registrations.get(runtime_context, stall_id).stall_name == "Renamed"
    stored = data_manager.get_document(runtime_context.workbook, COLLECTION, stall_id)
    assert stored["stallNumber"] == "A-1"


def test_update_removes_stale_variant_fields(runtime_context, registration_factory):
    registration_id = registrations.create(
        runtime_context,
        registration_factory(organization=Organization(constants.OrganizationType.OTHERS, other_name="Co-op")),
    )

    registrations.update(runtime_context, registration_id, {"organizationType": "PG"})

    stored = data_manager.get_document(runtime_context.workbook, COLLECTION, registration_id)
    assert stored["organizationType"] == "PG"
    assert "otherOrganization" not in stored


def test_update_switching_to_other_state_drops_local_unit(runtime_context, stall_id):
    registrations.update(
        runtime_context,
        stall_id,
        {"location": {"state": "Other", "otherState": "Bihar", "district": "Gaya", "block": "Bodh Gaya"}},
    )

    stored = data_manager.get_document(runtime_context.workbook, COLLECTION, stall_id)
    assert "localUnit" not in stored["location"]


def test_rejected_update_leaves_document_untouched(runtime_context, stall_id):
    before = data_manager.get_document(runtime_context.workbook, COLLECTION, stall_id)

    with pytest.raises(ValidationError):
        registrations.update(
            runtime_context,
            stall_id,
            {"inventory": [{"productCategory": "Handloom", "productName": "Honey", "quantity": 1}]},
        )

    assert data_manager.get_document(runtime_context.workbook, COLLECTION, stall_id) == before


def test_update_unknown_registration(runtime_context):
    with pytest.raises(NotFoundError):
        registrations.update(runtime_context, "nope", {"stallName": "x"})


def test_update_refreshes_cached_listing(runtime_context, stall_id, registration_factory):
    exhibition_id = registration_factory().exhibition_id
    assert registrations.list_by_exhibition(runtime_context, exhibition_id)[0].stall_name == "Maa Tarini SHG"

    registrations.update(runtime_context, stall_id, {"stallName": "Maa Mangala SHG"})

    assert registrations.list_by_exhibition(runtime_context, exhibition_id)[0].stall_name == "Maa Mangala SHG"


def test_update_participant_replaces_one_entry(runtime_context, stall_id):
    replacement = Participant("Rina Munda", "9437000002", constants.Gender.FEMALE, profile_photo="rina.jpg")

    updated = registrations.update_participant(runtime_context, stall_id, 0, replacement)

    assert updated.participants == (replacement,)
    assert registrations.get(runtime_context, stall_id).participants == (replacement,)


def test_update_participant_out_of_range(runtime_context, stall_id):
    with pytest.raises(ValidationError) as excinfo:
        registrations.update_participant(runtime_context, stall_id, 3, Participant("A", "1"))
    assert excinfo.value.field == "participants[3]"
