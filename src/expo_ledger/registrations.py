"""Registration aggregate manager.

A registration is written and read as one document: stall location,
organisers (participants) and declared inventory travel together. Every write
validates the whole aggregate first, so a rejected submission leaves the store
untouched.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Dict, List, Mapping, Optional

from . import data_manager, log
from .constants import STRUCTURED_STATE, CollectionName, OrganizationType, Sponsor
from .core_logic import (
    RuntimeContext,
    get_cache_bucket,
    get_exhibition,
    invalidate_cache,
    require_nonnegative_money,
    require_nonnegative_quantity,
    require_text,
)
from .errors import StoreError, ValidationError
from .models import (
    FreeTextLocation,
    Participant,
    Registration,
    StructuredLocation,
    deserialize_registration,
    serialize_participant,
    serialize_registration,
)


COLLECTION = CollectionName.REGISTRATIONS.value

# Never accepted from an update patch.
IMMUTABLE_FIELDS = frozenset({"id", "stallNumber"})


@dataclass(frozen=True)
class ProductListing:
    """One product on offer at one stall, for public browsing."""

    stall_id: str
    stall_number: str
    stall_name: str
    product_category: str
    product_name: str
    quantity: int


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def validate_location(context: RuntimeContext, registration: Registration) -> None:
    """Check the location against the geography tree where it is structured.

    Raises:
        ValidationError: Naming the first missing or unreachable level.
    """
    location = registration.location
    if isinstance(location, StructuredLocation):
        district = require_text(location.district, "location.district")
        if district not in context.geography.districts_of(STRUCTURED_STATE):
            log.error("District '%s' is not part of %s", district, STRUCTURED_STATE)
            raise ValidationError("location.district", f"unknown district of {STRUCTURED_STATE}")
        block = require_text(location.block, "location.block")
        if block not in context.geography.blocks_of(STRUCTURED_STATE, district):
            log.error("Block '%s' is not part of district '%s'", block, district)
            raise ValidationError("location.block", f"unknown block of {district}")
        local_unit = require_text(location.local_unit, "location.localUnit")
        if local_unit not in context.geography.local_units_of(STRUCTURED_STATE, district, block):
            log.error("Local unit '%s' is not part of block '%s'", local_unit, block)
            raise ValidationError("location.localUnit", f"unknown local unit of {block}")
        return
    if isinstance(location, FreeTextLocation):
        require_text(location.other_state, "location.otherState")
        require_text(location.district, "location.district")
        require_text(location.block, "location.block")
        return
    raise ValidationError("location", "unsupported location variant")


def validate_inventory(context: RuntimeContext, registration: Registration) -> None:
    """Check every inventory row against the global taxonomy.

    Raises:
        ValidationError: Naming the first offending row and field, for example
            ``inventory[2].productName``.
    """
    taxonomy = context.taxonomy
    for index, item in enumerate(registration.inventory):
        prefix = f"inventory[{index}]"
        category = require_text(item.product_category, f"{prefix}.productCategory")
        if not taxonomy.products_of(category):
            log.error("Unknown product category '%s' in %s", category, prefix)
            raise ValidationError(f"{prefix}.productCategory", f"unknown category {category!r}")
        product = require_text(item.product_name, f"{prefix}.productName")
        if not taxonomy.contains(category, product):
            log.error("Product '%s' is not listed under '%s' in %s", product, category, prefix)
            raise ValidationError(f"{prefix}.productName", f"{product!r} is not a {category} product")
        require_nonnegative_quantity(item.quantity, f"{prefix}.quantity")
        require_nonnegative_money(item.value, f"{prefix}.value")


def validate_participants(registration: Registration) -> None:
    for index, participant in enumerate(registration.participants):
        require_text(participant.name, f"participants[{index}].name")
        require_text(participant.phone, f"participants[{index}].phone")


def validate_registration(context: RuntimeContext, registration: Registration) -> None:
    """Run every aggregate rule, stopping at the first violation.

    Raises:
        ValidationError: If any field breaks a rule.
        NotFoundError: If the referenced exhibition does not exist.
    """
    exhibition_id = require_text(registration.exhibition_id, "exhibitionId")
    get_exhibition(context, exhibition_id)
    require_text(registration.stall_number, "stallNumber")
    validate_location(context, registration)
    if registration.organization.kind is OrganizationType.OTHERS:
        require_text(registration.organization.other_name, "otherOrganization")
    if registration.sponsor.kind is Sponsor.OTHERS:
        require_text(registration.sponsor.other_name, "otherSponsor")
    validate_participants(registration)
    validate_inventory(context, registration)


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


def _load(document_id: str, document: Mapping[str, Any]) -> Registration:
    try:
        return deserialize_registration(document, registration_id=document_id)
    except ValidationError as exc:
        log.error("Stored registration '%s' is malformed: %s", document_id, exc)
        raise StoreError(f"Stored registration {document_id} is malformed: {exc}") from exc


def get(context: RuntimeContext, registration_id: str) -> Registration:
    """Fetch one registration.

    Raises:
        NotFoundError: If no registration has that id.
    """
    document = data_manager.get_document(context.workbook, COLLECTION, registration_id)
    return _load(registration_id, document)


def list_by_exhibition(context: RuntimeContext, exhibition_id: str) -> List[Registration]:
    """Return all registrations of ``exhibition_id``; order is not significant."""
    bucket = get_cache_bucket(context, "registrations")
    if exhibition_id not in bucket:
        bucket[exhibition_id] = [
            _load(document_id, document)
            for document_id, document in data_manager.query_equals(
                context.workbook, COLLECTION, "exhibitionId", exhibition_id
            )
        ]
        log.debug(
            "Populated registrations cache for exhibition '%s' with %d entries",
            exhibition_id,
            len(bucket[exhibition_id]),
        )
    return list(bucket[exhibition_id])


def product_availability(
    context: RuntimeContext,
    exhibition_id: str,
    category: Optional[str] = None,
) -> List[ProductListing]:
    """List what each stall of an exhibition offers, optionally for one category."""
    wanted = category.strip() if category else None
    listings: List[ProductListing] = []
    for registration in list_by_exhibition(context, exhibition_id):
        for item in registration.inventory:
            if wanted is not None and item.product_category.strip() != wanted:
                continue
            listings.append(
                ProductListing(
                    stall_id=registration.id or "",
                    stall_number=registration.stall_number,
                    stall_name=registration.stall_name,
                    product_category=item.product_category.strip(),
                    product_name=item.product_name.strip(),
                    quantity=item.quantity,
                )
            )
    return sorted(listings, key=lambda listing: (listing.product_category, listing.stall_number))


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------


def create(context: RuntimeContext, registration: Registration) -> str:
    """Validate and store a new registration, returning its generated id.

    Raises:
        ValidationError: Naming the first offending field; nothing is written.
        NotFoundError: If the referenced exhibition does not exist.
    """
    validate_registration(context, registration)
    registration_id = data_manager.insert_document(
        context.workbook, COLLECTION, serialize_registration(registration)
    )
    invalidate_cache(context, "registrations")
    log.info(
        "Registered stall '%s' for exhibition '%s' as '%s' (%d participants, %d inventory items)",
        registration.stall_number,
        registration.exhibition_id,
        registration_id,
        len(registration.participants),
        len(registration.inventory),
    )
    return registration_id


def update(context: RuntimeContext, registration_id: str, patch: Mapping[str, Any]) -> Registration:
    """Merge ``patch`` into a stored registration.

    ``stallNumber`` and ``id`` are dropped from the patch, so the stall number
    recorded at creation never changes. The merged aggregate is validated as a
    whole; fields that no longer apply after a discriminator change (for
    example ``otherOrganization`` once the type is no longer ``Others``) are
    removed from the stored document.

    Raises:
        NotFoundError: If the registration does not exist.
        ValidationError: If the merged aggregate breaks a rule; nothing is
            written.
    """
    stored = data_manager.get_document(context.workbook, COLLECTION, registration_id)
    ignored = sorted(key for key in patch if key in IMMUTABLE_FIELDS)
    if ignored:
        log.warning("Ignoring immutable fields in update of '%s': %s", registration_id, ", ".join(ignored))
    merged: Dict[str, Any] = dict(stored)
    merged.update({key: value for key, value in patch.items() if key not in IMMUTABLE_FIELDS})

    registration = deserialize_registration(merged, registration_id=registration_id)
    validate_registration(context, registration)

    normalized = serialize_registration(registration)
    partial: Dict[str, Any] = {key: None for key in stored if key not in normalized}
    partial.update(normalized)
    for key in IMMUTABLE_FIELDS:
        partial.pop(key, None)
    data_manager.patch_document(context.workbook, COLLECTION, registration_id, partial)
    invalidate_cache(context, "registrations")
    log.info("Updated registration '%s' (stall '%s')", registration_id, registration.stall_number)
    return registration


def update_participant(
    context: RuntimeContext,
    registration_id: str,
    index: int,
    participant: Participant,
) -> Registration:
    """Replace one participant of a registration in place.

    Raises:
        NotFoundError: If the registration does not exist.
        ValidationError: If ``index`` is out of range or the participant lacks
            a name or phone number.
    """
    registration = get(context, registration_id)
    field_prefix = f"participants[{index}]"
    if not 0 <= index < len(registration.participants):
        log.error("Participant index %d out of range for '%s'", index, registration_id)
        raise ValidationError(field_prefix, "no such participant")
    require_text(participant.name, f"{field_prefix}.name")
    require_text(participant.phone, f"{field_prefix}.phone")

    participants = list(registration.participants)
    participants[index] = participant
    data_manager.patch_document(
        context.workbook,
        COLLECTION,
        registration_id,
        {"participants": [serialize_participant(p) for p in participants]},
    )
    invalidate_cache(context, "registrations")
    log.info("Updated participant %d of registration '%s'", index, registration_id)
    return replace(registration, participants=tuple(participants))
