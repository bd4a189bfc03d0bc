"""Domain records and their document representation.

The dataclasses here are the in-memory view of what the document store keeps.
Documents use camelCase keys, integers for counts, and decimal strings for
money so that JSON payloads round-trip without float drift.

Registration fields that only exist for one value of a discriminator are
modelled as tagged variants: a stall inside the structured state carries a
:class:`StructuredLocation`, any other stall a :class:`FreeTextLocation`; the
free-text organisation and sponsor names only survive on the ``Others`` kind.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Mapping, Optional, Sequence, Union

from .constants import OTHER_STATE, STRUCTURED_STATE, Gender, OrganizationType, Sponsor
from .errors import ValidationError


@dataclass(frozen=True)
class Participant:
    """A person staffing the stall."""

    name: str
    phone: str
    gender: Gender = Gender.MALE
    profile_photo: Optional[str] = None


@dataclass(frozen=True)
class InventoryItem:
    """A product a stall declares it brought to the exhibition."""

    product_category: str
    product_name: str
    quantity: int = 0
    value: Decimal = Decimal("0")
    photos: tuple[str, ...] = ()


@dataclass(frozen=True)
class StructuredLocation:
    """Stall location resolved through the geography tree."""

    district: str
    block: str
    local_unit: str
    state: str = STRUCTURED_STATE


@dataclass(frozen=True)
class FreeTextLocation:
    """Stall location from outside the structured state, entered as text."""

    other_state: str
    district: str
    block: str
    state: str = OTHER_STATE


Location = Union[StructuredLocation, FreeTextLocation]


@dataclass(frozen=True)
class Organization:
    """Organisation kind; ``other_name`` is kept only for ``Others``."""

    kind: OrganizationType
    other_name: Optional[str] = None

    def __post_init__(self) -> None:
        if self.kind is not OrganizationType.OTHERS:
            object.__setattr__(self, "other_name", None)


@dataclass(frozen=True)
class Sponsorship:
    """Sponsoring agency; ``other_name`` is kept only for ``Others``."""

    kind: Sponsor
    other_name: Optional[str] = None

    def __post_init__(self) -> None:
        if self.kind is not Sponsor.OTHERS:
            object.__setattr__(self, "other_name", None)


@dataclass(frozen=True)
class Registration:
    """Aggregate root for one stall: location, organisers and inventory."""

    exhibition_id: str
    stall_number: str
    location: Location
    organization: Organization
    sponsor: Sponsorship
    participants: tuple[Participant, ...] = ()
    inventory: tuple[InventoryItem, ...] = ()
    stall_name: str = ""
    accommodation: str = ""
    stall_photos: tuple[str, ...] = ()
    id: Optional[str] = None


@dataclass(frozen=True)
class SalesLineItem:
    """Quantity and value sold of one product on one day."""

    product_category: str
    product_name: str
    quantity_sold: int
    sales_value: Decimal


@dataclass(frozen=True)
class SalesEntry:
    """One dated sales submission for a stall."""

    id: str
    exhibition_id: str
    stall_id: str
    date: str
    line_items: tuple[SalesLineItem, ...] = ()

    @property
    def total_value(self) -> Decimal:
        return sum((item.sales_value for item in self.line_items), Decimal("0"))


@dataclass(frozen=True)
class Exhibition:
    id: str
    name: str


@dataclass(frozen=True)
class ExhibitionSettings:
    """Banner settings shown on the public landing page."""

    title: str
    year: str
    subtitle: Optional[str] = None
    marquee_messages: tuple[str, ...] = field(default_factory=tuple)
    marquee_speed: int = 30
    marquee_color: str = "#1e40af"


# ---------------------------------------------------------------------------
# Coercion helpers
# ---------------------------------------------------------------------------


def _text(raw: Any, field_name: str, *, required: bool = True) -> str:
    if raw is None:
        if required:
            raise ValidationError(field_name, "is required")
        return ""
    if not isinstance(raw, str):
        raise ValidationError(field_name, "must be text")
    return raw.strip()


def _optional_text(raw: Any, field_name: str) -> Optional[str]:
    value = _text(raw, field_name, required=False)
    return value or None


def _integer(raw: Any, field_name: str) -> int:
    if isinstance(raw, bool):
        raise ValidationError(field_name, "must be a whole number")
    if isinstance(raw, int):
        return raw
    try:
        number = Decimal(str(raw).strip())
    except (InvalidOperation, ValueError) as exc:
        raise ValidationError(field_name, "must be a whole number") from exc
    if not number.is_finite() or number != number.to_integral_value():
        raise ValidationError(field_name, "must be a whole number")
    return int(number)


def _decimal(raw: Any, field_name: str) -> Decimal:
    if isinstance(raw, bool) or raw is None:
        raise ValidationError(field_name, "must be a numeric amount")
    try:
        amount = Decimal(str(raw).strip())
    except (InvalidOperation, ValueError) as exc:
        raise ValidationError(field_name, "must be a numeric amount") from exc
    if not amount.is_finite():
        raise ValidationError(field_name, "must be a numeric amount")
    return amount


def _enum(enum_cls: Any, raw: Any, field_name: str) -> Any:
    try:
        return enum_cls(raw)
    except ValueError as exc:
        raise ValidationError(field_name, f"unsupported value {raw!r}") from exc


def _photos(raw: Any, field_name: str) -> tuple[str, ...]:
    if raw is None:
        return ()
    if isinstance(raw, str) or not isinstance(raw, Sequence):
        raise ValidationError(field_name, "must be a list of image references")
    return tuple(str(photo) for photo in raw if photo)


def _records(raw: Any, field_name: str) -> Sequence[Mapping[str, Any]]:
    if raw is None:
        return ()
    if isinstance(raw, str) or not isinstance(raw, Sequence):
        raise ValidationError(field_name, "must be a list")
    for index, record in enumerate(raw):
        if not isinstance(record, Mapping):
            raise ValidationError(f"{field_name}[{index}]", "must be an object")
    return raw


# ---------------------------------------------------------------------------
# Registration documents
# ---------------------------------------------------------------------------


def serialize_participant(participant: Participant) -> Dict[str, Any]:
    return {
        "name": participant.name,
        "phone": participant.phone,
        "gender": participant.gender.value,
        "profilePhoto": participant.profile_photo or "",
    }


def deserialize_participant(raw: Mapping[str, Any], *, prefix: str = "participant") -> Participant:
    return Participant(
        name=_text(raw.get("name"), f"{prefix}.name", required=False),
        phone=_text(raw.get("phone"), f"{prefix}.phone", required=False),
        gender=_enum(Gender, raw.get("gender", Gender.MALE.value), f"{prefix}.gender"),
        profile_photo=_optional_text(raw.get("profilePhoto"), f"{prefix}.profilePhoto"),
    )


def serialize_inventory_item(item: InventoryItem) -> Dict[str, Any]:
    return {
        "productCategory": item.product_category,
        "productName": item.product_name,
        "quantity": item.quantity,
        "value": str(item.value),
        "photos": list(item.photos),
    }


def deserialize_inventory_item(raw: Mapping[str, Any], *, prefix: str = "inventory") -> InventoryItem:
    return InventoryItem(
        product_category=_text(raw.get("productCategory"), f"{prefix}.productCategory", required=False),
        product_name=_text(raw.get("productName"), f"{prefix}.productName", required=False),
        quantity=_integer(raw.get("quantity", 0), f"{prefix}.quantity"),
        value=_decimal(raw.get("value", "0"), f"{prefix}.value"),
        photos=_photos(raw.get("photos"), f"{prefix}.photos"),
    )


def serialize_location(location: Location) -> Dict[str, Any]:
    if isinstance(location, StructuredLocation):
        return {
            "state": location.state,
            "district": location.district,
            "block": location.block,
            "localUnit": location.local_unit,
        }
    return {
        "state": location.state,
        "otherState": location.other_state,
        "district": location.district,
        "block": location.block,
    }


def deserialize_location(raw: Any) -> Location:
    """Pick the location variant from the ``state`` discriminator.

    A state other than the structured state or ``"Other"`` is read as the
    free-text state name itself.
    """
    if not isinstance(raw, Mapping):
        raise ValidationError("location", "is required")
    state = _text(raw.get("state"), "location.state")
    if not state:
        raise ValidationError("location.state", "is required")
    district = _text(raw.get("district"), "location.district", required=False)
    block = _text(raw.get("block"), "location.block", required=False)
    if state == STRUCTURED_STATE:
        return StructuredLocation(
            district=district,
            block=block,
            local_unit=_text(raw.get("localUnit"), "location.localUnit", required=False),
        )
    if state == OTHER_STATE:
        other_state = _text(raw.get("otherState"), "location.otherState", required=False)
    else:
        other_state = state
    return FreeTextLocation(other_state=other_state, district=district, block=block)


def serialize_registration(registration: Registration) -> Dict[str, Any]:
    """Convert a registration into its stored document (without ``id``)."""
    document: Dict[str, Any] = {
        "exhibitionId": registration.exhibition_id,
        "stallNumber": registration.stall_number,
        "stallName": registration.stall_name,
        "location": serialize_location(registration.location),
        "organizationType": registration.organization.kind.value,
        "stallSponsor": registration.sponsor.kind.value,
        "accommodation": registration.accommodation,
        "stallPhotos": list(registration.stall_photos),
        "participants": [serialize_participant(p) for p in registration.participants],
        "inventory": [serialize_inventory_item(item) for item in registration.inventory],
    }
    if registration.organization.other_name is not None:
        document["otherOrganization"] = registration.organization.other_name
    if registration.sponsor.other_name is not None:
        document["otherSponsor"] = registration.sponsor.other_name
    return document


def deserialize_registration(document: Mapping[str, Any], *, registration_id: Optional[str] = None) -> Registration:
    """Build a :class:`Registration` from a stored or submitted document.

    Raises:
        ValidationError: If a field has the wrong shape or an unknown
            enumeration value. Business rules (taxonomy membership, required
            participant details) are checked by the registration manager.
    """
    participants = tuple(
        deserialize_participant(raw, prefix=f"participants[{index}]")
        for index, raw in enumerate(_records(document.get("participants"), "participants"))
    )
    inventory = tuple(
        deserialize_inventory_item(raw, prefix=f"inventory[{index}]")
        for index, raw in enumerate(_records(document.get("inventory"), "inventory"))
    )
    return Registration(
        id=registration_id,
        exhibition_id=_text(document.get("exhibitionId"), "exhibitionId"),
        stall_number=_text(document.get("stallNumber"), "stallNumber"),
        stall_name=_text(document.get("stallName"), "stallName", required=False),
        location=deserialize_location(document.get("location")),
        organization=Organization(
            kind=_enum(OrganizationType, document.get("organizationType", OrganizationType.SHG.value), "organizationType"),
            other_name=_optional_text(document.get("otherOrganization"), "otherOrganization"),
        ),
        sponsor=Sponsorship(
            kind=_enum(Sponsor, document.get("stallSponsor", Sponsor.DRDA_DSMS.value), "stallSponsor"),
            other_name=_optional_text(document.get("otherSponsor"), "otherSponsor"),
        ),
        accommodation=_text(document.get("accommodation"), "accommodation", required=False),
        stall_photos=_photos(document.get("stallPhotos"), "stallPhotos"),
        participants=participants,
        inventory=inventory,
    )


# ---------------------------------------------------------------------------
# Sales documents
# ---------------------------------------------------------------------------


def serialize_line_item(item: SalesLineItem) -> Dict[str, Any]:
    return {
        "productCategory": item.product_category,
        "productName": item.product_name,
        "quantitySold": item.quantity_sold,
        "salesValue": str(item.sales_value),
    }


def deserialize_line_item(raw: Mapping[str, Any], *, prefix: str = "lineItems") -> SalesLineItem:
    return SalesLineItem(
        product_category=_text(raw.get("productCategory"), f"{prefix}.productCategory", required=False),
        product_name=_text(raw.get("productName"), f"{prefix}.productName", required=False),
        quantity_sold=_integer(raw.get("quantitySold", 0), f"{prefix}.quantitySold"),
        sales_value=_decimal(raw.get("salesValue", "0"), f"{prefix}.salesValue"),
    )


def deserialize_line_items(raw: Any) -> tuple[SalesLineItem, ...]:
    return tuple(
        deserialize_line_item(item, prefix=f"lineItems[{index}]")
        for index, item in enumerate(_records(raw, "lineItems"))
    )


def serialize_sales_entry(entry: SalesEntry) -> Dict[str, Any]:
    """Convert a sales entry into its stored document (without ``id``).

    The entry total is derived on read and never stored.
    """
    return {
        "exhibitionId": entry.exhibition_id,
        "stallId": entry.stall_id,
        "date": entry.date,
        "lineItems": [serialize_line_item(item) for item in entry.line_items],
    }


def deserialize_sales_entry(document: Mapping[str, Any], *, entry_id: str) -> SalesEntry:
    return SalesEntry(
        id=entry_id,
        exhibition_id=_text(document.get("exhibitionId"), "exhibitionId", required=False),
        stall_id=_text(document.get("stallId"), "stallId"),
        date=_text(document.get("date"), "date"),
        line_items=deserialize_line_items(document.get("lineItems")),
    )


# ---------------------------------------------------------------------------
# Exhibition documents
# ---------------------------------------------------------------------------


def serialize_settings(settings: ExhibitionSettings) -> Dict[str, Any]:
    return {
        "title": settings.title,
        "year": settings.year,
        "marqueeMessages": list(settings.marquee_messages),
        "marqueeSpeed": settings.marquee_speed,
        "marqueeColor": settings.marquee_color,
        "subtitle": settings.subtitle or "",
    }


def deserialize_settings(document: Mapping[str, Any], *, defaults: ExhibitionSettings) -> ExhibitionSettings:
    """Read stored settings, falling back to ``defaults`` for absent keys."""
    messages = document.get("marqueeMessages")
    return ExhibitionSettings(
        title=_text(document.get("title", defaults.title), "title"),
        year=_text(str(document.get("year", defaults.year)), "year"),
        subtitle=_optional_text(document.get("subtitle", defaults.subtitle), "subtitle"),
        marquee_messages=(
            tuple(str(message) for message in messages)
            if isinstance(messages, Sequence) and not isinstance(messages, str)
            else defaults.marquee_messages
        ),
        marquee_speed=_integer(document.get("marqueeSpeed", defaults.marquee_speed), "marqueeSpeed"),
        marquee_color=_text(document.get("marqueeColor", defaults.marquee_color), "marqueeColor"),
    )


__all__ = [
    "Participant",
    "InventoryItem",
    "StructuredLocation",
    "FreeTextLocation",
    "Location",
    "Organization",
    "Sponsorship",
    "Registration",
    "SalesLineItem",
    "SalesEntry",
    "Exhibition",
    "ExhibitionSettings",
    "serialize_participant",
    "deserialize_participant",
    "serialize_inventory_item",
    "deserialize_inventory_item",
    "serialize_location",
    "deserialize_location",
    "serialize_registration",
    "deserialize_registration",
    "serialize_line_item",
    "deserialize_line_item",
    "deserialize_line_items",
    "serialize_sales_entry",
    "deserialize_sales_entry",
    "serialize_settings",
    "deserialize_settings",
]
