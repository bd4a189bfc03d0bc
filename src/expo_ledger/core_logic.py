"""Business logic foundation for Expo Ledger.

This module holds the runtime context shared by the registration and sales
managers, the per-context read caches, the validation guards both managers
apply before writing, and the small exhibition catalogue (exhibitions and the
banner settings shown on the public pages). All I/O goes through the Data
Access Layer (DAL) in :mod:`expo_ledger.data_manager`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, List, Optional

from openpyxl.workbook import Workbook

from . import data_manager, log
from .constants import EXPECTED_SCHEMA_VERSION, CollectionName
from .errors import NotFoundError, ValidationError
from .geography import GeographyTree
from .models import (
    Exhibition,
    ExhibitionSettings,
    deserialize_settings,
    serialize_settings,
)
from .taxonomy import ProductTaxonomy


SETTINGS_DOCUMENT_ID = "exhibition"

DEFAULT_SETTINGS = ExhibitionSettings(
    title="Gonasika Kendujhar Mahotsav",
    subtitle="and Regional Saras",
    year="2024",
    marquee_messages=(
        "Please fill the Visitor Feedback form and win an assured discount at the ORMAS store!",
        "Get a chance to win a bumper prize at the lucky draw!",
    ),
    marquee_speed=30,
    marquee_color="#1e40af",
)


@dataclass(frozen=True)
class RuntimeContext:
    """Container for configuration, workbook and reference data used by the BLL."""

    settings: data_manager.ConfigSettings
    workbook: Workbook
    geography: GeographyTree
    taxonomy: ProductTaxonomy
    _cache: Dict[str, Dict[str, Any]] = field(default_factory=dict, repr=False, compare=False)


def get_cache_bucket(context: RuntimeContext, name: str) -> Dict[str, Any]:
    """Return a mutable cache bucket dedicated to the supplied name.

    Buckets hold query results keyed by lookup value (exhibition id, stall id)
    so repeated reads in one session do not rescan the workbook.

    Args:
        context (RuntimeContext): Runtime state carrying the shared cache
            dictionary.
        name (str): Logical bucket name to fetch or create.

    Returns:
        dict[str, Any]: Mutable mapping used to cache derived collections.
    """

    bucket = context._cache.get(name)
    if bucket is None:
        log.debug("Initializing cache bucket '%s'", name)
        bucket = {}
        context._cache[name] = bucket
    return bucket


def invalidate_cache(context: RuntimeContext, *names: str) -> None:
    """Evict one or more cache buckets after mutating workbook state.

    Missing buckets are ignored so callers can request targeted invalidation
    without checking first.
    """

    if not names:
        return

    log.debug("Invalidating cache buckets: %s", ", ".join(names))

    for name in names:
        context._cache.pop(name, None)


def load_runtime_context(config_path: Optional[Path] = None) -> RuntimeContext:
    """Load configuration, the live workbook and the reference datasets.

    Args:
        config_path (Path | None): Optional override path for the configuration
            file. When omitted the data layer performs its upward search from
            the current working directory.

    Returns:
        RuntimeContext: Fully populated context ready for the managers.

    Raises:
        FileNotFoundError: If the configuration file, workbook, or a reference
            file cannot be located.
        KeyError: When mandatory configuration options are missing.
        ValueError: When a reference file has an unsupported layout.
    """
    located_config = data_manager.find_config_file(config_path)
    resolved_config = Path(located_config).expanduser().resolve()
    parser = data_manager.read_config(resolved_config)
    settings = data_manager.parse_settings(parser, base_path=resolved_config.parent)
    workbook = data_manager.open_workbook(settings.data_file)
    geography = data_manager.load_geography(settings.geography_file)
    taxonomy = data_manager.load_taxonomy(settings.taxonomy_file)
    log.info("Loaded runtime context for workbook '%s'", settings.data_file)
    return RuntimeContext(settings=settings, workbook=workbook, geography=geography, taxonomy=taxonomy)


def ensure_schema_version(context: RuntimeContext) -> None:
    """Validate workbook compatibility before mutating state.

    Raises:
        RuntimeError: If the schema version declared in the configuration does
            not match ``EXPECTED_SCHEMA_VERSION``.
    """
    if context.settings.schema_version != EXPECTED_SCHEMA_VERSION:
        log.error(
            "Workbook schema mismatch: expected %s, found %s",
            EXPECTED_SCHEMA_VERSION,
            context.settings.schema_version,
        )
        raise RuntimeError(
            "Workbook schema mismatch: expected %s, found %s"
            % (EXPECTED_SCHEMA_VERSION, context.settings.schema_version)
        )

    log.debug("Schema version '%s' validated", context.settings.schema_version)


def persist_context(context: RuntimeContext) -> None:
    """Persist in-memory workbook changes to the configured data file.

    Raises:
        StoreError: If the workbook cannot be written.
    """
    data_manager.save_workbook(
        context.workbook,
        destination=context.settings.data_file,
    )
    log.info("Persisted workbook '%s'", context.settings.data_file)


def refresh_context(context: RuntimeContext) -> RuntimeContext:
    """Reload the workbook to discard unsaved modifications.

    Reference data is immutable and carried over; the read caches start empty.
    """
    workbook = data_manager.refresh_workbook(context.settings.data_file)
    log.info("Reloaded workbook '%s'", context.settings.data_file)
    return RuntimeContext(
        settings=context.settings,
        workbook=workbook,
        geography=context.geography,
        taxonomy=context.taxonomy,
    )


# ---------------------------------------------------------------------------
# Validation guards
# ---------------------------------------------------------------------------


def require_text(value: Optional[str], field_name: str) -> str:
    """Validate that a text field is present after trimming.

    Raises:
        ValidationError: If ``value`` is ``None`` or blank.
    """
    if value is None or not value.strip():
        log.error("Required field missing: %s", field_name)
        raise ValidationError(field_name, "is required")
    return value.strip()


def require_whole_number(quantity: Any, field_name: str) -> int:
    """Validate that a count is an integer (booleans are rejected).

    Raises:
        ValidationError: If ``quantity`` is not an ``int``.
    """
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        log.error("Quantity validation failed for %s: %r is not a whole number", field_name, quantity)
        raise ValidationError(field_name, "must be a whole number")
    return quantity


def require_finite_money(amount: Any, field_name: str) -> Decimal:
    """Validate that a monetary amount is a finite ``Decimal``.

    NaN and infinities cannot be compared or read back from the store.

    Raises:
        ValidationError: If ``amount`` is not a finite ``Decimal``.
    """
    if not isinstance(amount, Decimal) or not amount.is_finite():
        log.error("Monetary value validation failed for %s: %r is not a finite amount", field_name, amount)
        raise ValidationError(field_name, "must be a numeric amount")
    return amount


def require_positive_quantity(quantity: int, field_name: str) -> None:
    """Validate that a count is a strictly positive whole number.

    Raises:
        ValidationError: If ``quantity`` is not an integer, or is zero or
            negative.
    """
    if require_whole_number(quantity, field_name) <= 0:
        log.error("Quantity validation failed for %s: %s", field_name, quantity)
        raise ValidationError(field_name, "must be greater than zero")


def require_nonnegative_quantity(quantity: int, field_name: str) -> None:
    if require_whole_number(quantity, field_name) < 0:
        log.error("Quantity validation failed for %s: %s", field_name, quantity)
        raise ValidationError(field_name, "must be zero or positive")


def require_positive_money(amount: Decimal, field_name: str) -> None:
    """Validate that a monetary amount is finite and strictly positive.

    Raises:
        ValidationError: If ``amount`` is not finite, or is zero or negative.
    """
    if require_finite_money(amount, field_name) <= Decimal("0"):
        log.error("Monetary value validation failed for %s: %s", field_name, amount)
        raise ValidationError(field_name, "must be greater than zero")


def require_nonnegative_money(amount: Decimal, field_name: str) -> None:
    if require_finite_money(amount, field_name) < Decimal("0"):
        log.error("Monetary value validation failed for %s: %s", field_name, amount)
        raise ValidationError(field_name, "must be zero or positive")


def require_iso_date(value: Optional[str], field_name: str = "date") -> str:
    """Validate an ISO ``YYYY-MM-DD`` date string and return it normalised.

    Ledger ordering compares dates as strings, which only matches calendar
    order for this exact format.

    Raises:
        ValidationError: If ``value`` is missing or not a calendar date.
    """
    text = require_text(value, field_name)
    try:
        parsed = date.fromisoformat(text)
    except ValueError as exc:
        log.error("Date validation failed for %s: %s", field_name, value)
        raise ValidationError(field_name, "must be an ISO date (YYYY-MM-DD)") from exc
    return parsed.isoformat()


# ---------------------------------------------------------------------------
# Exhibitions and banner settings
# ---------------------------------------------------------------------------


def add_exhibition(context: RuntimeContext, name: str) -> Exhibition:
    """Register a new exhibition and return it with its generated id."""
    cleaned = require_text(name, "name")
    exhibition_id = data_manager.insert_document(
        context.workbook,
        CollectionName.EXHIBITIONS.value,
        {"name": cleaned},
    )
    invalidate_cache(context, "exhibitions")
    log.info("Added exhibition '%s' (%s)", cleaned, exhibition_id)
    return Exhibition(id=exhibition_id, name=cleaned)


def list_exhibitions(context: RuntimeContext) -> List[Exhibition]:
    """Return every exhibition in workbook order."""
    bucket = get_cache_bucket(context, "exhibitions")
    if "all" not in bucket:
        bucket["all"] = [
            Exhibition(id=document_id, name=str(document.get("name", "")))
            for document_id, document in data_manager.iter_documents(
                context.workbook, CollectionName.EXHIBITIONS.value
            )
        ]
    return list(bucket["all"])


def get_exhibition(context: RuntimeContext, exhibition_id: str) -> Exhibition:
    """Resolve an exhibition by id.

    Raises:
        NotFoundError: If the exhibition does not exist.
    """
    for exhibition in list_exhibitions(context):
        if exhibition.id == exhibition_id:
            return exhibition
    log.warning("Exhibition lookup failed for id '%s'", exhibition_id)
    raise NotFoundError("exhibition", exhibition_id)


def get_exhibition_settings(context: RuntimeContext) -> ExhibitionSettings:
    """Return the stored banner settings, or the defaults when none exist."""
    try:
        document = data_manager.get_document(
            context.workbook, CollectionName.SETTINGS.value, SETTINGS_DOCUMENT_ID
        )
    except NotFoundError:
        log.debug("No stored exhibition settings, using defaults")
        return DEFAULT_SETTINGS
    return deserialize_settings(document, defaults=DEFAULT_SETTINGS)


def update_exhibition_settings(context: RuntimeContext, settings: ExhibitionSettings) -> ExhibitionSettings:
    """Replace the stored banner settings."""
    require_text(settings.title, "title")
    require_text(settings.year, "year")
    require_positive_quantity(settings.marquee_speed, "marqueeSpeed")
    data_manager.put_document(
        context.workbook,
        CollectionName.SETTINGS.value,
        SETTINGS_DOCUMENT_ID,
        serialize_settings(settings),
    )
    log.info("Updated exhibition settings '%s %s'", settings.title, settings.year)
    return settings
