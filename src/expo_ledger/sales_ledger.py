"""Sales ledger manager.

Daily sales are stored one document per submission. Line items are validated
against the owning stall's own inventory (its scoped taxonomy), which is a
narrower scope than the global taxonomy used for registrations. Entry totals
are always derived from the line items and never stored.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Mapping, Tuple

from . import data_manager, log, registrations
from .cascade import CascadeForm, sales_form
from .constants import CollectionName
from .core_logic import (
    RuntimeContext,
    get_cache_bucket,
    invalidate_cache,
    require_finite_money,
    require_iso_date,
    require_positive_money,
    require_positive_quantity,
    require_text,
    require_whole_number,
)
from .errors import StoreError, ValidationError
from .models import (
    Registration,
    SalesEntry,
    SalesLineItem,
    deserialize_sales_entry,
    serialize_line_item,
    serialize_sales_entry,
)


COLLECTION = CollectionName.DAILY_SALES.value


@dataclass(frozen=True)
class ProductSales:
    quantity_sold: int
    sales_value: Decimal


@dataclass(frozen=True)
class SalesSummary:
    """Aggregated sales of one stall across all of its entries."""

    stall_id: str
    entry_count: int
    total_quantity: int
    total_value: Decimal
    by_product: Dict[Tuple[str, str], ProductSales]


def entry_total(entry: SalesEntry) -> Decimal:
    """Return the derived total value of ``entry``."""
    return entry.total_value


def _normalize(items: Iterable[SalesLineItem]) -> Tuple[SalesLineItem, ...]:
    return tuple(
        replace(
            item,
            product_category=(item.product_category or "").strip(),
            product_name=(item.product_name or "").strip(),
        )
        for item in items
    )


def validate_line_scope(context: RuntimeContext, stall: Registration, line_items: Tuple[SalesLineItem, ...]) -> None:
    """Check that every (category, product) pair is stocked by the stall.

    Raises:
        ValidationError: Naming the first offending row, for example
            ``lineItems[0].productCategory``.
    """
    for index, item in enumerate(line_items):
        prefix = f"lineItems[{index}]"
        category = require_text(item.product_category, f"{prefix}.productCategory")
        offered = context.taxonomy.scoped_products_of(stall, category)
        if not offered:
            log.error("Stall '%s' does not stock category '%s'", stall.id, category)
            raise ValidationError(f"{prefix}.productCategory", f"stall does not stock {category!r}")
        product = require_text(item.product_name, f"{prefix}.productName")
        if product not in offered:
            log.error("Stall '%s' does not stock '%s' under '%s'", stall.id, product, category)
            raise ValidationError(f"{prefix}.productName", f"stall does not stock {product!r} under {category!r}")


def validate_line_items(context: RuntimeContext, stall: Registration, line_items: Tuple[SalesLineItem, ...]) -> None:
    """Check line items against the stall's scoped taxonomy and require
    positive quantities and values.

    Raises:
        ValidationError: Naming the first offending row and field, for example
            ``lineItems[0].quantitySold``.
    """
    if not line_items:
        log.error("Sale for stall '%s' has no line items", stall.id)
        raise ValidationError("lineItems", "at least one line item is required")
    validate_line_scope(context, stall, line_items)
    for index, item in enumerate(line_items):
        prefix = f"lineItems[{index}]"
        require_positive_quantity(item.quantity_sold, f"{prefix}.quantitySold")
        require_positive_money(item.sales_value, f"{prefix}.salesValue")


def _load(document_id: str, document: Mapping[str, Any]) -> SalesEntry:
    try:
        return deserialize_sales_entry(document, entry_id=document_id)
    except ValidationError as exc:
        log.error("Stored sales entry '%s' is malformed: %s", document_id, exc)
        raise StoreError(f"Stored sales entry {document_id} is malformed: {exc}") from exc


def record_sale(
    context: RuntimeContext,
    stall_id: str,
    date: str,
    line_items: Iterable[SalesLineItem],
) -> SalesEntry:
    """Validate and append a dated sales entry for a stall.

    Each call produces a new entry, even when an entry for the same stall and
    date already exists.

    Raises:
        NotFoundError: If ``stall_id`` does not resolve to a registration.
        ValidationError: If the date or any line item is invalid; nothing is
            written.
    """
    stall = registrations.get(context, stall_id)
    sale_date = require_iso_date(date)
    items = _normalize(line_items)
    validate_line_items(context, stall, items)

    entry = SalesEntry(
        id="",
        exhibition_id=stall.exhibition_id,
        stall_id=stall_id,
        date=sale_date,
        line_items=items,
    )
    entry_id = data_manager.insert_document(context.workbook, COLLECTION, serialize_sales_entry(entry))
    invalidate_cache(context, "sales")
    log.info(
        "Recorded sales entry '%s' for stall '%s' on %s (%d items, value=%s)",
        entry_id,
        stall_id,
        sale_date,
        len(items),
        entry.total_value,
    )
    return replace(entry, id=entry_id)


def list_history(context: RuntimeContext, stall_id: str) -> List[SalesEntry]:
    """Return the stall's entries, newest date first.

    ISO dates sort chronologically as strings. Entries sharing a date keep
    their insertion order. An unknown stall has no history.
    """
    bucket = get_cache_bucket(context, "sales")
    if stall_id not in bucket:
        entries = [
            _load(document_id, document)
            for document_id, document in data_manager.query_equals(
                context.workbook, COLLECTION, "stallId", stall_id
            )
        ]
        bucket[stall_id] = sorted(entries, key=lambda entry: entry.date, reverse=True)
        log.debug("Populated sales cache for stall '%s' with %d entries", stall_id, len(entries))
    return list(bucket[stall_id])


def get_entry(context: RuntimeContext, entry_id: str) -> SalesEntry:
    """Fetch one sales entry.

    Raises:
        NotFoundError: If no entry has that id.
    """
    document = data_manager.get_document(context.workbook, COLLECTION, entry_id)
    return _load(entry_id, document)


def edit_entry(context: RuntimeContext, entry_id: str, new_line_items: Iterable[SalesLineItem]) -> SalesEntry:
    """Replace the whole line-item collection of a stored entry.

    Pairs must still be stocked by the stall, and quantities and values must
    be whole numbers and finite amounts. Unlike :func:`record_sale` this does
    not reject non-positive quantities or values; such lines are logged as
    warnings and written as given. The cached history is updated only after
    the store call succeeds.

    Raises:
        NotFoundError: If the entry does not exist.
        ValidationError: If a pair is outside the stall's inventory or a
            quantity or value is malformed; nothing is written.
    """
    entry = get_entry(context, entry_id)
    stall = registrations.get(context, entry.stall_id)
    items = _normalize(new_line_items)
    validate_line_scope(context, stall, items)
    for index, item in enumerate(items):
        prefix = f"lineItems[{index}]"
        quantity = require_whole_number(item.quantity_sold, f"{prefix}.quantitySold")
        value = require_finite_money(item.sales_value, f"{prefix}.salesValue")
        if quantity <= 0 or value <= Decimal("0"):
            log.warning(
                "Edited entry '%s' line %d has non-positive quantity or value (quantity=%s, value=%s)",
                entry_id,
                index,
                quantity,
                value,
            )

    data_manager.patch_document(
        context.workbook,
        COLLECTION,
        entry_id,
        {"lineItems": [serialize_line_item(item) for item in items]},
    )
    updated = replace(entry, line_items=items)

    bucket = get_cache_bucket(context, "sales")
    cached = bucket.get(entry.stall_id)
    if cached is not None:
        bucket[entry.stall_id] = [updated if row.id == entry_id else row for row in cached]

    log.info("Edited sales entry '%s' (%d items, value=%s)", entry_id, len(items), updated.total_value)
    return updated


def new_sale_form(context: RuntimeContext, stall_id: str) -> CascadeForm:
    """Return an empty line-item form scoped to the stall's inventory.

    Raises:
        NotFoundError: If the stall does not exist.
    """
    return sales_form(context.taxonomy, registrations.get(context, stall_id))


def edit_form(context: RuntimeContext, entry: SalesEntry) -> CascadeForm:
    """Return a form pre-filled with ``entry``'s line items, keyed by row index.

    Stored pairs that are no longer offered by the stall come back with an
    empty product so they must be re-selected before saving.
    """
    form = new_sale_form(context, entry.stall_id)
    for index, item in enumerate(entry.line_items):
        form.add_row(index, category=item.product_category, product=item.product_name)
    return form


def stall_sales_summary(context: RuntimeContext, stall_id: str) -> SalesSummary:
    """Aggregate quantities and values per product across the stall's entries."""
    entries = list_history(context, stall_id)
    quantities: Dict[Tuple[str, str], int] = defaultdict(int)
    values: Dict[Tuple[str, str], Decimal] = defaultdict(Decimal)
    for entry in entries:
        for item in entry.line_items:
            key = (item.product_category, item.product_name)
            quantities[key] += item.quantity_sold
            values[key] += item.sales_value
    by_product = {
        key: ProductSales(quantity_sold=quantities[key], sales_value=values[key])
        for key in sorted(quantities)
    }
    return SalesSummary(
        stall_id=stall_id,
        entry_count=len(entries),
        total_quantity=sum(quantities.values()),
        total_value=sum(values.values(), Decimal("0")),
        by_product=by_product,
    )
