"""Cascade consistency engine.

Registration inventory rows, sales line items and their edit forms all carry a
(category, product) pair where the category decides which products are valid.
The transitions in this module keep that pair consistent:

* changing the category always clears the product, and the product options for
  the new category are recomputed in the same step;
* a product is only accepted when a category is set and the product is one of
  that category's options, otherwise the previous selection is kept.

Selections are immutable values, so every row of a multi-row form owns an
independent state. :class:`LocationSelection` applies the same reset rule to
the state, district, block and local unit cascade of the registration form.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Callable, Dict, Hashable, Iterator, List, Optional, Sequence, Tuple

from . import log
from .constants import STRUCTURED_STATE
from .geography import GeographyTree
from .taxonomy import ProductTaxonomy


ProductOptions = Callable[[str], Sequence[str]]


@dataclass(frozen=True)
class Selection:
    """Current (category, product) choice of a single form row."""

    category: Optional[str] = None
    product: Optional[str] = None


@dataclass(frozen=True)
class CascadeStep:
    """Result of a category change: the new selection and its product options."""

    selection: Selection
    product_options: Tuple[str, ...]


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


def set_category(selection: Selection, category: Optional[str], options: ProductOptions) -> CascadeStep:
    """Apply a category change and recompute the dependent product options.

    The product is cleared unconditionally, including when ``category`` equals
    the current category. An empty category clears both fields.
    """
    new_category = _clean(category)
    updated = replace(selection, category=new_category, product=None)
    product_options = tuple(options(new_category)) if new_category else ()
    return CascadeStep(selection=updated, product_options=product_options)


def set_product(selection: Selection, product: Optional[str], options: ProductOptions) -> Selection:
    """Select ``product`` when it is valid for the current category.

    Returns ``selection`` unchanged when no category is set or the product is
    not one of ``options(category)``.
    """
    new_product = _clean(product)
    if selection.category is None or new_product is None:
        log.debug("Rejected product '%s' without a category", product)
        return selection
    if new_product not in options(selection.category):
        log.debug(
            "Rejected product '%s' not offered under category '%s'",
            new_product,
            selection.category,
        )
        return selection
    return replace(selection, product=new_product)


def clear_category(selection: Selection) -> Selection:
    """Clear the category, which always clears the product as well."""
    return replace(selection, category=None, product=None)


def is_complete(selection: Selection) -> bool:
    return selection.category is not None and selection.product is not None


class CascadeForm:
    """Per-row cascade state for a multi-row form.

    Each row is keyed by a caller supplied hashable (row index or id) and holds
    its own :class:`Selection`. Updating one row never touches another.
    """

    def __init__(self, options: ProductOptions, category_choices: Sequence[str] = ()) -> None:
        self._options = options
        self._category_choices = tuple(category_choices)
        self._rows: Dict[Hashable, Selection] = {}
        self._product_options: Dict[Hashable, Tuple[str, ...]] = {}

    @property
    def category_choices(self) -> Tuple[str, ...]:
        return self._category_choices

    def add_row(self, key: Hashable, *, category: Optional[str] = None, product: Optional[str] = None) -> Selection:
        """Create a row, optionally pre-filled from a stored line.

        Pre-filled values go through the regular transitions, so a stored
        product that is not valid for its category is dropped.
        """
        if key in self._rows:
            raise KeyError(f"Duplicate row key: {key!r}")
        self._rows[key] = Selection()
        self._product_options[key] = ()
        if category is not None:
            self.set_category(key, category)
        if product is not None:
            self.set_product(key, product)
        return self._rows[key]

    def remove_row(self, key: Hashable) -> None:
        self._rows.pop(key)
        self._product_options.pop(key, None)

    def selection(self, key: Hashable) -> Selection:
        return self._rows[key]

    def product_options(self, key: Hashable) -> Tuple[str, ...]:
        return self._product_options[key]

    def set_category(self, key: Hashable, category: Optional[str]) -> Tuple[str, ...]:
        step = set_category(self._rows[key], category, self._options)
        self._rows[key] = step.selection
        self._product_options[key] = step.product_options
        return step.product_options

    def set_product(self, key: Hashable, product: Optional[str]) -> bool:
        """Select ``product`` on one row; returns whether the change applied."""
        current = self._rows[key]
        updated = set_product(current, product, self._options)
        self._rows[key] = updated
        return updated is not current

    def clear_category(self, key: Hashable) -> None:
        self._rows[key] = clear_category(self._rows[key])
        self._product_options[key] = ()

    def rows(self) -> Iterator[Tuple[Hashable, Selection]]:
        return iter(list(self._rows.items()))

    def incomplete_rows(self) -> List[Hashable]:
        return [key for key, selection in self._rows.items() if not is_complete(selection)]


def registration_form(taxonomy: ProductTaxonomy) -> CascadeForm:
    """Inventory rows of a registration, scoped to the global taxonomy."""
    return CascadeForm(taxonomy.products_of, taxonomy.categories())


def sales_form(taxonomy: ProductTaxonomy, stall: Any) -> CascadeForm:
    """Sales line items of one stall, scoped to that stall's own inventory."""

    def options(category: str) -> Sequence[str]:
        return taxonomy.scoped_products_of(stall, category)

    return CascadeForm(options, taxonomy.scoped_categories(stall))


@dataclass(frozen=True)
class LocationSelection:
    """Current location choice on the registration form.

    ``other_state`` is only meaningful when ``state`` is not the structured
    state; ``local_unit`` is only offered inside the structured state.
    """

    state: Optional[str] = None
    other_state: Optional[str] = None
    district: Optional[str] = None
    block: Optional[str] = None
    local_unit: Optional[str] = None

    @property
    def is_structured(self) -> bool:
        return self.state == STRUCTURED_STATE


@dataclass(frozen=True)
class LocationStep:
    """Result of a location change and the options for the next level down."""

    selection: LocationSelection
    options: Tuple[str, ...]


def set_state(selection: LocationSelection, state: Optional[str], tree: GeographyTree) -> LocationStep:
    """Change the state and clear every level below it."""
    updated = LocationSelection(state=_clean(state))
    options = tree.districts_of(updated.state) if updated.is_structured else ()
    return LocationStep(selection=updated, options=options)


def set_other_state(selection: LocationSelection, other_state: Optional[str]) -> LocationSelection:
    if selection.state is None or selection.is_structured:
        return selection
    return replace(selection, other_state=_clean(other_state))


def set_district(selection: LocationSelection, district: Optional[str], tree: GeographyTree) -> LocationStep:
    """Change the district and clear the block and local unit.

    Inside the structured state the district must be one of the state's
    districts, otherwise the selection is returned unchanged. Elsewhere the
    district is free text.
    """
    new_district = _clean(district)
    if selection.state is None:
        return LocationStep(selection=selection, options=())
    if selection.is_structured:
        if new_district is not None and new_district not in tree.districts_of(selection.state):
            current = tree.blocks_of(selection.state, selection.district) if selection.district else ()
            return LocationStep(selection=selection, options=current)
        updated = replace(selection, district=new_district, block=None, local_unit=None)
        options = tree.blocks_of(selection.state, new_district) if new_district else ()
        return LocationStep(selection=updated, options=options)
    updated = replace(selection, district=new_district, block=None, local_unit=None)
    return LocationStep(selection=updated, options=())


def set_block(selection: LocationSelection, block: Optional[str], tree: GeographyTree) -> LocationStep:
    """Change the block and clear the local unit."""
    new_block = _clean(block)
    if selection.district is None:
        return LocationStep(selection=selection, options=())
    if selection.is_structured:
        if new_block is not None and new_block not in tree.blocks_of(selection.state, selection.district):
            current = (
                tree.local_units_of(selection.state, selection.district, selection.block)
                if selection.block
                else ()
            )
            return LocationStep(selection=selection, options=current)
        updated = replace(selection, block=new_block, local_unit=None)
        options = tree.local_units_of(selection.state, selection.district, new_block) if new_block else ()
        return LocationStep(selection=updated, options=options)
    return LocationStep(selection=replace(selection, block=new_block, local_unit=None), options=())


def set_local_unit(selection: LocationSelection, local_unit: Optional[str], tree: GeographyTree) -> LocationSelection:
    """Select a local unit; only valid inside the structured state."""
    new_unit = _clean(local_unit)
    if not selection.is_structured or selection.block is None:
        return selection
    if new_unit is not None and new_unit not in tree.local_units_of(
        selection.state, selection.district, selection.block
    ):
        return selection
    return replace(selection, local_unit=new_unit)


__all__ = [
    "ProductOptions",
    "Selection",
    "CascadeStep",
    "set_category",
    "set_product",
    "clear_category",
    "is_complete",
    "CascadeForm",
    "registration_form",
    "sales_form",
    "LocationSelection",
    "LocationStep",
    "set_state",
    "set_other_state",
    "set_district",
    "set_block",
    "set_local_unit",
]
