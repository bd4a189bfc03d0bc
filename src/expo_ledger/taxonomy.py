"""Product taxonomy index.

The global taxonomy is a static set of (category, product) pairs loaded once
from reference data. Registration inventory is validated against the global
index while daily sales are validated against a stall's *scoped* taxonomy:
the pairs that stall declared in its own inventory.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, List, Mapping, Optional, Sequence


@dataclass(frozen=True)
class TaxonomyEntry:
    """A (category, product) pair, compared after trimming whitespace."""

    category: str
    product_name: str

    def __post_init__(self) -> None:
        object.__setattr__(self, "category", self.category.strip())
        object.__setattr__(self, "product_name", self.product_name.strip())


class ProductTaxonomy:
    """Lookup helpers over the global (category, product) pairs."""

    def __init__(self, entries: Iterable[TaxonomyEntry]) -> None:
        # dict keeps first-seen order while collapsing duplicate pairs
        self._entries: tuple[TaxonomyEntry, ...] = tuple(dict.fromkeys(entries))
        self._pairs = frozenset(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def entries(self) -> tuple[TaxonomyEntry, ...]:
        return self._entries

    def categories(self) -> List[str]:
        """Return trimmed, de-duplicated category names in lexicographic order."""
        return sorted({entry.category for entry in self._entries if entry.category})

    def products_of(self, category: Optional[str]) -> List[str]:
        """Return product names under ``category`` in source order.

        The category is matched after trimming both sides, so ``" Handloom "``
        and ``"Handloom"`` select the same products. Unknown or empty categories
        yield an empty list.
        """
        if not category or not category.strip():
            return []
        wanted = category.strip()
        return [entry.product_name for entry in self._entries if entry.category == wanted]

    def contains(self, category: Optional[str], product_name: Optional[str]) -> bool:
        if not category or not product_name:
            return False
        return TaxonomyEntry(category, product_name) in self._pairs

    def scoped_products_of(self, stall: Any, category: Optional[str]) -> List[str]:
        """Return the products ``stall`` declared under ``category``.

        Only pairs present in the stall's own ``inventory`` are returned, in
        inventory order without duplicates. Pairs missing from the global
        taxonomy are skipped, keeping the result a subset of
        :meth:`products_of`.

        Args:
            stall: Any object exposing an ``inventory`` sequence whose items
                carry ``product_category`` and ``product_name`` attributes,
                usually a :class:`~expo_ledger.models.Registration`.
            category (str | None): Category selected on the sales form.
        """
        if not category or not category.strip():
            return []
        wanted = category.strip()
        scoped: List[str] = []
        for entry in stall_pairs(stall):
            if entry.category != wanted or entry.product_name in scoped:
                continue
            if entry in self._pairs:
                scoped.append(entry.product_name)
        return scoped

    def scoped_categories(self, stall: Any) -> List[str]:
        """Return the sorted categories present in ``stall``'s inventory."""
        return sorted(
            {entry.category for entry in stall_pairs(stall) if entry in self._pairs}
        )


def stall_pairs(stall: Any) -> List[TaxonomyEntry]:
    """Project a stall's inventory onto trimmed taxonomy entries."""
    return [
        TaxonomyEntry(item.product_category or "", item.product_name or "")
        for item in getattr(stall, "inventory", ())
    ]


_LEGACY_CATEGORY_KEY = "Product Category"
_LEGACY_PRODUCT_KEY = "Product Sub Category"


def build_taxonomy(payload: Any) -> ProductTaxonomy:
    """Build a :class:`ProductTaxonomy` from decoded JSON reference data.

    Accepted layouts are a list of ``{"category": ..., "productName": ...}``
    records, or a mapping with a ``Products`` list whose records use the
    spreadsheet headers ``Product Category`` and ``Product Sub Category``.
    Header keys are trimmed before lookup because exported sheets often carry
    trailing spaces.

    Raises:
        ValueError: If the payload matches neither layout.
    """

    if isinstance(payload, Mapping) and "Products" in payload:
        records: Sequence[Any] = payload["Products"]
        category_key, product_key = _LEGACY_CATEGORY_KEY, _LEGACY_PRODUCT_KEY
    elif isinstance(payload, list):
        records = payload
        category_key, product_key = "category", "productName"
    else:
        raise ValueError("Unsupported taxonomy payload layout")

    entries = []
    for record in records:
        normalized = {str(key).strip(): value for key, value in record.items()}
        try:
            category = normalized[category_key]
            product = normalized[product_key]
        except KeyError as exc:
            raise ValueError(f"Taxonomy record missing {exc}") from exc
        entries.append(TaxonomyEntry(str(category), str(product)))
    return ProductTaxonomy(entries)


__all__ = ["TaxonomyEntry", "ProductTaxonomy", "stall_pairs", "build_taxonomy"]
