"""Geography hierarchy resolver.

The administrative geography is a static four level tree
(state, district, block, local unit) loaded once from reference data. All
lookups are exact, case-sensitive name matches and fail softly: an unknown path
produces an empty tuple so callers can fall back to free-text entry.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Optional, Sequence

from . import log


@dataclass(frozen=True)
class GeographyNode:
    """One named node of the geography tree."""

    name: str
    children: tuple["GeographyNode", ...] = ()

    def child(self, name: str) -> Optional["GeographyNode"]:
        for node in self.children:
            if node.name == name:
                return node
        return None

    def child_names(self) -> tuple[str, ...]:
        return tuple(node.name for node in self.children)


class GeographyTree:
    """Read-only view over the root states of the geography hierarchy."""

    def __init__(self, states: Iterable[GeographyNode]) -> None:
        self._root = GeographyNode(name="", children=tuple(states))
        _require_unique_siblings(self._root, path=())

    def states(self) -> tuple[str, ...]:
        """Return state names in source order."""
        return self._root.child_names()

    def districts_of(self, state: str) -> tuple[str, ...]:
        """Return the districts of ``state`` or ``()`` when the state is unknown."""
        return self._children_at(state)

    def blocks_of(self, state: str, district: str) -> tuple[str, ...]:
        """Return the blocks of ``district`` or ``()`` when the path is unknown."""
        return self._children_at(state, district)

    def local_units_of(self, state: str, district: str, block: str) -> tuple[str, ...]:
        """Return the local units of ``block`` or ``()`` when the path is unknown."""
        return self._children_at(state, district, block)

    def contains_path(self, *names: str) -> bool:
        """Report whether ``names`` is a reachable path starting at a state."""
        return bool(names) and self._resolve(names) is not None

    def _children_at(self, *names: Optional[str]) -> tuple[str, ...]:
        node = self._resolve(names)
        if node is None:
            log.debug("Geography path not found: %s", " / ".join(str(n) for n in names))
            return ()
        return node.child_names()

    def _resolve(self, names: Sequence[Optional[str]]) -> Optional[GeographyNode]:
        node: Optional[GeographyNode] = self._root
        for name in names:
            if node is None or not isinstance(name, str):
                return None
            node = node.child(name)
        return node


def _require_unique_siblings(node: GeographyNode, path: tuple[str, ...]) -> None:
    seen: set[str] = set()
    for child in node.children:
        if child.name in seen:
            where = " / ".join(path) or "<root>"
            raise ValueError(f"Duplicate geography name '{child.name}' under {where}")
        seen.add(child.name)
        _require_unique_siblings(child, path + (child.name,))


def build_tree(payload: Any) -> GeographyTree:
    """Build a :class:`GeographyTree` from decoded JSON reference data.

    Two layouts are accepted. The generic one is a list of state nodes shaped
    ``{"name": ..., "children": [...]}``. The mapping layout nests
    ``data.states[].districts[].blocks[].gramPanchayats[]`` where the leaves
    are plain strings.

    Raises:
        ValueError: If the payload matches neither layout or a node repeats a
            sibling's name.
    """

    if isinstance(payload, Mapping) and "data" in payload:
        states = payload["data"].get("states", [])
        return GeographyTree(_node_from_mapping(state, depth=0) for state in states)
    if isinstance(payload, Mapping) and "states" in payload:
        return GeographyTree(_node_from_mapping(state, depth=0) for state in payload["states"])
    if isinstance(payload, list):
        return GeographyTree(_node_from_generic(item) for item in payload)
    raise ValueError("Unsupported geography payload layout")


_MAPPING_CHILD_KEYS = ("districts", "blocks", "gramPanchayats")


def _node_from_mapping(raw: Any, *, depth: int) -> GeographyNode:
    if isinstance(raw, str):
        return GeographyNode(name=raw)
    if depth >= len(_MAPPING_CHILD_KEYS):
        return GeographyNode(name=str(raw["name"]))
    children = raw.get(_MAPPING_CHILD_KEYS[depth], [])
    return GeographyNode(
        name=str(raw["name"]),
        children=tuple(_node_from_mapping(child, depth=depth + 1) for child in children),
    )


def _node_from_generic(raw: Any) -> GeographyNode:
    if isinstance(raw, str):
        return GeographyNode(name=raw)
    return GeographyNode(
        name=str(raw["name"]),
        children=tuple(_node_from_generic(child) for child in raw.get("children", [])),
    )


__all__ = ["GeographyNode", "GeographyTree", "build_tree"]
