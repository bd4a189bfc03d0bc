"""Data access layer for Expo Ledger.

This module provides low-level helpers that read from and write to the
exhibition workbook. Business logic belongs elsewhere.

The public API is designed around four responsibilities:

1. Configuration handling: finding and parsing ``config.ini``.
2. Workbook lifecycle: opening and persisting the Excel file.
3. Document operations: each collection lives on its own worksheet with a
   ``DocumentID`` column and a JSON ``Payload`` column; documents are queried
   by field equality, inserted, patched, or replaced.
4. Reference data: loading the geography tree and product taxonomy JSON files.
"""


from __future__ import annotations

import configparser
import json
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from openpyxl.styles import Font
from openpyxl.workbook import Workbook
from openpyxl.worksheet.worksheet import Worksheet
import openpyxl

from . import log
from .errors import NotFoundError, StoreError
from .geography import GeographyTree, build_tree
from .taxonomy import ProductTaxonomy, build_taxonomy


CONFIG_FILE_NAME = "config.ini"
DOCUMENT_COLUMNS: Tuple[str, str] = ("DocumentID", "Payload")
# Excel refuses cell text longer than this.
MAX_PAYLOAD_CHARS = 32_767
DATA_DIR = Path(__file__).resolve().parent / "data"
DEFAULT_GEOGRAPHY_FILE = DATA_DIR / "odisha_mapping.json"
DEFAULT_TAXONOMY_FILE = DATA_DIR / "product_categories.json"

Document = Dict[str, Any]


@dataclass(frozen=True)
class ConfigSettings:
    """Typed representation of the ``config.ini`` settings we care about."""

    data_file: Path
    exhibition_name: str
    schema_version: str
    geography_file: Path = DEFAULT_GEOGRAPHY_FILE
    taxonomy_file: Path = DEFAULT_TAXONOMY_FILE


def find_config_file(explicit_path: Optional[Path] = None) -> Path:
    """Locate the configuration file that controls how the data layer behaves.

    If the caller provides ``explicit_path`` the value is returned immediately
    without any verification. Otherwise the function walks up from the current
    working directory toward the filesystem root looking for a file named
    ``CONFIG_FILE_NAME``; the first match is authoritative.

    Args:
        explicit_path (Path | None): Optional path to use instead of performing
            the upward search.

    Returns:
        Path: The path provided by the caller or the discovered configuration
            file.

    Raises:
        FileNotFoundError: If no parent directory holds ``CONFIG_FILE_NAME``.
    """

    if explicit_path:
        return explicit_path

    current = Path.cwd()
    for p in (current, *current.parents):
        candidate = p / CONFIG_FILE_NAME
        if candidate.exists():
            return candidate

    raise FileNotFoundError(
        f"Configuration file not found: {CONFIG_FILE_NAME}")


def read_config(config_path: Path) -> configparser.ConfigParser:
    """Load ``config.ini`` and return a populated ``ConfigParser`` instance.

    Args:
        config_path (Path): Path to the configuration file, relative or
            absolute. ``~`` is expanded.

    Returns:
        configparser.ConfigParser: Parser containing the raw configuration
            data. Required entries are validated by :func:`parse_settings`.

    Raises:
        FileNotFoundError: If ``config_path`` does not exist.
    """

    config_path = config_path.expanduser().resolve()
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    parser = configparser.ConfigParser()
    parser.read(config_path)
    return parser


def _anchor(raw: str, base_path: Path) -> Path:
    path = Path(raw).expanduser()
    if not path.is_absolute():
        path = (base_path / path).resolve()
    return path


def parse_settings(parser: configparser.ConfigParser, *, base_path: Optional[Path] = None) -> ConfigSettings:
    """Convert a ``ConfigParser`` into strongly typed :class:`ConfigSettings`.

    ``[System]`` must provide ``DataFile``, ``ExhibitionName`` and
    ``SchemaVersion``. The optional ``[Reference]`` section overrides the
    bundled geography and taxonomy files. Relative paths are anchored at
    ``base_path`` (the current working directory when omitted).

    Raises:
        KeyError: If one of the required sections or options is missing.
    """

    try:
        data_file_raw = parser.get("System", "DataFile")
        exhibition_name = parser.get("System", "ExhibitionName")
        schema_version = parser.get("System", "SchemaVersion")
    except (configparser.NoSectionError, configparser.NoOptionError) as exc:
        raise KeyError(f"Missing required configuration entry: {exc}") from exc

    if base_path is None:
        base_path = Path.cwd()

    geography_raw = parser.get("Reference", "GeographyFile", fallback=None)
    taxonomy_raw = parser.get("Reference", "TaxonomyFile", fallback=None)

    return ConfigSettings(
        data_file=_anchor(data_file_raw, base_path),
        exhibition_name=exhibition_name,
        schema_version=schema_version,
        geography_file=_anchor(geography_raw, base_path) if geography_raw else DEFAULT_GEOGRAPHY_FILE,
        taxonomy_file=_anchor(taxonomy_raw, base_path) if taxonomy_raw else DEFAULT_TAXONOMY_FILE,
    )


def open_workbook(data_file: Path) -> Workbook:
    """Open the exhibition workbook and return a live ``openpyxl`` workbook.

    Raises:
        FileNotFoundError: If ``data_file`` does not exist after expansion and
            resolution.
    """

    data_file = Path(data_file).expanduser().resolve()
    if not data_file.exists():
        raise FileNotFoundError(f"Workbook not found: {data_file}")

    wb = openpyxl.load_workbook(data_file)
    return wb


def save_workbook(workbook: Workbook, destination: Path) -> None:
    """Persist the workbook to disk at an explicitly provided destination.

    Parent directories are created on demand.

    Raises:
        StoreError: If the file cannot be written, for example because the
            workbook is open and locked by a spreadsheet application.
    """

    dest = Path(destination).expanduser().resolve()
    try:
        dest.parent.mkdir(parents=True, exist_ok=True)
        workbook.save(dest)
    except OSError as exc:
        log.error("Failed to save workbook '%s': %s", dest, exc)
        raise StoreError(f"Unable to save workbook {dest}: {exc}") from exc


def refresh_workbook(data_file: Path) -> Workbook:
    """Reload the workbook from disk, discarding any unsaved in-memory changes."""

    return open_workbook(data_file)


# ---------------------------------------------------------------------------
# Document collections
# ---------------------------------------------------------------------------


def ensure_collection(workbook: Workbook, collection: str) -> Worksheet:
    """Return the worksheet backing ``collection``, creating it when missing."""

    if collection in workbook.sheetnames:
        return workbook[collection]
    sheet = workbook.create_sheet(title=collection)
    bold_font = Font(bold=True)
    for column_index, column_name in enumerate(DOCUMENT_COLUMNS, start=1):
        cell = sheet.cell(row=1, column=column_index)
        cell.value = column_name
        cell.font = bold_font
    log.info("Created collection sheet '%s'", collection)
    return sheet


def _decode_payload(collection: str, document_id: str, raw: Any) -> Document:
    if raw is None or raw == "":
        return {}
    try:
        payload = json.loads(str(raw))
    except json.JSONDecodeError as exc:
        log.error("Corrupt payload for %s/%s: %s", collection, document_id, exc)
        raise StoreError(f"Corrupt payload for {collection}/{document_id}") from exc
    if not isinstance(payload, dict):
        log.error("Payload for %s/%s is not an object", collection, document_id)
        raise StoreError(f"Payload for {collection}/{document_id} is not an object")
    return payload


def _encode_payload(document: Mapping[str, Any]) -> str:
    encoded = json.dumps(document, ensure_ascii=False, sort_keys=True)
    if len(encoded) > MAX_PAYLOAD_CHARS:
        log.error("Payload of %d characters exceeds the cell limit", len(encoded))
        raise StoreError(f"Document exceeds {MAX_PAYLOAD_CHARS} characters")
    return encoded


def iter_documents(workbook: Workbook, collection: str) -> Iterable[Tuple[str, Document]]:
    """Iterate over ``(document_id, document)`` pairs stored in ``collection``.

    Missing collections behave as empty. Header and fully empty rows are
    skipped.

    Raises:
        StoreError: If a payload cannot be decoded.
    """

    if collection not in workbook.sheetnames:
        return
    sheet = workbook[collection]
    for raw in sheet.iter_rows(min_row=2, max_col=len(DOCUMENT_COLUMNS), values_only=True):
        if not any(cell is not None for cell in raw):
            continue
        document_id = str(raw[0])
        yield document_id, _decode_payload(collection, document_id, raw[1])


def query_equals(workbook: Workbook, collection: str, field: str, value: Any) -> List[Tuple[str, Document]]:
    """Return every document whose top-level ``field`` equals ``value``."""

    matches = [
        (document_id, document)
        for document_id, document in iter_documents(workbook, collection)
        if document.get(field) == value
    ]
    log.debug("query %s where %s == %r matched %d documents", collection, field, value, len(matches))
    return matches


def get_document(workbook: Workbook, collection: str, document_id: str) -> Document:
    """Fetch one document by id.

    Raises:
        NotFoundError: If ``collection`` holds no document with that id.
    """

    for candidate_id, document in iter_documents(workbook, collection):
        if candidate_id == document_id:
            return document
    raise NotFoundError(collection, document_id)


def generate_document_id() -> str:
    """Generate an opaque, collision resistant document identifier."""

    return uuid.uuid4().hex


def insert_document(workbook: Workbook, collection: str, document: Mapping[str, Any]) -> str:
    """Append ``document`` to ``collection`` and return its generated id."""

    sheet = ensure_collection(workbook, collection)
    document_id = generate_document_id()
    sheet.append([document_id, _encode_payload(document)])
    return document_id


def locate_row(workbook: Workbook, collection: str, document_id: str) -> Optional[int]:
    """Find the 1-based worksheet row holding ``document_id``.

    Returns:
        int | None: Row index when a match is found, otherwise ``None``.
    """

    if collection not in workbook.sheetnames:
        return None
    sheet = workbook[collection]
    for row_idx, row in enumerate(sheet.iter_rows(min_row=2, max_col=1, values_only=True), start=2):
        if row[0] is not None and str(row[0]) == document_id:
            return row_idx
    return None


def patch_document(workbook: Workbook, collection: str, document_id: str, partial: Mapping[str, Any]) -> Document:
    """Merge ``partial`` into a stored document at the top level.

    Keys mapped to ``None`` are removed from the document, every other key
    replaces the stored value wholesale (nested objects and lists are not
    merged).

    Returns:
        dict: The merged document as written.

    Raises:
        NotFoundError: If the document does not exist.
        StoreError: If the stored payload cannot be decoded.
    """

    row_index = locate_row(workbook, collection, document_id)
    if row_index is None:
        raise NotFoundError(collection, document_id)
    sheet = workbook[collection]
    current = _decode_payload(collection, document_id, sheet.cell(row=row_index, column=2).value)
    for key, value in partial.items():
        if value is None:
            current.pop(key, None)
        else:
            current[key] = value
    sheet.cell(row=row_index, column=2, value=_encode_payload(current))
    return current


def put_document(workbook: Workbook, collection: str, document_id: str, document: Mapping[str, Any]) -> None:
    """Create or fully replace the document stored under ``document_id``."""

    sheet = ensure_collection(workbook, collection)
    row_index = locate_row(workbook, collection, document_id)
    if row_index is None:
        sheet.append([document_id, _encode_payload(document)])
    else:
        sheet.cell(row=row_index, column=2, value=_encode_payload(document))


# ---------------------------------------------------------------------------
# Reference data
# ---------------------------------------------------------------------------


def _read_json(path: Path) -> Any:
    path = Path(path).expanduser().resolve()
    if not path.exists():
        raise FileNotFoundError(f"Reference data not found: {path}")
    with path.open(encoding="utf-8") as handle:
        return json.load(handle)


def load_geography(path: Path) -> GeographyTree:
    """Load the geography tree from a JSON reference file.

    Raises:
        FileNotFoundError: If ``path`` does not exist.
        ValueError: If the file is not valid JSON or not a supported layout.
    """

    tree = build_tree(_read_json(path))
    log.info("Loaded geography with %d states from '%s'", len(tree.states()), path)
    return tree


def load_taxonomy(path: Path) -> ProductTaxonomy:
    """Load the global product taxonomy from a JSON reference file.

    Raises:
        FileNotFoundError: If ``path`` does not exist.
        ValueError: If the file is not valid JSON or not a supported layout.
    """

    taxonomy = build_taxonomy(_read_json(path))
    log.info("Loaded taxonomy with %d entries from '%s'", len(taxonomy), path)
    return taxonomy
