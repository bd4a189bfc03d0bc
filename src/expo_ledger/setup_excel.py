"""Utility for initializing the Expo Ledger exhibition workbook.

The module doubles as a script (``python -m expo_ledger.setup_excel``) and as a
library used by tests or other tooling. Shared helpers keep the workbook
bootstrap logic consistent regardless of the execution path.
"""

from __future__ import annotations

import argparse
import configparser
import json
import sys
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence

import openpyxl
from openpyxl.styles import Font

from .constants import CollectionName

# One worksheet per document collection, each keyed by DocumentID.
COLLECTIONS: Sequence[str] = tuple(member.value for member in CollectionName)
COLUMNS: Sequence[str] = ("DocumentID", "Payload")

CONFIG_FILE = "config.ini"


@dataclass(frozen=True)
class SetupSettings:
    """Type-safe representation of configuration values used during setup."""

    data_file: Path
    exhibition_name: Optional[str]


def load_settings(config_path: Path) -> SetupSettings:
    """Read ``config.ini`` and produce :class:`SetupSettings`.

    Relative paths inside the config file are resolved against the config
    file's directory.
    """

    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    parser = configparser.ConfigParser()
    parser.read(config_path)

    try:
        data_file_raw = parser.get("System", "DataFile")
    except (configparser.NoSectionError, configparser.NoOptionError) as exc:
        raise KeyError(f"Missing required configuration entry: {exc}") from exc

    data_file_path = Path(data_file_raw)
    if not data_file_path.is_absolute():
        data_file_path = (config_path.parent / data_file_path).resolve()

    return SetupSettings(
        data_file=data_file_path,
        exhibition_name=parser.get("System", "ExhibitionName", fallback=None),
    )


def create_master_workbook(
    destination: Path,
    *,
    exhibition_name: Optional[str] = None,
    collections: Sequence[str] = COLLECTIONS,
    overwrite: bool = False,
) -> Path:
    """Create the exhibition workbook at ``destination``.

    When ``exhibition_name`` is given the ``exhibitions`` collection is seeded
    with one exhibition of that name. When ``overwrite`` is ``False`` (the
    default) this function raises ``FileExistsError`` if the target already
    exists.
    """

    destination = destination.expanduser().resolve()
    if destination.exists() and not overwrite:
        raise FileExistsError(
            f"Refusing to overwrite existing workbook: {destination}"
        )

    destination.parent.mkdir(parents=True, exist_ok=True)

    workbook = openpyxl.Workbook()

    # Remove the default sheet openpyxl generates so we can create ours.
    if workbook.active and workbook.active.title == "Sheet":
        workbook.remove(workbook.active)

    bold_font = Font(bold=True)

    for sheet_name in collections:
        worksheet = workbook.create_sheet(title=sheet_name)
        for column_index, column_name in enumerate(COLUMNS, start=1):
            cell = worksheet.cell(row=1, column=column_index)
            cell.value = column_name
            cell.font = bold_font

    if exhibition_name and CollectionName.EXHIBITIONS.value in collections:
        workbook[CollectionName.EXHIBITIONS.value].append(
            [uuid.uuid4().hex, json.dumps({"name": exhibition_name}, ensure_ascii=False)]
        )

    workbook.save(destination)
    return destination


def run_from_config(config_path: Path, *, overwrite: bool = False) -> Path:
    """Create the workbook named by ``config.ini``."""

    settings = load_settings(config_path)
    return create_master_workbook(
        settings.data_file,
        exhibition_name=settings.exhibition_name,
        overwrite=overwrite,
    )


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Parse CLI arguments for the setup script."""

    parser = argparse.ArgumentParser(description="Initialize the Expo Ledger workbook")
    parser.add_argument(
        "--config",
        default=CONFIG_FILE,
        help="Path to configuration file (default: config.ini)",
    )
    parser.add_argument(
        "--force",
        action="store_true",
        help="Overwrite the target workbook if it already exists.",
    )
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for the setup script."""

    args = parse_args(argv)
    config_path = Path(args.config).expanduser().resolve()

    print("--- Expo Ledger Setup Script ---")
    print(f"Using configuration: {config_path}")

    try:
        output_path = run_from_config(config_path, overwrite=args.force)
    except FileNotFoundError as exc:
        print(f"\n[ERROR] {exc}")
        return 1
    except KeyError as exc:
        print(f"\n[ERROR] {exc}")
        return 1
    except FileExistsError as exc:
        print(f"\n[ERROR] {exc}")
        print("Run with --force to overwrite the existing file if appropriate.")
        return 1
    except (PermissionError, OSError) as exc:
        print(f"\n[ERROR] Unable to write workbook: {exc}")
        return 1

    print(f"\n[SUCCESS] Created workbook at '{output_path}'.")
    return 0


if __name__ == "__main__":  # pragma: no cover - exercised via manual runs
    sys.exit(main())
