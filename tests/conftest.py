"""Shared pytest fixtures and utilities for Expo Ledger tests."""

from __future__ import annotations

import argparse
import sys
import uuid
from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path
from typing import Callable, Iterator
from unittest.mock import Mock

import pytest

# Ensure source packages are importable without installation.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_DIR = PROJECT_ROOT / "src"

if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from expo_ledger import cli, constants, core_logic, data_manager, registrations  # noqa: E402
from expo_ledger.geography import build_tree  # noqa: E402
from expo_ledger.models import (  # noqa: E402
    InventoryItem,
    Organization,
    Participant,
    Registration,
    Sponsorship,
    StructuredLocation,
)
from expo_ledger.setup_excel import create_master_workbook  # noqa: E402
from expo_ledger.taxonomy import TaxonomyEntry, ProductTaxonomy  # noqa: E402

DEFAULT_SCHEMA_VERSION = constants.EXPECTED_SCHEMA_VERSION
_CONFIG_TEMPLATE = (
    "[System]\n"
    "DataFile = {data_file}\n"
    "ExhibitionName = {exhibition_name}\n"
    "SchemaVersion = {schema_version}\n"
)


@dataclass(frozen=True)
class ConfigBundle:
    """Container bundling together config metadata for tests."""

    directory: Path
    config_path: Path
    workbook_path: Path
    schema_version: str
    exhibition_name: str


@pytest.fixture(scope="session", autouse=True)
def _restore_sys_path() -> Iterator[None]:
    """Ensure sys.path modifications are undone after the test session."""

    original = sys.path.copy()
    try:
        yield
    finally:
        sys.path[:] = original


@pytest.fixture
def workbook_factory(tmp_path: Path) -> Callable[..., Path]:
    """Factory that creates an initialized exhibition workbook in a temp folder."""

    def _create_workbook(
        *,
        subdir: str | None = None,
        exhibition_name: str | None = None,
        filename: str = "expo.xlsx",
    ) -> Path:
        base_dir = tmp_path if subdir is None else tmp_path / subdir
        base_dir.mkdir(parents=True, exist_ok=True)
        workbook_path = base_dir / filename
        create_master_workbook(workbook_path, exhibition_name=exhibition_name, overwrite=True)
        return workbook_path

    return _create_workbook


@pytest.fixture
def config_factory(tmp_path: Path, workbook_factory: Callable[..., Path]) -> Callable[..., ConfigBundle]:
    """Provide a callable that creates config/workbook bundles on demand."""

    def _create_config(
        *,
        make_relative: bool = False,
        exhibition_name: str = "Test Mahotsav",
        schema_version: str = DEFAULT_SCHEMA_VERSION,
        extra: str = "",
    ) -> ConfigBundle:
        bundle_id = uuid.uuid4().hex
        bundle_dir = tmp_path / f"bundle_{bundle_id}"
        bundle_dir.mkdir(parents=True, exist_ok=True)
        workbook_path = workbook_factory(subdir=f"bundle_{bundle_id}")
        data_file_entry = workbook_path.name if make_relative else str(workbook_path)
        config_path = bundle_dir / "config.ini"
        config_path.write_text(
            _CONFIG_TEMPLATE.format(
                data_file=data_file_entry,
                exhibition_name=exhibition_name,
                schema_version=schema_version,
            )
            + extra
        )
        return ConfigBundle(
            directory=bundle_dir,
            config_path=config_path,
            workbook_path=workbook_path,
            schema_version=schema_version,
            exhibition_name=exhibition_name,
        )

    return _create_config


@pytest.fixture
def config_file(config_factory: Callable[..., ConfigBundle]) -> Path:
    """Convenience fixture returning only the config path."""

    return config_factory().config_path


@pytest.fixture
def runtime_context(config_file: Path) -> core_logic.RuntimeContext:
    """Load the runtime context for tests through the public API."""

    context = core_logic.load_runtime_context(config_file)
    core_logic.ensure_schema_version(context)
    return context


# ---------------------------------------------------------------------------
# Domain fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def exhibition(runtime_context: core_logic.RuntimeContext):
    """Create one exhibition in the runtime context's workbook."""

    return core_logic.add_exhibition(runtime_context, "Gonasika Kendujhar Mahotsav 2024")


@pytest.fixture
def registration_factory(exhibition) -> Callable[..., Registration]:
    """Build valid registrations for the ``exhibition`` fixture."""

    def _build(
        *,
        stall_number: str = "A-1",
        inventory: tuple[InventoryItem, ...] | None = None,
        **overrides,
    ) -> Registration:
        if inventory is None:
            inventory = (
                InventoryItem("Handloom", "Saree", quantity=20, value=Decimal("30000")),
                InventoryItem("Handloom", "Dupatta", quantity=15, value=Decimal("4500")),
                InventoryItem("Food Products", "Honey", quantity=40, value=Decimal("8000")),
            )
        fields = dict(
            exhibition_id=exhibition.id,
            stall_number=stall_number,
            stall_name="Maa Tarini SHG",
            location=StructuredLocation(district="Kendujhar", block="Banspal", local_unit="Gonasika"),
            organization=Organization(constants.OrganizationType.SHG),
            sponsor=Sponsorship(constants.Sponsor.DRDA_DSMS),
            participants=(Participant("Sabitri Naik", "9437000001", constants.Gender.FEMALE),),
            inventory=inventory,
        )
        fields.update(overrides)
        return Registration(**fields)

    return _build


@pytest.fixture
def stall_id(runtime_context: core_logic.RuntimeContext, registration_factory) -> str:
    """Register the default stall and return its id."""

    return registrations.create(runtime_context, registration_factory())


# ---------------------------------------------------------------------------
# Reference data fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def small_tree():
    """A hand-built geography tree independent of the bundled reference file."""

    return build_tree(
        {
            "data": {
                "states": [
                    {
                        "name": "Odisha",
                        "districts": [
                            {
                                "name": "Kendujhar",
                                "blocks": [
                                    {"name": "Banspal", "gramPanchayats": ["Gonasika", "Fakirpur"]},
                                    {"name": "Ghatagaon", "gramPanchayats": ["Kantipal"]},
                                ],
                            },
                            {
                                "name": "Khordha",
                                "blocks": [{"name": "Jatni", "gramPanchayats": ["Janla"]}],
                            },
                        ],
                    }
                ]
            }
        }
    )


@pytest.fixture
def small_taxonomy() -> ProductTaxonomy:
    """A hand-built taxonomy with a duplicated, padded pair."""

    return ProductTaxonomy(
        [
            TaxonomyEntry("Handloom", "Saree"),
            TaxonomyEntry("Handloom", "Dupatta"),
            TaxonomyEntry("Handloom ", "Saree "),
            TaxonomyEntry("Handicraft", "Dhokra"),
            TaxonomyEntry("Handicraft", "Pattachitra"),
            TaxonomyEntry("Food Products", "Honey"),
        ]
    )


# ---------------------------------------------------------------------------
# CLI layer fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def cli_parser() -> argparse.ArgumentParser:
    """Return a fresh CLI parser instance for tests."""

    return cli.build_parser()


@pytest.fixture
def command_spec_iterable() -> list[cli.CommandSpec]:
    """Provide a list of command specs for indexing tests."""

    def _make_spec(name: str) -> cli.CommandSpec:
        return cli.CommandSpec(
            name,
            f"{name} help",
            lambda subparsers: subparsers.add_parser(name),
            lambda *_: 0,
        )

    return [_make_spec("alpha"), _make_spec("beta"), _make_spec("gamma")]


# ---------------------------------------------------------------------------
# Mocked context fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def settings(tmp_path: Path) -> data_manager.ConfigSettings:
    """Provide default configuration settings for runtime context tests."""

    return data_manager.ConfigSettings(
        data_file=tmp_path / "expo.xlsx",
        exhibition_name="Test Mahotsav",
        schema_version=constants.EXPECTED_SCHEMA_VERSION,
    )


@pytest.fixture
def mock_context(settings: data_manager.ConfigSettings, small_tree, small_taxonomy) -> core_logic.RuntimeContext:
    """Assemble a runtime context around a mock workbook."""

    return core_logic.RuntimeContext(
        settings=settings,
        workbook=Mock(name="workbook"),
        geography=small_tree,
        taxonomy=small_taxonomy,
    )
