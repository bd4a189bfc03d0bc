"""Tests covering the argparse wiring and exit-code handling of the CLI."""

from __future__ import annotations

import argparse
import json
from decimal import Decimal
from unittest.mock import Mock

import pytest

from expo_ledger import cli
from expo_ledger.errors import NotFoundError, StoreError, ValidationError


# ---------------------------------------------------------------------------
# Parser wiring
# ---------------------------------------------------------------------------


def test_configure_subcommands_registers_every_command(cli_parser):
    table = cli.configure_subcommands(cli_parser)
    assert {
        "add-exhibition",
        "register",
        "update-registration",
        "update-participant",
        "record-sale",
        "edit-sale",
        "exhibitions",
        "registrations",
        "availability",
        "sales-history",
        "sales-summary",
        "districts",
        "blocks",
        "local-units",
        "categories",
        "products",
    } == set(table)


def test_record_sale_collects_repeated_items(cli_parser):
    cli.configure_subcommands(cli_parser)
    args = cli_parser.parse_args(
        ["record-sale", "--stall-id", "s1", "--date", "2024-01-10", "--item", "Handloom|Saree|2|3000", "--item", "Food Products|Honey|1|200"]
    )
    assert args.command == "record-sale"
    assert args.item == ["Handloom|Saree|2|3000", "Food Products|Honey|1|200"]


def test_build_command_table_rejects_duplicates(command_spec_iterable):
    with pytest.raises(ValueError, match="Duplicate command name"):
        cli.build_command_table([*command_spec_iterable, command_spec_iterable[0]])


def test_dispatch_command_invokes_executor(command_spec_iterable):
    execute = Mock(return_value=0)
    spec = cli.CommandSpec("alpha", "help", command_spec_iterable[0].register, execute)
    context = Mock(name="context")
    args = argparse.Namespace(command="alpha")

    assert cli.dispatch_command(context, args, {"alpha": spec}) == 0
    execute.assert_called_once_with(context, args)


def test_dispatch_command_unknown_raises():
    with pytest.raises(KeyError):
        cli.dispatch_command(Mock(), argparse.Namespace(command="nope"), {})


# ---------------------------------------------------------------------------
# Translation
# ---------------------------------------------------------------------------


def test_translate_line_item():
    item = cli.translate_line_item(" Handloom | Saree | 2 | 3000.50 ", 0)
    assert (item.product_category, item.product_name, item.quantity_sold, item.sales_value) == (
        "Handloom",
        "Saree",
        2,
        Decimal("3000.50"),
    )


@pytest.mark.parametrize(
    "raw, field",
    [
        ("Handloom|Saree|2", "lineItems[1]"),
        ("Handloom|Saree|two|3000", "lineItems[1].quantitySold"),
        ("Handloom|Saree|2|lots", "lineItems[1].salesValue"),
        ("Handloom|Saree|2|NaN", "lineItems[1].salesValue"),
        ("Handloom|Saree|2|-Infinity", "lineItems[1].salesValue"),
    ],
)
def test_translate_line_item_rejects_malformed(raw, field):
    with pytest.raises(ValidationError) as excinfo:
        cli.translate_line_item(raw, 1)
    assert excinfo.value.field == field


def test_read_json_document_requires_object(tmp_path):
    path = tmp_path / "stall.json"
    path.write_text("[1, 2]")
    with pytest.raises(ValidationError):
        cli.read_json_document(path)
    with pytest.raises(FileNotFoundError):
        cli.read_json_document(tmp_path / "missing.json")


@pytest.mark.parametrize(
    "error, code",
    [
        (ValidationError("date", "bad"), 2),
        (FileNotFoundError("config.ini"), 3),
        (NotFoundError("stall", "s1"), 4),
        (StoreError("locked"), 5),
        (RuntimeError("boom"), 1),
    ],
)
def test_handle_cli_error_maps_exit_codes(error, code):
    assert cli.handle_cli_error(error) == code


# ---------------------------------------------------------------------------
# End-to-end through main()
# ---------------------------------------------------------------------------


def _run(config_path, capsys, *argv):
    code = cli.main(["--config", str(config_path), *argv])
    return code, capsys.readouterr().out.strip()


def test_main_registers_stall_and_records_sales(config_file, tmp_path, capsys):
    code, exhibition_id = _run(config_file, capsys, "add-exhibition", "--name", "Mahotsav 2024")
    assert code == 0

    stall_file = tmp_path / "stall.json"
    stall_file.write_text(
        json.dumps(
            {
                "exhibitionId": exhibition_id,
                "stallNumber": "A-7",
                "stallName": "Banspal Weavers",
                "location": {"state": "Odisha", "district": "Kendujhar", "block": "Banspal", "localUnit": "Gonasika"},
                "organizationType": "PG",
                "stallSponsor": "KVIC",
                "participants": [{"name": "Laxmi Juang", "phone": "9437000003", "gender": "female"}],
                "inventory": [{"productCategory": "Handloom", "productName": "Saree", "quantity": 10, "value": "15000"}],
            }
        )
    )
    code, stall_id = _run(config_file, capsys, "register", "--file", str(stall_file))
    assert code == 0

    code, _ = _run(
        config_file, capsys, "record-sale", "--stall-id", stall_id, "--date", "2024-01-10", "--item", "Handloom|Saree|2|3000"
    )
    assert code == 0

    code, output = _run(config_file, capsys, "sales-history", "--stall-id", stall_id)
    assert code == 0
    assert output.startswith("2024-01-10")
    assert output.endswith("3000")

    code, _ = _run(
        config_file, capsys, "record-sale", "--stall-id", stall_id, "--date", "2024-01-11", "--item", "Handloom|Saree|0|3000"
    )
    assert code == 2

    code, _ = _run(
        config_file, capsys, "record-sale", "--stall-id", stall_id, "--date", "2024-01-11", "--item", "Handloom|Saree|1|NaN"
    )
    assert code == 2


def test_main_unknown_stall_returns_not_found_code(config_file, capsys):
    code, _ = _run(config_file, capsys, "record-sale", "--stall-id", "missing", "--date", "2024-01-10", "--item", "Handloom|Saree|1|10")
    assert code == 4


def test_main_missing_config_returns_file_code(tmp_path, capsys):
    code, _ = _run(tmp_path / "absent.ini", capsys, "exhibitions")
    assert code == 3


def test_main_lists_districts(config_file, capsys):
    code, output = _run(config_file, capsys, "districts")
    assert code == 0
    assert "Kendujhar" in output.splitlines()
