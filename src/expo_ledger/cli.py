"""Command-line entry points for the Expo Ledger toolkit.

All orchestration in this module is limited to argparse wiring and translating
command-line arguments into the records consumed by the registration and sales
managers. Keeping the CLI thin ensures the same parser configuration can be
reused by tests, scripts, or any alternative front-end.
"""

from __future__ import annotations

import argparse
import json
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Mapping, MutableMapping, Optional, Sequence

from . import core_logic, log, registrations, sales_ledger
from .constants import STRUCTURED_STATE, Gender
from .errors import NotFoundError, StoreError, ValidationError
from .models import Participant, SalesLineItem, deserialize_registration


@dataclass(frozen=True)
class CommandSpec:
    """Describe how a CLI sub-command is configured and executed."""

    name: str
    help_text: str
    register: Callable[[argparse._SubParsersAction[argparse.ArgumentParser]], argparse.ArgumentParser]
    execute: Callable[[core_logic.RuntimeContext, argparse.Namespace], int]


def build_parser() -> argparse.ArgumentParser:
    """Construct the top-level CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="expo-cli",
        description="Command-line tools for the exhibition stall workbook.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Optional path to config.ini (defaults to ./config.ini).",
    )
    return parser


def configure_subcommands(
    parser: argparse.ArgumentParser,
) -> Mapping[str, CommandSpec]:
    """Wire all CLI sub-commands onto the supplied parser."""
    subparsers = parser.add_subparsers(dest="command", required=True, title="commands")
    write_specs = register_write_commands(subparsers)
    read_specs = register_read_commands(subparsers)
    return build_command_table([*write_specs.values(), *read_specs.values()])


def register_write_commands(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> Dict[str, CommandSpec]:
    """Declare mutating CLI commands such as registrations and sales."""
    specs = {
        "add-exhibition": register_add_exhibition_command(),
        "register": register_registration_command(),
        "update-registration": register_update_registration_command(),
        "update-participant": register_update_participant_command(),
        "record-sale": register_record_sale_command(),
        "edit-sale": register_edit_sale_command(),
    }
    for spec in specs.values():
        spec.register(subparsers)
    return specs


def register_read_commands(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> Dict[str, CommandSpec]:
    """Declare read-only CLI commands such as listings and summaries."""
    specs = {
        "exhibitions": register_exhibitions_command(),
        "registrations": register_registrations_command(),
        "availability": register_availability_command(),
        "sales-history": register_sales_history_command(),
        "sales-summary": register_sales_summary_command(),
        "districts": register_districts_command(),
        "blocks": register_blocks_command(),
        "local-units": register_local_units_command(),
        "categories": register_categories_command(),
        "products": register_products_command(),
    }
    for spec in specs.values():
        spec.register(subparsers)
    return specs


def _simple_spec(
    name: str,
    help_text: str,
    execute: Callable[[core_logic.RuntimeContext, argparse.Namespace], int],
    configure: Optional[Callable[[argparse.ArgumentParser], None]] = None,
) -> CommandSpec:
    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        if configure is not None:
            configure(parser)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=execute)


def register_add_exhibition_command() -> CommandSpec:
    """Register the parser and executor for ``add-exhibition``."""

    def configure(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--name", required=True)

    return _simple_spec("add-exhibition", "Create a new exhibition.", run_add_exhibition, configure)


def register_registration_command() -> CommandSpec:
    """Register the parser and executor for ``register``."""

    def configure(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--file", type=Path, required=True, help="JSON document describing the stall.")

    return _simple_spec("register", "Register a stall from a JSON document.", run_register, configure)


def register_update_registration_command() -> CommandSpec:
    """Register the parser and executor for ``update-registration``."""

    def configure(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--registration-id", required=True)
        parser.add_argument("--file", type=Path, required=True, help="JSON object with the fields to change.")

    return _simple_spec(
        "update-registration",
        "Merge changes into an existing registration.",
        run_update_registration,
        configure,
    )


def register_update_participant_command() -> CommandSpec:
    """Register the parser and executor for ``update-participant``."""

    def configure(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--registration-id", required=True)
        parser.add_argument("--index", type=int, required=True, help="Zero-based participant position.")
        parser.add_argument("--name", required=True)
        parser.add_argument("--phone", required=True)
        parser.add_argument("--gender", choices=[g.value for g in Gender], default=Gender.MALE.value)
        parser.add_argument("--profile-photo", default=None)

    return _simple_spec(
        "update-participant",
        "Replace one participant of a registration.",
        run_update_participant,
        configure,
    )


def _add_item_argument(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--item",
        action="append",
        default=[],
        metavar="CATEGORY|PRODUCT|QTY|VALUE",
        help="Line item; repeat for several products.",
    )


def register_record_sale_command() -> CommandSpec:
    """Register the parser and executor for ``record-sale``."""

    def configure(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--stall-id", required=True)
        parser.add_argument("--date", required=True, help="Sale date as YYYY-MM-DD.")
        _add_item_argument(parser)

    return _simple_spec("record-sale", "Record a dated sales entry for a stall.", run_record_sale, configure)


def register_edit_sale_command() -> CommandSpec:
    """Register the parser and executor for ``edit-sale``."""

    def configure(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--entry-id", required=True)
        _add_item_argument(parser)

    return _simple_spec("edit-sale", "Replace the line items of a sales entry.", run_edit_sale, configure)


def register_exhibitions_command() -> CommandSpec:
    return _simple_spec("exhibitions", "List exhibitions.", run_exhibitions_report)


def register_registrations_command() -> CommandSpec:
    def configure(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--exhibition-id", required=True)

    return _simple_spec("registrations", "List the stalls of an exhibition.", run_registrations_report, configure)


def register_availability_command() -> CommandSpec:
    def configure(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--exhibition-id", required=True)
        parser.add_argument("--category", default=None)

    return _simple_spec("availability", "Show which stalls offer which products.", run_availability_report, configure)


def register_sales_history_command() -> CommandSpec:
    def configure(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--stall-id", required=True)

    return _simple_spec("sales-history", "List a stall's sales, newest first.", run_sales_history_report, configure)


def register_sales_summary_command() -> CommandSpec:
    def configure(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--stall-id", required=True)

    return _simple_spec("sales-summary", "Summarise a stall's sales per product.", run_sales_summary_report, configure)


def register_districts_command() -> CommandSpec:
    def configure(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--state", default=STRUCTURED_STATE)

    return _simple_spec("districts", "List districts of a state.", run_districts_report, configure)


def register_blocks_command() -> CommandSpec:
    def configure(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--state", default=STRUCTURED_STATE)
        parser.add_argument("--district", required=True)

    return _simple_spec("blocks", "List blocks of a district.", run_blocks_report, configure)


def register_local_units_command() -> CommandSpec:
    def configure(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--state", default=STRUCTURED_STATE)
        parser.add_argument("--district", required=True)
        parser.add_argument("--block", required=True)

    return _simple_spec("local-units", "List local units of a block.", run_local_units_report, configure)


def register_categories_command() -> CommandSpec:
    def configure(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--stall-id", default=None, help="Limit to the stall's own inventory.")

    return _simple_spec("categories", "List product categories.", run_categories_report, configure)


def register_products_command() -> CommandSpec:
    def configure(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--category", required=True)
        parser.add_argument("--stall-id", default=None, help="Limit to the stall's own inventory.")

    return _simple_spec("products", "List products of a category.", run_products_report, configure)


def load_runtime_context(config_path: Optional[Path] = None) -> core_logic.RuntimeContext:
    """Resolve the runtime context for CLI operations."""
    target = Path(config_path) if config_path is not None else Path.cwd() / "config.ini"
    return core_logic.load_runtime_context(target)


def dispatch_command(
    context: core_logic.RuntimeContext,
    args: argparse.Namespace,
    command_table: Mapping[str, CommandSpec],
) -> int:
    """Dispatch the parsed arguments to the configured executor."""
    if not hasattr(args, "command") or args.command is None:
        raise KeyError("No command specified")
    spec = command_table.get(args.command)
    if spec is None:
        raise KeyError(f"Unknown command: {args.command}")
    return spec.execute(context, args)


def build_command_table(
    specs: Iterable[CommandSpec],
) -> MutableMapping[str, CommandSpec]:
    """Build an index of command specifications keyed by command name."""
    table: Dict[str, CommandSpec] = {}
    for spec in specs:
        if spec.name in table:
            raise ValueError(f"Duplicate command name: {spec.name}")
        table[spec.name] = spec
    return table


# ---------------------------------------------------------------------------
# Translation
# ---------------------------------------------------------------------------


def read_json_document(path: Path) -> Mapping[str, Any]:
    """Load a JSON object from ``path``.

    Raises:
        FileNotFoundError: If ``path`` does not exist.
        ValidationError: If the file is not a JSON object.
    """
    if not path.exists():
        raise FileNotFoundError(f"Input file not found: {path}")
    try:
        document = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ValidationError("file", f"invalid JSON: {exc.msg}") from exc
    if not isinstance(document, dict):
        raise ValidationError("file", "must contain a JSON object")
    return document


def translate_line_item(raw: str, index: int) -> SalesLineItem:
    """Translate a ``Category|Product|qty|value`` argument into a line item."""
    field_prefix = f"lineItems[{index}]"
    parts = [part.strip() for part in raw.split("|")]
    if len(parts) != 4:
        raise ValidationError(field_prefix, "expected CATEGORY|PRODUCT|QTY|VALUE")
    category, product, quantity_raw, value_raw = parts
    try:
        quantity = int(quantity_raw)
    except ValueError as exc:
        raise ValidationError(f"{field_prefix}.quantitySold", "must be a whole number") from exc
    try:
        value = Decimal(value_raw)
    except InvalidOperation as exc:
        raise ValidationError(f"{field_prefix}.salesValue", "must be a numeric amount") from exc
    if not value.is_finite():
        raise ValidationError(f"{field_prefix}.salesValue", "must be a numeric amount")
    return SalesLineItem(
        product_category=category,
        product_name=product,
        quantity_sold=quantity,
        sales_value=value,
    )


def translate_line_items(args: argparse.Namespace) -> List[SalesLineItem]:
    return [translate_line_item(raw, index) for index, raw in enumerate(args.item)]


def translate_participant(args: argparse.Namespace) -> Participant:
    return Participant(
        name=args.name,
        phone=args.phone,
        gender=Gender(args.gender),
        profile_photo=args.profile_photo,
    )


# ---------------------------------------------------------------------------
# Executors
# ---------------------------------------------------------------------------


def run_add_exhibition(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    exhibition = core_logic.add_exhibition(context, args.name)
    print(exhibition.id)
    return 0


def run_register(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the stall registration workflow."""
    registration = deserialize_registration(read_json_document(args.file))
    print(registrations.create(context, registration))
    return 0


def run_update_registration(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    registrations.update(context, args.registration_id, read_json_document(args.file))
    return 0


def run_update_participant(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    registrations.update_participant(context, args.registration_id, args.index, translate_participant(args))
    return 0


def run_record_sale(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the sales recording workflow."""
    entry = sales_ledger.record_sale(context, args.stall_id, args.date, translate_line_items(args))
    print(f"{entry.id}\t{entry.total_value}")
    return 0


def run_edit_sale(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    entry = sales_ledger.edit_entry(context, args.entry_id, translate_line_items(args))
    print(f"{entry.id}\t{entry.total_value}")
    return 0


def run_exhibitions_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    for exhibition in core_logic.list_exhibitions(context):
        print(f"{exhibition.id}\t{exhibition.name}")
    return 0


def run_registrations_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    stalls = registrations.list_by_exhibition(context, args.exhibition_id)
    for stall in sorted(stalls, key=lambda registration: registration.stall_number):
        print(f"{stall.id}\t{stall.stall_number}\t{stall.stall_name}")
    return 0


def run_availability_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    for listing in registrations.product_availability(context, args.exhibition_id, args.category):
        print(
            f"{listing.product_category}\t{listing.product_name}\t"
            f"{listing.stall_number}\t{listing.stall_name}\t{listing.quantity}"
        )
    return 0


def run_sales_history_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    for entry in sales_ledger.list_history(context, args.stall_id):
        print(f"{entry.date}\t{entry.id}\t{len(entry.line_items)}\t{entry.total_value}")
    return 0


def run_sales_summary_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    summary = sales_ledger.stall_sales_summary(context, args.stall_id)
    for (category, product), sales in summary.by_product.items():
        print(f"{category}\t{product}\t{sales.quantity_sold}\t{sales.sales_value}")
    print(f"TOTAL\t{summary.entry_count} entries\t{summary.total_quantity}\t{summary.total_value}")
    return 0


def _print_lines(values: Iterable[str]) -> int:
    for value in values:
        print(value)
    return 0


def run_districts_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    return _print_lines(context.geography.districts_of(args.state))


def run_blocks_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    return _print_lines(context.geography.blocks_of(args.state, args.district))


def run_local_units_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    return _print_lines(context.geography.local_units_of(args.state, args.district, args.block))


def run_categories_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    if args.stall_id:
        stall = registrations.get(context, args.stall_id)
        return _print_lines(context.taxonomy.scoped_categories(stall))
    return _print_lines(context.taxonomy.categories())


def run_products_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    if args.stall_id:
        stall = registrations.get(context, args.stall_id)
        return _print_lines(context.taxonomy.scoped_products_of(stall, args.category))
    return _print_lines(context.taxonomy.products_of(args.category))


def handle_cli_error(error: Exception) -> int:
    """Convert raised exceptions into user-friendly exit codes."""
    log.error("%s", error)
    if isinstance(error, ValidationError):
        return 2
    if isinstance(error, FileNotFoundError):
        return 3
    if isinstance(error, NotFoundError):
        return 4
    if isinstance(error, StoreError):
        return 5
    return 1


def persist_workbook(context: core_logic.RuntimeContext) -> None:
    """Persist workbook changes after successful execution."""
    core_logic.persist_context(context)


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entry point that orchestrates parsing and execution."""
    parser = build_parser()
    command_table = configure_subcommands(parser)
    args = parser.parse_args(argv)
    try:
        context = load_runtime_context(getattr(args, "config", None))
        core_logic.ensure_schema_version(context)
        exit_code = dispatch_command(context, args, command_table)
        if exit_code == 0:
            persist_workbook(context)
        return exit_code
    except Exception as error:  # pragma: no cover - centralised error handler tested separately
        return handle_cli_error(error)


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
