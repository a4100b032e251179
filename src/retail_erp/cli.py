"""Command-line entry points for the Retail ERP toolkit.

All orchestration in this module is limited to argparse wiring and translating
command-line arguments into the command objects consumed by the business
layer. Keeping the CLI thin ensures the same parser configuration can be
reused by tests, scripts, or any alternative front-end that wants to expose
the package capabilities.
"""

from __future__ import annotations

import argparse
from dataclasses import dataclass
from datetime import date, datetime, time
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, Mapping, MutableMapping, Optional, Sequence

from . import core_logic, importer, log
from .constants import SaleStatus


@dataclass(frozen=True)
class CommandSpec:
    """Describe how a CLI sub-command is configured and executed.

    Only commands with ``mutates`` set cause the workbook to be saved.
    """

    name: str
    help_text: str
    register: Callable[[argparse._SubParsersAction[argparse.ArgumentParser]], argparse.ArgumentParser]
    execute: Callable[[core_logic.RuntimeContext, argparse.Namespace], int]
    mutates: bool = True


def build_parser() -> argparse.ArgumentParser:
    """Construct the top-level CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="retail-cli",
        description="Command-line tools for the Retail ERP workbook.",
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
    """Declare mutating CLI commands such as sales, imports, and restocks."""
    specs = {
        "add-product": register_add_product_command(subparsers),
        "edit-product": register_edit_product_command(subparsers),
        "delete-product": register_delete_product_command(subparsers),
        "restock": register_restock_command(subparsers),
        "add-category": register_add_category_command(subparsers),
        "edit-category": register_edit_category_command(subparsers),
        "delete-category": register_delete_category_command(subparsers),
        "sale": register_sale_command(subparsers),
        "invoice": register_invoice_command(subparsers),
        "import": register_import_command(subparsers),
    }
    for spec in specs.values():
        spec.register(subparsers)
    return specs


def register_read_commands(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> Dict[str, CommandSpec]:
    """Declare read-only CLI commands such as listings and exports."""
    specs = {
        "stock": register_stock_command(subparsers),
        "categories": register_categories_command(subparsers),
        "next-category": register_next_category_command(subparsers),
        "sales": register_sales_command(subparsers),
        "receipt": register_receipt_command(subparsers),
        "export": register_export_command(subparsers),
        "template": register_template_command(subparsers),
    }
    for spec in specs.values():
        spec.register(subparsers)
    return specs


def _add_product_fields(parser: argparse.ArgumentParser, *, required: bool) -> None:
    parser.add_argument("--name", required=required)
    parser.add_argument("--brand", default=None)
    parser.add_argument("--category-number", default=None)
    parser.add_argument("--size", default=None)
    parser.add_argument("--price", required=required)
    parser.add_argument("--quantity", required=required)


def register_add_product_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``add-product``."""
    name = "add-product"
    help_text = "Register a new product in the Products sheet."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--product-id", required=True)
        _add_product_fields(parser, required=True)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_add_product)


def register_edit_product_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``edit-product``."""
    name = "edit-product"
    help_text = "Edit an existing product; omitted fields keep their value."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--product-id", required=True)
        _add_product_fields(parser, required=False)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_edit_product)


def register_delete_product_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``delete-product``."""
    name = "delete-product"
    help_text = "Delete a product from the catalog."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--product-id", required=True)
        parser.add_argument("--force", action="store_true", help="Delete even if units remain in stock.")
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_delete_product)


def register_restock_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``restock``."""
    name = "restock"
    help_text = "Add (or with a negative delta, remove) units of a product."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--product-id", required=True)
        parser.add_argument("--quantity", required=True)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_restock)


def register_add_category_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``add-category``."""
    name = "add-category"
    help_text = "Create a category; the number defaults to the next free one."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--name", required=True)
        parser.add_argument("--category-number", default=None)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_add_category)


def register_edit_category_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``edit-category``."""
    name = "edit-category"
    help_text = "Rename or renumber a category."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--category-number", required=True, help="Current number of the category.")
        parser.add_argument("--name", default=None)
        parser.add_argument("--new-number", default=None)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_edit_category)


def register_delete_category_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``delete-category``."""
    name = "delete-category"
    help_text = "Delete a category no product references."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--category-number", required=True)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_delete_category)


def register_sale_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``sale``."""
    name = "sale"
    help_text = "Record a sale and decrement stock."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument(
            "--item",
            dest="items",
            action="append",
            default=[],
            metavar="PRODUCT_ID:QTY[:PRICE]",
            help="Cart line; repeat for several products.",
        )
        parser.add_argument("--client-name", default=None)
        parser.add_argument("--client-id", default=None)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_sale)


def register_invoice_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``invoice``."""
    name = "invoice"
    help_text = "Mark a sale as invoiced."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--sale-id", required=True)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_invoice)


def register_import_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``import``."""
    name = "import"
    help_text = "Bulk import products from an .xlsx file."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--file", type=Path, required=True)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_import)


def register_stock_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``stock``."""
    name = "stock"
    help_text = "Display current stock levels."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--category-number", default=None)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(
        name=name, help_text=help_text, register=registrar,
        execute=run_stock_report, mutates=False,
    )


def register_categories_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``categories``."""
    name = "categories"
    help_text = "List categories by number."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(
        name=name, help_text=help_text, register=registrar,
        execute=run_categories_report, mutates=False,
    )


def register_next_category_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``next-category``."""
    name = "next-category"
    help_text = "Print the suggested number for a new category."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(
        name=name, help_text=help_text, register=registrar,
        execute=run_next_category, mutates=False,
    )


def register_sales_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``sales``."""
    name = "sales"
    help_text = "Display sales history."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--from", dest="start", default=None, help="First day (YYYY-MM-DD), inclusive.")
        parser.add_argument("--to", dest="end", default=None, help="Last day (YYYY-MM-DD), inclusive.")
        parser.add_argument(
            "--status",
            choices=["all", *(member.value.lower() for member in SaleStatus)],
            default="all",
        )
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(
        name=name, help_text=help_text, register=registrar,
        execute=run_sales_report, mutates=False,
    )


def register_receipt_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``receipt``."""
    name = "receipt"
    help_text = "Print the receipt of a sale."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--sale-id", required=True)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(
        name=name, help_text=help_text, register=registrar,
        execute=run_receipt, mutates=False,
    )


def register_export_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``export``."""
    name = "export"
    help_text = "Export the inventory in the import layout."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--file", type=Path, default=Path("inventory.xlsx"))
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(
        name=name, help_text=help_text, register=registrar,
        execute=run_export, mutates=False,
    )


def register_template_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``template``."""
    name = "template"
    help_text = "Write an empty import template."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--file", type=Path, default=Path("product_template.xlsx"))
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(
        name=name, help_text=help_text, register=registrar,
        execute=run_template, mutates=False,
    )


def load_runtime_context(config_path: Optional[Path] = None) -> core_logic.RuntimeContext:
    """Resolve the runtime context for CLI operations."""
    target = Path(config_path) if config_path is not None else Path.cwd() / "config.ini"
    context = core_logic.load_runtime_context(target)
    core_logic.ensure_schema_version(context)
    return context


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


def parse_decimal(raw: str, *, field_name: str) -> Decimal:
    """Parse a decimal CLI argument or raise ``ValidationError``."""
    try:
        return Decimal(str(raw).strip())
    except InvalidOperation as exc:
        raise core_logic.ValidationError(field_name, f"not a number: {raw!r}") from exc


def parse_int(raw: str, *, field_name: str) -> int:
    """Parse a whole-number CLI argument or raise ``ValidationError``."""
    try:
        return int(str(raw).strip())
    except ValueError as exc:
        raise core_logic.ValidationError(field_name, f"not a whole number: {raw!r}") from exc


def _optional_int(raw: Optional[str], *, field_name: str) -> Optional[int]:
    return None if raw is None else parse_int(raw, field_name=field_name)


def translate_add_product(args: argparse.Namespace) -> core_logic.ProductCommand:
    """Translate CLI args into an add-product command object."""
    return core_logic.ProductCommand(
        product_id=args.product_id,
        name=args.name,
        brand=args.brand or "",
        category_number=_optional_int(args.category_number, field_name="category_number"),
        size=args.size,
        price=parse_decimal(args.price, field_name="price"),
        quantity=parse_int(args.quantity, field_name="quantity"),
    )


def translate_edit_product(args: argparse.Namespace, existing: core_logic.Product) -> core_logic.ProductCommand:
    """Merge the supplied CLI args over ``existing`` into a product command."""
    return core_logic.ProductCommand(
        product_id=existing.product_id,
        name=args.name if args.name is not None else existing.name,
        brand=args.brand if args.brand is not None else existing.brand,
        category_number=(
            _optional_int(args.category_number, field_name="category_number")
            if args.category_number is not None
            else existing.category_number
        ),
        size=args.size if args.size is not None else existing.size,
        price=parse_decimal(args.price, field_name="price") if args.price is not None else existing.price,
        quantity=parse_int(args.quantity, field_name="quantity") if args.quantity is not None else existing.quantity,
    )


def translate_sale_item(raw: str) -> core_logic.SaleLineCommand:
    """Translate ``PRODUCT_ID:QTY[:PRICE]`` into a sale line."""
    parts = raw.split(":")
    if len(parts) not in (2, 3) or not parts[0].strip():
        raise core_logic.ValidationError("item", f"expected PRODUCT_ID:QTY[:PRICE], got {raw!r}")
    override = parse_decimal(parts[2], field_name="unit_price_override") if len(parts) == 3 else None
    return core_logic.SaleLineCommand(
        product_id=parts[0].strip(),
        quantity=parse_int(parts[1], field_name="quantity"),
        unit_price_override=override,
    )


def translate_sale(args: argparse.Namespace) -> core_logic.CreateSaleCommand:
    """Translate CLI args into a sale command object."""
    return core_logic.CreateSaleCommand(
        items=tuple(translate_sale_item(raw) for raw in args.items),
        client_name=args.client_name,
        client_id=args.client_id,
    )


def _parse_day(raw: Optional[str], *, end_of_day: bool) -> Optional[datetime]:
    if raw is None:
        return None
    try:
        day = date.fromisoformat(raw)
    except ValueError as exc:
        raise core_logic.ValidationError("date", f"expected YYYY-MM-DD, got {raw!r}") from exc
    return datetime.combine(day, time.max if end_of_day else time.min)


def translate_sales_filter(args: argparse.Namespace) -> Mapping[str, Any]:
    """Translate CLI args into keyword filters for ``list_sales``."""
    status = getattr(args, "status", "all")
    return {
        "start": _parse_day(args.start, end_of_day=False),
        "end": _parse_day(args.end, end_of_day=True),
        "invoiced": None if status == "all" else status == SaleStatus.INVOICED.value.lower(),
    }


def _find_category_by_number(context: core_logic.RuntimeContext, raw: str) -> core_logic.Category:
    number = parse_int(raw, field_name="category_number")
    category = context.categories.get_by_number(number)
    if category is None:
        raise core_logic.CategoryNotFound(number)
    return category


def run_add_product(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the add-product workflow in the BLL."""
    command = translate_add_product(args)
    core_logic.add_product(context, command)
    return 0


def run_edit_product(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the edit-product workflow in the BLL."""
    existing = core_logic.get_product(context, args.product_id)
    command = translate_edit_product(args, existing)
    core_logic.update_product(context, existing.product_id, command)
    return 0


def run_delete_product(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the delete-product workflow in the BLL."""
    core_logic.delete_product(context, args.product_id, force=args.force)
    return 0


def run_restock(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute a stock adjustment via the BLL."""
    delta = parse_int(args.quantity, field_name="quantity")
    product = core_logic.adjust_stock(context, args.product_id, delta)
    print(f"{product.product_id}: {product.quantity} in stock")
    return 0


def run_add_category(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the add-category workflow in the BLL."""
    number = _optional_int(args.category_number, field_name="category_number")
    category = core_logic.create_category(context, args.name, number)
    print(f"Created category {category.category_number} - {category.name}")
    return 0


def run_edit_category(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the edit-category workflow in the BLL."""
    existing = _find_category_by_number(context, args.category_number)
    new_number = _optional_int(args.new_number, field_name="new_number")
    core_logic.update_category(
        context,
        existing.category_id,
        args.name if args.name is not None else existing.name,
        new_number if new_number is not None else existing.category_number,
    )
    return 0


def run_delete_category(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the delete-category workflow in the BLL."""
    existing = _find_category_by_number(context, args.category_number)
    core_logic.delete_category(context, existing.category_id)
    return 0


def run_sale(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the sale workflow via the BLL."""
    command = translate_sale(args)
    sale = core_logic.create_sale(context, command)
    print(f"Recorded sale {sale.sale_id} (total {context.settings.currency_symbol} {sale.total:.2f})")
    return 0


def run_invoice(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the invoicing workflow via the BLL."""
    sale = core_logic.mark_sale_invoiced(context, args.sale_id)
    print(f"Sale {sale.sale_id}: {sale.status.value}")
    return 0


def run_import(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute a bulk import; row errors are reported, not fatal."""
    result = importer.import_products(context, importer.SpreadsheetImportSource(args.file))
    print(result.summary)
    for message in result.warnings:
        print(f"  warning: {message}")
    for message in result.errors:
        print(f"  error: {message}")
    return 0


def run_stock_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the stock reporting workflow."""
    number = _optional_int(getattr(args, "category_number", None), field_name="category_number")
    categories = core_logic.list_categories(context)
    for product in core_logic.list_products(context, category_number=number):
        print(
            f"{product.product_id} | {product.name} | "
            f"{core_logic.category_display_text(product.category_number, categories)} | "
            f"{product.quantity} | {context.settings.currency_symbol} {product.price:.2f}"
        )
    return 0


def run_categories_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the category listing workflow."""
    for option in core_logic.list_category_options(context):
        print(option.display_text)
    return 0


def run_next_category(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Print the suggested next category number."""
    print(core_logic.get_next_category_number(context))
    return 0


def run_sales_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the sales history workflow."""
    filters = translate_sales_filter(args)
    for sale in core_logic.list_sales(context, **filters):
        print(
            f"{sale.sale_id} | {sale.timestamp_iso} | {sale.client_name or '-'} | "
            f"{context.settings.currency_symbol} {sale.total:.2f} | {sale.status.value}"
        )
    return 0


def run_receipt(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Print a sale receipt."""
    sale = core_logic.get_sale(context, args.sale_id)
    print(core_logic.render_receipt(context, sale))
    return 0


def run_export(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Export the inventory spreadsheet."""
    path = importer.export_inventory(context, args.file)
    print(f"Inventory exported to {path}")
    return 0


def run_template(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Write the import template."""
    path = importer.write_import_template(args.file)
    print(f"Template written to {path}")
    return 0


def handle_cli_error(error: Exception) -> int:
    """Convert raised exceptions into user-friendly exit codes."""
    if isinstance(error, core_logic.BusinessRuleViolation):
        log.error("%s", error)
        return 2
    if isinstance(error, (FileNotFoundError, importer.ImportFileError)):
        log.error("%s", error)
        return 3
    log.error("%s", error)
    return 1


def persist_workbook(context: core_logic.RuntimeContext) -> None:
    """Persist workbook changes after successful execution."""
    try:
        core_logic.persist_context(context)
    except PermissionError as error:
        raise RuntimeError(str(error)) from error


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entry point that orchestrates parsing and execution."""
    parser = build_parser()
    command_table = configure_subcommands(parser)
    args = parser.parse_args(argv)
    try:
        context = load_runtime_context(getattr(args, "config", None))
        exit_code = dispatch_command(context, args, command_table)
        spec = command_table.get(args.command)
        if exit_code == 0 and spec is not None and spec.mutates:
            persist_workbook(context)
        return exit_code
    except Exception as error:  # pragma: no cover - centralised error handler tested separately
        return handle_cli_error(error)
