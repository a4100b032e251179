"""Bulk product import and spreadsheet exchange for Retail ERP.

``import_products`` folds a sequence of :class:`~retail_erp.repositories.RawRow`
values into an :class:`ImportResult`. Unlike the rest of the business layer it
never raises for a bad row: each failure is recorded with its 1-based row
number and processing moves on to the next row.

The spreadsheet helpers read and write the fixed ``IMPORT_COLUMNS`` layout
with openpyxl, so an exported inventory can be edited and imported again.
"""

from __future__ import annotations

import uuid
import zipfile
from dataclasses import dataclass, replace
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional

import openpyxl
from openpyxl.styles import Font
from openpyxl.utils.exceptions import InvalidFileException

from . import core_logic, log
from .constants import IMPORT_COLUMNS, MONEY_QUANTUM, REQUIRED_IMPORT_COLUMNS
from .core_logic import BusinessRuleViolation, ProductCommand, RuntimeContext
from .repositories import RawRow


IMPORT_SHEET_TITLE = "Products"


class ImportFileError(Exception):
    """Raised when an import file cannot be read at all."""


@dataclass(frozen=True)
class ImportResult:
    """Outcome of a bulk import.

    ``successful_imports + rejected == total_processed`` always holds.
    """

    total_processed: int = 0
    successful_imports: int = 0
    categories_created: int = 0
    errors: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()
    summary: str = ""

    @property
    def rejected(self) -> int:
        return self.total_processed - self.successful_imports


@dataclass(frozen=True)
class ParsedRow:
    """A raw row after field validation."""

    product_id: Optional[str]
    name: str
    brand: str
    category_number: int
    category_name: Optional[str]
    size: Optional[str]
    price: Decimal
    quantity: int


def _text(value: object) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    text = str(value).strip()
    return text or None


def _whole_number(value: object) -> Optional[int]:
    """Return ``value`` as an ``int`` when it is a whole number, else ``None``."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = Decimal(str(value).strip())
    except InvalidOperation:
        return None
    if not number.is_finite() or number != number.to_integral_value():
        return None
    return int(number)


def _money(value: object) -> Optional[Decimal]:
    """Return ``value`` rounded to cents, or ``None`` if it is not a usable amount."""
    if value is None or isinstance(value, bool):
        return None
    try:
        amount = Decimal(str(value).strip())
        if not amount.is_finite():
            return None
        return amount.quantize(MONEY_QUANTUM, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        # also raised by quantize when the amount has too many digits
        return None


def parse_raw_row(row: RawRow) -> ParsedRow:
    """Validate one raw row.

    Every failing field is reported together in one message.

    Raises:
        core_logic.ValidationError: With ``field`` set to the first failing
            field and ``reason`` listing every problem found.
    """
    problems: List[tuple[str, str]] = []

    name = _text(row.name)
    if name is None:
        problems.append(("name", "name is required"))

    category_number = _whole_number(row.category_number)
    if category_number is None or category_number <= 0:
        problems.append(("category_number", "category number must be a whole number greater than zero"))

    price = _money(row.price)
    if price is None or price < 0:
        problems.append(("price", "price must be a number of zero or more"))

    quantity = _whole_number(row.quantity)
    if quantity is None or quantity < 0:
        problems.append(("quantity", "quantity must be a whole number of zero or more"))

    if problems:
        raise core_logic.ValidationError(problems[0][0], "; ".join(reason for _, reason in problems))

    return ParsedRow(
        product_id=_text(row.product_id),
        name=name,
        brand=_text(row.brand) or "",
        category_number=category_number,
        category_name=_text(row.category_name),
        size=_text(row.size),
        price=price,
        quantity=quantity,
    )


def generate_product_id() -> str:
    """Return a fresh product identifier for rows that carry none."""
    return f"P{uuid.uuid4().hex[:10].upper()}"


def _summarize(result: ImportResult) -> str:
    summary = (
        f"Processed {result.total_processed} rows: {result.successful_imports} imported, "
        f"{result.rejected} rejected, {result.categories_created} categories created"
    )
    if result.warnings:
        summary += f", {len(result.warnings)} warnings"
    return summary + "."


def _upsert_product(context: RuntimeContext, parsed: ParsedRow) -> None:
    existing = (
        context.catalog.get_by_id(parsed.product_id)
        if parsed.product_id
        else context.catalog.get_by_name(parsed.name)
    )
    product_id = existing.product_id if existing else (parsed.product_id or generate_product_id())
    command = ProductCommand(
        product_id=product_id,
        name=parsed.name,
        brand=parsed.brand,
        category_number=parsed.category_number,
        size=parsed.size,
        price=parsed.price,
        quantity=parsed.quantity,
    )
    if existing is None:
        core_logic.add_product(context, command)
    else:
        core_logic.update_product(context, existing.product_id, command)


def _import_row(
    context: RuntimeContext,
    result: ImportResult,
    row_number: int,
    row: RawRow,
    seen_ids: Dict[str, int],
) -> ImportResult:
    """Fold a single row into ``result`` and return the new accumulator."""
    result = replace(result, total_processed=result.total_processed + 1)
    try:
        parsed = parse_raw_row(row)
    except core_logic.ValidationError as exc:
        return replace(result, errors=result.errors + (f"Row {row_number}: {exc.reason}",))

    warnings: List[str] = []
    try:
        category, created = core_logic.resolve_category(context, parsed.category_number, parsed.category_name)
    except BusinessRuleViolation as exc:
        return replace(result, errors=result.errors + (f"Row {row_number}: {exc}",))
    if created:
        result = replace(result, categories_created=result.categories_created + 1)
    elif parsed.category_name and parsed.category_name.casefold() != category.name.strip().casefold():
        warnings.append(
            f'Row {row_number}: category {category.category_number} already exists as "{category.name}"; '
            f'ignored name "{parsed.category_name}"'
        )

    if parsed.product_id and parsed.product_id in seen_ids:
        warnings.append(
            f"Row {row_number}: product {parsed.product_id} already appeared in row "
            f"{seen_ids[parsed.product_id]}; later values win"
        )

    try:
        _upsert_product(context, parsed)
    except BusinessRuleViolation as exc:
        return replace(
            result,
            errors=result.errors + (f"Row {row_number}: {exc}",),
            warnings=result.warnings + tuple(warnings),
        )

    if parsed.product_id:
        seen_ids.setdefault(parsed.product_id, row_number)
    return replace(
        result,
        successful_imports=result.successful_imports + 1,
        warnings=result.warnings + tuple(warnings),
    )


def import_products(context: RuntimeContext, rows: Iterable[RawRow]) -> ImportResult:
    """Import product rows, collecting per-row failures instead of raising.

    Each row is validated, its category resolved (or created when a name is
    given), and the product is created or updated. A row is matched to an
    existing product by id, or by name when it has no id. Failures never stop
    the batch and never roll back rows that already succeeded.

    Args:
        context (RuntimeContext): Runtime context providing collaborators.
        rows (Iterable[RawRow]): Rows in sheet order, e.g. a
            :class:`SpreadsheetImportSource`.

    Returns:
        ImportResult: Counters, messages, and a one-line summary.

    Raises:
        ImportFileError: Only when ``rows`` itself cannot be read, before any
            row is processed.
    """
    result = ImportResult()
    seen_ids: Dict[str, int] = {}
    for row_number, row in enumerate(rows, start=1):
        result = _import_row(context, result, row_number, row, seen_ids)

    result = replace(result, summary=_summarize(result))
    log.info("Bulk import finished. %s", result.summary)
    for message in result.errors:
        log.warning("Import error: %s", message)
    return result


# ---------------------------------------------------------------------------
# Spreadsheet exchange
# ---------------------------------------------------------------------------


def _header_indices(header: Iterable[object]) -> Dict[str, int]:
    wanted = {column.casefold(): column for column in IMPORT_COLUMNS}
    indices: Dict[str, int] = {}
    for idx, title in enumerate(header):
        if title is None:
            continue
        column = wanted.get(str(title).strip().casefold())
        if column is not None and column not in indices:
            indices[column] = idx
    return indices


def read_import_rows(path: Path) -> List[RawRow]:
    """Read the first worksheet of ``path`` into :class:`RawRow` values.

    Header titles are matched case-insensitively against ``IMPORT_COLUMNS``;
    unknown columns are ignored and fully empty rows are skipped.

    Raises:
        ImportFileError: If the file is missing, unreadable, or lacks one of
            ``REQUIRED_IMPORT_COLUMNS``.
    """
    path = Path(path).expanduser()
    if not path.exists():
        raise ImportFileError(f"Import file not found: {path}")
    try:
        workbook = openpyxl.load_workbook(path, read_only=True, data_only=True)
    except (InvalidFileException, zipfile.BadZipFile, KeyError, OSError) as exc:
        # KeyError: a zip archive without the xlsx parts
        raise ImportFileError(f"Cannot read import file {path}: {exc}") from exc

    try:
        sheet = workbook.worksheets[0]
        rows = sheet.iter_rows(values_only=True)
        header = next(rows, None)
        if header is None:
            raise ImportFileError(f"Import file {path} is empty")
        indices = _header_indices(header)
        missing = [column for column in REQUIRED_IMPORT_COLUMNS if column not in indices]
        if missing:
            raise ImportFileError(f"Import file {path} is missing columns: {', '.join(missing)}")

        def cell(values: tuple, column: str) -> object:
            idx = indices.get(column)
            return values[idx] if idx is not None and idx < len(values) else None

        parsed: List[RawRow] = []
        for values in rows:
            if not any(value is not None and str(value).strip() for value in values):
                continue
            parsed.append(
                RawRow(
                    product_id=cell(values, "ProductID"),
                    name=cell(values, "Name"),
                    brand=cell(values, "Brand"),
                    category_number=cell(values, "CategoryNumber"),
                    category_name=cell(values, "CategoryName"),
                    size=cell(values, "Size"),
                    price=cell(values, "Price"),
                    quantity=cell(values, "Quantity"),
                )
            )
    finally:
        workbook.close()

    log.debug("Read %d import rows from '%s'", len(parsed), path)
    return parsed


class SpreadsheetImportSource:
    """Import source reading an ``.xlsx`` file in the import layout.

    The file is read on first iteration, so a hard failure surfaces before any
    row reaches the import processor.
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self._rows: Optional[List[RawRow]] = None

    def __iter__(self) -> Iterator[RawRow]:
        if self._rows is None:
            self._rows = read_import_rows(self.path)
        return iter(self._rows)


def _write_sheet(destination: Path, rows: Iterable[Iterable[object]]) -> Path:
    workbook = openpyxl.Workbook()
    sheet = workbook.active
    sheet.title = IMPORT_SHEET_TITLE
    sheet.append(list(IMPORT_COLUMNS))
    for cell in sheet[1]:
        cell.font = Font(bold=True)
    for row in rows:
        sheet.append(list(row))

    destination = Path(destination).expanduser().resolve()
    destination.parent.mkdir(parents=True, exist_ok=True)
    workbook.save(destination)
    return destination


def write_import_template(destination: Path) -> Path:
    """Write an empty import spreadsheet containing only the header row."""
    path = _write_sheet(destination, [])
    log.info("Wrote import template to '%s'", path)
    return path


def export_inventory(context: RuntimeContext, destination: Path) -> Path:
    """Export the catalog in the import layout so it can be re-imported."""
    names = {category.category_number: category.name for category in context.categories.get_all()}
    products = sorted(context.catalog.get_all(), key=lambda product: product.product_id)
    path = _write_sheet(
        destination,
        (
            [
                product.product_id,
                product.name,
                product.brand,
                product.category_number,
                names.get(product.category_number),
                product.size,
                product.price,
                product.quantity,
            ]
            for product in products
        ),
    )
    log.info("Exported %d products to '%s'", len(products), path)
    return path


__all__ = [
    "ImportFileError",
    "ImportResult",
    "ParsedRow",
    "parse_raw_row",
    "import_products",
    "read_import_rows",
    "SpreadsheetImportSource",
    "write_import_template",
    "export_inventory",
]
