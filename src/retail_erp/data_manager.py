"""Data access layer for Retail ERP.

This module provides low-level helpers that read from and write to the
``master_workbook.xlsx`` workbook. Business logic belongs elsewhere.

The public API is designed around four responsibilities:

1. Configuration handling: finding and parsing ``config.ini``.
2. Workbook lifecycle: opening, validating, and persisting the Excel file.
3. Sheet operations: loading structured records and appending, updating, or
   deleting individual rows.
4. Collaborators: ``WorkbookCatalog``, ``WorkbookCategories`` and
   ``WorkbookSales`` expose the sheets through the repository contracts the
   business layer consumes.
"""


from __future__ import annotations

import configparser
import uuid
from dataclasses import dataclass, replace
from datetime import UTC, datetime
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence

from openpyxl.workbook import Workbook
import openpyxl

from . import log
from .constants import (
    DEFAULT_CURRENCY_SYMBOL,
    DEFAULT_STOCK_RETRY_ATTEMPTS,
    MONEY_QUANTUM,
    SaleStatus,
    SheetName,
)


CONFIG_FILE_NAME = "config.ini"
PRODUCTS_SHEET = SheetName.PRODUCTS.value
CATEGORIES_SHEET = SheetName.CATEGORIES.value
SALES_SHEET = SheetName.SALES.value
SALE_ITEMS_SHEET = SheetName.SALE_ITEMS.value


class StockConflictError(RuntimeError):
    """Raised when a stock row changed between validation and write-back."""

    def __init__(self, product_id: str, expected: int, actual: int) -> None:
        super().__init__(
            f"Stock for product '{product_id}' changed: expected {expected}, found {actual}"
        )
        self.product_id = product_id
        self.expected = expected
        self.actual = actual


class DuplicateCategoryError(ValueError):
    """Raised when a category number or name is already taken."""

    def __init__(self, field: str, value: object) -> None:
        super().__init__(f"Category {field} already in use: {value}")
        self.field = field
        self.value = value


@dataclass(frozen=True)
class ConfigSettings:
    """Typed representation of the ``config.ini`` settings we care about."""

    data_file: Path
    store_name: str
    schema_version: str
    store_address: str = ""
    store_email: str = ""
    store_phone: str = ""
    currency_symbol: str = DEFAULT_CURRENCY_SYMBOL
    stock_retry_attempts: int = DEFAULT_STOCK_RETRY_ATTEMPTS


@dataclass(frozen=True)
class Product:
    """In-memory view of a row from the ``Products`` sheet."""

    product_id: str
    name: str
    brand: str
    category_number: Optional[int]
    size: Optional[str]
    price: Decimal
    quantity: int
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


@dataclass(frozen=True)
class Category:
    """In-memory view of a row from the ``Categories`` sheet."""

    category_id: str
    name: str
    category_number: int
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


@dataclass(frozen=True)
class SaleItem:
    """Price and name snapshot of a product captured when it was sold."""

    product_id: str
    name: str
    price: Decimal
    quantity: int
    subtotal: Decimal


@dataclass(frozen=True)
class Sale:
    """A persisted sale with its line snapshots."""

    sale_id: str
    timestamp_iso: str
    client_id: Optional[str]
    client_name: Optional[str]
    items: tuple[SaleItem, ...]
    total: Decimal
    invoiced: bool = False

    @property
    def status(self) -> SaleStatus:
        return SaleStatus.INVOICED if self.invoiced else SaleStatus.PENDING


@dataclass(frozen=True)
class StockAdjustment:
    """One compare-and-swap instruction for a product's stock level.

    The write is only valid while the stored quantity still equals
    ``expected_quantity``.
    """

    product_id: str
    expected_quantity: int
    new_quantity: int

    def inverted(self) -> "StockAdjustment":
        return StockAdjustment(self.product_id, self.new_quantity, self.expected_quantity)


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


def find_config_file(explicit_path: Optional[Path] = None) -> Path:
    """Locate the configuration file that controls how the data layer behaves.

    If the caller provides ``explicit_path`` the value is returned immediately
    without any verification, which allows the caller to deliberately target a
    non-standard location. When no explicit path is given the function walks up
    from the current working directory toward the filesystem root looking for a
    file named ``CONFIG_FILE_NAME``. The first match that exists on disk is
    considered authoritative.

    Args:
        explicit_path (Path | None): Optional path to use instead of performing
            the upward search. May be relative to the current working directory.

    Returns:
        Path: The path provided by the caller or the discovered configuration
            file.

    Raises:
        FileNotFoundError: If the search exhausts all parent directories without
            finding ``CONFIG_FILE_NAME``.
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
            absolute.

    Returns:
        configparser.ConfigParser: Initialized parser containing the raw
            configuration data.

    Raises:
        FileNotFoundError: If ``config_path`` does not exist after expansion and
            resolution.
    """

    config_path = config_path.expanduser().resolve()
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    parser = configparser.ConfigParser()
    parser.read(config_path, encoding="utf-8")
    return parser


def parse_settings(parser: configparser.ConfigParser, *, base_path: Optional[Path] = None) -> ConfigSettings:
    """Convert a ``ConfigParser`` into strongly typed :class:`ConfigSettings`.

    ``[System]`` entries are mandatory. ``[Store]`` (receipt header) and
    ``[Sales]`` (currency, stock retry budget) are optional and fall back to
    package defaults. Relative ``DataFile`` paths are expanded against
    ``base_path`` when provided, or against the current working directory.

    Args:
        parser (configparser.ConfigParser): Parsed configuration data.
        base_path (Path | None): Directory to use as the anchor for relative
            ``DataFile`` entries.

    Returns:
        ConfigSettings: Immutable settings container.

    Raises:
        KeyError: If one of the required sections or options is missing from the
            configuration.
        ValueError: If ``StockRetryAttempts`` is not a positive integer.
    """

    try:
        data_file_raw = parser.get("System", "DataFile")
        store_name = parser.get("System", "StoreName")
        schema_version = parser.get("System", "SchemaVersion")
    except (configparser.NoSectionError, configparser.NoOptionError) as exc:
        raise KeyError(f"Missing required configuration entry: {exc}") from exc

    retry_attempts = parser.getint(
        "Sales", "StockRetryAttempts", fallback=DEFAULT_STOCK_RETRY_ATTEMPTS)
    if retry_attempts < 1:
        raise ValueError("StockRetryAttempts must be at least 1")

    data_file_path = Path(data_file_raw)
    if not data_file_path.is_absolute():
        if base_path is None:
            base_path = Path.cwd()
        data_file_path = (base_path / data_file_path).resolve()

    return ConfigSettings(
        data_file=data_file_path,
        store_name=store_name,
        schema_version=schema_version,
        store_address=parser.get("Store", "Address", fallback=""),
        store_email=parser.get("Store", "Email", fallback=""),
        store_phone=parser.get("Store", "Phone", fallback=""),
        currency_symbol=parser.get(
            "Sales", "CurrencySymbol", fallback=DEFAULT_CURRENCY_SYMBOL),
        stock_retry_attempts=retry_attempts,
    )


def open_workbook(data_file: Path) -> Workbook:
    """Open the master Excel workbook and return a live ``openpyxl`` workbook.

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
    """Persist the workbook to disk, creating parent directories on demand."""

    dest = Path(destination).expanduser().resolve()
    dest.parent.mkdir(parents=True, exist_ok=True)
    workbook.save(dest)


def refresh_workbook(data_file: Path) -> Workbook:
    """Reload the workbook from disk, discarding any unsaved in-memory changes."""

    return open_workbook(data_file)


def _iter_sheet(workbook: Workbook, sheet_name: str) -> Iterable[Sequence[object]]:
    sheet = workbook[sheet_name]
    for raw in sheet.iter_rows(min_row=2, values_only=True):
        # skip fully empty rows
        if any(cell is not None for cell in raw):
            yield raw


def iter_products(workbook: Workbook) -> Iterable[Product]:
    """Iterate over product records stored on the ``Products`` worksheet.

    Header and fully empty rows are skipped; each remaining row is converted
    via :func:`deserialize_product`.
    """

    for raw in _iter_sheet(workbook, PRODUCTS_SHEET):
        yield deserialize_product(raw)


def iter_categories(workbook: Workbook) -> Iterable[Category]:
    """Iterate over the ``Categories`` worksheet and yield typed records."""

    for raw in _iter_sheet(workbook, CATEGORIES_SHEET):
        yield deserialize_category(raw)


def iter_sales(workbook: Workbook) -> Iterable[Sale]:
    """Stream sales joined with their ``SaleItems`` rows.

    Items are grouped by ``SaleID`` and ordered by ``LineNumber`` so the
    snapshot order always matches the order the cart was submitted in.
    """

    items_by_sale: Dict[str, List[tuple[int, SaleItem]]] = {}
    for raw in _iter_sheet(workbook, SALE_ITEMS_SHEET):
        sale_id, line_number, item = deserialize_sale_item(raw)
        items_by_sale.setdefault(sale_id, []).append((line_number, item))

    for raw in _iter_sheet(workbook, SALES_SHEET):
        lines = sorted(items_by_sale.get(str(raw[0]), []), key=lambda pair: pair[0])
        yield deserialize_sale(raw, tuple(item for _, item in lines))


def header_map(workbook: Workbook, sheet_name: str) -> Dict[str, int]:
    """Map header titles of ``sheet_name`` to 1-based column indices."""

    sheet = workbook[sheet_name]
    return {cell.value: idx + 1 for idx, cell in enumerate(sheet[1]) if cell.value is not None}


def locate_row(workbook: Workbook, sheet_name: str, key_column: str, key_value: object) -> Optional[int]:
    """Find a row by matching a key value within the specified worksheet.

    Values are compared as text because Excel happily stores identifiers such
    as ``1001`` as numbers.

    Returns:
        int | None: 1-based Excel row index when a match is found, otherwise
            ``None``.

    Raises:
        KeyError: If ``key_column`` is not present in the worksheet header.
    """

    headers = header_map(workbook, sheet_name)
    if key_column not in headers:
        raise KeyError(f"Unknown column: {key_column}")

    key_col_index = headers[key_column]
    wanted = str(key_value)
    sheet = workbook[sheet_name]
    for row_idx, row in enumerate(sheet.iter_rows(min_row=2, values_only=True), start=2):
        cell_value = row[key_col_index - 1]
        if cell_value is not None and str(cell_value) == wanted:
            return row_idx

    return None


def update_row(workbook: Workbook, sheet_name: str, row_index: int, *, field_values: Dict[str, Any]) -> None:
    """Write ``field_values`` into the given row, leaving other columns untouched.

    Raises:
        KeyError: If any referenced column cannot be found.
    """

    headers = header_map(workbook, sheet_name)
    sheet = workbook[sheet_name]
    for field, value in field_values.items():
        if field not in headers:
            raise KeyError(f"Unknown {sheet_name} field: {field}")
        sheet.cell(row=row_index, column=headers[field], value=value)


def _to_decimal(raw: object, *, default: str = "0.00") -> Decimal:
    if raw is None or raw == "":
        return Decimal(default).quantize(MONEY_QUANTUM)
    try:
        return Decimal(str(raw)).quantize(MONEY_QUANTUM)
    except InvalidOperation as exc:
        raise ValueError(f"Invalid monetary value: {raw!r}") from exc


def _to_int(raw: object, *, default: int = 0) -> int:
    if raw is None or raw == "":
        return default
    return int(Decimal(str(raw)))


def _to_optional_int(raw: object) -> Optional[int]:
    if raw is None or raw == "":
        return None
    return int(Decimal(str(raw)))


def _to_optional_str(raw: object) -> Optional[str]:
    if raw is None:
        return None
    text = str(raw).strip()
    return text or None


def serialize_product(record: Product) -> list[object]:
    """Convert a product dataclass into the ``Products`` column ordering."""

    return [
        record.product_id,
        record.name,
        record.brand,
        record.category_number,
        record.size,
        record.price,
        record.quantity,
        record.created_at,
        record.updated_at,
    ]


def serialize_category(record: Category) -> list[object]:
    """Convert a category dataclass into the ``Categories`` column ordering."""

    return [
        record.category_id,
        record.name,
        record.category_number,
        record.created_at,
        record.updated_at,
    ]


def serialize_sale(record: Sale) -> list[object]:
    """Convert a sale header into the ``Sales`` column ordering."""

    return [
        record.sale_id,
        record.timestamp_iso,
        record.client_id,
        record.client_name,
        record.total,
        record.invoiced,
    ]


def serialize_sale_items(record: Sale) -> list[list[object]]:
    """Convert the sale's items into ``SaleItems`` rows, numbered from 1."""

    return [
        [record.sale_id, line_number, item.product_id, item.name, item.price, item.quantity, item.subtotal]
        for line_number, item in enumerate(record.items, start=1)
    ]


def deserialize_product(raw_row: Sequence[object]) -> Product:
    """Convert a raw worksheet row into a strongly typed product record.

    Prices become :class:`~decimal.Decimal` quantised to cents and identifiers
    are coerced to ``str`` so Excel's numeric guessing does not leak out.
    """

    (product_id, name, brand, category_number, size, price, quantity, created_at, updated_at) = (
        tuple(raw_row) + (None,) * 9)[:9]
    return Product(
        product_id=str(product_id),
        name=str(name) if name is not None else "",
        brand=str(brand) if brand is not None else "",
        category_number=_to_optional_int(category_number),
        size=_to_optional_str(size),
        price=_to_decimal(price),
        quantity=_to_int(quantity),
        created_at=_to_optional_str(created_at),
        updated_at=_to_optional_str(updated_at),
    )


def deserialize_category(raw_row: Sequence[object]) -> Category:
    """Convert a raw worksheet row into a strongly typed category record."""

    (category_id, name, category_number, created_at, updated_at) = (tuple(raw_row) + (None,) * 5)[:5]
    return Category(
        category_id=str(category_id),
        name=str(name) if name is not None else "",
        category_number=_to_int(category_number),
        created_at=_to_optional_str(created_at),
        updated_at=_to_optional_str(updated_at),
    )


def deserialize_sale_item(raw_row: Sequence[object]) -> tuple[str, int, SaleItem]:
    """Convert a ``SaleItems`` row into ``(sale_id, line_number, item)``."""

    sale_id, line_number, product_id, name, price, quantity, subtotal = (tuple(raw_row) + (None,) * 7)[:7]
    item = SaleItem(
        product_id=str(product_id),
        name=str(name) if name is not None else "",
        price=_to_decimal(price),
        quantity=_to_int(quantity),
        subtotal=_to_decimal(subtotal),
    )
    return str(sale_id), _to_int(line_number), item


def deserialize_sale(raw_row: Sequence[object], items: tuple[SaleItem, ...]) -> Sale:
    """Convert a ``Sales`` row plus its items into a :class:`Sale`."""

    sale_id, timestamp_iso, client_id, client_name, total, invoiced = (tuple(raw_row) + (None,) * 6)[:6]
    return Sale(
        sale_id=str(sale_id),
        timestamp_iso=str(timestamp_iso) if timestamp_iso is not None else "",
        client_id=_to_optional_str(client_id),
        client_name=_to_optional_str(client_name),
        items=items,
        total=_to_decimal(total),
        invoiced=bool(invoiced),
    )


class WorkbookCatalog:
    """Catalog collaborator backed by the ``Products`` worksheet."""

    def __init__(self, workbook: Workbook) -> None:
        self.workbook = workbook

    def get_all(self) -> List[Product]:
        return list(iter_products(self.workbook))

    def get_by_id(self, product_id: str) -> Optional[Product]:
        for product in iter_products(self.workbook):
            if product.product_id == str(product_id):
                return product
        return None

    def get_by_name(self, name: str) -> Optional[Product]:
        wanted = name.strip().casefold()
        for product in iter_products(self.workbook):
            if product.name.strip().casefold() == wanted:
                return product
        return None

    def create(self, product: Product) -> Product:
        """Append ``product`` and return it with creation timestamps set.

        Raises:
            ValueError: If the identifier already exists.
        """

        if locate_row(self.workbook, PRODUCTS_SHEET, "ProductID", product.product_id) is not None:
            raise ValueError(f"Product already exists: {product.product_id}")
        stamp = _now_iso()
        stored = replace(product, created_at=product.created_at or stamp, updated_at=stamp)
        self.workbook[PRODUCTS_SHEET].append(serialize_product(stored))
        return stored

    def update(self, product_id: str, product: Product) -> Product:
        """Overwrite the mutable columns of an existing product.

        Raises:
            KeyError: If the product cannot be found.
        """

        row_index = locate_row(self.workbook, PRODUCTS_SHEET, "ProductID", product_id)
        if row_index is None:
            raise KeyError(f"Product not found: {product_id}")
        stored = replace(product, product_id=str(product_id), updated_at=_now_iso())
        update_row(
            self.workbook,
            PRODUCTS_SHEET,
            row_index,
            field_values={
                "Name": stored.name,
                "Brand": stored.brand,
                "CategoryNumber": stored.category_number,
                "Size": stored.size,
                "Price": stored.price,
                "Quantity": stored.quantity,
                "UpdatedAt": stored.updated_at,
            },
        )
        return deserialize_product(
            [cell.value for cell in self.workbook[PRODUCTS_SHEET][row_index]])

    def delete(self, product_id: str, *, force: bool = False) -> None:
        """Remove a product row.

        Raises:
            KeyError: If the product cannot be found.
            ValueError: If the product still has stock and ``force`` is off.
        """

        row_index = locate_row(self.workbook, PRODUCTS_SHEET, "ProductID", product_id)
        if row_index is None:
            raise KeyError(f"Product not found: {product_id}")
        quantity = _to_int(self.workbook[PRODUCTS_SHEET].cell(
            row=row_index, column=header_map(self.workbook, PRODUCTS_SHEET)["Quantity"]).value)
        if quantity > 0 and not force:
            raise ValueError(f"Product {product_id} still has {quantity} units in stock")
        self.workbook[PRODUCTS_SHEET].delete_rows(row_index)

    def apply_stock_adjustments(self, adjustments: Sequence[StockAdjustment]) -> List[Product]:
        """Apply a batch of stock writes atomically.

        Every adjustment is checked against the stored quantity before any cell
        is written, so the batch either lands completely or not at all.

        Raises:
            KeyError: If a referenced product is missing.
            StockConflictError: If any stored quantity differs from the
                adjustment's ``expected_quantity``.
            ValueError: On negative targets or duplicate product ids.
        """

        headers = header_map(self.workbook, PRODUCTS_SHEET)
        sheet = self.workbook[PRODUCTS_SHEET]
        seen: set[str] = set()
        staged: List[tuple[int, StockAdjustment]] = []
        for adjustment in adjustments:
            if adjustment.product_id in seen:
                raise ValueError(f"Duplicate stock adjustment for product {adjustment.product_id}")
            seen.add(adjustment.product_id)
            if adjustment.new_quantity < 0:
                raise ValueError(
                    f"Stock for product {adjustment.product_id} cannot become {adjustment.new_quantity}")
            row_index = locate_row(self.workbook, PRODUCTS_SHEET, "ProductID", adjustment.product_id)
            if row_index is None:
                raise KeyError(f"Product not found: {adjustment.product_id}")
            current = _to_int(sheet.cell(row=row_index, column=headers["Quantity"]).value)
            if current != adjustment.expected_quantity:
                log.warning(
                    "Stock conflict on product '%s': expected %s, found %s",
                    adjustment.product_id,
                    adjustment.expected_quantity,
                    current,
                )
                raise StockConflictError(adjustment.product_id, adjustment.expected_quantity, current)
            staged.append((row_index, adjustment))

        stamp = _now_iso()
        updated: List[Product] = []
        for row_index, adjustment in staged:
            sheet.cell(row=row_index, column=headers["Quantity"], value=adjustment.new_quantity)
            sheet.cell(row=row_index, column=headers["UpdatedAt"], value=stamp)
            updated.append(deserialize_product([cell.value for cell in sheet[row_index]]))
        log.debug("Applied %d stock adjustments", len(updated))
        return updated


class WorkbookCategories:
    """Category collaborator backed by the ``Categories`` worksheet."""

    def __init__(self, workbook: Workbook) -> None:
        self.workbook = workbook

    def get_all(self) -> List[Category]:
        return list(iter_categories(self.workbook))

    def get_by_id(self, category_id: str) -> Optional[Category]:
        for category in iter_categories(self.workbook):
            if category.category_id == str(category_id):
                return category
        return None

    def get_by_number(self, category_number: int) -> Optional[Category]:
        for category in iter_categories(self.workbook):
            if category.category_number == category_number:
                return category
        return None

    def get_next_number(self) -> int:
        numbers = [category.category_number for category in iter_categories(self.workbook)]
        return max(numbers) + 1 if numbers else 1

    def _check_unique(self, name: str, category_number: int, *, exclude_id: Optional[str] = None) -> None:
        wanted = name.strip().casefold()
        for category in iter_categories(self.workbook):
            if category.category_id == exclude_id:
                continue
            if category.category_number == category_number:
                raise DuplicateCategoryError("category_number", category_number)
            if category.name.strip().casefold() == wanted:
                raise DuplicateCategoryError("name", name)

    def create(self, name: str, category_number: int) -> Category:
        """Append a new category after re-checking uniqueness at write time.

        Raises:
            DuplicateCategoryError: If the number or the name is taken.
        """

        self._check_unique(name, category_number)
        stamp = _now_iso()
        category = Category(
            category_id=uuid.uuid4().hex,
            name=name.strip(),
            category_number=category_number,
            created_at=stamp,
            updated_at=stamp,
        )
        self.workbook[CATEGORIES_SHEET].append(serialize_category(category))
        return category

    def update(self, category_id: str, name: str, category_number: int) -> Category:
        row_index = locate_row(self.workbook, CATEGORIES_SHEET, "CategoryID", category_id)
        if row_index is None:
            raise KeyError(f"Category not found: {category_id}")
        self._check_unique(name, category_number, exclude_id=str(category_id))
        update_row(
            self.workbook,
            CATEGORIES_SHEET,
            row_index,
            field_values={"Name": name.strip(), "CategoryNumber": category_number, "UpdatedAt": _now_iso()},
        )
        return deserialize_category([cell.value for cell in self.workbook[CATEGORIES_SHEET][row_index]])

    def delete(self, category_id: str) -> None:
        row_index = locate_row(self.workbook, CATEGORIES_SHEET, "CategoryID", category_id)
        if row_index is None:
            raise KeyError(f"Category not found: {category_id}")
        self.workbook[CATEGORIES_SHEET].delete_rows(row_index)


class WorkbookSales:
    """Sales collaborator backed by the ``Sales`` and ``SaleItems`` worksheets."""

    def __init__(self, workbook: Workbook) -> None:
        self.workbook = workbook

    def get_all(self) -> List[Sale]:
        return list(iter_sales(self.workbook))

    def get_by_id(self, sale_id: str) -> Optional[Sale]:
        for sale in iter_sales(self.workbook):
            if sale.sale_id == str(sale_id):
                return sale
        return None

    def create(self, sale: Sale) -> Sale:
        """Append the sale header and its item rows.

        Raises:
            ValueError: If ``sale.sale_id`` already exists.
        """

        if locate_row(self.workbook, SALES_SHEET, "SaleID", sale.sale_id) is not None:
            raise ValueError(f"Sale already exists: {sale.sale_id}")
        items_sheet = self.workbook[SALE_ITEMS_SHEET]
        for row in serialize_sale_items(sale):
            items_sheet.append(row)
        self.workbook[SALES_SHEET].append(serialize_sale(sale))
        return sale

    def mark_invoiced(self, sale_id: str) -> None:
        row_index = locate_row(self.workbook, SALES_SHEET, "SaleID", sale_id)
        if row_index is None:
            raise KeyError(f"Sale not found: {sale_id}")
        update_row(self.workbook, SALES_SHEET, row_index, field_values={"Invoiced": True})
