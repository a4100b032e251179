"""Business logic layer for Retail ERP.

This module contains the rules that keep the catalog, stock levels, and sales
history consistent. It never touches storage directly: every read and write
goes through the collaborators bundled in :class:`RuntimeContext` (see
:mod:`retail_erp.repositories`), which keeps the rules testable against any
store.

Two error regimes coexist. Sales, category management, and invoicing fail
fast by raising a :class:`BusinessRuleViolation` subclass before anything is
written. Bulk import (:mod:`retail_erp.importer`) reuses the same rules but
collects the failures per row instead.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from openpyxl.workbook import Workbook

from . import data_manager, log
from .constants import EXPECTED_SCHEMA_VERSION, MAX_CATEGORY_NAME_LENGTH, MONEY_QUANTUM, SaleStatus
from .data_manager import Category, Product, Sale, SaleItem, StockAdjustment
from .repositories import CatalogRepository, CategoryRepository, SalesRepository


class BusinessRuleViolation(Exception):
    """Raised when a requested operation violates a domain constraint."""


class MissingReferenceError(BusinessRuleViolation):
    """Raised when a referenced product, sale, or category is unknown."""


class ProductNotFound(MissingReferenceError):
    def __init__(self, product_id: str) -> None:
        super().__init__(f"Unknown product id: {product_id}")
        self.product_id = product_id


class SaleNotFound(MissingReferenceError):
    def __init__(self, sale_id: str) -> None:
        super().__init__(f"Unknown sale id: {sale_id}")
        self.sale_id = sale_id


class CategoryNotFound(MissingReferenceError):
    def __init__(self, reference: object) -> None:
        super().__init__(f"Unknown category: {reference}")
        self.reference = reference


class InsufficientStock(BusinessRuleViolation):
    """Raised when a product cannot cover the requested quantity."""

    def __init__(self, product_id: str, *, requested: int, available: int) -> None:
        super().__init__(
            f"Insufficient stock for product '{product_id}': requested {requested}, available {available}"
        )
        self.product_id = product_id
        self.requested = requested
        self.available = available


class EmptyCart(BusinessRuleViolation):
    """Raised when a sale is requested without any items."""


class CategoryConflict(BusinessRuleViolation):
    """Base class for category uniqueness violations."""


class NameConflict(CategoryConflict):
    def __init__(self, name: str) -> None:
        super().__init__(f'A category named "{name}" already exists')
        self.name = name


class CategoryNumberConflict(CategoryConflict):
    def __init__(self, category_number: int) -> None:
        super().__init__(f"Category number {category_number} is already in use")
        self.category_number = category_number


class ValidationError(BusinessRuleViolation, ValueError):
    """Raised when a single input field fails validation."""

    def __init__(self, field_name: str, reason: str) -> None:
        super().__init__(f"{field_name}: {reason}")
        self.field = field_name
        self.reason = reason


class DuplicateProductError(BusinessRuleViolation):
    """Raised when adding a product whose identifier is already taken."""


class StockOnHandError(BusinessRuleViolation):
    """Raised when deleting a product that still has stock without ``force``."""


class CategoryInUseError(BusinessRuleViolation):
    """Raised when deleting or renumbering a category products still reference."""


class ConcurrentStockModification(BusinessRuleViolation):
    """Raised when stock kept changing underneath a sale after every retry."""


@dataclass(frozen=True)
class RuntimeContext:
    """Container for configuration and the collaborators used by the BLL."""

    settings: data_manager.ConfigSettings
    catalog: CatalogRepository
    sales: SalesRepository
    categories: CategoryRepository
    workbook: Optional[Workbook] = field(default=None, repr=False, compare=False)


@dataclass(frozen=True)
class SaleLineCommand:
    """One cart line of a sale request."""

    product_id: str
    quantity: int
    unit_price_override: Optional[Decimal] = None


@dataclass(frozen=True)
class CreateSaleCommand:
    """User intent for recording a sale. Client details are optional."""

    items: Sequence[SaleLineCommand]
    client_name: Optional[str] = None
    client_id: Optional[str] = None
    timestamp: Optional[datetime] = None


@dataclass(frozen=True)
class ProductCommand:
    """User intent for creating or editing a product."""

    product_id: str
    name: str
    brand: str = ""
    category_number: Optional[int] = None
    size: Optional[str] = None
    price: Decimal = Decimal("0.00")
    quantity: int = 0


@dataclass(frozen=True)
class CategoryOption:
    """Category entry prepared for pickers, e.g. ``"3 - Shoes"``."""

    value: int
    label: str
    display_text: str


@dataclass(frozen=True)
class StockPlan:
    """Batch decrement plan produced by folding a cart over the catalog.

    ``originals`` holds each product as read during validation and
    ``remaining`` the same product after every line of the cart was debited.
    Both mappings preserve first-appearance order.
    """

    originals: Dict[str, Product]
    remaining: Dict[str, Product]

    @property
    def adjustments(self) -> tuple[StockAdjustment, ...]:
        return tuple(
            StockAdjustment(product_id, product.quantity, self.remaining[product_id].quantity)
            for product_id, product in self.originals.items()
        )

    def inverted(self) -> tuple[StockAdjustment, ...]:
        return tuple(adjustment.inverted() for adjustment in self.adjustments)


def _resolve_timestamp(candidate: Optional[datetime]) -> datetime:
    """Return ``candidate`` or the current UTC time when it is ``None``."""

    return candidate if candidate is not None else datetime.now(UTC)


def _clean_optional(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None


def generate_identifier(*, prefix: str, when: Optional[datetime] = None) -> str:
    """Generate a sortable identifier using UTC timestamps.

    Args:
        prefix (str): Designator prepended to the identifier (``"S"`` for
            sales).
        when (datetime | None): Timestamp used for deterministically producing
            the identifier. When ``None`` the current UTC time is used.

    Returns:
        str: Identifier formed as ``{prefix}{YYYYMMDDHHMMSSffffff}``.
    """
    when = when or _resolve_timestamp(None)
    return f"{prefix}{when.strftime('%Y%m%d%H%M%S%f')}"


# ---------------------------------------------------------------------------
# Runtime/context management
# ---------------------------------------------------------------------------


def build_workbook_context(settings: data_manager.ConfigSettings, workbook: Workbook) -> RuntimeContext:
    """Wire the workbook-backed collaborators into a :class:`RuntimeContext`."""

    return RuntimeContext(
        settings=settings,
        catalog=data_manager.WorkbookCatalog(workbook),
        sales=data_manager.WorkbookSales(workbook),
        categories=data_manager.WorkbookCategories(workbook),
        workbook=workbook,
    )


def load_runtime_context(config_path: Optional[Path] = None) -> RuntimeContext:
    """Load configuration settings and a live workbook for the BLL.

    The helper resolves ``config.ini``, parses settings, opens the Excel
    workbook that stores catalog and sales data, and wraps it in the
    workbook-backed collaborators.

    Args:
        config_path (Path | None): Optional override path for the configuration
            file. When omitted the data layer performs its upward search from
            the current working directory.

    Returns:
        RuntimeContext: Fully populated context ready for orchestration
            functions.

    Raises:
        FileNotFoundError: If the configuration file or workbook cannot be
            located.
        KeyError: When mandatory configuration options are missing.
    """
    located_config = data_manager.find_config_file(config_path)
    resolved_config = Path(located_config).expanduser().resolve()
    parser = data_manager.read_config(resolved_config)
    settings = data_manager.parse_settings(parser, base_path=resolved_config.parent)
    workbook = data_manager.open_workbook(settings.data_file)
    log.info("Loaded runtime context for workbook '%s'", settings.data_file)
    return build_workbook_context(settings, workbook)


def ensure_schema_version(context: RuntimeContext) -> None:
    """Validate workbook compatibility before mutating state.

    Raises:
        RuntimeError: If the schema version declared in the configuration does
            not match ``EXPECTED_SCHEMA_VERSION``.
    """
    if context.settings.schema_version != EXPECTED_SCHEMA_VERSION:
        log.error(
            "Workbook schema mismatch: expected %s, found %s",
            EXPECTED_SCHEMA_VERSION,
            context.settings.schema_version,
        )
        raise RuntimeError(
            "Workbook schema mismatch: expected %s, found %s"
            % (EXPECTED_SCHEMA_VERSION, context.settings.schema_version)
        )

    log.debug("Schema version '%s' validated", context.settings.schema_version)


def persist_context(context: RuntimeContext) -> None:
    """Persist in-memory workbook changes to the configured data file."""
    if context.workbook is None:
        raise RuntimeError("Runtime context is not backed by a workbook")
    data_manager.save_workbook(
        context.workbook,
        destination=context.settings.data_file,
    )
    log.info("Persisted workbook '%s'", context.settings.data_file)


def refresh_context(context: RuntimeContext) -> RuntimeContext:
    """Reload the workbook to discard unsaved modifications.

    Returns:
        RuntimeContext: Fresh context containing a newly opened workbook.

    Raises:
        FileNotFoundError: If the backing workbook cannot be reloaded.
    """
    workbook = data_manager.refresh_workbook(context.settings.data_file)
    log.info("Reloaded workbook '%s'", context.settings.data_file)
    return build_workbook_context(context.settings, workbook)


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------


def require_positive_quantity(quantity: int, *, field_name: str = "quantity") -> None:
    """Validate that a quantity is a strictly positive whole number.

    Raises:
        ValidationError: If ``quantity`` is not an ``int`` or is below one.
    """
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        log.error("Quantity validation failed: %s", quantity)
        raise ValidationError(field_name, "must be a whole number greater than zero")


def require_nonnegative_quantity(quantity: int, *, field_name: str = "quantity") -> None:
    """Validate that a stock level is a whole number of zero or more."""
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 0:
        log.error("Stock level validation failed: %s", quantity)
        raise ValidationError(field_name, "must be a whole number of zero or more")


def require_nonnegative_money(amount: Decimal, *, field_name: str = "price") -> None:
    """Validate that a monetary value is a nonnegative ``Decimal``.

    Raises:
        ValidationError: If ``amount`` is not a finite decimal, is below zero,
            or has too many digits to be rounded to cents.
    """
    if not isinstance(amount, Decimal) or not amount.is_finite() or amount < Decimal("0"):
        log.error("Monetary value validation failed: %s", amount)
        raise ValidationError(field_name, "must be zero or positive")
    try:
        _to_money(amount)
    except InvalidOperation as exc:
        log.error("Monetary value too large: %s", amount)
        raise ValidationError(field_name, "is too large to be stored in cents") from exc


def _to_money(amount: Decimal) -> Decimal:
    return amount.quantize(MONEY_QUANTUM, rounding=ROUND_HALF_UP)


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------


def list_products(context: RuntimeContext, *, category_number: Optional[int] = None) -> List[Product]:
    """Return the catalog, optionally restricted to one category number."""
    products = context.catalog.get_all()
    if category_number is None:
        return products
    return [product for product in products if product.category_number == category_number]


def get_product(context: RuntimeContext, product_id: str) -> Product:
    """Resolve a product record by its identifier.

    Raises:
        ProductNotFound: If ``product_id`` is absent from the catalog.
    """
    product = context.catalog.get_by_id(product_id)
    if product is None:
        log.warning("Product lookup failed for id '%s'", product_id)
        raise ProductNotFound(product_id)
    return product


def find_product_by_name(context: RuntimeContext, name: str) -> Optional[Product]:
    """Return the product whose name matches case-insensitively, if any."""
    return context.catalog.get_by_name(name)


def _validate_product_command(context: RuntimeContext, command: ProductCommand) -> None:
    if not command.product_id or not str(command.product_id).strip():
        raise ValidationError("product_id", "is required")
    if not command.name or not command.name.strip():
        raise ValidationError("name", "is required")
    require_nonnegative_money(command.price)
    require_nonnegative_quantity(command.quantity)
    if command.category_number is not None and context.categories.get_by_number(command.category_number) is None:
        log.warning("Product '%s' references unknown category %s", command.product_id, command.category_number)
        raise CategoryNotFound(command.category_number)


def _product_from_command(command: ProductCommand) -> Product:
    return Product(
        product_id=str(command.product_id).strip(),
        name=command.name.strip(),
        brand=(command.brand or "").strip(),
        category_number=command.category_number,
        size=_clean_optional(command.size),
        price=_to_money(command.price),
        quantity=command.quantity,
    )


def add_product(context: RuntimeContext, command: ProductCommand) -> Product:
    """Validate and register a new product.

    Raises:
        ValidationError: When a field fails validation.
        CategoryNotFound: When ``category_number`` does not exist.
        DuplicateProductError: When the identifier is already in the catalog.
    """
    _validate_product_command(context, command)
    if context.catalog.get_by_id(command.product_id) is not None:
        log.warning("Attempted to add duplicate product '%s'", command.product_id)
        raise DuplicateProductError(f"A product with id '{command.product_id}' already exists")
    product = context.catalog.create(_product_from_command(command))
    log.info("Added product '%s' (%s)", product.product_id, product.name)
    return product


def update_product(context: RuntimeContext, product_id: str, command: ProductCommand) -> Product:
    """Overwrite the editable fields of an existing product.

    The identifier is immutable: ``command.product_id`` must match
    ``product_id``.

    Raises:
        ProductNotFound: When the product does not exist.
        ValidationError: When a field fails validation or the id would change.
        CategoryNotFound: When ``category_number`` does not exist.
    """
    existing = get_product(context, product_id)
    if str(command.product_id).strip() != existing.product_id:
        raise ValidationError("product_id", "cannot be changed after creation")
    _validate_product_command(context, command)
    candidate = replace(_product_from_command(command), created_at=existing.created_at)
    product = context.catalog.update(existing.product_id, candidate)
    log.info("Updated product '%s'", product.product_id)
    return product


def delete_product(context: RuntimeContext, product_id: str, *, force: bool = False) -> None:
    """Delete a product; products holding stock require ``force=True``.

    Raises:
        ProductNotFound: When the product does not exist.
        StockOnHandError: When stock is positive and ``force`` is not set.
    """
    product = get_product(context, product_id)
    if product.quantity > 0 and not force:
        log.warning("Refusing to delete product '%s' with %s units on hand", product_id, product.quantity)
        raise StockOnHandError(
            f"Product '{product_id}' still has {product.quantity} units in stock; use force to delete it"
        )
    context.catalog.delete(product.product_id, force=force)
    log.info("Deleted product '%s'%s", product_id, " (forced)" if force else "")


# ---------------------------------------------------------------------------
# Stock ledger
# ---------------------------------------------------------------------------


def _debit(product: Product, quantity: int) -> Product:
    if product.quantity < quantity:
        raise InsufficientStock(product.product_id, requested=quantity, available=product.quantity)
    return replace(product, quantity=product.quantity - quantity)


def reserve_stock(context: RuntimeContext, product_id: str, quantity: int) -> Product:
    """Return ``product_id`` with ``quantity`` debited, without persisting it.

    Raises:
        ValidationError: If ``quantity`` is not a positive whole number.
        ProductNotFound: If the product does not exist.
        InsufficientStock: If fewer than ``quantity`` units are on hand.
    """
    require_positive_quantity(quantity)
    product = get_product(context, product_id)
    try:
        return _debit(product, quantity)
    except InsufficientStock:
        log.warning("Cannot reserve %s units of '%s': only %s available", quantity, product_id, product.quantity)
        raise


def plan_stock_decrements(context: RuntimeContext, lines: Sequence[SaleLineCommand]) -> StockPlan:
    """Fold cart lines into a single batch decrement plan.

    Lines are validated in submission order. Repeated product ids debit the
    running quantity left by earlier lines, so a cart cannot oversell a product
    by splitting it across lines. The first violation aborts the fold.

    Raises:
        ProductNotFound: If a line references an unknown product.
        InsufficientStock: If the lines so far ask for more of a product than
            is on hand. ``requested`` is the cart total for that product and
            ``available`` the stock on hand before the sale.
    """
    originals: Dict[str, Product] = {}
    remaining: Dict[str, Product] = {}
    for line in lines:
        current = remaining.get(line.product_id)
        if current is None:
            current = get_product(context, line.product_id)
            originals[line.product_id] = current
        if current.quantity < line.quantity:
            on_hand = originals[line.product_id].quantity
            requested = on_hand - current.quantity + line.quantity
            log.warning(
                "Insufficient stock for '%s': requested %s, available %s",
                line.product_id,
                requested,
                on_hand,
            )
            raise InsufficientStock(line.product_id, requested=requested, available=on_hand)
        remaining[line.product_id] = _debit(current, line.quantity)
    return StockPlan(originals=originals, remaining=remaining)


def adjust_stock(context: RuntimeContext, product_id: str, delta: int) -> Product:
    """Apply a manual stock delta (restock when positive, correction when negative).

    Raises:
        ValidationError: If ``delta`` is zero or not a whole number.
        ProductNotFound: If the product does not exist.
        InsufficientStock: If the delta would drive stock below zero.
        ConcurrentStockModification: If the stored quantity changed mid-write.
    """
    if isinstance(delta, bool) or not isinstance(delta, int) or delta == 0:
        raise ValidationError("delta", "must be a non-zero whole number")
    product = get_product(context, product_id)
    new_quantity = product.quantity + delta
    if new_quantity < 0:
        log.warning("Stock adjustment of %s on '%s' would go negative", delta, product_id)
        raise InsufficientStock(product_id, requested=-delta, available=product.quantity)
    try:
        (updated,) = context.catalog.apply_stock_adjustments(
            [StockAdjustment(product.product_id, product.quantity, new_quantity)])
    except data_manager.StockConflictError as exc:
        raise ConcurrentStockModification(str(exc)) from exc
    log.info("Adjusted stock of '%s' by %s (now %s)", product_id, delta, updated.quantity)
    return updated


# ---------------------------------------------------------------------------
# Sales
# ---------------------------------------------------------------------------


def _validate_sale_lines(lines: Sequence[SaleLineCommand]) -> None:
    for position, line in enumerate(lines, start=1):
        if not line.product_id:
            raise ValidationError(f"items[{position}].product_id", "is required")
        require_positive_quantity(line.quantity, field_name=f"items[{position}].quantity")
        if line.unit_price_override is not None:
            require_nonnegative_money(line.unit_price_override, field_name=f"items[{position}].unit_price_override")


def snapshot_sale_item(line: SaleLineCommand, product: Product) -> SaleItem:
    """Capture the product's name and price for a cart line.

    The override price wins over the catalog price. The subtotal is computed
    from the rounded unit price so ``subtotal == price * quantity`` holds
    exactly.
    """
    unit_price = line.unit_price_override if line.unit_price_override is not None else product.price
    price = _to_money(unit_price)
    return SaleItem(
        product_id=product.product_id,
        name=product.name,
        price=price,
        quantity=line.quantity,
        subtotal=price * line.quantity,
    )


def build_sale(command: CreateSaleCommand, plan: StockPlan, *, sale_id: str, timestamp: datetime) -> Sale:
    """Materialise a :class:`Sale` from a validated command and its plan."""
    items = tuple(snapshot_sale_item(line, plan.originals[line.product_id]) for line in command.items)
    total = sum((item.subtotal for item in items), Decimal("0.00"))
    return Sale(
        sale_id=sale_id,
        timestamp_iso=timestamp.isoformat(),
        client_id=_clean_optional(command.client_id),
        client_name=_clean_optional(command.client_name),
        items=items,
        total=total,
        invoiced=False,
    )


def _restore_stock(context: RuntimeContext, plan: StockPlan) -> None:
    """Give back the units ``plan`` took from the catalog.

    The exact inverse of the plan is tried first. If another writer moved a
    quantity in between, each product is re-read and credited with the units
    the plan removed, keeping the other writer's change.
    """
    try:
        context.catalog.apply_stock_adjustments(plan.inverted())
        return
    except data_manager.StockConflictError as exc:
        log.warning("Stock moved before it could be restored (%s); crediting units instead", exc)

    for product_id, original in plan.originals.items():
        taken = original.quantity - plan.remaining[product_id].quantity
        current = get_product(context, product_id)
        context.catalog.apply_stock_adjustments(
            [StockAdjustment(product_id, current.quantity, current.quantity + taken)])


def create_sale(context: RuntimeContext, command: CreateSaleCommand) -> Sale:
    """Validate a cart, decrement stock, and persist the resulting sale.

    The workflow rejects empty carts, validates every line in order against
    live stock, snapshots prices and names, then hands the whole decrement
    plan to the catalog as one compare-and-swap batch. When another writer
    changed a product in between, the cart is re-validated against fresh
    stock up to ``settings.stock_retry_attempts`` times. If storing the sale
    fails after stock was written, the inverse plan is applied before the
    error propagates, so stock is never lost without a sale.

    Args:
        context (RuntimeContext): Runtime context providing collaborators.
        command (CreateSaleCommand): Cart and optional client details.

    Returns:
        Sale: The persisted sale with ``invoiced`` set to ``False``.

    Raises:
        EmptyCart: If ``command.items`` is empty.
        ValidationError: If a line has a bad quantity or override price.
        ProductNotFound: If a line references an unknown product.
        InsufficientStock: If a line exceeds available stock.
        ConcurrentStockModification: If stock kept changing on every attempt.
    """
    if not command.items:
        log.warning("Rejected sale with an empty cart")
        raise EmptyCart("Cannot create a sale without items")
    _validate_sale_lines(command.items)

    timestamp = _resolve_timestamp(command.timestamp)
    attempts = context.settings.stock_retry_attempts
    last_conflict: Optional[data_manager.StockConflictError] = None
    for attempt in range(1, attempts + 1):
        plan = plan_stock_decrements(context, command.items)
        sale = build_sale(
            command,
            plan,
            sale_id=generate_identifier(prefix="S", when=_resolve_timestamp(None)),
            timestamp=timestamp,
        )
        try:
            context.catalog.apply_stock_adjustments(plan.adjustments)
        except data_manager.StockConflictError as exc:
            log.warning("Stock changed during sale (attempt %d of %d): %s", attempt, attempts, exc)
            last_conflict = exc
            continue

        try:
            persisted = context.sales.create(sale)
        except Exception as error:
            log.error("Persisting sale '%s' failed; restoring stock", sale.sale_id)
            try:
                _restore_stock(context, plan)
            except Exception as rollback_error:
                log.error("Could not restore stock after sale '%s': %s", sale.sale_id, rollback_error)
                raise error from rollback_error
            raise

        log.info(
            "Recorded sale '%s' with %d items (total=%s)",
            persisted.sale_id,
            len(persisted.items),
            persisted.total,
        )
        return persisted

    raise ConcurrentStockModification(
        f"Stock changed while recording the sale; gave up after {attempts} attempts"
    ) from last_conflict


def get_sale(context: RuntimeContext, sale_id: str) -> Sale:
    """Resolve a sale by identifier.

    Raises:
        SaleNotFound: If the identifier does not resolve.
    """
    sale = context.sales.get_by_id(sale_id)
    if sale is None:
        log.warning("Sale lookup failed for id '%s'", sale_id)
        raise SaleNotFound(sale_id)
    return sale


def _as_utc(moment: datetime) -> datetime:
    return moment if moment.tzinfo is not None else moment.replace(tzinfo=UTC)


def list_sales(
    context: RuntimeContext,
    *,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    invoiced: Optional[bool] = None,
) -> List[Sale]:
    """Return sales, newest first, optionally filtered by date range and status.

    ``start`` and ``end`` are inclusive; naive datetimes are read as UTC.
    """
    selected: List[tuple[datetime, Sale]] = []
    for sale in context.sales.get_all():
        if invoiced is not None and sale.invoiced != invoiced:
            continue
        moment = _as_utc(datetime.fromisoformat(sale.timestamp_iso))
        if start is not None and moment < _as_utc(start):
            continue
        if end is not None and moment > _as_utc(end):
            continue
        selected.append((moment, sale))
    selected.sort(key=lambda pair: pair[0], reverse=True)
    return [sale for _, sale in selected]


def mark_sale_invoiced(context: RuntimeContext, sale_id: str) -> Sale:
    """Move a sale from pending to invoiced.

    Invoicing an already invoiced sale is a successful no-op.

    Raises:
        SaleNotFound: If the identifier does not resolve.
    """
    sale = get_sale(context, sale_id)
    if sale.status is SaleStatus.INVOICED:
        log.info("Sale '%s' already invoiced; nothing to do", sale_id)
        return sale
    context.sales.mark_invoiced(sale.sale_id)
    log.info("Marked sale '%s' as invoiced", sale_id)
    return replace(sale, invoiced=True)


def render_receipt(context: RuntimeContext, sale: Sale, *, width: int = 40) -> str:
    """Render a plain-text receipt for ``sale`` using the store settings."""
    settings = context.settings
    symbol = settings.currency_symbol

    def money(amount: Decimal) -> str:
        return f"{symbol} {amount:.2f}"

    def row(left: str, right: str) -> str:
        return f"{left}{right.rjust(max(width - len(left), len(right) + 1))}"

    rule = "-" * width
    lines = [settings.store_name.center(width).rstrip()]
    for detail in (settings.store_address, settings.store_email, settings.store_phone):
        if detail:
            lines.append(detail.center(width).rstrip())
    lines.extend([rule, "SALE RECEIPT".center(width).rstrip()])
    lines.append(f"Date: {datetime.fromisoformat(sale.timestamp_iso).strftime('%Y-%m-%d %H:%M')}")
    lines.append(f"Receipt: {sale.sale_id}")
    lines.append(f"Client: {sale.client_name or 'Anonymous'}")
    lines.append(f"ID: {sale.client_id or 'N/A'}")
    lines.append(rule)
    for item in sale.items:
        lines.append(row(f"{item.quantity} x {item.name}", money(item.subtotal)))
        lines.append(f"    @ {money(item.price)}")
    lines.append(rule)
    lines.append(row("TOTAL", money(sale.total)))
    lines.append(f"Status: {sale.status.value}")
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# Categories
# ---------------------------------------------------------------------------


def list_categories(context: RuntimeContext) -> List[Category]:
    """Return all categories sorted by category number."""
    return sorted(context.categories.get_all(), key=lambda category: category.category_number)


def list_category_options(context: RuntimeContext) -> List[CategoryOption]:
    """Return categories as picker options labelled ``"N - Name"``."""
    return [
        CategoryOption(
            value=category.category_number,
            label=category.name,
            display_text=f"{category.category_number} - {category.name}",
        )
        for category in list_categories(context)
    ]


def category_display_text(category_number: Optional[int], categories: Sequence[Category]) -> str:
    """Describe a product's category for listings and exports."""
    if not category_number:
        return "Uncategorized"
    for category in categories:
        if category.category_number == category_number:
            return f"{category.category_number} - {category.name}"
    return f"Category {category_number}"


def get_next_category_number(context: RuntimeContext) -> int:
    """Return ``max(existing numbers) + 1`` (or 1).

    The value is advisory and only meant to pre-fill forms; creation re-checks
    uniqueness when it commits.
    """
    return context.categories.get_next_number()


def validate_category_data(
    name: str,
    category_number: int,
    existing_categories: Sequence[Category],
    *,
    exclude_category_id: Optional[str] = None,
) -> None:
    """Check a category's name and number against the existing set.

    Args:
        name (str): Proposed human name.
        category_number (int): Proposed category number.
        existing_categories (Sequence[Category]): Categories to compare with.
        exclude_category_id (str | None): Category being edited, ignored in the
            uniqueness checks.

    Raises:
        ValidationError: If the name is blank or too long, or the number is
            not a positive integer.
        CategoryNumberConflict: If another category uses the number.
        NameConflict: If another category has the same name, ignoring case.
    """
    if not name or not name.strip():
        raise ValidationError("name", "category name is required")
    if len(name.strip()) > MAX_CATEGORY_NAME_LENGTH:
        raise ValidationError("name", f"category name cannot exceed {MAX_CATEGORY_NAME_LENGTH} characters")
    if isinstance(category_number, bool) or not isinstance(category_number, int) or category_number <= 0:
        raise ValidationError("category_number", "must be a whole number greater than zero")

    wanted = name.strip().casefold()
    for category in existing_categories:
        if category.category_id == exclude_category_id:
            continue
        if category.category_number == category_number:
            raise CategoryNumberConflict(category_number)
        if category.name.strip().casefold() == wanted:
            raise NameConflict(name.strip())


def _conflict_from(error: data_manager.DuplicateCategoryError) -> CategoryConflict:
    if error.field == "name":
        return NameConflict(str(error.value))
    return CategoryNumberConflict(int(error.value))


def create_category(context: RuntimeContext, name: str, category_number: Optional[int] = None) -> Category:
    """Create a category, defaulting the number to the next free slot.

    Raises:
        ValidationError: If the name or number is malformed.
        CategoryNumberConflict: If the number is already taken.
        NameConflict: If the name is already taken.
    """
    if category_number is None:
        category_number = get_next_category_number(context)
    validate_category_data(name, category_number, context.categories.get_all())
    try:
        category = context.categories.create(name.strip(), category_number)
    except data_manager.DuplicateCategoryError as exc:
        # Another writer claimed the slot after our check.
        log.warning("Category create lost a race: %s", exc)
        raise _conflict_from(exc) from exc
    log.info("Created category %s '%s'", category.category_number, category.name)
    return category


def _category_in_use(context: RuntimeContext, category_number: int) -> bool:
    return any(product.category_number == category_number for product in context.catalog.get_all())


def update_category(context: RuntimeContext, category_id: str, name: str, category_number: int) -> Category:
    """Rename or renumber a category.

    Renumbering is refused while products still point at the old number.

    Raises:
        CategoryNotFound: If ``category_id`` does not exist.
        CategoryInUseError: If a renumber would orphan products.
        ValidationError, CategoryNumberConflict, NameConflict: See
            :func:`validate_category_data`.
    """
    existing = context.categories.get_by_id(category_id)
    if existing is None:
        raise CategoryNotFound(category_id)
    validate_category_data(
        name, category_number, context.categories.get_all(), exclude_category_id=existing.category_id)
    if category_number != existing.category_number and _category_in_use(context, existing.category_number):
        raise CategoryInUseError(
            f"Category {existing.category_number} is used by products and cannot be renumbered")
    try:
        category = context.categories.update(existing.category_id, name.strip(), category_number)
    except data_manager.DuplicateCategoryError as exc:
        raise _conflict_from(exc) from exc
    log.info("Updated category '%s' to %s '%s'", category_id, category.category_number, category.name)
    return category


def delete_category(context: RuntimeContext, category_id: str) -> None:
    """Delete a category that no product references.

    Raises:
        CategoryNotFound: If ``category_id`` does not exist.
        CategoryInUseError: If products still reference its number.
    """
    existing = context.categories.get_by_id(category_id)
    if existing is None:
        raise CategoryNotFound(category_id)
    if _category_in_use(context, existing.category_number):
        log.warning("Refusing to delete category %s: still referenced", existing.category_number)
        raise CategoryInUseError(f"Category {existing.category_number} is still used by products")
    context.categories.delete(existing.category_id)
    log.info("Deleted category %s '%s'", existing.category_number, existing.name)


def resolve_category(
    context: RuntimeContext, category_number: int, proposed_name: Optional[str] = None
) -> tuple[Category, bool]:
    """Return ``(category, created)`` for ``category_number``.

    An existing category is returned unchanged and ``proposed_name`` is
    ignored, even when it differs: the number is the canonical key. A missing
    category is created only when a name is supplied.

    Raises:
        ValidationError: If the category is missing and no name was given.
        NameConflict: If the name belongs to a category with another number.
        CategoryNumberConflict: If the number was claimed concurrently.
    """
    existing = context.categories.get_by_number(category_number)
    if existing is not None:
        if proposed_name and proposed_name.strip().casefold() != existing.name.strip().casefold():
            log.debug(
                "Category %s kept as '%s'; ignored proposed name '%s'",
                category_number,
                existing.name,
                proposed_name,
            )
        return existing, False

    if proposed_name is None or not proposed_name.strip():
        log.warning("Cannot auto-create category %s without a name", category_number)
        raise ValidationError(
            "category_name", f"category {category_number} does not exist and no name was given to create it")
    return create_category(context, proposed_name, category_number), True


def resolve_or_create_category(
    context: RuntimeContext, category_number: int, proposed_name: Optional[str] = None
) -> Category:
    """Return the category for ``category_number``, creating it if needed."""
    category, _ = resolve_category(context, category_number, proposed_name)
    return category
