"""Enumerations shared across Retail ERP modules.

Centralises domain constants so that the data access layer (DAL), business
logic layer (BLL), importer, and CLI rely on a single source of truth for
sheet names, column layouts, and state labels.
"""

from __future__ import annotations

from decimal import Decimal
from enum import Enum
from typing import Mapping, Sequence


# Central schema version expected by all layers when validating workbooks.
EXPECTED_SCHEMA_VERSION = "1.0.0"

# Category names are compared case-insensitively and capped at this length.
MAX_CATEGORY_NAME_LENGTH = 100

MONEY_QUANTUM = Decimal("0.01")

DEFAULT_CURRENCY_SYMBOL = "S/"
DEFAULT_STOCK_RETRY_ATTEMPTS = 2


class SaleStatus(str, Enum):
    """Enumerate the invoicing states a sale moves through."""

    PENDING = "Pending"
    INVOICED = "Invoiced"


class SheetName(str, Enum):
    """Enumerate the workbook sheet names managed by the DAL."""

    PRODUCTS = "Products"
    CATEGORIES = "Categories"
    SALES = "Sales"
    SALE_ITEMS = "SaleItems"


SHEET_COLUMNS: Mapping[str, Sequence[str]] = {
    SheetName.PRODUCTS.value: [
        "ProductID",
        "Name",
        "Brand",
        "CategoryNumber",
        "Size",
        "Price",
        "Quantity",
        "CreatedAt",
        "UpdatedAt",
    ],
    SheetName.CATEGORIES.value: [
        "CategoryID",
        "Name",
        "CategoryNumber",
        "CreatedAt",
        "UpdatedAt",
    ],
    SheetName.SALES.value: [
        "SaleID",
        "Timestamp",
        "ClientID",
        "ClientName",
        "Total",
        "Invoiced",
    ],
    SheetName.SALE_ITEMS.value: [
        "SaleID",
        "LineNumber",
        "ProductID",
        "Name",
        "Price",
        "Quantity",
        "Subtotal",
    ],
}

# Fixed column schema for bulk import spreadsheets and inventory exports.
IMPORT_COLUMNS: Sequence[str] = (
    "ProductID",
    "Name",
    "Brand",
    "CategoryNumber",
    "CategoryName",
    "Size",
    "Price",
    "Quantity",
)

REQUIRED_IMPORT_COLUMNS: Sequence[str] = ("Name", "CategoryNumber", "Price", "Quantity")


__all__ = [
    "EXPECTED_SCHEMA_VERSION",
    "MAX_CATEGORY_NAME_LENGTH",
    "MONEY_QUANTUM",
    "DEFAULT_CURRENCY_SYMBOL",
    "DEFAULT_STOCK_RETRY_ATTEMPTS",
    "SaleStatus",
    "SheetName",
    "SHEET_COLUMNS",
    "IMPORT_COLUMNS",
    "REQUIRED_IMPORT_COLUMNS",
]
