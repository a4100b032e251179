"""Collaborator contracts consumed by the business logic layer.

The BLL never talks to a concrete store. It receives objects satisfying these
protocols through :class:`~retail_erp.core_logic.RuntimeContext`; the
workbook-backed implementations live in :mod:`retail_erp.data_manager` and
the spreadsheet import source in :mod:`retail_erp.importer`.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator, List, Optional, Protocol, Sequence, runtime_checkable

from .data_manager import Category, Product, Sale, StockAdjustment


@dataclass(frozen=True)
class RawRow:
    """One spreadsheet row as handed over by an import source.

    Values stay loosely typed (whatever the cell held) so the import processor
    owns validation and can report problems per row.
    """

    name: object
    category_number: object
    price: object
    quantity: object
    product_id: object = None
    brand: object = None
    category_name: object = None
    size: object = None


class CatalogRepository(Protocol):
    """Persistence operations for products."""

    def get_all(self) -> List[Product]:
        ...

    def get_by_id(self, product_id: str) -> Optional[Product]:
        ...

    def get_by_name(self, name: str) -> Optional[Product]:
        ...

    def create(self, product: Product) -> Product:
        ...

    def update(self, product_id: str, product: Product) -> Product:
        ...

    def delete(self, product_id: str, *, force: bool = False) -> None:
        ...

    def apply_stock_adjustments(self, adjustments: Sequence[StockAdjustment]) -> List[Product]:
        """Apply every adjustment or none; see ``StockConflictError``."""
        ...


class SalesRepository(Protocol):
    """Persistence operations for sales."""

    def get_all(self) -> List[Sale]:
        ...

    def get_by_id(self, sale_id: str) -> Optional[Sale]:
        ...

    def create(self, sale: Sale) -> Sale:
        ...

    def mark_invoiced(self, sale_id: str) -> None:
        ...


class CategoryRepository(Protocol):
    """Persistence operations for categories."""

    def get_all(self) -> List[Category]:
        ...

    def get_by_id(self, category_id: str) -> Optional[Category]:
        ...

    def get_by_number(self, category_number: int) -> Optional[Category]:
        ...

    def create(self, name: str, category_number: int) -> Category:
        """Create a category, re-checking number and name uniqueness."""
        ...

    def update(self, category_id: str, name: str, category_number: int) -> Category:
        ...

    def delete(self, category_id: str) -> None:
        ...

    def get_next_number(self) -> int:
        ...


@runtime_checkable
class ImportSource(Protocol):
    """Anything that yields already-structured :class:`RawRow` values."""

    def __iter__(self) -> Iterator[RawRow]:
        ...


__all__ = [
    "RawRow",
    "CatalogRepository",
    "SalesRepository",
    "CategoryRepository",
    "ImportSource",
]
