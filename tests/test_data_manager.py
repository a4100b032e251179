"""Unit tests documenting the expected behavior of the data access layer."""

from __future__ import annotations

import configparser
from decimal import Decimal
from pathlib import Path

import openpyxl
from openpyxl.workbook import Workbook as OpenpyxlWorkbook
import pytest

from retail_erp import constants, data_manager
from retail_erp.data_manager import Product, Sale, SaleItem, StockAdjustment
from retail_erp.setup_excel import build_master_workbook


def _product(product_id: str = "P1", quantity: int = 5, **overrides) -> Product:
    values = dict(
        product_id=product_id,
        name=f"Product {product_id}",
        brand="Acme",
        category_number=None,
        size=None,
        price=Decimal("10.00"),
        quantity=quantity,
    )
    values.update(overrides)
    return Product(**values)


@pytest.fixture
def workbook() -> OpenpyxlWorkbook:
    return build_master_workbook()


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


def test_find_config_file_respects_explicit_path(config_file: Path):
    """Supplying an explicit path should be treated as the winning answer."""

    result = data_manager.find_config_file(config_file)
    assert result == config_file


def test_find_config_file_discovers_in_parent_directory(tmp_path, monkeypatch):
    """Auto-discovery should walk up from the working directory."""

    config_file = tmp_path / "config.ini"
    config_file.write_text("[System]\nDataFile=master_workbook.xlsx", encoding="utf-8")
    nested = tmp_path / "a" / "b"
    nested.mkdir(parents=True)
    monkeypatch.chdir(nested)

    assert data_manager.find_config_file() == config_file


def test_find_config_file_raises_when_missing(tmp_path, monkeypatch):
    """Absent configuration should surface a clear FileNotFoundError."""

    monkeypatch.chdir(tmp_path)
    with pytest.raises(FileNotFoundError):
        data_manager.find_config_file()


def test_read_config_loads_sections(config_file: Path):
    """read_config should return a populated ConfigParser."""

    parser = data_manager.read_config(config_file)
    assert parser.get("System", "StoreName") == "Test Store"
    assert parser.get("Store", "Phone") == "555-0100"


def test_read_config_missing_file_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        data_manager.read_config(tmp_path / "not_there.ini")


def test_parse_settings_resolves_relative_paths(config_factory):
    """Relative DataFile entries should be anchored to the config location."""

    bundle = config_factory(make_relative=True)
    parser = data_manager.read_config(bundle.config_path)

    settings = data_manager.parse_settings(parser, base_path=bundle.config_path.parent)

    assert settings.data_file == (bundle.config_path.parent / bundle.workbook_path.name).resolve()
    assert settings.store_name == "Test Store"
    assert settings.store_address == "Av. Central 123"
    assert settings.currency_symbol == "S/"
    assert settings.stock_retry_attempts == 2


def test_parse_settings_defaults_optional_sections(tmp_path):
    parser = configparser.ConfigParser()
    parser.read_string("[System]\nDataFile = data.xlsx\nStoreName = Shop\nSchemaVersion = 1.0.0\n")

    settings = data_manager.parse_settings(parser, base_path=tmp_path)

    assert settings.store_email == ""
    assert settings.currency_symbol == constants.DEFAULT_CURRENCY_SYMBOL
    assert settings.stock_retry_attempts == constants.DEFAULT_STOCK_RETRY_ATTEMPTS


def test_parse_settings_requires_expected_sections(tmp_path):
    """Missing keys should result in a descriptive KeyError."""

    parser = configparser.ConfigParser()
    parser.read_string("[Other]\nvalue=1")
    with pytest.raises(KeyError):
        data_manager.parse_settings(parser, base_path=tmp_path)


def test_parse_settings_rejects_zero_retry_budget(tmp_path):
    parser = configparser.ConfigParser()
    parser.read_string(
        "[System]\nDataFile = d.xlsx\nStoreName = S\nSchemaVersion = 1.0.0\n[Sales]\nStockRetryAttempts = 0\n")

    with pytest.raises(ValueError):
        data_manager.parse_settings(parser, base_path=tmp_path)


# ---------------------------------------------------------------------------
# Workbook lifecycle
# ---------------------------------------------------------------------------


def test_open_workbook_returns_openpyxl_instance(workbook_factory):
    workbook = data_manager.open_workbook(workbook_factory())
    assert isinstance(workbook, OpenpyxlWorkbook)


def test_open_workbook_missing_file_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        data_manager.open_workbook(tmp_path / "missing.xlsx")


def test_save_and_refresh_round_trip_catalog(workbook_factory, tmp_path):
    """Products written through the collaborator survive a save and reload."""

    path = workbook_factory()
    workbook = data_manager.open_workbook(path)
    data_manager.WorkbookCatalog(workbook).create(_product(price=Decimal("19.99"), category_number=3, size="M"))
    data_manager.save_workbook(workbook, tmp_path / "copy" / "saved.xlsx")

    reloaded = data_manager.refresh_workbook(tmp_path / "copy" / "saved.xlsx")
    (product,) = data_manager.iter_products(reloaded)

    assert (product.price, product.category_number, product.size) == (Decimal("19.99"), 3, "M")
    assert product.created_at is not None


# ---------------------------------------------------------------------------
# Row helpers
# ---------------------------------------------------------------------------


def test_locate_row_compares_as_text(workbook):
    workbook[data_manager.PRODUCTS_SHEET].append([1001, "Numeric id"])

    assert data_manager.locate_row(workbook, data_manager.PRODUCTS_SHEET, "ProductID", "1001") == 2
    assert data_manager.locate_row(workbook, data_manager.PRODUCTS_SHEET, "ProductID", "404") is None


def test_locate_row_unknown_column(workbook):
    with pytest.raises(KeyError):
        data_manager.locate_row(workbook, data_manager.PRODUCTS_SHEET, "Nope", "x")


def test_update_row_rejects_unknown_field(workbook):
    workbook[data_manager.PRODUCTS_SHEET].append(["P1"])

    with pytest.raises(KeyError):
        data_manager.update_row(workbook, data_manager.PRODUCTS_SHEET, 2, field_values={"Nope": 1})


def test_deserialize_product_normalises_cells():
    product = data_manager.deserialize_product([1001, "Sneaker", None, 2.0, "", 12.5, 3.0])

    assert product.product_id == "1001"
    assert product.brand == ""
    assert product.category_number == 2
    assert product.size is None
    assert product.price == Decimal("12.50")
    assert product.quantity == 3


def test_deserialize_product_rejects_bad_price():
    with pytest.raises(ValueError):
        data_manager.deserialize_product(["P1", "Sneaker", "", None, None, "ten", 1])


def test_iter_skips_blank_rows(workbook):
    catalog = data_manager.WorkbookCatalog(workbook)
    catalog.create(_product("P1"))
    workbook[data_manager.PRODUCTS_SHEET].append([None] * 9)
    catalog.create(_product("P2"))

    assert [p.product_id for p in catalog.get_all()] == ["P1", "P2"]


# ---------------------------------------------------------------------------
# WorkbookCatalog
# ---------------------------------------------------------------------------


def test_catalog_create_rejects_duplicate_id(workbook):
    catalog = data_manager.WorkbookCatalog(workbook)
    catalog.create(_product("P1"))

    with pytest.raises(ValueError):
        catalog.create(_product("P1"))


def test_catalog_update_and_lookup(workbook):
    catalog = data_manager.WorkbookCatalog(workbook)
    catalog.create(_product("P1", name="Sneaker"))

    updated = catalog.update("P1", _product("P1", name="Runner", quantity=8))

    assert updated.name == "Runner"
    assert catalog.get_by_name("  runner ").product_id == "P1"
    assert catalog.get_by_id("P1").quantity == 8
    with pytest.raises(KeyError):
        catalog.update("P9", _product("P9"))


def test_catalog_delete_respects_stock(workbook):
    catalog = data_manager.WorkbookCatalog(workbook)
    catalog.create(_product("P1", quantity=2))

    with pytest.raises(ValueError):
        catalog.delete("P1")
    catalog.delete("P1", force=True)

    assert catalog.get_all() == []
    with pytest.raises(KeyError):
        catalog.delete("P1")


def test_apply_stock_adjustments_writes_every_row(workbook):
    catalog = data_manager.WorkbookCatalog(workbook)
    catalog.create(_product("P1", quantity=5))
    catalog.create(_product("P2", quantity=3))

    updated = catalog.apply_stock_adjustments([StockAdjustment("P1", 5, 3), StockAdjustment("P2", 3, 0)])

    assert [(p.product_id, p.quantity) for p in updated] == [("P1", 3), ("P2", 0)]
    assert catalog.get_by_id("P1").quantity == 3


def test_apply_stock_adjustments_is_all_or_nothing(workbook):
    """A stale expectation on a later row leaves earlier rows untouched."""

    catalog = data_manager.WorkbookCatalog(workbook)
    catalog.create(_product("P1", quantity=5))
    catalog.create(_product("P2", quantity=3))

    with pytest.raises(data_manager.StockConflictError) as excinfo:
        catalog.apply_stock_adjustments([StockAdjustment("P1", 5, 3), StockAdjustment("P2", 4, 2)])

    assert (excinfo.value.product_id, excinfo.value.expected, excinfo.value.actual) == ("P2", 4, 3)
    assert catalog.get_by_id("P1").quantity == 5
    assert catalog.get_by_id("P2").quantity == 3


@pytest.mark.parametrize(
    ("adjustments", "error"),
    [
        ([StockAdjustment("P1", 5, -1)], ValueError),
        ([StockAdjustment("P1", 5, 4), StockAdjustment("P1", 4, 3)], ValueError),
        ([StockAdjustment("P9", 0, 1)], KeyError),
    ],
)
def test_apply_stock_adjustments_rejects_invalid_batches(workbook, adjustments, error):
    catalog = data_manager.WorkbookCatalog(workbook)
    catalog.create(_product("P1", quantity=5))

    with pytest.raises(error):
        catalog.apply_stock_adjustments(adjustments)

    assert catalog.get_by_id("P1").quantity == 5


# ---------------------------------------------------------------------------
# WorkbookCategories
# ---------------------------------------------------------------------------


def test_categories_next_number_and_lookup(workbook):
    categories = data_manager.WorkbookCategories(workbook)
    assert categories.get_next_number() == 1

    boots = categories.create("Boots", 4)

    assert categories.get_next_number() == 5
    assert categories.get_by_number(4) == boots
    assert categories.get_by_id(boots.category_id) == boots


def test_categories_create_rechecks_uniqueness(workbook):
    categories = data_manager.WorkbookCategories(workbook)
    categories.create("Boots", 1)

    with pytest.raises(data_manager.DuplicateCategoryError) as by_number:
        categories.create("Hats", 1)
    with pytest.raises(data_manager.DuplicateCategoryError) as by_name:
        categories.create(" BOOTS ", 2)

    assert by_number.value.field == "category_number"
    assert by_name.value.field == "name"


def test_categories_update_and_delete(workbook):
    categories = data_manager.WorkbookCategories(workbook)
    boots = categories.create("Boots", 1)

    renamed = categories.update(boots.category_id, "Winter Boots", 2)
    categories.delete(boots.category_id)

    assert (renamed.name, renamed.category_number) == ("Winter Boots", 2)
    assert categories.get_all() == []
    with pytest.raises(KeyError):
        categories.update(boots.category_id, "Boots", 1)


# ---------------------------------------------------------------------------
# WorkbookSales
# ---------------------------------------------------------------------------


def _sale(sale_id: str = "S1") -> Sale:
    return Sale(
        sale_id=sale_id,
        timestamp_iso="2025-01-01T10:00:00+00:00",
        client_id="12345678",
        client_name="Ana",
        items=(
            SaleItem("P1", "Sneaker", Decimal("10.00"), 2, Decimal("20.00")),
            SaleItem("P2", "Sock", Decimal("1.50"), 1, Decimal("1.50")),
        ),
        total=Decimal("21.50"),
    )


def test_sales_create_and_read_back_with_items(workbook):
    sales = data_manager.WorkbookSales(workbook)
    sales.create(_sale("S1"))
    sales.create(_sale("S2"))

    stored = sales.get_by_id("S1")

    assert stored == _sale("S1")
    assert [s.sale_id for s in sales.get_all()] == ["S1", "S2"]
    assert sales.get_by_id("S9") is None


def test_sales_create_rejects_duplicate(workbook):
    sales = data_manager.WorkbookSales(workbook)
    sales.create(_sale())

    with pytest.raises(ValueError):
        sales.create(_sale())


def test_sales_mark_invoiced(workbook):
    sales = data_manager.WorkbookSales(workbook)
    sales.create(_sale())

    sales.mark_invoiced("S1")

    assert sales.get_by_id("S1").status is constants.SaleStatus.INVOICED
    with pytest.raises(KeyError):
        sales.mark_invoiced("S9")


def test_master_workbook_has_bold_headers(workbook_factory):
    workbook = openpyxl.load_workbook(workbook_factory())

    for sheet_name, columns in constants.SHEET_COLUMNS.items():
        header = list(workbook[sheet_name][1])
        assert [cell.value for cell in header] == list(columns)
        assert all(cell.font.bold for cell in header)
