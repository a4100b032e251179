"""Tests for the bulk import processor and spreadsheet exchange helpers."""

from __future__ import annotations

import zipfile
from decimal import Decimal

import openpyxl
import pytest

from retail_erp import constants, core_logic, importer
from retail_erp.repositories import ImportSource, RawRow
from retail_erp.setup_excel import build_master_workbook


def _row(name="Sneaker", category_number=1, price="10.00", quantity=5, **kwargs) -> RawRow:
    return RawRow(name=name, category_number=category_number, price=price, quantity=quantity, **kwargs)


def _write_xlsx(path, header, *rows):
    workbook = openpyxl.Workbook()
    sheet = workbook.active
    sheet.append(list(header))
    for row in rows:
        sheet.append(list(row))
    workbook.save(path)
    return path


# ---------------------------------------------------------------------------
# import_products
# ---------------------------------------------------------------------------


def test_import_keeps_existing_category_name_and_warns(context, add_category):
    """Category 7 stays "Boots" even when the row proposes "Shoes"."""

    add_category("Boots", 7)

    result = importer.import_products(
        context, [_row(product_id="P1", category_number=7, category_name="Shoes")])

    assert result.successful_imports == 1
    assert result.categories_created == 0
    assert result.errors == ()
    assert len(result.warnings) == 1
    assert "Boots" in result.warnings[0] and "Shoes" in result.warnings[0]
    assert context.categories.get_by_number(7).name == "Boots"
    assert context.catalog.get_by_id("P1").category_number == 7


def test_import_creates_missing_category_once(context):
    result = importer.import_products(
        context,
        [
            _row(product_id="P1", category_number=3, category_name="Hats"),
            _row(product_id="P2", name="Cap", category_number=3, category_name="Hats"),
        ],
    )

    assert result.successful_imports == 2
    assert result.categories_created == 1
    assert result.warnings == ()
    assert [c.name for c in context.categories.get_all()] == ["Hats"]


def test_import_collects_errors_and_continues(context, add_category):
    """Bad rows are reported by number; the good rows still land."""

    add_category("Boots", 1)
    rows = [
        _row(product_id="P1"),
        _row(product_id="P2", name=None),
        _row(product_id="P3", category_number=9),
        _row(product_id="P4", price="-1"),
        _row(product_id="P5", name="Boot", quantity=2),
    ]

    result = importer.import_products(context, rows)

    assert result.total_processed == 5
    assert result.successful_imports == 2
    assert result.rejected == 3
    assert result.successful_imports + result.rejected == result.total_processed
    assert [message.split(":")[0] for message in result.errors] == ["Row 2", "Row 3", "Row 4"]
    assert "name is required" in result.errors[0]
    assert "no name was given" in result.errors[1]
    assert "price" in result.errors[2]
    assert {p.product_id for p in context.catalog.get_all()} == {"P1", "P5"}


def test_import_reports_every_invalid_field_of_a_row(context):
    result = importer.import_products(
        context, [_row(name="", category_number="x", price="abc", quantity="2.5")])

    assert result.successful_imports == 0
    (message,) = result.errors
    assert message.startswith("Row 1:")
    for fragment in ("name", "category number", "price", "quantity"):
        assert fragment in message


def test_import_updates_existing_product_by_id(context, add_category, add_product):
    add_category("Boots", 1)
    add_product("P1", name="Old name", price="5.00", quantity=1, category_number=1)

    result = importer.import_products(
        context, [_row(product_id="P1", name="New name", price="7.5", quantity=9)])

    product = context.catalog.get_by_id("P1")
    assert result.successful_imports == 1
    assert (product.name, product.price, product.quantity) == ("New name", Decimal("7.50"), 9)
    assert len(context.catalog.get_all()) == 1


def test_import_matches_rows_without_id_by_name(context, add_category, add_product):
    add_category("Boots", 1)
    add_product("P1", name="Sneaker", quantity=1, category_number=1)

    result = importer.import_products(context, [_row(name="SNEAKER", quantity=12)])

    assert result.successful_imports == 1
    assert context.catalog.get_by_id("P1").quantity == 12
    assert len(context.catalog.get_all()) == 1


def test_import_generates_ids_for_new_rows_without_id(context, add_category):
    add_category("Boots", 1)

    result = importer.import_products(context, [_row(name="Sneaker"), _row(name="Sandal")])

    ids = [p.product_id for p in context.catalog.get_all()]
    assert result.successful_imports == 2
    assert len(set(ids)) == 2
    assert all(product_id.startswith("P") for product_id in ids)


def test_import_warns_on_repeated_product_id(context, add_category):
    add_category("Boots", 1)

    result = importer.import_products(
        context, [_row(product_id="P1", quantity=1), _row(product_id="P1", quantity=4)])

    assert result.successful_imports == 2
    assert result.warnings == ("Row 2: product P1 already appeared in row 1; later values win",)
    assert context.catalog.get_by_id("P1").quantity == 4


def test_import_accepts_excel_numeric_cells(context, add_category):
    """Excel hands over floats for whole numbers and ids."""

    add_category("Boots", 1)

    result = importer.import_products(
        context, [_row(product_id=1001.0, category_number=1.0, price=12.5, quantity=3.0)])

    product = context.catalog.get_by_id("1001")
    assert result.successful_imports == 1
    assert (product.price, product.quantity) == (Decimal("12.50"), 3)


def test_import_rejects_price_too_large_for_cents_and_continues(context, add_category):
    add_category("Boots", 1)
    rows = [_row(product_id="P1"), _row(product_id="P2", price="1e30"), _row(product_id="P3")]

    result = importer.import_products(context, rows)

    assert (result.total_processed, result.successful_imports, result.rejected) == (3, 2, 1)
    assert result.errors[0].startswith("Row 2:") and "price" in result.errors[0]
    assert {p.product_id for p in context.catalog.get_all()} == {"P1", "P3"}


def test_import_summary_line(context, add_category):
    add_category("Boots", 1)

    result = importer.import_products(context, [_row(product_id="P1"), _row(product_id="P2", quantity=-3)])

    assert result.summary == "Processed 2 rows: 1 imported, 1 rejected, 0 categories created."


def test_import_of_nothing(context):
    result = importer.import_products(context, [])

    assert (result.total_processed, result.successful_imports, result.rejected) == (0, 0, 0)


# ---------------------------------------------------------------------------
# Spreadsheet exchange
# ---------------------------------------------------------------------------


def test_spreadsheet_source_reads_rows(tmp_path, context):
    path = _write_xlsx(
        tmp_path / "import.xlsx",
        [" name ", "categorynumber", "CategoryName", "Price", "Quantity", "Notes"],
        ["Sneaker", 2, "Shoes", 19.99, 4, "ignored"],
        [None, None, None, None, None, None],
        ["Sandal", 2, "Shoes", 9.5, 1, None],
    )
    source = importer.SpreadsheetImportSource(path)

    rows = list(source)
    result = importer.import_products(context, source)

    assert isinstance(source, ImportSource)
    assert [row.name for row in rows] == ["Sneaker", "Sandal"]
    assert rows[0].product_id is None
    assert result.successful_imports == 2
    assert result.categories_created == 1


def test_spreadsheet_source_missing_file(tmp_path, context):
    with pytest.raises(importer.ImportFileError):
        importer.import_products(context, importer.SpreadsheetImportSource(tmp_path / "missing.xlsx"))

    assert context.catalog.get_all() == []


def test_spreadsheet_source_missing_required_columns(tmp_path):
    path = _write_xlsx(tmp_path / "bad.xlsx", ["Name", "Price"], ["Sneaker", 10])

    with pytest.raises(importer.ImportFileError, match="CategoryNumber, Quantity"):
        importer.read_import_rows(path)


def test_spreadsheet_source_rejects_non_workbook(tmp_path):
    path = tmp_path / "notes.xlsx"
    path.write_text("not a workbook", encoding="utf-8")

    with pytest.raises(importer.ImportFileError):
        importer.read_import_rows(path)


def test_spreadsheet_source_rejects_zip_that_is_not_a_workbook(tmp_path):
    path = tmp_path / "archive.xlsx"
    with zipfile.ZipFile(path, "w") as archive:
        archive.writestr("hello.txt", "not a spreadsheet")

    with pytest.raises(importer.ImportFileError, match="Cannot read import file"):
        importer.read_import_rows(path)


def test_write_import_template_has_bold_header_only(tmp_path):
    path = importer.write_import_template(tmp_path / "out" / "template.xlsx")

    sheet = openpyxl.load_workbook(path).active
    assert [cell.value for cell in sheet[1]] == list(constants.IMPORT_COLUMNS)
    assert all(cell.font.bold for cell in sheet[1])
    assert sheet.max_row == 1


def test_exported_inventory_can_be_imported_again(tmp_path, context, add_category, add_product, settings):
    add_category("Boots", 1)
    add_product("P1", name="Sneaker", price="19.99", quantity=4, category_number=1)
    add_product("P2", name="Loose", price="1.00", quantity=0)

    path = importer.export_inventory(context, tmp_path / "inventory.xlsx")
    rows = importer.read_import_rows(path)

    assert [(row.product_id, row.category_name) for row in rows] == [("P1", "Boots"), ("P2", None)]

    fresh = core_logic.build_workbook_context(settings, build_master_workbook())
    fresh.categories.create("Boots", 1)
    result = importer.import_products(fresh, rows[:1])
    assert result.successful_imports == 1
    assert fresh.catalog.get_by_id("P1").price == Decimal("19.99")
