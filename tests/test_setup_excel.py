"""Tests for the master workbook bootstrap script."""

from __future__ import annotations

import openpyxl
import pytest

from retail_erp import constants, setup_excel


def _write_config(directory, body="[System]\nDataFile = store.xlsx\nStoreName = Corner Shop\n"):
    config_path = directory / "config.ini"
    config_path.write_text(body, encoding="utf-8")
    return config_path


def test_build_master_workbook_lays_out_every_sheet():
    workbook = setup_excel.build_master_workbook(store_name="Corner Shop")

    assert workbook.sheetnames == list(constants.SHEET_COLUMNS)
    for name, columns in constants.SHEET_COLUMNS.items():
        assert [cell.value for cell in workbook[name][1]] == list(columns)
        assert workbook[name].freeze_panes == "A2"
    assert workbook.properties.creator == "Corner Shop"


def test_load_settings_resolves_relative_data_file(tmp_path):
    settings = setup_excel.load_settings(_write_config(tmp_path))

    assert settings.data_file == (tmp_path / "store.xlsx").resolve()
    assert settings.store_name == "Corner Shop"


def test_load_settings_requires_store_name(tmp_path):
    config_path = _write_config(tmp_path, "[System]\nDataFile = store.xlsx\n")

    with pytest.raises(KeyError):
        setup_excel.load_settings(config_path)


def test_create_master_workbook_refuses_to_overwrite(tmp_path):
    destination = setup_excel.create_master_workbook(tmp_path / "store.xlsx")

    with pytest.raises(FileExistsError):
        setup_excel.create_master_workbook(destination)
    assert setup_excel.create_master_workbook(destination, overwrite=True) == destination


def test_check_master_workbook_reports_layout_drift(tmp_path):
    path = setup_excel.create_master_workbook(tmp_path / "store.xlsx")
    assert setup_excel.check_master_workbook(path) == []

    workbook = openpyxl.load_workbook(path)
    del workbook[constants.SheetName.SALE_ITEMS.value]
    workbook[constants.SheetName.PRODUCTS.value]["B1"] = "ProductName"
    workbook.save(path)

    problems = setup_excel.check_master_workbook(path)

    assert len(problems) == 2
    assert any("Products" in problem and "ProductName" in problem for problem in problems)
    assert "missing sheet 'SaleItems'" in problems


def test_main_check_mode(tmp_path, capsys):
    config_path = _write_config(tmp_path)

    assert setup_excel.main(["--config", str(config_path), "--check"]) == 1
    assert setup_excel.main(["--config", str(config_path)]) == 0
    assert setup_excel.main(["--config", str(config_path), "--check"]) == 0

    out = capsys.readouterr().out
    assert "Workbook not found" in out
    assert "[OK]" in out
    properties = openpyxl.load_workbook(tmp_path / "store.xlsx").properties
    assert properties.title == "Corner Shop master data"


def test_main_reports_missing_config(tmp_path, capsys):
    assert setup_excel.main(["--config", str(tmp_path / "absent.ini")]) == 1
    assert "Configuration file not found" in capsys.readouterr().out
