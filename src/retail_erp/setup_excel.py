"""Bootstrap and inspection of the Retail ERP master workbook.

``retail-setup`` reads ``config.ini``, creates the workbook named by
``[System] DataFile`` with one sheet per record type, and stamps the store
name into the workbook properties. ``--check`` inspects an existing workbook
instead and lists any sheet or header that does not match the current layout.
The same helpers build the in-memory workbooks used by the tests.
"""

from __future__ import annotations

import argparse
import configparser
from dataclasses import dataclass
from pathlib import Path
from typing import List, Mapping, Sequence
import sys

import openpyxl
from openpyxl.styles import Font
from openpyxl.workbook import Workbook

from .constants import SHEET_COLUMNS

CONFIG_FILE = "config.ini"


@dataclass(frozen=True)
class SetupSettings:
    """The subset of ``config.ini`` needed to bootstrap a store."""

    data_file: Path
    store_name: str


def load_settings(config_path: Path) -> SetupSettings:
    """Read the ``[System]`` section of ``config_path``.

    A relative ``DataFile`` is anchored at the config file's directory, the
    same way :func:`retail_erp.data_manager.parse_settings` resolves it.

    Raises:
        FileNotFoundError: If ``config_path`` does not exist.
        KeyError: If ``DataFile`` or ``StoreName`` is missing.
    """

    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    parser = configparser.ConfigParser()
    parser.read(config_path, encoding="utf-8")
    try:
        data_file = Path(parser.get("System", "DataFile"))
        store_name = parser.get("System", "StoreName")
    except (configparser.NoSectionError, configparser.NoOptionError) as exc:
        raise KeyError(f"Missing required configuration entry: {exc}") from exc

    if not data_file.is_absolute():
        data_file = (config_path.parent / data_file).resolve()
    return SetupSettings(data_file=data_file, store_name=store_name)


def build_master_workbook(
    sheet_columns: Mapping[str, Sequence[str]] = SHEET_COLUMNS,
    *,
    store_name: str | None = None,
) -> Workbook:
    """Return an empty master workbook: one sheet per entry, bold header row."""

    workbook = openpyxl.Workbook()
    workbook.remove(workbook.active)

    header_font = Font(bold=True)
    for sheet_name, columns in sheet_columns.items():
        worksheet = workbook.create_sheet(title=sheet_name)
        worksheet.append(list(columns))
        for cell in worksheet[1]:
            cell.font = header_font
        worksheet.freeze_panes = "A2"

    if store_name:
        workbook.properties.title = f"{store_name} master data"
        workbook.properties.creator = store_name
    return workbook


def create_master_workbook(
    destination: Path,
    *,
    sheet_columns: Mapping[str, Sequence[str]] = SHEET_COLUMNS,
    store_name: str | None = None,
    overwrite: bool = False,
) -> Path:
    """Write a fresh master workbook to ``destination`` and return its path.

    Raises:
        FileExistsError: If ``destination`` exists and ``overwrite`` is false.
    """

    destination = Path(destination).expanduser().resolve()
    if destination.exists() and not overwrite:
        raise FileExistsError(f"Refusing to overwrite existing master workbook: {destination}")

    destination.parent.mkdir(parents=True, exist_ok=True)
    build_master_workbook(sheet_columns, store_name=store_name).save(destination)
    return destination


def check_master_workbook(
    path: Path,
    sheet_columns: Mapping[str, Sequence[str]] = SHEET_COLUMNS,
) -> List[str]:
    """List the layout problems of the workbook at ``path``.

    An empty list means every expected sheet exists and starts with the
    expected header. Extra sheets and trailing extra columns are allowed.

    Raises:
        FileNotFoundError: If ``path`` does not exist.
    """

    path = Path(path).expanduser().resolve()
    if not path.exists():
        raise FileNotFoundError(f"Workbook not found: {path}")

    workbook = openpyxl.load_workbook(path, read_only=True)
    problems: List[str] = []
    try:
        for sheet_name, columns in sheet_columns.items():
            if sheet_name not in workbook.sheetnames:
                problems.append(f"missing sheet '{sheet_name}'")
                continue
            header = next(workbook[sheet_name].iter_rows(max_row=1, values_only=True), ())
            found = list(header[: len(columns)])
            if found != list(columns):
                problems.append(
                    f"sheet '{sheet_name}' header is {found}, expected {list(columns)}"
                )
    finally:
        workbook.close()
    return problems


def run_from_config(config_path: Path, *, overwrite: bool = False) -> Path:
    """Create the workbook ``config_path`` points at."""

    settings = load_settings(config_path)
    return create_master_workbook(
        settings.data_file,
        store_name=settings.store_name,
        overwrite=overwrite,
    )


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Parse arguments of the ``retail-setup`` script."""

    parser = argparse.ArgumentParser(
        prog="retail-setup",
        description="Create or check the Retail ERP master workbook.",
    )
    parser.add_argument(
        "--config",
        default=CONFIG_FILE,
        help="Path to config.ini (default: ./config.ini).",
    )
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument(
        "--force",
        action="store_true",
        help="Replace the workbook if it already exists.",
    )
    mode.add_argument(
        "--check",
        action="store_true",
        help="Only report sheets or headers that differ from the expected layout.",
    )
    return parser.parse_args(argv)


def _check(config_path: Path) -> int:
    settings = load_settings(config_path)
    problems = check_master_workbook(settings.data_file)
    if not problems:
        print(f"[OK] '{settings.data_file}' matches the expected layout.")
        return 0
    for problem in problems:
        print(f"[ERROR] {problem}")
    return 1


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point of ``retail-setup``; returns the process exit code."""

    args = parse_args(argv)
    config_path = Path(args.config).expanduser().resolve()

    print("--- Retail ERP Setup ---")
    print(f"Using configuration: {config_path}")

    try:
        if args.check:
            return _check(config_path)
        output_path = run_from_config(config_path, overwrite=args.force)
    except (FileNotFoundError, KeyError) as exc:
        print(f"\n[ERROR] {exc}")
        return 1
    except FileExistsError as exc:
        print(f"\n[ERROR] {exc}")
        print("Run with --force to replace it, or --check to inspect it.")
        return 1
    except OSError as exc:
        print(f"\n[ERROR] Unable to write workbook: {exc}")
        return 1

    print(f"\n[SUCCESS] Created master workbook at '{output_path}'.")
    return 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
