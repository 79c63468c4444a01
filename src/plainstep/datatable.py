from __future__ import annotations

import csv
from pathlib import Path

from .errors import DatatableError


def read_datatable(path: Path) -> list[dict[str, str]]:
    """Read a CSV datatable into one mapping per row, keyed by the trimmed header names."""
    try:
        with path.open("r", encoding="utf-8-sig", newline="") as handle:
            rows = [row for row in csv.reader(handle) if any(cell.strip() for cell in row)]
    except OSError as exc:
        raise DatatableError(f"Could not read datatable {path}: {exc}") from exc
    except csv.Error as exc:
        raise DatatableError(f"Malformed datatable {path}: {exc}") from exc

    if not rows:
        raise DatatableError(f"Datatable {path} is empty")

    headers = [cell.strip() for cell in rows[0]]
    if any(not header for header in headers):
        raise DatatableError(f"Datatable {path} has an empty column header")
    if len(rows) == 1:
        raise DatatableError(f"Datatable {path} has no data rows")

    records: list[dict[str, str]] = []
    for number, row in enumerate(rows[1:], start=2):
        if len(row) != len(headers):
            raise DatatableError(
                f"Datatable {path} row {number} has {len(row)} values, expected {len(headers)}"
            )
        records.append({header: value.strip() for header, value in zip(headers, row)})
    return records


def run_names(script_name: str, count: int) -> list[str]:
    return [f"{script_name}_{index}" for index in range(1, count + 1)]
