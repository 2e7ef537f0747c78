from __future__ import annotations

import csv
from pathlib import Path
from typing import Iterable, List

from ..normalize.schema import INVENTORY_COLUMNS, InventoryRow


def sort_rows(rows: Iterable[InventoryRow]) -> List[InventoryRow]:
    """Deterministic export order: subscription, VNet, type, resource group, name."""
    return sorted(rows, key=lambda r: r.sort_key())


def write_inventory_csv(rows: Iterable[InventoryRow], path: Path, *, already_sorted: bool = False) -> None:
    """
    Write the flat inventory with the fixed column schema. Missing values are
    written as empty strings.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    iter_rows: Iterable[InventoryRow] = rows if already_sorted else sort_rows(rows)
    with path.open("w", encoding="utf-8", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=INVENTORY_COLUMNS)
        writer.writeheader()
        for row in iter_rows:
            writer.writerow(row.as_export_dict())
