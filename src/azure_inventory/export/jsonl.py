from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Iterable

from ..normalize.schema import InventoryRow
from .csv import sort_rows


def stable_json_dumps(obj: Any) -> str:
    return json.dumps(obj, ensure_ascii=False, separators=(",", ":"))


def write_inventory_jsonl(rows: Iterable[InventoryRow], path: Path) -> None:
    """
    One JSON object per row, keys in export column order, rows in the same
    deterministic order as the CSV.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as f:
        for row in sort_rows(rows):
            f.write(stable_json_dumps(row.as_export_dict()))
            f.write("\n")
