from __future__ import annotations

from pathlib import Path
from typing import Any, Iterable, List

from ..logging import get_logger
from ..normalize.schema import INVENTORY_COLUMNS, InventoryRow
from .csv import sort_rows

LOG = get_logger(__name__)


class ParquetNotAvailable(RuntimeError):
    pass


def _require_pyarrow():
    try:
        import pyarrow as pa  # type: ignore
        import pyarrow.parquet as pq  # type: ignore
    except Exception as e:  # pragma: no cover
        raise ParquetNotAvailable(
            "pyarrow is required for Parquet export. Install with: pip install .[parquet]"
        ) from e
    return pa, pq


def inventory_schema(pa: Any) -> Any:
    return pa.schema([pa.field(col, pa.string(), nullable=False) for col in INVENTORY_COLUMNS])


def write_inventory_parquet(rows: Iterable[InventoryRow], path: Path, *, batch_size: int = 5000) -> None:
    """
    Write the inventory as a Parquet file with one string column per export
    column, in the same deterministic row order as the CSV.
    """
    pa, pq = _require_pyarrow()
    path.parent.mkdir(parents=True, exist_ok=True)
    if batch_size < 1:
        batch_size = 5000

    schema = inventory_schema(pa)
    ordered = sort_rows(rows)
    with pq.ParquetWriter(str(path), schema) as writer:
        if not ordered:
            writer.write_table(pa.Table.from_pylist([], schema=schema))
            return
        for start in range(0, len(ordered), batch_size):
            batch: List[dict] = [r.as_export_dict() for r in ordered[start : start + batch_size]]
            try:
                table = pa.Table.from_pylist(batch, schema=schema)
            except Exception as exc:
                LOG.error(
                    "Parquet batch failed schema coercion",
                    extra={"step": "export", "phase": "error", "artifact": "parquet", "error": str(exc)},
                )
                raise
            writer.write_table(table)
