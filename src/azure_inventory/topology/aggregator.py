from __future__ import annotations

import threading
from typing import Iterable, List

from ..normalize.schema import InventoryRow
from ..util.errors import InventoryError


class InventoryAggregator:
    """
    Append-only row sink shared by all workers. Rows arrive in no particular
    order; drain() is only allowed once the sink has been closed after the
    worker pool barrier.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._rows: List[InventoryRow] = []
        self._closed = False

    def add(self, row: InventoryRow) -> None:
        self.extend([row])

    def extend(self, rows: Iterable[InventoryRow]) -> None:
        batch = list(rows)
        with self._lock:
            if self._closed:
                raise InventoryError("Inventory aggregator is closed; no more rows accepted")
            self._rows.extend(batch)

    def close(self) -> None:
        with self._lock:
            self._closed = True

    @property
    def closed(self) -> bool:
        with self._lock:
            return self._closed

    def drain(self) -> List[InventoryRow]:
        with self._lock:
            if not self._closed:
                raise InventoryError("Inventory aggregator must be closed before draining")
            rows = self._rows
            self._rows = []
            return rows

    def __len__(self) -> int:
        with self._lock:
            return len(self._rows)
