from __future__ import annotations

import threading
from typing import List, Set

from .ids import sanitize_id

PUBLIC_IP_KEY_PREFIX = "pip"


class PublicIpRegistry:
    """
    Run-wide claim set for public IP resources, shared by every worker.

    try_claim() is an atomic insert-if-absent: for a given public IP id it
    returns True exactly once across all threads, which is what keeps a
    public IP referenced by several owners down to a single inventory row.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._claimed: Set[str] = set()

    @staticmethod
    def key_for(resource_id: str) -> str:
        return sanitize_id(resource_id, prefix=PUBLIC_IP_KEY_PREFIX)

    def try_claim(self, resource_id: str) -> bool:
        key = self.key_for(resource_id)
        with self._lock:
            if key in self._claimed:
                return False
            self._claimed.add(key)
            return True

    def is_claimed(self, resource_id: str) -> bool:
        key = self.key_for(resource_id)
        with self._lock:
            return key in self._claimed

    def claimed_keys(self) -> List[str]:
        with self._lock:
            return sorted(self._claimed)

    def __len__(self) -> int:
        with self._lock:
            return len(self._claimed)
