from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor

from azure_inventory.topology.registry import PublicIpRegistry

PIP_ID = "/subscriptions/sub-1/resourceGroups/rg/providers/Microsoft.Network/publicIPAddresses/pip1"


def test_try_claim_succeeds_once() -> None:
    registry = PublicIpRegistry()
    assert registry.try_claim(PIP_ID) is True
    assert registry.try_claim(PIP_ID) is False
    assert registry.is_claimed(PIP_ID)
    assert len(registry) == 1


def test_claim_is_case_insensitive() -> None:
    registry = PublicIpRegistry()
    assert registry.try_claim(PIP_ID)
    assert not registry.try_claim(PIP_ID.upper())


def test_claimed_keys_are_sanitized_and_sorted() -> None:
    registry = PublicIpRegistry()
    registry.try_claim("/b")
    registry.try_claim("/a")
    assert registry.claimed_keys() == ["pip_2fa", "pip_2fb"]


def test_ids_differing_only_by_punctuation_are_separate_claims() -> None:
    registry = PublicIpRegistry()
    base = PIP_ID.rsplit("/", 1)[0]
    assert registry.try_claim(f"{base}/web-pip1")
    assert registry.try_claim(f"{base}/webpip1")
    assert registry.try_claim(f"{base}/web.pip1")
    assert len(registry) == 3


def test_concurrent_claims_of_same_id_yield_exactly_one_winner() -> None:
    registry = PublicIpRegistry()
    barrier = threading.Barrier(16)

    def _claim(_: int) -> bool:
        barrier.wait()
        return registry.try_claim(PIP_ID)

    with ThreadPoolExecutor(max_workers=16) as executor:
        results = list(executor.map(_claim, range(16)))

    assert results.count(True) == 1
    assert len(registry) == 1


def test_concurrent_claims_of_distinct_ids_all_succeed() -> None:
    registry = PublicIpRegistry()
    ids = [f"{PIP_ID}-{i}" for i in range(1000)]

    with ThreadPoolExecutor(max_workers=8) as executor:
        results = list(executor.map(registry.try_claim, ids))

    assert all(results)
    assert len(registry) == 1000
