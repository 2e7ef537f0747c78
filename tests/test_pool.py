from __future__ import annotations

import threading
import time
from types import SimpleNamespace
from typing import Dict, List

import pytest
from azure.core.exceptions import HttpResponseError

from azure_inventory.normalize.schema import (
    ROW_PUBLIC_IP,
    IpConfiguration,
    NetworkInterface,
    PublicIpAddress,
    Subnet,
    Subscription,
    VirtualNetwork,
)
from azure_inventory.topology.aggregator import InventoryAggregator
from azure_inventory.topology.pool import (
    DEFAULT_PARALLELISM,
    STATUS_ERROR,
    STATUS_OK,
    SubscriptionWorkerPool,
    fetch_subscription_resources,
    validate_parallelism,
)
from azure_inventory.topology.registry import PublicIpRegistry
from azure_inventory.util.errors import ConfigError


def _base(sub_id: str) -> str:
    return f"/subscriptions/{sub_id}/resourceGroups/rg/providers/Microsoft.Network"


def _fake_source(sub_id: str, *, shared_pip_id: str = "", delay: float = 0.0, tracker=None):
    base = _base(sub_id)
    vnet_id = f"{base}/virtualNetworks/vnet-{sub_id}"
    subnet_id = f"{vnet_id}/subnets/default"
    nic_id = f"{base}/networkInterfaces/nic-{sub_id}"
    pip_id = shared_pip_id or f"{base}/publicIPAddresses/pip-{sub_id}"

    def _vnets():
        if tracker is not None:
            tracker.enter()
        try:
            time.sleep(delay)
        finally:
            if tracker is not None:
                tracker.leave()
        return [
            VirtualNetwork(
                id=vnet_id,
                name=f"vnet-{sub_id}",
                resource_group="rg",
                subnets=(Subnet(id=subnet_id, name="default", address_prefixes=("10.0.0.0/24",)),),
            )
        ]

    return SimpleNamespace(
        list_virtual_networks=_vnets,
        list_network_interfaces=lambda: [
            NetworkInterface(
                id=nic_id,
                name=f"nic-{sub_id}",
                resource_group="rg",
                ip_configurations=(
                    IpConfiguration(id=f"{nic_id}/ipConfigurations/c", name="c", private_ip="10.0.0.4", subnet_id=subnet_id, public_ip_id=pip_id),
                ),
            )
        ],
        list_public_ip_addresses=lambda: [PublicIpAddress(id=pip_id, name="pip", resource_group="rg", ip_address="52.0.0.1")],
        list_network_security_groups=lambda: [],
        list_load_balancers=lambda: [],
        list_application_gateways=lambda: [],
    )


class _ConcurrencyTracker:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.active = 0
        self.peak = 0

    def enter(self) -> None:
        with self._lock:
            self.active += 1
            self.peak = max(self.peak, self.active)

    def leave(self) -> None:
        with self._lock:
            self.active -= 1


def _subs(n: int) -> List[Subscription]:
    return [Subscription(id=f"sub-{i}", name=f"S{i}") for i in range(n)]


def test_validate_parallelism_bounds() -> None:
    assert validate_parallelism(1) == 1
    assert validate_parallelism(20) == 20
    assert DEFAULT_PARALLELISM == 5
    for bad in (0, 21, -3):
        with pytest.raises(ConfigError):
            validate_parallelism(bad)
    with pytest.raises(ConfigError):
        validate_parallelism(True)  # type: ignore[arg-type]


def test_fetch_subscription_resources_accepts_empty_lists() -> None:
    empty = SimpleNamespace(
        list_virtual_networks=lambda: [],
        list_network_interfaces=lambda: [],
        list_public_ip_addresses=lambda: [],
        list_network_security_groups=lambda: [],
        list_load_balancers=lambda: [],
        list_application_gateways=lambda: [],
    )
    resources = fetch_subscription_resources(empty)
    assert resources.virtual_networks == ()
    assert resources.application_gateways == ()


def test_pool_collects_every_subscription() -> None:
    agg = InventoryAggregator()
    pool = SubscriptionWorkerPool(lambda s: _fake_source(s.id), PublicIpRegistry(), agg, max_workers=3)

    outcomes = pool.run(_subs(6))

    assert [o.subscription.id for o in outcomes] == [f"sub-{i}" for i in range(6)]
    assert all(o.status == STATUS_OK for o in outcomes)
    assert all(o.row_count == 3 for o in outcomes)
    agg.close()
    assert len(agg.drain()) == 18


def test_pool_never_exceeds_parallelism() -> None:
    tracker = _ConcurrencyTracker()
    agg = InventoryAggregator()
    pool = SubscriptionWorkerPool(
        lambda s: _fake_source(s.id, delay=0.05, tracker=tracker),
        PublicIpRegistry(),
        agg,
        max_workers=2,
    )
    pool.run(_subs(8))
    assert 1 <= tracker.peak <= 2


def test_failing_subscription_does_not_stop_siblings() -> None:
    def _factory(sub: Subscription):
        if sub.id == "sub-1":
            raise RuntimeError("AuthorizationFailed")
        return _fake_source(sub.id)

    completed: List[str] = []
    agg = InventoryAggregator()
    pool = SubscriptionWorkerPool(
        _factory,
        PublicIpRegistry(),
        agg,
        max_workers=2,
        on_complete=lambda o: completed.append(o.subscription.id),
    )

    outcomes = pool.run(_subs(3))

    by_id: Dict[str, object] = {o.subscription.id: o for o in outcomes}
    assert by_id["sub-1"].status == STATUS_ERROR
    assert "AuthorizationFailed" in by_id["sub-1"].error
    assert by_id["sub-1"].row_count == 0
    assert by_id["sub-0"].ok and by_id["sub-2"].ok
    assert sorted(completed) == ["sub-0", "sub-1", "sub-2"]
    agg.close()
    assert {r.subscription_id for r in agg.drain()} == {"sub-0", "sub-2"}


def _collect(subs: List[Subscription], factory):
    agg = InventoryAggregator()
    outcomes = SubscriptionWorkerPool(factory, PublicIpRegistry(), agg, max_workers=2).run(subs)
    agg.close()
    return outcomes, sorted((r.subscription_id, r.type, r.name, r.private_ip, r.public_ip) for r in agg.drain())


def test_listing_failure_leaves_sibling_rows_unchanged() -> None:
    def _factory(sub: Subscription):
        source = _fake_source(sub.id)
        if sub.id == "sub-1":

            def _list_load_balancers():
                raise HttpResponseError(message="ResourceGroupNotFound")

            source.list_load_balancers = _list_load_balancers
        return source

    outcomes, rows = _collect(_subs(3), _factory)
    _, baseline = _collect(_subs(3), lambda s: _fake_source(s.id))

    by_id = {o.subscription.id: o for o in outcomes}
    assert by_id["sub-1"].status == STATUS_ERROR
    assert "ResourceGroupNotFound" in by_id["sub-1"].error
    assert by_id["sub-0"].ok and by_id["sub-2"].ok
    assert [r for r in rows if r[0] != "sub-1"] == [r for r in baseline if r[0] != "sub-1"]
    assert not [r for r in rows if r[0] == "sub-1"]


def test_partial_rows_are_kept_when_walk_fails_midway() -> None:
    class _FailingObserver:
        def on_virtual_network(self, *args, **kwargs) -> None:
            pass

        def on_subnet(self, *args, **kwargs) -> None:
            pass

        def on_network_interface(self, *args, **kwargs) -> None:
            pass

        def on_public_ip(self, *args, **kwargs) -> None:
            raise RuntimeError("diagram sink failed")

    registry = PublicIpRegistry()
    agg = InventoryAggregator()
    pool = SubscriptionWorkerPool(
        lambda s: _fake_source(s.id),
        registry,
        agg,
        max_workers=1,
        observer=_FailingObserver(),
    )

    (outcome,) = pool.run(_subs(1))

    assert outcome.status == STATUS_ERROR
    assert outcome.row_count == 3
    agg.close()
    rows = agg.drain()
    assert [r.type for r in rows].count(ROW_PUBLIC_IP) == 1
    assert len(registry) == 1


def test_public_ip_shared_across_subscriptions_is_emitted_once() -> None:
    shared = "/subscriptions/hub/resourceGroups/rg/providers/Microsoft.Network/publicIPAddresses/shared"
    agg = InventoryAggregator()
    registry = PublicIpRegistry()
    pool = SubscriptionWorkerPool(lambda s: _fake_source(s.id, shared_pip_id=shared), registry, agg, max_workers=5)

    pool.run(_subs(10))

    agg.close()
    pip_rows = [r for r in agg.drain() if r.type == ROW_PUBLIC_IP]
    assert len(pip_rows) == 1
    assert len(registry) == 1


def test_pool_returns_only_after_all_workers_finish() -> None:
    agg = InventoryAggregator()
    pool = SubscriptionWorkerPool(lambda s: _fake_source(s.id, delay=0.02), PublicIpRegistry(), agg, max_workers=4)
    outcomes = pool.run(_subs(8))
    # Every row is already in the aggregator when run() returns
    assert len(outcomes) == 8
    assert len(agg) == sum(o.row_count for o in outcomes)
