from __future__ import annotations

from typing import List, Optional

import pytest

from azure_inventory.normalize.schema import (
    ROW_APPLICATION_GATEWAY,
    ROW_LOAD_BALANCER,
    ROW_NETWORK_INTERFACE,
    ROW_PUBLIC_IP,
    ROW_SUBNET,
    ApplicationGateway,
    FrontendIpConfiguration,
    IpConfiguration,
    LoadBalancer,
    NetworkInterface,
    NetworkSecurityGroup,
    PublicIpAddress,
    Subnet,
    Subscription,
    SubscriptionResources,
    VirtualNetwork,
)
from azure_inventory.topology.orphans import LB_OR_GATEWAY_LABEL, ORPHANED_LABEL
from azure_inventory.topology.registry import PublicIpRegistry
from azure_inventory.topology.walker import TopologyWalker

SUB = Subscription(id="sub-1", name="S1")
BASE = "/subscriptions/sub-1/resourceGroups/rg-net/providers/Microsoft.Network"
V1_ID = f"{BASE}/virtualNetworks/V1"
SUB1_ID = f"{V1_ID}/subnets/sub1"
NIC_ID = f"{BASE}/networkInterfaces/vm1-nic"
PIP1_ID = f"{BASE}/publicIPAddresses/vm1-pip"
PIP2_ID = f"{BASE}/publicIPAddresses/spare-pip"
NSG_ID = f"{BASE}/networkSecurityGroups/web-nsg"


def _vnet() -> VirtualNetwork:
    return VirtualNetwork(
        id=V1_ID,
        name="V1",
        resource_group="rg-net",
        address_prefixes=("10.0.0.0/16",),
        subnets=(Subnet(id=SUB1_ID, name="sub1", address_prefixes=("10.0.1.0/24",), nsg_id=NSG_ID),),
    )


def _nic(public_ip_id: Optional[str] = PIP1_ID) -> NetworkInterface:
    return NetworkInterface(
        id=NIC_ID,
        name="vm1-nic",
        resource_group="rg-vm",
        ip_configurations=(
            IpConfiguration(
                id=f"{NIC_ID}/ipConfigurations/ipconfig1",
                name="ipconfig1",
                private_ip="10.0.1.5",
                subnet_id=SUB1_ID,
                public_ip_id=public_ip_id,
            ),
        ),
    )


def _pip(pip_id: str, address: str, ip_configuration_id: Optional[str] = None) -> PublicIpAddress:
    return PublicIpAddress(
        id=pip_id,
        name=pip_id.rsplit("/", 1)[-1],
        resource_group="rg-net",
        ip_address=address,
        ip_configuration_id=ip_configuration_id,
    )


def _single_vnet_resources(*extra_pips: PublicIpAddress) -> SubscriptionResources:
    return SubscriptionResources(
        virtual_networks=(_vnet(),),
        network_interfaces=(_nic(),),
        public_ip_addresses=(_pip(PIP1_ID, "52.1.2.3", f"{NIC_ID}/ipConfigurations/ipconfig1"),) + extra_pips,
        network_security_groups=(NetworkSecurityGroup(id=NSG_ID, name="web-nsg", resource_group="rg-net"),),
    )


def _walk(resources: SubscriptionResources, registry: Optional[PublicIpRegistry] = None) -> List:
    return TopologyWalker(SUB, resources, registry or PublicIpRegistry()).walk()


def test_single_vnet_with_nic_and_public_ip() -> None:
    rows = _walk(_single_vnet_resources())

    assert [r.type for r in rows] == [ROW_SUBNET, ROW_NETWORK_INTERFACE, ROW_PUBLIC_IP]
    subnet, nic, pip = rows

    assert subnet.name == "sub1"
    assert subnet.vnet == "V1"
    assert subnet.ip_range == "10.0.1.0/24"
    assert subnet.nsg == "web-nsg"
    assert subnet.resource_group == "rg-net"

    assert nic.name == "vm1-nic"
    assert nic.private_ip == "10.0.1.5"
    assert nic.public_ip == "52.1.2.3"
    assert nic.associated_with == "sub1"
    assert nic.resource_group == "rg-vm"

    assert pip.public_ip == "52.1.2.3"
    assert pip.associated_with == "vm1-nic"
    assert pip.private_ip == "10.0.1.5"
    assert pip.vnet == "V1"
    assert all(r.associated_with != ORPHANED_LABEL for r in rows)
    assert all(r.subscription == "S1" and r.subscription_id == "sub-1" for r in rows)


def test_unattached_public_ip_is_reported_as_orphaned() -> None:
    rows = _walk(_single_vnet_resources(_pip(PIP2_ID, "52.1.2.4")))

    assert len(rows) == 4
    orphan = rows[-1]
    assert orphan.type == ROW_PUBLIC_IP
    assert orphan.public_ip == "52.1.2.4"
    assert orphan.associated_with == ORPHANED_LABEL
    assert orphan.vnet == ""


def test_every_public_ip_is_emitted_exactly_once() -> None:
    resources = _single_vnet_resources(_pip(PIP2_ID, "52.1.2.4"))
    rows = _walk(resources)
    pip_rows = [r for r in rows if r.type == ROW_PUBLIC_IP]
    assert sorted(r.name for r in pip_rows) == sorted(p.name for p in resources.public_ip_addresses)


def test_public_ips_differing_only_by_punctuation_get_separate_rows() -> None:
    dashed = _pip(f"{BASE}/publicIPAddresses/web-pip1", "1.1.1.1")
    plain = _pip(f"{BASE}/publicIPAddresses/webpip1", "2.2.2.2")

    rows = _walk(SubscriptionResources(public_ip_addresses=(dashed, plain)))

    assert [r.type for r in rows] == [ROW_PUBLIC_IP, ROW_PUBLIC_IP]
    assert sorted(r.public_ip for r in rows) == ["1.1.1.1", "2.2.2.2"]
    assert all(r.associated_with == ORPHANED_LABEL for r in rows)


def test_nic_public_ip_missing_from_listing_still_gets_a_row() -> None:
    resources = SubscriptionResources(virtual_networks=(_vnet(),), network_interfaces=(_nic(),))
    rows = _walk(resources)
    pip = [r for r in rows if r.type == ROW_PUBLIC_IP]
    assert len(pip) == 1
    assert pip[0].name == "vm1-pip"
    assert pip[0].public_ip == ""
    assert pip[0].resource_group == "rg-net"


def test_public_ip_claimed_by_another_worker_is_skipped() -> None:
    registry = PublicIpRegistry()
    assert registry.try_claim(PIP1_ID)

    rows = _walk(_single_vnet_resources(), registry)

    assert [r.type for r in rows] == [ROW_SUBNET, ROW_NETWORK_INTERFACE]
    # The NIC row still shows the address
    assert rows[1].public_ip == "52.1.2.3"


def test_shared_registry_across_subscriptions_keeps_public_ip_unique() -> None:
    registry = PublicIpRegistry()
    other = Subscription(id="sub-2", name="S2")
    first = TopologyWalker(SUB, _single_vnet_resources(), registry).walk()
    # Same public IP listed again by a second subscription's sweep
    second = TopologyWalker(
        other,
        SubscriptionResources(public_ip_addresses=(_pip(PIP1_ID, "52.1.2.3"),)),
        registry,
    ).walk()

    pip_rows = [r for r in first + second if r.type == ROW_PUBLIC_IP]
    assert len(pip_rows) == 1
    assert second == []


def test_nic_spanning_vnets_uses_configuration_in_each_vnet() -> None:
    v2_id = f"{BASE}/virtualNetworks/V2"
    v2_subnet_id = f"{v2_id}/subnets/apps"
    v2 = VirtualNetwork(
        id=v2_id,
        name="V2",
        resource_group="rg-net",
        subnets=(Subnet(id=v2_subnet_id, name="apps", address_prefixes=("10.1.0.0/24",)),),
    )
    nic = NetworkInterface(
        id=NIC_ID,
        name="vm1-nic",
        resource_group="rg-vm",
        ip_configurations=(
            IpConfiguration(id=f"{NIC_ID}/ipConfigurations/b", name="b", private_ip="10.1.0.4", subnet_id=v2_subnet_id),
            IpConfiguration(id=f"{NIC_ID}/ipConfigurations/a", name="a", private_ip="10.0.1.7", subnet_id=SUB1_ID),
        ),
    )

    rows = _walk(SubscriptionResources(virtual_networks=(_vnet(), v2), network_interfaces=(nic,)))

    nic_rows = {r.vnet: r for r in rows if r.type == ROW_NETWORK_INTERFACE}
    assert nic_rows["V1"].private_ip == "10.0.1.7"
    assert nic_rows["V1"].associated_with == "sub1"
    assert nic_rows["V2"].private_ip == "10.1.0.4"
    assert nic_rows["V2"].associated_with == "apps"


def test_public_ip_row_is_yielded_before_observer_runs() -> None:
    class _RaisingObserver:
        def on_virtual_network(self, *args, **kwargs) -> None:
            pass

        def on_subnet(self, *args, **kwargs) -> None:
            pass

        def on_network_interface(self, *args, **kwargs) -> None:
            pass

        def on_public_ip(self, *args, **kwargs) -> None:
            raise RuntimeError("diagram sink failed")

    registry = PublicIpRegistry()
    walker = TopologyWalker(SUB, _single_vnet_resources(), registry, observer=_RaisingObserver())
    rows = []
    with pytest.raises(RuntimeError):
        for row in walker.iter_rows():
            rows.append(row)

    assert [r.type for r in rows] == [ROW_SUBNET, ROW_NETWORK_INTERFACE, ROW_PUBLIC_IP]
    assert len(registry) == 1


def test_vnet_without_subnets_yields_nothing() -> None:
    empty = VirtualNetwork(id=f"{BASE}/virtualNetworks/empty", name="empty", resource_group="rg-net")
    assert _walk(SubscriptionResources(virtual_networks=(empty,))) == []


def test_empty_subscription_yields_no_rows() -> None:
    assert _walk(SubscriptionResources()) == []


def _lb_and_gateway_sharing(shared_pip_id: str) -> SubscriptionResources:
    lb = LoadBalancer(
        id=f"{BASE}/loadBalancers/lb1",
        name="lb1",
        resource_group="rg-net",
        frontend_ip_configurations=(
            FrontendIpConfiguration(id=f"{BASE}/loadBalancers/lb1/frontendIPConfigurations/internal", name="internal", private_ip="10.0.1.10", subnet_id=SUB1_ID),
            FrontendIpConfiguration(id=f"{BASE}/loadBalancers/lb1/frontendIPConfigurations/public", name="public", public_ip_id=shared_pip_id),
        ),
        backend_pool_names=("web-pool",),
    )
    gateway = ApplicationGateway(
        id=f"{BASE}/applicationGateways/agw1",
        name="agw1",
        resource_group="rg-net",
        frontend_ip_configurations=(
            FrontendIpConfiguration(id=f"{BASE}/applicationGateways/agw1/frontendIPConfigurations/public", name="public", public_ip_id=shared_pip_id),
        ),
        backend_pool_names=("app-pool", "api-pool"),
        gateway_subnet_ids=(SUB1_ID,),
    )
    return SubscriptionResources(
        virtual_networks=(_vnet(),),
        public_ip_addresses=(
            _pip(shared_pip_id, "20.30.40.50", f"{BASE}/loadBalancers/lb1/frontendIPConfigurations/public"),
        ),
        load_balancers=(lb,),
        application_gateways=(gateway,),
    )


def test_load_balancer_and_gateway_sharing_public_ip_emit_one_row() -> None:
    shared = f"{BASE}/publicIPAddresses/shared-pip"
    rows = _walk(_lb_and_gateway_sharing(shared))

    types = [r.type for r in rows]
    assert types == [ROW_SUBNET, ROW_LOAD_BALANCER, ROW_PUBLIC_IP, ROW_APPLICATION_GATEWAY]

    lb_row = rows[1]
    assert lb_row.private_ip == "10.0.1.10"
    assert lb_row.public_ip == "20.30.40.50"
    assert lb_row.associated_with == "web-pool"

    pip_rows = [r for r in rows if r.type == ROW_PUBLIC_IP]
    assert len(pip_rows) == 1
    # Load balancers are walked before gateways
    assert pip_rows[0].associated_with == "LB: lb1"

    gw_row = rows[-1]
    assert gw_row.name == "agw1"
    assert gw_row.public_ip == "20.30.40.50"
    assert gw_row.associated_with == "app-pool, api-pool"


def test_orphan_sweep_labels_unwalked_frontend_public_ip() -> None:
    pip = _pip(PIP2_ID, "52.9.9.9", f"{BASE}/loadBalancers/lb-elsewhere/frontendIPConfigurations/fe")
    rows = _walk(SubscriptionResources(public_ip_addresses=(pip,)))
    assert len(rows) == 1
    assert rows[0].associated_with == LB_OR_GATEWAY_LABEL


def test_walk_is_deterministic() -> None:
    resources = _single_vnet_resources(_pip(PIP2_ID, "52.1.2.4"))
    assert _walk(resources) == _walk(resources)
