from __future__ import annotations

from typing import Iterator, List, Optional, Protocol, Sequence, Tuple

from ..logging import get_logger
from ..normalize.schema import (
    ROW_APPLICATION_GATEWAY,
    ROW_LOAD_BALANCER,
    ROW_NETWORK_INTERFACE,
    ROW_PUBLIC_IP,
    ROW_SUBNET,
    ApplicationGateway,
    FrontendIpConfiguration,
    InventoryRow,
    LoadBalancer,
    NetworkInterface,
    PublicIpAddress,
    Subnet,
    Subscription,
    SubscriptionResources,
    VirtualNetwork,
)
from .ids import last_segment, normalize_resource_id, resource_group_from_id, vnet_id_from_subnet_id
from .indexer import ResourceIndex
from .orphans import ORPHANED_LABEL, orphan_label
from .registry import PublicIpRegistry

LOG = get_logger(__name__)

OWNER_NIC = "nic"
OWNER_LOAD_BALANCER = "lb"
OWNER_APP_GATEWAY = "agw"


class TopologyObserver(Protocol):
    """Receives the walk as resource events, e.g. to build a diagram."""

    def on_virtual_network(self, subscription: Subscription, vnet: VirtualNetwork) -> None: ...

    def on_subnet(self, subscription: Subscription, vnet: VirtualNetwork, subnet: Subnet) -> None: ...

    def on_network_interface(
        self, subscription: Subscription, nic: NetworkInterface, subnet_id: Optional[str], private_ip: str
    ) -> None: ...

    def on_load_balancer(self, subscription: Subscription, lb: LoadBalancer, subnet_id: Optional[str]) -> None: ...

    def on_application_gateway(
        self, subscription: Subscription, gateway: ApplicationGateway, subnet_id: Optional[str]
    ) -> None: ...

    def on_public_ip(
        self,
        subscription: Subscription,
        public_ip_id: str,
        public_ip: Optional[PublicIpAddress],
        *,
        owner_kind: Optional[str],
        owner_id: Optional[str],
        associated_with: str,
    ) -> None: ...


def _by_id(item: object) -> str:
    return normalize_resource_id(getattr(item, "id", ""))


def _in_vnet(subnet_id: Optional[str], vnet_key: str) -> bool:
    return normalize_resource_id(vnet_id_from_subnet_id(subnet_id)) == vnet_key if subnet_id else False


def _unique_ids(ids: Sequence[Optional[str]]) -> List[str]:
    out: List[str] = []
    seen = set()
    for rid in ids:
        if not rid:
            continue
        key = normalize_resource_id(rid)
        if key in seen:
            continue
        seen.add(key)
        out.append(rid)
    return out


class TopologyWalker:
    """
    Turns one subscription's resource lists into inventory rows.

    Order: for every VNet (sorted by id) its subnets, then its NICs, load
    balancers and application gateways; after all VNets, one orphan sweep
    over the subscription's public IPs. Public IP rows are gated by the
    shared registry, so a public IP already claimed by any worker is skipped.
    """

    def __init__(
        self,
        subscription: Subscription,
        resources: SubscriptionResources,
        registry: PublicIpRegistry,
        *,
        index: Optional[ResourceIndex] = None,
        observer: Optional[TopologyObserver] = None,
    ) -> None:
        self.subscription = subscription
        self.resources = resources
        self.registry = registry
        self.index = index if index is not None else ResourceIndex.build(resources)
        self.observer = observer

    def walk(self) -> List[InventoryRow]:
        return list(self.iter_rows())

    def iter_rows(self) -> Iterator[InventoryRow]:
        for vnet in sorted(self.resources.virtual_networks, key=_by_id):
            if self.observer is not None:
                self.observer.on_virtual_network(self.subscription, vnet)
            yield from self._subnet_rows(vnet)
            yield from self._nic_rows(vnet)
            yield from self._load_balancer_rows(vnet)
            yield from self._app_gateway_rows(vnet)
        yield from self._orphan_sweep()

    def _row(self, row_type: str, name: str, resource_group: str, **fields: str) -> InventoryRow:
        return InventoryRow(
            subscription=self.subscription.name,
            subscription_id=self.subscription.id,
            resource_group=resource_group,
            type=row_type,
            name=name,
            **fields,
        )

    def _subnet_rows(self, vnet: VirtualNetwork) -> Iterator[InventoryRow]:
        for subnet in sorted(vnet.subnets, key=_by_id):
            if self.observer is not None:
                self.observer.on_subnet(self.subscription, vnet, subnet)
            yield self._row(
                ROW_SUBNET,
                subnet.name,
                vnet.resource_group,
                vnet=vnet.name,
                ip_range=", ".join(subnet.address_prefixes),
                nsg=self.index.nsg_name(subnet.nsg_id),
            )

    def _nic_rows(self, vnet: VirtualNetwork) -> Iterator[InventoryRow]:
        vnet_key = normalize_resource_id(vnet.id)
        for nic in self.index.nics_in_vnet(vnet.id):
            # First ipConfiguration in this VNet; a NIC spanning VNets gets one row per VNet
            first = next((c for c in nic.ip_configurations if _in_vnet(c.subnet_id, vnet_key)), None)
            private_ip = first.private_ip if first else ""
            subnet_id = first.subnet_id if first else None
            public_ip_id = first.public_ip_id if first else None
            if self.observer is not None:
                self.observer.on_network_interface(self.subscription, nic, subnet_id, private_ip)
            yield self._row(
                ROW_NETWORK_INTERFACE,
                nic.name,
                nic.resource_group,
                vnet=vnet.name,
                private_ip=private_ip,
                public_ip=self.index.public_ip_address(public_ip_id),
                nsg=self.index.nsg_name(nic.nsg_id),
                associated_with=last_segment(subnet_id),
            )
            if public_ip_id:
                yield from self._claim_public_ip(
                    public_ip_id,
                    vnet_name=vnet.name,
                    private_ip=private_ip,
                    associated_with=nic.name,
                    owner_kind=OWNER_NIC,
                    owner_id=nic.id,
                )

    def _frontend_summary(
        self, frontends: Sequence[FrontendIpConfiguration], vnet_key: str
    ) -> Tuple[Optional[FrontendIpConfiguration], List[str]]:
        bound = next((fe for fe in frontends if _in_vnet(fe.subnet_id, vnet_key)), None)
        public_ids = _unique_ids([fe.public_ip_id for fe in frontends])
        return bound, public_ids

    def _addresses(self, public_ids: Sequence[str]) -> str:
        return ", ".join(a for a in (self.index.public_ip_address(pid) for pid in public_ids) if a)

    def _load_balancer_rows(self, vnet: VirtualNetwork) -> Iterator[InventoryRow]:
        vnet_key = normalize_resource_id(vnet.id)
        for lb in sorted(self.resources.load_balancers, key=_by_id):
            bound, public_ids = self._frontend_summary(lb.frontend_ip_configurations, vnet_key)
            if bound is None:
                continue
            if self.observer is not None:
                self.observer.on_load_balancer(self.subscription, lb, bound.subnet_id)
            yield self._row(
                ROW_LOAD_BALANCER,
                lb.name,
                lb.resource_group,
                vnet=vnet.name,
                private_ip=bound.private_ip,
                public_ip=self._addresses(public_ids),
                associated_with=", ".join(lb.backend_pool_names),
            )
            for public_ip_id in public_ids:
                yield from self._claim_public_ip(
                    public_ip_id,
                    vnet_name=vnet.name,
                    associated_with=f"LB: {lb.name}",
                    owner_kind=OWNER_LOAD_BALANCER,
                    owner_id=lb.id,
                )

    def _app_gateway_rows(self, vnet: VirtualNetwork) -> Iterator[InventoryRow]:
        vnet_key = normalize_resource_id(vnet.id)
        for gateway in sorted(self.resources.application_gateways, key=_by_id):
            bound, public_ids = self._frontend_summary(gateway.frontend_ip_configurations, vnet_key)
            gateway_subnet = next((s for s in gateway.gateway_subnet_ids if _in_vnet(s, vnet_key)), None)
            if bound is None and gateway_subnet is None:
                continue
            subnet_id = bound.subnet_id if bound is not None else gateway_subnet
            if self.observer is not None:
                self.observer.on_application_gateway(self.subscription, gateway, subnet_id)
            yield self._row(
                ROW_APPLICATION_GATEWAY,
                gateway.name,
                gateway.resource_group,
                vnet=vnet.name,
                private_ip=bound.private_ip if bound is not None else "",
                public_ip=self._addresses(public_ids),
                associated_with=", ".join(gateway.backend_pool_names),
            )
            for public_ip_id in public_ids:
                yield from self._claim_public_ip(
                    public_ip_id,
                    vnet_name=vnet.name,
                    associated_with=f"AppGW: {gateway.name}",
                    owner_kind=OWNER_APP_GATEWAY,
                    owner_id=gateway.id,
                )

    def _orphan_sweep(self) -> Iterator[InventoryRow]:
        orphaned = 0
        for pip in sorted(self.resources.public_ip_addresses, key=_by_id):
            label = orphan_label(pip)
            for row in self._claim_public_ip(
                pip.id,
                vnet_name="",
                associated_with=label,
                owner_kind=None,
                owner_id=None,
            ):
                if label == ORPHANED_LABEL:
                    orphaned += 1
                yield row
        if orphaned:
            LOG.debug(
                "Orphaned public IPs found",
                extra={"subscription": self.subscription.name, "orphaned": orphaned},
            )

    def _claim_public_ip(
        self,
        public_ip_id: str,
        *,
        vnet_name: str,
        associated_with: str,
        owner_kind: Optional[str],
        owner_id: Optional[str],
        private_ip: str = "",
    ) -> Iterator[InventoryRow]:
        """
        Yield the PublicIP row if this walker wins the claim, then notify the
        observer. A won claim always yields its row first.
        """
        if not self.registry.try_claim(public_ip_id):
            return
        pip = self.index.public_ip(public_ip_id)
        yield self._row(
            ROW_PUBLIC_IP,
            pip.name if pip else last_segment(public_ip_id),
            pip.resource_group if pip else resource_group_from_id(public_ip_id),
            vnet=vnet_name,
            private_ip=private_ip,
            public_ip=pip.ip_address if pip else "",
            associated_with=associated_with,
        )
        if self.observer is not None:
            self.observer.on_public_ip(
                self.subscription,
                public_ip_id,
                pip,
                owner_kind=owner_kind,
                owner_id=owner_id,
                associated_with=associated_with,
            )
