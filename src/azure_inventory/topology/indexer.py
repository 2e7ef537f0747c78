from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Set

from ..normalize.schema import (
    NetworkInterface,
    NetworkSecurityGroup,
    PublicIpAddress,
    SubscriptionResources,
)
from .ids import last_segment, normalize_resource_id, vnet_id_from_subnet_id


def index_nics_by_vnet(nics: Iterable[NetworkInterface]) -> Dict[str, List[NetworkInterface]]:
    """
    Bucket NICs under every VNet one of their ipConfigurations lives in.

    The VNet id is derived from the ipConfiguration's subnet reference. A NIC
    with several ipConfigurations in the same VNet lands in that bucket once.
    Buckets are keyed by normalized VNet id and sorted by NIC id.
    """
    buckets: Dict[str, List[NetworkInterface]] = {}
    seen: Dict[str, Set[str]] = {}
    for nic in nics:
        nic_key = normalize_resource_id(nic.id)
        for cfg in nic.ip_configurations:
            vnet_id = vnet_id_from_subnet_id(cfg.subnet_id)
            if not vnet_id:
                continue
            vnet_key = normalize_resource_id(vnet_id)
            members = seen.setdefault(vnet_key, set())
            if nic_key in members:
                continue
            members.add(nic_key)
            buckets.setdefault(vnet_key, []).append(nic)
    for bucket in buckets.values():
        bucket.sort(key=lambda n: normalize_resource_id(n.id))
    return buckets


def index_public_ips_by_id(public_ips: Iterable[PublicIpAddress]) -> Dict[str, PublicIpAddress]:
    return {normalize_resource_id(pip.id): pip for pip in public_ips if pip.id}


def index_nsgs_by_id(nsgs: Iterable[NetworkSecurityGroup]) -> Dict[str, NetworkSecurityGroup]:
    return {normalize_resource_id(nsg.id): nsg for nsg in nsgs if nsg.id}


@dataclass(frozen=True)
class ResourceIndex:
    """Per-subscription lookup structures; never shared between workers."""

    nics_by_vnet: Dict[str, List[NetworkInterface]]
    public_ips_by_id: Dict[str, PublicIpAddress]
    nsgs_by_id: Dict[str, NetworkSecurityGroup]

    @classmethod
    def build(cls, resources: SubscriptionResources) -> "ResourceIndex":
        return cls(
            nics_by_vnet=index_nics_by_vnet(resources.network_interfaces),
            public_ips_by_id=index_public_ips_by_id(resources.public_ip_addresses),
            nsgs_by_id=index_nsgs_by_id(resources.network_security_groups),
        )

    def nics_in_vnet(self, vnet_id: str) -> List[NetworkInterface]:
        return list(self.nics_by_vnet.get(normalize_resource_id(vnet_id), []))

    def public_ip(self, public_ip_id: Optional[str]) -> Optional[PublicIpAddress]:
        if not public_ip_id:
            return None
        return self.public_ips_by_id.get(normalize_resource_id(public_ip_id))

    def public_ip_address(self, public_ip_id: Optional[str]) -> str:
        pip = self.public_ip(public_ip_id)
        return pip.ip_address if pip else ""

    def nsg_name(self, nsg_id: Optional[str]) -> str:
        if not nsg_id:
            return ""
        nsg = self.nsgs_by_id.get(normalize_resource_id(nsg_id))
        if nsg and nsg.name:
            return nsg.name
        return last_segment(nsg_id)
