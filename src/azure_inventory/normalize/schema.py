from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Tuple


@dataclass(frozen=True)
class Subscription:
    id: str
    name: str


@dataclass(frozen=True)
class Subnet:
    id: str
    name: str
    address_prefixes: Tuple[str, ...] = ()
    nsg_id: Optional[str] = None


@dataclass(frozen=True)
class VirtualNetwork:
    id: str
    name: str
    resource_group: str
    address_prefixes: Tuple[str, ...] = ()
    subnets: Tuple[Subnet, ...] = ()


@dataclass(frozen=True)
class IpConfiguration:
    id: str
    name: str
    private_ip: str = ""
    subnet_id: Optional[str] = None
    public_ip_id: Optional[str] = None


@dataclass(frozen=True)
class NetworkInterface:
    id: str
    name: str
    resource_group: str
    ip_configurations: Tuple[IpConfiguration, ...] = ()
    nsg_id: Optional[str] = None


@dataclass(frozen=True)
class PublicIpAddress:
    id: str
    name: str
    resource_group: str
    ip_address: str = ""
    ip_configuration_id: Optional[str] = None
    load_balancer_id: Optional[str] = None
    application_gateway_id: Optional[str] = None


@dataclass(frozen=True)
class NetworkSecurityGroup:
    id: str
    name: str
    resource_group: str = ""


@dataclass(frozen=True)
class FrontendIpConfiguration:
    id: str
    name: str
    private_ip: str = ""
    subnet_id: Optional[str] = None
    public_ip_id: Optional[str] = None


@dataclass(frozen=True)
class LoadBalancer:
    id: str
    name: str
    resource_group: str
    frontend_ip_configurations: Tuple[FrontendIpConfiguration, ...] = ()
    backend_pool_names: Tuple[str, ...] = ()


@dataclass(frozen=True)
class ApplicationGateway:
    id: str
    name: str
    resource_group: str
    frontend_ip_configurations: Tuple[FrontendIpConfiguration, ...] = ()
    backend_pool_names: Tuple[str, ...] = ()
    gateway_subnet_ids: Tuple[str, ...] = ()


@dataclass(frozen=True)
class SubscriptionResources:
    """One subscription's raw listing results, fetched once per run."""

    virtual_networks: Tuple[VirtualNetwork, ...] = ()
    network_interfaces: Tuple[NetworkInterface, ...] = ()
    public_ip_addresses: Tuple[PublicIpAddress, ...] = ()
    network_security_groups: Tuple[NetworkSecurityGroup, ...] = ()
    load_balancers: Tuple[LoadBalancer, ...] = ()
    application_gateways: Tuple[ApplicationGateway, ...] = ()


# InventoryRow.type values
ROW_SUBNET = "Subnet"
ROW_NETWORK_INTERFACE = "NetworkInterface"
ROW_PUBLIC_IP = "PublicIP"
ROW_LOAD_BALANCER = "LoadBalancer"
ROW_APPLICATION_GATEWAY = "ApplicationGateway"
ROW_TYPES: Tuple[str, ...] = (
    ROW_SUBNET,
    ROW_NETWORK_INTERFACE,
    ROW_PUBLIC_IP,
    ROW_LOAD_BALANCER,
    ROW_APPLICATION_GATEWAY,
)

# Fixed column schema of the tabular export
INVENTORY_COLUMNS: List[str] = [
    "Subscription",
    "SubscriptionId",
    "ResourceGroup",
    "Type",
    "Name",
    "VNet",
    "IPRange",
    "PrivateIP",
    "PublicIP",
    "NSG",
    "AssociatedWith",
]


@dataclass(frozen=True)
class InventoryRow:
    subscription: str
    subscription_id: str
    resource_group: str
    type: str
    name: str
    vnet: str = ""
    ip_range: str = ""
    private_ip: str = ""
    public_ip: str = ""
    nsg: str = ""
    associated_with: str = ""

    def as_export_dict(self) -> Dict[str, str]:
        return {
            "Subscription": self.subscription,
            "SubscriptionId": self.subscription_id,
            "ResourceGroup": self.resource_group,
            "Type": self.type,
            "Name": self.name,
            "VNet": self.vnet,
            "IPRange": self.ip_range,
            "PrivateIP": self.private_ip,
            "PublicIP": self.public_ip,
            "NSG": self.nsg,
            "AssociatedWith": self.associated_with,
        }

    def sort_key(self) -> Tuple[str, str, int, str, str]:
        return (
            self.subscription_id.lower(),
            self.vnet.lower(),
            ROW_TYPES.index(self.type) if self.type in ROW_TYPES else len(ROW_TYPES),
            self.resource_group.lower(),
            self.name.lower(),
        )


# DiagramNode.category values
NODE_VNET = "vnet"
NODE_SUBNET = "subnet"
NODE_NIC = "nic"
NODE_PUBLIC_IP = "publicip"
NODE_LOAD_BALANCER = "loadbalancer"
NODE_APP_GATEWAY = "appgateway"


@dataclass(frozen=True)
class DiagramNode:
    id: str
    label: str
    category: str
    parent: Optional[str] = None
    x: int = 0
    y: int = 0
    width: int = 160
    height: int = 60
    fill_color: str = ""
    subscription_id: str = ""


@dataclass(frozen=True)
class DiagramEdge:
    id: str
    source: str
    target: str
    label: str = ""


@dataclass(frozen=True)
class OutputPaths:
    root: Path
    inventory_dir: Path
    diagrams_dir: Path
    logs_dir: Path
    inventory_csv: Path
    inventory_jsonl: Path
    inventory_parquet: Path
    diagram_drawio: Path
    run_summary_json: Path
    debug_log: Path


def resolve_output_paths(outdir: Path) -> OutputPaths:
    root = outdir
    inventory_dir = root / "inventory"
    diagrams_dir = root / "diagrams"
    logs_dir = root / "logs"
    return OutputPaths(
        root=root,
        inventory_dir=inventory_dir,
        diagrams_dir=diagrams_dir,
        logs_dir=logs_dir,
        inventory_csv=inventory_dir / "network_inventory.csv",
        inventory_jsonl=inventory_dir / "network_inventory.jsonl",
        inventory_parquet=inventory_dir / "network_inventory.parquet",
        diagram_drawio=diagrams_dir / "network_topology.drawio",
        run_summary_json=root / "run_summary.json",
        debug_log=logs_dir / "debug.log",
    )
