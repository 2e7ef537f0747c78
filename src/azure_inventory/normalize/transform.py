from __future__ import annotations

from typing import Any, Iterable, List, Mapping, Optional, Tuple

from ..topology.ids import resource_group_from_id
from .schema import (
    ApplicationGateway,
    FrontendIpConfiguration,
    IpConfiguration,
    LoadBalancer,
    NetworkInterface,
    NetworkSecurityGroup,
    PublicIpAddress,
    Subnet,
    Subscription,
    VirtualNetwork,
)

# Raw payloads come either from SDK models (as_dict(): snake_case, flattened)
# or from ARM JSON (camelCase, nested under "properties"). Every lookup below
# names both spellings.


def _get(obj: Mapping[str, Any], *keys: str) -> Any:
    if not isinstance(obj, Mapping):
        return None
    props = obj.get("properties")
    for k in keys:
        if k in obj and obj[k] is not None:
            return obj[k]
        if isinstance(props, Mapping) and props.get(k) is not None:
            return props[k]
    return None


def _str(obj: Mapping[str, Any], *keys: str) -> str:
    val = _get(obj, *keys)
    if val is None:
        return ""
    return str(val).strip()


def _ref_id(obj: Mapping[str, Any], *keys: str) -> Optional[str]:
    """Resolve a sub-resource reference ({"id": ...}) to its id."""
    ref = _get(obj, *keys)
    if isinstance(ref, Mapping):
        ref = ref.get("id")
    if isinstance(ref, str) and ref.strip():
        return ref.strip()
    return None


def _list(obj: Mapping[str, Any], *keys: str) -> List[Any]:
    val = _get(obj, *keys)
    if isinstance(val, (list, tuple)):
        return list(val)
    return []


def _prefixes(obj: Mapping[str, Any]) -> Tuple[str, ...]:
    many = [str(p) for p in _list(obj, "address_prefixes", "addressPrefixes") if p]
    if many:
        return tuple(many)
    single = _str(obj, "address_prefix", "addressPrefix")
    return (single,) if single else ()


def _resource_group(obj: Mapping[str, Any]) -> str:
    explicit = _str(obj, "resource_group", "resourceGroup")
    return explicit or resource_group_from_id(_str(obj, "id"))


def subscription_from_dict(obj: Mapping[str, Any]) -> Subscription:
    sub_id = _str(obj, "subscription_id", "subscriptionId")
    if not sub_id:
        sub_id = _str(obj, "id").rstrip("/").rsplit("/", 1)[-1]
    name = _str(obj, "display_name", "displayName", "name") or sub_id
    return Subscription(id=sub_id, name=name)


def subnet_from_dict(obj: Mapping[str, Any]) -> Subnet:
    return Subnet(
        id=_str(obj, "id"),
        name=_str(obj, "name"),
        address_prefixes=_prefixes(obj),
        nsg_id=_ref_id(obj, "network_security_group", "networkSecurityGroup"),
    )


def virtual_network_from_dict(obj: Mapping[str, Any]) -> VirtualNetwork:
    space = _get(obj, "address_space", "addressSpace") or {}
    prefixes = tuple(str(p) for p in _list(space, "address_prefixes", "addressPrefixes") if p)
    return VirtualNetwork(
        id=_str(obj, "id"),
        name=_str(obj, "name"),
        resource_group=_resource_group(obj),
        address_prefixes=prefixes,
        subnets=tuple(subnet_from_dict(s) for s in _list(obj, "subnets") if isinstance(s, Mapping)),
    )


def ip_configuration_from_dict(obj: Mapping[str, Any]) -> IpConfiguration:
    return IpConfiguration(
        id=_str(obj, "id"),
        name=_str(obj, "name"),
        private_ip=_str(obj, "private_ip_address", "privateIPAddress", "privateIpAddress"),
        subnet_id=_ref_id(obj, "subnet"),
        public_ip_id=_ref_id(obj, "public_ip_address", "publicIPAddress", "publicIpAddress"),
    )


def network_interface_from_dict(obj: Mapping[str, Any]) -> NetworkInterface:
    return NetworkInterface(
        id=_str(obj, "id"),
        name=_str(obj, "name"),
        resource_group=_resource_group(obj),
        ip_configurations=tuple(
            ip_configuration_from_dict(c)
            for c in _list(obj, "ip_configurations", "ipConfigurations")
            if isinstance(c, Mapping)
        ),
        nsg_id=_ref_id(obj, "network_security_group", "networkSecurityGroup"),
    )


def public_ip_from_dict(obj: Mapping[str, Any]) -> PublicIpAddress:
    return PublicIpAddress(
        id=_str(obj, "id"),
        name=_str(obj, "name"),
        resource_group=_resource_group(obj),
        ip_address=_str(obj, "ip_address", "ipAddress"),
        ip_configuration_id=_ref_id(obj, "ip_configuration", "ipConfiguration"),
        load_balancer_id=_ref_id(obj, "load_balancer", "loadBalancer"),
        application_gateway_id=_ref_id(obj, "application_gateway", "applicationGateway"),
    )


def network_security_group_from_dict(obj: Mapping[str, Any]) -> NetworkSecurityGroup:
    return NetworkSecurityGroup(
        id=_str(obj, "id"),
        name=_str(obj, "name"),
        resource_group=_resource_group(obj),
    )


def frontend_from_dict(obj: Mapping[str, Any]) -> FrontendIpConfiguration:
    return FrontendIpConfiguration(
        id=_str(obj, "id"),
        name=_str(obj, "name"),
        private_ip=_str(obj, "private_ip_address", "privateIPAddress", "privateIpAddress"),
        subnet_id=_ref_id(obj, "subnet"),
        public_ip_id=_ref_id(obj, "public_ip_address", "publicIPAddress", "publicIpAddress"),
    )


def _frontends(obj: Mapping[str, Any]) -> Tuple[FrontendIpConfiguration, ...]:
    return tuple(
        frontend_from_dict(f)
        for f in _list(obj, "frontend_ip_configurations", "frontendIPConfigurations", "frontendIpConfigurations")
        if isinstance(f, Mapping)
    )


def _backend_pool_names(obj: Mapping[str, Any]) -> Tuple[str, ...]:
    names = []
    for pool in _list(obj, "backend_address_pools", "backendAddressPools"):
        if isinstance(pool, Mapping) and pool.get("name"):
            names.append(str(pool["name"]))
    return tuple(names)


def load_balancer_from_dict(obj: Mapping[str, Any]) -> LoadBalancer:
    return LoadBalancer(
        id=_str(obj, "id"),
        name=_str(obj, "name"),
        resource_group=_resource_group(obj),
        frontend_ip_configurations=_frontends(obj),
        backend_pool_names=_backend_pool_names(obj),
    )


def application_gateway_from_dict(obj: Mapping[str, Any]) -> ApplicationGateway:
    gateway_subnets: List[str] = []
    for cfg in _list(obj, "gateway_ip_configurations", "gatewayIPConfigurations", "gatewayIpConfigurations"):
        if not isinstance(cfg, Mapping):
            continue
        subnet_id = _ref_id(cfg, "subnet")
        if subnet_id:
            gateway_subnets.append(subnet_id)
    return ApplicationGateway(
        id=_str(obj, "id"),
        name=_str(obj, "name"),
        resource_group=_resource_group(obj),
        frontend_ip_configurations=_frontends(obj),
        backend_pool_names=_backend_pool_names(obj),
        gateway_subnet_ids=tuple(gateway_subnets),
    )


def parse_many(parser: Any, payloads: Iterable[Mapping[str, Any]]) -> Tuple[Any, ...]:
    """Parse payloads, dropping entries without an id (they cannot be indexed)."""
    out = []
    for payload in payloads:
        if not isinstance(payload, Mapping):
            continue
        entity = parser(payload)
        if getattr(entity, "id", ""):
            out.append(entity)
    return tuple(out)
