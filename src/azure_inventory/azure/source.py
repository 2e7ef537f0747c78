from __future__ import annotations

from typing import Any, Callable, Mapping, Optional, Tuple

from ..auth.providers import AuthContext
from ..normalize.schema import (
    ApplicationGateway,
    LoadBalancer,
    NetworkInterface,
    NetworkSecurityGroup,
    PublicIpAddress,
    Subscription,
    VirtualNetwork,
)
from ..normalize.transform import (
    application_gateway_from_dict,
    load_balancer_from_dict,
    network_interface_from_dict,
    network_security_group_from_dict,
    parse_many,
    public_ip_from_dict,
    virtual_network_from_dict,
)
from ..util.errors import map_azure_error
from ..util.serialization import model_to_dict
from .clients import make_network_client


class AzureNetworkSource:
    """
    One worker's session against one subscription. The underlying
    NetworkManagementClient is created here and used by this worker only.
    """

    def __init__(self, ctx: AuthContext, subscription_id: str, *, client: Optional[Any] = None) -> None:
        self.subscription_id = subscription_id
        self._client = client if client is not None else make_network_client(ctx, subscription_id)

    def _list(
        self,
        what: str,
        pager: Callable[[], Any],
        parser: Callable[[Mapping[str, Any]], Any],
    ) -> Tuple[Any, ...]:
        try:
            payloads = [model_to_dict(item) for item in pager()]
        except Exception as e:
            mapped = map_azure_error(e, f"Azure SDK error while listing {what} in subscription {self.subscription_id}")
            if mapped:
                raise mapped from e
            raise
        return parse_many(parser, payloads)

    def list_virtual_networks(self) -> Tuple[VirtualNetwork, ...]:
        return self._list("virtual networks", self._client.virtual_networks.list_all, virtual_network_from_dict)

    def list_network_interfaces(self) -> Tuple[NetworkInterface, ...]:
        return self._list("network interfaces", self._client.network_interfaces.list_all, network_interface_from_dict)

    def list_public_ip_addresses(self) -> Tuple[PublicIpAddress, ...]:
        return self._list("public IP addresses", self._client.public_ip_addresses.list_all, public_ip_from_dict)

    def list_network_security_groups(self) -> Tuple[NetworkSecurityGroup, ...]:
        return self._list(
            "network security groups",
            self._client.network_security_groups.list_all,
            network_security_group_from_dict,
        )

    def list_load_balancers(self) -> Tuple[LoadBalancer, ...]:
        return self._list("load balancers", self._client.load_balancers.list_all, load_balancer_from_dict)

    def list_application_gateways(self) -> Tuple[ApplicationGateway, ...]:
        return self._list(
            "application gateways",
            self._client.application_gateways.list_all,
            application_gateway_from_dict,
        )


def azure_source_factory(ctx: AuthContext) -> Callable[[Subscription], AzureNetworkSource]:
    def _factory(subscription: Subscription) -> AzureNetworkSource:
        return AzureNetworkSource(ctx, subscription.id)

    return _factory
