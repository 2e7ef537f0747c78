from __future__ import annotations

from enum import Enum

from ..normalize.schema import PublicIpAddress
from .ids import parent_kind

ORPHANED_LABEL = "ORPHANED"
LB_OR_GATEWAY_LABEL = "LoadBalancer/AppGateway"


class PublicIpAttachment(str, Enum):
    ORPHANED = "orphaned"
    LOAD_BALANCER_OR_GATEWAY = "load_balancer_or_gateway"
    ATTACHED = "attached"


def _fronts_load_balancer_or_gateway(pip: PublicIpAddress) -> bool:
    if pip.load_balancer_id or pip.application_gateway_id:
        return True
    return parent_kind(pip.ip_configuration_id) in {"loadbalancers", "applicationgateways"}


def classify_public_ip(pip: PublicIpAddress) -> PublicIpAttachment:
    """
    Classify a public IP by its attachment refs alone. The result does not
    depend on which worker claimed it or when.
    """
    if not pip.ip_configuration_id and not pip.load_balancer_id and not pip.application_gateway_id:
        return PublicIpAttachment.ORPHANED
    if _fronts_load_balancer_or_gateway(pip):
        return PublicIpAttachment.LOAD_BALANCER_OR_GATEWAY
    return PublicIpAttachment.ATTACHED


def orphan_label(pip: PublicIpAddress) -> str:
    """AssociatedWith value for a public IP first reached by the orphan sweep."""
    attachment = classify_public_ip(pip)
    if attachment is PublicIpAttachment.ORPHANED:
        return ORPHANED_LABEL
    if attachment is PublicIpAttachment.LOAD_BALANCER_OR_GATEWAY:
        return LB_OR_GATEWAY_LABEL
    return ""
