from __future__ import annotations

from typing import Any, List

from azure.mgmt.network import NetworkManagementClient
from azure.mgmt.subscription import SubscriptionClient

from ..auth.providers import AuthContext
from ..normalize.schema import Subscription
from ..normalize.transform import subscription_from_dict
from ..util.errors import map_azure_error
from ..util.serialization import model_to_dict

# Remote calls are never retried; a failed listing fails its subscription.
NO_RETRY = {"retry_total": 0}


def make_network_client(ctx: AuthContext, subscription_id: str) -> Any:
    """
    Create a NetworkManagementClient bound to one subscription. Each worker
    builds its own client; clients are not shared across threads.
    """
    return NetworkManagementClient(ctx.credential, subscription_id, **NO_RETRY)


def make_subscription_client(ctx: AuthContext) -> Any:
    return SubscriptionClient(ctx.credential, **NO_RETRY)


def _is_enabled(payload: Any) -> bool:
    state = str((payload or {}).get("state") or "").lower()
    return state in ("", "enabled", "warned", "pastdue")


def list_subscriptions(ctx: AuthContext, *, include_disabled: bool = False) -> List[Subscription]:
    """
    Return the subscriptions visible to the credential, sorted by name then id.
    Disabled/deleted subscriptions are skipped unless include_disabled is set.
    """
    client = make_subscription_client(ctx)
    try:
        payloads = [model_to_dict(s) for s in client.subscriptions.list()]
    except Exception as e:
        mapped = map_azure_error(e, "Azure SDK error while listing subscriptions")
        if mapped:
            raise mapped from e
        raise
    subs = {}
    for payload in payloads:
        if not include_disabled and not _is_enabled(payload):
            continue
        sub = subscription_from_dict(payload)
        if sub.id:
            subs[sub.id.lower()] = sub
    return sorted(subs.values(), key=lambda s: (s.name.lower(), s.id.lower()))
