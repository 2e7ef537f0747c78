from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any, Optional

from azure.identity import (
    AzureCliCredential,
    DefaultAzureCredential,
    EnvironmentCredential,
    ManagedIdentityCredential,
)

from ..util.errors import map_azure_error

MANAGEMENT_SCOPE = "https://management.azure.com/.default"
AUTH_METHODS = {"auto", "cli", "environment", "managed_identity"}


@dataclass(frozen=True)
class AuthContext:
    """
    Resolved credential used to build per-worker Azure SDK clients.
    azure-identity credentials are thread-safe and cache tokens, so a single
    credential is shared while every worker gets its own client.
    """

    method: str  # auto|cli|environment|managed_identity (requested)
    credential: Any
    tenant_id: Optional[str]


class AuthError(RuntimeError):
    pass


def _build_credential(method: str, tenant_id: Optional[str]) -> Any:
    if method == "cli":
        return AzureCliCredential(tenant_id=tenant_id) if tenant_id else AzureCliCredential()
    if method == "environment":
        return EnvironmentCredential()
    if method == "managed_identity":
        client_id = os.getenv("AZURE_CLIENT_ID")
        return ManagedIdentityCredential(client_id=client_id) if client_id else ManagedIdentityCredential()
    # auto: environment -> workload identity -> managed identity -> CLI ...
    return DefaultAzureCredential(exclude_interactive_browser_credential=True)


def validate_credential(ctx: AuthContext) -> None:
    """
    Request a management-plane token so auth problems surface before any
    subscription worker starts.
    """
    try:
        ctx.credential.get_token(MANAGEMENT_SCOPE)
    except Exception as e:
        mapped = map_azure_error(e, f"Azure credential ({ctx.method}) could not obtain a management token")
        if mapped:
            raise AuthError(str(mapped)) from e
        raise AuthError(f"Failed to validate Azure credential ({ctx.method}): {e}") from e


def resolve_auth(method: str, tenant_id: Optional[str] = None, *, validate: bool = True) -> AuthContext:
    """
    Resolve auth according to requested method.
    - auto: DefaultAzureCredential chain (no interactive browser)
    - cli: Azure CLI login (az login)
    - environment: AZURE_CLIENT_ID/AZURE_TENANT_ID/AZURE_CLIENT_SECRET (or certificate)
    - managed_identity: system or user-assigned (AZURE_CLIENT_ID) managed identity
    """
    method = (method or "auto").lower()
    if method not in AUTH_METHODS:
        raise AuthError(f"Unsupported auth method: {method}")
    try:
        credential = _build_credential(method, tenant_id)
    except Exception as e:
        mapped = map_azure_error(e, f"Azure SDK error while resolving {method} credential")
        if mapped:
            raise mapped from e
        raise AuthError(f"Failed to resolve {method} credential: {e}") from e
    ctx = AuthContext(method=method, credential=credential, tenant_id=tenant_id or os.getenv("AZURE_TENANT_ID"))
    if validate:
        validate_credential(ctx)
    return ctx
