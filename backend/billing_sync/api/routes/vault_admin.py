"""Vault admin API. Secret values never leave the process; reads return a masked preview."""

from datetime import UTC, datetime

import structlog
from fastapi import APIRouter, Depends, HTTPException

from billing_sync.api.deps import get_vault
from billing_sync.core.auth import require_api_key
from billing_sync.schemas.vault import (
    ClearCacheResponse,
    SecretCreate,
    SecretInfoResponse,
    SecretListResponse,
    SecretWriteResponse,
    VaultHealthResponse,
)
from billing_sync.services.vault import SecretStore, mask_secret

logger = structlog.get_logger(__name__)

router = APIRouter()


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


@router.get("/health", response_model=VaultHealthResponse)
async def vault_health(vault: SecretStore = Depends(get_vault)):
    return VaultHealthResponse(
        status="ok",
        environment=vault.environment,
        cache_valid=vault.is_cache_valid(),
        cache_age_seconds=vault.cache_age(),
        timestamp=_now_iso(),
    )


@router.get("/secrets", response_model=SecretListResponse, dependencies=[Depends(require_api_key)])
async def list_secrets(vault: SecretStore = Depends(get_vault)):
    """List secret names for the current environment (values are never returned)."""
    names = sorted(await vault.get_all_secrets())
    return SecretListResponse(count=len(names), secrets=names, environment=vault.environment)


@router.get("/secret/{name}", response_model=SecretInfoResponse, dependencies=[Depends(require_api_key)])
async def get_secret_info(name: str, vault: SecretStore = Depends(get_vault)):
    value = await vault.get_secret(name)
    if value is None:
        raise HTTPException(status_code=404, detail=f"Secret '{name}' not found")
    return SecretInfoResponse(name=name, exists=True, length=len(value), masked=mask_secret(value))


@router.post("/secret", response_model=SecretWriteResponse, dependencies=[Depends(require_api_key)])
async def set_secret(body: SecretCreate, vault: SecretStore = Depends(get_vault)):
    if not await vault.set_secret(body.name, body.value, body.description):
        raise HTTPException(status_code=500, detail="Failed to store secret")
    logger.info("vault_admin_secret_set", name=body.name, environment=vault.environment)
    return SecretWriteResponse(name=body.name, environment=vault.environment, created=True)


@router.delete("/secret/{name}", response_model=SecretWriteResponse, dependencies=[Depends(require_api_key)])
async def delete_secret(name: str, vault: SecretStore = Depends(get_vault)):
    if not await vault.delete_secret(name):
        raise HTTPException(status_code=500, detail="Failed to delete secret")
    logger.info("vault_admin_secret_deleted", name=name, environment=vault.environment)
    return SecretWriteResponse(name=name, environment=vault.environment, deleted=True)


@router.post("/clear-cache", response_model=ClearCacheResponse, dependencies=[Depends(require_api_key)])
async def clear_cache(vault: SecretStore = Depends(get_vault)):
    vault.clear_cache()
    logger.info("vault_admin_cache_cleared", environment=vault.environment)
    return ClearCacheResponse(cleared=True, timestamp=_now_iso())
