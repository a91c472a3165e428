"""Vault admin API schemas. No schema here ever carries a raw secret value outward."""

from pydantic import BaseModel, Field


class SecretCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    value: str = Field(min_length=1)
    description: str | None = None


class SecretListResponse(BaseModel):
    success: bool = True
    count: int
    secrets: list[str]
    environment: str


class SecretInfoResponse(BaseModel):
    success: bool = True
    name: str
    exists: bool
    length: int
    masked: str


class SecretWriteResponse(BaseModel):
    success: bool = True
    name: str
    environment: str
    created: bool | None = None
    deleted: bool | None = None


class ClearCacheResponse(BaseModel):
    success: bool = True
    cleared: bool
    timestamp: str


class VaultHealthResponse(BaseModel):
    status: str
    environment: str
    cache_valid: bool
    cache_age_seconds: float | None
    timestamp: str
