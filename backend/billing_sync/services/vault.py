"""SecretStore — environment-scoped, time-cached credential vault.

Secrets live in the ``vault_secrets`` table, one row per (name, environment).
Reads go through a process-local cache that is rebuilt wholesale from the
environment's full secret set once the TTL expires, so a stale entry can never
outlive the TTL and never diverges from a concurrent bulk update for longer
than that. There is no cross-process invalidation: a rotated secret becomes
visible in each process after its own cache expires.
"""

import os
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime

import structlog
from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from billing_sync.core.exceptions import ConfigurationError
from billing_sync.db.models.secret import VaultSecret
from billing_sync.db.upsert import build_upsert

logger = structlog.get_logger(__name__)

DEFAULT_TTL_SECONDS = 5 * 60


@dataclass
class CachedSecret:
    name: str
    value: str
    description: str | None
    environment: str
    updated_at: datetime | None = None


class SecretStore:
    """Cached key/value store for credentials, scoped to one environment."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        environment: str,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize with dependency injection.

        Args:
            session_factory: SQLAlchemy async session factory
            environment: Deployment environment; fixed for the life of the instance
            ttl_seconds: Cache lifetime before the next read triggers a full refresh
            clock: Monotonic time source (injectable for deterministic tests)
        """
        self.session_factory = session_factory
        self.environment = environment
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._cache: dict[str, CachedSecret] = {}
        self._last_fetch: float | None = None

    # ── Cache state ─────────────────────────────────────────────────

    def is_cache_valid(self) -> bool:
        if self._last_fetch is None:
            return False
        return self._clock() - self._last_fetch < self.ttl_seconds

    def cache_age(self) -> float | None:
        """Seconds since the last successful refresh, or None if never refreshed."""
        if self._last_fetch is None:
            return None
        return self._clock() - self._last_fetch

    def clear_cache(self) -> None:
        """Drop every cached entry and force the next read to refresh."""
        self._cache.clear()
        self._last_fetch = None

    def invalidate(self) -> None:
        """Mark the cache expired without discarding entries.

        Entries stay in place until the next read, which refreshes. A failed
        refresh then drops them like any other expired cache.
        """
        self._last_fetch = None

    async def refresh(self, force: bool = False) -> None:
        """Reload the environment's full secret set into the cache.

        A no-op while the cache is still valid unless ``force`` is set. Store
        errors are logged; a still-valid cache keeps serving, an expired one
        is emptied so reads report "not found" instead of a stale value.
        """
        if not force and self.is_cache_valid():
            return

        try:
            async with self.session_factory() as session:
                result = await session.execute(
                    select(VaultSecret).where(VaultSecret.environment == self.environment)
                )
                rows = result.scalars().all()
        except SQLAlchemyError as e:
            logger.error("vault_refresh_failed", environment=self.environment, error=str(e))
            if not self.is_cache_valid():
                self._cache.clear()
            return

        self._cache = {
            row.name: CachedSecret(
                name=row.name,
                value=row.value,
                description=row.description,
                environment=row.environment,
                updated_at=row.updated_at,
            )
            for row in rows
        }
        self._last_fetch = self._clock()
        logger.debug("vault_cache_refreshed", environment=self.environment, count=len(self._cache))

    # ── Reads ───────────────────────────────────────────────────────

    async def get_secret(self, name: str) -> str | None:
        """Return the secret value, or None when it is absent or unreadable."""
        try:
            if self.is_cache_valid() and name in self._cache:
                return self._cache[name].value

            await self.refresh()

            secret = self._cache.get(name)
            return secret.value if secret else None
        except Exception as e:
            logger.error("vault_get_secret_failed", name=name, error=str(e))
            return None

    async def get_all_secrets(self) -> dict[str, str]:
        """Refresh if needed, then return every cached name -> value."""
        try:
            await self.refresh()
            return {name: secret.value for name, secret in self._cache.items()}
        except Exception as e:
            logger.error("vault_get_all_secrets_failed", error=str(e))
            return {}

    async def get_secret_or_env(self, name: str, env_name: str | None = None) -> str | None:
        """Vault first, then the process environment.

        The environment fallback is the bootstrap path used before the vault
        has been seeded.
        """
        secret = await self.get_secret(name)
        if secret:
            return secret
        return os.environ.get(env_name or name.upper()) or None

    # ── Writes ──────────────────────────────────────────────────────

    async def set_secret(self, name: str, value: str, description: str | None = None) -> bool:
        """Create or replace a secret in this environment.

        Returns False if the write did not take effect; the cache is only
        touched after the row is committed.
        """
        now = datetime.now(UTC)
        try:
            async with self.session_factory() as session:
                stmt = build_upsert(
                    session,
                    VaultSecret,
                    values={
                        "name": name,
                        "value": value,
                        "description": description,
                        "environment": self.environment,
                        "created_at": now,
                        "updated_at": now,
                    },
                    conflict_columns=["name", "environment"],
                    update_columns=["value", "description", "updated_at"],
                )
                await session.execute(stmt)
                await session.commit()
        except (SQLAlchemyError, ConfigurationError) as e:
            logger.error("vault_set_secret_failed", name=name, environment=self.environment, error=str(e))
            return False

        self._cache[name] = CachedSecret(
            name=name,
            value=value,
            description=description,
            environment=self.environment,
            updated_at=now,
        )
        logger.info("vault_secret_stored", name=name, environment=self.environment)
        return True

    async def delete_secret(self, name: str) -> bool:
        """Delete a secret in this environment and evict it from the cache."""
        try:
            async with self.session_factory() as session:
                await session.execute(
                    delete(VaultSecret).where(
                        VaultSecret.name == name,
                        VaultSecret.environment == self.environment,
                    )
                )
                await session.commit()
        except SQLAlchemyError as e:
            logger.error("vault_delete_secret_failed", name=name, environment=self.environment, error=str(e))
            return False

        self._cache.pop(name, None)
        logger.info("vault_secret_deleted", name=name, environment=self.environment)
        return True


def mask_secret(value: str, visible: int = 3) -> str:
    """Show the first ``visible`` characters and replace the rest with '*'."""
    return value[:visible] + "*" * max(0, len(value) - visible)
