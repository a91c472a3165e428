"""VaultSecret model — environment-scoped credentials and dynamic config."""

from datetime import UTC, datetime

from sqlalchemy import Column, DateTime, Integer, String, Text, UniqueConstraint

from billing_sync.db.base import Base


class VaultSecret(Base):
    __tablename__ = "vault_secrets"
    __table_args__ = (UniqueConstraint("name", "environment", name="uq_secret_name_environment"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False, index=True)
    value = Column(Text, nullable=False)
    description = Column(Text, nullable=True)
    environment = Column(String(50), nullable=False, index=True)  # development | staging | production

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC))
    updated_at = Column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC), onupdate=lambda: datetime.now(UTC)
    )
