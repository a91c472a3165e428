"""Business pipeline models touched by the lifecycle synchronizer.

Only stage pointers (``stage_id``) are ever written from this service; every
other column is owned by the CRM layer.
"""

from datetime import UTC, datetime

from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, Integer, String, UniqueConstraint

from billing_sync.db.base import Base


class PipelineDef(Base):
    __tablename__ = "pipeline_defs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    code = Column(String(100), unique=True, nullable=False, index=True)  # sales, finance
    name = Column(String(255), nullable=False)


class PipelineStage(Base):
    __tablename__ = "pipeline_stages"
    __table_args__ = (UniqueConstraint("pipeline_id", "code", name="uq_pipeline_stage_code"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    pipeline_id = Column(Integer, ForeignKey("pipeline_defs.id"), nullable=False, index=True)
    code = Column(String(100), nullable=False)
    name = Column(String(255), nullable=False)
    position = Column(Integer, nullable=False, default=0)
    is_won = Column(Boolean, nullable=False, default=False)
    is_lost = Column(Boolean, nullable=False, default=False)


class Deal(Base):
    __tablename__ = "deals"

    id = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(String(255), nullable=False)
    pipeline_id = Column(Integer, ForeignKey("pipeline_defs.id"), nullable=False, index=True)
    stage_id = Column(Integer, ForeignKey("pipeline_stages.id"), nullable=True)
    properties = Column(JSON, nullable=False, default=dict)  # {"stripe_subscription_id": "sub_..."}

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC))
    updated_at = Column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC), onupdate=lambda: datetime.now(UTC)
    )


class CasePipelineLink(Base):
    __tablename__ = "case_pipeline_links"

    id = Column(Integer, primary_key=True, autoincrement=True)
    numero_cnj = Column(String(50), nullable=False, index=True)  # Brazilian court case number
    pipeline_id = Column(Integer, ForeignKey("pipeline_defs.id"), nullable=False, index=True)
    stage_id = Column(Integer, ForeignKey("pipeline_stages.id"), nullable=True)

    updated_at = Column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC), onupdate=lambda: datetime.now(UTC)
    )


class Contact(Base):
    __tablename__ = "contacts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=True)
    email = Column(String(255), nullable=True)
    phone = Column(String(50), nullable=True)
    stripe_customer_id = Column(String(255), unique=True, nullable=True, index=True)
