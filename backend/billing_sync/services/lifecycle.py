"""LifecycleSynchronizer — moves deal and case stage pointers on billing outcomes.

Two independent state machines:
- Subscription lifecycle: sales-pipeline deals tagged with a subscription ID
  move to the "won" or "lost" stage.
- Payment lifecycle: the mirrored customer's payment_state is updated and a
  tagged case moves to the finance pipeline's paid or collections stage.

Writes are plain overwrites of the stage pointer, so replaying the same status
leaves the same state. Neither lifecycle blocks the other.
"""

from dataclasses import dataclass
from datetime import UTC, datetime

import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from billing_sync.core.config import Settings, get_settings
from billing_sync.db.models.pipeline import CasePipelineLink, Deal, PipelineDef, PipelineStage
from billing_sync.db.models.stripe_mirror import StripeCustomer
from billing_sync.domain.events import stripe_ref
from billing_sync.domain.lifecycle import (
    PaymentOutcome,
    StageFlag,
    case_number,
    failed_payment_state,
    payment_amount,
    payment_outcome,
    subscription_stage_flag,
    succeeded_payment_state,
)

logger = structlog.get_logger(__name__)


@dataclass
class PaymentSyncResult:
    outcome: PaymentOutcome | None
    customer_updated: bool = False
    cases_moved: int = 0


class LifecycleSynchronizer:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession], settings: Settings | None = None):
        """Initialize with dependency injection.

        Args:
            session_factory: SQLAlchemy async session factory
            settings: Pipeline and stage codes (defaults to app settings)
        """
        self.session_factory = session_factory
        self.settings = settings or get_settings()

    # ── Subscription lifecycle ──────────────────────────────────────

    async def sync_subscription(self, subscription: dict) -> int:
        """Move deals linked to this subscription to the won/lost stage.

        Returns:
            Number of deals whose stage pointer was written
        """
        subscription_id = subscription.get("id")
        status = subscription.get("status")
        flag = subscription_stage_flag(status)
        if flag is None or not subscription_id:
            logger.debug("subscription_lifecycle_ignored", subscription_id=subscription_id, status=status)
            return 0

        async with self.session_factory() as session:
            stage = await self._find_stage(
                session,
                self.settings.sales_pipeline_code,
                is_won=flag == StageFlag.WON,
                is_lost=flag == StageFlag.LOST,
            )
            if stage is None:
                logger.warning(
                    "sales_stage_not_found",
                    pipeline=self.settings.sales_pipeline_code,
                    flag=flag.value,
                )
                return 0

            result = await session.execute(
                update(Deal)
                .where(Deal.properties["stripe_subscription_id"].as_string() == subscription_id)
                .values(stage_id=stage.id)
                .execution_options(synchronize_session=False)
            )
            await session.commit()

        moved = result.rowcount or 0
        logger.info(
            "subscription_lifecycle_handled",
            subscription_id=subscription_id,
            status=status,
            stage=flag.value,
            deals_moved=moved,
        )
        return moved

    # ── Payment lifecycle ───────────────────────────────────────────

    async def sync_payment(self, event_type: str, obj: dict, now: datetime | None = None) -> PaymentSyncResult:
        """Record a payment outcome on the customer and move the tagged case.

        Args:
            event_type: Stripe event type (payment_intent.* / invoice.payment_*)
            obj: The PaymentIntent or Invoice payload
            now: Current time (for deterministic testing)
        """
        outcome = payment_outcome(event_type)
        if outcome is None:
            return PaymentSyncResult(outcome=None)

        now = now or datetime.now(UTC)
        result = PaymentSyncResult(outcome=outcome)

        customer_id = stripe_ref(obj.get("customer"))
        if customer_id:
            result.customer_updated = await self._record_customer_payment(customer_id, outcome, obj, now)

        cnj = case_number(obj)
        if cnj:
            stage_code = (
                self.settings.finance_paid_stage_code
                if outcome == PaymentOutcome.SUCCEEDED
                else self.settings.finance_collections_stage_code
            )
            result.cases_moved = await self._move_case(cnj, stage_code)

        logger.info(
            "payment_lifecycle_handled",
            event_type=event_type,
            object_id=obj.get("id"),
            outcome=outcome.value,
            customer_updated=result.customer_updated,
            cases_moved=result.cases_moved,
        )
        return result

    async def _record_customer_payment(
        self, customer_id: str, outcome: PaymentOutcome, obj: dict, now: datetime
    ) -> bool:
        async with self.session_factory() as session:
            result = await session.execute(
                select(StripeCustomer).where(StripeCustomer.id == customer_id).with_for_update()
            )
            customer = result.scalar_one_or_none()
            if customer is None:
                logger.warning("payment_customer_not_mirrored", customer_id=customer_id)
                return False

            if outcome == PaymentOutcome.SUCCEEDED:
                customer.payment_state = succeeded_payment_state(customer.payment_state, payment_amount(obj), now)
            else:
                customer.payment_state = failed_payment_state(customer.payment_state, now)
            await session.commit()
        return True

    async def _move_case(self, cnj: str, stage_code: str) -> int:
        async with self.session_factory() as session:
            stage = await self._find_stage(session, self.settings.finance_pipeline_code, code=stage_code)
            if stage is None:
                logger.warning(
                    "finance_stage_not_found",
                    pipeline=self.settings.finance_pipeline_code,
                    stage=stage_code,
                )
                return 0

            result = await session.execute(
                update(CasePipelineLink)
                .where(
                    CasePipelineLink.numero_cnj == cnj,
                    CasePipelineLink.pipeline_id == stage.pipeline_id,
                )
                .values(stage_id=stage.id)
                .execution_options(synchronize_session=False)
            )
            await session.commit()
        return result.rowcount or 0

    # ── Lookups ─────────────────────────────────────────────────────

    @staticmethod
    async def _find_stage(
        session: AsyncSession,
        pipeline_code: str,
        *,
        code: str | None = None,
        is_won: bool = False,
        is_lost: bool = False,
    ) -> PipelineStage | None:
        query = (
            select(PipelineStage)
            .join(PipelineDef, PipelineStage.pipeline_id == PipelineDef.id)
            .where(PipelineDef.code == pipeline_code)
        )
        if code is not None:
            query = query.where(PipelineStage.code == code)
        if is_won:
            query = query.where(PipelineStage.is_won.is_(True))
        if is_lost:
            query = query.where(PipelineStage.is_lost.is_(True))

        result = await session.execute(query.order_by(PipelineStage.position).limit(1))
        return result.scalar_one_or_none()
