"""Idempotent seed data for the sales and finance pipelines."""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from billing_sync.db.base import get_session_factory
from billing_sync.db.models.pipeline import PipelineDef, PipelineStage

PIPELINES = [
    {
        "code": "sales",
        "name": "Vendas",
        "stages": [
            {"code": "lead", "name": "Lead", "position": 1},
            {"code": "proposal", "name": "Proposta", "position": 2},
            {"code": "won", "name": "Ganho", "position": 3, "is_won": True},
            {"code": "lost", "name": "Perdido", "position": 4, "is_lost": True},
        ],
    },
    {
        "code": "finance",
        "name": "Financeiro",
        "stages": [
            {"code": "pending", "name": "Pendente", "position": 1},
            {"code": "pago", "name": "Pago", "position": 2},
            {"code": "cobranca", "name": "Cobrança", "position": 3},
        ],
    },
]


async def seed_pipelines(session_factory: async_sessionmaker[AsyncSession] | None = None) -> None:
    """Insert default pipelines and stages if they don't already exist."""
    factory = session_factory or get_session_factory()

    async with factory() as session:
        for pipeline_data in PIPELINES:
            result = await session.execute(select(PipelineDef).where(PipelineDef.code == pipeline_data["code"]))
            pipeline = result.scalar_one_or_none()

            if pipeline is None:
                pipeline = PipelineDef(code=pipeline_data["code"], name=pipeline_data["name"])
                session.add(pipeline)
                await session.flush()

            for stage_data in pipeline_data["stages"]:
                result = await session.execute(
                    select(PipelineStage).where(
                        PipelineStage.pipeline_id == pipeline.id,
                        PipelineStage.code == stage_data["code"],
                    )
                )
                if result.scalar_one_or_none() is None:
                    session.add(PipelineStage(pipeline_id=pipeline.id, **stage_data))

        await session.commit()
