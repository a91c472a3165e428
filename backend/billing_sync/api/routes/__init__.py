from fastapi import APIRouter

from billing_sync.api.routes import health, stripe_sync, vault_admin, webhooks

api_router = APIRouter()

api_router.include_router(health.router, tags=["health"])
api_router.include_router(webhooks.router, prefix="/webhooks", tags=["webhooks"])
api_router.include_router(vault_admin.router, prefix="/vault", tags=["vault"])
api_router.include_router(stripe_sync.router, prefix="/stripe", tags=["stripe"])
