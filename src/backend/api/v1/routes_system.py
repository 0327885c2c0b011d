from fastapi import APIRouter

from src.backend.config import settings
from src.backend.infra.db.inmemory import InMemoryAccountRepository, get_account_repository

router = APIRouter(prefix="", tags=["system"])


@router.get("/health")
async def health_check_v1() -> dict:
    """API v1 health endpoint."""
    return {"status": "ok", "version": "v1"}


@router.get("/system/config")
async def config_status_v1() -> dict:
    """Report which optional integrations are active.

    Only booleans are returned, never keys or URLs. ``durable_accounts`` is
    false while accounts live in process memory.
    """

    return {
        "primary_provider_configured": bool(settings.gemini_api_key),
        "secondary_provider_configured": bool(settings.openai_api_key),
        "durable_accounts": not isinstance(get_account_repository(), InMemoryAccountRepository),
        "insecure_jwt_secret": settings.uses_insecure_jwt_secret,
    }
