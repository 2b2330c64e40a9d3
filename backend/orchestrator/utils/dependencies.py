# /orchestrator/utils/dependencies.py

import secrets
import structlog
from fastapi import Request, HTTPException, status

from orchestrator.config.settings import settings
from orchestrator.utils.request_utils import get_remote_address

log = structlog.get_logger(__name__)


def _key_matches(request: Request) -> bool:
    provided_key = request.headers.get("X-API-KEY")
    return bool(provided_key and secrets.compare_digest(provided_key, settings.api_key))


async def verify_api_key(request: Request):
    """Guards the operator and webhook routes. Open when no API key is configured."""
    if not settings.api_key:
        return
    if not _key_matches(request):
        log.warning("Rejected request with invalid API key", client_ip=get_remote_address(request), path=request.url.path)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or missing API key")


async def verify_metrics_access(request: Request):
    if settings.api_key and not _key_matches(request):
        raise HTTPException(status_code=403, detail="Invalid or missing API key")
