# /orchestrator/utils/rate_limiter.py

from slowapi import Limiter
from orchestrator.utils.request_utils import get_rate_limit_key
from orchestrator.config.settings import settings

# Single limiter instance shared by main.py (middleware and error handler)
# and the route modules (per-route limits).

limiter = Limiter(
    key_func=get_rate_limit_key,
    default_limits=[f"{settings.rate_limit_per_minute}/minute"],
    enabled=settings.environment != "test"
)
