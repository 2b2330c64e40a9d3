# /orchestrator/services/resource_service.py

import httpx
import logging
import tenacity
from typing import Optional, List, Dict, Any

from orchestrator.config.settings import settings
from orchestrator.utils.circuit_breaker import RedisCircuitBreaker
from orchestrator.utils.metrics import external_api_counter
from orchestrator.services.cache_service import cache_service

# Client for the application server that owns business profiles, services,
# availability and reservations. Reads degrade to empty results; writes made
# through execute_operation raise so the workflow engine can record the step.

logger = logging.getLogger(__name__)

# Workflow operation -> HTTP method
OPERATION_METHODS = {
    "create": "POST",
    "read": "GET",
    "update": "PUT",
    "delete": "DELETE",
}

BUSINESS_INFO_TTL = 300


class ResourceService:
    def __init__(self, base_url: str):
        self.base_url = base_url.rstrip("/")
        self.circuit_breaker = RedisCircuitBreaker(cache_service.redis, "app_server")
        self.http_client = httpx.AsyncClient(
            timeout=httpx.Timeout(10.0, read=20.0, connect=5.0)
        )

    @tenacity.retry(
        retry=tenacity.retry_if_exception_type((httpx.RequestError, httpx.TimeoutException)),
        stop=tenacity.stop_after_attempt(3),
        wait=tenacity.wait_exponential(multiplier=2, min=1, max=10),
        before_sleep=tenacity.before_sleep_log(logger, logging.WARNING)
    )
    async def resilient_api_call(self, func, *args, **kwargs):
        return await self.circuit_breaker.call(func, *args, **kwargs)

    async def _get_json(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        url = f"{self.base_url}{path}"
        params = {k: v for k, v in (params or {}).items() if v is not None}
        resp = await self.resilient_api_call(self.http_client.get, url, params=params)
        resp.raise_for_status()
        return resp.json()

    @staticmethod
    def _unwrap(payload: Any) -> Any:
        """The app server wraps most payloads as {"data": ...}."""
        if isinstance(payload, dict) and "data" in payload:
            return payload["data"]
        return payload

    # --- Business profile ---

    async def get_business_info(self, business_id: str) -> Optional[Dict[str, Any]]:
        async def _fetch():
            try:
                data = self._unwrap(await self._get_json(f"/business-info/{business_id}"))
                external_api_counter.labels(service="business_info", status="success").inc()
                return data if isinstance(data, dict) else None
            except Exception as e:
                external_api_counter.labels(service="business_info", status="error").inc()
                logger.error(f"get_business_info_error for {business_id}: {e}")
                return None

        return await cache_service.get_or_set(f"business_info:{business_id}", _fetch, ttl=BUSINESS_INFO_TTL)

    async def get_location_info(self, business_id: str, location_id: str) -> Optional[Dict[str, Any]]:
        async def _fetch():
            try:
                data = self._unwrap(await self._get_json(f"/business-info/{business_id}/locations/{location_id}"))
                external_api_counter.labels(service="location_info", status="success").inc()
                return data if isinstance(data, dict) else None
            except Exception as e:
                external_api_counter.labels(service="location_info", status="error").inc()
                logger.error(f"get_location_info_error for {business_id}/{location_id}: {e}")
                return None

        return await cache_service.get_or_set(
            f"location_info:{business_id}:{location_id}", _fetch, ttl=BUSINESS_INFO_TTL
        )

    # --- Public booking data ---

    async def get_public_services(self, business_id: str, location_id: str, page: int = 1, limit: int = 50) -> List[Dict[str, Any]]:
        try:
            payload = await self._get_json(
                f"/patient-booking/services/{business_id}-{location_id}",
                params={"page": page, "limit": limit}
            )
            data = self._unwrap(payload)
            if isinstance(data, dict):
                data = data.get("services", [])
            external_api_counter.labels(service="services", status="success").inc()
            return data if isinstance(data, list) else []
        except Exception as e:
            external_api_counter.labels(service="services", status="error").inc()
            logger.error(f"get_public_services_error for {business_id}-{location_id}: {e}")
            return []

    async def get_available_dates(
        self,
        business_id: str,
        location_id: str,
        from_date: str,
        to_date: str,
        service_id: Optional[str] = None
    ) -> List[Any]:
        try:
            payload = await self._get_json(
                f"/patient-booking/available-dates/{business_id}-{location_id}",
                params={"from": from_date, "to": to_date, "serviceId": service_id}
            )
            data = self._unwrap(payload)
            if isinstance(data, dict):
                data = data.get("availableDates", data.get("dates", []))
            external_api_counter.labels(service="available_dates", status="success").inc()
            return data if isinstance(data, list) else []
        except Exception as e:
            external_api_counter.labels(service="available_dates", status="error").inc()
            logger.error(f"get_available_dates_error for {business_id}-{location_id}: {e}")
            return []

    async def get_time_slots(
        self,
        business_id: str,
        location_id: str,
        date: str,
        service_id: Optional[str] = None
    ) -> List[Any]:
        try:
            payload = await self._get_json(
                f"/patient-booking/time-slots/{business_id}-{location_id}",
                params={"date": date, "serviceId": service_id}
            )
            data = self._unwrap(payload)
            if isinstance(data, dict):
                data = data.get("timeSlots", data.get("slots", []))
            external_api_counter.labels(service="time_slots", status="success").inc()
            return data if isinstance(data, list) else []
        except Exception as e:
            external_api_counter.labels(service="time_slots", status="error").inc()
            logger.error(f"get_time_slots_error for {business_id}-{location_id} on {date}: {e}")
            return []

    # --- Generic resource operations ---

    async def execute_operation(
        self,
        operation: str,
        resource_type: str,
        business_id: str,
        location_id: str,
        data: Optional[Dict[str, Any]] = None
    ) -> Any:
        """
        Runs a create/read/update/delete against `/resources/{business}-{location}/{type}`.
        Raises on transport or HTTP errors.
        """
        method = OPERATION_METHODS.get(operation)
        if not method:
            raise ValueError(f"Unsupported resource operation: {operation}")

        url = f"{self.base_url}/resources/{business_id}-{location_id}/{resource_type}"
        data = data or {}
        if method == "GET":
            resp = await self.resilient_api_call(self.http_client.get, url, params=data)
        elif method == "DELETE":
            resource_id = data.get("id")
            target = f"{url}/{resource_id}" if resource_id else url
            resp = await self.resilient_api_call(self.http_client.delete, target)
        else:
            resp = await self.resilient_api_call(self.http_client.request, method, url, json=data)

        try:
            resp.raise_for_status()
        except httpx.HTTPStatusError:
            external_api_counter.labels(service=f"{operation}_{resource_type}", status="error").inc()
            raise

        external_api_counter.labels(service=f"{operation}_{resource_type}", status="success").inc()
        logger.info(f"Executed {operation} on {resource_type} for {business_id}-{location_id}")
        if not resp.content:
            return {}
        return self._unwrap(resp.json())

    async def cleanup(self):
        await self.http_client.aclose()


# Globally accessible instance
resource_service = ResourceService(settings.app_server_url)
