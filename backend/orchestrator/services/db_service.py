# /orchestrator/services/db_service.py

import logging
from motor.motor_asyncio import AsyncIOMotorClient
from datetime import datetime, timezone
from typing import List, Optional, Dict, Any, Tuple

from orchestrator.config.settings import settings
from orchestrator.utils.circuit_breaker import RedisCircuitBreaker
from orchestrator.utils.metrics import database_operations_counter
from orchestrator.services.cache_service import cache_service

logger = logging.getLogger(__name__)

# Collections
BUSINESS_MEMORY = "business_memory"
USER_MEMORY = "user_memory"
SESSIONS = "sessions"
MESSAGES = "messages"
SYSTEM_INSTRUCTIONS = "system_instructions"
RAG_INSTRUCTIONS = "rag_instructions"

DEFAULT_QUERY_LIMIT = 100


class DatabaseService:
    """
    Key/value style access to MongoDB for memory records, sessions and
    instructions. Documents are addressed by a string key stored as `_id`;
    no business logic lives here.
    """

    def __init__(self, mongo_uri: str, db_name: str):
        try:
            self.client = AsyncIOMotorClient(
                mongo_uri,
                maxPoolSize=settings.max_pool_size,
                minPoolSize=settings.min_pool_size,
                tls=settings.mongo_ssl,
                serverSelectionTimeoutMS=5000,
                connectTimeoutMS=10000
            )
            self.db = self.client[db_name]
            self.circuit_breaker = RedisCircuitBreaker(cache_service.redis, "database")
            logger.info("MongoDB client initialized successfully.")
        except Exception as e:
            logger.error(f"Error initializing MongoDB client: {e}")
            raise

    # ==================== Helper Methods ====================

    def _now_utc(self) -> datetime:
        return datetime.now(timezone.utc)

    @staticmethod
    def _strip_id(document: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
        if document is None:
            return None
        document = dict(document)
        document.pop("_id", None)
        return document

    async def _safe_db_operation(
        self,
        operation,
        use_circuit_breaker: bool = True,
        default_return: Any = None
    ) -> Any:
        """
        Execute database operation with consistent error handling.

        Args:
            operation: Async callable to execute
            use_circuit_breaker: Whether to use circuit breaker
            default_return: Value to return on failure

        Returns:
            Operation result or default_return on failure
        """
        try:
            if use_circuit_breaker:
                return await self.circuit_breaker.call(operation)
            return await operation()
        except Exception as e:
            logger.exception(f"Database operation failed: {type(e).__name__}")
            database_operations_counter.labels(operation="db_error", status="failed").inc()
            return default_return

    # ==================== Index Management ====================

    async def create_indexes(self) -> None:
        """Create all necessary database indexes on startup."""
        indexes = [
            (USER_MEMORY, [("business_id", 1), ("user_id", 1)], {}),
            (SESSIONS, [("business_id", 1), ("user_id", 1), ("status", 1)], {}),
            (SESSIONS, [("updated_at", -1)], {}),
            (MESSAGES, [("session_id", 1), ("timestamp", -1)], {}),
            (SYSTEM_INSTRUCTIONS, [("business_type", 1), ("is_active", 1)], {}),
            (RAG_INSTRUCTIONS, [("business_type", 1), ("is_active", 1)], {}),
        ]

        for collection, keys, options in indexes:
            try:
                await self.db[collection].create_index(keys, **options)
                logger.debug(f"Created index on {collection}: {keys}")
            except Exception as e:
                logger.error(f"Failed to create index on {collection} {keys}: {e}")

        logger.info("Database indexes created successfully.")

    async def health_check(self) -> bool:
        try:
            await self.db.command("ping")
            return True
        except Exception as e:
            logger.warning(f"Database health check failed: {e}")
            return False

    # ==================== Key/Value Access ====================

    async def get_document(self, collection: str, key: str) -> Optional[Dict[str, Any]]:
        """Returns the document stored under `key` (without `_id`) or None."""
        document = await self._safe_db_operation(
            lambda: self.db[collection].find_one({"_id": key})
        )
        database_operations_counter.labels(operation=f"get_{collection}", status="hit" if document else "miss").inc()
        return self._strip_id(document)

    async def put_document(self, collection: str, key: str, record: Dict[str, Any]) -> bool:
        """Overwrites the document stored under `key`. Returns False on failure."""
        document = {**record, "_id": key}
        result = await self._safe_db_operation(
            lambda: self.db[collection].replace_one({"_id": key}, document, upsert=True)
        )
        success = result is not None
        database_operations_counter.labels(operation=f"put_{collection}", status="success" if success else "failed").inc()
        return success

    async def update_document(self, collection: str, key: str, updates: Dict[str, Any]) -> bool:
        """Sets the given fields on an existing document. `_id` can never be changed."""
        updates = {k: v for k, v in updates.items() if k != "_id"}
        if not updates:
            return False
        result = await self._safe_db_operation(
            lambda: self.db[collection].update_one({"_id": key}, {"$set": updates})
        )
        return bool(result and result.matched_count)

    async def insert_document(self, collection: str, document: Dict[str, Any]) -> bool:
        result = await self._safe_db_operation(
            lambda: self.db[collection].insert_one(dict(document))
        )
        return result is not None

    async def query_documents(
        self,
        collection: str,
        filters: Dict[str, Any],
        limit: int = DEFAULT_QUERY_LIMIT,
        sort: Optional[List[Tuple[str, int]]] = None
    ) -> List[Dict[str, Any]]:
        """Returns up to `limit` documents matching `filters`, or [] on failure."""
        async def _query():
            cursor = self.db[collection].find(filters)
            if sort:
                cursor = cursor.sort(sort)
            return await cursor.limit(limit).to_list(length=limit)

        documents = await self._safe_db_operation(_query, default_return=[])
        return [self._strip_id(doc) for doc in documents]


# Globally accessible instance
db_service = DatabaseService(settings.mongo_uri, settings.mongo_db_name)
