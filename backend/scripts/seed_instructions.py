#!/usr/bin/env python3
"""
Seeds the instruction store with the default behavioural instructions and
the default autonomous workflows.

Writes:
- system_instructions: the built-in operator and client instructions under
  their general fallback keys (general.{role}.{topic}.v1)
- rag_instructions: the generic fallback workflow and the reservation
  workflow for each business type given on the command line

Existing documents with the same key are replaced.

Usage:
    python scripts/seed_instructions.py [business_type ...]
"""

import asyncio
import copy
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path

from dotenv import load_dotenv

# Add parent directory to path to import orchestrator modules
sys.path.insert(0, str(Path(__file__).parent.parent))
load_dotenv()

from motor.motor_asyncio import AsyncIOMotorClient  # noqa: E402
from orchestrator.config import instructions as defaults  # noqa: E402
from orchestrator.config.settings import settings  # noqa: E402
from orchestrator.services.db_service import SYSTEM_INSTRUCTIONS, RAG_INSTRUCTIONS  # noqa: E402
from orchestrator.services.instruction_service import instruction_key  # noqa: E402
from orchestrator.workflows.definitions import default_workflow_instructions  # noqa: E402

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def system_instruction_documents():
    now = datetime.now(timezone.utc)
    for role, builtin in defaults.BUILTIN_INSTRUCTIONS.items():
        key = instruction_key(defaults.GENERAL_CATEGORY, role, defaults.DEFAULT_TOPICS[role])
        document = copy.deepcopy(builtin)
        document.update({"key": key, "created_at": now, "updated_at": now})
        yield key, document


async def seed_instructions(business_types):
    client = None
    try:
        logger.info("Connecting to MongoDB...")
        client = AsyncIOMotorClient(
            settings.mongo_uri,
            maxPoolSize=settings.max_pool_size,
            minPoolSize=settings.min_pool_size,
            tls=settings.mongo_ssl,
            serverSelectionTimeoutMS=5000,
            connectTimeoutMS=10000
        )
        db = client[settings.mongo_db_name]
        await client.admin.command('ping')
        logger.info(f"Connected to database: {db.name}")

        for key, document in system_instruction_documents():
            await db[SYSTEM_INSTRUCTIONS].replace_one({"_id": key}, {"_id": key, **document}, upsert=True)
            logger.info(f"Seeded system instruction {key}")

        now = datetime.now(timezone.utc)
        for workflow in default_workflow_instructions(business_types):
            instruction_id = workflow["instruction_id"]
            document = {"_id": instruction_id, **workflow, "created_at": now, "updated_at": now}
            await db[RAG_INSTRUCTIONS].replace_one({"_id": instruction_id}, document, upsert=True)
            logger.info(f"Seeded workflow instruction {instruction_id}")

        logger.info("Instruction store seeded.")

    except Exception as e:
        logger.error(f"Error seeding instructions: {e}", exc_info=True)
        sys.exit(1)
    finally:
        if client:
            client.close()
            logger.info("MongoDB connection closed")


if __name__ == "__main__":
    asyncio.run(seed_instructions(sys.argv[1:] or [defaults.GENERAL_CATEGORY]))
