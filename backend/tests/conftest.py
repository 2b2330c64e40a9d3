# backend/tests/conftest.py

import os
import pytest
from fastapi.testclient import TestClient
from dotenv import load_dotenv
from unittest.mock import AsyncMock

# Load environment variables FIRST, before any orchestrator imports, so the
# settings singleton is built from the test configuration.
load_dotenv(dotenv_path=os.path.join(os.path.dirname(os.path.dirname(__file__)), ".env.test"))

from orchestrator.main import app  # noqa: E402
from orchestrator.models.context import ProcessingContext, SourceType  # noqa: E402


@pytest.fixture
def make_context():
    """Builds a ProcessingContext with sensible defaults for stage tests."""
    def _make(**overrides):
        values = {
            "business_id": "biz-1",
            "location_id": "loc-1",
            "user_id": "user-1",
            "session_id": "session-1",
            "source": SourceType.WEBHOOK,
            "message": "Hello",
            "business_info": {"businessName": "Smile Dental", "businessType": "dental"},
        }
        values.update(overrides)
        return ProcessingContext(**values)
    return _make


@pytest.fixture(scope="function")
def test_client(mocker):
    """
    Provides a TestClient for API integration tests.
    Index creation is skipped so no database is needed at startup.
    """
    mocker.patch("orchestrator.utils.lifecycle.db_service.create_indexes", new_callable=AsyncMock)

    # The app's lifespan (startup/shutdown events) is managed by the TestClient
    with TestClient(app) as client:
        yield client
