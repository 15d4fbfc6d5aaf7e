# backend/tests/conftest.py
"""
Pytest configuration for the Eventa backend.

Sets a test-safe environment BEFORE any app import: in-memory SQLite,
mock embeddings, the offline stub web provider, no OpenAI key (intent
extraction uses the regex path) and eager Celery tasks.
"""

import os
import sys

os.environ["DATABASE_URL"] = "sqlite+pysqlite:///:memory:"
os.environ["EMBEDDING_PROVIDER"] = "mock"
os.environ["EXTERNAL_PROVIDERS"] = "stub_web"
os.environ["CELERY_TASK_ALWAYS_EAGER"] = "true"
os.environ.pop("OPENAI_API_KEY", None)

# Add the backend directory to Python path so imports work
backend_dir = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, backend_dir)

from app.core.config import settings

settings.openai_api_key = None

from fastapi.testclient import TestClient
import pytest

from app.api.dependencies.search import reset_search_dependencies
from app.main import app
from app.services.search.config import reset_search_config


@pytest.fixture(autouse=True)
def _fresh_search_state():
    """Process-wide search singletons (breakers, rate limits, config) start clean per test."""
    reset_search_config()
    reset_search_dependencies()
    yield
    reset_search_dependencies()


@pytest.fixture
def client():
    """Test client; dependency overrides are cleared afterwards."""
    test_client = TestClient(app)
    yield test_client
    app.dependency_overrides.clear()
