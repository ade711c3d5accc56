"""
Pytest configuration and fixtures.
"""

import pytest

from shared.config import get_settings


@pytest.fixture
def test_env_file(tmp_path):
    """Create a temporary .env file for testing."""
    env_file = tmp_path / ".env"
    env_content = """
API_BASE_URL=https://studio.example.com/api/ambient-visual/
API_TOKEN=test_token_1234567890
REDIS_URL=redis://localhost:6379
ENVIRONMENT=test
LOG_LEVEL=DEBUG
MAX_REFERENCE_IMAGES=6
"""
    env_file.write_text(env_content)
    return env_file


@pytest.fixture
def clean_env(monkeypatch):
    """Remove workflow settings from the environment and reset the settings cache."""
    for name in (
        "API_BASE_URL",
        "API_SESSION_COOKIE",
        "API_TOKEN",
        "REQUEST_TIMEOUT",
        "PROMPT_GENERATION_TIMEOUT",
        "REDIS_URL",
        "ENVIRONMENT",
        "LOG_LEVEL",
        "MAX_REFERENCE_IMAGES",
        "MAX_REFERENCE_SIZE_MB",
        "STEP4_SETTINGS_DEBOUNCE_SECONDS",
    ):
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    yield monkeypatch
    get_settings.cache_clear()
