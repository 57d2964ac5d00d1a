import os

# Must be set before checkmate.core.config is imported.
os.environ["CACHE_ENABLED"] = "false"
os.environ["LLM_CACHE_ENABLED"] = "false"
os.environ.setdefault("GEMINI_API_KEY", "test-gemini-key")

import pytest

from checkmate.core.config import Config


@pytest.fixture
def settings():
    """Isolated settings: no collaborator credentials, short budgets."""
    return Config(
        GEMINI_API_KEY="test-gemini-key",
        OPENAI_API_KEY=None,
        TAVILY_API_KEY=None,
        FIRECRAWL_API_KEY=None,
        X_BEARER_TOKEN=None,
        CACHE_ENABLED=False,
        MAX_DURATION_SECONDS=10,
        EXTRACTION_TIMEOUT_SECONDS=5,
        MAX_AGENT_STEPS=3,
    )
