"""tests/conftest.py

Pytest configuration and shared fixtures for the Tamagotchat test suite.
"""

import json
from typing import Dict, List, Optional

import pytest

from tamagotchat import utils
from tamagotchat.llm import LLMError
from tamagotchat.store import reset_session_store


class FakeLLMClient:
    """Stands in for LLMClient: returns canned responses in order and records calls."""

    def __init__(self, responses: Optional[List[str]] = None, error: Optional[Exception] = None):
        self.responses = list(responses or [])
        self.error = error
        self.calls: List[Dict] = []

    def _next(self) -> str:
        if self.error is not None:
            raise self.error
        return self.responses.pop(0)

    async def invoke(self, prompt: str, model: Optional[str] = None, temperature: float = 0.7) -> str:
        self.calls.append({"prompt": prompt, "model": model, "temperature": temperature})
        return self._next()

    async def generate_structured_answer(self, user_query: str, conversation_history=None) -> str:
        self.calls.append({"query": user_query, "history": conversation_history or []})
        return self._next()

    async def check_health(self) -> bool:
        return self.error is None


@pytest.fixture(autouse=True)
def isolated_config(monkeypatch):
    """Fresh configuration and session store for every test."""
    monkeypatch.setenv("LLM_BASE_URL", "http://localhost:11434/v1")
    monkeypatch.setenv("INITIAL_POINTS", "100")
    monkeypatch.setenv("SESSION_TTL_DAYS", "7")
    monkeypatch.setenv("USE_TECH_FILTER", "true")
    monkeypatch.setenv("USE_INTERMEDIATE_CLASSIFIER", "true")
    monkeypatch.setenv("ADMIN_USERNAME", "admin")
    monkeypatch.setenv("ADMIN_PASSWORD", "1234")
    monkeypatch.setenv("LOG_LEVEL", "WARNING")
    utils.reset_config()
    reset_session_store()
    yield
    utils.reset_config()
    reset_session_store()


@pytest.fixture
def fake_llm():
    """Factory for FakeLLMClient instances."""
    def _make(responses: Optional[List[str]] = None, error: Optional[Exception] = None) -> FakeLLMClient:
        return FakeLLMClient(responses=responses, error=error)
    return _make


@pytest.fixture
def llm_down() -> LLMError:
    return LLMError("LLM generation failed: connection refused")


@pytest.fixture
def structured_answer() -> str:
    """A well-formed answer as the generation model should produce it."""
    return json.dumps({
        "content": "Define a Node class with left and right children, then insert recursively.",
        "confidence": 85,
        "redirections": [
            {
                "type": "documentation",
                "url": "https://docs.python.org/3/",
                "message": "Python reference"
            }
        ]
    })
