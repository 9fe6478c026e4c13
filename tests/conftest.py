"""Shared fixtures: environment isolation, quiet logs and opt-in API tests.

Autouse fixtures keep every test independent of the developer's shell:
``GEMINI_*`` variables are cleared and ``.env`` files are never loaded.
Tests marked ``api`` hit the real service and only run with
``ENABLE_API_TESTS=1``.
"""

from __future__ import annotations

import logging
import os

import pytest

#: Cheapest model that supports function calling.
GEMINI_TEST_MODEL = "gemini-1.5-flash-latest"

_API_SKIP_REASON = "set ENABLE_API_TESTS=1 to run tests against the Gemini API"


def _has_marker(request: pytest.FixtureRequest, name: str) -> bool:
    return request.node.get_closest_marker(name) is not None


@pytest.fixture(autouse=True)
def block_dotenv(request: pytest.FixtureRequest, monkeypatch: pytest.MonkeyPatch) -> None:
    """Make ``dotenv.load_dotenv`` a no-op unless marked ``allow_dotenv``."""
    if not _has_marker(request, "allow_dotenv"):
        monkeypatch.setattr("dotenv.load_dotenv", lambda *_a, **_kw: False)


@pytest.fixture(autouse=True)
def isolate_gemini_env(request: pytest.FixtureRequest, monkeypatch: pytest.MonkeyPatch) -> None:
    """Clear ``GEMINI_*`` variables unless marked ``allow_env_pollution`` or ``api``."""
    if _has_marker(request, "allow_env_pollution") or _has_marker(request, "api"):
        return
    for key in [k for k in os.environ if k.startswith("GEMINI_")]:
        monkeypatch.delenv(key)


@pytest.fixture(scope="session", autouse=True)
def quiet_http_logs() -> None:
    for name in ("httpx", "httpcore"):
        logging.getLogger(name).setLevel(logging.WARNING)


def pytest_collection_modifyitems(items: list[pytest.Item]) -> None:
    if os.getenv("ENABLE_API_TESTS"):
        return
    skip = pytest.mark.skip(reason=_API_SKIP_REASON)
    for item in items:
        if item.get_closest_marker("api") is not None:
            item.add_marker(skip)


@pytest.fixture
def gemini_api_key() -> str:
    """``GEMINI_API_KEY``, or skip when it is not set."""
    key = os.getenv("GEMINI_API_KEY")
    if not key:
        pytest.skip("GEMINI_API_KEY not set")
    return key


@pytest.fixture
def gemini_test_model() -> str:
    return GEMINI_TEST_MODEL
