"""Shared fixtures; isolates the app folder before lgchat is imported."""
import os
import tempfile

os.environ["LGCHAT_HOME"] = tempfile.mkdtemp(prefix="lgchat-tests-")
for _name in list(os.environ):
    if _name.startswith("LGCHAT_") and _name != "LGCHAT_HOME":
        del os.environ[_name]

import pytest  # noqa: E402

from lgchat.core.config import get_settings  # noqa: E402


@pytest.fixture(autouse=True)
def _fresh_settings():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def gemini_success_body():
    def _body(text: str) -> dict:
        return {"candidates": [{"content": {"parts": [{"text": text}]}}]}

    return _body
