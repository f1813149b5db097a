"""Shared fixtures for Jira MCP tests."""

from typing import Any
from unittest.mock import Mock

import pytest

from mcp_jira.client import JiraResponse
from mcp_jira.config import JiraSettings


@pytest.fixture
def settings() -> JiraSettings:
    """Settings with product and category fields configured."""
    return JiraSettings(
        host="example.atlassian.net",
        username="bot@example.com",
        api_token="token",
        project_key="PROJ",
        product_field="customfield_11000",
        product_value="Widget",
        product_id="5001",
        category_field="customfield_12000",
        default_category_id="6001",
        default_category_value="Default",
        alternate_category_id="6002",
        alternate_category_value="Alternate",
    )


@pytest.fixture
def bare_settings() -> JiraSettings:
    """Settings without any optional custom fields."""
    return JiraSettings(host="https://example.atlassian.net", username="bot@example.com", api_token="token")


@pytest.fixture
def make_response():
    """Factory for JiraResponse values."""

    def _make(status_code: int = 200, data: Any = None, reason: str = "") -> JiraResponse:
        return JiraResponse(status_code=status_code, reason=reason, data={} if data is None else data)

    return _make


@pytest.fixture
def mock_client() -> Mock:
    """A Mock standing in for JiraClient."""
    return Mock()


@pytest.fixture
def decorator_capturer():
    """Capture functions registered through an MCP decorator factory.

    Returns a function taking the original decorator factory and returning
    (captured, capture) where `captured` maps function names to the
    undecorated functions.
    """

    def _capturer(_original: Any) -> tuple[dict[str, Any], Any]:
        captured: dict[str, Any] = {}

        def capture(*_args: Any, **_kwargs: Any) -> Any:
            def decorator(func: Any) -> Any:
                captured[func.__name__] = func
                return func

            return decorator

        return captured, capture

    return _capturer
