"""Tests for environment configuration."""

import os
from unittest.mock import patch

import pytest

from mcp_jira.config import DEFAULT_ZAPI_BASE_URL, JiraConfigError, JiraSettings

REQUIRED_ENV = {
    "JIRA_HOST": "example.atlassian.net",
    "JIRA_USERNAME": "bot@example.com",
    "JIRA_API_TOKEN": "token",
}


def test_from_env_defaults():
    """Unset optional variables fall back to the documented defaults."""
    with patch.dict(os.environ, REQUIRED_ENV, clear=True):
        settings = JiraSettings.from_env()

    assert settings.project_key == "SCRUM"
    assert settings.acceptance_criteria_field == "customfield_10429"
    assert settings.story_points_field == "customfield_10040"
    assert settings.epic_link_field == "customfield_10014"
    assert settings.crisis_field == "customfield_14238"
    assert settings.product_field is None
    assert settings.category_field is None
    assert settings.use_alternate_category is False
    assert settings.auto_create_test_tickets is True
    assert settings.zapi_base_url == DEFAULT_ZAPI_BASE_URL
    assert not settings.zephyr_configured


def test_from_env_missing_required():
    """Missing credentials are reported together."""
    with patch.dict(os.environ, {"JIRA_HOST": "example.atlassian.net", "JIRA_USERNAME": ""}, clear=True):
        with pytest.raises(JiraConfigError) as exc_info:
            JiraSettings.from_env()

    assert exc_info.value.missing == ["JIRA_USERNAME", "JIRA_API_TOKEN"]
    assert "JIRA_API_TOKEN" in str(exc_info.value)


def test_from_env_overrides():
    """Optional variables override defaults and flags parse leniently."""
    env = {
        **REQUIRED_ENV,
        "JIRA_PROJECT_KEY": "PROJ",
        "JIRA_PRODUCT_FIELD": "customfield_11000",
        "JIRA_PRODUCT_VALUE": "Widget",
        "JIRA_PRODUCT_ID": "5001",
        "JIRA_CATEGORY_FIELD": "customfield_12000",
        "USE_ALTERNATE_CATEGORY": "TRUE",
        "JIRA_ALTERNATE_CATEGORY_ID": "6002",
        "JIRA_ALTERNATE_CATEGORY_VALUE": "Alternate",
        "AUTO_CREATE_TEST_TICKETS": "false",
        "ZAPI_ACCOUNT_ID": "acc",
        "ZAPI_ACCESS_KEY": "access",
        "ZAPI_SECRET_KEY": "secret",
    }
    with patch.dict(os.environ, env, clear=True):
        settings = JiraSettings.from_env()

    assert settings.project_key == "PROJ"
    assert settings.product_id == "5001"
    assert settings.use_alternate_category is True
    assert settings.category_option == ("6002", "Alternate")
    assert settings.auto_create_test_tickets is False
    assert settings.zephyr_configured


def test_urls(settings):
    """A bare host gets an https scheme."""
    assert settings.base_url == "https://example.atlassian.net"
    assert settings.api_url == "https://example.atlassian.net/rest/api/3"
    assert settings.option_self_link("42") == "https://example.atlassian.net/rest/api/3/customFieldOption/42"


def test_urls_keep_scheme():
    """An explicit scheme and trailing slash are handled."""
    settings = JiraSettings(host="http://jira.local/", username="u", api_token="t")
    assert settings.api_url == "http://jira.local/rest/api/3"


def test_category_option_default(settings):
    """The default category is active unless the alternate one is selected."""
    assert settings.category_option == ("6001", "Default")
    alternate = settings.model_copy(update={"use_alternate_category": True})
    assert alternate.category_option == ("6002", "Alternate")
