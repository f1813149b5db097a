"""Process-wide configuration for the Jira MCP server."""

import logging
import os

from pydantic import BaseModel, ConfigDict

logger = logging.getLogger(__name__)

DEFAULT_PROJECT_KEY = "SCRUM"
DEFAULT_ZAPI_BASE_URL = "https://prod-api.zephyr4jiracloud.com/connect"


class JiraConfigError(ValueError):
    """Raised when required Jira configuration is missing."""

    def __init__(self, missing: list[str]) -> None:
        """Initialize with the names of the missing environment variables."""
        self.missing = missing
        super().__init__(f"Missing Jira configuration: {', '.join(missing)}")


def _env(name: str) -> str | None:
    """Read an environment variable, treating empty strings as unset."""
    value = os.getenv(name)
    return value or None


class JiraSettings(BaseModel):
    """Immutable Jira and Zephyr settings.

    Built once at startup and passed explicitly to the payload builder, the
    create protocol and the clients. Custom field IDs and option IDs differ
    per Jira deployment, hence everything here is overridable.
    """

    model_config = ConfigDict(frozen=True)

    host: str
    username: str
    api_token: str
    project_key: str = DEFAULT_PROJECT_KEY

    acceptance_criteria_field: str = "customfield_10429"
    story_points_field: str = "customfield_10040"
    epic_link_field: str = "customfield_10014"
    sprint_field: str = "customfield_10020"

    story_readiness_field: str = "customfield_10596"
    story_readiness_yes_id: str = "18256"
    story_readiness_no_id: str = "18257"

    product_field: str | None = None
    product_value: str | None = None
    product_id: str | None = None

    category_field: str | None = None
    use_alternate_category: bool = False
    default_category_id: str | None = None
    default_category_value: str | None = None
    alternate_category_id: str | None = None
    alternate_category_value: str | None = None

    crisis_field: str = "customfield_14238"
    crisis_yes_id: str = "23123"
    crisis_no_id: str = "23124"

    auto_create_test_tickets: bool = True

    zapi_base_url: str = DEFAULT_ZAPI_BASE_URL
    zapi_account_id: str | None = None
    zapi_access_key: str | None = None
    zapi_secret_key: str | None = None

    @property
    def base_url(self) -> str:
        """Root URL of the Jira instance, with scheme."""
        host = self.host.rstrip("/")
        if host.startswith(("http://", "https://")):
            return host
        return f"https://{host}"

    @property
    def api_url(self) -> str:
        """Jira REST API v3 root."""
        return f"{self.base_url}/rest/api/3"

    def option_self_link(self, option_id: str) -> str:
        """Build the `self` link of a custom field option."""
        return f"{self.api_url}/customFieldOption/{option_id}"

    @property
    def category_option(self) -> tuple[str | None, str | None]:
        """Active category option as (id, value), alternate or default."""
        if self.use_alternate_category:
            return self.alternate_category_id, self.alternate_category_value
        return self.default_category_id, self.default_category_value

    @property
    def zephyr_configured(self) -> bool:
        """Whether all Zephyr credentials are present."""
        return bool(self.zapi_account_id and self.zapi_access_key and self.zapi_secret_key)

    @classmethod
    def from_env(cls) -> "JiraSettings":
        """Create settings from environment variables.

        Returns:
            JiraSettings populated from the environment

        Raises:
            JiraConfigError: If JIRA_HOST, JIRA_USERNAME or JIRA_API_TOKEN is missing
        """
        required = {name: _env(name) for name in ("JIRA_HOST", "JIRA_USERNAME", "JIRA_API_TOKEN")}
        missing = [name for name, value in required.items() if value is None]
        if missing:
            raise JiraConfigError(missing)

        # Only pass variables that are set so model defaults apply otherwise
        optional = {
            "project_key": _env("JIRA_PROJECT_KEY"),
            "acceptance_criteria_field": _env("JIRA_ACCEPTANCE_CRITERIA_FIELD"),
            "story_points_field": _env("JIRA_STORY_POINTS_FIELD"),
            "epic_link_field": _env("JIRA_EPIC_LINK_FIELD"),
            "sprint_field": _env("JIRA_SPRINT_FIELD"),
            "story_readiness_field": _env("JIRA_STORY_READINESS_FIELD"),
            "story_readiness_yes_id": _env("JIRA_STORY_READINESS_YES_ID"),
            "story_readiness_no_id": _env("JIRA_STORY_READINESS_NO_ID"),
            "product_field": _env("JIRA_PRODUCT_FIELD"),
            "product_value": _env("JIRA_PRODUCT_VALUE"),
            "product_id": _env("JIRA_PRODUCT_ID"),
            "category_field": _env("JIRA_CATEGORY_FIELD"),
            "default_category_id": _env("JIRA_DEFAULT_CATEGORY_ID"),
            "default_category_value": _env("JIRA_DEFAULT_CATEGORY_VALUE"),
            "alternate_category_id": _env("JIRA_ALTERNATE_CATEGORY_ID"),
            "alternate_category_value": _env("JIRA_ALTERNATE_CATEGORY_VALUE"),
            "crisis_field": _env("JIRA_CRISIS_FIELD"),
            "crisis_yes_id": _env("JIRA_CRISIS_YES_ID"),
            "crisis_no_id": _env("JIRA_CRISIS_NO_ID"),
            "zapi_base_url": _env("ZAPI_BASE_URL"),
            "zapi_account_id": _env("ZAPI_ACCOUNT_ID"),
            "zapi_access_key": _env("ZAPI_ACCESS_KEY"),
            "zapi_secret_key": _env("ZAPI_SECRET_KEY"),
        }

        settings = cls(
            host=required["JIRA_HOST"],
            username=required["JIRA_USERNAME"],
            api_token=required["JIRA_API_TOKEN"],
            use_alternate_category=os.getenv("USE_ALTERNATE_CATEGORY", "false").lower() == "true",
            auto_create_test_tickets=os.getenv("AUTO_CREATE_TEST_TICKETS", "true").lower() != "false",
            **{key: value for key, value in optional.items() if value is not None},
        )

        logger.info("Jira host: %s, default project: %s", settings.base_url, settings.project_key)
        if not settings.product_field:
            logger.debug("JIRA_PRODUCT_FIELD not set; product field will not be sent")
        if not settings.zephyr_configured:
            logger.info("Zephyr credentials not configured; test step tools will be unavailable")
        return settings
