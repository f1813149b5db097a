"""Zephyr Squad Cloud test step API."""

import hashlib
import json
import logging
import time
from typing import Any

import jwt  # PyJWT
import requests  # type: ignore[import-untyped]

from .client import JiraResponse
from .config import JiraSettings
from .models import TestStep

logger = logging.getLogger(__name__)

TEST_STEP_PATH = "/public/rest/api/1.0/teststep/{issue_id}"
JWT_EXPIRATION_SEC = 3600


class ZephyrConfigError(ValueError):
    """Raised when Zephyr credentials are not configured."""

    def __init__(self) -> None:
        """Initialize with guidance on the required variables."""
        super().__init__("Zephyr is not configured. Set ZAPI_ACCOUNT_ID, ZAPI_ACCESS_KEY and ZAPI_SECRET_KEY.")


def canonical_query(query_params: dict[str, str]) -> str:
    """Join query parameters sorted by name, as the query-string hash requires."""
    return "&".join(f"{key}={query_params[key]}" for key in sorted(query_params))


def generate_zephyr_jwt(
    method: str,
    api_path: str,
    query_params: dict[str, str],
    *,
    account_id: str,
    access_key: str,
    secret_key: str,
    expiration_sec: int = JWT_EXPIRATION_SEC,
    now: int | None = None,
) -> str:
    """Generate the per-request JWT for a Zephyr API call.

    The `qsh` claim is the SHA-256 of "METHOD&path&sorted-query", so a token
    is only valid for the exact request it was issued for.

    Args:
        method: HTTP method
        api_path: API path without the base URL
        query_params: Query parameters of the request
        account_id: Atlassian account ID (sub)
        access_key: Zephyr access key (iss)
        secret_key: Zephyr secret key used for HS256 signing
        expiration_sec: Token lifetime in seconds
        now: Issue time as a Unix timestamp (default: current time)

    Returns:
        Encoded JWT
    """
    canonical = f"{method.upper()}&{api_path}&{canonical_query(query_params)}"
    qsh = hashlib.sha256(canonical.encode("utf-8")).hexdigest()
    issued_at = int(time.time()) if now is None else now
    claims = {
        "sub": account_id,
        "iss": access_key,
        "qsh": qsh,
        "iat": issued_at,
        "exp": issued_at + expiration_sec,
    }
    return jwt.encode(claims, secret_key, algorithm="HS256")


def parse_test_steps(data: Any) -> list[TestStep]:
    """Extract test steps from a Zephyr response (bare list or wrapped)."""
    if isinstance(data, dict):
        data = data.get("testSteps", data.get("steps", []))
    if not isinstance(data, list):
        return []
    return [TestStep(**step) for step in data if isinstance(step, dict)]


class ZephyrClient:
    """Signed-request client for Zephyr Squad Cloud test steps."""

    def __init__(self, settings: JiraSettings, session: requests.Session | None = None) -> None:
        """Initialize the client.

        Raises:
            ZephyrConfigError: If Zephyr credentials are missing
        """
        if not settings.zephyr_configured:
            raise ZephyrConfigError
        self.settings = settings
        self.session = session if session is not None else requests.Session()

    def _request(self, method: str, issue_id: str, project_id: str, body: dict[str, Any] | None = None) -> JiraResponse:
        api_path = TEST_STEP_PATH.format(issue_id=issue_id)
        query_params = {"projectId": project_id}
        url = f"{self.settings.zapi_base_url.rstrip('/')}{api_path}?{canonical_query(query_params)}"
        token = generate_zephyr_jwt(
            method,
            api_path,
            query_params,
            account_id=self.settings.zapi_account_id or "",
            access_key=self.settings.zapi_access_key or "",
            secret_key=self.settings.zapi_secret_key or "",
        )
        headers = {
            "Content-Type": "application/json",
            "zapiAccessKey": self.settings.zapi_access_key or "",
            "Authorization": f"JWT {token}",
        }
        logger.info("Zephyr %s %s", method, url)
        if body is not None:
            logger.info("Zephyr payload: %s", json.dumps(body))

        response = self.session.request(method, url, headers=headers, json=body)
        result = JiraResponse.from_response(response)
        if not result.ok:
            logger.error("Zephyr %s %s failed: %s %s", method, url, result.status_code, json.dumps(result.data))
        return result

    def get_test_steps(self, issue_id: str, project_id: str) -> JiraResponse:
        """GET the test steps of a Test issue."""
        return self._request("GET", issue_id, project_id)

    def add_test_step(
        self, issue_id: str, project_id: str, step: str, data: str = "", result: str = ""
    ) -> JiraResponse:
        """POST a single test step; Zephyr appends it after the existing ones."""
        body = {"projectId": project_id, "step": step, "data": data, "result": result}
        return self._request("POST", issue_id, project_id, body=body)
