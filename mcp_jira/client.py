"""Jira Cloud REST API v3 client."""

import json
import logging
from typing import Any

import requests  # type: ignore[import-untyped]
from pydantic import BaseModel

from .adf import AdfDocument
from .config import JiraSettings
from .fields import TicketFields

logger = logging.getLogger(__name__)

SEARCH_FIELDS = "summary,status,priority,issuetype,description"


class JiraResponse(BaseModel):
    """Status and decoded body of a Jira API response."""

    status_code: int
    reason: str = ""
    data: Any = None

    @property
    def ok(self) -> bool:
        """Whether the status code is 2xx."""
        return 200 <= self.status_code < 300

    @property
    def errors(self) -> dict[str, str]:
        """Per-field validation errors, empty if none were reported."""
        if isinstance(self.data, dict) and isinstance(self.data.get("errors"), dict):
            return self.data["errors"]
        return {}

    @property
    def error_messages(self) -> list[str]:
        """General error messages, empty if none were reported."""
        if isinstance(self.data, dict) and isinstance(self.data.get("errorMessages"), list):
            return [str(m) for m in self.data["errorMessages"]]
        return []

    def error_message(self) -> str:
        """Best available human-readable error description."""
        if self.error_messages:
            return ", ".join(self.error_messages)
        if self.errors:
            return json.dumps(self.errors)
        return f"Status: {self.status_code} {self.reason}".rstrip()

    @classmethod
    def from_response(cls, response: requests.Response) -> "JiraResponse":
        """Decode a requests response.

        Raises:
            requests.exceptions.JSONDecodeError: If a successful response has a malformed body
        """
        status_code = response.status_code
        try:
            data = response.json() if response.content else {}
        except ValueError:
            if 200 <= status_code < 300:
                raise
            data = {}
        return cls(status_code=status_code, reason=response.reason or "", data=data)


class JiraClient:
    """Thin Jira REST client sharing one authenticated session.

    Methods return a `JiraResponse` for any HTTP status; only transport level
    problems raise (`requests.RequestException`).
    """

    def __init__(self, settings: JiraSettings, session: requests.Session | None = None) -> None:
        """Initialize the client.

        Args:
            settings: Jira settings providing host and credentials
            session: Optional pre-built session (tests)
        """
        self.settings = settings
        self.session = session if session is not None else requests.Session()
        self.session.auth = (settings.username, settings.api_token)
        self.session.headers.update({"Accept": "application/json", "Content-Type": "application/json"})

    def url(self, path: str) -> str:
        """Absolute API URL for a path relative to /rest/api/3."""
        return f"{self.settings.api_url}/{path.lstrip('/')}"

    def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        body: Any = None,
    ) -> JiraResponse:
        url = self.url(path)
        response = self.session.request(method, url, params=params, json=body)
        result = JiraResponse.from_response(response)
        if not result.ok:
            logger.error(
                "%s %s failed: %s %s - %s", method, url, result.status_code, result.reason, json.dumps(result.data)
            )
        return result

    def get_myself(self) -> dict[str, Any]:
        """Return the authenticated user; raises on any failure."""
        result = self._request("GET", "myself")
        if not result.ok:
            raise requests.HTTPError(f"{result.status_code} {result.error_message()}")
        return result.data

    def create_issue(self, fields: TicketFields) -> JiraResponse:
        """POST /issue."""
        payload = fields.to_payload()
        logger.info("JIRA create URL: %s", self.url("issue"))
        logger.info("JIRA create payload: %s", json.dumps(payload))
        return self._request("POST", "issue", body=payload)

    def get_issue(self, issue_key: str) -> JiraResponse:
        """GET /issue/{key}."""
        return self._request("GET", f"issue/{issue_key}")

    def update_issue(self, issue_key: str, fields: TicketFields) -> JiraResponse:
        """PUT /issue/{key} with a partial fields payload."""
        payload = fields.to_payload()
        logger.info("JIRA update %s payload: %s", issue_key, json.dumps(payload))
        return self._request("PUT", f"issue/{issue_key}", body=payload)

    def link_issues(self, outward_issue: str, inward_issue: str, link_type: str) -> JiraResponse:
        """POST /issueLink."""
        payload = {
            "outwardIssue": {"key": outward_issue},
            "inwardIssue": {"key": inward_issue},
            "type": {"name": link_type},
        }
        logger.info("Creating %r link between %s and %s", link_type, outward_issue, inward_issue)
        return self._request("POST", "issueLink", body=payload)

    def search(self, jql: str, max_results: int) -> JiraResponse:
        """GET /search/jql."""
        logger.info("JIRA search JQL: %s", jql)
        return self._request(
            "GET", "search/jql", params={"jql": jql, "maxResults": max_results, "fields": SEARCH_FIELDS}
        )

    def add_comment(self, issue_key: str, body: AdfDocument) -> JiraResponse:
        """POST /issue/{key}/comment."""
        return self._request("POST", f"issue/{issue_key}/comment", body={"body": body.to_api()})

    def get_comments(self, issue_key: str, max_results: int) -> JiraResponse:
        """GET /issue/{key}/comment."""
        return self._request("GET", f"issue/{issue_key}/comment", params={"maxResults": max_results})

    def get_transitions(self, issue_key: str) -> JiraResponse:
        """GET /issue/{key}/transitions."""
        return self._request("GET", f"issue/{issue_key}/transitions")

    def transition_issue(self, issue_key: str, transition_id: str, comment: AdfDocument | None = None) -> JiraResponse:
        """POST /issue/{key}/transitions, optionally adding a comment."""
        payload: dict[str, Any] = {"transition": {"id": transition_id}}
        if comment is not None:
            payload["update"] = {"comment": [{"add": {"body": comment.to_api()}}]}
        return self._request("POST", f"issue/{issue_key}/transitions", body=payload)

    def assign_issue(self, issue_key: str, account_id: str | None) -> JiraResponse:
        """PUT /issue/{key}/assignee; None unassigns."""
        return self._request("PUT", f"issue/{issue_key}/assignee", body={"accountId": account_id})

    def add_watcher(self, issue_key: str, account_id: str) -> JiraResponse:
        """POST /issue/{key}/watchers; the body is the bare account ID string."""
        return self._request("POST", f"issue/{issue_key}/watchers", body=account_id)

    def remove_watcher(self, issue_key: str, account_id: str) -> JiraResponse:
        """DELETE /issue/{key}/watchers."""
        return self._request("DELETE", f"issue/{issue_key}/watchers", params={"accountId": account_id})
