"""Jira MCP Server implementation."""

import json
import logging
import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

import requests  # type: ignore[import-untyped]
from dotenv import load_dotenv
from mcp.server.fastmcp import FastMCP
from mcp.types import ToolAnnotations
from pydantic import ValidationError
from starlette.requests import Request
from starlette.responses import JSONResponse

from .adf import build_paragraph_document, flatten_to_text
from .client import JiraClient, JiraResponse
from .config import JiraSettings
from .create import create_ticket_resilient
from .fields import build_create_fields, build_update_fields
from .linking import create_linked_test_ticket, describe_linked_result, should_create_test_ticket
from .models import (
    AddCommentParams,
    AddTestStepsParams,
    AssignTicketParams,
    Comment,
    CreateTicketParams,
    GetTestStepsParams,
    GetTicketParams,
    Issue,
    LinkTicketsParams,
    ListCommentsParams,
    ResponseFormat,
    SearchTicketsJqlParams,
    SearchTicketsParams,
    TestStep,
    ToolResult,
    Transition,
    TransitionTicketParams,
    UpdateTicketParams,
    WatcherParams,
)
from .zephyr import ZephyrClient, ZephyrConfigError, parse_test_steps

# Configure logging
logger = logging.getLogger(__name__)

# Constants
CHARACTER_LIMIT = 25000  # Maximum response size per MCP best practices
DESCRIPTION_TRUNCATE_LENGTH = 500  # Maximum description length in search listings


# Tool annotation constants
def _read_only_annotations(title: str) -> ToolAnnotations:
    """Create read-only tool annotations with title."""
    return ToolAnnotations(
        readOnlyHint=True,
        destructiveHint=False,
        idempotentHint=True,
        openWorldHint=True,
        title=title,
    )


def _write_annotations(title: str) -> ToolAnnotations:
    """Create write tool annotations with title."""
    return ToolAnnotations(
        readOnlyHint=False,
        destructiveHint=False,
        idempotentHint=False,
        openWorldHint=True,
        title=title,
    )


def _destructive_write_annotations(title: str) -> ToolAnnotations:
    """Create destructive write tool annotations with title."""
    return ToolAnnotations(
        readOnlyHint=False,
        destructiveHint=True,
        idempotentHint=False,
        openWorldHint=True,
        title=title,
    )


def _idempotent_write_annotations(title: str) -> ToolAnnotations:
    """Create idempotent write tool annotations with title."""
    return ToolAnnotations(
        readOnlyHint=False,
        destructiveHint=False,
        idempotentHint=True,
        openWorldHint=True,
        title=title,
    )


def _serialize_json(obj: dict[str, Any], *, use_compact: bool) -> str:
    """Serialize JSON object with appropriate formatting."""
    if use_compact:
        return json.dumps(obj, separators=(",", ":"), default=str)
    return json.dumps(obj, indent=2, default=str)


def _truncate_json_response(content: str, obj: dict[str, Any], limit: int) -> str:
    """Truncate JSON response preserving validity.

    Args:
        content: Original content string
        obj: Parsed JSON object
        limit: Character limit

    Returns:
        Truncated JSON string
    """
    original_size = len(content)
    use_compact = original_size > limit * 1.2

    meta = obj.setdefault("_meta", {})
    meta.update(
        {
            "truncated": True,
            "original_size": original_size,
            "limit": limit,
            "note": "Response truncated; reduce max_results or narrow the query.",
        }
    )

    # Drop trailing items until the whole document fits
    if "items" in obj and isinstance(obj["items"], list):
        json_str = _serialize_json(obj, use_compact=use_compact)
        while obj["items"] and len(json_str) > limit:
            obj["items"].pop()
            json_str = _serialize_json(obj, use_compact=use_compact)

    return _serialize_json(obj, use_compact=use_compact)


def _truncate_text_response(content: str, limit: int) -> str:
    """Truncate plaintext/markdown response with warning."""
    truncated = content[:limit]
    truncated += "\n\n⚠️ **Response Truncated**\n"
    truncated += f"Response size ({len(content)} chars) exceeds limit ({limit} chars).\n"
    truncated += "Reduce max_results or narrow the query to see less at once."
    return truncated


def truncate_response(content: str, limit: int = CHARACTER_LIMIT) -> str:
    """Truncate response with helpful message if over limit.

    For JSON responses, preserves validity by shrinking arrays and adding metadata.
    For markdown/text responses, appends a truncation warning.

    Args:
        content: The content to potentially truncate
        limit: Maximum character limit (default: CHARACTER_LIMIT)

    Returns:
        Original content if under limit, truncated content with warning if over
    """
    if len(content) <= limit:
        return content

    if content.lstrip().startswith("{"):
        try:
            obj = json.loads(content)
            return _truncate_json_response(content, obj, limit)
        except (json.JSONDecodeError, TypeError) as e:
            logger.debug("Failed to parse/truncate JSON response: %s", e, exc_info=True)

    return _truncate_text_response(content, limit)


def _name_or_unknown(ref: Any) -> str:
    return (getattr(ref, "name", None) or "Unknown") if ref is not None else "Unknown"


def _format_issues_markdown(issues: list[Issue], query_info: str, total: int | None) -> str:
    """Format search results as markdown.

    Args:
        issues: Issues to format
        query_info: Description of the query
        total: Total matches reported by Jira, if any

    Returns:
        Markdown-formatted string
    """
    lines = [f"# Ticket Search Results: {query_info}", ""]
    shown = len(issues)
    lines.append(f"Found {total if total is not None else shown} ticket(s) (showing {shown})")
    lines.append("")

    for issue in issues:
        fields = issue.issue_fields
        lines.append(f"## {issue.key} - {fields.summary}")
        lines.append(f"- **Type**: {_name_or_unknown(fields.issuetype)}")
        lines.append(f"- **Status**: {_name_or_unknown(fields.status)}")
        lines.append(f"- **Priority**: {_name_or_unknown(fields.priority)}")
        lines.append("")

    return "\n".join(lines)


def _format_issues_json(issues: list[Issue], total: int | None, *, include_description: bool) -> str:
    """Format search results as JSON."""
    items = []
    for issue in issues:
        fields = issue.issue_fields
        item: dict[str, Any] = {
            "key": issue.key,
            "summary": fields.summary,
            "status": _name_or_unknown(fields.status),
            "priority": _name_or_unknown(fields.priority),
            "issuetype": _name_or_unknown(fields.issuetype),
        }
        if include_description:
            description = flatten_to_text(fields.description).strip()
            if len(description) > DESCRIPTION_TRUNCATE_LENGTH:
                description = description[:DESCRIPTION_TRUNCATE_LENGTH] + "..."
            item["description"] = description or "No description"
        items.append(item)

    response: dict[str, Any] = {
        "items": items,
        "total": total if total is not None else len(items),
        "count": len(items),
        "_meta": {},  # Pre-allocated for truncation flags
    }
    return json.dumps(response, indent=2, default=str)


def _format_issue_detail_markdown(issue: Issue, acceptance_criteria_field: str) -> str:
    """Format a single issue as markdown, flattening its rich-text fields.

    Args:
        issue: Issue to format
        acceptance_criteria_field: Custom field holding acceptance criteria

    Returns:
        Markdown-formatted string
    """
    fields = issue.issue_fields
    lines = [f"# {issue.key} - {fields.summary}", ""]
    lines.append(f"**ID**: {issue.id or 'Unknown'}")
    lines.append(f"**Type**: {_name_or_unknown(fields.issuetype)}")
    lines.append(f"**Status**: {_name_or_unknown(fields.status)}")
    lines.append(f"**Priority**: {_name_or_unknown(fields.priority)}")
    assignee = fields.assignee.display_name if fields.assignee else None
    lines.append(f"**Assignee**: {assignee or 'Unassigned'}")
    if fields.labels:
        lines.append(f"**Labels**: {', '.join(fields.labels)}")
    if fields.created:
        lines.append(f"**Created**: {fields.created}")
    if fields.updated:
        lines.append(f"**Updated**: {fields.updated}")
    lines.append("")

    lines.extend(["## Description", "", flatten_to_text(fields.description).strip() or "No description", ""])

    acceptance_criteria = flatten_to_text(fields.custom(acceptance_criteria_field)).strip()
    if acceptance_criteria:
        lines.extend(["## Acceptance Criteria", "", acceptance_criteria, ""])

    return "\n".join(lines)


def _format_comments_markdown(issue_key: str, comments: list[Comment], total: int) -> str:
    """Format comments as markdown."""
    lines = [f"# Comments on {issue_key}", "", f"Found {total} comment(s) (showing {len(comments)})", ""]
    for comment in comments:
        author = (comment.author.display_name if comment.author else None) or "Unknown"
        lines.append(f"## {author} - {comment.created or 'Unknown date'}")
        lines.append(f"- **ID**: {comment.id}")
        lines.append("")
        lines.append(flatten_to_text(comment.body).strip())
        lines.append("")
    return "\n".join(lines)


def _format_comments_json(comments: list[Comment], total: int) -> str:
    """Format comments as JSON with flattened bodies."""
    items = [
        {
            "id": comment.id,
            "author": (comment.author.display_name if comment.author else None) or "Unknown",
            "created": comment.created,
            "body": flatten_to_text(comment.body).strip(),
        }
        for comment in comments
    ]
    return json.dumps({"items": items, "total": total, "count": len(items), "_meta": {}}, indent=2, default=str)


def _format_test_steps_markdown(issue_key: str, steps: list[TestStep]) -> str:
    """Format Zephyr test steps as markdown."""
    lines = [f"# Test Steps for {issue_key}", "", f"Found {len(steps)} test step(s)", ""]
    for index, step in enumerate(steps, 1):
        lines.append(f"## Step {step.order_id or index}")
        lines.append(f"- **ID**: {step.id}")
        lines.append(f"- **Step**: {step.step}")
        if step.data:
            lines.append(f"- **Data**: {step.data}")
        if step.result:
            lines.append(f"- **Expected Result**: {step.result}")
        lines.append("")
    return "\n".join(lines)


def _format_test_steps_json(steps: list[TestStep]) -> str:
    """Format Zephyr test steps as JSON."""
    items = [
        {"id": s.id, "orderId": s.order_id, "step": s.step, "data": s.data or "", "result": s.result or ""}
        for s in steps
    ]
    return json.dumps({"items": items, "count": len(items), "_meta": {}}, indent=2, default=str)


def _describe_created_ticket(params: CreateTicketParams, ticket_key: str) -> str:
    """Summarize a created ticket for the response text."""
    text = (
        f"Created ticket {ticket_key} with summary: {params.summary}, "
        f"description: {params.description or 'No description'}, issue type: {params.issue_type.value}"
    )
    if params.acceptance_criteria is not None:
        text += f", acceptance criteria: {params.acceptance_criteria}"
    if params.story_points is not None:
        text += f", story points: {params.story_points}"
    return text


def _describe_updated_fields(params: UpdateTicketParams) -> list[str]:
    """List the fields an update touched, with their new values where short."""
    updated: list[str] = []
    if params.summary is not None:
        updated.append("summary")
    if params.description is not None:
        updated.append("description")
    if params.acceptance_criteria is not None:
        updated.append("acceptance_criteria")
    for name in ("story_points", "sprint", "assignee", "due_date"):
        value = getattr(params, name)
        if value is not None:
            updated.append(f"{name}: {value}")
    if params.story_readiness is not None:
        updated.append(f"story_readiness: {params.story_readiness.value}")
    if params.priority is not None:
        updated.append(f"priority: {params.priority.value}")
    for name in ("labels", "components", "fix_versions"):
        values = getattr(params, name)
        if values is not None:
            updated.append(f"{name}: [{', '.join(values)}]")
    return updated


def _error_result(action: str, response: JiraResponse) -> ToolResult:
    """Failed ToolResult for a non-2xx Jira response."""
    return ToolResult(success=False, text=f"Error {action}: {response.error_message()}")


def _handle_api_error(e: Exception, context: str = "operation") -> str:
    """Format errors with actionable guidance for LLM agents.

    Args:
        e: The exception that occurred
        context: Description of what was being attempted

    Returns:
        Formatted error message with guidance
    """
    error_msg = str(e).lower()

    if "not found" in error_msg or "404" in error_msg:
        return f"Error: Resource not found during {context}. Please verify the ticket key exists and you have access."

    if "forbidden" in error_msg or "403" in error_msg:
        return f"Error: Permission denied for {context}. Your credentials lack access to this resource."

    if "unauthorized" in error_msg or "401" in error_msg:
        return f"Error: Authentication failed for {context}. Check JIRA_USERNAME and JIRA_API_TOKEN are valid."

    if "timeout" in error_msg or "timed out" in error_msg:
        return f"Error: Request timeout during {context}. The server may be slow - try again or reduce the scope."

    if "connection" in error_msg or "network" in error_msg:
        return f"Error: Network issue during {context}. Check JIRA_HOST is correct and the server is reachable."

    return f"Error during {context}: {type(e).__name__} - {e}"


class JiraMCPServer:
    """Jira MCP Server with proper client lifecycle management."""

    def __init__(self, host: str = "127.0.0.1", port: int = 8000) -> None:
        """Initialize the server.

        Args:
            host: Host to bind for HTTP transport (default: 127.0.0.1)
            port: Port to bind for HTTP transport (default: 8000)
        """
        self.settings: JiraSettings | None = None
        self.client: JiraClient | None = None
        self.zephyr: ZephyrClient | None = None
        self.mcp = FastMCP("jira_mcp", host=host, port=port, lifespan=self._create_lifespan())
        self._setup_tools()
        self._setup_resources()
        self._setup_prompts()

    def _create_lifespan(self) -> Any:
        """Create the lifespan context manager for the server."""

        @asynccontextmanager
        async def lifespan(_app: FastMCP) -> AsyncIterator[None]:
            """Initialize resources on startup and cleanup on shutdown."""
            await self.initialize()
            try:
                yield
            finally:
                if self.client is not None:
                    self.client.session.close()
                    self.client = None
                    logger.info("Jira client cleaned up")
                if self.zephyr is not None:
                    self.zephyr.session.close()
                    self.zephyr = None

        return lifespan

    def get_client(self) -> JiraClient:
        """Get the Jira client, ensuring it's initialized."""
        if not self.client:
            raise RuntimeError("Jira client not initialized")
        return self.client

    def get_settings(self) -> JiraSettings:
        """Get the settings, ensuring they're loaded."""
        if not self.settings:
            raise RuntimeError("Jira settings not loaded")
        return self.settings

    def get_zephyr_client(self) -> ZephyrClient:
        """Get the Zephyr client.

        Raises:
            ZephyrConfigError: If Zephyr credentials were not configured
        """
        if not self.zephyr:
            raise ZephyrConfigError
        return self.zephyr

    async def initialize(self) -> None:
        """Load configuration and connect to Jira on server startup."""
        # Load environment variables from .env files
        cwd_env = Path.cwd() / ".env"
        if cwd_env.exists():
            load_dotenv(cwd_env)
            logger.info("Loaded environment from %s", cwd_env)

        envrc_path = Path.cwd() / ".envrc"
        if envrc_path.exists() and not os.environ.get("JIRA_HOST"):
            logger.warning(
                "Found .envrc but environment variables not loaded. Consider using direnv or creating a .env file"
            )

        # Also support loading from parent directories (for when running from subdirs)
        load_dotenv()

        try:
            self.settings = JiraSettings.from_env()
            self.client = JiraClient(self.settings)
            logger.info("Jira client initialized successfully")

            # Test connection
            current_user = self.client.get_myself()
            logger.info("Connected as user: %s", current_user.get("displayName", "unknown"))
        except Exception:
            logger.exception("Failed to initialize Jira client")
            raise

        if self.settings.zephyr_configured:
            self.zephyr = ZephyrClient(self.settings)
            logger.info("Zephyr client initialized")

    def _resolve_issue_ids(self, ticket_key: str) -> tuple[str, str] | ToolResult:
        """Look up the internal issue ID and project ID Zephyr needs."""
        response = self.get_client().get_issue(ticket_key)
        if not response.ok:
            return ToolResult(
                success=False,
                text=f"Error getting internal ID for ticket {ticket_key}: {response.error_message()}",
            )
        issue = Issue(**response.data)
        if not issue.id:
            return ToolResult(
                success=False, text=f"Error getting internal ID for ticket {ticket_key}: No issue ID found in response"
            )
        project_id = issue.issue_fields.project.id if issue.issue_fields.project else None
        if not project_id:
            logger.error("Project ID not found for %s", ticket_key)
            return ToolResult(success=False, text=f"Error: Project ID not found for ticket {ticket_key}")
        logger.info("Found internal ID %s and project ID %s for %s", issue.id, project_id, ticket_key)
        return issue.id, project_id

    def _setup_tools(self) -> None:
        """Register all tools with the MCP server."""
        self._setup_ticket_tools()
        self._setup_search_tools()
        self._setup_collaboration_tools()
        self._setup_test_step_tools()

    def _setup_ticket_tools(self) -> None:  # noqa: PLR0915
        """Register ticket create/read/update/link tools."""

        @self.mcp.tool(annotations=_write_annotations("Create Ticket"))
        def jira_create_ticket(params: CreateTicketParams) -> ToolResult:
            """Create a Jira ticket, optionally with a linked Test ticket.

            Args:
                params (CreateTicketParams): Validated creation parameters containing:
                    - summary (str): Ticket summary (required)
                    - issue_type (str): Bug, Task, Story, Test or Epic (default: "Task")
                    - description (str | None): Plain text description
                    - acceptance_criteria (str | None): One criterion per line; "-"/"*" lines become bullets
                    - story_points (float | None): Story points, applied to Stories only
                    - create_test_ticket (bool | None): Override the automatic Test ticket setting
                    - parent_epic (str | None): Epic key (initiative key when creating an Epic)
                    - sprint (str | None): Sprint name
                    - story_readiness (str | None): "Yes" or "No"
                    - project_key (str | None): Project key (default: configured project)
                    - crisis (str | None): "Yes" or "No"

            Returns:
                ToolResult: success flag and text such as
                "Created ticket PROJ-10 with summary: ..., issue type: Story, story points: 5
                Created linked test ticket PROJ-11"

            Examples:
                - Use when: "Create a bug for the login crash" -> summary, issue_type="Bug"
                - Use when: "New 5 point story with these criteria" -> issue_type="Story", story_points=5
                - Don't use when: The ticket exists (use jira_update_ticket)

            Error Handling:
                - Custom field rejections (product/category) are retried automatically
                - A failed Test ticket or link is reported in the text; the main ticket still succeeds
            """
            client = self.get_client()
            settings = self.get_settings()

            fields = build_create_fields(params, settings)
            outcome = create_ticket_resilient(client, fields, settings)
            if not outcome.success:
                return ToolResult(success=False, text=f"Error creating ticket: {outcome.error_message}")

            ticket_key = outcome.key
            text = _describe_created_ticket(params, ticket_key or "(no key returned)")

            if ticket_key and should_create_test_ticket(params, settings, ticket_key):
                linked = create_linked_test_ticket(
                    client, settings, ticket_key, params.summary, params.project_key or settings.project_key
                )
                text += "\n" + describe_linked_result(linked)

            return ToolResult(success=True, text=text)

        @self.mcp.tool(annotations=_write_annotations("Link Tickets"))
        def jira_link_tickets(params: LinkTicketsParams) -> ToolResult:
            """Link two tickets (outward issue -> inward issue) with a link type name."""
            client = self.get_client()
            try:
                response = client.link_issues(params.outward_issue, params.inward_issue, params.link_type)
            except requests.exceptions.RequestException as e:
                return ToolResult(success=False, text=_handle_api_error(e, context="linking tickets"))
            if not response.ok:
                return _error_result("linking tickets", response)
            return ToolResult(
                success=True,
                text=(
                    f"Successfully linked {params.outward_issue} to {params.inward_issue} "
                    f'with link type "{params.link_type}"'
                ),
            )

        @self.mcp.tool(annotations=_read_only_annotations("Get Ticket Details"))
        def jira_get_ticket(params: GetTicketParams) -> ToolResult:
            """Get a ticket by key.

            Markdown output flattens the description and acceptance criteria to
            plain text; JSON output returns the raw fields as Jira sent them.

            Args:
                params (GetTicketParams): ticket_key (str), response_format ("markdown" or "json")

            Returns:
                ToolResult with the formatted ticket, truncated to 25,000 characters
            """
            client = self.get_client()
            try:
                response = client.get_issue(params.ticket_key)
                if not response.ok:
                    return _error_result("fetching ticket", response)
                if not isinstance(response.data, dict) or not response.data.get("fields"):
                    return ToolResult(success=False, text="Error: No ticket fields found in response")

                if params.response_format == ResponseFormat.JSON:
                    payload = {
                        "key": response.data.get("key", params.ticket_key),
                        "id": response.data.get("id"),
                        "fields": response.data["fields"],
                    }
                    result = json.dumps(payload, indent=2, default=str)
                else:
                    issue = Issue(**{"key": params.ticket_key, **response.data})
                    result = _format_issue_detail_markdown(issue, self.get_settings().acceptance_criteria_field)
                return ToolResult(success=True, text=truncate_response(result))
            except (requests.exceptions.RequestException, ValidationError) as e:
                context = f"fetching ticket {params.ticket_key}"
                return ToolResult(success=False, text=_handle_api_error(e, context=context))

        @self.mcp.tool(annotations=_idempotent_write_annotations("Update Ticket"))
        def jira_update_ticket(params: UpdateTicketParams) -> ToolResult:
            """Update an existing ticket's fields.

            Only provided fields are changed. Labels, components and fix versions
            replace the existing values. assignee="unassigned" removes the assignee.

            Args:
                params (UpdateTicketParams): ticket_key plus any of summary, description,
                    acceptance_criteria, story_points, sprint, story_readiness, assignee,
                    priority, labels, components, fix_versions, due_date

            Returns:
                ToolResult listing the updated fields
            """
            client = self.get_client()
            fields = build_update_fields(params, self.get_settings())
            if not fields:
                return ToolResult(success=False, text="Error: At least one field to update must be provided.")
            try:
                response = client.update_issue(params.ticket_key, fields)
            except requests.exceptions.RequestException as e:
                return ToolResult(success=False, text=_handle_api_error(e, context=f"updating {params.ticket_key}"))
            if not response.ok:
                return _error_result("updating ticket", response)
            updated = ", ".join(_describe_updated_fields(params))
            return ToolResult(success=True, text=f"Successfully updated ticket {params.ticket_key}: {updated}")

    def _setup_search_tools(self) -> None:
        """Register search tools."""

        def _search(
            jql: str, max_results: int, response_format: ResponseFormat, empty_text: str, *, jql_mode: bool
        ) -> ToolResult:
            client = self.get_client()
            try:
                response = client.search(jql, max_results)
                if not response.ok:
                    return _error_result("searching tickets", response)
                data = response.data if isinstance(response.data, dict) else {}
                issues = [Issue(**issue) for issue in data.get("issues") or []]
            except (requests.exceptions.RequestException, ValidationError) as e:
                return ToolResult(success=False, text=_handle_api_error(e, context="searching tickets"))

            if not issues:
                return ToolResult(success=True, text=empty_text)

            total = data.get("total")
            if response_format == ResponseFormat.JSON:
                result = _format_issues_json(issues, total, include_description=jql_mode)
            else:
                result = _format_issues_markdown(issues, jql, total)
            return ToolResult(success=True, text=truncate_response(result))

        @self.mcp.tool(annotations=_read_only_annotations("Search Tickets by Type"))
        def jira_search_tickets(params: SearchTicketsParams) -> ToolResult:
            """Search the configured project for tickets of one issue type.

            Args:
                params (SearchTicketsParams): issue_type, max_results (1-50, default 10),
                    additional_criteria (JQL AND-ed with the type filter), response_format

            Examples:
                - Use when: "Open bugs" -> issue_type="Bug", additional_criteria="status = Open"
                - Don't use when: You need arbitrary JQL (use jira_search_tickets_jql)
            """
            jql = f'project = "{self.get_settings().project_key}" AND issuetype = "{params.issue_type.value}"'
            if params.additional_criteria:
                jql += f" AND ({params.additional_criteria})"
            return _search(
                jql,
                params.max_results,
                params.response_format,
                f"No {params.issue_type.value} tickets found matching the criteria.",
                jql_mode=False,
            )

        @self.mcp.tool(annotations=_read_only_annotations("Search Tickets with JQL"))
        def jira_search_tickets_jql(params: SearchTicketsJqlParams) -> ToolResult:
            """Search tickets with a custom JQL query; JSON output includes flattened descriptions."""
            return _search(
                params.jql,
                params.max_results,
                params.response_format,
                f"No tickets found matching the JQL query: {params.jql}",
                jql_mode=True,
            )

    def _setup_collaboration_tools(self) -> None:  # noqa: PLR0915
        """Register comment, transition, assignee and watcher tools."""

        @self.mcp.tool(annotations=_write_annotations("Add Comment"))
        def jira_add_comment(params: AddCommentParams) -> ToolResult:
            """Add a plain text comment to a ticket."""
            client = self.get_client()
            try:
                response = client.add_comment(params.ticket_key, build_paragraph_document(params.comment))
            except requests.exceptions.RequestException as e:
                return ToolResult(success=False, text=_handle_api_error(e, context="adding comment"))
            if not response.ok:
                return _error_result("adding comment", response)
            return ToolResult(success=True, text=f"Successfully added comment to {params.ticket_key}")

        @self.mcp.tool(annotations=_read_only_annotations("List Comments"))
        def jira_list_comments(params: ListCommentsParams) -> ToolResult:
            """List comments on a ticket with bodies flattened to plain text."""
            client = self.get_client()
            try:
                response = client.get_comments(params.ticket_key, params.max_results)
                if not response.ok:
                    return _error_result("getting comments", response)
                data = response.data if isinstance(response.data, dict) else {}
                comments = [Comment(**c) for c in data.get("comments") or []]
            except (requests.exceptions.RequestException, ValidationError) as e:
                return ToolResult(success=False, text=_handle_api_error(e, context="listing comments"))

            if not comments:
                return ToolResult(success=True, text=f"No comments found on {params.ticket_key}")

            total = data.get("total") or len(comments)
            if params.response_format == ResponseFormat.JSON:
                result = _format_comments_json(comments, total)
            else:
                result = _format_comments_markdown(params.ticket_key, comments, total)
            return ToolResult(success=True, text=truncate_response(result))

        @self.mcp.tool(annotations=_write_annotations("Transition Ticket"))
        def jira_transition_ticket(params: TransitionTicketParams) -> ToolResult:
            """Move a ticket to another status, or list the available transitions.

            Args:
                params (TransitionTicketParams): Validated parameters containing:
                    - ticket_key (str): Ticket key (required)
                    - transition_name (str | None): Transition name, matched case-insensitively
                    - transition_id (str | None): Transition ID, takes precedence over the name
                    - list_transitions (bool): Only list the available transitions
                    - comment (str | None): Comment added with the transition

            Error Handling:
                - Returns the available transitions when the requested one does not exist
            """
            client = self.get_client()
            try:
                response = client.get_transitions(params.ticket_key)
                if not response.ok:
                    return _error_result("getting transitions", response)
                data = response.data if isinstance(response.data, dict) else {}
                transitions = [Transition(**t) for t in data.get("transitions") or []]
            except (requests.exceptions.RequestException, ValidationError) as e:
                return ToolResult(success=False, text=_handle_api_error(e, context="getting transitions"))

            if params.list_transitions:
                lines = [f"Available transitions for {params.ticket_key}:", ""]
                lines.extend(f"- **{t.name}** (ID: {t.id}) -> {t.target_name}" for t in transitions)
                return ToolResult(success=True, text="\n".join(lines))

            if params.transition_id:
                target = next((t for t in transitions if t.id == params.transition_id), None)
            elif params.transition_name:
                wanted = params.transition_name.lower()
                target = next((t for t in transitions if t.name.lower() == wanted), None)
            else:
                return ToolResult(
                    success=False,
                    text=(
                        "Error: Either transition_name or transition_id is required "
                        "(or use list_transitions to see available options)"
                    ),
                )

            if target is None:
                available = ", ".join(f'"{t.name}" (id: {t.id})' for t in transitions)
                return ToolResult(
                    success=False, text=f"Error: Transition not found. Available transitions: {available}"
                )

            comment = build_paragraph_document(params.comment) if params.comment else None
            try:
                result = client.transition_issue(params.ticket_key, target.id, comment)
            except requests.exceptions.RequestException as e:
                return ToolResult(success=False, text=_handle_api_error(e, context="transitioning ticket"))
            if not result.ok:
                return _error_result("transitioning ticket", result)

            text = f'Successfully transitioned {params.ticket_key} to "{target.target_name}"'
            if params.comment:
                text += " with comment"
            return ToolResult(success=True, text=text)

        @self.mcp.tool(annotations=_idempotent_write_annotations("Assign Ticket"))
        def jira_assign_ticket(params: AssignTicketParams) -> ToolResult:
            """Assign a ticket to an account ID, or unassign it when account_id is omitted."""
            client = self.get_client()
            try:
                response = client.assign_issue(params.ticket_key, params.account_id or None)
            except requests.exceptions.RequestException as e:
                return ToolResult(success=False, text=_handle_api_error(e, context="assigning ticket"))
            if not response.ok:
                return _error_result("assigning ticket", response)
            action = f"assigned to {params.account_id}" if params.account_id else "unassigned"
            return ToolResult(success=True, text=f"Successfully {action} ticket {params.ticket_key}")

        @self.mcp.tool(annotations=_idempotent_write_annotations("Add Watcher"))
        def jira_add_watcher(params: WatcherParams) -> ToolResult:
            """Add a watcher to a ticket."""
            client = self.get_client()
            try:
                response = client.add_watcher(params.ticket_key, params.account_id)
            except requests.exceptions.RequestException as e:
                return ToolResult(success=False, text=_handle_api_error(e, context="adding watcher"))
            if not response.ok:
                return _error_result("adding watcher", response)
            return ToolResult(
                success=True, text=f"Successfully added {params.account_id} as watcher to {params.ticket_key}"
            )

        @self.mcp.tool(annotations=_destructive_write_annotations("Remove Watcher"))
        def jira_remove_watcher(params: WatcherParams) -> ToolResult:
            """Remove a watcher from a ticket."""
            client = self.get_client()
            try:
                response = client.remove_watcher(params.ticket_key, params.account_id)
            except requests.exceptions.RequestException as e:
                return ToolResult(success=False, text=_handle_api_error(e, context="removing watcher"))
            if not response.ok:
                return _error_result("removing watcher", response)
            return ToolResult(
                success=True, text=f"Successfully removed {params.account_id} as watcher from {params.ticket_key}"
            )

    def _setup_test_step_tools(self) -> None:
        """Register Zephyr test step tools."""

        @self.mcp.tool(annotations=_read_only_annotations("Get Test Steps"))
        def jira_get_test_steps(params: GetTestStepsParams) -> ToolResult:
            """Get the Zephyr test steps of a Test ticket."""
            try:
                zephyr = self.get_zephyr_client()
                ids = self._resolve_issue_ids(params.ticket_key)
                if isinstance(ids, ToolResult):
                    return ids
                issue_id, project_id = ids
                response = zephyr.get_test_steps(issue_id, project_id)
            except ZephyrConfigError as e:
                return ToolResult(success=False, text=str(e))
            except (requests.exceptions.RequestException, ValidationError) as e:
                return ToolResult(success=False, text=_handle_api_error(e, context="getting test steps"))

            if not response.ok:
                return _error_result(f"getting test steps for ticket {params.ticket_key}", response)

            steps = parse_test_steps(response.data)
            if not steps:
                return ToolResult(success=True, text=f"No test steps found for ticket {params.ticket_key}.")

            if params.response_format == ResponseFormat.JSON:
                result = _format_test_steps_json(steps)
            else:
                result = _format_test_steps_markdown(params.ticket_key, steps)
            return ToolResult(success=True, text=truncate_response(result))

        @self.mcp.tool(annotations=_write_annotations("Add Test Steps"))
        def jira_add_test_steps(params: AddTestStepsParams) -> ToolResult:
            """Append Zephyr test steps to a Test ticket, one request per step.

            Steps are added in order. A failing step does not stop the remaining
            ones; the result lists the outcome of every step and is only
            successful when all of them were added.
            """
            try:
                zephyr = self.get_zephyr_client()
                ids = self._resolve_issue_ids(params.ticket_key)
            except ZephyrConfigError as e:
                return ToolResult(success=False, text=str(e))
            except (requests.exceptions.RequestException, ValidationError) as e:
                return ToolResult(success=False, text=_handle_api_error(e, context="adding test steps"))
            if isinstance(ids, ToolResult):
                return ids
            issue_id, project_id = ids

            results: list[str] = []
            all_successful = True
            for index, step in enumerate(params.steps, 1):
                logger.info("Adding test step %d/%d: %s", index, len(params.steps), step.step)
                try:
                    response = zephyr.add_test_step(issue_id, project_id, step.step, step.data, step.result)
                    error = None if response.ok else response.error_message()
                except requests.exceptions.RequestException as e:
                    logger.exception("Exception adding test step %d", index)
                    error = str(e)
                if error is None:
                    results.append(f"Step {index}: Added successfully")
                else:
                    results.append(f"Step {index}: Failed - {error}")
                    all_successful = False

            report = "\n".join(results)
            if all_successful:
                return ToolResult(
                    success=True,
                    text=(
                        f"Successfully added {len(params.steps)} test step(s) "
                        f"to ticket {params.ticket_key}:\n\n{report}"
                    ),
                )
            return ToolResult(
                success=False, text=f"Some test steps could not be added to ticket {params.ticket_key}:\n\n{report}"
            )

    def _setup_resources(self) -> None:
        """Register all resources with the MCP server."""

        @self.mcp.resource("jira://ticket/{ticket_key}")
        def get_ticket_resource(ticket_key: str) -> str:
            """Get a ticket as markdown with description and acceptance criteria as plain text."""
            try:
                response = self.get_client().get_issue(ticket_key)
                if not response.ok:
                    return f"Error fetching ticket {ticket_key}: {response.error_message()}"
                if not isinstance(response.data, dict) or not response.data.get("fields"):
                    return f"Error fetching ticket {ticket_key}: No ticket fields found in response"
                issue = Issue(**{"key": ticket_key, **response.data})
                return truncate_response(
                    _format_issue_detail_markdown(issue, self.get_settings().acceptance_criteria_field)
                )
            except (requests.exceptions.RequestException, ValueError, ValidationError) as e:
                return _handle_api_error(e, context=f"retrieving ticket {ticket_key}")

    def _setup_prompts(self) -> None:
        """Register all prompts with the MCP server."""

        @self.mcp.prompt()
        def refine_story(ticket_key: str) -> str:
            """Generate a prompt to refine a story's acceptance criteria and estimate."""
            return f"""Please refine the Jira story {ticket_key}.

Use the jira_get_ticket tool to read the story, including its description and acceptance criteria.

Then:
1. Rewrite the acceptance criteria as one testable statement per line, each starting with "- "
2. Suggest a story point estimate and explain it briefly
3. Point out open questions for the product owner

When the changes are approved, apply them with jira_update_ticket (acceptance_criteria, story_points)."""

        @self.mcp.prompt()
        def plan_test_coverage(ticket_key: str) -> str:
            """Generate a prompt to turn a Test ticket into Zephyr test steps."""
            return f"""Please plan test coverage for the Test ticket {ticket_key}.

Use jira_get_ticket to read the Test ticket; its summary starts with the key of the story it covers.
Read that story with jira_get_ticket as well, and check existing steps with jira_get_test_steps.

Draft test steps, each with:
1. The action to perform
2. The test data needed
3. The expected result

After the steps are approved, add them with jira_add_test_steps."""


# Create the server instance with host/port from environment
# This allows HTTP transport to bind to the configured address
_host = os.getenv("MCP_HOST", "127.0.0.1")
_port = int(os.getenv("MCP_PORT", "8000"))
server = JiraMCPServer(host=_host, port=_port)

# Export the MCP server instance
mcp = server.mcp


# Health check endpoint for HTTP transport
@mcp.custom_route("/health", methods=["GET"])
async def health_check(request: Request) -> JSONResponse:  # noqa: ARG001
    """Health check endpoint for HTTP transport.

    Args:
        request: The incoming HTTP request (required by FastMCP).

    Returns:
        JSONResponse with health status.
    """
    return JSONResponse({"status": "healthy", "transport": "http"})


def _configure_logging() -> None:
    """Configure logging from LOG_LEVEL environment variable.

    Reads LOG_LEVEL environment variable (default: INFO) and configures
    the root logger. Valid values: DEBUG, INFO, WARNING, ERROR, CRITICAL.
    """
    log_level_str = os.getenv("LOG_LEVEL", "INFO").upper()
    valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}

    if log_level_str not in valid_levels:
        invalid_level = log_level_str  # Store before resetting
        log_level_str = "INFO"
        logger.warning(
            "Invalid LOG_LEVEL '%s', defaulting to INFO. Valid values: %s",
            invalid_level,
            ", ".join(sorted(valid_levels)),
        )

    log_level = getattr(logging, log_level_str)
    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    # Add handler if none exists; StreamHandler writes to stderr, keeping stdout free for stdio transport
    if not root_logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s"))
        root_logger.addHandler(handler)


def main() -> None:
    """Main entry point for the server."""
    _configure_logging()
    mcp.run()
