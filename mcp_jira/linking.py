"""Companion Test tickets for estimated Stories."""

import logging

import requests  # type: ignore[import-untyped]

from .client import JiraClient
from .config import JiraSettings
from .create import create_ticket_resilient
from .fields import build_test_ticket_fields
from .models import CreateTicketParams, IssueType, LinkedTicketResult

logger = logging.getLogger(__name__)

TEST_LINK_TYPE = "Test Case Linking"


def should_create_test_ticket(params: CreateTicketParams, settings: JiraSettings, primary_key: str | None) -> bool:
    """Whether a created ticket gets a linked Test ticket.

    Only Stories created with story points qualify; the caller's flag wins
    over the server default.
    """
    enabled = params.create_test_ticket if params.create_test_ticket is not None else settings.auto_create_test_tickets
    return (
        enabled
        and params.issue_type == IssueType.STORY
        and params.story_points is not None
        and bool(primary_key)
    )


def create_linked_test_ticket(
    client: JiraClient,
    settings: JiraSettings,
    primary_key: str,
    summary: str,
    project_key: str,
) -> LinkedTicketResult:
    """Create a Test ticket for a Story and link the two.

    Failures are recorded as notes on the result and never raised; the Story
    itself has already been created at this point.

    Args:
        client: Jira client
        settings: Settings for the create protocol
        primary_key: Key of the created Story
        summary: Summary of the Story
        project_key: Project the Story was created in

    Returns:
        LinkedTicketResult describing what was created and linked
    """
    result = LinkedTicketResult(primary_key=primary_key)

    outcome = create_ticket_resilient(client, build_test_ticket_fields(primary_key, summary, project_key), settings)
    if not outcome.success or not outcome.key:
        result.partial_failure_notes.append(f"Failed to create test ticket: {outcome.error_message}")
        return result

    result.test_key = outcome.key
    try:
        link = client.link_issues(primary_key, outcome.key, TEST_LINK_TYPE)
        link_error = None if link.ok else link.error_message()
    except requests.exceptions.RequestException as e:
        logger.exception("Exception linking %s to %s", primary_key, outcome.key)
        link_error = str(e)

    if link_error is None:
        result.link_established = True
    else:
        result.partial_failure_notes.append(f"Created test ticket {outcome.key} but failed to link it: {link_error}")
    return result


def describe_linked_result(result: LinkedTicketResult) -> str:
    """One line summarizing the companion ticket, for appending to a response."""
    if result.link_established:
        return f"Created linked test ticket {result.test_key}"
    return "\n".join(result.partial_failure_notes)
