"""Pydantic models for Jira tool parameters, API entities and results."""

from datetime import date
from enum import Enum
from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, StringConstraints, field_validator


class StrictBaseModel(BaseModel):
    """Base model with strict validation that forbids extra fields.

    This ensures that typos or incorrect field names in request parameters
    are caught early with clear validation errors rather than being silently ignored.
    String fields are automatically stripped of leading/trailing whitespace.
    """

    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)


class ResponseFormat(str, Enum):
    """Output format for tool responses.

    Attributes:
        MARKDOWN: Human-readable markdown format
        JSON: Machine-readable JSON format with full metadata
    """

    MARKDOWN = "markdown"
    JSON = "json"


def _normalize_format(v: str) -> str:
    """Normalize response format to lowercase."""
    if isinstance(v, str):
        return v.lower()
    return v


ResponseFormatInput = Annotated[ResponseFormat, BeforeValidator(_normalize_format)]


class IssueType(str, Enum):
    """Issue types the tools can create and search."""

    BUG = "Bug"
    TASK = "Task"
    STORY = "Story"
    TEST = "Test"
    EPIC = "Epic"


# Issue types that carry the product and category custom fields
STANDARD_ISSUE_TYPES = frozenset({IssueType.BUG, IssueType.TASK, IssueType.STORY})


class YesNo(str, Enum):
    """Yes/No select list value."""

    YES = "Yes"
    NO = "No"


class Priority(str, Enum):
    """Jira priority names."""

    HIGHEST = "Highest"
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"
    LOWEST = "Lowest"


TicketKey = Annotated[str, Field(min_length=1, max_length=255, description="Ticket key (e.g., PROJ-123)")]

# Rich-text input is passed to the document builders as written
VerbatimText = Annotated[str, StringConstraints(strip_whitespace=False)]


class CreateTicketParams(StrictBaseModel):
    """Create ticket request parameters."""

    summary: str = Field(min_length=1, max_length=255, description="Ticket summary")
    issue_type: IssueType = Field(default=IssueType.TASK, description="Issue type")
    description: VerbatimText | None = Field(None, description="Plain text description")
    acceptance_criteria: VerbatimText | None = Field(
        None, description="Acceptance criteria, one per line; lines starting with - or * become bullets"
    )
    story_points: int | float | None = Field(None, ge=0, description="Story points (Story only)")
    create_test_ticket: bool | None = Field(
        None, description="Create a linked Test ticket for a Story with points (default: server setting)"
    )
    parent_epic: str | None = Field(None, description="Parent epic key (or initiative key when creating an Epic)")
    sprint: str | None = Field(None, description="Sprint name")
    story_readiness: YesNo | None = Field(None, description="Story readiness")
    project_key: str | None = Field(None, description="Project key (default: server setting)")
    crisis: YesNo | None = Field(None, description="Crisis flag")


class LinkTicketsParams(StrictBaseModel):
    """Link tickets request parameters."""

    outward_issue: TicketKey
    inward_issue: TicketKey
    link_type: str = Field(default="Test Case Linking", min_length=1, description="Issue link type name")


class GetTicketParams(StrictBaseModel):
    """Get ticket request parameters."""

    ticket_key: TicketKey
    response_format: ResponseFormatInput = Field(
        default=ResponseFormat.MARKDOWN, description="Output format: \"markdown\" (default) or \"json\""
    )


class SearchTicketsParams(StrictBaseModel):
    """Search tickets by issue type."""

    issue_type: IssueType = Field(description="Issue type to search for")
    max_results: int = Field(default=10, ge=1, le=50, description="Maximum results (1-50)")
    additional_criteria: str | None = Field(None, description="Additional JQL criteria, AND-ed with the type filter")
    response_format: ResponseFormatInput = Field(
        default=ResponseFormat.MARKDOWN, description="Output format: \"markdown\" (default) or \"json\""
    )


class SearchTicketsJqlParams(StrictBaseModel):
    """Search tickets with a raw JQL query."""

    jql: str = Field(min_length=1, description="JQL query")
    max_results: int = Field(default=10, ge=1, le=50, description="Maximum results (1-50)")
    response_format: ResponseFormatInput = Field(
        default=ResponseFormat.MARKDOWN, description="Output format: \"markdown\" (default) or \"json\""
    )


class UpdateTicketParams(StrictBaseModel):
    """Update ticket request parameters. Only provided fields are changed."""

    ticket_key: TicketKey
    summary: str | None = Field(None, min_length=1, max_length=255, description="New summary")
    description: VerbatimText | None = Field(None, description="New plain text description")
    acceptance_criteria: VerbatimText | None = Field(None, description="New acceptance criteria")
    story_points: int | float | None = Field(None, ge=0, description="Story points")
    sprint: str | None = Field(None, description="Sprint name")
    story_readiness: YesNo | None = Field(None, description="Story readiness")
    assignee: str | None = Field(None, description="Account ID or 'unassigned' to remove the assignee")
    priority: Priority | None = Field(None, description="Priority name")
    labels: list[str] | None = Field(None, description="Replaces existing labels")
    components: list[str] | None = Field(None, description="Component names")
    fix_versions: list[str] | None = Field(None, description="Fix version names")
    due_date: date | None = Field(None, description="Due date (YYYY-MM-DD)")


class AddCommentParams(StrictBaseModel):
    """Add comment request parameters."""

    ticket_key: TicketKey
    comment: str = Field(min_length=1, description="Comment text")


class ListCommentsParams(StrictBaseModel):
    """List comments request parameters."""

    ticket_key: TicketKey
    max_results: int = Field(default=20, ge=1, le=100, description="Maximum comments (1-100)")
    response_format: ResponseFormatInput = Field(
        default=ResponseFormat.MARKDOWN, description="Output format: \"markdown\" (default) or \"json\""
    )


class TransitionTicketParams(StrictBaseModel):
    """Transition ticket request parameters."""

    ticket_key: TicketKey
    transition_name: str | None = Field(None, description="Transition name (e.g., 'Done', 'In Progress')")
    transition_id: str | None = Field(None, description="Transition ID (use if name is ambiguous)")
    list_transitions: bool = Field(default=False, description="List available transitions instead of transitioning")
    comment: str | None = Field(None, description="Comment to add during the transition")


class AssignTicketParams(StrictBaseModel):
    """Assign ticket request parameters."""

    ticket_key: TicketKey
    account_id: str | None = Field(None, description="Account ID to assign to. Omit to unassign.")


class WatcherParams(StrictBaseModel):
    """Add/remove watcher request parameters."""

    ticket_key: TicketKey
    account_id: str = Field(min_length=1, description="Watcher account ID")


class GetTestStepsParams(StrictBaseModel):
    """Get Zephyr test steps request parameters."""

    ticket_key: TicketKey
    response_format: ResponseFormatInput = Field(
        default=ResponseFormat.MARKDOWN, description="Output format: \"markdown\" (default) or \"json\""
    )


class TestStepInput(StrictBaseModel):
    """A single Zephyr test step."""

    __test__ = False

    step: str = Field(min_length=1, description="Step description")
    data: str = Field(default="", description="Test data")
    result: str = Field(default="", description="Expected result")


class AddTestStepsParams(StrictBaseModel):
    """Add Zephyr test steps request parameters."""

    ticket_key: TicketKey
    steps: list[TestStepInput] = Field(min_length=1, description="Steps to append, in order")


class ToolResult(BaseModel):
    """Result returned by every tool."""

    success: bool = Field(description="Whether the operation succeeded")
    text: str = Field(description="Human-readable result or error message")


class LinkedTicketResult(BaseModel):
    """Outcome of creating the companion Test ticket for a Story."""

    primary_key: str
    test_key: str | None = None
    link_established: bool = False
    partial_failure_notes: list[str] = Field(default_factory=list)


class NamedRef(BaseModel):
    """Brief named entity (status, priority, issue type, project)."""

    id: str | None = None
    name: str | None = None
    key: str | None = None


class UserBrief(BaseModel):
    """Brief Jira user information."""

    model_config = ConfigDict(populate_by_name=True)

    account_id: str | None = Field(None, alias="accountId")
    display_name: str | None = Field(None, alias="displayName")
    email_address: str | None = Field(None, alias="emailAddress")


class IssueFields(BaseModel):
    """Issue fields; custom fields are kept as extras."""

    model_config = ConfigDict(extra="allow")

    summary: str = ""
    description: Any = None
    issuetype: NamedRef | None = None
    status: NamedRef | None = None
    priority: NamedRef | None = None
    project: NamedRef | None = None
    assignee: UserBrief | None = None
    reporter: UserBrief | None = None
    labels: list[str] = Field(default_factory=list)
    created: str | None = None
    updated: str | None = None

    def custom(self, field_id: str) -> Any:
        """Return a custom field value, or None if absent."""
        return (self.model_extra or {}).get(field_id)


class Issue(BaseModel):
    """Jira issue as returned by GET /issue and search."""

    model_config = ConfigDict(populate_by_name=True)

    id: str | None = None
    key: str
    issue_fields: IssueFields = Field(default_factory=IssueFields, alias="fields")


class Comment(BaseModel):
    """Issue comment; body is an ADF document."""

    id: str
    body: Any = None
    author: UserBrief | None = None
    created: str | None = None
    updated: str | None = None


class Transition(BaseModel):
    """Workflow transition available on an issue."""

    id: str
    name: str
    to: NamedRef | None = None

    @property
    def target_name(self) -> str:
        """Name of the status the transition leads to."""
        return (self.to.name if self.to else None) or self.name


class TestStep(BaseModel):
    """Zephyr test step."""

    __test__ = False

    model_config = ConfigDict(populate_by_name=True)

    id: int | str | None = None
    order_id: int | None = Field(None, alias="orderId")
    step: str = ""
    data: str | None = ""
    result: str | None = ""

    @field_validator("data", "result")
    @classmethod
    def none_to_empty(cls, v: str | None) -> str:
        """Zephyr returns null for unset data/result."""
        return v or ""
