"""Jira `fields` payload construction.

Payloads are `TicketFields` values: immutable mappings from field key to one
of a closed set of value shapes. Retries derive new payloads from a base one
with `with_field` and `without`, so every attempt stays inspectable.
"""

import logging
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Union

from pydantic import BaseModel, ConfigDict, Field

from .adf import AdfDocument, build_acceptance_criteria_document, build_description_document
from .config import JiraSettings
from .models import STANDARD_ISSUE_TYPES, CreateTicketParams, IssueType, UpdateTicketParams, YesNo

logger = logging.getLogger(__name__)

QA_TESTABLE_LABEL = "QA-Testable"
UNASSIGNED = "unassigned"


class KeyRef(BaseModel):
    """Reference by key (project, parent issue)."""

    model_config = ConfigDict(frozen=True)

    key: str


class NameRef(BaseModel):
    """Reference by name (issue type, sprint, priority, component, version)."""

    model_config = ConfigDict(frozen=True)

    name: str


class AccountRef(BaseModel):
    """Reference to a user by account ID."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    account_id: str = Field(alias="accountId")


class OptionRef(BaseModel):
    """Select-list option reference; any subset of self/value/id."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    self_link: str | None = Field(None, alias="self")
    value: str | None = None
    id: str | None = None


Scalar = Union[str, int, float, None]
Ref = Union[KeyRef, NameRef, AccountRef, OptionRef]
FieldValue = Union[Scalar, Ref, AdfDocument, list[Union[str, Ref]]]


def _serialize(value: FieldValue) -> Any:
    if isinstance(value, AdfDocument):
        return value.to_api()
    if isinstance(value, BaseModel):
        return value.model_dump(by_alias=True, exclude_none=True)
    if isinstance(value, list):
        return [_serialize(item) for item in value]
    return value


@dataclass(frozen=True)
class TicketFields:
    """Immutable Jira `fields` object."""

    values: Mapping[str, FieldValue] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "values", MappingProxyType(dict(self.values)))

    def __contains__(self, key: object) -> bool:
        return key in self.values

    def __getitem__(self, key: str) -> FieldValue:
        return self.values[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self.values)

    def __len__(self) -> int:
        return len(self.values)

    def get(self, key: str, default: FieldValue = None) -> FieldValue:
        return self.values.get(key, default)

    def with_field(self, key: str, value: FieldValue) -> "TicketFields":
        """Return a copy with `key` set to `value`."""
        return TicketFields({**self.values, key: value})

    def without(self, *keys: str) -> "TicketFields":
        """Return a copy without the given keys."""
        return TicketFields({k: v for k, v in self.values.items() if k not in keys})

    def to_payload(self) -> dict[str, Any]:
        """Serialize as a create/update request body."""
        return {"fields": {key: _serialize(value) for key, value in self.values.items()}}


def _option(settings: JiraSettings, option_id: str, value: str) -> OptionRef:
    return OptionRef(self_link=settings.option_self_link(option_id), value=value, id=option_id)


def _readiness_option(settings: JiraSettings, readiness: YesNo) -> OptionRef:
    option_id = settings.story_readiness_yes_id if readiness == YesNo.YES else settings.story_readiness_no_id
    return _option(settings, option_id, readiness.value)


def _crisis_option(settings: JiraSettings, crisis: YesNo) -> OptionRef:
    option_id = settings.crisis_yes_id if crisis == YesNo.YES else settings.crisis_no_id
    return _option(settings, option_id, crisis.value)


def _product_fields(settings: JiraSettings) -> dict[str, FieldValue]:
    if not settings.product_field:
        logger.debug("No product field configured, skipping")
        return {}
    if not (settings.product_value and settings.product_id):
        logger.warning(
            "Product field %s is configured but JIRA_PRODUCT_VALUE/JIRA_PRODUCT_ID are missing; skipping it",
            settings.product_field,
        )
        return {}
    logger.info(
        "Configuring product field %s with value %r and ID %r",
        settings.product_field,
        settings.product_value,
        settings.product_id,
    )
    return {settings.product_field: [_option(settings, settings.product_id, settings.product_value)]}


def _category_fields(settings: JiraSettings) -> dict[str, FieldValue]:
    if not settings.category_field:
        logger.debug("No category field configured, skipping")
        return {}
    option_id, option_value = settings.category_option
    if not (option_id and option_value):
        which = "alternate" if settings.use_alternate_category else "default"
        logger.warning(
            "Category field %s is configured but the %s category ID/value is missing; skipping it",
            settings.category_field,
            which,
        )
        return {}
    return {settings.category_field: _option(settings, option_id, option_value)}


def build_create_fields(params: CreateTicketParams, settings: JiraSettings) -> TicketFields:
    """Build the fields of a create request.

    Args:
        params: Validated create parameters
        settings: Deployment settings (custom field IDs, option IDs, defaults)

    Returns:
        TicketFields containing project, summary, description and issue type,
        plus whichever optional fields the parameters and settings allow
    """
    values: dict[str, FieldValue] = {
        "project": KeyRef(key=params.project_key or settings.project_key),
        "summary": params.summary,
        "description": build_description_document(params.description),
        "issuetype": NameRef(name=params.issue_type.value),
    }

    if params.acceptance_criteria is not None:
        logger.info("Adding acceptance criteria to field %s", settings.acceptance_criteria_field)
        values[settings.acceptance_criteria_field] = build_acceptance_criteria_document(params.acceptance_criteria)

    if params.issue_type in STANDARD_ISSUE_TYPES:
        values.update(_product_fields(settings))
        values.update(_category_fields(settings))

    if params.story_points is not None and params.issue_type == IssueType.STORY:
        values[settings.story_points_field] = params.story_points
        values["labels"] = [QA_TESTABLE_LABEL]

    if params.parent_epic is not None:
        if params.issue_type == IssueType.EPIC:
            values["parent"] = KeyRef(key=params.parent_epic)
        else:
            values[settings.epic_link_field] = params.parent_epic

    if params.sprint is not None:
        values[settings.sprint_field] = [NameRef(name=params.sprint)]

    if params.story_readiness is not None:
        values[settings.story_readiness_field] = _readiness_option(settings, params.story_readiness)

    if params.crisis is not None:
        values[settings.crisis_field] = _crisis_option(settings, params.crisis)

    return TicketFields(values)


def build_update_fields(params: UpdateTicketParams, settings: JiraSettings) -> TicketFields:
    """Build the partial fields of an update request; empty if nothing was given."""
    values: dict[str, FieldValue] = {}

    if params.summary is not None:
        values["summary"] = params.summary
    if params.description is not None:
        values["description"] = build_description_document(params.description)
    if params.acceptance_criteria is not None:
        values[settings.acceptance_criteria_field] = build_acceptance_criteria_document(params.acceptance_criteria)
    if params.story_points is not None:
        values[settings.story_points_field] = params.story_points
    if params.sprint is not None:
        values[settings.sprint_field] = [NameRef(name=params.sprint)]
    if params.story_readiness is not None:
        values[settings.story_readiness_field] = _readiness_option(settings, params.story_readiness)
    if params.assignee is not None:
        values["assignee"] = None if params.assignee == UNASSIGNED else AccountRef(account_id=params.assignee)
    if params.priority is not None:
        values["priority"] = NameRef(name=params.priority.value)
    if params.labels is not None:
        values["labels"] = list(params.labels)
    if params.components is not None:
        values["components"] = [NameRef(name=name) for name in params.components]
    if params.fix_versions is not None:
        values["fixVersions"] = [NameRef(name=name) for name in params.fix_versions]
    if params.due_date is not None:
        values["duedate"] = params.due_date.isoformat()

    return TicketFields(values)


def build_test_ticket_fields(primary_key: str, summary: str, project_key: str) -> TicketFields:
    """Build the minimal Test ticket companion of a Story.

    Test issue types usually lack the product/category custom fields, so none
    are included.
    """
    return TicketFields(
        {
            "project": KeyRef(key=project_key),
            "summary": f"{primary_key} {summary}",
            "description": build_description_document(summary),
            "issuetype": NameRef(name=IssueType.TEST.value),
        }
    )
