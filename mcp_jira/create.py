"""Ticket creation with bounded recovery from custom field validation errors.

Jira rejects a create request with HTTP 400 and a per-field `errors` map when
a select-list custom field does not accept the configured option. Which
field fails, and which encoding it wants, differs between Jira instances, so
the create call recovers in a fixed order:

1. Submit the full payload.
2. If the product field is reported as *required*, resubmit with the product
   option encoded as a bare ID, then `[{id}]`, then `[{value}]`.
3. Otherwise drop the offending product/category fields and resubmit once.

No more than four requests are issued per call, strictly one after another.
"""

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

import requests  # type: ignore[import-untyped]

from .client import JiraClient, JiraResponse
from .config import JiraSettings
from .fields import FieldValue, OptionRef, TicketFields

logger = logging.getLogger(__name__)

PRIMARY_VARIANT = "primary"
REQUIRED_MARKER = "required"


@dataclass(frozen=True)
class CreateAttempt:
    """One create request issued during a call."""

    variant: str
    fields: TicketFields
    status_code: int
    ok: bool
    error_message: str | None = None


@dataclass
class CreateOutcome:
    """Final result of a create call, with every attempt in order."""

    success: bool
    data: dict[str, Any] = field(default_factory=dict)
    error_message: str | None = None
    attempts: list[CreateAttempt] = field(default_factory=list)

    @property
    def key(self) -> str | None:
        """Key of the created issue, if any."""
        return self.data.get("key") if self.success else None


@dataclass(frozen=True)
class RecoveryPlan:
    """How to react to a 400 with field errors."""

    removable: tuple[str, ...] = ()
    product_error: str | None = None
    run_product_ladder: bool = False

    @property
    def product_required(self) -> bool:
        return self.product_error is not None and is_required_error(self.product_error)


def is_required_error(message: str) -> bool:
    """Whether a field error message says the field is required.

    This is a substring heuristic on Jira's free-text message, not a
    documented contract.
    """
    return REQUIRED_MARKER in message.lower()


def plan_recovery(errors: Mapping[str, Any], settings: JiraSettings) -> RecoveryPlan:
    """Classify per-field errors against the configured product/category fields."""
    removable: list[str] = []
    product_error: str | None = None
    run_ladder = False

    if settings.product_field and settings.product_field in errors:
        product_error = str(errors[settings.product_field])
        logger.info("Product field error: %s", product_error)
        if not is_required_error(product_error):
            removable.append(settings.product_field)
        elif settings.product_value and settings.product_id:
            run_ladder = True

    if settings.category_field and settings.category_field in errors:
        removable.append(settings.category_field)

    return RecoveryPlan(removable=tuple(removable), product_error=product_error, run_product_ladder=run_ladder)


def product_format_variants(settings: JiraSettings) -> list[tuple[str, FieldValue]]:
    """Alternative encodings of the product option, in the order they are tried."""
    product_id = settings.product_id or ""
    product_value = settings.product_value or ""
    return [
        ("product as ID string", product_id),
        ("product as array with ID", [OptionRef(id=product_id)]),
        ("product as array with value", [OptionRef(value=product_value)]),
    ]


def required_product_message(error: str, settings: JiraSettings) -> str:
    """Diagnostic for a product field the server insists on but never accepts."""
    return (
        f"Required field validation failed: {error}. "
        f'The product ID "{settings.product_id}" or value "{settings.product_value}" '
        f"configured for field {settings.product_field} may be invalid for your JIRA instance."
    )


def _has_detail(response: JiraResponse) -> bool:
    return bool(response.error_messages or response.errors)


class _Session:
    """Issues create requests for one call and records them."""

    def __init__(self, client: JiraClient) -> None:
        self.client = client
        self.attempts: list[CreateAttempt] = []

    def submit(self, fields: TicketFields, variant: str) -> JiraResponse:
        response = self.client.create_issue(fields)
        self.attempts.append(
            CreateAttempt(
                variant=variant,
                fields=fields,
                status_code=response.status_code,
                ok=response.ok,
                error_message=None if response.ok else response.error_message(),
            )
        )
        return response

    def succeeded(self, response: JiraResponse) -> CreateOutcome:
        data = response.data if isinstance(response.data, dict) else {}
        return CreateOutcome(success=True, data=data, attempts=self.attempts)

    def failed(self, message: str, response: JiraResponse | None = None) -> CreateOutcome:
        data = response.data if response is not None and isinstance(response.data, dict) else {}
        return CreateOutcome(success=False, data=data, error_message=message, attempts=self.attempts)


def _create(session: _Session, fields: TicketFields, settings: JiraSettings) -> CreateOutcome:
    primary = session.submit(fields, PRIMARY_VARIANT)
    if primary.ok:
        return session.succeeded(primary)

    if primary.status_code != 400 or not primary.errors:
        return session.failed(primary.error_message(), primary)

    plan = plan_recovery(primary.errors, settings)

    if plan.run_product_ladder and settings.product_field:
        logger.info("Retrying with alternative product field formats...")
        for variant, value in product_format_variants(settings):
            response = session.submit(fields.with_field(settings.product_field, value), variant)
            if response.ok:
                logger.info("Ticket created successfully with %s", variant)
                return session.succeeded(response)
        logger.error(
            "Required product field %s validation failed with all formats (value=%r, id=%r)",
            settings.product_field,
            settings.product_value,
            settings.product_id,
        )
        return session.failed(required_product_message(plan.product_error or "", settings), primary)

    # Unconfigured required product: removing other fields cannot satisfy it
    if plan.product_required:
        return session.failed(required_product_message(plan.product_error or "", settings), primary)

    if plan.removable:
        logger.info("Retrying ticket creation without problematic custom fields: %s", ", ".join(plan.removable))
        retry = session.submit(fields.without(*plan.removable), f"without {', '.join(plan.removable)}")
        if retry.ok:
            logger.info("Ticket created successfully after removing problematic custom fields")
            return session.succeeded(retry)
        if _has_detail(retry):
            return session.failed(retry.error_message(), retry)
        return session.failed(primary.error_message(), primary)

    return session.failed(primary.error_message(), primary)


def create_ticket_resilient(client: JiraClient, fields: TicketFields, settings: JiraSettings) -> CreateOutcome:
    """Create a ticket, recovering from product/category field rejections.

    Args:
        client: Jira client
        fields: Base payload; never modified, each retry derives its own copy
        settings: Settings naming the product and category fields

    Returns:
        CreateOutcome; transport errors become a failed outcome
    """
    session = _Session(client)
    try:
        return _create(session, fields, settings)
    except requests.exceptions.RequestException as e:
        logger.exception("Exception creating ticket")
        return session.failed(str(e))
