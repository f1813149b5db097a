"""Tests for resilient ticket creation."""

from unittest.mock import Mock

import pytest
import requests

from mcp_jira.create import (
    create_ticket_resilient,
    is_required_error,
    plan_recovery,
    product_format_variants,
)
from mcp_jira.fields import OptionRef, build_create_fields
from mcp_jira.models import CreateTicketParams, IssueType

PRODUCT = "customfield_11000"
CATEGORY = "customfield_12000"


@pytest.fixture
def story_fields(settings):
    """Story payload carrying product and category fields."""
    return build_create_fields(CreateTicketParams(summary="S", issue_type=IssueType.STORY), settings)


def _sent_fields(client: Mock) -> list[dict]:
    return [call.args[0].to_payload()["fields"] for call in client.create_issue.call_args_list]


def test_first_attempt_success(mock_client, settings, story_fields, make_response):
    """A successful first request is returned without retries."""
    mock_client.create_issue.return_value = make_response(201, {"id": "10", "key": "PROJ-10"})

    outcome = create_ticket_resilient(mock_client, story_fields, settings)

    assert outcome.success
    assert outcome.key == "PROJ-10"
    assert [a.variant for a in outcome.attempts] == ["primary"]
    assert mock_client.create_issue.call_count == 1


def test_non_400_is_not_retried(mock_client, settings, story_fields, make_response):
    """Server errors fail immediately with the status line."""
    mock_client.create_issue.return_value = make_response(500, {}, reason="Internal Server Error")

    outcome = create_ticket_resilient(mock_client, story_fields, settings)

    assert not outcome.success
    assert outcome.error_message == "Status: 500 Internal Server Error"
    assert mock_client.create_issue.call_count == 1


def test_400_without_field_errors_is_not_retried(mock_client, settings, story_fields, make_response):
    """A 400 with only general messages is reported as-is."""
    mock_client.create_issue.return_value = make_response(400, {"errorMessages": ["Bad", "Worse"]})

    outcome = create_ticket_resilient(mock_client, story_fields, settings)

    assert outcome.error_message == "Bad, Worse"
    assert mock_client.create_issue.call_count == 1


def test_unrelated_field_error_is_not_retried(mock_client, settings, story_fields, make_response):
    """Errors on fields other than product/category are returned directly."""
    errors = {"summary": "Summary is too long"}
    mock_client.create_issue.return_value = make_response(400, {"errors": errors})

    outcome = create_ticket_resilient(mock_client, story_fields, settings)

    assert not outcome.success
    assert outcome.error_message == '{"summary": "Summary is too long"}'
    assert mock_client.create_issue.call_count == 1


def test_required_product_ladder_order(mock_client, settings, story_fields, make_response):
    """A required product error walks the format ladder until one succeeds."""
    rejected = make_response(400, {"errors": {PRODUCT: "Product is required."}})
    mock_client.create_issue.side_effect = [rejected, rejected, make_response(201, {"key": "PROJ-11"})]

    outcome = create_ticket_resilient(mock_client, story_fields, settings)

    assert outcome.success
    assert outcome.key == "PROJ-11"
    assert [a.variant for a in outcome.attempts] == [
        "primary",
        "product as ID string",
        "product as array with ID",
    ]
    sent = _sent_fields(mock_client)
    assert sent[1][PRODUCT] == "5001"
    assert sent[2][PRODUCT] == [{"id": "5001"}]
    # Category is left alone during the ladder
    assert all(CATEGORY in fields for fields in sent)


def test_required_product_ladder_exhausted(mock_client, settings, story_fields, make_response):
    """Four rejected requests end with a diagnostic naming the configured product."""
    rejected = make_response(400, {"errors": {PRODUCT: "Field is required"}})
    mock_client.create_issue.return_value = rejected

    outcome = create_ticket_resilient(mock_client, story_fields, settings)

    assert not outcome.success
    assert mock_client.create_issue.call_count == 4
    assert _sent_fields(mock_client)[3][PRODUCT] == [{"value": "Widget"}]
    assert "Required field validation failed: Field is required" in outcome.error_message
    assert '"5001"' in outcome.error_message
    assert '"Widget"' in outcome.error_message
    assert PRODUCT in outcome.error_message


def test_invalid_category_single_retry(mock_client, settings, story_fields, make_response):
    """A rejected category is dropped and the request retried once."""
    mock_client.create_issue.side_effect = [
        make_response(400, {"errors": {CATEGORY: "Option id '6001' is not valid"}}),
        make_response(201, {"key": "PROJ-12"}),
    ]

    outcome = create_ticket_resilient(mock_client, story_fields, settings)

    assert outcome.success
    sent = _sent_fields(mock_client)
    assert CATEGORY in sent[0]
    assert CATEGORY not in sent[1]
    assert PRODUCT in sent[1]
    assert outcome.attempts[1].variant == f"without {CATEGORY}"


def test_invalid_product_and_category_removed_together(mock_client, settings, story_fields, make_response):
    """Non-required product errors are removable alongside category."""
    errors = {PRODUCT: "Option value 'Widget' is not valid", CATEGORY: "Invalid option"}
    mock_client.create_issue.side_effect = [
        make_response(400, {"errors": errors}),
        make_response(201, {"key": "PROJ-13"}),
    ]

    outcome = create_ticket_resilient(mock_client, story_fields, settings)

    assert outcome.success
    sent = _sent_fields(mock_client)[1]
    assert PRODUCT not in sent
    assert CATEGORY not in sent


def test_removal_retry_failure_uses_retry_detail(mock_client, settings, story_fields, make_response):
    """When the retry also fails, its own error is reported."""
    mock_client.create_issue.side_effect = [
        make_response(400, {"errors": {CATEGORY: "Invalid option"}}),
        make_response(400, {"errorMessages": ["Sprint does not exist"]}),
    ]

    outcome = create_ticket_resilient(mock_client, story_fields, settings)

    assert not outcome.success
    assert outcome.error_message == "Sprint does not exist"
    assert mock_client.create_issue.call_count == 2


def test_required_product_without_config_skips_removal_retry(mock_client, settings, story_fields, make_response):
    """Without product value/ID a required product fails at once, even if category was also rejected."""
    unconfigured = settings.model_copy(update={"product_value": None})
    errors = {PRODUCT: "Product is required", CATEGORY: "Invalid option"}
    mock_client.create_issue.return_value = make_response(400, {"errors": errors})

    outcome = create_ticket_resilient(mock_client, story_fields, unconfigured)

    assert not outcome.success
    assert mock_client.create_issue.call_count == 1
    assert outcome.error_message.startswith("Required field validation failed: Product is required")
    assert PRODUCT in outcome.error_message


def test_required_product_ladder_wins_over_category_removal(mock_client, settings, story_fields, make_response):
    """With both fields rejected, the product ladder runs and category is never removed."""
    errors = {PRODUCT: "Product is required", CATEGORY: "Invalid option"}
    mock_client.create_issue.return_value = make_response(400, {"errors": errors})

    outcome = create_ticket_resilient(mock_client, story_fields, settings)

    assert not outcome.success
    assert [a.variant for a in outcome.attempts] == [
        "primary",
        "product as ID string",
        "product as array with ID",
        "product as array with value",
    ]
    assert all(CATEGORY in fields for fields in _sent_fields(mock_client))
    assert outcome.error_message.startswith("Required field validation failed: Product is required")


def test_required_product_without_config_and_nothing_removable(mock_client, settings, story_fields, make_response):
    """Without product value/ID and nothing to remove, the diagnostic is returned."""
    unconfigured = settings.model_copy(update={"product_id": None})
    mock_client.create_issue.return_value = make_response(400, {"errors": {PRODUCT: "Product is required"}})

    outcome = create_ticket_resilient(mock_client, story_fields, unconfigured)

    assert not outcome.success
    assert mock_client.create_issue.call_count == 1
    assert outcome.error_message.startswith("Required field validation failed")


def test_transport_error_becomes_failed_outcome(mock_client, settings, story_fields, make_response):
    """Connection problems are reported, not raised."""
    mock_client.create_issue.side_effect = requests.exceptions.ConnectionError("connection refused")

    outcome = create_ticket_resilient(mock_client, story_fields, settings)

    assert not outcome.success
    assert "connection refused" in outcome.error_message
    assert outcome.attempts == []


def test_base_payload_is_not_modified(mock_client, settings, story_fields, make_response):
    """Retries derive new payloads instead of mutating the base one."""
    before = story_fields.to_payload()
    mock_client.create_issue.return_value = make_response(400, {"errors": {PRODUCT: "Field is required"}})

    create_ticket_resilient(mock_client, story_fields, settings)

    assert story_fields.to_payload() == before


@pytest.mark.parametrize(
    ("message", "expected"),
    [("Product is required.", True), ("REQUIRED field", True), ("Option not valid", False)],
)
def test_is_required_error(message, expected):
    """Required detection is a case-insensitive substring check."""
    assert is_required_error(message) is expected


def test_plan_recovery_ignores_unconfigured_fields(bare_settings):
    """Errors on fields that are not configured as product/category are not removable."""
    plan = plan_recovery({"customfield_11000": "bad"}, bare_settings)

    assert plan.removable == ()
    assert not plan.run_product_ladder


def test_product_format_variants(settings):
    """Ladder encodings come in a fixed order."""
    variants = product_format_variants(settings)

    assert [name for name, _ in variants] == [
        "product as ID string",
        "product as array with ID",
        "product as array with value",
    ]
    assert variants[1][1] == [OptionRef(id="5001")]
    assert variants[2][1] == [OptionRef(value="Widget")]
