"""Tests for ADF document building and flattening."""

import pytest

from mcp_jira.adf import (
    NO_ACCEPTANCE_CRITERIA,
    NO_CONTENT,
    AdfDocument,
    BulletListNode,
    ParagraphNode,
    build_acceptance_criteria_document,
    build_description_document,
    build_paragraph_document,
    flatten_to_text,
)


def test_paragraph_document_shape():
    """A paragraph document serializes to the shape Jira expects."""
    doc = build_paragraph_document("Hello")

    assert doc.to_api() == {
        "type": "doc",
        "version": 1,
        "content": [{"type": "paragraph", "content": [{"type": "text", "text": "Hello"}]}],
    }


@pytest.mark.parametrize("text", [None, ""])
def test_paragraph_document_fallback(text):
    """Missing text is replaced by the fallback."""
    assert flatten_to_text(build_paragraph_document(text)).strip() == NO_CONTENT
    assert flatten_to_text(build_paragraph_document(text, "X")).strip() == "X"


def test_paragraph_document_keeps_text_verbatim():
    """Newlines and markers are not interpreted in plain paragraphs."""
    text = "line one\n- not a bullet"
    doc = build_paragraph_document(text)

    assert len(doc.content) == 1
    assert flatten_to_text(doc).strip() == text


def test_description_document_placeholder():
    """Descriptions fall back to their own placeholder."""
    assert flatten_to_text(build_description_document(None)).strip() == "No description provided"


@pytest.mark.parametrize("text", [None, ""])
def test_acceptance_criteria_placeholder(text):
    """Empty acceptance criteria become a single placeholder paragraph."""
    doc = build_acceptance_criteria_document(text)

    assert len(doc.content) == 1
    assert isinstance(doc.content[0], ParagraphNode)
    assert flatten_to_text(doc).strip() == NO_ACCEPTANCE_CRITERIA


def test_acceptance_criteria_bullet_detection():
    """Lines starting with - or * become bullets, blank lines are dropped."""
    text = "Given a user\n- logs in\n\n   * sees the dashboard  \nThen done"
    doc = build_acceptance_criteria_document(text)

    kinds = [type(node) for node in doc.content]
    assert kinds == [ParagraphNode, BulletListNode, BulletListNode, ParagraphNode]
    assert flatten_to_text(doc) == "Given a user\n• logs in\n\n• sees the dashboard\n\nThen done\n"


def test_acceptance_criteria_bullet_text_is_stripped():
    """The marker and surrounding whitespace are removed from bullet text."""
    doc = build_acceptance_criteria_document("-   spaced out")
    item = doc.to_api()["content"][0]["content"][0]

    assert item["type"] == "listItem"
    assert item["content"][0]["content"][0]["text"] == "spaced out"


def test_flatten_trivial_inputs():
    """None, strings and content-less nodes flatten predictably."""
    assert flatten_to_text(None) == ""
    assert flatten_to_text("already text") == "already text"
    assert flatten_to_text({"type": "mention", "attrs": {"id": "1"}}) == ""
    assert flatten_to_text({"type": "hardBreak"}) == ""


def test_flatten_raw_api_document():
    """Raw dictionaries from the API flatten including unknown containers."""
    raw = {
        "type": "doc",
        "version": 1,
        "content": [
            {"type": "heading", "attrs": {"level": 2}, "content": [{"type": "text", "text": "Title"}]},
            {
                "type": "orderedList",
                "content": [
                    {"type": "listItem", "content": [{"type": "text", "text": "first"}]},
                    {"type": "listItem", "content": [{"type": "text", "text": "second"}]},
                ],
            },
            {"type": "codeBlock", "content": [{"type": "text", "text": "print(1)"}]},
            {"type": "panel", "content": [{"type": "paragraph", "content": [{"type": "text", "text": "note"}]}]},
        ],
    }

    assert flatten_to_text(raw) == "Title\n• first\n• second\n```\nprint(1)\n```\nnote\n"


def test_document_validates_from_api_shape():
    """Typed documents can be rebuilt from their serialized form."""
    doc = build_acceptance_criteria_document("- a\nb")
    rebuilt = AdfDocument.model_validate(doc.to_api())

    assert rebuilt == doc
    assert flatten_to_text(rebuilt) == flatten_to_text(doc)


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("", "X"),
        (None, "X"),
        ("single line", "single line"),
        ("first\nsecond\nthird", "first\nsecond\nthird"),
        ("héllo wörld ✓ 日本語", "héllo wörld ✓ 日本語"),
        ("- starts with a marker", "- starts with a marker"),
        ("* also a marker\n- and another", "* also a marker\n- and another"),
    ],
)
def test_paragraph_round_trip(text, expected):
    """Flattening a paragraph document gives back the wrapped text."""
    assert flatten_to_text(build_paragraph_document(text, "X")).strip() == expected


@pytest.mark.parametrize("text", [None, "", "plain", "- a\n* b\nc", "  - indented\n\n\nlast"])
def test_builders_are_idempotent(text):
    """Identical input always yields structurally identical documents."""
    assert build_paragraph_document(text) == build_paragraph_document(text)
    assert build_paragraph_document(text).to_api() == build_paragraph_document(text).to_api()
    assert build_acceptance_criteria_document(text) == build_acceptance_criteria_document(text)
    assert build_acceptance_criteria_document(text).to_api() == build_acceptance_criteria_document(text).to_api()
