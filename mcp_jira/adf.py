"""Atlassian Document Format (ADF) models and plain-text conversion.

Jira Cloud's v3 API expects rich-text fields (description, comments, text
custom fields) as ADF trees and returns them in the same shape. The models in
this module cover the node types this server writes; `flatten_to_text` also
accepts raw dictionaries straight from the API, where unknown node types
(mentions, emoji, tables, ...) degrade to their text content.
"""

from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field

NO_CONTENT = "No content provided"
NO_DESCRIPTION = "No description provided"
NO_ACCEPTANCE_CRITERIA = "No acceptance criteria provided"

BULLET_MARKERS = ("-", "*")
LIST_ITEM_PREFIX = "• "
CODE_FENCE = "```"


class TextNode(BaseModel):
    """Leaf node carrying a run of text."""

    type: Literal["text"] = "text"
    text: str
    marks: list[dict[str, Any]] | None = None


class ParagraphNode(BaseModel):
    """Paragraph block."""

    type: Literal["paragraph"] = "paragraph"
    content: list["AdfNode"] = Field(default_factory=list)


class HeadingNode(BaseModel):
    """Heading block; `attrs.level` holds the heading level."""

    type: Literal["heading"] = "heading"
    attrs: dict[str, Any] | None = None
    content: list["AdfNode"] = Field(default_factory=list)


class BulletListNode(BaseModel):
    """Unordered list of `listItem` nodes."""

    type: Literal["bulletList"] = "bulletList"
    content: list["AdfNode"] = Field(default_factory=list)


class OrderedListNode(BaseModel):
    """Ordered list of `listItem` nodes."""

    type: Literal["orderedList"] = "orderedList"
    attrs: dict[str, Any] | None = None
    content: list["AdfNode"] = Field(default_factory=list)


class ListItemNode(BaseModel):
    """Single list entry."""

    type: Literal["listItem"] = "listItem"
    content: list["AdfNode"] = Field(default_factory=list)


class CodeBlockNode(BaseModel):
    """Preformatted code block."""

    type: Literal["codeBlock"] = "codeBlock"
    attrs: dict[str, Any] | None = None
    content: list["AdfNode"] = Field(default_factory=list)


AdfNode = Annotated[
    TextNode | ParagraphNode | HeadingNode | BulletListNode | OrderedListNode | ListItemNode | CodeBlockNode,
    Field(discriminator="type"),
]


class AdfDocument(BaseModel):
    """Root of an ADF tree."""

    type: Literal["doc"] = "doc"
    version: Literal[1] = 1
    content: list[AdfNode] = Field(default_factory=list)

    def to_api(self) -> dict[str, Any]:
        """Serialize the document in the shape the Jira API accepts."""
        return self.model_dump(exclude_none=True)


for _model in (ParagraphNode, HeadingNode, BulletListNode, OrderedListNode, ListItemNode, CodeBlockNode, AdfDocument):
    _model.model_rebuild()


def _paragraph(text: str) -> ParagraphNode:
    return ParagraphNode(content=[TextNode(text=text)])


def _bullet(text: str) -> BulletListNode:
    return BulletListNode(content=[ListItemNode(content=[_paragraph(text)])])


def build_paragraph_document(text: str | None, fallback_text: str = NO_CONTENT) -> AdfDocument:
    """Wrap text in a single-paragraph document.

    Args:
        text: Text to wrap verbatim
        fallback_text: Used instead when text is None or empty

    Returns:
        AdfDocument with exactly one paragraph
    """
    return AdfDocument(content=[_paragraph(text or fallback_text)])


def build_description_document(text: str | None) -> AdfDocument:
    """Build a description (or comment body) document."""
    return build_paragraph_document(text, NO_DESCRIPTION)


def build_acceptance_criteria_document(text: str | None) -> AdfDocument:
    """Build an acceptance criteria document with bullet detection.

    Each non-blank line becomes its own block: lines starting with "-" or "*"
    become a one-item bullet list with the marker stripped, anything else a
    paragraph. Blank lines are dropped.

    Args:
        text: Acceptance criteria as newline separated plain text

    Returns:
        AdfDocument; a placeholder paragraph when text is None or empty
    """
    if not text:
        return build_paragraph_document(None, NO_ACCEPTANCE_CRITERIA)

    blocks: list[ParagraphNode | BulletListNode] = []
    for line in text.split("\n"):
        trimmed = line.strip()
        if not trimmed:
            continue
        if trimmed.startswith(BULLET_MARKERS):
            blocks.append(_bullet(trimmed[1:].strip()))
        else:
            blocks.append(_paragraph(trimmed))

    return AdfDocument(content=blocks)


def _decorate(node_type: str | None, inner: str) -> str:
    if node_type in ("paragraph", "heading"):
        return inner + "\n"
    if node_type == "listItem":
        return LIST_ITEM_PREFIX + inner + "\n"
    if node_type == "codeBlock":
        return f"{CODE_FENCE}\n{inner}\n{CODE_FENCE}\n"
    # bulletList, orderedList and unknown containers: children carry their own layout
    return inner


def flatten_to_text(node: AdfDocument | BaseModel | dict[str, Any] | str | None) -> str:
    """Render an ADF document or node as plain text.

    Args:
        node: Typed ADF model, raw ADF dictionary from the API, plain string or None

    Returns:
        Plain text; list items are prefixed with "• " and code blocks fenced
    """
    if node is None:
        return ""
    if isinstance(node, str):
        return node
    if isinstance(node, BaseModel):
        node = node.model_dump(exclude_none=True)
    if not isinstance(node, dict):
        return ""

    node_type = node.get("type")
    if node_type == "text" and node.get("text"):
        return str(node["text"])

    content = node.get("content")
    if not isinstance(content, list):
        return ""

    inner = "".join(flatten_to_text(child) for child in content)
    return _decorate(node_type, inner)
