"""
blockhtml Kernel -- Block Model

Editor block records as validated, immutable pydantic models.

Accepts the editor's JSON shape (blockName / attrs / innerBlocks / innerHTML /
innerContent) as well as the snake_case field names, so blocks can come
straight from a parsed post or be built by hand in tests.
"""

from __future__ import annotations

import json
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator

from blockhtml.kernel.types import InvalidInputError


class Block(BaseModel):
    """One node of the content tree. Read-only during conversion."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    name: str | None = Field(
        default=None,
        validation_alias=AliasChoices("blockName", "name"),
        serialization_alias="blockName",
    )
    attributes: dict[str, Any] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("attrs", "attributes"),
        serialization_alias="attrs",
    )
    children: tuple[Block, ...] = Field(
        default=(),
        validation_alias=AliasChoices("innerBlocks", "children"),
        serialization_alias="innerBlocks",
    )
    raw_fragments: tuple[str | None, ...] = Field(
        default=(),
        validation_alias=AliasChoices("innerContent", "rawFragments", "raw_fragments"),
        serialization_alias="innerContent",
    )
    inner_html: str = Field(
        default="",
        validation_alias=AliasChoices("innerHTML", "inner_html"),
        serialization_alias="innerHTML",
    )

    @field_validator("attributes", mode="before")
    @classmethod
    def _coerce_attributes(cls, value: Any) -> Any:
        # PHP serializes an empty attribute array as [] rather than {}
        if value is None or value == []:
            return {}
        return value

    @field_validator("children", "raw_fragments", mode="before")
    @classmethod
    def _coerce_sequence(cls, value: Any) -> Any:
        return () if value is None else value

    @field_validator("inner_html", mode="before")
    @classmethod
    def _coerce_inner_html(cls, value: Any) -> Any:
        return "" if value is None else value

    # -- derived properties --

    @property
    def namespace(self) -> str:
        if not self.name or "/" not in self.name:
            return "core"
        return self.name.split("/", 1)[0]

    @property
    def category(self) -> str:
        """Tail segment of the block name, e.g. "paragraph" for core/paragraph."""
        if not self.name:
            return "freeform"
        return self.name.rsplit("/", 1)[-1]

    @property
    def fragments(self) -> tuple[str | None, ...]:
        """
        Markup fragments interleaved with child placeholders.
        Falls back to innerHTML when the record carries no innerContent.
        """
        if self.raw_fragments:
            return self.raw_fragments
        if self.inner_html:
            return (self.inner_html,)
        return ()

    @property
    def placeholder_count(self) -> int:
        return sum(1 for f in self.fragments if f is None)

    def to_editor_dict(self) -> dict[str, Any]:
        """Serialize back to the editor's JSON shape."""
        return self.model_dump(by_alias=True)


Block.model_rebuild()


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def parse_block(data: Block | dict[str, Any]) -> Block:
    """Validate a single block record."""
    if isinstance(data, Block):
        return data
    if not isinstance(data, dict):
        raise InvalidInputError(f"Block must be an object, got {type(data).__name__}")
    try:
        return Block.model_validate(data)
    except ValidationError as e:
        raise InvalidInputError(f"Invalid block record: {e}") from e


def parse_blocks(data: Any) -> list[Block]:
    """
    Normalize block input into a list of Blocks.

    Accepts a JSON string, a single block (dict or Block), or a list of them.
    Freeform entries the editor emits between blocks (blockName null with only
    whitespace markup) are dropped.
    """
    if isinstance(data, (str, bytes)):
        try:
            data = json.loads(data)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise InvalidInputError(f"Block JSON is malformed: {e}") from e

    if isinstance(data, (Block, dict)):
        items = [data]
    elif isinstance(data, (list, tuple)):
        items = list(data)
    else:
        raise InvalidInputError(f"Unsupported block input: {type(data).__name__}")

    blocks = [parse_block(item) for item in items]
    return [b for b in blocks if not _is_blank_freeform(b)]


def _is_blank_freeform(block: Block) -> bool:
    if block.name is not None or block.children:
        return False
    return not "".join(f for f in block.fragments if f).strip()
