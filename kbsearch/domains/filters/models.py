"""
Filter Models - Predicate tree types for structured search constraints.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Discriminator, Field, Tag


class FilterField(str, Enum):
    """Queryable unit fields. Anything else is rejected before compiling."""

    ID = "id"
    TYPE = "type"
    TITLE = "title"
    CONTENT = "content"
    CONTEXT = "context"
    CATEGORY = "category"
    TIMESTAMP = "timestamp"
    CREATED = "created"
    TAGS = "tags"
    KEYWORDS = "keywords"
    CONVERSATION_ID = "conversationId"
    EMBEDDING_STATUS = "embedding_status"

    @property
    def column(self) -> str:
        """Column name in the units table."""
        if self is FilterField.CONVERSATION_ID:
            return "conversation_id"
        return self.value

    @property
    def is_date(self) -> bool:
        return self in (FilterField.TIMESTAMP, FilterField.CREATED)


class FilterOperator(str, Enum):
    """Leaf comparison operators."""

    EQ = "="
    NE = "!="
    GT = ">"
    LT = "<"
    GTE = ">="
    LTE = "<="
    IN = "in"
    CONTAINS = "contains"
    REGEX = "regex"
    BETWEEN = "between"

    @property
    def vector_supported(self) -> bool:
        """Whether the vector store's metadata filter can express this operator."""
        return self not in (
            FilterOperator.CONTAINS,
            FilterOperator.REGEX,
            FilterOperator.BETWEEN,
        )


class Combinator(str, Enum):
    """Boolean combinator for filter groups."""

    AND = "AND"
    OR = "OR"


class FilterLeaf(BaseModel):
    """Single predicate: ``field operator value``."""

    kind: Literal["leaf"] = "leaf"
    field: FilterField
    operator: FilterOperator
    value: Any = None
    negate: bool = False

    model_config = {"frozen": True}


class FilterGroup(BaseModel):
    """AND/OR combination of leaves and nested groups."""

    kind: Literal["group"] = "group"
    combinator: Combinator = Combinator.AND
    children: tuple[FilterNode, ...] = ()
    negate: bool = False

    model_config = {"frozen": True}


def _node_kind(value: Any) -> str | None:
    """Discriminant for raw input and model instances alike."""
    if isinstance(value, dict):
        kind = value.get("kind")
        if kind is None:
            # Untagged external JSON is tagged once, here.
            return "group" if "children" in value else "leaf"
        return kind
    return getattr(value, "kind", None)


FilterNode = Annotated[
    Union[
        Annotated[FilterLeaf, Tag("leaf")],
        Annotated[FilterGroup, Tag("group")],
    ],
    Discriminator(_node_kind),
]

FilterGroup.model_rebuild()


class CompiledLexicalFilter(BaseModel):
    """Parameterized predicate for the lexical store."""

    fragment: str = ""
    params: list[Any] = Field(default_factory=list)

    model_config = {"frozen": True}

    @property
    def is_empty(self) -> bool:
        """Empty means "no constraint", never "no rows"."""
        return not self.fragment


class CompiledVectorFilter(BaseModel):
    """Metadata filter for the vector store."""

    where: dict[str, Any] | None = None
    had_unsupported_operator: bool = False

    model_config = {"frozen": True}

    @property
    def is_complete(self) -> bool:
        """True when the filter expresses every constraint of the source tree."""
        return not self.had_unsupported_operator


class DateRange(BaseModel):
    """Inclusive date range."""

    start: datetime
    end: datetime

    model_config = {"frozen": True}


class FilterPreset(BaseModel):
    """Named, reusable filter set."""

    id: str
    name: str
    description: str = ""
    filters: tuple[FilterNode, ...] = ()
    facets: tuple[str, ...] = ()

    model_config = {"frozen": True}
