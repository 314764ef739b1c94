"""
Filter Compiler - Turns predicate trees into backend query fragments.

Targets:
- Lexical store: parameterized SQL-style predicate (values never inlined)
- Vector store: nested metadata filter ($eq/$ne/$gt/$lt/$gte/$lte/$in,
  $and/$or/$not)

Pure functions, no I/O.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping, Sequence
from typing import Any

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from kbsearch.config.errors import InvalidFilterError

from .dates import is_date_range, is_relative_date, parse_date_range, parse_relative_date
from .models import (
    Combinator,
    CompiledLexicalFilter,
    CompiledVectorFilter,
    FilterField,
    FilterGroup,
    FilterLeaf,
    FilterNode,
    FilterOperator,
)

logger = logging.getLogger(__name__)

__all__ = ["FilterCompiler", "FilterInput", "matches_where"]

FilterInput = FilterLeaf | FilterGroup | Sequence[FilterLeaf | FilterGroup]

_NODE_ADAPTER: TypeAdapter[FilterLeaf | FilterGroup] = TypeAdapter(FilterNode)
_NODES_ADAPTER: TypeAdapter[list[FilterLeaf | FilterGroup]] = TypeAdapter(list[FilterNode])

_SQL_OPERATORS = {
    FilterOperator.EQ: "=",
    FilterOperator.NE: "!=",
    FilterOperator.GT: ">",
    FilterOperator.LT: "<",
    FilterOperator.GTE: ">=",
    FilterOperator.LTE: "<=",
}

_VECTOR_OPERATORS = {
    FilterOperator.EQ: "$eq",
    FilterOperator.NE: "$ne",
    FilterOperator.GT: "$gt",
    FilterOperator.LT: "$lt",
    FilterOperator.GTE: "$gte",
    FilterOperator.LTE: "$lte",
    FilterOperator.IN: "$in",
}


class FilterCompiler:
    """
    Validates and compiles filter trees.

    Callers must check ``validate`` before compiling external input.

    Example:
        >>> compiler = FilterCompiler()
        >>> leaf = FilterLeaf(field="title", operator="contains", value="OAuth")
        >>> compiler.compile_lexical(leaf)
        CompiledLexicalFilter(fragment="title LIKE ? ESCAPE '\\\\'", params=['%OAuth%'])
    """

    # --- Validation ---

    def validate(self, node: Any) -> bool:
        """
        Check field allow-list and group combinators, recursively.

        Accepts model trees, lists of nodes, or raw external input.
        Never raises.
        """
        try:
            parsed = self.parse(node)
        except InvalidFilterError as e:
            logger.warning("Invalid filter: %s", e.message)
            return False

        nodes = parsed if isinstance(parsed, list) else [parsed]
        return all(self._validate_node(n) for n in nodes)

    def _validate_node(self, node: FilterLeaf | FilterGroup) -> bool:
        if isinstance(node, FilterGroup):
            if not isinstance(node.combinator, Combinator):
                return False
            return all(self._validate_node(child) for child in node.children)
        if not isinstance(node.field, FilterField):
            logger.warning("Invalid field in filter: %s", node.field)
            return False
        return isinstance(node.operator, FilterOperator)

    def parse(self, raw: Any) -> FilterLeaf | FilterGroup | list[FilterLeaf | FilterGroup]:
        """
        Turn external input into a tagged filter tree.

        Raises:
            InvalidFilterError: Unknown field, operator or combinator, or bad shape
        """
        if isinstance(raw, (FilterLeaf, FilterGroup)):
            return raw
        try:
            if isinstance(raw, Mapping):
                return _NODE_ADAPTER.validate_python(dict(raw))
            if isinstance(raw, Sequence) and not isinstance(raw, (str, bytes)):
                return _NODES_ADAPTER.validate_python(list(raw))
        except PydanticValidationError as e:
            raise InvalidFilterError(
                "Invalid filter",
                {"errors": e.errors(include_url=False, include_context=False)},
            ) from e
        raise InvalidFilterError("Filter must be an object or a list of objects")

    # --- Lexical ---

    def compile_lexical(self, node: FilterInput | None) -> CompiledLexicalFilter:
        """Build a parameterized predicate. A list of nodes is an AND group."""
        if node is None:
            return CompiledLexicalFilter()
        fragment, params = self._lexical(_as_node(node))
        return CompiledLexicalFilter(fragment=fragment, params=params)

    def _lexical(self, node: FilterLeaf | FilterGroup) -> tuple[str, list[Any]]:
        if isinstance(node, FilterGroup):
            return self._lexical_group(node)
        return self._lexical_leaf(node)

    def _lexical_leaf(self, leaf: FilterLeaf) -> tuple[str, list[Any]]:
        column = leaf.field.column
        operator = leaf.operator
        value = resolve_date_value(leaf)

        if operator in _SQL_OPERATORS:
            fragment = f"{column} {_SQL_OPERATORS[operator]} ?"
            params = [value]
        elif operator is FilterOperator.IN:
            options = _in_values(value)
            if options is None:
                return "", []
            fragment = f"{column} IN ({','.join('?' for _ in options)})"
            params = options
        elif operator is FilterOperator.CONTAINS:
            fragment = f"{column} LIKE ? ESCAPE '\\'"
            params = [f"%{_escape_like(str(value))}%"]
        elif operator is FilterOperator.REGEX:
            fragment = f"{column} REGEXP ?"
            params = [value]
        elif operator is FilterOperator.BETWEEN:
            if not _is_list(value) or len(value) != 2:
                return "", []
            fragment = f"{column} BETWEEN ? AND ?"
            params = list(value)
        else:
            raise InvalidFilterError(f"Unknown operator: {operator}")

        if leaf.negate:
            fragment = f"NOT ({fragment})"
        return fragment, params

    def _lexical_group(self, group: FilterGroup) -> tuple[str, list[Any]]:
        parts: list[str] = []
        params: list[Any] = []
        for child in group.children:
            fragment, child_params = self._lexical(child)
            if fragment:
                parts.append(fragment)
                params.extend(child_params)

        if not parts:
            return "", []

        fragment = parts[0] if len(parts) == 1 else "(" + f" {group.combinator.value} ".join(parts) + ")"
        if group.negate:
            fragment = f"NOT ({fragment})"
        return fragment, params

    # --- Vector ---

    def compile_vector_filter(self, node: FilterInput | None) -> CompiledVectorFilter:
        """
        Build a vector-store metadata filter.

        contains/regex/between leaves are dropped and the result is flagged
        partial so the caller post-filters.
        """
        if node is None:
            return CompiledVectorFilter()
        unsupported: list[FilterLeaf] = []
        where = self._vector(_as_node(node), unsupported)
        if unsupported:
            logger.debug(
                "Vector filter partial: dropped %d leaf(s) with unsupported operators",
                len(unsupported),
            )
        return CompiledVectorFilter(where=where, had_unsupported_operator=bool(unsupported))

    def _vector(
        self, node: FilterLeaf | FilterGroup, unsupported: list[FilterLeaf]
    ) -> dict[str, Any] | None:
        if isinstance(node, FilterGroup):
            conditions = [
                condition
                for condition in (self._vector(child, unsupported) for child in node.children)
                if condition is not None
            ]
            if not conditions:
                return None
            key = "$and" if node.combinator is Combinator.AND else "$or"
            result = conditions[0] if len(conditions) == 1 else {key: conditions}
            return {"$not": result} if node.negate else result

        if not node.operator.vector_supported:
            unsupported.append(node)
            return None

        value = resolve_date_value(node)
        if node.operator is FilterOperator.IN:
            value = _in_values(value)
            if value is None:
                return None
        condition = {node.field.value: {_VECTOR_OPERATORS[node.operator]: value}}
        return {"$not": condition} if node.negate else condition

    # --- Evaluation ---

    def matches(self, node: FilterInput | None, record: Mapping[str, Any]) -> bool:
        """
        Evaluate the full tree against one unit record.

        ``record`` holds column values as the lexical store sees them. Leaves
        that compile to no constraint are ignored, as in ``compile_lexical``.
        """
        if node is None:
            return True
        outcome = self._evaluate(_as_node(node), record)
        return True if outcome is None else outcome

    def _evaluate(self, node: FilterLeaf | FilterGroup, record: Mapping[str, Any]) -> bool | None:
        if isinstance(node, FilterGroup):
            outcomes = [
                outcome
                for outcome in (self._evaluate(child, record) for child in node.children)
                if outcome is not None
            ]
            if not outcomes:
                return None
            result = all(outcomes) if node.combinator is Combinator.AND else any(outcomes)
            return not result if node.negate else result

        result = _evaluate_leaf(node, record.get(node.field.column))
        if result is None:
            return None
        return not result if node.negate else result


def matches_where(where: Mapping[str, Any] | None, metadata: Mapping[str, Any]) -> bool:
    """Evaluate a compiled vector filter against one metadata mapping."""
    if not where:
        return True
    for key, condition in where.items():
        if key == "$and":
            ok = all(matches_where(c, metadata) for c in condition)
        elif key == "$or":
            ok = any(matches_where(c, metadata) for c in condition)
        elif key == "$not":
            ok = not matches_where(condition, metadata)
        else:
            ok = all(
                _compare(metadata.get(key), op, operand) for op, operand in condition.items()
            )
        if not ok:
            return False
    return True


def resolve_date_value(leaf: FilterLeaf) -> Any:
    """Resolve ``last N days`` and ``A to B`` values on date fields to ISO strings."""
    value = leaf.value
    if not leaf.field.is_date or not isinstance(value, str):
        return value
    if leaf.operator is FilterOperator.BETWEEN and is_date_range(value):
        date_range = parse_date_range(value)
        return [date_range.start.isoformat(), date_range.end.isoformat()]
    if is_relative_date(value):
        return parse_relative_date(value).isoformat()
    return value


def _as_node(node: FilterInput) -> FilterLeaf | FilterGroup:
    if isinstance(node, (FilterLeaf, FilterGroup)):
        return node
    return FilterGroup(combinator=Combinator.AND, children=tuple(node))


def _is_list(value: Any) -> bool:
    return isinstance(value, (list, tuple))


def _in_values(value: Any) -> list[Any] | None:
    """Options of an `in` leaf. A scalar is a one-element list; an empty list is no constraint."""
    if not _is_list(value):
        return [value]
    return list(value) or None


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _evaluate_leaf(leaf: FilterLeaf, actual: Any) -> bool | None:
    operator = leaf.operator
    value = resolve_date_value(leaf)

    if operator in _SQL_OPERATORS:
        return _compare(actual, _VECTOR_OPERATORS[operator], value)
    if operator is FilterOperator.IN:
        options = _in_values(value)
        if options is None:
            return None
        return _compare(actual, "$in", options)
    if operator is FilterOperator.CONTAINS:
        if actual is None:
            return False
        # LIKE is case-insensitive for ASCII
        return str(value).lower() in str(actual).lower()
    if operator is FilterOperator.REGEX:
        if actual is None:
            return False
        try:
            return re.search(str(value), str(actual)) is not None
        except re.error:
            return False
    if operator is FilterOperator.BETWEEN:
        if not _is_list(value) or len(value) != 2:
            return None
        return _compare(actual, "$gte", value[0]) and _compare(actual, "$lte", value[1])
    return False


def _compare(actual: Any, op: str, operand: Any) -> bool:
    if op == "$in":
        return actual in operand
    if op == "$eq":
        return actual == operand
    if op == "$ne":
        return actual != operand
    if actual is None or operand is None:
        return False
    try:
        if op == "$gt":
            return actual > operand
        if op == "$gte":
            return actual >= operand
        if op == "$lt":
            return actual < operand
        if op == "$lte":
            return actual <= operand
    except TypeError:
        return False
    return False
