"""
Filters Domain - Structured search constraints.

This domain handles:
- Filter predicate trees (leaf / group)
- Field allow-list validation
- Compilation to lexical (parameterized SQL) and vector (metadata) filters
- Date expressions and built-in presets
"""

from .compiler import FilterCompiler, matches_where
from .dates import parse_date, parse_date_range, parse_relative_date
from .models import (
    Combinator,
    CompiledLexicalFilter,
    CompiledVectorFilter,
    DateRange,
    FilterField,
    FilterGroup,
    FilterLeaf,
    FilterNode,
    FilterOperator,
    FilterPreset,
)
from .presets import BUILTIN_PRESETS, get_preset, list_presets

__all__ = [
    # Models
    "FilterField",
    "FilterOperator",
    "Combinator",
    "FilterLeaf",
    "FilterGroup",
    "FilterNode",
    "CompiledLexicalFilter",
    "CompiledVectorFilter",
    "DateRange",
    "FilterPreset",
    # Compiler
    "FilterCompiler",
    "matches_where",
    # Dates
    "parse_date",
    "parse_relative_date",
    "parse_date_range",
    # Presets
    "BUILTIN_PRESETS",
    "get_preset",
    "list_presets",
]
