"""
Filter Presets - Built-in named filter combinations.
"""

from __future__ import annotations

from .models import FilterLeaf, FilterPreset

__all__ = ["BUILTIN_PRESETS", "get_preset", "list_presets"]


BUILTIN_PRESETS: tuple[FilterPreset, ...] = (
    FilterPreset(
        id="recent-code",
        name="Recent Code Insights",
        description="Code-related insights from the last 30 days",
        filters=(
            FilterLeaf(field="category", operator="=", value="programming"),
            FilterLeaf(field="type", operator="=", value="insight"),
            FilterLeaf(field="created", operator=">", value="last 30 days"),
        ),
        facets=("type", "tags"),
    ),
    FilterPreset(
        id="unanswered-questions",
        name="Unanswered Questions",
        description="Questions that might need follow-up",
        filters=(FilterLeaf(field="type", operator="=", value="question"),),
        facets=("category", "tags"),
    ),
    FilterPreset(
        id="all-decisions",
        name="All Decisions",
        description="Important decisions and their context",
        filters=(FilterLeaf(field="type", operator="=", value="decision"),),
        facets=("category", "timestamp"),
    ),
    FilterPreset(
        id="recent-design",
        name="Recent Design Work",
        description="Design-related content from the last 60 days",
        filters=(
            FilterLeaf(field="category", operator="=", value="design"),
            FilterLeaf(field="created", operator=">", value="last 60 days"),
        ),
        facets=("type", "tags"),
    ),
    FilterPreset(
        id="typescript-only",
        name="TypeScript Content",
        description="All content related to TypeScript",
        filters=(FilterLeaf(field="tags", operator="contains", value="typescript"),),
        facets=("category", "type"),
    ),
    FilterPreset(
        id="exclude-incomplete",
        name="Exclude Incomplete Items",
        description="Hide incomplete and draft items",
        filters=(
            FilterLeaf(
                field="tags",
                operator="in",
                value=["draft", "incomplete", "todo"],
                negate=True,
            ),
        ),
        facets=("category", "type"),
    ),
)

_BY_ID = {preset.id: preset for preset in BUILTIN_PRESETS}


def get_preset(preset_id: str) -> FilterPreset | None:
    """Look up a built-in preset by id."""
    return _BY_ID.get(preset_id)


def list_presets() -> list[FilterPreset]:
    return list(BUILTIN_PRESETS)
