"""Build goal metadata from a prompt and merge caller patches into it."""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from typing import Any

from app.core.state import GoalMetadata
from app.planning.heuristics import (
    dedupe,
    extract_acceptance_criteria,
    extract_clarifying_questions,
    extract_selected_project_assets,
    is_style_only_prompt,
    normalize_clarifying_questions,
)

StyleClassifier = Callable[[str], bool]


def build_goal_metadata(
    prompt: str,
    extra_clarifying_questions: Iterable[str] = (),
    style_classifier: StyleClassifier = is_style_only_prompt,
) -> GoalMetadata:
    """Derive acceptance criteria, clarifying questions and the style flag.

    *extra_clarifying_questions* (e.g. questions returned by the planner) are
    appended after the heuristic ones.  Items under a ``Selected project
    assets:`` header are kept as ``extra["selectedAssets"]``.
    """
    text = prompt or ""
    acceptance = extract_acceptance_criteria(text)
    auto_questions = extract_clarifying_questions(text, acceptance)
    questions = normalize_clarifying_questions([*auto_questions, *extra_clarifying_questions])
    assets = extract_selected_project_assets(text)
    return GoalMetadata(
        acceptance_criteria=acceptance,
        clarifying_questions=questions,
        style_only=bool(style_classifier(text)),
        extra={"selectedAssets": assets} if assets else {},
    )


def _merged_style_flag(base: GoalMetadata, patch: Mapping[str, Any] | GoalMetadata, incoming: GoalMetadata) -> bool:
    if isinstance(patch, GoalMetadata):
        return base.style_only or patch.style_only
    if "style_only" in incoming.model_fields_set:
        return incoming.style_only
    return base.style_only


def merge_goal_metadata(
    base: GoalMetadata,
    patch: Mapping[str, Any] | GoalMetadata | None,
) -> GoalMetadata:
    """Merge *patch* over *base* without dropping accumulated lists.

    Acceptance criteria and clarifying questions are unioned (base first).
    Other keys named by a mapping patch win.  A ``GoalMetadata`` patch can
    set the style flag but never clears it.  A suppression flag in the merged
    result empties the clarifying questions.
    """
    if patch is None:
        return base.model_copy(deep=True)
    incoming = GoalMetadata.from_mapping(patch)

    merged = GoalMetadata(
        acceptance_criteria=dedupe([*base.acceptance_criteria, *incoming.acceptance_criteria]),
        clarifying_questions=dedupe([*base.clarifying_questions, *incoming.clarifying_questions]),
        style_only=_merged_style_flag(base, patch, incoming),
        extra={**base.extra, **incoming.extra},
    )
    if merged.suppresses_clarifying_questions:
        merged.clarifying_questions = []
    return merged
