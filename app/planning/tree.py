"""Goal tree normalization: bound, de-duplicate and filter candidate plans.

Raw planner output (strings, dicts with ``prompt``/``title``/``children`` or
``childGoals``, or already-built :class:`PlanNode` objects) becomes a tree of
``PlanNode`` objects that never exceeds the depth and node limits.  Excess
input is dropped silently so an over-eager model still yields a usable plan.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from app.core.state import Goal, GoalTreeNode, PlanNode
from app.planning.heuristics import derive_title, is_programmatic_verification_step

MAX_PLAN_DEPTH = 4
MAX_PLAN_NODES = 40
NEAR_DUPLICATE_RATIO = 0.6


@dataclass
class PlanBudget:
    """Depth and node limits shared by every level of one normalization."""
    max_depth: int = MAX_PLAN_DEPTH
    max_nodes: int = MAX_PLAN_NODES
    count: int = 0

    @property
    def exhausted(self) -> bool:
        return self.count >= self.max_nodes


def _read_entry(entry: Any) -> tuple[str, str, list[Any]]:
    """Return ``(prompt, title, child_entries)`` for any accepted entry shape."""
    if isinstance(entry, PlanNode):
        return entry.prompt.strip(), entry.title.strip(), list(entry.children)
    if isinstance(entry, str):
        return entry.strip(), "", []
    if isinstance(entry, Mapping):
        prompt = entry.get("prompt")
        title = entry.get("title")
        children = entry.get("children")
        if not isinstance(children, list):
            children = entry.get("childGoals")
        return (
            prompt.strip() if isinstance(prompt, str) else "",
            title.strip() if isinstance(title, str) else "",
            children if isinstance(children, list) else [],
        )
    return "", "", []


def _splice(nodes: list[PlanNode], seen: set[str], node: PlanNode) -> None:
    # A promoted node that repeats a prompt already at this level is itself
    # dropped, but its own children keep moving up.
    if node.prompt in seen:
        for child in node.children:
            _splice(nodes, seen, child)
        return
    seen.add(node.prompt)
    nodes.append(node)


def _normalize_level(entries: Any, depth: int, budget: PlanBudget) -> list[PlanNode]:
    if not isinstance(entries, Sequence) or isinstance(entries, str) or not entries:
        return []
    if depth > budget.max_depth:
        return []

    nodes: list[PlanNode] = []
    seen: set[str] = set()

    for entry in entries:
        if budget.exhausted:
            break

        prompt, title, child_entries = _read_entry(entry)
        keep = bool(prompt) and not is_programmatic_verification_step(prompt) and prompt not in seen

        ordinal = 0
        if keep:
            # Reserve the slot before descending so the parent always fits.
            seen.add(prompt)
            budget.count += 1
            ordinal = budget.count

        children = _normalize_level(child_entries, depth + 1, budget)

        if not keep:
            for child in children:
                _splice(nodes, seen, child)
            continue

        nodes.append(PlanNode(
            prompt=prompt,
            title=title or derive_title(prompt, fallback=f"Goal {ordinal}"),
            children=children,
        ))

    return nodes


def normalize_tree(
    entries: Any,
    max_depth: int = MAX_PLAN_DEPTH,
    max_nodes: int = MAX_PLAN_NODES,
) -> list[PlanNode]:
    """Normalize raw plan entries into a bounded tree of :class:`PlanNode`.

    - prompts are trimmed; entries with neither prompt nor children vanish
    - test-only steps ("Run the unit tests") are dropped, children promoted
    - a prompt repeated at the same level is dropped, children promoted
    - missing titles are derived from the prompt
    """
    return _normalize_level(entries, 1, PlanBudget(max_depth=max_depth, max_nodes=max_nodes))


def count_plan_nodes(nodes: Iterable[PlanNode]) -> int:
    return sum(1 + count_plan_nodes(node.children) for node in nodes)


def plan_depth(nodes: Iterable[PlanNode]) -> int:
    return max((1 + plan_depth(node.children) for node in nodes), default=0)


# ── Low-information plans ─────────────────────────────────────────────

_COMPOUND_RE = re.compile(r"\b(?:and|with|plus|also|including|include)\b|[,;]")


def normalize_for_comparison(value: str | None) -> str:
    text = re.sub(r"[^a-z0-9\s]", " ", (value or "").lower())
    return re.sub(r"\s+", " ", text).strip()


def is_near_duplicate_plan(parent_prompt: str, child_prompt: str) -> bool:
    """True when one prompt contains the other and their lengths are close."""
    parent = normalize_for_comparison(parent_prompt)
    child = normalize_for_comparison(child_prompt)
    if not parent or not child:
        return False
    if child not in parent and parent not in child:
        return False
    shorter, longer = sorted((len(parent), len(child)))
    return shorter / longer >= NEAR_DUPLICATE_RATIO


def is_compound_prompt(prompt: str | None) -> bool:
    """True when the request joins several asks ("X and Y", "X, Y; Z")."""
    text = (prompt or "").strip().lower()
    if not normalize_for_comparison(text):
        return False
    return bool(_COMPOUND_RE.search(text))


def is_low_information_plan(prompt: str, plan: Sequence[PlanNode]) -> bool:
    """A plan that failed to decompose the request.

    Empty plans qualify, as does a single leaf that merely restates the
    request or leaves a compound request undivided.
    """
    if not plan:
        return True
    if len(plan) > 1:
        return False
    only = plan[0]
    if only.children:
        return False
    return is_near_duplicate_plan(prompt, only.prompt or only.title) or is_compound_prompt(prompt)


# ── Fixed plans ───────────────────────────────────────────────────────

def build_heuristic_child_plans(prompt: str | None) -> list[PlanNode]:
    """Three generic steps used when the model cannot produce a real plan."""
    subject = (prompt or "").strip() or "the requested feature"
    prompts = [
        f"Identify the components, routes, and behaviors needed for {subject}.",
        f"Build the UI components required for {subject}, including any reusable pieces.",
        f"Wire the new components into the app and ensure the behavior matches the request for {subject}.",
    ]
    return [
        PlanNode(prompt=text, title=derive_title(text, fallback=f"Child Goal {index}"))
        for index, text in enumerate(prompts, start=1)
    ]


def build_style_plan_entries(color: str | None) -> list[str]:
    """Branch, recolor, stage: the whole plan for a cosmetic request."""
    if color:
        recolor = f"Change the background color to {color} (CSS-only change; no tests required)."
    else:
        recolor = "Update the background color as requested (CSS-only change; no tests required)."
    return [
        "Create a branch for this change if needed.",
        recolor,
        "Stage the updated file(s).",
    ]


# ── Persisted tree reconstruction ─────────────────────────────────────

def goal_sort_key(goal: Goal) -> tuple:
    """Order by creation time, then id (numeric ids numerically, first)."""
    numeric = goal.id.isdigit()
    return (goal.created_at, 0 if numeric else 1, int(goal.id) if numeric else 0, goal.id)


def build_goal_tree(goals: Iterable[Goal], parent_id: str | None = None) -> list[GoalTreeNode]:
    """Nest a flat goal list.

    With *parent_id* the children of that goal are returned; otherwise every
    goal whose parent is absent from the list is a root.
    """
    nodes: dict[str, GoalTreeNode] = {}
    for goal in goals:
        data = goal.model_dump()
        data.pop("children", None)
        nodes[goal.id] = GoalTreeNode(**data)

    for node in nodes.values():
        if node.parent_goal_id and node.parent_goal_id in nodes:
            nodes[node.parent_goal_id].children.append(node)

    if parent_id is None:
        roots = [n for n in nodes.values() if not n.parent_goal_id or n.parent_goal_id not in nodes]
    else:
        parent = nodes.get(str(parent_id))
        roots = parent.children if parent else []

    def _sort(level: list[GoalTreeNode]) -> list[GoalTreeNode]:
        ordered = sorted(level, key=goal_sort_key)
        for item in ordered:
            item.children = _sort(item.children)
        return ordered

    return _sort(roots)
