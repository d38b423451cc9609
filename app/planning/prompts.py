"""Message construction for the planner and clarifier model calls."""

from __future__ import annotations

from app.agents.models import GenerationOptions, load_system_prompt
from app.core.config import get_settings

CONTEXT_UNAVAILABLE = "Project context is unavailable."

_RESPONSE_SHAPE = (
    "Respond with JSON shaped like "
    '{ "parentTitle": "Short summary (<=10 words)", '
    '"questions": ["Optional clarifying question"], '
    '"childGoals": [ { "title": "Short label (<=8 words)", '
    '"prompt": "Detailed implementation instructions", "children": [ ... ] } ] }.'
)


def build_planner_messages(
    prompt: str,
    project_context: str = "",
    project_snapshot: str = "",
    strict: bool = False,
) -> list[dict[str, str]]:
    sections = [load_system_prompt("planner")]

    if project_context:
        sections.append(
            f"Project context:\n{project_context}\n"
            "Use the project context above only to refine or map generic goals when helpful."
        )
    else:
        sections.append(CONTEXT_UNAVAILABLE)

    if project_snapshot:
        sections.append(
            f"Project snapshot:\n{project_snapshot}\n"
            "Use the snapshot to map generic goals to concrete files/components "
            "only when it clearly improves accuracy."
        )

    if strict:
        sections.append(load_system_prompt("planner_strict"))

    sections.append(_RESPONSE_SHAPE)

    return [
        {"role": "system", "content": "\n\n".join(sections)},
        {"role": "user", "content": f'Plan work for this request: "{prompt}"'},
    ]


def build_clarifier_messages(prompt: str, project_context: str = "") -> list[dict[str, str]]:
    user_content = "\n".join([
        "Project context:",
        project_context or "Unavailable",
        "",
        f'User request: "{prompt}"',
    ])
    return [
        {"role": "system", "content": load_system_prompt("clarifier")},
        {"role": "user", "content": user_content},
    ]


def planner_options() -> GenerationOptions:
    settings = get_settings()
    return GenerationOptions(
        role="planner",
        max_tokens=settings.planner_max_tokens,
        temperature=settings.planner_temperature,
        phase="meta_goal_planning",
        request_type="plan_meta_goals",
    )


def clarifier_options() -> GenerationOptions:
    settings = get_settings()
    return GenerationOptions(
        role="clarifier",
        max_tokens=settings.clarifier_max_tokens,
        temperature=settings.clarifier_temperature,
        phase="meta_goal_clarification",
        request_type="clarification_questions",
    )
