"""Goal orchestrator: the entry point for goal creation, planning and lifecycle.

Planning runs as a small LangGraph workflow:

    resolve ─┬─ existing children ──────────────────────────────► END
             ├─ style-only ──► style_plan ───────────┐
             └─ otherwise ───► context ► llm_plan ► clarify ─► checkpoint ─┬─► persist ► END
                                                                           └─ cancelled ► END

Durable state lives in the goal store; the orchestrator keeps none between
calls.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from typing import Any

from langgraph.graph import END, StateGraph
from pydantic import BaseModel, Field

from app.agents.models import ChatModelClient, LanguageModelClient
from app.core.cancellation import CancellationToken
from app.core.config import get_settings
from app.core.errors import (
    GoalBranchError,
    GoalNotFoundError,
    GoalValidationError,
    PlanningCancelledError,
    PlanningResponseError,
    ProjectMismatchError,
    UnknownGoalStateError,
    UnknownPhaseError,
)
from app.core.events import emit_error, emit_goal_created, emit_plan, emit_status, emit_transition
from app.core.lifecycle import (
    assert_goal_transition,
    assert_phase_transition,
    is_goal_phase,
    is_goal_state,
)
from app.core.logging import get_logger
from app.core.state import (
    Goal,
    GoalLifecycleState,
    GoalMetadata,
    GoalPhase,
    GoalTask,
    GoalTree,
    GoalTreeNode,
    GoalWithTasks,
    PlanNode,
    PlanningState,
    PlanResult,
    TaskType,
)
from app.core.verification import TestRunCoordinator
from app.planning.heuristics import (
    derive_title,
    extract_style_color,
    is_style_only_prompt,
    normalize_clarifying_questions,
)
from app.planning.json_recovery import recover_json
from app.planning.metadata import build_goal_metadata, merge_goal_metadata
from app.planning.prompts import (
    build_clarifier_messages,
    build_planner_messages,
    clarifier_options,
    planner_options,
)
from app.planning.tree import (
    build_goal_tree,
    build_heuristic_child_plans,
    build_style_plan_entries,
    count_plan_nodes,
    goal_sort_key,
    is_low_information_plan,
    normalize_tree,
)
from infra.git import GitClient
from infra.goal_store import DeleteResult, GoalStore
from infra.jobs import JobRunner
from infra.project_context import ProjectContextProvider

logger = get_logger("core.orchestrator")

MISMATCH_MESSAGE = "Child goal must use same project_id as parent"


class PlannerReply(BaseModel):
    """A planning reply after JSON recovery and normalization."""
    parent_title: str = ""
    questions: list[str] = Field(default_factory=list)
    plan: list[PlanNode] = Field(default_factory=list)


def _require(value: Any, message: str) -> None:
    if value is None or (isinstance(value, str) and not value.strip()):
        raise GoalValidationError(message)


def _plan_outline(nodes: Sequence[PlanNode], depth: int = 0) -> str:
    lines: list[str] = []
    for node in nodes:
        lines.append(f"{'  ' * depth}- {node.title}")
        if node.children:
            lines.append(_plan_outline(node.children, depth + 1))
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# Planning workflow
# ---------------------------------------------------------------------------


class _PlanningWorkflow:
    """Graph nodes and routes for a single planning call."""

    def __init__(self, orchestrator: GoalOrchestrator, cancellation_token: CancellationToken | None) -> None:
        self._orch = orchestrator
        self._token = cancellation_token

    # ── Nodes ─────────────────────────────────────────────────────────

    def resolve_node(self, state: PlanningState) -> dict:
        style_only = bool(self._orch.style_classifier(state.prompt))
        if state.goal_id is None:
            return {"style_only": style_only}

        parent = self._orch._load_parent(state.project_id, state.goal_id)
        goals = self._orch.store.list_goals(state.project_id)
        existing = build_goal_tree(goals, parent.id)
        if existing:
            logger.info("Goal %s already has %d children; returning them", parent.id, len(existing))
            return {
                "parent": parent,
                "existing_children": existing,
                "children": existing,
                "questions": list(parent.metadata.clarifying_questions),
                "stop_reason": "existing_children",
            }
        return {"parent": parent, "style_only": style_only}

    def style_plan_node(self, state: PlanningState) -> dict:
        color = extract_style_color(state.prompt)
        settings = get_settings()
        plan = normalize_tree(
            build_style_plan_entries(color), settings.max_plan_depth, settings.max_plan_nodes
        )
        emit_plan("planner", _plan_outline(plan), count_plan_nodes(plan), style_only=True)
        return {"plan": plan}

    def context_node(self, state: PlanningState) -> dict:
        context, snapshot = self._orch._gather_project_context(state.project_id)
        return {"project_context": context, "project_snapshot": snapshot}

    def llm_plan_node(self, state: PlanningState) -> dict:
        orch = self._orch
        reply = orch._request_plan(state.prompt, state.project_context, state.project_snapshot, strict=False)
        used_fallback = False

        if is_low_information_plan(state.prompt, reply.plan):
            logger.info("Plan for %r is low-information; retrying with strict instructions", state.prompt[:80])
            emit_status("planner", "Plan too thin, retrying with stricter instructions")
            try:
                reply = orch._request_plan(state.prompt, state.project_context, state.project_snapshot, strict=True)
            except Exception as exc:
                logger.warning("Strict planning retry failed: %s", exc)
                emit_status("planner", "Strict retry failed, using heuristic plan", error=str(exc))
                reply = PlannerReply(
                    parent_title=reply.parent_title,
                    questions=reply.questions,
                    plan=build_heuristic_child_plans(state.prompt),
                )
                used_fallback = True

        emit_plan("planner", _plan_outline(reply.plan), count_plan_nodes(reply.plan), fallback=used_fallback)
        return {
            "parent_title": reply.parent_title,
            "questions": reply.questions,
            "plan": reply.plan,
            "used_fallback_plan": used_fallback,
        }

    def clarify_node(self, state: PlanningState) -> dict:
        if state.questions or get_settings().deterministic_planning:
            return {"questions": state.questions}
        try:
            questions = self._orch.request_clarification_questions(state.prompt, state.project_context)
        except Exception as exc:
            logger.warning("Clarification question generation failed: %s", exc)
            return {"questions": []}
        return {"questions": questions}

    def checkpoint_node(self, state: PlanningState) -> dict:
        if self._token is not None and self._token.is_cancelled:
            logger.info("Planning for project %s cancelled before persistence", state.project_id)
            return {"stop_reason": "cancelled"}
        return {"stop_reason": ""}

    def persist_node(self, state: PlanningState) -> dict:
        tree = self._orch._create_goal_tree(
            project_id=state.project_id,
            prompt=state.prompt,
            entries=state.plan,
            parent_goal_id=state.parent.id if state.parent else None,
            parent_title=state.parent_title or None,
            parent_questions=state.questions,
            metadata_overrides=state.metadata_overrides,
        )
        return {"parent": tree.parent, "children": tree.children}

    # ── Routes ────────────────────────────────────────────────────────

    @staticmethod
    def route_after_resolve(state: PlanningState) -> str:
        if state.stop_reason == "existing_children":
            return "done"
        return "style_plan" if state.style_only else "context"

    @staticmethod
    def route_after_checkpoint(state: PlanningState) -> str:
        return "stopped" if state.stop_reason == "cancelled" else "persist"

    def build_graph(self) -> StateGraph:
        graph = StateGraph(PlanningState)

        graph.add_node("resolve", self.resolve_node)
        graph.add_node("style_plan", self.style_plan_node)
        graph.add_node("context", self.context_node)
        graph.add_node("llm_plan", self.llm_plan_node)
        graph.add_node("clarify", self.clarify_node)
        graph.add_node("checkpoint", self.checkpoint_node)
        graph.add_node("persist", self.persist_node)

        graph.set_entry_point("resolve")
        graph.add_conditional_edges(
            "resolve",
            self.route_after_resolve,
            {"done": END, "style_plan": "style_plan", "context": "context"},
        )
        graph.add_edge("style_plan", "checkpoint")
        graph.add_edge("context", "llm_plan")
        graph.add_edge("llm_plan", "clarify")
        graph.add_edge("clarify", "checkpoint")
        graph.add_conditional_edges(
            "checkpoint",
            self.route_after_checkpoint,
            {"persist": "persist", "stopped": END},
        )
        graph.add_edge("persist", END)
        return graph


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------


class GoalOrchestrator:
    """Creates, plans and advances goals on top of an external goal store.

    Args:
        store:            goal / task persistence (required).
        llm_client:       language-model client; defaults to a LangChain chat client.
        job_runner:       executes test commands for :meth:`run_tests_for_goal`.
        context_provider: optional project context for planning prompts.
        git_client:       optional git collaborator for :meth:`ensure_goal_branch`.
        style_classifier: decides whether a prompt is a cosmetic-only change.
    """

    def __init__(
        self,
        store: GoalStore,
        llm_client: LanguageModelClient | None = None,
        job_runner: JobRunner | None = None,
        context_provider: ProjectContextProvider | None = None,
        git_client: GitClient | None = None,
        style_classifier: Callable[[str], bool] = is_style_only_prompt,
    ) -> None:
        self.store = store
        self.llm_client = llm_client if llm_client is not None else ChatModelClient()
        self.context_provider = context_provider
        self.git_client = git_client
        self.style_classifier = style_classifier
        self.test_runs = TestRunCoordinator(store, job_runner)

    # ── Creation ──────────────────────────────────────────────────────

    def _create_goal_with_tasks(
        self,
        project_id: str,
        prompt: str,
        title: str | None = None,
        parent_goal_id: str | None = None,
        extra_clarifying_questions: Sequence[str] = (),
        metadata_override: Mapping[str, Any] | None = None,
        branch_name: str | None = None,
    ) -> GoalWithTasks:
        _require(project_id, "project_id is required")
        if not isinstance(prompt, str):
            raise GoalValidationError("prompt is required")
        _require(prompt, "prompt is required")

        metadata = build_goal_metadata(prompt, extra_clarifying_questions, self.style_classifier)
        if metadata_override:
            metadata = merge_goal_metadata(metadata, metadata_override)

        goal_title = title.strip() if isinstance(title, str) and title.strip() else derive_title(prompt.strip())

        goal = self.store.create_goal(
            project_id=str(project_id),
            prompt=prompt,
            title=goal_title,
            parent_goal_id=parent_goal_id,
            metadata=metadata,
            branch_name=branch_name,
        )

        if metadata.clarifying_questions:
            self.store.create_goal_task(
                goal.id,
                TaskType.CLARIFICATION,
                "Clarify goal requirements",
                {"prompt": prompt, "questions": list(metadata.clarifying_questions)},
            )
        else:
            payload: dict[str, Any] = {"prompt": prompt}
            if metadata.acceptance_criteria:
                payload["acceptanceCriteria"] = list(metadata.acceptance_criteria)
            self.store.create_goal_task(goal.id, TaskType.ANALYSIS, "Analyse goal and propose plan", payload)

        emit_goal_created(goal.id, goal.project_id, goal.title, goal.parent_goal_id)
        return GoalWithTasks(goal=goal, tasks=self.store.list_goal_tasks(goal.id))

    def create_goal_from_prompt(
        self,
        project_id: str,
        prompt: str,
        title: str | None = None,
        extra_clarifying_questions: Sequence[str] = (),
        metadata: Mapping[str, Any] | None = None,
    ) -> GoalWithTasks:
        """Create a root goal at phase ``planning`` with one seed task."""
        return self._create_goal_with_tasks(
            project_id,
            prompt,
            title=title,
            extra_clarifying_questions=extra_clarifying_questions,
            metadata_override=metadata,
        )

    def create_child_goal(
        self,
        project_id: str,
        parent_goal_id: str,
        prompt: str,
        title: str | None = None,
        extra_clarifying_questions: Sequence[str] = (),
        metadata: Mapping[str, Any] | None = None,
    ) -> Goal:
        """Create a goal under an existing parent of the same project."""
        _require(project_id, "project_id is required")
        _require(parent_goal_id, "parent_goal_id is required")
        normalized = prompt.strip() if isinstance(prompt, str) else ""
        _require(normalized, "prompt is required")

        parent = self._load_parent(project_id, parent_goal_id)
        created = self._create_goal_with_tasks(
            project_id,
            normalized,
            title=title,
            parent_goal_id=parent.id,
            extra_clarifying_questions=extra_clarifying_questions,
            metadata_override=metadata,
            branch_name=parent.branch_name,
        )
        return created.goal

    def _load_parent(self, project_id: str, parent_goal_id: str) -> Goal:
        parent = self.store.get_goal(parent_goal_id)
        if parent is None:
            raise GoalNotFoundError("Parent goal not found", goal_id=str(parent_goal_id))
        if str(parent.project_id) != str(project_id):
            raise ProjectMismatchError(MISMATCH_MESSAGE)
        return parent

    def _existing_children(self, project_id: str, parent_id: str) -> list[GoalTreeNode]:
        return build_goal_tree(self.store.list_goals(project_id), parent_id)

    def _create_goal_tree(
        self,
        project_id: str,
        prompt: str,
        entries: Sequence[Any],
        parent_goal_id: str | None = None,
        parent_title: str | None = None,
        parent_questions: Sequence[str] = (),
        metadata_overrides: Mapping[str, Mapping[str, Any]] | None = None,
    ) -> GoalTree:
        settings = get_settings()
        plan = normalize_tree(list(entries), settings.max_plan_depth, settings.max_plan_nodes)
        overrides = metadata_overrides or {}

        if parent_goal_id is not None:
            parent = self._load_parent(project_id, parent_goal_id)
        else:
            parent = self._create_goal_with_tasks(
                project_id,
                prompt,
                title=parent_title,
                extra_clarifying_questions=parent_questions,
                metadata_override=overrides.get(prompt.strip()),
            ).goal

        # Re-check right before writing: a concurrent call may have won.
        existing = self._existing_children(project_id, parent.id)
        if existing:
            logger.info("Goal %s gained children concurrently; skipping persistence", parent.id)
            return GoalTree(parent=parent, children=existing)

        def create_node(node: PlanNode, parent_id: str) -> GoalTreeNode:
            child = self.create_child_goal(
                project_id,
                parent_id,
                node.prompt,
                title=node.title,
                metadata=overrides.get(node.prompt),
            )
            nested = [create_node(grandchild, child.id) for grandchild in node.children]
            return GoalTreeNode(**child.model_dump(), children=nested)

        children = [create_node(node, parent.id) for node in plan]
        logger.info("Persisted %d goals under %s", count_plan_nodes(plan), parent.id)
        return GoalTree(parent=parent, children=children)

    def create_meta_goal_with_children(
        self,
        project_id: str,
        prompt: str,
        child_prompts: Sequence[Any],
        parent_goal_id: str | None = None,
        parent_title: str | None = None,
    ) -> GoalTree:
        """Persist a parent goal and the given (possibly nested) child entries.

        Idempotent: if the parent already has children they are returned
        unchanged.
        """
        if not isinstance(child_prompts, Sequence) or isinstance(child_prompts, str):
            raise GoalValidationError("child_prompts must be a list")
        _require(project_id, "project_id is required")
        if parent_goal_id is None:
            _require(prompt, "prompt is required")
        return self._create_goal_tree(
            project_id=project_id,
            prompt=prompt or "",
            entries=child_prompts,
            parent_goal_id=parent_goal_id,
            parent_title=parent_title,
        )

    # ── Planning ──────────────────────────────────────────────────────

    def _gather_project_context(self, project_id: str) -> tuple[str, str]:
        provider = self.context_provider
        if provider is None:
            return "", ""
        try:
            context = provider.get_stack_context(project_id) or ""
            snapshot = provider.get_project_snapshot(project_id) or ""
        except Exception as exc:
            logger.warning("Project context unavailable for %s: %s", project_id, exc)
            return "", ""
        emit_status("planner", "Project context gathered", context_chars=len(context), snapshot_chars=len(snapshot))
        return context, snapshot

    def _request_plan(self, prompt: str, context: str, snapshot: str, strict: bool) -> PlannerReply:
        raw = self.llm_client.generate_response(
            build_planner_messages(prompt, context, snapshot, strict=strict),
            planner_options(),
        )
        logger.debug("Planner reply (%s): %d chars", "strict" if strict else "initial", len(raw or ""))

        parsed = recover_json(raw)
        if not isinstance(parsed, dict):
            logger.error("Failed to parse JSON from planning response")
            emit_error("planner", "LLM planning response was not valid JSON")
            raise PlanningResponseError("LLM planning response was not valid JSON")

        parent_title = parsed.get("parentTitle")
        questions = parsed.get("questions") or parsed.get("clarifyingQuestions") or []

        entries = parsed.get("childGoals")
        if not isinstance(entries, list):
            entries = parsed.get("childPrompts")
        if not isinstance(entries, list):
            logger.error("Planning response missing childGoals: %s", list(parsed))
            raise PlanningResponseError("LLM planning response missing childGoals array")
        if not entries:
            raise PlanningResponseError("LLM planning response has empty childGoals array")

        settings = get_settings()
        plan = normalize_tree(entries, settings.max_plan_depth, settings.max_plan_nodes)
        if not plan:
            raise PlanningResponseError("LLM planning produced no usable child prompts")

        return PlannerReply(
            parent_title=parent_title.strip() if isinstance(parent_title, str) else "",
            questions=normalize_clarifying_questions(questions),
            plan=plan,
        )

    def request_clarification_questions(self, prompt: str, project_context: str = "") -> list[str]:
        """Ask the model whether the request needs clarification.

        Returns the questions only when the reply sets ``needsClarification``.
        """
        raw = self.llm_client.generate_response(
            build_clarifier_messages(prompt, project_context),
            clarifier_options(),
        )
        parsed = recover_json(raw)
        if not isinstance(parsed, dict) or not parsed.get("needsClarification"):
            return []
        return normalize_clarifying_questions(parsed.get("questions") or [])

    def plan_goal_from_prompt(
        self,
        project_id: str,
        prompt: str,
        goal_id: str | None = None,
        metadata_overrides: Mapping[str, Mapping[str, Any]] | None = None,
        cancellation_token: CancellationToken | None = None,
    ) -> PlanResult:
        """Decompose *prompt* into a persisted goal tree.

        With *goal_id* the tree is attached under that goal; if it already
        has children they are returned and nothing is created.

        *metadata_overrides* maps a (trimmed) prompt to metadata merged into
        the goal created for it, e.g. ``{"suppressClarifyingQuestions": True}``.
        """
        _require(project_id, "project_id is required")
        if not isinstance(prompt, str) or not prompt.strip():
            raise GoalValidationError("prompt is required")

        initial = PlanningState(
            project_id=str(project_id),
            prompt=prompt,
            goal_id=str(goal_id) if goal_id is not None else None,
            metadata_overrides={k: dict(v) for k, v in (metadata_overrides or {}).items()},
        )
        logger.info("Planning | project=%s | goal=%s | prompt: %s", project_id, goal_id, prompt[:100])

        workflow = _PlanningWorkflow(self, cancellation_token)
        compiled = workflow.build_graph().compile()
        final = PlanningState(**compiled.invoke(initial.model_dump()))

        if final.stop_reason == "cancelled":
            raise PlanningCancelledError("Planning was cancelled before persistence")
        if final.parent is None:
            raise PlanningResponseError("Planning finished without a parent goal")

        logger.info(
            "Planning complete | parent=%s | children=%d | questions=%d | fallback=%s",
            final.parent.id, len(final.children), len(final.questions), final.used_fallback_plan,
        )
        return PlanResult(parent=final.parent, children=final.children, questions=final.questions)

    def reclarify_goal(
        self,
        project_id: str,
        goal_id: str,
        prompt: str,
        metadata_overrides: Mapping[str, Mapping[str, Any]] | None = None,
        cancellation_token: CancellationToken | None = None,
    ) -> PlanResult:
        """Replace a goal's children with a fresh plan for a clarified prompt."""
        _require(project_id, "project_id is required")
        _require(goal_id, "goal_id is required")
        if not isinstance(prompt, str) or not prompt.strip():
            raise GoalValidationError("prompt is required")

        parent = self._load_parent(project_id, goal_id)
        stale = [g for g in self.store.list_goals(project_id) if g.parent_goal_id == parent.id]
        for child in sorted(stale, key=goal_sort_key):
            try:
                self.store.delete_goal(child.id, include_children=True)
            except Exception as exc:
                logger.warning("Could not remove stale goal %s: %s", child.id, exc)

        return self.plan_goal_from_prompt(
            project_id,
            prompt,
            goal_id=parent.id,
            metadata_overrides=metadata_overrides,
            cancellation_token=cancellation_token,
        )

    # ── Lifecycle ─────────────────────────────────────────────────────

    def _get_existing(self, goal_id: str) -> Goal:
        _require(goal_id, "goal_id is required")
        goal = self.store.get_goal(goal_id)
        if goal is None:
            raise GoalNotFoundError(goal_id=str(goal_id))
        return goal

    def advance_goal_phase(
        self,
        goal_id: str,
        target_phase: str | GoalPhase,
        metadata_patch: Mapping[str, Any] | GoalMetadata | None = None,
    ) -> Goal:
        """Move a goal along the legacy phase graph and merge *metadata_patch*."""
        if not is_goal_phase(target_phase):
            raise UnknownPhaseError(target_phase)
        goal = self._get_existing(goal_id)
        target = assert_phase_transition(goal.status, target_phase)
        merged = merge_goal_metadata(goal.metadata, metadata_patch)
        updated = self.store.update_goal_status(goal.id, target, merged)
        emit_transition(goal.id, "phase", goal.status.value, target.value)
        return updated

    def advance_goal_state(
        self,
        goal_id: str,
        target_state: str | GoalLifecycleState,
        metadata_patch: Mapping[str, Any] | GoalMetadata | None = None,
    ) -> Goal:
        """Move a goal along the lifecycle-state graph and merge *metadata_patch*."""
        if not is_goal_state(target_state):
            raise UnknownGoalStateError(target_state)
        goal = self._get_existing(goal_id)
        target = assert_goal_transition(goal.lifecycle_state, target_state)
        merged = merge_goal_metadata(goal.metadata, metadata_patch)
        updated = self.store.update_goal_lifecycle_state(goal.id, target, merged)
        emit_transition(goal.id, "lifecycle_state", goal.lifecycle_state.value, target.value)
        return updated

    # ── Reads & deletes ───────────────────────────────────────────────

    def get_goal_with_tasks(self, goal_id: str) -> GoalWithTasks | None:
        _require(goal_id, "goal_id is required")
        goal = self.store.get_goal(goal_id)
        if goal is None:
            return None
        return GoalWithTasks(goal=goal, tasks=self.store.list_goal_tasks(goal.id))

    def list_goals_for_project(self, project_id: str, include_archived: bool = False) -> list[Goal]:
        _require(project_id, "project_id is required")
        return self.store.list_goals(project_id, include_archived=include_archived)

    def delete_goal_by_id(self, goal_id: str, include_children: bool = True) -> DeleteResult:
        _require(goal_id, "goal_id is required")
        return self.store.delete_goal(goal_id, include_children=include_children)

    # ── Branches ──────────────────────────────────────────────────────

    def ensure_goal_branch(self, goal_id: str, project_path: str, default_branch: str = "main") -> str:
        """Return the goal's branch, asking the git collaborator if none is cached."""
        _require(goal_id, "goal_id is required")
        _require(project_path, "project_path is required")
        goal = self._get_existing(goal_id)
        if goal.branch_name:
            return goal.branch_name

        if self.git_client is None:
            raise GoalBranchError("Goal branch name unavailable")
        self.git_client.ensure_repository(project_path, default_branch=default_branch)

        refreshed = self.store.get_goal(goal.id)
        branch_name = (refreshed.branch_name if refreshed else None) or goal.branch_name
        if not branch_name:
            raise GoalBranchError("Goal branch name unavailable")

        self.git_client.checkout_branch(project_path, branch_name)
        return branch_name

    # ── Test runs ─────────────────────────────────────────────────────

    def record_test_run_for_goal(
        self,
        goal_id: str,
        status: str,
        summary: str | None = None,
        logs: Sequence[str] | None = None,
    ) -> GoalTask:
        return self.test_runs.record_test_run(goal_id, status, summary, logs)

    def run_tests_for_goal(
        self,
        goal_id: str,
        cwd: str,
        command: str,
        args: Sequence[str] | None = None,
        env: Mapping[str, str] | None = None,
    ) -> GoalTask:
        return self.test_runs.run_tests_for_goal(goal_id, cwd, command, args, env)
