"""Tests for the in-memory goal store and branch naming."""

import re
from concurrent.futures import ThreadPoolExecutor

import pytest

from app.core.state import GoalLifecycleState, GoalMetadata, GoalPhase
from infra.goal_store import GoalStore, InMemoryGoalStore, build_branch_name


class TestBranchName:
    def test_meaningful_words_kept(self):
        name = build_branch_name("let's have a navigation bar at the top")
        assert re.fullmatch(r"agent/navigation-bar-top-[0-9a-f]{8}", name)

    def test_slug_is_capped(self):
        name = build_branch_name("implement extremely comprehensive authentication workflow everywhere")
        slug = name[len("agent/"):-9]
        assert len(slug) <= 32
        assert not slug.endswith("-")

    def test_empty_prompt(self):
        assert re.fullmatch(r"agent/goal-[0-9a-f]{8}", build_branch_name("!!!"))

    def test_names_are_unique(self):
        assert build_branch_name("Add a footer") != build_branch_name("Add a footer")


class TestGoals:
    def test_satisfies_protocol(self, store):
        assert isinstance(store, GoalStore)

    def test_create(self, store):
        goal = store.create_goal("p1", "  Add a footer  ", title="x" * 250)
        assert goal.id == "1"
        assert goal.prompt == "Add a footer"
        assert len(goal.title) == 200
        assert goal.status == GoalPhase.PLANNING
        assert goal.lifecycle_state == GoalLifecycleState.DRAFT
        assert goal.branch_name.startswith("agent/")
        assert store.create_goal("p1", "Add a header", branch_name="agent/custom").branch_name == "agent/custom"

    @pytest.mark.parametrize("project_id, prompt", [("", "x"), ("p1", ""), ("p1", None)])
    def test_create_requires_project_and_prompt(self, store, project_id, prompt):
        with pytest.raises(ValueError):
            store.create_goal(project_id, prompt)

    def test_list_newest_first_per_project(self, store):
        for prompt in ("one", "two", "three"):
            store.create_goal("p1", prompt)
        store.create_goal("p2", "elsewhere")
        assert [g.id for g in store.list_goals("p1")] == ["3", "2", "1"]

    def test_list_without_archived(self, store):
        ready = store.create_goal("p1", "ready")
        merged = store.create_goal("p1", "merged")
        active = store.create_goal("p1", "active")
        store.update_goal_status(ready.id, GoalPhase.READY)
        store.update_goal_lifecycle_state(merged.id, GoalLifecycleState.MERGED)

        assert [g.id for g in store.list_goals("p1", include_archived=False)] == [active.id]
        assert len(store.list_goals("p1")) == 3

    def test_returns_copies(self, store):
        goal = store.create_goal("p1", "Add a footer")
        goal.metadata.acceptance_criteria.append("mutated")
        goal.title = "mutated"
        stored = store.get_goal(goal.id)
        assert stored.metadata.acceptance_criteria == []
        assert stored.title == ""

    def test_update_status_and_metadata(self, store):
        goal = store.create_goal("p1", "Add a footer")
        updated = store.update_goal_status(goal.id, "testing", GoalMetadata(acceptance_criteria=["a"]))
        assert updated.status == GoalPhase.TESTING
        assert updated.metadata.acceptance_criteria == ["a"]
        assert updated.updated_at is not None

    def test_update_missing_goal(self, store):
        with pytest.raises(KeyError):
            store.update_goal_status("999", GoalPhase.TESTING)

    def test_delete_without_children(self, store):
        parent = store.create_goal("p1", "parent")
        child = store.create_goal("p1", "child", parent_goal_id=parent.id)
        result = store.delete_goal(parent.id, include_children=False)
        assert result.deleted_goal_ids == [parent.id]
        assert store.get_goal(child.id) is not None

    def test_delete_descendants(self, store):
        root = store.create_goal("p1", "root")
        child = store.create_goal("p1", "child", parent_goal_id=root.id)
        grandchild = store.create_goal("p1", "grandchild", parent_goal_id=child.id)
        result = store.delete_goal(root.id)
        assert result.deleted_goal_ids == [root.id, child.id, grandchild.id]
        assert store.list_goals("p1") == []

    def test_concurrent_creates_get_unique_ids(self, store):
        with ThreadPoolExecutor(max_workers=8) as pool:
            goals = list(pool.map(lambda i: store.create_goal("p1", f"goal {i}"), range(50)))
        assert len({g.id for g in goals}) == 50


class TestTasks:
    def test_create_and_list(self, store):
        goal = store.create_goal("p1", "Add a footer")
        first = store.create_goal_task(goal.id, "analysis", "Analyse", {"prompt": "Add a footer"})
        second = store.create_goal_task(goal.id, "test-run", "Run")
        assert first.status == "pending"
        assert [t.id for t in store.list_goal_tasks(goal.id)] == [first.id, second.id]

    def test_missing_goal(self, store):
        with pytest.raises(KeyError):
            store.create_goal_task("999", "analysis", "Analyse")

    def test_update_status(self, store):
        goal = store.create_goal("p1", "Add a footer")
        task = store.create_goal_task(goal.id, "test-run", "Run")
        updated = store.update_goal_task_status(task.id, "passed", {"summary": "ok"})
        assert updated.status == "passed"
        assert store.get_goal_task(task.id).metadata == {"summary": "ok"}
        with pytest.raises(KeyError):
            store.update_goal_task_status("999", "passed")
