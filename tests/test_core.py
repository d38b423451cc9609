"""Tests for configuration, goal records, events and cancellation."""

from unittest.mock import patch

import pytest
from pydantic import ValidationError


class TestSettings:
    def test_defaults(self):
        with patch.dict("os.environ", {}, clear=True):
            from app.core.config import Settings
            s = Settings(_env_file=None)
            assert s.planner_model == "gpt-4o-mini"
            assert s.clarifier_model == "gpt-4o-mini"
            assert s.max_plan_depth == 4
            assert s.max_plan_nodes == 40
            assert s.deterministic_planning is False

    def test_env_overrides(self):
        with patch.dict("os.environ", {"MAX_PLAN_NODES": "12", "DETERMINISTIC_PLANNING": "true"}, clear=True):
            from app.core.config import Settings
            s = Settings(_env_file=None)
            assert s.max_plan_nodes == 12
            assert s.deterministic_planning is True

    def test_limits_must_be_positive(self):
        from app.core.config import Settings
        with pytest.raises(ValidationError):
            Settings(_env_file=None, max_plan_depth=0)

    def test_get_settings_uses_installed_instance(self, isolated_settings):
        from app.core.config import get_settings
        assert get_settings() is isolated_settings


class TestLogging:
    def test_child_loggers(self):
        from app.core.logging import get_logger
        assert get_logger("core.orchestrator").name == "goalsmith.core.orchestrator"
        assert get_logger("goalsmith.infra").name == "goalsmith.infra"
        assert get_logger().name == "goalsmith"

    def test_setup_is_idempotent(self, tmp_path, monkeypatch):
        import logging

        from app.core import logging as app_logging

        monkeypatch.setattr(app_logging, "_configured", False)
        logger = logging.getLogger("goalsmith")
        before = list(logger.handlers)
        log_file = tmp_path / "logs" / "goalsmith.log"
        try:
            first = app_logging.setup_logging(level="debug", log_file=str(log_file))
            second = app_logging.setup_logging()
            assert first is second
            assert len(logger.handlers) == len(before) + 2
            assert logger.level == logging.DEBUG
            assert log_file.exists()
        finally:
            for handler in logger.handlers[len(before):]:
                handler.close()
                logger.removeHandler(handler)
            logger.propagate = True

    def test_file_handler_can_be_disabled(self, monkeypatch):
        import logging

        from app.core import logging as app_logging

        monkeypatch.setattr(app_logging, "_configured", False)
        logger = logging.getLogger("goalsmith")
        before = list(logger.handlers)
        try:
            app_logging.setup_logging(log_file="")
            assert len(logger.handlers) == len(before) + 1
        finally:
            for handler in logger.handlers[len(before):]:
                logger.removeHandler(handler)
            logger.propagate = True


class TestGoal:
    def test_ids_are_coerced_to_strings(self):
        from app.core.state import Goal, GoalLifecycleState, GoalPhase
        goal = Goal(id=7, project_id=3, parent_goal_id=1, prompt="Add a footer")
        assert (goal.id, goal.project_id, goal.parent_goal_id) == ("7", "3", "1")
        assert goal.status == GoalPhase.PLANNING
        assert goal.lifecycle_state == GoalLifecycleState.DRAFT

    def test_metadata_accepts_stored_map(self):
        from app.core.state import Goal, GoalMetadata
        goal = Goal(id="1", project_id="p1", prompt="x", metadata=GoalMetadata.from_mapping({"styleOnly": True}))
        assert goal.metadata.style_only is True

    def test_suppression_flag(self):
        from app.core.state import GoalMetadata
        assert GoalMetadata(extra={"uncoveredLines": [3, 4]}).suppresses_clarifying_questions
        assert not GoalMetadata(extra={"uncoveredLines": []}).suppresses_clarifying_questions


class TestEvents:
    def test_emit_reaches_listeners_and_history(self):
        from app.core import events
        received = []
        events.subscribe(received.append)
        events.emit_status("planner", "Project context gathered", goal_id="1")

        assert received[0].category == events.EventCategory.STATUS
        assert received[0].title == "Project context gathered"
        entry = events.get_history()[-1]
        assert entry["category"] == "status"
        assert entry["metadata"] == {"goal_id": "1"}

    def test_listener_errors_are_contained(self):
        from app.core import events

        def broken(_event):
            raise RuntimeError("listener down")

        received = []
        events.subscribe(broken)
        events.subscribe(received.append)
        events.emit_error("planner", "boom")
        assert len(received) == 1

    def test_unsubscribe(self):
        from app.core import events
        received = []
        events.subscribe(received.append)
        events.unsubscribe(received.append)
        events.emit_test_run("1", "passed", "Tests passed")
        assert received == []

    def test_history_limit(self):
        from app.core import events
        for i in range(5):
            events.emit_status("planner", f"step {i}")
        assert [e["title"] for e in events.get_history(limit=2)] == ["step 3", "step 4"]

    def test_history_by_goal(self):
        from app.core import events
        events.emit_transition("1", "phase", "planning", "testing")
        events.emit_transition("2", "phase", "planning", "testing")
        assert [e["metadata"]["goal_id"] for e in events.get_history(goal_id="2")] == ["2"]


class TestCancellation:
    def test_cancel_and_reset(self):
        from app.core.cancellation import CancellationToken
        token = CancellationToken()
        assert not token.is_cancelled
        token.cancel()
        assert token.is_cancelled
        token.reset()
        assert not token.is_cancelled
