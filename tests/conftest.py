"""Shared fixtures: isolated settings, a scripted language model, a fresh store."""

from __future__ import annotations

import json

import pytest


class ScriptedLLM:
    """Language-model client that replays canned replies in order.

    A reply may be a string, a dict (serialised to JSON) or an exception
    instance (raised).  Every call is recorded as ``(messages, options)``.
    """

    def __init__(self, *replies):
        self.replies = list(replies)
        self.calls = []

    def generate_response(self, messages, options):
        self.calls.append((list(messages), options))
        if not self.replies:
            raise AssertionError("ScriptedLLM ran out of replies")
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        if isinstance(reply, dict):
            return json.dumps(reply)
        return reply

    @property
    def request_types(self):
        return [options.request_type for _, options in self.calls]


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch):
    """Deterministic settings that ignore any local .env file."""
    from app.core import config

    settings = config.Settings(_env_file=None, deterministic_planning=True)
    monkeypatch.setattr(config, "_settings", settings)
    return settings


@pytest.fixture(autouse=True)
def clean_events():
    from app.core import events

    events.clear_listeners()
    yield
    events.clear_listeners()


@pytest.fixture
def store():
    from infra.goal_store import InMemoryGoalStore

    return InMemoryGoalStore()


@pytest.fixture
def make_orchestrator(store):
    from app.core.orchestrator import GoalOrchestrator

    def _make(*replies, **kwargs):
        llm = ScriptedLLM(*replies)
        return GoalOrchestrator(store, llm_client=llm, **kwargs), llm

    return _make
