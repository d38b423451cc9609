"""Tests for recovering JSON objects from free-form model output."""

from app.planning.json_recovery import (
    extract_first_json_object,
    normalize_json_like_text,
    recover_json,
    strip_code_fences,
)


class TestRecoverJson:
    def test_empty_input_returns_none(self):
        assert recover_json(None) is None
        assert recover_json("") is None
        assert recover_json("   \n") is None

    def test_plain_json(self):
        assert recover_json('{"a": 1}') == {"a": 1}

    def test_fenced_json(self):
        raw = '```json\n{"childGoals": [{"prompt": "Add a form"}]}\n```'
        assert recover_json(raw) == {"childGoals": [{"prompt": "Add a form"}]}

    def test_untagged_fence(self):
        assert recover_json('```\n{"ok": true}\n```') == {"ok": True}

    def test_prose_around_object(self):
        raw = 'Sure! Here is the plan:\n{"parentTitle": "Nav", "childGoals": []}\nHope it helps {really}.'
        assert recover_json(raw) == {"parentTitle": "Nav", "childGoals": []}

    def test_smart_quotes_are_normalized(self):
        raw = "{“parentTitle”: “Login”}"
        assert recover_json(raw) == {"parentTitle": "Login"}

    def test_non_breaking_spaces(self):
        assert recover_json('{"a":\u00a01}') == {"a": 1}

    def test_braces_inside_strings_are_ignored(self):
        raw = 'prefix {"prompt": "use {curly} and \\"quoted }\\" text", "n": 2} suffix {"other": 1}'
        assert recover_json(raw) == {"prompt": 'use {curly} and "quoted }" text', "n": 2}

    def test_unbalanced_object_returns_none(self):
        assert recover_json('here: {"a": [1, 2') is None

    def test_garbage_returns_none(self):
        assert recover_json("no json here") is None

    def test_first_object_wins(self):
        assert recover_json('x {"first": 1} y {"second": 2}') == {"first": 1}


class TestHelpers:
    def test_strip_code_fences_only_once(self):
        assert strip_code_fences("```json\n{}\n```") == "{}"
        assert strip_code_fences("  {}  ") == "{}"

    def test_normalize_single_smart_quotes(self):
        assert normalize_json_like_text("it’s") == "it's"

    def test_extract_first_object_nested(self):
        text = 'a {"x": {"y": {"z": 1}}} b'
        assert extract_first_json_object(text) == '{"x": {"y": {"z": 1}}}'

    def test_extract_without_object(self):
        assert extract_first_json_object("nothing") is None
