"""Tests for prompt heuristics: criteria, questions, titles, style detection."""

import pytest

from app.planning.heuristics import (
    DONE_QUESTION,
    EXPECTED_ACTUAL_QUESTION,
    derive_title,
    extract_acceptance_criteria,
    extract_clarifying_questions,
    extract_latest_request,
    extract_selected_project_assets,
    extract_style_color,
    is_programmatic_verification_step,
    is_style_only_prompt,
    normalize_clarifying_questions,
)


class TestAcceptanceCriteria:
    def test_bullets_in_order(self):
        prompt = (
            "Add a profile page\n"
            "Acceptance criteria:\n"
            "- shows the avatar\n"
            "* shows the display name\n"
            "1. links to settings\n"
            "2) has a logout button\n"
        )
        assert extract_acceptance_criteria(prompt) == [
            "shows the avatar",
            "shows the display name",
            "links to settings",
            "has a logout button",
        ]

    def test_inline_value_and_dedupe(self):
        prompt = "AC: page loads\n- page loads\n- no console errors"
        assert extract_acceptance_criteria(prompt) == ["page loads", "no console errors"]

    def test_stops_at_blank_line_after_items(self):
        prompt = "Acceptance Criteria:\n\n- one\n- two\n\n- three"
        assert extract_acceptance_criteria(prompt) == ["one", "two"]

    def test_stops_at_next_header(self):
        prompt = "acceptance criteria:\n- one\nNotes:\n- not a criterion"
        assert extract_acceptance_criteria(prompt) == ["one"]

    def test_ignores_non_bullet_lines(self):
        prompt = "Acceptance criteria:\nplain text\n• bullet"
        assert extract_acceptance_criteria(prompt) == ["bullet"]

    def test_no_section(self):
        assert extract_acceptance_criteria("Add a login form") == []
        assert extract_acceptance_criteria(None) == []


class TestClarifyingQuestions:
    def test_bug_report_without_context(self):
        assert extract_clarifying_questions("Fix the login bug") == [DONE_QUESTION, EXPECTED_ACTUAL_QUESTION]

    def test_bug_report_with_expected_actual(self):
        prompt = "Fix the login bug: expected a redirect, currently a blank page"
        assert extract_clarifying_questions(prompt) == [DONE_QUESTION]

    def test_short_prompt_is_underspecified(self):
        assert extract_clarifying_questions("Dashboard") == [DONE_QUESTION]

    def test_vague_build_request(self):
        assert extract_clarifying_questions("build something cool for the team") == [DONE_QUESTION]

    def test_specific_request_has_no_questions(self):
        assert extract_clarifying_questions("Add a search box to the product list page") == []

    def test_acceptance_criteria_suppress_questions(self):
        assert extract_clarifying_questions("Fix the crash", ["app starts"]) == []

    def test_normalize_questions(self):
        assert normalize_clarifying_questions(["  Why? ", "", 3, "Why?", "How?"]) == ["Why?", "How?"]
        assert normalize_clarifying_questions("not a list") == []


class TestDeriveTitle:
    def test_prefix_acronym_and_stopwords(self):
        assert derive_title("please fix the LOGIN flow for real", "Goal") == "Fix the LOGIN Flow for Real"

    @pytest.mark.parametrize("prompt, expected", [
        ("can you add a navbar", "Add a Navbar"),
        ("Let's build the API client", "Build the API Client"),
        ('"Add dark mode"', "Add Dark Mode"),
        ("ensure the footer sticks", "The Footer Sticks"),
    ])
    def test_prefixes_and_quotes(self, prompt, expected):
        assert derive_title(prompt) == expected

    def test_first_word_stopword_is_capitalized(self):
        assert derive_title("the header should be blue") == "The Header Should Be Blue"

    def test_uses_first_non_empty_line(self):
        assert derive_title("\n\n  add tests  \nmore details") == "Add Tests"

    def test_fallback_when_empty(self):
        assert derive_title("", "Child Goal 1") == "Child Goal 1"
        assert derive_title("please", "Goal") == "Goal"

    def test_long_titles_cut_at_word_boundary(self):
        title = derive_title("word " * 40)
        assert len(title) <= 96
        assert not title.endswith(" ")
        assert title.split(" ")[-1] == "Word"


class TestVerificationSteps:
    @pytest.mark.parametrize("prompt", [
        "Run the unit tests",
        "Re-run tests and coverage",
        "rerun vitest",
        "Verify coverage stays above 80%",
        "Check that integration tests pass",
        "Re-run the test suite",
        "Make sure npm run test passes",
        "yarn run test",
    ])
    def test_detected(self, prompt):
        assert is_programmatic_verification_step(prompt)

    @pytest.mark.parametrize("prompt", [
        "Add unit tests for the login form",
        "Write tests for the API client",
        "Run the migration",
        "",
    ])
    def test_not_detected(self, prompt):
        assert not is_programmatic_verification_step(prompt)


class TestStyleDetection:
    @pytest.mark.parametrize("prompt", [
        "Change the background color to red",
        "make the background light blue",
        "Use a darker theme",
        "update the font to something more modern",
    ])
    def test_style_only(self, prompt):
        assert is_style_only_prompt(prompt)

    @pytest.mark.parametrize("prompt", [
        "Change the navbar background color to red",
        "Make the .btn-primary color blue",
        "Change the color for the sidebar",
        "Fix the background color bug",
        "Add an API endpoint for theme settings",
        "Add a login form",
        "",
    ])
    def test_not_style_only(self, prompt):
        assert not is_style_only_prompt(prompt)

    @pytest.mark.parametrize("prompt, color", [
        ("Change the background color to #AABBCC", "#aabbcc"),
        ("background color rgb(10, 20, 30) please", "rgb(10, 20, 30)"),
        ("Change the background to Light Blue", "light blue"),
        ("make it red", "red"),
        ("change the background color", None),
    ])
    def test_extract_color(self, prompt, color):
        assert extract_style_color(prompt) == color

    def test_style_detection_uses_latest_request(self):
        transcript = (
            "Original request: Add a login form\n"
            "Q: Anything else?\n"
            "Current request: change the background color to teal"
        )
        assert is_style_only_prompt(transcript)
        assert extract_style_color(transcript) == "teal"


class TestTranscripts:
    def test_current_request_wins(self):
        text = "Original request: add a navbar\nUser answer: blue\nCurrent request: add a blue navbar"
        assert extract_latest_request(text) == "add a blue navbar"

    def test_nested_labels_unwrapped(self):
        text = "Current request: Original request: User answer: make it green"
        assert extract_latest_request(text) == "make it green"

    def test_original_then_answer(self):
        assert extract_latest_request("Original request: add a footer") == "add a footer"
        assert extract_latest_request("Q: color?\nUser answer: green") == "green"

    def test_plain_prompt_passthrough(self):
        assert extract_latest_request("  add a footer  ") == "add a footer"
        assert extract_latest_request(None) == ""


class TestSelectedAssets:
    def test_collects_listed_assets(self):
        prompt = (
            "Use the logo in the header\n"
            "Selected project assets:\n"
            "- assets/logo.png\n"
            "- assets/logo.png\n"
            "assets/banner.jpg\n"
            "\n"
            "- not included"
        )
        assert extract_selected_project_assets(prompt) == ["assets/logo.png", "assets/banner.jpg"]

    def test_stops_at_header(self):
        prompt = "Selected project assets:\n- a.png\nNotes:\n- b.png"
        assert extract_selected_project_assets(prompt) == ["a.png"]

    def test_no_header(self):
        assert extract_selected_project_assets("add a logo") == []
