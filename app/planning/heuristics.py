"""Prompt heuristics: classify a raw request and derive goal metadata.

Everything here is pure text processing with no I/O:

- acceptance-criteria extraction and clarifying-question detection
- short title derivation
- style-only (cosmetic) request detection and color extraction
- detection of plan steps that only ask to run tests
"""

from __future__ import annotations

import re
from collections.abc import Iterable

DONE_QUESTION = 'What should "done" look like? Please provide acceptance criteria.'
EXPECTED_ACTUAL_QUESTION = "What is the expected behavior, and what is currently happening?"

_AC_HEADER_RE = re.compile(r"^\s*(acceptance\s*criteria|ac)\s*:\s*(.*)$", re.IGNORECASE)
_SECTION_HEADER_RE = re.compile(r"^[A-Za-z][A-Za-z0-9 _-]{0,40}:\s*$")
_BULLET_RE = re.compile(r"^(?:[-*•]|\d+[.)])\s+(.+?)\s*$")
_PLAIN_BULLET_RE = re.compile(r"^[-*•]\s+(.+)$")


def dedupe(values: Iterable[str]) -> list[str]:
    """Order-preserving de-duplication that also drops empty strings."""
    seen: set[str] = set()
    result: list[str] = []
    for value in values:
        if value and value not in seen:
            seen.add(value)
            result.append(value)
    return result


# ---------------------------------------------------------------------------
# Acceptance criteria & clarifying questions
# ---------------------------------------------------------------------------

def extract_acceptance_criteria(prompt: str | None) -> list[str]:
    """Collect the bullets of an ``Acceptance criteria:`` / ``AC:`` section.

    An inline value on the header line counts as the first criterion.
    Collection stops at a blank line once something was collected, or at the
    next ``Header:`` line.  Non-bullet lines inside the section are ignored.
    """
    lines = (prompt or "").splitlines()
    criteria: list[str] = []
    section_start = -1

    for index, line in enumerate(lines):
        match = _AC_HEADER_RE.match(line)
        if match:
            inline = match.group(2).strip()
            if inline:
                criteria.append(inline)
            section_start = index + 1
            break

    if section_start < 0:
        return []

    for raw in lines[section_start:]:
        trimmed = raw.strip()
        if not trimmed:
            if criteria:
                break
            continue
        if _SECTION_HEADER_RE.match(trimmed):
            break
        bullet = _BULLET_RE.match(trimmed)
        if bullet:
            criteria.append(bullet.group(1).strip())

    return dedupe(criteria)


def looks_underspecified(prompt: str) -> bool:
    normalized = prompt.strip().lower()
    if not normalized:
        return True
    if len(normalized.split()) <= 2:
        return True
    return bool(
        re.match(r"^(build|make|create)\b", normalized)
        and re.search(r"\b(something|anything|stuff|thing)\b", normalized)
    )


def looks_like_bug_fix(prompt: str) -> bool:
    return bool(re.search(r"\b(fix|bug|broken|error|issue|crash)\b", prompt, re.IGNORECASE))


def has_expected_actual_context(prompt: str) -> bool:
    return bool(
        re.search(r"\b(expected|actual|currently|steps to reproduce|repro)\b", prompt, re.IGNORECASE)
    )


def extract_clarifying_questions(prompt: str | None, acceptance_criteria: list[str] | None = None) -> list[str]:
    """Heuristic questions for prompts without acceptance criteria."""
    if acceptance_criteria:
        return []
    text = prompt or ""
    questions: list[str] = []
    if looks_underspecified(text) or looks_like_bug_fix(text):
        questions.append(DONE_QUESTION)
    if looks_like_bug_fix(text) and not has_expected_actual_context(text):
        questions.append(EXPECTED_ACTUAL_QUESTION)
    return dedupe(questions)


def normalize_clarifying_questions(questions: object) -> list[str]:
    """Trim, drop non-strings and blanks, de-duplicate."""
    if not isinstance(questions, list):
        return []
    return dedupe(item.strip() for item in questions if isinstance(item, str))


# ---------------------------------------------------------------------------
# Titles
# ---------------------------------------------------------------------------

TITLE_STOPWORDS = frozenset({
    "a", "an", "and", "at", "but", "for", "from", "in", "of", "on", "or", "the", "to", "with",
})
MAX_TITLE_LENGTH = 96
_TITLE_PREFIX_RE = re.compile(
    r"^(?:please|can you|could you|would you|let['’]?s|lets|we need to|i need to|"
    r"need to|make sure to|ensure)\b[\s,:-]*",
    re.IGNORECASE,
)


def _title_case_word(word: str, index: int) -> str:
    lower = word.lower()
    # Acronyms such as API / LOGIN survive untouched.
    if (
        word == word.upper()
        and re.search(r"[A-Z]", word)
        and len(word) <= 5
        and lower not in TITLE_STOPWORDS
    ):
        return word
    if index > 0 and lower in TITLE_STOPWORDS:
        return lower
    return lower[:1].upper() + lower[1:]


def derive_title(text: str | None, fallback: str = "Goal") -> str:
    """Derive a short Title Case label from a free-form prompt."""
    trimmed = (text or "").strip()
    if not trimmed:
        return fallback

    first_line = next((line.strip() for line in trimmed.splitlines() if line.strip()), trimmed)
    sanitized = re.sub(r"['\"`]+$", "", re.sub(r"^['\"`]+", "", first_line))
    without_prefix = _TITLE_PREFIX_RE.sub("", sanitized).strip()
    if not without_prefix:
        return fallback

    collapsed = re.sub(r"\s+", " ", without_prefix)
    if len(collapsed) > MAX_TITLE_LENGTH:
        collapsed = re.sub(r"\s+\S*$", "", collapsed[:MAX_TITLE_LENGTH])

    return " ".join(_title_case_word(word, index) for index, word in enumerate(collapsed.split(" ")))


# ---------------------------------------------------------------------------
# Plan-step filter
# ---------------------------------------------------------------------------

_PACKAGE_TEST_COMMAND_RE = re.compile(r"\b(?:npm|yarn|pnpm)\s+run\s+test\b", re.IGNORECASE)
_VERIFY_VERB_RE = re.compile(r"^(?:run|re-?run|execute|verify|check)\b", re.IGNORECASE)
_TEST_TARGET_RE = re.compile(
    r"\b(?:unit\s+tests|integration\s+tests|test\s+suites?|tests|vitest|coverage)\b", re.IGNORECASE
)


def is_programmatic_verification_step(prompt: str | None) -> bool:
    """True for steps that only (re-)run tests or coverage.

    Test execution happens automatically after implementation, so such steps
    are never turned into goals.
    """
    text = (prompt or "").strip()
    if not text:
        return False
    if _PACKAGE_TEST_COMMAND_RE.search(text):
        return True
    if not _VERIFY_VERB_RE.search(text):
        return False
    return bool(_TEST_TARGET_RE.search(text))


# ---------------------------------------------------------------------------
# Clarification transcripts & assets
# ---------------------------------------------------------------------------

_NESTED_LABEL_RE = re.compile(
    r"^(?:current request|user answer|original request)\s*:\s*(.+)$", re.IGNORECASE | re.DOTALL
)


def _unwrap_nested_label(value: str, depth: int = 0) -> str:
    trimmed = value.strip()
    if not trimmed or depth >= 3:
        return trimmed
    nested = _NESTED_LABEL_RE.match(trimmed)
    if not nested:
        return trimmed
    return _unwrap_nested_label(nested.group(1), depth + 1)


def extract_latest_request(prompt: str | None) -> str:
    """Return the request a clarification transcript is currently about.

    Looks (last occurrence first) for ``Current request:``, then
    ``Original request:``, then ``User answer:`` lines.
    """
    raw = prompt or ""
    if not raw:
        return raw

    lines = [line.strip() for line in raw.splitlines()]

    def value_after(prefix: str) -> str:
        for line in reversed(lines):
            if line.lower().startswith(prefix.lower()):
                return line[len(prefix):].strip()
        return ""

    current = value_after("Current request:")
    if current:
        return _unwrap_nested_label(current)

    original = value_after("Original request:")
    if original:
        unwrapped = _unwrap_nested_label(original)
        if unwrapped:
            return unwrapped

    answer = value_after("User answer:")
    if answer:
        unwrapped = _unwrap_nested_label(answer)
        if unwrapped:
            return unwrapped

    return _unwrap_nested_label(raw)


def extract_selected_project_assets(prompt: str | None) -> list[str]:
    """Items listed under a ``Selected project assets:`` header."""
    lines = (prompt or "").splitlines()
    start = next(
        (
            index + 1
            for index, line in enumerate(lines)
            if re.match(r"^selected\s+project\s+assets\s*:\s*$", line.strip(), re.IGNORECASE)
        ),
        -1,
    )
    if start < 0:
        return []

    collected: list[str] = []
    for raw in lines[start:]:
        line = raw.strip()
        if not line:
            if collected:
                break
            continue
        if _SECTION_HEADER_RE.match(line):
            break
        bullet = _PLAIN_BULLET_RE.match(line)
        candidate = bullet.group(1).strip() if bullet else line
        if candidate:
            collected.append(candidate)
    return dedupe(collected)


# ---------------------------------------------------------------------------
# Style-only requests
# ---------------------------------------------------------------------------

_TARGETED_STYLE_SIGNALS = [
    re.compile(r"\b(navbar|navigation\s+bar|nav\s+bar)\b"),
    re.compile(r"\b(header|footer|sidebar|hero|card|modal|toolbar)\b"),
    re.compile(r"\b(button|input|form|menu|dropdown|link|tab)\b"),
    re.compile(r"\b(for|on|in)\s+the\s+[a-z0-9_-]+\b"),
    re.compile(r"[.#][a-z0-9_-]+"),
]

_CORE_STYLE_SIGNAL = re.compile(
    r"\b(css|style|styling|theme|color|background|font|typography|spacing|margin|padding|"
    r"border|radius|shadow|layout)\b"
)

_NON_STYLE_SIGNAL = re.compile(
    r"\b(api|endpoint|database|sql|schema|auth|login|token|server|backend|express|route|"
    r"controller|service|workflow|refactor|performance|optimi[sz]e|fix|bug|crash|error|"
    r"unit test|integration test|coverage|vitest|jest)\b"
)

COLOR_NAMES = (
    "black", "white", "gray", "grey", "red", "green", "blue", "yellow", "orange", "purple",
    "violet", "indigo", "pink", "magenta", "maroon", "navy", "teal", "cyan", "aqua",
    "turquoise", "gold", "silver", "beige", "brown", "lavender", "mint", "olive",
)
COLOR_ADJECTIVES = (
    "light", "dark", "bright", "deep", "soft", "muted", "vibrant", "pale", "rich", "warm", "cool",
)
_COLOR_PHRASE_RE = re.compile(
    rf"\b(?:({'|'.join(COLOR_ADJECTIVES)})\s+)?({'|'.join(COLOR_NAMES)})\b", re.IGNORECASE
)
_HEX_COLOR_RE = re.compile(r"#(?:[0-9a-f]{6}|[0-9a-f]{3})\b", re.IGNORECASE)
_RGB_COLOR_RE = re.compile(r"rgba?\([^)]*\)", re.IGNORECASE)


def is_style_only_prompt(prompt: str | None) -> bool:
    """True when the latest request is a purely cosmetic, page-wide tweak.

    A request aimed at a specific element ("the header", ``.btn``) is not
    style-only: it needs planning to locate the element.
    """
    text = extract_latest_request(prompt).strip().lower()
    if not text:
        return False
    if any(signal.search(text) for signal in _TARGETED_STYLE_SIGNALS):
        return False
    if not _CORE_STYLE_SIGNAL.search(text):
        return False
    return not _NON_STYLE_SIGNAL.search(text)


def extract_style_color(prompt: str | None) -> str | None:
    """Return the color a style request asks for (hex, rgb(), or named)."""
    raw = extract_latest_request(prompt)
    text = raw.strip().lower()
    if not text:
        return None

    hex_match = _HEX_COLOR_RE.search(text)
    if hex_match:
        return hex_match.group(0).lower()

    rgb_match = _RGB_COLOR_RE.search(raw)
    if rgb_match:
        return rgb_match.group(0)

    color_match = _COLOR_PHRASE_RE.search(raw)
    if color_match:
        adjective = (color_match.group(1) or "").lower()
        color = color_match.group(2).lower()
        return f"{adjective} {color}".strip()

    return None
