"""Project context for planning prompts.

A :class:`ProjectContextProvider` supplies two optional strings that enrich
the planner message: a short stack summary and a truncated snapshot of key
project files.  Both are best effort; an empty string means "unavailable".
"""

from __future__ import annotations

import json
import re
from collections import deque
from collections.abc import Callable
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from pydantic import BaseModel

from app.core.config import get_settings
from app.core.logging import get_logger

logger = get_logger("infra.project_context")

TRUNCATION_MARKER = "…truncated…"
ENTRY_FILE_CHARS = 1400

IGNORED_DIRS = frozenset({
    ".git", "node_modules", "dist", "build", "coverage", "coverage-tmp",
    ".cache", ".next", ".turbo", ".vite", ".idea", ".vscode",
})
IGNORED_FILES = frozenset({
    "package-lock.json", "pnpm-lock.yaml", "yarn.lock", "bun.lockb", ".DS_Store",
})

FRONTEND_ENTRY_FILES = tuple(
    f"frontend/src/{stem}.{ext}"
    for stem in ("App", "main", "index")
    for ext in ("jsx", "tsx", "js")
)

# Checked in order; the first dependency present wins.
_FRONTEND_FRAMEWORKS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("react", ("react", "react-dom")),
    ("nextjs", ("next",)),
    ("vue", ("vue",)),
    ("nuxt", ("nuxt",)),
    ("angular", ("@angular/core",)),
    ("svelte", ("svelte", "@sveltejs/kit")),
    ("solid", ("solid-js",)),
    ("gatsby", ("gatsby",)),
    ("astro", ("astro",)),
)
_BACKEND_FRAMEWORKS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("express", ("express",)),
    ("fastify", ("fastify",)),
    ("koa", ("koa",)),
    ("nestjs", ("@nestjs/core",)),
    ("hapi", ("@hapi/hapi",)),
    ("adonisjs", ("@adonisjs/core",)),
)
_PYTHON_FRAMEWORKS = ("flask", "django", "fastapi", "quart")


class ProjectRecord(BaseModel):
    """What the host application knows about a project."""

    id: str
    path: str = ""
    frontend_framework: str = ""
    frontend_language: str = ""
    backend_framework: str = ""
    backend_language: str = ""


@runtime_checkable
class ProjectContextProvider(Protocol):

    def get_stack_context(self, project_id: str) -> str:
        """Summary lines such as ``frontend: react (javascript)``; "" if unknown."""
        ...

    def get_project_snapshot(self, project_id: str) -> str:
        """README, manifests, entry files and a file list; "" if unavailable."""
        ...


# ---------------------------------------------------------------------------
# Detection helpers
# ---------------------------------------------------------------------------

def _dependencies(package: dict[str, Any] | None) -> dict[str, Any]:
    if not isinstance(package, dict):
        return {}
    deps: dict[str, Any] = {}
    for key in ("dependencies", "devDependencies"):
        section = package.get(key)
        if isinstance(section, dict):
            deps.update(section)
    return deps


def _detect(package: dict[str, Any] | None, table: tuple[tuple[str, tuple[str, ...]], ...]) -> str:
    deps = _dependencies(package)
    for framework, names in table:
        if any(name in deps for name in names):
            return framework
    return ""


def detect_frontend_framework(package: dict[str, Any] | None) -> str:
    return _detect(package, _FRONTEND_FRAMEWORKS)


def detect_backend_framework(package: dict[str, Any] | None) -> str:
    return _detect(package, _BACKEND_FRAMEWORKS)


def detect_python_framework(requirements_text: str) -> str:
    text = (requirements_text or "").lower()
    for framework in _PYTHON_FRAMEWORKS:
        if re.search(rf"(?:^|\n){framework}\b", text):
            return framework
    return ""


def truncate_section(value: str, limit: int) -> str:
    if not value:
        return ""
    return f"{value[:limit]}\n{TRUNCATION_MARKER}" if len(value) > limit else value


def _read_text(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError):
        return ""


def _read_json(path: Path) -> dict[str, Any] | None:
    raw = _read_text(path)
    if not raw:
        return None
    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        return None
    return data if isinstance(data, dict) else None


def collect_project_file_list(root: Path, limit: int) -> list[str]:
    """Breadth-first, name-sorted listing; directories end with ``/``."""
    results: list[str] = []
    queue: deque[Path] = deque([Path(".")])

    while queue and len(results) < limit:
        relative = queue.popleft()
        try:
            entries = sorted((root / relative).iterdir(), key=lambda p: p.name)
        except OSError:
            continue

        for entry in entries:
            if len(results) >= limit:
                break
            if entry.name in IGNORED_FILES:
                continue
            rel_path = (relative / entry.name).as_posix()
            if entry.is_dir():
                if entry.name in IGNORED_DIRS:
                    continue
                results.append(f"{rel_path}/")
                queue.append(relative / entry.name)
            else:
                results.append(rel_path)

    return results


# ---------------------------------------------------------------------------
# Filesystem provider
# ---------------------------------------------------------------------------


class FileSystemProjectContextProvider:
    """Builds context by reading the project's checkout on disk.

    Args:
        lookup: returns the :class:`ProjectRecord` for an id, or None.
    """

    def __init__(self, lookup: Callable[[str], ProjectRecord | None]) -> None:
        self._lookup = lookup

    def _project(self, project_id: str) -> ProjectRecord | None:
        try:
            return self._lookup(project_id)
        except Exception as exc:
            logger.warning("Project lookup failed for %s: %s", project_id, exc)
            return None

    def get_stack_context(self, project_id: str) -> str:
        project = self._project(project_id)
        if project is None:
            return ""

        frontend_fw = project.frontend_framework.strip()
        frontend_lang = project.frontend_language.strip()
        backend_fw = project.backend_framework.strip()
        backend_lang = project.backend_language.strip()
        root = Path(project.path.strip()) if project.path.strip() else None

        if root is not None:
            frontend_pkg = _read_json(root / "frontend" / "package.json")
            frontend_fw = frontend_fw or detect_frontend_framework(frontend_pkg)
            if not frontend_lang and frontend_pkg is not None:
                frontend_lang = "javascript"

            backend_pkg = _read_json(root / "backend" / "package.json")
            backend_fw = backend_fw or detect_backend_framework(backend_pkg)
            if not backend_lang and backend_pkg is not None:
                backend_lang = "javascript"

            if not backend_fw or not backend_lang:
                python_fw = detect_python_framework(_read_text(root / "backend" / "requirements.txt"))
                if python_fw:
                    backend_fw = backend_fw or python_fw
                    backend_lang = backend_lang or "python"

        lines = [
            f"frontend: {frontend_fw or 'unknown'} ({frontend_lang or 'unknown'})",
            f"backend: {backend_fw or 'unknown'} ({backend_lang or 'unknown'})",
        ]
        if root is not None:
            lines.append(f"path: {root}")
        return "\n".join(lines)

    def get_project_snapshot(self, project_id: str) -> str:
        project = self._project(project_id)
        if project is None or not project.path.strip():
            return ""

        settings = get_settings()
        root = Path(project.path.strip())
        sections: list[str] = []

        def add_file(label: str, relative: str, limit: int) -> None:
            content = _read_text(root / relative)
            if content:
                sections.append(f"{label} ({relative}):\n{truncate_section(content, limit)}")

        manifest_chars = settings.snapshot_section_chars
        add_file("README", "README.md", manifest_chars)
        add_file("Root package.json", "package.json", manifest_chars)
        add_file("Frontend package.json", "frontend/package.json", manifest_chars)
        add_file("Backend package.json", "backend/package.json", manifest_chars)
        for entry in FRONTEND_ENTRY_FILES:
            add_file("Frontend entry", entry, ENTRY_FILE_CHARS)

        files = collect_project_file_list(root, settings.snapshot_max_files)
        if files:
            sections.append("Project file list (truncated):\n" + "\n".join(files))

        return "\n\n".join(sections)
