"""Git collaborator contract.

Goals only ever *request* a branch; creating repositories and switching
branches is delegated to a :class:`GitClient` implementation.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class GitClient(Protocol):

    def ensure_repository(self, project_path: str, default_branch: str = "main") -> None:
        """Initialise a repository at *project_path* if none exists yet."""
        ...

    def checkout_branch(self, project_path: str, branch_name: str) -> None:
        """Create or reset *branch_name* and switch to it (``git checkout -B``)."""
        ...
