"""
Project Keying

This module maps a project root directory to the on-disk location of its
vector index, so several projects can be served from a single daemon.

Architecture
------------
- Each project is identified by its resolved absolute root path
- The path is hashed into a short, filesystem-safe `project_key`
- Each project gets isolated storage under DATA_ROOT/{project_key}/
"""

from __future__ import annotations

import hashlib
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field

from .config import settings


# ---------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------

class InvalidProjectError(ValueError):
    """Raised when a project root is missing or is not a directory."""


# ---------------------------------------------------------------------
# Project Context Model
# ---------------------------------------------------------------------

def resolve_project_root(root: str | Path | None) -> Path:
    """
    Resolve and validate a project root.

    Raises
    ------
    InvalidProjectError
        If the root is empty, unresolvable, or not a directory.
    """
    if root is None or (isinstance(root, str) and not root.strip()):
        raise InvalidProjectError("project root is required")

    try:
        path = Path(root).expanduser().resolve()
    except (OSError, RuntimeError) as exc:
        raise InvalidProjectError(f"Cannot resolve project root '{root}': {exc}") from exc

    if not path.is_dir():
        raise InvalidProjectError(f"Project root '{path}' is not a directory")

    return path


class ProjectContext(BaseModel):
    """
    Represents one indexed project, identified by its root directory.
    """

    root: Path = Field(..., description="Resolved absolute project root.")

    model_config = ConfigDict(frozen=True)

    @classmethod
    def from_root(cls, root: str | Path | None) -> "ProjectContext":
        return cls(root=resolve_project_root(root))

    @property
    def key(self) -> str:
        return project_key(self.root)


# ---------------------------------------------------------------------
# Project Path Utilities
# ---------------------------------------------------------------------

def project_key(root: str | Path) -> str:
    """
    Deterministic, filesystem-safe key for a project root.
    """
    resolved = str(Path(root).expanduser().resolve())
    return hashlib.sha1(resolved.encode("utf-8")).hexdigest()[:16]


def get_data_root() -> Path:
    """
    Root directory for all project indexes (settings.data_root).
    """
    return Path(settings.data_root).expanduser()


def get_project_data_path(root: str | Path) -> Path:
    """
    Get the index directory for a project.

    Raises
    ------
    InvalidProjectError
        If the root does not exist or is not a directory.
    """
    return get_data_root() / ProjectContext.from_root(root).key
