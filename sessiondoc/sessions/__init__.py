"""Access to assistant session transcripts and project metadata."""

from .project import read_instructions, resolve_project_name
from .reader import CODEX_PREFIX, SessionStore

__all__ = ["CODEX_PREFIX", "SessionStore", "read_instructions", "resolve_project_name"]
