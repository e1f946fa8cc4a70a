"""Tool Warden: the safety and edit core behind a coding agent's tool calls.

Sits between "the model suggests an action" and "the action touches disk or
spawns a process":
- Path sandboxing against a set of allowed roots (symlinks followed, escapes refused)
- Tolerant but unambiguous old_text/new_text edits
- Shell command allow-listing, path-argument checks and destructive-command protection

Everything is stateless; roots and allowed programs are passed on every call.
"""

from __future__ import annotations

from .commands import CommandSegment, ValidationResult, is_mutating, is_valid, split_segments, validate_command_paths
from .errors import (
    AmbiguousMatch,
    Cancelled,
    CommandError,
    DangerousPattern,
    DestructiveCommand,
    DisallowedCommand,
    EditError,
    EmptyCommand,
    NoOpEdit,
    OldTextNotFound,
    OutsideAllowedRoots,
    PathArgumentOutsideRoots,
    PathNotFound,
    ReadOnlyFile,
    SandboxError,
    SymlinkEscapesSandbox,
    WardenError,
)
from .matcher import EditRequest, MatchCandidate, apply_edits, find_candidates, replace
from .protection import CommandSafety, detect_destructive_command
from .sandbox import ResolvedPath, is_within_allowed_roots, validate_path
from .workspace import CommandPlan, Workspace

__all__ = [
    "AmbiguousMatch",
    "Cancelled",
    "CommandError",
    "CommandPlan",
    "CommandSafety",
    "CommandSegment",
    "DangerousPattern",
    "DestructiveCommand",
    "DisallowedCommand",
    "EditError",
    "EditRequest",
    "EmptyCommand",
    "MatchCandidate",
    "NoOpEdit",
    "OldTextNotFound",
    "OutsideAllowedRoots",
    "PathArgumentOutsideRoots",
    "PathNotFound",
    "ReadOnlyFile",
    "ResolvedPath",
    "SandboxError",
    "SymlinkEscapesSandbox",
    "ValidationResult",
    "WardenError",
    "Workspace",
    "apply_edits",
    "detect_destructive_command",
    "find_candidates",
    "is_mutating",
    "is_valid",
    "is_within_allowed_roots",
    "replace",
    "split_segments",
    "validate_command_paths",
    "validate_path",
]
