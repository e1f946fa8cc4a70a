"""Destructive-command detection.

Allow-listing says which programs may run; this module catches invocations
of allowed programs that throw away work (hard resets, forced pushes,
recursive deletes outside temporary directories). A blocked result carries
a reason and a tip so the model can pick a safer alternative.
"""

from __future__ import annotations

import logging
import os
import re
import shlex
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Tuple

from .commands import split_segments
from .errors import CommandError, DestructiveCommand

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CommandSafety:
    blocked: bool
    reason: str = ""
    tip: str = ""
    command: str = ""

    def raise_for_block(self) -> None:
        if self.blocked:
            raise DestructiveCommand(self.reason, tip=self.tip)


SAFE = CommandSafety(blocked=False)


def _blocked(command: str, reason: str, tip: str) -> CommandSafety:
    return CommandSafety(blocked=True, reason=reason, tip=tip, command=command)


def _git(command: str) -> CommandSafety:
    lower = command.lower()

    if "git reset --hard" in lower or "git reset --merge" in lower:
        return _blocked(
            command,
            "git reset --hard or --merge destroys uncommitted changes",
            "Consider using 'git stash' first to save your changes, or use 'git reset --soft' to preserve changes.",
        )
    if re.search(r"git\s+checkout\s+--\s+\S+", lower):
        return _blocked(
            command,
            "git checkout -- <file> discards uncommitted file changes",
            "Use 'git restore --staged <file>' to unstage changes, or 'git stash' to save changes temporarily.",
        )
    if lower.startswith("git restore") and " --staged" not in lower:
        rest = lower[len("git restore") :].strip()
        if rest and not rest.startswith("-b"):
            return _blocked(
                command,
                "git restore <file> (without --staged) discards uncommitted changes",
                "Use 'git restore --staged <file>' to only unstage, or 'git stash' to save changes.",
            )
    if "git clean -f" in lower or "git clean --force" in lower:
        return _blocked(
            command,
            "git clean -f permanently deletes untracked files",
            "Use 'git clean -n' to preview what would be deleted.",
        )
    if ("git push --force" in lower and "--force-with-lease" not in lower) or re.search(r"git\s+push\s+-f\b", lower):
        return _blocked(
            command,
            "git push --force overwrites remote commit history",
            "Use 'git push --force-with-lease' for safer force pushes, or push to a new branch instead.",
        )
    # Case matters here: -d is the safe delete, -D forces it.
    if re.search(r"git\s+branch\s+(?:\S+\s+)*-[a-zA-Z]*D", command):
        return _blocked(
            command,
            "git branch -D force-deletes branches without checking if they're merged",
            "Use 'git branch -d' (lowercase) to safely delete branches that are merged.",
        )
    if "git stash drop" in lower or "git stash clear" in lower:
        return _blocked(
            command,
            "git stash drop/clear permanently deletes stashed changes",
            "Use 'git stash list' to see stashes, or 'git stash pop' to apply and remove a stash.",
        )
    return SAFE


def _temp_dirs() -> List[str]:
    dirs = ["/tmp", "/var/tmp"]
    tmpdir = os.environ.get("TMPDIR")
    if tmpdir:
        dirs.append(tmpdir.rstrip("/") or "/")
    return dirs


# Redirections name files the shell opens, not files rm deletes.
_REDIRECT_RE = re.compile(r"(?:^|(?<=\s))\d*(?:>>|>&|&>|>|<)\s*(?:'[^']*'|\"[^\"]*\"|[^\s'\"]+)")


def _in_temp_dir(operand: str) -> bool:
    """True for paths strictly below a temporary directory."""

    target = os.path.normpath(operand)
    # "$TMPDIR/../x" normalizes away from the variable.
    dirs = ["$TMPDIR", "${TMPDIR}", *_temp_dirs()]
    return any(target.startswith(tmp.rstrip("/") + "/") for tmp in dirs)


def _rm_invocations(command: str) -> List[Tuple[bool, List[str]]]:
    """``(wrapped, args)`` for every ``rm`` in the line, one per command segment.

    ``wrapped`` is set when rm is not the segment's program (``xargs rm``,
    ``sudo rm``), so its operands may come from somewhere else.
    """

    out: List[Tuple[bool, List[str]]] = []
    for segment in split_segments(command):
        tokens = shlex.split(_REDIRECT_RE.sub(" ", segment.text))
        for i, token in enumerate(tokens):
            if os.path.basename(token) == "rm":
                out.append((i > 0, tokens[i + 1 :]))
                break
    return out


def _rm_rf(command: str) -> CommandSafety:
    if not re.search(r"\brm\b", command):
        return SAFE
    try:
        invocations = _rm_invocations(command)
    except (CommandError, ValueError):
        return _blocked(
            command,
            "rm command could not be parsed safely",
            "Quote the rm arguments consistently, or split the command.",
        )

    for wrapped, args in invocations:
        recursive = force = False
        operands: List[str] = []
        options_done = False
        for arg in args:
            if options_done or not arg.startswith("-") or arg == "-":
                operands.append(arg)
            elif arg == "--":
                options_done = True
            elif arg.startswith("--"):
                recursive = recursive or arg == "--recursive"
                force = force or arg == "--force"
            else:
                recursive = recursive or "r" in arg or "R" in arg
                force = force or "f" in arg
        if not (recursive and force):
            continue
        if (operands or not wrapped) and all(_in_temp_dir(op) for op in operands):
            continue
        return _blocked(
            command,
            "rm -rf outside of temporary directories can cause permanent data loss",
            "Only rm -rf is allowed for /tmp/*, /var/tmp/*, or $TMPDIR/* to clean temporary files.",
        )
    return SAFE


_INLINE_SCRIPTS = (
    (re.compile(r"\bbash\s+-c\s+\S+", re.IGNORECASE), "bash"),
    (re.compile(r"\bsh\s+-c\s+\S+", re.IGNORECASE), "sh"),
    (re.compile(r"\bpython\d?\s+-c\s+\S+", re.IGNORECASE), "Python"),
    (re.compile(r"\bnode\s+-e\s+\S+", re.IGNORECASE), "Node.js"),
    (re.compile(r"\bnpx\s+-c\s+\S+", re.IGNORECASE), "npx"),
    (re.compile(r"\bruby\s+-e\s+\S+", re.IGNORECASE), "Ruby"),
    (re.compile(r"\bperl\s+-e\s+\S+", re.IGNORECASE), "Perl"),
)

_DESTRUCTIVE_IN_SCRIPT = tuple(
    re.compile(p, re.IGNORECASE)
    for p in (
        r"git\s+reset\s+--hard",
        r"git\s+reset\s+--merge",
        r"git\s+clean\s+-f",
        r"git\s+checkout\s+--\s+\S+",
        r"git\s+push\s+(-f|--force)",
        r"git\s+stash\s+(drop|clear)",
        r"rm\s+-rf\s+/home",
        r"rm\s+-rf\s+/usr",
        r"rm\s+-rf\s+~",
    )
)


def _inline_scripts(command: str) -> CommandSafety:
    for pattern, language in _INLINE_SCRIPTS:
        if not pattern.search(command):
            continue
        if any(p.search(command) for p in _DESTRUCTIVE_IN_SCRIPT):
            return _blocked(
                command,
                f"Inline {language} script contains destructive operation",
                "Review the script content for destructive commands.",
            )
    return SAFE


_HEREDOC_RE = re.compile(r"<<-?\s*['\"]?(\w+)['\"]?\s*(.*?)\n\1\b", re.DOTALL)
_HERE_STRING_RE = re.compile(r"<<<\s*(['\"])([^\"']+)\1")


def _here_documents(command: str) -> CommandSafety:
    """Scan heredoc bodies and here-strings fed to another program."""

    for match in _HEREDOC_RE.finditer(command):
        if any(p.search(match.group(2)) for p in _DESTRUCTIVE_IN_SCRIPT):
            return _blocked(
                command,
                "Heredoc contains destructive operation",
                "Review the heredoc content for destructive commands.",
            )
    for match in _HERE_STRING_RE.finditer(command):
        if any(p.search(match.group(2)) for p in _DESTRUCTIVE_IN_SCRIPT):
            return _blocked(
                command,
                "Here-string contains destructive operation",
                "Review the here-string content for destructive commands.",
            )
    return SAFE


# Script payloads first: they would otherwise only be seen as quoted text.
_CHECKS: Sequence[Callable[[str], CommandSafety]] = (_inline_scripts, _here_documents, _git, _rm_rf)


def detect_destructive_command(command: str) -> CommandSafety:
    trimmed = command.strip()
    for check in _CHECKS:
        result = check(trimmed)
        if result.blocked:
            logger.warning("Destructive command blocked: %s (%s)", trimmed, result.reason)
            return result
    return SAFE


def check_destructive(command: str, segments: Optional[Sequence[str]] = None) -> None:
    """Raise DestructiveCommand if the command, or any of its segments, is destructive."""

    for text in [command, *(segments or [])]:
        detect_destructive_command(text).raise_for_block()
