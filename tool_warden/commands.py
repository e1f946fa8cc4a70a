from __future__ import annotations

import logging
import os
import re
import shlex
from dataclasses import dataclass
from typing import Collection, List, Optional, Sequence, Tuple

from .errors import (
    CommandError,
    DangerousPattern,
    DisallowedCommand,
    EmptyCommand,
    PathArgumentOutsideRoots,
)
from .sandbox import PathArg, expand_home, is_within_allowed_roots

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CommandSegment:
    text: str
    program: str
    args: Tuple[str, ...]
    # Operator that ended this segment ("" for the last one).
    operator: str = ""


@dataclass(frozen=True)
class ValidationResult:
    ok: bool
    error: Optional[CommandError] = None

    @property
    def reason(self) -> str:
        return str(self.error) if self.error is not None else ""

    def raise_for_error(self) -> None:
        if self.error is not None:
            raise self.error


VALID = ValidationResult(ok=True)

# Command, backtick and process substitution hide a second program from the allow-list.
_SUBSTITUTION_RE = re.compile(r"\$\(|`|[<>]\(")
_NEWLINE_RE = re.compile(r"[\r\n]")


def _split_raw(command: str) -> List[Tuple[str, str]]:
    """Split on unquoted ``&&``, ``||``, ``;``, ``|`` and ``&``.

    Returns ``(segment_text, operator)`` pairs. ``&`` that belongs to a
    redirection (``2>&1``, ``>&2``, ``&>file``) does not split.
    """

    parts: List[Tuple[str, str]] = []
    buf: List[str] = []
    quote: Optional[str] = None
    i = 0
    n = len(command)

    while i < n:
        c = command[i]

        if quote is not None:
            buf.append(c)
            if c == "\\" and quote == '"' and i + 1 < n:
                buf.append(command[i + 1])
                i += 2
                continue
            if c == quote:
                quote = None
            i += 1
            continue

        if c == "\\" and i + 1 < n:
            buf.append(c)
            buf.append(command[i + 1])
            i += 2
            continue

        if c in ("'", '"'):
            quote = c
            buf.append(c)
            i += 1
            continue

        pair = command[i : i + 2]
        if pair in ("&&", "||"):
            parts.append(("".join(buf), pair))
            buf = []
            i += 2
            continue

        if c in (";", "|"):
            parts.append(("".join(buf), c))
            buf = []
            i += 1
            continue

        if c == "&":
            prev = command[i - 1] if i > 0 else ""
            nxt = command[i + 1] if i + 1 < n else ""
            if prev in ("<", ">") or nxt == ">":
                buf.append(c)
                i += 1
                continue
            parts.append(("".join(buf), c))
            buf = []
            i += 1
            continue

        buf.append(c)
        i += 1

    if quote is not None:
        raise DangerousPattern("Unterminated quote in command")
    parts.append(("".join(buf), ""))
    return parts


def split_segments(command: str) -> List[CommandSegment]:
    """Parse a command line into its atomic invocations.

    Raises DangerousPattern when the line cannot be parsed (unterminated
    quotes, empty segments such as ``ls &&``). A trailing ``&`` is allowed.
    """

    raw = _split_raw(command)
    segments: List[CommandSegment] = []
    for idx, (text, op) in enumerate(raw):
        text = text.strip()
        if not text:
            is_last = idx == len(raw) - 1
            if is_last and idx > 0 and raw[idx - 1][1] == "&":
                continue
            raise DangerousPattern(f"Empty command segment near '{op or raw[idx - 1][1]}'")
        try:
            lexer = shlex.shlex(text, posix=True, punctuation_chars="<>")
            lexer.whitespace_split = True
            tokens = list(lexer)
        except ValueError as e:
            raise DangerousPattern(f"Cannot parse command segment '{text}': {e}") from e
        if not tokens:
            raise DangerousPattern(f"Empty command segment: '{text}'")
        segments.append(CommandSegment(text=text, program=tokens[0], args=tuple(tokens[1:]), operator=op))
    return segments


def check_command(command: str, allowed_programs: Collection[str]) -> List[CommandSegment]:
    """Raising form of :func:`is_valid`; returns the parsed segments."""

    if not command or not command.strip():
        raise EmptyCommand("Command cannot be empty")

    if _SUBSTITUTION_RE.search(command):
        raise DangerousPattern(
            "Command substitution ($(...), backticks, <(...) and >(...)) is not allowed; "
            "run the inner command on its own"
        )
    if _NEWLINE_RE.search(command):
        raise DangerousPattern("Newlines are not allowed in commands; run one command line at a time")

    segments = split_segments(command)
    allowed = set(allowed_programs)
    for seg in segments:
        if seg.program not in allowed:
            raise DisallowedCommand(
                f"Command '{seg.program}' is not allowed. Allowed commands: {', '.join(sorted(allowed))}"
            )
    return segments


def is_valid(command: str, allowed_programs: Collection[str]) -> ValidationResult:
    try:
        check_command(command, allowed_programs)
    except CommandError as e:
        logger.warning("Rejected command %r: %s", command, e)
        return ValidationResult(ok=False, error=e)
    return VALID


# Mutation classification -----------------------------------------------------
#
# Only decides whether a human is asked to confirm. Over-flagging is accepted.

MUTATING_BINARIES = frozenset(
    {"rm", "mv", "cp", "mkdir", "rmdir", "touch", "chmod", "chown", "ln", "truncate", "dd", "tee"}
)

GIT_MUTATING = frozenset(
    {
        "add", "am", "apply", "branch", "checkout", "switch", "cherry-pick", "clean",
        "commit", "merge", "mv", "pull", "push", "rebase", "reset", "revert", "stash",
        "tag", "worktree", "submodule", "config",
    }
)

PACKAGE_MUTATING = frozenset(
    {"install", "uninstall", "update", "ci", "publish", "link", "dedupe", "prune", "rebuild", "add"}
)

PACKAGE_MANAGERS = frozenset({"npm", "pnpm", "yarn"})

# Coarse catch-all: any of these words anywhere in a segment.
MUTATING_KEYWORDS = ("create", "update", "upgrade", "install")

_SEGMENT_SPLIT_RE = re.compile(r"\s*(?:&&|\|\||;|\|)\s*")


def is_mutating(command: str) -> bool:
    """Heuristic: does the command look like it changes files or repository state?

    Redirection is detected anywhere, quoted or not. Not a security boundary.
    """

    command = command.strip()
    if ">" in command:
        return True

    for seg in (s.strip() for s in _SEGMENT_SPLIT_RE.split(command)):
        if not seg:
            continue
        if any(word in seg for word in MUTATING_KEYWORDS):
            return True

        tokens = seg.split()
        program = tokens[0]
        sub = tokens[1] if len(tokens) > 1 else None

        if program == "sed" and any(t.startswith("-i") for t in tokens[1:]):
            return True
        if program in MUTATING_BINARIES:
            return True
        if program == "git" and sub in GIT_MUTATING:
            return True
        if program in PACKAGE_MANAGERS and sub in PACKAGE_MUTATING:
            return True
    return False


# Path arguments --------------------------------------------------------------


def _tokenize_words(command: str) -> List[str]:
    """Whitespace tokenization that keeps quotes (and escapes) in the tokens."""

    tokens: List[str] = []
    current = ""
    mode = "normal"
    i = 0
    n = len(command)
    while i < n:
        c = command[i]
        if mode == "normal":
            if c.isspace():
                if current:
                    tokens.append(current)
                    current = ""
            elif c == "'":
                mode = "single"
                current += c
            elif c == '"':
                mode = "double"
                current += c
            elif c == "\\" and i + 1 < n:
                current += c + command[i + 1]
                i += 1
            else:
                current += c
        elif mode == "single":
            current += c
            if c == "'":
                mode = "normal"
        else:
            current += c
            if c == "\\" and i + 1 < n:
                current += command[i + 1]
                i += 1
            elif c == '"':
                mode = "normal"
        i += 1
    if current:
        tokens.append(current)
    return tokens


def _strip_quotes(token: str) -> str:
    if len(token) >= 2 and token[0] == token[-1] and token[0] in ("'", '"'):
        return token[1:-1]
    return token


_GIT_MESSAGE_SUBCOMMANDS = frozenset({"commit", "merge", "tag", "revert", "notes"})


def _message_mask(tokens: Sequence[str]) -> List[bool]:
    """Mark git commit-message tokens, which are text rather than paths."""

    skip = [False] * len(tokens)
    if len(tokens) < 2:
        return skip
    if _strip_quotes(tokens[0]) != "git" or _strip_quotes(tokens[1]) not in _GIT_MESSAGE_SUBCOMMANDS:
        return skip

    for i in range(2, len(tokens)):
        t = _strip_quotes(tokens[i])
        if t == "--":
            break
        if t.startswith("--message="):
            skip[i] = True
        elif re.match(r"^-m.+", t):
            skip[i] = True
        elif t in ("-m", "--message"):
            if i + 1 < len(tokens):
                skip[i + 1] = True
        elif re.match(r"^-[^-]+$", t) and "m" in t:
            if i + 1 < len(tokens):
                skip[i + 1] = True
    return skip


_ALWAYS_ALLOWED_PATHS = frozenset({"/dev/null", "/dev/stdout", "/dev/stderr"})


def _looks_like_path(token: str) -> bool:
    if token.startswith("-") or "://" in token:
        return False
    return "/" in token or token == "~"


def validate_command_paths(
    command: str,
    allowed_roots: Sequence[PathArg],
    cwd: PathArg,
) -> ValidationResult:
    """Every path-looking argument must resolve inside the allowed roots."""

    try:
        segments = split_segments(command)
    except CommandError as e:
        return ValidationResult(ok=False, error=e)

    for seg in segments:
        tokens = _tokenize_words(seg.text)
        skip = _message_mask(tokens)
        for i in range(1, len(tokens)):
            if skip[i]:
                continue
            raw = tokens[i]
            # Quoted multi-line text is an argument, not a path.
            if "\n" in raw and raw[0] in ("'", '"'):
                continue
            # Redirection operators glued to their target ("2>/dev/null").
            token = _strip_quotes(re.sub(r"^\d*(?:>>|>&|>|<)", "", raw))
            if not _looks_like_path(token) or token in _ALWAYS_ALLOWED_PATHS:
                continue
            resolved = os.path.normpath(os.path.join(os.fspath(cwd), expand_home(token)))
            if not is_within_allowed_roots(resolved, allowed_roots):
                error = PathArgumentOutsideRoots(
                    f"Path '{token}' resolves outside the allowed directories ({resolved}). "
                    f"All paths must be within {', '.join(os.fspath(r) for r in allowed_roots)}"
                )
                logger.warning("Rejected path argument in %r: %s", command, resolved)
                return ValidationResult(ok=False, error=error)
    return VALID
