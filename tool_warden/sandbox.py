from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Protocol, Sequence, Union

from .errors import Cancelled, OutsideAllowedRoots, PathNotFound, SymlinkEscapesSandbox

logger = logging.getLogger(__name__)

PathArg = Union[str, "os.PathLike[str]"]

# Upper bound on links followed for one path, and on ancestors visited while
# looking for an existing parent. Exceeding either fails closed.
MAX_RESOLVE_DEPTH = 40
MAX_ANCESTOR_STEPS = 4096


class CancelSignal(Protocol):
    def is_set(self) -> bool:
        ...


@dataclass(frozen=True)
class ResolvedPath:
    path: Path
    exists: bool

    def __fspath__(self) -> str:
        return str(self.path)

    def __str__(self) -> str:
        return str(self.path)


def expand_home(path: str) -> str:
    if path == "~" or path.startswith("~/"):
        return str(Path.home()) + path[1:]
    return path


def join_working_dir(user_path: PathArg, working_dir: PathArg) -> str:
    p = os.fspath(user_path)
    if os.path.isabs(p):
        return os.path.normpath(p)
    return os.path.normpath(os.path.join(os.fspath(working_dir), p))


def _absolute(path: PathArg, cwd: Optional[PathArg]) -> str:
    expanded = expand_home(os.fspath(path))
    base = os.fspath(cwd) if cwd is not None else os.getcwd()
    return os.path.normpath(os.path.join(base, expanded))


def _contained(path: str, roots: Sequence[str]) -> bool:
    for root in roots:
        try:
            if os.path.commonpath([root, path]) == root:
                return True
        except ValueError:
            # Different drives, or a mix of absolute and relative paths.
            continue
    return False


def _canonicalize(path: str) -> str:
    try:
        return os.path.realpath(path, strict=True)
    except OSError as e:
        raise SymlinkEscapesSandbox(f"Access denied - cannot resolve symlinks in {path}: {e}") from e


def _follow_link(path: str) -> str:
    """Follow a (possibly dangling) symlink chain to its final destination."""
    current = path
    hops = 0
    while os.path.islink(current):
        hops += 1
        if hops > MAX_RESOLVE_DEPTH:
            raise SymlinkEscapesSandbox(
                f"Access denied - too many levels of symbolic links resolving {path}"
            )
        link = os.readlink(current)
        current = os.path.normpath(os.path.join(os.path.dirname(current), link))
    return current


def _nearest_existing_ancestor(path: str) -> Optional[str]:
    current = os.path.dirname(path)
    for _ in range(MAX_ANCESTOR_STEPS):
        if os.path.exists(current):
            return current
        if os.path.islink(current):
            # Dangling link in the middle of the path: keep walking from
            # wherever it points.
            current = _follow_link(current)
            continue
        parent = os.path.dirname(current)
        if parent == current:
            return None
        current = parent
    raise SymlinkEscapesSandbox(f"Access denied - ancestor walk exceeded limit for {path}")


def normalize_roots(allowed_roots: Sequence[PathArg], cwd: Optional[PathArg] = None) -> List[str]:
    """Absolute roots, canonicalized where they exist as directories."""

    out: List[str] = []
    for root in allowed_roots:
        normalized = _absolute(root, cwd)
        if os.path.isdir(normalized):
            try:
                normalized = os.path.realpath(normalized, strict=True)
            except OSError:
                # Keep the lexical form; containment below stays conservative.
                pass
        if normalized not in out:
            out.append(normalized)
    return out


def is_within_allowed_roots(
    path: PathArg,
    allowed_roots: Sequence[PathArg],
    cwd: Optional[PathArg] = None,
) -> bool:
    """Containment predicate: path (or its real location, if it exists) is under a root."""

    roots = normalize_roots(allowed_roots, cwd)
    target = os.path.realpath(_absolute(path, cwd))
    return _contained(target, roots)


def _check_cancel(cancel: Optional[CancelSignal], message: str) -> None:
    if cancel is not None and cancel.is_set():
        raise Cancelled(message)


def validate_path(
    requested_path: PathArg,
    allowed_roots: Sequence[PathArg],
    *,
    require_existence: bool = True,
    cancel: Optional[CancelSignal] = None,
    cwd: Optional[PathArg] = None,
) -> ResolvedPath:
    """Resolve ``requested_path`` and prove it lies inside ``allowed_roots``.

    The intended (lexical) path is checked first, so files that do not exist
    yet can be created under a root. Existing targets are then canonicalized
    and re-checked; for missing targets the nearest existing ancestor is
    canonicalized instead, which catches a symlinked parent pointing outside.

    Raises OutsideAllowedRoots, SymlinkEscapesSandbox, PathNotFound or
    Cancelled. Performs no writes.
    """

    _check_cancel(cancel, "Path validation aborted")

    absolute = _absolute(requested_path, cwd)
    roots = normalize_roots(allowed_roots, cwd)
    if not roots:
        raise OutsideAllowedRoots(f"Access denied - no allowed directories configured for {absolute}")

    # A root reached through a symlink is also accepted in its lexical form;
    # the canonical checks below still bind the real location.
    lexical_roots = [_absolute(root, cwd) for root in allowed_roots]
    if not (_contained(absolute, roots) or _contained(absolute, lexical_roots)):
        logger.warning("Path outside allowed roots: %s", absolute)
        raise OutsideAllowedRoots(
            f"Access denied - path outside allowed directories: {absolute} "
            f"not in any of {', '.join(roots)}"
        )

    if os.path.exists(absolute):
        real = _canonicalize(absolute)
        if not _contained(real, roots):
            logger.warning("Symlink escape: %s -> %s", absolute, real)
            raise SymlinkEscapesSandbox(
                f"Access denied - symlink target outside allowed directories: {absolute} -> {real}"
            )
        resolved = ResolvedPath(path=Path(real), exists=True)
    else:
        target = _follow_link(absolute) if os.path.islink(absolute) else absolute
        if target != absolute and not _contained(target, roots):
            raise SymlinkEscapesSandbox(
                f"Access denied - symlink target outside allowed directories: {absolute} -> {target}"
            )
        ancestor = _nearest_existing_ancestor(target)
        if ancestor is None:
            raise SymlinkEscapesSandbox(f"Access denied - no existing ancestor for {absolute}")
        real_ancestor = _canonicalize(ancestor)
        if not _contained(real_ancestor, roots):
            logger.warning("Ancestor escape: %s (ancestor %s -> %s)", absolute, ancestor, real_ancestor)
            raise SymlinkEscapesSandbox(
                f"Access denied - ancestor directory resolves outside allowed directories: "
                f"{ancestor} -> {real_ancestor}"
            )
        resolved = ResolvedPath(path=Path(absolute), exists=False)

    if require_existence:
        _check_cancel(cancel, "Path validation aborted during existence check")
        if not os.path.exists(resolved.path):
            raise PathNotFound(
                f"The specified path does not exist: {os.fspath(requested_path)} ({resolved.path})"
            )

    logger.debug("Validated %s -> %s (exists=%s)", os.fspath(requested_path), resolved.path, resolved.exists)
    return resolved
