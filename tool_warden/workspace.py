from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Tuple

from .commands import check_command, is_mutating, validate_command_paths
from .config import WardenConfig
from .errors import OutsideAllowedRoots, PathNotFound, ReadOnlyFile, SandboxError
from .matcher import EditLike, EditRequest, apply_edits, as_edit_request
from .protection import check_destructive
from .sandbox import CancelSignal, PathArg, ResolvedPath, join_working_dir, validate_path

logger = logging.getLogger(__name__)

BOM = "\ufeff"


@dataclass(frozen=True)
class CommandPlan:
    command: str
    cwd: Path
    mutating: bool
    programs: Tuple[str, ...]


def _detect_line_ending(text: str) -> str:
    crlf = text.find("\r\n")
    lf = text.find("\n")
    if crlf == -1 and lf == -1:
        return "\n"
    if crlf != -1 and (lf == -1 or crlf < lf):
        return "\r\n"
    return "\n"


def _normalize_line_endings(text: str) -> str:
    return text.replace("\r\n", "\n").replace("\r", "\n")


def _restore_line_endings(text: str, ending: str) -> str:
    return text.replace("\n", "\r\n") if ending == "\r\n" else text


@dataclass(frozen=True)
class Workspace:
    """The allowed roots of one agent session plus the file I/O built on them.

    ``roots[0]`` is the primary root: relative paths and command working
    directories resolve against it.
    """

    roots: Tuple[Path, ...]
    read_only_files: Tuple[str, ...] = ()
    allowed_programs: Tuple[str, ...] = ()
    protect_destructive: bool = True

    @property
    def root(self) -> Path:
        return self.roots[0]

    @classmethod
    def from_path(cls, root: PathArg, *extra_roots: PathArg, **kwargs) -> "Workspace":
        roots = []
        for r in (root, *extra_roots):
            p = Path(os.fspath(r)).expanduser()
            try:
                p = p.resolve()
            except OSError:
                # If resolve fails (e.g. a symlink loop), normalize as absolute.
                p = p.absolute()
            roots.append(p)
        return cls(roots=tuple(roots), **kwargs)

    @classmethod
    def from_config(cls, cfg: WardenConfig, roots: Optional[Sequence[PathArg]] = None) -> "Workspace":
        chosen = list(roots) if roots else cfg.roots
        if not chosen:
            raise OutsideAllowedRoots("No workspace roots configured")
        return cls.from_path(
            *chosen,
            read_only_files=tuple(cfg.read_only_files),
            allowed_programs=tuple(cfg.allowed_commands),
            protect_destructive=cfg.protect_destructive,
        )

    # Paths -------------------------------------------------------------------

    def resolve(
        self,
        path: PathArg,
        *,
        require_existence: bool = True,
        cancel: Optional[CancelSignal] = None,
    ) -> ResolvedPath:
        return validate_path(
            join_working_dir(path, self.root),
            self.roots,
            require_existence=require_existence,
            cancel=cancel,
        )

    def is_read_only(self, path: PathArg) -> bool:
        target = os.path.normpath(join_working_dir(path, self.root))
        for entry in self.read_only_files:
            if os.path.normpath(join_working_dir(entry, self.root)) == target:
                return True
        return False

    def _ensure_writable(self, path: PathArg, resolved: ResolvedPath) -> None:
        if self.is_read_only(path) or self.is_read_only(resolved.path):
            raise ReadOnlyFile(f"File is read-only and cannot be modified: {os.fspath(path)}")

    def check_writable(self, path: PathArg, *, cancel: Optional[CancelSignal] = None) -> ResolvedPath:
        """Resolve a write target without touching it. Raises if it may not be written."""

        resolved = self.resolve(path, require_existence=False, cancel=cancel)
        self._ensure_writable(path, resolved)
        return resolved

    def exists(self, path: PathArg) -> bool:
        return self.resolve(path, require_existence=False).exists

    # File I/O ----------------------------------------------------------------

    def read_text(self, path: PathArg, *, max_bytes: int = 2_000_000) -> str:
        resolved = self.resolve(path)
        if resolved.path.is_dir():
            raise IsADirectoryError(str(path))
        data = resolved.path.read_bytes()
        if len(data) > max_bytes:
            raise ValueError(f"Refusing to read >{max_bytes} bytes from {path}")
        return data.decode("utf-8", errors="replace")

    def write_text(self, path: PathArg, content: str, *, cancel: Optional[CancelSignal] = None) -> Path:
        """Full overwrite, written verbatim. Parent directories are created inside the sandbox."""

        resolved = self.check_writable(path, cancel=cancel)
        resolved.path.parent.mkdir(parents=True, exist_ok=True)
        # mkdir may have materialized directories; re-check before writing.
        resolved = self.resolve(resolved.path, require_existence=False, cancel=cancel)
        resolved.path.write_text(content, encoding="utf-8", newline="")
        logger.info("Wrote %s (%d bytes)", resolved.path, len(content.encode("utf-8")))
        return resolved.path

    def edit_file(
        self,
        path: PathArg,
        edits: Iterable[EditLike],
        *,
        replace_all: bool = False,
        dry_run: bool = False,
        cancel: Optional[CancelSignal] = None,
    ) -> str:
        """Apply edits to a file and write the result back.

        Matching runs on BOM-stripped, LF-normalized text; the file's BOM and
        line endings are restored on write. Returns the new file text.
        """

        resolved = self.resolve(path, cancel=cancel)
        self._ensure_writable(path, resolved)

        # newline="" keeps CRLF visible so it can be restored below.
        with resolved.path.open("r", encoding="utf-8", newline="") as f:
            raw = f.read()
        bom = BOM if raw.startswith(BOM) else ""
        body = raw[len(bom) :]
        ending = _detect_line_ending(body)
        content = _normalize_line_endings(body)

        normalized = [
            EditRequest(
                old_text=_normalize_line_endings(e.old_text),
                new_text=_normalize_line_endings(e.new_text),
            )
            for e in map(as_edit_request, edits)
        ]

        edited = apply_edits(content, normalized, replace_all=replace_all)
        final = bom + _restore_line_endings(edited, ending)

        if not dry_run:
            resolved.path.write_text(final, encoding="utf-8", newline="")
            logger.info("Edited %s (%d edit(s))", resolved.path, len(normalized))
        return final

    def list_dir(self, path: PathArg = ".", *, include_hidden: bool = False) -> List[str]:
        p = self.resolve(path).path
        if not p.is_dir():
            raise NotADirectoryError(str(path))
        out: List[str] = []
        for child in sorted(p.iterdir(), key=lambda c: c.name.lower()):
            if not include_hidden and child.name.startswith("."):
                continue
            suffix = "/" if child.is_dir() else ""
            out.append(child.name + suffix)
        return out

    # Commands ----------------------------------------------------------------

    def resolve_cwd(self, cwd: Optional[PathArg] = None) -> Path:
        raw = os.fspath(cwd).strip() if cwd is not None else ""
        target = raw or str(self.root)
        try:
            resolved = self.resolve(target)
        except PathNotFound as e:
            raise PathNotFound(f"Working directory does not exist: {target}") from e
        except SandboxError as e:
            raise type(e)(
                f"Working directory must be within the allowed directories: "
                f"{', '.join(str(r) for r in self.roots)}. Received: {target}"
            ) from e
        if not resolved.path.is_dir():
            raise NotADirectoryError(f"Working directory is not a directory: {resolved.path}")
        return resolved.path

    def check_command(self, command: str, cwd: Optional[PathArg] = None) -> CommandPlan:
        """Validate a command for execution in this workspace.

        Order: allow-list and syntax, working directory, path arguments,
        destructive operations. Raises the first refusal.
        """

        segments = check_command(command, self.allowed_programs)
        work_dir = self.resolve_cwd(cwd)
        validate_command_paths(command, self.roots, work_dir).raise_for_error()
        if self.protect_destructive:
            check_destructive(command, [s.text for s in segments])

        plan = CommandPlan(
            command=command,
            cwd=work_dir,
            mutating=is_mutating(command),
            programs=tuple(s.program for s in segments),
        )
        logger.info("Command accepted: %s (cwd=%s, mutating=%s)", command, work_dir, plan.mutating)
        return plan
