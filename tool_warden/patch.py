from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Literal, Optional, Tuple

from .errors import EditError, PatchError
from .matcher import EditRequest
from .workspace import Workspace

logger = logging.getLogger(__name__)

PatchOp = Literal["add", "update"]

BEGIN = "*** Begin Patch"
END = "*** End Patch"
ADD = "*** Add File:"
UPDATE = "*** Update File:"


@dataclass(frozen=True)
class FilePatch:
    op: PatchOp
    path: str
    # For "add", and for "update" in full mode: the complete new content.
    content: str = ""
    mode: Literal["full", "hunks"] = "full"
    edits: Tuple[EditRequest, ...] = ()


def _plus_body(lines: List[str], what: str) -> str:
    out: List[str] = []
    for ln in lines:
        if not ln.startswith("+"):
            raise PatchError(f"{what} body must use '+' lines only")
        out.append(ln[1:])
    return "\n".join(out) + ("\n" if out else "")


def _parse_hunks(path: str, lines: List[str]) -> Tuple[EditRequest, ...]:
    edits: List[EditRequest] = []
    old_lines: List[str] = []
    new_lines: List[str] = []
    in_hunk = False
    saw_change = False

    def flush() -> None:
        nonlocal old_lines, new_lines, in_hunk, saw_change
        if in_hunk and saw_change:
            if not old_lines:
                raise PatchError(f"Hunk for {path} has no context or removed lines to anchor it")
            edits.append(
                EditRequest(
                    old_text="\n".join(old_lines) + "\n",
                    new_text="\n".join(new_lines) + ("\n" if new_lines else ""),
                )
            )
        old_lines = []
        new_lines = []
        in_hunk = False
        saw_change = False

    for ln in lines:
        if ln.startswith("@@"):
            flush()
            in_hunk = True
            continue
        if not in_hunk:
            if not ln.strip():
                continue
            raise PatchError("Update hunks must start with '@@'")
        if ln.startswith(" ") or ln == "":
            old_lines.append(ln[1:])
            new_lines.append(ln[1:])
        elif ln.startswith("-"):
            old_lines.append(ln[1:])
            saw_change = True
        elif ln.startswith("+"):
            new_lines.append(ln[1:])
            saw_change = True
        else:
            raise PatchError("Invalid hunk line prefix (expected ' ', '+', '-')")
    flush()
    if not edits:
        raise PatchError(f"No applicable hunks found for {path}")
    return tuple(edits)


def _parse_section(header: str, body: List[str]) -> FilePatch:
    if header.startswith(ADD):
        path = header[len(ADD) :].strip()
        return FilePatch(op="add", path=path, content=_plus_body(body, "Add File"))

    if header.startswith(UPDATE):
        path = header[len(UPDATE) :].strip()
        if body and body[0].strip() == "@@ FULL":
            return FilePatch(op="update", path=path, content=_plus_body(body[1:], "FULL update"), mode="full")
        return FilePatch(op="update", path=path, mode="hunks", edits=_parse_hunks(path, body))

    raise PatchError(f"Unknown patch header: {header}")


def parse_patch(text: str) -> List[FilePatch]:
    """Parse a minimal patch format; one patch may touch several files.

    Supported:
      - Add file:
        *** Begin Patch
        *** Add File: path/rel.txt
        +line
        +line2
        *** End Patch

      - Update file (FULL replace):
        *** Begin Patch
        *** Update File: path/rel.txt
        @@ FULL
        +entire new file line1
        +line2
        *** End Patch

      - Update file (HUNKS replace):
        *** Begin Patch
        *** Update File: path/rel.txt
        @@
         context
        -old
        +new
         context
        @@
        ...
        *** End Patch

    Each hunk becomes an EditRequest (context plus removed lines as
    ``old_text``), so hunks are located with the same tolerant matching as
    tool-call edits and must be unique in the file.
    """

    lines = text.splitlines()
    while lines and not lines[-1].strip():
        lines.pop()
    if not lines or lines[0].strip() != BEGIN:
        raise PatchError(f"Patch must start with '{BEGIN}'")
    if lines[-1].strip() != END:
        raise PatchError(f"Patch must end with '{END}'")

    sections: List[Tuple[str, List[str]]] = []
    current: Optional[Tuple[str, List[str]]] = None
    for ln in lines[1:-1]:
        if ln.startswith(ADD) or ln.startswith(UPDATE):
            current = (ln.strip(), [])
            sections.append(current)
            continue
        if ln.startswith("*** "):
            raise PatchError(f"Unknown patch header: {ln.strip()}")
        if current is None:
            if not ln.strip():
                continue
            raise PatchError("Missing patch header (Add File / Update File)")
        current[1].append(ln)

    if not sections:
        raise PatchError("Missing patch header (Add File / Update File)")
    return [_parse_section(header, body) for header, body in sections]


def render_file_patch(ws: Workspace, fp: FilePatch, *, allow_overwrite: bool = False) -> str:
    """Check one section against the workspace and return the file's new text.

    Nothing is written; refusals (read-only, outside the roots, missing
    file, unmatched hunk) surface here.
    """

    path = fp.path.strip()
    if not path:
        raise PatchError("Empty patch path")
    ws.check_writable(path)

    if fp.op == "add":
        if ws.exists(path) and not allow_overwrite:
            raise PatchError(f"File already exists: {path}")
        return fp.content

    if fp.op == "update":
        if fp.mode == "full":
            if not ws.exists(path):
                raise PatchError(f"Cannot update missing file: {path}")
            return fp.content
        if fp.mode == "hunks":
            try:
                return ws.edit_file(path, fp.edits, dry_run=True)
            except EditError as e:
                raise PatchError(f"Failed to apply hunk to {path}: {e}") from e

    raise PatchError(f"Unsupported operation: {fp.op}")


def apply_file_patch(ws: Workspace, fp: FilePatch, *, allow_overwrite: bool = False) -> None:
    ws.write_text(fp.path.strip(), render_file_patch(ws, fp, allow_overwrite=allow_overwrite))


def apply_patch(ws: Workspace, text: str, *, allow_overwrite: bool = False) -> List[FilePatch]:
    """Parse and apply every file section.

    Every section is checked and rendered before the first write, so a
    refused section leaves all files untouched. A file may appear in only
    one section.
    """

    patches = parse_patch(text)
    rendered: List[Tuple[FilePatch, str]] = []
    seen: Dict[Path, str] = {}
    for fp in patches:
        new_text = render_file_patch(ws, fp, allow_overwrite=allow_overwrite)
        target = ws.resolve(fp.path.strip(), require_existence=False).path
        if target in seen:
            raise PatchError(f"File appears twice in one patch: {fp.path} (also as {seen[target]})")
        seen[target] = fp.path
        rendered.append((fp, new_text))

    for fp, new_text in rendered:
        ws.write_text(fp.path.strip(), new_text)
        logger.info("Applied patch: %s %s (%s)", fp.op, fp.path, fp.mode)
    return patches

