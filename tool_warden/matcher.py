from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Iterator, List, Mapping, Sequence, Tuple, Union

from .errors import AmbiguousMatch, EditError, NoOpEdit, OldTextNotFound

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EditRequest:
    old_text: str
    new_text: str

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "EditRequest":
        """Build from a tool-call payload; accepts snake_case or camelCase keys."""
        old = data.get("old_text", data.get("oldText"))
        new = data.get("new_text", data.get("newText"))
        if not isinstance(old, str) or not isinstance(new, str):
            raise EditError("Each edit needs string 'old_text' and 'new_text' fields")
        return cls(old_text=old, new_text=new)


@dataclass(frozen=True)
class MatchCandidate:
    strategy: str
    start: int
    end: int
    text: str


Strategy = Callable[[str, str], Iterator[MatchCandidate]]
EditLike = Union[EditRequest, Tuple[str, str], Mapping[str, Any]]


def _line_offsets(lines: Sequence[str]) -> List[int]:
    offsets: List[int] = []
    pos = 0
    for line in lines:
        offsets.append(pos)
        pos += len(line) + 1
    return offsets


def _block_end(start: int, block: Sequence[str]) -> int:
    return start + sum(len(line) for line in block) + max(len(block) - 1, 0)


def line_trimmed(content: str, find: str) -> Iterator[MatchCandidate]:
    lines = content.split("\n")
    search = find.split("\n")
    if search and search[-1] == "":
        search.pop()
    if not search:
        return
    offsets = _line_offsets(lines)
    height = len(search)
    wanted = [s.strip() for s in search]

    for i in range(len(lines) - height + 1):
        block = lines[i : i + height]
        if all(line.strip() == want for line, want in zip(block, wanted)):
            start = offsets[i]
            end = _block_end(start, block)
            yield MatchCandidate("line-trimmed", start, end, content[start:end])


def _collapse_ws(text: str) -> str:
    return re.sub(r"\s+", " ", text).strip()


def whitespace_normalized(content: str, find: str) -> Iterator[MatchCandidate]:
    target = _collapse_ws(find)
    if not target:
        return
    lines = content.split("\n")
    offsets = _line_offsets(lines)

    words = find.split()
    pattern = re.compile(r"\s+".join(re.escape(w) for w in words)) if words else None

    for i, line in enumerate(lines):
        normalized = _collapse_ws(line)
        if normalized == target:
            yield MatchCandidate("whitespace-normalized", offsets[i], offsets[i] + len(line), line)
        elif target in normalized and pattern is not None:
            m = pattern.search(line)
            if m:
                start = offsets[i] + m.start()
                yield MatchCandidate("whitespace-normalized", start, start + len(m.group(0)), m.group(0))

    find_lines = find.split("\n")
    height = len(find_lines)
    if height > 1:
        for i in range(len(lines) - height + 1):
            block = lines[i : i + height]
            joined = "\n".join(block)
            if _collapse_ws(joined) == target:
                yield MatchCandidate("whitespace-normalized", offsets[i], offsets[i] + len(joined), joined)


def _remove_indentation(text: str) -> str:
    lines = text.split("\n")
    non_empty = [line for line in lines if line.strip()]
    if not non_empty:
        return text
    indent = min(len(line) - len(line.lstrip()) for line in non_empty)
    return "\n".join(line[indent:] if line.strip() else line for line in lines)


def indentation_flexible(content: str, find: str) -> Iterator[MatchCandidate]:
    target = _remove_indentation(find)
    lines = content.split("\n")
    offsets = _line_offsets(lines)
    height = len(find.split("\n"))

    for i in range(len(lines) - height + 1):
        block = "\n".join(lines[i : i + height])
        if _remove_indentation(block) == target:
            yield MatchCandidate("indentation-flexible", offsets[i], offsets[i] + len(block), block)


# Least forgiving first.
STRATEGIES: Tuple[Strategy, ...] = (line_trimmed, whitespace_normalized, indentation_flexible)


def _leading_ws(text: str) -> str:
    for line in text.split("\n"):
        if line.strip():
            return line[: len(line) - len(line.lstrip())]
    return ""


def _carry_indent(matched: str, old_text: str, new_text: str) -> str:
    """Re-indent ``new_text`` by whatever indentation the match had beyond ``old_text``.

    Only applies when ``new_text`` is written at the same indentation as
    ``old_text``, i.e. the caller dropped the file's indentation from both.
    """
    got, asked = _leading_ws(matched), _leading_ws(old_text)
    if got == asked or not got.endswith(asked) or _leading_ws(new_text) != asked:
        return new_text
    extra = got[: len(got) - len(asked)]
    return "\n".join(extra + line if line.strip() else line for line in new_text.split("\n"))


def find_candidates(content: str, old_text: str) -> List[MatchCandidate]:
    """All candidates, in strategy priority order. Nothing is modified."""
    out: List[MatchCandidate] = []
    for strategy in STRATEGIES:
        out.extend(strategy(content, old_text))
    return out


def replace(content: str, old_text: str, new_text: str, replace_all: bool = False) -> str:
    """Replace the unique match of ``old_text`` in ``content``.

    Strategies are tried in order; inside a strategy every candidate is
    tried before moving on. A candidate that occurs more than once in the
    content is skipped unless ``replace_all`` is set, in which case every
    occurrence of the first located candidate is replaced.
    """

    if old_text == new_text:
        raise NoOpEdit("old_text and new_text must be different")
    if not old_text:
        raise OldTextNotFound("Invalid old_text: it must be at least one character")

    located = False
    for strategy in STRATEGIES:
        for candidate in strategy(content, old_text):
            search = candidate.text
            if not search:
                continue
            index = content.find(search)
            if index == -1:
                continue
            located = True
            replacement = _carry_indent(search, old_text, new_text)
            # The line-based strategies match without old_text's final newline.
            if old_text.endswith("\n") and not search.endswith("\n") and replacement.endswith("\n"):
                replacement = replacement[:-1]
            if replace_all:
                logger.debug("Replacing all %d occurrence(s) via %s", content.count(search), candidate.strategy)
                return content.replace(search, replacement)
            if content.rfind(search) != index:
                continue
            logger.debug("Unique match via %s at offset %d", candidate.strategy, index)
            return content[:index] + replacement + content[index + len(search) :]

    if not located:
        raise OldTextNotFound("old_text not found in content")
    raise AmbiguousMatch(
        "old_text found multiple times and requires more code context to uniquely identify the intended match"
    )


def as_edit_request(edit: EditLike) -> EditRequest:
    if isinstance(edit, EditRequest):
        return edit
    if isinstance(edit, Mapping):
        return EditRequest.from_mapping(edit)
    old, new = edit
    return EditRequest(old_text=old, new_text=new)


def apply_edits(content: str, edits: Iterable[EditLike], replace_all: bool = False) -> str:
    """Fold edits over ``content`` in order; any failure aborts the whole batch."""

    requests = [as_edit_request(e) for e in edits]
    if not requests:
        raise NoOpEdit("No edits supplied")

    current = content
    for i, edit in enumerate(requests):
        try:
            current = replace(current, edit.old_text, edit.new_text, replace_all)
        except EditError as e:
            if len(requests) > 1:
                raise type(e)(f"Edit {i + 1} of {len(requests)} failed: {e}", edit_index=i) from e
            e.edit_index = i
            raise
    return current
