"""Audit trail of workspace actions.

Every CLI action appends one JSON object per line, refusals included, so a
session can be reviewed after the fact. Failure events carry the exception
type and, where the exception has them, the failing edit index or the
destructive-command reason and tip.
"""

from __future__ import annotations

import json
import logging
import os
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Union

from .errors import DestructiveCommand, EditError

logger = logging.getLogger(__name__)

AUDIT_DIR = ".tool-warden"
AUDIT_NAME = "audit.jsonl"

# Commands and paths are recorded as given; anything longer is cut.
MAX_DETAIL_CHARS = 2000


def _clip(value: Any) -> Any:
    if isinstance(value, str) and len(value) > MAX_DETAIL_CHARS:
        return value[:MAX_DETAIL_CHARS] + f"... [{len(value)} chars]"
    if isinstance(value, dict):
        return {k: _clip(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_clip(v) for v in value]
    return value


@dataclass(frozen=True)
class AuditLogger:
    path: Path

    @classmethod
    def default_for_workspace(cls, workspace_root: Path) -> "AuditLogger":
        return cls(path=(workspace_root / AUDIT_DIR).resolve() / AUDIT_NAME)

    @classmethod
    def for_session(
        cls,
        workspace_root: Path,
        *,
        explicit: Optional[Union[str, os.PathLike]] = None,
        configured: Optional[Path] = None,
    ) -> "AuditLogger":
        """An explicit path beats the configured one, which beats the workspace default."""

        if explicit:
            return cls(path=Path(os.fspath(explicit)).expanduser())
        if configured is not None:
            return cls(path=configured)
        return cls.default_for_workspace(workspace_root)

    def log(self, event: Dict[str, Any]) -> None:
        event = _clip(dict(event))
        event.setdefault("ts", time.time())
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open("a", encoding="utf-8") as f:
            f.write(json.dumps(event, sort_keys=True, default=str) + "\n")
        logger.debug("audit %s ok=%s", event.get("action"), event.get("ok"))

    def record(self, action: str, details: Optional[Dict[str, Any]] = None, *, ok: bool = True) -> None:
        self.log(audit_event(action=action, ok=ok, details=details))

    def failure(self, action: str, exc: BaseException, details: Optional[Dict[str, Any]] = None) -> None:
        self.log(audit_failure(action, exc, details))


def audit_event(
    *,
    action: str,
    ok: bool,
    details: Optional[Dict[str, Any]] = None,
    error: Optional[str] = None,
) -> Dict[str, Any]:
    e: Dict[str, Any] = {"action": action, "ok": ok}
    if details:
        e["details"] = details
    if error:
        e["error"] = error
    return e


def audit_failure(action: str, exc: BaseException, details: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    details = dict(details or {})
    if isinstance(exc, EditError) and exc.edit_index is not None:
        details["edit_index"] = exc.edit_index
    if isinstance(exc, DestructiveCommand):
        details["reason"] = exc.reason
        if exc.tip:
            details["tip"] = exc.tip

    e = audit_event(action=action, ok=False, details=details, error=str(exc) or type(exc).__name__)
    e["error_type"] = type(exc).__name__
    return e
