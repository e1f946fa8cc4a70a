from __future__ import annotations

import argparse
import logging
import shlex
import sys
from typing import Any, List, Optional, Tuple

from .audit import AuditLogger
from .config import WardenConfig, load_config
from .errors import EditError, WardenError
from .exec import run_in_workspace
from .logging_utils import configure_logging, default_log_path, level_for
from .matcher import EditRequest
from .patch import apply_patch
from .sandbox import join_working_dir, validate_path
from .workspace import Workspace

logger = logging.getLogger(__name__)


def _context(args: argparse.Namespace) -> Tuple[WardenConfig, Workspace, AuditLogger]:
    cfg = load_config(args.config)
    ws = Workspace.from_config(cfg, roots=args.root)

    log_path = args.log or cfg.log_path or default_log_path(ws.root)
    configure_logging(log_path=str(log_path), level=level_for(args.verbose, cfg.log_level))

    audit = AuditLogger.for_session(ws.root, explicit=args.audit_log, configured=cfg.audit_path)
    return cfg, ws, audit



def _write_text_out(txt: str) -> None:
    sys.stdout.write(txt)
    if txt and not txt.endswith("\n"):
        sys.stdout.write("\n")


def cmd_check_path(args: argparse.Namespace) -> int:
    _, ws, audit = _context(args)
    details = {"path": args.path, "must_exist": bool(args.must_exist)}
    try:
        base = ws.resolve_cwd(args.cwd) if args.cwd else ws.root
        resolved = validate_path(join_working_dir(args.path, base), ws.roots, require_existence=bool(args.must_exist))
        print(resolved.path)
        audit.record("check_path", {**details, "resolved": str(resolved.path)})
        return 0
    except Exception as e:
        audit.failure("check_path", e, details)
        raise


def cmd_check_command(args: argparse.Namespace) -> int:
    _, ws, audit = _context(args)
    try:
        plan = ws.check_command(args.command, args.cwd)
        print("ok (mutating)" if plan.mutating else "ok")
        audit.record("check_command", {"command": args.command, "cwd": str(plan.cwd), "mutating": plan.mutating})
        return 0
    except Exception as e:
        audit.failure("check_command", e, {"command": args.command})
        raise


def cmd_ls(args: argparse.Namespace) -> int:
    _, ws, audit = _context(args)
    rel = args.path or "."
    try:
        items = ws.list_dir(rel, include_hidden=bool(args.all))
        for it in items:
            print(it)
        audit.record("ls", {"path": rel, "count": len(items)})
        return 0
    except Exception as e:
        audit.failure("ls", e, {"path": rel})
        raise


def cmd_read(args: argparse.Namespace) -> int:
    _, ws, audit = _context(args)
    try:
        txt = ws.read_text(args.path)
        _write_text_out(txt)
        audit.record("read", {"path": args.path, "bytes": len(txt.encode("utf-8"))})
        return 0
    except Exception as e:
        audit.failure("read", e, {"path": args.path})
        raise


def cmd_write(args: argparse.Namespace) -> int:
    _, ws, audit = _context(args)
    content = sys.stdin.read()
    try:
        ws.write_text(args.path, content)
        audit.record("write", {"path": args.path, "bytes": len(content.encode("utf-8"))})
        return 0
    except Exception as e:
        audit.failure("write", e, {"path": args.path})
        raise


def _load_edits(text: str) -> List[EditRequest]:
    """Edits arrive as YAML (or JSON, which YAML reads too) on stdin."""

    try:
        import yaml  # type: ignore
    except Exception as e:
        raise RuntimeError("PyYAML is required to read edits") from e

    try:
        data: Any = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise EditError(f"Edits are not valid YAML/JSON: {e}") from e
    if isinstance(data, dict):
        data = data.get("edits", [data])
    if not isinstance(data, list) or not all(isinstance(d, dict) for d in data):
        raise EditError("Edits must be a list of {old_text, new_text} mappings")
    return [EditRequest.from_mapping(d) for d in data]


def cmd_edit(args: argparse.Namespace) -> int:
    _, ws, audit = _context(args)
    details = {"path": args.path, "replace_all": bool(args.replace_all), "dry_run": bool(args.dry_run)}
    try:
        edits = _load_edits(sys.stdin.read())
        details["edits"] = len(edits)
        new_text = ws.edit_file(args.path, edits, replace_all=bool(args.replace_all), dry_run=bool(args.dry_run))
        if args.dry_run:
            _write_text_out(new_text)
        audit.record("edit", details)
        return 0
    except Exception as e:
        audit.failure("edit", e, details)
        raise


def cmd_apply(args: argparse.Namespace) -> int:
    _, ws, audit = _context(args)
    patch_text = sys.stdin.read()
    try:
        patches = apply_patch(ws, patch_text, allow_overwrite=bool(args.force))
        for fp in patches:
            print(f"Applied: {fp.op} {fp.path} ({fp.mode})")
        audit.record("apply_patch", {"files": [{"op": fp.op, "path": fp.path, "mode": fp.mode} for fp in patches]})
        return 0
    except Exception as e:
        audit.failure("apply_patch", e)
        raise


def cmd_run(args: argparse.Namespace) -> int:
    cfg, ws, audit = _context(args)
    argv = list(args.command)
    if argv and argv[0] == "--":
        argv = argv[1:]
    if not argv:
        raise SystemExit("run: provide a command after --")
    # A single argument is a whole shell line; several are an argv to quote.
    command = argv[0] if len(argv) == 1 else shlex.join(argv)
    timeout_s = float(args.timeout) if args.timeout is not None else cfg.timeout_s
    try:
        plan = ws.check_command(command, args.cwd)
        res = run_in_workspace(command, cwd=str(plan.cwd), timeout_s=timeout_s)
        sys.stdout.write(res.stdout)
        sys.stderr.write(res.stderr)
        audit.record(
            "run",
            {
                "command": command,
                "cwd": str(plan.cwd),
                "mutating": plan.mutating,
                "returncode": res.returncode,
                "timeout": timeout_s,
                "timed_out": res.timed_out,
            },
            ok=res.returncode == 0,
        )
        return int(res.returncode)
    except Exception as e:
        audit.failure("run", e, {"command": command, "timeout": timeout_s})
        raise


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="tool-warden")
    p.add_argument("--config", default=None, help="Config file (default: ./.tool-warden.yaml if present)")
    p.add_argument(
        "--root",
        action="append",
        default=None,
        help="Allowed root directory; repeatable, first is primary (overrides the config)",
    )
    p.add_argument("--audit-log", help="Audit log path (defaults to <root>/.tool-warden/audit.jsonl)")
    p.add_argument("--log", default=None, help="Log file path (defaults to <root>/.tool-warden/warden.log)")
    p.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    sub = p.add_subparsers(dest="subcmd", required=True)

    sp = sub.add_parser("check-path", help="Resolve a path inside the allowed roots")
    sp.add_argument("path")
    sp.add_argument("--must-exist", action="store_true", help="Fail if the path does not exist")
    sp.add_argument("--cwd", default=None, help="Directory relative paths are joined to")
    sp.set_defaults(func=cmd_check_path)

    sp = sub.add_parser("check-command", help="Validate a shell command line")
    sp.add_argument("command")
    sp.add_argument("--cwd", default=None, help="Working directory the command would run in")
    sp.set_defaults(func=cmd_check_command)

    sp = sub.add_parser("ls", help="List directory")
    sp.add_argument("path", nargs="?", default=".")
    sp.add_argument("-a", "--all", action="store_true", help="Include dotfiles")
    sp.set_defaults(func=cmd_ls)

    sp = sub.add_parser("read", help="Read a file to stdout")
    sp.add_argument("path")
    sp.set_defaults(func=cmd_read)

    sp = sub.add_parser("write", help="Write a file from stdin")
    sp.add_argument("path")
    sp.set_defaults(func=cmd_write)

    sp = sub.add_parser("edit", help="Apply old_text/new_text edits (YAML or JSON list on stdin)")
    sp.add_argument("path")
    sp.add_argument("--replace-all", action="store_true", help="Replace every occurrence of each match")
    sp.add_argument("--dry-run", action="store_true", help="Print the result instead of writing it")
    sp.set_defaults(func=cmd_edit)

    sp = sub.add_parser("apply", help="Apply a patch from stdin")
    sp.add_argument("--force", action="store_true", help="Allow Add File to overwrite existing files")
    sp.set_defaults(func=cmd_apply)

    sp = sub.add_parser("run", help="Validate and run a command in the workspace")
    sp.add_argument("--cwd", default=None, help="Working directory (default: primary root)")
    sp.add_argument("--timeout", default=None, help="Command timeout seconds (default: from config, 30)")
    sp.add_argument("command", nargs=argparse.REMAINDER, help="Command; use: tool-warden run -- <cmd...>")
    sp.set_defaults(func=cmd_run)

    return p


def main(argv: Optional[list[str]] = None) -> int:
    p = build_parser()
    args = p.parse_args(argv)
    try:
        return int(args.func(args))
    except KeyboardInterrupt:
        return 130
    except (WardenError, OSError, ValueError) as e:
        logger.debug("Command failed", exc_info=True)
        print(f"ERROR: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
