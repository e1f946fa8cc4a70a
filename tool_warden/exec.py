from __future__ import annotations

import logging
import shlex
import subprocess
from dataclasses import dataclass
from typing import List, Optional, Sequence, Union

logger = logging.getLogger(__name__)

# Exit status reported for a command killed by the timeout, as timeout(1) does.
TIMEOUT_RETURNCODE = 124


@dataclass(frozen=True)
class ExecResult:
    argv: List[str]
    returncode: int
    stdout: str
    stderr: str
    timed_out: bool = False


def parse_command(cmd: str) -> list[str]:
    return shlex.split(cmd)


def _fmt_argv(argv: Sequence[str]) -> str:
    return " ".join(shlex.quote(a) for a in argv)


def _text(data: Union[str, bytes, None]) -> str:
    if data is None:
        return ""
    if isinstance(data, bytes):
        return data.decode("utf-8", errors="replace")
    return data


def run_in_workspace(
    command: Union[str, Sequence[str]],
    *,
    cwd: str,
    timeout_s: float = 30.0,
    input_text: Optional[str] = None,
) -> ExecResult:
    """Run a command that has already been validated for this workspace.

    A string is a full shell line (operators and redirects included) and runs
    through ``/bin/sh -c``; a sequence is an argv and runs directly.
    """

    argv_list = ["/bin/sh", "-c", command] if isinstance(command, str) else list(command)
    logger.info("CMD %s (cwd=%s)", _fmt_argv(argv_list), cwd)

    try:
        p = subprocess.run(
            argv_list,
            cwd=cwd,
            input=input_text,
            text=True,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            timeout=timeout_s,
        )
    except subprocess.TimeoutExpired as e:
        logger.warning("Command timed out after %ss: %s", timeout_s, _fmt_argv(argv_list))
        stderr = _text(e.stderr)
        if stderr and not stderr.endswith("\n"):
            stderr += "\n"
        return ExecResult(
            argv=argv_list,
            returncode=TIMEOUT_RETURNCODE,
            stdout=_text(e.stdout),
            stderr=stderr + f"Command timed out after {timeout_s} seconds\n",
            timed_out=True,
        )

    if p.stdout:
        logger.debug("STDOUT %s", p.stdout.strip())
    if p.stderr:
        logger.debug("STDERR %s", p.stderr.strip())
    return ExecResult(argv=argv_list, returncode=p.returncode, stdout=p.stdout, stderr=p.stderr)
