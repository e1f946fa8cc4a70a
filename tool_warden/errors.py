from __future__ import annotations

from typing import Optional


class WardenError(Exception):
    """Base class for every refusal raised by the safety core.

    The message is written for the driving model: it says what was refused
    and, where possible, how to correct the request.
    """


# Sandbox ---------------------------------------------------------------------


class SandboxError(WardenError, ValueError):
    pass


class OutsideAllowedRoots(SandboxError):
    pass


class SymlinkEscapesSandbox(SandboxError):
    pass


class PathNotFound(SandboxError, FileNotFoundError):
    pass


class Cancelled(SandboxError):
    pass


class ReadOnlyFile(SandboxError):
    pass


# Edits -----------------------------------------------------------------------


class EditError(WardenError):
    def __init__(self, message: str, *, edit_index: Optional[int] = None) -> None:
        super().__init__(message)
        self.edit_index = edit_index


class NoOpEdit(EditError):
    pass


class OldTextNotFound(EditError):
    pass


class AmbiguousMatch(EditError):
    pass


# Commands --------------------------------------------------------------------


class CommandError(WardenError):
    pass


class EmptyCommand(CommandError):
    pass


class DangerousPattern(CommandError):
    pass


class DisallowedCommand(CommandError):
    pass


class PathArgumentOutsideRoots(CommandError):
    pass


class DestructiveCommand(CommandError):
    def __init__(self, message: str, *, tip: str = "") -> None:
        super().__init__(f"{message}. {tip}" if tip else message)
        self.reason = message
        self.tip = tip


# Misc ------------------------------------------------------------------------


class PatchError(WardenError):
    pass


class ConfigError(WardenError, ValueError):
    pass
