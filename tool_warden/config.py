from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from .errors import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_NAME = ".tool-warden.yaml"

DEFAULT_ALLOWED_COMMANDS = (
    "ls", "pwd", "cat", "head", "tail", "wc", "grep", "find", "echo",
    "git", "npm", "pnpm", "yarn", "node", "python", "pytest",
)


@dataclass(frozen=True)
class WardenConfig:
    raw: Dict[str, Any]
    # Relative paths in the file are resolved against this directory.
    base_dir: Path = field(default_factory=Path.cwd)

    def _section(self, name: str) -> Dict[str, Any]:
        section = self.raw.get(name) or {}
        if not isinstance(section, dict):
            raise ConfigError(f"'{name}' must be a mapping")
        return section

    def _path(self, value: str) -> Path:
        p = Path(value).expanduser()
        return p if p.is_absolute() else self.base_dir / p

    @property
    def roots(self) -> List[Path]:
        entries = self._section("workspace").get("roots") or ["."]
        return [self._path(str(r)) for r in entries]

    @property
    def read_only_files(self) -> List[str]:
        return [str(p) for p in (self._section("workspace").get("read_only_files") or [])]

    @property
    def allowed_commands(self) -> List[str]:
        allowed = self._section("commands").get("allowed")
        if allowed is None:
            return list(DEFAULT_ALLOWED_COMMANDS)
        return [str(c) for c in allowed]

    @property
    def timeout_s(self) -> float:
        value = self._section("commands").get("timeout_s", 30)
        try:
            return float(value)
        except (TypeError, ValueError) as e:
            raise ConfigError(f"commands.timeout_s must be a number, got {value!r}") from e

    @property
    def protect_destructive(self) -> bool:
        return bool(self._section("commands").get("protect_destructive", True))

    @property
    def log_path(self) -> Optional[Path]:
        value = self._section("logging").get("path")
        return self._path(str(value)) if value else None

    @property
    def log_level(self) -> int:
        name = str(self._section("logging").get("level") or "INFO").upper()
        level = logging.getLevelName(name)
        if not isinstance(level, int):
            raise ConfigError(f"Unknown logging.level: {name}")
        return level

    @property
    def audit_path(self) -> Optional[Path]:
        value = self._section("audit").get("path")
        return self._path(str(value)) if value else None


def load_config(path: Optional[str] = None) -> WardenConfig:
    """Load a YAML config file.

    With no explicit path, ``.tool-warden.yaml`` in the working directory is
    used when present; otherwise the defaults apply. An explicit path that
    does not exist is an error.
    """

    if path is None:
        p = Path.cwd() / DEFAULT_CONFIG_NAME
        if not p.exists():
            logger.debug("No %s in %s; using defaults", DEFAULT_CONFIG_NAME, Path.cwd())
            return WardenConfig(raw={}, base_dir=Path.cwd())
    else:
        p = Path(os.path.expanduser(path))
        if not p.exists():
            raise FileNotFoundError(path)

    if p.suffix.lower() not in {".yaml", ".yml"}:
        raise ConfigError("tool-warden config must be YAML")

    try:
        import yaml  # type: ignore
    except Exception as e:
        raise RuntimeError("PyYAML is required to read the tool-warden config") from e

    try:
        raw = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {p}: {e}") from e
    if not isinstance(raw, dict):
        raise ConfigError(f"{p} must contain a mapping/object")

    logger.debug("Loaded config from %s", p)
    return WardenConfig(raw=raw, base_dir=p.resolve().parent)
