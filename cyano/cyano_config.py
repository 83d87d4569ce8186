"""Runtime configuration for the Cyano execution host."""
import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Mapping, Optional, Union

import yaml

from cyano.cyano_datatypes import is_number
from cyano.cyano_parser import DEFAULT_MAX_NESTING

CONFIG_ENV_VAR = "CYANO_CONFIG"

LOG_LEVELS = ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG", "NOTSET")


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


@dataclass(frozen=True)
class RuntimeConfig:
    # statements executed plus loop iterations per run; None disables
    max_steps: Optional[int] = 1_000_000
    # wall-clock budget per run; None disables
    time_limit_ms: Optional[float] = 30_000
    # brackets, calls and prefix operators nested inside one expression
    max_nesting: int = DEFAULT_MAX_NESTING
    log_level: str = "WARNING"
    no_output_text: str = "(no output)"
    json_indent: Optional[int] = 2

    @classmethod
    def from_mapping(cls, data: Optional[Mapping[str, Any]]) -> "RuntimeConfig":
        if data is None:
            return cls()
        if not isinstance(data, Mapping):
            raise ValueError("Cyano config must be a mapping")
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"Unknown config key(s): {', '.join(unknown)}")
        config = replace(cls(), **dict(data))
        config.validate()
        return config

    def validate(self):
        if self.max_steps is not None:
            if not _is_int(self.max_steps):
                raise ValueError(f"max_steps must be an integer, got {self.max_steps!r}")
            if self.max_steps <= 0:
                raise ValueError("max_steps must be positive")
        if self.time_limit_ms is not None:
            if not is_number(self.time_limit_ms):
                raise ValueError(f"time_limit_ms must be a number, got {self.time_limit_ms!r}")
            if self.time_limit_ms <= 0:
                raise ValueError("time_limit_ms must be positive")
        if not _is_int(self.max_nesting):
            raise ValueError(f"max_nesting must be an integer, got {self.max_nesting!r}")
        if self.max_nesting <= 0:
            raise ValueError("max_nesting must be positive")
        if not isinstance(self.log_level, str) or self.log_level.upper() not in LOG_LEVELS:
            raise ValueError(f"log_level must be one of {', '.join(LOG_LEVELS)}, got {self.log_level!r}")
        if not isinstance(self.no_output_text, str):
            raise ValueError(f"no_output_text must be a string, got {self.no_output_text!r}")
        if self.json_indent is not None and (not _is_int(self.json_indent) or self.json_indent < 0):
            raise ValueError(f"json_indent must be a non-negative integer, got {self.json_indent!r}")


def load_config(path: Optional[Union[str, Path]] = None) -> RuntimeConfig:
    """Load a RuntimeConfig from a YAML file, `$CYANO_CONFIG`, or defaults."""
    path = path or os.environ.get(CONFIG_ENV_VAR)
    if not path:
        return RuntimeConfig()
    with open(path, "r", encoding="utf-8") as config_file:
        try:
            data = yaml.safe_load(config_file) or {}
        except yaml.YAMLError as exc:
            raise ValueError(f"Invalid YAML in config file {path}: {exc}") from exc
    return RuntimeConfig.from_mapping(data)


__all__ = ["CONFIG_ENV_VAR", "LOG_LEVELS", "RuntimeConfig", "load_config"]
