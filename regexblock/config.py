import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, Tuple

from regexblock.errors import ConfigError

APP_ROOT = Path(__file__).resolve().parent.parent
CONFIG_PATH = APP_ROOT / "rules" / "regexblock.json"

DEFAULT_BLOCK_DURATION_MINUTES = 60


@dataclass(frozen=True)
class Config:
    regex_patterns: Tuple[str, ...] = ()
    block_duration_minutes: int = DEFAULT_BLOCK_DURATION_MINUTES
    whitelist: Tuple[str, ...] = ()
    enable_debug: bool = False

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Config":
        """
        Build a Config from the host's camelCase keys:
        regexPatterns, blockDurationMinutes, whitelist, enableDebug.
        Missing keys take their defaults.
        """
        if not isinstance(data, Mapping):
            raise ConfigError("config must be a JSON object")

        duration = data.get("blockDurationMinutes", DEFAULT_BLOCK_DURATION_MINUTES)
        if isinstance(duration, bool) or not isinstance(duration, int):
            raise ConfigError(f"blockDurationMinutes must be an integer, got {duration!r}")
        if duration < 0:
            raise ConfigError(f"blockDurationMinutes must not be negative, got {duration}")

        debug = data.get("enableDebug", False)
        if not isinstance(debug, bool):
            raise ConfigError(f"enableDebug must be a boolean, got {debug!r}")

        return cls(
            regex_patterns=_string_list(data, "regexPatterns"),
            block_duration_minutes=duration,
            whitelist=_string_list(data, "whitelist"),
            enable_debug=debug,
        )

    @property
    def block_duration_seconds(self) -> float:
        return self.block_duration_minutes * 60.0


def _string_list(data: Mapping[str, Any], key: str) -> Tuple[str, ...]:
    value = data.get(key) or []
    if isinstance(value, str) or not isinstance(value, (list, tuple)):
        raise ConfigError(f"{key} must be a list of strings")
    for item in value:
        if not isinstance(item, str):
            raise ConfigError(f"{key} entries must be strings, got {item!r}")
    return tuple(value)


def load_config(path: str | os.PathLike | None = None) -> Config:
    path = Path(path or os.getenv("REGEXBLOCK_CONFIG") or CONFIG_PATH)
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except OSError as e:
        raise ConfigError(f"cannot read config {path}: {e}") from e
    except json.JSONDecodeError as e:
        raise ConfigError(f"invalid JSON in config {path}: {e}") from e
    return Config.from_dict(data)
