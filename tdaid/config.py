"""Optional per-project configuration in `.config/tdaid.json`.

Every key is optional:

    {
      "provider": "openai" | "anthropic",
      "model": "<model name>",
      "mode": "json" | "sections" | "stream",
      "test-command": "go mod tidy && go test",
      "max-attempts": 10
    }
"""

import json
import sys
from dataclasses import dataclass
from pathlib import Path

from tdaid.errors import ConfigError
from tdaid.runner import DEFAULT_TEST_COMMAND

CONFIG_REL_PATH = ".config/tdaid.json"

PROVIDERS = ("openai", "anthropic")
MODES = ("json", "sections", "stream")


@dataclass(frozen=True)
class Config:
    provider: str = "openai"
    model: str | None = None
    mode: str = "json"
    test_command: str = DEFAULT_TEST_COMMAND
    max_attempts: int | None = None


def _read_config(root: Path) -> tuple[dict | None, str | None]:
    """Read `.config/tdaid.json` if present.

    Returns: (config_dict_or_none, error_string_or_none)
    """
    cfg_path = root / CONFIG_REL_PATH
    if not cfg_path.exists():
        return None, None

    try:
        raw = cfg_path.read_text(encoding="utf-8")
    except OSError as e:
        return None, f"failed to read {CONFIG_REL_PATH}: {e}"

    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        return None, f"invalid JSON in {CONFIG_REL_PATH}: {e}"

    if not isinstance(data, dict):
        return None, f"{CONFIG_REL_PATH} must contain a JSON object"

    return data, None


def _choice(cfg: dict, key: str, choices: tuple[str, ...], default: str) -> str:
    value = cfg.get(key, default)
    if value not in choices:
        raise ConfigError(f"{CONFIG_REL_PATH} field {key!r} must be one of {', '.join(choices)} (got {value!r})")
    return value


def _optional_str(cfg: dict, key: str, default: str | None) -> str | None:
    value = cfg.get(key, default)
    if value is None:
        return default
    if not isinstance(value, str) or not value.strip():
        raise ConfigError(f"{CONFIG_REL_PATH} field {key!r} must be a non-empty string")
    return value


def load_config(root: Path) -> Config:
    """Load configuration for the working directory.

    An unreadable or malformed file is reported and ignored. A file that parses
    but holds an unusable value raises ConfigError.
    """
    cfg, err = _read_config(root)
    if err is not None:
        print(f"Warning: {err}. Using defaults.", file=sys.stderr)
        return Config()
    if cfg is None:
        return Config()

    max_attempts = cfg.get("max-attempts")
    # bool is an int subclass; reject it explicitly.
    if max_attempts is not None and (
        not isinstance(max_attempts, int) or isinstance(max_attempts, bool) or max_attempts < 1
    ):
        raise ConfigError(f"{CONFIG_REL_PATH} field 'max-attempts' must be a positive integer or null")

    return Config(
        provider=_choice(cfg, "provider", PROVIDERS, "openai"),
        model=_optional_str(cfg, "model", None),
        mode=_choice(cfg, "mode", MODES, "json"),
        test_command=_optional_str(cfg, "test-command", DEFAULT_TEST_COMMAND),
        max_attempts=max_attempts,
    )
