from __future__ import annotations

import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Optional

import pystache
import yaml

from ripl.ripl_errors import ConfigError

DEFAULT_CONFIG_PATH = Path("~/.config/ripl/config.yaml")

DEFAULT_BANNER = "ripl {{version}} ({{compiler}} compiler)\nType .help for commands, .exit or Ctrl+D to quit."


@dataclass
class RiplConfig:
    prompt: str = "> "
    continuation_prompt: str = "... "
    banner: str = DEFAULT_BANNER
    show_banner: bool = True
    compiler: str = "python"
    debug: bool = False
    history_limit: int = 1000

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> 'RiplConfig':
        if data is None:
            return cls()
        if not isinstance(data, dict):
            raise ConfigError(f"config must be a mapping, got {type(data).__name__}")
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigError(f"unknown config keys: {', '.join(unknown)}")
        return cls(**data)


def _resolve_path(path) -> Optional[Path]:
    if path is not None:
        return Path(path).expanduser()
    env = os.environ.get("RIPL_CONFIG")
    if env:
        return Path(env).expanduser()
    default = DEFAULT_CONFIG_PATH.expanduser()
    return default if default.exists() else None


def load_config(path=None) -> RiplConfig:
    """Loads YAML configuration from `path`, $RIPL_CONFIG or the per-user default."""
    resolved = _resolve_path(path)
    if resolved is None:
        return RiplConfig()
    try:
        data = yaml.safe_load(resolved.read_text(encoding="utf-8"))
    except FileNotFoundError:
        raise ConfigError(f"config file not found: {resolved}") from None
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid YAML in {resolved}: {e}") from e
    return RiplConfig.from_dict(data)


def render(template: str, values: Any) -> str:
    """Renders a mustache template without HTML escaping."""
    renderer = pystache.Renderer(escape=lambda u: u)
    return renderer.render(template, values)
