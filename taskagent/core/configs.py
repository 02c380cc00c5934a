"""Configuration management for the task agent.

Loads settings from ~/.config/taskagent/config.cfg, an optional .env file
and TASKAGENT_* environment variables. Later sources win:

    config.cfg < .env < environment < explicit overrides (CLI)
"""

import configparser
from dataclasses import dataclass, field
import os
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import dotenv_values

# Default location for user configuration.
CONFIG_PATH = Path.home() / ".config" / "taskagent" / "config.cfg"
DEFAULT_STORAGE_ROOT = Path.home() / ".config" / "taskagent" / "storage"
ENV_PREFIX = "TASKAGENT_"


@dataclass
class AgentConfig:
    server_url: str
    agent_id: str
    workspace: Path = field(default_factory=Path.cwd)
    storage_root: Path = DEFAULT_STORAGE_ROOT
    chunk_size: int = 64 * 1024
    log_level: str = "INFO"


def load_raw_config(path: Path = CONFIG_PATH) -> Dict[str, str]:
    """
    Load configuration values from the config file.
    Values are returned with lowercase keys for convenience.
    """
    cfg = configparser.ConfigParser()
    data: Dict[str, str] = {}

    if path.exists():
        cfg.read(path)
        if "DEFAULT" in cfg:
            data.update({k.lower(): v for k, v in cfg["DEFAULT"].items()})
        if "STORAGE" in cfg:
            data.update({k.lower(): v for k, v in cfg["STORAGE"].items()})

    return data


def load_env_file(path: Optional[Path]) -> Dict[str, str]:
    """Read a .env file; keys are lowercased and the TASKAGENT_ prefix is stripped."""
    if path is None or not Path(path).exists():
        return {}
    values = dotenv_values(path)
    return {_strip_prefix(k): v for k, v in values.items() if v is not None}


def load_environ(environ: Optional[Dict[str, str]] = None) -> Dict[str, str]:
    """Collect TASKAGENT_* variables from the process environment."""
    environ = os.environ if environ is None else environ
    return {
        _strip_prefix(k): v
        for k, v in environ.items()
        if k.upper().startswith(ENV_PREFIX)
    }


def _strip_prefix(key: str) -> str:
    key = key.lower()
    prefix = ENV_PREFIX.lower()
    return key[len(prefix):] if key.startswith(prefix) else key


def get_agent_config(
    raw: Optional[Dict[str, str]] = None,
    env_file: Optional[Path] = None,
    environ: Optional[Dict[str, str]] = None,
    **overrides: Any,
) -> AgentConfig:
    """
    Build an AgentConfig from all configuration sources.

    Args:
        raw: Values from the config file (loaded from CONFIG_PATH if None)
        env_file: Optional .env file
        environ: Environment mapping (os.environ if None)
        **overrides: Explicit values, e.g. from CLI options; None is ignored

    Raises:
        ValueError: If server_url or agent_id is missing, or chunk_size is invalid
    """
    merged: Dict[str, Any] = {}
    merged.update(load_raw_config() if raw is None else raw)
    merged.update(load_env_file(env_file))
    merged.update(load_environ(environ))
    merged.update({k: v for k, v in overrides.items() if v is not None})

    server_url = str(merged.get("server_url", "") or "").strip()
    agent_id = str(merged.get("agent_id", "") or "").strip()
    if not server_url or not agent_id:
        raise ValueError("Missing server URL or agent id in configuration.")

    try:
        chunk_size = int(merged.get("chunk_size", 64 * 1024))
    except (TypeError, ValueError):
        raise ValueError(f"Invalid chunk_size: {merged.get('chunk_size')!r}") from None
    if chunk_size <= 0:
        raise ValueError(f"chunk_size must be positive, got {chunk_size}")

    workspace = merged.get("workspace")
    storage_root = merged.get("storage_root")

    return AgentConfig(
        server_url=server_url,
        agent_id=agent_id,
        workspace=Path(workspace).expanduser().resolve() if workspace else Path.cwd(),
        storage_root=Path(storage_root).expanduser() if storage_root else DEFAULT_STORAGE_ROOT,
        chunk_size=chunk_size,
        log_level=str(merged.get("log_level", "INFO")).upper(),
    )
