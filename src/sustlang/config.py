"""Runtime configuration for the Sust engine, loaded from YAML."""

from dataclasses import dataclass, fields, asdict
from pathlib import Path
from typing import Any, Dict, Optional, Union
import logging
import os

import yaml

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "SUST_CONFIG"

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass
class RuntimeConfig:
    """Engine settings; every field has a usable default."""

    log_level: str = "WARNING"
    tcp_backlog: int = 16
    random_seed: Optional[int] = None
    join_threads: bool = False
    import_root: Optional[str] = None

    def __post_init__(self) -> None:
        self.log_level = str(self.log_level).upper()
        if self.log_level not in _LOG_LEVELS:
            raise ValueError(f"log_level must be one of {', '.join(_LOG_LEVELS)}")
        if isinstance(self.tcp_backlog, bool) or not isinstance(self.tcp_backlog, int) \
                or self.tcp_backlog < 1:
            raise ValueError("tcp_backlog must be a positive integer")
        if self.random_seed is not None and (
                isinstance(self.random_seed, bool) or not isinstance(self.random_seed, int)):
            raise ValueError("random_seed must be an integer")
        if not isinstance(self.join_threads, bool):
            raise ValueError("join_threads must be true or false")
        if self.import_root is not None:
            self.import_root = str(self.import_root)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RuntimeConfig":
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"unknown configuration key(s): {', '.join(unknown)}")
        return cls(**data)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def save(self, path: Union[str, Path]) -> None:
        with Path(path).open("w", encoding="utf-8") as fp:
            yaml.safe_dump(self.to_dict(), fp, sort_keys=False)


def load_config(path: Union[str, Path, None] = None) -> RuntimeConfig:
    """
    Load the runtime configuration.

    Lookup order: the explicit `path`, then the file named by the
    SUST_CONFIG environment variable, then built-in defaults.
    """
    if path is None:
        path = os.environ.get(CONFIG_ENV_VAR) or None
    if path is None:
        return RuntimeConfig()

    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"config not found: {config_path}")
    with config_path.open("r", encoding="utf-8") as fp:
        try:
            data = yaml.safe_load(fp) or {}
        except yaml.YAMLError as e:
            raise ValueError(f"YAML parse error in {config_path}: {e}") from e
    if not isinstance(data, dict):
        raise ValueError(f"expected mapping at root of {config_path}, got {type(data).__name__}")

    logger.debug("loaded config from %s", config_path)
    return RuntimeConfig.from_dict(data)
