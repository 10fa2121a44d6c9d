"""
Configuration Loader

Loads job configuration from tuplepipe.json in the project root.
Environment variables always take precedence over config file values,
and explicit overrides passed by the caller take precedence over both.

Config file location (in order of precedence):
1. TUPLEPIPE_PROJECT_ROOT/tuplepipe.json (if TUPLEPIPE_PROJECT_ROOT is set)
2. CWD/tuplepipe.json

Supported settings in tuplepipe.json:
{
    "input": "data/kjvdat.txt",            // -> TUPLEPIPE_INPUT
    "output": "output/tfidf.tsv",          // -> TUPLEPIPE_OUTPUT
    "lookup": "data/abbrevs-to-names.tsv", // -> TUPLEPIPE_LOOKUP
    "delimiter": "\t",                     // -> TUPLEPIPE_DELIMITER
    "top_n": 100,                          // -> TUPLEPIPE_TOP_N
    "ngram_pattern": "% love %",           // -> TUPLEPIPE_NGRAM_PATTERN
    "ngram_count": 20,                     // -> TUPLEPIPE_NGRAM_COUNT
    "limit": 10,                           // -> TUPLEPIPE_LIMIT
    "broadcast_max_rows": 1000000          // -> TUPLEPIPE_BROADCAST_MAX_ROWS
}
"""

import json
import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Optional

from .exceptions import InvalidArgument
from .logging_config import configure_logger_for_debug_trace

logger = configure_logger_for_debug_trace(__name__)

CONFIG_FILE_NAME = "tuplepipe.json"


@dataclass(frozen=True)
class JobConfig:
    """
    Invocation parameters shared by the reference jobs.

    ::: This is-in-layer Service-Layer.
    ::: This is a value-object.
    ::: This is stateless.
    """
    input: Optional[str] = None
    output: Optional[str] = None
    lookup: Optional[str] = None
    delimiter: str = "\t"
    top_n: int = 100
    ngram_pattern: Optional[str] = None
    ngram_count: int = 20
    limit: int = 10
    broadcast_max_rows: int = 1_000_000

    def __post_init__(self):
        if not isinstance(self.delimiter, str) or len(self.delimiter) != 1:
            raise InvalidArgument(
                f"delimiter must be a single character, got {self.delimiter!r}",
                operator="config", key="delimiter",
            )
        for name in ("top_n", "ngram_count", "broadcast_max_rows"):
            if getattr(self, name) <= 0:
                raise InvalidArgument(f"{name} must be positive", operator="config", key=name)
        if self.limit < 0:
            raise InvalidArgument("limit must not be negative", operator="config", key="limit")

    def with_overrides(self, **overrides: Any) -> "JobConfig":
        """Create a new config with some values replaced."""
        return replace(self, **overrides)


class ConfigLoader:
    """
    Loads configuration from tuplepipe.json file.

    ::: This is-in-layer Service-Layer.
    ::: This is a loader.
    ::: This is stateless.

    Priority: overrides > environment variables > tuplepipe.json > defaults
    """

    # Mapping from tuplepipe.json keys to environment variable names
    CONFIG_KEY_TO_ENV = {
        "input": "TUPLEPIPE_INPUT",
        "output": "TUPLEPIPE_OUTPUT",
        "lookup": "TUPLEPIPE_LOOKUP",
        "delimiter": "TUPLEPIPE_DELIMITER",
        "top_n": "TUPLEPIPE_TOP_N",
        "ngram_pattern": "TUPLEPIPE_NGRAM_PATTERN",
        "ngram_count": "TUPLEPIPE_NGRAM_COUNT",
        "limit": "TUPLEPIPE_LIMIT",
        "broadcast_max_rows": "TUPLEPIPE_BROADCAST_MAX_ROWS",
    }

    INT_KEYS = {"top_n", "ngram_count", "limit", "broadcast_max_rows"}

    def __init__(self):
        self._config: Dict[str, Any] = {}
        self._config_path: Optional[Path] = None

    def load(self, project_root: Optional[Path] = None) -> bool:
        """
        Load configuration from tuplepipe.json.

        Args:
            project_root: Project root directory. If None, uses TUPLEPIPE_PROJECT_ROOT or CWD.

        Returns:
            True if config file was found and loaded, False otherwise.
        """
        if project_root is None:
            env_root = os.getenv("TUPLEPIPE_PROJECT_ROOT")
            project_root = Path(env_root) if env_root else Path.cwd()

        config_path = Path(project_root) / CONFIG_FILE_NAME
        if not config_path.exists():
            return False

        try:
            with open(config_path, 'r', encoding='utf-8') as f:
                loaded = json.load(f)
        except json.JSONDecodeError as e:
            raise InvalidArgument(f"Invalid JSON in {config_path}: {e}", operator="config") from e

        if not isinstance(loaded, dict):
            raise InvalidArgument(f"{config_path} must contain a JSON object", operator="config")

        unknown = set(loaded) - set(self.CONFIG_KEY_TO_ENV)
        if unknown:
            logger.warning(f"Ignoring unknown keys in {config_path}: {sorted(unknown)}")

        self._config = {k: v for k, v in loaded.items() if k in self.CONFIG_KEY_TO_ENV}
        self._config_path = config_path
        logger.debug(f"Loaded config from: {config_path}")
        return True

    def get(self, key: str, default: Any = None) -> Any:
        """Get a value, checking the environment first and the config file second."""
        env_var = self.CONFIG_KEY_TO_ENV.get(key)
        if env_var:
            env_value = os.getenv(env_var)
            if env_value is not None:
                return self._convert(key, env_value)
        if key in self._config:
            return self._convert(key, self._config[key])
        return default

    def _convert(self, key: str, value: Any) -> Any:
        if key in self.INT_KEYS:
            try:
                return int(value)
            except (TypeError, ValueError) as e:
                raise InvalidArgument(f"{key} must be an integer, got {value!r}",
                                      operator="config", key=key) from e
        return value

    def job_config(self, **overrides: Any) -> JobConfig:
        """
        Build a JobConfig with defaults applied.

        Args:
            **overrides: Explicit values; None means "not given".

        Returns:
            JobConfig with all settings resolved.
        """
        values: Dict[str, Any] = {}
        for f in fields(JobConfig):
            if overrides.get(f.name) is not None:
                values[f.name] = overrides[f.name]
                continue
            resolved = self.get(f.name)
            if resolved is not None:
                values[f.name] = resolved
        return JobConfig(**values)

    @property
    def config_path(self) -> Optional[Path]:
        """Path to the loaded config file, or None if not loaded."""
        return self._config_path

    @property
    def config(self) -> Dict[str, Any]:
        """The loaded configuration dictionary."""
        return self._config.copy()


def load_config(project_root: Optional[Path] = None, **overrides: Any) -> JobConfig:
    """
    Load tuplepipe.json (if present) and resolve a JobConfig.

    Args:
        project_root: Project root directory. If None, auto-detects.
        **overrides: Values that win over environment and file.

    Returns:
        The resolved JobConfig.
    """
    loader = ConfigLoader()
    loader.load(project_root)
    return loader.job_config(**overrides)
