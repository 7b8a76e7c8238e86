"""
Configuration for scanning and analysis.

OrganizerConfig is an immutable value passed explicitly into scan() and
analyze(); nothing in sorty reads process-wide settings. Configurations can
be loaded from a YAML file:

    recursive: true
    max_workers: 8
    read_timeout: 30
    duplicates_action: quarantine
    exclude_patterns: ["*.part", "~$*"]
    rules:
      - {target: Images, extensions: [jpg, png]}
      - {target: Invoices, keywords: [invoice]}
      - {target: Screenshots, pattern: "Screenshot*"}
"""

import logging
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Literal, Optional, Tuple, Union

import yaml

from .errors import ConfigError
from .rules import (
    DEFAULT_RULES,
    MATCHERS,
    UNSORTED,
    ClassificationRule,
    load_rules,
    normalize_folder,
)

logger = logging.getLogger(__name__)

# Type for duplicates action
DuplicatesAction = Literal["skip", "quarantine"]
DUPLICATES_ACTIONS = ("skip", "quarantine")

# Archive extensions recognized by default (compound ones first)
DEFAULT_ARCHIVE_EXTENSIONS: Tuple[str, ...] = (
    "tar.gz", "tar.bz2", "tar.xz",
    "zip", "tar", "gz", "tgz", "bz2", "xz", "7z", "rar",
)


@dataclass(frozen=True)
class OrganizerConfig:
    """
    Immutable settings for a scan/analyze run.

    Attributes:
        rules: Ordered classification rules
        recursive: Descend into subdirectories when scanning
        follow_symlinks: Follow symbolic links when scanning
        exclude_patterns: Names to skip (substring or glob)
        archive_extensions: Extensions treated as archives
        max_workers: Upper bound on concurrent hashing threads
        read_timeout: Seconds allowed for hashing one file (None = no limit)
        duplicates_action: "skip" leaves duplicates in place,
                           "quarantine" plans them into _DUPLICATES/
        matcher: Keyword matching algorithm ("bucket" or "aho")
        unsorted_folder: Category for files that match no rule
    """
    rules: Tuple[ClassificationRule, ...] = DEFAULT_RULES
    recursive: bool = False
    follow_symlinks: bool = False
    exclude_patterns: Tuple[str, ...] = ()
    archive_extensions: Tuple[str, ...] = DEFAULT_ARCHIVE_EXTENSIONS
    max_workers: int = 4
    read_timeout: Optional[float] = None
    duplicates_action: DuplicatesAction = "skip"
    matcher: str = "bucket"
    unsorted_folder: str = UNSORTED

    def __post_init__(self):
        # Normalize sequences to tuples so the value stays hashable and immutable
        object.__setattr__(self, "rules", load_rules(self.rules))
        object.__setattr__(self, "exclude_patterns", tuple(self.exclude_patterns))
        object.__setattr__(
            self,
            "archive_extensions",
            tuple(ext.lower().lstrip(".") for ext in self.archive_extensions)
        )

        if not isinstance(self.max_workers, int) or self.max_workers < 1:
            raise ConfigError(f"max_workers must be a positive integer, got {self.max_workers!r}")

        if self.read_timeout is not None and (
            not isinstance(self.read_timeout, (int, float)) or self.read_timeout <= 0
        ):
            raise ConfigError(f"read_timeout must be positive seconds, got {self.read_timeout!r}")

        if self.duplicates_action not in DUPLICATES_ACTIONS:
            raise ConfigError(
                f"duplicates_action must be one of {DUPLICATES_ACTIONS}, "
                f"got {self.duplicates_action!r}"
            )

        if self.matcher not in MATCHERS:
            raise ConfigError(f"matcher must be one of {MATCHERS}, got {self.matcher!r}")

        object.__setattr__(
            self, "unsorted_folder", normalize_folder(self.unsorted_folder, "unsorted_folder")
        )

    def with_overrides(self, **overrides: Any) -> "OrganizerConfig":
        """Return a copy with the given non-None fields replaced."""
        changes = {k: v for k, v in overrides.items() if v is not None}
        return replace(self, **changes) if changes else self


CONFIG_KEYS = frozenset(f.name for f in fields(OrganizerConfig))


def load_yaml_file(path: Union[str, Path]) -> Any:
    """
    Load a YAML file.

    Raises:
        FileNotFoundError: If the file doesn't exist
        ConfigError: If the file is not valid YAML
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    try:
        with open(path, "r", encoding="utf-8") as f:
            return yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e


def config_from_mapping(data: Optional[Dict[str, Any]]) -> OrganizerConfig:
    """
    Build an OrganizerConfig from a parsed mapping.

    Every key is optional; missing keys keep their defaults.

    Raises:
        ConfigError: On unknown keys or invalid values
    """
    if data is None:
        return OrganizerConfig()

    if not isinstance(data, dict):
        raise ConfigError(f"Config must be a mapping, got {type(data).__name__}")

    unknown = set(data) - CONFIG_KEYS
    if unknown:
        raise ConfigError(f"Unknown config keys: {sorted(unknown)}")

    values = dict(data)
    if "rules" in values:
        values["rules"] = load_rules(values["rules"])
    for key in ("exclude_patterns", "archive_extensions"):
        if key in values:
            values[key] = _string_tuple(key, values[key])

    try:
        return OrganizerConfig(**values)
    except TypeError as e:
        raise ConfigError(f"Invalid config: {e}") from e


def _string_tuple(key: str, value: Any) -> Tuple[str, ...]:
    if isinstance(value, str):
        return (value,)
    if not isinstance(value, (list, tuple)) or not all(isinstance(v, str) for v in value):
        raise ConfigError(f"'{key}' must be a list of strings")
    return tuple(value)


def load_config(path: Union[str, Path]) -> OrganizerConfig:
    """
    Load an OrganizerConfig from a YAML file.

    Args:
        path: Path to the YAML config file

    Returns:
        The validated configuration

    Raises:
        FileNotFoundError: If the file doesn't exist
        ConfigError: If the file or any value in it is invalid
    """
    logger.info(f"Loading config from {path}")
    return config_from_mapping(load_yaml_file(path))


def load_rules_file(path: Union[str, Path]) -> Tuple[ClassificationRule, ...]:
    """
    Load a rule set from a YAML file.

    The file holds either the rule list itself, the shorthand mapping
    {folder: [extensions]}, or a mapping with a top-level "rules" key.

    Raises:
        FileNotFoundError: If the file doesn't exist
        ConfigError: If the rules are invalid
    """
    logger.info(f"Loading rules from {path}")
    data = load_yaml_file(path)
    if isinstance(data, dict) and set(data) == {"rules"}:
        data = data["rules"]
    rules = load_rules(data)
    if not rules:
        raise ConfigError(f"No rules defined in {path}")
    return rules
