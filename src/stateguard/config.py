"""Configuration management for stateguard.

Loads and validates stateguard.yaml configuration files.
"""

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator

from stateguard.analysis.model import Severity

CONFIG_FILENAMES = (
    "stateguard.yaml",
    "stateguard.yml",
    ".stateguard.yaml",
    ".stateguard.yml",
)


def _as_list(v: Any) -> Any:
    if isinstance(v, str):
        return [v]
    return v


class RuleConfig(BaseModel):
    """Per-rule switches."""

    enabled: bool = True
    severity: Severity | None = None
    """Overrides the rule's default severity."""


class AnalysisConfig(BaseModel):
    """How the checker classifies methods."""

    setter_prefixes: list[str] = Field(default_factory=lambda: ["set"])
    """Method-name prefixes that mark a setter (set_x, setX)."""

    constructor_methods: list[str] = Field(
        default_factory=lambda: ["__init__", "__post_init__", "__new__"]
    )
    """Methods allowed to assign instance fields."""

    public_dunders: list[str] = Field(default_factory=lambda: ["__call__"])
    """Dunder methods that count as public operations."""

    ignore_classes: list[str] = Field(default_factory=list)
    """fnmatch patterns of class names to skip."""

    @field_validator(
        "setter_prefixes", "constructor_methods", "public_dunders", "ignore_classes", mode="before"
    )
    @classmethod
    def ensure_list(cls, v: Any) -> list[str]:
        return _as_list(v)


class ProbeConfig(BaseModel):
    """Configuration for the runtime probe."""

    source_paths: list[str] = Field(default_factory=list)
    """Paths to add to sys.path for module resolution."""

    factories: str = "probes/factories"
    """Directory containing factory functions."""

    timeout_ms: int | None = None
    """Default timeout for each probed call (can be overridden per call)."""

    debug_mode: bool = False
    """Enable verbose debug output."""

    @field_validator("source_paths", mode="before")
    @classmethod
    def ensure_list(cls, v: Any) -> list[str]:
        return _as_list(v)


class StateguardConfig(BaseModel):
    """Root configuration for stateguard."""

    version: str = "0.1"
    """Config file version."""

    paths: list[str] = Field(default_factory=lambda: ["src"])
    """Files and directories checked when none are given on the command line."""

    exclude: list[str] = Field(
        default_factory=lambda: [".venv", "venv", "__pycache__", ".git", "build", "dist"]
    )
    """fnmatch patterns matched against each path component."""

    select: list[str] | None = None
    """If set, only these rules (codes or names) run."""

    ignore: list[str] = Field(default_factory=list)
    """Rules (codes or names) that never run."""

    fail_on: Severity = Severity.ERROR
    """Lowest severity that makes ``stateguard check`` exit non-zero."""

    rules: dict[str, RuleConfig] = Field(default_factory=dict)
    """Per-rule settings keyed by code or name."""

    analysis: AnalysisConfig = Field(default_factory=AnalysisConfig)

    probe: ProbeConfig = Field(default_factory=ProbeConfig)

    @field_validator("paths", "exclude", "ignore", mode="before")
    @classmethod
    def ensure_list(cls, v: Any) -> list[str]:
        return _as_list(v)

    @field_validator("analysis", "probe", "rules", mode="before")
    @classmethod
    def empty_section(cls, v: Any) -> Any:
        # A YAML section holding only comments loads as None
        return {} if v is None else v

    @field_validator("select", mode="before")
    @classmethod
    def ensure_optional_list(cls, v: Any) -> list[str] | None:
        return _as_list(v)

    @field_validator("rules", mode="after")
    @classmethod
    def normalize_rule_keys(cls, v: dict[str, RuleConfig]) -> dict[str, RuleConfig]:
        from stateguard.analysis.rules import get_rule

        normalized: dict[str, RuleConfig] = {}
        for key, rule_config in v.items():
            rule = get_rule(key)
            if rule is None:
                raise ValueError(f"Unknown rule: {key!r}")
            normalized[rule.code] = rule_config
        return normalized

    def rule_config(self, code: str) -> RuleConfig:
        return self.rules.get(code, RuleConfig())


def find_config_file(project_root: Path) -> Path | None:
    """Return the first config file present in the project root."""
    for name in CONFIG_FILENAMES:
        candidate = project_root / name
        if candidate.exists():
            return candidate
    return None


def load_config(config_path: Path | None = None, project_root: Path | None = None) -> StateguardConfig:
    """Load configuration from a YAML file.

    Args:
        config_path: Explicit path to config file. If None, searches for stateguard.yaml.
        project_root: Project root directory. Defaults to cwd.

    Returns:
        Parsed configuration. Returns default config if no file found.

    Raises:
        FileNotFoundError: If an explicit config_path does not exist.
        ValueError: If the file is not valid YAML or fails validation.
    """
    project_root = project_root or Path.cwd()

    if config_path is not None and not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    if config_path is None:
        config_path = find_config_file(project_root)

    # No config file - return defaults
    if config_path is None:
        return StateguardConfig()

    with open(config_path) as f:
        try:
            data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in config {config_path}: {e}") from e

    return StateguardConfig.model_validate(data)


def _resolve(project_root: Path, p: str) -> str:
    return str((project_root / p).resolve()) if not Path(p).is_absolute() else p


def resolve_paths(config: StateguardConfig, project_root: Path) -> StateguardConfig:
    """Resolve relative paths in config to absolute paths.

    Args:
        config: The configuration to update.
        project_root: Base directory for relative paths.

    Returns:
        Config with resolved paths (new instance).
    """
    probe = config.probe

    return config.model_copy(
        update={
            "paths": [_resolve(project_root, p) for p in config.paths],
            "probe": probe.model_copy(
                update={
                    "source_paths": [_resolve(project_root, p) for p in probe.source_paths],
                    "factories": _resolve(project_root, probe.factories),
                }
            ),
        }
    )
