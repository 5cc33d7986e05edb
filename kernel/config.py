"""
kernel/config.py -- Defaults and configuration loading.

All tunables live here. Built-in defaults are overridden by an optional
YAML file (``litverify.yaml`` in the working directory, or ``--config``),
which is in turn overridden by command-line flags.
"""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml

from domain.models import Settings, Toolchain

logger = logging.getLogger("litverify.config")

# ---------------------------------------------------------------------------
# Paths
# ---------------------------------------------------------------------------

CONFIG_FILE = "litverify.yaml"

# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------

# Per-block wall-clock limit; examples of infinite recursion must not hang a run
DEFAULT_TIMEOUT_MS = 10_000

# Printed by the book's `eq` helper when an assertion fails
DEFAULT_ASSERTION_MARKER = "[Error]:"

# Command templates. Placeholders: {sources} (all files of a unit, as a whole
# argument), {source}, {workdir}, {out}, {main}, {python}.
DEFAULT_TOOLCHAINS: dict[str, dict[str, Any]] = {
    "kotlin": {
        "aliases": ["kt", "kts"],
        "extensions": [".kt"],
        "compile": ["kotlinc", "{sources}", "-d", "{out}"],
        "run": ["kotlin", "-cp", "{out}", "{main}"],
        "entry_pattern": r"\bfun\s+main\s*\(",
        "main_class": "{package_prefix}{Stem}Kt",
    },
    "python": {
        "aliases": ["py", "python3"],
        "extensions": [".py"],
        "run": ["{python}", "{source}"],
        "compile_errors": ["SyntaxError", "IndentationError", "TabError"],
    },
}

# Placeholders a main_class template may use
MAIN_CLASS_PLACEHOLDERS = frozenset({"package", "package_prefix", "stem", "Stem"})
_PLACEHOLDER_RE = re.compile(r"\{(\w+)\}")

_TOP_LEVEL_KEYS = frozenset(
    {"workers", "timeout_ms", "fail_fast", "assertion_marker", "include", "toolchains"}
)
_TOOLCHAIN_KEYS = frozenset(
    {
        "aliases",
        "extensions",
        "compile",
        "run",
        "entry_pattern",
        "error_pattern",
        "main_class",
        "compile_errors",
    }
)


class ConfigError(Exception):
    """Raised when a configuration file or value is invalid."""


def default_workers() -> int:
    """Return the default worker pool size: the number of CPU cores."""
    return os.cpu_count() or 1


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------


def load_settings(
    config_path: Path | None = None,
    *,
    cwd: Path | None = None,
    overrides: dict[str, Any] | None = None,
) -> Settings:
    """Resolve defaults, the YAML file, and CLI overrides into Settings.

    Args:
        config_path: Explicit config file; must exist when given.
        cwd: Directory searched for ``litverify.yaml`` when no path is given.
        overrides: CLI values; ``None`` entries are ignored.

    Raises:
        ConfigError: on unreadable YAML or invalid values.
    """
    data: dict[str, Any] = {}
    if config_path is not None:
        if not config_path.is_file():
            msg = f"config file not found: {config_path}"
            raise ConfigError(msg)
        data = read_config_file(config_path)
    else:
        candidate = (cwd or Path.cwd()) / CONFIG_FILE
        if candidate.is_file():
            data = read_config_file(candidate)

    for key, value in (overrides or {}).items():
        if value is not None:
            data[key] = value

    return settings_from_dict(data)


def read_config_file(path: Path) -> dict[str, Any]:
    """Read a YAML config file into a dict."""
    logger.info("Loading config from %s", path)
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as exc:
        msg = f"cannot read {path}: {exc}"
        raise ConfigError(msg) from exc
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        msg = f"{path}: top level must be a mapping"
        raise ConfigError(msg)
    return raw


def settings_from_dict(data: dict[str, Any]) -> Settings:
    """Validate a merged config mapping and build Settings."""
    unknown = set(data) - _TOP_LEVEL_KEYS
    if unknown:
        msg = f"unknown config key(s): {', '.join(sorted(unknown))}"
        raise ConfigError(msg)

    workers = _positive_int(data.get("workers", default_workers()), "workers")
    timeout_ms = _positive_int(data.get("timeout_ms", DEFAULT_TIMEOUT_MS), "timeout_ms")
    marker = data.get("assertion_marker", DEFAULT_ASSERTION_MARKER)
    if not isinstance(marker, str):
        msg = "assertion_marker must be a string"
        raise ConfigError(msg)

    toolchains = merge_toolchains(DEFAULT_TOOLCHAINS, data.get("toolchains") or {})
    return Settings(
        toolchains=tuple(toolchain_from_dict(name, tc) for name, tc in sorted(toolchains.items())),
        workers=workers,
        timeout_ms=timeout_ms,
        fail_fast=bool(data.get("fail_fast", False)),
        assertion_marker=marker,
        include=_str_tuple(data.get("include", ()), "include"),
    )


def merge_toolchains(
    defaults: dict[str, dict[str, Any]],
    user: dict[str, Any],
) -> dict[str, dict[str, Any]]:
    """Merge user toolchains over the defaults, key by key.

    A toolchain set to ``null`` is removed.
    """
    if not isinstance(user, dict):
        msg = "toolchains must be a mapping"
        raise ConfigError(msg)
    merged = {name: dict(tc) for name, tc in defaults.items()}
    for name, tc in user.items():
        if tc is None:
            merged.pop(name, None)
            continue
        if not isinstance(tc, dict):
            msg = f"toolchains.{name} must be a mapping"
            raise ConfigError(msg)
        merged.setdefault(name, {}).update(tc)
    return merged


def toolchain_from_dict(name: str, data: dict[str, Any]) -> Toolchain:
    """Build a Toolchain from its config mapping."""
    unknown = set(data) - _TOOLCHAIN_KEYS
    if unknown:
        msg = f"toolchains.{name}: unknown key(s): {', '.join(sorted(unknown))}"
        raise ConfigError(msg)
    run = _str_tuple(data.get("run", ()), f"toolchains.{name}.run")
    if not run:
        msg = f"toolchains.{name}.run is required"
        raise ConfigError(msg)
    return Toolchain(
        language=name.lower(),
        run=run,
        compile=_str_tuple(data.get("compile") or (), f"toolchains.{name}.compile"),
        extensions=tuple(
            e.lower()
            for e in _str_tuple(data.get("extensions", ()), f"toolchains.{name}.extensions")
        ),
        aliases=tuple(
            a.lower() for a in _str_tuple(data.get("aliases", ()), f"toolchains.{name}.aliases")
        ),
        entry_pattern=_pattern(data.get("entry_pattern"), f"toolchains.{name}.entry_pattern"),
        error_pattern=_pattern(data.get("error_pattern"), f"toolchains.{name}.error_pattern"),
        main_class=_main_class(data.get("main_class"), f"toolchains.{name}.main_class"),
        compile_errors=_str_tuple(
            data.get("compile_errors", ()), f"toolchains.{name}.compile_errors"
        ),
    )


def _positive_int(value: object, key: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        msg = f"{key} must be a positive integer, got {value!r}"
        raise ConfigError(msg)
    return value


def _pattern(value: object, key: str) -> str:
    if value is None:
        return ""
    if not isinstance(value, str):
        msg = f"{key} must be a string"
        raise ConfigError(msg)
    try:
        re.compile(value, re.MULTILINE)
    except re.error as exc:
        msg = f"{key} is not a valid regular expression: {exc}"
        raise ConfigError(msg) from exc
    return value


def _main_class(value: object, key: str) -> str:
    if value is None:
        return ""
    if not isinstance(value, str):
        msg = f"{key} must be a string"
        raise ConfigError(msg)
    unknown = set(_PLACEHOLDER_RE.findall(value)) - MAIN_CLASS_PLACEHOLDERS
    if unknown:
        msg = f"{key}: unknown placeholder(s): {', '.join(sorted(unknown))}"
        raise ConfigError(msg)
    return value


def _str_tuple(value: object, key: str) -> tuple[str, ...]:
    if isinstance(value, str):
        return (value,)
    if not isinstance(value, (list, tuple)) or not all(isinstance(v, str) for v in value):
        msg = f"{key} must be a list of strings"
        raise ConfigError(msg)
    return tuple(value)
