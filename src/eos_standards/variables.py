"""Named variables derived from the repository and substituted into test commands.

Each variable resolves once per run, first match wins:

1. the process environment;
2. the ``[variables]`` table of ``eos.toml``;
3. inspection of the repository (lockfiles, coverage thresholds, manifests);
4. a profile default keyed by ``PROJECT_TYPE``.
"""

from __future__ import annotations

from dataclasses import dataclass
import json
import os
from pathlib import Path
import re
from types import MappingProxyType
from typing import Callable, Mapping
import tomllib

from eos_standards.exceptions import UnresolvedVariableError

_TOKEN_RE = re.compile(r"\$\{([A-Z0-9_]+)\}")
_JS_LINES_RE = re.compile(r"\blines\s*:\s*(\d+(?:\.\d+)?)")

DEFAULT_PROJECT_TYPE = "greenfield"
DEFAULT_PROJECT_PHASES = "false"
DEFAULT_PACKAGE_MANAGER = "npm"
COVERAGE_PROFILE_DEFAULTS = {"greenfield": "98"}
FALLBACK_COVERAGE = "80"

LOCKFILES: tuple[tuple[str, str], ...] = (
    ("pnpm-lock.yaml", "pnpm"),
    ("yarn.lock", "yarn"),
    ("bun.lockb", "bun"),
    ("package-lock.json", "npm"),
)
_JS_COVERAGE_CONFIGS = (
    "vitest.config.ts",
    "vitest.config.mts",
    "vitest.config.js",
    "vitest.config.mjs",
    "jest.config.ts",
    "jest.config.js",
    "jest.config.mjs",
    "jest.config.cjs",
)


@dataclass(frozen=True)
class VariableSet:
    values: Mapping[str, str]
    sources: Mapping[str, str]

    def __post_init__(self) -> None:
        object.__setattr__(self, "values", MappingProxyType(dict(self.values)))
        object.__setattr__(self, "sources", MappingProxyType(dict(self.sources)))

    def get(self, name: str) -> str | None:
        return self.values.get(name)

    def lookup(self, name: str, environ: Mapping[str, str]) -> str | None:
        value = self.values.get(name)
        if value is None:
            value = environ.get(name)
        return value

    def unresolved(self, names: tuple[str, ...], *, environ: Mapping[str, str] | None = None) -> tuple[str, ...]:
        env = os.environ if environ is None else environ
        return tuple(name for name in names if self.lookup(name, env) is None)

    def substitute(self, text: str, *, environ: Mapping[str, str] | None = None) -> str:
        """Replace every ``${NAME}`` token; leftovers raise UnresolvedVariableError."""
        env = os.environ if environ is None else environ

        def replace(match: re.Match[str]) -> str:
            value = self.lookup(match.group(1), env)
            return match.group(0) if value is None else value

        substituted = _TOKEN_RE.sub(replace, text)
        missing = tuple(dict.fromkeys(_TOKEN_RE.findall(substituted)))
        if missing:
            raise UnresolvedVariableError(missing, text=text)
        return substituted


def _read_json(path: Path) -> dict[str, object]:
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeError, json.JSONDecodeError):
        return {}
    return payload if isinstance(payload, dict) else {}


def _read_toml(path: Path) -> dict[str, object]:
    try:
        return tomllib.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeError, tomllib.TOMLDecodeError):
        return {}


def _dig(payload: object, *keys: str) -> object:
    for key in keys:
        if not isinstance(payload, dict):
            return None
        payload = payload.get(key)
    return payload


def _number_text(value: object) -> str | None:
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        return None
    try:
        number = float(value)
    except ValueError:
        return None
    return str(int(number)) if number.is_integer() else str(number)


def package_manager(root: Path) -> str | None:
    for lockfile, name in LOCKFILES:
        if (root / lockfile).is_file():
            return name
    return None


def coverage_threshold(root: Path) -> str | None:
    """First coverage threshold declared in a known config location."""
    candidates: list[Callable[[], object]] = [
        lambda: _dig(_read_json(root / "package.json"), "jest", "coverageThreshold", "global", "lines"),
        lambda: _read_json(root / ".nycrc").get("lines"),
        lambda: _read_json(root / ".nycrc.json").get("lines"),
        lambda: _dig(_read_toml(root / "pyproject.toml"), "tool", "coverage", "report", "fail_under"),
    ]
    for candidate in candidates:
        found = _number_text(candidate())
        if found is not None:
            return found
    for name in _JS_COVERAGE_CONFIGS:
        path = root / name
        if not path.is_file():
            continue
        try:
            match = _JS_LINES_RE.search(path.read_text(encoding="utf-8"))
        except (OSError, UnicodeError):
            continue
        if match:
            return _number_text(match.group(1))
    return None


def project_name(root: Path) -> str | None:
    name = _read_json(root / "package.json").get("name")
    if isinstance(name, str) and name.strip():
        return name.strip()
    name = _dig(_read_toml(root / "pyproject.toml"), "project", "name")
    if isinstance(name, str) and name.strip():
        return name.strip()
    return None


def resolve_variables(
    root: Path,
    *,
    environ: Mapping[str, str] | None = None,
    configured: Mapping[str, str] | None = None,
) -> VariableSet:
    env = os.environ if environ is None else environ
    configured = configured or {}
    values: dict[str, str] = {}
    sources: dict[str, str] = {}

    def settle(name: str, inspect: Callable[[], str | None], default: Callable[[], str]) -> None:
        explicit = str(env.get(name, "")).strip()
        if explicit:
            values[name], sources[name] = explicit, "environment"
            return
        from_config = str(configured.get(name, "")).strip()
        if from_config:
            values[name], sources[name] = from_config, "config"
            return
        inspected = inspect()
        if inspected:
            values[name], sources[name] = inspected, "inspection"
            return
        values[name], sources[name] = default(), "default"

    settle("PROJECT_TYPE", lambda: None, lambda: DEFAULT_PROJECT_TYPE)
    settle("PROJECT_PHASES", lambda: None, lambda: DEFAULT_PROJECT_PHASES)
    settle(
        "PROJECT_COVERAGE",
        lambda: coverage_threshold(root),
        lambda: COVERAGE_PROFILE_DEFAULTS.get(values["PROJECT_TYPE"].lower(), FALLBACK_COVERAGE),
    )
    settle("PACKAGE_MANAGER", lambda: package_manager(root), lambda: DEFAULT_PACKAGE_MANAGER)
    settle("PROJECT_NAME", lambda: project_name(root), lambda: root.resolve().name)
    for name, value in configured.items():
        if name not in values:
            settle(name, lambda: None, lambda value=value: str(value).strip())
    return VariableSet(values=values, sources=sources)
