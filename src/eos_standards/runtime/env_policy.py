from __future__ import annotations

import os
from typing import Mapping

from eos_standards.model import Mode

_TRUTHY_VALUES = {"1", "true", "yes", "on"}

MODE_ENV = "VERIFICATION_MODE"
CONCURRENCY_ENV = "EOS_VERIFY_CONCURRENCY"
TIMEOUT_ENV = "EOS_VERIFY_TIMEOUT_SECONDS"
CI_ENV = "CI"

_DEFAULT_CONCURRENCY_CEILING = 8
_CI_CONCURRENCY_CEILING = 2


def env_text(name: str, *, default: str = "", environ: Mapping[str, str] | None = None) -> str:
    source = os.environ if environ is None else environ
    return str(source.get(name, default)).strip()


def env_enabled_flag(name: str, *, value: str | None = None) -> bool:
    text = value if isinstance(value, str) else os.getenv(name, "")
    return text.strip().lower() in _TRUTHY_VALUES


def resolve_mode(
    explicit: str | None,
    *,
    configured: object = None,
    environ: Mapping[str, str] | None = None,
) -> Mode:
    """CLI option, then VERIFICATION_MODE, then config, then blocking."""
    for candidate in (explicit, env_text(MODE_ENV, environ=environ), configured):
        if isinstance(candidate, str) and candidate.strip():
            return Mode.parse(candidate)
    return Mode.BLOCKING


def parse_positive_int_text(raw: str, *, field: str) -> int:
    text = raw.strip()
    try:
        value = int(text)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"invalid {field}: {raw!r}") from exc
    if value <= 0:
        raise ValueError(f"invalid {field}: {raw!r}")
    return value


def resolve_concurrency(
    explicit: int | None,
    *,
    configured: object = None,
    cpu_count: int | None = None,
    environ: Mapping[str, str] | None = None,
) -> int:
    if explicit is not None:
        if explicit <= 0:
            raise ValueError(f"invalid concurrency: {explicit!r}")
        return explicit
    raw = env_text(CONCURRENCY_ENV, environ=environ)
    if raw:
        return parse_positive_int_text(raw, field="concurrency")
    if isinstance(configured, int) and not isinstance(configured, bool) and configured > 0:
        return configured
    available = cpu_count if cpu_count is not None else (os.cpu_count() or 1)
    ceiling = (
        _CI_CONCURRENCY_CEILING
        if env_enabled_flag(CI_ENV, value=env_text(CI_ENV, environ=environ))
        else _DEFAULT_CONCURRENCY_CEILING
    )
    return max(1, min(available, ceiling))


def resolve_timeout_seconds(
    explicit: float | None,
    *,
    configured: object = None,
    default: float,
    environ: Mapping[str, str] | None = None,
) -> float:
    if explicit is not None:
        if explicit <= 0:
            raise ValueError(f"invalid timeout: {explicit!r}")
        return float(explicit)
    raw = env_text(TIMEOUT_ENV, environ=environ)
    if raw:
        try:
            value = float(raw)
        except ValueError as exc:
            raise ValueError(f"invalid timeout: {raw!r}") from exc
        if value <= 0:
            raise ValueError(f"invalid timeout: {raw!r}")
        return value
    if isinstance(configured, (int, float)) and not isinstance(configured, bool) and configured > 0:
        return float(configured)
    return default
