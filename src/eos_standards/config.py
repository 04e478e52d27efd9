from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, time
from pathlib import Path
from typing import Mapping, TypeAlias
import tomllib

DEFAULT_CONFIG_NAME = "eos.toml"

DEFAULT_STANDARDS_DIR = "docs/standards"
DEFAULT_ROOT_DOCUMENT = "standards.md"
DEFAULT_LEXICON = "_meta/intent-lexicon.json"
DEFAULT_MAX_DEPTH = 3
DEFAULT_DISPATCHER_MARKERS = ("Category Dispatcher", "Root Dispatcher")
DEFAULT_TIMEOUT_SECONDS = 30.0

TomlScalar: TypeAlias = str | int | float | bool | None | date | datetime | time
TomlValue: TypeAlias = TomlScalar | list["TomlValue"] | dict[str, "TomlValue"]
TomlTable: TypeAlias = dict[str, TomlValue]


def _load_toml(path: Path) -> TomlTable:
    try:
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return {}
    except OSError:
        return {}
    try:
        data = tomllib.loads(raw)
    except tomllib.TOMLDecodeError:
        return {}
    return data if isinstance(data, dict) else {}


def load_config(root: Path | None = None, config_path: Path | None = None) -> TomlTable:
    if config_path is None:
        base = root if root is not None else Path.cwd()
        config_path = base / DEFAULT_CONFIG_NAME
    return _load_toml(config_path)


def _section(data: TomlTable, name: str) -> TomlTable:
    section = data.get(name, {})
    return section if isinstance(section, dict) else {}


def standards_defaults(
    root: Path | None = None, config_path: Path | None = None
) -> TomlTable:
    return _section(load_config(root=root, config_path=config_path), "standards")


def verification_defaults(
    root: Path | None = None, config_path: Path | None = None
) -> TomlTable:
    return _section(load_config(root=root, config_path=config_path), "verification")


def variable_defaults(
    root: Path | None = None, config_path: Path | None = None
) -> dict[str, str]:
    section = _section(load_config(root=root, config_path=config_path), "variables")
    return {
        str(key): str(value).strip()
        for key, value in section.items()
        if isinstance(value, (str, int, float)) and not isinstance(value, bool)
    }


def _normalize_name_list(value: TomlValue) -> list[str]:
    items: list[str] = []
    if value is None:
        return items
    if isinstance(value, str):
        items = [part.strip() for part in value.split(",") if part.strip()]
    elif isinstance(value, (list, tuple, set)):
        for item in value:
            if isinstance(item, str):
                items.extend([part.strip() for part in item.split(",") if part.strip()])
    return [item for item in items if item]


def _as_positive_int(value: TomlValue, default: int) -> int:
    if isinstance(value, bool):
        return default
    try:
        parsed = int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return default
    return parsed if parsed > 0 else default


@dataclass(frozen=True)
class StandardsLayout:
    """Where the corpus lives and how the routing graph is bounded."""

    root: Path
    standards_dir: Path
    root_document: Path
    lexicon_path: Path
    max_depth: int = DEFAULT_MAX_DEPTH
    dispatcher_markers: tuple[str, ...] = field(default=DEFAULT_DISPATCHER_MARKERS)

    def relative(self, path: Path) -> str:
        try:
            return path.resolve().relative_to(self.root.resolve()).as_posix()
        except ValueError:
            return path.as_posix()


def standards_layout(
    root: Path,
    *,
    section: Mapping[str, TomlValue] | None = None,
    standards_dir: Path | None = None,
) -> StandardsLayout:
    section = section if section is not None else standards_defaults(root=root)
    base = root / str(section.get("dir", DEFAULT_STANDARDS_DIR))
    if standards_dir is not None:
        base = standards_dir if standards_dir.is_absolute() else root / standards_dir
    markers = _normalize_name_list(section.get("dispatcher_markers"))
    return StandardsLayout(
        root=root,
        standards_dir=base,
        root_document=base / str(section.get("root_document", DEFAULT_ROOT_DOCUMENT)),
        lexicon_path=base / str(section.get("lexicon", DEFAULT_LEXICON)),
        max_depth=_as_positive_int(section.get("max_depth"), DEFAULT_MAX_DEPTH),
        dispatcher_markers=tuple(markers) or DEFAULT_DISPATCHER_MARKERS,
    )
