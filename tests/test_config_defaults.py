from __future__ import annotations

from pathlib import Path
import textwrap

from eos_standards import config


def _write_config(root: Path, text: str) -> Path:
    path = root / config.DEFAULT_CONFIG_NAME
    path.write_text(textwrap.dedent(text).strip() + "\n", encoding="utf-8")
    return path


def test_sections_read_from_eos_toml(tmp_path: Path) -> None:
    _write_config(
        tmp_path,
        """
        [standards]
        dir = "standards"
        max_depth = 4

        [verification]
        mode = "advisory"
        timeout_seconds = 12.5
        concurrency = 3

        [variables]
        PROJECT_TYPE = "legacy"
        PROJECT_COVERAGE = 85
        STRICT = true
        """,
    )
    assert config.standards_defaults(root=tmp_path) == {"dir": "standards", "max_depth": 4}
    assert config.verification_defaults(root=tmp_path)["mode"] == "advisory"
    assert config.variable_defaults(root=tmp_path) == {"PROJECT_TYPE": "legacy", "PROJECT_COVERAGE": "85"}


def test_missing_or_malformed_config_reads_as_empty(tmp_path: Path) -> None:
    assert config.load_config(root=tmp_path) == {}
    path = _write_config(tmp_path, "[standards\ndir = ")
    assert config.load_config(config_path=path) == {}


def test_non_table_sections_are_ignored(tmp_path: Path) -> None:
    _write_config(tmp_path, 'standards = "docs"')
    assert config.standards_defaults(root=tmp_path) == {}


def test_standards_layout_defaults(tmp_path: Path) -> None:
    layout = config.standards_layout(tmp_path)
    assert layout.standards_dir == tmp_path / "docs/standards"
    assert layout.root_document == tmp_path / "docs/standards/standards.md"
    assert layout.lexicon_path == tmp_path / "docs/standards/_meta/intent-lexicon.json"
    assert layout.max_depth == 3
    assert layout.dispatcher_markers == config.DEFAULT_DISPATCHER_MARKERS


def test_standards_layout_from_config_and_override(tmp_path: Path) -> None:
    _write_config(
        tmp_path,
        """
        [standards]
        dir = "rules"
        root_document = "index.md"
        max_depth = 0
        dispatcher_markers = "Router, Hub"
        """,
    )
    layout = config.standards_layout(tmp_path)
    assert layout.root_document == tmp_path / "rules/index.md"
    assert layout.max_depth == 3
    assert layout.dispatcher_markers == ("Router", "Hub")
    assert layout.relative(layout.root_document) == "rules/index.md"

    overridden = config.standards_layout(tmp_path, standards_dir=Path("other"))
    assert overridden.standards_dir == tmp_path / "other"
    assert overridden.root_document == tmp_path / "other/index.md"
