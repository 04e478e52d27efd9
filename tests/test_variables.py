from __future__ import annotations

import json
from pathlib import Path

import pytest

from eos_standards.exceptions import UnresolvedVariableError
from eos_standards import variables


def test_substitution_is_idempotent() -> None:
    values = variables.VariableSet(values={"PROJECT_COVERAGE": "90", "PACKAGE_MANAGER": "pnpm"}, sources={})
    text = "${PACKAGE_MANAGER} test -- --coverage-threshold=${PROJECT_COVERAGE}"
    once = values.substitute(text, environ={})
    assert once == "pnpm test -- --coverage-threshold=90"
    assert values.substitute(once, environ={}) == once


def test_unresolved_tokens_raise_with_every_name() -> None:
    values = variables.VariableSet(values={"A": "1"}, sources={})
    with pytest.raises(UnresolvedVariableError) as excinfo:
        values.substitute("${A} ${MISSING} ${OTHER} ${MISSING}", environ={})
    assert excinfo.value.names == ("MISSING", "OTHER")
    assert "Unresolved variable(s): MISSING, OTHER" in str(excinfo.value)


def test_unknown_tokens_fall_back_to_the_environment() -> None:
    values = variables.VariableSet(values={}, sources={})
    assert values.substitute("echo ${HOME_DIR}", environ={"HOME_DIR": "/home/x"}) == "echo /home/x"
    assert values.unresolved(("HOME_DIR", "NOPE"), environ={"HOME_DIR": "/home/x"}) == ("NOPE",)


def test_lowercase_and_dollar_forms_are_left_alone() -> None:
    values = variables.VariableSet(values={}, sources={})
    assert values.substitute("echo $HOME ${lower}", environ={}) == "echo $HOME ${lower}"


def test_precedence_environment_then_config_then_inspection_then_default(tmp_path: Path) -> None:
    (tmp_path / "pnpm-lock.yaml").write_text("", encoding="utf-8")
    resolved = variables.resolve_variables(
        tmp_path,
        environ={"PACKAGE_MANAGER": "bun"},
        configured={"PACKAGE_MANAGER": "yarn", "PROJECT_TYPE": "legacy"},
    )
    assert resolved.get("PACKAGE_MANAGER") == "bun"
    assert resolved.sources["PACKAGE_MANAGER"] == "environment"
    assert resolved.get("PROJECT_TYPE") == "legacy"
    assert resolved.sources["PROJECT_TYPE"] == "config"

    inspected = variables.resolve_variables(tmp_path, environ={}, configured={})
    assert inspected.get("PACKAGE_MANAGER") == "pnpm"
    assert inspected.sources["PACKAGE_MANAGER"] == "inspection"


@pytest.mark.parametrize(
    ("lockfile", "manager"),
    [
        ("pnpm-lock.yaml", "pnpm"),
        ("yarn.lock", "yarn"),
        ("bun.lockb", "bun"),
        ("package-lock.json", "npm"),
    ],
)
def test_package_manager_from_lockfile(tmp_path: Path, lockfile: str, manager: str) -> None:
    (tmp_path / lockfile).write_text("", encoding="utf-8")
    assert variables.package_manager(tmp_path) == manager


def test_package_manager_defaults_to_npm(tmp_path: Path) -> None:
    resolved = variables.resolve_variables(tmp_path, environ={})
    assert resolved.get("PACKAGE_MANAGER") == "npm"
    assert resolved.sources["PACKAGE_MANAGER"] == "default"


def test_coverage_from_package_json(tmp_path: Path) -> None:
    (tmp_path / "package.json").write_text(
        json.dumps({"name": "demo", "jest": {"coverageThreshold": {"global": {"lines": 90}}}}),
        encoding="utf-8",
    )
    resolved = variables.resolve_variables(tmp_path, environ={})
    assert resolved.get("PROJECT_COVERAGE") == "90"
    assert resolved.get("PROJECT_NAME") == "demo"


def test_coverage_from_pyproject_and_js_config(tmp_path: Path) -> None:
    (tmp_path / "pyproject.toml").write_text(
        '[project]\nname = "pydemo"\n\n[tool.coverage.report]\nfail_under = 85.5\n',
        encoding="utf-8",
    )
    assert variables.coverage_threshold(tmp_path) == "85.5"
    assert variables.project_name(tmp_path) == "pydemo"

    other = tmp_path / "js"
    other.mkdir()
    (other / "vitest.config.ts").write_text(
        "export default { test: { coverage: { thresholds: { lines: 95 } } } }\n",
        encoding="utf-8",
    )
    assert variables.coverage_threshold(other) == "95"


def test_coverage_profile_defaults(tmp_path: Path) -> None:
    greenfield = variables.resolve_variables(tmp_path, environ={})
    assert greenfield.get("PROJECT_TYPE") == "greenfield"
    assert greenfield.get("PROJECT_COVERAGE") == "98"
    legacy = variables.resolve_variables(tmp_path, environ={"PROJECT_TYPE": "legacy"})
    assert legacy.get("PROJECT_COVERAGE") == "80"
    assert legacy.sources["PROJECT_COVERAGE"] == "default"


def test_project_name_falls_back_to_directory(tmp_path: Path) -> None:
    root = tmp_path / "my-repo"
    root.mkdir()
    assert variables.resolve_variables(root, environ={}).get("PROJECT_NAME") == "my-repo"


def test_extra_configured_variables_are_available(tmp_path: Path) -> None:
    resolved = variables.resolve_variables(
        tmp_path,
        environ={"API_DIR": "services/api"},
        configured={"API_DIR": "api", "DOCS_DIR": "docs"},
    )
    assert resolved.get("API_DIR") == "services/api"
    assert resolved.get("DOCS_DIR") == "docs"
    assert resolved.sources["DOCS_DIR"] == "config"


def test_variable_set_is_read_only() -> None:
    values = variables.VariableSet(values={"A": "1"}, sources={"A": "config"})
    with pytest.raises(TypeError):
        values.values["A"] = "2"  # type: ignore[index]
