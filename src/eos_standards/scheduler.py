from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Mapping, Sequence

from eos_standards.exceptions import DependencyCycleError, UnknownDependencyError
from eos_standards.model import VerificationTest


class _Mark(Enum):
    WHITE = 0
    GRAY = 1
    BLACK = 2


@dataclass(frozen=True)
class Schedule:
    """Tests keyed by ``document::name`` in a dependency-respecting order."""

    order: tuple[str, ...]
    tests: Mapping[str, VerificationTest]
    dependencies: Mapping[str, tuple[str, ...]]

    def ordered_tests(self) -> list[VerificationTest]:
        return [self.tests[key] for key in self.order]

    def waves(self) -> list[tuple[str, ...]]:
        """Groups of tests whose dependencies all sit in earlier groups."""
        level: dict[str, int] = {}
        for key in self.order:
            level[key] = 1 + max((level[dep] for dep in self.dependencies[key]), default=-1)
        grouped: dict[int, list[str]] = {}
        for key in self.order:
            grouped.setdefault(level[key], []).append(key)
        return [tuple(grouped[index]) for index in sorted(grouped)]


def resolve_dependencies(tests: Sequence[VerificationTest]) -> dict[str, tuple[str, ...]]:
    """Map each test key to the keys of its DEPENDS_ON entries.

    A name resolves to the test of that name in the same document, else to the
    only test of that name in the run.
    """
    by_document: dict[tuple[str, str], str] = {}
    by_name: dict[str, list[str]] = {}
    for test in tests:
        by_document[(test.source_document, test.name)] = test.key
        by_name.setdefault(test.name, []).append(test.key)
    resolved: dict[str, tuple[str, ...]] = {}
    for test in tests:
        keys: list[str] = []
        for name in test.depends_on:
            local = by_document.get((test.source_document, name))
            if local is not None:
                keys.append(local)
                continue
            candidates = by_name.get(name, [])
            if not candidates:
                raise UnknownDependencyError(test.key, name)
            if len(candidates) > 1:
                raise UnknownDependencyError(test.key, name, reason="ambiguous")
            keys.append(candidates[0])
        resolved[test.key] = tuple(dict.fromkeys(keys))
    return resolved


def schedule(tests: Sequence[VerificationTest]) -> Schedule:
    """Topologically order tests (depth-first, post-order) or raise on a cycle."""
    by_key = {test.key: test for test in tests}
    dependencies = resolve_dependencies(tests)
    marks = {key: _Mark.WHITE for key in by_key}
    order: list[str] = []

    def visit(key: str, stack: tuple[str, ...]) -> None:
        if marks[key] is _Mark.BLACK:
            return
        if marks[key] is _Mark.GRAY:
            start = stack.index(key)
            raise DependencyCycleError(stack[start:] + (key,))
        marks[key] = _Mark.GRAY
        for dependency in dependencies[key]:
            visit(dependency, stack + (key,))
        marks[key] = _Mark.BLACK
        order.append(key)

    for test in tests:
        visit(test.key, ())
    return Schedule(order=tuple(order), tests=by_key, dependencies=dependencies)
