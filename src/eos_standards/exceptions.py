"""Exception hierarchy for the standards engine."""

from __future__ import annotations


class StandardsError(RuntimeError):
    """Base class for conditions that prevent a pass from running."""


class ConfigError(StandardsError):
    pass


class LexiconError(StandardsError):
    pass


class ExtractionError(StandardsError):
    """A single annotation block could not be extracted."""

    def __init__(self, message: str, *, document: str = "", line: int = 0):
        super().__init__(message)
        self.document = document
        self.line = line


class UnresolvedVariableError(StandardsError):
    def __init__(self, names: tuple[str, ...], *, text: str = ""):
        joined = ", ".join(names)
        super().__init__(f"Unresolved variable(s): {joined}")
        self.names = names
        self.text = text


class DependencyError(StandardsError):
    """Scheduling cannot establish a total order over the tests."""


class DependencyCycleError(DependencyError):
    def __init__(self, cycle: tuple[str, ...]):
        super().__init__(f"Cyclic dependency: {' -> '.join(cycle)}")
        self.cycle = cycle


class UnknownDependencyError(DependencyError):
    def __init__(self, test: str, dependency: str, *, reason: str = "unknown"):
        super().__init__(f"Test '{test}' depends on {reason} test '{dependency}'")
        self.test = test
        self.dependency = dependency
