"""Core records shared by the extractor, validators and the verification runner."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import TypeAlias


class Mode(str, Enum):
    BLOCKING = "blocking"
    ADVISORY = "advisory"

    @classmethod
    def parse(cls, raw: str) -> "Mode":
        text = raw.strip().lower()
        for mode in cls:
            if mode.value == text:
                return mode
        raise ValueError(f"Invalid mode '{raw}'. Use blocking|advisory.")


class TestStatus(str, Enum):
    __test__ = False

    PENDING = "pending"
    RUNNING = "running"
    PASSED = "passed"
    FAILED = "failed"
    SKIPPED = "skipped"

    @property
    def terminal(self) -> bool:
        return self in {TestStatus.PASSED, TestStatus.FAILED, TestStatus.SKIPPED}


class FailureKind(str, Enum):
    EXECUTION = "execution"
    TIMEOUT = "timeout"
    GOVERNANCE = "governance"
    STRUCTURAL = "structural"

    @property
    def hard(self) -> bool:
        """Failures that are never downgraded by advisory mode."""
        return self in {FailureKind.GOVERNANCE, FailureKind.STRUCTURAL}


class Level(str, Enum):
    ERROR = "error"
    WARNING = "warning"


@dataclass(frozen=True)
class Document:
    path: Path
    rel: str
    text: str

    def lines(self) -> list[str]:
        return self.text.splitlines()


@dataclass(frozen=True)
class Finding:
    level: Level
    code: str
    message: str
    document: str = ""
    line: int = 0
    remediation: str = ""

    @property
    def is_error(self) -> bool:
        return self.level is Level.ERROR

    def render(self) -> str:
        prefix = {Level.ERROR: "ERROR", Level.WARNING: "WARN"}[self.level]
        text = f"{prefix}: {self.message}"
        if self.remediation:
            text = f"{text} (fix: {self.remediation})"
        return text


def error(code: str, message: str, *, document: str = "", line: int = 0, remediation: str = "") -> Finding:
    return Finding(Level.ERROR, code, message, document, line, remediation)


def warning(code: str, message: str, *, document: str = "", line: int = 0) -> Finding:
    return Finding(Level.WARNING, code, message, document, line)


@dataclass(frozen=True)
class ContextCheck:
    identifier: str
    document: str
    line: int

    @property
    def location(self) -> str:
        return f"{self.document}:{self.line}"


@dataclass(frozen=True)
class RoutingReference:
    source: str
    target_path: str
    target_anchor: str | None
    keywords: tuple[str, ...]
    description: str = ""
    line: int = 0
    context_check: str | None = None


@dataclass(frozen=True)
class RoutingAnnotation:
    document: str
    line: int
    context_check: str | None
    keywords: tuple[str, ...]
    references: tuple[RoutingReference, ...]


@dataclass(frozen=True)
class VerificationTest:
    __test__ = False

    name: str
    command: str
    required: bool
    blocking: bool
    error_message: str
    source_document: str
    fix_hint: str | None = None
    depends_on: tuple[str, ...] = ()
    variables: tuple[str, ...] = ()
    description: str = ""
    context_check: str | None = None
    line: int = 0

    @property
    def key(self) -> str:
        return f"{self.source_document}::{self.name}"


@dataclass(frozen=True)
class VerificationAnnotation:
    document: str
    line: int
    context_check: str
    tests: tuple[VerificationTest, ...]


Annotation: TypeAlias = RoutingAnnotation | VerificationAnnotation


@dataclass(frozen=True)
class Extraction:
    """Everything the extractor found in one or more documents."""

    annotations: tuple[Annotation, ...] = ()
    context_checks: tuple[ContextCheck, ...] = ()
    findings: tuple[Finding, ...] = ()

    @property
    def routing(self) -> tuple[RoutingAnnotation, ...]:
        return tuple(a for a in self.annotations if isinstance(a, RoutingAnnotation))

    @property
    def verification(self) -> tuple[VerificationAnnotation, ...]:
        return tuple(a for a in self.annotations if isinstance(a, VerificationAnnotation))

    @property
    def references(self) -> tuple[RoutingReference, ...]:
        return tuple(ref for block in self.routing for ref in block.references)

    @property
    def tests(self) -> tuple[VerificationTest, ...]:
        return tuple(test for block in self.verification for test in block.tests)

    def merged(self, other: "Extraction") -> "Extraction":
        return Extraction(
            annotations=self.annotations + other.annotations,
            context_checks=self.context_checks + other.context_checks,
            findings=self.findings + other.findings,
        )


@dataclass(frozen=True)
class ExecutionResult:
    test: VerificationTest
    status: TestStatus
    stdout: str = ""
    stderr: str = ""
    exit_code: int | None = None
    reason: str | None = None
    kind: FailureKind | None = None
    command: str | None = None
    fix_hint: str | None = None
    duration_s: float = 0.0
