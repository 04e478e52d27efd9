from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from eos_standards.model import (
    ExecutionResult,
    FailureKind,
    Finding,
    Mode,
    TestStatus,
)

_OUTPUT_TAIL_LINES = 5


@dataclass(frozen=True)
class RunReport:
    """Terminal artifact of one verification run."""

    mode: Mode
    results: tuple[ExecutionResult, ...]
    findings: tuple[Finding, ...] = ()

    def with_status(self, status: TestStatus) -> tuple[ExecutionResult, ...]:
        return tuple(result for result in self.results if result.status is status)

    @property
    def passed(self) -> int:
        return len(self.with_status(TestStatus.PASSED))

    @property
    def failed(self) -> int:
        return len(self.with_status(TestStatus.FAILED))

    @property
    def skipped(self) -> int:
        return len(self.with_status(TestStatus.SKIPPED))

    @property
    def failures(self) -> tuple[ExecutionResult, ...]:
        return self.with_status(TestStatus.FAILED)

    @property
    def should_halt(self) -> bool:
        return self.mode is Mode.BLOCKING and any(result.test.blocking for result in self.failures)

    @property
    def hard_failures(self) -> tuple[ExecutionResult, ...]:
        return tuple(
            result
            for result in self.failures
            if result.kind is not None and result.kind.hard
        )

    @property
    def errors(self) -> tuple[Finding, ...]:
        return tuple(finding for finding in self.findings if finding.is_error)

    @property
    def exit_code(self) -> int:
        if self.should_halt or self.hard_failures or self.errors:
            return 1
        return 0


def build_report(
    mode: Mode,
    results: Iterable[ExecutionResult],
    *,
    findings: Iterable[Finding] = (),
) -> RunReport:
    return RunReport(mode=mode, results=tuple(results), findings=tuple(findings))


def _header(report: RunReport) -> str:
    if report.should_halt:
        return "VERIFICATION FAILURE - BLOCKING MODE"
    if report.mode is Mode.ADVISORY:
        return "VERIFICATION RESULTS - ADVISORY MODE"
    return "VERIFICATION RESULTS - BLOCKING MODE"


def _output_tail(result: ExecutionResult) -> list[str]:
    text = result.stderr.strip() or result.stdout.strip()
    if not text:
        return []
    return text.splitlines()[-_OUTPUT_TAIL_LINES:]


def _failure_lines(result: ExecutionResult) -> list[str]:
    test = result.test
    lines = [f"- {test.name} (from {test.source_document})"]
    lines.append(f"   Error: {result.reason or test.error_message}")
    if result.fix_hint:
        lines.append(f"   Fix: {result.fix_hint}")
    if result.kind is FailureKind.GOVERNANCE:
        lines.append("   Command rejected before execution.")
    elif result.command:
        lines.append(f"   Command: {result.command}")
    for output in _output_tail(result):
        lines.append(f"   | {output}")
    return lines


def render_report(report: RunReport) -> list[str]:
    """Human-readable summary, one string per line."""
    lines = [_header(report), ""]
    lines.append(f"Passed: {report.passed}")
    lines.append(f"Failed: {report.failed}")
    lines.append(f"Skipped: {report.skipped}")
    if report.errors:
        lines.append(f"Structural errors: {len(report.errors)}")
    if report.failures:
        lines.extend(["", "=== FAILED TESTS ==="])
        for result in report.failures:
            lines.extend(_failure_lines(result))
    skipped = report.with_status(TestStatus.SKIPPED)
    if skipped:
        lines.extend(["", "=== SKIPPED TESTS ==="])
        for result in skipped:
            lines.append(f"- {result.test.name} (from {result.test.source_document}): {result.reason}")
    if report.errors:
        lines.extend(["", "=== STRUCTURAL ERRORS ==="])
        lines.extend(finding.render() for finding in report.errors)
    if report.should_halt:
        lines.extend(["", "Execution halted: fix the blocking failures above and re-run."])
    elif report.mode is Mode.ADVISORY and report.failures:
        lines.extend(["", "Advisory mode: failures reported, execution not halted."])
    return lines
