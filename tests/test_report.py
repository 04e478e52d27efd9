from __future__ import annotations

from eos_standards.model import (
    ExecutionResult,
    FailureKind,
    Mode,
    TestStatus,
    VerificationTest,
    error,
)
from eos_standards.report import build_report, render_report


def _test(name: str, *, blocking: bool = True) -> VerificationTest:
    return VerificationTest(
        name=name,
        command="true",
        required=True,
        blocking=blocking,
        error_message=f"{name} failed",
        source_document="docs/standards/testing.md",
    )


def _passed(name: str) -> ExecutionResult:
    return ExecutionResult(test=_test(name), status=TestStatus.PASSED, command="true", exit_code=0)


def _failed(name: str, *, kind: FailureKind = FailureKind.EXECUTION, blocking: bool = True) -> ExecutionResult:
    return ExecutionResult(
        test=_test(name, blocking=blocking),
        status=TestStatus.FAILED,
        reason=f"{name} failed",
        kind=kind,
        command="grep -q lines jest.config.js",
        fix_hint="Raise coverage to 98",
        exit_code=1,
        stderr="line one\nline two\n",
    )


def _skipped(name: str) -> ExecutionResult:
    return ExecutionResult(test=_test(name), status=TestStatus.SKIPPED, reason="Dependency 'x' did not pass (failed)")


def test_counts_and_halt_in_blocking_mode() -> None:
    report = build_report(Mode.BLOCKING, [_passed("a"), _failed("b"), _skipped("c")])
    assert (report.passed, report.failed, report.skipped) == (1, 1, 1)
    assert report.should_halt
    assert report.exit_code == 1


def test_non_blocking_failure_does_not_halt() -> None:
    report = build_report(Mode.BLOCKING, [_passed("a"), _failed("b", blocking=False)])
    assert not report.should_halt
    assert report.exit_code == 0


def test_advisory_execution_failures_exit_zero() -> None:
    report = build_report(Mode.ADVISORY, [_failed("a"), _failed("b", kind=FailureKind.TIMEOUT)])
    assert not report.should_halt
    assert report.exit_code == 0


def test_governance_and_structural_failures_are_never_downgraded() -> None:
    governance = build_report(Mode.ADVISORY, [_failed("a", kind=FailureKind.GOVERNANCE)])
    assert governance.exit_code == 1
    structural = build_report(Mode.ADVISORY, [_failed("a", kind=FailureKind.STRUCTURAL)])
    assert structural.exit_code == 1
    findings = build_report(
        Mode.ADVISORY,
        [_passed("a")],
        findings=[error("malformed-verification-block", "bad block", document="docs/standards/x.md")],
    )
    assert findings.exit_code == 1


def test_render_lists_failures_with_fix_and_command() -> None:
    lines = render_report(build_report(Mode.BLOCKING, [_passed("a"), _failed("coverage"), _skipped("later")]))
    assert lines[0] == "VERIFICATION FAILURE - BLOCKING MODE"
    assert "Failed: 1" in lines
    start = lines.index("=== FAILED TESTS ===")
    assert lines[start + 1] == "- coverage (from docs/standards/testing.md)"
    assert lines[start + 2] == "   Error: coverage failed"
    assert lines[start + 3] == "   Fix: Raise coverage to 98"
    assert lines[start + 4] == "   Command: grep -q lines jest.config.js"
    assert "   | line two" in lines
    assert "=== SKIPPED TESTS ===" in lines


def test_render_hides_rejected_commands() -> None:
    lines = render_report(build_report(Mode.ADVISORY, [_failed("fetch", kind=FailureKind.GOVERNANCE)]))
    assert lines[0] == "VERIFICATION RESULTS - ADVISORY MODE"
    assert "   Command rejected before execution." in lines
    assert not any(line.startswith("   Command: ") for line in lines)


def test_render_includes_structural_errors() -> None:
    report = build_report(
        Mode.BLOCKING,
        [],
        findings=[error("malformed-verification-block", "Verification block 'v' is broken")],
    )
    lines = render_report(report)
    assert "=== STRUCTURAL ERRORS ===" in lines
    assert "ERROR: Verification block 'v' is broken" in lines
