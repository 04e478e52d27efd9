from __future__ import annotations

from typing import Dict, List, Optional, Sequence

from pydantic import BaseModel

from eos_standards.model import ExecutionResult, Finding
from eos_standards.report import RunReport
from eos_standards.routing_graph import RoutingReport


class FindingDTO(BaseModel):
    level: str
    code: str
    message: str
    document: str = ""
    line: int = 0
    remediation: str = ""


class ValidationReportDTO(BaseModel):
    ok: bool
    errors: List[FindingDTO] = []
    warnings: List[FindingDTO] = []
    depths: Dict[str, int] = {}


class ExecutionResultDTO(BaseModel):
    key: str
    name: str
    source_document: str
    status: str
    blocking: bool
    required: bool
    kind: Optional[str] = None
    reason: Optional[str] = None
    command: Optional[str] = None
    fix_hint: Optional[str] = None
    exit_code: Optional[int] = None
    stdout: str = ""
    stderr: str = ""
    duration_s: float = 0.0


class RunReportDTO(BaseModel):
    mode: str
    passed: int
    failed: int
    skipped: int
    should_halt: bool
    exit_code: int
    results: List[ExecutionResultDTO] = []
    errors: List[FindingDTO] = []


def finding_dto(finding: Finding) -> FindingDTO:
    return FindingDTO(
        level=finding.level.value,
        code=finding.code,
        message=finding.message,
        document=finding.document,
        line=finding.line,
        remediation=finding.remediation,
    )


def validation_report_dto(
    findings: Sequence[Finding],
    *,
    depths: Optional[Dict[str, int]] = None,
) -> ValidationReportDTO:
    errors = [finding_dto(finding) for finding in findings if finding.is_error]
    return ValidationReportDTO(
        ok=not errors,
        errors=errors,
        warnings=[finding_dto(finding) for finding in findings if not finding.is_error],
        depths=dict(depths or {}) if not errors else {},
    )


def routing_report_dto(report: RoutingReport, *, extra: Sequence[Finding] = ()) -> ValidationReportDTO:
    return validation_report_dto([*report.findings, *extra], depths=dict(report.depths))


def execution_result_dto(result: ExecutionResult) -> ExecutionResultDTO:
    test = result.test
    return ExecutionResultDTO(
        key=test.key,
        name=test.name,
        source_document=test.source_document,
        status=result.status.value,
        blocking=test.blocking,
        required=test.required,
        kind=result.kind.value if result.kind is not None else None,
        reason=result.reason,
        command=result.command,
        fix_hint=result.fix_hint,
        exit_code=result.exit_code,
        stdout=result.stdout,
        stderr=result.stderr,
        duration_s=round(result.duration_s, 3),
    )


def run_report_dto(report: RunReport) -> RunReportDTO:
    return RunReportDTO(
        mode=report.mode.value,
        passed=report.passed,
        failed=report.failed,
        skipped=report.skipped,
        should_halt=report.should_halt,
        exit_code=report.exit_code,
        results=[execution_result_dto(result) for result in report.results],
        errors=[finding_dto(finding) for finding in report.errors],
    )
