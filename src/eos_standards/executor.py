"""Verification test execution.

Per test: ``pending -> running -> {passed, failed, skipped}``. A test is only
dispatched once every dependency is terminal; a dependency that did not pass
skips its dependents. Ready tests run concurrently on a bounded thread pool.
In blocking mode the first failed ``blocking`` test stops further dispatch;
tests already running are allowed to finish.
"""

from __future__ import annotations

import concurrent.futures
from dataclasses import dataclass
import os
from pathlib import Path
import signal
import subprocess
import time
from typing import Callable, Mapping

from eos_standards.command_policy import evaluate_command
from eos_standards.config import DEFAULT_TIMEOUT_SECONDS
from eos_standards.exceptions import DependencyError, UnresolvedVariableError
from eos_standards.model import (
    ExecutionResult,
    FailureKind,
    Mode,
    TestStatus,
    VerificationTest,
)
from eos_standards.scheduler import Schedule
from eos_standards.variables import VariableSet

DEFAULT_SHELL = "/bin/bash" if Path("/bin/bash").exists() else None


@dataclass(frozen=True)
class CommandOutcome:
    exit_code: int | None
    stdout: str
    stderr: str
    timed_out: bool = False
    duration_s: float = 0.0


@dataclass(frozen=True)
class ExecutorSettings:
    mode: Mode = Mode.BLOCKING
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    concurrency: int = 1
    cwd: Path | None = None
    shell: str | None = DEFAULT_SHELL


@dataclass(frozen=True)
class PreparedTest:
    test: VerificationTest
    command: str
    error_message: str
    fix_hint: str | None


RunCommandFn = Callable[..., CommandOutcome]


def _kill_process_group(proc: subprocess.Popen) -> None:
    try:
        os.killpg(proc.pid, signal.SIGKILL)
    except (AttributeError, ProcessLookupError, PermissionError):
        proc.kill()


def run_command(
    command: str,
    *,
    timeout: float,
    cwd: Path | None = None,
    shell: str | None = DEFAULT_SHELL,
    popen_fn: Callable[..., subprocess.Popen] = subprocess.Popen,
    monotonic_fn: Callable[[], float] = time.monotonic,
) -> CommandOutcome:
    started = monotonic_fn()
    try:
        proc = popen_fn(
            command,
            shell=True,
            executable=shell,
            cwd=cwd,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            encoding="utf-8",
            errors="replace",
            start_new_session=True,
        )
    except OSError as exc:
        return CommandOutcome(
            exit_code=None,
            stdout="",
            stderr=str(exc),
            duration_s=max(0.0, monotonic_fn() - started),
        )
    try:
        stdout, stderr = proc.communicate(timeout=timeout)
    except subprocess.TimeoutExpired:
        _kill_process_group(proc)
        stdout, stderr = proc.communicate()
        return CommandOutcome(
            exit_code=None,
            stdout=stdout or "",
            stderr=stderr or "",
            timed_out=True,
            duration_s=max(0.0, monotonic_fn() - started),
        )
    return CommandOutcome(
        exit_code=proc.returncode,
        stdout=stdout or "",
        stderr=stderr or "",
        duration_s=max(0.0, monotonic_fn() - started),
    )


def _best_effort_hint(
    test: VerificationTest,
    variables: VariableSet,
    environ: Mapping[str, str] | None,
) -> str | None:
    if not test.fix_hint:
        return None
    try:
        return variables.substitute(test.fix_hint, environ=environ)
    except UnresolvedVariableError:
        return test.fix_hint


def _structural(test: VerificationTest, reason: str, *, fix_hint: str | None) -> ExecutionResult:
    return ExecutionResult(
        test=test,
        status=TestStatus.FAILED,
        reason=reason,
        kind=FailureKind.STRUCTURAL,
        fix_hint=fix_hint,
    )


def prepare_test(
    test: VerificationTest,
    variables: VariableSet,
    *,
    environ: Mapping[str, str] | None = None,
) -> PreparedTest | ExecutionResult:
    """Substitute variables and apply the command policy, never spawning anything.

    Returns a failed result when the test cannot be run.
    """
    fix_hint = _best_effort_hint(test, variables, environ)
    if not test.command.strip():
        return _structural(test, "No TEST command", fix_hint=fix_hint)
    missing = variables.unresolved(test.variables, environ=environ)
    if missing:
        return _structural(test, str(UnresolvedVariableError(missing)), fix_hint=fix_hint)
    try:
        command = variables.substitute(test.command, environ=environ)
        error_message = variables.substitute(test.error_message, environ=environ)
        if test.fix_hint:
            fix_hint = variables.substitute(test.fix_hint, environ=environ)
    except UnresolvedVariableError as exc:
        return _structural(test, str(exc), fix_hint=fix_hint)
    decision = evaluate_command(command)
    if not decision.allowed:
        return ExecutionResult(
            test=test,
            status=TestStatus.FAILED,
            reason=decision.reason,
            kind=FailureKind.GOVERNANCE,
            command=command,
            fix_hint=fix_hint,
        )
    return PreparedTest(test=test, command=command, error_message=error_message, fix_hint=fix_hint)


def _finish(prepared: PreparedTest, outcome: CommandOutcome, *, timeout: float) -> ExecutionResult:
    common = dict(
        test=prepared.test,
        stdout=outcome.stdout,
        stderr=outcome.stderr,
        exit_code=outcome.exit_code,
        command=prepared.command,
        fix_hint=prepared.fix_hint,
        duration_s=outcome.duration_s,
    )
    if outcome.timed_out:
        return ExecutionResult(
            status=TestStatus.FAILED,
            reason=f"Timed out after {timeout:g}s: {prepared.error_message}",
            kind=FailureKind.TIMEOUT,
            **common,
        )
    if outcome.exit_code == 0:
        return ExecutionResult(status=TestStatus.PASSED, **common)
    return ExecutionResult(
        status=TestStatus.FAILED,
        reason=prepared.error_message,
        kind=FailureKind.EXECUTION,
        **common,
    )


def _skipped(test: VerificationTest, reason: str) -> ExecutionResult:
    return ExecutionResult(test=test, status=TestStatus.SKIPPED, reason=reason)


def execute(
    plan: Schedule,
    variables: VariableSet,
    *,
    settings: ExecutorSettings,
    run_command_fn: RunCommandFn = run_command,
    print_fn: Callable[[str], None] | None = None,
    environ: Mapping[str, str] | None = None,
) -> tuple[ExecutionResult, ...]:
    """Run every scheduled test and return results in schedule order."""
    status: dict[str, TestStatus] = {key: TestStatus.PENDING for key in plan.order}
    results: dict[str, ExecutionResult] = {}
    pending: list[str] = list(plan.order)
    running: dict[concurrent.futures.Future[CommandOutcome], PreparedTest] = {}
    halted_by: list[str] = []
    limit = max(1, settings.concurrency)

    def record(key: str, result: ExecutionResult) -> None:
        status[key] = result.status
        results[key] = result
        if print_fn is not None:
            print_fn(f"{result.status.value}: {key}")
        if (
            settings.mode is Mode.BLOCKING
            and result.status is TestStatus.FAILED
            and result.test.blocking
            and not halted_by
        ):
            halted_by.append(key)

    with concurrent.futures.ThreadPoolExecutor(max_workers=limit) as pool:
        while pending or running:
            progressed = True
            while progressed and pending:
                progressed = False
                if halted_by:
                    for key in pending:
                        record(key, _skipped(plan.tests[key], f"Not run: halted after blocking failure in {halted_by[0]}"))
                    pending.clear()
                    break
                for key in list(pending):
                    dependencies = plan.dependencies[key]
                    if any(not status[dep].terminal for dep in dependencies):
                        continue
                    blocked = [dep for dep in dependencies if status[dep] is not TestStatus.PASSED]
                    if not blocked and len(running) >= limit:
                        continue
                    pending.remove(key)
                    progressed = True
                    test = plan.tests[key]
                    if blocked:
                        record(
                            key,
                            _skipped(test, f"Dependency '{blocked[0]}' did not pass ({status[blocked[0]].value})"),
                        )
                        break
                    prepared = prepare_test(test, variables, environ=environ)
                    if isinstance(prepared, ExecutionResult):
                        record(key, prepared)
                        break
                    status[key] = TestStatus.RUNNING
                    if print_fn is not None:
                        print_fn(f"running: {key}")
                    future = pool.submit(
                        run_command_fn,
                        prepared.command,
                        timeout=settings.timeout_seconds,
                        cwd=settings.cwd,
                        shell=settings.shell,
                    )
                    running[future] = prepared
            if not running:
                if pending:
                    raise DependencyError(f"Unschedulable tests remain: {', '.join(pending)}")
                break
            done, _ = concurrent.futures.wait(
                running,
                return_when=concurrent.futures.FIRST_COMPLETED,
            )
            for future in done:
                prepared = running.pop(future)
                key = prepared.test.key
                try:
                    outcome = future.result()
                except Exception as exc:
                    outcome = CommandOutcome(exit_code=None, stdout="", stderr=f"runner crashed: {exc}")
                record(key, _finish(prepared, outcome, timeout=settings.timeout_seconds))
    return tuple(results[key] for key in plan.order)
