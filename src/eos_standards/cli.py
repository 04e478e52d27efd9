from __future__ import annotations

from functools import partial
import json
import os
from pathlib import Path
from typing import Callable, Mapping, Sequence

from pydantic import BaseModel
import typer

from eos_standards.command_policy import lint_commands
from eos_standards.config import (
    DEFAULT_TIMEOUT_SECONDS,
    StandardsLayout,
    standards_layout,
    variable_defaults,
    verification_defaults,
)
from eos_standards.exceptions import ConfigError, DependencyError, LexiconError
from eos_standards.executor import (
    DEFAULT_SHELL,
    ExecutorSettings,
    PreparedTest,
    RunCommandFn,
    execute,
    prepare_test,
    run_command,
)
from eos_standards.extract import extract_documents
from eos_standards.lexicon import Lexicon, check_keywords, load_lexicon
from eos_standards.loader import load_paths, load_tree, split_paths_arg
from eos_standards.model import Document, ExecutionResult, Extraction, Finding, error
from eos_standards.report import build_report, render_report
from eos_standards.routing_graph import validate_routing
from eos_standards.runtime.env_policy import (
    resolve_concurrency,
    resolve_mode,
    resolve_timeout_seconds,
)
from eos_standards.scheduler import schedule
from eos_standards.schema import run_report_dto, routing_report_dto, validation_report_dto
from eos_standards.variables import resolve_variables

app = typer.Typer(add_completion=False)
EchoFn = Callable[..., None]

_STDOUT_ALIAS = "-"


def _is_stdout_target(target: Path | None) -> bool:
    return target is not None and str(target) == _STDOUT_ALIAS


def _write_json(payload: BaseModel, target: Path | None, *, echo_fn: EchoFn = typer.echo) -> None:
    if target is None:
        return
    text = json.dumps(payload.model_dump(), indent=2, sort_keys=True)
    if _is_stdout_target(target):
        echo_fn(text)
        return
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(text + "\n", encoding="utf-8")


def _emit_findings(findings: Sequence[Finding], *, secho_fn: EchoFn = typer.secho) -> None:
    for finding in findings:
        color = typer.colors.RED if finding.is_error else typer.colors.YELLOW
        secho_fn(finding.render(), err=True, fg=color)


def _load_corpus(root: Path, standards_dir: Path | None) -> tuple[StandardsLayout, tuple[Document, ...]]:
    layout = standards_layout(root, standards_dir=standards_dir)
    return layout, load_tree(layout.standards_dir, root=root)


def _load_lexicon_checked(layout: StandardsLayout, findings: list[Finding]) -> Lexicon | None:
    try:
        return load_lexicon(layout.lexicon_path)
    except LexiconError as exc:
        findings.append(
            error(
                "lexicon-unavailable",
                str(exc),
                document=layout.relative(layout.lexicon_path),
                remediation="provide a lexicon with a non-empty precedence list",
            )
        )
        return None


def _keyword_findings(layout: StandardsLayout, extraction: Extraction) -> list[Finding]:
    findings: list[Finding] = []
    lexicon = _load_lexicon_checked(layout, findings)
    if lexicon is not None:
        findings.extend(
            check_keywords(
                extraction.routing,
                lexicon,
                lexicon_label=layout.relative(layout.lexicon_path),
            )
        )
    return findings


def run_validate(
    *,
    root: Path,
    standards_dir: Path | None = None,
    json_output: Path | None = None,
    echo_fn: EchoFn = typer.echo,
    secho_fn: EchoFn = typer.secho,
) -> int:
    try:
        layout, documents = _load_corpus(root, standards_dir)
    except ConfigError as exc:
        secho_fn(f"ERROR: {exc}", err=True, fg=typer.colors.RED)
        return 1
    extraction = extract_documents(documents)
    report = validate_routing(documents, extraction, layout=layout)
    extra = _keyword_findings(layout, extraction)
    findings = [*report.findings, *extra]
    _emit_findings(findings, secho_fn=secho_fn)
    _write_json(routing_report_dto(report, extra=extra), json_output, echo_fn=echo_fn)
    errors = [finding for finding in findings if finding.is_error]
    if errors:
        secho_fn(f"Validation failed with {len(errors)} error(s).", err=True, fg=typer.colors.RED)
        return 1
    if not _is_stdout_target(json_output):
        echo_fn(f"Validation passed ({len(documents)} documents, max depth {max(report.depths.values(), default=0)}).")
    return 0


def run_lint(
    *,
    root: Path,
    standards_dir: Path | None = None,
    json_output: Path | None = None,
    echo_fn: EchoFn = typer.echo,
    secho_fn: EchoFn = typer.secho,
) -> int:
    try:
        layout, documents = _load_corpus(root, standards_dir)
    except ConfigError as exc:
        secho_fn(f"ERROR: {exc}", err=True, fg=typer.colors.RED)
        return 1
    extraction = extract_documents(documents)
    findings = [*extraction.findings, *_keyword_findings(layout, extraction)]
    findings.extend(lint_commands(documents))
    _emit_findings(findings, secho_fn=secho_fn)
    _write_json(validation_report_dto(findings), json_output, echo_fn=echo_fn)
    if any(finding.is_error for finding in findings):
        return 1
    if not _is_stdout_target(json_output):
        echo_fn("Governance lint passed.")
    return 0


def _dry_run_line(key: str, prepared: PreparedTest | ExecutionResult) -> str:
    if isinstance(prepared, PreparedTest):
        return f"  {key}: {prepared.command}"
    return f"  {key}: NOT RUNNABLE ({prepared.reason})"


def run_verify(
    *,
    root: Path,
    files: str,
    mode: str | None = None,
    timeout: float | None = None,
    concurrency: int | None = None,
    json_output: Path | None = None,
    dry_run: bool = False,
    verbose: bool = False,
    run_command_fn: RunCommandFn = run_command,
    environ: Mapping[str, str] | None = None,
    echo_fn: EchoFn = typer.echo,
    secho_fn: EchoFn = typer.secho,
) -> int:
    """Extract, schedule and execute verification tests for ``files``.

    Invalid settings raise ValueError; everything else is folded into the
    report and the returned exit code.
    """
    env = os.environ if environ is None else environ
    section = verification_defaults(root=root)
    resolved_mode = resolve_mode(mode, configured=section.get("mode"), environ=env)
    settings = ExecutorSettings(
        mode=resolved_mode,
        timeout_seconds=resolve_timeout_seconds(
            timeout,
            configured=section.get("timeout_seconds"),
            default=DEFAULT_TIMEOUT_SECONDS,
            environ=env,
        ),
        concurrency=resolve_concurrency(
            concurrency,
            configured=section.get("concurrency"),
            environ=env,
        ),
        cwd=root,
        shell=str(section["shell"]) if isinstance(section.get("shell"), str) else DEFAULT_SHELL,
    )
    report_echo = partial(echo_fn, err=True) if _is_stdout_target(json_output) else echo_fn

    documents, load_findings = load_paths(split_paths_arg(files), root=root)
    extraction = extract_documents(documents)
    findings = [*load_findings, *extraction.findings]
    _emit_findings(findings, secho_fn=secho_fn)
    if not extraction.tests:
        report_echo("No verification tests found.")
    try:
        plan = schedule(extraction.tests)
    except DependencyError as exc:
        secho_fn(f"Dependency resolution error: {exc}", err=True, fg=typer.colors.RED)
        return 1
    variables = resolve_variables(root, environ=env, configured=variable_defaults(root=root))

    if dry_run:
        not_runnable = 0
        for index, wave in enumerate(plan.waves(), start=1):
            report_echo(f"Wave {index}:")
            for key in wave:
                prepared = prepare_test(plan.tests[key], variables, environ=env)
                if isinstance(prepared, ExecutionResult):
                    not_runnable += 1
                report_echo(_dry_run_line(key, prepared))
        return 1 if not_runnable or any(finding.is_error for finding in findings) else 0

    results = execute(
        plan,
        variables,
        settings=settings,
        run_command_fn=run_command_fn,
        print_fn=report_echo if verbose else None,
        environ=env,
    )
    report = build_report(resolved_mode, results, findings=findings)
    for line in render_report(report):
        report_echo(line)
    _write_json(run_report_dto(report), json_output, echo_fn=echo_fn)
    return report.exit_code


def run_route(
    *,
    root: Path,
    task: str,
    standards_dir: Path | None = None,
    echo_fn: EchoFn = typer.echo,
    secho_fn: EchoFn = typer.secho,
) -> int:
    try:
        layout, documents = _load_corpus(root, standards_dir)
        lexicon = load_lexicon(layout.lexicon_path)
    except (ConfigError, LexiconError) as exc:
        secho_fn(f"ERROR: {exc}", err=True, fg=typer.colors.RED)
        return 1
    extraction = extract_documents(documents)
    matches = lexicon.route(split_paths_arg(task), extraction.references)
    if not matches:
        echo_fn("No routes matched.")
        return 0
    for reference in matches:
        target = reference.target_path
        if reference.target_anchor:
            target = f"{target}#{reference.target_anchor}"
        echo_fn(f"{target}\t{reference.description} (from {reference.source}:{reference.line})")
    return 0


@app.command("validate")
def validate(
    root: Path = typer.Option(Path("."), "--root"),
    standards_dir: Path | None = typer.Option(None, "--standards-dir"),
    json_output: Path | None = typer.Option(None, "--json-output", help="JSON report path (- for stdout)."),
) -> None:
    """Validate the routing graph of the standards corpus."""
    raise typer.Exit(code=run_validate(root=root, standards_dir=standards_dir, json_output=json_output))


@app.command("lint")
def lint(
    root: Path = typer.Option(Path("."), "--root"),
    standards_dir: Path | None = typer.Option(None, "--standards-dir"),
    json_output: Path | None = typer.Option(None, "--json-output", help="JSON report path (- for stdout)."),
) -> None:
    """Check routing keywords against the lexicon and TEST commands against the command policy."""
    raise typer.Exit(code=run_lint(root=root, standards_dir=standards_dir, json_output=json_output))


@app.command("verify")
def verify(
    files: str | None = typer.Option(None, "--files", help="Comma-separated documents to verify."),
    mode: str | None = typer.Option(None, "--mode", help="blocking|advisory"),
    timeout: float | None = typer.Option(None, "--timeout", help="Per-test timeout in seconds."),
    concurrency: int | None = typer.Option(None, "--concurrency"),
    root: Path = typer.Option(Path("."), "--root"),
    json_output: Path | None = typer.Option(None, "--json-output", help="JSON report path (- for stdout)."),
    dry_run: bool = typer.Option(False, "--dry-run", help="Print the schedule without running anything."),
    verbose: bool = typer.Option(False, "--verbose", help="Print each test transition."),
) -> None:
    """Run the verification tests embedded in the given documents."""
    if not files or not split_paths_arg(files):
        raise typer.BadParameter("--files is required (comma-separated document paths).")
    try:
        exit_code = run_verify(
            root=root,
            files=files,
            mode=mode,
            timeout=timeout,
            concurrency=concurrency,
            json_output=json_output,
            dry_run=dry_run,
            verbose=verbose,
        )
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc
    raise typer.Exit(code=exit_code)


@app.command("route")
def route(
    task: str = typer.Option(..., "--task", help="Comma-separated task keywords."),
    root: Path = typer.Option(Path("."), "--root"),
    standards_dir: Path | None = typer.Option(None, "--standards-dir"),
) -> None:
    """List the standards a task should consult, in precedence order."""
    raise typer.Exit(code=run_route(root=root, task=task, standards_dir=standards_dir))


def main() -> None:
    app()


if __name__ == "__main__":
    main()
