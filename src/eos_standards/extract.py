"""Annotation extraction for standards documents.

Two block shapes are recognised:

* routing blocks, ``<conditional-block task-condition="a|b" context-check="ID">``
  wrapping one or more ``REQUEST: "<description> from <path>[#anchor]"`` lines;
* verification blocks, ``<verification-block context-check="ID">`` wrapping
  ``<test name="...">`` records made of ``FIELD: value`` lines.

Everything else in a document is prose and is ignored. Malformed blocks are
reported as error findings and dropped; extraction of the remaining blocks and
documents continues.
"""

from __future__ import annotations

from dataclasses import dataclass
import re
from typing import Iterable

import yaml

from eos_standards.exceptions import ExtractionError
from eos_standards.model import (
    Annotation,
    ContextCheck,
    Document,
    Extraction,
    Finding,
    RoutingAnnotation,
    RoutingReference,
    VerificationAnnotation,
    VerificationTest,
    error,
)

_CONTEXT_CHECK_RE = re.compile(r'context-check\s*=\s*"([^"]+)"')
_ATTR_RE = re.compile(r'([\w-]+)\s*=\s*"([^"]*)"')
_CONDITIONAL_TAG = "conditional-block"
_VERIFICATION_TAG = "verification-block"
_OPEN_TAG_RES = {
    tag: re.compile(rf"<{tag}\b(?P<attrs>[^>]*)>")
    for tag in (_CONDITIONAL_TAG, _VERIFICATION_TAG)
}
_TEST_RE = re.compile(r'<test\s+name="(?P<name>[^"]+)"\s*>(?P<body>.*?)</test>', re.DOTALL)
_TEST_OPEN_RE = re.compile(r"<test\b")
_REQUEST_RE = re.compile(r'REQUEST:\s*"(?P<payload>[^"\n]*)"')
_REQUEST_PAYLOAD_RE = re.compile(r"^(?P<description>.*\S)\s+from\s+(?P<target>\S+)\s*$")
_HEADING_RE = re.compile(r"^(#{1,6})\s+(.+)$")
_TRUE_RE = re.compile(r"\btrue\b", re.IGNORECASE)

_TEST_FIELDS = (
    "TEST",
    "REQUIRED",
    "BLOCKING",
    "ERROR",
    "FIX_COMMAND",
    "DESCRIPTION",
    "DEPENDS_ON",
    "VARIABLES",
)
_FIELD_RES = {
    label: re.compile(rf"^[ \t]*{label}:[ \t]*(.*?)[ \t]*$", re.MULTILINE)
    for label in _TEST_FIELDS
}

DEFAULT_ERROR_MESSAGE = "Test failed"


def line_of(text: str, offset: int) -> int:
    return text.count("\n", 0, offset) + 1


def headings(text: str) -> list[str]:
    found: list[str] = []
    for line in text.splitlines():
        match = _HEADING_RE.match(line.strip())
        if match:
            found.append(match.group(2).strip())
    return found


def slugify(heading: str) -> str:
    slug = heading.lower()
    slug = re.sub(r"[/_]", "-", slug)
    slug = re.sub(r"[`*~]", "", slug)
    slug = re.sub(r"[^a-z0-9\s-]", "", slug)
    slug = re.sub(r"\s+", "-", slug.strip())
    return re.sub(r"-+", "-", slug)


def heading_slugs(text: str) -> set[str]:
    return {slugify(heading) for heading in headings(text)}


def _attrs(raw: str) -> dict[str, str]:
    return {key: value for key, value in _ATTR_RE.findall(raw)}


def _unquote(raw: str) -> str:
    if len(raw) >= 2 and raw.startswith('"') and raw.endswith('"'):
        return raw[1:-1]
    return raw


def _field(body: str, label: str) -> str | None:
    match = _FIELD_RES[label].search(body)
    if match is None:
        return None
    return _unquote(match.group(1).strip())


def _parse_bool(raw: str | None, *, default: bool) -> bool:
    if raw is None or not raw.strip():
        return default
    return bool(_TRUE_RE.search(raw))


def _parse_list(raw: str | None, *, label: str, test: str) -> tuple[str, ...]:
    if raw is None or not raw.strip():
        return ()
    try:
        value = yaml.safe_load(raw)
    except yaml.YAMLError as exc:
        raise ExtractionError(f"test '{test}' has malformed {label}: {raw}") from exc
    if not isinstance(value, list) or any(not isinstance(item, str) for item in value):
        raise ExtractionError(f"test '{test}' has malformed {label}: expected a list of names, got {raw}")
    return tuple(item.strip() for item in value if item.strip())


def parse_request(payload: str) -> tuple[str, str, str | None] | None:
    """Split a REQUEST payload into (description, path, anchor).

    Returns None when the payload does not follow the
    ``<description> from <path>[#anchor]`` phrasing.
    """
    match = _REQUEST_PAYLOAD_RE.match(payload.strip())
    if match is None:
        return None
    target = match.group("target")
    path, _, anchor = target.partition("#")
    if not path:
        return None
    return match.group("description"), path, anchor or None


@dataclass(frozen=True)
class _Block:
    start: int
    attrs: str
    body_start: int
    body_end: int
    end: int
    closed: bool

    @property
    def span(self) -> tuple[int, int]:
        return self.start, self.end


def _scan_blocks(text: str, tag: str) -> list[_Block]:
    """Every ``<tag ...>`` open tag, its body cut at the close tag or the next open tag.

    A block whose body reaches the next open tag (or the end of the text)
    before its close tag is returned with ``closed=False``.
    """
    close_tag = f"</{tag}>"
    opens = list(_OPEN_TAG_RES[tag].finditer(text))
    blocks: list[_Block] = []
    for index, match in enumerate(opens):
        limit = opens[index + 1].start() if index + 1 < len(opens) else len(text)
        close_at = text.find(close_tag, match.end(), limit)
        closed = close_at != -1
        blocks.append(
            _Block(
                start=match.start(),
                attrs=match.group("attrs"),
                body_start=match.end(),
                body_end=close_at if closed else limit,
                end=close_at + len(close_tag) if closed else limit,
                closed=closed,
            )
        )
    return blocks


def _inside(offset: int, spans: Iterable[tuple[int, int]]) -> bool:
    return any(start <= offset < end for start, end in spans)


def _references(
    document: Document,
    body: str,
    *,
    body_offset: int,
    keywords: tuple[str, ...],
    context_check: str | None,
    findings: list[Finding],
    skip_spans: Iterable[tuple[int, int]] = (),
) -> list[RoutingReference]:
    spans = list(skip_spans)
    references: list[RoutingReference] = []
    for match in _REQUEST_RE.finditer(body):
        if _inside(body_offset + match.start(), spans):
            continue
        payload = match.group("payload")
        line = line_of(document.text, body_offset + match.start())
        parsed = parse_request(payload)
        if parsed is None:
            findings.append(
                error(
                    "request-phrasing",
                    f"Non-conformant REQUEST phrasing in {document.rel}:{line}: "
                    f"\"{payload}\" (missing ' from <path>')",
                    document=document.rel,
                    line=line,
                    remediation='use REQUEST: "<description> from <path>[#anchor]"',
                )
            )
            continue
        description, path, anchor = parsed
        if "[" in path or (anchor is not None and "[" in anchor):
            # Template placeholder such as `from [category]/[file].md`.
            continue
        references.append(
            RoutingReference(
                source=document.rel,
                target_path=path,
                target_anchor=anchor,
                keywords=keywords,
                description=description,
                line=line,
                context_check=context_check,
            )
        )
    return references


def _unclosed(document: Document, tag: str, line: int) -> Finding:
    return error(
        "unclosed-block",
        f"Unclosed <{tag}> in {document.rel}:{line}",
        document=document.rel,
        line=line,
        remediation=f"close the block with </{tag}> before the next <{tag}>",
    )


def _routing_annotations(document: Document, findings: list[Finding]) -> list[RoutingAnnotation]:
    annotations: list[RoutingAnnotation] = []
    blocks = _scan_blocks(document.text, _CONDITIONAL_TAG)
    for block in blocks:
        attrs = _attrs(block.attrs)
        line = line_of(document.text, block.start)
        if not block.closed:
            findings.append(_unclosed(document, _CONDITIONAL_TAG, line))
        condition = attrs.get("task-condition")
        if condition is None:
            findings.append(
                error(
                    "missing-task-condition",
                    f"<conditional-block> without task-condition in {document.rel}:{line}",
                    document=document.rel,
                    line=line,
                )
            )
            continue
        keywords = tuple(
            token.strip().lower() for token in condition.split("|") if token.strip()
        )
        context_check = attrs.get("context-check")
        # Keywords of an unclosed block are still checked; its requests are not.
        references = (
            _references(
                document,
                document.text[block.body_start:block.body_end],
                body_offset=block.body_start,
                keywords=keywords,
                context_check=context_check,
                findings=findings,
            )
            if block.closed
            else []
        )
        annotations.append(
            RoutingAnnotation(
                document=document.rel,
                line=line,
                context_check=context_check,
                keywords=keywords,
                references=tuple(references),
            )
        )
    stray = _references(
        document,
        document.text,
        body_offset=0,
        keywords=(),
        context_check=None,
        findings=findings,
        skip_spans=[block.span for block in blocks],
    )
    if stray:
        annotations.append(
            RoutingAnnotation(
                document=document.rel,
                line=stray[0].line,
                context_check=None,
                keywords=(),
                references=tuple(stray),
            )
        )
    return annotations


def _verification_test(
    document: Document,
    name: str,
    body: str,
    *,
    context_check: str,
    line: int,
) -> VerificationTest:
    required = _parse_bool(_field(body, "REQUIRED"), default=True)
    return VerificationTest(
        name=name,
        command=_field(body, "TEST") or "",
        required=required,
        # An unspecified BLOCKING inherits REQUIRED.
        blocking=_parse_bool(_field(body, "BLOCKING"), default=required),
        error_message=_field(body, "ERROR") or DEFAULT_ERROR_MESSAGE,
        fix_hint=_field(body, "FIX_COMMAND") or None,
        depends_on=_parse_list(_field(body, "DEPENDS_ON"), label="DEPENDS_ON", test=name),
        variables=_parse_list(_field(body, "VARIABLES"), label="VARIABLES", test=name),
        description=_field(body, "DESCRIPTION") or "",
        source_document=document.rel,
        context_check=context_check,
        line=line,
    )


def _verification_annotations(document: Document, findings: list[Finding]) -> list[VerificationAnnotation]:
    annotations: list[VerificationAnnotation] = []
    names_in_document: set[str] = set()
    for block in _scan_blocks(document.text, _VERIFICATION_TAG):
        line = line_of(document.text, block.start)
        if not block.closed:
            findings.append(_unclosed(document, _VERIFICATION_TAG, line))
            continue
        attrs = _attrs(block.attrs)
        context_check = attrs.get("context-check")
        if not context_check:
            findings.append(
                error(
                    "missing-context-check",
                    f"<verification-block> without context-check in {document.rel}:{line}",
                    document=document.rel,
                    line=line,
                )
            )
            continue
        body_offset = block.body_start
        body = document.text[block.body_start:block.body_end]
        test_matches = list(_TEST_RE.finditer(body))
        tests: list[VerificationTest] = []
        try:
            if len(_TEST_OPEN_RE.findall(body)) != len(test_matches):
                raise ExtractionError("unclosed <test> record")
            for test_match in test_matches:
                name = test_match.group("name").strip()
                if name in names_in_document or any(test.name == name for test in tests):
                    raise ExtractionError(f"duplicate test name '{name}'")
                tests.append(
                    _verification_test(
                        document,
                        name,
                        test_match.group("body"),
                        context_check=context_check,
                        line=line_of(document.text, body_offset + test_match.start()),
                    )
                )
        except ExtractionError as exc:
            findings.append(
                error(
                    "malformed-verification-block",
                    f"Verification block '{context_check}' in {document.rel}:{line}: {exc}",
                    document=document.rel,
                    line=line,
                )
            )
            continue
        names_in_document.update(test.name for test in tests)
        annotations.append(
            VerificationAnnotation(
                document=document.rel,
                line=line,
                context_check=context_check,
                tests=tuple(tests),
            )
        )
    return annotations


def context_checks(document: Document) -> list[ContextCheck]:
    return [
        ContextCheck(
            identifier=match.group(1),
            document=document.rel,
            line=line_of(document.text, match.start()),
        )
        for match in _CONTEXT_CHECK_RE.finditer(document.text)
    ]


def extract_document(document: Document) -> Extraction:
    findings: list[Finding] = []
    annotations: list[Annotation] = []
    annotations.extend(_routing_annotations(document, findings))
    annotations.extend(_verification_annotations(document, findings))
    return Extraction(
        annotations=tuple(annotations),
        context_checks=tuple(context_checks(document)),
        findings=tuple(findings),
    )


def extract_documents(documents: Iterable[Document]) -> Extraction:
    result = Extraction()
    for document in documents:
        result = result.merged(extract_document(document))
    return result


def verification_commands(document: Document) -> list[tuple[int, str]]:
    """Every raw ``TEST:`` command of every verification block, with its line."""
    commands: list[tuple[int, str]] = []
    for block in _scan_blocks(document.text, _VERIFICATION_TAG):
        body = document.text[block.body_start:block.body_end]
        for match in _FIELD_RES["TEST"].finditer(body):
            command = _unquote(match.group(1).strip())
            if command:
                commands.append((line_of(document.text, block.body_start + match.start()), command))
    return commands
