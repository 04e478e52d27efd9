"""Static validation of the routing graph formed by REQUEST directives."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
import re
from typing import Iterable, Mapping, Sequence

from eos_standards.config import StandardsLayout
from eos_standards.extract import heading_slugs
from eos_standards.model import (
    ContextCheck,
    Document,
    Extraction,
    Finding,
    RoutingReference,
    error,
    warning,
)

_LEADING_DOT_SLASH_RE = re.compile(r"^(?:\./)+")
_CLOSING_TAG_RE = re.compile(r"^</.+>$")
_TOP_HEADING_RE = re.compile(r"^#\s")


class _Color(Enum):
    WHITE = 0
    GRAY = 1
    BLACK = 2


@dataclass(frozen=True)
class RoutingGraph:
    root: str
    nodes: tuple[str, ...]
    edges: Mapping[str, tuple[str, ...]]

    def successors(self, node: str) -> tuple[str, ...]:
        return self.edges.get(node, ())


@dataclass(frozen=True)
class RoutingReport:
    findings: tuple[Finding, ...]
    depths: Mapping[str, int] = field(default_factory=dict)
    graph: RoutingGraph | None = None

    @property
    def errors(self) -> tuple[Finding, ...]:
        return tuple(finding for finding in self.findings if finding.is_error)

    @property
    def warnings(self) -> tuple[Finding, ...]:
        return tuple(finding for finding in self.findings if not finding.is_error)

    @property
    def ok(self) -> bool:
        return not self.errors


def duplicate_context_checks(checks: Iterable[ContextCheck]) -> list[Finding]:
    first_seen: dict[str, ContextCheck] = {}
    findings: list[Finding] = []
    for check in checks:
        original = first_seen.get(check.identifier)
        if original is None:
            first_seen[check.identifier] = check
            continue
        findings.append(
            error(
                "duplicate-context-check",
                f"Duplicate context-check id '{check.identifier}' in {check.location}; "
                f"first seen in {original.location}",
                document=check.document,
                line=check.line,
                remediation="give every routing and verification block its own context-check id",
            )
        )
    return findings


def _target_key(
    reference: RoutingReference,
    *,
    layout: StandardsLayout,
    by_path: Mapping[Path, Document],
) -> str | None:
    relative = _LEADING_DOT_SLASH_RE.sub("", reference.target_path)
    candidate = (layout.standards_dir / relative).resolve()
    document = by_path.get(candidate)
    return document.rel if document is not None else None


def build_graph(
    documents: Sequence[Document],
    references: Iterable[RoutingReference],
    *,
    layout: StandardsLayout,
) -> tuple[RoutingGraph, list[Finding]]:
    """Resolve every reference and build the adjacency map.

    Unresolvable targets and anchors become findings; self references are
    checked for anchors but never become edges.
    """
    by_path = {document.path: document for document in documents}
    by_rel = {document.rel: document for document in documents}
    slugs: dict[str, set[str]] = {}
    edges: dict[str, list[str]] = {document.rel: [] for document in documents}
    findings: list[Finding] = []
    for reference in references:
        target = _target_key(reference, layout=layout, by_path=by_path)
        if target is None:
            missing = layout.relative(layout.standards_dir / _LEADING_DOT_SLASH_RE.sub("", reference.target_path))
            findings.append(
                error(
                    "missing-target",
                    f"Missing REQUEST target file '{missing}' referenced from "
                    f"{reference.source}:{reference.line}",
                    document=reference.source,
                    line=reference.line,
                )
            )
            continue
        if reference.target_anchor:
            if target not in slugs:
                slugs[target] = heading_slugs(by_rel[target].text)
            if reference.target_anchor.lower() not in slugs[target]:
                findings.append(
                    error(
                        "missing-anchor",
                        f"Missing anchor '#{reference.target_anchor}' in {target} referenced from "
                        f"{reference.source}:{reference.line}",
                        document=reference.source,
                        line=reference.line,
                        remediation=f"add a heading slugging to '{reference.target_anchor}' or fix the anchor",
                    )
                )
        if target == reference.source:
            continue
        successors = edges.setdefault(reference.source, [])
        if target not in successors:
            successors.append(target)
    root = layout.relative(layout.root_document)
    graph = RoutingGraph(
        root=root,
        nodes=tuple(document.rel for document in documents),
        edges={node: tuple(successors) for node, successors in edges.items()},
    )
    return graph, findings


def find_cycles(graph: RoutingGraph) -> list[tuple[str, ...]]:
    """Depth-first search from the root, reporting each back edge as a path."""
    color = {node: _Color.WHITE for node in graph.nodes}
    cycles: list[tuple[str, ...]] = []

    def visit(node: str, stack: tuple[str, ...]) -> None:
        color[node] = _Color.GRAY
        path = stack + (node,)
        for successor in graph.successors(node):
            state = color.get(successor)
            if state is None:
                continue
            if state is _Color.WHITE:
                visit(successor, path)
            elif state is _Color.GRAY:
                cycles.append(path + (successor,))
        color[node] = _Color.BLACK

    if graph.root in color:
        visit(graph.root, ())
    return cycles


def depth_map(graph: RoutingGraph) -> dict[str, int]:
    """Minimum hop count from the root to every reachable document."""
    if graph.root not in graph.nodes:
        return {}
    depths = {graph.root: 0}
    queue = deque([graph.root])
    while queue:
        node = queue.popleft()
        for successor in graph.successors(node):
            if successor not in depths:
                depths[successor] = depths[node] + 1
                queue.append(successor)
    return depths


def is_dispatcher(document: Document, markers: Sequence[str]) -> bool:
    lowered = document.text.lower()
    return any(marker.lower() in lowered for marker in markers)


def dispatcher_purity(document: Document) -> list[Finding]:
    """Flag prose inside a routing-only document.

    Heuristic only: comments, routing blocks and their contents, wrapper tags
    and a single top-level heading are allowed.
    """
    findings: list[Finding] = []
    in_comment = False
    in_block = False
    seen_heading = False
    for index, raw in enumerate(document.lines(), start=1):
        line = raw.strip()
        if not line:
            continue
        if in_comment:
            in_comment = "-->" not in line
            continue
        if line.startswith("<!--"):
            in_comment = "-->" not in line
            continue
        if line.startswith("<conditional-block"):
            in_block = "</conditional-block>" not in line
            continue
        if line.startswith("</conditional-block>"):
            in_block = False
            continue
        if in_block or line.startswith("<context_fetcher_strategy>") or _CLOSING_TAG_RE.match(line):
            continue
        if _TOP_HEADING_RE.match(line) and not seen_heading:
            seen_heading = True
            continue
        findings.append(
            warning(
                "dispatcher-purity",
                f"Possible non-routing content in dispatcher {document.rel} at line {index}: '{line[:60]}'",
                document=document.rel,
                line=index,
            )
        )
    return findings


def validate_routing(
    documents: Sequence[Document],
    extraction: Extraction,
    *,
    layout: StandardsLayout,
) -> RoutingReport:
    findings: list[Finding] = list(extraction.findings)
    findings.extend(duplicate_context_checks(extraction.context_checks))
    graph, resolution = build_graph(documents, extraction.references, layout=layout)
    findings.extend(resolution)
    if graph.root not in graph.nodes:
        findings.append(
            error(
                "missing-root",
                f"Root dispatcher {graph.root} not found among loaded documents",
                document=graph.root,
            )
        )
    for cycle in find_cycles(graph):
        findings.append(
            error(
                "routing-cycle",
                f"Routing cycle detected: {' -> '.join(cycle)}",
                document=cycle[-2],
            )
        )
    depths = depth_map(graph)
    for node, depth in depths.items():
        if depth > layout.max_depth:
            findings.append(
                error(
                    "routing-depth",
                    f"Routing depth exceeds {layout.max_depth} hops from root: {node} (depth={depth})",
                    document=node,
                )
            )
    for document in documents:
        if is_dispatcher(document, layout.dispatcher_markers):
            findings.extend(dispatcher_purity(document))
    has_errors = any(finding.is_error for finding in findings)
    return RoutingReport(
        findings=tuple(findings),
        depths={} if has_errors else depths,
        graph=graph,
    )
