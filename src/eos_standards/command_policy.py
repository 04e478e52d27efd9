"""Static allow/deny policy for verification commands.

Commands are matched against a fixed denylist before anything is spawned. The
check is textual and conservative; suspicious but harmless commands are
rejected too.
"""

from __future__ import annotations

from dataclasses import dataclass
import re
from typing import Iterable

from eos_standards.extract import verification_commands
from eos_standards.model import Document, Finding, error

GOVERNANCE_REASON = "Command not allowed by governance"


@dataclass(frozen=True)
class DeniedPattern:
    category: str
    pattern: re.Pattern[str]


def _deny(category: str, pattern: str) -> DeniedPattern:
    return DeniedPattern(category=category, pattern=re.compile(pattern, re.IGNORECASE))


DENYLIST: tuple[DeniedPattern, ...] = (
    _deny("network access", r"\b(?:curl|wget|nc|ncat|telnet|ssh|scp|rsync|ftp)\b"),
    _deny("structured-data query tool", r"\b(?:jq|yq)\b"),
    _deny(
        "version-control mutation",
        r"\bgit\s+(?:push|commit|fetch|pull|merge|rebase|reset|checkout|switch|tag|stash|cherry-pick|clean|add|rm|mv)\b",
    ),
    _deny("package installation", r"\b(?:npm|pnpm|yarn|bun|pip3?|uv|poetry|gem|cargo|go|brew|apt(?:-get)?)\s+(?:install|add|i)\b"),
    _deny("package installation", r"\binstall\b"),
    _deny("in-place stream editing", r"\bsed\b[^|;&]*\s(?:-i|--in-place)"),
    _deny("in-place stream editing", r"\bperl\b[^|;&]*\s-[a-z]*i"),
    _deny("file write", r">\s|>>\s|\|\s*tee\b"),
    _deny(
        "filesystem mutation",
        r"\b(?:rm|rmdir|mv|cp|chmod|chown|chgrp|touch|mkdir|ln|truncate|dd|shred|unlink)\b",
    ),
)


@dataclass(frozen=True)
class PolicyDecision:
    allowed: bool
    category: str = ""
    matched: str = ""

    @property
    def reason(self) -> str:
        if self.allowed:
            return ""
        return f"{GOVERNANCE_REASON} ({self.category}: '{self.matched}')"


ALLOWED = PolicyDecision(allowed=True)


def evaluate_command(command: str, *, denylist: Iterable[DeniedPattern] = DENYLIST) -> PolicyDecision:
    for denied in denylist:
        match = denied.pattern.search(command)
        if match:
            return PolicyDecision(allowed=False, category=denied.category, matched=match.group(0).strip())
    return ALLOWED


def lint_commands(documents: Iterable[Document]) -> list[Finding]:
    """Governance lint of every raw TEST command in the corpus."""
    findings: list[Finding] = []
    for document in documents:
        for line, command in verification_commands(document):
            decision = evaluate_command(command)
            if decision.allowed:
                continue
            findings.append(
                error(
                    "governance-command",
                    f"Governance violation in TEST command at {document.rel}:{line}: '{command}' "
                    f"({decision.category})",
                    document=document.rel,
                    line=line,
                    remediation="verification commands must not use the network, install packages or mutate state",
                )
            )
    return findings
