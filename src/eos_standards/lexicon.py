from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Iterable, Mapping, Sequence

import yaml

from eos_standards.exceptions import LexiconError
from eos_standards.model import Finding, RoutingAnnotation, RoutingReference, error


@dataclass(frozen=True)
class Intent:
    key: str
    category: str
    synonyms: tuple[str, ...] = ()

    @property
    def terms(self) -> tuple[str, ...]:
        return (self.key, *self.synonyms)


@dataclass(frozen=True)
class Lexicon:
    precedence: tuple[str, ...]
    intents: tuple[Intent, ...]

    def intent_for(self, keyword: str) -> Intent | None:
        needle = keyword.strip().lower()
        for intent in self.intents:
            if needle in intent.terms:
                return intent
        return None

    @property
    def allowed(self) -> frozenset[str]:
        return frozenset(term for intent in self.intents for term in intent.terms)

    def category_rank(self, category: str) -> int:
        try:
            return self.precedence.index(category)
        except ValueError:
            return len(self.precedence)

    def keyword_rank(self, keyword: str) -> int:
        intent = self.intent_for(keyword)
        if intent is None:
            return len(self.precedence)
        return self.category_rank(intent.category)

    def rank(self, references: Sequence[RoutingReference]) -> list[RoutingReference]:
        """Order competing references by category precedence, then declaration order."""
        indexed = list(enumerate(references))
        indexed.sort(
            key=lambda item: (
                min((self.keyword_rank(keyword) for keyword in item[1].keywords), default=len(self.precedence)),
                item[0],
            )
        )
        return [reference for _, reference in indexed]

    def canonical(self, keyword: str) -> str:
        intent = self.intent_for(keyword)
        return intent.key if intent is not None else keyword.strip().lower()

    def route(self, task_keywords: Iterable[str], references: Sequence[RoutingReference]) -> list[RoutingReference]:
        """References whose keywords match the task, synonyms folded, in precedence order."""
        wanted = {self.canonical(keyword) for keyword in task_keywords if keyword.strip()}
        matching = [
            reference
            for reference in references
            if any(self.canonical(keyword) in wanted for keyword in reference.keywords)
        ]
        return self.rank(matching)


def _yaml_loader():
    class Loader(yaml.SafeLoader):
        pass

    for key, values in list(Loader.yaml_implicit_resolvers.items()):
        Loader.yaml_implicit_resolvers[key] = [
            (tag, regexp) for tag, regexp in values if tag != "tag:yaml.org,2002:bool"
        ]
    return Loader


def _str_tuple(raw: object, *, field_name: str) -> tuple[str, ...]:
    if raw is None:
        return ()
    if not isinstance(raw, list) or any(not isinstance(item, str) for item in raw):
        raise LexiconError(f"intent lexicon invalid {field_name}: expected list[str]")
    return tuple(item.strip().lower() for item in raw if item.strip())


def _intent_from_mapping(index: int, payload: object, precedence: tuple[str, ...]) -> Intent:
    if not isinstance(payload, Mapping):
        raise LexiconError(f"intent lexicon invalid intents[{index}]: expected a mapping")
    key = payload.get("key")
    if not isinstance(key, str) or not key.strip():
        raise LexiconError(f"intent lexicon invalid intents[{index}].key")
    category = str(payload.get("category", "")).strip().lower()
    if category and category not in precedence:
        raise LexiconError(
            f"intent lexicon invalid intents[{index}].category: '{category}' is not in precedence"
        )
    return Intent(
        key=key.strip().lower(),
        category=category,
        synonyms=_str_tuple(payload.get("synonyms"), field_name=f"intents[{index}].synonyms"),
    )


def lexicon_from_mapping(raw: object) -> Lexicon:
    if not isinstance(raw, Mapping):
        raise LexiconError("intent lexicon root must be a mapping")
    precedence = _str_tuple(raw.get("precedence"), field_name="precedence")
    if not precedence:
        raise LexiconError("Lexicon precedence is missing or empty.")
    intents_raw = raw.get("intents")
    if not isinstance(intents_raw, list):
        raise LexiconError("intent lexicon must define intents")
    intents = tuple(
        _intent_from_mapping(index, payload, precedence)
        for index, payload in enumerate(intents_raw)
    )
    return Lexicon(precedence=precedence, intents=intents)


@lru_cache(maxsize=4)
def load_lexicon(path: Path) -> Lexicon:
    try:
        with path.open("r", encoding="utf-8") as handle:
            raw = yaml.load(handle, Loader=_yaml_loader())
    except (OSError, UnicodeError, yaml.YAMLError) as exc:
        raise LexiconError(f"Failed to load intent lexicon at {path}: {exc}") from exc
    return lexicon_from_mapping(raw)


def check_keywords(
    annotations: Iterable[RoutingAnnotation],
    lexicon: Lexicon,
    *,
    lexicon_label: str = "the intent lexicon",
) -> list[Finding]:
    allowed = lexicon.allowed
    findings: list[Finding] = []
    for annotation in annotations:
        for keyword in annotation.keywords:
            if keyword in allowed:
                continue
            findings.append(
                error(
                    "unknown-keyword",
                    f"Unknown task-condition keyword '{keyword}' in "
                    f"{annotation.document}:{annotation.line} (not in lexicon)",
                    document=annotation.document,
                    line=annotation.line,
                    remediation=f"register '{keyword}' in {lexicon_label} before using it",
                )
            )
    return findings
