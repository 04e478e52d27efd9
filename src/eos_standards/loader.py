from __future__ import annotations

from pathlib import Path
from typing import Iterable, Sequence

from eos_standards.exceptions import ConfigError
from eos_standards.model import Document, Finding, error

DOCUMENT_SUFFIXES = (".md",)


def _relative(path: Path, root: Path) -> str:
    try:
        return path.resolve().relative_to(root.resolve()).as_posix()
    except ValueError:
        return path.as_posix()


def iter_document_paths(directory: Path, *, suffixes: Sequence[str] = DOCUMENT_SUFFIXES) -> list[Path]:
    if not directory.is_dir():
        raise ConfigError(f"{directory} directory not found.")
    return sorted(
        path
        for path in directory.rglob("*")
        if path.is_file() and path.suffix.lower() in suffixes
    )


def read_document(path: Path, *, root: Path) -> Document:
    return Document(path=path.resolve(), rel=_relative(path, root), text=path.read_text(encoding="utf-8"))


def load_tree(directory: Path, *, root: Path) -> tuple[Document, ...]:
    """Load every markdown document below ``directory``, in path order."""
    return tuple(read_document(path, root=root) for path in iter_document_paths(directory))


def split_paths_arg(raw: str) -> list[str]:
    return [part.strip() for part in raw.split(",") if part.strip()]


def load_paths(paths: Iterable[str | Path], *, root: Path) -> tuple[tuple[Document, ...], tuple[Finding, ...]]:
    documents: list[Document] = []
    findings: list[Finding] = []
    seen: set[Path] = set()
    for entry in paths:
        path = Path(entry)
        if not path.is_absolute():
            path = root / path
        resolved = path.resolve()
        if resolved in seen:
            continue
        seen.add(resolved)
        try:
            documents.append(read_document(path, root=root))
        except (OSError, UnicodeError) as exc:
            findings.append(
                error(
                    "document-unreadable",
                    f"Cannot read document {_relative(path, root)}: {exc}",
                    document=_relative(path, root),
                )
            )
    return tuple(documents), tuple(findings)
