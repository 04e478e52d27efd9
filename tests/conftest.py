from __future__ import annotations

import json
import sys
import textwrap
from pathlib import Path
from typing import Callable, Mapping

ROOT = Path(__file__).resolve().parents[1]
for entry in (ROOT, ROOT / "src"):
    if str(entry) not in sys.path:
        sys.path.insert(0, str(entry))


import pytest

from tests.corpus_helpers import DEFAULT_CORPUS, DEFAULT_LEXICON, STANDARDS_DIR
from tests.env_helpers import env_scope as _env_scope

CorpusWriter = Callable[..., Path]


@pytest.fixture
def write_corpus(tmp_path: Path) -> CorpusWriter:
    """Write a repository with a standards tree and return its root."""

    def _write(
        documents: Mapping[str, str] | None = None,
        *,
        lexicon: Mapping[str, object] | None = DEFAULT_LEXICON,
        extra_files: Mapping[str, str] | None = None,
    ) -> Path:
        root = tmp_path.resolve() / "repo"
        standards = root / STANDARDS_DIR
        for rel, text in (documents if documents is not None else DEFAULT_CORPUS).items():
            path = standards / rel
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(textwrap.dedent(text).lstrip("\n"), encoding="utf-8")
        if lexicon is not None:
            lexicon_path = standards / "_meta" / "intent-lexicon.json"
            lexicon_path.parent.mkdir(parents=True, exist_ok=True)
            lexicon_path.write_text(json.dumps(lexicon, indent=2) + "\n", encoding="utf-8")
        for rel, text in (extra_files or {}).items():
            path = root / rel
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(text, encoding="utf-8")
        return root

    return _write


@pytest.fixture
def env_scope():
    return _env_scope
