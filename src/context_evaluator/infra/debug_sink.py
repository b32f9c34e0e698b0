from __future__ import annotations

import re
from pathlib import Path


_UNSAFE = re.compile(r"[^A-Za-z0-9._-]+")


class FileDebugSink:
    """Writes one debug file per evaluator (and file) under a run directory.

    Names are unique per evaluator invocation, so concurrent writers never
    share a file.
    """

    def __init__(self, *, debug_dir: Path, run_id: str) -> None:
        self._dir = Path(debug_dir) / run_id

    @property
    def directory(self) -> Path:
        return self._dir

    def write(self, name: str, text: str) -> None:
        self._dir.mkdir(parents=True, exist_ok=True)
        path = self._dir / f"{_UNSAFE.sub('_', name)}.md"
        with path.open("a", encoding="utf-8") as fh:
            fh.write(text)
