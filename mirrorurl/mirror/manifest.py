# File: mirrorurl/mirror/manifest.py
"""mirrorurl.mirror.manifest: newline-delimited JSON index of mirrored resources.

One :class:`~mirrorurl.crawler.models.MirrorRecord` per line, sorted by URL,
stored in ``<output>/.mirrorurl/manifest.jsonl``. The manifest of the previous
run provides ETags for conditional requests and keeps local paths stable.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Dict, Iterable, Optional

from mirrorurl.crawler.models import MirrorRecord
from mirrorurl.errors import MirrorIOError
from mirrorurl.logger import get_logger
from mirrorurl.mirror.paths import STATE_DIR
from mirrorurl.mirror.storage import atomic_write, ensure_directory

log = get_logger("manifest")

MANIFEST_NAME = "manifest.jsonl"


class Manifest:
    """Loads and saves the manifest of one output directory."""

    def __init__(self, root: Path) -> None:
        self.root = root
        self.path = root / STATE_DIR / MANIFEST_NAME
        self._records: Dict[str, MirrorRecord] = {}

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self):
        return iter(sorted(self._records.values(), key=lambda r: r.url))

    def get(self, url: str) -> Optional[MirrorRecord]:
        return self._records.get(url)

    def load(self) -> Dict[str, MirrorRecord]:
        """Read the manifest if present. Unreadable lines are skipped with a warning."""
        self._records = {}
        if not self.path.is_file():
            return self._records
        with self.path.open("r", encoding="utf-8") as fh:
            for lineno, line in enumerate(fh, start=1):
                if not line.strip():
                    continue
                try:
                    record = MirrorRecord.from_dict(json.loads(line))
                except (json.JSONDecodeError, KeyError, TypeError, ValueError) as exc:
                    log.warning("Ignoring manifest line %d in %s: %s", lineno, self.path, exc)
                    continue
                self._records[record.url] = record
        log.debug("Loaded %d manifest record(s) from %s", len(self._records), self.path)
        return self._records

    def merge(self, records: Iterable[MirrorRecord]) -> None:
        for record in records:
            self._records[record.url] = record

    def discard(self, url: str) -> Optional[MirrorRecord]:
        """Forget *url*, e.g. after the server stopped serving it."""
        record = self._records.pop(url, None)
        if record is not None:
            log.debug("Dropping manifest record for %s (%s)", url, record.path)
        return record

    def save(self) -> Path:
        lines = [
            json.dumps(record.to_dict(), ensure_ascii=False, sort_keys=True)
            for record in self
        ]
        data = ("\n".join(lines) + "\n").encode("utf-8") if lines else b""
        ensure_directory(self.path.parent)
        try:
            atomic_write(self.path, data)
        except OSError as exc:
            raise MirrorIOError(str(self.path), str(exc)) from exc
        log.debug("Saved %d manifest record(s) to %s", len(lines), self.path)
        return self.path
