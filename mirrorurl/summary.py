# File: mirrorurl/summary.py
"""mirrorurl.summary: итоговый отчёт одного запуска зеркалирования."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List

from mirrorurl.crawler.models import MirrorRecord, SkipRecord
from mirrorurl.errors import SkipReason


def format_qty(qty: int, single: str, plural: str) -> str:
    """«1 file», «2 files»."""
    return f"{qty} {single if qty == 1 else plural}"


@dataclass(slots=True)
class RunSummary:
    """Счётчики, записи манифеста и списки пропущенных/упавших URL."""

    start_url: str = ""
    output_dir: str = ""
    html_docs: int = 0
    html_bytes: int = 0
    downloads: int = 0
    download_bytes: int = 0
    not_modified: int = 0
    filtered: int = 0
    files_written: int = 0
    files_unchanged: int = 0
    elapsed: float = 0.0
    cpu_time: float = 0.0
    cancelled: bool = False
    records: List[MirrorRecord] = field(default_factory=list)
    skipped: List[SkipRecord] = field(default_factory=list)
    failed: List[SkipRecord] = field(default_factory=list)

    # Счётчики ------------------------------------------------------------
    def add_html(self, size: int) -> None:
        self.html_docs += 1
        self.html_bytes += size

    def add_download(self, size: int) -> None:
        self.downloads += 1
        self.download_bytes += size

    def add_not_modified(self) -> None:
        self.not_modified += 1

    def add_filtered(self) -> None:
        self.filtered += 1

    def add_skipped(self, record: SkipRecord) -> None:
        self.skipped.append(record)

    def add_failed(self, record: SkipRecord) -> None:
        self.failed.append(record)

    # Представление -------------------------------------------------------
    @property
    def fetched(self) -> int:
        return self.html_docs + self.downloads

    def reasons(self) -> Dict[str, int]:
        """Число пропусков и ошибок по причинам."""
        counts: Dict[str, int] = {}
        for rec in [*self.skipped, *self.failed]:
            counts[rec.reason.value] = counts.get(rec.reason.value, 0) + 1
        return dict(sorted(counts.items()))

    def skipped_with(self, reason: SkipReason) -> List[SkipRecord]:
        return [rec for rec in self.skipped + self.failed if rec.reason is reason]

    def lines(self) -> List[str]:
        """Человекочитаемая сводка для CLI."""
        return [
            f"{format_qty(self.html_docs, 'document', 'documents')} parsed "
            f"({format_qty(self.html_bytes, 'byte', 'bytes')})",
            f"{format_qty(self.downloads, 'file', 'files')} downloaded "
            f"({format_qty(self.download_bytes, 'byte', 'bytes')}), "
            f"{self.not_modified} not modified, {len(self.skipped)} skipped, "
            f"{len(self.failed)} errored",
            f"{self.files_written} written, {self.files_unchanged} unchanged, "
            f"{self.filtered} links filtered",
            f"Elapsed {self.elapsed:.2f} s, CPU {self.cpu_time:.2f} s"
            + (" (cancelled)" if self.cancelled else ""),
        ]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "start_url": self.start_url,
            "output_dir": self.output_dir,
            "counts": {
                "fetched": self.fetched,
                "html_docs": self.html_docs,
                "html_bytes": self.html_bytes,
                "downloads": self.downloads,
                "download_bytes": self.download_bytes,
                "not_modified": self.not_modified,
                "skipped": len(self.skipped),
                "failed": len(self.failed),
                "filtered": self.filtered,
                "files_written": self.files_written,
                "files_unchanged": self.files_unchanged,
            },
            "reasons": self.reasons(),
            "elapsed": round(self.elapsed, 3),
            "cpu_time": round(self.cpu_time, 3),
            "cancelled": self.cancelled,
            "records": [rec.to_dict() for rec in self.records],
            "skipped": [rec.to_dict() for rec in self.skipped],
            "failed": [rec.to_dict() for rec in self.failed],
        }

    def json(self, *, pretty: bool = False) -> str:
        """JSON-представление RunSummary."""
        return json.dumps(self.to_dict(), ensure_ascii=False, indent=2 if pretty else None)
