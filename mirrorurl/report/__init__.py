# File: mirrorurl/report/__init__.py
"""mirrorurl.report: отчёты о запуске (JSON и HTML), используемые CLI и тестами."""

from __future__ import annotations

from mirrorurl.report.html_report import DEFAULT_TEMPLATE_DIR, render_html
from mirrorurl.report.json_report import render_json

__all__ = ["render_json", "render_html", "DEFAULT_TEMPLATE_DIR"]
