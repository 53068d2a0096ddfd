# mirrorurl/report/json_report.py

"""
Генерация JSON-отчёта для mirrorurl.

Сериализация объекта RunSummary в файл.
"""
import json
from pathlib import Path

from mirrorurl.summary import RunSummary


def render_json(summary: RunSummary, output_path: Path | str, *, pretty: bool = True) -> Path:
    """
    Сохраняет отчёт summary в формате JSON по указанному пути.

    :param summary: объект RunSummary с итогами зеркалирования
    :param output_path: путь к JSON-файлу
    :param pretty: отступ 2 вместо компактной записи
    :return: Path сохранённого файла

    Пример:
    ```python
    from mirrorurl.report.json_report import render_json
    report_path = render_json(summary, 'reports/mirror.json')
    print(f"JSON report saved to: {report_path}")
    ```
    """
    output = Path(output_path)
    output.parent.mkdir(parents=True, exist_ok=True)

    with output.open('w', encoding='utf-8') as f:
        json.dump(summary.to_dict(), f, ensure_ascii=False, indent=2 if pretty else None)

    return output
