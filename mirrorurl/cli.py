# === FILE: mirrorurl/cli.py ===
#!/usr/bin/env python3
"""
Точка входа для запуска mirrorurl через командную строку.

Команды:
  mirror URL TARGET   Зеркалировать сайт URL в каталог TARGET
  config              Показать итоговую конфигурацию

Общие опции:
  --config PATH       YAML/JSON-конфиг (по умолчанию ./mirrorurl.yaml, если есть)
  --log-level LEVEL   Уровень логирования (DEBUG, INFO, ...)
  --log-file PATH     Файл для логов (stderr, если не указан)
  --log-format FORMAT Формат логирования

Команда mirror опции:
  --depth, -d INT         Максимальная глубина ссылок
  --concurrency, -c INT   Число воркеров
  --per-host INT          Одновременных запросов к одному хосту
  --delay SEC             Пауза между запросами к одному хосту
  --scope POLICY          host | domain | prefix
  --query POLICY          preserve | sort | drop
  --timeout SEC           Таймаут одной попытки
  --connect-timeout SEC   Таймаут соединения
  --retries INT           Повторы при сетевых ошибках
  --max-pages INT         Лимит числа URL
  --index-name, -u NAME   Имя файла для пустых путей
  --skip-file, -s PATH    JSON-массив путей, которые не качаем
  --no-etags, -e          Не использовать If-None-Match
  --no-rewrite            Не переписывать ссылки в HTML
  --json PATH             Сохранить JSON-отчёт в файл
  --html PATH             Сохранить HTML-отчёт в файл
  --template DIR          Папка с Jinja2-шаблоном report.html.j2
  --pretty                Вывести итог как JSON (отступ 2) в stdout

Коды выхода: 0: обход завершён (даже с ошибками отдельных URL),
1: ошибка конфигурации или каталога, 130: прерывание пользователем.

Пример:
  mirrorurl mirror https://example.com/docs/ ./mirror --depth 3 --scope prefix
"""
import asyncio
import sys
from pathlib import Path

import click
from jinja2 import TemplateError
from pydantic import ValidationError

from mirrorurl import __version__
from mirrorurl.config import QueryPolicy, ScopePolicy, load_config, read_skip_file
from mirrorurl.engine import start_mirror
from mirrorurl.errors import SetupError
from mirrorurl.logger import init_logging
from mirrorurl.report.html_report import render_html
from mirrorurl.report.json_report import render_json

CONTEXT_SETTINGS = dict(help_option_names=["--help", "-h"])

EXIT_INTERRUPTED = 130


def print_error(message: str):
    click.secho(message, fg='red', err=True)
    sys.exit(1)


def _describe_validation(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ())) or "config"
        parts.append(f"{loc}: {err.get('msg')}")
    return "; ".join(parts)


@click.group(context_settings=CONTEXT_SETTINGS)
@click.version_option(__version__, '--version', '-v', message='mirrorurl, version %(version)s')
@click.option(
    '--config', '-c', 'config_path',
    default=None,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help='Путь к файлу конфигурации YAML или JSON.'
)
@click.option(
    '--log-level', 'log_level',
    default='INFO', show_default=True,
    type=click.Choice(['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'], case_sensitive=False),
    help='Уровень логирования'
)
@click.option(
    '--log-file', 'log_file',
    default=None,
    type=click.Path(writable=True, dir_okay=False, path_type=Path),
    help='Путь к файлу логов (stderr, если не указан)'
)
@click.option(
    '--log-format', 'log_format',
    default='%(asctime)s %(levelname)s %(message)s',
    show_default=True,
    help='Строка формата для логов'
)
@click.pass_context
def cli(ctx, config_path, log_level, log_file, log_format):
    """mirrorurl: вежливое параллельное зеркалирование сайтов."""
    init_logging(
        level=log_level.upper(),
        log_file=str(log_file) if log_file else None,
        log_format=log_format
    )
    ctx.ensure_object(dict)
    ctx.obj['config_path'] = config_path


@cli.command('mirror', context_settings=CONTEXT_SETTINGS)
@click.argument('url')
@click.argument('target', type=click.Path(file_okay=False, path_type=Path))
@click.option('--depth', '-d', 'max_depth', type=click.IntRange(min=0), default=None,
              help='Максимальная глубина ссылок')
@click.option('--concurrency', '-c', 'concurrency', type=click.IntRange(min=1), default=None,
              help='Число воркеров')
@click.option('--per-host', 'per_host_concurrency', type=click.IntRange(min=1), default=None,
              help='Одновременных запросов к одному хосту')
@click.option('--delay', 'politeness_delay', type=click.FloatRange(min=0), default=None,
              help='Пауза между запросами к одному хосту (секунд)')
@click.option('--scope', 'scope', type=click.Choice([p.value for p in ScopePolicy]), default=None,
              help='Область обхода')
@click.option('--query', 'query_policy', type=click.Choice([p.value for p in QueryPolicy]), default=None,
              help='Обработка query-строк')
@click.option('--timeout', 'timeout', type=float, default=None,
              help='Таймаут одной попытки запроса (секунд)')
@click.option('--connect-timeout', 'connect_timeout', type=float, default=None,
              help='Таймаут соединения (секунд)')
@click.option('--retries', 'retry_times', type=click.IntRange(min=0), default=None,
              help='Повторы при сетевых ошибках')
@click.option('--max-pages', 'max_pages', type=click.IntRange(min=1), default=None,
              help='Лимит числа URL')
@click.option('--index-name', '-u', 'index_name', default=None,
              help='Имя файла для пустых путей и путей, оканчивающихся на /')
@click.option('--skip-file', '-s', 'skip_file', default=None,
              type=click.Path(exists=True, dir_okay=False, path_type=Path),
              help='JSON-массив префиксов путей, которые не качаем')
@click.option('--no-etags', '-e', 'no_etags', is_flag=True,
              help='Не отправлять If-None-Match')
@click.option('--no-rewrite', 'no_rewrite', is_flag=True,
              help='Не переписывать ссылки в HTML')
@click.option('--json', '-j', 'json_output', default=None,
              type=click.Path(writable=True, dir_okay=False, path_type=Path),
              help='Сохранить JSON-отчёт в файл')
@click.option('--html', 'html_output', default=None,
              type=click.Path(writable=True, dir_okay=False, path_type=Path),
              help='Сохранить HTML-отчёт в файл')
@click.option('--template', '-t', 'template_dir', default=None,
              type=click.Path(exists=True, file_okay=False, path_type=Path),
              help='Папка с Jinja2-шаблоном report.html.j2')
@click.option('--pretty', is_flag=True,
              help='Вывести итог в stdout как JSON (отступ 2)')
@click.pass_context
def mirror(ctx, url, target, skip_file, no_etags, no_rewrite,
           json_output, html_output, template_dir, pretty, **overrides):
    """Зеркалировать сайт URL в каталог TARGET."""
    try:
        skip = read_skip_file(skip_file) if skip_file else None
        if no_etags:
            overrides['use_etags'] = False
        if no_rewrite:
            overrides['rewrite_links'] = False
        cfg = load_config(
            ctx.obj['config_path'],
            start_url=url,
            output_dir=str(target),
            skip=skip,
            **overrides,
        )
    except ValidationError as e:
        print_error(f'Ошибка конфигурации: {_describe_validation(e)}')
    except (OSError, ValueError, TypeError) as e:
        print_error(f'Ошибка загрузки конфигурации: {e}')

    click.echo(f'Mirroring {cfg.start_url} into {cfg.output_dir}', err=True)
    try:
        summary = asyncio.run(start_mirror(cfg))
    except SetupError as e:
        print_error(f'Ошибка подготовки: {e}')
    except (KeyboardInterrupt, asyncio.CancelledError):
        click.secho('Прервано пользователем', fg='yellow', err=True)
        sys.exit(EXIT_INTERRUPTED)

    if pretty:
        click.echo(summary.json(pretty=True))
    else:
        for line in summary.lines():
            click.echo(line)

    if json_output:
        try:
            saved_json = render_json(summary, json_output)
            click.echo(f'JSON report: {saved_json}', err=True)
        except OSError as e:
            print_error(f'Ошибка при сохранении JSON: {e}')

    if html_output:
        try:
            saved_html = render_html(summary, template_dir, html_output)
            click.echo(f'HTML report: {saved_html}', err=True)
        except (OSError, TemplateError) as e:
            print_error(f'Ошибка при сохранении HTML: {e}')

    if summary.cancelled:
        sys.exit(EXIT_INTERRUPTED)


@cli.command('config', context_settings=CONTEXT_SETTINGS)
@click.pass_context
def show_config(ctx):
    """Показать итоговую конфигурацию в JSON."""
    try:
        cfg = load_config(ctx.obj['config_path'])
    except ValidationError as e:
        print_error(f'Ошибка конфигурации: {_describe_validation(e)}')
    except (OSError, ValueError, TypeError) as e:
        print_error(f'Ошибка загрузки конфигурации: {e}')
    click.echo(cfg.model_dump_json(indent=2))


def main() -> None:
    cli(prog_name='mirrorurl')


if __name__ == "__main__":
    main()
