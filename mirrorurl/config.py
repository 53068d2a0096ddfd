# === FILE: mirrorurl/config.py ===
"""
Модуль для загрузки и валидации конфигурации зеркалирования mirrorurl.
Используется Pydantic для описания схемы и проверки данных.

Значения берутся из YAML/JSON-файла (необязательного), поверх которого
накладываются параметры командной строки.
"""
from __future__ import annotations

import errno
import json
import os
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    HttpUrl,
    field_validator,
    model_validator,
)

from mirrorurl import __version__


class ScopePolicy(str, Enum):
    """Which discovered URLs may be mirrored."""

    HOST = "host"
    DOMAIN = "domain"
    PREFIX = "prefix"


class QueryPolicy(str, Enum):
    """What the normalizer does with query strings."""

    PRESERVE = "preserve"
    SORT = "sort"
    DROP = "drop"


def default_concurrency() -> int:
    """Число воркеров по умолчанию: по числу CPU, но в пределах 2..10."""
    return max(2, min(10, os.cpu_count() or 1))


class MirrorConfig(BaseModel):
    """Конфигурация для одного запуска зеркалирования."""
    model_config = ConfigDict(extra="forbid", frozen=True)

    start_url: HttpUrl = Field(..., description="Стартовый URL.")
    output_dir: Path = Field(..., description="Каталог, куда пишется зеркало.")
    max_depth: int = Field(5, ge=0, description="Максимальная глубина обхода ссылок.")
    max_pages: Optional[int] = Field(None, ge=1, description="Жесткий лимит по числу URL.")
    concurrency: int = Field(default_factory=default_concurrency, ge=1, description="Число воркеров.")
    per_host_concurrency: int = Field(4, ge=1, description="Одновременных запросов к одному хосту.")
    politeness_delay: float = Field(0.0, ge=0, description="Пауза между запросами к одному хосту (сек).")
    timeout: float = Field(30.0, gt=0, description="Таймаут на одну попытку запроса (секунд).")
    connect_timeout: float = Field(10.0, gt=0, description="Таймаут соединения (секунд).")
    retry_times: int = Field(3, ge=0, description="Число повторных попыток при сетевых ошибках.")
    backoff_base: float = Field(0.5, ge=0, description="Базовая задержка экспоненциального backoff.")
    backoff_max: float = Field(30.0, ge=0, description="Максимальная задержка backoff.")
    max_redirects: int = Field(10, ge=0, description="Максимум редиректов на один URL.")
    user_agent: str = Field(f"mirrorurl/{__version__}", min_length=1, description="Заголовок User-Agent.")
    scope: ScopePolicy = Field(ScopePolicy.HOST, description="Политика области обхода.")
    query_policy: QueryPolicy = Field(QueryPolicy.PRESERVE, description="Обработка query-строк.")
    index_name: str = Field("index.html", min_length=1, description="Имя файла для пустых путей.")
    skip: List[str] = Field(default_factory=list, description="Префиксы путей/URL, которые не качаем.")
    use_etags: bool = Field(True, description="Условные запросы с If-None-Match.")
    rewrite_links: bool = Field(True, description="Переписывать ссылки в HTML на локальные.")

    @field_validator("index_name")
    def _plain_file_name(cls, v: str) -> str:
        if "/" in v or "\\" in v or v in (".", ".."):
            raise ValueError("index_name must be a plain file name")
        return v

    @field_validator("output_dir", mode="before")
    def _expand_output_dir(cls, v: Any) -> Any:
        if isinstance(v, str):
            return Path(v).expanduser()
        return v

    @model_validator(mode="after")
    def _check_output_dir(self) -> MirrorConfig:
        if self.output_dir.exists() and not self.output_dir.is_dir():
            raise ValueError(f"output_dir {self.output_dir} exists and is not a directory")
        return self


_DEFAULT_CFG = Path("mirrorurl.yaml")


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise ValueError(f"Неправильный YAML в {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise TypeError(f"Верхний уровень YAML должен быть mapping, получено {type(data).__name__}")
    return data


def _read_json(path: Path) -> dict[str, Any]:
    try:
        data = json.loads(path.read_text(encoding="utf-8")) or {}
    except json.JSONDecodeError as exc:
        raise ValueError(f"Неправильный JSON в {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise TypeError(f"Верхний уровень JSON должен быть mapping, получено {type(data).__name__}")
    return data


def read_config_data(path: Union[str, Path, None]) -> Dict[str, Any]:
    """
    Читает YAML или JSON и возвращает сырые (непроверенные) данные.
    Без явного пути используется ./mirrorurl.yaml, если он есть, иначе пустой dict.
    """
    if path is None:
        if not _DEFAULT_CFG.is_file():
            return {}
        path_obj = _DEFAULT_CFG
    else:
        path_obj = Path(path).expanduser().resolve()
        if not path_obj.is_file():
            raise FileNotFoundError(errno.ENOENT, os.strerror(errno.ENOENT), str(path_obj))

    suffix = path_obj.suffix.lower()
    if suffix in (".yaml", ".yml"):
        return _read_yaml(path_obj)
    if suffix == ".json":
        return _read_json(path_obj)
    raise ValueError(f"Неподдерживаемый формат конфига: {suffix}")


def read_skip_file(path: Union[str, Path]) -> List[str]:
    """Читает skip-файл: JSON-массив строк (префиксов путей или URL)."""
    path_obj = Path(path).expanduser()
    try:
        data = json.loads(path_obj.read_text(encoding="utf-8"))
    except OSError as exc:
        raise FileNotFoundError(errno.ENOENT, f"Не удалось открыть skip-файл: {exc}", str(path_obj)) from exc
    except json.JSONDecodeError as exc:
        raise ValueError(f"Неправильный JSON в skip-файле {path_obj}: {exc}") from exc
    if not isinstance(data, list) or not all(isinstance(item, str) for item in data):
        raise TypeError(f"Skip-файл {path_obj} должен содержать JSON-массив строк")
    return data


def load_config(path: Union[str, Path, None], **overrides: Any) -> MirrorConfig:
    """
    Читает конфиг-файл, накладывает overrides (None пропускаются)
    и возвращает проверенный объект MirrorConfig.
    При ошибке схемы пробрасывает pydantic.ValidationError.
    """
    data = read_config_data(path)
    data.update({k: v for k, v in overrides.items() if v is not None})
    return MirrorConfig(**data)


__all__ = [
    "MirrorConfig",
    "ScopePolicy",
    "QueryPolicy",
    "default_concurrency",
    "load_config",
    "read_config_data",
    "read_skip_file",
]
