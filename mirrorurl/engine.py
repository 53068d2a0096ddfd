# File: mirrorurl/engine.py
"""mirrorurl.engine: точка запуска зеркалирования для CLI и тестов."""

from __future__ import annotations

import asyncio
import signal
from typing import Optional

from mirrorurl.config import MirrorConfig
from mirrorurl.crawler.crawler import MirrorCrawler
from mirrorurl.logger import logger
from mirrorurl.summary import RunSummary

__all__ = ["start_mirror", "install_interrupt_handler"]


def install_interrupt_handler(crawler: MirrorCrawler) -> Optional[signal.Signals]:
    """
    Первый Ctrl+C мягко останавливает обход (crawler.stop()),
    второй отменяет задачу целиком. Возвращает сигнал или None, если
    обработчик поставить нельзя (Windows, не главный поток).
    """
    loop = asyncio.get_running_loop()
    task = asyncio.current_task()

    def _on_interrupt() -> None:
        if crawler.summary.cancelled and task is not None:
            logger.warning("Повторное прерывание: отменяем немедленно")
            task.cancel()
            return
        crawler.stop()

    try:
        loop.add_signal_handler(signal.SIGINT, _on_interrupt)
    except (NotImplementedError, RuntimeError, ValueError):
        return None
    return signal.SIGINT


async def start_mirror(cfg: MirrorConfig) -> RunSummary:
    """
    Запускает MirrorCrawler в контексте и возвращает итоговый RunSummary.

    Parameters
    ----------
    cfg : MirrorConfig
        Конфигурация зеркалирования.

    Returns
    -------
    RunSummary
        Счётчики, записи манифеста и пропущенные URL.
    """
    async with MirrorCrawler(cfg) as crawler:
        installed = install_interrupt_handler(crawler)
        try:
            return await crawler.run()
        finally:
            if installed is not None:
                asyncio.get_running_loop().remove_signal_handler(installed)
