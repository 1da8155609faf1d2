"""Asynchronous buffered logger that feeds custom handlers."""

import asyncio
import sys
import traceback
from typing import Optional

from colorama import Fore, Style, init as colorama_init

from backup_exporter.utils.logger.config import LogEvent, LogLevel, LoggerConfig
from backup_exporter.utils.logger.handlers.base import BaseLogHandler
from backup_exporter.utils.misc import time_iso8601, time_s

colorama_init(autoreset=True)


LOG_COLORS = {
    LogLevel.TRACE: Fore.LIGHTBLACK_EX,
    LogLevel.DEBUG: Fore.LIGHTBLACK_EX,
    LogLevel.INFO: Fore.GREEN,
    LogLevel.WARNING: Fore.YELLOW,
    LogLevel.ERROR: Fore.RED + Style.BRIGHT,
    LogLevel.CRITICAL: Fore.RED + Style.BRIGHT,
}

ICONS = {
    LogLevel.TRACE: "🔍", LogLevel.DEBUG: "🐞", LogLevel.INFO: "ℹ️",
    LogLevel.WARNING: "⚠️", LogLevel.ERROR: "❌", LogLevel.CRITICAL: "🔥",
}


class Logger:
    """Asynchronous logger that buffers messages before dispatching them.

    Messages are formatted synchronously by the level methods and queued; an
    ingest task started by :meth:`start` moves them into a buffer that is
    flushed to every handler when it fills up, when it ages past
    ``buffer_timeout``, or immediately for WARNING and above.
    """

    def __init__(
        self,
        config: Optional[LoggerConfig] = None,
        name: str = "",
        handlers: Optional[list[BaseLogHandler]] = None,
    ):
        """Initialise the logger with optional configuration and handlers.

        :param config: Configuration settings controlling buffering and output.
        :param name: Name prefix used in emitted log records.
        :param handlers: Sequence of :class:`BaseLogHandler` instances.
        :raises TypeError: If a provided handler does not extend :class:`BaseLogHandler`.
        """
        self._config = config if config is not None else LoggerConfig()
        self._name = name
        self._handlers = list(handlers or [])

        for handler in self._handlers:
            if not isinstance(handler, BaseLogHandler):
                raise TypeError(f"Invalid handler; expected BaseLogHandler but got {type(handler).__name__}")
            handler.add_primary_config(self._config)

        self._buffer: list[LogEvent] = []
        self._buffer_start_time = time_s()

        self._msg_queue: asyncio.Queue = asyncio.Queue()
        self._is_running = True
        self._log_ingestor_task: Optional[asyncio.Task] = None

    async def _flush_buffer(self) -> None:
        """Flush the buffered log events to all registered handlers."""
        batch = list(self._buffer)
        self._buffer.clear()
        self._buffer_start_time = time_s()
        for handler in self._handlers:
            await handler.push(batch)

    async def _log_ingestor(self) -> None:
        """Consume queued log events and dispatch them to handlers."""
        while self._is_running or not self._msg_queue.empty():
            try:
                event: LogEvent = await self._msg_queue.get()
            except asyncio.CancelledError:
                break

            try:
                self._buffer.append(event)

                if self._config.do_stdout:
                    color = LOG_COLORS.get(event.level, "")
                    print(color + event.text + Style.RESET_ALL)

                is_urgent = event.level >= LogLevel.WARNING
                is_buffer_full = len(self._buffer) >= self._config.buffer_capacity
                is_buffer_expired = (time_s() - self._buffer_start_time) >= self._config.buffer_timeout

                if is_urgent or is_buffer_full or is_buffer_expired:
                    await self._flush_buffer()
            except Exception:
                traceback.print_exc(file=sys.stderr)
            finally:
                self._msg_queue.task_done()

    def _process_log(self, level: LogLevel, msg: str) -> None:
        """Queue ``msg`` if the logger is running and ``level`` passes the threshold."""
        if not self._is_running or level < self._config.base_level:
            return
        try:
            log_msg = self._config.str_format % {
                "asctime": time_iso8601(),
                "icon": ICONS.get(level, "•"),
                "name": self._name,
                "levelname": level.name,
                "message": msg,
            }
            self._msg_queue.put_nowait(LogEvent(text=log_msg, level=level))
        except Exception:
            traceback.print_exc(file=sys.stderr)

    def set_log_level(self, level: LogLevel) -> None:
        """Modify the logger's base log level at runtime."""
        self.debug(f"Changing base log level from {self._config.base_level.name} to {level.name}")
        self._config.base_level = level
        for handler in self._handlers:
            handler.add_primary_config(self._config)

    def trace(self, msg: str) -> None:
        self._process_log(LogLevel.TRACE, msg)

    def debug(self, msg: str) -> None:
        self._process_log(LogLevel.DEBUG, msg)

    def info(self, msg: str) -> None:
        self._process_log(LogLevel.INFO, msg)

    def warning(self, msg: str) -> None:
        self._process_log(LogLevel.WARNING, msg)

    def error(self, msg: str) -> None:
        self._process_log(LogLevel.ERROR, msg)

    def critical(self, msg: str) -> None:
        self._process_log(LogLevel.CRITICAL, msg)

    async def start(self) -> None:
        """Start the ingest task and the underlying handlers."""
        self._is_running = True
        self._msg_queue = asyncio.Queue()
        for h in self._handlers:
            await h.start()
        self._log_ingestor_task = asyncio.create_task(self._log_ingestor())

    async def shutdown(self) -> None:
        """Flush remaining events and stop the logger and handlers."""
        self._is_running = False
        await asyncio.sleep(0)

        try:
            await asyncio.wait_for(self._msg_queue.join(), timeout=2.0)
        except asyncio.TimeoutError:
            print("[Logger] drain timeout; forcing shutdown", file=sys.stderr)

        if self._buffer:
            await self._flush_buffer()

        if self._log_ingestor_task is not None:
            # The ingestor may be parked on an empty queue; it never wakes on its own.
            self._log_ingestor_task.cancel()
            try:
                await self._log_ingestor_task
            except asyncio.CancelledError:
                pass
            self._log_ingestor_task = None

        for h in self._handlers:
            try:
                await h.shutdown()
            except Exception:
                traceback.print_exc(file=sys.stderr)

    def is_running(self) -> bool:
        return self._is_running

    def get_name(self) -> str:
        return self._name

    def get_config(self) -> LoggerConfig:
        return self._config
