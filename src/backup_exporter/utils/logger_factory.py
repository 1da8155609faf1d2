"""Factories for application loggers and helper utilities."""

import traceback

from backup_exporter.utils.logger.config import LogLevel, LoggerConfig
from backup_exporter.utils.logger.handlers.rotating_file import ErrorFileHandler, RotatingFileHandler
from backup_exporter.utils.logger.logger import Logger


class EnhancedLoggerFactory:
    """Convenience constructors for configured application loggers."""

    @staticmethod
    def create_application_logger(name: str = "backup_exporter",
                                  enable_stdout: bool = False,
                                  log_level: LogLevel = LogLevel.INFO,
                                  base_dir: str = "logs",
                                  config_prefix: str | None = None) -> Logger:
        """Create the main application logger with rotating file handlers.

        :param name: Logger name used in records and filenames.
        :param enable_stdout: Whether to emit log lines to stdout.
        :param log_level: Minimum log level captured by the logger.
        :param base_dir: Directory receiving the log files.
        :param config_prefix: Optional subdirectory for log files; defaults to ``name``.
        :return: Configured :class:`Logger` instance.
        """
        config = LoggerConfig(
            base_level=log_level,
            do_stdout=enable_stdout,
            str_format="%(asctime)s [%(levelname)s] %(name)s - %(message)s",
        )
        prefix = name if config_prefix is None else config_prefix

        handlers = [
            RotatingFileHandler(base_dir=base_dir, filename_prefix=prefix, rotation="daily"),
            ErrorFileHandler(base_dir=base_dir, filename_prefix=prefix, rotation="daily"),
        ]
        return Logger(config=config, name=name, handlers=handlers)


def log_exception(logger: Logger, exc: BaseException, context: str = "") -> None:
    """Log an exception with traceback using the provided logger.

    :param logger: Logger instance used for reporting the failure.
    :param exc: Exception that should be logged.
    :param context: Optional textual context describing the failure.
    """
    tb_str = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    logger.error(f"EXCEPTION in {context}: {type(exc).__name__}: {exc}\n{tb_str}")
