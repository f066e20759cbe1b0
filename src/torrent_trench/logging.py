"""
Logging setup for torrent-trench

Console logging is always enabled; file logging is added when a log file is
configured. Trench runs log through a prefixing adapter so interleaved output
from concurrent runs stays attributable.
"""

import sys
import logging
from pathlib import Path
from typing import Optional

LOG_FORMAT_SIMPLE = '%(asctime)s %(levelname)-7s [%(name)s] %(message)s'
LOG_FORMAT_DETAILED = '%(asctime)s %(levelname)-7s [%(name)s] %(module)s.%(funcName)s:%(lineno)d - %(message)s'

# Third-party loggers that are too chatty below WARNING
QUIET_LOGGERS = ('apscheduler', 'urllib3', 'qbittorrentapi')


def setup_logging(config, trace_mode: bool = False) -> None:
    """
    Configure the root logger

    Args:
        config: Object providing get_log_level() and get_log_file()
        trace_mode: Use the detailed format with module/function/line
    """
    log_format = LOG_FORMAT_DETAILED if trace_mode else LOG_FORMAT_SIMPLE
    formatter = logging.Formatter(log_format)
    level = getattr(logging, str(config.get_log_level()).upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)

    # Avoid duplicate output when called more than once
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    log_file: Optional[Path] = config.get_log_file()
    if log_file is not None:
        try:
            log_file.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(log_file)
            file_handler.setLevel(level)
            file_handler.setFormatter(formatter)
            root_logger.addHandler(file_handler)
        except OSError as e:
            from torrent_trench.errors import LoggingSetupError
            error = LoggingSetupError(str(log_file), f"{type(e).__name__}: {e}")
            print(f"Failed to setup file logging, continuing with console only\n{error}", file=sys.stderr)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Get a named logger"""
    return logging.getLogger(name)


class TrenchLoggerAdapter(logging.LoggerAdapter):
    """Prefixes every message with the trench run it belongs to"""

    def process(self, msg, kwargs):
        return f"[{self.extra['context']}] {msg}", kwargs


def get_trench_logger(trench_name: str, identity: str, is_fork: bool = False) -> TrenchLoggerAdapter:
    """
    Get a logger for a single trench run

    Args:
        trench_name: Name of the trench being run
        identity: Client identity (endpoint URL)
        is_fork: Whether the trench was reached through a fork step

    Returns:
        Logger adapter prefixing messages with 'Trench <name> [(fork)] on <identity>'
    """
    fork_marker = ' (fork)' if is_fork else ''
    context = f"Trench {trench_name}{fork_marker} on {identity}"
    return TrenchLoggerAdapter(logging.getLogger('torrent_trench.runner'), {'context': context})
