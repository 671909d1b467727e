"""
Logging configuration for the mint reconciliation service.
Concise console output by default; RECONCILE_DEBUG=1 adds a verbose log file.
"""
import logging
import sys
import threading
from pathlib import Path

DEBUG_LOG_PATH = Path(__file__).parent / 'reconcile_debug.log'

NOISY_LOGGERS = ['urllib3', 'web3', 'web3.providers', 'web3.RequestManager', 'asyncio']


class ConciseFormatter(logging.Formatter):
    """Single-line, concise log format."""

    FORMATS = {
        logging.DEBUG: "\033[90m[D]\033[0m %(name)s: %(message)s",
        logging.INFO: "\033[32m[I]\033[0m %(message)s",
        logging.WARNING: "\033[33m[W]\033[0m %(message)s",
        logging.ERROR: "\033[31m[E]\033[0m %(name)s: %(message)s",
        logging.CRITICAL: "\033[31;1m[!]\033[0m %(name)s: %(message)s",
    }

    def format(self, record):
        log_fmt = self.FORMATS.get(record.levelno, self.FORMATS[logging.INFO])
        formatter = logging.Formatter(log_fmt)
        return formatter.format(record)


class VerboseFormatter(logging.Formatter):
    """Detailed format for debug file logging."""
    def __init__(self):
        super().__init__(
            fmt='%(asctime)s [%(levelname)s] %(name)s: %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )


class InitState:
    """One-time initialisation guard, passed around instead of a module flag."""

    def __init__(self):
        self._lock = threading.Lock()
        self.configured = False

    def claim(self):
        """Return True exactly once, for the caller that should do the setup."""
        with self._lock:
            if self.configured:
                return False
            self.configured = True
            return True


def setup_logging(state, level=logging.INFO, debug=False):
    """
    Configure the root logger once per InitState.

    With debug=True everything at DEBUG and above is also written to
    reconcile_debug.log.
    """
    if not state.claim():
        return logging.getLogger()

    for logger_name in NOISY_LOGGERS:
        logging.getLogger(logger_name).setLevel(logging.WARNING)

    root = logging.getLogger()
    root.setLevel(logging.DEBUG if debug else level)
    root.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(ConciseFormatter())
    handler.setLevel(level)
    handler.name = 'console'
    root.addHandler(handler)

    if debug:
        file_handler = logging.FileHandler(DEBUG_LOG_PATH, mode='a', encoding='utf-8')
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(VerboseFormatter())
        file_handler.name = 'debug_file'
        root.addHandler(file_handler)
        root.info(f"RECONCILE_DEBUG enabled - verbose logs written to {DEBUG_LOG_PATH}")

    return root
