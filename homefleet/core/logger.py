"""Unified logging for homefleet with console and file output."""
import logging
import socket
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler

console = Console()

# Log file configuration
LOG_DIR = Path("/var/log/homefleet")
LOG_FILE = LOG_DIR / "homefleet.log"

# Track if file logging has been set up
_file_logging_configured = False


def setup_file_logging(log_file: str = None, verbose: bool = False):
    """Set up file logging for homefleet runs.

    Args:
        log_file: Path to log file (defaults to /var/log/homefleet/homefleet.log)
        verbose: Enable debug-level logging

    Note:
        Creates log directory if it doesn't exist.
        Falls back to /tmp if /var/log/homefleet is not writable.
    """
    global _file_logging_configured

    if _file_logging_configured:
        return

    target_log_file = Path(log_file) if log_file else LOG_FILE

    try:
        target_log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(target_log_file)
    except PermissionError:
        # Non-root runs land in /tmp
        target_log_file = Path("/tmp/homefleet.log")
        file_handler = logging.FileHandler(target_log_file)

    root_logger = logging.getLogger("homefleet")
    file_handler.setLevel(logging.DEBUG if verbose else logging.INFO)

    # Hostname in every line so a shared log directory stays readable
    file_formatter = logging.Formatter(
        f"%(asctime)s | {socket.gethostname()} | %(name)s | %(levelname)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    file_handler.setFormatter(file_formatter)
    root_logger.addHandler(file_handler)

    root_logger.setLevel(logging.DEBUG if verbose else logging.INFO)

    _file_logging_configured = True

    root_logger.info(f"homefleet logging initialized: {target_log_file}")


def get_logger(name: str) -> logging.Logger:
    """Get a configured logger instance with console output.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Configured logger with Rich console handler

    Note:
        File logging must be enabled separately via setup_file_logging()
    """
    logger = logging.getLogger(name)

    if not any(isinstance(h, RichHandler) for h in logger.handlers):
        handler = RichHandler(console=console, show_path=False)
        handler.setFormatter(logging.Formatter("%(message)s"))
        logger.addHandler(handler)
        logger.setLevel(logging.INFO)

    return logger
