import logging
from pathlib import Path
from typing import Optional

DEFAULT_LOG_PATH = Path("/tmp/mcv/conversion.log")

def setup_logging(log_path: Optional[Path] = None, debug: bool = False) -> logging.Logger:
    """
    Setup logging configuration for mcv.

    Creates the log directory and conversion.log file.
    Returns configured logger instance.

    Args:
        log_path: Path to log file (defaults to /tmp/mcv/conversion.log)
        debug: If True, enable DEBUG level logging including ffmpeg command lines
    """
    log_file = Path(log_path) if log_path else DEFAULT_LOG_PATH
    log_file.parent.mkdir(parents=True, exist_ok=True)

    level = logging.DEBUG if debug else logging.INFO

    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(levelname)s - %(message)s',
        handlers=[logging.FileHandler(log_file)],
        force=True  # Override any existing configuration
    )

    logger = logging.getLogger(__name__)
    logger.info(f"Logging initialized: {log_file} (debug={'ON' if debug else 'OFF'})")

    return logger
