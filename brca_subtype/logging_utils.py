"""Logging helpers for pipeline runs."""

import sys
from pathlib import Path
from typing import Optional

from loguru import logger


def setup_logging(log_dir: Optional[str] = None, run_name: str = "pipeline",
                  level: str = "INFO") -> Optional[Path]:
    """Configure loguru sinks for a run and return the log file path."""
    logger.remove()
    logger.add(sys.stderr, level=level)

    if log_dir is None:
        return None

    base_dir = Path(log_dir).expanduser().resolve()
    base_dir.mkdir(parents=True, exist_ok=True)
    log_path = base_dir / f"{run_name}.log"
    logger.add(
        log_path,
        level=level,
        rotation="10 MB",
        backtrace=False,
        diagnose=False,
    )
    return log_path
