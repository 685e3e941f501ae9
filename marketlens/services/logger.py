"""Centralized logging service using loguru."""

import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from loguru import logger

from marketlens.config import settings

LOG_DIR = Path(settings.log_dir)
LOG_DIR.mkdir(parents=True, exist_ok=True)

# Remove default handler
logger.remove()

# Add console handler with color
logger.add(
    sys.stderr,
    format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>",
    level=settings.app_log_level.upper(),
    colorize=True,
)

# Add file handler
logger.add(
    LOG_DIR / "marketlens_{time:YYYY-MM-DD}.log",
    format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}",
    level="DEBUG",
    rotation="00:00",  # New file at midnight
    retention="7 days",
    compression="zip",
)

# Reduce noise from network libraries
for logger_name in ("httpx", "httpcore", "hpack", "asyncio"):
    logging.getLogger(logger_name).setLevel(settings.noisy_log_level.upper())


def log_job_step(
    job_id: int,
    step: str,
    status: str,
    data: Optional[dict] = None,
) -> None:
    """Log a research job lifecycle step."""
    step_data = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "job_id": job_id,
        "step": step,
        "status": status,
        "data": data,
    }
    if status == "failed":
        logger.warning(f"JOB_STEP: {step_data}")
    else:
        logger.info(f"JOB_STEP: {step_data}")


def log_event(event_type: str, subscribers: int, **fields) -> None:
    """Trace one event-bus emission. Debug level; emissions are frequent."""
    logger.debug(f"EVENT: {event_type} -> {subscribers} subscriber(s) {fields or ''}")
