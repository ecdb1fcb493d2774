from __future__ import annotations

import sys
from pathlib import Path
from typing import List, Optional

from loguru import logger

from .config import ACCESS_LOG_PATH, APP_LOG_PATH, LOG_LEVEL

_SINK_IDS: List[int] = []


def _is_access(record) -> bool:
    return bool(record["extra"].get("access"))


def configure_logging(
    level: str = LOG_LEVEL,
    app_log_path: Optional[Path] = APP_LOG_PATH,
    access_log_path: Optional[Path] = ACCESS_LOG_PATH,
) -> None:
    """
    Install the service's loguru sinks; safe to call more than once.

    - stderr: application messages at ``level``
    - app_log_path: same messages, rotated at 10 MB
    - access_log_path: one JSON object per HTTP request (see api middleware)

    Pass None for a path to skip that file sink.
    """
    global _SINK_IDS
    for sink_id in _SINK_IDS:
        logger.remove(sink_id)
    _SINK_IDS = []

    # drop loguru's default stderr handler so messages are not printed twice
    try:
        logger.remove(0)
    except ValueError:
        pass

    _SINK_IDS.append(logger.add(sys.stderr, level=level, filter=lambda r: not _is_access(r)))

    if app_log_path is not None:
        app_log_path.parent.mkdir(parents=True, exist_ok=True)
        _SINK_IDS.append(
            logger.add(
                app_log_path,
                level=level,
                rotation="10 MB",
                retention=5,
                filter=lambda r: not _is_access(r),
            )
        )

    if access_log_path is not None:
        access_log_path.parent.mkdir(parents=True, exist_ok=True)
        _SINK_IDS.append(
            logger.add(access_log_path, level="INFO", serialize=True, rotation="10 MB", filter=_is_access)
        )

    logger.debug("Logging configured at level {}", level)
