from __future__ import annotations

import json
import logging

from app.stockroom.core.config import settings


def configure_logging(level: str | None = None) -> None:
    logging.basicConfig(level=level or settings.LOG_LEVEL, format="%(message)s")


def log_json(logger: logging.Logger, payload: dict, *, level: int = logging.INFO) -> None:
    logger.log(level, json.dumps(payload, ensure_ascii=False, default=str))


def log_event(logger: logging.Logger, event: str, **fields) -> None:
    log_json(logger, {"event": event, **fields})
