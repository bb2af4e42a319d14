import logging
import os
from datetime import datetime, timezone
from typing import Any

from pythonjsonlogger import json

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

LOG_FILE = os.getenv("LOG_FILE")

SERVICE_NAME = "outbox_service"

logger: logging.Logger = logging.getLogger(SERVICE_NAME)

stream_handler = logging.StreamHandler()


class CustomJSONFormatter(json.JsonFormatter):
    def add_fields(
        self,
        log_record: dict[str, Any],
        record: logging.LogRecord,
        message_dict: dict[str, Any],
    ) -> None:
        super().add_fields(log_record, record, message_dict)
        if not log_record.get("timestamp"):
            now = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S.%f")
            log_record["timestamp"] = now

        if log_record.get("level"):
            log_record["level"] = log_record["level"].upper()
        else:
            log_record["level"] = record.levelname

        log_record.setdefault("service", SERVICE_NAME)


formatter = CustomJSONFormatter(
    "%(timestamp)s %(level)s %(message)s %(module)s %(funcName)s"
)

stream_handler.setFormatter(formatter)

if not logger.handlers:
    logger.addHandler(stream_handler)
    if LOG_FILE:
        # файл пишем только если путь задан явно
        os.makedirs(os.path.dirname(LOG_FILE) or ".", exist_ok=True)
        file_handler = logging.FileHandler(LOG_FILE)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

logger.setLevel(LOG_LEVEL)
logger.propagate = False
