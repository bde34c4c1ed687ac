import json
import logging
import sys
from datetime import UTC, datetime
from typing import Optional

from trendscope.config import LoggingSettings, settings

# Attributes passed through `extra=` by the request logger
_EXTRA_FIELDS = ("method", "path", "status", "duration_ms", "request_id")


class JSONFormatter(logging.Formatter):
    """One JSON object per line, for log shippers."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for field in _EXTRA_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                log_data[field] = value
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_data, ensure_ascii=False)


def configure_logging(config: Optional[LoggingSettings] = None) -> None:
    """Installs a single stderr handler on the root logger, console or JSON formatted."""
    cfg = config or settings.logging
    handler = logging.StreamHandler(sys.stderr)
    if cfg.format == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s"))
    logging.basicConfig(
        level=getattr(logging, cfg.level.upper(), logging.INFO),
        handlers=[handler],
        force=True,
    )
