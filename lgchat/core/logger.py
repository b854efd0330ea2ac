import json
import logging
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path

from lgchat.config.paths import logs_dir
from lgchat.core.config import get_settings
from lgchat.core.trace import get_trace_id


class JsonFormatter(logging.Formatter):
    """Formatter serialising each record as one JSON line."""

    _EXTRA_FIELDS = ("status_code", "model", "chars", "elapsed_ms", "outcome", "utterance")

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        log_record = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "category": record.name,
            "message": record.getMessage(),
            "trace_id": get_trace_id() or None,
        }
        for key in self._EXTRA_FIELDS:
            value = getattr(record, key, None)
            if value is not None:
                log_record[key] = value
        if record.exc_info:
            log_record["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_record, ensure_ascii=False)


class SizeAndTimeRotatingFileHandler(TimedRotatingFileHandler):
    """Rotation on size and on time."""

    def __init__(
        self,
        filename: str | Path,
        max_bytes: int = 0,
        backup_count: int = 0,
        when: str = "midnight",
        interval: int = 1,
        encoding: str | None = "utf-8",
        delay: bool = True,
    ) -> None:
        self.maxBytes = max_bytes
        super().__init__(
            str(filename),
            when=when,
            interval=interval,
            backupCount=backup_count,
            encoding=encoding,
            delay=delay,
        )

    def shouldRollover(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        if self.maxBytes > 0:
            if self.stream is None:
                self.stream = self._open()
            msg = f"{self.format(record)}\n"
            if (self.stream.tell() + len(msg.encode(self.encoding or "utf-8"))) >= self.maxBytes:
                return True
        return super().shouldRollover(record)


def _log_dir() -> Path:
    settings = get_settings()
    if settings.log_dir:
        path = Path(settings.log_dir).expanduser()
        path.mkdir(parents=True, exist_ok=True)
        return path
    return logs_dir()


def _build_logger(name: str) -> logging.Logger:
    logger = logging.getLogger(f"lgchat.{name}")
    if logger.handlers:
        return logger

    settings = get_settings()
    handler = SizeAndTimeRotatingFileHandler(
        _log_dir() / f"{name}.jsonl",
        max_bytes=settings.log_rotate_mb * 1024 * 1024,
        backup_count=settings.log_retention_days,
    )
    handler.setFormatter(JsonFormatter())
    logger.setLevel(settings.log_level.upper())
    logger.addHandler(handler)
    return logger


_LOGGERS: dict[str, logging.Logger] = {}


def get_logger(name: str) -> logging.Logger:
    """Return an existing logger or build it on first use."""
    if name not in _LOGGERS:
        _LOGGERS[name] = _build_logger(name)
    return _LOGGERS[name]


client = get_logger("client")
conversation = get_logger("conversation")
speech = get_logger("speech")
ui = get_logger("ui")
store = get_logger("store")
