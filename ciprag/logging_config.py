"""
ciprag Logging
==============

Log setup for ingestion, retrieval and upload runs.

Records about a document carry its context as logging ``extra`` fields
(document_key, origin, page, chunks, duration). document_context() builds
that dict so call sites stay short:

    logger.info("Ingested ...", extra=document_context(document, chunks=12))

Two output formats share the same context:
- JSON lines (LOG_JSON=true), one object per record
- Console lines with the context appended as [key=value ...]

Queries are cut to QUERY_PREVIEW_CHARS in both formats.

Usage:
    from ciprag.config import get_settings
    from ciprag.logging_config import setup_logging

    setup_logging(get_settings().logging)
"""

import json
import logging
import logging.handlers
import sys
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

from ciprag.config import LoggingConfig

CONTEXT_FIELDS = ("document_key", "origin", "page", "chunks", "duration", "query")
QUERY_PREVIEW_CHARS = 80

# Third-party loggers held at WARNING whatever the configured level
QUIET_LOGGERS = ("urllib3", "pdfminer", "pdfplumber")

# Marks handlers installed by setup_logging so a second call replaces them
_HANDLER_MARK = "_ciprag_handler"


def document_context(document, **fields: Any) -> Dict[str, Any]:
    """
    Build the ``extra`` dict for a log call about one document.

    Args:
        document: Anything with document_key and origin (SourceDocument, DocumentRecord)
        **fields: Further context such as page=3 or chunks=12
    """
    context: Dict[str, Any] = {
        "document_key": document.document_key,
        "origin": document.origin,
    }
    context.update(fields)
    return context


def record_context(record: logging.LogRecord) -> Dict[str, Any]:
    """Context fields present on a record, in CONTEXT_FIELDS order, ready to print."""
    context = {}
    for key in CONTEXT_FIELDS:
        value = getattr(record, key, None)
        if value is None:
            continue
        if isinstance(value, Enum):
            value = value.value
        if key == "query":
            value = str(value)
            if len(value) > QUERY_PREVIEW_CHARS:
                value = value[:QUERY_PREVIEW_CHARS] + "..."
        context[key] = value
    return context


class JSONFormatter(logging.Formatter):
    """
    One JSON object per record.

        {"ts": "...", "service": "ciprag", "level": "INFO",
         "logger": "ciprag.rag.ingestion", "msg": "...", "document_key": "...", ...}
    """

    def __init__(self, service: str = "ciprag"):
        super().__init__()
        self.service = service

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "service": self.service,
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        entry.update(record_context(record))

        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


class ConsoleFormatter(logging.Formatter):
    """Human-readable lines; document context follows the message."""

    def __init__(self):
        super().__init__(
            "%(asctime)s [%(levelname)-8s] %(name)-26s | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    def format(self, record: logging.LogRecord) -> str:
        text = super().format(record)
        context = record_context(record)
        if not context:
            return text

        # Traceback lines stay below the context
        first, newline, rest = text.partition("\n")
        pairs = " ".join(f"{key}={value}" for key, value in context.items())
        return f"{first} [{pairs}]{newline}{rest}"


def _build_handlers(config: LoggingConfig) -> List[logging.Handler]:
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stderr)]

    if config.log_file:
        path = Path(config.log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.handlers.RotatingFileHandler(
            path,
            maxBytes=config.max_mb * 1024 * 1024,
            backupCount=config.backup_count,
            encoding="utf-8",
        ))

    return handlers


def setup_logging(config: Optional[LoggingConfig] = None) -> None:
    """
    Install ciprag's handlers on the root logger.

    Handlers from an earlier call are closed and replaced; handlers
    installed by anything else are left alone.

    Args:
        config: Logging settings (default: LoggingConfig() from the environment)
    """
    config = config or LoggingConfig()

    root = logging.getLogger()
    level = logging.getLevelName(config.level.upper())
    root.setLevel(level if isinstance(level, int) else logging.INFO)

    for handler in [h for h in root.handlers if getattr(h, _HANDLER_MARK, False)]:
        root.removeHandler(handler)
        handler.close()

    formatter = JSONFormatter() if config.json_logs else ConsoleFormatter()
    for handler in _build_handlers(config):
        handler.setFormatter(formatter)
        setattr(handler, _HANDLER_MARK, True)
        root.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    root.debug(
        f"Logging configured: level={config.level} json={config.json_logs} "
        f"file={config.log_file or 'none'}"
    )
