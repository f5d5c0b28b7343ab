"""
utils/loggers.py

Console logger for modules, plus the append-only billing audit trail.

Public API
----------
- get_logger(name) -> logging.Logger
- get_audit_logger(file_path=None) -> logging.Logger
- log_event(logger, op, phase, message, extra=None, level=logging.INFO)
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Optional

from ..config import LOG_PATH

__all__ = ["get_logger", "get_audit_logger", "log_event", "AUDIT_LOGGER_NAME"]

AUDIT_LOGGER_NAME = "pos_billing.audit"


def get_logger(name="pos_billing"):
    logger = logging.getLogger(name)
    if not logger.handlers:
        logger.setLevel(logging.INFO)
        ch = logging.StreamHandler()
        ch.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s"))
        logger.addHandler(ch)
    return logger


class _JsonLineFormatter(logging.Formatter):
    """
    Minimal JSON-lines formatter:
      {"ts":"2025-09-16T12:00:01.123Z","level":"INFO","name":"pos_billing.audit","msg":"...","extra":{...}}
    """
    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        ts = datetime.now(timezone.utc).replace(tzinfo=None)
        payload = {
            "ts": ts.isoformat(timespec="milliseconds") + "Z",
            "level": record.levelname,
            "name": record.name,
            "msg": record.getMessage(),
        }
        if hasattr(record, "extra_payload") and isinstance(record.extra_payload, dict):
            payload["extra"] = record.extra_payload
        # Decimal amounts and dates serialize as strings
        return json.dumps(payload, ensure_ascii=False, default=str)


def get_audit_logger(file_path: Optional[str] = None, level: int = logging.INFO) -> logging.Logger:
    """
    Return the billing audit logger: JSON-lines to LOG_PATH (or `file_path`),
    WARNING+ mirrored to stderr. Reuses the same logger across calls.
    """
    logger = logging.getLogger(AUDIT_LOGGER_NAME)
    logger.setLevel(level)
    logger.propagate = False

    if logger.handlers:
        return logger

    log_file = Path(file_path) if file_path else LOG_PATH
    log_file.parent.mkdir(parents=True, exist_ok=True)

    fh = logging.FileHandler(str(log_file), mode="a", encoding="utf-8", delay=True)
    fh.setLevel(level)
    fh.setFormatter(_JsonLineFormatter())
    logger.addHandler(fh)

    sh = logging.StreamHandler()
    sh.setLevel(logging.WARNING)
    sh.setFormatter(_JsonLineFormatter())
    logger.addHandler(sh)

    return logger


def log_event(
    logger: logging.Logger,
    op: str,
    phase: str,
    message: str,
    extra: Dict[str, object] | None = None,
    level: int = logging.INFO,
) -> None:
    """
    Log a structured lifecycle event.

    Args:
        logger: Usually get_audit_logger().
        op: "checkout", "create_draft", "update_draft", "finalize", "cancel", "record_payment".
        phase: "commit", "rejected" or "retry".
        message: Human-readable short message.
        extra: Optional key/values (bill id/number, actor, amounts, error text).
        level: Logging level (default INFO).
    """
    extra_payload = {"op": op, "phase": phase}
    if extra:
        # Merge without overwriting the required keys
        for k, v in extra.items():
            if k not in extra_payload:
                extra_payload[k] = v
    logger.log(level, message, extra={"extra_payload": extra_payload})
