"""Small structured logging helper.

Membership operations log JSON strings so they can be consumed by any log
collector without introducing new dependencies.
"""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from typing import Any

from orgroster.core.request_context import get_correlation_id


def log_json(
    logger: logging.Logger,
    level: int,
    event: str,
    exc_info: BaseException | None = None,
    **fields: Any,
) -> None:
    """Emit a single JSON log line with the current correlation ID.

    When `exc_info` is given the traceback is attached by the logging
    framework and the exception type/message are added to the payload.
    """

    payload: dict[str, Any] = {
        "timestamp": datetime.now(UTC).isoformat(),
        "event": event,
    }
    correlation_id = get_correlation_id()
    if correlation_id:
        payload["correlation_id"] = correlation_id

    if exc_info is not None:
        payload["exception"] = exc_info.__class__.__name__
        payload["error"] = str(exc_info)

    payload.update(fields)
    logger.log(level, json.dumps(payload, default=str), exc_info=exc_info)
