from __future__ import annotations

import json
import logging
import time
import uuid
from datetime import datetime, timezone

from django.conf import settings

# Values passed through `extra=` that end up as top-level JSON keys.
CONTEXT_FIELDS = (
    "request_id",
    "method",
    "path",
    "status_code",
    "duration_ms",
    "remote_addr",
    "user_id",
    "order_number",
    "report_rows",
)


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(
            (key, getattr(record, key)) for key in CONTEXT_FIELDS if getattr(record, key, None) is not None
        )
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


def _access_log_level(status_code: int) -> int:
    if status_code >= 500:
        return logging.ERROR
    if status_code >= 400:
        return logging.WARNING
    return logging.INFO


class RequestLogMiddleware:
    """Give each request an `X-Request-ID` and write one access log line for it.

    Audit rows and domain log lines pick the id up from `request.request_id`.
    Health check paths listed in `ACCESS_LOG_QUIET_PATHS` are served without a log line.
    """

    logger = logging.getLogger("api.request")

    def __init__(self, get_response):
        self.get_response = get_response
        self.quiet_paths = frozenset(getattr(settings, "ACCESS_LOG_QUIET_PATHS", ()))

    def __call__(self, request):
        started_at = time.perf_counter()
        request.request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex

        response = self.get_response(request)
        response["X-Request-ID"] = request.request_id
        if request.path in self.quiet_paths:
            return response

        user = getattr(request, "user", None)
        self.logger.log(
            _access_log_level(response.status_code),
            "request_completed",
            extra={
                "request_id": request.request_id,
                "method": request.method,
                "path": request.path,
                "status_code": response.status_code,
                "duration_ms": round((time.perf_counter() - started_at) * 1000, 2),
                "remote_addr": request.META.get("REMOTE_ADDR"),
                "user_id": str(user.pk) if user is not None and user.is_authenticated else None,
            },
        )
        return response
