"""
Observability Module - Logging, Metrics and Health

Provides:
- Structured JSON logging carrying request ID and acting caller
- Request/response logging middleware
- Ledger metrics (appends, transfers, rejections by reason)
- Health checks (event chain and supply invariant)

Configuration:
- BONDLEDGER_LOG_LEVEL: DEBUG, INFO, WARNING, ERROR (default: INFO)
- BONDLEDGER_LOG_FORMAT: json, text (default: json in production)
- BONDLEDGER_PRODUCTION: Enable production mode

Usage:
    from bondledger.observability import get_logger

    logger = get_logger(__name__)
    logger.info("Transfer applied", sender=sender, recipient=recipient)
"""

import json
import logging
import os
import sys
import time
import uuid
from collections import Counter
from contextvars import ContextVar
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

# Context variables for request tracking
request_id_var: ContextVar[str] = ContextVar("request_id", default="")
caller_var: ContextVar[str] = ContextVar("caller", default="")

CALLER_HEADER = "X-Caller"


# ============================================================
# CONFIGURATION
# ============================================================

def _is_production() -> bool:
    return os.environ.get("BONDLEDGER_PRODUCTION", "").lower() in ("1", "true", "yes")


def _get_log_level() -> int:
    level_str = os.environ.get("BONDLEDGER_LOG_LEVEL", "INFO").upper()
    levels = {
        "DEBUG": logging.DEBUG,
        "INFO": logging.INFO,
        "WARNING": logging.WARNING,
        "ERROR": logging.ERROR,
        "CRITICAL": logging.CRITICAL,
    }
    return levels.get(level_str, logging.INFO)


def _use_json_logging() -> bool:
    format_str = os.environ.get("BONDLEDGER_LOG_FORMAT", "").lower()
    if format_str == "json":
        return True
    if format_str == "text":
        return False
    return _is_production()


# ============================================================
# STRUCTURED LOGGING
# ============================================================

_STANDARD_RECORD_FIELDS = frozenset((
    "name", "msg", "args", "created", "levelname", "levelno",
    "pathname", "filename", "module", "lineno", "funcName",
    "exc_info", "exc_text", "stack_info", "message", "msecs",
    "relativeCreated", "thread", "threadName", "processName",
    "process", "taskName",
))


class StructuredFormatter(logging.Formatter):
    """
    JSON formatter.

    Output format:
    {
        "timestamp": "2024-01-15T10:30:00.000Z",
        "level": "INFO",
        "logger": "bondledger.core.ledger",
        "message": "Transfer applied",
        "request_id": "abc-123",
        "caller": "0x...",
        ...extra fields...
    }
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        request_id = request_id_var.get()
        if request_id:
            log_data["request_id"] = request_id

        caller = caller_var.get()
        if caller:
            log_data["caller"] = caller

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key in _STANDARD_RECORD_FIELDS or key.startswith("_"):
                continue
            try:
                json.dumps(value)
                log_data[key] = value
            except (TypeError, ValueError):
                log_data[key] = str(value)

        return json.dumps(log_data)


class TextFormatter(logging.Formatter):
    """Human-readable formatter for development."""

    def format(self, record: logging.LogRecord) -> str:
        prefix = ""
        request_id = request_id_var.get()
        if request_id:
            prefix = f"[{request_id[:8]}] "

        timestamp = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")
        msg = f"{timestamp} {record.levelname:8} {prefix}{record.name}: {record.getMessage()}"

        if record.exc_info:
            msg += "\n" + self.formatException(record.exc_info)

        return msg


class ContextLogger(logging.LoggerAdapter):
    """
    Logger adapter that moves keyword arguments into the record's extras.

    Usage:
        logger = get_logger(__name__)
        logger.warning("Transfer rejected", reason="HoldingLimitExceeded")
    """

    def process(self, msg: str, kwargs: Dict[str, Any]) -> tuple:
        extra = kwargs.get("extra", {})
        for key in list(kwargs.keys()):
            if key not in ("exc_info", "stack_info", "stacklevel", "extra"):
                extra[key] = kwargs.pop(key)
        kwargs["extra"] = extra
        return msg, kwargs


def get_logger(name: str) -> ContextLogger:
    return ContextLogger(logging.getLogger(name), {})


def setup_logging() -> None:
    """
    Configure root logging for the service.

    Call this once at application startup.
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(_get_log_level())

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(_get_log_level())
    if _use_json_logging():
        handler.setFormatter(StructuredFormatter())
    else:
        handler.setFormatter(TextFormatter())
    root_logger.addHandler(handler)

    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


# ============================================================
# REQUEST CONTEXT MIDDLEWARE
# ============================================================

class RequestContextMiddleware(BaseHTTPMiddleware):
    """
    Sets up per-request logging context.

    - Generates a request ID (or reuses X-Request-ID)
    - Records the acting caller from the X-Caller header
    - Logs each request with timing
    """

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint
    ) -> Response:
        request_id = request.headers.get("X-Request-ID", str(uuid.uuid4())[:8])
        request_id_var.set(request_id)
        caller_var.set(request.headers.get(CALLER_HEADER, "").lower())

        logger = get_logger("bondledger.request")
        start_time = time.perf_counter()

        try:
            response = await call_next(request)

            duration_ms = (time.perf_counter() - start_time) * 1000
            log_level = logging.INFO if response.status_code < 400 else logging.WARNING
            logger.log(
                log_level,
                f"{request.method} {request.url.path} -> {response.status_code}",
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                duration_ms=round(duration_ms, 2),
            )
            get_metrics().record_request(duration_ms, response.status_code < 400)

            response.headers["X-Request-ID"] = request_id
            return response

        except Exception as e:
            duration_ms = (time.perf_counter() - start_time) * 1000
            logger.exception(
                f"{request.method} {request.url.path} -> 500",
                method=request.method,
                path=request.url.path,
                status_code=500,
                duration_ms=round(duration_ms, 2),
                error=str(e),
            )
            get_metrics().record_request(duration_ms, False)
            raise

        finally:
            request_id_var.set("")
            caller_var.set("")


# ============================================================
# METRICS
# ============================================================

@dataclass
class MetricsCollector:
    """
    In-process counters for the ledger and its HTTP surface.

    Latency is kept as a running total plus the worst case; no samples
    are retained.
    """

    events_appended: int = 0
    appends: int = 0
    transfers_applied: int = 0
    rejections: Counter = field(default_factory=Counter)
    append_latency_total_ms: float = 0.0
    append_latency_max_ms: float = 0.0

    requests_total: int = 0
    requests_failed: int = 0
    request_latency_total_ms: float = 0.0

    def record_append(self, event_count: int, latency_ms: float) -> None:
        self.appends += 1
        self.events_appended += event_count
        self.append_latency_total_ms += latency_ms
        self.append_latency_max_ms = max(self.append_latency_max_ms, latency_ms)

    def record_transfer(self) -> None:
        self.transfers_applied += 1

    def record_rejection(self, reason: str) -> None:
        self.rejections[reason] += 1

    def record_request(self, latency_ms: float, success: bool) -> None:
        self.requests_total += 1
        if not success:
            self.requests_failed += 1
        self.request_latency_total_ms += latency_ms

    def get_summary(self) -> Dict[str, Any]:
        return {
            "events_appended": self.events_appended,
            "transfers_applied": self.transfers_applied,
            "rejections": dict(self.rejections),
            "requests_total": self.requests_total,
            "requests_failed": self.requests_failed,
            "append_latency_mean_ms": (
                round(self.append_latency_total_ms / self.appends, 3) if self.appends else None
            ),
            "append_latency_max_ms": round(self.append_latency_max_ms, 3),
            "request_latency_mean_ms": (
                round(self.request_latency_total_ms / self.requests_total, 3)
                if self.requests_total else None
            ),
        }


_metrics = MetricsCollector()


def get_metrics() -> MetricsCollector:
    """Get the global metrics collector."""
    return _metrics


def reset_metrics() -> None:
    """Replace the global collector (tests)."""
    global _metrics
    _metrics = MetricsCollector()


# ============================================================
# HEALTH CHECKS
# ============================================================

@dataclass
class HealthStatus:
    healthy: bool
    checks: Dict[str, Dict[str, Any]]
    duration_ms: float


def check_health(ledger=None, event_store=None) -> HealthStatus:
    """
    Run all health checks.

    Args:
        ledger: TokenLedger instance
        event_store: EventStore instance
    """
    start = time.perf_counter()
    checks = {}
    all_healthy = True

    checks["liveness"] = {"status": "healthy"}

    if event_store:
        try:
            head = event_store.get_head()
            checks["event_store"] = {
                "status": "healthy",
                "event_count": head.next_sequence,
                "last_hash": head.last_event_hash[:16] + "..." if head.last_event_hash else None,
            }
        except Exception as e:
            checks["event_store"] = {"status": "unhealthy", "error": str(e)}
            all_healthy = False

    if ledger:
        is_valid = ledger.verify_chain_integrity()
        checks["chain_integrity"] = {
            "status": "healthy" if is_valid else "unhealthy",
            "valid": is_valid,
            "event_count": ledger.event_count,
        }
        supply_ok = ledger.supply_invariant_holds()
        checks["supply_invariant"] = {
            "status": "healthy" if supply_ok else "unhealthy",
            "total_supply": str(ledger.total_supply),
            "holders": len(ledger.holders()),
        }
        if not (is_valid and supply_ok):
            all_healthy = False

    duration_ms = (time.perf_counter() - start) * 1000

    return HealthStatus(
        healthy=all_healthy,
        checks=checks,
        duration_ms=round(duration_ms, 2),
    )
