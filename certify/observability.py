"""
Observability for the credential registry.

Everything the service emits about itself lives here: log formatting,
per-request context, in-process counters and the health report served
at /health/detailed.

Environment:
- CERTIFY_LOG_LEVEL   DEBUG | INFO | WARNING | ERROR (INFO when unset)
- CERTIFY_LOG_FORMAT  json | text (json when CERTIFY_PRODUCTION is on)
- CERTIFY_PRODUCTION  1 / true / yes

Keyword arguments passed to a logger become structured fields:

    logger = get_logger(__name__)
    logger.info("Credential issued", credential_id=7, issuer=issuer)
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
from threading import Lock
from typing import Any, Dict, Iterable, List, Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

# Set per request by the middleware and the signed-command dependency.
request_id_var: ContextVar[str] = ContextVar("request_id", default="")
caller_var: ContextVar[str] = ContextVar("caller", default="")

_TRUTHY = ("1", "true", "yes")
_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


# ============================================================
# SETTINGS
# ============================================================

@dataclass(frozen=True)
class LogSettings:
    level: int = logging.INFO
    json_output: bool = False

    @classmethod
    def from_env(cls) -> "LogSettings":
        production = os.environ.get("CERTIFY_PRODUCTION", "").lower() in _TRUTHY

        level_name = os.environ.get("CERTIFY_LOG_LEVEL", "INFO").upper()
        level = getattr(logging, level_name) if level_name in _LEVELS else logging.INFO

        fmt = os.environ.get("CERTIFY_LOG_FORMAT", "").lower()
        json_output = {"json": True, "text": False}.get(fmt, production)

        return cls(level=level, json_output=json_output)


# ============================================================
# FORMATTERS
# ============================================================

# Attributes every LogRecord carries; anything else came in through `extra`.
_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "taskName"}


def _extra_fields(record: logging.LogRecord) -> Dict[str, Any]:
    fields: Dict[str, Any] = {}
    for key, value in vars(record).items():
        if key in _RECORD_ATTRS or key.startswith("_"):
            continue
        try:
            json.dumps(value)
        except (TypeError, ValueError):
            value = str(value)
        fields[key] = value
    return fields


class JsonLogFormatter(logging.Formatter):
    """
    One JSON object per line.

        {"timestamp": "...", "level": "INFO", "logger": "certify.core.registry",
         "message": "Credential issued", "request_id": "1f0c2ab4",
         "caller": "<identity>", "credential_id": 7}
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for name, var in (("request_id", request_id_var), ("caller", caller_var)):
            if var.get():
                entry[name] = var.get()
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        entry.update(_extra_fields(record))
        return json.dumps(entry)


class ConsoleLogFormatter(logging.Formatter):
    """Single-line output for local development."""

    def format(self, record: logging.LogRecord) -> str:
        when = datetime.fromtimestamp(record.created, timezone.utc)
        request_id = request_id_var.get()
        tag = f"[{request_id[:8]}] " if request_id else ""

        line = (
            f"{when:%Y-%m-%d %H:%M:%S} {record.levelname:<8} "
            f"{tag}{record.name}: {record.getMessage()}"
        )
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


# ============================================================
# LOGGERS
# ============================================================

_PASSTHROUGH_KWARGS = frozenset(("exc_info", "stack_info", "stacklevel", "extra"))


class ContextLogger(logging.LoggerAdapter):
    """Moves keyword arguments into `extra` so formatters can pick them up."""

    def process(self, msg: str, kwargs: Dict[str, Any]) -> tuple:
        fields = dict(kwargs.pop("extra", None) or {})
        for key in [k for k in kwargs if k not in _PASSTHROUGH_KWARGS]:
            fields[key] = kwargs.pop(key)
        kwargs["extra"] = fields
        return msg, kwargs


def get_logger(name: str) -> ContextLogger:
    return ContextLogger(logging.getLogger(name), {})


def setup_logging(settings: Optional[LogSettings] = None) -> None:
    """Install a single stdout handler on the root logger."""
    settings = settings or LogSettings.from_env()

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(settings.level)
    handler.setFormatter(JsonLogFormatter() if settings.json_output else ConsoleLogFormatter())

    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(settings.level)

    # uvicorn and httpx are chatty at INFO
    for noisy in ("uvicorn.access", "httpx"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


# ============================================================
# REQUEST CONTEXT MIDDLEWARE
# ============================================================

class RequestContextMiddleware(BaseHTTPMiddleware):
    """
    Tags every request with an id and logs its outcome.

    The id comes from X-Request-ID when the client sends one and is echoed
    back on the response. The caller context var is cleared on the way out
    so identities never leak between requests on the same worker.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:8]
        request_id_var.set(request_id)
        started = time.perf_counter()
        status_code = 500

        try:
            response = await call_next(request)
            status_code = response.status_code
            response.headers["X-Request-ID"] = request_id
            return response
        except Exception as e:
            _request_logger.exception(
                "Unhandled error",
                method=request.method,
                path=request.url.path,
                error=str(e),
            )
            raise
        finally:
            elapsed_ms = (time.perf_counter() - started) * 1000
            _request_logger.log(
                logging.INFO if status_code < 400 else logging.WARNING,
                f"{request.method} {request.url.path} -> {status_code}",
                method=request.method,
                path=request.url.path,
                status_code=status_code,
                duration_ms=round(elapsed_ms, 2),
            )
            get_metrics().record_request(elapsed_ms, success=status_code < 500)
            request_id_var.set("")
            caller_var.set("")


_request_logger = get_logger("certify.request")


# ============================================================
# METRICS
# ============================================================

def _percentile(samples: List[float], p: float) -> Optional[float]:
    if not samples:
        return None
    ordered = sorted(samples)
    return ordered[min(int(len(ordered) * p), len(ordered) - 1)]


@dataclass
class MetricsCollector:
    """
    Process-local counters.

    Committed audit events are counted by type, rejected operations by
    error code. Latency samples are capped at MAX_SAMPLES each.
    """

    MAX_SAMPLES = 1000

    events_by_type: Counter = field(default_factory=Counter)
    rejections_by_code: Counter = field(default_factory=Counter)
    requests_total: int = 0
    requests_failed: int = 0
    append_latencies_ms: List[float] = field(default_factory=list)
    request_latencies_ms: List[float] = field(default_factory=list)

    _lock: Lock = field(default_factory=Lock, repr=False)

    def _sample(self, samples: List[float], value: float) -> None:
        samples.append(value)
        del samples[:-self.MAX_SAMPLES]

    def record_events(self, event_types: Iterable[str], latency_ms: float) -> None:
        """Count one committed audit batch."""
        with self._lock:
            self.events_by_type.update(event_types)
            self._sample(self.append_latencies_ms, latency_ms)

    def record_rejection(self, code: str) -> None:
        with self._lock:
            self.rejections_by_code[code] += 1

    def record_request(self, latency_ms: float, success: bool) -> None:
        with self._lock:
            self.requests_total += 1
            self.requests_failed += 0 if success else 1
            self._sample(self.request_latencies_ms, latency_ms)

    def reset(self) -> None:
        with self._lock:
            self.events_by_type.clear()
            self.rejections_by_code.clear()
            self.requests_total = self.requests_failed = 0
            self.append_latencies_ms.clear()
            self.request_latencies_ms.clear()

    def get_summary(self) -> Dict[str, Any]:
        with self._lock:
            events = self.events_by_type
            summary: Dict[str, Any] = {
                "credentials_issued": events["CredentialIssued"],
                "issuers_added": events["IssuerAdded"],
                "issuer_status_updates": events["IssuerStatusUpdated"],
                "events_by_type": dict(events),
                "rejections_by_code": dict(self.rejections_by_code),
                "requests_total": self.requests_total,
                "requests_failed": self.requests_failed,
            }
            for p in (50, 95, 99):
                summary[f"append_latency_p{p}_ms"] = _percentile(self.append_latencies_ms, p / 100)
            for p in (50, 95):
                summary[f"request_latency_p{p}_ms"] = _percentile(self.request_latencies_ms, p / 100)
            return summary


_metrics = MetricsCollector()


def get_metrics() -> MetricsCollector:
    return _metrics


# ============================================================
# HEALTH CHECKS
# ============================================================

@dataclass
class HealthStatus:
    healthy: bool
    checks: Dict[str, Dict[str, Any]]
    duration_ms: float


def _audit_checks(audit_log) -> Dict[str, Dict[str, Any]]:
    try:
        head = audit_log.get_head()
    except Exception as e:
        return {"audit_log": {"status": "unhealthy", "error": str(e)}}

    valid = audit_log.verify_integrity()
    return {
        "audit_log": {
            "status": "healthy",
            "event_count": head.next_sequence,
            "last_hash": f"{head.last_event_hash[:16]}..." if head.last_event_hash else None,
        },
        "audit_chain": {"status": "healthy" if valid else "unhealthy", "valid": valid},
    }


def check_health(registry=None, audit_log=None) -> HealthStatus:
    """
    Report liveness, audit log reachability, chain validity and registry size.

    Only the audit checks can make the report unhealthy.
    """
    started = time.perf_counter()
    checks: Dict[str, Dict[str, Any]] = {"liveness": {"status": "healthy"}}

    if audit_log is not None:
        checks.update(_audit_checks(audit_log))

    if registry is not None:
        checks["registry"] = {
            "status": "healthy",
            "total_credentials": registry.total_credentials(),
            "issuers": registry.issuer_counts(),
        }

    return HealthStatus(
        healthy=all(check["status"] == "healthy" for check in checks.values()),
        checks=checks,
        duration_ms=round((time.perf_counter() - started) * 1000, 2),
    )
