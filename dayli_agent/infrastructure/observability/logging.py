import structlog
import logging
import sys
from typing import Dict, Any, List, Optional
from datetime import datetime, timezone
import os

# Client libraries that log every HTTP round trip at INFO
NOISY_LOGGERS = ("httpx", "httpcore", "openai", "anthropic", "langchain")


def _renderer(log_format: str):
    if log_format == "json":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer()


def setup_logging(
    log_level: str = "INFO",
    log_format: str = "json",
    service_name: str = "dayli-agent"
) -> None:
    """Setup structured logging configuration"""

    level = getattr(logging, log_level.upper(), logging.INFO)
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            add_service_context,
            _renderer(log_format),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    # Service identity rides along on every event
    structlog.contextvars.bind_contextvars(
        service=service_name,
        environment=os.getenv("ENVIRONMENT", "development"),
        version=os.getenv("SERVICE_VERSION", "unknown")
    )


def add_service_context(logger: logging.Logger, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Add request context to all log entries"""

    event_dict.setdefault("timestamp", datetime.now(timezone.utc).isoformat())

    bound = structlog.contextvars.get_contextvars()
    for key in ("request_id", "user_id"):
        if key in bound:
            event_dict.setdefault(key, bound[key])

    return event_dict


def bind_request_context(request_id: str, user_id: str) -> None:
    """Attach request identifiers to every log line emitted by this task"""
    structlog.contextvars.bind_contextvars(request_id=request_id, user_id=user_id)


def clear_request_context() -> None:
    structlog.contextvars.unbind_contextvars("request_id", "user_id")


class AgentLogger:
    """Specialized logger for pipeline stages"""

    def __init__(self, name: str):
        self.logger = structlog.get_logger(name)

    def log_understanding(
        self,
        user_id: str,
        utterance: str,
        intent: str,
        confidence: float,
        source: str,
        cached: bool = False,
        duration_ms: Optional[float] = None
    ):
        """Log the outcome of turning an utterance into a plan"""

        self.logger.info(
            "understanding",
            user_id=user_id,
            utterance=utterance,
            intent=intent,
            confidence=confidence,
            source=source,
            cached=cached,
            duration_ms=duration_ms
        )

    def log_capability_execution(
        self,
        capability: str,
        user_id: str,
        duration_ms: Optional[float] = None,
        success: bool = True,
        error_code: Optional[str] = None
    ):
        """Log one dispatched plan"""

        log = self.logger.info if success else self.logger.warning
        log(
            "capability_execution",
            capability=capability,
            user_id=user_id,
            duration_ms=duration_ms,
            success=success,
            error_code=error_code
        )

    def log_context_assembly(
        self,
        user_id: str,
        viewing_date: str,
        duration_ms: Optional[float] = None,
        degraded_sources: Optional[List[str]] = None,
        minimal: bool = False
    ):
        """Log how a context snapshot was assembled"""

        self.logger.info(
            "context_assembly",
            user_id=user_id,
            viewing_date=viewing_date,
            duration_ms=duration_ms,
            degraded_sources=degraded_sources or [],
            minimal=minimal
        )


# Global logger instance
agent_logger = AgentLogger("dayli_agent")


class _LatencyStats:
    def __init__(self):
        self.count = 0
        self.total_ms = 0.0
        self.min_ms: Optional[float] = None
        self.max_ms = 0.0

    def add(self, duration_ms: float) -> None:
        self.count += 1
        self.total_ms += duration_ms
        self.min_ms = duration_ms if self.min_ms is None else min(self.min_ms, duration_ms)
        self.max_ms = max(self.max_ms, duration_ms)

    def summary(self) -> Dict[str, float]:
        return {
            "count": self.count,
            "avg": self.total_ms / self.count if self.count else 0,
            "min": self.min_ms or 0,
            "max": self.max_ms,
        }


class MetricsCollector:
    """Stage latencies and pipeline counters, also emitted as debug log events"""

    def __init__(self):
        self.latencies: Dict[str, _LatencyStats] = {}
        self.counters: Dict[str, int] = {}

    def record_latency(self, operation: str, duration_ms: float, tags: Optional[Dict[str, str]] = None):
        """Record one duration for a stage (understanding, dispatch, context)"""

        self.latencies.setdefault(operation, _LatencyStats()).add(duration_ms)
        agent_logger.logger.debug(
            "metric",
            metric_type="latency",
            operation=operation,
            duration_ms=duration_ms,
            tags=tags or {}
        )

    def increment_counter(self, name: str, value: int = 1, tags: Optional[Dict[str, str]] = None):
        """Increment a counter metric"""

        self.counters[name] = self.counters.get(name, 0) + value
        agent_logger.logger.debug(
            "metric",
            metric_type="counter",
            name=name,
            value=value,
            tags=tags or {}
        )

    def get_metrics_summary(self) -> Dict[str, Any]:
        """Latencies as latency.<stage> with count/avg/min/max, counters as-is"""

        summary: Dict[str, Any] = {
            f"latency.{operation}": stats.summary() for operation, stats in self.latencies.items()
        }
        summary.update(self.counters)
        return summary

    def reset(self) -> None:
        self.latencies.clear()
        self.counters.clear()


# Global metrics collector
metrics_collector = MetricsCollector()
