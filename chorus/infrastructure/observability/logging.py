import structlog
import logging
import sys
from typing import Dict, Any, Optional, Iterable
from datetime import datetime, timezone
import os


def setup_logging(
    log_level: str = "INFO",
    log_format: str = "json",
    service_name: str = "chorus"
) -> None:
    """Setup structured logging configuration"""

    # Configure Python logging
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper(), logging.INFO)
    )

    # Processors for structlog
    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        add_exchange_context,
    ]

    # Add appropriate renderer based on format
    if log_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    # Configure structlog
    structlog.configure(
        processors=processors,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # Set service name in context
    structlog.contextvars.bind_contextvars(
        service=service_name,
        environment=os.getenv("ENVIRONMENT", "development"),
        version=os.getenv("SERVICE_VERSION", "unknown")
    )


def add_exchange_context(logger: logging.Logger, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Add exchange context to all log entries"""

    if "timestamp" not in event_dict:
        event_dict["timestamp"] = datetime.now(timezone.utc).isoformat()

    # Exchange ID is bound per request/response exchange by the pipeline
    exchange_id = structlog.contextvars.get_contextvars().get("exchange_id")
    if exchange_id:
        event_dict["exchange_id"] = exchange_id

    return event_dict


class ExchangeLogger:
    """Specialized logger for prompt budgeting and response shaping"""

    def __init__(self, name: str):
        self.logger = structlog.get_logger(name)

    def log_allocation(
        self,
        available_budget: int,
        total_tokens: int,
        included: Iterable[str],
        dropped: Iterable[str],
        truncated: Iterable[str]
    ):
        """Log the outcome of a budget allocation"""

        self.logger.debug(
            "budget_allocation",
            available_budget=available_budget,
            total_tokens=total_tokens,
            included=list(included),
            dropped=list(dropped),
            truncated=list(truncated)
        )

    def log_stream_summary(
        self,
        speakers: Iterable[str],
        event_count: int,
        text_length: int,
        multi_speaker: bool
    ):
        """Log a finished streaming exchange"""

        self.logger.info(
            "stream_complete",
            speakers=list(speakers),
            event_count=event_count,
            text_length=text_length,
            multi_speaker=multi_speaker
        )

    def log_fallback(
        self,
        reason: str,
        speakers: Iterable[str],
        details: Optional[Dict[str, Any]] = None
    ):
        """Log a fallback to single-speaker delivery"""

        self.logger.info(
            "single_speaker_fallback",
            reason=reason,
            speakers=list(speakers),
            details=details or {}
        )


class MetricsCollector:
    """Collect in-process metrics for one pipeline"""

    def __init__(self):
        self.metrics: Dict[str, Any] = {}
        self.logger = structlog.get_logger("chorus.metrics")

    def record_latency(self, operation: str, duration_ms: float, tags: Optional[Dict[str, str]] = None):
        """Record operation latency"""

        key = f"latency.{operation}"
        if key not in self.metrics:
            self.metrics[key] = {
                "count": 0,
                "sum": 0.0,
                "min": float('inf'),
                "max": 0.0
            }

        entry = self.metrics[key]
        entry["count"] += 1
        entry["sum"] += duration_ms
        entry["min"] = min(entry["min"], duration_ms)
        entry["max"] = max(entry["max"], duration_ms)

        self.logger.debug(
            "metric",
            metric_type="latency",
            operation=operation,
            duration_ms=duration_ms,
            tags=tags or {}
        )

    def increment_counter(self, name: str, value: int = 1, tags: Optional[Dict[str, str]] = None):
        """Increment a counter metric"""

        self.metrics[name] = self.metrics.get(name, 0) + value

        self.logger.debug(
            "metric",
            metric_type="counter",
            name=name,
            value=value,
            tags=tags or {}
        )

    def get_metrics_summary(self) -> Dict[str, Any]:
        """Get summary of all metrics"""

        summary = {}
        for key, value in self.metrics.items():
            if isinstance(value, dict) and "count" in value:
                # Latency metric
                summary[key] = {
                    "count": value["count"],
                    "avg": value["sum"] / value["count"] if value["count"] > 0 else 0,
                    "min": value["min"] if value["min"] != float('inf') else 0,
                    "max": value["max"]
                }
            else:
                summary[key] = value

        return summary
