from .logging import setup_logging, ExchangeLogger, MetricsCollector

__all__ = ["setup_logging", "ExchangeLogger", "MetricsCollector"]
