from .pipeline import ExchangePipeline, ExchangeResult

__all__ = ["ExchangePipeline", "ExchangeResult"]
