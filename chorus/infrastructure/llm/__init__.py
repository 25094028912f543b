from .client import InferenceError, LanguageModelClient

__all__ = ["InferenceError", "LanguageModelClient"]
