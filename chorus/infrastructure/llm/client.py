from typing import AsyncIterator, Optional, Protocol, Sequence, runtime_checkable
from langchain_core.messages import BaseMessage


class InferenceError(Exception):
    """A language-model call failed"""

    def __init__(self, message: str, model: Optional[str] = None, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.model = model
        self.cause = cause


@runtime_checkable
class LanguageModelClient(Protocol):
    """Capability for calling a language model.

    Implementations own transport, retries and timeouts; this package only
    consumes the returned text.
    """

    model_name: str

    async def complete(self, system_prompt: str, messages: Sequence[BaseMessage]) -> str:
        """Return the finished response text"""
        ...

    def stream(self, system_prompt: str, messages: Sequence[BaseMessage]) -> AsyncIterator[str]:
        """Return the response as a live sequence of text fragments"""
        ...
