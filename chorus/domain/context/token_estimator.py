from typing import Any, Iterable, Mapping, Union
from langchain_core.messages import BaseMessage
import math

# Rough average for English-like text; a budgeting heuristic, not a tokenizer
CHARS_PER_TOKEN = 4

# Per-message framing cost (role markers, separators)
MESSAGE_OVERHEAD_TOKENS = 4


def estimate_tokens(text: str, chars_per_token: int = CHARS_PER_TOKEN) -> int:
    """Estimate the token count of a text from its character length"""
    if not text:
        return 0
    return math.ceil(len(text) / chars_per_token)


def _message_parts(message: Union[BaseMessage, Mapping[str, Any]]):
    if isinstance(message, BaseMessage):
        content = message.content
        if not isinstance(content, str):
            # Multimodal content blocks: count only the text parts
            content = "".join(
                block if isinstance(block, str) else str(block.get("text", ""))
                for block in content
            )
        return content, message.name
    return message.get("content") or "", message.get("name")


def estimate_message_tokens(
    messages: Iterable[Union[BaseMessage, Mapping[str, Any]]],
    chars_per_token: int = CHARS_PER_TOKEN
) -> int:
    """Estimate the token count of a chat message list, including framing overhead"""

    total = 0
    for message in messages:
        content, name = _message_parts(message)
        total += MESSAGE_OVERHEAD_TOKENS
        total += estimate_tokens(content, chars_per_token)
        if name:
            total += estimate_tokens(name, chars_per_token) + 1
    return total
