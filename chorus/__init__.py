from chorus.domain.context import (
    BudgetAllocator,
    ContextManager,
    ContextPriority,
    allocate_budget,
    build_context_sections,
    estimate_message_tokens,
    estimate_tokens,
)
from chorus.domain.models import (
    AllocationResult,
    Section,
    Speaker,
    SpeakerSegment,
    StreamEventType,
    StreamMode,
)
from chorus.domain.orchestration import ExchangePipeline, ExchangeResult
from chorus.domain.parsing import (
    parse_name_prefix_response,
    split_multi_speaker_response,
    strip_name_prefix,
)
from chorus.domain.streaming import (
    MultiSpeakerStreamShaper,
    NamePrefixStreamShaper,
    SpeakerStreamShaper,
    StreamingHandler,
    shape_multi_speaker_stream,
    shape_name_prefix_stream,
    shape_single_speaker_stream,
)
from chorus.infrastructure.config import ChorusSettings
from chorus.infrastructure.llm import InferenceError, LanguageModelClient
from chorus.infrastructure.observability import setup_logging

__version__ = "0.1.0"
