from typing import AsyncIterator, List, Optional, Sequence, Tuple
from pydantic import BaseModel, Field
from langchain_core.messages import BaseMessage
import structlog
import time
import uuid

from chorus.domain.context.context_manager import ContextManager
from chorus.domain.context.token_estimator import estimate_message_tokens
from chorus.domain.models.context import Section, AllocationResult
from chorus.domain.models.events import StreamEvent, StreamEventType
from chorus.domain.models.speaker import Speaker, SpeakerSegment
from chorus.domain.streaming.streaming_handler import StreamingHandler
from chorus.infrastructure.config import ChorusSettings, resolve_settings
from chorus.infrastructure.llm.client import InferenceError, LanguageModelClient
from chorus.infrastructure.observability.logging import MetricsCollector

logger = structlog.get_logger(__name__)


class ExchangeResult(BaseModel):
    """Outcome of one non-streamed request/response exchange"""
    allocation: AllocationResult
    segments: List[SpeakerSegment] = Field(default_factory=list)
    raw_text: str = ""


class ExchangePipeline:
    """Budget the prompt, call the model, and shape its output for delivery"""

    def __init__(
        self,
        client: LanguageModelClient,
        settings: Optional[ChorusSettings] = None,
        metrics: Optional[MetricsCollector] = None
    ):
        self.client = client
        self.settings = resolve_settings(settings)
        self.context_manager = ContextManager(self.settings)
        self.streaming_handler = StreamingHandler(self.settings)
        self.metrics = metrics or MetricsCollector()

    @property
    def model_name(self) -> Optional[str]:
        return getattr(self.client, "model_name", None)

    def build_prompt(
        self,
        sections: Sequence[Section],
        total_budget: Optional[int] = None
    ) -> Tuple[str, AllocationResult]:
        """Assemble the system prompt within the token budget"""

        prompt, allocation = self.context_manager.assemble(sections, total_budget)

        self.metrics.increment_counter("sections.dropped", len(allocation.dropped_names))
        self.metrics.increment_counter("sections.truncated", len(allocation.truncated_names))

        return prompt, allocation

    async def respond(
        self,
        sections: Sequence[Section],
        messages: Sequence[BaseMessage],
        speakers: Sequence[Speaker],
        total_budget: Optional[int] = None
    ) -> ExchangeResult:
        """Run one exchange without streaming"""

        exchange_id = uuid.uuid4().hex
        with structlog.contextvars.bound_contextvars(exchange_id=exchange_id):
            prompt, allocation = self.build_prompt(sections, total_budget)

            logger.info(
                "Calling LLM",
                speakers=[speaker.name for speaker in speakers],
                prompt_tokens=allocation.total_tokens,
                message_tokens=estimate_message_tokens(messages, self.settings.chars_per_token),
                model=self.model_name
            )

            start = time.perf_counter()
            try:
                text = await self.client.complete(prompt, messages)
            except InferenceError:
                self.metrics.increment_counter("inference.errors")
                raise
            except Exception as e:
                self.metrics.increment_counter("inference.errors")
                logger.error("LLM call failed", error=str(e), model=self.model_name)
                raise InferenceError(str(e), self.model_name, e) from e

            self.metrics.record_latency("inference", (time.perf_counter() - start) * 1000)

            segments = self.streaming_handler.split(text, speakers)
            self.metrics.increment_counter("segments.delivered", len(segments))

            return ExchangeResult(allocation=allocation, segments=segments, raw_text=text)

    async def respond_streaming(
        self,
        sections: Sequence[Section],
        messages: Sequence[BaseMessage],
        speakers: Sequence[Speaker],
        total_budget: Optional[int] = None
    ) -> AsyncIterator[StreamEvent]:
        """Run one exchange, yielding delivery events while the model writes"""

        exchange_id = uuid.uuid4().hex
        with structlog.contextvars.bound_contextvars(exchange_id=exchange_id):
            async for event in self._stream_exchange(sections, messages, speakers, total_budget):
                yield event

    async def _stream_exchange(
        self,
        sections: Sequence[Section],
        messages: Sequence[BaseMessage],
        speakers: Sequence[Speaker],
        total_budget: Optional[int]
    ) -> AsyncIterator[StreamEvent]:
        prompt, allocation = self.build_prompt(sections, total_budget)

        logger.info(
            "Calling LLM (streaming)",
            speakers=[speaker.name for speaker in speakers],
            prompt_tokens=allocation.total_tokens,
            message_tokens=estimate_message_tokens(messages, self.settings.chars_per_token),
            model=self.model_name
        )

        async def fragments() -> AsyncIterator[str]:
            try:
                async for fragment in self.client.stream(prompt, messages):
                    yield fragment
            except InferenceError:
                self.metrics.increment_counter("inference.errors")
                raise
            except Exception as e:
                self.metrics.increment_counter("inference.errors")
                logger.error("LLM streaming error", error=str(e), model=self.model_name)
                raise InferenceError(str(e), self.model_name, e) from e

        start = time.perf_counter()
        async for event in self.streaming_handler.stream(fragments(), speakers):
            if event.type == StreamEventType.DONE:
                self.metrics.record_latency("inference_stream", (time.perf_counter() - start) * 1000)
            yield event
