from typing import Any, AsyncIterable, AsyncIterator, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple, Union
import structlog

from chorus.domain.models.events import StreamEvent, StreamEventType, DoneEvent
from chorus.domain.models.speaker import Speaker, SpeakerSegment, StreamMode
from chorus.domain.parsing.name_prefix import NAME_BOUNDARY, strip_name_prefix, strip_name_prefix_from_stream
from chorus.domain.parsing.response_parser import (
    ResponseFormat,
    detect_response_format,
    parse_name_prefix_response,
    split_multi_speaker_response,
)
from chorus.infrastructure.config import ChorusSettings, resolve_settings
from chorus.infrastructure.observability.logging import ExchangeLogger
from .multi_speaker import shape_multi_speaker_stream, shape_name_prefix_stream
from .single_speaker import SpeakerStreamShaper

logger = structlog.get_logger(__name__)

EventHandler = Callable[[StreamEvent], Awaitable[Any]]


async def _prepend(head: str, fragments: AsyncIterator[str]) -> AsyncIterator[str]:
    if head:
        yield head
    async for fragment in fragments:
        yield fragment


def _opens_with_tag(text: str, speaker: Speaker) -> bool:
    return text.lstrip().lower().startswith(f"<{speaker.name.lower()}>")


class StreamingHandler:
    """Turns model output into ordered delivery units for one or more speakers.

    Streaming and non-streaming delivery read the same markers:
    - one speaker: the speaker's tag, only when the reply opens with it
    - several speakers: tags or line-start name prefixes, whichever comes first
    - neither: everything goes to the first speaker
    """

    def __init__(self, settings: Optional[ChorusSettings] = None):
        self.settings = resolve_settings(settings)
        self.event_handlers: Dict[str, List[EventHandler]] = {}
        self.exchange_logger = ExchangeLogger(__name__)

    async def stream(
        self,
        fragments: AsyncIterable[str],
        speakers: Sequence[Speaker]
    ) -> AsyncIterator[StreamEvent]:
        """Shape a live fragment feed into delivery events, ending with ``done``"""

        raw: List[str] = []
        event_count = 0

        async def tracked() -> AsyncIterator[str]:
            async for fragment in fragments:
                raw.append(fragment)
                yield fragment

        async for event in self._route(tracked(), speakers):
            await self.dispatch(event)
            event_count += 1
            yield event

        full_text = "".join(raw)
        done = DoneEvent(full_text=full_text)
        await self.dispatch(done)
        yield done

        self.exchange_logger.log_stream_summary(
            [speaker.name for speaker in speakers],
            event_count + 1,
            len(full_text),
            len(speakers) > 1
        )

    async def _route(
        self,
        fragments: AsyncIterator[str],
        speakers: Sequence[Speaker]
    ) -> AsyncIterator[StreamEvent]:
        if not speakers:
            async for event in self._stream_single(fragments, None):
                yield event
            return

        if len(speakers) == 1:
            lead, tagged = await self._read_open_tag(fragments, speakers[0])
            source = _prepend(lead, fragments)
            if tagged:
                shaped = shape_multi_speaker_stream(source, speakers, self.settings)
            else:
                shaped = self._stream_single(source, speakers[0])
            async for event in shaped:
                yield event
            return

        response_format, lead = await self._detect_format(fragments, speakers)
        source = _prepend(lead, fragments)

        if response_format == ResponseFormat.TAGS:
            shaped = shape_multi_speaker_stream(source, speakers, self.settings)
        elif response_format == ResponseFormat.NAME_PREFIX:
            shaped = shape_name_prefix_stream(source, speakers, self.settings)
        else:
            # No speaker markers: deliver the raw text as the first speaker's
            self.exchange_logger.log_fallback(
                "no_speaker_markers",
                [speaker.name for speaker in speakers],
                {"text_length": len(lead)}
            )
            shaped = self._stream_single(source, speakers[0])

        async for event in shaped:
            yield event

    async def _read_open_tag(self, fragments: AsyncIterator[str], speaker: Speaker) -> Tuple[str, bool]:
        """Read just enough leading text to tell whether it opens with the speaker's tag"""

        open_tag = f"<{speaker.name.lower()}>"
        lead = ""
        async for fragment in fragments:
            lead += fragment
            head = lead.lstrip().lower()
            if not open_tag.startswith(head[:len(open_tag)]):
                return lead, False
            if len(head) >= len(open_tag):
                return lead, True
        return lead, False

    async def _detect_format(
        self,
        fragments: AsyncIterator[str],
        speakers: Sequence[Speaker]
    ) -> Tuple[Optional[ResponseFormat], str]:
        """Buffer the feed until the first speaker marker shows which format it uses"""

        # Longest marker is "**Name**:"; rescanning that much covers markers split across fragments
        lookback = max(len(speaker.name) for speaker in speakers) + 5
        lead = ""
        async for fragment in fragments:
            start = max(0, len(lead) - lookback)
            lead += fragment
            response_format = detect_response_format(lead, speakers, start)
            if response_format is not None:
                return response_format, lead
        return None, lead

    async def _stream_single(
        self,
        fragments: AsyncIterable[str],
        speaker: Optional[Speaker]
    ) -> AsyncIterator[StreamEvent]:
        if speaker is None:
            shaper = SpeakerStreamShaper(
                sentinel=self.settings.none_sentinel,
                default_delimiter=self.settings.default_delimiter
            )
        elif not self.settings.strip_name_prefixes:
            shaper = SpeakerStreamShaper.for_speaker(speaker, self.settings, tag_events=False)
        else:
            # A repeated "Name:" opens a new line or segment where the mode splits at all
            splits = speaker.stream_mode == StreamMode.LINES or bool(speaker.delimiters)
            boundary = NAME_BOUNDARY if splits else None
            delimiters = list(speaker.delimiters or [])
            if boundary is not None:
                if not delimiters and speaker.stream_mode == StreamMode.LINES:
                    delimiters.append(self.settings.default_delimiter)
                delimiters.append(boundary)
            shaper = SpeakerStreamShaper(
                stream_mode=speaker.stream_mode,
                delimiters=delimiters,
                sentinel=self.settings.none_sentinel,
                default_delimiter=self.settings.default_delimiter
            )
            fragments = strip_name_prefix_from_stream(fragments, speaker.name, boundary)

        async for fragment in fragments:
            for event in shaper.feed(fragment):
                yield event

        for event in shaper.finish():
            yield event

    def split(self, text: str, speakers: Sequence[Speaker]) -> List[SpeakerSegment]:
        """Split a finished response into segments, falling back to one segment"""

        if not text.strip() or not speakers:
            return []

        segments = None
        if len(speakers) == 1:
            if _opens_with_tag(text, speakers[0]):
                segments = split_multi_speaker_response(text, speakers)
        else:
            response_format = detect_response_format(text, speakers)
            if response_format == ResponseFormat.TAGS:
                segments = split_multi_speaker_response(text, speakers)
            elif response_format == ResponseFormat.NAME_PREFIX:
                segments = parse_name_prefix_response(text, speakers)

        if segments is None:
            self.exchange_logger.log_fallback(
                "no_speaker_markers",
                [speaker.name for speaker in speakers],
                {"text_length": len(text)}
            )
            speaker = speakers[0]
            content = text
            if self.settings.strip_name_prefixes:
                content = strip_name_prefix(content, speaker.name)
            segments = [SpeakerSegment.for_speaker(speaker, content.strip())]

        return [
            segment for segment in segments
            if segment.content and segment.content != self.settings.none_sentinel
        ]

    def register_event_handler(
        self,
        event_type: Union[StreamEventType, str],
        handler: EventHandler
    ):
        """Register an async callback for one event type ("*" for all events)"""

        key = event_type.value if isinstance(event_type, StreamEventType) else event_type
        self.event_handlers.setdefault(key, []).append(handler)

    async def dispatch(self, event: StreamEvent):
        """Hand an event to the registered delivery callbacks"""

        handlers = self.event_handlers.get(event.type.value, []) + self.event_handlers.get("*", [])
        for handler in handlers:
            try:
                await handler(event)
            except Exception as e:
                logger.error("Error in event handler",
                           event_type=event.type.value,
                           error=str(e))
