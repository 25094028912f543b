from typing import AsyncIterable, AsyncIterator, List, Optional, Sequence, Union

from chorus.domain.models.events import (
    StreamEvent, DeltaEvent, LineEvent, LineStartEvent, LineDeltaEvent, LineEndEvent
)
from chorus.domain.models.speaker import Speaker, StreamMode
from chorus.infrastructure.config import ChorusSettings, resolve_settings
from .delimiters import find_first_delimiter, partial_delimiter_length

DEFAULT_SENTINEL = "<none/>"


class SpeakerStreamShaper:
    """Turns one speaker's raw text feed into delivery events.

    Modes:
    - lines: one ``line`` event per completed delimiter-bounded line
    - full without delimiter: one ``delta`` event per fragment
    - full with delimiter: each segment is its own message, opened with
      ``line_start``, grown with ``line_delta`` and closed with ``line_end``

    Lines or segments whose trimmed text equals the sentinel are suppressed.
    The shaper is incremental: call ``feed`` per fragment, then ``finish``.
    """

    def __init__(
        self,
        stream_mode: Union[StreamMode, str] = StreamMode.FULL,
        delimiters: Optional[Sequence[str]] = None,
        speaker: Optional[str] = None,
        sentinel: str = DEFAULT_SENTINEL,
        default_delimiter: str = "\n"
    ):
        self.stream_mode = StreamMode(stream_mode)
        self.delimiters = [delim for delim in (delimiters or []) if delim]
        self.speaker = speaker
        self.sentinel = sentinel
        self.line_delimiters = self.delimiters or [default_delimiter]

        self.content = ""
        self.buffer = ""
        self.line_content = ""
        self.pending_delta = ""
        self.line_started = False

    @classmethod
    def for_speaker(
        cls,
        speaker: Speaker,
        settings: Optional[ChorusSettings] = None,
        tag_events: bool = True
    ) -> "SpeakerStreamShaper":
        """Create a shaper configured from a speaker's mode and delimiters"""

        settings = resolve_settings(settings)
        return cls(
            stream_mode=speaker.stream_mode,
            delimiters=speaker.delimiters,
            speaker=speaker.name if tag_events else None,
            sentinel=settings.none_sentinel,
            default_delimiter=settings.default_delimiter
        )

    @property
    def has_delimiter(self) -> bool:
        return bool(self.delimiters)

    def feed(self, fragment: str) -> List[StreamEvent]:
        """Consume one fragment and return the events it completes"""

        if not fragment:
            return []

        self.content += fragment

        if self.stream_mode == StreamMode.FULL and not self.has_delimiter:
            return [DeltaEvent(delta=fragment, content=self.content, speaker=self.speaker)]

        self.buffer += fragment

        if self.stream_mode == StreamMode.LINES:
            return self._drain_lines()
        return self._drain_segments()

    def finish(self) -> List[StreamEvent]:
        """Flush whatever the end of input leaves in the buffers"""

        events: List[StreamEvent] = []

        if self.stream_mode == StreamMode.LINES:
            remaining = self.buffer.strip()
            self.buffer = ""
            if self._keep(remaining):
                events.append(LineEvent(content=remaining, speaker=self.speaker))
        elif self.has_delimiter:
            self.line_content += self.buffer
            self.buffer = ""
            events.extend(self._close_segment())

        return events

    def _keep(self, trimmed: str) -> bool:
        return bool(trimmed) and trimmed != self.sentinel

    def _drain_lines(self) -> List[StreamEvent]:
        events: List[StreamEvent] = []

        while True:
            index, length = find_first_delimiter(self.buffer, self.line_delimiters)
            if index == -1:
                break
            line = self.buffer[:index].strip()
            self.buffer = self.buffer[index + length:]
            if self._keep(line):
                events.append(LineEvent(content=line, speaker=self.speaker))

        return events

    def _drain_segments(self) -> List[StreamEvent]:
        events: List[StreamEvent] = []

        while True:
            index, length = find_first_delimiter(self.buffer, self.delimiters)
            if index == -1:
                break
            self.line_content += self.buffer[:index]
            self.pending_delta += self.buffer[:index]
            self.buffer = self.buffer[index + length:]
            events.extend(self._close_segment())

        # Partial content of the open segment, minus a possibly split delimiter
        hold = partial_delimiter_length(self.buffer, self.delimiters)
        release = self.buffer[:len(self.buffer) - hold]
        self.buffer = self.buffer[len(self.buffer) - hold:]

        if release:
            self.line_content += release
            self.pending_delta += release

            trimmed = self.line_content.strip()
            # Hold text back while it could still turn out to be the sentinel
            if self._keep(trimmed) and not self.sentinel.startswith(trimmed):
                if not self.line_started:
                    events.append(LineStartEvent(speaker=self.speaker))
                    self.line_started = True
                events.append(LineDeltaEvent(
                    delta=self.pending_delta,
                    content=trimmed,
                    speaker=self.speaker
                ))
                self.pending_delta = ""

        return events

    def _close_segment(self) -> List[StreamEvent]:
        events: List[StreamEvent] = []

        trimmed = self.line_content.strip()
        if self._keep(trimmed):
            if not self.line_started:
                events.append(LineStartEvent(speaker=self.speaker))
            events.append(LineEndEvent(content=trimmed, speaker=self.speaker))

        self.line_content = ""
        self.pending_delta = ""
        self.line_started = False
        return events


async def shape_single_speaker_stream(
    fragments: AsyncIterable[str],
    stream_mode: Union[StreamMode, str] = StreamMode.FULL,
    delimiters: Optional[Sequence[str]] = None,
    settings: Optional[ChorusSettings] = None
) -> AsyncIterator[StreamEvent]:
    """Shape a raw fragment feed for exactly one speaker"""

    settings = resolve_settings(settings)
    shaper = SpeakerStreamShaper(
        stream_mode=stream_mode,
        delimiters=delimiters,
        sentinel=settings.none_sentinel,
        default_delimiter=settings.default_delimiter
    )

    async for fragment in fragments:
        for event in shaper.feed(fragment):
            yield event

    for event in shaper.finish():
        yield event
