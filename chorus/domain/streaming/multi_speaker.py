from typing import AsyncIterable, AsyncIterator, Dict, List, Optional, Pattern, Sequence
from enum import Enum
import re
import structlog

from chorus.domain.models.events import StreamEvent, TurnStartEvent, TurnEndEvent
from chorus.domain.models.speaker import Speaker
from chorus.domain.parsing.name_prefix import NamePrefixFilter, name_prefix_source
from chorus.domain.parsing.response_parser import speaker_name_alternation, unique_speakers
from chorus.infrastructure.config import ChorusSettings, resolve_settings
from .single_speaker import SpeakerStreamShaper

logger = structlog.get_logger(__name__)


class ShaperState(str, Enum):
    """Tag demultiplexer states"""
    SEARCHING_FOR_TAG = "searching_for_tag"
    INSIDE_SPEAKER_TAG = "inside_speaker_tag"


class SpeakerTurn:
    """One speaker's open turn inside a multi-speaker feed.

    ``turn_start`` is held back, together with the events shaped so far,
    until the turn has content that cannot be the sentinel. A turn that
    ends empty or as the sentinel emits nothing at all.
    """

    def __init__(
        self,
        speaker: Speaker,
        settings: ChorusSettings,
        strip_prefixes: bool = True
    ):
        self.speaker = speaker
        self.sentinel = settings.none_sentinel
        self.shaper = SpeakerStreamShaper.for_speaker(speaker, settings)
        self.prefix_filter: Optional[NamePrefixFilter] = None
        if strip_prefixes and settings.strip_name_prefixes:
            self.prefix_filter = NamePrefixFilter(speaker.name)

        self.started = False
        self.held: List[StreamEvent] = []

    @property
    def content(self) -> str:
        return self.shaper.content.strip()

    def feed(self, text: str) -> List[StreamEvent]:
        if self.prefix_filter is not None:
            text = self.prefix_filter.feed(text)
        self.held.extend(self.shaper.feed(text))

        content = self.content
        if not self.started and (not content or self.sentinel.startswith(content)):
            return []
        return self._release()

    def close(self) -> List[StreamEvent]:
        """Flush the turn and end it"""

        if self.prefix_filter is not None:
            self.held.extend(self.shaper.feed(self.prefix_filter.finish()))
        self.held.extend(self.shaper.finish())

        content = self.content
        if not self.started and (not content or content == self.sentinel):
            logger.debug("Discarding empty turn", speaker=self.speaker.name)
            return []

        events = self._release()
        events.append(TurnEndEvent(speaker=self.speaker.name, content=content))
        return events

    def _release(self) -> List[StreamEvent]:
        events: List[StreamEvent] = []
        if not self.started:
            events.append(TurnStartEvent(
                speaker=self.speaker.name,
                speaker_id=self.speaker.id,
                avatar_url=self.speaker.avatar_url
            ))
            self.started = True
        events.extend(self.held)
        self.held = []
        return events


class MultiSpeakerStreamShaper:
    """Routes an interleaved ``<Name>...</Name>`` feed to per-speaker shapers.

    Outside a tag the buffer is scanned for an opening tag of any known
    speaker (case-insensitive). Inside a tag, text is released to the active
    speaker's turn as soon as it cannot be part of that speaker's closing
    tag. Text outside recognized tags is discarded, and tags of other
    speakers inside an open turn are plain text.
    """

    def __init__(self, speakers: Sequence[Speaker], settings: Optional[ChorusSettings] = None):
        self.settings = resolve_settings(settings)
        self.speakers = unique_speakers(speakers)

        # Case-insensitive lookup; the first speaker wins on a name clash
        self.speakers_by_name: Dict[str, Speaker] = {
            speaker.name.lower(): speaker for speaker in self.speakers
        }

        self.open_tag_pattern: Optional[Pattern[str]] = None
        self.max_tag_length = 0
        if self.speakers:
            names = speaker_name_alternation(self.speakers)
            self.open_tag_pattern = re.compile(f"<({names})>", re.IGNORECASE)
            self.max_tag_length = max(len(s.name) for s in self.speakers) + 2

        self._close_patterns: Dict[str, Pattern[str]] = {}

        self.state = ShaperState.SEARCHING_FOR_TAG
        self.buffer = ""
        self.active: Optional[Speaker] = None
        self.turn: Optional[SpeakerTurn] = None
        self.turn_count = 0

    @property
    def found_tags(self) -> bool:
        """Whether any speaker has been activated so far"""
        return self.turn_count > 0

    def feed(self, fragment: str) -> List[StreamEvent]:
        """Consume one fragment and return the events it completes"""

        if not fragment:
            return []

        self.buffer += fragment
        events: List[StreamEvent] = []

        while self.buffer:
            if self.state == ShaperState.SEARCHING_FOR_TAG:
                progressed = self._search_open_tag()
            else:
                progressed = self._consume_turn(events)
            if not progressed:
                break

        return events

    def finish(self) -> List[StreamEvent]:
        """Close an open turn at end of input"""

        events: List[StreamEvent] = []

        if self.state == ShaperState.INSIDE_SPEAKER_TAG and self.turn is not None:
            events.extend(self.turn.feed(self.buffer))
            events.extend(self.turn.close())
            self._end_turn()

        self.buffer = ""
        return events

    def _search_open_tag(self) -> bool:
        if self.open_tag_pattern is None:
            self.buffer = ""
            return False

        match = self.open_tag_pattern.search(self.buffer)
        if match:
            speaker = self.speakers_by_name[match.group(1).lower()]
            self.buffer = self.buffer[match.end():]
            self._start_turn(speaker)
            return True

        # Keep only what could still grow into an opening tag
        last_open = self.buffer.rfind("<")
        if last_open == -1:
            if len(self.buffer) > self.max_tag_length:
                self.buffer = ""
        else:
            candidate = self.buffer[last_open:]
            self.buffer = candidate if len(candidate) < self.max_tag_length else ""
        return False

    def _consume_turn(self, events: List[StreamEvent]) -> bool:
        close_pattern = self._close_pattern(self.active)
        match = close_pattern.search(self.buffer)

        if match:
            tail = self.buffer[:match.start()]
            self.buffer = self.buffer[match.end():]
            events.extend(self.turn.feed(tail))
            events.extend(self.turn.close())
            self._end_turn()
            return True

        # No closing tag yet: release everything except a possible partial one
        hold_from = self._partial_close_start(self.buffer, f"</{self.active.name}>")
        release = self.buffer[:hold_from]
        self.buffer = self.buffer[hold_from:]
        events.extend(self.turn.feed(release))
        return False

    @staticmethod
    def _partial_close_start(buffer: str, close_tag: str) -> int:
        """Index of the earliest suffix that is an unfinished closing tag"""

        close_lower = close_tag.lower()
        start = buffer.find("<")
        while start != -1:
            suffix = buffer[start:].lower()
            if len(suffix) < len(close_lower) and close_lower.startswith(suffix):
                return start
            start = buffer.find("<", start + 1)
        return len(buffer)

    def _close_pattern(self, speaker: Speaker) -> Pattern[str]:
        pattern = self._close_patterns.get(speaker.name)
        if pattern is None:
            pattern = re.compile(f"</{re.escape(speaker.name)}>", re.IGNORECASE)
            self._close_patterns[speaker.name] = pattern
        return pattern

    def _start_turn(self, speaker: Speaker):
        self.active = speaker
        self.turn = SpeakerTurn(speaker, self.settings)
        self.state = ShaperState.INSIDE_SPEAKER_TAG
        self.turn_count += 1

    def _end_turn(self):
        self.active = None
        self.turn = None
        self.state = ShaperState.SEARCHING_FOR_TAG


class NamePrefixStreamShaper:
    """Routes a ``Name: ...`` feed to per-speaker turns.

    A known speaker's name prefix at the start of a line ends the open turn
    and starts that speaker's turn. Only the start of the current line is
    buffered; text before the first prefix is discarded.
    """

    def __init__(self, speakers: Sequence[Speaker], settings: Optional[ChorusSettings] = None):
        self.settings = resolve_settings(settings)
        self.speakers = unique_speakers(speakers)
        self.speakers_by_name: Dict[str, Speaker] = {
            speaker.name.lower(): speaker for speaker in self.speakers
        }

        self.prefix_pattern: Optional[Pattern[str]] = None
        self.max_prefix_length = 0
        if self.speakers:
            names = speaker_name_alternation(self.speakers)
            self.prefix_pattern = re.compile(
                rf"{name_prefix_source(f'({names})')}[ \t]*", re.IGNORECASE
            )
            # Longest form is **Name:**
            self.max_prefix_length = max(len(s.name) for s in self.speakers) + 5

        self.buffer = ""
        self.mid_line = False
        self.turn: Optional[SpeakerTurn] = None
        self.turn_count = 0

    def feed(self, fragment: str) -> List[StreamEvent]:
        """Consume one fragment and return the events it completes"""

        if not fragment:
            return []

        self.buffer += fragment
        events: List[StreamEvent] = []

        while self.buffer:
            if self.mid_line:
                newline = self.buffer.find("\n")
                if newline == -1:
                    self._route(self.buffer, events)
                    self.buffer = ""
                    break
                self._route(self.buffer[:newline + 1], events)
                self.buffer = self.buffer[newline + 1:]
                self.mid_line = False
                continue

            match = self.prefix_pattern.match(self.buffer) if self.prefix_pattern else None
            if match:
                # The prefix or the spaces after it may still grow
                if match.end() == len(self.buffer):
                    break
                self.buffer = self.buffer[match.end():]
                self._switch_to(self.speakers_by_name[match.group(1).lower()], events)
                self.mid_line = True
                continue

            # Not enough text yet to rule out a prefix
            if len(self.buffer) < self.max_prefix_length and "\n" not in self.buffer:
                break
            self.mid_line = True

        return events

    def finish(self) -> List[StreamEvent]:
        """Flush the last line and close the open turn"""

        events: List[StreamEvent] = []

        if self.buffer:
            match = None
            if not self.mid_line and self.prefix_pattern is not None:
                match = self.prefix_pattern.match(self.buffer)
            if match:
                self._switch_to(self.speakers_by_name[match.group(1).lower()], events)
                self.buffer = self.buffer[match.end():]
            self._route(self.buffer, events)
            self.buffer = ""

        if self.turn is not None:
            events.extend(self.turn.close())
            self.turn = None

        return events

    def _route(self, text: str, events: List[StreamEvent]):
        if self.turn is not None:
            events.extend(self.turn.feed(text))

    def _switch_to(self, speaker: Speaker, events: List[StreamEvent]):
        if self.turn is not None:
            events.extend(self.turn.close())
        # Prefixes are consumed here, so the turn has none left to strip
        self.turn = SpeakerTurn(speaker, self.settings, strip_prefixes=False)
        self.turn_count += 1


async def _shape(shaper, fragments: AsyncIterable[str]) -> AsyncIterator[StreamEvent]:
    async for fragment in fragments:
        for event in shaper.feed(fragment):
            yield event

    for event in shaper.finish():
        yield event


def shape_multi_speaker_stream(
    fragments: AsyncIterable[str],
    speakers: Sequence[Speaker],
    settings: Optional[ChorusSettings] = None
) -> AsyncIterator[StreamEvent]:
    """Shape an interleaved multi-speaker feed; yields nothing if no tag is ever found"""
    return _shape(MultiSpeakerStreamShaper(speakers, settings), fragments)


def shape_name_prefix_stream(
    fragments: AsyncIterable[str],
    speakers: Sequence[Speaker],
    settings: Optional[ChorusSettings] = None
) -> AsyncIterator[StreamEvent]:
    """Shape a ``Name:``-prefixed multi-speaker feed"""
    return _shape(NamePrefixStreamShaper(speakers, settings), fragments)
