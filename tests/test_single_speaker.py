import pytest

from chorus.domain.models import StreamEventType, StreamMode
from chorus.domain.streaming.delimiters import find_first_delimiter, split_on_delimiters
from chorus.domain.streaming.single_speaker import SpeakerStreamShaper, shape_single_speaker_stream


def _summary(events):
    return [(event.type.value, getattr(event, "content", None)) for event in events]


class TestDelimiters:
    """Delimiter search helpers"""

    def test_find_first_delimiter_picks_earliest(self):
        assert find_first_delimiter("a|b\nc", ["\n", "|"]) == (1, 1)

    def test_find_first_delimiter_reports_length(self):
        assert find_first_delimiter("one--two", ["--"]) == (3, 2)

    def test_find_first_delimiter_without_match(self):
        assert find_first_delimiter("plain", ["\n"]) == (-1, 0)

    def test_split_on_delimiters(self):
        assert split_on_delimiters("a|b\nc", ["|", "\n"]) == ["a", "b", "c"]
        assert split_on_delimiters("", ["|"]) == []


class TestLinesMode:
    """One event per completed line"""

    @pytest.mark.asyncio
    async def test_lines_are_emitted_when_complete(self, feed, collect):
        events = await collect(shape_single_speaker_stream(feed(["Hello wor", "ld\nGoodbye\n"]), "lines"))

        assert _summary(events) == [("line", "Hello world"), ("line", "Goodbye")]

    @pytest.mark.asyncio
    async def test_leftover_is_flushed_at_end(self, feed, collect):
        events = await collect(shape_single_speaker_stream(feed(["first\nsec", "ond"]), StreamMode.LINES))

        assert _summary(events) == [("line", "first"), ("line", "second")]

    @pytest.mark.asyncio
    async def test_blank_and_sentinel_lines_are_suppressed(self, feed, collect):
        events = await collect(shape_single_speaker_stream(
            feed(["Hi\n\n  \n<none/>\n", "Bye\n<none/>"]), StreamMode.LINES
        ))

        assert _summary(events) == [("line", "Hi"), ("line", "Bye")]

    @pytest.mark.asyncio
    async def test_custom_delimiter_replaces_newline(self, feed, collect):
        events = await collect(shape_single_speaker_stream(
            feed(["one|two\nstill two|", "three"]), StreamMode.LINES, delimiters=["|"]
        ))

        assert _summary(events) == [("line", "one"), ("line", "two\nstill two"), ("line", "three")]


class TestFullMode:
    """Progressive single-message delivery"""

    @pytest.mark.asyncio
    async def test_every_fragment_is_a_delta(self, feed, collect):
        events = await collect(shape_single_speaker_stream(feed(["Hel", "", "lo"]), StreamMode.FULL))

        assert [(e.type, e.delta, e.content) for e in events] == [
            (StreamEventType.DELTA, "Hel", "Hel"),
            (StreamEventType.DELTA, "lo", "Hello"),
        ]

    @pytest.mark.asyncio
    async def test_delimited_segments_are_separate_turns(self, feed, collect):
        events = await collect(shape_single_speaker_stream(
            feed(["Hi th", "ere|Sec", "ond"]), StreamMode.FULL, delimiters=["|"]
        ))

        assert _summary(events) == [
            ("line_start", None),
            ("line_delta", "Hi th"),
            ("line_end", "Hi there"),
            ("line_start", None),
            ("line_delta", "Sec"),
            ("line_delta", "Second"),
            ("line_end", "Second"),
        ]

    @pytest.mark.asyncio
    async def test_sentinel_segment_emits_nothing(self, feed, collect):
        events = await collect(shape_single_speaker_stream(
            feed(["<no", "ne/>|Real"]), StreamMode.FULL, delimiters=["|"]
        ))

        assert _summary(events) == [
            ("line_start", None),
            ("line_delta", "Real"),
            ("line_end", "Real"),
        ]

    @pytest.mark.asyncio
    async def test_segment_deltas_reassemble_the_segment(self, feed, collect, chunked):
        text = "  The quick brown fox\njumps over\n\nthe lazy dog  "
        events = await collect(shape_single_speaker_stream(
            feed(chunked(text, 3)), StreamMode.FULL, delimiters=["\n\n"]
        ))

        segments = []
        deltas = ""
        for event in events:
            if event.type == StreamEventType.LINE_DELTA:
                deltas += event.delta
            elif event.type == StreamEventType.LINE_END:
                assert deltas.strip() == event.content
                segments.append(event.content)
                deltas = ""

        assert segments == ["The quick brown fox\njumps over", "the lazy dog"]

    @pytest.mark.asyncio
    async def test_turn_events_are_paired(self, feed, collect, chunked):
        text = "a|b||<none/>|c|"
        events = await collect(shape_single_speaker_stream(
            feed(chunked(text, 1)), StreamMode.FULL, delimiters=["|"]
        ))

        starts = [e for e in events if e.type == StreamEventType.LINE_START]
        ends = [e for e in events if e.type == StreamEventType.LINE_END]
        assert len(starts) == len(ends) == 3
        assert [e.content for e in ends] == ["a", "b", "c"]


class TestSpeakerStreamShaper:
    """Direct use of the incremental shaper"""

    def test_for_speaker_tags_events(self, line_bob):
        shaper = SpeakerStreamShaper.for_speaker(line_bob)

        events = shaper.feed("hey\n") + shaper.finish()

        assert [(e.speaker, e.content) for e in events] == [("Bob", "hey")]

    def test_content_tracks_everything_fed(self):
        shaper = SpeakerStreamShaper(StreamMode.LINES)
        shaper.feed("a\n")
        shaper.feed("b")

        assert shaper.content == "a\nb"
