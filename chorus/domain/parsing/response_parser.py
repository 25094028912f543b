from typing import Dict, List, Optional, Pattern, Sequence, Tuple
from enum import Enum
import re
import structlog

from chorus.domain.models.speaker import Speaker, SpeakerSegment
from .name_prefix import name_prefix_source, strip_name_prefix

logger = structlog.get_logger(__name__)


class ResponseFormat(str, Enum):
    """How a response marks which speaker is talking"""
    TAGS = "tags"
    NAME_PREFIX = "name_prefix"


def unique_speakers(speakers: Sequence[Speaker]) -> List[Speaker]:
    """Drop speakers whose name repeats case-insensitively; the first one wins"""

    by_name: Dict[str, Speaker] = {}
    for speaker in speakers:
        by_name.setdefault(speaker.name.lower(), speaker)
    return list(by_name.values())


def speaker_name_alternation(speakers: Sequence[Speaker]) -> str:
    """Escaped names joined for a regex group, longest first"""
    names = sorted((re.escape(speaker.name) for speaker in speakers), key=len, reverse=True)
    return "|".join(names)


def name_prefix_pattern(speakers: Sequence[Speaker]) -> Pattern[str]:
    """Line-start "Name:" marker of any of the speakers, name in group 1"""
    names = speaker_name_alternation(speakers)
    return re.compile(rf"^{name_prefix_source(f'({names})')}", re.IGNORECASE | re.MULTILINE)


def detect_response_format(
    text: str,
    speakers: Sequence[Speaker],
    start: int = 0
) -> Optional[ResponseFormat]:
    """Which speaker marker appears first in text, looking from ``start``"""

    if not speakers:
        return None

    names = speaker_name_alternation(speakers)
    tag = re.compile(rf"<({names})>", re.IGNORECASE).search(text, start)
    prefix = name_prefix_pattern(speakers).search(text, start)

    if tag is not None and (prefix is None or tag.start() < prefix.start()):
        return ResponseFormat.TAGS
    if prefix is not None:
        return ResponseFormat.NAME_PREFIX
    return None


class MultiSpeakerSplitter:
    """Splits a finished response into per-speaker segments using name tags"""

    def __init__(self, speakers: Sequence[Speaker]):
        self.speakers = unique_speakers(speakers)
        # One pattern per speaker, built once per speaker set
        self.patterns: List[Tuple[Speaker, Pattern[str]]] = [
            (
                speaker,
                re.compile(
                    rf"<{re.escape(speaker.name)}>(.*?)</{re.escape(speaker.name)}>",
                    re.IGNORECASE | re.DOTALL
                )
            )
            for speaker in self.speakers
        ]

    def split(self, text: str) -> Optional[List[SpeakerSegment]]:
        """Return segments in the order they appear, or None when no tag is found"""

        if not self.speakers:
            return None

        found: List[Tuple[int, SpeakerSegment]] = []

        for speaker, pattern in self.patterns:
            for match in pattern.finditer(text):
                content = strip_name_prefix(match.group(1), speaker.name).strip()
                if not content:
                    continue
                found.append((match.start(), SpeakerSegment.for_speaker(speaker, content)))

        if not found:
            return None

        # Stable sort restores the original interleaving
        found.sort(key=lambda item: item[0])
        return [segment for _, segment in found]


def split_multi_speaker_response(
    text: str,
    speakers: Sequence[Speaker]
) -> Optional[List[SpeakerSegment]]:
    """Split tagged multi-speaker text; None means no tagged content was found"""
    return MultiSpeakerSplitter(speakers).split(text)


def parse_name_prefix_response(
    text: str,
    speakers: Sequence[Speaker]
) -> Optional[List[SpeakerSegment]]:
    """Split text on line-start "Name:" markers for models that skip the tags.

    Returns None when no marker of a known speaker is found.
    """

    if not speakers:
        return None

    by_name = {speaker.name.lower(): speaker for speaker in unique_speakers(speakers)}
    matches = list(name_prefix_pattern(speakers).finditer(text))
    if not matches:
        return None

    segments: List[SpeakerSegment] = []
    for idx, match in enumerate(matches):
        end = matches[idx + 1].start() if idx + 1 < len(matches) else len(text)
        content = text[match.end():end].strip()
        if not content:
            continue
        speaker = by_name.get(match.group(1).lower())
        if speaker is not None:
            segments.append(SpeakerSegment.for_speaker(speaker, content))

    logger.debug("Parsed name-prefixed response", segments=len(segments))
    return segments or None
