from .delimiters import find_first_delimiter, split_on_delimiters
from .single_speaker import SpeakerStreamShaper, shape_single_speaker_stream
from .multi_speaker import (
    MultiSpeakerStreamShaper,
    NamePrefixStreamShaper,
    ShaperState,
    SpeakerTurn,
    shape_multi_speaker_stream,
    shape_name_prefix_stream,
)
from .streaming_handler import StreamingHandler

__all__ = [
    "find_first_delimiter",
    "split_on_delimiters",
    "SpeakerStreamShaper",
    "shape_single_speaker_stream",
    "MultiSpeakerStreamShaper",
    "NamePrefixStreamShaper",
    "ShaperState",
    "SpeakerTurn",
    "shape_multi_speaker_stream",
    "shape_name_prefix_stream",
    "StreamingHandler",
]
