from .name_prefix import (
    NAME_BOUNDARY,
    NamePrefixFilter,
    name_prefix_source,
    strip_name_prefix,
    strip_name_prefix_from_stream,
)
from .response_parser import (
    MultiSpeakerSplitter,
    split_multi_speaker_response,
    parse_name_prefix_response,
)

__all__ = [
    "NAME_BOUNDARY",
    "NamePrefixFilter",
    "name_prefix_source",
    "strip_name_prefix",
    "strip_name_prefix_from_stream",
    "MultiSpeakerSplitter",
    "split_multi_speaker_response",
    "parse_name_prefix_response",
]
