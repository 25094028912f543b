from .context import Section, IncludedSection, AllocationResult
from .speaker import Speaker, SpeakerSegment, StreamMode
from .events import (
    StreamEventType, StreamEvent, BaseStreamEvent,
    DeltaEvent, LineEvent, LineStartEvent, LineDeltaEvent, LineEndEvent,
    TurnStartEvent, TurnEndEvent, DoneEvent
)

__all__ = [
    "Section",
    "IncludedSection",
    "AllocationResult",
    "Speaker",
    "SpeakerSegment",
    "StreamMode",
    "StreamEventType",
    "StreamEvent",
    "BaseStreamEvent",
    "DeltaEvent",
    "LineEvent",
    "LineStartEvent",
    "LineDeltaEvent",
    "LineEndEvent",
    "TurnStartEvent",
    "TurnEndEvent",
    "DoneEvent",
]
