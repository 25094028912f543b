from typing import Optional, Literal, Union
from pydantic import BaseModel
from enum import Enum


class StreamEventType(str, Enum):
    """Streaming delivery event types"""
    DELTA = "delta"
    LINE = "line"
    LINE_START = "line_start"
    LINE_DELTA = "line_delta"
    LINE_END = "line_end"
    TURN_START = "turn_start"
    TURN_END = "turn_end"
    DONE = "done"


class BaseStreamEvent(BaseModel):
    """Base model for all streaming delivery events"""
    type: StreamEventType
    speaker: Optional[str] = None

    model_config = {"frozen": True}


class DeltaEvent(BaseStreamEvent):
    """A raw fragment plus the cumulative text so far"""
    type: Literal[StreamEventType.DELTA] = StreamEventType.DELTA
    delta: str
    content: str


class LineEvent(BaseStreamEvent):
    """A completed, trimmed line"""
    type: Literal[StreamEventType.LINE] = StreamEventType.LINE
    content: str


class LineStartEvent(BaseStreamEvent):
    """A delimiter-bounded segment begins"""
    type: Literal[StreamEventType.LINE_START] = StreamEventType.LINE_START


class LineDeltaEvent(BaseStreamEvent):
    """Partial text within the open segment"""
    type: Literal[StreamEventType.LINE_DELTA] = StreamEventType.LINE_DELTA
    delta: str
    content: str


class LineEndEvent(BaseStreamEvent):
    """The open segment is finalized"""
    type: Literal[StreamEventType.LINE_END] = StreamEventType.LINE_END
    content: str


class TurnStartEvent(BaseStreamEvent):
    """A speaker becomes active"""
    type: Literal[StreamEventType.TURN_START] = StreamEventType.TURN_START
    speaker_id: Union[int, str]
    avatar_url: Optional[str] = None


class TurnEndEvent(BaseStreamEvent):
    """The active speaker's turn is over"""
    type: Literal[StreamEventType.TURN_END] = StreamEventType.TURN_END
    content: str


class DoneEvent(BaseStreamEvent):
    """The whole exchange is over"""
    type: Literal[StreamEventType.DONE] = StreamEventType.DONE
    full_text: str


StreamEvent = Union[
    DeltaEvent,
    LineEvent,
    LineStartEvent,
    LineDeltaEvent,
    LineEndEvent,
    TurnStartEvent,
    TurnEndEvent,
    DoneEvent,
]
