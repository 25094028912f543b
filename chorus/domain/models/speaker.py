from typing import Any, List, Optional, Union
from pydantic import BaseModel, Field, field_validator
from enum import Enum


class StreamMode(str, Enum):
    """Delivery granularity for a speaker's streamed output"""
    LINES = "lines"
    FULL = "full"


class Speaker(BaseModel):
    """An entity whose dialogue may appear, tagged by name, in a response"""
    id: Union[int, str] = Field(description="Opaque speaker identifier")
    name: str = Field(min_length=1, description="Display name, also used as the tag name")
    avatar_url: Optional[str] = None
    stream_mode: StreamMode = Field(default=StreamMode.FULL)
    delimiters: Optional[List[str]] = Field(
        None, description="Segment delimiters overriding the default line separator"
    )

    model_config = {"frozen": True}

    @field_validator("delimiters", mode="before")
    @classmethod
    def _coerce_delimiters(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [value]
        return value

    @field_validator("delimiters")
    @classmethod
    def _drop_empty_delimiters(cls, value: Optional[List[str]]) -> Optional[List[str]]:
        if value is None:
            return None
        # An empty delimiter would match everywhere
        return [delim for delim in value if delim]


class SpeakerSegment(BaseModel):
    """One finalized piece of a non-streamed response, addressed to a speaker"""
    speaker_id: Union[int, str]
    name: str
    content: str
    avatar_url: Optional[str] = None
    stream_mode: Optional[StreamMode] = None

    @classmethod
    def for_speaker(cls, speaker: Speaker, content: str) -> "SpeakerSegment":
        """Create a segment carrying the speaker's identity"""
        return cls(
            speaker_id=speaker.id,
            name=speaker.name,
            content=content,
            avatar_url=speaker.avatar_url,
            stream_mode=speaker.stream_mode
        )
