from typing import Optional
from pydantic import BaseModel, Field
import os


class ChorusSettings(BaseModel):
    """Tuning knobs for prompt budgeting and response shaping"""

    # Token estimation
    chars_per_token: int = Field(default=4, gt=0, description="Average characters per token")

    # Budget allocation
    truncation_threshold: float = Field(
        default=0.7, ge=0.0, le=1.0,
        description="Fraction of the target length after which a sentence break is accepted"
    )
    default_min_tokens: int = Field(default=100, ge=0)
    context_budget: int = Field(default=8000, description="Total prompt budget in tokens")
    reserved_for_response: int = Field(default=2000, ge=0)

    # Response shaping
    none_sentinel: str = Field(default="<none/>", description="Marker for 'no response this turn'")
    default_delimiter: str = "\n"
    strip_name_prefixes: bool = True

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"
    service_name: str = "chorus"

    model_config = {"frozen": True}

    @classmethod
    def from_env(cls, prefix: str = "CHORUS_") -> "ChorusSettings":
        """Build settings from environment variables, falling back to defaults"""

        values = {}
        for field_name in cls.model_fields:
            raw = os.getenv(f"{prefix}{field_name.upper()}")
            if raw is not None:
                values[field_name] = raw

        # Pydantic handles the str -> int/float/bool coercion
        return cls(**values)


def resolve_settings(settings: Optional[ChorusSettings] = None) -> ChorusSettings:
    """Return the given settings or a default instance"""
    return settings if settings is not None else ChorusSettings()
