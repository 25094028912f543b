from typing import List, Optional
from pydantic import BaseModel, Field


class Section(BaseModel):
    """A named, prioritized block of prompt text competing for budget"""
    name: str = Field(description="Section name, unique within one allocation")
    content: str = Field(default="", description="Section text")
    priority: int = Field(description="Higher values get budget first")
    min_tokens: Optional[int] = Field(
        None, ge=0, description="Floor below which truncation is pointless (None = default floor)"
    )
    truncatable: bool = Field(default=False, description="Whether content may be shortened to fit")

    model_config = {"frozen": True}


class IncludedSection(BaseModel):
    """A section that made it into the prompt, possibly truncated"""
    name: str
    content: str
    tokens: int


class AllocationResult(BaseModel):
    """Outcome of fitting sections into a token budget"""
    included_sections: List[IncludedSection] = Field(default_factory=list)
    dropped_names: List[str] = Field(default_factory=list)
    truncated_names: List[str] = Field(default_factory=list)
    total_tokens: int = 0
    available_budget: int = 0

    @property
    def section_names(self) -> List[str]:
        """Names of included sections, in priority order"""
        return [section.name for section in self.included_sections]

    @property
    def prompt(self) -> str:
        """Included section contents joined with a blank line"""
        return "\n\n".join(section.content for section in self.included_sections)

    @property
    def utilization(self) -> float:
        """Share of the available budget actually used"""
        if self.available_budget <= 0:
            return 0.0
        return self.total_tokens / self.available_budget
