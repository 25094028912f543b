from typing import List, Optional, Sequence, Tuple
from enum import IntEnum
import structlog

from chorus.domain.models.context import Section, AllocationResult
from chorus.infrastructure.config import ChorusSettings, resolve_settings
from .budget_allocator import BudgetAllocator

logger = structlog.get_logger(__name__)


class ContextPriority(IntEnum):
    """Priority ladder for the standard context sections"""
    CHARACTER_PERSONA = 100
    SYSTEM_INSTRUCTIONS = 95
    WORLD_STATE = 80
    INVENTORY = 70
    ACTIVE_SCENE = 65
    RELATIONSHIPS = 60
    RECENT_EVENTS = 55
    RAG_RESULTS = 50
    OTHER_CHARACTERS = 40
    SESSION_NOTES = 30


def build_context_sections(
    character: Optional[str] = None,
    world: Optional[str] = None,
    inventory: Optional[str] = None,
    relationships: Optional[str] = None,
    memory: Optional[str] = None,
    other_characters: Optional[str] = None,
    scene: Optional[str] = None,
    events: Optional[str] = None,
    instructions: Optional[str] = None,
    notes: Optional[str] = None,
) -> List[Section]:
    """Build the standard prioritized sections from pre-rendered context blocks.

    Blocks that are missing or empty are left out entirely. Custom
    instructions are never truncated; everything else may be shortened
    down to a per-kind floor.
    """

    # (name, content, priority, truncatable, min_tokens)
    candidates = [
        ("instructions", instructions, ContextPriority.SYSTEM_INSTRUCTIONS, False, None),
        ("character", character, ContextPriority.CHARACTER_PERSONA, True, 200),
        ("world", world, ContextPriority.WORLD_STATE, True, 50),
        ("scene", scene, ContextPriority.ACTIVE_SCENE, True, 50),
        ("inventory", inventory, ContextPriority.INVENTORY, True, 30),
        ("relationships", relationships, ContextPriority.RELATIONSHIPS, True, 30),
        ("events", events, ContextPriority.RECENT_EVENTS, True, 30),
        ("memory", memory, ContextPriority.RAG_RESULTS, True, 50),
        ("other_characters", other_characters, ContextPriority.OTHER_CHARACTERS, True, 30),
        ("notes", notes, ContextPriority.SESSION_NOTES, True, 30),
    ]

    return [
        Section(
            name=name,
            content=content,
            priority=int(priority),
            truncatable=truncatable,
            min_tokens=min_tokens
        )
        for name, content, priority, truncatable, min_tokens in candidates
        if content
    ]


class ContextManager:
    """Assembles the system prompt from prioritized sections"""

    def __init__(self, settings: Optional[ChorusSettings] = None):
        self.settings = resolve_settings(settings)
        self.allocator = BudgetAllocator(self.settings)

    def assemble(
        self,
        sections: Sequence[Section],
        total_budget: Optional[int] = None,
        reserved_for_response: Optional[int] = None
    ) -> Tuple[str, AllocationResult]:
        """Fit sections into the budget and join the survivors into a prompt"""

        if total_budget is None:
            total_budget = self.settings.context_budget

        allocation = self.allocator.allocate(sections, total_budget, reserved_for_response)

        if allocation.dropped_names or allocation.truncated_names:
            logger.info(
                "Context trimmed to fit budget",
                dropped=allocation.dropped_names,
                truncated=allocation.truncated_names,
                total_tokens=allocation.total_tokens,
                available_budget=allocation.available_budget
            )

        return allocation.prompt, allocation
