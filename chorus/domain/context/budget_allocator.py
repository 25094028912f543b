from typing import Optional, Sequence

from chorus.domain.models.context import Section, IncludedSection, AllocationResult
from chorus.infrastructure.config import ChorusSettings, resolve_settings
from chorus.infrastructure.observability.logging import ExchangeLogger
from .token_estimator import estimate_tokens

exchange_logger = ExchangeLogger(__name__)

BOUNDARY_MARKER = "\n[truncated]"
HARD_CUT_MARKER = "... [truncated]"

SENTENCE_BREAKS = (".", "!", "?", "\n")


class BudgetAllocator:
    """Fits prioritized prompt sections into a fixed token budget"""

    def __init__(self, settings: Optional[ChorusSettings] = None):
        self.settings = resolve_settings(settings)

    def estimate(self, text: str) -> int:
        """Estimate tokens with the configured characters-per-token ratio"""
        return estimate_tokens(text, self.settings.chars_per_token)

    def allocate(
        self,
        sections: Sequence[Section],
        total_budget: int,
        reserved_for_response: Optional[int] = None
    ) -> AllocationResult:
        """Decide which sections are included whole, truncated, or dropped"""

        if reserved_for_response is None:
            reserved_for_response = self.settings.reserved_for_response

        self._check_unique_names(sections)

        available = total_budget - reserved_for_response
        result = AllocationResult(available_budget=max(available, 0))

        # Highest priority first; sorted() is stable so equal priorities keep input order
        ordered = sorted(sections, key=lambda s: s.priority, reverse=True)

        if total_budget <= 0 or available < 0:
            result.dropped_names = [section.name for section in ordered]
            exchange_logger.log_allocation(available, 0, [], result.dropped_names, [])
            return result

        remaining = available

        for section in ordered:
            tokens = self.estimate(section.content)
            floor = section.min_tokens
            if floor is None:
                floor = min(self.settings.default_min_tokens, tokens)

            if tokens <= remaining:
                # Fits entirely
                result.included_sections.append(IncludedSection(
                    name=section.name,
                    content=section.content,
                    tokens=tokens
                ))
                remaining -= tokens
                result.total_tokens += tokens
                continue

            truncated = None
            if section.truncatable and remaining >= floor:
                truncated = self.truncate_to_tokens(section.content, remaining)

            if truncated is None:
                result.dropped_names.append(section.name)
                continue

            truncated_tokens = self.estimate(truncated)
            result.included_sections.append(IncludedSection(
                name=section.name,
                content=truncated,
                tokens=truncated_tokens
            ))
            remaining -= truncated_tokens
            result.total_tokens += truncated_tokens
            result.truncated_names.append(section.name)

        exchange_logger.log_allocation(
            available,
            result.total_tokens,
            result.section_names,
            result.dropped_names,
            result.truncated_names
        )

        return result

    def truncate_to_tokens(self, content: str, max_tokens: int) -> Optional[str]:
        """Shorten content to fit max_tokens, preferring a sentence or line break.

        Returns None when not even a marker-sized piece of the content fits.
        """

        target_chars = max_tokens * self.settings.chars_per_token
        if len(content) <= target_chars:
            return content

        # Room for the longer marker is reserved so the result never overshoots
        body_limit = target_chars - len(HARD_CUT_MARKER)
        if body_limit <= 0:
            return None

        head = content[:body_limit]
        break_point = max(head.rfind(mark) for mark in SENTENCE_BREAKS)

        if break_point > body_limit * self.settings.truncation_threshold:
            return head[:break_point + 1] + BOUNDARY_MARKER

        return head + HARD_CUT_MARKER

    @staticmethod
    def _check_unique_names(sections: Sequence[Section]):
        seen = set()
        for section in sections:
            if section.name in seen:
                raise ValueError(f"Duplicate section name: {section.name!r}")
            seen.add(section.name)


def allocate_budget(
    sections: Sequence[Section],
    total_budget: int,
    reserved_for_response: Optional[int] = None,
    settings: Optional[ChorusSettings] = None
) -> AllocationResult:
    """Allocate a budget with a throwaway allocator; the reserve defaults to the settings value"""
    return BudgetAllocator(settings).allocate(sections, total_budget, reserved_for_response)
