import pytest

from chorus.domain.context.budget_allocator import (
    BOUNDARY_MARKER,
    HARD_CUT_MARKER,
    BudgetAllocator,
    allocate_budget,
)
from chorus.domain.context.context_manager import ContextManager, ContextPriority, build_context_sections
from chorus.domain.context.token_estimator import estimate_tokens
from chorus.domain.models import Section
from chorus.infrastructure.config import ChorusSettings


def _sample_sections():
    return [
        Section(name="persona", content="P" * 900, priority=100, truncatable=True, min_tokens=50),
        Section(name="rules", content="R. " * 50, priority=95),
        Section(name="world", content="World fact.\n" * 40, priority=80, truncatable=True),
        Section(name="empty", content="", priority=60),
        Section(name="notes", content="n" * 200, priority=30, truncatable=True, min_tokens=0),
    ]


class TestAllocateBudget:
    """Priority-based section allocation"""

    def test_untruncatable_section_that_fits_is_included_whole(self):
        result = allocate_budget(
            [Section(name="a", content="x" * 400, priority=10, truncatable=False)], 1000, 0
        )

        assert [(s.name, s.tokens) for s in result.included_sections] == [("a", 100)]
        assert result.included_sections[0].content == "x" * 400
        assert result.dropped_names == []
        assert result.truncated_names == []
        assert result.total_tokens == 100

    def test_lower_priority_section_is_truncated_into_the_remainder(self):
        sections = [
            Section(name="second", content="y" * 800, priority=5, truncatable=True, min_tokens=10),
            Section(name="first", content="x" * 400, priority=10),
        ]

        result = allocate_budget(sections, 150, 0)

        assert result.section_names == ["first", "second"]
        assert result.truncated_names == ["second"]
        assert result.dropped_names == []
        truncated = result.included_sections[1]
        assert truncated.content == "y" * 185 + HARD_CUT_MARKER
        assert truncated.tokens == 50
        assert result.total_tokens == 150

    def test_truncation_prefers_sentence_boundary(self):
        sentence = "Sentence one is here. "
        section = Section(name="s", content=sentence * 20, priority=1, truncatable=True, min_tokens=0)

        result = allocate_budget([section], 30, 0)

        expected = sentence * 3 + "Sentence one is here." + BOUNDARY_MARKER
        assert result.included_sections[0].content == expected
        assert result.included_sections[0].tokens == estimate_tokens(expected)
        assert result.total_tokens <= 30

    def test_untruncatable_section_that_does_not_fit_is_dropped(self):
        sections = [
            Section(name="big", content="z" * 4000, priority=10),
            Section(name="small", content="ok", priority=1),
        ]

        result = allocate_budget(sections, 100, 0)

        assert result.dropped_names == ["big"]
        assert result.section_names == ["small"]

    def test_section_below_its_floor_is_dropped(self):
        sections = [
            Section(name="first", content="x" * 200, priority=10),
            Section(name="second", content="y" * 800, priority=5, truncatable=True, min_tokens=60),
        ]

        result = allocate_budget(sections, 100, 0)

        assert result.dropped_names == ["second"]
        assert result.truncated_names == []

    def test_default_floor_is_capped_at_one_hundred_tokens(self):
        section = Section(name="long", content="w" * 800, priority=1, truncatable=True)

        assert allocate_budget([section], 50, 0).dropped_names == ["long"]
        assert allocate_budget([section], 120, 0).truncated_names == ["long"]

    def test_default_floor_never_blocks_small_content(self):
        section = Section(name="tiny", content="w" * 40, priority=1, truncatable=True)

        # 10 tokens of content, floor is min(100, 10) = 10
        result = allocate_budget([section], 9, 0)

        assert result.dropped_names == ["tiny"]
        assert allocate_budget([section], 10, 0).section_names == ["tiny"]

    def test_empty_section_is_included_even_when_budget_is_used_up(self):
        sections = [
            Section(name="full", content="x" * 400, priority=10),
            Section(name="blank", content="", priority=1),
        ]

        result = allocate_budget(sections, 100, 0)

        assert result.section_names == ["full", "blank"]
        assert result.included_sections[1].tokens == 0

    def test_negative_available_budget_drops_everything(self):
        sections = [
            Section(name="low", content="a", priority=1),
            Section(name="high", content="b", priority=9),
        ]

        result = allocate_budget(sections, 100, 200)

        assert result.included_sections == []
        assert result.dropped_names == ["high", "low"]
        assert result.total_tokens == 0

    def test_zero_total_budget_drops_everything(self):
        result = allocate_budget([Section(name="blank", content="", priority=1)], 0, 0)

        assert result.dropped_names == ["blank"]

    def test_reserve_defaults_to_settings(self):
        sections = [Section(name="notes", content="x" * 400, priority=1)]

        assert allocate_budget(sections, 100, settings=ChorusSettings(reserved_for_response=50)).available_budget == 50
        assert allocate_budget(sections, 3000).available_budget == 1000
        assert allocate_budget(sections, 100, 0).available_budget == 100

    def test_equal_priorities_keep_input_order(self):
        sections = [
            Section(name=name, content="abc", priority=5)
            for name in ["c", "a", "b"]
        ]
        sections.append(Section(name="top", content="abc", priority=6))

        result = allocate_budget(sections, 100, 0)

        assert result.section_names == ["top", "c", "a", "b"]

    def test_duplicate_names_are_rejected(self):
        sections = [
            Section(name="dup", content="a", priority=1),
            Section(name="dup", content="b", priority=2),
        ]

        with pytest.raises(ValueError, match="dup"):
            allocate_budget(sections, 100, 0)

    def test_prompt_joins_included_sections_in_priority_order(self):
        sections = [
            Section(name="b", content="second", priority=1),
            Section(name="a", content="first", priority=2),
        ]

        result = allocate_budget(sections, 100, 0)

        assert result.prompt == "first\n\nsecond"

    def test_reserved_budget_defaults_to_settings(self):
        allocator = BudgetAllocator(ChorusSettings(reserved_for_response=50))

        result = allocator.allocate([Section(name="a", content="x" * 400, priority=1)], 100)

        assert result.available_budget == 50
        assert result.dropped_names == ["a"]

    @pytest.mark.parametrize("total_budget", [0, 1, 10, 40, 57, 100, 250, 333, 600, 1000])
    @pytest.mark.parametrize("reserved", [0, 20, 300])
    def test_allocation_invariants(self, total_budget, reserved):
        sections = _sample_sections()
        originals = {section.name: section.content for section in sections}

        result = allocate_budget(sections, total_budget, reserved)

        available = total_budget - reserved
        if available >= 0:
            assert result.total_tokens <= available

        included = result.section_names
        assert sorted(included + result.dropped_names) == sorted(originals)
        assert not set(included) & set(result.dropped_names)
        assert set(result.truncated_names) <= set(included)
        assert result.total_tokens == sum(s.tokens for s in result.included_sections)

        for section in result.included_sections:
            original = originals[section.name]
            if section.name in result.truncated_names:
                assert len(section.content) <= len(original)
                assert section.tokens <= estimate_tokens(original)
            else:
                assert section.content == original


class TestContextManager:
    """Standard sections and prompt assembly"""

    def test_build_context_sections_skips_missing_blocks(self):
        sections = build_context_sections(character="c", instructions="i", memory="")

        assert [s.name for s in sections] == ["instructions", "character"]
        instructions, character = sections
        assert instructions.truncatable is False
        assert instructions.priority == ContextPriority.SYSTEM_INSTRUCTIONS
        assert character.truncatable is True
        assert character.min_tokens == 200

    def test_assemble_orders_by_priority(self):
        sections = build_context_sections(character="persona", instructions="rules", notes="scratch")
        manager = ContextManager(ChorusSettings(reserved_for_response=0))

        prompt, allocation = manager.assemble(sections, total_budget=1000)

        assert prompt == "persona\n\nrules\n\nscratch"
        assert allocation.section_names == ["character", "instructions", "notes"]

    def test_assemble_uses_configured_budget(self):
        sections = [Section(name="huge", content="h" * 10000, priority=1)]
        manager = ContextManager(ChorusSettings(context_budget=500, reserved_for_response=100))

        prompt, allocation = manager.assemble(sections)

        assert prompt == ""
        assert allocation.available_budget == 400
        assert allocation.dropped_names == ["huge"]
