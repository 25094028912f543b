# This module handles prompt budgeting
#
# +---------------------+
# |     Sections        |   (Caller-built from entities, facts, memories)
# |---------------------|
# | Persona / rules     |
# | World, scene        |
# | Retrieved memories  |
# +---------------------+
#
#    \    /
#     \  /
#      \/
# +------------------------------+
# |       Budget allocator       |   (Priority order, token ceiling)
# |------------------------------|
# | Include whole                |
# | Truncate at a sentence break |
# | Drop                         |
# +------------------------------+
#         |
#         v
#   [system prompt -> LLM]

from .token_estimator import estimate_tokens, estimate_message_tokens
from .budget_allocator import BudgetAllocator, allocate_budget
from .context_manager import ContextManager, ContextPriority, build_context_sections

__all__ = [
    "estimate_tokens",
    "estimate_message_tokens",
    "BudgetAllocator",
    "allocate_budget",
    "ContextManager",
    "ContextPriority",
    "build_context_sections",
]
