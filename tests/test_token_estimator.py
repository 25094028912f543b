from langchain_core.messages import AIMessage, HumanMessage

from chorus.domain.context.token_estimator import estimate_message_tokens, estimate_tokens


class TestEstimateTokens:
    """Character-length token heuristic"""

    def test_empty_text_is_zero(self):
        assert estimate_tokens("") == 0

    def test_rounds_up(self):
        assert estimate_tokens("abcd") == 1
        assert estimate_tokens("abcde") == 2
        assert estimate_tokens("x" * 400) == 100

    def test_custom_ratio(self):
        assert estimate_tokens("abcdef", chars_per_token=3) == 2

    def test_monotonic_in_length(self):
        previous = 0
        for length in range(0, 200):
            current = estimate_tokens("y" * length)
            assert current >= previous
            previous = current


class TestEstimateMessageTokens:
    """Chat message list estimation"""

    def test_adds_per_message_overhead(self):
        messages = [HumanMessage(content="abcd"), AIMessage(content="abcdefgh")]
        assert estimate_message_tokens(messages) == (4 + 1) + (4 + 2)

    def test_counts_names(self):
        messages = [HumanMessage(content="abcd", name="Ann")]
        assert estimate_message_tokens(messages) == 4 + 1 + 1 + 1

    def test_accepts_plain_mappings(self):
        messages = [{"role": "user", "content": "abcdefgh"}, {"role": "assistant", "content": ""}]
        assert estimate_message_tokens(messages) == (4 + 2) + 4

    def test_empty_list(self):
        assert estimate_message_tokens([]) == 0
