"""Tests for query strategy selection, result merging and context retrieval."""

import pytest

from app.core.errors import KnowledgeBaseNotTrainedError, VectorStoreUnavailableError
from app.core.retrieval import (
    find_anchor,
    is_short,
    merge_results,
    retrieve_context,
    select_strategy,
    word_count,
)


async def _retrieve(services, message, history=()):
    return await retrieve_context(
        message,
        list(history),
        "site-1",
        embed=services.embed,
        search=services.search,
        rewrite_query=services.rewrite_query,
    )


class TestStrategySelection:
    def test_word_count_ignores_surrounding_whitespace(self):
        assert word_count("  and   pricing?  ") == 2
        assert word_count("") == 0

    def test_five_words_is_not_short(self):
        assert is_short("and for the weekend?")
        assert not is_short("What are your opening hours?")

    def test_long_message_always_rewrites_once(self, make_message):
        history = [make_message("user", "Tell me about your weekend workshop schedule")]
        plan = select_strategy("Do you also run classes for kids?", history)
        assert plan.strategy == "rewrite_single"
        assert plan.anchor is None

    def test_short_message_anchors_to_latest_substantive_user_turn(self, make_message):
        history = [
            make_message("user", "Tell me about your weekend workshop schedule"),
            make_message("assistant", "We run workshops every Saturday and Sunday morning."),
            make_message("user", "What are your hours?"),
            make_message("assistant", "We open at nine every day of the week."),
            make_message("user", "and price?"),
        ]
        plan = select_strategy("and price?", history)
        assert plan.strategy == "anchored"
        assert plan.anchor == "Tell me about your weekend workshop schedule"

    def test_assistant_turns_never_anchor(self, make_message):
        history = [make_message("assistant", "We have lots of lovely things for you to try")]
        assert find_anchor(history) is None
        assert select_strategy("ok", history).strategy == "rewrite_pair"

    def test_short_message_without_history_uses_rewrite_pair(self):
        assert select_strategy("ok", []).strategy == "rewrite_pair"

    def test_selection_is_deterministic(self, make_message):
        history = [make_message("user", "Tell me about your weekend workshop schedule")]
        plans = {select_strategy("and price?", history).model_dump_json() for _ in range(5)}
        assert len(plans) == 1


class TestMergeResults:
    def test_merging_a_set_with_itself_changes_nothing(self, make_point):
        hits = [make_point("Hours", 0.9), make_point("Prices", 0.7), make_point("Location", 0.5)]
        assert merge_results(hits, hits) == hits

    def test_duplicate_titles_keep_the_higher_score(self, make_point):
        first = [make_point("Prices", 0.4, "old"), make_point("Hours", 0.6)]
        second = [make_point("Prices", 0.8, "new"), make_point("Parking", 0.3)]

        merged = merge_results(first, second)

        assert [h.payload.title for h in merged] == ["Prices", "Hours", "Parking"]
        assert merged[0].score == 0.8
        assert merged[0].payload.content == "new"

    def test_tied_scores_keep_first_seen_payload(self, make_point):
        merged = merge_results([make_point("Prices", 0.5, "first")], [make_point("Prices", 0.5, "second")])
        assert len(merged) == 1
        assert merged[0].payload.content == "first"

    def test_truncates_to_top_k(self, make_point):
        first = [make_point(f"A{i}", 0.9 - i * 0.1) for i in range(5)]
        second = [make_point(f"B{i}", 0.85 - i * 0.1) for i in range(5)]
        merged = merge_results(first, second)
        assert len(merged) == 7
        assert [h.score for h in merged] == sorted((h.score for h in merged), reverse=True)


class TestRetrieveContext:
    @pytest.mark.asyncio
    async def test_long_message_searches_once_with_rewrite(self, services):
        result = await _retrieve(services, "What are your opening hours?")

        assert services.rewrites == ["What are your opening hours?"]
        assert services.embedded == ["opening hours schedule"]
        assert services.searches == [("opening hours schedule", 7)]
        assert result.strategy == "rewrite_single"
        assert result.rewrite_tokens == 12
        assert [s.title for s in result.snippets] == ["Hours", "Location"]

    @pytest.mark.asyncio
    async def test_anchored_search_merges_without_rewriting(self, services, make_message, make_point):
        anchor = "Tell me about your weekend workshop schedule"
        history = [
            make_message("user", anchor),
            make_message("assistant", "Saturdays at ten."),
            make_message("user", "What are your hours?"),
            make_message("assistant", "Nine to five."),
            make_message("user", "and price?"),
        ]
        services.hits_by_text = {
            "and price?": [make_point("Prices", 0.6), make_point("Workshops", 0.3)],
            anchor: [make_point("Workshops", 0.9), make_point("Weekend", 0.5)],
        }

        result = await _retrieve(services, "and price?", history)

        assert services.rewrites == []
        assert sorted(services.embedded) == sorted(["and price?", anchor])
        assert sorted(services.searches) == sorted([("and price?", 4), (anchor, 4)])
        assert [s.title for s in result.snippets] == ["Workshops", "Prices", "Weekend"]
        assert result.rewrite_tokens == 0

    @pytest.mark.asyncio
    async def test_short_message_without_anchor_searches_original_and_rewrite(self, services):
        services.rewritten = "general greeting"

        result = await _retrieve(services, "ok")

        assert services.rewrites == ["ok"]
        assert sorted(services.searches) == sorted([("ok", 5), ("general greeting", 5)])
        assert result.strategy == "rewrite_pair"
        # identical default hits from both searches collapse by title
        assert [s.title for s in result.snippets] == ["Hours", "Location"]

    @pytest.mark.asyncio
    async def test_one_failed_search_fails_the_pair(self, services, make_message):
        anchor = "Tell me about your weekend workshop schedule"
        services.search_errors[anchor] = VectorStoreUnavailableError()

        with pytest.raises(VectorStoreUnavailableError):
            await _retrieve(services, "and price?", [make_message("user", anchor)])

        # both members ran before the failure surfaced
        assert len(services.searches) == 2

    @pytest.mark.asyncio
    async def test_missing_collection_propagates(self, services):
        services.search_errors["opening hours schedule"] = KnowledgeBaseNotTrainedError()

        with pytest.raises(KnowledgeBaseNotTrainedError):
            await _retrieve(services, "What are your opening hours?")
