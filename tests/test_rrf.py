"""Tests for Reciprocal Rank Fusion."""

import math

import pytest

from conftest import make_item, make_items
from ragloom.rag_pipeline.retrieval.rrf import fuse, reciprocal_rank_fusion


# =========================================================================
# Scoring
# =========================================================================


class TestRRFScoring:
    def test_two_sources_compare_languages(self):
        """Items found by both sources outrank items found once; ties keep first-seen order."""
        first = make_items("d1", "d2", "d3")
        second = make_items("d2", "d1", "d4")

        result = reciprocal_rank_fusion([("vector", first), ("keyword", second)], k=60)

        assert [item.id for item in result.results] == ["d1", "d2", "d3", "d4"]
        both = 1 / 61 + 1 / 62
        assert result.results[0].score == pytest.approx(both)
        assert result.results[1].score == pytest.approx(both)
        assert result.results[2].score == pytest.approx(1 / 63)
        assert result.results[3].score == pytest.approx(1 / 63)

    def test_score_is_sum_of_reciprocal_ranks(self):
        result = reciprocal_rank_fusion([("a", make_items("x", "y")), ("b", make_items("y"))], k=10)
        scores = {item.id: item.score for item in result.results}

        assert scores["y"] == pytest.approx(1 / 12 + 1 / 11)
        assert scores["x"] == pytest.approx(1 / 11)

    def test_source_order_does_not_change_scores(self):
        a = make_items("p", "q", "r")
        b = make_items("r", "s")
        c = make_items("q", "p", "s", "t")

        forward = {i.id: i.score for i in fuse([("a", a), ("b", b), ("c", c)])}
        backward = {i.id: i.score for i in fuse([("c", c), ("b", b), ("a", a)])}

        assert forward.keys() == backward.keys()
        for item_id, score in forward.items():
            assert math.isclose(score, backward[item_id], rel_tol=0, abs_tol=0)

    def test_single_source_keeps_order(self):
        items = make_items("e", "a", "d", "b", "c")
        assert [item.id for item in fuse([("only", items)])] == ["e", "a", "d", "b", "c"]

    def test_same_list_twice_doubles_scores(self):
        items = make_items("a", "b", "c")
        single = fuse([("one", items)])
        double = fuse([("one", items), ("two", items)])

        assert [item.id for item in double] == ["a", "b", "c"]
        for once, twice in zip(single, double):
            assert twice.score == pytest.approx(2 * once.score)

    def test_repeated_fusion_is_identical(self):
        sources = [("vector", make_items("a", "b", "c")), ("keyword", make_items("c", "x", "a"))]
        assert fuse(sources) == fuse(sources)

    def test_duplicate_id_in_one_source_counts_once(self):
        items = [make_item("a"), make_item("b"), make_item("a")]
        result = reciprocal_rank_fusion([("only", items)], k=60)

        scores = {item.id: item.score for item in result.results}
        assert scores["a"] == pytest.approx(1 / 61)
        assert len(result.results) == 2


# =========================================================================
# Metadata + options
# =========================================================================


class TestRRFMetadata:
    def test_content_comes_from_first_source(self):
        first = [make_item("a", content="from vector", origin="vector")]
        second = [make_item("a", content="from keyword", origin="keyword")]

        merged = fuse([("vector", first), ("keyword", second)])

        assert merged[0].content == "from vector"
        assert merged[0].metadata == {"origin": "vector"}

    def test_source_contributions(self):
        result = reciprocal_rank_fusion([("vector", make_items("a", "b")), ("keyword", make_items("b"))])

        assert result.source_contributions == {"a": ["vector"], "b": ["vector", "keyword"]}

    def test_top_k_caps_results(self):
        result = reciprocal_rank_fusion([("a", make_items("a", "b", "c", "d"))], top_k=2)
        assert [item.id for item in result.results] == ["a", "b"]

    def test_empty_sources(self):
        assert fuse([]) == []
        assert fuse([("a", []), ("b", [])]) == []

    @pytest.mark.parametrize("k", [0, -1])
    def test_rejects_non_positive_k(self, k):
        with pytest.raises(ValueError):
            reciprocal_rank_fusion([("a", make_items("a"))], k=k)

    def test_inputs_are_not_modified(self):
        items = make_items("a", "b")
        original_scores = [item.score for item in items]

        fuse([("a", items)])

        assert [item.score for item in items] == original_scores
