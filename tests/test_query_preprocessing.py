"""Tests for query rewrite / expand / decompose."""

import pytest

from conftest import FakeLLM
from ragloom.rag_pipeline.context import RequestContext
from ragloom.rag_pipeline.retrieval.query_preprocessing import (
    LLMQueryDecomposer,
    LLMQueryExpander,
    LLMQueryRewriter,
    QueryProcessor,
)
from ragloom.shared.errors import LLMFailureError


# =========================================================================
# Helpers
# =========================================================================


class Upper:
    def rewrite(self, query):
        return query.upper()


class Suffix:
    def expand(self, query):
        return f"{query} synonyms"


class Split:
    def decompose(self, query):
        return [part.strip() for part in query.split(" AND ")]


class Broken:
    def rewrite(self, query):
        raise LLMFailureError("down")

    expand = rewrite
    decompose = rewrite


# =========================================================================
# QueryProcessor
# =========================================================================


class TestQueryProcessor:
    def test_full_chain(self):
        processor = QueryProcessor(Upper(), Suffix(), Split())
        ctx = processor.process(RequestContext.new("elixir AND go"))

        assert ctx.rewritten_query == "ELIXIR AND GO"
        assert ctx.expanded_query == "ELIXIR AND GO synonyms"
        assert ctx.sub_questions == ["ELIXIR", "GO synonyms"]
        assert ctx.effective_query == "ELIXIR AND GO synonyms"

    def test_skip_steps(self):
        processor = QueryProcessor(Upper(), Suffix(), Split())
        ctx = processor.process(RequestContext.new("a AND b"), skip=["rewrite", "decompose"])

        assert ctx.rewritten_query is None
        assert ctx.expanded_query == "a AND b synonyms"
        assert ctx.sub_questions == []

    def test_unknown_skip_step(self):
        with pytest.raises(ValueError):
            QueryProcessor().process(RequestContext.new("q"), skip=["translate"])

    def test_missing_collaborators_are_noops(self):
        ctx = RequestContext.new("q")
        assert QueryProcessor().process(ctx) == ctx

    def test_failures_leave_context_unchanged(self):
        processor = QueryProcessor(Broken(), Broken(), Broken())
        ctx = RequestContext.new("q")

        out = processor.process(ctx)

        assert out == ctx
        assert out.error is None

    def test_halted_context_is_untouched(self):
        rewriter = Upper()
        ctx = RequestContext.new("q").halt(LLMFailureError("upstream"))

        assert QueryProcessor(rewriter, Suffix(), Split()).process(ctx) is ctx

    def test_empty_output_falls_back(self):
        class Empty:
            def rewrite(self, query):
                return "  "

            def decompose(self, query):
                return []

        ctx = QueryProcessor(rewriter=Empty(), decomposer=Empty()).process(RequestContext.new("q"))

        assert ctx.rewritten_query == "q"
        assert ctx.sub_questions == ["q"]


# =========================================================================
# LLM collaborators
# =========================================================================


class TestLLMCollaborators:
    def test_rewriter_strips_quotes(self):
        llm = FakeLLM(['"elixir process scheduling"'])
        assert LLMQueryRewriter(llm).rewrite("hey, how does elixir schedule?") == "elixir process scheduling"
        assert "hey, how does elixir schedule?" in llm.prompts[0]

    def test_expander_falls_back_on_empty(self):
        assert LLMQueryExpander(FakeLLM([""])).expand("beam vm") == "beam vm"

    def test_decomposer_accepts_alias_keys(self):
        llm = FakeLLM(['{"questions": ["How does Elixir scale?", "How does Go scale?"]}'])
        assert LLMQueryDecomposer(llm).decompose("Compare Elixir and Go") == [
            "How does Elixir scale?",
            "How does Go scale?",
        ]

    def test_decomposer_empty_list_falls_back(self):
        llm = FakeLLM(['{"sub_questions": []}'])
        assert LLMQueryDecomposer(llm).decompose("simple question") == ["simple question"]

    def test_decomposer_failure_degrades_in_processor(self):
        processor = QueryProcessor(decomposer=LLMQueryDecomposer(FakeLLM([LLMFailureError("down")])))
        ctx = processor.process(RequestContext.new("q"))

        assert ctx.sub_questions == []
        assert ctx.error is None
