"""Pydantic schemas for retrieval-side LLM responses.

## RAG Theory: Structured LLM Outputs

Query decomposition, entity extraction and LLM relevance scoring all ask
the model for JSON. These schemas define the expected structure so that
responses are validated once, with descriptive errors, instead of being
picked apart with .get() fallbacks.

## Library Usage

Uses Pydantic v2 BaseModel with:
- Field() for defaults and descriptions
- AliasChoices for keys that models name inconsistently
- model_validate_json() for parsing (see shared.openrouter_client.parse_structured)
"""

from pydantic import AliasChoices, BaseModel, Field


class DecompositionResult(BaseModel):
    """Result of query decomposition.

    Used by: LLMQueryDecomposer

    Example for "Compare Elixir and Go for web services":
        {
            "sub_questions": [
                "How does Elixir handle web services?",
                "How does Go handle web services?"
            ],
            "reasoning": "Comparison needs each language separately."
        }
    """

    sub_questions: list[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("sub_questions", "subquestions", "questions"),
        description="Self-contained sub-questions for independent retrieval",
    )
    reasoning: str = Field(
        default="",
        description="Brief explanation of the decomposition approach",
    )


class EntityExtractionResult(BaseModel):
    """Entities mentioned in a query, used to seed graph traversal."""

    entities: list[str] = Field(
        default_factory=list,
        description="Entity names as they appear in the query",
    )


class DocumentScore(BaseModel):
    index: int = Field(description="0-based position of the document in the prompt")
    score: float = Field(description="Relevance from 1 (irrelevant) to 10 (answers the query)")


class RelevanceScores(BaseModel):
    """Per-document relevance judgements from the LLM reranker."""

    scores: list[DocumentScore] = Field(default_factory=list)


class SufficiencyResult(BaseModel):
    """Whether a result set is enough to answer the question."""

    sufficient: bool = Field(default=True, description="True if the results can answer the question")
    reasoning: str = Field(default="", description="What is missing when insufficient")


class RewrittenQuery(BaseModel):
    """Improved search query suggested after an insufficient search."""

    query: str = Field(default="", description="The improved search query")
