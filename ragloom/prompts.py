"""LLM prompt templates for the ragloom pipeline.

Contains all prompts used for:
- Query preprocessing (rewrite, expansion, decomposition)
- Answer generation, grounding evaluation and correction
- Graph-aware retrieval (entity extraction, community summaries)
- LLM-based relevance scoring
"""


# =============================================================================
# QUERY PREPROCESSING PROMPTS
# =============================================================================

REWRITE_PROMPT = """You are a search query optimizer. Rewrite conversational user input into a clear, standalone search query.

Rules:
- Remove conversational filler (greetings, "I want to", "Can you tell me", etc.)
- Extract the core question or topic
- Keep ALL entity names, technical terms, and specific details
- If the input is already a clear query, return it unchanged
- Return ONLY the rewritten query, nothing else

Example:
Input: "I want to compare Elixir and Go lang for building web services"
Rewritten: "compare Elixir and Go for building web services"

Input: {query}
Rewritten:"""

EXPANSION_PROMPT = """You are a search query expansion assistant. Expand the query with synonyms and related terms to improve document retrieval.

Rules:
- Keep ALL original terms from the query
- Add synonyms and related terms that convey the same meaning
- Expand abbreviations and acronyms (e.g., "ML" -> "ML machine learning")
- Do NOT remove or replace technical terms you don't recognize
- Return a single expanded query string, nothing else

Example:
Query: "remote work productivity"
Expanded: "remote work telecommuting working from home productivity efficiency performance"

Query: {query}
Expanded:"""

DECOMPOSITION_PROMPT = """Break down this question into simpler sub-questions for a search system.

If the question is simple enough to answer directly, keep it as a single question.
Otherwise, create 2-4 sub-questions that can be answered independently and
together cover all aspects of the original.

Question: {query}

Respond with JSON:
{{
  "sub_questions": ["...", "..."],
  "reasoning": "Brief explanation"
}}"""


# =============================================================================
# ANSWER GENERATION + GROUNDING PROMPTS
# =============================================================================

ANSWER_PROMPT = """Answer the following question using ONLY the provided context.
Be accurate and concise. If the context doesn't contain enough information,
say so rather than making up information. Cite passages by number [1], [2], etc.

Context:
{context}

Question: {question}

Answer:"""

GROUNDING_PROMPT = """Evaluate if the following answer is well-grounded in the provided context.

Context:
{context}

Question: {question}

Answer to evaluate:
{answer}

Analyze the answer and return JSON:
{{
  "grounded": true/false,
  "score": 0.0-1.0 (how well grounded),
  "ungrounded_claims": ["claims not supported by context"],
  "feedback": "explanation of issues if not grounded"
}}

Return ONLY the JSON."""

CORRECTION_PROMPT = """The previous answer was not well-grounded in the context. Provide
a corrected answer that is fully supported by the context.

Context:
{context}

Question: {question}

Previous answer:
{previous_answer}

Issues identified:
{feedback}

Ungrounded claims to fix:
{ungrounded_claims}

Corrected answer:"""


# =============================================================================
# GRAPH-AWARE RETRIEVAL PROMPTS
# =============================================================================

ENTITY_EXTRACTION_PROMPT = """Extract the key entities (people, places, concepts, technologies, modules) from this query.

Query: {query}

Return JSON: {{"entities": ["entity1", "entity2"]}}"""

COMMUNITY_SUMMARY_PROMPT = """Summarize this community of related entities from a knowledge graph.

Community members:
{members}

Relationships between members:
{relationships}

Provide a concise summary (2-3 sentences) describing what this community
represents, its key themes, and how members relate to each other.

Summary:"""


# =============================================================================
# RELEVANCE SCORING PROMPT
# =============================================================================

RERANK_PROMPT = """You are a relevance scoring assistant. Score how relevant each document is to the query.

Query: {query}

Documents to score:
{documents}

Score each document from 1 to 10 where 1 = completely irrelevant,
5 = somewhat relevant and 10 = directly answers the query.

Return JSON: {{"scores": [{{"index": 0, "score": 8}}, {{"index": 1, "score": 3}}]}}"""


# =============================================================================
# CORRECTIVE SEARCH PROMPTS
# =============================================================================

SUFFICIENCY_PROMPT = """Evaluate if these search results are sufficient to answer the question.

Question: {question}

Search Results:
{results}

Respond with JSON only:
{{"sufficient": true/false, "reasoning": "what is missing if insufficient"}}"""

SEARCH_REWRITE_PROMPT = """The search query did not return sufficient results to answer the question.

Original query: {query}
Question: {question}

Current results (insufficient):
{results}

Feedback: {feedback}

Suggest an improved search query that will find better results.
Return JSON only: {{"query": "improved search query"}}"""
