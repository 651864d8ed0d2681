"""
Knowledge feature: grounded prompt assembly.

The context block the model sees and the citation list the UI shows are
built from the same chunk slice, in the same order.
"""

from typing import Sequence

from pdftutor.features.knowledge.schemas import AssembledPrompt, Citation, RetrievedChunk

MAX_PROMPT_CHUNKS = 5
CITATION_EXCERPT_CHARS = 280

UNGROUNDED_SYSTEM_PROMPT = "You are a helpful, concise tutor."

GROUNDED_SYSTEM_PROMPT = """You are a helpful, concise tutor answering questions about a document the student uploaded.

## Rules
- Answer using ONLY the numbered context excerpts below the question.
- Cite every claim inline as (p. X, L a-b) using the page and line numbers shown in the excerpt header; use (p. X) when an excerpt has no line numbers.
- Never invent page or line numbers that do not appear in the context.
- If the context does not contain the answer, say so plainly instead of guessing."""

GROUNDED_USER_TEMPLATE = """Question: {question}

Context:
{context}"""


def format_chunk_header(index: int, chunk: RetrievedChunk) -> str:
    """``[#i | page P, lines A-B]`` (line part omitted when unknown)."""
    location = f"page {chunk.page}"
    if chunk.line_start is not None:
        location += f", lines {chunk.line_start}-{chunk.line_end or chunk.line_start}"
    return f"[#{index} | {location}]"


def format_context(chunks: Sequence[RetrievedChunk]) -> str:
    return "\n\n".join(
        f"{format_chunk_header(i, chunk)} {chunk.text}"
        for i, chunk in enumerate(chunks, start=1)
    )


def to_citation(chunk: RetrievedChunk, excerpt_chars: int = CITATION_EXCERPT_CHARS) -> Citation:
    return Citation(
        page=chunk.page,
        line_start=chunk.line_start,
        line_end=chunk.line_end,
        excerpt=chunk.text[:excerpt_chars],
    )


def build_grounded_prompt(
    question: str,
    chunks: Sequence[RetrievedChunk],
    max_chunks: int = MAX_PROMPT_CHUNKS,
    excerpt_chars: int = CITATION_EXCERPT_CHARS,
) -> AssembledPrompt:
    """Build system/user prompts plus citations from the top chunks.

    With no chunks this degrades to the ungrounded prompt.
    """
    selected = list(chunks)[:max_chunks]
    if not selected:
        return build_ungrounded_prompt(question)

    return AssembledPrompt(
        system=GROUNDED_SYSTEM_PROMPT,
        user=GROUNDED_USER_TEMPLATE.format(question=question, context=format_context(selected)),
        citations=[to_citation(chunk, excerpt_chars) for chunk in selected],
    )


def build_ungrounded_prompt(question: str) -> AssembledPrompt:
    return AssembledPrompt(system=UNGROUNDED_SYSTEM_PROMPT, user=question, citations=[])
