import math
import re
from typing import Protocol, Sequence

from django_ai_rag.conf import get_setting
from django_ai_rag.llm import Prompt

from .schema import BuiltPrompt, PromptValidation

SYSTEM_PROMPT = Prompt(
    """You are a document question-answering assistant. Answer the user's question using the document excerpts below.

## Instructions:
1. Answer only from the supplied document content. Do not make up information.
2. If the answer is not in the documents, say that the provided documents do not answer the question.
3. Cite sources by their number only, like [1] or [2], matching the excerpt numbers below.
4. Keep answers concise and accurate.

## Document content:
{context}

Answer the user's question based on the document content above."""
)

# CJK ideographs, kana, hangul, CJK punctuation and full-width forms
_CJK = re.compile(
    r"[\u3000-\u303f\u3040-\u30ff\u3400-\u4dbf\u4e00-\u9fff\uac00-\ud7af\uff00-\uffef]"
)


class ContextChunk(Protocol):
    content: str
    score: float


def estimate_token_count(text: str) -> int:
    """Rough token estimate: two CJK characters or four other characters per token."""
    if not text:
        return 0
    cjk = len(_CJK.findall(text))
    other = len(text) - cjk
    return math.ceil(cjk / 2 + other / 4)


def build_system_prompt(chunks: Sequence[ContextChunk]) -> str:
    context = "\n\n".join(
        f"[{number}] {chunk.content}" for number, chunk in enumerate(chunks, start=1)
    )
    return SYSTEM_PROMPT.render(context=context)


def truncate_context(chunks: Sequence[ContextChunk], max_tokens: int) -> list:
    """
    Drop the lowest-scoring chunks until the rest fit in ``max_tokens``.

    The surviving chunks keep their original relative order.
    """
    tokens = [estimate_token_count(chunk.content) for chunk in chunks]
    total = sum(tokens)
    if total <= max_tokens:
        return list(chunks)

    dropped = set()
    # Lowest score first; on a tie the later chunk goes first
    for index in sorted(range(len(chunks)), key=lambda i: (chunks[i].score, -i)):
        if total <= max_tokens:
            break
        dropped.add(index)
        total -= tokens[index]

    return [chunk for index, chunk in enumerate(chunks) if index not in dropped]


def build_prompt(
    chunks: Sequence[ContextChunk], max_tokens: int | None = None
) -> BuiltPrompt:
    max_tokens = get_setting("CONTEXT_TOKEN_BUDGET") if max_tokens is None else max_tokens
    kept = truncate_context(chunks, max_tokens)
    system_prompt = build_system_prompt(kept)
    return BuiltPrompt(
        system_prompt=system_prompt,
        estimated_tokens=estimate_token_count(system_prompt),
        chunks=kept,
    )


def validate_prompt_length(
    system_prompt: str,
    user_message: str,
    history: Sequence[dict] | None = None,
    *,
    max_tokens: int | None = None,
) -> PromptValidation:
    """Check a full request against the model context limit. Never raises."""
    max_tokens = get_setting("MODEL_CONTEXT_LIMIT") if max_tokens is None else max_tokens
    history_limit = get_setting("HISTORY_MESSAGES")
    recent = list(history or [])[-history_limit:] if history_limit > 0 else []

    total_tokens = (
        estimate_token_count(system_prompt)
        + estimate_token_count(user_message)
        + sum(estimate_token_count(message.get("content", "")) for message in recent)
    )
    return PromptValidation(
        valid=total_tokens <= max_tokens,
        total_tokens=total_tokens,
        max_tokens=max_tokens,
    )
