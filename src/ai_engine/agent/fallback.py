"""Deterministic answerer used when no chat model is configured."""

from __future__ import annotations

from ai_engine.retrieval.retriever import RetrievedContext

NOT_FOUND_ANSWER = (
    "I couldn't find any information about that in your organization's data."
)


class ExtractiveAnswerer:
    """Answers from retrieval evidence without an LLM.

    Keeps the response contract of `AnswerGenerator` for local and offline
    environments where no OpenAI key is configured: the top snippets are
    returned verbatim, each followed by the source it came from.
    """

    def __init__(self, max_snippets: int = 3, max_snippet_chars: int = 400) -> None:
        self.max_snippets = max_snippets
        self.max_snippet_chars = max_snippet_chars

    def answer(self, context: RetrievedContext) -> str:
        if context.is_empty:
            return NOT_FOUND_ANSWER

        lines: list[str] = ["Here is what I found in your organization's data:"]
        for idx, item in enumerate(context.items[: self.max_snippets], start=1):
            snippet = " ".join(item.chunk.text.split())
            if len(snippet) > self.max_snippet_chars:
                snippet = snippet[: self.max_snippet_chars].rstrip() + "..."
            label = item.chunk.title or item.chunk.source_id
            lines.append(f"{idx}. {snippet} [{item.chunk.source_type}: {label}]")
        return "\n".join(lines)
