"""Grounded answer generation for informational queries."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from langchain_core.prompts import ChatPromptTemplate, MessagesPlaceholder

from ai_engine.agent.executor import history_to_messages
from ai_engine.agent.fallback import ExtractiveAnswerer
from ai_engine.config import RetrievalConfig
from ai_engine.errors import ModelUnavailable
from ai_engine.obs.logging import get_logger
from ai_engine.obs.tracing import Timer, estimate_token_count
from ai_engine.retrieval.retriever import RetrievedContext
from ai_engine.types import AuthContext, ChatMessage

logger = get_logger("ai_engine.generator")

_PROMPT = ChatPromptTemplate.from_messages(
    [
        ("system", "{system}"),
        MessagesPlaceholder(variable_name="chat_history", optional=True),
        ("human", "{input}"),
    ]
)

ALLOWED_DOMAINS = (
    "project management",
    "task tracking",
    "team management",
    "client management",
    "documentation",
    "knowledge base",
    "workforce",
    "organization data",
    "deadlines",
    "risks",
    "milestones",
)

BLOCKED_TOPICS = (
    "politics",
    "religion",
    "personal advice",
    "medical advice",
    "legal advice",
    "financial investment advice",
)


def build_answer_prompt(identity: AuthContext) -> str:
    organization = identity.organization_name or identity.organization_id
    user = identity.user_name or identity.user_id
    return f"""You are an AI assistant for a project management and workforce management platform.
You are currently helping {user}, a member of the organization "{organization}".
You have access to the context of the organization including projects, tasks, milestones, teams, clients, and documents.

IMPORTANT RULES:
1. You MUST only answer questions related to: {", ".join(ALLOWED_DOMAINS)}.
2. You MUST NOT discuss topics like: {", ".join(BLOCKED_TOPICS)}.
3. You can ONLY use information from the provided context.
4. If the user asks about data not in the context, politely say you don't have that information.
5. If the user asks about topics outside your allowed domains, redirect them.
6. Always cite sources when referencing specific data, using their [Source n] labels.
7. Be helpful, concise, and professional.

When the user asks about themselves ("what are my tasks?", "how many clients do I have?"), use the organization overview and member records in the context."""


def build_contextual_query(query: str, context_block: str) -> str:
    return f"""Based on the following context from the organization's data, please answer the user's question.

CONTEXT:
{context_block}

USER QUESTION: {query}

Remember to only use information from the provided context. If the information is not available, say so."""


class AnswerGenerator:
    """Produces the answer for the retrieval path.

    Uses the chat model when one is configured and falls back to
    `ExtractiveAnswerer` otherwise.
    """

    def __init__(
        self,
        llm: Any | None,
        config: RetrievalConfig | None = None,
        *,
        fallback: ExtractiveAnswerer | None = None,
    ) -> None:
        self.llm = llm
        self.config = config or RetrievalConfig()
        self.fallback = fallback or ExtractiveAnswerer()

    async def generate(
        self,
        query: str,
        context: RetrievedContext,
        history: Sequence[ChatMessage],
        identity: AuthContext,
    ) -> str:
        if self.llm is None:
            return self.fallback.answer(context)

        context_block = context.format(self.config.max_context_chars)
        messages = _PROMPT.format_messages(
            system=build_answer_prompt(identity),
            chat_history=history_to_messages(history),
            input=build_contextual_query(query, context_block),
        )
        try:
            with Timer() as timer:
                response = await self.llm.ainvoke(messages)
        except Exception as exc:
            logger.warning("generator.model_failed", error=str(exc))
            raise ModelUnavailable(f"Chat model call failed: {exc}") from exc

        content = response.content
        answer = content if isinstance(content, str) else str(content)
        logger.info(
            "generator.answered",
            context_chunks=len(context.items),
            input_tokens=estimate_token_count(context_block) + estimate_token_count(query),
            output_tokens=estimate_token_count(answer),
            duration_ms=round(timer.elapsed_ms, 2),
        )
        return answer
