"""Process-wide object graph, built once at startup."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from ai_engine.agent.catalog import register_catalog
from ai_engine.agent.executor import AgentExecutor
from ai_engine.agent.generator import AnswerGenerator
from ai_engine.agent.registry import ToolRegistry
from ai_engine.config import Settings
from ai_engine.ingest.chunker import SemanticChunker
from ai_engine.ingest.embedder import Embedder, create_embedder
from ai_engine.obs.logging import configure_logging, get_logger
from ai_engine.orchestrator import Orchestrator
from ai_engine.retrieval.retriever import RetrievalPipeline
from ai_engine.retrieval.vector_store import VectorIndex, create_vector_index
from ai_engine.services.clients import ServiceClients
from ai_engine.services.transport import ServiceTransport, resolve_transports
from ai_engine.session.store import InMemorySessionStore, SessionStore
from ai_engine.sync.scheduler import SyncScheduler
from ai_engine.sync.service import DataSyncService
from ai_engine.sync.sources import ServiceRecordSource

logger = get_logger("ai_engine.context")


def create_chat_model(settings: Settings, temperature: float) -> Any | None:
    if not settings.openai_api_key:
        return None

    from langchain_openai import ChatOpenAI

    return ChatOpenAI(
        model=settings.chat_model,
        temperature=temperature,
        api_key=settings.openai_api_key,
    )


@dataclass(slots=True)
class EngineContext:
    settings: Settings
    embedder: Embedder
    vector_index: VectorIndex
    chunker: SemanticChunker
    retriever: RetrievalPipeline
    transports: dict[str, ServiceTransport]
    clients: ServiceClients
    registry: ToolRegistry
    executor: AgentExecutor
    generator: AnswerGenerator
    sessions: SessionStore
    sync: DataSyncService
    scheduler: SyncScheduler
    orchestrator: Orchestrator

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        transports: Mapping[str, ServiceTransport] | None = None,
        embedder: Embedder | None = None,
        vector_index: VectorIndex | None = None,
        agent_llm: Any | None = None,
        answer_llm: Any | None = None,
        sessions: SessionStore | None = None,
    ) -> "EngineContext":
        """Wire every component.

        Keyword overrides replace the settings-derived component, which is how
        tests inject fakes. Language models are only created from settings when
        no override is given for either of them.
        """

        configure_logging(settings.log_level)

        embedder = embedder or create_embedder(settings)
        vector_index = vector_index or create_vector_index(
            settings.vector_backend, embedder.dimension
        )
        chunker = SemanticChunker(settings.chunking)
        retriever = RetrievalPipeline(vector_index, embedder, settings.retrieval)

        resolved = dict(transports) if transports is not None else resolve_transports(
            settings.services
        )
        clients = ServiceClients.from_transports(resolved)

        registry = register_catalog(ToolRegistry(), clients)

        if agent_llm is None and answer_llm is None:
            agent_llm = create_chat_model(settings, settings.agent.temperature)
            answer_llm = create_chat_model(settings, settings.answer_temperature)
        executor = AgentExecutor(registry, agent_llm, settings.agent)
        generator = AnswerGenerator(answer_llm, settings.retrieval)

        sessions = sessions or InMemorySessionStore()
        sync = DataSyncService(
            ServiceRecordSource(clients), chunker, embedder, vector_index, settings.sync
        )
        scheduler = SyncScheduler(sync, settings.sync)

        orchestrator = Orchestrator(
            registry=registry,
            retriever=retriever,
            generator=generator,
            executor=executor,
            sessions=sessions,
            session_config=settings.session,
            agent_config=settings.agent,
        )
        logger.info(
            "context.ready",
            environment=settings.environment,
            tools=len(registry.list_tools()),
            llm_configured=executor.available,
            embedder=type(embedder).__name__,
        )
        return cls(
            settings=settings,
            embedder=embedder,
            vector_index=vector_index,
            chunker=chunker,
            retriever=retriever,
            transports=resolved,
            clients=clients,
            registry=registry,
            executor=executor,
            generator=generator,
            sessions=sessions,
            sync=sync,
            scheduler=scheduler,
            orchestrator=orchestrator,
        )

    async def start(self) -> None:
        if self.settings.sync.scheduler_enabled:
            self.scheduler.start()

    async def aclose(self) -> None:
        await self.scheduler.stop()
        for name, transport in self.transports.items():
            await transport.aclose()
            logger.debug("context.transport_closed", service=name)
