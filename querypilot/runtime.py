"""
Runtime Assembly

Builds the long-lived services one process needs: data-source registry,
connections, schema-graph cache, optional table index and knowledge base,
discovery service, SQL safety validator, tool registry, LLM providers,
agents, conversation store and the turn pipeline. Shared by the HTTP API
and the CLI.
"""

import logging
from dataclasses import dataclass

from querypilot.agents.node import AgentNode
from querypilot.agents.roles import create_agent_node
from querypilot.agents.supervisor import SupervisorAgent
from querypilot.config import Settings, get_settings
from querypilot.conversations.store import (
    ConversationStore,
    InMemoryConversationStore,
    PostgresConversationStore,
)
from querypilot.datasources.connections import DataSourceConnections
from querypilot.datasources.registry import DataSourceStore, YamlDataSourceStore
from querypilot.discovery.cache import SchemaGraphCache
from querypilot.discovery.index import TableIndex
from querypilot.discovery.knowledge import KnowledgeBase
from querypilot.discovery.service import DiscoveryService
from querypilot.llm.base import BaseLLMProvider
from querypilot.llm.factory import LLMProviderFactory
from querypilot.models.state import AgentRole
from querypilot.pipeline.orchestrator import QueryPilotPipeline
from querypilot.prompts.loader import PromptLoader
from querypilot.tools import ToolServices, initialize_tools
from querypilot.validation.safety import SqlSafetyValidator

logger = logging.getLogger(__name__)


@dataclass
class Runtime:
    settings: Settings
    data_sources: DataSourceStore
    connections: DataSourceConnections
    discovery: DiscoveryService
    validator: SqlSafetyValidator
    conversations: ConversationStore
    pipeline: QueryPilotPipeline

    async def close(self) -> None:
        try:
            await self.connections.close()
        finally:
            await self.conversations.close()
        logger.info("Runtime closed")


async def build_knowledge_base(settings: Settings) -> KnowledgeBase:
    """Open the knowledge collection and load the configured seed file, if present."""
    knowledge_base = KnowledgeBase(
        persist_directory=settings.chroma.persist_dir,
        collection_name=settings.chroma.knowledge_collection_name,
        embedding_model=settings.chroma.embedding_model,
        openai_api_key=settings.llm.openai_api_key,
    )
    await knowledge_base.initialize()
    path = settings.chroma.knowledge_path
    if path is not None and path.exists():
        loaded = await knowledge_base.load_file(path)
        logger.info(f"Loaded {loaded} knowledge items from {path}")
    elif path is not None:
        logger.warning(f"Knowledge file {path} not found; the knowledge base starts empty")
    return knowledge_base


async def build_runtime(
    settings: Settings | None = None,
    *,
    data_sources: DataSourceStore | None = None,
    connections: DataSourceConnections | None = None,
    conversations: ConversationStore | None = None,
    llm_provider: BaseLLMProvider | None = None,
    supervisor_provider: BaseLLMProvider | None = None,
) -> Runtime:
    """
    Wire every service from settings.

    Explicit arguments replace the components built from settings; tests
    pass fakes for the data-source store, connections and providers.
    """
    settings = settings or get_settings()
    initialize_tools(settings.tools.policy_path)

    data_sources = data_sources or YamlDataSourceStore(settings.datasources.registry_path)
    connections = connections or DataSourceConnections(
        data_sources,
        pool_size=settings.datasources.pool_size,
        query_timeout=settings.datasources.query_timeout,
    )

    table_index = None
    knowledge_base = None
    if settings.chroma.enabled:
        if settings.llm.openai_api_key:
            table_index = TableIndex(
                persist_directory=settings.chroma.persist_dir,
                collection_name=settings.chroma.collection_name,
                embedding_model=settings.chroma.embedding_model,
                openai_api_key=settings.llm.openai_api_key,
            )
            await table_index.initialize()
            knowledge_base = await build_knowledge_base(settings)
        else:
            logger.warning(
                "CHROMA_ENABLED is set but LLM_OPENAI_API_KEY is missing; semantic search disabled"
            )

    discovery = DiscoveryService(
        connections, SchemaGraphCache(), settings.discovery, table_index, knowledge_base
    )
    validator = SqlSafetyValidator(
        allow_write=settings.security.allow_write,
        large_table_rows=settings.security.large_table_row_threshold,
    )
    services = ToolServices(discovery=discovery, validator=validator)

    if conversations is None:
        if settings.conversations.database_url:
            conversations = PostgresConversationStore(str(settings.conversations.database_url))
        else:
            conversations = InMemoryConversationStore()
    await conversations.initialize()

    agent_llm = llm_provider or LLMProviderFactory.create_agent_provider("agent", settings.llm)
    if supervisor_provider is None and settings.agent.supervisor_mode == "llm":
        supervisor_provider = llm_provider or LLMProviderFactory.create_agent_provider(
            "supervisor", settings.llm, model_type="mini"
        )

    prompts = PromptLoader()
    agents: dict[AgentRole, AgentNode] = {
        role: create_agent_node(
            role,
            llm_provider=agent_llm,
            services=services,
            settings=settings.agent,
            prompts=prompts,
            semantic_search=table_index is not None,
            knowledge_search=knowledge_base is not None,
        )
        for role in AgentRole
    }
    supervisor = SupervisorAgent(supervisor_provider, settings.agent, prompts)

    pipeline = QueryPilotPipeline(
        supervisor=supervisor,
        agents=agents,
        services=services,
        conversations=conversations,
        settings=settings.agent,
    )
    logger.info(
        f"Runtime ready: {len(await data_sources.list())} data sources, "
        f"supervisor_mode={settings.agent.supervisor_mode}"
    )
    return Runtime(
        settings=settings,
        data_sources=data_sources,
        connections=connections,
        discovery=discovery,
        validator=validator,
        conversations=conversations,
        pipeline=pipeline,
    )
