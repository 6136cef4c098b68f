"""Concrete agent nodes, one per role."""

from typing import Any

from querypilot.agents.node import AgentNode
from querypilot.models.state import AgentRole


class DiscoveryAgent(AgentNode):
    """Answers structural questions; never writes queries."""

    role = AgentRole.DISCOVERY


class SqlAgent(AgentNode):
    """Generates, validates and submits SQL."""

    role = AgentRole.SQL


class SearchAgent(AgentNode):
    """Generates and submits search-engine queries."""

    role = AgentRole.SEARCH


AGENT_TYPES: dict[AgentRole, type[AgentNode]] = {
    AgentRole.DISCOVERY: DiscoveryAgent,
    AgentRole.SQL: SqlAgent,
    AgentRole.SEARCH: SearchAgent,
}


def create_agent_node(role: AgentRole | str, **kwargs: Any) -> AgentNode:
    return AGENT_TYPES[AgentRole(role)](**kwargs)
