"""Supervisor and agent nodes."""

from querypilot.agents.base import BaseAgent
from querypilot.agents.node import AgentNode, LoopState, NodeOutcome
from querypilot.agents.roles import DiscoveryAgent, SearchAgent, SqlAgent, create_agent_node
from querypilot.agents.supervisor import SupervisorAgent

__all__ = [
    "AgentNode",
    "BaseAgent",
    "DiscoveryAgent",
    "LoopState",
    "NodeOutcome",
    "SearchAgent",
    "SqlAgent",
    "SupervisorAgent",
    "create_agent_node",
]
