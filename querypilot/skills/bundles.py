"""Skill bundles for each agent role, in prompt order."""

from __future__ import annotations

from querypilot.models.state import AgentRole
from querypilot.prompts.loader import PromptLoader
from querypilot.skills.base import (
    CoreAssistantSkill,
    DiscoverySkill,
    SearchLanguageSkill,
    SecuritySkill,
    Skill,
)


def skills_for_role(role: AgentRole | str, prompts: PromptLoader | None = None) -> list[Skill]:
    prompts = prompts or PromptLoader()
    role = AgentRole(role)
    if role == AgentRole.DISCOVERY:
        return [CoreAssistantSkill(prompts, with_submission=False), DiscoverySkill(prompts)]
    if role == AgentRole.SQL:
        return [CoreAssistantSkill(prompts), DiscoverySkill(prompts), SecuritySkill(prompts)]
    return [CoreAssistantSkill(prompts), DiscoverySkill(prompts), SearchLanguageSkill(prompts)]
