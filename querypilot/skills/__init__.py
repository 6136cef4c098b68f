"""Capability bundles composed into agent prompts and tool sets."""

from querypilot.skills.base import (
    CoreAssistantSkill,
    DiscoverySkill,
    SearchLanguageSkill,
    SecuritySkill,
    Skill,
    SkillContext,
    SkillKind,
    create_skill,
)
from querypilot.skills.bundles import skills_for_role
from querypilot.skills.composer import ComposedSkills, SkillCompositionError, compose_skills

__all__ = [
    "ComposedSkills",
    "CoreAssistantSkill",
    "DiscoverySkill",
    "SearchLanguageSkill",
    "SecuritySkill",
    "Skill",
    "SkillCompositionError",
    "SkillContext",
    "SkillKind",
    "compose_skills",
    "create_skill",
    "skills_for_role",
]
