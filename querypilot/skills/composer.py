"""Skill composition: one prompt and one tool set per agent node."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field

from querypilot.llm.models import ToolSpec
from querypilot.skills.base import Skill, SkillContext, SkillKind
from querypilot.tools.base import ToolDefinition
from querypilot.tools.registry import ToolRegistry

logger = logging.getLogger(__name__)


class SkillCompositionError(Exception):
    """Skills cannot be combined (duplicate or unregistered tool names)."""


@dataclass(frozen=True)
class ComposedSkills:
    system_prompt: str
    tools: list[ToolDefinition] = field(default_factory=list)
    skills: list[SkillKind] = field(default_factory=list)

    @property
    def tool_names(self) -> list[str]:
        return [definition.name for definition in self.tools]

    def tool(self, name: str) -> ToolDefinition | None:
        for definition in self.tools:
            if definition.name == name:
                return definition
        return None

    def specs(self) -> list[ToolSpec]:
        return [definition.to_spec() for definition in self.tools]


def compose_skills(skills: Sequence[Skill], ctx: SkillContext) -> ComposedSkills:
    """
    Concatenate prompt fragments in declaration order and union the tool sets.

    Raises:
        SkillCompositionError: Two skills offer the same tool, or a skill
            names a tool that is not registered.
    """
    fragments: list[str] = []
    tools: list[ToolDefinition] = []
    owners: dict[str, SkillKind] = {}

    for skill in skills:
        fragment = skill.system_prompt(ctx)
        if fragment:
            fragments.append(fragment)

        for name in skill.tool_names(ctx):
            if name in owners:
                raise SkillCompositionError(
                    f"Tool '{name}' is offered by both {owners[name]} and {skill.kind}"
                )
            definition = ToolRegistry.get_definition(name)
            if definition is None:
                raise SkillCompositionError(f"Skill {skill.kind} names unregistered tool '{name}'")
            owners[name] = skill.kind
            if not definition.policy.enabled:
                logger.debug(f"Tool {name} disabled by policy; not offered to the model")
                continue
            tools.append(definition)

    return ComposedSkills(
        system_prompt="\n\n".join(fragments),
        tools=tools,
        skills=[skill.kind for skill in skills],
    )
