"""
Skills

A skill is a named pair of system-prompt fragment and tool subset. The set
of skills is closed: CoreAssistant, Discovery, Security and SearchLanguage.
Each one decides from the SkillContext which tools it offers; a skill that
does not apply to the active data source offers no tools and no prompt.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from enum import StrEnum
from typing import Any, ClassVar

from pydantic import BaseModel

from querypilot.datasources.models import is_search_engine, query_language
from querypilot.prompts.loader import PromptLoader

PLANNING_TOOLS = [
    "add_plan_step",
    "update_plan_step",
    "save_intermediate_data",
    "save_blueprint",
]
SQL_DISCOVERY_TOOLS = [
    "list_entities",
    "get_entity_schema",
    "sample_entity_data",
    "get_entity_statistics",
    "search_column_values",
    "find_join_path",
    "get_database_compass",
    "cross_entity_search",
]
SEARCH_DISCOVERY_TOOLS = ["list_entities", "get_entity_schema", "sample_entity_data"]


class SkillKind(StrEnum):
    CORE_ASSISTANT = "core_assistant"
    DISCOVERY = "discovery"
    SECURITY = "security"
    SEARCH_LANGUAGE = "search_language"


class SkillContext(BaseModel):
    """What a skill may look at when deciding its prompt and tools."""

    data_source_id: int
    db_type: str
    role: str
    semantic_search: bool = False
    knowledge_search: bool = False

    @property
    def search_engine(self) -> bool:
        return is_search_engine(self.db_type)

    @property
    def language(self) -> str:
        return query_language(self.db_type)

    @property
    def submission_tool(self) -> str:
        return "submit_query_solution" if self.search_engine else "submit_sql_solution"


class Skill(ABC):
    kind: ClassVar[SkillKind]
    template: ClassVar[str]

    def __init__(self, prompts: PromptLoader | None = None) -> None:
        self.prompts = prompts or PromptLoader()

    def applies_to(self, ctx: SkillContext) -> bool:
        return True

    @abstractmethod
    def _tools(self, ctx: SkillContext) -> list[str]:
        """Tool names offered when the skill applies."""

    def tool_names(self, ctx: SkillContext) -> list[str]:
        return self._tools(ctx) if self.applies_to(ctx) else []

    def prompt_variables(self, ctx: SkillContext) -> dict[str, Any]:
        return {
            "data_source_id": ctx.data_source_id,
            "db_type": ctx.db_type,
            "language": ctx.language,
            "search_engine": ctx.search_engine,
        }

    def system_prompt(self, ctx: SkillContext) -> str:
        if not self.applies_to(ctx):
            return ""
        return self.prompts.render(self.template, **self.prompt_variables(ctx))

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class CoreAssistantSkill(Skill):
    kind = SkillKind.CORE_ASSISTANT
    template = "skills/core_assistant.md"

    def __init__(self, prompts: PromptLoader | None = None, with_submission: bool = True) -> None:
        super().__init__(prompts)
        self.with_submission = with_submission

    def _tools(self, ctx: SkillContext) -> list[str]:
        tools = ["get_current_time", "clarify_intent"]
        if self.with_submission:
            tools.append(ctx.submission_tool)
        return tools + PLANNING_TOOLS

    def prompt_variables(self, ctx: SkillContext) -> dict[str, Any]:
        return {
            **super().prompt_variables(ctx),
            "with_submission": self.with_submission,
            "submission_tool": ctx.submission_tool,
        }

    def __repr__(self) -> str:
        return f"CoreAssistantSkill(with_submission={self.with_submission})"


class DiscoverySkill(Skill):
    kind = SkillKind.DISCOVERY
    template = "skills/discovery.md"

    def _tools(self, ctx: SkillContext) -> list[str]:
        if ctx.search_engine:
            tools = list(SEARCH_DISCOVERY_TOOLS)
        else:
            tools = list(SQL_DISCOVERY_TOOLS)
            if ctx.semantic_search:
                tools.append("search_related_tables")
        if ctx.knowledge_search:
            tools.append("search_related_knowledge")
        return tools

    def prompt_variables(self, ctx: SkillContext) -> dict[str, Any]:
        return {
            **super().prompt_variables(ctx),
            "semantic_search": ctx.semantic_search,
            "knowledge_search": ctx.knowledge_search,
        }


class SecuritySkill(Skill):
    kind = SkillKind.SECURITY
    template = "skills/security.md"

    def applies_to(self, ctx: SkillContext) -> bool:
        return not ctx.search_engine

    def _tools(self, ctx: SkillContext) -> list[str]:
        return ["validate_sql", "run_query_sample"]


class SearchLanguageSkill(Skill):
    kind = SkillKind.SEARCH_LANGUAGE
    template = "skills/search_language.md"

    def applies_to(self, ctx: SkillContext) -> bool:
        return ctx.search_engine

    def _tools(self, ctx: SkillContext) -> list[str]:
        return ["get_index_summary", "get_field_stats", "validate_search_query"]


SKILL_TYPES: dict[SkillKind, type[Skill]] = {
    SkillKind.CORE_ASSISTANT: CoreAssistantSkill,
    SkillKind.DISCOVERY: DiscoverySkill,
    SkillKind.SECURITY: SecuritySkill,
    SkillKind.SEARCH_LANGUAGE: SearchLanguageSkill,
}


def create_skill(kind: SkillKind | str, prompts: PromptLoader | None = None, **options: Any) -> Skill:
    return SKILL_TYPES[SkillKind(kind)](prompts, **options)
