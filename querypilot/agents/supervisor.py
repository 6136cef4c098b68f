"""
SupervisorAgent: intent routing.

Classifies the latest user message into one of two labels and picks the
agent node for the turn:

- discovery_agent: questions about structure (tables, fields, relations)
- generator_agent: questions answered by running a query

The model's output space is closed: anything other than a known label is a
ClassificationError, and the supervisor falls back to keyword rules rather
than surfacing the error. Provider outages fall back the same way.
"""

import logging
import string

from querypilot.agents.base import BaseAgent
from querypilot.config import AgentSettings
from querypilot.datasources.models import is_search_engine
from querypilot.llm.base import BaseLLMProvider
from querypilot.llm.models import LLMMessage, LLMRequest
from querypilot.models.agent import ClassificationError, ProviderFailure
from querypilot.models.state import AgentRole, ConversationState, IntentCategory
from querypilot.prompts.loader import PromptLoader

logger = logging.getLogger(__name__)

DISCOVERY_KEYWORDS = (
    "table",
    "list",
    "schema",
    "structure",
    "mapping",
    "index",
    "entities",
    "field",
    "column",
    "表",
    "索引",
    "结构",
    "列表",
    "字段",
    "有哪些",
    "定义",
)

_STRIP_CHARS = string.whitespace + string.punctuation.replace("_", "") + "“”‘’。，：；！？"


def keyword_intent(message: str) -> IntentCategory:
    """Deterministic fallback classification."""
    lowered = message.lower()
    if any(keyword in lowered for keyword in DISCOVERY_KEYWORDS):
        return IntentCategory.DISCOVERY
    return IntentCategory.GENERATOR


def parse_intent_label(raw: str) -> IntentCategory:
    """
    Validate a model reply against the closed label set.

    Raises:
        ClassificationError: The normalised reply is not a known label
    """
    label = raw.strip().lower().strip(_STRIP_CHARS)
    try:
        return IntentCategory(label)
    except ValueError:
        raise ClassificationError(
            agent="SupervisorAgent",
            message=f"Unexpected classification label: {raw!r}",
            context={"allowed": [str(category) for category in IntentCategory]},
        ) from None


def route(intent: IntentCategory, db_type: str) -> AgentRole:
    if intent == IntentCategory.DISCOVERY:
        return AgentRole.DISCOVERY
    return AgentRole.SEARCH if is_search_engine(db_type) else AgentRole.SQL


class SupervisorAgent(BaseAgent):
    """Picks the agent node for a turn and records it in ``state.next``."""

    def __init__(
        self,
        llm_provider: BaseLLMProvider | None = None,
        settings: AgentSettings | None = None,
        prompts: PromptLoader | None = None,
    ):
        self.settings = settings or AgentSettings()
        super().__init__(
            name="SupervisorAgent",
            llm_provider=llm_provider,
            max_retries=self.settings.provider_max_retries,
            retry_backoff_seconds=self.settings.provider_retry_backoff_seconds,
        )
        self.prompts = prompts or PromptLoader()

    async def classify(self, state: ConversationState) -> IntentCategory:
        message = state.latest_user_message
        if self.settings.supervisor_mode == "keyword" or self.llm is None:
            return keyword_intent(message)

        prompt = self.prompts.render("agents/supervisor.md", message=message, db_type=state.db_type)
        try:
            response = await self._generate(
                LLMRequest(
                    messages=[LLMMessage(role="user", content=prompt)],
                    temperature=0.0,
                    max_tokens=16,
                )
            )
            return parse_intent_label(response.content)
        except (ClassificationError, ProviderFailure) as e:
            fallback = keyword_intent(message)
            logger.warning(
                f"Classification fell back to keyword rules: {e.message}",
                extra={"agent": self.name, "fallback": str(fallback)},
            )
            return fallback

    async def execute(self, state: ConversationState) -> AgentRole:
        if state.next in {str(role) for role in AgentRole}:
            role = AgentRole(state.next)
            logger.info(
                f"Resuming {role} after clarification",
                extra={"agent": self.name, "role": str(role)},
            )
            return role

        intent = await self.classify(state)
        role = route(intent, state.db_type)
        state.next = str(role)
        logger.info(
            f"Routed turn to {role}",
            extra={"agent": self.name, "intent": str(intent), "role": str(role)},
        )
        return role
