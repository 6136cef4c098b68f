"""Turn results handed back to callers."""

from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field

from querypilot.models.agent import ErrorKind
from querypilot.validation.safety import SafetyReport


class FinalAnswer(BaseModel):
    kind: Literal["final_answer"] = "final_answer"
    text: str
    explanation: str
    sql: str | None = None
    query: str | None = None
    index: str | None = None
    safety: SafetyReport | None = None


class Clarification(BaseModel):
    kind: Literal["clarification"] = "clarification"
    question: str
    options: list[str] = Field(default_factory=list)


class TurnFailure(BaseModel):
    kind: Literal["error"] = "error"
    error: ErrorKind
    message: str


TurnResult = Annotated[
    Union[FinalAnswer, Clarification, TurnFailure],
    Field(discriminator="kind"),
]
