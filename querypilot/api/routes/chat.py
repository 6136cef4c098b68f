"""
Chat Routes

FastAPI endpoint that runs one conversational turn.
"""

import logging
import uuid

from fastapi import APIRouter

from querypilot.models.api import ChatRequest, ChatResponse, ClarificationPayload, ErrorPayload
from querypilot.models.turn import Clarification, FinalAnswer, TurnResult

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/chat", response_model=ChatResponse)
async def chat(chat_request: ChatRequest) -> ChatResponse:
    """
    Run the message through the supervisor and the selected agent.

    Turn-level failures (timeout, iteration limit, provider failure, unknown
    data source) come back as ``kind="error"`` with a 200 status; the
    conversation stays usable for the next message.
    """
    from querypilot.api.main import get_runtime

    runtime = get_runtime()
    conversation_id = chat_request.conversation_id or uuid.uuid4().hex
    logger.info(
        f"Chat request received: {chat_request.message[:100]}",
        extra={"conversation_id": conversation_id, "data_source_id": chat_request.data_source_id},
    )

    result = await runtime.pipeline.run_turn(
        message=chat_request.message,
        user_id=chat_request.user_id,
        data_source_id=chat_request.data_source_id,
        conversation_id=conversation_id,
    )
    return to_chat_response(conversation_id, result)


def to_chat_response(conversation_id: str, result: TurnResult) -> ChatResponse:
    if isinstance(result, FinalAnswer):
        return ChatResponse(
            conversation_id=conversation_id,
            kind=result.kind,
            answer=result.text,
            sql=result.sql,
            query=result.query,
            explanation=result.explanation,
            safety=result.safety,
        )
    if isinstance(result, Clarification):
        return ChatResponse(
            conversation_id=conversation_id,
            kind=result.kind,
            clarification=ClarificationPayload(question=result.question, options=result.options),
        )
    return ChatResponse(
        conversation_id=conversation_id,
        kind=result.kind,
        error=ErrorPayload(kind=str(result.error), message=result.message),
    )
