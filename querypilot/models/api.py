"""
API Request/Response Models

Pydantic models for FastAPI endpoints.
"""

from typing import Any

from pydantic import BaseModel, Field

from querypilot.validation.safety import SafetyReport


class ChatRequest(BaseModel):
    """Request model for chat endpoint."""

    message: str = Field(..., min_length=1, description="User's natural language request")
    data_source_id: int = Field(..., description="Data source the turn runs against")
    conversation_id: str | None = Field(
        None, description="Conversation to continue (a new one is started when omitted)"
    )
    user_id: str = Field(default="anonymous", description="Caller identity for tool policies")

    model_config = {
        "json_schema_extra": {
            "example": {
                "message": "查询过去 7 天每个地区的订单总额",
                "data_source_id": 1,
                "conversation_id": None,
                "user_id": "analyst",
            }
        }
    }


class ClarificationPayload(BaseModel):
    question: str
    options: list[str] = Field(default_factory=list)


class ErrorPayload(BaseModel):
    kind: str = Field(..., description="Error category, e.g. 'timeout'")
    message: str


class ChatResponse(BaseModel):
    """Response model for chat endpoint."""

    conversation_id: str
    kind: str = Field(..., description="'final_answer', 'clarification' or 'error'")
    answer: str | None = None
    sql: str | None = None
    query: str | None = None
    explanation: str | None = None
    safety: SafetyReport | None = None
    clarification: ClarificationPayload | None = None
    error: ErrorPayload | None = None


class ResyncResponse(BaseModel):
    data_source_id: int
    version: int
    tables: int
    indexed: int = 0


class ForeignKeyEdge(BaseModel):
    from_table: str
    from_column: str
    to_table: str
    to_column: str


class CompassResponse(BaseModel):
    """Foreign-key map of one data source."""

    data_source_id: int
    edges: list[ForeignKeyEdge]


class ExecuteRequest(BaseModel):
    data_source_id: int
    sql: str = Field(..., min_length=1, description="Final SQL statement to run read-only")


class ExecuteResponse(BaseModel):
    columns: list[str]
    rows: list[dict[str, Any]]
    row_count: int
    execution_time_ms: float
    warnings: list[str] = Field(default_factory=list)


class HealthResponse(BaseModel):
    """Response model for health check endpoints."""

    status: str = Field(..., description="Service status: 'healthy' or 'unhealthy'")
    version: str = Field(..., description="API version")
    timestamp: str = Field(..., description="Current timestamp (ISO 8601)")
