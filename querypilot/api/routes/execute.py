"""
Execution Routes

Runs a final, validated SQL statement read-only.
"""

from fastapi import APIRouter

from querypilot.models.api import ExecuteRequest, ExecuteResponse

router = APIRouter()


@router.post("/execute", response_model=ExecuteResponse)
async def execute(execute_request: ExecuteRequest) -> ExecuteResponse:
    """
    Validate and run the statement.

    Blocking safety issues are answered with 422 by the application's
    exception handler; an unknown data source with 404.
    """
    from querypilot.api.main import get_runtime

    result = await get_runtime().pipeline.execute_final(
        execute_request.data_source_id, execute_request.sql
    )
    return ExecuteResponse(**result.model_dump())
