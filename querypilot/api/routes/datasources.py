"""
Data Source Routes

Schema re-sync and the foreign-key compass of one data source.
"""

import logging

from fastapi import APIRouter

from querypilot.models.api import CompassResponse, ForeignKeyEdge, ResyncResponse

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/datasources/{data_source_id}/resync", response_model=ResyncResponse)
async def resync(data_source_id: int) -> ResyncResponse:
    """Drop the cached schema graph and rebuild it from the live catalog."""
    from querypilot.api.main import get_runtime

    report = await get_runtime().discovery.resync(data_source_id)
    logger.info(
        f"Resynced data source {data_source_id}: version={report.version}, tables={report.tables}"
    )
    return ResyncResponse(**report.model_dump())


@router.get("/datasources/{data_source_id}/compass", response_model=CompassResponse)
async def compass(data_source_id: int) -> CompassResponse:
    from querypilot.api.main import get_runtime

    edges = await get_runtime().discovery.get_database_compass(data_source_id)
    return CompassResponse(
        data_source_id=data_source_id,
        edges=[ForeignKeyEdge(**edge.model_dump()) for edge in edges],
    )
