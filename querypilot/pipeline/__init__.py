"""Turn pipeline."""

from querypilot.pipeline.orchestrator import ExecutionResult, PipelineState, QueryPilotPipeline

__all__ = ["ExecutionResult", "PipelineState", "QueryPilotPipeline"]
