"""
Main Pipeline Orchestrator for the Drug Candidate Analyzer
"""
import asyncio
import uuid
from collections import OrderedDict
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional, Tuple

from loguru import logger
from pydantic import ValidationError

from config import Settings, settings as default_settings
from core.errors import AnalysisError, InputInvalidError, SynthesisError
from models import (
    AggregateData,
    AnalysisQuery,
    AnalysisResult,
    PartialAnalysis,
    PipelineStage,
    PipelineState,
    PipelineStatus,
    StructureRecord,
)
from services.aggregator import FanOutAggregator
from services.base import LanguageModel, SourceBundle
from services.factory import build_language_model, build_sources
from services.structure_resolver import StructureResolver
from services.synthesis_agent import SynthesisAgent

ProgressCallback = Callable[[PipelineStatus], Awaitable[None]]


def build_query(smiles: str, query: str, target_protein: Optional[str] = None) -> AnalysisQuery:
    """Validate raw user input, raising InputInvalidError before any network call."""
    try:
        return AnalysisQuery(smiles=smiles or "", target_protein=target_protein, query=query or "")
    except ValidationError as e:
        messages = "; ".join(err["msg"] for err in e.errors())
        raise InputInvalidError(
            f"Invalid analysis request: {messages}",
            {"fields": ",".join(str(err["loc"][0]) for err in e.errors() if err.get("loc"))},
        ) from e


class AnalysisPipeline:
    """Main orchestrator for the analysis pipeline"""

    def __init__(
        self,
        sources: Optional[SourceBundle] = None,
        model: Optional[LanguageModel] = None,
        settings: Optional[Settings] = None,
        synthesis_mode: Optional[str] = None,
    ):
        self.settings = settings or default_settings
        self.sources = sources or build_sources(self.settings)
        self.resolver = StructureResolver(self.sources.structure)
        self.aggregator = FanOutAggregator(self.sources)
        self.agent = SynthesisAgent(
            model or build_language_model(self.settings),
            self.sources,
            mode=synthesis_mode or self.settings.synthesis_mode,
        )

        # Track pipeline status
        self.active_pipelines: "OrderedDict[str, PipelineStatus]" = OrderedDict()

    async def analyze(
        self,
        smiles: str,
        query: str,
        target_protein: Optional[str] = None,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> AnalysisResult:
        """Validate raw input and run the pipeline"""
        return await self.run(build_query(smiles, query, target_protein), progress_callback)

    async def run(
        self,
        query: AnalysisQuery,
        progress_callback: Optional[ProgressCallback] = None,
        request_id: Optional[str] = None,
    ) -> AnalysisResult:
        """
        Run the complete analysis pipeline

        Steps:
        1. Resolve the SMILES string to a canonical structure (fatal on failure)
        2. Fan out to bioactivity, property and mechanism sources (best effort)
        3. Synthesize the narrative (fatal on failure, earlier data kept)
        """
        request_id = request_id or str(uuid.uuid4())
        status = PipelineStatus(
            request_id=request_id,
            state=PipelineState.RESOLVING,
            current_stage=PipelineStage.RESOLUTION,
            progress=0.0,
        )
        self._track(status)

        # Step 1: Resolution
        await self._update_status(status, PipelineStage.RESOLUTION, 0.05, progress_callback)
        logger.info(f"Pipeline {request_id}: Resolving structure")
        try:
            structure = await self.resolver.resolve(query.smiles)
        except AnalysisError as e:
            await self._fail(status, e, progress_callback)
            raise

        status.structure = structure
        status.state = PipelineState.ANALYZING
        await self._update_status(status, PipelineStage.AGGREGATION, 0.35, progress_callback)

        # Steps 2 and 3
        try:
            if self.agent.uses_prefetched_data:
                aggregate, narrative = await self._prefetched(status, query, structure, progress_callback)
            else:
                aggregate, narrative = await self._tool_use(status, query, structure, progress_callback)
        except SynthesisError as e:
            e.partial = PartialAnalysis(structure=structure, aggregate=status.aggregate)
            await self._fail(status, e, progress_callback)
            raise

        result = AnalysisResult.assemble(request_id, structure, aggregate, narrative)
        status.result = result
        status.state = PipelineState.DONE
        await self._update_status(status, PipelineStage.SYNTHESIS, 1.0, progress_callback)

        missing = aggregate.missing_slots()
        logger.info(
            f"Pipeline {request_id}: Completed"
            + (f" (absent: {', '.join(missing)})" if missing else "")
        )
        return result

    async def _prefetched(
        self,
        status: PipelineStatus,
        query: AnalysisQuery,
        structure: StructureRecord,
        callback: Optional[ProgressCallback],
    ) -> Tuple[AggregateData, str]:
        logger.info(f"Pipeline {status.request_id}: Gathering secondary data")
        aggregate = await self.aggregator.gather(structure)
        status.aggregate = aggregate
        await self._update_status(status, PipelineStage.SYNTHESIS, 0.7, callback)

        logger.info(f"Pipeline {status.request_id}: Synthesizing analysis")
        narrative = await self.agent.synthesize(query, structure, aggregate)
        return aggregate, narrative

    async def _tool_use(
        self,
        status: PipelineStatus,
        query: AnalysisQuery,
        structure: StructureRecord,
        callback: Optional[ProgressCallback],
    ) -> Tuple[AggregateData, str]:
        """Aggregation and a self-fetching agent run side by side."""

        async def gather_for_display() -> AggregateData:
            aggregate = await self.aggregator.gather(structure)
            status.aggregate = aggregate
            await self._update_status(status, PipelineStage.SYNTHESIS, 0.7, callback)
            return aggregate

        logger.info(f"Pipeline {status.request_id}: Gathering data and synthesizing concurrently")
        aggregate, narrative = await asyncio.gather(
            gather_for_display(),
            self.agent.synthesize(query, structure, None),
            return_exceptions=True,
        )
        if isinstance(aggregate, BaseException):
            # FanOutAggregator settles per-slot failures itself
            raise aggregate
        if isinstance(narrative, BaseException):
            raise narrative
        return aggregate, narrative

    async def _update_status(
        self,
        status: PipelineStatus,
        stage: PipelineStage,
        progress: float,
        callback: Optional[ProgressCallback],
    ):
        """Update pipeline status"""
        status.current_stage = stage
        status.progress = progress
        status.updated_at = datetime.now(timezone.utc)

        if callback:
            await callback(status.model_copy())

    async def _fail(
        self,
        status: PipelineStatus,
        error: AnalysisError,
        callback: Optional[ProgressCallback],
    ):
        logger.error(f"Pipeline {status.request_id}: {error.stage.value} failed: {error}")
        status.state = PipelineState.FAILED
        status.error = error.to_info()
        await self._update_status(status, error.stage, status.progress, callback)

    def _track(self, status: PipelineStatus):
        self.active_pipelines[status.request_id] = status
        while len(self.active_pipelines) > self.settings.max_tracked_runs:
            self.active_pipelines.popitem(last=False)

    def get_status(self, request_id: str) -> Optional[PipelineStatus]:
        """Get status of a running pipeline"""
        return self.active_pipelines.get(request_id)
