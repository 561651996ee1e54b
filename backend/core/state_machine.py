"""
Client-side pipeline state machine.

    idle -> resolving -> failed
                      -> analyzing -> failed
                                   -> done

The caller owns one of these per form/session. All "is this panel ready"
questions are answered from the single state plus slot presence, so there
are no per-panel loading flags to drift out of sync.

Each submission gets a run token. Events carrying an older token are
dropped, which keeps a slow, abandoned run from overwriting newer data.
"""

from typing import Optional

from loguru import logger

from models import (
    AggregateData,
    AnalysisQuery,
    AnalysisResult,
    PartialAnalysis,
    PipelineState,
    PipelineStatus,
    StageErrorInfo,
    StructureRecord,
)
from .errors import AnalysisError, InvalidTransitionError

PANELS = ("structure", "bioactivity", "properties", "mechanism", "narrative")

_SUBMITTABLE = (PipelineState.IDLE, PipelineState.DONE, PipelineState.FAILED)


class PipelineStateMachine:
    """Tracks progress of the caller's current analysis run."""

    def __init__(self):
        self.state = PipelineState.IDLE
        self.token = 0
        self._clear()

    def _clear(self):
        self.structure: Optional[StructureRecord] = None
        self.aggregate: Optional[AggregateData] = None
        self.result: Optional[AnalysisResult] = None
        self.error: Optional[StageErrorInfo] = None

    @property
    def can_submit(self) -> bool:
        return self.state in _SUBMITTABLE

    @property
    def is_busy(self) -> bool:
        return not self.can_submit

    def is_current(self, token: int) -> bool:
        return token == self.token

    def submit(self) -> int:
        """Start a new run and return its token."""
        if not self.can_submit:
            raise InvalidTransitionError(f"Cannot submit while {self.state.value}")
        self.token += 1
        self._clear()
        self.state = PipelineState.RESOLVING
        return self.token

    def abandon(self) -> None:
        """Stop listening to the in-flight run; its late results are ignored."""
        self.token += 1
        self._clear()
        self.state = PipelineState.IDLE

    def _accept(self, token: int, event: str, *allowed: PipelineState) -> bool:
        if not self.is_current(token):
            logger.debug(f"Ignoring stale '{event}' for run {token} (current run {self.token})")
            return False
        if self.state not in allowed:
            raise InvalidTransitionError(f"'{event}' not allowed while {self.state.value}")
        return True

    def structure_resolved(self, token: int, structure: StructureRecord) -> bool:
        if not self._accept(token, "structure_resolved", PipelineState.RESOLVING):
            return False
        self.structure = structure
        self.state = PipelineState.ANALYZING
        return True

    def aggregate_ready(self, token: int, aggregate: AggregateData) -> bool:
        if not self._accept(token, "aggregate_ready", PipelineState.ANALYZING):
            return False
        self.aggregate = aggregate
        return True

    def completed(self, token: int, result: AnalysisResult) -> bool:
        if not self._accept(token, "completed", PipelineState.ANALYZING):
            return False
        self.result = result
        self.structure = result.structure
        if self.aggregate is None:
            self.aggregate = AggregateData(
                bioactivity=result.bioactivity,
                properties=result.properties,
                mechanism=result.mechanism,
            )
        self.state = PipelineState.DONE
        return True

    def failed(
        self,
        token: int,
        error: StageErrorInfo,
        partial: Optional[PartialAnalysis] = None,
    ) -> bool:
        if not self._accept(token, "failed", PipelineState.RESOLVING, PipelineState.ANALYZING):
            return False
        # Data gathered before the failure stays visible
        if partial is not None:
            self.structure = self.structure or partial.structure
            self.aggregate = self.aggregate or partial.aggregate
        self.error = error
        self.state = PipelineState.FAILED
        return True

    def apply_status(self, token: int, status: PipelineStatus) -> bool:
        """Translate a pipeline progress snapshot into state machine events."""
        if not self.is_current(token):
            return False
        if status.state is PipelineState.FAILED and status.error is not None:
            return self.failed(
                token, status.error, PartialAnalysis(structure=status.structure, aggregate=status.aggregate)
            )
        if status.structure is not None and self.state is PipelineState.RESOLVING:
            self.structure_resolved(token, status.structure)
        if status.aggregate is not None and self.state is PipelineState.ANALYZING and self.aggregate is None:
            self.aggregate_ready(token, status.aggregate)
        if status.state is PipelineState.DONE and status.result is not None:
            self.completed(token, status.result)
        return True

    def panel_ready(self, panel: str) -> bool:
        """Whether the presentation layer has data to show for a panel."""
        if panel not in PANELS:
            raise ValueError(f"Unknown panel: {panel}")
        if self.state is PipelineState.IDLE:
            return False
        if panel == "structure":
            return self.structure is not None
        if panel == "narrative":
            return self.state is PipelineState.DONE and self.result is not None
        return self.aggregate is not None and getattr(self.aggregate, panel) is not None

    async def track(self, pipeline, query: AnalysisQuery) -> Optional[AnalysisResult]:
        """
        Submit a query and run it through the pipeline, feeding progress
        into this state machine. Returns the result only if this run is
        still the current one when it finishes.
        """
        token = self.submit()

        async def on_progress(status: PipelineStatus):
            self.apply_status(token, status)

        try:
            result = await pipeline.run(query, progress_callback=on_progress)
        except AnalysisError as e:
            if self.is_current(token) and self.state is not PipelineState.FAILED:
                self.failed(token, e.to_info(), e.partial)
            return None

        if not self.is_current(token):
            return None
        if self.state is not PipelineState.DONE:
            self.completed(token, result)
        return result
