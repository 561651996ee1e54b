"""
Exception hierarchy for the analysis pipeline.

Every fatal failure is tagged with the pipeline stage it came from, so the
presentation layer can tell "malformed input" from "not found upstream" from
"the model produced nothing". Aggregation never raises: an absent lookup is
an empty slot, not an error.
"""

from enum import Enum
from typing import Any, Dict, Optional

from models import PartialAnalysis, PipelineStage, StageErrorInfo


class AnalysisError(Exception):
    """
    Base exception for all pipeline errors.

    Args:
        message: Human-readable error message
        stage: Pipeline stage the error originated from
        details: Additional context (input, upstream, etc.)
        partial: Data gathered before the failure, still valid for display
    """

    stage: PipelineStage = PipelineStage.INPUT

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        partial: Optional[PartialAnalysis] = None,
    ):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.partial = partial or PartialAnalysis()

    def __str__(self):
        if self.details:
            details_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} ({details_str})"
        return self.message

    @property
    def user_message(self) -> str:
        return self.message

    def to_info(self) -> StageErrorInfo:
        return StageErrorInfo(
            stage=self.stage,
            message=self.user_message,
            details={k: str(v) for k, v in self.details.items()},
        )


class InputInvalidError(AnalysisError):
    """Empty or malformed query fields, raised before any network call."""

    stage = PipelineStage.INPUT


class ResolutionReason(str, Enum):
    NOT_RECOGNIZED = "not_recognized"
    INCOMPLETE = "incomplete"


class ResolutionError(AnalysisError):
    """
    The structure could not be resolved upstream.

    `looks_like_formula` is a hint for the user message only; it is never
    used to reject input.
    """

    stage = PipelineStage.RESOLUTION

    def __init__(
        self,
        smiles: str,
        reason: ResolutionReason,
        looks_like_formula: bool = False,
        details: Optional[Dict[str, Any]] = None,
    ):
        details = dict(details or {})
        details["smiles"] = smiles
        details["reason"] = reason.value
        super().__init__(f"Structure resolution failed: {reason.value}", details)
        self.smiles = smiles
        self.reason = reason
        self.looks_like_formula = looks_like_formula

    @property
    def user_message(self) -> str:
        if self.reason is ResolutionReason.INCOMPLETE:
            return f'PubChem returned incomplete property data for "{self.smiles}".'
        if self.looks_like_formula:
            return (
                f'Invalid input: "{self.smiles}" looks like a molecular formula, not a SMILES string. '
                "Please provide a structural representation (e.g., 'c1ccccc1')."
            )
        return (
            f'Could not retrieve molecule details for SMILES: "{self.smiles}". '
            "Please ensure the SMILES string is valid and exists in PubChem."
        )

    def to_info(self) -> StageErrorInfo:
        info = super().to_info()
        info.looks_like_formula = self.looks_like_formula
        return info


class SynthesisError(AnalysisError):
    """The language model returned no usable narrative, or the call errored."""

    stage = PipelineStage.SYNTHESIS


class InvalidTransitionError(Exception):
    """A state machine event arrived in a state that does not accept it."""
