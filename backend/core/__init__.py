"""
Core abstractions for the Drug Candidate Analyzer.

Stage-tagged errors, the caller-owned pipeline state machine and the
optional lookup cache.
"""

from .errors import (
    AnalysisError,
    InputInvalidError,
    InvalidTransitionError,
    ResolutionError,
    ResolutionReason,
    SynthesisError,
)

from .state_machine import (
    PANELS,
    PipelineStateMachine,
)

from .cache import (
    LookupCache,
    cache_key,
)

__all__ = [
    # Errors
    "AnalysisError",
    "InputInvalidError",
    "InvalidTransitionError",
    "ResolutionError",
    "ResolutionReason",
    "SynthesisError",
    # State machine
    "PANELS",
    "PipelineStateMachine",
    # Cache
    "LookupCache",
    "cache_key",
]
