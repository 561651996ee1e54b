"""
Services package.
"""
from .base import (
    BioactivitySource,
    LanguageModel,
    MechanismSource,
    PropertySource,
    SourceBundle,
    StructureSource,
    ToolSpec,
)
from .aggregator import FanOutAggregator
from .factory import build_language_model, build_sources
from .structure_resolver import StructureResolver, looks_like_formula
from .synthesis_agent import SynthesisAgent

__all__ = [
    "BioactivitySource",
    "LanguageModel",
    "MechanismSource",
    "PropertySource",
    "SourceBundle",
    "StructureSource",
    "ToolSpec",
    "FanOutAggregator",
    "build_language_model",
    "build_sources",
    "StructureResolver",
    "looks_like_formula",
    "SynthesisAgent",
]
