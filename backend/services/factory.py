"""
Builds the configured source adapters and language model.

Live vs. mock is decided here, once, from settings. Nothing downstream
branches on the mode.
"""
from typing import Optional

from loguru import logger

from config import LIVE, Settings, settings as default_settings
from core.cache import LookupCache
from .base import LanguageModel, SourceBundle
from .cached import (
    CachedBioactivitySource,
    CachedMechanismSource,
    CachedPropertySource,
    CachedStructureSource,
)
from .chembl_client import ChEMBLBioactivitySource, MockBioactivitySource
from .claude_service import ClaudeLanguageModel
from .mechanism_predictor import ClaudeMechanismSource, MockMechanismSource
from .molprop_client import MockPropertySource, MolpropPropertySource
from .pubchem_client import MockStructureSource, PubChemStructureSource
from .rules_engine import RuleBasedLanguageModel


def build_claude_model(settings: Settings) -> ClaudeLanguageModel:
    return ClaudeLanguageModel(
        api_key=settings.anthropic_api_key,
        model=settings.claude_model,
        max_tokens=settings.claude_max_tokens,
        max_tool_rounds=settings.max_tool_rounds,
    )


def build_sources(
    settings: Optional[Settings] = None,
    cache: Optional[LookupCache] = None,
) -> SourceBundle:
    """Create the four source adapters selected by configuration."""
    settings = settings or default_settings
    http = dict(timeout=settings.http_timeout_seconds, max_attempts=settings.http_max_attempts)

    if settings.structure_source == LIVE:
        structure = PubChemStructureSource(
            base_url=settings.pubchem_base_url,
            request_delay=settings.pubchem_request_delay,
            **http,
        )
    else:
        structure = MockStructureSource()

    if settings.bioactivity_source == LIVE:
        bioactivity = ChEMBLBioactivitySource(base_url=settings.chembl_base_url, **http)
    else:
        bioactivity = MockBioactivitySource()

    if settings.property_source == LIVE:
        properties = MolpropPropertySource(api_url=settings.molprop_api_url, **http)
    else:
        properties = MockPropertySource()

    if settings.mechanism_source == LIVE:
        mechanism = ClaudeMechanismSource(build_claude_model(settings))
    else:
        mechanism = MockMechanismSource()

    bundle = SourceBundle(structure, bioactivity, properties, mechanism)

    if cache is None and settings.lookup_cache_enabled:
        cache = LookupCache(
            max_size=settings.lookup_cache_max_entries,
            default_ttl=settings.lookup_cache_ttl,
        )
    if cache is not None:
        bundle = SourceBundle(
            structure=CachedStructureSource(bundle.structure, cache),
            bioactivity=CachedBioactivitySource(bundle.bioactivity, cache),
            properties=CachedPropertySource(bundle.properties, cache),
            mechanism=CachedMechanismSource(bundle.mechanism, cache),
        )

    logger.info(f"Configured sources: {bundle.describe()}")
    return bundle


def build_language_model(settings: Optional[Settings] = None) -> LanguageModel:
    settings = settings or default_settings
    if settings.synthesis_backend == "claude":
        return build_claude_model(settings)
    return RuleBasedLanguageModel()
