"""
Shared fixtures: offline sources with call recording and failure injection.
"""
import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from typing import Dict, List, Optional

import pytest

from config import Settings
from models import BioactivityRecord, MechanismPrediction, PropertyPrediction
from pipeline import AnalysisPipeline
from services.base import (
    BioactivitySource,
    LanguageModel,
    MechanismSource,
    PropertySource,
    SourceBundle,
    ToolSpec,
)
from services.chembl_client import MockBioactivitySource
from services.mechanism_predictor import MockMechanismSource
from services.molprop_client import MockPropertySource
from services.pubchem_client import MockStructureSource
from services.rules_engine import RuleBasedLanguageModel

BENZENE = "c1ccccc1"
ASPIRIN = "CC(=O)Oc1ccccc1C(=O)O"
QUERY = "Analyze potential efficacy and toxicity."


class RecordingStructureSource(MockStructureSource):
    def __init__(self, calls: List[str]):
        super().__init__()
        self.calls = calls

    async def resolve_identifier(self, smiles):
        self.calls.append("structure.resolve")
        return await super().resolve_identifier(smiles)

    async def fetch_properties(self, identifier):
        self.calls.append("structure.fetch")
        return await super().fetch_properties(identifier)


class RecordingBioactivitySource(MockBioactivitySource):
    def __init__(self, calls: List[str]):
        self.calls = calls

    async def lookup_by_name(self, name):
        self.calls.append("bioactivity")
        return await super().lookup_by_name(name)


class RecordingPropertySource(MockPropertySource):
    def __init__(self, calls: List[str]):
        self.calls = calls

    async def predict(self, smiles):
        self.calls.append("properties")
        return await super().predict(smiles)


class RecordingMechanismSource(MockMechanismSource):
    def __init__(self, calls: List[str]):
        self.calls = calls

    async def predict(self, smiles):
        self.calls.append("mechanism")
        return await super().predict(smiles)


class RaisingBioactivitySource(BioactivitySource):
    async def lookup_by_name(self, name) -> Optional[BioactivityRecord]:
        raise RuntimeError("ChEMBL unavailable")


class RaisingPropertySource(PropertySource):
    async def predict(self, smiles) -> Optional[PropertyPrediction]:
        raise RuntimeError("Molprop unavailable")


class RaisingMechanismSource(MechanismSource):
    async def predict(self, smiles) -> Optional[MechanismPrediction]:
        raise RuntimeError("mechanism model unavailable")


class StaticLanguageModel(LanguageModel):
    """Returns a fixed answer (or raises) and records what it was given."""

    def __init__(self, answer="A generated analysis.", error: Optional[Exception] = None):
        self.answer = answer
        self.error = error
        self.calls: List[Dict] = []

    async def generate(self, template, variables, tools: Optional[List[ToolSpec]] = None):
        self.calls.append({"template": template, "variables": variables, "tools": tools})
        if self.error is not None:
            raise self.error
        return self.answer


@pytest.fixture
def calls() -> List[str]:
    return []


@pytest.fixture
def recording_sources(calls) -> SourceBundle:
    return SourceBundle(
        structure=RecordingStructureSource(calls),
        bioactivity=RecordingBioactivitySource(calls),
        properties=RecordingPropertySource(calls),
        mechanism=RecordingMechanismSource(calls),
    )


@pytest.fixture
def mock_sources() -> SourceBundle:
    return SourceBundle(
        structure=MockStructureSource(),
        bioactivity=MockBioactivitySource(),
        properties=MockPropertySource(),
        mechanism=MockMechanismSource(),
    )


@pytest.fixture
def test_settings() -> Settings:
    return Settings.from_overrides(
        structure_source="mock",
        bioactivity_source="mock",
        property_source="mock",
        mechanism_source="mock",
        synthesis_backend="rules",
        synthesis_mode="prefetched",
        lookup_cache_enabled=False,
        max_tracked_runs=10,
    )


@pytest.fixture
def pipeline(mock_sources, test_settings) -> AnalysisPipeline:
    return AnalysisPipeline(sources=mock_sources, model=RuleBasedLanguageModel(), settings=test_settings)
