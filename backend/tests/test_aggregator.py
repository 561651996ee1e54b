"""
Tests for the fan-out aggregation stage
"""
import asyncio

import pytest

from conftest import RaisingBioactivitySource, RaisingMechanismSource, RaisingPropertySource
from models import StructureRecord
from services.aggregator import FanOutAggregator
from services.base import BioactivitySource, MechanismSource, PropertySource, SourceBundle
from services.chembl_client import MockBioactivitySource
from services.mechanism_predictor import MockMechanismSource
from services.molprop_client import MockPropertySource
from services.pubchem_client import MockStructureSource

ASPIRIN_RECORD = StructureRecord(
    cid=2244,
    molecular_formula="C9H8O4",
    canonical_smiles="CC(=O)OC1=CC=CC=C1C(=O)O",
    molecular_weight=180.16,
    iupac_name="2-acetyloxybenzoic acid",
    title="Aspirin",
)


class EmptyBioactivitySource(BioactivitySource):
    async def lookup_by_name(self, name):
        return None


class EmptyPropertySource(PropertySource):
    async def predict(self, smiles):
        return None


class EmptyMechanismSource(MechanismSource):
    async def predict(self, smiles):
        return None


class NameRecordingBioactivitySource(MockBioactivitySource):
    def __init__(self):
        self.names = []

    async def lookup_by_name(self, name):
        self.names.append(name)
        return await super().lookup_by_name(name)


class SlowPropertySource(MockPropertySource):
    def __init__(self, events):
        self.events = events

    async def predict(self, smiles):
        self.events.append("properties.start")
        await asyncio.sleep(0.05)
        self.events.append("properties.end")
        return await super().predict(smiles)


class SlowMechanismSource(MockMechanismSource):
    def __init__(self, events):
        self.events = events

    async def predict(self, smiles):
        self.events.append("mechanism.start")
        await asyncio.sleep(0.05)
        self.events.append("mechanism.end")
        return await super().predict(smiles)


def bundle(**overrides) -> SourceBundle:
    sources = dict(
        structure=MockStructureSource(),
        bioactivity=MockBioactivitySource(),
        properties=MockPropertySource(),
        mechanism=MockMechanismSource(),
    )
    sources.update(overrides)
    return SourceBundle(**sources)


FAILURES = {
    "bioactivity": [RaisingBioactivitySource, EmptyBioactivitySource],
    "properties": [RaisingPropertySource, EmptyPropertySource],
    "mechanism": [RaisingMechanismSource, EmptyMechanismSource],
}


class TestFanOutAggregator:

    @pytest.mark.asyncio
    async def test_all_slots_filled(self):
        aggregate = await FanOutAggregator(bundle()).gather(ASPIRIN_RECORD)
        assert aggregate.bioactivity.chembl_id == "CHEMBL25"
        assert aggregate.properties is not None
        assert "cyclooxygenase" in aggregate.mechanism.predicted_purpose
        assert aggregate.missing_slots() == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("slot,failing", [
        (slot, cls) for slot, classes in FAILURES.items() for cls in classes
    ])
    async def test_single_failure_leaves_others(self, slot, failing):
        aggregate = await FanOutAggregator(bundle(**{slot: failing()})).gather(ASPIRIN_RECORD)
        assert aggregate.missing_slots() == [slot]

    @pytest.mark.asyncio
    async def test_everything_fails_without_raising(self):
        sources = bundle(
            bioactivity=RaisingBioactivitySource(),
            properties=RaisingPropertySource(),
            mechanism=RaisingMechanismSource(),
        )
        aggregate = await FanOutAggregator(sources).gather(ASPIRIN_RECORD)
        assert aggregate.missing_slots() == ["bioactivity", "properties", "mechanism"]

    @pytest.mark.asyncio
    async def test_bioactivity_falls_back_to_iupac_name(self):
        bioactivity = NameRecordingBioactivitySource()
        record = ASPIRIN_RECORD.model_copy(update={"title": "Acetylsalicylate", "iupac_name": "aspirin"})
        aggregate = await FanOutAggregator(bundle(bioactivity=bioactivity)).gather(record)
        assert bioactivity.names == ["Acetylsalicylate", "aspirin"]
        assert aggregate.bioactivity.name == "ASPIRIN"

    @pytest.mark.asyncio
    async def test_unnamed_structure_skips_bioactivity(self):
        bioactivity = NameRecordingBioactivitySource()
        record = ASPIRIN_RECORD.model_copy(update={"title": None, "iupac_name": None})
        aggregate = await FanOutAggregator(bundle(bioactivity=bioactivity)).gather(record)
        assert bioactivity.names == []
        assert aggregate.bioactivity is None
        assert aggregate.properties is not None

    @pytest.mark.asyncio
    async def test_lookups_run_concurrently(self):
        events = []
        sources = bundle(properties=SlowPropertySource(events), mechanism=SlowMechanismSource(events))
        await FanOutAggregator(sources).gather(ASPIRIN_RECORD)
        # Both started before either finished
        assert events.index("mechanism.start") < events.index("properties.end")

    @pytest.mark.asyncio
    async def test_predictions_use_canonical_smiles(self):
        seen = []

        class Recording(MockPropertySource):
            async def predict(self, smiles):
                seen.append(smiles)
                return await super().predict(smiles)

        await FanOutAggregator(bundle(properties=Recording())).gather(ASPIRIN_RECORD)
        assert seen == ["CC(=O)OC1=CC=CC=C1C(=O)O"]
