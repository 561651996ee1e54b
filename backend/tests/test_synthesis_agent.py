"""
Tests for the synthesis agent and its language model backends
"""
import json
from types import SimpleNamespace

import pytest

from conftest import QUERY, RaisingBioactivitySource, RaisingPropertySource, StaticLanguageModel
from core.errors import SynthesisError
from models import AggregateData, AnalysisQuery, PropertyPrediction, StructureRecord
from services.claude_service import ClaudeLanguageModel, extract_json_object
from services.rules_engine import RuleBasedLanguageModel
from services.synthesis_agent import PREFETCHED, TOOL_USE, SynthesisAgent

BENZENE_RECORD = StructureRecord(
    cid=241,
    molecular_formula="C6H6",
    canonical_smiles="C1=CC=CC=C1",
    molecular_weight=78.11,
    iupac_name="benzene",
    title="Benzene",
)


@pytest.fixture
def query():
    return AnalysisQuery(smiles="c1ccccc1", query=QUERY)


def text_block(text):
    return SimpleNamespace(type="text", text=text)


def tool_block(block_id, name, tool_input):
    return SimpleNamespace(type="tool_use", id=block_id, name=name, input=tool_input)


class FakeMessages:
    """Replays scripted Claude responses and records each request."""

    def __init__(self, responses):
        self.responses = list(responses)
        self.requests = []

    async def create(self, **kwargs):
        self.requests.append(kwargs)
        return self.responses.pop(0)


def fake_claude(responses, max_tool_rounds=6):
    messages = FakeMessages(responses)
    client = SimpleNamespace(messages=messages)
    model = ClaudeLanguageModel(
        api_key="test-key", model="test-model", max_tokens=512, max_tool_rounds=max_tool_rounds, client=client
    )
    return model, messages


class TestSynthesisAgent:

    def test_unknown_mode(self, mock_sources):
        with pytest.raises(ValueError):
            SynthesisAgent(StaticLanguageModel(), mock_sources, mode="guess")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("answer", ["", "   \n ", None, 42, {"text": "x"}])
    async def test_unusable_answer_is_synthesis_error(self, mock_sources, query, answer):
        agent = SynthesisAgent(StaticLanguageModel(answer=answer), mock_sources)
        with pytest.raises(SynthesisError) as exc_info:
            await agent.synthesize(query, BENZENE_RECORD, AggregateData())
        assert exc_info.value.user_message == "Model did not generate an analysis."

    @pytest.mark.asyncio
    async def test_model_exception_is_wrapped(self, mock_sources, query):
        agent = SynthesisAgent(StaticLanguageModel(error=TimeoutError("model timed out")), mock_sources)
        with pytest.raises(SynthesisError) as exc_info:
            await agent.synthesize(query, BENZENE_RECORD, AggregateData())
        assert "model timed out" in exc_info.value.user_message
        assert isinstance(exc_info.value.__cause__, TimeoutError)

    @pytest.mark.asyncio
    async def test_narrative_is_trimmed(self, mock_sources, query):
        agent = SynthesisAgent(StaticLanguageModel(answer="  Benzene is a solvent.\n"), mock_sources)
        assert await agent.synthesize(query, BENZENE_RECORD, AggregateData()) == "Benzene is a solvent."

    @pytest.mark.asyncio
    async def test_prefetched_embeds_data_without_tools(self, mock_sources, query):
        model = StaticLanguageModel()
        agent = SynthesisAgent(model, mock_sources, mode=PREFETCHED)
        aggregate = AggregateData(properties=PropertyPrediction(logp=2.13, solubility=-2.0, toxicity_score=0.6))

        await agent.synthesize(query, BENZENE_RECORD, aggregate)

        call = model.calls[0]
        assert call["tools"] is None
        variables = call["variables"]
        assert variables["smiles"] == "C1=CC=CC=C1"
        assert variables["target_protein"] == "Not specified"
        assert variables["query"] == QUERY
        data = json.loads(variables["data"])
        assert data["pubchem"]["cid"] == 241
        assert data["molprop"]["logp"] == 2.13
        assert data["chembl"] is None
        assert data["mechanism"] is None
        # Every placeholder in the template is filled
        call["template"].format(**variables)

    @pytest.mark.asyncio
    async def test_tool_use_declares_tools(self, mock_sources):
        model = StaticLanguageModel()
        agent = SynthesisAgent(model, mock_sources, mode=TOOL_USE)
        query = AnalysisQuery(smiles="c1ccccc1", target_protein="EGFR", query=QUERY)

        await agent.synthesize(query, BENZENE_RECORD)

        call = model.calls[0]
        assert "data" not in call["variables"]
        assert call["variables"]["target_protein"] == "EGFR"
        assert [tool.name for tool in call["tools"]] == [
            "get_pubchem_properties",
            "get_chembl_bioactivity",
            "get_molprop_prediction",
            "get_mechanism_prediction",
        ]
        call["template"].format(**call["variables"])

    @pytest.mark.asyncio
    async def test_tools_report_found_flag(self, mock_sources):
        tools = {tool.name: tool for tool in SynthesisAgent(StaticLanguageModel(), mock_sources, TOOL_USE).tools()}

        pubchem = await tools["get_pubchem_properties"].handler({"smiles": "c1ccccc1"})
        assert pubchem["found"] and pubchem["molecular_formula"] == "C6H6"

        assert await tools["get_chembl_bioactivity"].handler({"name": "Benzene"}) == {"found": False}
        assert (await tools["get_chembl_bioactivity"].handler({"name": "aspirin"}))["max_phase"] == 4
        assert (await tools["get_molprop_prediction"].handler({"smiles": "C1=CC=CC=C1"}))["found"]
        assert await tools["get_mechanism_prediction"].handler({"smiles": "C1=CC=CC=C1"}) == {"found": False}
        assert (await tools["get_molprop_prediction"].handler({}))["found"] is False


    @pytest.mark.asyncio
    async def test_failing_source_reports_not_found(self, mock_sources):
        mock_sources.properties = RaisingPropertySource()
        mock_sources.bioactivity = RaisingBioactivitySource()
        tools = {tool.name: tool for tool in SynthesisAgent(StaticLanguageModel(), mock_sources, TOOL_USE).tools()}

        assert await tools["get_molprop_prediction"].handler({"smiles": "CCO"}) == {"found": False}
        assert await tools["get_chembl_bioactivity"].handler({"name": "aspirin"}) == {"found": False}
        assert (await tools["get_pubchem_properties"].handler({"smiles": "c1ccccc1"}))["found"]


class TestRuleBasedLanguageModel:

    @pytest.mark.asyncio
    async def test_prefetched_report(self, mock_sources, query):
        agent = SynthesisAgent(RuleBasedLanguageModel(), mock_sources, mode=PREFETCHED)
        aggregate = AggregateData(properties=PropertyPrediction(logp=2.13, solubility=-1.64, toxicity_score=0.82))

        narrative = await agent.synthesize(query, BENZENE_RECORD, aggregate)

        assert narrative.startswith("Analysis of Benzene (C6H6")
        assert "PubChem CID 241" in narrative
        assert "no ChEMBL record was found" in narrative
        assert "high predicted risk" in narrative
        assert "Unavailable sources: ChEMBL, mechanism prediction." in narrative

    @pytest.mark.asyncio
    async def test_tool_use_report_fetches_itself(self, mock_sources):
        agent = SynthesisAgent(RuleBasedLanguageModel(), mock_sources, mode=TOOL_USE)
        aspirin = StructureRecord(
            cid=2244, molecular_formula="C9H8O4", canonical_smiles="CC(=O)OC1=CC=CC=C1C(=O)O",
            molecular_weight=180.16, iupac_name="2-acetyloxybenzoic acid", title="Aspirin",
        )
        query = AnalysisQuery(smiles="CC(=O)Oc1ccccc1C(=O)O", target_protein="PTGS2", query=QUERY)

        narrative = await agent.synthesize(query, aspirin)

        assert "CHEMBL25" in narrative
        assert "approval (phase 4)" in narrative
        assert "cyclooxygenase" in narrative
        assert "Target PTGS2" in narrative
        assert "Unavailable sources" not in narrative


class TestClaudeLanguageModel:

    def test_extract_json_object(self):
        assert extract_json_object('```json\n{"a": 1}\n```') == {"a": 1}
        assert extract_json_object('Here you go: {"a": 2} thanks') == {"a": 2}
        assert extract_json_object("no json") is None
        assert extract_json_object("{broken") is None

    @pytest.mark.asyncio
    async def test_plain_answer(self):
        model, messages = fake_claude([
            SimpleNamespace(stop_reason="end_turn", content=[text_block("Benzene is "), text_block("aromatic.")]),
        ])
        answer = await model.generate("Query: {query}", {"query": "What is it?"})
        assert answer == "Benzene is aromatic."
        assert messages.requests[0]["messages"][0]["content"] == "Query: What is it?"
        assert "tools" not in messages.requests[0]

    @pytest.mark.asyncio
    async def test_tool_loop(self, mock_sources):
        agent = SynthesisAgent(StaticLanguageModel(), mock_sources, mode=TOOL_USE)
        model, messages = fake_claude([
            SimpleNamespace(stop_reason="tool_use", content=[
                text_block("Let me look that up."),
                tool_block("t1", "get_chembl_bioactivity", {"name": "aspirin"}),
                tool_block("t2", "get_unknown", {}),
            ]),
            SimpleNamespace(stop_reason="end_turn", content=[text_block("Aspirin is approved.")]),
        ])

        answer = await model.generate("{query}", {"query": QUERY}, agent.tools())

        assert answer == "Aspirin is approved."
        assert len(messages.requests[0]["tools"]) == 4
        results = messages.requests[1]["messages"][-1]["content"]
        assert results[0]["tool_use_id"] == "t1"
        assert json.loads(results[0]["content"])["chembl_id"] == "CHEMBL25"
        assert results[1]["is_error"] is True

    @pytest.mark.asyncio
    async def test_tool_rounds_are_bounded(self, mock_sources):
        agent = SynthesisAgent(StaticLanguageModel(), mock_sources, mode=TOOL_USE)
        looping = SimpleNamespace(
            stop_reason="tool_use", content=[tool_block("t", "get_molprop_prediction", {"smiles": "CCO"})]
        )
        model, messages = fake_claude([looping] * 3, max_tool_rounds=2)

        with pytest.raises(RuntimeError):
            await model.generate("{query}", {"query": QUERY}, agent.tools())
        assert len(messages.requests) == 3

    @pytest.mark.asyncio
    async def test_tool_loop_failure_becomes_synthesis_error(self, mock_sources, query):
        looping = SimpleNamespace(
            stop_reason="tool_use", content=[tool_block("t", "get_molprop_prediction", {"smiles": "CCO"})]
        )
        model, _ = fake_claude([looping] * 2, max_tool_rounds=1)
        agent = SynthesisAgent(model, mock_sources, mode=TOOL_USE)

        with pytest.raises(SynthesisError):
            await agent.synthesize(query, BENZENE_RECORD)
