"""Tests for the K-12 two-phase and generic single-phase tool workflows."""
import asyncio
import json

from accommodation_engine.core.cascade import CascadeInferenceEngine
from accommodation_engine.core.gateway import CompletionGateway
from accommodation_engine.core.orchestrator import ToolCallOrchestrator, enhance_analysis_with_results
from accommodation_engine.core.resolver import CanonicalKeyResolver
from accommodation_engine.core.storage import InMemoryStorage
from accommodation_engine.models.messages import ConversationLog
from accommodation_engine.models.schemas import AnalysisContext, AnalysisRequest, ModelConfig, ModuleType, Pathway
from fakes import FakeChatClient, completion, seed_full_lookup, tool_call

MODEL = ModelConfig(model_name="gpt-primary")


def _orchestrator(client, storage):
    gateway = CompletionGateway(client)
    return ToolCallOrchestrator(
        gateway,
        CanonicalKeyResolver(gateway),
        CascadeInferenceEngine(storage, gateway),
        storage,
    )


def _request(module_type, grade=None):
    return AnalysisRequest(
        case_id="case-42",
        module_type=module_type,
        context=AnalysisContext(student_grade=grade),
    )


def _sample_catalog():
    return {
        "allFindings": [
            {
                "findingType": "strength",
                "description": "Strong verbal reasoning",
                "relevanceScore": 8,
                "classroomImpact": "participates in discussion",
                "evidenceBasis": "WISC-V VCI 118",
            },
            {
                "findingType": "weakness",
                "description": "Difficulty sustaining attention",
                "relevanceScore": 9,
                "classroomImpact": "frequent off-task behavior",
                "evidenceBasis": "Conners-4 inattention T=72",
            },
            {
                "findingType": "weakness",
                "description": "Mild fine motor delay",
                "relevanceScore": 3,
                "classroomImpact": "slow handwriting",
                "evidenceBasis": "Beery VMI 84",
            },
        ],
        "topStrengths": [0],
        "topWeaknesses": [1],
    }


def _sample_selection():
    return {
        "selectedFindings": [
            {
                "findingType": "weakness",
                "description": "Difficulty sustaining attention",
                "relevanceScore": 9,
                "classroomImpact": "frequent off-task behavior",
                "evidenceBasis": "Conners-4 inattention T=72",
                "canonicalKey": "",
                "surfaceTerm": "attention",
            }
        ]
    }


def _run_k12(client, storage, pathway=Pathway.COMPLEX):
    conversation = ConversationLog("K12 system", "K12 user")
    outcome = asyncio.run(
        _orchestrator(client, storage).run_k12_workflow(conversation, _request(ModuleType.K12), MODEL, pathway)
    )
    return outcome, conversation


def _run_generic(client, storage, pathway, module_type=ModuleType.POST_SECONDARY):
    conversation = ConversationLog("PS system", "PS user")
    return asyncio.run(
        _orchestrator(client, storage).run_generic_workflow(conversation, _request(module_type), MODEL, pathway)
    )


class TestK12Workflow:
    def test_full_two_phase_conversation(self):
        storage = InMemoryStorage()
        seed_full_lookup(storage, "sustained_attention_deficit")
        client = FakeChatClient(
            completion("Initial narrative", [tool_call("call_1", "identifyStrengthsAndWeaknesses", _sample_catalog())]),
            completion(None, [tool_call("call_2", "populateK12ItemMaster", _sample_selection())]),
            completion("Final K-12 report"),
        )

        outcome, _ = _run_k12(client, storage)

        assert outcome.markdown_report == "Final K-12 report"
        assert len(outcome.item_master_data) == 1
        item = outcome.item_master_data[0]
        assert item["canonical_key"] == "sustained_attention_deficit"
        assert item["validation_status"] == "validated"
        assert item["resolution_method"] == "ai_resolved"
        assert len(client.payloads) == 3

    def test_second_call_carries_acknowledged_tool_round(self):
        storage = InMemoryStorage()
        seed_full_lookup(storage, "sustained_attention_deficit")
        client = FakeChatClient(
            completion("Initial narrative", [tool_call("call_1", "identifyStrengthsAndWeaknesses", _sample_catalog())]),
            completion(None, [tool_call("call_2", "populateK12ItemMaster", _sample_selection())]),
            completion("Final K-12 report"),
        )

        _run_k12(client, storage)

        second = client.payloads[1]
        assert [m["role"] for m in second["messages"]] == ["system", "user", "assistant", "tool"]
        assert second["messages"][2]["tool_calls"][0]["id"] == "call_1"
        assert second["messages"][3]["tool_call_id"] == "call_1"
        assert json.loads(second["messages"][3]["content"])["success"] is True
        assert second["tool_choice"] == {"type": "function", "function": {"name": "populateK12ItemMaster"}}
        assert "tools" in second

        third = client.payloads[2]
        assert [m["role"] for m in third["messages"]] == ["system", "user", "assistant", "tool", "assistant", "tool"]
        assert third["messages"][5]["tool_call_id"] == "call_2"
        assert json.loads(third["messages"][5]["content"])["itemMasterData"][0]["canonical_key"] == "sustained_attention_deficit"
        assert "tools" not in third

    def test_findings_persisted_ranked_and_annotated(self):
        storage = InMemoryStorage()
        seed_full_lookup(storage, "sustained_attention_deficit")
        client = FakeChatClient(
            completion("Initial narrative", [tool_call("call_1", "identifyStrengthsAndWeaknesses", _sample_catalog())]),
            completion(None, [tool_call("call_2", "populateK12ItemMaster", _sample_selection())]),
            completion("Final K-12 report"),
        )

        outcome, _ = _run_k12(client, storage)

        findings = {f.description: f for f in asyncio.run(storage.get_assessment_findings("case-42"))}
        assert len(findings) == 3
        assert findings["Strong verbal reasoning"].rank_order == 1
        assert findings["Difficulty sustaining attention"].rank_order == 1
        assert findings["Mild fine motor delay"].rank_order is None

        annotated = findings["Difficulty sustaining attention"]
        assert annotated.canonical_key == "sustained_attention_deficit"
        assert annotated.matching_method == "ai_resolved"
        assert annotated.item_master_id == outcome.item_master_data[0]["id"]
        assert findings["Strong verbal reasoning"].canonical_key is None

    def test_simple_pathway_single_call(self):
        client = FakeChatClient(
            completion("Simple narrative", [tool_call("call_1", "identifyStrengthsAndWeaknesses", _sample_catalog())])
        )
        outcome, _ = _run_k12(client, InMemoryStorage(), Pathway.SIMPLE)
        assert outcome.markdown_report == "Simple narrative"
        assert outcome.item_master_data == []
        assert len(client.payloads) == 1

    def test_no_tool_calls_returns_narrative(self):
        client = FakeChatClient(completion("Only text"))
        outcome, conversation = _run_k12(client, InMemoryStorage())
        assert outcome.markdown_report == "Only text"
        assert outcome.item_master_data == []
        assert len(conversation) == 2

    def test_out_of_order_first_call_is_not_executed(self):
        storage = InMemoryStorage()
        client = FakeChatClient(
            completion(
                "Narrative",
                [
                    tool_call("call_1", "populateK12ItemMaster", _sample_selection()),
                    tool_call("call_2", "identifyStrengthsAndWeaknesses", _sample_catalog()),
                ],
            )
        )

        outcome, _ = _run_k12(client, storage)

        assert outcome.markdown_report == "Narrative"
        assert outcome.item_master_data == []
        assert len(client.payloads) == 1
        assert asyncio.run(storage.get_assessment_findings("case-42")) == []

    def test_population_without_tool_calls_keeps_narrative(self):
        client = FakeChatClient(
            completion("Initial narrative", [tool_call("call_1", "identifyStrengthsAndWeaknesses", _sample_catalog())]),
            completion("I decided not to call the tool"),
        )
        outcome, _ = _run_k12(client, InMemoryStorage())
        assert outcome.markdown_report == "Initial narrative"
        assert outcome.item_master_data == []
        assert len(client.payloads) == 2

    def test_empty_final_report_falls_back_to_narrative(self):
        storage = InMemoryStorage()
        seed_full_lookup(storage, "sustained_attention_deficit")
        client = FakeChatClient(
            completion("Initial narrative", [tool_call("call_1", "identifyStrengthsAndWeaknesses", _sample_catalog())]),
            completion(None, [tool_call("call_2", "populateK12ItemMaster", _sample_selection())]),
            completion(""),
        )
        outcome, _ = _run_k12(client, storage)
        assert outcome.markdown_report == "Initial narrative"
        assert len(outcome.item_master_data) == 1

    def test_selected_finding_without_type_is_populated(self):
        storage = InMemoryStorage()
        seed_full_lookup(storage, "sustained_attention_deficit")
        selection = _sample_selection()
        del selection["selectedFindings"][0]["findingType"]
        client = FakeChatClient(
            completion("Initial narrative", [tool_call("call_1", "identifyStrengthsAndWeaknesses", _sample_catalog())]),
            completion(None, [tool_call("call_2", "populateK12ItemMaster", selection)]),
            completion("Final K-12 report"),
        )

        outcome, _ = _run_k12(client, storage)

        assert outcome.markdown_report == "Final K-12 report"
        assert [item["canonical_key"] for item in outcome.item_master_data] == ["sustained_attention_deficit"]
        assert len(client.payloads) == 3

    def test_out_of_range_relevance_is_clamped(self):
        storage = InMemoryStorage()
        seed_full_lookup(storage, "sustained_attention_deficit")
        catalog = _sample_catalog()
        catalog["allFindings"][2]["relevanceScore"] = 0
        catalog["allFindings"][0]["relevanceScore"] = 15
        client = FakeChatClient(
            completion("Initial narrative", [tool_call("call_1", "identifyStrengthsAndWeaknesses", catalog)]),
            completion(None, [tool_call("call_2", "populateK12ItemMaster", _sample_selection())]),
            completion("Final K-12 report"),
        )

        outcome, _ = _run_k12(client, storage)

        findings = {f.description: f for f in asyncio.run(storage.get_assessment_findings("case-42"))}
        assert len(findings) == 3
        assert findings["Mild fine motor delay"].relevance_score == 1
        assert findings["Strong verbal reasoning"].relevance_score == 10
        assert len(outcome.item_master_data) == 1
        assert len(client.payloads) == 3

    def test_invalid_entries_are_skipped_individually(self):
        storage = InMemoryStorage()
        seed_full_lookup(storage, "sustained_attention_deficit")
        catalog = _sample_catalog()
        catalog["allFindings"].append({"findingType": "weakness", "description": ["not", "text"]})
        selection = _sample_selection()
        selection["selectedFindings"].insert(0, "not an object")
        client = FakeChatClient(
            completion("Initial narrative", [tool_call("call_1", "identifyStrengthsAndWeaknesses", catalog)]),
            completion(None, [tool_call("call_2", "populateK12ItemMaster", selection)]),
            completion("Final K-12 report"),
        )

        outcome, _ = _run_k12(client, storage)

        assert len(asyncio.run(storage.get_assessment_findings("case-42"))) == 3
        assert [item["canonical_key"] for item in outcome.item_master_data] == ["sustained_attention_deficit"]
        assert outcome.markdown_report == "Final K-12 report"

    def test_missing_finding_type_taken_from_rank_lists(self):
        storage = InMemoryStorage()
        catalog = _sample_catalog()
        del catalog["allFindings"][0]["findingType"]
        del catalog["allFindings"][2]["findingType"]
        client = FakeChatClient(
            completion("Initial narrative", [tool_call("call_1", "identifyStrengthsAndWeaknesses", catalog)]),
            completion("No population this time"),
        )

        _run_k12(client, storage)

        findings = {f.description: f for f in asyncio.run(storage.get_assessment_findings("case-42"))}
        assert findings["Strong verbal reasoning"].finding_type == "strength"
        assert findings["Mild fine motor delay"].finding_type is None

    def test_malformed_catalog_degrades_to_narrative(self):
        bad_call = {"id": "call_1", "type": "function", "function": {"name": "identifyStrengthsAndWeaknesses", "arguments": "{not json"}}
        client = FakeChatClient(completion("Initial narrative", [bad_call]))
        outcome, _ = _run_k12(client, InMemoryStorage())
        assert outcome.markdown_report == "Initial narrative"
        assert outcome.item_master_data == []
        assert len(client.payloads) == 1


class TestGenericWorkflow:
    def _barrier_call(self):
        return tool_call(
            "call_1",
            "populateItemMaster",
            {
                "barriers": [
                    {
                        "canonical_key": "slowed_processing_speed",
                        "description": "Works slowly under time pressure",
                        "evidence": "WAIS-IV PSI 78",
                        "surface_term": "processing speed",
                    }
                ],
                "accommodations": [
                    {"accommodation_type": "time_extension", "description": "Extended time", "canonical_key": "slowed_processing_speed"},
                    {"accommodation_type": "environment", "description": "Reduced distraction room", "canonical_key": "slowed_processing_speed"},
                    {"accommodation_type": "notes", "description": "Note taker", "canonical_key": "working_memory_deficit"},
                ],
            },
        )

    def test_complex_prepends_handler_results(self):
        storage = InMemoryStorage()
        client = FakeChatClient(completion("Original narrative", [self._barrier_call()]))

        outcome = _run_generic(client, storage, Pathway.COMPLEX)

        assert outcome.markdown_report.startswith("\n\n## AI Handler Results")
        assert outcome.markdown_report.endswith("Original narrative")
        [item] = outcome.item_master_data
        assert item["item_label"] == "Slowed Processing Speed"
        assert item["plain_language_label"] == "Works slowly under time pressure"
        assert item["evidence_basis"] == "WAIS-IV PSI 78"
        assert item["accommodations"] == "Extended time; Reduced distraction room"
        assert item["source"] == "ai_analysis"
        assert item["resolution_method"] == "exact_match"
        assert len(asyncio.run(storage.get_item_master_records("case-42"))) == 1

    def test_simple_preserves_narrative_verbatim(self):
        client = FakeChatClient(completion("Original narrative", [self._barrier_call()]))
        outcome = _run_generic(client, InMemoryStorage(), Pathway.SIMPLE)
        assert outcome.markdown_report == "Original narrative"
        assert len(outcome.item_master_data) == 1

    def test_tool_failure_keeps_narrative_and_drops_data(self):
        bad_call = {"id": "call_1", "type": "function", "function": {"name": "populateItemMaster", "arguments": "{oops"}}
        client = FakeChatClient(completion("Original narrative", [bad_call]))
        outcome = _run_generic(client, InMemoryStorage(), Pathway.COMPLEX)
        assert outcome.markdown_report == "Original narrative"
        assert outcome.item_master_data == []

    def test_lookup_returns_stored_post_secondary_items(self):
        storage = InMemoryStorage()
        storage.add_post_secondary_item(
            {"canonical_key": "test_anxiety", "item_label": "Test Anxiety", "accommodations": "Separate room"}
        )
        storage.add_post_secondary_item({"canonical_key": "other", "item_label": "Other"})
        call = tool_call("call_1", "lookupBarrierAccommodations", {"canonical_keys": ["test_anxiety"]})
        client = FakeChatClient(completion("Narrative", [call]))

        outcome = _run_generic(client, storage, Pathway.SIMPLE)

        assert outcome.item_master_data == [
            {"canonical_key": "test_anxiety", "item_label": "Test Anxiety", "accommodations": "Separate room"}
        ]

    def test_no_tool_calls(self):
        client = FakeChatClient(completion("Tutoring plan"))
        outcome = _run_generic(client, InMemoryStorage(), Pathway.SIMPLE, ModuleType.TUTORING)
        assert outcome.markdown_report == "Tutoring plan"
        assert outcome.item_master_data == []


class TestEnhanceAnalysis:
    def test_empty_data_returns_original(self):
        assert enhance_analysis_with_results("text", []) == "text"

    def test_summarizes_entries(self):
        enhanced = enhance_analysis_with_results(
            "text",
            [{"item_label": "Test Anxiety", "canonical_key": "test_anxiety", "evidence_basis": "GAD-7", "accommodations": "Separate room"}],
        )
        assert "- **Test Anxiety** (test_anxiety)" in enhanced
        assert "Generated 1 structured accommodation entries" in enhanced
