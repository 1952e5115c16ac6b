"""Tests for canonical key resolution: exact, keyword, expert inference."""
import asyncio

import pytest

from accommodation_engine.core.gateway import CompletionGateway
from accommodation_engine.core.resolver import CanonicalKeyResolver, keyword_match
from accommodation_engine.models.item_master import Barrier
from accommodation_engine.models.schemas import ModelConfig, ModuleType, ResolutionMethod, ResolutionTier
from accommodation_engine.utils.api_client import CompletionError
from fakes import FakeChatClient, completion

MODEL = ModelConfig(model_name="gpt-primary")


def _resolve(client, *barriers):
    resolver = CanonicalKeyResolver(CompletionGateway(client))
    return asyncio.run(resolver.resolve(list(barriers), ModuleType.POST_SECONDARY, MODEL))


class TestKeywordMatch:
    def test_attention_maps_to_attention_stem(self):
        assert keyword_match("Difficulty with ATTENTION in class") == "sustained_attention_deficit"

    def test_declaration_order_wins(self):
        assert keyword_match("slow processing and poor working memory") == "processing_speed_deficit"

    def test_no_match(self):
        assert keyword_match("fine motor weakness") is None


class TestResolver:
    def test_exact_key_accepted_without_calls(self):
        client = FakeChatClient()
        [item] = _resolve(client, Barrier(canonical_key="test_anxiety", description="Panics in exams"))
        assert item.canonical_key == "test_anxiety"
        assert item.resolution_method == ResolutionMethod.EXACT_MATCH
        assert item.resolution_tier == ResolutionTier.EXACT
        assert client.payloads == []

    def test_exact_key_passed_through_unchanged(self):
        [item] = _resolve(FakeChatClient(), Barrier(canonical_key=" Test_Anxiety ", description="Panics in exams"))
        assert item.canonical_key == " Test_Anxiety "
        assert item.resolution_tier == ResolutionTier.EXACT

    def test_keyword_tier_makes_no_generative_call(self):
        client = FakeChatClient()
        [item] = _resolve(client, Barrier(canonical_key="", surface_term="attention"))
        assert item.canonical_key == "sustained_attention_deficit"
        assert item.resolution_method == ResolutionMethod.AI_RESOLVED
        assert item.resolution_tier == ResolutionTier.KEYWORD
        assert client.payloads == []

    @pytest.mark.parametrize("sentinel", [None, "", "unknown", "unknown_barrier", "  UNKNOWN "])
    def test_sentinels_are_not_exact(self, sentinel):
        [item] = _resolve(FakeChatClient(), Barrier(canonical_key=sentinel, description="poor concentration"))
        assert item.resolution_tier == ResolutionTier.KEYWORD

    def test_surface_term_preferred_over_description(self):
        [item] = _resolve(
            FakeChatClient(),
            Barrier(surface_term="test anxiety", description="problems with memory"),
        )
        assert item.canonical_key == "test_anxiety_deficit"

    def test_expert_inference(self):
        client = FakeChatClient(completion("working_memory_deficit"))
        [item] = _resolve(client, Barrier(description="difficulty holding multi-step instructions"))

        assert item.canonical_key == "working_memory_deficit"
        assert item.resolution_method == ResolutionMethod.AI_RESOLVED
        assert item.resolution_tier == ResolutionTier.EXPERT_INFERENCE

        [payload] = client.payloads
        assert payload["temperature"] == 0.1
        assert payload["max_tokens"] == 50
        assert "difficulty holding multi-step instructions" in payload["messages"][0]["content"]

    def test_expert_answer_is_normalized(self):
        client = FakeChatClient(completion("  `Test_Anxiety`\n"))
        [item] = _resolve(client, Barrier(description="shuts down during timed exams"))
        assert item.canonical_key == "test_anxiety"

    def test_answer_outside_taxonomy_is_unknown(self):
        client = FakeChatClient(completion("dyslexia_reading_disorder"))
        [item] = _resolve(client, Barrier(description="reads below grade level"))
        assert item.canonical_key == "unknown_barrier"
        assert item.resolution_tier == ResolutionTier.UNRESOLVED

    def test_total_failure_yields_unknown_barrier(self):
        client = FakeChatClient(CompletionError("down"), CompletionError("still down"))
        [item] = _resolve(client, Barrier(description="reads below grade level"))
        assert item.canonical_key == "unknown_barrier"
        assert client.models == ["gpt-primary", "gpt-4.1"]

    def test_preserves_barrier_fields(self):
        [item] = _resolve(
            FakeChatClient(),
            Barrier(canonical_key="test_anxiety", description="desc", evidence="BASC-3", surface_term="worry"),
        )
        assert item.evidence == "BASC-3"
        assert item.surface_term == "worry"
        assert item.description == "desc"
