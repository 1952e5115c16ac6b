# core/resolver.py - Map free-text barrier terminology onto canonical keys
import logging
from typing import List, Optional

from ..models.item_master import Barrier, ResolvedItem
from ..models.schemas import ModelConfig, ModuleType, ResolutionMethod, ResolutionTier
from .gateway import CompletionGateway, message_content
from .prompting import (
    EXPERT_INFERENCE_MAX_TOKENS,
    EXPERT_INFERENCE_TEMPERATURE,
    SENTINEL_KEYS,
    UNKNOWN_BARRIER,
    build_expert_inference_prompt,
    normalize_key_answer,
)

logger = logging.getLogger(__name__)

# Checked in declaration order; first stem with a matching keyword wins
KEYWORD_PATTERNS = [
    ("processing_speed", ["processing speed", "slow processing", "processing deficit"]),
    ("sustained_attention", ["attention", "concentration", "focus", "sustained attention"]),
    ("executive_function", ["executive function", "cognitive flexibility", "set-shifting"]),
    ("working_memory", ["working memory", "memory", "recall"]),
    ("test_anxiety", ["anxiety", "test anxiety", "performance anxiety"]),
]


def is_sentinel(key: Optional[str]) -> bool:
    return key is None or key.strip().lower() in SENTINEL_KEYS


def keyword_match(term: str) -> Optional[str]:
    lowered = (term or "").lower()
    for stem, keywords in KEYWORD_PATTERNS:
        if any(keyword in lowered for keyword in keywords):
            return f"{stem}_deficit"
    return None


class CanonicalKeyResolver:
    """Exact key, then keyword stems, then a short expert-inference completion."""

    def __init__(self, gateway: CompletionGateway):
        self.gateway = gateway

    async def resolve(
        self,
        items: List[Barrier],
        module_type: ModuleType,
        model_config: ModelConfig,
    ) -> List[ResolvedItem]:
        resolved = []
        for item in items:
            resolved.append(await self.resolve_one(item, module_type, model_config))
        return resolved

    async def resolve_one(self, item: Barrier, module_type: ModuleType, model_config: ModelConfig) -> ResolvedItem:
        term = item.surface_term or item.description or ""
        logger.info(f"Resolving canonical key for: {term or item.canonical_key} ({module_type.value})")

        if not is_sentinel(item.canonical_key):
            return self._resolved(item, item.canonical_key, ResolutionMethod.EXACT_MATCH, ResolutionTier.EXACT)

        matched = keyword_match(term)
        if matched:
            return self._resolved(item, matched, ResolutionMethod.AI_RESOLVED, ResolutionTier.KEYWORD)

        inferred = await self.expert_inference(term, model_config)
        tier = ResolutionTier.UNRESOLVED if inferred == UNKNOWN_BARRIER else ResolutionTier.EXPERT_INFERENCE
        return self._resolved(item, inferred, ResolutionMethod.AI_RESOLVED, tier)

    async def expert_inference(self, term: str, model_config: ModelConfig) -> str:
        if not term.strip():
            logger.warning("No term to infer a canonical key from")
            return UNKNOWN_BARRIER

        logger.info(f"Using expert inference for: {term}")
        payload = {
            "model": model_config.model_name,
            "messages": [{"role": "user", "content": build_expert_inference_prompt(term)}],
            "max_tokens": EXPERT_INFERENCE_MAX_TOKENS,
            "temperature": EXPERT_INFERENCE_TEMPERATURE,
        }
        try:
            key = await self.gateway.call_with_fallback(
                payload, lambda completion: normalize_key_answer(message_content(completion))
            )
        except Exception as e:
            logger.error(f"Expert inference failed for '{term}': {e}")
            return UNKNOWN_BARRIER

        logger.info(f"Expert inference result: {key}")
        return key

    @staticmethod
    def _resolved(item: Barrier, key: str, method: ResolutionMethod, tier: ResolutionTier) -> ResolvedItem:
        return ResolvedItem(
            **item.model_dump(exclude={"canonical_key"}),
            canonical_key=key,
            resolution_method=method,
            resolution_tier=tier,
        )
