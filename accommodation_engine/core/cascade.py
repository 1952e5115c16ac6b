# core/cascade.py - Complete K-12 display fields from lookups, then inference for gaps
import logging
import re
from typing import Any, Dict, List, Optional

from ..models.item_master import K12_DISPLAY_FIELDS, CandidateFinding, ItemMasterRecord, ResolvedItem
from ..models.schemas import (
    InferenceLevel,
    ItemSource,
    ModelConfig,
    ModuleType,
    ValidationStatus,
)
from .gateway import CompletionGateway, message_content
from .prompting import (
    CASCADE_MAX_TOKENS,
    CASCADE_TEMPERATURE,
    build_cascade_prompt,
    parse_json_object,
    template_fields,
)
from .storage import AssessmentStorage

logger = logging.getLogger(__name__)

ELEMENTARY = "Elementary"
MIDDLE_SCHOOL = "Middle School"
HIGH_SCHOOL = "High School"


def grade_band_for(student_grade: Optional[str]) -> str:
    """K-5 -> Elementary, 6-8 -> Middle School, 9-12 -> High School; anything else Elementary."""
    grade = (student_grade or "").strip().lower()
    if grade in ("k", "kg", "kindergarten", "pre-k", "prek"):
        return ELEMENTARY

    match = re.search(r"\d+", grade)
    if not match:
        return ELEMENTARY

    number = int(match.group())
    if 6 <= number <= 8:
        return MIDDLE_SCHOOL
    if 9 <= number <= 12:
        return HIGH_SCHOOL
    return ELEMENTARY


def _first(rows: Optional[List[Dict[str, Any]]], index: int, column: str) -> Optional[str]:
    if rows and len(rows) > index:
        return rows[index].get(column)
    return None


def _present(value: Any) -> bool:
    return isinstance(value, str) and value.strip() != ""


class CascadeInferenceEngine:
    def __init__(self, storage: AssessmentStorage, gateway: CompletionGateway):
        self.storage = storage
        self.gateway = gateway

    async def lookup_fields(self, canonical_key: str, grade_band: str) -> Dict[str, Optional[str]]:
        fields: Dict[str, Optional[str]] = {name: None for name in K12_DISPLAY_FIELDS}

        try:
            glossary = await self.storage.get_barrier_glossary(canonical_key)
            if glossary:
                fields["item_label"] = glossary.get("barrier_category")
                fields["parent_friendly_label"] = glossary.get("parent_friendly_label")
        except Exception as e:
            logger.error(f"Glossary lookup failed for {canonical_key}: {e}")

        try:
            supports = await self.storage.get_support_lookup(canonical_key, grade_band)
            fields["support_1"] = _first(supports, 0, "description")
            fields["support_2"] = _first(supports, 1, "description")
        except Exception as e:
            logger.error(f"Support lookup failed for {canonical_key}: {e}")

        try:
            cautions = await self.storage.get_caution_lookup(canonical_key, grade_band)
            fields["caution_note"] = _first(cautions, 0, "description")
        except Exception as e:
            logger.error(f"Caution lookup failed for {canonical_key}: {e}")

        try:
            observations = await self.storage.get_observation_template(canonical_key, grade_band)
            fields["classroom_observation"] = _first(observations, 0, "template_content")
        except Exception as e:
            logger.error(f"Observation lookup failed for {canonical_key}: {e}")

        return fields

    async def infer_fields(
        self,
        canonical_key: str,
        finding: CandidateFinding,
        grade_band: str,
        missing_fields: List[str],
        known_fields: Dict[str, Optional[str]],
        model_config: ModelConfig,
    ) -> Dict[str, str]:
        """One JSON-object completion for the missing fields; template text if both models fail."""
        payload = {
            "model": model_config.model_name,
            "messages": [
                {
                    "role": "user",
                    "content": build_cascade_prompt(canonical_key, finding, grade_band, missing_fields, known_fields),
                }
            ],
            "max_tokens": CASCADE_MAX_TOKENS,
            "temperature": CASCADE_TEMPERATURE,
            "response_format": {"type": "json_object"},
        }
        try:
            generated = await self.gateway.call_with_fallback(
                payload, lambda completion: parse_json_object(message_content(completion))
            )
        except Exception as e:
            logger.warning(f"Cascade inference failed for {canonical_key}, using template text: {e}")
            generated = template_fields(canonical_key, finding)

        return {name: generated[name] for name in missing_fields if _present(generated.get(name))}

    async def populate(
        self,
        resolved: ResolvedItem,
        finding: CandidateFinding,
        case_id: str,
        grade_band: str,
        model_config: ModelConfig,
    ) -> ItemMasterRecord:
        canonical_key = resolved.canonical_key
        logger.info(f"Starting cascade inference for: {canonical_key} ({grade_band})")

        looked_up = await self.lookup_fields(canonical_key, grade_band)
        missing = [name for name in K12_DISPLAY_FIELDS if not _present(looked_up.get(name))]

        fields = {name: looked_up[name] for name in K12_DISPLAY_FIELDS if name not in missing}
        if missing:
            logger.info(f"Missing fields detected: {', '.join(missing)}")
            known = {name: value for name, value in looked_up.items() if name not in missing}
            inferred = await self.infer_fields(canonical_key, finding, grade_band, missing, known, model_config)

            templates = template_fields(canonical_key, finding)
            for name in missing:
                fields[name] = inferred.get(name) or templates[name]

        if not missing:
            status, level = ValidationStatus.VALIDATED, InferenceLevel.NONE
        elif len(missing) == len(K12_DISPLAY_FIELDS):
            status, level = ValidationStatus.FULL_INFERENCE, InferenceLevel.COMPLETE
        else:
            status, level = ValidationStatus.PARTIAL_INFERENCE, InferenceLevel.PARTIAL

        logger.info(f"K-12 item master populated with {level.value} inference")
        return ItemMasterRecord(
            assessment_case_id=case_id,
            canonical_key=canonical_key,
            grade_band=grade_band,
            evidence_basis=finding.evidence_basis,
            validation_status=status,
            inference_level=level,
            inferred_fields=missing,
            resolution_method=resolved.resolution_method,
            resolution_tier=resolved.resolution_tier,
            source=ItemSource.DATABASE if not missing else ItemSource.CASCADE_INFERENCE,
            module_type=ModuleType.K12,
            **fields,
        )
