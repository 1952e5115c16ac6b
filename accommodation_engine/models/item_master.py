# models/item_master.py - Pydantic models for findings, barriers and item master records
"""
These models mirror the arguments of the tool/function schemas the model is
allowed to call, and the item master rows persisted through storage.

K-12 display fields (six, in render order):
  item_label, parent_friendly_label, classroom_observation,
  support_1, support_2, caution_note
"""
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .schemas import (
    FindingType,
    InferenceLevel,
    ItemSource,
    ModuleType,
    ResolutionMethod,
    ResolutionTier,
    ValidationStatus,
)

K12_DISPLAY_FIELDS = [
    "item_label",
    "parent_friendly_label",
    "classroom_observation",
    "support_1",
    "support_2",
    "caution_note",
]


class CandidateFinding(BaseModel):
    """One entry of ``allFindings`` in identifyStrengthsAndWeaknesses.

    Unrecognized finding types become None; relevance scores are clamped to 1-10.
    """
    model_config = ConfigDict(populate_by_name=True)

    finding_type: Optional[FindingType] = Field(None, alias="findingType")
    description: str = ""
    relevance_score: Optional[int] = Field(None, alias="relevanceScore", ge=1, le=10)
    classroom_impact: str = Field("", alias="classroomImpact")
    evidence_basis: str = Field("", alias="evidenceBasis")

    @field_validator("finding_type", mode="before")
    @classmethod
    def normalize_finding_type(cls, v):
        if isinstance(v, str) and v.strip().lower() in {t.value for t in FindingType}:
            return v.strip().lower()
        return None

    @field_validator("relevance_score", mode="before")
    @classmethod
    def clamp_relevance_score(cls, v):
        if v is None or isinstance(v, bool):
            return None
        try:
            score = round(float(v))
        except (TypeError, ValueError, OverflowError):
            return None
        return min(max(score, 1), 10)


class FindingCatalog(BaseModel):
    """Arguments of identifyStrengthsAndWeaknesses."""
    model_config = ConfigDict(populate_by_name=True)

    # Entries are validated one at a time by the caller so a bad entry can be skipped
    all_findings: List[Any] = Field([], alias="allFindings")
    top_strengths: List[int] = Field([], alias="topStrengths")
    top_weaknesses: List[int] = Field([], alias="topWeaknesses")


class SelectedFinding(CandidateFinding):
    """One entry of ``selectedFindings`` in populateK12ItemMaster."""
    canonical_key: Optional[str] = Field(None, alias="canonicalKey")
    surface_term: Optional[str] = Field(None, alias="surfaceTerm")


class Finding(BaseModel):
    """Persisted assessment finding."""
    id: Optional[str] = None
    assessment_case_id: str
    finding_type: Optional[FindingType] = None
    description: str
    relevance_score: Optional[int] = None
    classroom_impact: str = ""
    rank_order: Optional[int] = None
    module_type: ModuleType
    canonical_key: Optional[str] = None
    matching_method: Optional[ResolutionMethod] = None
    item_master_id: Optional[str] = None


class Barrier(BaseModel):
    canonical_key: Optional[str] = None
    description: Optional[str] = None
    evidence: Optional[str] = None
    surface_term: Optional[str] = None


class Accommodation(BaseModel):
    accommodation_type: Optional[str] = None
    description: Optional[str] = None
    justification: Optional[str] = None
    canonical_key: Optional[str] = None


class ItemMasterPayload(BaseModel):
    """Arguments of populateItemMaster (post-secondary)."""
    barriers: List[Barrier] = []
    accommodations: List[Accommodation] = []


class ResolvedItem(Barrier):
    """A barrier after canonical key resolution."""
    canonical_key: str
    resolution_method: ResolutionMethod
    resolution_tier: ResolutionTier


class ItemMasterRecord(BaseModel):
    id: Optional[str] = None
    assessment_case_id: Optional[str] = None
    canonical_key: str
    grade_band: Optional[str] = None
    item_label: Optional[str] = None
    parent_friendly_label: Optional[str] = None
    classroom_observation: Optional[str] = None
    support_1: Optional[str] = None
    support_2: Optional[str] = None
    caution_note: Optional[str] = None
    plain_language_label: Optional[str] = None
    accommodations: Optional[str] = None
    evidence_basis: str = ""
    validation_status: Optional[ValidationStatus] = None
    inference_level: Optional[InferenceLevel] = None
    inferred_fields: List[str] = []
    resolution_method: Optional[ResolutionMethod] = None
    resolution_tier: Optional[ResolutionTier] = None
    source: ItemSource = ItemSource.AI_ANALYSIS
    module_type: ModuleType

    @field_validator("canonical_key")
    @classmethod
    def validate_canonical_key(cls, v):
        if not v or not v.strip():
            raise ValueError("canonical_key must not be empty")
        return v

    @field_validator("evidence_basis", mode="before")
    @classmethod
    def coerce_evidence(cls, v):
        return "" if v is None else v


def title_case_key(canonical_key: str) -> str:
    """slowed_processing_speed -> Slowed Processing Speed"""
    return " ".join(part[:1].upper() + part[1:] for part in canonical_key.split("_") if part)
