# models/schemas.py - Analysis request/result models
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator


class ModuleType(str, Enum):
    K12 = "k12"
    POST_SECONDARY = "post_secondary"
    TUTORING = "tutoring"


class FindingType(str, Enum):
    STRENGTH = "strength"
    WEAKNESS = "weakness"


class Pathway(str, Enum):
    SIMPLE = "simple"      # Single completion, no forced tool calls
    COMPLEX = "complex"    # Multi-step tool calling with structured extraction


class AnalysisStatus(str, Enum):
    COMPLETED = "completed"
    FAILED = "failed"


class ValidationStatus(str, Enum):
    VALIDATED = "validated"
    PARTIAL_INFERENCE = "partial_inference"
    FULL_INFERENCE = "full_inference"
    FLAGGED = "flagged"


class InferenceLevel(str, Enum):
    NONE = "none"
    PARTIAL = "partial"
    COMPLETE = "complete"


class ItemSource(str, Enum):
    DATABASE = "database"
    CASCADE_INFERENCE = "cascade_inference"
    AI_ANALYSIS = "ai_analysis"


class ResolutionMethod(str, Enum):
    EXACT_MATCH = "exact_match"
    AI_RESOLVED = "ai_resolved"


class ResolutionTier(str, Enum):
    EXACT = "exact"
    KEYWORD = "keyword"
    EXPERT_INFERENCE = "expert_inference"
    UNRESOLVED = "unresolved"


class AssessmentDocument(BaseModel):
    filename: str
    content: str


class AnalysisContext(BaseModel):
    unique_id: Optional[str] = None
    program_major: Optional[str] = None
    report_author: Optional[str] = None
    student_grade: Optional[str] = None


class AnalysisRequest(BaseModel):
    case_id: str
    module_type: ModuleType
    pathway: Optional[Pathway] = None  # None = unset, resolved by the pathway selector
    documents: List[AssessmentDocument] = []
    context: AnalysisContext = AnalysisContext()

    @field_validator("case_id")
    @classmethod
    def validate_case_id(cls, v):
        if not v or not v.strip():
            raise ValueError("case_id must not be empty")
        return v

    @field_validator("pathway", mode="before")
    @classmethod
    def unset_pathway(cls, v):
        if isinstance(v, str) and v.strip().lower() == "unset":
            return None
        return v


class ModelConfig(BaseModel):
    model_name: str = "gpt-4.1"
    max_tokens: int = 4000
    temperature: float = 0.3


DEFAULT_MODEL_CONFIG = ModelConfig()


class AnalysisResult(BaseModel):
    status: AnalysisStatus
    analysis_date: datetime
    markdown_report: str = ""
    module_type: ModuleType
    item_master_data: List[Dict[str, Any]] = []
    error_message: Optional[str] = None


class ReportRenderRequest(BaseModel):
    item_master_data: List[Dict[str, Any]] = []
    template: Optional[str] = None
    student_grade: str = ""
    report_date: Optional[datetime] = None


class ReportRenderResponse(BaseModel):
    markdown_report: str
    total_items: int = Field(0, ge=0)


class ReportExportRequest(BaseModel):
    case_id: str
    markdown_report: str = ""
    item_master_data: List[Dict[str, Any]] = []
