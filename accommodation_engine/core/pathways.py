# core/pathways.py - Effective pathway selection and post-secondary report checks
from dataclasses import dataclass, field
from typing import List, Optional

from ..models.schemas import AnalysisRequest, ModuleType, Pathway

# Post-secondary pathway policy
POST_SECONDARY_DEFAULT_PATHWAY = Pathway.SIMPLE
POST_SECONDARY_ALLOWED_PATHWAYS = {Pathway.SIMPLE, Pathway.COMPLEX}
DEMO_FORCES_SIMPLE = True

# Every post-secondary simple-pathway report must cover these
POST_SECONDARY_CATEGORIES = [
    "Academic Accommodations",
    "Instructional / Program Accommodations",
    "Auxiliary Aids & Services",
    "Non-Accommodation Supports / Referrals",
]


def post_secondary_pathway(requested: Optional[Pathway], is_demo: bool) -> Pathway:
    if is_demo and DEMO_FORCES_SIMPLE:
        return Pathway.SIMPLE
    if requested in POST_SECONDARY_ALLOWED_PATHWAYS:
        return requested
    return POST_SECONDARY_DEFAULT_PATHWAY


def effective_pathway(request: AnalysisRequest, is_demo: bool) -> Pathway:
    """Pathway used for the whole request. Pure; never fails."""
    if request.module_type == ModuleType.TUTORING:
        return Pathway.SIMPLE
    if request.module_type == ModuleType.POST_SECONDARY:
        chosen = post_secondary_pathway(request.pathway, is_demo)
        return Pathway.SIMPLE if chosen == Pathway.SIMPLE else Pathway.COMPLEX
    return request.pathway or Pathway.COMPLEX


@dataclass
class CategoryCheck:
    is_valid: bool
    missing_categories: List[str] = field(default_factory=list)


def _category_variants(category: str) -> List[str]:
    return [
        category,
        category.replace("/", " and "),
        category.replace("/", " "),
        category.replace(" / ", " and "),
        category.replace("Support", "Supports"),
    ]


def validate_report_categories(report: str) -> CategoryCheck:
    """Check a post-secondary narrative mentions all required accommodation categories."""
    text = (report or "").lower()
    missing = [
        category
        for category in POST_SECONDARY_CATEGORIES
        if not any(variant.lower() in text for variant in _category_variants(category))
    ]
    return CategoryCheck(is_valid=not missing, missing_categories=missing)
