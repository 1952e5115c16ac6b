import json
from typing import Any, Dict, List, Mapping, Optional

from ..models.item_master import CandidateFinding, title_case_key
from ..models.schemas import AssessmentDocument

# -----------------------------
# Canonical key taxonomy
# -----------------------------
UNKNOWN_BARRIER = "unknown_barrier"

# Supplied keys that mean "no key"
SENTINEL_KEYS = {"", "unknown", UNKNOWN_BARRIER}

EXPERT_INFERENCE_KEYS = [
    "slowed_processing_speed",
    "sustained_attention_limit",
    "executive_function_deficit",
    "working_memory_deficit",
    "test_anxiety",
]

# Expert inference is a short, near-deterministic answer
EXPERT_INFERENCE_MAX_TOKENS = 50
EXPERT_INFERENCE_TEMPERATURE = 0.1

# Cascade inference returns a JSON object with the missing fields
CASCADE_MAX_TOKENS = 800
CASCADE_TEMPERATURE = 0.3

K12_FIELD_REQUIREMENTS = (
    "- item_label: Clear, teacher-friendly label (e.g., \"Processing Speed Challenges\")\n"
    "- parent_friendly_label: Explanation parents can understand (e.g., \"Your child needs extra time to process information\")\n"
    "- classroom_observation: Observable behaviors (e.g., \"May take longer to complete assignments, appears to work slowly\")\n"
    "- support_1: Primary support strategy (e.g., \"Provide extended time for assignments and tests\")\n"
    "- support_2: Secondary support strategy (e.g., \"Break complex tasks into smaller, manageable steps\")\n"
    "- caution_note: Implementation warning (e.g., \"Don't assume slow work means lack of understanding\")"
)

FINDINGS_SAVED_MESSAGE = (
    "Findings identified and saved. Now please call populateK12ItemMaster with the "
    "selected findings and their proposed canonical keys."
)

# -----------------------------
# Prompt builders
# -----------------------------

def build_user_prompt(documents: List[AssessmentDocument], student_name: Optional[str] = None) -> str:
    name_instruction = ""
    if student_name:
        name_instruction = (
            f"Student Name: {student_name}\n\n"
            f"IMPORTANT: Use \"{student_name}\" as the student name throughout the report. "
            "Do not use any other names.\n\n"
        )

    document_blocks = "\n".join(
        f"\nDocument {index}: {doc.filename}\nContent: {doc.content}\n"
        for index, doc in enumerate(documents, start=1)
    )

    closing = (
        "Generate a comprehensive accommodation report focusing on functional barriers "
        "and evidence-based recommendations."
    )
    if student_name:
        closing += (
            f" Ensure the student is consistently referred to as \"{student_name}\" "
            "throughout the analysis and report."
        )

    return (
        f"{name_instruction}Please analyze these assessment documents for educational accommodations:\n\n"
        f"{document_blocks}\n\n{closing}"
    )


def build_expert_inference_prompt(term: str) -> str:
    keys = "\n".join(f"- {key}" for key in EXPERT_INFERENCE_KEYS)
    return (
        "As an expert in psychoeducational assessment, what canonical key best represents "
        f"this assessment finding: \"{term}\"\n\n"
        f"Available canonical keys:\n{keys}\n\n"
        f"Respond with only the canonical key that best matches, or \"{UNKNOWN_BARRIER}\" if no match."
    )


def build_cascade_prompt(
    canonical_key: str,
    finding: CandidateFinding,
    grade_band: str,
    missing_fields: List[str],
    known_fields: Mapping[str, Optional[str]],
) -> str:
    missing = "\n".join(f"- {name}" for name in missing_fields)
    context = "\n".join(f"{name}: {value}" for name, value in known_fields.items() if value)
    return (
        "As an expert K-12 educational specialist, generate rich content for the following barrier:\n\n"
        f"Canonical Key: {canonical_key}\n"
        f"Description: {finding.description}\n"
        f"Grade Band: {grade_band}\n"
        f"Classroom Impact: {finding.classroom_impact}\n"
        f"Evidence: {finding.evidence_basis}\n\n"
        f"Generate ONLY the following missing fields:\n{missing}\n\n"
        f"Context from existing data (read-only, do not regenerate):\n{context}\n\n"
        f"Field Requirements:\n{K12_FIELD_REQUIREMENTS}\n\n"
        "Respond in JSON format with only the requested fields."
    )


def template_fields(canonical_key: str, finding: CandidateFinding) -> Dict[str, str]:
    """Deterministic text for every K-12 display field, used when inference is unavailable."""
    description = finding.description or ""
    return {
        "item_label": title_case_key(canonical_key),
        "parent_friendly_label": f"Your child shows {description.lower()}",
        "classroom_observation": f"Student demonstrates {finding.classroom_impact}",
        "support_1": f"Provide accommodations for {description}",
        "support_2": "Monitor progress and adjust support as needed",
        "caution_note": "Individual needs may vary - adjust strategies accordingly",
    }

# -----------------------------
# Tool acknowledgements
# -----------------------------

def findings_saved_ack() -> Dict[str, Any]:
    return {"success": True, "message": FINDINGS_SAVED_MESSAGE}


def item_master_ack(item_master_data: List[Dict[str, Any]]) -> Dict[str, Any]:
    return {"success": True, "itemMasterData": item_master_data}


def normalize_key_answer(raw: Optional[str]) -> str:
    """Reduce a free-text model answer to a member of the closed key set."""
    answer = (raw or "").strip().strip("`'\"").strip().lower()
    if answer in EXPERT_INFERENCE_KEYS:
        return answer
    return UNKNOWN_BARRIER


def parse_json_object(raw: Optional[str]) -> Dict[str, Any]:
    data = json.loads(raw or "{}")
    if not isinstance(data, dict):
        raise ValueError("Expected a JSON object")
    return data
