# core/tool_schemas.py - Static function definitions offered to the model
from typing import Any, Dict, List

from ..models.schemas import ModuleType

IDENTIFY_STRENGTHS_AND_WEAKNESSES = "identifyStrengthsAndWeaknesses"
POPULATE_K12_ITEM_MASTER = "populateK12ItemMaster"
POPULATE_ITEM_MASTER = "populateItemMaster"
LOOKUP_BARRIER_ACCOMMODATIONS = "lookupBarrierAccommodations"

MAX_TOP_STRENGTHS = 4
MAX_TOP_WEAKNESSES = 3

_FINDING_PROPERTIES: Dict[str, Any] = {
    "findingType": {"type": "string", "enum": ["strength", "weakness"], "description": "Type of finding"},
    "description": {"type": "string", "description": "Raw finding description from assessment"},
    "relevanceScore": {
        "type": "integer",
        "minimum": 1,
        "maximum": 10,
        "description": "Relevance to classroom instruction (1-10)",
    },
    "classroomImpact": {"type": "string", "description": "How this impacts classroom performance"},
    "evidenceBasis": {"type": "string", "description": "Assessment evidence supporting this finding"},
}


def _function(name: str, description: str, properties: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "type": "function",
        "function": {
            "name": name,
            "description": description,
            "parameters": {"type": "object", "properties": properties},
        },
    }


K12_TOOLS: List[Dict[str, Any]] = [
    _function(
        IDENTIFY_STRENGTHS_AND_WEAKNESSES,
        "Identify all strengths and weaknesses from assessment, rank by classroom relevance, "
        "select top 4 strengths and 3 weaknesses",
        {
            "allFindings": {"type": "array", "items": {"type": "object", "properties": _FINDING_PROPERTIES}},
            "topStrengths": {
                "type": "array",
                "description": "Top 4 strengths by relevance score",
                "maxItems": MAX_TOP_STRENGTHS,
                "items": {"type": "integer", "description": "Index reference to allFindings array"},
            },
            "topWeaknesses": {
                "type": "array",
                "description": "Top 3 weaknesses by relevance score",
                "maxItems": MAX_TOP_WEAKNESSES,
                "items": {"type": "integer", "description": "Index reference to allFindings array"},
            },
        },
    ),
    _function(
        POPULATE_K12_ITEM_MASTER,
        "Populate K-12 item master with canonical matching and cascade inference for all fields",
        {
            "selectedFindings": {
                "type": "array",
                "items": {
                    "type": "object",
                    "properties": {
                        **_FINDING_PROPERTIES,
                        "canonicalKey": {"type": "string", "description": "Proposed canonical key match"},
                        "surfaceTerm": {"type": "string", "description": "Original assessment terminology"},
                    },
                },
            },
        },
    ),
]

GENERIC_TOOLS: List[Dict[str, Any]] = [
    _function(
        POPULATE_ITEM_MASTER,
        "Populate item master data with identified barriers and accommodations",
        {
            "barriers": {
                "type": "array",
                "items": {
                    "type": "object",
                    "properties": {
                        "canonical_key": {
                            "type": "string",
                            "description": "Technical canonical key (e.g., slowed_processing_speed, sustained_attention_limit)",
                        },
                        "description": {"type": "string", "description": "Plain language description of the barrier"},
                        "evidence": {"type": "string", "description": "Assessment evidence supporting this barrier"},
                        "surface_term": {
                            "type": "string",
                            "description": "Original term from assessment for semantic matching",
                        },
                    },
                },
            },
            "accommodations": {
                "type": "array",
                "items": {
                    "type": "object",
                    "properties": {
                        "accommodation_type": {
                            "type": "string",
                            "description": "Type of accommodation (e.g., time_extension, assistive_technology)",
                        },
                        "description": {"type": "string", "description": "Detailed accommodation description"},
                        "justification": {"type": "string", "description": "Evidence-based justification for accommodation"},
                        "canonical_key": {"type": "string", "description": "Related barrier canonical key"},
                    },
                },
            },
        },
    ),
    _function(
        LOOKUP_BARRIER_ACCOMMODATIONS,
        "Lookup accommodations for identified barriers from the item master",
        {
            "canonical_keys": {
                "type": "array",
                "items": {"type": "string"},
                "description": "Array of canonical keys to lookup accommodations for",
            },
        },
    ),
]


def tools_for(module_type: ModuleType) -> List[Dict[str, Any]]:
    if module_type == ModuleType.K12:
        return K12_TOOLS
    return GENERIC_TOOLS


def forced_tool_choice(name: str) -> Dict[str, Any]:
    return {"type": "function", "function": {"name": name}}
