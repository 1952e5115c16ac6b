# core/report.py - Render item master records into the K-12 narrative
import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Sequence, Union

from ..models.item_master import K12_DISPLAY_FIELDS, ItemMasterRecord
from ..models.schemas import ValidationStatus

logger = logging.getLogger(__name__)

AI_GENERATED_MARK = "*(AI-generated)*"
DEFAULT_EVIDENCE = "Assessment data indicates this area of need"
NO_ITEMS = "No items in this category."

REQUIRED_FIELDS = ["canonical_key", "evidence_basis"]

# (heading, field, fallback keys, default text) in render order
FIELD_SECTIONS = [
    ("Teacher-Friendly Description", "item_label", ("description",), "Support needed in this area"),
    ("Parent-Friendly Explanation", "parent_friendly_label", ("plain_language_label",), "This area may require additional support"),
    ("Observable Behaviors", "classroom_observation", ("observation",), "Monitor for signs of difficulty in this area"),
    ("Primary Support Strategy", "support_1", ("primary_support",), "Provide additional support and scaffolding"),
    ("Secondary Support Strategy", "support_2", ("secondary_support",), "Consider alternative approaches if needed"),
    ("Implementation Caution", "caution_note", ("implementation_notes",), "Monitor effectiveness and adjust as needed"),
]

INFERENCE_STATUSES = {ValidationStatus.PARTIAL_INFERENCE.value, ValidationStatus.FULL_INFERENCE.value}

LEGACY_PLACEHOLDER = re.compile(r"\[Same format as validated findings[^\]]*\]")
RECOMMENDATIONS_ANCHOR = "---\n\n## Implementation Recommendations"

Record = Union[ItemMasterRecord, Dict[str, Any]]


@dataclass
class ReportContext:
    student_grade: str = ""
    report_date: Union[date, datetime, None] = None


@dataclass
class FieldCheck:
    is_valid: bool
    missing_fields: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


def validate_item_master_fields(item: Dict[str, Any]) -> FieldCheck:
    missing = [name for name in REQUIRED_FIELDS if not item.get(name)]
    warnings = [name for name in K12_DISPLAY_FIELDS if not item.get(name)]
    return FieldCheck(is_valid=not missing, missing_fields=missing, warnings=warnings)


def format_report_date(value: Union[date, datetime, None]) -> str:
    if value is None:
        return ""
    return f"{value.month}/{value.day}/{value.year}"


def _as_dict(record: Record) -> Dict[str, Any]:
    if isinstance(record, ItemMasterRecord):
        return record.model_dump(mode="json")
    return dict(record)


def _status(item: Dict[str, Any]) -> str:
    return str(item.get("validation_status") or ValidationStatus.VALIDATED.value)


def _inferred_fields(item: Dict[str, Any]) -> List[str]:
    """Explicit per-field marks win; otherwise an inference status marks every field."""
    if item.get("inferred_fields"):
        return list(item["inferred_fields"])
    if _status(item) in INFERENCE_STATUSES:
        return list(K12_DISPLAY_FIELDS)
    return []


def _value(item: Dict[str, Any], name: str, fallbacks: Sequence[str], default: str) -> str:
    for key in (name, *fallbacks):
        if item.get(key):
            return str(item[key])
    return default


class ReportSynthesizer:
    def render(self, records: Sequence[Record], template: Optional[str], context: ReportContext) -> str:
        items = [_as_dict(record) for record in records]
        logger.info(f"Generating K-12 report from {len(items)} item master records (grade: {context.student_grade})")

        for item in items:
            check = validate_item_master_fields(item)
            if not check.is_valid:
                logger.warning(f"{item.get('canonical_key') or 'Unknown'}: missing {', '.join(check.missing_fields)}")

        if template:
            return self._render_template(items, template, context)
        logger.info("No template found, using fallback K-12 format")
        return self._render_fallback(items, context)

    # ---------- Buckets ----------

    @staticmethod
    def bucket(items: List[Dict[str, Any]]) -> Dict[str, List[Dict[str, Any]]]:
        buckets: Dict[str, List[Dict[str, Any]]] = {"validated": [], "review": [], "flagged": []}
        for item in items:
            status = _status(item)
            if status == ValidationStatus.VALIDATED.value:
                buckets["validated"].append(item)
            elif status == ValidationStatus.FLAGGED.value:
                buckets["flagged"].append(item)
            else:
                buckets["review"].append(item)
        return buckets

    def render_finding(self, index: int, item: Dict[str, Any], student_grade: str) -> str:
        inferred = set(_inferred_fields(item))
        lines = [
            f"#### {index}. {item.get('canonical_key') or item.get('item_label') or 'Unknown Item'}",
            "",
            f"**Evidence:** {item.get('evidence_basis') or item.get('evidence') or DEFAULT_EVIDENCE}",
            "",
        ]
        for heading, name, fallbacks, default in FIELD_SECTIONS:
            value = _value(item, name, fallbacks, default)
            if name in inferred and value != default:
                value = f"{value} {AI_GENERATED_MARK}"
            lines.extend([f"**{heading}:** {value}", ""])

        lines.extend([
            "**Quality Control:**",
            f"- Status: {_status(item)}",
            f"- Grade Band: {item.get('grade_band') or student_grade}",
            f"- Mapping Method: {item.get('resolution_method') or 'database_lookup'}",
            f"- Inference Level: {item.get('inference_level') or 'database'}",
            "",
            "---",
        ])
        return "\n".join(lines)

    def render_section(self, items: List[Dict[str, Any]], student_grade: str) -> str:
        if not items:
            return NO_ITEMS
        return "\n".join(self.render_finding(i, item, student_grade) for i, item in enumerate(items, start=1))

    # ---------- Template ----------

    def _render_template(self, items: List[Dict[str, Any]], template: str, context: ReportContext) -> str:
        grade = context.student_grade
        buckets = self.bucket(items)
        report = template

        scalars = {
            "[Date]": format_report_date(context.report_date),
            "[Grade Level]": grade,
            "[Grade]": grade,
            "[Total Count]": str(len(items)),
            "[Total count]": str(len(items)),
            "[Validated Count]": str(len(buckets["validated"])),
            "[Validated count]": str(len(buckets["validated"])),
            "[Review Count]": str(len(buckets["review"])),
            "[Review count]": str(len(buckets["review"])),
            "[Flagged Count]": str(len(buckets["flagged"])),
            "[Flagged count]": str(len(buckets["flagged"])),
            "[List of unique mapping methods used]": ", ".join(
                dict.fromkeys(str(item.get("resolution_method") or "database_lookup") for item in items)
            ),
            "[Grade-specific developmental factors]": f"Developmentally appropriate for grade {grade} students",
            "[Grade-specific considerations for implementation]": (
                f"Consider developmental stage and academic expectations for grade {grade}"
            ),
            "[Core academic areas requiring support]": ", ".join(
                str(item.get("academic_domain") or "General academic support") for item in items
            ),
            "[Behavioral and social factors]": ", ".join(
                str(item.get("description"))
                for item in items
                if item.get("domain") in ("social", "behavioral") and item.get("description")
            ) or "No significant concerns noted",
        }
        for placeholder, value in scalars.items():
            report = report.replace(placeholder, value)

        report = self._insert_inference_legend(report, items)

        # Finding sections go in last so their text is never scanned for placeholders
        sections = {
            "validated": self.render_section(buckets["validated"], grade),
            "review": self.render_section(buckets["review"], grade),
            "flagged": self.render_section(buckets["flagged"], grade),
        }
        report = self._replace_legacy_flagged(report, sections["flagged"])
        for placeholder, bucket in (
            ("[FOR_EACH_VALIDATED_FINDING]", "validated"),
            ("[VALIDATED_ITEMS_CONTENT]", "validated"),
            ("[FOR_EACH_REVIEW_FINDING]", "review"),
            ("[REVIEW_ITEMS_CONTENT]", "review"),
            ("[FOR_EACH_FLAGGED_FINDING]", "flagged"),
            ("[FLAGGED_ITEMS_CONTENT]", "flagged"),
        ):
            report = report.replace(placeholder, sections[bucket])
        return report

    @staticmethod
    def _replace_legacy_flagged(report: str, flagged_content: str) -> str:
        """Older templates reuse one sentence for several sections; pick the flagged one."""
        matches = list(LEGACY_PLACEHOLDER.finditer(report))
        if not matches:
            return report

        target = next((m for m in matches if "flagged" in m.group().lower()), None)
        if target is None and len(matches) > 1:
            target = matches[1]
        if target is None:
            return report
        return report[:target.start()] + flagged_content + report[target.end():]

    @staticmethod
    def _insert_inference_legend(report: str, items: List[Dict[str, Any]]) -> str:
        inferred_count = sum(1 for item in items if _inferred_fields(item))
        if not inferred_count:
            return report

        legend = (
            "\n\n**Field Inference Legend:**\n"
            f"- Fields marked with {AI_GENERATED_MARK} were created through cascade inference "
            "when database lookups returned incomplete data\n"
            f"- {inferred_count} out of {len(items)} items contain AI-generated fields\n"
            "- All AI-generated content is based on established educational best practices "
            "and psychoeducational assessment principles"
        )
        return report.replace(RECOMMENDATIONS_ANCHOR, f"{legend}\n\n{RECOMMENDATIONS_ANCHOR}", 1)

    # ---------- Fallback ----------

    def _render_fallback(self, items: List[Dict[str, Any]], context: ReportContext) -> str:
        findings = "\n".join(
            f"### {index}. {item.get('canonical_key') or item.get('item_label')}\n\n"
            f"**Evidence:** {item.get('evidence_basis') or item.get('evidence') or DEFAULT_EVIDENCE}\n\n"
            f"**Description:** {item.get('item_label') or item.get('description') or 'Support needed in this area'}\n\n"
            f"**Support Strategies:** {item.get('support_1') or item.get('primary_support') or 'Provide additional support and scaffolding'}\n\n"
            "---"
            for index, item in enumerate(items, start=1)
        )
        return (
            "# K-12 Educational Assessment Analysis Report\n\n"
            f"**Analysis Date:** {format_report_date(context.report_date)}\n"
            f"**Student Grade:** {context.student_grade}\n"
            f"**Total Findings:** {len(items)}\n\n"
            "---\n\n"
            "## Student Strengths and Support Needs\n\n"
            f"{findings}\n\n"
            "## Implementation Recommendations\n\n"
            "### For Teachers\n"
            "- Implement the identified support strategies in classroom settings\n"
            "- Monitor student progress and adjust supports as needed\n"
            "- Coordinate with educational team for comprehensive support\n\n"
            "### For Parents\n"
            "- Work with school team to understand your child's needs\n"
            "- Implement complementary strategies at home\n"
            "- Maintain regular communication with teachers\n\n"
            "---\n\n"
            "*This report was generated using the K-12 Educational Assessment Analysis System.*"
        )
