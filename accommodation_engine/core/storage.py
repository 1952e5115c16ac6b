# core/storage.py
"""
Storage collaborator for the engine.

``AssessmentStorage`` is the interface the engine talks to; a database-backed
implementation lives outside this package. ``InMemoryStorage`` keeps
everything in dicts keyed by case and canonical key, for the HTTP app's
default wiring and for tests.

Lookup methods return ``None`` or an empty list when nothing is stored; the
engine treats that as "field missing".
"""
import logging
import uuid
from collections import defaultdict
from typing import Any, Dict, List, Optional, Protocol, Tuple

from ..models.item_master import Finding, ItemMasterRecord

logger = logging.getLogger(__name__)


class AssessmentStorage(Protocol):
    async def create_assessment_finding(self, finding: Finding) -> Finding: ...

    async def update_assessment_finding(self, finding_id: str, updates: Dict[str, Any]) -> Optional[Finding]: ...

    async def get_assessment_findings(self, case_id: str) -> List[Finding]: ...

    async def get_barrier_glossary(self, canonical_key: str) -> Optional[Dict[str, Any]]: ...

    async def get_support_lookup(self, canonical_key: str, grade_band: str) -> List[Dict[str, Any]]: ...

    async def get_caution_lookup(self, canonical_key: str, grade_band: str) -> List[Dict[str, Any]]: ...

    async def get_observation_template(self, canonical_key: str, grade_band: str) -> List[Dict[str, Any]]: ...

    async def create_item_master_record(self, record: ItemMasterRecord) -> ItemMasterRecord: ...

    async def get_post_secondary_item_master(self, canonical_keys: List[str]) -> List[Dict[str, Any]]: ...


def _new_id() -> str:
    return uuid.uuid4().hex


class InMemoryStorage:
    """Simple in-memory store. State lives as long as the instance."""

    def __init__(self):
        self._findings: Dict[str, Finding] = {}
        self._item_master: Dict[str, ItemMasterRecord] = {}
        self._glossary: Dict[str, Dict[str, Any]] = {}
        self._supports: Dict[Tuple[str, str], List[Dict[str, Any]]] = defaultdict(list)
        self._cautions: Dict[Tuple[str, str], List[Dict[str, Any]]] = defaultdict(list)
        self._observations: Dict[Tuple[str, str], List[Dict[str, Any]]] = defaultdict(list)
        self._post_secondary: List[Dict[str, Any]] = []

    # ---------- Reference data ----------

    def add_glossary_entry(self, canonical_key: str, barrier_category: str, parent_friendly_label: str) -> None:
        self._glossary[canonical_key] = {
            "canonical_key": canonical_key,
            "barrier_category": barrier_category,
            "parent_friendly_label": parent_friendly_label,
        }

    def add_support(self, canonical_key: str, grade_band: str, description: str) -> None:
        self._supports[(canonical_key, grade_band)].append({"description": description})

    def add_caution(self, canonical_key: str, grade_band: str, description: str) -> None:
        self._cautions[(canonical_key, grade_band)].append({"description": description})

    def add_observation_template(self, canonical_key: str, grade_band: str, template_content: str) -> None:
        self._observations[(canonical_key, grade_band)].append({"template_content": template_content})

    def add_post_secondary_item(self, item: Dict[str, Any]) -> None:
        self._post_secondary.append(dict(item))

    # ---------- Findings ----------

    async def create_assessment_finding(self, finding: Finding) -> Finding:
        saved = finding.model_copy(update={"id": finding.id or _new_id()})
        self._findings[saved.id] = saved
        logger.debug("Saved finding %s for case %s", saved.id, saved.assessment_case_id)
        return saved

    async def update_assessment_finding(self, finding_id: str, updates: Dict[str, Any]) -> Optional[Finding]:
        finding = self._findings.get(finding_id)
        if not finding:
            return None
        updated = finding.model_copy(update=updates)
        self._findings[finding_id] = updated
        return updated

    async def get_assessment_findings(self, case_id: str) -> List[Finding]:
        return [f for f in self._findings.values() if f.assessment_case_id == case_id]

    # ---------- K-12 lookups ----------

    async def get_barrier_glossary(self, canonical_key: str) -> Optional[Dict[str, Any]]:
        return self._glossary.get(canonical_key)

    async def get_support_lookup(self, canonical_key: str, grade_band: str) -> List[Dict[str, Any]]:
        return list(self._supports.get((canonical_key, grade_band), []))

    async def get_caution_lookup(self, canonical_key: str, grade_band: str) -> List[Dict[str, Any]]:
        return list(self._cautions.get((canonical_key, grade_band), []))

    async def get_observation_template(self, canonical_key: str, grade_band: str) -> List[Dict[str, Any]]:
        return list(self._observations.get((canonical_key, grade_band), []))

    # ---------- Item master ----------

    async def create_item_master_record(self, record: ItemMasterRecord) -> ItemMasterRecord:
        saved = record.model_copy(update={"id": record.id or _new_id()})
        self._item_master[saved.id] = saved
        logger.debug("Saved item master record %s (%s)", saved.id, saved.canonical_key)
        return saved

    async def get_item_master_records(self, case_id: str) -> List[ItemMasterRecord]:
        return [r for r in self._item_master.values() if r.assessment_case_id == case_id]

    async def get_post_secondary_item_master(self, canonical_keys: List[str]) -> List[Dict[str, Any]]:
        matches = []
        for key in canonical_keys:
            matches.extend(dict(item) for item in self._post_secondary if item.get("canonical_key") == key)
        return matches
