# core/orchestrator.py - Tool-calling conversation workflows per module
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List

from pydantic import ValidationError

from ..models.item_master import (
    Barrier,
    CandidateFinding,
    Finding,
    FindingCatalog,
    ItemMasterPayload,
    ItemMasterRecord,
    SelectedFinding,
    title_case_key,
)
from ..models.messages import AssistantMessage, ConversationLog, ToolCall, ToolMessage
from ..models.schemas import AnalysisRequest, FindingType, ItemSource, ModelConfig, ModuleType, Pathway
from ..utils.logging_utils import case_logger
from .cascade import CascadeInferenceEngine, grade_band_for
from .gateway import CompletionGateway, message_content
from .prompting import findings_saved_ack, item_master_ack
from .resolver import CanonicalKeyResolver
from .storage import AssessmentStorage
from .tool_schemas import (
    IDENTIFY_STRENGTHS_AND_WEAKNESSES,
    LOOKUP_BARRIER_ACCOMMODATIONS,
    MAX_TOP_STRENGTHS,
    MAX_TOP_WEAKNESSES,
    POPULATE_ITEM_MASTER,
    POPULATE_K12_ITEM_MASTER,
    forced_tool_choice,
)

logger = logging.getLogger(__name__)


@dataclass
class WorkflowOutcome:
    markdown_report: str
    item_master_data: List[Dict[str, Any]] = field(default_factory=list)


def enhance_analysis_with_results(original_analysis: str, item_master_data: List[Dict[str, Any]]) -> str:
    """Prepend an item master summary to the model's narrative."""
    if not item_master_data:
        return original_analysis

    entries = "".join(
        f"\n- **{item.get('item_label')}** ({item.get('canonical_key')})\n"
        f"  - Evidence: {item.get('evidence_basis')}\n"
        f"  - Accommodations: {item.get('accommodations')}\n"
        for item in item_master_data
    )
    return (
        "\n\n## AI Handler Results\n\n"
        f"### Item Master Data Generated:\n{entries}\n"
        "### Three-Step Resolution Process:\n"
        "1. **Technical Weakness Identification**: Completed by model analysis\n"
        "2. **Canonical Key Resolution**: Applied semantic matching and expert inference\n"
        f"3. **Item Master Population**: Generated {len(item_master_data)} structured accommodation entries\n\n"
        "---\n\n"
        f"{original_analysis}"
    )


class ToolCallOrchestrator:
    def __init__(
        self,
        gateway: CompletionGateway,
        resolver: CanonicalKeyResolver,
        cascade: CascadeInferenceEngine,
        storage: AssessmentStorage,
    ):
        self.gateway = gateway
        self.resolver = resolver
        self.cascade = cascade
        self.storage = storage

    # ---------- K-12: catalog, then populate ----------

    async def run_k12_workflow(
        self,
        conversation: ConversationLog,
        request: AnalysisRequest,
        model_config: ModelConfig,
        pathway: Pathway,
    ) -> WorkflowOutcome:
        log = case_logger(__name__, request.case_id, request.module_type.value)

        discovery = await self.gateway.complete(model_config, conversation.to_payload(), ModuleType.K12, pathway)
        assistant = AssistantMessage.from_completion(discovery)
        narrative = assistant.content or ""

        if pathway == Pathway.SIMPLE or not assistant.tool_calls:
            return WorkflowOutcome(narrative)

        first_call = assistant.tool_calls[0]
        if first_call.name != IDENTIFY_STRENGTHS_AND_WEAKNESSES:
            log.warning(f"Expected {IDENTIFY_STRENGTHS_AND_WEAKNESSES} first, got {first_call.name}; keeping narrative")
            return WorkflowOutcome(narrative)

        try:
            saved_findings = await self._save_findings(assistant.tool_calls, request)
        except Exception as e:
            log.warning(f"Saving findings failed, keeping narrative: {e}")
            return WorkflowOutcome(narrative)

        conversation.append_tool_round(
            assistant,
            [ToolMessage.acknowledge(call, findings_saved_ack()) for call in assistant.tool_calls],
        )

        continuation = await self.gateway.complete(
            model_config,
            conversation.to_payload(),
            ModuleType.K12,
            Pathway.COMPLEX,
            tool_choice=forced_tool_choice(POPULATE_K12_ITEM_MASTER),
        )
        population = AssistantMessage.from_completion(continuation)
        if not population.tool_calls:
            log.info("No population tool calls returned; keeping narrative")
            return WorkflowOutcome(narrative)

        try:
            item_master_data = await self._populate_k12(population.tool_calls, request, model_config, saved_findings)
        except Exception as e:
            log.warning(f"Item master population failed, keeping narrative: {e}")
            return WorkflowOutcome(narrative)

        conversation.append_tool_round(
            population,
            [ToolMessage.acknowledge(call, item_master_ack(item_master_data)) for call in population.tool_calls],
        )

        log.info("Generating final K-12 markdown report")
        final = await self.gateway.complete(model_config, conversation.to_payload(), ModuleType.K12, Pathway.SIMPLE)
        report = message_content(final) or narrative
        return WorkflowOutcome(report, item_master_data)

    async def _save_findings(self, tool_calls: List[ToolCall], request: AnalysisRequest) -> List[Finding]:
        saved: List[Finding] = []
        for call in tool_calls:
            if call.name != IDENTIFY_STRENGTHS_AND_WEAKNESSES:
                logger.warning(f"Skipping {call.name} during finding discovery")
                continue

            catalog = FindingCatalog.model_validate(call.parse_arguments())
            top_strengths = catalog.top_strengths[:MAX_TOP_STRENGTHS]
            top_weaknesses = catalog.top_weaknesses[:MAX_TOP_WEAKNESSES]

            for index, raw in enumerate(catalog.all_findings):
                try:
                    candidate = CandidateFinding.model_validate(raw)
                except ValidationError as e:
                    logger.warning(f"Skipping finding {index}: {e.error_count()} invalid field(s)")
                    continue

                finding_type = candidate.finding_type
                if index in top_strengths:
                    rank_order = top_strengths.index(index) + 1
                    finding_type = finding_type or FindingType.STRENGTH
                elif index in top_weaknesses:
                    rank_order = top_weaknesses.index(index) + 1
                    finding_type = finding_type or FindingType.WEAKNESS
                else:
                    rank_order = None

                saved.append(
                    await self.storage.create_assessment_finding(
                        Finding(
                            assessment_case_id=request.case_id,
                            finding_type=finding_type,
                            description=candidate.description,
                            relevance_score=candidate.relevance_score,
                            classroom_impact=candidate.classroom_impact,
                            rank_order=rank_order,
                            module_type=request.module_type,
                        )
                    )
                )

        ranked = sum(1 for finding in saved if finding.rank_order is not None)
        logger.info(f"Saved {len(saved)} findings ({ranked} selected)")
        return saved

    async def _populate_k12(
        self,
        tool_calls: List[ToolCall],
        request: AnalysisRequest,
        model_config: ModelConfig,
        saved_findings: List[Finding],
    ) -> List[Dict[str, Any]]:
        grade_band = grade_band_for(request.context.student_grade)
        # Ranked findings are matched before unranked ones with the same description
        candidates = sorted(saved_findings, key=lambda f: f.rank_order is None)
        annotated = set()
        item_master_data: List[Dict[str, Any]] = []

        for call in tool_calls:
            if call.name != POPULATE_K12_ITEM_MASTER:
                logger.warning(f"Skipping {call.name} during item master population")
                continue

            for raw in call.parse_arguments().get("selectedFindings") or []:
                try:
                    finding = SelectedFinding.model_validate(raw)
                except ValidationError as e:
                    logger.warning(f"Skipping selected finding: {e.error_count()} invalid field(s)")
                    continue
                barrier = Barrier(
                    canonical_key=finding.canonical_key,
                    surface_term=finding.surface_term or finding.description,
                    description=finding.description,
                    evidence=finding.evidence_basis,
                )
                resolved = (await self.resolver.resolve([barrier], ModuleType.K12, model_config))[0]
                record = await self.cascade.populate(resolved, finding, request.case_id, grade_band, model_config)
                saved = await self.storage.create_item_master_record(record)
                item_master_data.append(saved.model_dump(mode="json"))

                match = next(
                    (f for f in candidates if f.description == finding.description and f.id not in annotated),
                    None,
                )
                if match:
                    annotated.add(match.id)
                    await self.storage.update_assessment_finding(
                        match.id,
                        {
                            "canonical_key": resolved.canonical_key,
                            "matching_method": resolved.resolution_method,
                            "item_master_id": saved.id,
                        },
                    )

        return item_master_data

    # ---------- Post-secondary / tutoring: single pass ----------

    async def run_generic_workflow(
        self,
        conversation: ConversationLog,
        request: AnalysisRequest,
        model_config: ModelConfig,
        pathway: Pathway,
    ) -> WorkflowOutcome:
        log = case_logger(__name__, request.case_id, request.module_type.value)

        completion = await self.gateway.complete(model_config, conversation.to_payload(), request.module_type, pathway)
        assistant = AssistantMessage.from_completion(completion)
        narrative = assistant.content or ""

        if not assistant.tool_calls:
            return WorkflowOutcome(narrative)

        try:
            item_master_data = await self._process_generic_calls(assistant.tool_calls, request, model_config)
            if pathway == Pathway.SIMPLE:
                log.info("Simple pathway: preserving original analysis without enhancement")
            else:
                narrative = enhance_analysis_with_results(narrative, item_master_data)
        except Exception as e:
            log.warning(f"Function calls failed, preserving original analysis: {e}")
            item_master_data = []

        return WorkflowOutcome(narrative, item_master_data)

    async def _process_generic_calls(
        self,
        tool_calls: List[ToolCall],
        request: AnalysisRequest,
        model_config: ModelConfig,
    ) -> List[Dict[str, Any]]:
        item_master_data: List[Dict[str, Any]] = []
        for call in tool_calls:
            logger.info(f"Processing function call: {call.name}")
            if call.name == POPULATE_ITEM_MASTER:
                payload = ItemMasterPayload.model_validate(call.parse_arguments())
                item_master_data.extend(await self._populate_item_master(payload, request, model_config))
            elif call.name == LOOKUP_BARRIER_ACCOMMODATIONS:
                keys = call.parse_arguments().get("canonical_keys") or []
                item_master_data.extend(await self._lookup_accommodations(keys, request.module_type))
            else:
                logger.warning(f"Ignoring unknown function call: {call.name}")
        return item_master_data

    async def _populate_item_master(
        self,
        payload: ItemMasterPayload,
        request: AnalysisRequest,
        model_config: ModelConfig,
    ) -> List[Dict[str, Any]]:
        resolved_barriers = await self.resolver.resolve(payload.barriers, request.module_type, model_config)

        records = []
        for barrier in resolved_barriers:
            accommodations = "; ".join(
                acc.description or "No description"
                for acc in payload.accommodations
                if acc.canonical_key == barrier.canonical_key
            )
            record = ItemMasterRecord(
                assessment_case_id=request.case_id,
                canonical_key=barrier.canonical_key,
                item_label=title_case_key(barrier.canonical_key),
                plain_language_label=barrier.description,
                evidence_basis=barrier.evidence,
                accommodations=accommodations,
                resolution_method=barrier.resolution_method,
                resolution_tier=barrier.resolution_tier,
                source=ItemSource.AI_ANALYSIS,
                module_type=request.module_type,
            )
            saved = await self.storage.create_item_master_record(record)
            records.append(saved.model_dump(mode="json"))
        return records

    async def _lookup_accommodations(self, canonical_keys: List[str], module_type: ModuleType) -> List[Dict[str, Any]]:
        if module_type != ModuleType.POST_SECONDARY:
            return []
        try:
            return await self.storage.get_post_secondary_item_master(canonical_keys)
        except Exception as e:
            logger.error(f"Item master lookup failed: {e}")
            return []
