# core/engine.py - Entry point: one analysis request in, one result out
import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from ..config.config_manager import ConfigManager
from ..config.settings import EngineSettings
from ..models.messages import ConversationLog
from ..models.schemas import (
    AnalysisRequest,
    AnalysisResult,
    AnalysisStatus,
    ModuleType,
    Pathway,
)
from ..utils.logging_utils import case_logger
from .cascade import CascadeInferenceEngine
from .gateway import CompletionGateway
from .orchestrator import ToolCallOrchestrator, WorkflowOutcome
from .pathways import effective_pathway, validate_report_categories
from .prompting import build_user_prompt
from .resolver import CanonicalKeyResolver
from .storage import AssessmentStorage

logger = logging.getLogger(__name__)

DEFAULT_REPORT = "Analysis completed successfully"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AccommodationAnalysisEngine:
    """Wires the gateway, resolver, cascade and orchestrator for one process.

    Nothing request-specific is kept on the instance; every call builds its
    own conversation log.
    """

    def __init__(
        self,
        settings: EngineSettings,
        config: ConfigManager,
        storage: AssessmentStorage,
        client,
        now: Optional[Callable[[], datetime]] = None,
    ):
        self.settings = settings
        self.config = config
        self.storage = storage
        self.now = now or _utcnow

        self.gateway = CompletionGateway(client, fallback_model=settings.fallback_model)
        self.resolver = CanonicalKeyResolver(self.gateway)
        self.cascade = CascadeInferenceEngine(storage, self.gateway)
        self.orchestrator = ToolCallOrchestrator(self.gateway, self.resolver, self.cascade, storage)

    async def process_analysis(self, request: AnalysisRequest) -> AnalysisResult:
        """Run the full workflow. Never raises; failures come back as a failed result."""
        log = case_logger(__name__, request.case_id, request.module_type.value)
        log.info(f"Starting analysis ({len(request.documents)} documents)")

        try:
            outcome = await self._run(request)
        except Exception as e:
            log.exception(f"Analysis failed: {e}")
            return AnalysisResult(
                status=AnalysisStatus.FAILED,
                analysis_date=self.now(),
                markdown_report="",
                module_type=request.module_type,
                error_message=str(e) or type(e).__name__,
            )

        log.info(f"Analysis completed with {len(outcome.item_master_data)} item master entries")
        return AnalysisResult(
            status=AnalysisStatus.COMPLETED,
            analysis_date=self.now(),
            markdown_report=outcome.markdown_report or DEFAULT_REPORT,
            module_type=request.module_type,
            item_master_data=outcome.item_master_data,
        )

    async def _run(self, request: AnalysisRequest) -> WorkflowOutcome:
        log = case_logger(__name__, request.case_id, request.module_type.value)

        model_config = self.config.load_model_config(request.module_type)
        pathway = effective_pathway(request, self.settings.is_demo)
        log.info(
            f"Using {pathway.value} pathway (requested: {request.pathway.value if request.pathway else 'unset'}, "
            f"demo: {self.settings.is_demo}, model: {model_config.model_name})"
        )

        system_prompt = self.config.load_system_prompt(request.module_type, pathway)
        conversation = ConversationLog(system_prompt, build_user_prompt(request.documents, request.context.unique_id))

        if request.module_type == ModuleType.K12:
            outcome = await self.orchestrator.run_k12_workflow(conversation, request, model_config, pathway)
        elif request.module_type in (ModuleType.POST_SECONDARY, ModuleType.TUTORING):
            outcome = await self.orchestrator.run_generic_workflow(conversation, request, model_config, pathway)
        else:
            raise ValueError(f"Unsupported module type: {request.module_type}")

        if request.module_type == ModuleType.POST_SECONDARY and pathway == Pathway.SIMPLE:
            check = validate_report_categories(outcome.markdown_report)
            if not check.is_valid:
                log.warning(f"Report is missing accommodation categories: {', '.join(check.missing_categories)}")

        return outcome
