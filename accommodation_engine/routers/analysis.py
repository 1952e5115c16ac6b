"""FastAPI router for analysis and report operations."""
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Request, Response

from ..core.engine import AccommodationAnalysisEngine
from ..core.exports import generate_report_document, item_master_workbook
from ..core.report import ReportContext, ReportSynthesizer
from ..models.schemas import (
    AnalysisRequest,
    AnalysisResult,
    ModuleType,
    ReportExportRequest,
    ReportRenderRequest,
    ReportRenderResponse,
)

router = APIRouter(prefix="/v1", tags=["analysis"])

DOCX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def get_engine(request: Request) -> AccommodationAnalysisEngine:
    return request.app.state.engine


@router.post("/analysis", response_model=AnalysisResult)
async def run_analysis(
    payload: AnalysisRequest,
    engine: AccommodationAnalysisEngine = Depends(get_engine),
) -> AnalysisResult:
    """Run one analysis. Failures are reported in the result's status, not as HTTP errors."""
    return await engine.process_analysis(payload)


@router.post("/reports/k12", response_model=ReportRenderResponse)
async def render_k12_report(
    payload: ReportRenderRequest,
    engine: AccommodationAnalysisEngine = Depends(get_engine),
) -> ReportRenderResponse:
    """Render item master records into the K-12 narrative (configured template unless one is supplied)."""
    template = payload.template
    if template is None:
        template = engine.config.load_report_template(ModuleType.K12)

    context = ReportContext(
        student_grade=payload.student_grade,
        report_date=payload.report_date or engine.now(),
    )
    markdown = ReportSynthesizer().render(payload.item_master_data, template, context)
    return ReportRenderResponse(markdown_report=markdown, total_items=len(payload.item_master_data))


@router.post("/reports/docx")
async def export_report_docx(payload: ReportExportRequest) -> Response:
    content = generate_report_document(
        payload.markdown_report,
        payload.item_master_data,
        payload.case_id,
        datetime.now(timezone.utc),
    )
    return Response(
        content=content,
        media_type=DOCX_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{payload.case_id}_report.docx"'},
    )


@router.post("/item-master/export")
async def export_item_master(payload: ReportExportRequest) -> Response:
    return Response(
        content=item_master_workbook(payload.item_master_data),
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{payload.case_id}_item_master.xlsx"'},
    )
