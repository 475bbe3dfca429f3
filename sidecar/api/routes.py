import logging

from fastapi import APIRouter, Body, HTTPException, Request, Response

from api.models import (
    ReportPreviewResponse,
    SessionStatusResponse,
    SubmissionResponse,
    SubmitRequest,
)
from errors import ComposeFailed, InvalidSelection, NothingToCompose, NotFound, TransportError
from report.composer import PREVIEW_TITLE
from session import SUBMISSION_ERROR_MESSAGE, ReportSession, SubmissionResult

_logger = logging.getLogger(__name__)

router = APIRouter()


def _session(request: Request) -> ReportSession:
    """Return the session owned by the running app (set in lifespan)."""
    session = getattr(request.app.state, "session", None)
    if session is None:
        raise HTTPException(status_code=503, detail="Session is not initialised yet.")
    return session


def _submission_response(result: SubmissionResult) -> SubmissionResponse:
    req = result.request
    return SubmissionResponse(
        model=req.model,
        image_label=req.image_label,
        patient_name=req.patient_name.strip(),
        patient_sex_age=f"{req.patient_sex} / {req.patient_age}",
        exam_date=req.exam_date,
        run_id=result.resolved.run_id,
        sha256=result.sha256,
        resolution_state=result.resolved.state,
        raw_image=result.raw_image.info() if result.raw_image else None,
        summary_image=result.summary_image.info() if result.summary_image else None,
        report_document=result.report_document.info() if result.report_document else None,
    )


@router.get("/health")
async def health_check(request: Request):
    if getattr(request.app.state, "session", None) is None:
        return {"status": "starting"}
    return {"status": "ok"}


@router.get("/session/status", response_model=SessionStatusResponse)
async def session_status(request: Request):
    return _session(request).status_response()


@router.get("/models", response_model=list[str])
async def list_models(request: Request):
    return _session(request).models()


@router.get("/models/{model}/images", response_model=list[str])
async def list_images(request: Request, model: str):
    labels = _session(request).image_labels(model)
    if not labels:
        raise HTTPException(status_code=404, detail="Select a model first.")
    return labels


@router.post("/submit", response_model=SubmissionResponse)
async def submit(request: Request, body: SubmitRequest = Body(...)):
    session = _session(request)
    try:
        result = await session.submit(body)
    except InvalidSelection as e:
        raise HTTPException(status_code=400, detail=str(e))
    except (NotFound, TransportError) as e:
        _logger.exception("Submission failed for %s/%s: %s", body.model, body.image_label, e)
        raise HTTPException(status_code=502, detail=SUBMISSION_ERROR_MESSAGE)
    return _submission_response(result)


@router.post("/report", response_model=ReportPreviewResponse)
async def build_report(request: Request):
    session = _session(request)
    try:
        report, handle = await session.build_report()
    except NothingToCompose as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ComposeFailed:
        raise HTTPException(status_code=500, detail="Failed to generate the preview PDF.")
    return ReportPreviewResponse(
        title=PREVIEW_TITLE,
        filename=report.filename,
        page_count=report.page_count,
        preview=handle.info(),
    )


@router.get("/report/download")
async def download_report(request: Request):
    handle = _session(request).download()
    if handle is None:
        raise HTTPException(
            status_code=404,
            detail="No downloadable PDF has been generated yet. Request a preview first.",
        )
    return Response(
        content=handle.data,
        media_type=handle.content_type,
        headers={"Content-Disposition": f'attachment; filename="{handle.filename}"'},
    )


@router.get("/handles/{handle_id}")
async def get_handle(request: Request, handle_id: str):
    handle = _session(request).handles.get(handle_id)
    if handle is None:
        raise HTTPException(status_code=404, detail="Handle has been released.")
    headers = {}
    if handle.filename:
        headers["Content-Disposition"] = f'inline; filename="{handle.filename}"'
    return Response(content=handle.data, media_type=handle.content_type, headers=headers)
