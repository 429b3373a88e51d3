"""Proposal job routes."""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Request, Response, UploadFile

from proposal_service.config import settings
from proposal_service.errors import JobNotFoundError, JobNotReadyError
from proposal_service.pipeline.state import Status
from proposal_service.schemas.job import JobCreateResponse, JobStatusResponse
from proposal_service.schemas.proposal import SalespersonInfo
from proposal_service.services.job_store import JobStore, UploadedDocument
from proposal_service.worker import JobWorker

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/jobs", tags=["jobs"])

OUTPUT_FORMATS = ("pdf", "html")


def get_store(request: Request) -> JobStore:
    return request.app.state.store


def get_worker(request: Request) -> JobWorker:
    return request.app.state.worker


async def _read_upload(upload: Optional[UploadFile], kind: str) -> Optional[UploadedDocument]:
    if upload is None or not upload.filename:
        return None
    content = await upload.read()
    if not content:
        raise HTTPException(status_code=400, detail=f"{kind} file is empty")
    if len(content) > settings.MAX_UPLOAD_BYTES:
        raise HTTPException(status_code=413, detail=f"{kind} file exceeds {settings.MAX_UPLOAD_BYTES} bytes")
    return UploadedDocument(
        kind=kind,
        filename=upload.filename,
        content_type=upload.content_type or "application/octet-stream",
        content=content,
    )


@router.post("", response_model=JobCreateResponse, status_code=202)
async def create_job(
    owner_id: str = Form(...),
    salesperson_name: str = Form(...),
    dual_pricing_file: Optional[UploadFile] = File(None),
    interchange_plus_file: Optional[UploadFile] = File(None),
    organization_id: Optional[str] = Form(None),
    merchant_website_url: Optional[str] = Form(None),
    salesperson_title: Optional[str] = Form(None),
    salesperson_email: Optional[str] = Form(None),
    salesperson_phone: Optional[str] = Form(None),
    output_format: str = Form("html"),
    store: JobStore = Depends(get_store),
    worker: JobWorker = Depends(get_worker),
):
    """
    Create a proposal job and hand it to the background worker.

    At least one cost analysis document is required. The response returns
    immediately; clients poll GET /jobs/{job_id} until the job is terminal.

    Returns:
        JobCreateResponse with the new job id and its pending status
    """
    if output_format not in OUTPUT_FORMATS:
        raise HTTPException(status_code=422, detail=f"output_format must be one of {list(OUTPUT_FORMATS)}")

    documents: List[UploadedDocument] = []
    for upload, kind in ((dual_pricing_file, "dual_pricing"), (interchange_plus_file, "interchange_plus")):
        document = await _read_upload(upload, kind)
        if document is not None:
            documents.append(document)
    if not documents:
        raise HTTPException(status_code=400, detail="At least one cost analysis document is required")

    snapshot = {
        "merchant_website_url": (merchant_website_url or "").strip() or None,
        "salesperson": SalespersonInfo(
            name=salesperson_name,
            title=salesperson_title,
            email=salesperson_email,
            phone=salesperson_phone,
        ).model_dump(),
        "output_format": output_format,
    }
    state = store.create(owner_id, snapshot, documents, organization_id=organization_id)
    logger.info(f"Created job {state.id} for owner {owner_id} with {len(documents)} document(s)")
    worker.submit(state.id)

    return JobCreateResponse(job_id=state.id, status=state.status)


@router.get("/{job_id}", response_model=JobStatusResponse)
def get_job(job_id: str, store: JobStore = Depends(get_store)):
    """Return the full job state for polling."""
    try:
        state = store.get(job_id)
    except JobNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return JobStatusResponse.from_state(state)


@router.get("/{job_id}/document")
def get_job_document(job_id: str, store: JobStore = Depends(get_store)):
    """
    Download the rendered proposal.

    Raises:
        HTTPException: 404 if the job is unknown, 409 if it has not completed
    """
    try:
        state = store.get(job_id)
        if state.status is not Status.COMPLETED:
            raise JobNotReadyError(job_id, state.status.value)
        stored = store.get_output(job_id)
    except JobNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except JobNotReadyError as e:
        raise HTTPException(status_code=409, detail=str(e))

    if stored is None:
        raise HTTPException(status_code=404, detail=f"Job {job_id} has no stored document")

    return Response(
        content=stored.content,
        media_type=stored.content_type,
        headers={"Content-Disposition": f'attachment; filename="{stored.filename}"'},
    )


@router.get("/{job_id}/files/{file_id}")
def get_job_file(job_id: str, file_id: str, store: JobStore = Depends(get_store)):
    """Serve a stored image or document referenced from the job's artifacts."""
    stored = store.get_file(job_id, file_id)
    if stored is None or stored.role == "input":
        raise HTTPException(status_code=404, detail=f"Job {job_id} has no file {file_id}")

    return Response(
        content=stored.content,
        media_type=stored.content_type,
        headers={"Content-Disposition": f'inline; filename="{stored.filename}"'},
    )
