import asyncio
import json
from typing import AsyncIterator

from fastapi import APIRouter, Depends, File, Request, UploadFile
from fastapi.responses import StreamingResponse

from server.dependencies.auth import get_dropbox_credentials, verify_api_key
from server.dependencies.errors import build_error_body
from server.models.requests import AskRequest, SmartSearchRequest
from server.models.responses import FileContentResponse, SmartSearchResponse
from services.coach_pipeline.CoachService import CoachService
from shared.credentials.InMemoryCredentialProvider import InMemoryCredentialProvider
from shared.exceptions import CoachError, ExtractionFailure, InvalidArgumentError
from shared.models.document import DocumentHandle, ExtractionOutcome
from shared.models.search import CoachMode, PreparedPrompt

router = APIRouter(tags=["coach"])


def _sse(payload: dict) -> str:
    return f"data: {json.dumps(payload, ensure_ascii=False)}\n\n"


@router.post("/ask")
async def ask(
    request: Request,
    body: AskRequest,
    credentials: InMemoryCredentialProvider = Depends(get_dropbox_credentials),
    _: None = Depends(verify_api_key),
) -> StreamingResponse:
    """Answer a question as a server-sent event stream.

    Preparation errors (bad input, budget, expired token) are returned as regular
    JSON errors. Once streaming has started, errors arrive as a final error event.

    Args:
        request (Request): FastAPI request (provides app.state.coach_service).
        body (AskRequest): Question, mode, and either Dropbox files or uploaded documents.
        credentials (InMemoryCredentialProvider): The X-Dropbox-Token of the caller.
        _ (None): Auth dependency result (unused).

    Returns:
        StreamingResponse: ``data: {"token": ...}`` events, then ``data: {"done": true, ...}`` or ``data: {"error": true, ...}``.
    """
    coach_service: CoachService = request.app.state.coach_service
    logging = request.app.state.logging
    logging.info("Question received (mode=%s): %r", body.mode.value, body.question[:80])

    if body.mode == CoachMode.UPLOADED:
        prepared = await coach_service.do_prepare_uploaded_prompt(body.question, [doc.to_extracted() for doc in body.documents])
    else:
        handles = [file.to_handle() for file in body.files]
        prepared = await coach_service.do_prepare_prompt(body.question, handles, credentials, mode=body.mode)

    return StreamingResponse(
        _stream_events(coach_service, prepared, logging),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


async def _stream_events(coach_service: CoachService, prepared: PreparedPrompt, logging) -> AsyncIterator[str]:
    updates = coach_service.do_answer(prepared)
    try:
        async for update in updates:
            if update.complete:
                yield _sse({
                    "done": True,
                    "sources": [source.model_dump(exclude_none=True) for source in prepared.sources],
                    "noRelevantSources": prepared.no_relevant_sources,
                })
            elif update.delta:
                yield _sse({"token": update.delta})
    except CoachError as e:
        logging.error("Answer stream aborted: %s", e.message)
        yield _sse(build_error_body(e))
    finally:
        await updates.aclose()


@router.post("/smart-search")
async def smart_search(
    request: Request,
    body: SmartSearchRequest,
    credentials: InMemoryCredentialProvider = Depends(get_dropbox_credentials),
    _: None = Depends(verify_api_key),
) -> SmartSearchResponse:
    """Rank the given Dropbox files for a query with the LLM judge, without answering."""
    coach_service: CoachService = request.app.state.coach_service
    report = await coach_service.do_smart_search(body.query, [file.to_handle() for file in body.files], credentials)
    return SmartSearchResponse(
        query=report.query,
        totalFiles=report.total_files,
        relevantFiles=report.relevant_files,
        results=report.ranked.results,
        metadata=report.ranked.meta,
    )


@router.post("/upload-pdf")
async def upload_pdf(
    request: Request,
    file: UploadFile = File(...),
    _: None = Depends(verify_api_key),
) -> FileContentResponse:
    """Extract the text of an uploaded PDF for the local upload mode.

    Raises:
        InvalidArgumentError: Not a .pdf file, or larger than COACH_UPLOAD_MAX_BYTES.
        ExtractionFailure: The PDF cannot be read or holds no text.
    """
    helper_config = request.app.state.helper_config
    max_bytes = helper_config.get_int_val("COACH_UPLOAD_MAX_BYTES", default=10 * 1024 * 1024, minimum=1)
    name = file.filename or ""
    if not name.lower().endswith(".pdf"):
        raise InvalidArgumentError("Only PDF files are supported.")

    # one byte past the limit marks an oversized upload
    data = await file.read(max_bytes + 1)
    if len(data) > max_bytes:
        raise InvalidArgumentError("The file is too large. The maximum size is %.0f MB." % (max_bytes / (1024 * 1024)))

    handle = DocumentHandle(id=name, display_name=name, locator_path=f"upload://{name}", size_bytes=len(data))
    extracted = await asyncio.to_thread(request.app.state.text_extractor.extract, handle, data)
    if extracted.outcome != ExtractionOutcome.SUCCESS:
        raise ExtractionFailure("No readable text found in '%s' (%s)." % (name, extracted.outcome.value))

    request.app.state.logging.info("Uploaded PDF %s: %d characters", name, extracted.char_count)
    return FileContentResponse(
        content=extracted.text,
        fileName=name,
        size=len(data),
        wordCount=extracted.word_count,
        characterCount=extracted.char_count,
    )
