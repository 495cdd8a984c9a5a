import asyncio

from fastapi import APIRouter, Depends, Request

from server.dependencies.auth import get_dropbox_credentials, verify_api_key
from server.models.requests import DropboxAuthRequest, DropboxSearchRequest, FileContentRequest
from server.models.responses import (
    AuthorizeUrlResponse,
    DropboxAuthResponse,
    FileContentResponse,
    FileListResponse,
    FileReferenceResponse,
)
from shared.clients.dms.DMSClientInterface import DMSClientInterface
from shared.clients.dms.dropbox.DropboxAuthFlow import DropboxAuthFlow
from shared.credentials.InMemoryCredentialProvider import InMemoryCredentialProvider
from shared.exceptions import ExtractionFailure, InvalidArgumentError
from shared.models.document import DocumentHandle, ExtractionOutcome

router = APIRouter(prefix="/dropbox", tags=["dropbox"])


@router.post("/files")
async def list_files(
    request: Request,
    credentials: InMemoryCredentialProvider = Depends(get_dropbox_credentials),
    _: None = Depends(verify_api_key),
) -> FileListResponse:
    """List every supported file in the caller's Dropbox."""
    dms_client: DMSClientInterface = request.app.state.dms_client
    handles = await dms_client.do_list_files(credentials.require())
    return FileListResponse(files=[FileReferenceResponse.from_handle(h) for h in handles], total=len(handles))


@router.post("/search")
async def search_files(
    request: Request,
    body: DropboxSearchRequest,
    credentials: InMemoryCredentialProvider = Depends(get_dropbox_credentials),
    _: None = Depends(verify_api_key),
) -> FileListResponse:
    """Search the caller's Dropbox. An empty query lists all supported files instead."""
    dms_client: DMSClientInterface = request.app.state.dms_client
    credential = credentials.require()
    if body.query.strip():
        handles = await dms_client.do_search_files(credential, body.query, max_results=body.max_results)
    else:
        handles = await dms_client.do_list_files(credential)
    return FileListResponse(files=[FileReferenceResponse.from_handle(h) for h in handles], total=len(handles))


@router.post("/file-content")
async def get_file_content(
    request: Request,
    body: FileContentRequest,
    credentials: InMemoryCredentialProvider = Depends(get_dropbox_credentials),
    _: None = Depends(verify_api_key),
) -> FileContentResponse:
    """Download one file and return its extracted text.

    Raises:
        InvalidArgumentError: If the file type is not supported.
        ExtractionFailure: If the file cannot be read or holds no text.
    """
    dms_client: DMSClientInterface = request.app.state.dms_client
    name = body.path.rsplit("/", 1)[-1] or "unknown"
    handle = DocumentHandle(id=body.path, display_name=name, locator_path=body.path)
    extractor = request.app.state.text_extractor
    if not extractor.is_supported(handle):
        raise InvalidArgumentError("File type not supported: %s" % name)

    data = await dms_client.do_download_bytes(credentials.require(), body.path)
    extracted = await asyncio.to_thread(extractor.extract, handle, data)
    if extracted.outcome != ExtractionOutcome.SUCCESS:
        raise ExtractionFailure("No readable text found in '%s' (%s)." % (name, extracted.outcome.value))

    return FileContentResponse(
        content=extracted.text,
        fileName=name,
        size=len(data),
        wordCount=extracted.word_count,
        characterCount=extracted.char_count,
    )


@router.get("/authorize-url")
async def get_authorize_url(
    request: Request,
    redirect_uri: str | None = None,
    state: str | None = None,
    _: None = Depends(verify_api_key),
) -> AuthorizeUrlResponse:
    """Return the Dropbox consent URL the user has to open."""
    dms_client: DMSClientInterface = request.app.state.dms_client
    flow = DropboxAuthFlow(dms_client, InMemoryCredentialProvider(), redirect_uri=redirect_uri)
    return AuthorizeUrlResponse(url=flow.start(state=state))


@router.post("/auth")
async def exchange_code(
    request: Request,
    body: DropboxAuthRequest,
    _: None = Depends(verify_api_key),
) -> DropboxAuthResponse:
    """Exchange the authorization code from the redirect URI for an access token."""
    dms_client: DMSClientInterface = request.app.state.dms_client
    credentials = InMemoryCredentialProvider()
    flow = DropboxAuthFlow(dms_client, credentials, redirect_uri=body.redirect_uri)
    token = await flow.do_connect(body.code)
    return DropboxAuthResponse(access_token=credentials.require(), token_type=token.token_type, account_id=token.account_id)


@router.post("/account")
async def get_account(
    request: Request,
    credentials: InMemoryCredentialProvider = Depends(get_dropbox_credentials),
    _: None = Depends(verify_api_key),
) -> dict:
    """Check the caller's token. Answers 401 with reauthenticate=true when it expired."""
    dms_client: DMSClientInterface = request.app.state.dms_client
    account = await dms_client.do_fetch_account(credentials.require())
    return account.model_dump()
