from fastapi import Request
from fastapi.responses import JSONResponse

from shared.clients.ClientInterface import ClientRequestError
from shared.exceptions import (
    AuthFlowError,
    BudgetExceededAtInputError,
    CoachError,
    CredentialExpiredError,
    DocumentNotFoundError,
    ExtractionFailure,
    InvalidArgumentError,
    StreamAbortedError,
    UpstreamUnavailableError,
)


def get_status_code(error: CoachError) -> int:
    """Map an error of the taxonomy to its HTTP status code."""
    if isinstance(error, (InvalidArgumentError, BudgetExceededAtInputError)):
        return 400
    if isinstance(error, CredentialExpiredError):
        return 401
    if isinstance(error, DocumentNotFoundError):
        return 404
    if isinstance(error, AuthFlowError):
        return 409
    if isinstance(error, ExtractionFailure):
        return 422
    if isinstance(error, UpstreamUnavailableError):
        return 503
    if isinstance(error, StreamAbortedError):
        return 502
    if isinstance(error, ClientRequestError):
        return 400 if 400 <= error.status_code < 500 else 502
    return 500


def build_error_body(error: CoachError) -> dict:
    body = {"error": True, **error.to_dict()}
    if isinstance(error, CredentialExpiredError):
        body["reauthenticate"] = True
    return body


async def handle_coach_error(request: Request, error: CoachError) -> JSONResponse:
    """Exception handler for every CoachError that escapes a route."""
    status_code = get_status_code(error)
    log = request.app.state.logging.error if status_code >= 500 else request.app.state.logging.warning
    log("%s %s failed with %d (%s): %s", request.method, request.url.path, status_code, error.kind, error.message)
    return JSONResponse(status_code=status_code, content=build_error_body(error))
