"""Error taxonomy shared by the clients, the coach pipeline and the API layer.

Every error carries a machine readable ``kind``, a human readable message and
a ``retryable`` flag, so request handlers can decide whether to retry, to ask
the user to re-authenticate, or to report an input problem.
"""


class CoachError(Exception):
    """Base class for all errors raised by the coach pipeline and its clients."""

    kind: str = "coach_error"
    retryable: bool = False

    def __init__(self, message: str, *, retryable: bool | None = None) -> None:
        super().__init__(message)
        self.message = message
        if retryable is not None:
            self.retryable = retryable

    def to_dict(self) -> dict:
        return {"kind": self.kind, "message": self.message, "retryable": self.retryable}


class InvalidArgumentError(CoachError):
    """Malformed input to a pipeline function (empty credential, non-positive budget, ...)."""

    kind = "invalid_argument"


class BudgetExceededAtInputError(CoachError):
    """The question plus instructions alone do not fit into the context budget."""

    kind = "budget_exceeded"

    def __init__(self, required_chars: int, max_chars: int) -> None:
        super().__init__(
            "The question and instructions need %d characters, but the context budget is %d characters."
            % (required_chars, max_chars)
        )
        self.required_chars = required_chars
        self.max_chars = max_chars


class ExtractionFailure(CoachError):
    """A single document's text could not be extracted. Never fatal for a batch."""

    kind = "extraction_failure"


class JudgmentFailure(CoachError):
    """A relevance judgement could not be parsed, even after the fallback prompt."""

    kind = "judgment_failure"


class UpstreamUnavailableError(CoachError):
    """The Document Store or the Completion Service is unreachable or failing."""

    kind = "upstream_unavailable"
    retryable = True

    def __init__(self, service: str, message: str, status_code: int | None = None) -> None:
        super().__init__(f"{service}: {message}")
        self.service = service
        self.status_code = status_code


class CredentialExpiredError(CoachError):
    """The bearer credential was rejected. The caller must re-authenticate."""

    kind = "unauthorized"

    def __init__(self, service: str, message: str = "Credential is missing, invalid or expired.") -> None:
        super().__init__(f"{service}: {message}")
        self.service = service


class DocumentNotFoundError(CoachError):
    """The requested document does not exist in the Document Store."""

    kind = "not_found"

    def __init__(self, locator_path: str) -> None:
        super().__init__(f"Document not found: {locator_path}")
        self.locator_path = locator_path


class StreamAbortedError(CoachError):
    """The streaming completion errored or ended before its done event."""

    kind = "stream_aborted"


class AuthFlowError(CoachError):
    """An authorization flow event arrived in a state that does not accept it."""

    kind = "auth_flow"
