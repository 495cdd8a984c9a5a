from pydantic import BaseModel, Field

from shared.models.document import DocumentHandle, ExtractedDocument, ExtractionOutcome
from shared.models.search import CoachMode


class FileReference(BaseModel):
    """A Dropbox file as the frontend received it from /dropbox/files."""

    id: str
    name: str
    path_lower: str
    size: int = Field(default=0, ge=0)
    content_hash: str | None = None

    def to_handle(self) -> DocumentHandle:
        return DocumentHandle(
            id=self.id,
            display_name=self.name,
            locator_path=self.path_lower,
            size_bytes=self.size,
            content_fingerprint=self.content_hash,
        )


class UploadedDocument(BaseModel):
    """Text of a document the user uploaded through /upload-pdf."""

    name: str
    content: str

    def to_extracted(self) -> ExtractedDocument:
        handle = DocumentHandle(id=self.name, display_name=self.name, locator_path=f"upload://{self.name}", size_bytes=len(self.content))
        return ExtractedDocument(handle=handle, text=self.content, outcome=ExtractionOutcome.SUCCESS)


class AskRequest(BaseModel):
    question: str
    mode: CoachMode = CoachMode.HEURISTIC
    files: list[FileReference] = []
    documents: list[UploadedDocument] = []


class SmartSearchRequest(BaseModel):
    query: str
    files: list[FileReference]


class DropboxSearchRequest(BaseModel):
    query: str = ""
    max_results: int = Field(default=100, ge=1, le=1000)


class FileContentRequest(BaseModel):
    path: str


class DropboxAuthRequest(BaseModel):
    code: str
    redirect_uri: str | None = None
