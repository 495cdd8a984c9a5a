from pydantic import BaseModel, Field

from shared.models.document import DocumentHandle
from shared.models.search import RankingMeta, SmartSearchResult


class FileReferenceResponse(BaseModel):
    id: str
    name: str
    path_lower: str
    size: int

    @classmethod
    def from_handle(cls, handle: DocumentHandle) -> "FileReferenceResponse":
        return cls(id=handle.id, name=handle.display_name, path_lower=handle.locator_path, size=handle.size_bytes)


class FileListResponse(BaseModel):
    files: list[FileReferenceResponse]
    total: int


class FileContentResponse(BaseModel):
    success: bool = True
    content: str
    fileName: str
    size: int
    wordCount: int
    characterCount: int


class SmartSearchResponse(BaseModel):
    success: bool = True
    query: str
    totalFiles: int
    relevantFiles: int
    results: list[SmartSearchResult]
    metadata: RankingMeta = Field(default_factory=RankingMeta)


class AuthorizeUrlResponse(BaseModel):
    url: str


class DropboxAuthResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    account_id: str | None = None
